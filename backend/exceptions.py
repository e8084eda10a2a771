"""
Custom exception classes for the application.

This module defines domain-specific exceptions that provide better error handling
and clearer error messages throughout the application. Each exception carries the
HTTP status and error code it is rendered with.
"""

from constants import ErrorCode, HTTPStatus


class ApplicationError(Exception):
    """Base exception for all application errors"""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    error_code = ErrorCode.SERVER_ERROR

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """JSON body for this error"""
        return {"error": self.error_code, "message": self.message, **self.details}


class ConfigurationError(ApplicationError):
    """Raised when there's a configuration issue"""

    error_code = ErrorCode.CONFIGURATION

    def __init__(self, message: str, invalid_keys: list[str] | None = None):
        details = {"invalid_keys": invalid_keys} if invalid_keys else {}
        super().__init__(message, details)


class InvalidRequestError(ApplicationError):
    """Raised when a required upload part is missing"""

    status_code = HTTPStatus.BAD_REQUEST
    error_code = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        details = {"missing_fields": missing_fields} if missing_fields else {}
        super().__init__(message, details)


class PayloadTooLargeError(ApplicationError):
    """Raised when an uploaded part exceeds the per-file ceiling"""

    status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    error_code = ErrorCode.PAYLOAD_TOO_LARGE

    def __init__(self, field: str, limit_bytes: int):
        details = {"field": field, "limit_bytes": limit_bytes}
        super().__init__(f"File too large: '{field}' exceeds {limit_bytes} bytes", details)


class EncoderError(ApplicationError):
    """Base class for failures of the external encoder"""


class EncoderSpawnError(EncoderError):
    """Raised when the encoder binary cannot be launched at all"""

    error_code = ErrorCode.SPAWN_FAILED

    def __init__(self, binary: str, reason: str):
        self.binary = binary
        self.reason = reason
        # binary and reason stay server-side, only the log sees them
        super().__init__("Failed to launch the encoder")


class EncoderExecutionError(EncoderError):
    """Raised when the encoder exits nonzero or is killed by a signal"""

    error_code = ErrorCode.EXECUTION_FAILED

    def __init__(self, exit_code: int | None, signal: str | None, diagnostics: str = ""):
        details = {"code": exit_code, "signal": signal, "stderr": diagnostics}
        super().__init__(f"Encoder failed (code={exit_code}, signal={signal})", details)


class EncoderTimeoutError(EncoderError):
    """Raised when the watchdog kills the encoder"""

    status_code = HTTPStatus.GATEWAY_TIMEOUT
    error_code = ErrorCode.TIMED_OUT

    def __init__(self, timeout_seconds: float):
        details = {"timeout_seconds": timeout_seconds}
        super().__init__(f"Encoder timed out after {timeout_seconds}s", details)


class ArtifactNotFoundError(ApplicationError):
    """Raised when a download id is unknown, expired or its file vanished"""

    status_code = HTTPStatus.NOT_FOUND
    error_code = ErrorCode.NOT_FOUND

    def __init__(self, download_id: str):
        super().__init__("Not Found", {"id": download_id})


class ServerError(ApplicationError):
    """Unclassified failure"""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
