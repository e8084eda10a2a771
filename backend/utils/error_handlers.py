"""
Error handling decorators and exception handlers for API endpoints.

Route handlers are wrapped with handle_api_errors, which logs each failure class
at the right level and degrades anything unexpected to ServerError. The
exception handlers registered on the app then render every ApplicationError as
a JSON body of the form {"error": <code>, "message": ..., **details}.
"""

import inspect
import logging
from functools import wraps
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from constants import ErrorCode, HTTPStatus
from exceptions import (
    ApplicationError,
    ArtifactNotFoundError,
    EncoderError,
    InvalidRequestError,
    PayloadTooLargeError,
    ServerError,
)

logger = logging.getLogger(__name__)


def _log_and_translate(operation_name: str, e: Exception) -> ApplicationError:
    """Log e and return the ApplicationError to raise in its place."""
    if isinstance(e, (InvalidRequestError, PayloadTooLargeError)):
        logger.warning(f"{operation_name} - Rejected request: {e.message}")
        return e
    if isinstance(e, ArtifactNotFoundError):
        logger.info(f"{operation_name} - Not found: {e.details.get('id')}")
        return e
    if isinstance(e, EncoderError):
        logger.error(f"{operation_name} - Encoder error: {e.message}")
        return e
    if isinstance(e, ApplicationError):
        logger.error(f"{operation_name} - Application error: {e.message}", exc_info=True)
        return e
    logger.error(f"{operation_name} - Unexpected error: {e}", exc_info=True)
    return ServerError(f"{operation_name} failed. Please check server logs.")


def handle_api_errors(operation_name: str):
    """
    Decorator to handle API errors consistently across endpoints.

    Args:
        operation_name: Human-readable name of the operation (e.g., "Convert")

    Returns:
        Decorated function that handles errors uniformly

    Example:
        @router.post("/convert")
        @handle_api_errors("Convert")
        async def convert(...):
            return await service.convert(...)
    """
    def decorator(func: Callable):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                translated = _log_and_translate(operation_name, e)
                if translated is e:
                    raise
                raise translated from e

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                translated = _log_and_translate(operation_name, e)
                if translated is e:
                    raise
                raise translated from e

        # Return appropriate wrapper based on whether the function is async
        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [str(err["loc"][-1]) for err in exc.errors() if err.get("loc")]
    logger.warning(f"{request.method} {request.url.path} - Invalid request: {fields}")
    error = InvalidRequestError("Missing audio or image", missing_fields=fields or None)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        content={"error": ErrorCode.SERVER_ERROR},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error renderers on app."""
    app.add_exception_handler(ApplicationError, application_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
