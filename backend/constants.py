"""
Application-wide constants and configuration defaults.

This module centralizes all magic strings and numbers used throughout the application
to improve maintainability and reduce duplication. Runtime overrides are read from the
environment by config.app_config.
"""
from enum import Enum


class JobState(str, Enum):
    """
    Lifecycle states of a single encoding job.

    A job starts RUNNING and ends in exactly one of the other states.
    """

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ErrorCode:
    """Error classifications returned in JSON error bodies"""

    INVALID_REQUEST = "invalid_request"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    SPAWN_FAILED = "ffmpeg_spawn_failed"
    EXECUTION_FAILED = "ffmpeg_failed"
    TIMED_OUT = "ffmpeg_timeout"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    CONFIGURATION = "configuration_error"


class ServerConfig:
    """Server configuration constants"""

    HOST = "0.0.0.0"  # Listen on all interfaces, the service usually sits behind a proxy
    PORT = 3000


class EncoderDefaults:
    """Default ffmpeg parameters for still-image + audio encoding"""

    BINARY = "ffmpeg"
    TIMEOUT_SECONDS = 180  # 3 minutes
    STDERR_TAIL_BYTES = 8 * 1024  # Ring buffer for the diagnostic stream
    STDERR_EXCERPT_CHARS = 4000  # Slice returned to clients on failure

    # Video: still image, kept as light as possible on CPU
    VIDEO_CODEC = "libx264"
    PRESET = "ultrafast"
    PROFILE = "baseline"
    LEVEL = "3.0"
    X264_PARAMS = "bframes=0:ref=1:scenecut=0:subme=0:me=dia:trellis=0"
    SCALE_WIDTH = 854
    FPS = 1
    PIXEL_FORMAT = "yuv420p"
    THREADS = 1

    # Audio
    AUDIO_CODEC = "aac"
    AUDIO_BITRATE = "96k"
    AUDIO_CHANNELS = 1

    OUTPUT_EXTENSION = ".mp4"


class RegistryDefaults:
    """Download registry defaults"""

    TTL_SECONDS = 10 * 60  # 10 minutes
    SWEEP_INTERVAL_SECONDS = 60
    ID_PREFIX = "dl"
    MAX_ID_ATTEMPTS = 5


class UploadDefaults:
    """Multipart upload handling defaults"""

    MAX_FILE_BYTES = 50 * 1024 * 1024  # 50 MB per part
    CHUNK_SIZE = 1024 * 1024  # 1 MB read chunks
    AUDIO_FIELD = "audio"
    IMAGE_FIELD = "image"


class DownloadDefaults:
    """Artifact download response defaults"""

    MEDIA_TYPE = "video/mp4"
    FILENAME = "output.mp4"
    CHUNK_SIZE = 64 * 1024  # 64KB chunks


class HTTPStatus:
    """HTTP status codes used throughout the application"""

    # Success
    OK = 200

    # Client Errors
    BAD_REQUEST = 400
    NOT_FOUND = 404
    REQUEST_ENTITY_TOO_LARGE = 413

    # Server Errors
    INTERNAL_SERVER_ERROR = 500
    GATEWAY_TIMEOUT = 504
