"""
Runtime Configuration

Loads service settings from environment variables, falling back to the defaults
in constants.py. Values are validated once at startup so a bad deployment fails
fast instead of at the first conversion request.
"""
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from constants import EncoderDefaults, RegistryDefaults, ServerConfig, UploadDefaults
from exceptions import ConfigurationError


class EncoderSettings(BaseModel):
    """ffmpeg invocation parameters"""

    binary: str = EncoderDefaults.BINARY
    timeout_seconds: float = Field(EncoderDefaults.TIMEOUT_SECONDS, gt=0)
    stderr_tail_bytes: int = Field(EncoderDefaults.STDERR_TAIL_BYTES, gt=0)
    video_codec: str = EncoderDefaults.VIDEO_CODEC
    preset: str = EncoderDefaults.PRESET
    profile: str = EncoderDefaults.PROFILE
    level: str = EncoderDefaults.LEVEL
    x264_params: Optional[str] = EncoderDefaults.X264_PARAMS
    scale_width: int = Field(EncoderDefaults.SCALE_WIDTH, gt=0)
    fps: int = Field(EncoderDefaults.FPS, gt=0)
    pixel_format: str = EncoderDefaults.PIXEL_FORMAT
    threads: int = Field(EncoderDefaults.THREADS, ge=0)
    audio_codec: str = EncoderDefaults.AUDIO_CODEC
    audio_bitrate: str = EncoderDefaults.AUDIO_BITRATE
    audio_channels: int = Field(EncoderDefaults.AUDIO_CHANNELS, gt=0)


class Settings(BaseModel):
    """Top-level service settings"""

    host: str = ServerConfig.HOST
    port: int = Field(ServerConfig.PORT, gt=0, lt=65536)
    work_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    download_ttl_seconds: float = Field(RegistryDefaults.TTL_SECONDS, gt=0)
    sweep_interval_seconds: float = Field(RegistryDefaults.SWEEP_INTERVAL_SECONDS, gt=0)
    max_upload_bytes: int = Field(UploadDefaults.MAX_FILE_BYTES, gt=0)
    max_concurrent_jobs: int = Field(0, ge=0)  # 0 = unbounded
    public_base_url: Optional[str] = None
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    encoder: EncoderSettings = Field(default_factory=EncoderSettings)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Validated Settings instance

        Raises:
            ConfigurationError: If any variable fails validation
        """
        env = os.environ if environ is None else environ

        top_level = {key: env[name] for name, key in _ENV_KEYS.items() if env.get(name)}
        encoder = {key: env[name] for name, key in _ENCODER_ENV_KEYS.items() if env.get(name)}
        if encoder:
            top_level["encoder"] = encoder

        try:
            settings = cls(**top_level)
        except ValidationError as e:
            invalid = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
            raise ConfigurationError(f"Invalid configuration: {e}", invalid_keys=invalid) from e

        if settings.public_base_url:
            settings.public_base_url = settings.public_base_url.rstrip("/")
        return settings

    @property
    def download_ttl_whole_seconds(self) -> int:
        return int(self.download_ttl_seconds)


_ENV_KEYS = {
    "HOST": "host",
    "PORT": "port",
    "WORK_DIR": "work_dir",
    "DOWNLOAD_TTL_SECONDS": "download_ttl_seconds",
    "SWEEP_INTERVAL_SECONDS": "sweep_interval_seconds",
    "MAX_UPLOAD_BYTES": "max_upload_bytes",
    "MAX_CONCURRENT_JOBS": "max_concurrent_jobs",
    "PUBLIC_BASE_URL": "public_base_url",
    "LOG_LEVEL": "log_level",
    "LOG_DIR": "log_dir",
}

_ENCODER_ENV_KEYS = {
    "FFMPEG_BINARY": "binary",
    "FFMPEG_TIMEOUT_SECONDS": "timeout_seconds",
    "STDERR_TAIL_BYTES": "stderr_tail_bytes",
    "FFMPEG_VIDEO_PRESET": "preset",
    "FFMPEG_AUDIO_BITRATE": "audio_bitrate",
    "FFMPEG_THREADS": "threads",
    "FFMPEG_SCALE_WIDTH": "scale_width",
    "FFMPEG_FPS": "fps",
}
