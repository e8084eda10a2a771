"""
FFmpeg Binary Helper

Resolves the ffmpeg binary and builds the argument list used to turn a still
image plus an audio track into an MP4 video.
"""
import os
import shutil
import logging
from pathlib import Path

from config.app_config import EncoderSettings

logger = logging.getLogger(__name__)


def get_ffmpeg_path(binary: str) -> str:
    """
    Resolve the ffmpeg binary to an absolute path when possible.

    Args:
        binary: Configured binary name ('ffmpeg') or path

    Returns:
        Absolute path if found on PATH or on disk, otherwise the value unchanged
        so the launch itself reports the failure.
    """
    if os.sep in binary:
        return str(Path(binary).expanduser())

    resolved = shutil.which(binary)
    if resolved is None:
        logger.warning(f"{binary} not found on PATH, conversions will fail to launch")
        return binary

    logger.debug(f"Using {binary}: {resolved}")
    return resolved


def build_still_image_command(
    ffmpeg_path: str,
    image_path: Path,
    audio_path: Path,
    output_path: Path,
    options: EncoderSettings,
) -> list[str]:
    """
    Build the ffmpeg command that loops a still image over an audio track.

    The video stream is scaled and held at a very low frame rate, the audio is
    re-encoded, output stops with the shortest stream and the moov atom is moved
    to the front for progressive download.

    Args:
        ffmpeg_path: Binary to execute
        image_path: Still image input
        audio_path: Audio input
        output_path: MP4 to write
        options: Codec parameters

    Returns:
        Argument list suitable for asyncio.create_subprocess_exec
    """
    video_filter = f"scale={options.scale_width}:-2,fps={options.fps},format={options.pixel_format}"

    cmd = [
        ffmpeg_path,
        "-y",
        "-nostdin",
        "-hide_banner",
        "-loglevel", "error",

        "-loop", "1",
        "-i", str(image_path),
        "-i", str(audio_path),

        # Video
        "-vf", video_filter,
        "-c:v", options.video_codec,
        "-preset", options.preset,
        "-profile:v", options.profile,
        "-level", options.level,
    ]

    if options.x264_params:
        cmd += ["-x264-params", options.x264_params]

    cmd += [
        "-threads", str(options.threads),

        # Audio
        "-c:a", options.audio_codec,
        "-b:a", options.audio_bitrate,
        "-ac", str(options.audio_channels),

        "-shortest",
        "-movflags", "+faststart",
        str(output_path),
    ]
    return cmd
