"""
Upload Intake Helpers

Streams multipart parts into the temp store while enforcing the per-file ceiling.
"""
import re
import logging
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from constants import UploadDefaults
from exceptions import PayloadTooLargeError, ServerError
from services.file_cleanup_service import FileCleanupService

logger = logging.getLogger(__name__)

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


def safe_suffix(filename: Optional[str]) -> str:
    """
    Extension of the client filename if it is short and alphanumeric.

    ffmpeg probes content anyway, the suffix only helps format detection.
    """
    if not filename:
        return ""
    suffix = Path(filename).suffix
    return suffix.lower() if _SAFE_SUFFIX.match(suffix) else ""


async def save_upload(upload: UploadFile, dest: Path, field: str, max_bytes: int) -> int:
    """
    Copy an uploaded part to dest without ever exceeding max_bytes.

    The part is written to a '.partial' sibling and renamed on success so a
    half-written file is never visible under its final name.

    Args:
        upload: Multipart file part
        dest: Final location
        field: Form field name (for error reporting)
        max_bytes: Per-file ceiling

    Returns:
        Number of bytes written

    Raises:
        PayloadTooLargeError: If the part exceeds max_bytes
        ServerError: If the file cannot be written
    """
    if upload.size is not None and upload.size > max_bytes:
        logger.warning(f"Upload '{field}' declared size {upload.size} exceeds max bytes {max_bytes}")
        raise PayloadTooLargeError(field, max_bytes)

    await upload.seek(0)
    temp_dest = dest.with_name(dest.name + ".partial")
    total = 0
    try:
        with temp_dest.open("wb") as buffer:
            while True:
                chunk = await upload.read(UploadDefaults.CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    logger.warning(f"Upload '{field}' exceeded max size of {max_bytes} bytes")
                    raise PayloadTooLargeError(field, max_bytes)
                buffer.write(chunk)
        temp_dest.replace(dest)
    except OSError as e:
        FileCleanupService.remove_file(temp_dest)
        logger.error(f"Failed to persist upload '{field}': {e}")
        raise ServerError("Failed to save upload") from e
    except BaseException:
        # Oversized part or cancelled request
        FileCleanupService.remove_file(temp_dest)
        raise

    return total
