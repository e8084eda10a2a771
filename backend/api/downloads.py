"""
Download API Endpoints

Streams finished artifacts registered by the conversion service.
"""

import os
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from constants import DownloadDefaults
from dependencies import get_download_registry
from dtos.response.conversion_response import ErrorResponse
from exceptions import ArtifactNotFoundError
from services.download_registry import DownloadRegistry
from utils.error_handlers import handle_api_errors

logger = logging.getLogger(__name__)

router = APIRouter()


def iter_file(handle, chunk_size: int = DownloadDefaults.CHUNK_SIZE):
    """Generator to stream file chunks from an already open handle."""
    with handle:
        while True:
            data = handle.read(chunk_size)
            if not data:
                break
            yield data


@router.get(
    "/download/{download_id}",
    response_class=StreamingResponse,
    responses={
        200: {"content": {DownloadDefaults.MEDIA_TYPE: {}}},
        404: {"model": ErrorResponse, "description": "Unknown or expired download"},
    },
)
@handle_api_errors("Download")
async def download(download_id: str, registry: DownloadRegistry = Depends(get_download_registry)):
    """
    Stream a registered artifact as an MP4 attachment.

    The file is opened before the response starts, so an expiry racing with
    the download cannot cut it short.
    """
    file_path = registry.lookup(download_id)

    try:
        handle = open(file_path, "rb")
    except FileNotFoundError:
        registry.evict(download_id, delete_file=False)
        raise ArtifactNotFoundError(download_id)

    size = os.fstat(handle.fileno()).st_size
    logger.info(f"Serving download {download_id} ({size} bytes)")

    return StreamingResponse(
        iter_file(handle),
        media_type=DownloadDefaults.MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{DownloadDefaults.FILENAME}"',
            "Content-Length": str(size),
        },
    )
