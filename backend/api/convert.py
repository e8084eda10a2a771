"""
Conversion API Endpoints

Accepts an audio track and a still image and returns a download reference for
the encoded MP4.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from config.app_config import Settings
from dependencies import get_conversion_service, get_settings
from dtos.response.conversion_response import ConversionResponse, ErrorResponse
from services.conversion_service import ConversionService
from utils.error_handlers import handle_api_errors

router = APIRouter()


def _first_header_value(request: Request, name: str) -> str:
    """First entry of a possibly comma-separated proxy header."""
    return request.headers.get(name, "").split(",")[0].strip()


def public_base_url(request: Request, settings: Settings) -> str:
    """
    scheme://host clients should use to reach this service.

    PUBLIC_BASE_URL wins; otherwise X-Forwarded-Proto / X-Forwarded-Host from a
    reverse proxy are honoured before the request's own scheme and Host header.
    """
    if settings.public_base_url:
        return settings.public_base_url

    proto = _first_header_value(request, "x-forwarded-proto") or request.url.scheme
    host = (
        _first_header_value(request, "x-forwarded-host")
        or request.headers.get("host")
        or request.url.netloc
    )
    return f"{proto}://{host}"


@router.post(
    "/convert",
    response_model=ConversionResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing audio or image"},
        413: {"model": ErrorResponse, "description": "Upload too large"},
        500: {"model": ErrorResponse, "description": "ffmpeg could not start or failed"},
        504: {"model": ErrorResponse, "description": "ffmpeg timed out"},
    },
)
@handle_api_errors("Convert")
async def convert(
    request: Request,
    audio: Optional[UploadFile] = File(None),
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
    service: ConversionService = Depends(get_conversion_service),
):
    """
    Combine an audio track and a still image into an MP4.

    Returns the absolute download url, its id and how long it stays valid.
    """
    return await service.convert(audio, image, public_base_url(request, settings))
