"""
Dependency injection providers for FastAPI.

The registry, runner and conversion service are built once per application in
main.create_app and stored on app.state; these providers hand them to routes.
Tests can swap any of them with app.dependency_overrides.
"""

from fastapi import Request

from config.app_config import Settings
from services.conversion_service import ConversionService
from services.download_registry import DownloadRegistry


def get_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_download_registry(request: Request) -> DownloadRegistry:
    """
    Application-scoped DownloadRegistry.

    Returns:
        DownloadRegistry shared by every request of this application
    """
    return request.app.state.registry


def get_conversion_service(request: Request) -> ConversionService:
    """Application-scoped ConversionService."""
    return request.app.state.conversion_service
