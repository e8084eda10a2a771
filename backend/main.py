from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import logging
import time

from api import convert, downloads
from config.app_config import Settings
from services.conversion_service import ConversionService
from services.download_registry import DownloadRegistry
from services.registry_janitor import RegistryJanitor
from utils.error_handlers import register_exception_handlers
from utils.logging_utils import clear_logging_context, configure_logging, set_logging_context
from utils.uuid_helper import generate_uuid
from workers.ffmpeg_runner import FFmpegRunner

logger = logging.getLogger(__name__)

SERVICE_NAME = "CoverClip API"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown"""
    settings: Settings = app.state.settings

    # Startup
    settings.work_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Temp store: {settings.work_dir}")
    logger.info(
        f"ffmpeg: {app.state.runner.ffmpeg_path} "
        f"(timeout {settings.encoder.timeout_seconds}s, download TTL {settings.download_ttl_seconds}s)"
    )

    app.state.janitor.start()
    logger.info("Application startup complete - all services running")

    yield

    # Shutdown
    logger.info("Stopping background services...")
    await app.state.janitor.stop()

    # Nothing survives a restart, so leave nothing behind on disk either
    removed = app.state.registry.clear()
    logger.info(f"Application shutdown complete ({removed} download(s) removed)")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application and its lifecycle-scoped services.

    Args:
        settings: Settings to use (defaults to Settings.from_env())

    Returns:
        Configured FastAPI app
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_dir)

    registry = DownloadRegistry(ttl_seconds=settings.download_ttl_seconds)
    runner = FFmpegRunner(settings.encoder)
    job_slots = asyncio.Semaphore(settings.max_concurrent_jobs) if settings.max_concurrent_jobs else None

    app = FastAPI(
        title=SERVICE_NAME,
        description="Turns an audio track and a still image into a downloadable MP4",
        version=SERVICE_VERSION,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.runner = runner
    app.state.janitor = RegistryJanitor(registry, interval_seconds=settings.sweep_interval_seconds)
    app.state.conversion_service = ConversionService(settings, registry, runner, job_slots=job_slots)

    register_exception_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with a request id in the logging context"""
        set_logging_context(request_id=generate_uuid())
        started = time.monotonic()
        try:
            response = await call_next(request)
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({(time.monotonic() - started) * 1000:.0f}ms)"
            )
            return response
        finally:
            clear_logging_context()

    app.include_router(convert.router, tags=["convert"])
    app.include_router(downloads.router, tags=["downloads"])

    @app.get("/", response_class=PlainTextResponse)
    def root():
        """Liveness check"""
        return "OK"

    return app


if __name__ == "__main__":
    import uvicorn

    app_settings = Settings.from_env()
    application = create_app(app_settings)
    logger.info(f"🚀 Starting {SERVICE_NAME} on http://{app_settings.host}:{app_settings.port}...")
    uvicorn.run(application, host=app_settings.host, port=app_settings.port)
