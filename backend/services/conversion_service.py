"""
Conversion Service

Orchestrates one conversion request: validates and persists the uploads,
runs the encoder, and either registers the artifact for download or reports a
classified failure. Whatever happens, no input or failed output is left behind
in the temp store.
"""

import asyncio
import contextlib
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from config.app_config import Settings
from constants import EncoderDefaults, JobState, UploadDefaults
from dtos.response.conversion_response import ConversionResponse
from exceptions import (
    EncoderExecutionError,
    EncoderTimeoutError,
    InvalidRequestError,
)
from services.download_registry import DownloadRegistry
from services.file_cleanup_service import FileCleanupService
from utils.logging_utils import StructuredLogger
from utils.upload_helper import safe_suffix, save_upload
from utils.uuid_helper import generate_timestamped_id
from workers.ffmpeg_runner import EncodingJob, FFmpegRunner, JobOutcome

logger = StructuredLogger(__name__)


class ConversionService:
    """Turns an (audio, image) upload pair into a registered MP4 download"""

    def __init__(
        self,
        settings: Settings,
        registry: DownloadRegistry,
        runner: FFmpegRunner,
        job_slots: Optional[asyncio.Semaphore] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.runner = runner
        self.job_slots = job_slots

    async def convert(
        self,
        audio: Optional[UploadFile],
        image: Optional[UploadFile],
        base_url: str,
    ) -> ConversionResponse:
        """
        Run one conversion end to end.

        Args:
            audio: Uploaded 'audio' part
            image: Uploaded 'image' part
            base_url: Public scheme://host used to build the download url

        Returns:
            ConversionResponse with the download url, id and expiry

        Raises:
            InvalidRequestError: A part is missing
            PayloadTooLargeError: A part exceeds the upload ceiling
            EncoderSpawnError: ffmpeg could not be launched
            EncoderExecutionError: ffmpeg failed
            EncoderTimeoutError: The watchdog killed ffmpeg
        """
        missing = [
            name for name, part in ((UploadDefaults.AUDIO_FIELD, audio), (UploadDefaults.IMAGE_FIELD, image))
            if part is None or not part.filename
        ]
        if missing:
            raise InvalidRequestError("Missing audio or image", missing_fields=missing)

        job_key = generate_timestamped_id("job")
        work_dir = Path(self.settings.work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        audio_path = work_dir / f"{job_key}-audio{safe_suffix(audio.filename)}"
        image_path = work_dir / f"{job_key}-image{safe_suffix(image.filename)}"
        output_path = work_dir / f"{job_key}-output{EncoderDefaults.OUTPUT_EXTENSION}"

        try:
            audio_size = await save_upload(audio, audio_path, UploadDefaults.AUDIO_FIELD, self.settings.max_upload_bytes)
            image_size = await save_upload(image, image_path, UploadDefaults.IMAGE_FIELD, self.settings.max_upload_bytes)
        except BaseException:
            FileCleanupService.remove_files([audio_path, image_path])
            raise

        logger.info(
            f"Start conversion {job_key}: audio={audio_size} bytes, image={image_size} bytes",
            extra={"job_key": job_key},
        )

        slot = self.job_slots if self.job_slots is not None else contextlib.nullcontext()
        job = None
        try:
            async with slot:
                job = await self.runner.start(audio_path, image_path, output_path)
                outcome = await self._await_outcome(job)
        except BaseException:
            # Once a job exists it has already removed its inputs
            if job is None:
                FileCleanupService.remove_files([audio_path, image_path])
            FileCleanupService.remove_file(output_path)
            raise

        return self._finish(job_key, outcome, output_path, base_url)

    async def _await_outcome(self, job: EncodingJob) -> JobOutcome:
        try:
            return await job.wait()
        except asyncio.CancelledError:
            logger.warning(f"Conversion cancelled, killing ffmpeg pid={job.pid}")
            job.cancel()
            await job.wait()
            raise

    def _finish(self, job_key: str, outcome: JobOutcome, output_path: Path, base_url: str) -> ConversionResponse:
        if outcome.state is JobState.TIMED_OUT:
            FileCleanupService.remove_file(output_path)
            raise EncoderTimeoutError(self.settings.encoder.timeout_seconds)

        if outcome.state is not JobState.SUCCEEDED:
            FileCleanupService.remove_file(output_path)
            raise EncoderExecutionError(outcome.exit_code, outcome.signal, outcome.diagnostics)

        if not output_path.is_file():
            raise EncoderExecutionError(
                outcome.exit_code, None, outcome.diagnostics or "ffmpeg exited cleanly but wrote no output"
            )

        download_id = self.registry.register(output_path)
        url = f"{base_url.rstrip('/')}/download/{download_id}"
        logger.info(f"Conversion {job_key} OK -> {url}", extra={"job_key": job_key, "download_id": download_id})

        return ConversionResponse(
            url=url,
            id=download_id,
            expires_in_seconds=self.settings.download_ttl_whole_seconds,
        )
