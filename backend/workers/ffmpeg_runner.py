import asyncio
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
import logging

from config.app_config import EncoderSettings
from constants import EncoderDefaults, JobState
from exceptions import EncoderSpawnError
from services.file_cleanup_service import FileCleanupService
from utils.ffmpeg_helper import build_still_image_command, get_ffmpeg_path

logger = logging.getLogger(__name__)

STDERR_READ_SIZE = 4096
PUMP_DRAIN_TIMEOUT_SECONDS = 5.0


class DiagnosticTail:
    """Keeps the most recent max_bytes of a byte stream, discarding older bytes."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> None:
        self._buffer += chunk
        overflow = len(self._buffer) - self.max_bytes
        if overflow > 0:
            del self._buffer[:overflow]

    def text(self, limit_chars: Optional[int] = None) -> str:
        decoded = self._buffer.decode("utf-8", errors="replace")
        if limit_chars is not None:
            decoded = decoded[-limit_chars:]
        return decoded

    def __bytes__(self) -> bytes:
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)


@dataclass(frozen=True)
class JobOutcome:
    """Terminal outcome of one encoding job"""

    state: JobState
    exit_code: Optional[int] = None
    signal: Optional[str] = None
    diagnostics: str = ""
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.SUCCEEDED


def _describe_returncode(returncode: int) -> tuple[Optional[int], Optional[str]]:
    """Split an asyncio returncode into (exit_code, signal_name)."""
    if returncode >= 0:
        return returncode, None
    try:
        return None, signal.Signals(-returncode).name
    except ValueError:
        return None, f"SIG{-returncode}"


class EncodingJob:
    """
    Handle for one running encoder process.

    The job resolves exactly once. The watchdog and the natural exit both try
    to claim the terminal state; whichever runs first wins and the other is
    only logged. The outcome is published after the process has been reaped
    and the inputs deleted, so callers may remove the output immediately.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        inputs: Iterable[Path],
        output_path: Path,
        timeout_seconds: float,
        tail_bytes: int,
        excerpt_chars: int = EncoderDefaults.STDERR_EXCERPT_CHARS,
    ):
        self.process = process
        self.pid = process.pid
        self.inputs = tuple(Path(p) for p in inputs)
        self.output_path = Path(output_path)
        self.timeout_seconds = timeout_seconds
        self.excerpt_chars = excerpt_chars
        self.tail = DiagnosticTail(tail_bytes)

        self._claimed_state: Optional[JobState] = None
        self._started_at = time.monotonic()

        loop = asyncio.get_running_loop()
        self._outcome: asyncio.Future = loop.create_future()
        self._watchdog = loop.call_later(timeout_seconds, self._on_watchdog)
        self._pump_task = asyncio.create_task(self._pump_stderr())
        self._monitor_task = asyncio.create_task(self._monitor())

    @property
    def state(self) -> JobState:
        if not self._outcome.done():
            return JobState.RUNNING
        return self._outcome.result().state

    async def wait(self) -> JobOutcome:
        """Wait for the single terminal outcome."""
        return await asyncio.shield(self._outcome)

    def cancel(self) -> None:
        """Forcibly kill the process. No-op once it has exited."""
        if self.process.returncode is not None:
            return
        try:
            self.process.kill()
        except ProcessLookupError:
            pass

    def _claim(self, state: JobState) -> bool:
        """First caller wins; returns False if a state was already claimed."""
        if self._claimed_state is not None:
            return False
        self._claimed_state = state
        return True

    def _on_watchdog(self) -> None:
        if not self._claim(JobState.TIMED_OUT):
            return
        logger.error(f"ffmpeg timeout after {self.timeout_seconds}s -> killing process pid={self.pid}")
        self.cancel()

    async def _pump_stderr(self) -> None:
        stream = self.process.stderr
        if stream is None:
            return
        while True:
            chunk = await stream.read(STDERR_READ_SIZE)
            if not chunk:
                break
            self.tail.feed(chunk)

    async def _drain_pump(self) -> None:
        try:
            await asyncio.wait_for(self._pump_task, timeout=PUMP_DRAIN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"stderr of pid={self.pid} still open after exit, abandoning capture")
            self._pump_task.cancel()
        except Exception as e:
            logger.warning(f"stderr capture for pid={self.pid} failed: {e}")

    async def _monitor(self) -> None:
        try:
            returncode = await self.process.wait()
        finally:
            self._watchdog.cancel()
        await self._drain_pump()

        exit_code, signal_name = _describe_returncode(returncode)
        natural = JobState.SUCCEEDED if returncode == 0 else JobState.FAILED
        if not self._claim(natural):
            logger.info(
                f"ffmpeg pid={self.pid} exited (code={exit_code}, signal={signal_name}) "
                f"after {self._claimed_state.value}, ignoring"
            )

        # Inputs never outlive the process, whatever the outcome
        FileCleanupService.remove_files(self.inputs)

        outcome = JobOutcome(
            state=self._claimed_state,
            exit_code=exit_code,
            signal=signal_name,
            diagnostics=self.tail.text(self.excerpt_chars),
            elapsed_seconds=time.monotonic() - self._started_at,
        )
        if outcome.state is JobState.FAILED:
            logger.error(
                f"ffmpeg failed pid={self.pid} code={exit_code} signal={signal_name}: "
                f"{outcome.diagnostics[-500:]}"
            )
        else:
            logger.info(f"ffmpeg pid={self.pid} finished: {outcome.state.value} in {outcome.elapsed_seconds:.1f}s")
        self._outcome.set_result(outcome)


class FFmpegRunner:
    """Starts still-image + audio encodes"""

    def __init__(self, options: EncoderSettings):
        self.options = options
        self.ffmpeg_path = get_ffmpeg_path(options.binary)

    async def start(self, audio_path: Path, image_path: Path, output_path: Path) -> EncodingJob:
        """
        Launch ffmpeg for one conversion.

        Args:
            audio_path: Uploaded audio track
            image_path: Uploaded still image
            output_path: MP4 to write

        Returns:
            EncodingJob tracking the running process

        Raises:
            EncoderSpawnError: If the binary cannot be launched at all. The
                inputs are deleted before raising.
        """
        cmd = build_still_image_command(self.ffmpeg_path, image_path, audio_path, output_path, self.options)
        logger.debug(f"Running ffmpeg: {' '.join(cmd)}")

        spawn = asyncio.ensure_future(
            asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        )
        try:
            process = await asyncio.shield(spawn)
        except asyncio.CancelledError:
            await self._reap_abandoned_spawn(spawn)
            raise
        except OSError as e:
            logger.error(f"ffmpeg spawn error ({self.ffmpeg_path}): {e}")
            FileCleanupService.remove_files([audio_path, image_path])
            raise EncoderSpawnError(self.ffmpeg_path, str(e)) from e

        logger.info(f"ffmpeg started pid={process.pid}")
        return EncodingJob(
            process,
            inputs=[audio_path, image_path],
            output_path=output_path,
            timeout_seconds=self.options.timeout_seconds,
            tail_bytes=self.options.stderr_tail_bytes,
        )

    async def _reap_abandoned_spawn(self, spawn: asyncio.Future) -> None:
        """Kill and reap a process whose caller was cancelled while it was starting."""
        try:
            process = await spawn
        except OSError:
            return
        logger.warning(f"Start cancelled, killing ffmpeg pid={process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
