import asyncio

import pytest

from config.app_config import EncoderSettings
from constants import JobState
from exceptions import EncoderSpawnError
from fake_encoders import (
    FAILURE_SCRIPT,
    FAKE_OUTPUT,
    HANG_SCRIPT,
    NOISY_SCRIPT,
    SIGNAL_SCRIPT,
    SUCCESS_SCRIPT,
    slow_success_script,
)
from workers.ffmpeg_runner import DiagnosticTail, FFmpegRunner


def _runner(binary: str, timeout_seconds: float = 10, **kwargs) -> FFmpegRunner:
    return FFmpegRunner(EncoderSettings(binary=binary, timeout_seconds=timeout_seconds, **kwargs))


class TestDiagnosticTail:
    def test_keeps_everything_under_budget(self):
        tail = DiagnosticTail(16)
        tail.feed(b"hello ")
        tail.feed(b"world")
        assert bytes(tail) == b"hello world"

    def test_discards_oldest_bytes(self):
        tail = DiagnosticTail(8)
        tail.feed(b"0123456789")
        tail.feed(b"AB")
        assert bytes(tail) == b"456789AB"
        assert len(tail) == 8

    def test_text_limit_and_invalid_utf8(self):
        tail = DiagnosticTail(64)
        tail.feed(b"\xffabcdef")
        assert tail.text(3) == "def"
        assert tail.text().endswith("abcdef")


@pytest.mark.asyncio
async def test_success_keeps_output_and_removes_inputs(fake_ffmpeg, make_inputs, work_dir):
    audio, image = make_inputs()
    output = work_dir / "out.mp4"

    job = await _runner(fake_ffmpeg(SUCCESS_SCRIPT)).start(audio, image, output)
    outcome = await job.wait()

    assert outcome.state is JobState.SUCCEEDED
    assert outcome.succeeded
    assert outcome.exit_code == 0
    assert outcome.signal is None
    assert job.state is JobState.SUCCEEDED
    assert output.read_bytes() == FAKE_OUTPUT
    assert not audio.exists()
    assert not image.exists()


@pytest.mark.asyncio
async def test_nonzero_exit_reports_failure_with_diagnostics(fake_ffmpeg, make_inputs, work_dir):
    audio, image = make_inputs()

    job = await _runner(fake_ffmpeg(FAILURE_SCRIPT)).start(audio, image, work_dir / "out.mp4")
    outcome = await job.wait()

    assert outcome.state is JobState.FAILED
    assert outcome.exit_code == 1
    assert "Invalid data found" in outcome.diagnostics
    assert not audio.exists()
    assert not image.exists()


@pytest.mark.asyncio
async def test_killed_by_foreign_signal_is_a_failure(fake_ffmpeg, make_inputs, work_dir):
    audio, image = make_inputs()

    job = await _runner(fake_ffmpeg(SIGNAL_SCRIPT)).start(audio, image, work_dir / "out.mp4")
    outcome = await job.wait()

    assert outcome.state is JobState.FAILED
    assert outcome.exit_code is None
    assert outcome.signal == "SIGTERM"
    assert "about to die" in outcome.diagnostics


@pytest.mark.asyncio
async def test_watchdog_kills_hung_encoder(fake_ffmpeg, make_inputs, work_dir):
    audio, image = make_inputs()

    job = await _runner(fake_ffmpeg(HANG_SCRIPT), timeout_seconds=0.5).start(audio, image, work_dir / "out.mp4")
    outcome = await job.wait()

    assert outcome.state is JobState.TIMED_OUT
    assert outcome.signal == "SIGKILL"
    assert outcome.elapsed_seconds < 10
    assert job.process.returncode is not None
    assert not audio.exists()
    assert not image.exists()


@pytest.mark.asyncio
async def test_spawn_failure_raises_and_removes_inputs(make_inputs, work_dir):
    audio, image = make_inputs()

    with pytest.raises(EncoderSpawnError):
        await _runner(str(work_dir / "no-such-ffmpeg")).start(audio, image, work_dir / "out.mp4")

    assert not audio.exists()
    assert not image.exists()


@pytest.mark.asyncio
async def test_cancel_while_starting_kills_and_reaps_process(fake_ffmpeg, make_inputs, work_dir, monkeypatch):
    audio, image = make_inputs()
    spawned = []
    real_exec = asyncio.create_subprocess_exec

    async def slow_exec(*args, **kwargs):
        process = await real_exec(*args, **kwargs)
        spawned.append(process)
        await asyncio.sleep(0.5)
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", slow_exec)

    task = asyncio.create_task(_runner(fake_ffmpeg(HANG_SCRIPT)).start(audio, image, work_dir / "out.mp4"))
    await asyncio.sleep(0.2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(spawned) == 1
    assert spawned[0].returncode is not None


@pytest.mark.asyncio
async def test_diagnostic_capture_is_bounded(fake_ffmpeg, make_inputs, work_dir):
    audio, image = make_inputs()

    runner = _runner(fake_ffmpeg(NOISY_SCRIPT), stderr_tail_bytes=1024)
    job = await runner.start(audio, image, work_dir / "out.mp4")
    outcome = await job.wait()

    assert len(job.tail) <= 1024
    assert outcome.diagnostics.endswith("line 1999\n")
    assert "line 0\n" not in outcome.diagnostics


@pytest.mark.asyncio
async def test_late_watchdog_does_not_change_outcome(fake_ffmpeg, make_inputs, work_dir):
    audio, image = make_inputs()

    job = await _runner(fake_ffmpeg(SUCCESS_SCRIPT)).start(audio, image, work_dir / "out.mp4")
    first = await job.wait()

    job._on_watchdog()
    job.cancel()

    assert await job.wait() is first
    assert job.state is JobState.SUCCEEDED


@pytest.mark.asyncio
async def test_completion_racing_watchdog_resolves_once(fake_ffmpeg, make_inputs, work_dir):
    audio, image = make_inputs()

    runner = _runner(fake_ffmpeg(slow_success_script(0.3)), timeout_seconds=0.3)
    job = await runner.start(audio, image, work_dir / "out.mp4")
    first = await job.wait()

    assert first.state in (JobState.SUCCEEDED, JobState.TIMED_OUT)
    assert await job.wait() is first
    assert not audio.exists()
    assert not image.exists()
