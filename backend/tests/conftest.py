import sys
from pathlib import Path

# Add backend directory to Python path FIRST
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Now import after path is set
import pytest
from fastapi.testclient import TestClient

from config.app_config import EncoderSettings, Settings
from main import create_app
from fake_encoders import FAKE_OUTPUT


class FakeClock:
    """Manually advanced clock for registry tests"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def run_marker(tmp_path):
    """File every fake encoder touches when it runs"""
    return tmp_path / "encoder-ran"


@pytest.fixture
def fake_ffmpeg(tmp_path, run_marker):
    """
    Factory writing an executable shell script that stands in for ffmpeg.

    Usage:
        binary = fake_ffmpeg(SUCCESS_SCRIPT)
    """
    counter = {"n": 0}

    def make(body: str) -> str:
        counter["n"] += 1
        script = tmp_path / f"fake-ffmpeg-{counter['n']}.sh"
        script.write_text(
            "#!/bin/sh\n"
            f"touch '{run_marker}'\n"
            + body.replace("{payload}", FAKE_OUTPUT.decode())
        )
        script.chmod(0o755)
        return str(script)

    return make


@pytest.fixture
def make_inputs(work_dir):
    """Create an (audio, image) pair in the work dir"""

    def make(prefix: str = "job"):
        audio = work_dir / f"{prefix}-audio.mp3"
        image = work_dir / f"{prefix}-image.png"
        audio.write_bytes(b"ID3" + b"\x00" * 64)
        image.write_bytes(b"\x89PNG" + b"\x00" * 64)
        return audio, image

    return make


@pytest.fixture
def make_settings(work_dir):
    def make(binary: str, timeout_seconds: float = 10, **overrides) -> Settings:
        encoder = EncoderSettings(binary=binary, timeout_seconds=timeout_seconds)
        return Settings(work_dir=work_dir, encoder=encoder, **overrides)

    return make


@pytest.fixture
def make_client(make_settings):
    """
    Factory returning a started TestClient for an app using the given binary.

    The lifespan runs on entry and is shut down at teardown.
    """
    clients = []

    def make(binary: str, **kwargs) -> TestClient:
        app = create_app(make_settings(binary, **kwargs))
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield make

    for client in clients:
        client.__exit__(None, None, None)
