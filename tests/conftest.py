"""
Pytest fixtures for reelsmith tests.

Most tests mock ffmpeg/ffprobe and HTTP. Tests that shell out to real
binaries are marked @pytest.mark.requires_ffmpeg and skip themselves when
ffmpeg/ffprobe are not on PATH.
"""

from pathlib import Path

import pytest

from reelsmith.config import Settings
from reelsmith.services.file_service import FileService


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as needing ffmpeg and ffprobe binaries"
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any local .env, with namespaces under tmp_path."""
    return Settings(
        _env_file=None,
        temp_dir=str(tmp_path / "temp"),
        uploads_dir=str(tmp_path / "uploads"),
        max_concurrent_transcodes=2,
        tts_max_chars_per_chunk=800,
        tts_batch_size=10,
        tts_retry_base_delay_s=1.0,
        tts_retry_max_delay_s=8.0,
        tts_poll_interval_s=0.0,
        gemini_api_key="test-gemini-key",
        genaipro_api_key="test-genaipro-key",
        ai33_api_key="test-ai33-key",
        openai_api_key="test-openai-key",
    )


@pytest.fixture
def file_service(settings: Settings) -> FileService:
    return FileService(settings)


class FakeClock:
    """Manually advanced monotonic clock; sleep() advances it instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
