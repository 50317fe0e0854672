"""Shared fixtures for the pipeline tests."""

import logfire
import pytest

from mailcraft.config import get_settings

# Configure logfire before any span is opened
logfire.configure(send_to_logfire=False, console=False)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
