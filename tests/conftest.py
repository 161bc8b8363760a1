"""Shared fixtures. Nothing here touches the real desktop or network."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from deskhand.automation import AutomationExecutor, RecordingBackend
from deskhand.config import Settings
from deskhand.events import Event
from deskhand.surfaces import Capture

# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


class RecordingSink:
    """Progress sink that keeps every published event."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def emit(self, event: Event) -> None:
        self.events.append(event)


class StubSurfaces:
    """SurfaceProvider stand-in returning a fixed capture."""

    def __init__(self, data: bytes = b"\x89PNG-stub", geometry: tuple[int, int] = (1920, 1080)) -> None:
        self.data = data
        self.geometry = geometry
        self.captured: list[str | None] = []
        self.error: Exception | None = None

    def capture(self, surface_id: str | None = None) -> Capture:
        self.captured.append(surface_id)
        if self.error is not None:
            raise self.error
        return Capture(data=self.data, width=2, height=2)

    def display_geometry(self, max_width: int, max_height: int) -> tuple[int, int]:
        if self.error is not None:
            raise self.error
        return min(self.geometry[0], max_width), min(self.geometry[1], max_height)

    def list_surfaces(self):
        return []


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        ANTHROPIC_API_KEY="test-key",
        ANTHROPIC_AUTH_TOKEN="",
        automation_backend="fake",
    )


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend(cursor=(640, 360))


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def executor(backend, sleep) -> AutomationExecutor:
    return AutomationExecutor(backend, sleep=sleep)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def surfaces() -> StubSurfaces:
    return StubSurfaces()
