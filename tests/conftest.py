"""
Shared pytest fixtures for Banana Studio tests.

This module provides:
- ticks / scheduler: a ManualTickSource and a TaskScheduler bound to it
- small PIL images with distinct sizes for request/response checks
- fake_transport / client: a GeminiImageClient wired to a scripted transport
- Custom markers for test categorization
"""

from __future__ import annotations

import pytest
from PIL import Image

from banana_studio.core.gemini_api import GeminiImageClient
from banana_studio.core.progress import ProgressBroadcaster
from banana_studio.core.scheduler import TaskScheduler
from banana_studio.core.settings import ApiSettings, StaticCredentials, get_model_option
from banana_studio.core.tick import ManualTickSource
from tests.mocks.transport import FakeTransport


TEST_API_BASE = "https://gemini.example.test/v1beta/models"
VALID_TEST_KEY = "AIzaSy" + "x" * 33


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


# =============================================================================
# Scheduler Fixtures
# =============================================================================


@pytest.fixture
def ticks() -> ManualTickSource:
    return ManualTickSource()


@pytest.fixture
def scheduler(ticks: ManualTickSource) -> TaskScheduler:
    return TaskScheduler(ticks)


# =============================================================================
# Image Fixtures
# =============================================================================


def make_image(width: int, height: int, mode: str = "RGBA", seed: int = 0) -> Image.Image:
    """Create a small image with a deterministic pixel pattern."""
    image = Image.new(mode, (width, height))
    channels = len(mode)
    pixels = []
    for y in range(height):
        for x in range(width):
            values = tuple((x * 37 + y * 11 + seed * 53 + c * 71) % 256 for c in range(channels))
            pixels.append(values if channels > 1 else values[0])
    image.putdata(pixels)
    return image


@pytest.fixture
def scene_image() -> Image.Image:
    return make_image(16, 9, seed=1)


@pytest.fixture
def result_image() -> Image.Image:
    return make_image(12, 7, seed=2)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_settings() -> ApiSettings:
    return ApiSettings(base_url=TEST_API_BASE, model=get_model_option("gemini-3-pro-image-preview"))


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials(VALID_TEST_KEY)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport(polls=2)


@pytest.fixture
def progress_events() -> list[tuple[float, str]]:
    return []


@pytest.fixture
def client(
    api_settings: ApiSettings,
    fake_transport: FakeTransport,
    progress_events: list[tuple[float, str]],
) -> GeminiImageClient:
    """Client whose progress events are collected into progress_events."""
    progress = ProgressBroadcaster()
    progress.subscribe(lambda value, message: progress_events.append((value, message)))
    return GeminiImageClient(settings=api_settings, transport=fake_transport, progress=progress)
