"""Shared pytest fixtures for Photobooth tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

from photobooth.core.config import PhotoboothConfig
from photobooth.core.events import EventBus
from photobooth.core.models import TemplateDocument
from photobooth.core.processor import PhotoProcessor
from photobooth.core.template_store import TemplateStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def watch_dir(temp_dir: Path) -> Path:
    """Folder standing in for the camera drop folder."""
    path = temp_dir / "incoming"
    path.mkdir()
    return path


@pytest.fixture
def test_config(temp_dir: Path, watch_dir: Path) -> PhotoboothConfig:
    """Create a test configuration with temporary directories.

    Polling is set very slow so the live ticker thread never interferes with
    tests that drive stabilization by hand.
    """
    return PhotoboothConfig(
        _env_file=None,
        watch_path=str(watch_dir),
        processed_dir=str(temp_dir / "processed"),
        frames_dir=str(temp_dir / "frames"),
        stabilization_ms=2000,
        poll_ms=60000,
        max_workers=2,
    )


class EventRecorder:
    """Subscriber collecting every published event."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event_name: str, payload: dict) -> None:
        self.events.append((event_name, payload))

    def named(self, event_name: str) -> list[dict]:
        return [payload for name, payload in self.events if name == event_name]


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    """Event recorder subscribed to ``event_bus``."""
    rec = EventRecorder()
    event_bus.subscribe(rec)
    return rec


@pytest.fixture
def processor(test_config: PhotoboothConfig, event_bus: EventBus) -> PhotoProcessor:
    return PhotoProcessor(test_config, event_bus)


def make_image(path: Path, size=(64, 48), color=(255, 0, 0), fmt=None) -> Path:
    """Write a solid-color image to ``path`` and return the path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color)
    image.save(path, fmt)
    return path


@pytest.fixture
def image_factory():
    """Expose :func:`make_image` to tests."""
    return make_image


@pytest.fixture
def memory_store() -> TemplateStore:
    """Template store backed by an in-memory document.

    The saved document is round-tripped through JSON so tests observe the
    same coercion a file-backed store would.
    """
    holder = {"raw": None}

    def load() -> TemplateDocument:
        if holder["raw"] is None:
            return TemplateDocument()
        return TemplateDocument.model_validate_json(holder["raw"])

    def save(document: TemplateDocument) -> None:
        holder["raw"] = document.model_dump_json(by_alias=True, exclude_none=True)

    store = TemplateStore(load, save)
    store.saved = holder
    return store
