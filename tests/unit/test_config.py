"""Tests for photobooth.core.config — configuration management.

Tests cover:
- Default values for ingestion and image settings.
- Environment variable overrides via the PHOTOBOOTH_ prefix.
- Comma-separated list parsing for file types and thumbnail size.
- Automatic store directory creation on initialisation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from photobooth.core.config import DEFAULT_FILE_TYPES, PhotoboothConfig


def _config(temp_dir: Path, **overrides) -> PhotoboothConfig:
    return PhotoboothConfig(
        _env_file=None,
        processed_dir=str(temp_dir / "processed"),
        frames_dir=str(temp_dir / "frames"),
        **overrides,
    )


class TestConfigDefaults:
    """Verify that PhotoboothConfig provides the documented defaults."""

    def test_default_timings(self, temp_dir: Path):
        """Stabilization defaults to 2000 ms polled every 100 ms."""
        cfg = _config(temp_dir)
        assert cfg.stabilization_ms == 2000
        assert cfg.poll_ms == 100
        assert cfg.stabilization_seconds == 2.0
        assert cfg.poll_seconds == 0.1

    def test_default_image_settings(self, temp_dir: Path):
        """Thumbnails fit 300x300 at quality 85; composites use quality 95."""
        cfg = _config(temp_dir)
        assert cfg.thumbnail_size == (300, 300)
        assert cfg.thumbnail_quality == 85
        assert cfg.compose_quality == 95

    def test_default_file_types(self, temp_dir: Path):
        """The default allow-list covers common raster and RAW formats."""
        cfg = _config(temp_dir)
        assert cfg.file_types == DEFAULT_FILE_TYPES

    def test_watch_path_unset_by_default(self, monkeypatch, temp_dir: Path):
        """No watch path is configured unless one is given."""
        monkeypatch.delenv("PHOTOBOOTH_WATCH_PATH", raising=False)
        cfg = _config(temp_dir)
        assert cfg.watch_path is None

    def test_derived_paths(self, temp_dir: Path):
        """Thumbnails and templates.json live under the store directories."""
        cfg = _config(temp_dir)
        assert cfg.thumbnails_dir == cfg.processed_dir / "thumbnails"
        assert cfg.templates_file == cfg.frames_dir / "templates.json"


class TestConfigParsing:
    """Verify environment and list parsing."""

    def test_env_override(self, monkeypatch, temp_dir: Path):
        """PHOTOBOOTH_ environment variables should override defaults."""
        monkeypatch.setenv("PHOTOBOOTH_STABILIZATION_MS", "500")
        monkeypatch.setenv("PHOTOBOOTH_WATCH_PATH", str(temp_dir))
        cfg = _config(temp_dir)
        assert cfg.stabilization_ms == 500
        assert cfg.watch_path == temp_dir

    def test_comma_separated_file_types(self, monkeypatch, temp_dir: Path):
        """FILE_TYPES accepts the comma separated .env format."""
        monkeypatch.setenv("PHOTOBOOTH_FILE_TYPES", ".JPG, png,.heic")
        cfg = _config(temp_dir)
        assert cfg.file_types == [".jpg", ".png", ".heic"]

    def test_comma_separated_thumbnail_size(self, monkeypatch, temp_dir: Path):
        """THUMBNAIL_SIZE accepts 'w,h'."""
        monkeypatch.setenv("PHOTOBOOTH_THUMBNAIL_SIZE", "200, 150")
        cfg = _config(temp_dir)
        assert cfg.thumbnail_size == (200, 150)

    def test_invalid_thumbnail_size(self, temp_dir: Path):
        """A thumbnail size that is not two positive integers is rejected."""
        with pytest.raises(Exception):
            _config(temp_dir, thumbnail_size=(0, 300))

    def test_invalid_quality(self, temp_dir: Path):
        """JPEG quality outside 1-100 is rejected."""
        with pytest.raises(Exception):
            _config(temp_dir, compose_quality=101)


class TestConfigDirectoryCreation:
    """Verify that PhotoboothConfig creates the store directories."""

    def test_store_directories_created(self, temp_dir: Path):
        """processed, thumbnails, and frames directories should exist."""
        cfg = _config(temp_dir)
        assert cfg.processed_dir.is_dir()
        assert cfg.thumbnails_dir.is_dir()
        assert cfg.frames_dir.is_dir()

    def test_watch_path_not_created(self, temp_dir: Path):
        """A missing watch path is a configuration error, never auto-created."""
        missing = temp_dir / "camera"
        _config(temp_dir, watch_path=str(missing))
        assert not missing.exists()
