"""Configuration management for the Photobooth core.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PHOTOBOOTH_ prefix,
allowing the watch folder, stores, and image parameters to be changed without
code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PHOTOBOOTH_* prefix)
2. .env file in the working directory
3. Default values defined in PhotoboothConfig

Example .env file:
    PHOTOBOOTH_WATCH_PATH=/media/camera/DCIM
    PHOTOBOOTH_PROCESSED_DIR=processed_photos
    PHOTOBOOTH_FILE_TYPES=.jpg,.jpeg,.png
    PHOTOBOOTH_THUMBNAIL_SIZE=300,300

List-valued settings accept either a comma separated string (the format
existing ``.env`` files use) or a real list when constructed in code.

Directory Management
--------------------
The configuration creates the processed store, its ``thumbnails``
subdirectory, and the frames directory on initialization.  The watch path is
never created: a missing watch path is a configuration error reported by the
ingestion pipeline.

Usage Example
-------------
    from photobooth.core.config import get_config

    config = get_config()
    print(config.processed_dir, config.thumbnails_dir)

Changing ``watch_path`` at runtime goes through
:meth:`photobooth.core.pipeline.IngestionPipeline.set_watch_path`, which stops
and restarts an active watch.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_FILE_TYPES = [".jpg", ".jpeg", ".png", ".tiff", ".cr2", ".nef", ".arw"]


class PhotoboothConfig(BaseSettings):
    """Main configuration for the Photobooth core.

    Attributes
    ----------
    Ingestion Settings:
        watch_path : Path | None
            Folder observed for new photos (camera / card reader drop folder)
        file_types : list[str]
            Allow-list of eligible photo extensions (lower case, with dot)
        stabilization_ms : int
            Quiescence window before a new file is considered fully written
        poll_ms : int
            Interval at which pending files are re-checked
        auto_scan : bool
            Start watching automatically when the CLI launches
        max_workers : int
            Number of threads processing settled files concurrently

    Store Settings:
        processed_dir : Path
            Processed store holding ingested photo copies
        frames_dir : Path
            Directory holding template backgrounds and ``templates.json``
        max_photos_display : int
            Default page size for photo listings

    Image Settings:
        thumbnail_size : tuple[int, int]
            Bounding box for thumbnails (aspect preserved, never upscaled)
        thumbnail_quality : int
            JPEG quality used for thumbnails
        compose_quality : int
            JPEG quality used for composed images
        font_dirs : list[Path]
            Extra directories searched for comment-box fonts

    Notes
    -----
    - ``thumbnails_dir`` and ``templates_file`` are derived from the store
      directories and cannot be configured separately
    - All store directories are created automatically if they don't exist
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PHOTOBOOTH_",
        case_sensitive=False,
        extra="ignore",
    )

    # Ingestion settings
    watch_path: Path | None = Field(
        default=None,
        description="Folder observed for newly dropped photos",
    )
    file_types: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_FILE_TYPES),
        description="Allow-list of eligible photo extensions",
    )
    stabilization_ms: int = Field(
        default=2000,
        description="Quiescence window before a new file is ingested",
        ge=0,
    )
    poll_ms: int = Field(
        default=100,
        description="Polling interval for pending files",
        ge=1,
    )
    auto_scan: bool = Field(
        default=True,
        description="Start watching automatically on launch",
    )
    max_workers: int = Field(default=4, ge=1, le=64)

    # Stores
    processed_dir: Path = Field(
        default=Path("processed_photos"),
        description="Directory holding processed photo copies",
    )
    frames_dir: Path = Field(
        default=Path("frames"),
        description="Directory holding template backgrounds and templates.json",
    )
    max_photos_display: int = Field(default=50, ge=1)

    # Image settings
    thumbnail_size: Annotated[tuple[int, int], NoDecode] = Field(
        default=(300, 300),
        description="Thumbnail bounding box (width, height)",
    )
    thumbnail_quality: int = Field(default=85, ge=1, le=100)
    compose_quality: int = Field(default=95, ge=1, le=100)
    font_dirs: Annotated[list[Path], NoDecode] = Field(default_factory=list)

    log_level: str = Field(default="INFO", description="Logging level for the CLI")

    @field_validator("file_types", mode="before")
    @classmethod
    def _parse_file_types(cls, value):
        if isinstance(value, str):
            value = [item for item in value.split(",")]
        normalized = []
        for item in value:
            ext = str(item).strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = f".{ext}"
            normalized.append(ext)
        return normalized

    @field_validator("thumbnail_size", mode="before")
    @classmethod
    def _parse_thumbnail_size(cls, value):
        if isinstance(value, str):
            value = [int(item.strip()) for item in value.split(",") if item.strip()]
        value = tuple(value)
        if len(value) != 2 or min(value) < 1:
            raise ValueError(f"thumbnail_size must be two positive integers, got {value}")
        return value

    @field_validator("font_dirs", mode="before")
    @classmethod
    def _parse_font_dirs(cls, value):
        if isinstance(value, str):
            return [Path(item.strip()) for item in value.split(",") if item.strip()]
        return value

    def __init__(self, **kwargs):
        """Initialize configuration and create the store directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.processed_dir.mkdir(parents=True, exist_ok=True)
        self.thumbnails_dir.mkdir(parents=True, exist_ok=True)
        self.frames_dir.mkdir(parents=True, exist_ok=True)

    @property
    def thumbnails_dir(self) -> Path:
        """Thumbnail store, a fixed subdirectory of the processed store."""
        return self.processed_dir / "thumbnails"

    @property
    def templates_file(self) -> Path:
        """Template document persisted next to the frame images."""
        return self.frames_dir / "templates.json"

    @property
    def stabilization_seconds(self) -> float:
        return self.stabilization_ms / 1000.0

    @property
    def poll_seconds(self) -> float:
        return self.poll_ms / 1000.0


@lru_cache()
def get_config() -> PhotoboothConfig:
    """Get cached configuration instance."""
    return PhotoboothConfig()
