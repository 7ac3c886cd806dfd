"""Data models for templates, compose requests, and ingestion records.

Template-side data (``Slot``, ``CommentBox``, ``Template``,
``TemplateDocument``, ``ComposeRequest``) are Pydantic models because they
cross the persistence and request boundaries and must be validated there.
Field aliases keep the on-disk ``templates.json`` format (``displayName``,
``commentBox``, ``sizeRel``) while Python code uses snake_case names.

Ingestion-side records (``ProcessedPhoto``, ``WatchState``, and the result
types) are plain dataclasses produced by the core itself.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ProcessingError, StorageError

# Accepted spellings for comment alignment.  Older frames used CSS-ish
# "left"/"right" in places.
_ALIGN_ALIASES = {
    "start": "start",
    "left": "start",
    "center": "center",
    "centre": "center",
    "middle": "center",
    "end": "end",
    "right": "end",
}


def coerce_fraction(value: Any) -> float:
    """Coerce a slot coordinate to a finite float, defaulting to 0.0.

    Missing, non-numeric, NaN, and infinite values all become ``0.0``.
    Numeric strings such as ``"0.25"`` are accepted.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


class Slot(BaseModel):
    """A photo rectangle expressed as fractions of the background size.

    Invariant (maintained by the slot editor, tolerated by the compositor):
    ``0 <= x``, ``0 <= y``, ``x + width <= 1``, ``y + height <= 1``.
    """

    model_config = ConfigDict(extra="ignore")

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @field_validator("x", "y", "width", "height", mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> float:
        return coerce_fraction(value)

    def clamped(self) -> Slot:
        """Return a copy pulled back inside the unit square."""
        x = min(max(self.x, 0.0), 1.0)
        y = min(max(self.y, 0.0), 1.0)
        width = min(max(self.width, 0.0), 1.0 - x)
        height = min(max(self.height, 0.0), 1.0 - y)
        return Slot(x=x, y=y, width=width, height=height)


class FontSpec(BaseModel):
    """Font used for the comment box.

    ``size_rel`` is the font size as a fraction of the background height.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    family: str = "Arial"
    color: str = "#000"
    size_rel: float = Field(default=0.05, alias="sizeRel")
    align: Literal["start", "center", "end"] = "center"

    @field_validator("align", mode="before")
    @classmethod
    def _normalize_align(cls, value: Any) -> str:
        if value is None:
            return "center"
        return _ALIGN_ALIASES.get(str(value).strip().lower(), str(value))

    @field_validator("size_rel", mode="before")
    @classmethod
    def _coerce_size(cls, value: Any) -> float:
        return coerce_fraction(value)


class CommentBox(Slot):
    """Rectangle (in background fractions) that receives the comment text."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    font: FontSpec = Field(default_factory=FontSpec)


class Template(BaseModel):
    """A background frame with its slot layout and optional comment box.

    The template key is not stored here; it is the key of the
    ``TemplateDocument.templates`` mapping.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    background: str
    display_name: str = Field(default="", alias="displayName")
    thumbnail: str | None = None
    slots: list[Slot] = Field(default_factory=list)
    comment_box: CommentBox | None = Field(default=None, alias="commentBox")

    @model_validator(mode="after")
    def _default_thumbnail(self) -> Template:
        if not self.thumbnail:
            self.thumbnail = self.background
        if not self.display_name:
            self.display_name = Path(self.background).stem
        return self


class TemplateDocument(BaseModel):
    """The persisted template configuration resource.

    ``legacy_current`` reads the ``current`` field older documents used
    before ``current_template`` existed.  It is folded into
    ``current_template`` on load and never written back.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    templates: dict[str, Template] = Field(default_factory=dict)
    current_template: str | None = None
    legacy_current: str | None = Field(default=None, alias="current")

    @model_validator(mode="after")
    def _migrate_current(self) -> TemplateDocument:
        if self.current_template is None and self.legacy_current:
            self.current_template = self.legacy_current
        self.legacy_current = None
        return self

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the on-disk aliases, omitting unset optional fields."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data.setdefault("current_template", None)
        return data


class ComposeSlot(Slot):
    """A slot in a compose request, carrying its assigned photo (if any)."""

    photo: str | None = None


class ComposeTemplate(BaseModel):
    """The template part of a compose request."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    background: str
    comment_box: CommentBox | None = Field(default=None, alias="commentBox")


class ComposeRequest(BaseModel):
    """Payload for a compose call: background, filled slots, and a comment."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    template: ComposeTemplate
    slots: list[ComposeSlot] = Field(default_factory=list)
    comment: str | None = None

    def assignments(self) -> dict[int, str | None]:
        """Slot index → photo filename mapping for the compositor."""
        return {index: slot.photo for index, slot in enumerate(self.slots)}


@dataclass
class ProcessedPhoto:
    """A photo held in the processed store.

    ``size`` and ``modified_at`` are read from disk when the record is built;
    they are never cached across listings.
    """

    filename: str
    stored_path: Path
    thumbnail_path: Path
    size: int
    modified_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "path": str(self.stored_path),
            "thumbnail": str(self.thumbnail_path),
            "size": self.size,
            "lastModified": self.modified_at.isoformat(),
            "modified": int(self.modified_at.timestamp()),
        }


class WatchStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    WATCHING = "watching"


@dataclass
class WatchState:
    """Snapshot of the ingestion pipeline state."""

    is_watching: bool = False
    watch_path: str = ""
    last_scan_time: datetime | None = None
    status: WatchStatus = WatchStatus.STOPPED
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isWatching": self.is_watching,
            "watchPath": self.watch_path,
            "lastScanTime": self.last_scan_time.isoformat() if self.last_scan_time else None,
            "status": self.status.value,
            "lastError": self.last_error,
        }


@dataclass
class ProcessingResult:
    """Tagged outcome of processing one source file."""

    filename: str
    photo: ProcessedPhoto | None = None
    error: ProcessingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.photo is not None


@dataclass
class ScanResult:
    """Outcome of a manual scan.

    ``new_photos_count`` counts every new eligible file the scan attempted;
    ``processed`` and ``failures`` split those attempts by outcome.
    """

    new_photos_count: int = 0
    processed: list[ProcessedPhoto] = field(default_factory=list)
    failures: list[ProcessingError] = field(default_factory=list)
    scanned_at: datetime | None = None

    @property
    def message(self) -> str:
        return f"Manual scan complete. Found {self.new_photos_count} new photos."


@dataclass
class ClearResult:
    """Outcome of clearing the processed store."""

    removed: int = 0
    failures: list[StorageError] = field(default_factory=list)
