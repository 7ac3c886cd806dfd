"""Template storage for the Photobooth compositor.

The store owns every template (background frame, slot layout, optional
comment box) and the "current template" pointer.  Persistence is injected:
the store is constructed with a ``load`` callable returning a
:class:`~photobooth.core.models.TemplateDocument` and a ``save`` callable
accepting one, so tests can run it against an in-memory document and the
application can run it against ``templates.json``.

Write discipline
----------------
Every mutation follows the same cycle under a single re-entrant lock:

1. load the current document from the resource
2. apply the change
3. save the document back

Nothing is cached between calls and the save completes before the mutation
returns, so two concurrent slot-mapping saves for the same key can never
interleave and the resource is always the source of truth.

The JSON resource
-----------------
:class:`JsonTemplateResource` is the file-backed implementation.  A missing
file reads as an empty document.  Writes go to a temporary file that is
swapped into place with ``os.replace``, so ``templates.json`` is never left
half-written.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .errors import StorageError, TemplateNotFound, ValidationError
from .models import Slot, Template, TemplateDocument
from .validation import check_relative_name, is_within

logger = logging.getLogger(__name__)

ALLOWED_FRAME_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


def slugify_key(text: str) -> str:
    """Turn a display name into a template key (``"Four Pic Blue"`` → ``"four_pic_blue"``)."""
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def sanitize_frame_stem(stem: str) -> str:
    """Make an uploaded frame filename stem safe to store."""
    return re.sub(r"[^a-zA-Z0-9_-]+", "_", stem)


class JsonTemplateResource:
    """``templates.json`` on disk, exposed as ``load``/``save`` callables."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> TemplateDocument:
        """Read the document, treating an absent file as empty.

        Raises:
            StorageError: If the file exists but cannot be read or is not a
                valid template document.
        """
        if not self.path.exists():
            return TemplateDocument()

        try:
            with open(self.path, encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(self.path, e) from e

        if not raw:
            return TemplateDocument()

        try:
            return TemplateDocument.model_validate(raw)
        except PydanticValidationError as e:
            raise StorageError(self.path, e) from e

    def save(self, document: TemplateDocument) -> None:
        """Write the document atomically.

        Raises:
            StorageError: If the document cannot be written.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document.to_json_dict(), handle, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(self.path, e) from e


class TemplateStore:
    """Owner of the template configuration.

    Attributes:
        frames_dir: Directory holding background and thumbnail images.  When
            ``None``, frame import and asset cleanup on delete are disabled.
    """

    def __init__(
        self,
        load: Callable[[], TemplateDocument],
        save: Callable[[TemplateDocument], None],
        frames_dir: Path | None = None,
    ) -> None:
        self._load = load
        self._save = save
        self.frames_dir = Path(frames_dir) if frames_dir is not None else None
        self._lock = threading.RLock()

    @classmethod
    def from_file(cls, path: Path, frames_dir: Path | None = None) -> TemplateStore:
        """Build a store backed by a ``templates.json`` file."""
        resource = JsonTemplateResource(path)
        return cls(resource.load, resource.save, frames_dir=frames_dir)

    # -- Queries ------------------------------------------------------------

    def get(self, key: str) -> Template:
        document = self._load()
        template = document.templates.get(key)
        if template is None:
            raise TemplateNotFound(key)
        return template

    def list(self) -> dict[str, Template]:
        return dict(self._load().templates)

    def current(self) -> str | None:
        return self._load().current_template

    def document(self) -> TemplateDocument:
        """The whole document, as served by ``GET /api/templates``."""
        return self._load()

    # -- Mutations ----------------------------------------------------------

    def set_current(self, key: str) -> None:
        """Select ``key`` as the current template.

        Raises:
            TemplateNotFound: If ``key`` is not registered.
        """
        with self._lock:
            document = self._load()
            if key not in document.templates:
                raise TemplateNotFound(key)
            document.current_template = key
            self._save(document)
        logger.info(f"Current template set to {key}")

    def update_slots(self, key: str, slots: Iterable[Slot | Mapping[str, Any]]) -> list[Slot]:
        """Replace a template's slot list wholesale.

        Numeric fields are coerced to finite floats; missing or malformed
        fields become 0.

        Args:
            key: Template key.
            slots: Slot models or mappings with ``x``, ``y``, ``width``,
                ``height``.

        Returns:
            The normalized slots as persisted.

        Raises:
            ValidationError: If ``slots`` is not a sequence of mappings.
            TemplateNotFound: If ``key`` is not registered.
        """
        normalized = self._normalize_slots(key, slots)

        with self._lock:
            document = self._load()
            template = document.templates.get(key)
            if template is None:
                raise TemplateNotFound(key)
            template.slots = normalized
            self._save(document)

        logger.info(f"Saved {len(normalized)} slots for template {key}")
        return normalized

    def create(self, background: str, display_name: str, desired_key: str | None = None) -> str:
        """Register a new template with an empty slot list.

        The key is slugified from ``desired_key`` (or ``display_name``) and
        suffixed ``_1``, ``_2``, ... until unique.  A colliding key never
        merges with the existing template.

        Returns:
            The key the template was stored under.

        Raises:
            ValidationError: If ``background`` is empty, absolute, or
                contains ``..`` components.
        """
        if not background:
            raise ValidationError("Template background is required")
        check_relative_name(background)

        base_key = slugify_key(desired_key or display_name or "") or slugify_key(
            Path(background).stem
        )
        if not base_key:
            raise ValidationError(f"Cannot derive a template key for {background!r}")

        with self._lock:
            document = self._load()
            key = base_key
            index = 1
            while key in document.templates:
                key = f"{base_key}_{index}"
                index += 1

            document.templates[key] = Template(
                background=background,
                display_name=display_name or Path(background).stem,
                thumbnail=background,
                slots=[],
            )
            self._save(document)

        logger.info(f"Created template {key} with background {background}")
        return key

    def import_frame(
        self,
        source: Path,
        display_name: str | None = None,
        desired_key: str | None = None,
    ) -> str:
        """Copy a frame image into the frames directory and register it.

        The stored filename is the sanitized source stem, suffixed ``_1``,
        ``_2``, ... when a frame with that name already exists.

        Returns:
            The new template key.

        Raises:
            ValidationError: If no frames directory is configured or the
                file type is not an accepted frame format.
            StorageError: If the copy fails.
        """
        if self.frames_dir is None:
            raise ValidationError("Frame import requires a frames directory")

        source = Path(source)
        ext = source.suffix.lower()
        if ext not in ALLOWED_FRAME_EXTENSIONS:
            raise ValidationError(f"Unsupported frame type: {source.name}")

        stem = sanitize_frame_stem(source.stem)
        with self._lock:
            self.frames_dir.mkdir(parents=True, exist_ok=True)
            candidate = f"{stem}{ext}"
            index = 1
            while (self.frames_dir / candidate).exists():
                candidate = f"{stem}_{index}{ext}"
                index += 1

            try:
                shutil.copyfile(source, self.frames_dir / candidate)
            except OSError as e:
                raise StorageError(source, e) from e

            name = display_name or Path(candidate).stem
            return self.create(candidate, name, desired_key)

    def delete(self, key: str, remove_assets: bool = True) -> str | None:
        """Remove a template.

        If it was the current template, the pointer moves to the first
        remaining key, or ``None`` when no templates remain.  With
        ``remove_assets`` the background and thumbnail files are deleted
        from the frames directory unless another template still uses them.

        Returns:
            The current template key after the deletion.

        Raises:
            TemplateNotFound: If ``key`` is not registered.
        """
        with self._lock:
            document = self._load()
            removed = document.templates.pop(key, None)
            if removed is None:
                raise TemplateNotFound(key)

            if document.current_template == key:
                document.current_template = next(iter(document.templates), None)

            self._save(document)

            if remove_assets and self.frames_dir is not None:
                self._remove_unreferenced_assets(removed, document)

        logger.info(f"Deleted template {key}; current template is {document.current_template}")
        return document.current_template

    # -- Helpers ------------------------------------------------------------

    @staticmethod
    def _normalize_slots(key: str, slots: Any) -> list[Slot]:
        if isinstance(slots, (str, bytes, Mapping)) or not isinstance(slots, Iterable):
            raise ValidationError("slots must be a list of slot objects", key=key)

        normalized: list[Slot] = []
        for index, raw in enumerate(slots):
            if isinstance(raw, Slot):
                normalized.append(Slot(x=raw.x, y=raw.y, width=raw.width, height=raw.height))
            elif isinstance(raw, Mapping):
                normalized.append(Slot.model_validate(dict(raw)))
            else:
                raise ValidationError(f"Slot {index} must be an object, got {raw!r}", key=key)
        return normalized

    def _remove_unreferenced_assets(self, removed: Template, document: TemplateDocument) -> None:
        referenced: set[str] = set()
        for template in document.templates.values():
            referenced.add(template.background)
            if template.thumbnail:
                referenced.add(template.thumbnail)

        for asset in {removed.background, removed.thumbnail}:
            if not asset or asset in referenced:
                continue
            if not is_within(self.frames_dir, asset):
                logger.warning(f"Not removing frame asset outside {self.frames_dir}: {asset}")
                continue
            path = self.frames_dir / asset
            try:
                path.unlink(missing_ok=True)
                logger.info(f"Removed unreferenced frame asset {asset}")
            except OSError as e:
                # The template entry is already saved as deleted.
                logger.warning(f"Could not remove frame asset {asset}: {e}")
