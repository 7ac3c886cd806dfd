"""Photo processing and processed-store management.

:class:`PhotoProcessor` turns a source photo into the two artifacts the rest
of the system uses:

- a byte-for-byte copy in the processed store (``processed_dir/<name>``)
- a JPEG thumbnail in the thumbnail store (``processed_dir/thumbnails/<name>``)

Both artifacts are addressed by the source file's base name, which is also
the de-duplication key.  Processing the same name again overwrites both
artifacts (last write wins); there is never more than one record per name.

Processing never raises.  Every call returns a
:class:`~photobooth.core.models.ProcessingResult` so the watch loop and
manual scans can isolate a bad file and carry on with the rest.

The processor also owns listing, deletion, and clearing of the processed
store, since those operate on the same two directories.
"""

from __future__ import annotations

import logging
import math
import shutil
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from PIL import Image, ImageOps

from .classifier import is_eligible
from .config import PhotoboothConfig
from .errors import ProcessingError, StorageError, ValidationError
from .events import PHOTO_ADDED, PHOTO_DELETED, PHOTOS_CLEARED, EventSink, NullSink
from .models import ClearResult, ProcessedPhoto, ProcessingResult

logger = logging.getLogger(__name__)


class PhotoProcessor:
    """Copies source photos into the processed store and thumbnails them.

    Safe to call concurrently for different filenames: each call only
    touches the two artifacts named after its own source file.
    """

    def __init__(self, config: PhotoboothConfig, events: EventSink | None = None) -> None:
        self.config = config
        self.events: EventSink = events or NullSink()
        self.processed_dir = Path(config.processed_dir)
        self.thumbnails_dir = Path(config.thumbnails_dir)

    # -- Processing ---------------------------------------------------------

    def process(self, source: str | Path) -> ProcessingResult:
        """Copy ``source`` into the processed store and derive its thumbnail.

        Args:
            source: Path of the settled source photo.

        Returns:
            A successful result carrying the :class:`ProcessedPhoto`, or a
            failed one carrying a :class:`ProcessingError` tagged with the
            filename.  Artifacts written before a failure are left in place.
        """
        source = Path(source)
        filename = source.name
        stored_path = self.processed_dir / filename
        thumbnail_path = self.thumbnails_dir / filename

        try:
            self.processed_dir.mkdir(parents=True, exist_ok=True)
            self.thumbnails_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, stored_path)
            self._write_thumbnail(stored_path, thumbnail_path)
            photo = self._record(filename)
        except Exception as e:
            error = ProcessingError(filename, e)
            logger.error(f"Error processing photo {filename}: {e}", exc_info=True)
            return ProcessingResult(filename=filename, error=error)

        logger.info(f"Processed and created thumbnail for: {filename}")
        self.events.publish(
            PHOTO_ADDED,
            {
                "filename": filename,
                "path": str(stored_path),
                "thumbnail": str(thumbnail_path),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
        return ProcessingResult(filename=filename, photo=photo)

    def _write_thumbnail(self, source: Path, destination: Path) -> None:
        """Fit the image inside the thumbnail box and save it as JPEG.

        ``Image.thumbnail`` preserves aspect ratio and never enlarges, so
        photos smaller than the box keep their size.  EXIF orientation is
        applied first so portrait camera shots come out upright.
        """
        with Image.open(source) as img:
            img = ImageOps.exif_transpose(img)
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.thumbnail(self.config.thumbnail_size, Image.Resampling.LANCZOS)
            img.save(destination, "JPEG", quality=self.config.thumbnail_quality)

    # -- Queries ------------------------------------------------------------

    def processed_filenames(self) -> set[str]:
        """Names currently held in the processed store (the de-dup keys)."""
        if not self.processed_dir.is_dir():
            return set()
        return {entry.name for entry in self.processed_dir.iterdir() if entry.is_file()}

    def list_photos(self) -> list[ProcessedPhoto]:
        """List every eligible processed photo, newest first.

        Size and modification time are read from disk on each call.  Files
        deleted between the directory listing and the stat are skipped.
        """
        if not self.processed_dir.is_dir():
            return []

        photos: list[ProcessedPhoto] = []
        for entry in self.processed_dir.iterdir():
            if not entry.is_file() or not is_eligible(entry.name, self.config.file_types):
                continue
            try:
                photos.append(self._record(entry.name))
            except FileNotFoundError:
                continue

        photos.sort(key=lambda photo: photo.modified_at, reverse=True)
        return photos

    def list_page(self, page: int = 1, per_page: int | None = None) -> dict:
        """One page of :meth:`list_photos`, sized by ``max_photos_display`` by default."""
        return paginate_photos(
            self.list_photos(), page, per_page or self.config.max_photos_display
        )

    def _record(self, filename: str) -> ProcessedPhoto:
        stored_path = self.processed_dir / filename
        stats = stored_path.stat()
        return ProcessedPhoto(
            filename=filename,
            stored_path=stored_path,
            thumbnail_path=self.thumbnails_dir / filename,
            size=stats.st_size,
            modified_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
        )

    # -- Deletion -----------------------------------------------------------

    def delete_photo(self, filename: str) -> None:
        """Delete a processed photo and its thumbnail.

        A missing thumbnail (or photo) is not an error.

        Raises:
            ValidationError: If ``filename`` is not a bare name inside the store.
            StorageError: If a file exists but cannot be removed.
        """
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise ValidationError(f"Invalid photo filename: {filename!r}")

        for path in (self.processed_dir / filename, self.thumbnails_dir / filename):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(path, e) from e

        logger.info(f"Deleted photo {filename}")
        self.events.publish(PHOTO_DELETED, {"filename": filename})

    def clear_photos(self) -> ClearResult:
        """Remove every processed photo and every thumbnail.

        The thumbnail directory itself (and any other subdirectory) is kept.
        Files that cannot be removed are collected in the result and logged;
        the sweep continues past them.
        """
        result = ClearResult()
        for directory in (self.processed_dir, self.thumbnails_dir):
            if not directory.is_dir():
                continue
            for entry in directory.iterdir():
                if not entry.is_file():
                    continue
                try:
                    entry.unlink()
                    result.removed += 1
                except OSError as e:
                    logger.error(f"Error clearing {entry}: {e}")
                    result.failures.append(StorageError(entry, e))

        logger.info(f"Cleared processed store ({result.removed} files removed)")
        self.events.publish(PHOTOS_CLEARED, {"removed": result.removed})
        return result


def paginate_photos(photos: Sequence[ProcessedPhoto], page: int, per_page: int) -> dict:
    """Slice a newest-first listing into one page.

    ``per_page`` is at least 1.  ``page`` is one-based and clamped into
    ``1..pages``.  An empty listing has a single empty page, so a gallery
    that was just cleared still gets a valid response.

    Returns:
        ``total``, ``page``, ``per_page``, ``pages``, and the ``photos`` on
        the resolved page.
    """
    per_page = max(1, per_page)
    total = len(photos)
    pages = max(1, math.ceil(total / per_page))
    page = min(max(1, page), pages)
    offset = (page - 1) * per_page
    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": pages,
        "photos": list(photos[offset : offset + per_page]),
    }
