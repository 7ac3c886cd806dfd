"""Photo eligibility by file extension."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from .config import DEFAULT_FILE_TYPES


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case extensions and make sure each one starts with a dot."""
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(normalized)


_DEFAULT_ALLOWED = normalize_extensions(DEFAULT_FILE_TYPES)


def is_eligible(filename: str | Path, allowed: Iterable[str] | None = None) -> bool:
    """Return True if ``filename`` has an allow-listed photo extension.

    The comparison is case-insensitive, so ``Photo.JPG`` and ``photo.jpg``
    classify identically.  Dotfiles such as ``.jpg`` have no extension and
    are never eligible.

    Args:
        filename: Bare filename or path; only the final suffix is inspected.
        allowed: Extension allow-list.  Defaults to the common raster and
            RAW camera formats.

    Returns:
        True if the extension is allow-listed.
    """
    suffix = Path(filename).suffix.lower()
    if not suffix:
        return False
    allowed_set = _DEFAULT_ALLOWED if allowed is None else normalize_extensions(allowed)
    return suffix in allowed_set
