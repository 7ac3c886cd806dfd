"""Path validation for names that come from templates and requests.

Template backgrounds, thumbnails, and composed photo names are stored as
names relative to a store directory (``frames_dir`` or ``processed_dir``).
Anything that resolves outside that directory is rejected before it is
opened or deleted.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import ValidationError

logger = logging.getLogger(__name__)


def is_within(base: Path, name: str | Path) -> bool:
    """Return True if ``base / name`` resolves inside ``base``."""
    try:
        return (Path(base) / name).resolve().is_relative_to(Path(base).resolve())
    except (ValueError, OSError):
        return False


def resolve_within(base: Path, name: str | Path, key: str | None = None) -> Path:
    """Resolve ``name`` against ``base``, refusing paths that escape it.

    Args:
        base: Store directory the name is relative to.
        name: Relative file name from a template or request.
        key: Template key for the error message, if any.

    Returns:
        The absolute resolved path.

    Raises:
        ValidationError: If the path resolves outside ``base``.
    """
    if not is_within(base, name):
        logger.warning(f"Path traversal attempt detected: {name}")
        raise ValidationError(f"Invalid path: {name} is outside {base}", key=key)
    return (Path(base) / name).resolve()


def check_relative_name(name: str, key: str | None = None) -> None:
    """Reject absolute names and names containing ``..`` components.

    Raises:
        ValidationError: If ``name`` could point outside its store directory.
    """
    path = Path(name)
    if path.is_absolute() or ".." in path.parts:
        raise ValidationError(f"Invalid asset name: {name}", key=key)
