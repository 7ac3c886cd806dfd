"""Error types raised by the Photobooth core.

Every error carries the filename, path, or template key it concerns so that
log lines and API responses built on top of the core are diagnosable without
a stack trace.
"""

from __future__ import annotations

from pathlib import Path


class PhotoboothError(Exception):
    """Base class for all Photobooth core errors."""

    pass


class ConfigurationError(PhotoboothError):
    """The configured watch path is missing or not a directory.

    Non-fatal: the ingestion pipeline stays stopped and reports the error
    through its status instead of raising from ``start()``.
    """

    def __init__(self, path: str | Path | None, reason: str):
        self.path = str(path) if path else ""
        self.reason = reason
        super().__init__(f"{reason}: {self.path!r}")


class ProcessingError(PhotoboothError):
    """A single source file could not be copied or thumbnailed."""

    def __init__(self, filename: str, cause: BaseException | str):
        self.filename = filename
        self.cause = cause
        super().__init__(f"Failed to process {filename}: {cause}")


class TemplateNotFound(PhotoboothError):
    """No template is registered under the requested key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Template not found: {key}")


class TemplateAssetMissing(PhotoboothError):
    """A template's background image does not exist on disk."""

    def __init__(self, asset: str | Path, key: str | None = None):
        self.asset = str(asset)
        self.key = key
        where = f" (template {key})" if key else ""
        super().__init__(f"Frame not found: {self.asset}{where}")


class ValidationError(PhotoboothError):
    """Malformed template, slot, or filename input.

    Raised before anything is persisted or written.  The message is intended
    to be shown to the user directly.
    """

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)


class StorageError(PhotoboothError):
    """Underlying I/O failure while reading, copying, deleting, or persisting.

    Also raised when an image on disk cannot be decoded.
    """

    def __init__(self, target: str | Path, cause: BaseException | str, key: str | None = None):
        self.target = str(target)
        self.cause = cause
        self.key = key
        where = f" (template {key})" if key else ""
        super().__init__(f"Storage failure on {self.target}{where}: {cause}")
