"""Core components of the Photobooth system.

Architecture Overview
---------------------
The core is split into two subsystems that share configuration and the
processed store:

1. **Ingestion** (classifier.py, stabilizer.py, pipeline.py, processor.py):
   - watchdog-based observation of the watch folder
   - per-file write stabilization before anything is read
   - copy + thumbnail of each settled photo, isolated per file
   - lifecycle events published to an EventSink (events.py)

2. **Composition** (template_store.py, compositor.py):
   - templates with fractional slot geometry, persisted to templates.json
   - cover-fit placement of photos and an optional comment box

3. **Support**:
   - config.py: Pydantic Settings configuration (PHOTOBOOTH_ prefix)
   - models.py: Pydantic schemas and result dataclasses
   - errors.py: error taxonomy

Nothing in the core keeps global mutable state; every component is an
instance, so several pipelines or stores can coexist (as the tests do).
"""

from photobooth.core.classifier import is_eligible
from photobooth.core.compositor import Compositor, round_half_away
from photobooth.core.config import PhotoboothConfig, get_config
from photobooth.core.errors import (
    ConfigurationError,
    PhotoboothError,
    ProcessingError,
    StorageError,
    TemplateAssetMissing,
    TemplateNotFound,
    ValidationError,
)
from photobooth.core.events import EventBus, EventSink
from photobooth.core.pipeline import IngestionPipeline
from photobooth.core.processor import PhotoProcessor, paginate_photos
from photobooth.core.template_store import JsonTemplateResource, TemplateStore

__all__ = [
    "Compositor",
    "ConfigurationError",
    "EventBus",
    "EventSink",
    "IngestionPipeline",
    "JsonTemplateResource",
    "PhotoProcessor",
    "PhotoboothConfig",
    "PhotoboothError",
    "ProcessingError",
    "StorageError",
    "TemplateAssetMissing",
    "TemplateNotFound",
    "TemplateStore",
    "ValidationError",
    "get_config",
    "is_eligible",
    "paginate_photos",
    "round_half_away",
]
