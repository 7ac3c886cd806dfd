"""Photobooth core - watched-folder photo ingestion and template composition."""

__version__ = "0.3.0"

from photobooth.core.compositor import Compositor
from photobooth.core.config import PhotoboothConfig, get_config
from photobooth.core.events import EventBus
from photobooth.core.pipeline import IngestionPipeline
from photobooth.core.processor import PhotoProcessor
from photobooth.core.template_store import TemplateStore

__all__ = [
    "Compositor",
    "EventBus",
    "IngestionPipeline",
    "PhotoProcessor",
    "PhotoboothConfig",
    "TemplateStore",
    "get_config",
]
