"""Command line entry point for the Photobooth core.

Subcommands
-----------
``photobooth watch``
    Watch the configured folder until interrupted (SIGINT / SIGTERM).
    Lifecycle events are written to the log.
``photobooth scan``
    Process every new photo in the watch folder once and exit.
``photobooth compose``
    Compose processed photos into a template and write the JPEG to a file.

All settings come from :class:`~photobooth.core.config.PhotoboothConfig`
(``PHOTOBOOTH_*`` environment variables or ``.env``); ``--path`` overrides
the watch folder for a single run.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

from photobooth import __version__
from photobooth.core.compositor import Compositor
from photobooth.core.config import PhotoboothConfig, get_config
from photobooth.core.errors import PhotoboothError
from photobooth.core.events import EventBus
from photobooth.core.pipeline import IngestionPipeline
from photobooth.core.processor import PhotoProcessor
from photobooth.core.template_store import TemplateStore

logger = logging.getLogger("photobooth")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="photobooth",
        description="Ingest photos from a watched folder and compose photobooth frames.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    watch = subparsers.add_parser("watch", help="Watch the folder for new photos.")
    watch.add_argument("--path", type=Path, default=None, help="Override the watch folder.")

    scan = subparsers.add_parser("scan", help="Process new photos in the folder once.")
    scan.add_argument("--path", type=Path, default=None, help="Override the watch folder.")

    compose = subparsers.add_parser("compose", help="Compose photos into a template.")
    compose.add_argument(
        "--template",
        default=None,
        help="Template key (default: the current template).",
    )
    compose.add_argument(
        "--photo",
        action="append",
        default=[],
        help="Processed photo filename for the next slot (repeatable).",
    )
    compose.add_argument("--comment", default=None, help="Text for the comment box.")
    compose.add_argument("--output", type=Path, required=True, help="Where to write the JPEG.")

    return parser.parse_args(argv)


def _log_event(event_name: str, payload: dict) -> None:
    logger.info(f"Event {event_name}: {payload}")


def _build_pipeline(config: PhotoboothConfig, path: Path | None) -> IngestionPipeline:
    bus = EventBus()
    bus.subscribe(_log_event)
    pipeline = IngestionPipeline(config, PhotoProcessor(config, bus), bus)
    if path is not None:
        pipeline.set_watch_path(path)
    return pipeline


def run_watch(config: PhotoboothConfig, path: Path | None) -> int:
    pipeline = _build_pipeline(config, path)

    if config.auto_scan:
        try:
            pipeline.scan()
        except PhotoboothError as e:
            logger.warning(f"Initial scan skipped: {e}")

    state = pipeline.start()
    if not state.is_watching:
        logger.error(f"Cannot start watching: {state.last_error}")
        return 1

    stop_event = threading.Event()

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        while not stop_event.is_set() and pipeline.is_watching:
            stop_event.wait(1.0)
    finally:
        pipeline.stop()

    return 0


def run_scan(config: PhotoboothConfig, path: Path | None) -> int:
    pipeline = _build_pipeline(config, path)
    try:
        result = pipeline.scan()
    except PhotoboothError as e:
        logger.error(str(e))
        return 1

    print(result.message)
    for failure in result.failures:
        print(f"  failed: {failure}", file=sys.stderr)
    return 0 if not result.failures else 2


def run_compose(
    config: PhotoboothConfig,
    key: str | None,
    photos: list[str],
    comment: str | None,
    output: Path,
) -> int:
    store = TemplateStore.from_file(config.templates_file, frames_dir=config.frames_dir)
    compositor = Compositor.from_config(config)
    try:
        key = key or store.current()
        if key is None:
            logger.error("No template given and no current template selected")
            return 1
        image = compositor.compose(store.get(key), photos, comment=comment, key=key)
        output.write_bytes(image)
    except (PhotoboothError, OSError) as e:
        logger.error(str(e))
        return 1

    print(f"Wrote {output} ({len(image)} bytes)")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``photobooth`` console script."""
    args = parse_args(argv)
    config = get_config()

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, config.log_level.upper(), logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    if args.command == "watch":
        return run_watch(config, args.path)
    if args.command == "scan":
        return run_scan(config, args.path)
    return run_compose(config, args.template, args.photo, args.comment, args.output)


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
