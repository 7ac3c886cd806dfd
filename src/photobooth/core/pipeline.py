"""Ingestion pipeline: watch a folder, stabilize new files, process them.

:class:`IngestionPipeline` owns the watch state and the file-system watch
handle for one watched directory.  It wires together:

- a watchdog ``Observer`` delivering creation and move-into notifications
- a :class:`~photobooth.core.stabilizer.StabilizationTracker` that holds
  each notified file until it has stopped changing
- a single ticker thread that polls the tracker every ``poll_ms``
- a thread pool running :meth:`PhotoProcessor.process` for settled files,
  so different files are processed concurrently

Lifecycle
---------
::

    STOPPED ──start()──► STARTING ──observer scheduled──► WATCHING
       ▲                    │                                │
       └── bad watch path ──┘                                │
       └────────────── stop() / observer died ───────────────┘

``start()`` never raises: a missing or non-directory watch path leaves the
pipeline STOPPED with the error recorded in :class:`WatchState`.  Starting an
active pipeline and stopping a stopped one are both no-ops.

Only files created after watching begins are processed; the backlog already
in the folder is picked up by :meth:`IngestionPipeline.scan`, which compares
the folder against the processed store and processes only unseen names.

Usage
-----
::

    from photobooth.core.config import get_config
    from photobooth.core.events import EventBus
    from photobooth.core.pipeline import IngestionPipeline
    from photobooth.core.processor import PhotoProcessor

    config = get_config()
    bus = EventBus()
    pipeline = IngestionPipeline(config, PhotoProcessor(config, bus), bus)
    pipeline.start()
    ...
    pipeline.stop()
"""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .classifier import is_eligible
from .config import PhotoboothConfig
from .errors import ConfigurationError, StorageError
from .events import WATCH_STATUS_CHANGED, EventSink, NullSink
from .models import ProcessingResult, ScanResult, WatchState, WatchStatus
from .processor import PhotoProcessor
from .stabilizer import StabilizationTracker

logger = logging.getLogger(__name__)


def _is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


class PhotoEventHandler(FileSystemEventHandler):
    """Watchdog handler forwarding new files to the pipeline."""

    def __init__(self, pipeline: IngestionPipeline) -> None:
        super().__init__()
        self.pipeline = pipeline

    def on_created(self, event: FileSystemEvent) -> None:  # noqa: D401
        """A file appeared in the watched tree."""
        if event.is_directory:
            return
        self.pipeline.notify(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:  # noqa: D401
        """A file was renamed into place (common for atomic camera writes)."""
        if event.is_directory:
            return
        dest = getattr(event, "dest_path", None)
        if dest:
            self.pipeline.notify(os.fsdecode(dest))


class IngestionPipeline:
    """Watches one directory and feeds settled photos to the processor.

    Args:
        config: Application configuration (watch path, allow-list,
            stabilization and polling intervals, worker count).
        processor: Photo processor shared with manual scans.
        events: Sink receiving ``watch_status_changed`` events.
        observer_factory: Callable returning a watchdog-compatible observer.
        clock: Monotonic clock used for stabilization timing.
    """

    def __init__(
        self,
        config: PhotoboothConfig,
        processor: PhotoProcessor,
        events: EventSink | None = None,
        observer_factory: Callable[[], Observer] = Observer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.processor = processor
        self.events: EventSink = events or NullSink()
        self._observer_factory = observer_factory
        self._clock = clock

        # _lifecycle_lock serializes start/stop; _lock guards state and is
        # never held while joining threads.
        self._lifecycle_lock = threading.Lock()
        self._lock = threading.RLock()
        self._watch_path: Path | None = Path(config.watch_path) if config.watch_path else None
        self._state = WatchState(watch_path=str(self._watch_path or ""))

        self._tracker = StabilizationTracker(config.stabilization_seconds)
        self._observer = None
        self._ticker: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._executor: ThreadPoolExecutor | None = None

    # -- Status -------------------------------------------------------------

    def status(self) -> WatchState:
        """Return a snapshot of the current watch state."""
        with self._lock:
            return dataclasses.replace(self._state)

    @property
    def is_watching(self) -> bool:
        with self._lock:
            return self._state.status is WatchStatus.WATCHING

    @property
    def tracker(self) -> StabilizationTracker:
        return self._tracker

    # -- Lifecycle ----------------------------------------------------------

    def start(self) -> WatchState:
        """Begin watching the configured directory.

        Returns:
            The resulting state.  On a configuration problem the state is
            STOPPED and ``last_error`` describes the problem.
        """
        with self._lifecycle_lock:
            return self._start()

    def _start(self) -> WatchState:
        with self._lock:
            if self._state.status is WatchStatus.WATCHING:
                logger.info("Watcher already running.")
                return dataclasses.replace(self._state)

            self._state.status = WatchStatus.STARTING
            path = self._watch_path

            error = self._validate_watch_path(path)
            if error is not None:
                return self._fail_start(error)

            self._tracker = StabilizationTracker(self.config.stabilization_seconds)
            self._stop_event = threading.Event()
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="photobooth-ingest",
            )

            observer = self._observer_factory()
            try:
                observer.schedule(PhotoEventHandler(self), str(path), recursive=True)
                observer.start()
            except Exception as e:
                self._executor.shutdown(wait=False)
                self._executor = None
                return self._fail_start(ConfigurationError(path, f"Cannot watch directory ({e})"))

            self._observer = observer
            self._ticker = threading.Thread(
                target=self._run_ticker,
                args=(observer, self._stop_event),
                name="photobooth-stabilizer",
                daemon=True,
            )
            self._ticker.start()

            self._state.status = WatchStatus.WATCHING
            self._state.is_watching = True
            self._state.last_error = None
            snapshot = dataclasses.replace(self._state)

        logger.info(f"Starting to watch directory: {path}")
        self.events.publish(WATCH_STATUS_CHANGED, {"isWatching": True, "path": str(path)})
        return snapshot

    def stop(self) -> WatchState:
        """Stop watching.

        Idempotent.  When this returns, the observer and ticker have been
        joined and every in-flight processing job has finished, so no
        further photos are dispatched.
        """
        with self._lifecycle_lock:
            return self._shutdown(join_ticker=True)

    def set_watch_path(self, path: str | Path | None) -> WatchState:
        """Change the watched directory, restarting an active watch."""
        was_watching = self.is_watching
        if was_watching:
            self.stop()

        with self._lock:
            self._watch_path = Path(path) if path else None
            self._state.watch_path = str(self._watch_path or "")

        if was_watching:
            return self.start()
        return self.status()

    def _validate_watch_path(self, path: Path | None) -> ConfigurationError | None:
        if path is None or not str(path):
            return ConfigurationError(path, "Watch path not set")
        if not path.exists():
            return ConfigurationError(path, "Watch path does not exist")
        if not path.is_dir():
            return ConfigurationError(path, "Watch path is not a directory")
        return None

    def _fail_start(self, error: ConfigurationError) -> WatchState:
        self._state.status = WatchStatus.STOPPED
        self._state.is_watching = False
        self._state.last_error = str(error)
        logger.warning(f"{error}. Auto-scan disabled.")
        return dataclasses.replace(self._state)

    def _shutdown(self, join_ticker: bool, error: str | None = None) -> WatchState:
        with self._lock:
            if self._state.status is not WatchStatus.WATCHING:
                return dataclasses.replace(self._state)

            observer, ticker, executor = self._observer, self._ticker, self._executor
            self._observer = None
            self._ticker = None
            self._executor = None
            self._stop_event.set()

        if observer is not None:
            observer.stop()
            if observer.is_alive():
                observer.join()
        if join_ticker and ticker is not None:
            ticker.join()

        self._tracker.clear()
        if executor is not None:
            executor.shutdown(wait=True)

        with self._lock:
            self._state.status = WatchStatus.STOPPED
            self._state.is_watching = False
            self._state.last_error = error
            snapshot = dataclasses.replace(self._state)

        logger.info("Watcher stopped.")
        self.events.publish(WATCH_STATUS_CHANGED, {"isWatching": False, "path": snapshot.watch_path})
        return snapshot

    # -- Notifications ------------------------------------------------------

    def notify(self, path: str | Path) -> bool:
        """Accept a creation notification for ``path``.

        Hidden files and files outside the allow-list are ignored.  A
        notification for a file already stabilizing resets its timer; one
        for a file already dispatched is coalesced.

        Returns:
            True if the file is (still) pending stabilization.
        """
        path = Path(path)
        if _is_hidden(path) or not is_eligible(path.name, self.config.file_types):
            return False
        if not self.is_watching:
            return False

        accepted = self._tracker.observe(path, self._clock())
        if accepted:
            logger.debug(f"New photo detected: {path}")
        return accepted

    def _run_ticker(self, observer, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.config.poll_seconds):
            if not observer.is_alive():
                logger.error("File system observer died; stopping watch")
                # A concurrent stop() holds the lifecycle lock and is joining
                # this thread; let it finish the teardown.
                if self._lifecycle_lock.acquire(blocking=False):
                    try:
                        self._shutdown(
                            join_ticker=False, error="File system observer stopped unexpectedly"
                        )
                    finally:
                        self._lifecycle_lock.release()
                return
            self.dispatch_ready(stop_event)

    def dispatch_ready(self, stop_event: threading.Event | None = None) -> list[Path]:
        """Hand every newly stable file to the processing pool.

        Called by the ticker thread on each poll; exposed for tests driving
        the pipeline with a fake clock.

        Returns:
            The paths dispatched on this call.
        """
        stop_event = stop_event or self._stop_event
        dispatched: list[Path] = []
        for path in self._tracker.poll(self._clock()):
            with self._lock:
                executor = self._executor
                if stop_event.is_set() or executor is None:
                    return dispatched
                self._tracker.mark_dispatched(path)
                executor.submit(self._process_settled, path)
            dispatched.append(path)
            logger.info(f"New photo settled: {path}")
        return dispatched

    def _process_settled(self, path: Path) -> ProcessingResult:
        try:
            result = self.processor.process(path)
            if not result.ok:
                logger.warning(f"Skipping {path.name}: {result.error}")
            return result
        finally:
            self._tracker.complete(path)

    # -- Manual scan --------------------------------------------------------

    def scan(self) -> ScanResult:
        """Process every eligible file in the watch folder not yet processed.

        Runs synchronously and independently of the continuous watch.  A
        file counts as new when no processed photo with the same name
        exists.  Failures are collected per file and do not stop the scan.

        Returns:
            The scan result; ``last_scan_time`` is updated even when nothing
            new was found.

        Raises:
            ConfigurationError: If the watch path is unset or missing.
            StorageError: If the watch folder cannot be listed.
        """
        with self._lock:
            path = self._watch_path
        error = self._validate_watch_path(path)
        if error is not None:
            raise error

        logger.info("Starting manual scan...")
        try:
            entries = sorted(path.iterdir())
        except OSError as e:
            raise StorageError(path, e) from e

        existing = self.processor.processed_filenames()
        result = ScanResult()
        for entry in entries:
            if _is_hidden(entry) or not entry.is_file():
                continue
            if not is_eligible(entry.name, self.config.file_types) or entry.name in existing:
                continue

            result.new_photos_count += 1
            existing.add(entry.name)
            outcome = self.processor.process(entry)
            if outcome.ok:
                result.processed.append(outcome.photo)
            else:
                result.failures.append(outcome.error)

        result.scanned_at = datetime.now(timezone.utc)
        with self._lock:
            self._state.last_scan_time = result.scanned_at

        logger.info(
            f"{result.message} ({len(result.processed)} processed, {len(result.failures)} failed)"
        )
        return result
