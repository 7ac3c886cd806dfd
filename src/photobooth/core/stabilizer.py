"""Write stabilization for newly observed files.

Cameras and card readers create a file and then keep writing to it for a
while.  A creation notification therefore only means "a file appeared", not
"a file is complete".  :class:`StabilizationTracker` holds each notified path
until its size and modification time have stopped changing for the
stabilization window.

Per-file state machine
----------------------
::

    observe()          poll(): unchanged for window     mark_dispatched()
    ────────► PENDING ─────────────────────────► STABLE ─────────────► DISPATCHED
                 ▲  │                                                   │
                 └──┘ observe() / size or mtime changed: timer reset    │ complete()
                                                                        ▼
                                                                    (forgotten)

- A notification for a path that is already PENDING only resets its timer.
- A notification for a path that is STABLE or DISPATCHED is coalesced: the
  file is already on its way to the processor and must not be queued twice.
- A path is returned by :meth:`poll` exactly once.
- A PENDING path whose file has vanished is dropped silently.

The tracker never sleeps.  Time is passed in by the caller (the pipeline's
ticker thread uses ``time.monotonic``; tests pass a fake clock), which keeps
the state machine deterministic and lets one ticker serve every file.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class EntryState(str, Enum):
    PENDING = "pending"
    STABLE = "stable"
    DISPATCHED = "dispatched"


@dataclass
class _Entry:
    state: EntryState
    signature: tuple[int, int] | None
    quiet_since: float


def stat_signature(path: Path) -> tuple[int, int] | None:
    """Return ``(size, mtime_ns)`` for ``path``, or ``None`` if it is gone."""
    try:
        stats = os.stat(path)
    except FileNotFoundError:
        return None
    return stats.st_size, stats.st_mtime_ns


class StabilizationTracker:
    """Tracks notified files until they have been quiescent long enough.

    Args:
        window: Seconds a file must stay unchanged before it is stable.
        stat: Function returning a change signature for a path, or ``None``
            when the path no longer exists.  Injectable for tests.
    """

    def __init__(
        self,
        window: float,
        stat: Callable[[Path], tuple[int, int] | None] = stat_signature,
    ) -> None:
        self.window = window
        self._stat = stat
        self._entries: dict[Path, _Entry] = {}
        self._lock = threading.Lock()

    def observe(self, path: str | Path, now: float) -> bool:
        """Record a notification for ``path``.

        Returns:
            True if the path is now (or still) pending, False if the
            notification was coalesced into an in-flight dispatch.
        """
        path = Path(path)
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                self._entries[path] = _Entry(EntryState.PENDING, self._stat(path), now)
                logger.debug(f"Stabilizing {path}")
                return True
            if entry.state is EntryState.PENDING:
                entry.signature = self._stat(path)
                entry.quiet_since = now
                return True
            logger.debug(f"Coalesced notification for {path} ({entry.state.value})")
            return False

    def poll(self, now: float) -> list[Path]:
        """Advance every pending file and return those that just became stable."""
        ready: list[Path] = []
        with self._lock:
            for path, entry in list(self._entries.items()):
                if entry.state is not EntryState.PENDING:
                    continue

                signature = self._stat(path)
                if signature is None:
                    del self._entries[path]
                    logger.debug(f"Dropped vanished file {path}")
                    continue

                if signature != entry.signature:
                    entry.signature = signature
                    entry.quiet_since = now
                    continue

                if now - entry.quiet_since >= self.window:
                    entry.state = EntryState.STABLE
                    ready.append(path)
        return ready

    def mark_dispatched(self, path: str | Path) -> None:
        with self._lock:
            entry = self._entries.get(Path(path))
            if entry is not None:
                entry.state = EntryState.DISPATCHED

    def complete(self, path: str | Path) -> None:
        """Forget ``path`` once its processing has finished (or was skipped)."""
        with self._lock:
            self._entries.pop(Path(path), None)

    def state_of(self, path: str | Path) -> EntryState | None:
        with self._lock:
            entry = self._entries.get(Path(path))
            return entry.state if entry else None

    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._entries.values() if e.state is EntryState.PENDING)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
