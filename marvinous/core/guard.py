"""
Collection Guard — at most one collection pipeline at a time.

The scheduler and the dashboard's "collect now" button can both start a run.
Whoever gets the token runs; everyone else is told "already running" right
away. Nothing queues, blocks or retries.

An optional lock file extends the same rule across processes (a cron-driven
`marvinous run` next to a long-running `marvinous serve`), using the same
non-blocking flock as a PID file.
"""

import fcntl
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from marvinous.core.config import MarvinousConfig
from marvinous.core.errors import AlreadyRunning

logger = logging.getLogger("marvinous.guard")


class CollectionGuard:
    """Single exclusive token plus the time of the last successful run."""

    def __init__(self, lock_file: Optional[Path] = None):
        self._lock = threading.Lock()
        self._lock_file = Path(lock_file).expanduser() if lock_file else None
        self._fd = None
        self._status_lock = threading.Lock()
        self._last_run: Optional[datetime] = None

    def try_acquire(self) -> bool:
        """Take the token if free. Never blocks."""
        if not self._lock.acquire(blocking=False):
            return False
        if self._lock_file is not None:
            try:
                self._lock_file.parent.mkdir(parents=True, exist_ok=True)
                fd = open(self._lock_file, "w")
            except OSError as e:
                logger.warning(f"Could not open lock file {self._lock_file}: {e}; guarding this process only")
                return True
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                fd.close()
                self._lock.release()
                logger.info(f"Collection lock {self._lock_file} held by another process")
                return False
            self._fd = fd
        return True

    def release(self) -> None:
        if self._fd is not None:
            try:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                self._fd.close()
                self._fd = None
        self._lock.release()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def last_run(self) -> Optional[datetime]:
        with self._status_lock:
            return self._last_run

    def mark_completed(self, when: Optional[datetime] = None) -> None:
        with self._status_lock:
            self._last_run = when or datetime.now(timezone.utc)

    @contextmanager
    def hold(self) -> Iterator["CollectionGuard"]:
        """`with guard.hold():` raises AlreadyRunning instead of waiting."""
        if not self.try_acquire():
            raise AlreadyRunning("A collection is already in progress")
        try:
            yield self
        finally:
            self.release()


@dataclass
class AppContext:
    """What request handlers and the CLI share: config plus the guard."""
    config: MarvinousConfig
    guard: CollectionGuard = field(default_factory=CollectionGuard)

    @classmethod
    def from_config(cls, config: MarvinousConfig) -> "AppContext":
        lock_file = config.general.lock_file or None
        return cls(config=config, guard=CollectionGuard(Path(lock_file) if lock_file else None))
