"""
Single-instance guard
Holds an exclusive non-blocking flock so overlapping wrapper runs exit instead of queueing
"""
import fcntl
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class LockUnavailableError(Exception):
    """Another process already holds the lock"""

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        super().__init__(f"lock already held: {lock_path}")


class ProcessLockGuard:
    """Exclusive advisory lock on a fixed path, held until release or process exit"""

    def __init__(self, lock_path: Path):
        self.lock_path = Path(lock_path)
        self._handle = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self):
        """Take the lock or raise LockUnavailableError immediately"""
        if self._handle is not None:
            return
        self._handle = self._open()
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            self._handle.close()
            self._handle = None
            raise LockUnavailableError(self.lock_path)
        logger.debug("Acquired lock %s (pid %s)", self.lock_path, os.getpid())

    def release(self):
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None

    def _open(self):
        # An existing file (e.g. the config itself) is locked read-only and left untouched
        if self.lock_path.exists():
            return open(self.lock_path, 'rb')
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        return open(self.lock_path, 'ab')

    def __enter__(self) -> 'ProcessLockGuard':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


def describe_conflict(program: str, argv0: str, lock_path: Path, pid: Optional[int] = None) -> str:
    """Diagnostic printed when a second instance is refused"""
    pid = os.getpid() if pid is None else pid
    return (f"ERROR: {program} (pid {pid}, invoked as {argv0}) is already running: "
            f"could not lock {lock_path}")
