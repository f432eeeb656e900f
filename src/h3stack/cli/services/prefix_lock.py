"""Exclusive per-prefix lock so only one run installs into a prefix at a time."""

import fcntl
import logging
import os
from pathlib import Path
from typing import IO, Optional

from h3stack.core.exceptions import PrefixLockError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".h3stack.lock"


class PrefixLock:
    """
    Non-blocking ``flock`` on ``<prefix>/.h3stack.lock``.

    Usable as a context manager. The lock is released when the file handle
    is closed, including when the process dies.
    """

    def __init__(self, install_prefix: Path):
        self.path = Path(install_prefix) / LOCK_FILE_NAME
        self._fh: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        return self._fh is not None

    def _holder(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8").strip() or "unknown"
        except OSError:
            return "unknown"

    def acquire(self) -> "PrefixLock":
        if self._fh is not None:
            return self
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(self.path, "a+", encoding="utf-8")
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            fh.close()
            raise PrefixLockError(
                f"{self.path.parent} is locked by another h3stack run ({self._holder()})"
            ) from e
        fh.seek(0)
        fh.truncate()
        fh.write(f"pid={os.getpid()}\n")
        fh.flush()
        self._fh = fh
        logger.debug(f"Acquired prefix lock {self.path}")
        return self

    def release(self) -> None:
        if self._fh is None:
            return
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        finally:
            self._fh.close()
            self._fh = None
        logger.debug(f"Released prefix lock {self.path}")

    def __enter__(self) -> "PrefixLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
