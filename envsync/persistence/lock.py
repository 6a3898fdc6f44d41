"""
Run Lock — At most one reconciliation per environments tree.

An exclusive ``flock`` on a lock file guards each whole action. A second
process blocks until the first one finishes; there is no timeout.
"""

from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..engine.runner import PathLike
from ..validation import LockError

logger = logging.getLogger(__name__)


@contextmanager
def exclusive_lock(lock_path: PathLike) -> Iterator[int]:
    """
    Hold an exclusive advisory lock on ``lock_path`` for the block.

    The file is created (mode 0644) if needed. The lock is released and the
    descriptor closed on every exit path.

    Raises:
        LockError: If the lock file cannot be opened or locked
    """
    path = Path(lock_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise LockError(f"Cannot open lock file {path}: {e}") from e

    try:
        try:
            logger.debug(f"Waiting for lock {path}")
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError as e:
            raise LockError(f"Cannot lock {path}: {e}") from e

        logger.debug(f"Acquired lock {path}")
        try:
            yield fd
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug(f"Released lock {path}")
    finally:
        os.close(fd)


def whilst_locked(lock_path: PathLike, body):
    """Run ``body()`` under ``exclusive_lock`` and return its result."""
    with exclusive_lock(lock_path):
        return body()
