# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Advisory file locks for the config store and the instance registry.

Both stores are shared between concurrent mcpz invocations (two terminals,
or an editor extension next to a shell). Every read-modify-write cycle runs inside
a FileLock so neither store can be corrupted by interleaved writers.
"""

import fcntl
import logging
import os
import threading
import time
from pathlib import Path
from typing import Optional

from mcpz.errors import StoreLocked

logger = logging.getLogger(__name__)

_INITIAL_DELAY = 0.02
_MAX_DELAY = 0.5


class FileLock:
    """Exclusive flock() on a sidecar lock file, acquired with bounded polling.

    Usage:
        with FileLock(path.with_suffix(".lock"), timeout=5.0):
            ...  # read, modify, write

    Raises StoreLocked when the lock is still held after ``timeout`` seconds.
    Re-entrant within one thread so helper methods can nest; other threads
    of the same process queue on an in-process mutex first, since flock()
    does not exclude them.
    """

    def __init__(self, path: Path, timeout: float = 5.0):
        self.path = Path(path)
        self.timeout = timeout
        self._mutex = threading.RLock()
        self._fd: Optional[int] = None
        self._depth = 0

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        start = time.monotonic()
        if not self._mutex.acquire(timeout=self.timeout):
            raise StoreLocked(self.path, time.monotonic() - start)
        if self._fd is not None:
            self._depth += 1
            return
        try:
            self._fd = self._flock(start)
        except BaseException:
            self._mutex.release()
            raise
        self._depth = 1

    def _flock(self, start: float) -> int:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        delay = _INITIAL_DELAY
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fd
            except BlockingIOError:
                waited = time.monotonic() - start
                if waited >= self.timeout:
                    os.close(fd)
                    logger.debug(f"Gave up on {self.path} after {waited:.2f}s")
                    raise StoreLocked(self.path, waited)
                time.sleep(min(delay, max(self.timeout - waited, 0.0)))
                delay = min(delay * 2, _MAX_DELAY)

    def release(self) -> None:
        if self._fd is None:
            return
        self._depth -= 1
        try:
            if self._depth > 0:
                return
            try:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                os.close(self._fd)
                self._fd = None
        finally:
            self._mutex.release()

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
