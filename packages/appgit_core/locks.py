"""Per-branch advisory locks for AppGit.

Structural operations (commit, checkout, push, pull, merge) on the same
``(application_id, branch_name)`` are mutually exclusive; read operations
(history, status, mergeability) share the lock with each other but wait
for in-flight writes. Branches of one application share a working
directory, so anything touching it also takes the repository lock.

Acquisition gives up after ``timeout`` seconds and raises ``Busy``.

Execution Context:
    Library module - imported by the service facade

Dependencies:
    - threading: Condition variables (stdlib)

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from appgit_core.errors import Busy

logger = logging.getLogger(__name__)


# ---- Read/Write Lock ----------------------------------------------------------------------------------------


class ReadWriteLock:
    """Writer-preferring reader/writer lock.

    The writing thread may re-acquire the write lock and take read locks
    without blocking itself.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers: dict[int, int] = {}
        self._writer: int | None = None
        self._writer_depth = 0
        self._waiting_writers = 0

    def _wait(self, predicate, deadline: float | None) -> bool:
        while not predicate():
            if deadline is None:
                self._cond.wait()
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._cond.wait(remaining)
        return True

    def acquire_read(self, timeout: float | None = None) -> bool:
        me = threading.get_ident()
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            if self._writer == me or me in self._readers:
                self._readers[me] = self._readers.get(me, 0) + 1
                return True
            if not self._wait(lambda: self._writer is None and not self._waiting_writers, deadline):
                return False
            self._readers[me] = 1
            return True

    def release_read(self) -> None:
        me = threading.get_ident()
        with self._cond:
            count = self._readers.get(me, 0)
            if count <= 1:
                self._readers.pop(me, None)
            else:
                self._readers[me] = count - 1
            self._cond.notify_all()

    def acquire_write(self, timeout: float | None = None) -> bool:
        me = threading.get_ident()
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            if self._writer == me:
                self._writer_depth += 1
                return True
            self._waiting_writers += 1
            try:
                acquired = self._wait(
                    lambda: self._writer is None and not (set(self._readers) - {me}),
                    deadline,
                )
            finally:
                self._waiting_writers -= 1
            if not acquired:
                self._cond.notify_all()
                return False
            self._writer = me
            self._writer_depth = 1
            return True

    def release_write(self) -> None:
        with self._cond:
            self._writer_depth -= 1
            if self._writer_depth <= 0:
                self._writer = None
                self._writer_depth = 0
            self._cond.notify_all()

    @property
    def is_write_locked(self) -> bool:
        with self._cond:
            return self._writer is not None


# ---- Lock Registry ------------------------------------------------------------------------------------------


class LockRegistry:
    """Hands out locks keyed by application and branch.

    Attributes:
        timeout: Seconds to wait before raising Busy.
    """

    def __init__(
            self,
            timeout: float = 10.0,
    ) -> None:
        self.timeout = timeout
        self._guard = threading.Lock()
        self._branch_locks: dict[tuple[str, str], ReadWriteLock] = {}
        self._repo_locks: dict[str, threading.RLock] = {}

    def _branch_lock(self, application_id: str, branch_name: str) -> ReadWriteLock:
        with self._guard:
            key = (application_id, branch_name)
            if key not in self._branch_locks:
                self._branch_locks[key] = ReadWriteLock()
            return self._branch_locks[key]

    def _repo_lock(self, application_id: str) -> threading.RLock:
        with self._guard:
            if application_id not in self._repo_locks:
                self._repo_locks[application_id] = threading.RLock()
            return self._repo_locks[application_id]

    @contextmanager
    def write(
            self,
            application_id: str,
            branch_name: str,
            operation: str = "operation",
    ) -> Iterator[None]:
        """Hold the exclusive lock of a branch.

        Raises:
            Busy: If another operation holds the branch past the timeout.
        """
        lock = self._branch_lock(application_id, branch_name)
        if not lock.acquire_write(self.timeout):
            msg = f"Cannot {operation}: another operation is in progress on branch '{branch_name}'"
            raise Busy(msg)
        try:
            yield
        finally:
            lock.release_write()

    @contextmanager
    def read(
            self,
            application_id: str,
            branch_name: str,
            operation: str = "operation",
    ) -> Iterator[None]:
        """Hold a shared lock of a branch.

        Raises:
            Busy: If a write holds the branch past the timeout.
        """
        lock = self._branch_lock(application_id, branch_name)
        if not lock.acquire_read(self.timeout):
            msg = f"Cannot {operation}: branch '{branch_name}' is being modified"
            raise Busy(msg)
        try:
            yield
        finally:
            lock.release_read()

    @contextmanager
    def repository(
            self,
            application_id: str,
            operation: str = "operation",
    ) -> Iterator[None]:
        """Hold the working-directory lock of an application's repository.

        Raises:
            Busy: If the working directory stays in use past the timeout.
        """
        lock = self._repo_lock(application_id)
        if not lock.acquire(timeout=self.timeout):
            msg = f"Cannot {operation}: the repository working copy is in use"
            raise Busy(msg)
        try:
            yield
        finally:
            lock.release()

    def forget(
            self,
            application_id: str,
    ) -> None:
        """Drop every lock of an application (after detach)."""
        with self._guard:
            for key in [k for k in self._branch_locks if k[0] == application_id]:
                del self._branch_locks[key]
            self._repo_locks.pop(application_id, None)
        logger.debug("Dropped locks for application %s", application_id)
