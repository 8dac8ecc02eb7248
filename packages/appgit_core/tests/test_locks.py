"""Tests for appgit_core.locks module.

Tests reader/writer exclusion, re-entrancy and Busy on timeout.
"""
from __future__ import annotations

import threading

import pytest

from appgit_core.errors import Busy
from appgit_core.locks import LockRegistry, ReadWriteLock


# ---- Helpers ------------------------------------------------------------------------------------------------


def hold_in_thread(context_factory):
    """Enter a context in another thread until the returned event is set.

    Returns:
        Tuple of (release event, thread).
    """
    entered = threading.Event()
    release = threading.Event()

    def run():
        with context_factory():
            entered.set()
            release.wait(5)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    assert entered.wait(5)
    return release, thread


# ---- ReadWriteLock Tests ------------------------------------------------------------------------------------


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share(self):
        lock = ReadWriteLock()
        assert lock.acquire_read(0.1)
        result = []
        thread = threading.Thread(target=lambda: result.append(lock.acquire_read(0.5)))
        thread.start()
        thread.join()
        assert result == [True]

    def test_writer_excludes_reader(self):
        lock = ReadWriteLock()
        assert lock.acquire_write(0.1)
        result = []
        thread = threading.Thread(target=lambda: result.append(lock.acquire_read(0.1)))
        thread.start()
        thread.join()
        assert result == [False]
        lock.release_write()
        assert not lock.is_write_locked

    def test_reentrant_writer(self):
        lock = ReadWriteLock()
        assert lock.acquire_write(0.1)
        assert lock.acquire_write(0.1)
        assert lock.acquire_read(0.1)
        lock.release_read()
        lock.release_write()
        assert lock.is_write_locked
        lock.release_write()
        assert not lock.is_write_locked


# ---- LockRegistry Tests -------------------------------------------------------------------------------------


class TestLockRegistry:
    """Tests for LockRegistry."""

    def test_write_busy(self):
        registry = LockRegistry(timeout=0.1)
        release, thread = hold_in_thread(lambda: registry.write("app", "main"))
        try:
            with pytest.raises(Busy, match="main"):
                with registry.write("app", "main", "commit"):
                    pass
            with pytest.raises(Busy):
                with registry.read("app", "main", "read history"):
                    pass
        finally:
            release.set()
            thread.join()

    def test_other_branch_not_blocked(self):
        registry = LockRegistry(timeout=0.1)
        release, thread = hold_in_thread(lambda: registry.write("app", "main"))
        try:
            with registry.write("app", "feature"):
                pass
            with registry.write("other-app", "main"):
                pass
        finally:
            release.set()
            thread.join()

    def test_repository_busy(self):
        registry = LockRegistry(timeout=0.1)
        release, thread = hold_in_thread(lambda: registry.repository("app"))
        try:
            with pytest.raises(Busy, match="working copy"):
                with registry.repository("app", "checkout"):
                    pass
        finally:
            release.set()
            thread.join()

    def test_released_after_error(self):
        registry = LockRegistry(timeout=0.1)
        with pytest.raises(RuntimeError):
            with registry.write("app", "main"):
                raise RuntimeError("boom")
        release, thread = hold_in_thread(lambda: registry.write("app", "main"))
        release.set()
        thread.join()

    def test_forget(self):
        registry = LockRegistry(timeout=0.1)
        with registry.write("app", "main"):
            pass
        registry.forget("app")
        assert registry._branch_locks == {}
