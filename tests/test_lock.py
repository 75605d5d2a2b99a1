"""
Unit tests for LockCoordinator.

Tests:
  - claim is create-exclusive and writes the pid
  - release is idempotent
  - dead-owner (including zombie) and garbage locks are healed by is_unlocked()
  - acquire: non-blocking give-up, blocking wait, timeout → LockBusy
"""

import multiprocessing
import os
import threading
import time

import psutil
import pytest

import keyfreq.lock as lock_mod
from keyfreq.lock import LockBusy, LockCoordinator, LockState, pid_alive

pytestmark = pytest.mark.core


@pytest.fixture()
def lock_path(tmp_path):
    return tmp_path / "store.lock"


@pytest.fixture()
def lock(lock_path, metrics):
    return LockCoordinator(lock_path, stale_grace_seconds=2.0, metrics=metrics)


def _dead_pid() -> int:
    proc = multiprocessing.get_context("fork").Process(target=lambda: None)
    proc.start()
    proc.join()
    return proc.pid


class TestClaimRelease:

    def test_free_when_no_file(self, lock):
        assert lock.state() is LockState.FREE
        assert lock.is_unlocked() is True
        assert lock.owner() is None

    def test_claim_writes_own_pid(self, lock, lock_path):
        assert lock.claim() is True
        assert lock_path.read_text().strip() == str(os.getpid())
        assert lock.owner() == os.getpid()
        assert lock.state() is LockState.HELD

    def test_claim_never_overwrites(self, lock):
        assert lock.claim(pid=os.getppid()) is True
        assert lock.claim() is False
        assert lock.owner() == os.getppid()

    def test_claim_creates_missing_parent_directory(self, tmp_path, metrics):
        lock = LockCoordinator(tmp_path / "a" / "b" / "store.lock", metrics=metrics)
        assert lock.claim() is True
        assert lock.owner() == os.getpid()

    def test_release_is_idempotent(self, lock, lock_path):
        lock.claim()
        lock.release()
        lock.release()
        assert not lock_path.exists()


class TestStaleHealing:

    def test_live_foreign_owner_is_held(self, lock):
        lock.claim(pid=os.getppid())
        assert lock.is_unlocked() is False
        assert lock.owner() == os.getppid()

    def test_dead_owner_is_stale_and_removed(self, lock, lock_path, metrics):
        lock.claim(pid=_dead_pid())
        assert lock.state() is LockState.STALE
        assert lock.is_unlocked() is True
        assert not lock_path.exists()
        assert metrics.snapshot()["stale_lock_healed_total"] == 1

    def test_fresh_garbage_lock_counts_as_held(self, lock, lock_path):
        lock_path.write_text("")
        assert lock.owner() is None
        assert lock.state() is LockState.HELD
        assert lock.is_unlocked() is False

    def test_old_garbage_lock_is_stale(self, lock, lock_path):
        lock_path.write_text("not-a-pid")
        old = time.time() - 60
        os.utime(lock_path, (old, old))
        assert lock.is_unlocked() is True
        assert not lock_path.exists()

    def test_pid_alive(self):
        assert pid_alive(os.getpid()) is True
        assert pid_alive(0) is False
        assert pid_alive(_dead_pid()) is False

    def test_unreaped_child_counts_as_dead(self):
        pid = os.fork()
        if pid == 0:
            os._exit(0)
        try:
            deadline = time.monotonic() + 5.0
            while psutil.Process(pid).status() != psutil.STATUS_ZOMBIE:
                assert time.monotonic() < deadline
                time.sleep(0.01)
            assert psutil.pid_exists(pid) is True
            assert pid_alive(pid) is False
        finally:
            os.waitpid(pid, 0)


class TestAcquire:

    def test_try_acquire_on_free_lock(self, lock):
        assert lock.try_acquire() is True
        assert lock.owner() == os.getpid()

    def test_try_acquire_reclaims_lock_left_by_self(self, lock):
        lock.claim()
        assert lock.try_acquire() is True

    def test_race_lost_is_detected_through_owner(self, lock, monkeypatch, metrics):
        # another process wins between our free-check and our claim
        def claim_lost(pid=None):
            lock.path.write_text(f"{os.getppid()}\n")
            return False

        monkeypatch.setattr(lock, "claim", claim_lost)
        assert lock.try_acquire() is False
        assert metrics.snapshot()["lock_contention_total"] == 1

    def test_non_blocking_gives_up(self, lock):
        lock.claim(pid=os.getppid())
        assert lock.acquire(blocking=False) is False
        assert lock.owner() == os.getppid()

    def test_blocking_times_out_with_lock_busy(self, lock):
        lock.claim(pid=os.getppid())
        start = time.monotonic()
        with pytest.raises(LockBusy):
            lock.acquire(blocking=True, retry_interval=0.01, timeout=0.2)
        assert time.monotonic() - start >= 0.2

    def test_blocking_waits_for_release(self, lock):
        lock.claim(pid=os.getppid())
        timer = threading.Timer(0.2, lock.release)
        timer.start()
        try:
            assert lock.acquire(blocking=True, retry_interval=0.01, timeout=5.0) is True
        finally:
            timer.join()
        assert lock.owner() == os.getpid()

    def test_blocking_heals_stale_lock(self, lock, monkeypatch):
        lock.claim(pid=424242)
        monkeypatch.setattr(lock_mod, "pid_alive", lambda pid: False)
        assert lock.acquire(blocking=True, retry_interval=0.01, timeout=1.0) is True
        assert lock.owner() == os.getpid()
