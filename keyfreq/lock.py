"""
Lock Coordinator - cooperative cross-process mutual exclusion.

The lock is a sentinel file holding the owner's pid as decimal text.
Writers are independent OS processes, so process-local mutexes are no
use here. Nothing stops a misbehaving process from ignoring the file.

States:
  FREE   no lock file
  HELD   lock file names a running process (or is unreadable but fresh)
  STALE  lock file names a dead process (or is unreadable and old)

is_unlocked() heals STALE by deleting the file. claim() is a
create-exclusive and never overwrites; the caller confirms ownership
through owner() because concurrent claimants can still race around the
stale-lock delete.
"""

from __future__ import annotations

import logging
import os
import time
from enum import Enum
from pathlib import Path
from typing import Optional

import psutil

from .errors import KeyfreqError
from .metrics import KeyfreqMetrics, get_keyfreq_metrics

logger = logging.getLogger(__name__)


class LockBusy(KeyfreqError):
    """The lock is held by another live process."""
    pass


class LockState(str, Enum):
    FREE = "free"
    HELD = "held"
    STALE = "stale"


def pid_alive(pid: int) -> bool:
    """True if a process with this pid is currently running (zombies count as dead)."""
    if pid <= 0 or not psutil.pid_exists(pid):
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # exists, owned by another user
        return True


class LockCoordinator:
    """Sentinel-file lock at a fixed path."""

    def __init__(
        self,
        path: str | Path,
        *,
        stale_grace_seconds: float = 2.0,
        metrics: Optional[KeyfreqMetrics] = None,
    ) -> None:
        self.path = Path(path)
        self.stale_grace_seconds = stale_grace_seconds
        self._metrics = metrics or get_keyfreq_metrics()

    # ── Query ─────────────────────────────────────────────────────────────

    def owner(self) -> Optional[int]:
        """Pid written in the lock file, or None if absent or unreadable."""
        try:
            raw = self.path.read_text(encoding="ascii")
        except (FileNotFoundError, UnicodeDecodeError):
            return None
        except OSError as exc:
            logger.debug(f"[LOCK] Cannot read {self.path}: {exc}")
            return None
        raw = raw.strip()
        if not raw.isdigit():
            return None
        return int(raw)

    def state(self) -> LockState:
        """Current state, without touching the file."""
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return LockState.FREE
        pid = self.owner()
        if pid is None:
            # a claimant may sit between create and write
            if time.time() - mtime < self.stale_grace_seconds:
                return LockState.HELD
            return LockState.STALE
        if pid == os.getpid() or pid_alive(pid):
            return LockState.HELD
        return LockState.STALE

    def is_unlocked(self) -> bool:
        """True if the lock is free. Deletes a stale lock file first."""
        state = self.state()
        if state is LockState.STALE:
            logger.warning(
                f"[LOCK] Removing stale lock {self.path} (owner={self.owner()} not running)"
            )
            self._remove()
            self._metrics.inc_stale_lock_healed()
            return True
        return state is LockState.FREE

    # ── Mutation ──────────────────────────────────────────────────────────

    def claim(self, pid: Optional[int] = None) -> bool:
        """
        Create the lock file holding pid (default: this process).

        Returns False without touching anything if the file exists.
        """
        pid = os.getpid() if pid is None else pid
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        try:
            os.write(fd, f"{pid}\n".encode("ascii"))
        finally:
            os.close(fd)
        logger.debug(f"[LOCK] Claimed {self.path} pid={pid}")
        return True

    def release(self) -> None:
        """Delete the lock file. Releasing a free lock is a no-op."""
        if self._remove():
            logger.debug(f"[LOCK] Released {self.path}")

    def _remove(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True

    # ── Acquire helper ────────────────────────────────────────────────────

    def try_acquire(self, pid: Optional[int] = None) -> bool:
        """
        One claim attempt: heal, claim, then confirm ownership.

        Returns True only when the lock file names pid afterwards.
        """
        pid = os.getpid() if pid is None else pid
        if self.is_unlocked():
            self.claim(pid)
        if self.owner() == pid:
            return True
        self._metrics.inc_lock_contention()
        return False

    def acquire(
        self,
        *,
        blocking: bool = True,
        retry_interval: float = 0.1,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Acquire the lock for this process.

        Non-blocking: one attempt, returns the result.
        Blocking: polls every retry_interval seconds. Raises LockBusy once
        timeout seconds have passed; timeout=None waits forever.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.try_acquire():
                return True
            if not blocking:
                return False
            if deadline is not None and time.monotonic() >= deadline:
                raise LockBusy(
                    f"Lock {self.path} still held by pid {self.owner()} after {timeout}s"
                )
            time.sleep(retry_interval)
