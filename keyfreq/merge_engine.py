"""
Merge Engine - load / merge / write cycles under the store lock.

save() runs the reconcile cycle:

    acquire lock → load store into table → write merged table → clear → release

Blocking saves (must_succeed=True) poll the lock at a fixed interval.
Best-effort saves make one attempt and leave the table alone if the lock
is busy, so the counts wait for the next window.

Failure semantics:
  - The lock is released on every exit path of the locked section.
  - With clear_on_write_failure (default) the table is cleared even when
    the write fails. Counts recorded since the last save are then lost;
    set clear_on_write_failure=False to keep them for the next attempt.
  - A corrupt store aborts the save before writing and leaves the table
    as it was.
  - load() is additive. Loading the same store twice into one table
    within a cycle raises DuplicateLoad instead of double counting.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Union

from .codec import CorruptStore, read_store, write_store
from .config import KeyfreqConfig, get_config
from .errors import KeyfreqError
from .exclusion import ExclusionFilter
from .lock import LockCoordinator
from .metrics import KeyfreqMetrics, get_keyfreq_metrics
from .table import CounterTable

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class WriteFailure(KeyfreqError):
    """The store could not be written. The lock was still released."""
    pass


class DuplicateLoad(KeyfreqError):
    """A store was loaded twice into the same table within one cycle."""
    pass


def _source_id(path: PathLike) -> str:
    return os.path.realpath(os.path.expanduser(str(path)))


class MergeEngine:
    """Reconciles in-memory tables with the shared store file."""

    def __init__(
        self,
        config: Optional[KeyfreqConfig] = None,
        metrics: Optional[KeyfreqMetrics] = None,
        exclusions: Optional[ExclusionFilter] = None,
    ) -> None:
        self._config = config or get_config()
        self._metrics = metrics or get_keyfreq_metrics()
        self.exclusions = exclusions if exclusions is not None else ExclusionFilter.from_config(self._config)
        self.store_path: Path = self._config.store_file
        self.lock = LockCoordinator(
            self._config.lock_file,
            stale_grace_seconds=self._config.stale_lock_grace_seconds,
            metrics=self._metrics,
        )

    # ── load ──────────────────────────────────────────────────────────────

    def load(self, table: CounterTable, source: Optional[PathLike] = None) -> int:
        """
        Add every non-excluded record of the store at source into table.

        Missing store → no-op. Returns the number of counts merged.

        Raises:
            CorruptStore: store content is malformed (table unchanged)
            DuplicateLoad: source was already loaded into table this cycle
        """
        source = Path(source) if source is not None else self.store_path
        source_id = _source_id(source)
        if table.was_loaded(source_id):
            raise DuplicateLoad(f"{source} already loaded into this table since its last clear")

        try:
            records = read_store(source)
        except CorruptStore:
            self._metrics.inc_corrupt_store()
            logger.error(f"[STORE] Corrupt store at {source}, load aborted")
            raise

        table.mark_loaded(source_id)
        merged = 0
        excluded = 0
        for key, count in records:
            if self.exclusions.excludes(key.action):
                excluded += 1
                continue
            table.add(key, count)
            merged += count

        self._metrics.inc_load_records("merged", len(records) - excluded)
        self._metrics.inc_load_records("excluded", excluded)
        logger.debug(
            f"[MERGE] Loaded {len(records)} records from {source} "
            f"(merged={merged} excluded_records={excluded})"
        )
        return merged

    # ── lock helpers ──────────────────────────────────────────────────────

    def _acquire(self, must_succeed: bool) -> bool:
        try:
            return self.lock.acquire(
                blocking=must_succeed,
                retry_interval=self._config.lock_retry_interval_seconds,
                timeout=self._config.lock_timeout_seconds,
            )
        except OSError as exc:
            logger.error(f"[LOCK] Cannot create {self.lock.path}: {exc}")
            raise WriteFailure(f"Cannot lock {self.store_path}: {exc}") from exc

    @contextmanager
    def locked(self, must_succeed: bool = True) -> Generator[bool, None, None]:
        """
        Hold the store lock for the body.

        Yields True when the lock is held. A best-effort attempt that finds
        the lock busy yields False and the body should do nothing.
        """
        if not self._acquire(must_succeed):
            yield False
            return
        try:
            yield True
        finally:
            self.lock.release()

    # ── save ──────────────────────────────────────────────────────────────

    def save(
        self,
        table: CounterTable,
        must_succeed: bool = False,
        destination: Optional[PathLike] = None,
    ) -> bool:
        """
        Persist table and clear it.

        For the default store the persisted history is loaded into table
        first, unless table already loaded it this cycle. Any other
        destination is written as-is (merge_stores assembles the full
        content itself).

        Returns:
            True if table was written or was empty,
            False if a best-effort save found the lock busy

        Raises:
            LockBusy: blocking save exceeded lock_timeout_seconds
            CorruptStore: reconcile load failed (lock released, table unchanged)
            WriteFailure: writing the store failed (lock released)
        """
        if not table:
            self._metrics.inc_save("empty")
            return True

        destination = Path(destination) if destination is not None else self.store_path
        store_id = _source_id(self.store_path)
        # a table that already holds the default store this cycle is reconciled
        reconcile = _source_id(destination) == store_id and not table.was_loaded(store_id)

        with self.locked(must_succeed) as held:
            if not held:
                self._metrics.inc_save("skipped")
                logger.debug(f"[MERGE] Lock busy, deferring save of {len(table)} keys")
                return False

            checkpoint = table.checkpoint()
            try:
                with self._metrics.time_save():
                    try:
                        if reconcile:
                            self.load(table, destination)
                        records = sorted(table.items())
                        write_store(destination, records)
                    except OSError as exc:
                        logger.error(f"[STORE] Update of {destination} failed: {exc}")
                        raise WriteFailure(f"Cannot update {destination}: {exc}") from exc
            except CorruptStore:
                # nothing was written; live counts wait for a readable store
                self._metrics.inc_save("failed")
                table.rollback(checkpoint)
                raise
            except Exception:
                self._metrics.inc_save("failed")
                if self._config.clear_on_write_failure:
                    table.clear()
                else:
                    # drop the reconciled history, keep only our own counts
                    table.rollback(checkpoint)
                raise
            table.clear()

        self._metrics.inc_save("written")
        logger.info(f"[MERGE] Saved {len(records)} keys to {destination}")
        return True

    # ── administrative operations ─────────────────────────────────────────

    def merge_stores(self, path_a: PathLike, path_b: PathLike, path_c: PathLike) -> None:
        """
        Write the union of stores a and b, counts summed per key, to c.

        When c is the default store its current content is merged in as
        well (the usual save reconcile), unless a or b already is it.

        Passing the same store as both a and b raises DuplicateLoad rather
        than writing its counts doubled into c.
        """
        table = CounterTable(self.exclusions)
        self.load(table, path_a)
        self.load(table, path_b)
        self.save(table, must_succeed=True, destination=path_c)
        logger.info(f"[MERGE] Merged {path_a} + {path_b} into {path_c}")

    def reset(self, table: CounterTable) -> None:
        """
        Clear table and delete the default store under the lock.

        A LockBusy timeout leaves both the table and the store untouched.
        """
        with self.locked(must_succeed=True):
            table.clear()
            try:
                self.store_path.unlink()
                logger.warning(f"[MERGE] Store {self.store_path} deleted by reset")
            except FileNotFoundError:
                pass

    def read_view(self, table: CounterTable) -> CounterTable:
        """
        Fresh table holding table's current counts plus the persisted store.

        Takes no lock and mutates nothing; meant for reporting.
        """
        view = CounterTable(self.exclusions)
        view.merge(table.snapshot())
        self.load(view)
        return view
