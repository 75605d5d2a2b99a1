"""
Keyfreq session - owns the live table for one host process.

Created at process start and handed to the host's callbacks:

    session = KeyfreqSession()
    on_action   → session.record(context, action)
    on_timer    → session.autosave()
    on_shutdown → session.close()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from .config import KeyfreqConfig, get_config
from .exclusion import ExclusionFilter
from .merge_engine import MergeEngine
from .metrics import KeyfreqMetrics, get_keyfreq_metrics
from .reporting import RankedList, SortOrder, filter_by_context, group_by_action, to_ranked_list
from .table import CounterTable

logger = logging.getLogger(__name__)


class KeyfreqSession:
    """Live counter table plus the engine that persists it."""

    def __init__(
        self,
        config: Optional[KeyfreqConfig] = None,
        metrics: Optional[KeyfreqMetrics] = None,
    ) -> None:
        self.config = config or get_config()
        self._metrics = metrics or get_keyfreq_metrics()
        self.exclusions = ExclusionFilter.from_config(self.config)
        self.table = CounterTable(self.exclusions)
        self.engine = MergeEngine(self.config, self._metrics, self.exclusions)
        self._closed = False

    def __enter__(self) -> "KeyfreqSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── hooks ─────────────────────────────────────────────────────────────

    def record(self, context: str, action: str) -> None:
        """Increment hook: one call per observed action."""
        counted = self.table.increment(context, action)
        self._metrics.inc_record("counted" if counted else "excluded")

    def autosave(self) -> bool:
        """Best-effort save for periodic timers. Never blocks."""
        return self.engine.save(self.table, must_succeed=False)

    def save_now(self) -> bool:
        """Blocking save to the default store."""
        return self.engine.save(self.table, must_succeed=True)

    def close(self) -> None:
        """Shutdown hook: blocking save, once."""
        if self._closed:
            return
        self._closed = True
        self.save_now()
        logger.debug("[MERGE] Session closed")

    # ── administrative ────────────────────────────────────────────────────

    def reset(self) -> None:
        """Forget the live counts and delete the store."""
        self.engine.reset(self.table)

    def merge_stores(
        self,
        path_a: Union[str, Path],
        path_b: Union[str, Path],
        path_c: Union[str, Path],
    ) -> None:
        self.engine.merge_stores(path_a, path_b, path_c)

    # ── reporting ─────────────────────────────────────────────────────────

    def view(self) -> CounterTable:
        """Live counts plus persisted history, as a separate table."""
        return self.engine.read_view(self.table)

    def ranked(
        self,
        context: Optional[str] = None,
        order: SortOrder = SortOrder.DESCENDING,
        threshold: Optional[int] = None,
    ) -> RankedList:
        """Per-action ranking, for one context or across all of them."""
        view = self.view()
        if context is not None:
            actions = filter_by_context(view, context)
        else:
            actions = group_by_action(view)
        return to_ranked_list(actions, order, threshold)
