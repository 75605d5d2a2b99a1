"""
Counter table - in-memory additive map (context, action) → count.

Lives in a single process and is mutated from a single logical thread
(the host's event/timer callbacks), so no internal locking is needed.
Persisting and reconciling with the shared store is MergeEngine's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Optional

from .exclusion import ExclusionFilter


@dataclass(frozen=True, order=True)
class CounterKey:
    """Immutable (context, action) pair used as the table key."""
    context: str
    action: str


class CounterTable(Mapping):
    """
    Additive counter map.

    Reads go through the Mapping interface; the only mutations are
    increment / add / merge / clear. Counts never go down.
    """

    def __init__(self, exclusions: Optional[ExclusionFilter] = None) -> None:
        self._counts: dict[CounterKey, int] = {}
        self._exclusions = exclusions if exclusions is not None else ExclusionFilter()
        # store paths merged in since the last clear(), see MergeEngine.load
        self._loaded_sources: set[str] = set()

    # ── Mapping interface ─────────────────────────────────────────────────

    def __getitem__(self, key: CounterKey) -> int:
        return self._counts[key]

    def __iter__(self) -> Iterator[CounterKey]:
        return iter(self._counts)

    def __len__(self) -> int:
        return len(self._counts)

    def __repr__(self) -> str:
        return f"CounterTable({self._counts!r})"

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    # ── Mutation ──────────────────────────────────────────────────────────

    def increment(self, context: str, action: str) -> bool:
        """Count one occurrence. Returns False when the action is excluded."""
        if self._exclusions.excludes(action):
            return False
        key = CounterKey(context, action)
        self._counts[key] = self._counts.get(key, 0) + 1
        return True

    def add(self, key: CounterKey, count: int) -> None:
        """Add a non-negative count under key."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        self._counts[key] = self._counts.get(key, 0) + count

    def merge(self, other: Mapping) -> None:
        """Pointwise sum of other into self. other is left untouched."""
        for key, count in other.items():
            self.add(key, count)

    def clear(self) -> None:
        self._counts.clear()
        self._loaded_sources.clear()

    def snapshot(self) -> Mapping:
        """Read-only copy, unaffected by later increments."""
        return MappingProxyType(dict(self._counts))

    # ── Load guard ────────────────────────────────────────────────────────

    def mark_loaded(self, source: str) -> bool:
        """
        Record that source was merged into this table.

        Returns False if it was already merged since the last clear().
        """
        if source in self._loaded_sources:
            return False
        self._loaded_sources.add(source)
        return True

    def was_loaded(self, source: str) -> bool:
        return source in self._loaded_sources

    def checkpoint(self) -> tuple[dict, frozenset]:
        """Opaque copy of the table state for rollback()."""
        return dict(self._counts), frozenset(self._loaded_sources)

    def rollback(self, checkpoint: tuple[dict, frozenset]) -> None:
        counts, sources = checkpoint
        self._counts = dict(counts)
        self._loaded_sources = set(sources)
