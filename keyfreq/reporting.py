"""
Reporting views over a counter table.

All functions take a snapshot-like mapping and return new objects; the
live table is never mutated. Context-less tables are plain
dict[action, count].
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, NamedTuple, Optional

from .table import CounterKey


class SortOrder(str, Enum):
    DESCENDING = "desc"
    ASCENDING = "asc"
    UNSORTED = "none"


class RankedList(NamedTuple):
    """(total, entries). total counts every entry, filtered or not."""
    total: int
    entries: list[tuple[Any, int]]


def group_by_action(table: Mapping) -> dict[str, int]:
    """Sum counts per action across all contexts."""
    grouped: dict[str, int] = {}
    for key, count in table.items():
        grouped[key.action] = grouped.get(key.action, 0) + count
    return grouped


def filter_by_context(table: Mapping, context: str) -> dict[str, int]:
    """Counts per action for records whose context matches."""
    filtered: dict[str, int] = {}
    for key, count in table.items():
        if key.context == context:
            filtered[key.action] = filtered.get(key.action, 0) + count
    return filtered


def _passes(count: int, threshold: Optional[int]) -> bool:
    if not threshold:
        return True
    if threshold > 0:
        return count > threshold
    return count < -threshold


def to_ranked_list(
    table: Mapping,
    order: SortOrder = SortOrder.DESCENDING,
    threshold: Optional[int] = None,
) -> RankedList:
    """
    Rank table entries by count.

    threshold: None/0 keeps everything, positive keeps count > threshold,
    negative keeps count < |threshold|. The total ignores the threshold.
    Ties keep iteration order (sorted() is stable).
    """
    order = SortOrder(order)
    total = sum(table.values())
    entries = [(key, count) for key, count in table.items() if _passes(count, threshold)]
    if order is SortOrder.DESCENDING:
        entries.sort(key=lambda e: e[1], reverse=True)
    elif order is SortOrder.ASCENDING:
        entries.sort(key=lambda e: e[1])
    return RankedList(total, entries)


def contexts(table: Mapping) -> list[str]:
    """Distinct contexts present in a full (context, action) table, sorted."""
    return sorted({key.context for key in table if isinstance(key, CounterKey)})
