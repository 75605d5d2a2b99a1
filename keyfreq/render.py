"""
Presentation of reporting views (plain text and JSON).
"""

from __future__ import annotations

import json
from collections.abc import Mapping

from .reporting import RankedList


def render_text(ranked: RankedList) -> str:
    """One line per entry: count, share of the total, action."""
    total = ranked.total
    lines = []
    for action, count in ranked.entries:
        share = (100.0 * count / total) if total else 0.0
        lines.append(f"{count:7d}  {share:6.2f}%  {action}")
    lines.append(f"{total:7d}  total")
    return "\n".join(lines) + "\n"


def render_json(table: Mapping) -> str:
    """
    Compact matrix export of a full (context, action) table.

    Contexts and actions get indices in first-seen order over the sorted
    keys, so one export is deterministic for a given table.
    """
    context_index: dict[str, int] = {}
    action_index: dict[str, int] = {}
    counts = []
    total = 0
    for key in sorted(table):
        ci = context_index.setdefault(key.context, len(context_index))
        ai = action_index.setdefault(key.action, len(action_index))
        count = table[key]
        counts.append([ci, ai, count])
        total += count
    doc = {
        "total": total,
        "contexts": list(context_index),
        "actions": list(action_index),
        "counts": counts,
    }
    return json.dumps(doc, ensure_ascii=False, indent=2)
