"""
Exclusion filter - action ids that are never counted.

Checked when incrementing the live table and again when loading a store,
so records of a newly excluded action disappear on the next merge.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional


class ExclusionFilter:
    """Explicit set of action ids plus an optional full-match regex."""

    def __init__(self, actions: Iterable[str] = (), pattern: Optional[str] = None) -> None:
        self._actions: set[str] = set(actions)
        self._pattern: Optional[re.Pattern] = re.compile(pattern) if pattern else None

    @classmethod
    def from_config(cls, config) -> "ExclusionFilter":
        """Build from KeyfreqConfig.excluded_actions (CSV) and excluded_pattern."""
        actions = [a.strip() for a in config.excluded_actions.split(",") if a.strip()]
        return cls(actions, config.excluded_pattern or None)

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(self._actions)

    @property
    def pattern(self) -> Optional[str]:
        return self._pattern.pattern if self._pattern else None

    def add(self, action: str) -> None:
        self._actions.add(action)

    def discard(self, action: str) -> None:
        self._actions.discard(action)

    def excludes(self, action: str) -> bool:
        if action in self._actions:
            return True
        return bool(self._pattern and self._pattern.fullmatch(action))

    def __contains__(self, action: object) -> bool:
        return isinstance(action, str) and self.excludes(action)

    def __repr__(self) -> str:
        return f"ExclusionFilter(actions={sorted(self._actions)!r}, pattern={self.pattern!r})"
