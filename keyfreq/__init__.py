"""
keyfreq - per-context action counters persisted to a shared store.

Concurrent writers in separate processes coordinate through a pid lock
file; every save merges the on-disk history before replacing it.
"""

from .codec import CorruptStore, decode, encode, read_store, write_store
from .config import KeyfreqConfig, get_config, load_config
from .errors import KeyfreqError
from .exclusion import ExclusionFilter
from .lock import LockBusy, LockCoordinator, LockState
from .merge_engine import DuplicateLoad, MergeEngine, WriteFailure
from .metrics import KeyfreqMetrics, get_keyfreq_metrics
from .reporting import (
    RankedList,
    SortOrder,
    filter_by_context,
    group_by_action,
    to_ranked_list,
)
from .session import KeyfreqSession
from .table import CounterKey, CounterTable

__version__ = "0.1.0"

__all__ = [
    "CounterKey",
    "CounterTable",
    "CorruptStore",
    "DuplicateLoad",
    "ExclusionFilter",
    "KeyfreqConfig",
    "KeyfreqError",
    "KeyfreqMetrics",
    "KeyfreqSession",
    "LockBusy",
    "LockCoordinator",
    "LockState",
    "MergeEngine",
    "RankedList",
    "SortOrder",
    "WriteFailure",
    "decode",
    "encode",
    "filter_by_context",
    "get_config",
    "get_keyfreq_metrics",
    "group_by_action",
    "load_config",
    "read_store",
    "to_ranked_list",
    "write_store",
]
