"""
Keyfreq Metrics - Prometheus-compatible observability.

All metrics use the `keyfreq_` namespace prefix.

Tracks:
- keyfreq_record_total{outcome}: increments seen by the live table
- keyfreq_load_records_total{outcome}: store records merged or dropped on load
- keyfreq_save_total{outcome}: save attempts by result
- keyfreq_save_duration_seconds: time spent inside the locked section
- keyfreq_lock_contention_total: attempts that found another owner
- keyfreq_stale_lock_healed_total: lock files removed for dead owners
- keyfreq_corrupt_store_total: stores that failed to decode
- keyfreq_config_fallback_total: invalid config replaced by defaults
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Generator

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

RECORD_OUTCOMES = ("counted", "excluded")
LOAD_OUTCOMES = ("merged", "excluded")
SAVE_OUTCOMES = ("written", "empty", "skipped", "failed")


class KeyfreqMetrics:
    """
    Prometheus metrics for the counter store.

    Uses an instance-level CollectorRegistry for test isolation.
    snapshot() and reset() are for tests and debugging.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()
        self._init_metrics()

    def _init_metrics(self) -> None:
        """Register all prometheus metrics on the current registry."""
        self._record_total = Counter(
            "keyfreq_record_total",
            "Live table increments",
            labelnames=["outcome"],
            registry=self._registry,
        )
        self._load_records_total = Counter(
            "keyfreq_load_records_total",
            "Store records processed on load",
            labelnames=["outcome"],
            registry=self._registry,
        )
        self._save_total = Counter(
            "keyfreq_save_total",
            "Save attempts",
            labelnames=["outcome"],
            registry=self._registry,
        )
        self._save_duration = Histogram(
            "keyfreq_save_duration_seconds",
            "Duration of the locked load-merge-write section",
            registry=self._registry,
        )
        self._lock_contention_total = Counter(
            "keyfreq_lock_contention_total",
            "Lock attempts that found another owner",
            registry=self._registry,
        )
        self._stale_lock_healed_total = Counter(
            "keyfreq_stale_lock_healed_total",
            "Stale lock files removed",
            registry=self._registry,
        )
        self._corrupt_store_total = Counter(
            "keyfreq_corrupt_store_total",
            "Stores that failed to decode",
            registry=self._registry,
        )
        self._config_fallback_total = Counter(
            "keyfreq_config_fallback_total",
            "Config validation fallback count",
            registry=self._registry,
        )

    # ── record / load ─────────────────────────────────────────────────────

    def inc_record(self, outcome: str) -> None:
        """Increment record_total. outcome: 'counted' | 'excluded'."""
        if outcome not in RECORD_OUTCOMES:
            logger.warning(f"[METRICS] Invalid record outcome: {outcome}")
            return
        self._record_total.labels(outcome=outcome).inc()

    def inc_load_records(self, outcome: str, count: int = 1) -> None:
        """Increment load_records_total. outcome: 'merged' | 'excluded'."""
        if outcome not in LOAD_OUTCOMES:
            logger.warning(f"[METRICS] Invalid load outcome: {outcome}")
            return
        if count <= 0:
            return
        self._load_records_total.labels(outcome=outcome).inc(count)
        logger.debug(f"[METRICS] load_records_total{{outcome={outcome}}} += {count}")

    # ── save ──────────────────────────────────────────────────────────────

    def inc_save(self, outcome: str) -> None:
        """Increment save_total. outcome: written | empty | skipped | failed."""
        if outcome not in SAVE_OUTCOMES:
            logger.warning(f"[METRICS] Invalid save outcome: {outcome}")
            return
        self._save_total.labels(outcome=outcome).inc()
        logger.debug(f"[METRICS] save_total{{outcome={outcome}}} += 1")

    def observe_save_duration(self, duration_seconds: float) -> None:
        self._save_duration.observe(duration_seconds)

    @contextmanager
    def time_save(self) -> Generator[None, None, None]:
        """Context manager to time the locked section of a save."""
        start = time.monotonic()
        try:
            yield
        finally:
            self.observe_save_duration(time.monotonic() - start)

    # ── lock / store health ───────────────────────────────────────────────

    def inc_lock_contention(self) -> None:
        self._lock_contention_total.inc()

    def inc_stale_lock_healed(self) -> None:
        self._stale_lock_healed_total.inc()

    def inc_corrupt_store(self) -> None:
        self._corrupt_store_total.inc()

    def inc_config_fallback(self) -> None:
        self._config_fallback_total.inc()

    # ── Snapshot (test/debug) ─────────────────────────────────────────────

    def snapshot(self) -> Dict:
        """Return current metric values as a plain dict."""
        return {
            "record_total": {
                o: self._get_counter_value(self._record_total, {"outcome": o})
                for o in RECORD_OUTCOMES
            },
            "load_records_total": {
                o: self._get_counter_value(self._load_records_total, {"outcome": o})
                for o in LOAD_OUTCOMES
            },
            "save_total": {
                o: self._get_counter_value(self._save_total, {"outcome": o})
                for o in SAVE_OUTCOMES
            },
            "save_duration_seconds": self._snapshot_histogram(self._save_duration),
            "lock_contention_total": self._get_plain_counter_value(self._lock_contention_total),
            "stale_lock_healed_total": self._get_plain_counter_value(self._stale_lock_healed_total),
            "corrupt_store_total": self._get_plain_counter_value(self._corrupt_store_total),
            "config_fallback_total": self._get_plain_counter_value(self._config_fallback_total),
        }

    @staticmethod
    def _get_counter_value(counter: Counter, labels: Dict[str, str]) -> int:
        """Read a labeled counter. Returns 0 if the label combo was never used."""
        return int(counter.labels(**labels)._value.get())

    @staticmethod
    def _get_plain_counter_value(counter: Counter) -> int:
        return int(counter._value.get())

    @staticmethod
    def _snapshot_histogram(histogram: Histogram) -> Dict:
        """Read count and total from an unlabeled histogram."""
        count = 0.0
        for sample in histogram.collect()[0].samples:
            if sample.name.endswith("_count"):
                count = sample.value
                break
        return {
            "count": int(count),
            "total_seconds": round(histogram._sum.get(), 6),
        }

    # ── Reset (test only) ─────────────────────────────────────────────────

    def reset(self) -> None:
        """Reset all metrics by creating a fresh CollectorRegistry."""
        self._registry = CollectorRegistry()
        self._init_metrics()

    # ── Prometheus exposition ─────────────────────────────────────────────

    def generate_metrics(self) -> bytes:
        """Generate Prometheus text exposition format output."""
        return generate_latest(self._registry)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry


_metrics = KeyfreqMetrics()


def get_keyfreq_metrics() -> KeyfreqMetrics:
    """Get singleton KeyfreqMetrics instance."""
    return _metrics
