"""
Shared test configuration.

Hypothesis settings:
- CI profile disables example database to prevent "Flaky" errors from stale examples
- Default profile keeps database for local development
"""

import os

import pytest
from hypothesis import HealthCheck, settings
from prometheus_client import CollectorRegistry

from keyfreq.config import KeyfreqConfig
from keyfreq.metrics import KeyfreqMetrics

settings.register_profile(
    "ci",
    database=None,
    suppress_health_check=[HealthCheck.too_slow],
)

settings.register_profile(
    "default",
    suppress_health_check=[HealthCheck.too_slow],
)

settings.load_profile("default")


# ── Test tier markers ─────────────────────────────────────────────────────────
# Usage: pytest -m smoke, pytest -m core, pytest -m concurrency

def pytest_configure(config):
    config.addinivalue_line("markers", "smoke: pure in-memory tests (<10s)")
    config.addinivalue_line("markers", "core: store + lock tests on a temp dir (<15s)")
    config.addinivalue_line("markers", "concurrency: multi-process lock races (<30s)")


# ── Singleton isolation ───────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _reset_keyfreq_singletons(monkeypatch):
    """Fresh config/metrics singletons and no KEYFREQ_* env leaking in."""
    import keyfreq.config as config_mod
    import keyfreq.metrics as metrics_mod

    for name in list(os.environ):
        if name.startswith("KEYFREQ_"):
            monkeypatch.delenv(name)
    monkeypatch.setattr(config_mod, "_config", None)
    monkeypatch.setattr(metrics_mod, "_metrics", KeyfreqMetrics(registry=CollectorRegistry()))
    yield


@pytest.fixture()
def metrics():
    return KeyfreqMetrics(registry=CollectorRegistry())


@pytest.fixture()
def store_path(tmp_path):
    return tmp_path / "keyfreq.store"


@pytest.fixture()
def config(store_path):
    return KeyfreqConfig(
        store_path=str(store_path),
        lock_retry_interval_seconds=0.01,
        lock_timeout_seconds=5.0,
    )
