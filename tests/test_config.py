"""
Unit tests for KeyfreqConfig loading and fallback.
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from keyfreq.config import KeyfreqConfig, get_config, load_config
from keyfreq.metrics import get_keyfreq_metrics

pytestmark = pytest.mark.smoke


class TestDefaults:

    def test_defaults(self):
        config = KeyfreqConfig()
        assert config.store_path == "~/.keyfreq"
        assert config.lock_timeout_seconds is None
        assert config.clear_on_write_failure is True

    def test_paths_expand_home(self):
        config = KeyfreqConfig()
        assert config.store_file == Path(os.path.expanduser("~/.keyfreq"))
        assert str(config.lock_file) == os.path.expanduser("~/.keyfreq") + ".lock"

    def test_explicit_lock_path(self, tmp_path):
        config = KeyfreqConfig(store_path=str(tmp_path / "s"), lock_path=str(tmp_path / "l"))
        assert config.lock_file == tmp_path / "l"


class TestEnv:

    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KEYFREQ_STORE_PATH", str(tmp_path / "store"))
        monkeypatch.setenv("KEYFREQ_LOCK_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("KEYFREQ_EXCLUDED_ACTIONS", "a,b")
        config = KeyfreqConfig()
        assert config.store_file == tmp_path / "store"
        assert config.lock_timeout_seconds == 2.5
        assert config.excluded_actions == "a,b"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("lock_retry_interval_seconds", 0),
            ("lock_timeout_seconds", -1),
            ("stale_lock_grace_seconds", -0.5),
            ("excluded_pattern", "(unclosed"),
            ("store_path", "  "),
        ],
    )
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            KeyfreqConfig(**{field: value})


class TestSingleton:

    def test_load_config_falls_back_on_invalid_env(self, monkeypatch):
        monkeypatch.setenv("KEYFREQ_LOCK_RETRY_INTERVAL_SECONDS", "-1")
        config = load_config()
        assert config.lock_retry_interval_seconds == 0.1
        assert get_keyfreq_metrics().snapshot()["config_fallback_total"] == 1

    def test_get_config_is_cached(self):
        assert get_config() is get_config()
