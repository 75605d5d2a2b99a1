"""
Keyfreq Configuration - store paths, exclusions and lock timing.

Loads from environment variables with KEYFREQ_ prefix.
Invalid config → fallback to defaults + metric + WARNING log (never raises).
"""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class KeyfreqConfig(BaseSettings):
    """
    Keyfreq configuration.

    All fields have safe defaults so the store works without any
    KEYFREQ_* env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="KEYFREQ_",
        env_file=".env",
        extra="ignore",
    )

    # Store + lock locations ("~" is expanded)
    store_path: str = "~/.keyfreq"
    lock_path: str = ""  # empty → store_path + ".lock"

    # Exclusions: comma-separated ids and an optional full-match regex
    excluded_actions: str = ""
    excluded_pattern: str = ""

    # Lock timing
    lock_retry_interval_seconds: float = 0.1
    lock_timeout_seconds: Optional[float] = None  # None → blocking saves wait forever
    stale_lock_grace_seconds: float = 2.0

    # False → keep counts when the locked section of a save fails
    clear_on_write_failure: bool = True

    # ── Validators ────────────────────────────────────────────────────────

    @field_validator("store_path")
    @classmethod
    def _validate_store_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("store_path must not be empty")
        return v

    @field_validator("excluded_pattern")
    @classmethod
    def _validate_excluded_pattern(cls, v: str) -> str:
        if v:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"excluded_pattern is not a valid regex: {exc}")
        return v

    @field_validator("lock_retry_interval_seconds")
    @classmethod
    def _validate_retry_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"lock_retry_interval_seconds must be > 0, got {v}")
        return v

    @field_validator("lock_timeout_seconds")
    @classmethod
    def _validate_lock_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"lock_timeout_seconds must be > 0 when set, got {v}")
        return v

    @field_validator("stale_lock_grace_seconds")
    @classmethod
    def _validate_stale_grace(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"stale_lock_grace_seconds must be >= 0, got {v}")
        return v

    # ── Computed helpers ──────────────────────────────────────────────────

    @property
    def store_file(self) -> Path:
        return Path(os.path.expanduser(self.store_path))

    @property
    def lock_file(self) -> Path:
        if self.lock_path:
            return Path(os.path.expanduser(self.lock_path))
        return Path(os.path.expanduser(self.store_path + ".lock"))


# ── Singleton with fallback ───────────────────────────────────────────────────

_config: Optional[KeyfreqConfig] = None

_FALLBACK_DEFAULTS = dict(
    store_path="~/.keyfreq",
    lock_path="",
    excluded_actions="",
    excluded_pattern="",
    lock_retry_interval_seconds=0.1,
    lock_timeout_seconds=None,
    stale_lock_grace_seconds=2.0,
    clear_on_write_failure=True,
)


def load_config() -> KeyfreqConfig:
    """
    Load KeyfreqConfig from env. On failure → fallback defaults + metric + log.
    """
    global _config
    try:
        _config = KeyfreqConfig()
        logger.info(
            f"[CONFIG] Config loaded: store={_config.store_file} lock={_config.lock_file}"
        )
    except ValidationError as exc:
        logger.warning(f"[CONFIG] Config load failed, using defaults: {exc}")
        _config = KeyfreqConfig.model_construct(**_FALLBACK_DEFAULTS)
        from .metrics import get_keyfreq_metrics
        get_keyfreq_metrics().inc_config_fallback()
    return _config


def get_config() -> KeyfreqConfig:
    """Get current KeyfreqConfig singleton. Loads on first call."""
    global _config
    if _config is None:
        return load_config()
    return _config
