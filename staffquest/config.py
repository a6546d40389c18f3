"""
staffquest.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for store identity, the local time zone used for
calendar days and shift windows, concurrency tuning, and optional
overrides of the progression tables.  Secrets and connection strings
(``DATABASE_URL``) stay in the environment.

Usage::

    from staffquest.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.store_name)        # "Chaoxin Store"
    print(cfg.tz)                # zoneinfo.ZoneInfo(key='Asia/Taipei')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from staffquest.engine.rules import ProgressionRules


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StaffQuestConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    store_name: str = "StaffQuest"
    default_display_name: str = "staff"

    # Calendar
    timezone: str = "Asia/Taipei"

    # Concurrency / storage
    lock_timeout_seconds: float = 5.0
    max_retries: int = 3
    statement_timeout_ms: int = 5000

    # API
    api_port: int = 8000

    # Progression tables (validated)
    rules: ProgressionRules = field(default_factory=ProgressionRules)

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown time zone: {self.timezone!r}") from None
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def config_from_mapping(raw: dict | None) -> StaffQuestConfig:
    """Build a :class:`StaffQuestConfig` from an already-parsed mapping.

    Missing keys take the dataclass defaults.  Raises ``ValueError`` if a
    value or progression table is invalid.
    """
    raw = raw or {}
    defaults = StaffQuestConfig.__dataclass_fields__
    return StaffQuestConfig(
        store_name=str(raw.get("store_name", defaults["store_name"].default)),
        default_display_name=str(
            raw.get("default_display_name", defaults["default_display_name"].default)
        ),
        timezone=str(raw.get("timezone", defaults["timezone"].default)),
        lock_timeout_seconds=float(
            raw.get("lock_timeout_seconds", defaults["lock_timeout_seconds"].default)
        ),
        max_retries=int(raw.get("max_retries", defaults["max_retries"].default)),
        statement_timeout_ms=int(
            raw.get("statement_timeout_ms", defaults["statement_timeout_ms"].default)
        ),
        api_port=int(raw.get("api_port", defaults["api_port"].default)),
        rules=ProgressionRules.from_mapping(raw.get("progression")),
    )


def load_config(path: str | Path = "config.yaml") -> StaffQuestConfig:
    """Read *path* and return a :class:`StaffQuestConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a setting or progression table fails validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")
    return config_from_mapping(raw)
