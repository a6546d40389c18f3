"""
staffquest.api.deps — FastAPI dependency injection
====================================================
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from sqlalchemy import Engine

from staffquest.config import StaffQuestConfig, load_config
from staffquest.database.engine import create_db_engine
from staffquest.services.progression_service import ProgressionEngine

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


@lru_cache(maxsize=1)
def get_config() -> StaffQuestConfig:
    """Load ``STAFFQUEST_CONFIG`` (or ``./config.yaml``).

    An explicitly configured path must exist; a missing default file falls
    back to the built-in tables.
    """
    explicit = os.getenv("STAFFQUEST_CONFIG")
    if explicit:
        return load_config(explicit)
    if not Path(DEFAULT_CONFIG_PATH).exists():
        logger.warning("No %s found — using built-in defaults", DEFAULT_CONFIG_PATH)
        return StaffQuestConfig()
    return load_config(DEFAULT_CONFIG_PATH)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine(statement_timeout_ms=get_config().statement_timeout_ms)


@lru_cache(maxsize=1)
def get_progression_engine() -> ProgressionEngine:
    return ProgressionEngine.from_config(get_engine(), get_config())
