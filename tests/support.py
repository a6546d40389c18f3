"""
tests/support.py — Shared helpers for the test modules
========================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

TAIPEI = ZoneInfo("Asia/Taipei")


def local(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> datetime:
    """An aware Asia/Taipei datetime, the zone every engine fixture uses."""
    return datetime(year, month, day, hour, minute, tzinfo=TAIPEI)


class FixedClock:
    """Settable clock injected into ``ProgressionEngine``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now
