"""
staffquest.engine.streaks — Streak Calculator
===============================================

Pure function: previous streak counters + a timezone-aware ``now`` →
new counters.  No DB I/O.

Three tracks share one continuity rule (exactly one calendar day since the
last check-in continues a streak, anything else restarts it):

* ``streak_days`` — every check-in.
* ``night_streak`` — check-ins whose local hour falls in the night window.
* ``early_streak`` — check-ins whose local hour falls in the early window.

A check-in outside a shift window resets that shift's track to 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo

from staffquest.constants import DEFAULT_SHIFT_WINDOWS
from staffquest.errors import InvalidArgument

__all__ = ["ShiftWindows", "StreakResult", "StreakState", "compute_streaks"]


@dataclass(frozen=True, slots=True)
class ShiftWindows:
    """Half-open local hour ranges ``[start, end)``."""

    night: tuple[int, int] = DEFAULT_SHIFT_WINDOWS["night"]
    early: tuple[int, int] = DEFAULT_SHIFT_WINDOWS["early"]

    def __post_init__(self) -> None:
        for name, (start, end) in (("night", self.night), ("early", self.early)):
            if not 0 <= start < end <= 24:
                raise ValueError(f"Invalid {name} window [{start}, {end})")

    def is_night(self, hour: int) -> bool:
        return self.night[0] <= hour < self.night[1]

    def is_early(self, hour: int) -> bool:
        return self.early[0] <= hour < self.early[1]


@dataclass(frozen=True, slots=True)
class StreakState:
    """Counters as persisted before this check-in."""

    last_checkin_date: date | None = None
    streak_days: int = 0
    night_streak: int = 0
    early_streak: int = 0


@dataclass(frozen=True, slots=True)
class StreakResult:
    already_checked_in_today: bool
    today: date
    streak_days: int
    night_streak: int
    early_streak: int
    is_night_shift: bool
    is_early_shift: bool


def _advance(previous: int, in_window: bool, consecutive: bool) -> int:
    if not in_window:
        return 0
    return previous + 1 if consecutive else 1


def compute_streaks(
    prev: StreakState,
    now: datetime,
    tz: tzinfo,
    windows: ShiftWindows | None = None,
) -> StreakResult:
    """Advance streak counters for a check-in at *now*.

    A second check-in on the same local calendar day returns
    ``already_checked_in_today=True`` with every counter unchanged.
    """
    if now.tzinfo is None or now.utcoffset() is None:
        raise InvalidArgument("Check-in timestamp must be timezone-aware", operation="check_in")

    windows = windows or ShiftWindows()
    local = now.astimezone(tz)
    today = local.date()
    hour = local.hour
    is_night = windows.is_night(hour)
    is_early = windows.is_early(hour)

    if prev.last_checkin_date == today:
        return StreakResult(
            already_checked_in_today=True,
            today=today,
            streak_days=prev.streak_days,
            night_streak=prev.night_streak,
            early_streak=prev.early_streak,
            is_night_shift=is_night,
            is_early_shift=is_early,
        )

    # First-ever check-in has no gap → never consecutive
    consecutive = (
        prev.last_checkin_date is not None
        and (today - prev.last_checkin_date).days == 1
    )

    return StreakResult(
        already_checked_in_today=False,
        today=today,
        streak_days=prev.streak_days + 1 if consecutive else 1,
        night_streak=_advance(prev.night_streak, is_night, consecutive),
        early_streak=_advance(prev.early_streak, is_early, consecutive),
        is_night_shift=is_night,
        is_early_shift=is_early,
    )
