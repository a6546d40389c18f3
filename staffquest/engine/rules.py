"""
staffquest.engine.rules — Validated Progression Rule Bundle
=============================================================

Gathers the static tables the engine consults (levels, XP rewards, badge
catalog, shift windows and hidden shift badges) into one immutable
object.  Built once at startup from :mod:`staffquest.constants`, with any
``progression:`` overrides from ``config.yaml`` merged on top, and
validated before the first trigger is processed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from staffquest.constants import (
    DEFAULT_BADGES,
    DEFAULT_LEVELS,
    DEFAULT_SHIFT_BADGES,
    DEFAULT_SHIFT_WINDOWS,
    DEFAULT_STREAK_MILESTONES,
)
from staffquest.engine.badges import BadgeCatalog
from staffquest.engine.events import XPRewards
from staffquest.engine.levels import LevelTable
from staffquest.engine.streaks import ShiftWindows

__all__ = ["ProgressionRules"]

SHIFT_TRACKS = ("night", "early")


def _default_shift_badges() -> dict[str, dict[int, str]]:
    return {track: dict(codes) for track, codes in DEFAULT_SHIFT_BADGES.items()}


@dataclass(frozen=True)
class ProgressionRules:
    levels: LevelTable = field(default_factory=lambda: LevelTable.from_rows(DEFAULT_LEVELS))
    rewards: XPRewards = field(default_factory=XPRewards)
    badges: BadgeCatalog = field(default_factory=lambda: BadgeCatalog.from_rows(DEFAULT_BADGES))
    windows: ShiftWindows = field(default_factory=ShiftWindows)
    shift_badges: Mapping[str, Mapping[int, str]] = field(default_factory=_default_shift_badges)

    def __post_init__(self) -> None:
        for track, codes in self.shift_badges.items():
            if track not in SHIFT_TRACKS:
                raise ValueError(f"Unknown shift track {track!r} (expected one of {SHIFT_TRACKS})")
            for threshold, code in codes.items():
                if threshold <= 0:
                    raise ValueError(f"Shift badge {code!r}: threshold must be positive")
                if code not in self.badges:
                    raise ValueError(f"Shift badge {code!r} is not in the badge catalog")

    @classmethod
    def from_mapping(cls, raw: Mapping | None) -> ProgressionRules:
        """Build rules from a ``progression:`` config mapping.

        Every key is optional; missing keys fall back to the defaults in
        :mod:`staffquest.constants`.  Raises ``ValueError`` on any invalid
        table.
        """
        raw = raw or {}
        windows_raw = {**DEFAULT_SHIFT_WINDOWS, **raw.get("shift_windows", {})}
        shift_raw = raw.get("shift_badges", DEFAULT_SHIFT_BADGES)
        return cls(
            levels=LevelTable.from_rows(raw.get("levels", DEFAULT_LEVELS)),
            rewards=XPRewards.from_mapping(
                raw.get("xp_rewards", {}),
                raw.get("streak_milestones", DEFAULT_STREAK_MILESTONES),
            ),
            badges=BadgeCatalog.from_rows(raw.get("badges", DEFAULT_BADGES)),
            windows=ShiftWindows(
                night=tuple(windows_raw["night"]),
                early=tuple(windows_raw["early"]),
            ),
            shift_badges={
                str(track): {int(k): str(v) for k, v in codes.items()}
                for track, codes in shift_raw.items()
            },
        )

    def shift_badge_codes(self, track: str, streak: int) -> list[str]:
        """Hidden badge codes a *track* streak of *streak* days qualifies for."""
        codes = self.shift_badges.get(track, {})
        return [code for threshold, code in sorted(codes.items()) if streak >= threshold]
