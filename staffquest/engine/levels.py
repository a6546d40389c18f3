"""
staffquest.engine.levels — Level Table
========================================

Ordered, contiguous XP tiers.  Pure lookup, no I/O.

A table is validated once at construction; lookups afterwards trust it::

    table = LevelTable.from_rows(DEFAULT_LEVELS)
    table.resolve_level(105)   # → 2
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

__all__ = ["LevelProgress", "LevelTable", "LevelTier"]


@dataclass(frozen=True, slots=True)
class LevelTier:
    """One row of the level table.  ``max_xp=None`` means unbounded."""

    level: int
    name: str
    min_xp: int
    max_xp: int | None = None


@dataclass(frozen=True, slots=True)
class LevelProgress:
    """Where a user stands inside their current tier."""

    level: int
    name: str
    progress_percent: int
    xp_to_next_level: int
    next_level: int | None
    next_level_name: str | None
    next_level_min_xp: int | None


class LevelTable:
    """Immutable, validated sequence of :class:`LevelTier`."""

    __slots__ = ("_tiers",)

    def __init__(self, tiers: Sequence[LevelTier]) -> None:
        tiers = tuple(tiers)
        _validate(tiers)
        self._tiers = tiers

    @classmethod
    def from_rows(cls, rows: Iterable[dict]) -> LevelTable:
        """Build from loosely-typed mappings (constants or YAML)."""
        tiers = []
        for row in rows:
            max_xp = row.get("max_xp")
            tiers.append(LevelTier(
                level=int(row["level"]),
                name=str(row["name"]),
                min_xp=int(row["min_xp"]),
                max_xp=int(max_xp) if max_xp is not None else None,
            ))
        return cls(tiers)

    @property
    def tiers(self) -> tuple[LevelTier, ...]:
        return self._tiers

    @property
    def max_level(self) -> int:
        return self._tiers[-1].level

    def __len__(self) -> int:
        return len(self._tiers)

    def __iter__(self):
        return iter(self._tiers)

    def resolve_level(self, total_xp: int) -> int:
        """Greatest level whose ``min_xp <= total_xp``."""
        if total_xp < 0:
            raise ValueError(f"total_xp must be >= 0, got {total_xp}")
        level = self._tiers[0].level
        for tier in self._tiers:
            if tier.min_xp <= total_xp:
                level = tier.level
            else:
                break
        return level

    def tier(self, level: int) -> LevelTier:
        # Levels are 1..N so the index is level - 1
        if not 1 <= level <= len(self._tiers):
            raise KeyError(f"Unknown level {level}")
        return self._tiers[level - 1]

    def next_tier(self, level: int) -> LevelTier | None:
        if level >= self.max_level:
            return None
        return self._tiers[level]

    def name_for(self, level: int) -> str:
        return self.tier(level).name

    def progress(self, total_xp: int) -> LevelProgress:
        """Percentage through the current tier (0 at max level)."""
        level = self.resolve_level(total_xp)
        current = self.tier(level)
        nxt = self.next_tier(level)
        if nxt is None:
            return LevelProgress(
                level=level,
                name=current.name,
                progress_percent=0,
                xp_to_next_level=0,
                next_level=None,
                next_level_name=None,
                next_level_min_xp=None,
            )

        span = nxt.min_xp - current.min_xp
        percent = min(100, (total_xp - current.min_xp) * 100 // span)
        return LevelProgress(
            level=level,
            name=current.name,
            progress_percent=percent,
            xp_to_next_level=nxt.min_xp - total_xp,
            next_level=nxt.level,
            next_level_name=nxt.name,
            next_level_min_xp=nxt.min_xp,
        )

    def to_list(self) -> list[dict]:
        return [
            {"level": t.level, "name": t.name, "min_xp": t.min_xp, "max_xp": t.max_xp}
            for t in self._tiers
        ]


def _validate(tiers: tuple[LevelTier, ...]) -> None:
    if not tiers:
        raise ValueError("Level table must contain at least one tier")
    if tiers[0].min_xp != 0:
        raise ValueError("First level tier must start at min_xp=0")

    previous: LevelTier | None = None
    for index, tier in enumerate(tiers, start=1):
        if tier.level != index:
            raise ValueError(
                f"Level tiers must be numbered 1..N in order; got {tier.level} at position {index}"
            )
        if tier.max_xp is not None and tier.max_xp < tier.min_xp:
            raise ValueError(f"Level {tier.level}: max_xp {tier.max_xp} < min_xp {tier.min_xp}")
        if previous is not None:
            if previous.max_xp is None:
                raise ValueError(f"Only the last tier may be unbounded (level {previous.level})")
            if tier.min_xp != previous.max_xp + 1:
                raise ValueError(
                    f"Level {tier.level} must start at {previous.max_xp + 1} "
                    f"(contiguous with level {previous.level}), got {tier.min_xp}"
                )
        previous = tier
