"""
staffquest.engine.badges — Badge Catalog & Rule Evaluation
============================================================

Static, validated badge catalog plus the pure evaluator that maps a typed
counter signal to the badges it qualifies for.  Awarding (the idempotent
insert + XP grant) lives in
:mod:`staffquest.services.progression_service`.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from staffquest.database.models import BadgeCondition

logger = logging.getLogger(__name__)

__all__ = ["BadgeCatalog", "BadgeDefinition", "BadgeSignal", "evaluate"]

# Condition types the evaluator matches against counter signals.
# SPECIAL badges are awarded by code only, never by evaluation.
SIGNAL_KINDS: frozenset[BadgeCondition] = frozenset({
    BadgeCondition.REGISTER,
    BadgeCondition.REMOVE,
    BadgeCondition.STREAK,
    BadgeCondition.LEVEL,
    BadgeCondition.DRAW,
})


@dataclass(frozen=True, slots=True)
class BadgeDefinition:
    code: str
    name: str
    condition_type: BadgeCondition
    condition_value: int
    xp_reward: int
    description: str = ""
    icon: str = ""
    rarity: str = "R"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "rarity": self.rarity,
            "condition_type": self.condition_type.value,
            "condition_value": self.condition_value,
            "xp_reward": self.xp_reward,
        }


@dataclass(frozen=True, slots=True)
class BadgeSignal:
    """A counter that just changed: ``kind`` reached ``value``."""

    kind: BadgeCondition
    value: int


class BadgeCatalog:
    """Immutable set of :class:`BadgeDefinition`, unique by code."""

    __slots__ = ("_by_code", "_ordered")

    def __init__(self, definitions: Sequence[BadgeDefinition]) -> None:
        by_code: dict[str, BadgeDefinition] = {}
        for definition in definitions:
            if not definition.code:
                raise ValueError("Badge code must not be empty")
            if definition.code in by_code:
                raise ValueError(f"Duplicate badge code: {definition.code!r}")
            if definition.condition_value < 0:
                raise ValueError(f"Badge {definition.code!r}: condition_value must be >= 0")
            if definition.xp_reward < 0:
                raise ValueError(f"Badge {definition.code!r}: xp_reward must be >= 0")
            by_code[definition.code] = definition
        self._by_code = by_code
        self._ordered = tuple(definitions)

    @classmethod
    def from_rows(cls, rows: Iterable[dict]) -> BadgeCatalog:
        """Build from loosely-typed mappings (constants or YAML)."""
        definitions = []
        for row in rows:
            try:
                condition = BadgeCondition(row["condition_type"])
            except ValueError:
                raise ValueError(
                    f"Badge {row.get('code')!r}: unknown condition_type {row['condition_type']!r}"
                ) from None
            definitions.append(BadgeDefinition(
                code=str(row["code"]),
                name=str(row["name"]),
                condition_type=condition,
                condition_value=int(row.get("condition_value", 0)),
                xp_reward=int(row.get("xp_reward", 0)),
                description=str(row.get("description", "")),
                icon=str(row.get("icon", "")),
                rarity=str(row.get("rarity", "R")),
            ))
        return cls(definitions)

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __iter__(self) -> Iterator[BadgeDefinition]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def get(self, code: str) -> BadgeDefinition | None:
        return self._by_code.get(code)

    def to_list(self) -> list[dict]:
        return [d.to_dict() for d in self._ordered]


def evaluate(catalog: BadgeCatalog, signal: BadgeSignal) -> list[BadgeDefinition]:
    """Return every badge whose threshold *signal* meets, lowest first.

    Already-earned badges are not filtered here; awarding is idempotent.
    """
    if signal.kind not in SIGNAL_KINDS:
        return []
    matches = [
        d for d in catalog
        if d.condition_type == signal.kind and d.condition_value <= signal.value
    ]
    matches.sort(key=lambda d: (d.condition_value, d.code))
    if matches:
        logger.debug(
            "Signal %s=%d qualifies for %s",
            signal.kind.value, signal.value, [d.code for d in matches],
        )
    return matches
