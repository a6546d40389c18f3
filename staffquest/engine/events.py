"""
staffquest.engine.events — ProgressionTrigger and XP Reward Table
===================================================================

The universal trigger envelope.  Both transports (the HTTP API and the
chat webhook) normalize what they receive into a
:class:`ProgressionTrigger` before handing it to
:meth:`ProgressionEngine.handle_trigger`.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from staffquest.constants import DEFAULT_STREAK_MILESTONES, DEFAULT_XP_REWARDS

__all__ = ["ProgressionTrigger", "TriggerKind", "XPRewards"]


class TriggerKind(enum.StrEnum):
    """Signals a collaborator can send to the engine."""
    CHECKIN = "checkin"
    REGISTER = "register"
    REMOVE = "remove"
    DRAW = "draw"
    BADGE = "badge"


# ---------------------------------------------------------------------------
# XP reward table
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class XPRewards:
    """Fixed XP per action plus streak-milestone bonuses."""

    checkin: int = DEFAULT_XP_REWARDS["checkin"]
    register: int = DEFAULT_XP_REWARDS["register"]
    remove: int = DEFAULT_XP_REWARDS["remove"]
    draw: int = DEFAULT_XP_REWARDS["draw"]
    streak_milestones: Mapping[int, int] = field(
        default_factory=lambda: dict(DEFAULT_STREAK_MILESTONES)
    )

    def __post_init__(self) -> None:
        for name in ("checkin", "register", "remove", "draw"):
            if getattr(self, name) <= 0:
                raise ValueError(f"XP reward {name!r} must be positive")
        for days, bonus in self.streak_milestones.items():
            if days <= 0 or bonus <= 0:
                raise ValueError(f"Invalid streak milestone {days} → {bonus}")

    @classmethod
    def from_mapping(
        cls, raw: Mapping[str, int], milestones: Mapping[int, int] | None = None
    ) -> XPRewards:
        merged = {**DEFAULT_XP_REWARDS, **raw}
        return cls(
            checkin=int(merged["checkin"]),
            register=int(merged["register"]),
            remove=int(merged["remove"]),
            draw=int(merged["draw"]),
            streak_milestones={
                int(k): int(v)
                for k, v in (milestones if milestones is not None else DEFAULT_STREAK_MILESTONES).items()
            },
        )

    def for_action(self, action: str) -> int:
        return int(getattr(self, action))

    def to_dict(self) -> dict:
        return {
            "checkin": self.checkin,
            "register": self.register,
            "remove": self.remove,
            "draw": self.draw,
            **{f"streak_{days}": bonus for days, bonus in sorted(self.streak_milestones.items())},
        }


# ---------------------------------------------------------------------------
# ProgressionTrigger — the universal trigger envelope
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ProgressionTrigger:
    """Normalized trigger from any transport.

    ``badge_code`` is only read for :attr:`TriggerKind.BADGE`;
    ``lucky_reset`` only for :attr:`TriggerKind.DRAW`.
    """

    kind: TriggerKind
    user_id: str
    display_name: str | None = None
    badge_code: str | None = None
    lucky_reset: bool = False
    timestamp: datetime | None = None
    metadata: dict = field(default_factory=dict)
