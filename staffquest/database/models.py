"""
staffquest.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- user_stats   — One progression record per user (opaque string id)
- xp_logs      — Append-only XP ledger
- badges       — Persisted copy of the static badge catalog
- user_badges  — Earned badges, unique per (user, badge)
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all StaffQuest ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class XPActionType(enum.StrEnum):
    """Why an XP ledger entry was written."""
    CHECKIN = "checkin"
    REGISTER = "register"
    REMOVE = "remove"
    STREAK = "streak"
    BADGE = "badge"
    DRAW = "draw"


class BadgeCondition(enum.StrEnum):
    """What kind of counter a badge threshold is measured against."""
    REGISTER = "register"
    REMOVE = "remove"
    STREAK = "streak"
    LEVEL = "level"
    DRAW = "draw"
    SPECIAL = "special"  # awarded by code only


# ---------------------------------------------------------------------------
# UserStats — per-user progression record
# ---------------------------------------------------------------------------
class UserStats(Base):
    __tablename__ = "user_stats"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_checkin_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    night_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    early_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lucky_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_draws: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_registrations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_removals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    # Optimistic concurrency: every UPDATE checks and bumps ``version``
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_user_stats_total_xp", "total_xp"),
    )

    def __repr__(self) -> str:
        return f"<UserStats id={self.user_id!r} xp={self.total_xp} lvl={self.level}>"


# ---------------------------------------------------------------------------
# XPLog — append-only XP ledger
# ---------------------------------------------------------------------------
class XPLog(Base):
    __tablename__ = "xp_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_stats.user_id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_xp_logs_user_time", "user_id", "timestamp"),
        Index("ix_xp_logs_timestamp", "timestamp"),
        Index("ix_xp_logs_action_time", "action_type", "timestamp"),
        CheckConstraint("amount > 0", name="ck_xp_logs_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<XPLog id={self.id} user={self.user_id!r} +{self.amount} {self.action_type}>"


# ---------------------------------------------------------------------------
# Badge — persisted catalog entry
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(16), default=None)
    rarity: Mapped[str] = mapped_column(String(8), nullable=False, default="R")
    condition_type: Mapped[str] = mapped_column(String(20), nullable=False)
    condition_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    earned_by: Mapped[list[UserBadge]] = relationship(back_populates="badge")

    def __repr__(self) -> str:
        return f"<Badge id={self.id} code={self.code!r}>"


# ---------------------------------------------------------------------------
# UserBadge — earned badges
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_stats.user_id", ondelete="CASCADE"), nullable=False
    )
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user: Mapped[UserStats] = relationship(back_populates="badges")
    badge: Mapped[Badge] = relationship(back_populates="earned_by")

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id!r} badge={self.badge_id}>"
