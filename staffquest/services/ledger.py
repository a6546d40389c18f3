"""
staffquest.services.ledger — Append-Only XP Ledger
====================================================

One :class:`~staffquest.database.models.XPLog` row per XP grant.  Rows are
never updated or deleted; windowed leaderboards and the daily report are
plain aggregates over this table.

Timestamps are normalised to UTC before they are written or compared.
SQLite stores ``DateTime`` columns without an offset, so values read back
from it are naive; :func:`as_utc` re-attaches UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from staffquest.database.models import XPActionType, XPLog
from staffquest.errors import InvalidArgument


@dataclass(frozen=True, slots=True)
class DayTotals:
    registrations: int
    removals: int
    active_users: int
    total_xp: int


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime (naive input is taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _require_aware(value: datetime, what: str) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidArgument(f"{what} must be timezone-aware", operation="ledger")
    return value.astimezone(UTC)


def append(
    session: Session,
    user_id: str,
    amount: int,
    action_type: XPActionType | str,
    description: str,
    timestamp: datetime,
) -> XPLog:
    """Add a ledger entry to *session* (flushed with the caller's commit)."""
    if amount <= 0:
        raise InvalidArgument(f"XP amount must be positive, got {amount}", user_id=user_id)
    entry = XPLog(
        user_id=user_id,
        amount=amount,
        action_type=XPActionType(action_type).value,
        description=description or None,
        timestamp=_require_aware(timestamp, "Ledger timestamp"),
    )
    session.add(entry)
    return entry


def sum_since(session: Session, user_id: str, since: datetime) -> int:
    """Total XP granted to *user_id* at or after *since*."""
    total = session.scalar(
        select(func.coalesce(func.sum(XPLog.amount), 0)).where(
            XPLog.user_id == user_id,
            XPLog.timestamp >= _require_aware(since, "since"),
        )
    )
    return int(total or 0)


def sum_all_since(session: Session, since: datetime) -> dict[str, int]:
    """``user_id → XP`` for every user with ledger entries at or after *since*."""
    rows = session.execute(
        select(XPLog.user_id, func.sum(XPLog.amount).label("xp"))
        .where(XPLog.timestamp >= _require_aware(since, "since"))
        .group_by(XPLog.user_id)
    ).all()
    return {row.user_id: int(row.xp) for row in rows}


def entries_for(session: Session, user_id: str, limit: int = 50) -> list[XPLog]:
    """Most recent entries first."""
    return list(
        session.scalars(
            select(XPLog)
            .where(XPLog.user_id == user_id)
            .order_by(XPLog.timestamp.desc(), XPLog.id.desc())
            .limit(limit)
        ).all()
    )


def day_totals(session: Session, start: datetime, end: datetime) -> DayTotals:
    """Aggregate the half-open interval ``[start, end)``."""
    start = _require_aware(start, "start")
    end = _require_aware(end, "end")
    in_range = (XPLog.timestamp >= start, XPLog.timestamp < end)

    counts = dict(
        session.execute(
            select(XPLog.action_type, func.count())
            .where(
                *in_range,
                XPLog.action_type.in_(
                    (XPActionType.REGISTER.value, XPActionType.REMOVE.value)
                ),
            )
            .group_by(XPLog.action_type)
        ).all()
    )
    active, total = session.execute(
        select(
            func.count(distinct(XPLog.user_id)),
            func.coalesce(func.sum(XPLog.amount), 0),
        ).where(*in_range)
    ).one()

    return DayTotals(
        registrations=int(counts.get(XPActionType.REGISTER.value, 0)),
        removals=int(counts.get(XPActionType.REMOVE.value, 0)),
        active_users=int(active or 0),
        total_xp=int(total or 0),
    )
