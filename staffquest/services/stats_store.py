"""
staffquest.services.stats_store — UserStats Persistence Helpers
=================================================================

Session-level helpers for the per-user progression record.  Every helper
takes the caller's :class:`~sqlalchemy.orm.Session`; none of them commit.
The progression service owns the transaction so a stats write and its
ledger entries land together or not at all.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from staffquest.database.models import UserStats

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "staff"


def get_stats(session: Session, user_id: str) -> UserStats | None:
    """Fetch a UserStats row, or ``None`` if the user has never acted."""
    return session.get(UserStats, user_id)


def get_or_create_stats(
    session: Session,
    user_id: str,
    display_name: str | None = None,
    now: datetime | None = None,
) -> UserStats:
    """Fetch or insert the UserStats row for *user_id*.

    *display_name* is applied only when the row is created.  The insert
    runs in a SAVEPOINT; if another writer created the row first the
    unique primary key rejects ours and the existing row is returned.
    """
    stats = session.get(UserStats, user_id)
    if stats is not None:
        return stats

    stamp = (now or datetime.now(UTC)).astimezone(UTC)
    stats = UserStats(
        user_id=user_id,
        display_name=display_name or DEFAULT_DISPLAY_NAME,
        total_xp=0,
        level=1,
        streak_days=0,
        night_streak=0,
        early_streak=0,
        lucky_value=0,
        total_draws=0,
        total_registrations=0,
        total_removals=0,
        created_at=stamp,
        updated_at=stamp,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(stats)
            session.flush()
    except IntegrityError:
        # Lost the creation race; the SAVEPOINT rolled back, outer txn is alive.
        logger.debug("UserStats %s created concurrently, re-reading", user_id)
        stats = session.scalar(
            select(UserStats)
            .where(UserStats.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if stats is None:
            raise
        return stats

    logger.info("Created progression record for %s (%s)", user_id, stats.display_name)
    return stats


def save(session: Session, stats: UserStats, now: datetime | None = None) -> None:
    """Stamp ``updated_at`` and flush.

    Flushing here makes the optimistic ``version`` check run inside the
    caller's transaction, so a concurrent commit surfaces as
    :class:`~sqlalchemy.orm.exc.StaleDataError` before anything else is
    written.
    """
    stats.updated_at = (now or datetime.now(UTC)).astimezone(UTC)
    session.flush()


def update_display_name(
    session: Session,
    user_id: str,
    display_name: str,
    now: datetime | None = None,
) -> UserStats | None:
    """Rename an existing user.  Returns ``None`` if the user is unknown."""
    stats = session.get(UserStats, user_id)
    if stats is None:
        return None
    if stats.display_name != display_name:
        stats.display_name = display_name
        save(session, stats, now)
    return stats
