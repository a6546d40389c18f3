"""
staffquest.services.progression_service — The ProgressionEngine Façade
========================================================================

Single entry point for every XP-affecting trigger, whichever transport it
arrived on.  Each write operation is one logical transaction keyed by
``user_id``:

1. Take the user's in-process lock (:mod:`staffquest.engine.locks`).
2. Open one :class:`~sqlalchemy.orm.Session` and transaction.
3. Load or create the stats row, apply the pure rules
   (streaks, levels, badges), append ledger entries.
4. Drain the badge cascade queue (level-up → level badge → badge XP → …).
5. Commit.  A :class:`~sqlalchemy.orm.exc.StaleDataError` from the
   optimistic ``version`` check rolls everything back and retries.

Nothing is written unless the whole cascade succeeds.

Usage::

    from staffquest.services.progression_service import ProgressionEngine

    progression = ProgressionEngine(engine, rules)
    result = progression.check_in("U123", "Mei")
    print(result.streak_days, result.new_badges)
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import TYPE_CHECKING, TypeVar
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from staffquest.constants import LEADERBOARD_WINDOW_DAYS, MAX_LEADERBOARD_LIMIT
from staffquest.database.models import (
    Badge,
    BadgeCondition,
    UserBadge,
    UserStats,
    XPActionType,
)
from staffquest.database.seed import apply_definition
from staffquest.engine.badges import BadgeCatalog, BadgeDefinition, BadgeSignal, evaluate
from staffquest.engine.events import ProgressionTrigger, TriggerKind, XPRewards
from staffquest.engine.levels import LevelTable
from staffquest.engine.locks import DEFAULT_LOCK_TIMEOUT, UserLockRegistry, get_default_registry
from staffquest.engine.rules import ProgressionRules
from staffquest.engine.streaks import StreakState, compute_streaks
from staffquest.errors import Conflict, InvalidArgument, NotFound, ProgressionError, StorageUnavailable
from staffquest.services import ledger, stats_store
from staffquest.services.ledger import as_utc

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from staffquest.config import StaffQuestConfig

logger = logging.getLogger(__name__)

R = TypeVar("R")

ACTION_TYPES = (XPActionType.REGISTER, XPActionType.REMOVE)
LEADERBOARD_WINDOWS = ("all", *LEADERBOARD_WINDOW_DAYS)
MAX_HISTORY_LIMIT = 200
MAX_USER_ID_LENGTH = 64
MAX_DISPLAY_NAME_LENGTH = 100


# ---------------------------------------------------------------------------
# Outcome records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeAward:
    """A badge that was newly written in this transaction."""

    code: str
    name: str
    icon: str
    rarity: str
    xp_reward: int
    earned_at: datetime


@dataclass(frozen=True, slots=True)
class XPResult:
    """Outcome of :meth:`ProgressionEngine.grant_xp`.

    ``new_xp`` and ``new_level`` are the totals after the badge cascade the
    grant set off; ``badges`` lists what that cascade unlocked.
    """

    user_id: str
    amount: int
    action_type: str
    previous_xp: int
    new_xp: int
    previous_level: int
    new_level: int
    leveled_up: bool
    level_name: str
    badges: tuple[BadgeAward, ...] = ()


@dataclass(frozen=True, slots=True)
class CheckinResult:
    user_id: str
    success: bool
    already_checked_in: bool
    streak_days: int
    night_streak: int
    early_streak: int
    is_night_shift: bool
    is_early_shift: bool
    xp_gained: int
    streak_bonus: int
    previous_xp: int
    new_xp: int
    previous_level: int
    new_level: int
    leveled_up: bool
    level_name: str
    new_badges: tuple[BadgeAward, ...] = ()


@dataclass(frozen=True, slots=True)
class ActionResult:
    user_id: str
    action_type: str
    total_count: int
    xp_gained: int
    previous_xp: int
    new_xp: int
    previous_level: int
    new_level: int
    leveled_up: bool
    level_name: str
    new_badges: tuple[BadgeAward, ...] = ()


@dataclass(frozen=True, slots=True)
class DrawResult:
    user_id: str
    total_draws: int
    lucky_value: int
    xp_gained: int
    previous_xp: int
    new_xp: int
    previous_level: int
    new_level: int
    leveled_up: bool
    level_name: str
    new_badges: tuple[BadgeAward, ...] = ()


@dataclass(frozen=True, slots=True)
class BadgeAwardResult:
    user_id: str
    code: str
    awarded: bool
    badge: BadgeAward | None
    new_xp: int
    new_level: int
    new_badges: tuple[BadgeAward, ...] = ()


@dataclass(frozen=True, slots=True)
class EarnedBadge:
    code: str
    name: str
    description: str
    icon: str
    rarity: str
    earned_at: datetime


@dataclass(frozen=True, slots=True)
class BadgeStatus:
    code: str
    name: str
    description: str
    icon: str
    rarity: str
    condition_type: str
    condition_value: int
    xp_reward: int
    owned: bool
    earned_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class UserGameData:
    user_id: str
    display_name: str
    total_xp: int
    level: int
    level_name: str
    progress_percent: int
    xp_to_next_level: int
    next_level: int | None
    next_level_name: str | None
    next_level_min_xp: int | None
    streak_days: int
    night_streak: int
    early_streak: int
    last_checkin_date: date | None
    lucky_value: int
    total_draws: int
    total_registrations: int
    total_removals: int
    badges: tuple[EarnedBadge, ...] = ()


@dataclass(frozen=True, slots=True)
class XPEntry:
    amount: int
    action_type: str
    description: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    rank: int
    user_id: str
    display_name: str
    xp: int
    level: int
    level_name: str


@dataclass(frozen=True, slots=True)
class DailyReport:
    date: date
    registrations: int
    removals: int
    active_users: int
    total_xp: int


@dataclass(frozen=True, slots=True)
class TriggerOutcome:
    """Transport-independent reply to :meth:`ProgressionEngine.handle_trigger`."""

    kind: TriggerKind
    user_id: str
    result: CheckinResult | ActionResult | DrawResult | BadgeAwardResult


# ---------------------------------------------------------------------------
# Transaction state
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class _Txn:
    """Everything one write transaction threads through the cascade."""

    session: Session
    stats: UserStats
    now: datetime
    queue: deque = field(default_factory=deque)  # BadgeSignal | badge code
    awards: list[BadgeAward] = field(default_factory=list)
    dirty: bool = False


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class ProgressionEngine:
    """Per-user XP, levels, streaks, badges, leaderboards and reports."""

    def __init__(
        self,
        engine: Engine,
        rules: ProgressionRules | None = None,
        *,
        locks: UserLockRegistry | None = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        max_retries: int = 3,
        clock: Callable[[], datetime] | None = None,
        timezone: str | tzinfo = "Asia/Taipei",
        default_display_name: str = stats_store.DEFAULT_DISPLAY_NAME,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._engine = engine
        self._rules = rules or ProgressionRules()
        self._locks = locks or get_default_registry()
        self._lock_timeout = lock_timeout
        self._max_retries = max_retries
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
        self._default_display_name = default_display_name

    @classmethod
    def from_config(
        cls,
        engine: Engine,
        config: StaffQuestConfig,
        **kwargs,
    ) -> ProgressionEngine:
        return cls(
            engine,
            config.rules,
            lock_timeout=config.lock_timeout_seconds,
            max_retries=config.max_retries,
            timezone=config.tz,
            default_display_name=config.default_display_name,
            **kwargs,
        )

    # -- static config reads -------------------------------------------------

    @property
    def levels(self) -> LevelTable:
        return self._rules.levels

    @property
    def xp_rewards(self) -> XPRewards:
        return self._rules.rewards

    @property
    def badge_catalog(self) -> BadgeCatalog:
        return self._rules.badges

    @property
    def timezone(self) -> tzinfo:
        return self._tz

    # -- write operations ----------------------------------------------------

    def check_in(
        self,
        user_id: str,
        display_name: str | None = None,
        now: datetime | None = None,
    ) -> CheckinResult:
        """Daily check-in: advance streaks, grant XP, run milestone + badge rules.

        A second call on the same local calendar day changes nothing and
        returns ``success=False, already_checked_in=True``.
        """
        user_id = _require_user_id(user_id, "check_in")
        now = self._resolve_now(now, "check_in")

        def work(txn: _Txn) -> CheckinResult:
            stats = txn.stats
            previous_xp, previous_level = stats.total_xp, stats.level
            streak = compute_streaks(
                StreakState(
                    last_checkin_date=stats.last_checkin_date,
                    streak_days=stats.streak_days,
                    night_streak=stats.night_streak,
                    early_streak=stats.early_streak,
                ),
                txn.now,
                self._tz,
                self._rules.windows,
            )

            if streak.already_checked_in_today:
                logger.debug("%s already checked in on %s", user_id, streak.today)
                return CheckinResult(
                    user_id=user_id,
                    success=False,
                    already_checked_in=True,
                    streak_days=stats.streak_days,
                    night_streak=stats.night_streak,
                    early_streak=stats.early_streak,
                    is_night_shift=streak.is_night_shift,
                    is_early_shift=streak.is_early_shift,
                    xp_gained=0,
                    streak_bonus=0,
                    previous_xp=previous_xp,
                    new_xp=previous_xp,
                    previous_level=previous_level,
                    new_level=previous_level,
                    leveled_up=False,
                    level_name=self._rules.levels.name_for(previous_level),
                )

            stats.last_checkin_date = streak.today
            stats.streak_days = streak.streak_days
            stats.night_streak = streak.night_streak
            stats.early_streak = streak.early_streak

            rewards = self._rules.rewards
            self._grant(txn, rewards.checkin, XPActionType.CHECKIN, "Daily check-in")

            bonus = rewards.streak_milestones.get(streak.streak_days, 0)
            if bonus:
                self._grant(
                    txn, bonus, XPActionType.STREAK,
                    f"{streak.streak_days}-day streak bonus",
                )
                txn.queue.append(BadgeSignal(BadgeCondition.STREAK, streak.streak_days))
            # every shift threshold at or below the streak; owned badges are skipped
            txn.queue.extend(self._rules.shift_badge_codes("night", streak.night_streak))
            txn.queue.extend(self._rules.shift_badge_codes("early", streak.early_streak))

            self._drain(txn)
            logger.info(
                "Check-in %s: streak=%d night=%d early=%d xp=%d",
                user_id, streak.streak_days, streak.night_streak,
                streak.early_streak, stats.total_xp,
            )
            return CheckinResult(
                user_id=user_id,
                success=True,
                already_checked_in=False,
                streak_days=streak.streak_days,
                night_streak=streak.night_streak,
                early_streak=streak.early_streak,
                is_night_shift=streak.is_night_shift,
                is_early_shift=streak.is_early_shift,
                xp_gained=rewards.checkin,
                streak_bonus=bonus,
                previous_xp=previous_xp,
                new_xp=stats.total_xp,
                previous_level=previous_level,
                new_level=stats.level,
                leveled_up=stats.level > previous_level,
                level_name=self._rules.levels.name_for(stats.level),
                new_badges=tuple(txn.awards),
            )

        return self._write(user_id, "check_in", now, work, display_name)

    def record_action(
        self,
        user_id: str,
        action_type: XPActionType | str,
        now: datetime | None = None,
        display_name: str | None = None,
    ) -> ActionResult:
        """Count a product registration or removal and grant its XP."""
        user_id = _require_user_id(user_id, "record_action")
        try:
            action = XPActionType(action_type)
        except ValueError:
            action = None
        if action not in ACTION_TYPES:
            raise InvalidArgument(
                f"Unknown action type {action_type!r} (expected register or remove)",
                user_id=user_id,
                operation="record_action",
            )
        now = self._resolve_now(now, "record_action")
        counter = "total_registrations" if action is XPActionType.REGISTER else "total_removals"

        def work(txn: _Txn) -> ActionResult:
            stats = txn.stats
            previous_xp, previous_level = stats.total_xp, stats.level
            count = getattr(stats, counter) + 1
            setattr(stats, counter, count)

            amount = self._rules.rewards.for_action(action.value)
            self._grant(txn, amount, action, f"{action.value} #{count}")
            txn.queue.append(BadgeSignal(BadgeCondition(action.value), count))
            self._drain(txn)

            return ActionResult(
                user_id=user_id,
                action_type=action.value,
                total_count=count,
                xp_gained=amount,
                previous_xp=previous_xp,
                new_xp=stats.total_xp,
                previous_level=previous_level,
                new_level=stats.level,
                leveled_up=stats.level > previous_level,
                level_name=self._rules.levels.name_for(stats.level),
                new_badges=tuple(txn.awards),
            )

        return self._write(user_id, "record_action", now, work, display_name)

    def record_draw(
        self,
        user_id: str,
        *,
        lucky_reset: bool = False,
        now: datetime | None = None,
        display_name: str | None = None,
    ) -> DrawResult:
        """Record one fortune-card draw.

        ``lucky_reset`` is the card collaborator's verdict that this draw
        consumed the pity counter; otherwise it grows by one.
        """
        user_id = _require_user_id(user_id, "record_draw")
        now = self._resolve_now(now, "record_draw")

        def work(txn: _Txn) -> DrawResult:
            stats = txn.stats
            previous_xp, previous_level = stats.total_xp, stats.level
            stats.total_draws += 1
            stats.lucky_value = 0 if lucky_reset else stats.lucky_value + 1

            amount = self._rules.rewards.draw
            self._grant(txn, amount, XPActionType.DRAW, "Fortune draw")
            txn.queue.append(BadgeSignal(BadgeCondition.DRAW, stats.total_draws))
            self._drain(txn)

            return DrawResult(
                user_id=user_id,
                total_draws=stats.total_draws,
                lucky_value=stats.lucky_value,
                xp_gained=amount,
                previous_xp=previous_xp,
                new_xp=stats.total_xp,
                previous_level=previous_level,
                new_level=stats.level,
                leveled_up=stats.level > previous_level,
                level_name=self._rules.levels.name_for(stats.level),
                new_badges=tuple(txn.awards),
            )

        return self._write(user_id, "record_draw", now, work, display_name)

    def grant_xp(
        self,
        user_id: str,
        amount: int,
        action_type: XPActionType | str,
        description: str = "",
        now: datetime | None = None,
    ) -> XPResult:
        """Grant *amount* XP and run any level-up badge cascade.

        ``register`` and ``remove`` are counter actions: they go through
        :meth:`record_action` so the daily report and the stats counters
        stay in step.
        """
        user_id = _require_user_id(user_id, "grant_xp")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidArgument(
                f"XP amount must be a positive integer, got {amount!r}",
                user_id=user_id,
                operation="grant_xp",
            )
        try:
            action = XPActionType(action_type)
        except ValueError:
            raise InvalidArgument(
                f"Unknown action type {action_type!r}",
                user_id=user_id,
                operation="grant_xp",
            ) from None
        if action in ACTION_TYPES:
            raise InvalidArgument(
                f"{action.value!r} XP is granted by record_action, not grant_xp",
                user_id=user_id,
                operation="grant_xp",
            )
        now = self._resolve_now(now, "grant_xp")

        def work(txn: _Txn) -> XPResult:
            stats = txn.stats
            previous_xp, previous_level = stats.total_xp, stats.level
            self._grant(txn, amount, action, description)
            self._drain(txn)
            return XPResult(
                user_id=user_id,
                amount=amount,
                action_type=action.value,
                previous_xp=previous_xp,
                new_xp=stats.total_xp,
                previous_level=previous_level,
                new_level=stats.level,
                leveled_up=stats.level > previous_level,
                level_name=self._rules.levels.name_for(stats.level),
                badges=tuple(txn.awards),
            )

        return self._write(user_id, "grant_xp", now, work)

    def award_badge(
        self,
        user_id: str,
        code: str,
        now: datetime | None = None,
        display_name: str | None = None,
    ) -> BadgeAwardResult:
        """Grant a badge by code.  Already owned → ``awarded=False``."""
        user_id = _require_user_id(user_id, "award_badge")
        if code not in self._rules.badges:
            raise InvalidArgument(
                f"Unknown badge code {code!r}",
                user_id=user_id,
                operation="award_badge",
            )
        now = self._resolve_now(now, "award_badge")

        def work(txn: _Txn) -> BadgeAwardResult:
            txn.queue.append(code)
            self._drain(txn)
            primary = next((a for a in txn.awards if a.code == code), None)
            return BadgeAwardResult(
                user_id=user_id,
                code=code,
                awarded=primary is not None,
                badge=primary,
                new_xp=txn.stats.total_xp,
                new_level=txn.stats.level,
                new_badges=tuple(a for a in txn.awards if a.code != code),
            )

        return self._write(user_id, "award_badge", now, work, display_name)

    def update_display_name(self, user_id: str, display_name: str) -> str:
        """Rename a user (creating the record if needed).  Returns the new name."""
        user_id = _require_user_id(user_id, "update_display_name")
        name = (display_name or "").strip()
        if not name or len(name) > MAX_DISPLAY_NAME_LENGTH:
            raise InvalidArgument(
                f"Display name must be 1..{MAX_DISPLAY_NAME_LENGTH} characters",
                user_id=user_id,
                operation="update_display_name",
            )
        now = self._resolve_now(None, "update_display_name")

        def work(txn: _Txn) -> str:
            stats_store.update_display_name(txn.session, user_id, name, txn.now)
            return name

        return self._write(user_id, "update_display_name", now, work, name)

    def handle_trigger(self, trigger: ProgressionTrigger) -> TriggerOutcome:
        """Dispatch a transport-neutral trigger to the matching operation."""
        kind = TriggerKind(trigger.kind)
        if kind is TriggerKind.CHECKIN:
            result = self.check_in(trigger.user_id, trigger.display_name, trigger.timestamp)
        elif kind in (TriggerKind.REGISTER, TriggerKind.REMOVE):
            result = self.record_action(
                trigger.user_id, kind.value, trigger.timestamp, trigger.display_name,
            )
        elif kind is TriggerKind.DRAW:
            result = self.record_draw(
                trigger.user_id,
                lucky_reset=trigger.lucky_reset,
                now=trigger.timestamp,
                display_name=trigger.display_name,
            )
        else:
            if not trigger.badge_code:
                raise InvalidArgument(
                    "Badge trigger requires a badge code",
                    user_id=trigger.user_id,
                    operation="handle_trigger",
                )
            result = self.award_badge(
                trigger.user_id, trigger.badge_code, trigger.timestamp, trigger.display_name,
            )
        return TriggerOutcome(kind=kind, user_id=trigger.user_id, result=result)

    # -- read projections ----------------------------------------------------

    def get_user_game_data(self, user_id: str) -> UserGameData:
        def work(session: Session) -> UserGameData:
            stats = self._require_stats(session, user_id, "get_user_game_data")
            progress = self._rules.levels.progress(stats.total_xp)
            return UserGameData(
                user_id=stats.user_id,
                display_name=stats.display_name,
                total_xp=stats.total_xp,
                level=stats.level,
                level_name=self._rules.levels.name_for(stats.level),
                progress_percent=progress.progress_percent,
                xp_to_next_level=progress.xp_to_next_level,
                next_level=progress.next_level,
                next_level_name=progress.next_level_name,
                next_level_min_xp=progress.next_level_min_xp,
                streak_days=stats.streak_days,
                night_streak=stats.night_streak,
                early_streak=stats.early_streak,
                last_checkin_date=stats.last_checkin_date,
                lucky_value=stats.lucky_value,
                total_draws=stats.total_draws,
                total_registrations=stats.total_registrations,
                total_removals=stats.total_removals,
                badges=tuple(self._earned_badges(session, user_id)),
            )

        return self._read("get_user_game_data", work)

    def get_user_badges(self, user_id: str) -> list[EarnedBadge]:
        """Earned badges, most recent first."""
        def work(session: Session) -> list[EarnedBadge]:
            self._require_stats(session, user_id, "get_user_badges")
            return self._earned_badges(session, user_id)

        return self._read("get_user_badges", work)

    def get_all_badges_with_status(self, user_id: str) -> list[BadgeStatus]:
        """The whole catalog, in catalog order, with an ``owned`` flag."""
        def work(session: Session) -> list[BadgeStatus]:
            self._require_stats(session, user_id, "get_all_badges_with_status")
            earned = {b.code: b.earned_at for b in self._earned_badges(session, user_id)}
            return [
                BadgeStatus(
                    code=d.code,
                    name=d.name,
                    description=d.description,
                    icon=d.icon,
                    rarity=d.rarity,
                    condition_type=d.condition_type.value,
                    condition_value=d.condition_value,
                    xp_reward=d.xp_reward,
                    owned=d.code in earned,
                    earned_at=earned.get(d.code),
                )
                for d in self._rules.badges
            ]

        return self._read("get_all_badges_with_status", work)

    def get_xp_history(self, user_id: str, limit: int = 50) -> list[XPEntry]:
        """Most recent ledger entries for *user_id*."""
        if not 1 <= limit <= MAX_HISTORY_LIMIT:
            raise InvalidArgument(
                f"limit must be between 1 and {MAX_HISTORY_LIMIT}",
                user_id=user_id,
                operation="get_xp_history",
            )

        def work(session: Session) -> list[XPEntry]:
            self._require_stats(session, user_id, "get_xp_history")
            return [
                XPEntry(
                    amount=row.amount,
                    action_type=row.action_type,
                    description=row.description or "",
                    timestamp=as_utc(row.timestamp),
                )
                for row in ledger.entries_for(session, user_id, limit)
            ]

        return self._read("get_xp_history", work)

    def get_leaderboard(
        self,
        window: str = "all",
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """Rank users by total XP (``all``) or by ledger XP in a trailing window.

        Ties break on ``user_id`` ascending.  Users with no XP in the window
        still appear, with ``xp=0``.
        """
        if window not in LEADERBOARD_WINDOWS:
            raise InvalidArgument(
                f"Unknown leaderboard window {window!r} (expected one of {LEADERBOARD_WINDOWS})",
                operation="get_leaderboard",
            )
        if isinstance(limit, bool) or not 1 <= limit <= MAX_LEADERBOARD_LIMIT:
            raise InvalidArgument(
                f"limit must be between 1 and {MAX_LEADERBOARD_LIMIT}",
                operation="get_leaderboard",
            )
        now = self._resolve_now(now, "get_leaderboard")

        def work(session: Session) -> list[LeaderboardEntry]:
            users = session.execute(
                select(UserStats.user_id, UserStats.display_name, UserStats.total_xp, UserStats.level)
            ).all()
            if window == "all":
                period = {u.user_id: u.total_xp for u in users}
            else:
                since = now - timedelta(days=LEADERBOARD_WINDOW_DAYS[window])
                period = ledger.sum_all_since(session, since)

            ranked = sorted(users, key=lambda u: (-period.get(u.user_id, 0), u.user_id))
            return [
                LeaderboardEntry(
                    rank=rank,
                    user_id=u.user_id,
                    display_name=u.display_name,
                    xp=period.get(u.user_id, 0),
                    level=u.level,
                    level_name=self._rules.levels.name_for(u.level),
                )
                for rank, u in enumerate(ranked[:limit], start=1)
            ]

        return self._read("get_leaderboard", work)

    def get_daily_report(self, day: date | None = None) -> DailyReport:
        """Totals for one local calendar day (today by default)."""
        if day is None:
            day = self._clock().astimezone(self._tz).date()
        start = datetime.combine(day, time.min, tzinfo=self._tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self._tz)

        def work(session: Session) -> DailyReport:
            totals = ledger.day_totals(session, start, end)
            return DailyReport(
                date=day,
                registrations=totals.registrations,
                removals=totals.removals,
                active_users=totals.active_users,
                total_xp=totals.total_xp,
            )

        return self._read("get_daily_report", work)

    # -- cascade steps (inside a transaction) -------------------------------

    def _grant(
        self,
        txn: _Txn,
        amount: int,
        action: XPActionType,
        description: str,
    ) -> None:
        stats = txn.stats
        previous_level = stats.level
        txn.dirty = True
        stats.total_xp += amount
        stats.level = self._rules.levels.resolve_level(stats.total_xp)
        ledger.append(txn.session, stats.user_id, amount, action, description, txn.now)

        if stats.level > previous_level:
            logger.info(
                "%s leveled up %d → %d (%s)",
                stats.user_id, previous_level, stats.level,
                self._rules.levels.name_for(stats.level),
            )
            txn.queue.append(BadgeSignal(BadgeCondition.LEVEL, stats.level))

    def _drain(self, txn: _Txn) -> None:
        """Work the badge queue until nothing new is unlocked."""
        while txn.queue:
            item = txn.queue.popleft()
            if isinstance(item, BadgeSignal):
                candidates = evaluate(self._rules.badges, item)
            else:
                candidates = [self._rules.badges.get(item)]
            for definition in candidates:
                if definition is not None:
                    self._award(txn, definition)

    def _award(self, txn: _Txn, definition: BadgeDefinition) -> None:
        session, stats = txn.session, txn.stats
        badge_id = self._badge_id(session, definition)
        owned = session.scalar(
            select(UserBadge.id).where(
                UserBadge.user_id == stats.user_id,
                UserBadge.badge_id == badge_id,
            )
        )
        if owned is not None:
            return

        earned_at = txn.now.astimezone(UTC)
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(UserBadge(user_id=stats.user_id, badge_id=badge_id, earned_at=earned_at))
                session.flush()
        except IntegrityError:
            # Another writer inserted the same (user, badge) first.
            logger.debug("Badge %s already awarded to %s", definition.code, stats.user_id)
            return

        txn.awards.append(BadgeAward(
            code=definition.code,
            name=definition.name,
            icon=definition.icon,
            rarity=definition.rarity,
            xp_reward=definition.xp_reward,
            earned_at=earned_at,
        ))
        logger.info("Badge %s awarded to %s (+%d XP)", definition.code, stats.user_id, definition.xp_reward)

        if definition.xp_reward > 0:
            self._grant(txn, definition.xp_reward, XPActionType.BADGE, f"Badge: {definition.name}")

    def _badge_id(self, session: Session, definition: BadgeDefinition) -> int:
        """Primary key of the persisted catalog row, created on first use."""
        badge_id = session.scalar(select(Badge.id).where(Badge.code == definition.code))
        if badge_id is not None:
            return badge_id

        row = Badge(code=definition.code)
        apply_definition(row, definition)
        try:
            with session.begin_nested():
                session.add(row)
                session.flush()
        except IntegrityError:
            badge_id = session.scalar(select(Badge.id).where(Badge.code == definition.code))
            if badge_id is None:
                raise
            return badge_id
        return row.id

    # -- plumbing ------------------------------------------------------------

    def _resolve_now(self, now: datetime | None, operation: str) -> datetime:
        now = now if now is not None else self._clock()
        if now.tzinfo is None or now.utcoffset() is None:
            raise InvalidArgument("Timestamps must be timezone-aware", operation=operation)
        return now

    def _write(
        self,
        user_id: str,
        operation: str,
        now: datetime,
        work: Callable[[_Txn], R],
        display_name: str | None = None,
    ) -> R:
        """Run *work* as one serialized, retried, all-or-nothing transaction."""
        with self._locks.hold(user_id, self._lock_timeout):
            for attempt in range(1, self._max_retries + 1):
                try:
                    with Session(self._engine) as session, session.begin():
                        stats = stats_store.get_or_create_stats(
                            session, user_id, display_name or self._default_display_name, now,
                        )
                        txn = _Txn(session=session, stats=stats, now=now)
                        result = work(txn)
                        if txn.dirty:
                            stats_store.save(session, stats, now)
                    return result
                except StaleDataError:
                    logger.warning(
                        "Version conflict on %s during %s (attempt %d/%d)",
                        user_id, operation, attempt, self._max_retries,
                    )
                except ProgressionError:
                    raise
                except (OperationalError, PoolTimeoutError) as exc:
                    raise StorageUnavailable(
                        f"Store unavailable during {operation}: {exc}",
                        user_id=user_id,
                        operation=operation,
                    ) from exc

        raise Conflict(
            f"Gave up after {self._max_retries} version conflicts",
            user_id=user_id,
            operation=operation,
        )

    def _read(self, operation: str, work: Callable[[Session], R]) -> R:
        try:
            with Session(self._engine) as session:
                return work(session)
        except ProgressionError:
            raise
        except (OperationalError, PoolTimeoutError) as exc:
            raise StorageUnavailable(
                f"Store unavailable during {operation}: {exc}",
                operation=operation,
            ) from exc

    def _require_stats(self, session: Session, user_id: str, operation: str) -> UserStats:
        stats = stats_store.get_stats(session, user_id)
        if stats is None:
            raise NotFound(f"No progression record for {user_id!r}", user_id=user_id, operation=operation)
        return stats

    def _earned_badges(self, session: Session, user_id: str) -> list[EarnedBadge]:
        rows = session.execute(
            select(Badge, UserBadge.earned_at)
            .join(UserBadge, UserBadge.badge_id == Badge.id)
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
        ).all()
        return [
            EarnedBadge(
                code=badge.code,
                name=badge.name,
                description=badge.description or "",
                icon=badge.icon or "",
                rarity=badge.rarity,
                earned_at=as_utc(earned_at),
            )
            for badge, earned_at in rows
        ]


def _require_user_id(user_id: str, operation: str) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidArgument("user_id must be a non-empty string", operation=operation)
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise InvalidArgument(
            f"user_id longer than {MAX_USER_ID_LENGTH} characters",
            operation=operation,
        )
    return user_id
