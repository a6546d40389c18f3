"""
tests/test_progression_service.py — ProgressionEngine Integration Tests
=========================================================================
Every write and read operation against an in-memory SQLite database:
check-in streaks and milestones, registrations, removals, draws, XP
grants, badge cascades, read projections, retry and rollback behaviour.
"""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from staffquest.database.models import UserBadge, XPActionType, XPLog
from staffquest.engine.events import ProgressionTrigger, TriggerKind
from staffquest.engine.levels import LevelTable, LevelTier
from staffquest.engine.locks import UserLockRegistry
from staffquest.engine.rules import ProgressionRules
from staffquest.errors import Conflict, InvalidArgument, NotFound, StorageUnavailable
from staffquest.services import ledger, stats_store
from staffquest.services.progression_service import (
    ActionResult,
    BadgeAwardResult,
    CheckinResult,
    DrawResult,
    ProgressionEngine,
)
from tests.support import TAIPEI, local


def _codes(awards) -> list[str]:
    return [a.code for a in awards]


def _ledger_count(engine, user_id: str, action: XPActionType | None = None) -> int:
    with Session(engine) as session:
        query = select(func.count()).select_from(XPLog).where(XPLog.user_id == user_id)
        if action is not None:
            query = query.where(XPLog.action_type == action.value)
        return session.scalar(query)


def _daily_checkins(progression, user_id: str, days: range, hour: int, month: int = 3):
    return [progression.check_in(user_id, now=local(2026, month, day, hour)) for day in days]


# ===========================================================================
# check_in
# ===========================================================================
class TestCheckIn:
    def test_first_checkin_at_two_am(self, progression):
        result = progression.check_in("U1", "Mei", now=local(2026, 3, 2, 2))
        assert isinstance(result, CheckinResult)
        assert result.success is True
        assert result.streak_days == 1
        assert result.night_streak == 1
        assert result.early_streak == 0
        assert result.is_night_shift is True
        assert result.xp_gained == 5
        assert result.new_xp == 5
        assert result.new_level == 1

    def test_second_checkin_same_day_changes_nothing(self, progression, db_engine):
        progression.check_in("U1", now=local(2026, 3, 2, 8))
        before = progression.get_user_game_data("U1")
        entries = _ledger_count(db_engine, "U1")

        again = progression.check_in("U1", now=local(2026, 3, 2, 20))

        assert again.success is False
        assert again.already_checked_in is True
        assert again.xp_gained == 0
        assert progression.get_user_game_data("U1") == before
        assert _ledger_count(db_engine, "U1") == entries

    def test_consecutive_days_extend_streak(self, progression):
        progression.check_in("U1", now=local(2026, 3, 1))
        assert progression.check_in("U1", now=local(2026, 3, 2)).streak_days == 2

    def test_gap_resets_streak(self, progression):
        _daily_checkins(progression, "U1", range(1, 4), hour=12)
        assert progression.check_in("U1", now=local(2026, 3, 5)).streak_days == 1

    def test_night_streak_resets_outside_window(self, progression):
        results = _daily_checkins(progression, "U1", range(1, 6), hour=2)
        assert results[-1].night_streak == 5

        day_shift = progression.check_in("U1", now=local(2026, 3, 6, 10))
        assert day_shift.night_streak == 0
        assert day_shift.streak_days == 6

    def test_seventh_day_milestone_and_badge(self, progression):
        results = _daily_checkins(progression, "U1", range(1, 8), hour=12)
        seventh = results[-1]

        assert seventh.streak_days == 7
        assert seventh.streak_bonus == 100
        assert _codes(seventh.new_badges) == ["streak_7"]
        # 6 × 5 before; today 5 + 100 bonus + 100 badge
        assert seventh.previous_xp == 30
        assert seventh.new_xp == 235
        assert seventh.new_level == 2
        assert seventh.leveled_up is True

    def test_night_owl_cascades_into_level_badge(self, progression, db_engine):
        seventh = _daily_checkins(progression, "U1", range(1, 8), hour=2)[-1]

        assert seventh.night_streak == 7
        # streak_7 → 235, night_owl_7 → 385 (Lv.3), level_3 → 485
        assert _codes(seventh.new_badges) == ["streak_7", "night_owl_7", "level_3"]
        assert seventh.new_xp == 485
        assert seventh.new_level == 3
        assert _ledger_count(db_engine, "U1", XPActionType.BADGE) == 3
        assert _ledger_count(db_engine, "U1", XPActionType.STREAK) == 1

    def test_early_bird_after_seven_early_checkins(self, progression):
        seventh = _daily_checkins(progression, "U1", range(1, 8), hour=7)[-1]
        assert seventh.early_streak == 7
        assert "early_bird" in _codes(seventh.new_badges)

    def test_streak_badge_waits_for_milestone(self, db_engine, clock):
        rules = ProgressionRules.from_mapping({"streak_milestones": {30: 500}})
        engine = ProgressionEngine(db_engine, rules, locks=UserLockRegistry(), clock=clock, timezone=TAIPEI)

        seventh = _daily_checkins(engine, "U1", range(1, 8), hour=12)[-1]

        assert seventh.streak_days == 7
        assert seventh.streak_bonus == 0
        assert "streak_7" not in _codes(seventh.new_badges)
        assert engine.get_user_badges("U1") == []

    def test_custom_milestone_pays_bonus_and_badges_together(self, db_engine, clock):
        rules = ProgressionRules.from_mapping({"streak_milestones": {8: 40}})
        engine = ProgressionEngine(db_engine, rules, locks=UserLockRegistry(), clock=clock, timezone=TAIPEI)

        results = _daily_checkins(engine, "U1", range(1, 9), hour=12)

        assert not results[6].new_badges
        assert results[7].streak_bonus == 40
        assert _codes(results[7].new_badges) == ["streak_7"]

    def test_shift_badge_awarded_once_past_threshold(self, db_engine, clock):
        rules = ProgressionRules.from_mapping({"shift_badges": {"night": {3: "night_owl_7"}}})
        engine = ProgressionEngine(db_engine, rules, locks=UserLockRegistry(), clock=clock, timezone=TAIPEI)

        results = _daily_checkins(engine, "U1", range(1, 6), hour=2)

        assert [_codes(r.new_badges) for r in results] == [[], [], ["night_owl_7"], [], []]
        assert [b.code for b in engine.get_user_badges("U1")] == ["night_owl_7"]

    def test_display_name_only_set_on_creation(self, progression):
        progression.check_in("U1", "Mei", now=local(2026, 3, 1))
        progression.check_in("U1", "Someone Else", now=local(2026, 3, 2))
        assert progression.get_user_game_data("U1").display_name == "Mei"

    def test_default_display_name(self, progression):
        progression.check_in("U1")
        assert progression.get_user_game_data("U1").display_name == "staff"

    def test_uses_injected_clock(self, progression, clock):
        result = progression.check_in("U1")
        assert result.success is True
        assert progression.get_user_game_data("U1").last_checkin_date == clock().astimezone(TAIPEI).date()

    def test_naive_timestamp_rejected(self, progression):
        with pytest.raises(InvalidArgument):
            progression.check_in("U1", now=datetime(2026, 3, 2, 12))
        with pytest.raises(NotFound):
            progression.get_user_game_data("U1")

    @pytest.mark.parametrize("user_id", ["", "   ", "x" * 65])
    def test_bad_user_id(self, progression, user_id):
        with pytest.raises(InvalidArgument):
            progression.check_in(user_id)


# ===========================================================================
# record_action
# ===========================================================================
class TestRecordAction:
    def test_first_registration(self, progression):
        result = progression.record_action("U1", "register")
        assert isinstance(result, ActionResult)
        assert result.total_count == 1
        assert result.xp_gained == 20
        assert _codes(result.new_badges) == ["first_register"]
        assert result.new_xp == 50

    def test_tenth_registration_awards_register_10(self, progression):
        results = [progression.record_action("U1", XPActionType.REGISTER) for _ in range(10)]
        tenth = results[-1]
        assert tenth.total_count == 10
        assert _codes(tenth.new_badges) == ["register_10"]
        assert tenth.new_xp == 10 * 20 + 30 + 50
        assert tenth.new_level == 2
        assert all(not r.new_badges for r in results[1:9])

    def test_tenth_removal_cascades(self, progression):
        tenth = [progression.record_action("U1", "remove") for _ in range(10)][-1]
        assert tenth.total_count == 10
        # 300 + remove_10 (50) → 350 (Lv.3) + level_3 (100)
        assert _codes(tenth.new_badges) == ["remove_10", "level_3"]
        assert tenth.new_xp == 450
        assert tenth.new_level == 3

        data = progression.get_user_game_data("U1")
        assert data.total_removals == 10
        assert data.total_registrations == 0

    @pytest.mark.parametrize("action", ["explode", "checkin", "badge", None])
    def test_unknown_action_rejected_before_mutation(self, progression, action):
        with pytest.raises(InvalidArgument):
            progression.record_action("U1", action)
        with pytest.raises(NotFound):
            progression.get_user_game_data("U1")


# ===========================================================================
# record_draw
# ===========================================================================
class TestRecordDraw:
    def test_lucky_value_grows_and_resets(self, progression):
        first = progression.record_draw("U1")
        second = progression.record_draw("U1")
        assert isinstance(first, DrawResult)
        assert (first.total_draws, first.lucky_value) == (1, 1)
        assert (second.total_draws, second.lucky_value) == (2, 2)

        rare = progression.record_draw("U1", lucky_reset=True)
        assert (rare.total_draws, rare.lucky_value) == (3, 0)
        assert rare.xp_gained == 5

    def test_tenth_draw_awards_badge(self, progression):
        tenth = [progression.record_draw("U1") for _ in range(10)][-1]
        assert _codes(tenth.new_badges) == ["draw_10"]
        assert tenth.new_xp == 100
        assert tenth.new_level == 1


# ===========================================================================
# grant_xp
# ===========================================================================
class TestGrantXP:
    def test_level_up_scenario(self, db_engine, clock):
        rules = ProgressionRules(
            levels=LevelTable([LevelTier(1, "One", 0, 100), LevelTier(2, "Two", 101, 300)]),
        )
        engine = ProgressionEngine(db_engine, rules, locks=UserLockRegistry(), clock=clock, timezone=TAIPEI)
        engine.grant_xp("U1", 95, "checkin")

        result = engine.grant_xp("U1", 10, "checkin")

        assert result.previous_xp == 95
        assert result.new_xp == 105
        assert result.previous_level == 1
        assert result.new_level == 2
        assert result.leveled_up is True
        assert result.level_name == "Two"

    def test_monotonic_xp_and_level(self, progression):
        last_xp = 0
        for amount in (1, 50, 49, 1, 200, 400, 300, 7):
            result = progression.grant_xp("U1", amount, "badge")
            assert result.new_xp >= last_xp + amount
            assert result.new_level == progression.levels.resolve_level(result.new_xp)
            last_xp = result.new_xp

    def test_ledger_matches_total(self, progression):
        for amount in (10, 20, 400, 700):
            progression.grant_xp("U1", amount, "checkin", "manual")
        data = progression.get_user_game_data("U1")
        history = progression.get_xp_history("U1", limit=200)
        assert sum(entry.amount for entry in history) == data.total_xp

    def test_level_cascade_reported(self, progression):
        result = progression.grant_xp("U1", 400, "checkin")
        assert result.leveled_up is True
        assert _codes(result.badges) == ["level_3"]
        assert result.new_xp == 500

    @pytest.mark.parametrize("amount", [0, -5, True, 2.5])
    def test_non_positive_amount_rejected(self, progression, amount):
        with pytest.raises(InvalidArgument):
            progression.grant_xp("U1", amount, "checkin")

    def test_unknown_action_type(self, progression):
        with pytest.raises(InvalidArgument):
            progression.grant_xp("U1", 10, "bribe")

    @pytest.mark.parametrize("action", ["register", "remove", XPActionType.REMOVE])
    def test_counter_actions_go_through_record_action(self, progression, action):
        with pytest.raises(InvalidArgument):
            progression.grant_xp("U1", 10, action)
        with pytest.raises(NotFound):
            progression.get_user_game_data("U1")
        report = progression.get_daily_report()
        assert (report.registrations, report.removals) == (0, 0)


# ===========================================================================
# award_badge
# ===========================================================================
class TestAwardBadge:
    def test_award_grants_xp_once(self, progression, db_engine):
        first = progression.award_badge("U1", "early_bird")
        assert isinstance(first, BadgeAwardResult)
        assert first.awarded is True
        assert first.badge.xp_reward == 150
        assert first.new_xp == 150
        assert first.new_level == 2

        second = progression.award_badge("U1", "early_bird")
        assert second.awarded is False
        assert second.badge is None
        assert second.new_xp == 150
        assert _ledger_count(db_engine, "U1", XPActionType.BADGE) == 1

    def test_unknown_code(self, progression):
        with pytest.raises(InvalidArgument):
            progression.award_badge("U1", "does_not_exist")

    def test_cascade_listed_separately(self, progression):
        progression.grant_xp("U1", 250, "checkin")
        result = progression.award_badge("U1", "night_owl_30")
        assert result.awarded is True
        # 250 + 500 → 750 (Lv.4) → level_3 badge
        assert _codes(result.new_badges) == ["level_3"]
        assert result.new_xp == 850


# ===========================================================================
# Read projections
# ===========================================================================
class TestReads:
    @pytest.mark.parametrize(
        "method",
        ["get_user_game_data", "get_user_badges", "get_all_badges_with_status", "get_xp_history"],
    )
    def test_unknown_user_not_found(self, progression, method):
        with pytest.raises(NotFound):
            getattr(progression, method)("ghost")

    def test_game_data_progress(self, progression):
        progression.grant_xp("U1", 201, "checkin")
        data = progression.get_user_game_data("U1")
        assert data.level == 2
        assert data.level_name == "Senior Clerk"
        assert data.progress_percent == 50
        assert data.xp_to_next_level == 100
        assert data.next_level_name == "Expiry Expert"
        assert data.badges == ()

    def test_badges_most_recent_first(self, progression):
        progression.award_badge("U1", "early_bird", now=local(2026, 3, 1, 7))
        progression.award_badge("U1", "night_owl_7", now=local(2026, 3, 2, 2))
        badges = progression.get_user_badges("U1")
        assert [b.code for b in badges] == ["night_owl_7", "early_bird"]
        assert badges[0].earned_at == local(2026, 3, 2, 2)

    def test_all_badges_with_status(self, progression):
        progression.award_badge("U1", "draw_10")
        statuses = progression.get_all_badges_with_status("U1")
        assert len(statuses) == len(progression.badge_catalog)
        owned = [s.code for s in statuses if s.owned]
        assert owned == ["draw_10"]
        assert all(s.earned_at is None for s in statuses if not s.owned)

    def test_history_most_recent_first(self, progression):
        progression.grant_xp("U1", 10, "checkin", now=local(2026, 3, 1))
        progression.grant_xp("U1", 20, "draw", now=local(2026, 3, 2))
        history = progression.get_xp_history("U1", limit=1)
        assert len(history) == 1
        assert history[0].amount == 20
        assert history[0].action_type == "draw"
        assert history[0].timestamp == local(2026, 3, 2)

    @pytest.mark.parametrize("limit", [0, 201])
    def test_history_limit_bounds(self, progression, limit):
        with pytest.raises(InvalidArgument):
            progression.get_xp_history("U1", limit=limit)

    def test_update_display_name(self, progression):
        progression.check_in("U1", "Mei")
        assert progression.update_display_name("U1", "  Mei Lin ") == "Mei Lin"
        assert progression.get_user_game_data("U1").display_name == "Mei Lin"

    def test_update_display_name_rejects_blank(self, progression):
        with pytest.raises(InvalidArgument):
            progression.update_display_name("U1", "   ")

    def test_static_reads(self, progression):
        assert progression.levels.max_level == 5
        assert progression.xp_rewards.remove == 30
        assert "streak_30" in progression.badge_catalog


# ===========================================================================
# handle_trigger
# ===========================================================================
class TestHandleTrigger:
    def test_dispatch_by_kind(self, progression):
        checkin = progression.handle_trigger(ProgressionTrigger(kind=TriggerKind.CHECKIN, user_id="U1"))
        register = progression.handle_trigger(ProgressionTrigger(kind=TriggerKind.REGISTER, user_id="U1"))
        remove = progression.handle_trigger(ProgressionTrigger(kind=TriggerKind.REMOVE, user_id="U1"))
        draw = progression.handle_trigger(
            ProgressionTrigger(kind=TriggerKind.DRAW, user_id="U1", lucky_reset=True)
        )
        badge = progression.handle_trigger(
            ProgressionTrigger(kind=TriggerKind.BADGE, user_id="U1", badge_code="early_bird")
        )

        assert isinstance(checkin.result, CheckinResult)
        assert register.result.action_type == "register"
        assert remove.result.action_type == "remove"
        assert draw.result.lucky_value == 0
        assert badge.result.awarded is True
        assert badge.kind is TriggerKind.BADGE

    def test_badge_trigger_needs_code(self, progression):
        with pytest.raises(InvalidArgument):
            progression.handle_trigger(ProgressionTrigger(kind=TriggerKind.BADGE, user_id="U1"))

    def test_display_name_flows_through(self, progression):
        progression.handle_trigger(
            ProgressionTrigger(kind=TriggerKind.DRAW, user_id="U1", display_name="Ah-Hua")
        )
        assert progression.get_user_game_data("U1").display_name == "Ah-Hua"


# ===========================================================================
# Transactions: retries, rollback, timeouts
# ===========================================================================
class TestTransactions:
    def test_version_conflict_is_retried(self, progression, monkeypatch):
        real_save = stats_store.save
        calls = {"n": 0}

        def flaky_save(session, stats, now=None):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("simulated concurrent commit")
            return real_save(session, stats, now)

        monkeypatch.setattr(stats_store, "save", flaky_save)
        result = progression.grant_xp("U1", 40, "checkin")

        assert calls["n"] == 2
        assert result.new_xp == 40
        assert len(progression.get_xp_history("U1")) == 1

    def test_conflict_after_retries_exhausted(self, progression, monkeypatch):
        def always_stale(session, stats, now=None):
            raise StaleDataError("simulated concurrent commit")

        monkeypatch.setattr(stats_store, "save", always_stale)
        with pytest.raises(Conflict) as excinfo:
            progression.record_action("U1", "register")
        assert excinfo.value.retryable is True

        monkeypatch.undo()
        with pytest.raises(NotFound):
            progression.get_user_game_data("U1")

    def test_store_failure_is_storage_unavailable(self, progression, monkeypatch):
        def broken_save(session, stats, now=None):
            raise OperationalError("UPDATE user_stats", {}, Exception("statement timeout"))

        monkeypatch.setattr(stats_store, "save", broken_save)
        with pytest.raises(StorageUnavailable) as excinfo:
            progression.check_in("U1")
        assert excinfo.value.retryable is True
        assert excinfo.value.user_message == "Please try again."

    def test_failed_cascade_rolls_back_everything(self, progression, db_engine, monkeypatch):
        real_append = ledger.append

        def failing_badge_append(session, user_id, amount, action_type, description, timestamp):
            if XPActionType(action_type) is XPActionType.BADGE:
                raise RuntimeError("ledger down")
            return real_append(session, user_id, amount, action_type, description, timestamp)

        monkeypatch.setattr(ledger, "append", failing_badge_append)
        with pytest.raises(RuntimeError):
            progression.record_action("U1", "register")

        monkeypatch.undo()
        with pytest.raises(NotFound):
            progression.get_user_game_data("U1")
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(UserBadge)) == 0
            assert session.scalar(select(func.count()).select_from(XPLog)) == 0

    def test_lock_wait_times_out(self, db_engine, clock):
        locks = UserLockRegistry()
        engine = ProgressionEngine(
            db_engine, locks=locks, lock_timeout=0.05, clock=clock, timezone=TAIPEI,
        )
        with locks.hold("U1"):
            with pytest.raises(Conflict):
                engine.check_in("U1")
        assert engine.check_in("U1").success is True
