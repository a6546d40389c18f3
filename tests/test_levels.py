"""
tests/test_levels.py — Level Table Tests
==========================================
Validation at construction, level resolution and in-tier progress.
"""

from __future__ import annotations

import pytest

from staffquest.constants import DEFAULT_LEVELS
from staffquest.engine.levels import LevelTable, LevelTier


@pytest.fixture
def table() -> LevelTable:
    return LevelTable.from_rows(DEFAULT_LEVELS)


class TestResolveLevel:
    @pytest.mark.parametrize(
        ("xp", "level"),
        [(0, 1), (100, 1), (101, 2), (300, 2), (301, 3), (600, 3), (601, 4), (1000, 4), (1001, 5), (99999, 5)],
    )
    def test_boundaries(self, table, xp, level):
        assert table.resolve_level(xp) == level

    def test_negative_xp_rejected(self, table):
        with pytest.raises(ValueError):
            table.resolve_level(-1)

    def test_two_tier_table(self):
        small = LevelTable([LevelTier(1, "One", 0, 100), LevelTier(2, "Two", 101, 300)])
        assert small.resolve_level(95) == 1
        assert small.resolve_level(105) == 2
        assert small.max_level == 2


class TestProgress:
    def test_start_of_tier(self, table):
        progress = table.progress(0)
        assert progress.level == 1
        assert progress.progress_percent == 0
        assert progress.xp_to_next_level == 101
        assert progress.next_level == 2
        assert progress.next_level_name == "Senior Clerk"

    def test_midway(self, table):
        # Tier 2 spans 101..300, next tier starts at 301 → span 200
        progress = table.progress(201)
        assert progress.level == 2
        assert progress.progress_percent == 50
        assert progress.xp_to_next_level == 100

    def test_percent_is_floored(self, table):
        assert table.progress(100).progress_percent == 99

    def test_max_level_reports_zero(self, table):
        progress = table.progress(5000)
        assert progress.level == 5
        assert progress.progress_percent == 0
        assert progress.xp_to_next_level == 0
        assert progress.next_level is None
        assert progress.next_level_min_xp is None


class TestValidation:
    def test_empty_table_rejected(self):
        with pytest.raises(ValueError, match="at least one"):
            LevelTable([])

    def test_first_tier_must_start_at_zero(self):
        with pytest.raises(ValueError, match="min_xp=0"):
            LevelTable([LevelTier(1, "One", 10, 100)])

    def test_gap_between_tiers_rejected(self):
        with pytest.raises(ValueError, match="contiguous"):
            LevelTable([LevelTier(1, "One", 0, 100), LevelTier(2, "Two", 150, None)])

    def test_overlap_rejected(self):
        with pytest.raises(ValueError, match="contiguous"):
            LevelTable([LevelTier(1, "One", 0, 100), LevelTier(2, "Two", 90, None)])

    def test_levels_numbered_in_order(self):
        with pytest.raises(ValueError, match="1..N"):
            LevelTable([LevelTier(1, "One", 0, 100), LevelTier(3, "Three", 101, None)])

    def test_only_last_tier_unbounded(self):
        with pytest.raises(ValueError, match="unbounded"):
            LevelTable([LevelTier(1, "One", 0, None), LevelTier(2, "Two", 101, None)])

    def test_max_below_min_rejected(self):
        with pytest.raises(ValueError, match="max_xp"):
            LevelTable([LevelTier(1, "One", 0, 100), LevelTier(2, "Two", 101, 50)])


class TestLookup:
    def test_name_for(self, table):
        assert table.name_for(1) == "Trainee Clerk"
        assert table.name_for(5) == "Legendary Guardian"

    def test_unknown_level(self, table):
        with pytest.raises(KeyError):
            table.tier(6)

    def test_to_list_round_trips_rows(self, table):
        assert table.to_list() == DEFAULT_LEVELS
