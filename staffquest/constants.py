"""
staffquest.constants — Default Progression Tables
===================================================

Single source of truth for the built-in level table, XP rewards, streak
milestones and badge catalog.  ``config.yaml`` may override any of these
under its ``progression:`` key; the rule objects in
:mod:`staffquest.engine.rules` are always built from the merged result.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Level table: (level, name, min_xp, max_xp).  ``None`` → unbounded.
# ---------------------------------------------------------------------------
DEFAULT_LEVELS: list[dict] = [
    {"level": 1, "name": "Trainee Clerk", "min_xp": 0, "max_xp": 100},
    {"level": 2, "name": "Senior Clerk", "min_xp": 101, "max_xp": 300},
    {"level": 3, "name": "Expiry Expert", "min_xp": 301, "max_xp": 600},
    {"level": 4, "name": "Store Star", "min_xp": 601, "max_xp": 1000},
    {"level": 5, "name": "Legendary Guardian", "min_xp": 1001, "max_xp": None},
]

# ---------------------------------------------------------------------------
# Fixed XP per action
# ---------------------------------------------------------------------------
DEFAULT_XP_REWARDS: dict[str, int] = {
    "checkin": 5,
    "register": 20,
    "remove": 30,
    "draw": 5,
}

# Streak day → bonus XP granted on reaching exactly that day
DEFAULT_STREAK_MILESTONES: dict[int, int] = {
    7: 100,
    14: 200,
    30: 500,
}

# ---------------------------------------------------------------------------
# Shift windows (local hour ranges, half-open)
# ---------------------------------------------------------------------------
DEFAULT_SHIFT_WINDOWS: dict[str, tuple[int, int]] = {
    "night": (0, 6),
    "early": (6, 9),
}

# ---------------------------------------------------------------------------
# Badge catalog
# ---------------------------------------------------------------------------
DEFAULT_BADGES: list[dict] = [
    {"code": "first_register", "name": "First Steps", "description": "Register your first product",
     "icon": "\U0001f331", "rarity": "N", "condition_type": "register", "condition_value": 1, "xp_reward": 30},
    {"code": "register_10", "name": "Rookie Clerk", "description": "Register 10 products",
     "icon": "\U0001f4e6", "rarity": "R", "condition_type": "register", "condition_value": 10, "xp_reward": 50},
    {"code": "register_50", "name": "Seasoned Clerk", "description": "Register 50 products",
     "icon": "\U0001f4e6", "rarity": "SR", "condition_type": "register", "condition_value": 50, "xp_reward": 100},
    {"code": "register_100", "name": "Photo Pro", "description": "Register 100 products",
     "icon": "\U0001f4f8", "rarity": "SSR", "condition_type": "register", "condition_value": 100, "xp_reward": 200},
    {"code": "remove_10", "name": "Expiry Recruit", "description": "Pull 10 expired products",
     "icon": "\U0001f6e1️", "rarity": "R", "condition_type": "remove", "condition_value": 10, "xp_reward": 50},
    {"code": "remove_50", "name": "Expiry Guardian", "description": "Pull 50 expired products",
     "icon": "\U0001f6e1️", "rarity": "SR", "condition_type": "remove", "condition_value": 50, "xp_reward": 150},
    {"code": "streak_7", "name": "One-Week Regular", "description": "Check in 7 days in a row",
     "icon": "\U0001f525", "rarity": "R", "condition_type": "streak", "condition_value": 7, "xp_reward": 100},
    {"code": "streak_14", "name": "Fortnight Regular", "description": "Check in 14 days in a row",
     "icon": "\U0001f525", "rarity": "SR", "condition_type": "streak", "condition_value": 14, "xp_reward": 200},
    {"code": "streak_30", "name": "Monthly Champion", "description": "Check in 30 days in a row",
     "icon": "\U0001f525", "rarity": "SSR", "condition_type": "streak", "condition_value": 30, "xp_reward": 500},
    {"code": "draw_10", "name": "Card Novice", "description": "Draw 10 fortune cards",
     "icon": "\U0001f3b4", "rarity": "R", "condition_type": "draw", "condition_value": 10, "xp_reward": 50},
    {"code": "draw_50", "name": "Fortune Teller", "description": "Draw 50 fortune cards",
     "icon": "\U0001f3b4", "rarity": "SR", "condition_type": "draw", "condition_value": 50, "xp_reward": 100},
    {"code": "level_3", "name": "Expiry Expert", "description": "Reach Lv.3",
     "icon": "⭐", "rarity": "SR", "condition_type": "level", "condition_value": 3, "xp_reward": 100},
    {"code": "level_5", "name": "Legendary Guardian", "description": "Reach Lv.5",
     "icon": "\U0001f451", "rarity": "SSR", "condition_type": "level", "condition_value": 5, "xp_reward": 300},
    {"code": "night_owl_7", "name": "Night Owl", "description": "Check in during the night shift 7 days in a row",
     "icon": "\U0001f319", "rarity": "SR", "condition_type": "special", "condition_value": 7, "xp_reward": 150},
    {"code": "night_owl_30", "name": "Night Walker", "description": "Check in during the night shift 30 days in a row",
     "icon": "\U0001f319", "rarity": "SSR", "condition_type": "special", "condition_value": 30, "xp_reward": 500},
    {"code": "early_bird", "name": "Early Bird", "description": "Check in during the early shift 7 days in a row",
     "icon": "\U0001f305", "rarity": "SR", "condition_type": "special", "condition_value": 7, "xp_reward": 150},
]

# Hidden badges awarded by code when a shift streak reaches the threshold
DEFAULT_SHIFT_BADGES: dict[str, dict[int, str]] = {
    "night": {7: "night_owl_7", 30: "night_owl_30"},
    "early": {7: "early_bird"},
}

# ---------------------------------------------------------------------------
# Leaderboard windows (trailing days)
# ---------------------------------------------------------------------------
LEADERBOARD_WINDOW_DAYS: dict[str, int] = {
    "weekly": 7,
    "monthly": 30,
}

MAX_LEADERBOARD_LIMIT = 100
