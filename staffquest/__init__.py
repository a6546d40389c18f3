"""
StaffQuest — Progression Engine for a Retail-Operations Assistant
==================================================================
Turns everyday store work (daily check-ins, product registrations,
expired-stock removals, fortune-card draws) into XP, levels, streaks and
badges, and aggregates them into leaderboards and daily reports.
Triggers arrive concurrently from the web API and the chat webhook; the
engine keeps every user's counters consistent under both.

Package layout::

    staffquest/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Default level / reward / badge tables
    ├── errors.py          # ProgressionError taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (stats, ledger, badges)
    │   └── seed.py        # Badge catalog seeder
    ├── engine/
    │   ├── events.py      # ProgressionTrigger + XP reward table
    │   ├── levels.py      # LevelTable lookup
    │   ├── streaks.py     # Streak calculator (pure)
    │   ├── badges.py      # Badge catalog + rule evaluation (pure)
    │   ├── rules.py       # Validated rule bundle
    │   └── locks.py       # Per-user serialization boundary
    ├── services/
    │   ├── stats_store.py         # UserStats persistence helpers
    │   ├── ledger.py              # Append-only XP ledger + aggregates
    │   └── progression_service.py # ProgressionEngine façade
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Dependency wiring
        └── routes/        # Game endpoints + chat webhook
"""

__version__ = "0.1.0"
