"""
staffquest.database.seed — Badge Catalog Seeder
=================================================

Mirrors the in-memory :class:`~staffquest.engine.badges.BadgeCatalog` into
the ``badges`` table on startup so ``user_badges`` rows have something to
reference and reporting queries can join on it.

Idempotent — inserts missing codes and refreshes the display fields of
existing ones.  Rows for codes no longer in the catalog are left alone so
earned badges keep their history.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from staffquest.database.models import Badge
from staffquest.engine.badges import BadgeCatalog, BadgeDefinition

logger = logging.getLogger(__name__)


def apply_definition(row: Badge, definition: BadgeDefinition) -> None:
    """Copy *definition* onto a :class:`Badge` row."""
    row.name = definition.name
    row.description = definition.description
    row.icon = definition.icon
    row.rarity = definition.rarity
    row.condition_type = definition.condition_type.value
    row.condition_value = definition.condition_value
    row.xp_reward = definition.xp_reward


def seed_badges(engine: Engine, catalog: BadgeCatalog) -> int:
    """Upsert every catalog entry.  Returns the number of new rows."""
    created = 0
    with Session(engine) as session:
        existing = {
            row.code: row for row in session.scalars(select(Badge)).all()
        }
        for definition in catalog:
            row = existing.get(definition.code)
            if row is None:
                row = Badge(code=definition.code)
                session.add(row)
                created += 1
            apply_definition(row, definition)
        session.commit()

    if created:
        logger.info("Seeded %d badge definition(s).", created)
    else:
        logger.debug("Badge catalog already seeded (%d codes).", len(catalog))
    return created
