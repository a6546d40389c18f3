"""
alembic/env.py — StaffQuest migration environment
===================================================

Target metadata is :data:`staffquest.database.models.Base.metadata`.  The
database URL comes from ``DATABASE_URL`` (``.env`` is loaded first) and
falls back to ``sqlalchemy.url`` in ``alembic.ini``.  SQLite runs every
migration in batch mode so ALTER-style operations work there too.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from alembic import context
from staffquest.database.models import Base

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

if os.getenv("DATABASE_URL"):
    config.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])


def _options(backend: str) -> dict:
    """``context.configure`` keywords shared by both modes."""
    return {
        "target_metadata": Base.metadata,
        "compare_type": True,
        "render_as_batch": backend == "sqlite",
    }


def run_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_options(make_url(url).get_backend_name()),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_options(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
