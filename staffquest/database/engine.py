"""
staffquest.database.engine — Database Connection & Async Helper
=================================================================

The progression engine is synchronous (SQLAlchemy 2.0 ORM on a regular
connection pool).  The FastAPI routes and the chat webhook are async, so
any call into the engine from a coroutine goes through :func:`run_db`,
which ships the work to a thread via :func:`asyncio.to_thread` and keeps
the event loop free.

Usage::

    from staffquest.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS + badge seed

    # Inside a coroutine:
    result = await run_db(progression.check_in, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url

from staffquest.database.models import Base

if TYPE_CHECKING:
    from staffquest.engine.rules import ProgressionRules

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_STATEMENT_TIMEOUT_MS = 5000


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(
    url: str | None = None,
    *,
    statement_timeout_ms: int = DEFAULT_STATEMENT_TIMEOUT_MS,
    **kwargs,
) -> Engine:
    """Build a SQLAlchemy :class:`Engine`.

    *url* defaults to the ``DATABASE_URL`` env var.  For PostgreSQL the
    pool is sized for a single store's staff:

    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    and every connection carries a server-side ``statement_timeout``.
    SQLite URLs skip pool sizing and get SAVEPOINT support switched on.
    Extra *kwargs* are forwarded to :func:`sqlalchemy.create_engine`.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid database URL."
        )

    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        engine = create_engine(url, echo=False, **kwargs)
        enable_sqlite_savepoints(engine)
    else:
        options: dict = {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,   # Reconnect stale connections automatically
            "pool_timeout": 10,      # Fail after 10s instead of hanging forever
            "pool_recycle": 3600,    # Recycle connections after 1 hour
        }
        if backend == "postgresql":
            options["connect_args"] = {
                "options": f"-c statement_timeout={int(statement_timeout_ms)}",
            }
        options.update(kwargs)
        engine = create_engine(url, echo=False, **options)

    logger.info("Database engine created → %s (%s)", engine.url.host or engine.url.database, backend)
    return engine


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let pysqlite honour ``BEGIN`` / ``SAVEPOINT`` the way SQLAlchemy expects.

    The driver otherwise defers ``BEGIN`` and silently breaks
    ``Session.begin_nested()``.
    """

    @event.listens_for(engine, "connect")
    def _no_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine, rules: ProgressionRules | None = None) -> None:
    """Create all tables defined in :mod:`staffquest.database.models`.

    Safe to call on every startup.  After creating tables, seeds the badge
    catalog so ``badges`` mirrors the configured rules.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained as a safety net for dev/test
        environments where Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from staffquest.database.seed import seed_badges
    from staffquest.engine.rules import ProgressionRules

    seed_badges(engine, (rules or ProgressionRules()).badges)


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** engine call on a background thread.

    Every engine call made from a coroutine goes through this wrapper::

        result = await run_db(progression.record_draw, user_id, lucky_reset=True)

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor``.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
