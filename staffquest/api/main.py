"""
staffquest.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn staffquest.api.main:app --reload --port 8000

or ``python -m staffquest.api``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from staffquest.api.deps import get_config, get_engine  # noqa: E402
from staffquest.api.routes.game import router as game_router  # noqa: E402
from staffquest.api.routes.webhook import router as webhook_router  # noqa: E402
from staffquest.database.engine import init_db  # noqa: E402
from staffquest.errors import (  # noqa: E402
    Conflict,
    InvalidArgument,
    NotFound,
    ProgressionError,
    StorageUnavailable,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[ProgressionError], int] = {
    InvalidArgument: 400,
    NotFound: 404,
    Conflict: 409,
    StorageUnavailable: 503,
}


def _cors_origins() -> list[str]:
    """Comma-separated ``CORS_ALLOW_ORIGINS``, empty by default."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and seed the badge catalog."""
    config = get_config()
    engine = get_engine()
    init_db(engine, config.rules)
    logger.info("StaffQuest API started for %s — engine ready (%s)", config.store_name, engine.url.database)
    yield
    logger.info("StaffQuest API shutting down")
    engine.dispose()


app = FastAPI(
    title="StaffQuest Progression API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(game_router, prefix="/api")
app.include_router(webhook_router, prefix="/api")


@app.exception_handler(ProgressionError)
async def progression_error_handler(request: Request, exc: ProgressionError) -> JSONResponse:
    status = next(
        (code for cls, code in STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        500,
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)


@app.get("/api/health")
def health():
    return {"status": "ok"}
