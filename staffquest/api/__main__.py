"""
staffquest.api.__main__ — Entry point for ``python -m staffquest.api``
========================================================================

Wiring:
1. Load .env (DATABASE_URL and friends).
2. Load config.yaml (store settings + progression tables).
3. Hand the FastAPI app to uvicorn; the app's lifespan creates tables and
   seeds the badge catalog.

Run with::

    python -m staffquest.api
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("staffquest")


def main() -> None:
    """Bootstrap and serve the StaffQuest API."""

    # 1. Environment variables.
    load_dotenv()
    if not os.getenv("DATABASE_URL"):
        logger.critical(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a database URL."
        )
        sys.exit(1)

    # 2. Soft configuration (validated before the server binds).
    from staffquest.api.deps import get_config

    try:
        cfg = get_config()
    except (FileNotFoundError, ValueError) as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)
    logger.info("Config loaded — Store: %s (%s)", cfg.store_name, cfg.timezone)

    # 3. Serve.
    from staffquest.api.main import app

    uvicorn.run(app, host="0.0.0.0", port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()
