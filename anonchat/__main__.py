"""
anonchat.__main__ — Entry point for ``python -m anonchat``
===========================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (protocol tuning).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the FastAPI app with uvicorn.
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from anonchat.config import load_config
from anonchat.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("anonchat")


def main() -> None:
    """Bootstrap the schema and run the API server."""

    # 1. Environment variables.
    load_dotenv()

    # 2. Protocol configuration.
    cfg = load_config()
    logger.info(
        "Config loaded — reveal threshold %d, system messages counted: %s",
        cfg.reveal_threshold, cfg.count_system_messages,
    )

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    # 4. Serve (blocks until Ctrl+C or SIGTERM).
    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting anonchat API on port %d…", port)
    uvicorn.run("anonchat.api.main:app", host="0.0.0.0", port=port, log_config=None)


if __name__ == "__main__":
    main()
