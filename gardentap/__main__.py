"""
gardentap.__main__ — Entry point for ``python -m gardentap``
=============================================================

Prepares a database for the game server:

1. Load .env (``DATABASE_URL``).
2. Load config.yaml (logging level, pool sizing, statement timeout).
3. Create the SQLAlchemy engine, ensure tables exist, seed default
   settings and the default catalog.
4. Load the Catalog once to validate it and log what it holds.
5. Pick the notification sink (log or outbox only).

Run with::

    python -m gardentap
"""

from __future__ import annotations

import logging

from dotenv import load_dotenv
from sqlalchemy import Engine

from gardentap.config import load_config
from gardentap.database.engine import create_db_engine, init_db
from gardentap.engine.catalog import Catalog
from gardentap.services.notifications import NotificationSink, sink_from_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("gardentap")


def bootstrap(
    config_path: str = "config.yaml",
) -> tuple[Engine, Catalog, NotificationSink | None]:
    """Bootstrap the GardenTap database and catalog.

    Returns the engine, the loaded catalog and the notification sink that
    a hosting process passes to every player operation.
    """

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config(config_path)
    logging.getLogger().setLevel(cfg.log_level)
    logger.info("Config loaded — Game: %s", cfg.game_name)

    # 3. Database.
    engine = create_db_engine(cfg)
    init_db(engine)

    # 4. Catalog.
    catalog = Catalog(engine)
    catalog.load_all()
    logger.info(
        "Ready: %d locations, %d ranks, %d achievements, starter location %s",
        len(catalog.locations()),
        len(catalog.ranks()),
        len(catalog.achievements()),
        catalog.starter_location().name,
    )

    # 5. Notifications.
    sink = sink_from_config(cfg)
    if sink is None:
        logger.info("Notifications: outbox only (player_notifications)")
    else:
        logger.info("Notifications: %s", type(sink).__name__)
    return engine, catalog, sink


def main() -> None:
    bootstrap()


if __name__ == "__main__":
    main()
