"""
gardentap.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (logging, DB
pool tuning, notification delivery).  Gameplay tuning values (experience
per tap, energy regeneration, storage defaults) live in the ``settings``
database table and are read through the :class:`~gardentap.engine.catalog.Catalog`.

The database URL is a secret and comes from the ``DATABASE_URL``
environment variable (loaded from ``.env`` by python-dotenv).

Usage::

    from gardentap.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.game_name)         # "GardenTap"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure only.
# Gameplay tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GardenTapConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    game_name: str

    # Logging
    log_level: str

    # Database pool
    pool_size: int
    max_overflow: int

    # Optional
    statement_timeout_ms: int | None = None  # PostgreSQL statement_timeout per connection
    notification_log_only: bool = True  # Deliver notices to the log instead of a bot


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> GardenTapConfig:
    """Read *path* and return a :class:`GardenTapConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return GardenTapConfig(
        game_name=raw["game_name"],
        log_level=str(raw["log_level"]).upper(),
        pool_size=int(raw["pool_size"]),
        max_overflow=int(raw["max_overflow"]),
        statement_timeout_ms=(
            int(raw["statement_timeout_ms"]) if raw.get("statement_timeout_ms") else None
        ),
        notification_log_only=bool(raw.get("notification_log_only", True)),
    )
