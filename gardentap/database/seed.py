"""
gardentap.database.seed — Default Settings & Catalog Seeder
=============================================================

Two seeders, both run by :func:`gardentap.database.engine.init_db`:

* :func:`seed_default_settings` — gameplay tuning knobs.  Only inserts keys
  that don't already exist; edited values are never overwritten.
* :func:`seed_catalog` — currencies, locations, tools, helpers, levels,
  rewards, storage ladders, ranks, seasons, achievements and tasks from
  ``gardentap/seeds/catalog.yaml``.  Skipped entirely once the catalog
  has any currency in it.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from gardentap.constants import to_amount, utcnow
from gardentap.database.models import (
    Achievement,
    Currency,
    Helper,
    HelperLevel,
    Level,
    LevelReward,
    Location,
    Rank,
    Season,
    Setting,
    StorageLevel,
    Task,
    Tool,
)

logger = logging.getLogger(__name__)

_SEEDS_DIR = Path(__file__).resolve().parent.parent / "seeds"


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "tap.experience_per_tap": (1, "tap", "Experience granted by every successful tap"),
    "energy.start": (100, "energy", "Energy a new player starts with"),
    "energy.max_start": (100, "energy", "Max energy a new player starts with"),
    "energy.regen_seconds": (60, "energy", "Seconds per regenerated energy point"),
    "income.min_minutes": (1, "income", "Minimum minutes between idle-income accruals"),
    "storage.default_capacity": (
        1000, "storage", "Capacity when no storage level is defined for a location",
    ),
    "player.starter_location_id": (1, "player", "Location unlocked for new players"),
    "player.starter_tool_id": (1, "player", "Tool unlocked and equipped for new players"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)


def _load_yaml(filename: str) -> Any:
    """Load a YAML file from the seeds directory."""
    path = _SEEDS_DIR / filename
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def helper_level_rows(helper_id: int, max_level: int, curve: dict) -> list[HelperLevel]:
    """Generate the income/cost ladder for one helper."""
    rows = []
    for level in range(1, max_level + 1):
        income = math.floor(curve["income_base"] * level * curve["income_growth"] ** (level - 1))
        cost = math.floor(curve["cost_base"] * level * curve["cost_growth"] ** (level - 1))
        rows.append(HelperLevel(
            helper_id=helper_id,
            level=level,
            income_per_hour=Decimal(income),
            upgrade_cost=Decimal(cost),
        ))
    return rows


def level_rows(curve: dict) -> list[Level]:
    """Generate ``levels`` rows for 2..max_level (level 1 needs no experience)."""
    return [
        Level(level=level, required_exp=math.floor(curve["base"] * curve["growth"] ** (level - 2)))
        for level in range(2, curve["max_level"] + 1)
    ]


def _seed_catalog_rows(session: Session, data: dict) -> int:
    count = 0

    for c in data.get("currencies", []):
        session.add(Currency(id=c["id"], name=c["name"]))
        count += 1
    session.flush()

    location_currency: dict[int, str] = {}
    for loc in data.get("locations", []):
        location_currency[loc["id"]] = loc["currency"]
        session.add(Location(
            id=loc["id"],
            name=loc["name"],
            currency_id=loc["currency"],
            character_id=loc["character_id"],
            unlock_level=loc.get("unlock_level", 1),
            unlock_cost=to_amount(loc.get("unlock_cost", 0)),
        ))
        count += 1

    for t in data.get("tools", []):
        session.add(Tool(
            id=t["id"],
            name=t["name"],
            character_id=t["character_id"],
            power=to_amount(t["power"]),
            main_coins_power=to_amount(t["main_coins_power"]),
            location_coins_power=to_amount(t["location_coins_power"]),
            unlock_level=t.get("unlock_level", 1),
            unlock_cost=to_amount(t.get("unlock_cost", 0)),
            currency_id=t["currency"],
        ))
        count += 1
    session.flush()

    curve = data.get("helper_level_curve", {})
    for h in data.get("helpers", []):
        session.add(Helper(
            id=h["id"],
            name=h["name"],
            location_id=h["location_id"],
            currency_id=location_currency[h["location_id"]],
            unlock_level=h.get("unlock_level", 1),
            unlock_cost=to_amount(h.get("unlock_cost", 0)),
            max_level=h.get("max_level", 10),
        ))
        session.flush()
        session.add_all(helper_level_rows(h["id"], h.get("max_level", 10), curve))
        count += 1

    if "level_curve" in data:
        session.add_all(level_rows(data["level_curve"]))
        session.flush()

    for r in data.get("level_rewards", []):
        session.add(LevelReward(
            level=r["level"],
            reward_type=r["reward_type"],
            currency_id=r.get("currency"),
            amount=to_amount(r.get("amount", 0)),
            target_id=r.get("target_id"),
        ))
        count += 1

    for s in data.get("storage_levels", []):
        session.add(StorageLevel(
            location_id=s["location_id"],
            level=s["level"],
            capacity=to_amount(s["capacity"]),
            upgrade_cost=to_amount(s.get("upgrade_cost", 0)),
            currency_id=s["currency"],
        ))
        count += 1

    for r in data.get("ranks", []):
        session.add(Rank(id=r["id"], name=r["name"], min_points=r["min_points"]))
        count += 1

    now = utcnow()
    for s in data.get("seasons", []):
        session.add(Season(
            id=s["id"],
            name=s["name"],
            starts_at=now,
            ends_at=now + timedelta(days=s.get("duration_days", 90)),
            active=s.get("active", False),
        ))
        count += 1

    for a in data.get("achievements", []):
        session.add(Achievement(
            id=a["id"],
            name=a["name"],
            description=a.get("description"),
            condition_type=a["condition_type"],
            condition_value=a["condition_value"],
            reward_amount=to_amount(a.get("reward_amount", 0)),
            active=a.get("active", True),
        ))
        count += 1

    for t in data.get("tasks", []):
        session.add(Task(
            id=t["id"],
            category=t["category"],
            task_type=t["task_type"],
            description=t["description"],
            target_value=t["target_value"],
            season_id=t.get("season_id"),
            active_from=t.get("active_from"),
            active_until=t.get("active_until"),
            experience=t.get("experience", 0),
            main_coins=to_amount(t.get("main_coins", 0)),
            season_points=t.get("season_points", 0),
            active=t.get("active", True),
        ))
        count += 1

    return count


def seed_catalog(engine: Engine, filename: str = "catalog.yaml") -> int:
    """Seed the default catalog if the catalog tables are empty.

    Returns the number of catalog entities inserted (0 when skipped).
    """
    with Session(engine) as session:
        if session.scalar(select(Currency.id).limit(1)) is not None:
            logger.info("Catalog already seeded — skipping.")
            return 0

        data = _load_yaml(filename)
        if not data:
            return 0

        try:
            count = _seed_catalog_rows(session, data)
            session.commit()
        except Exception:
            session.rollback()
            raise

    logger.info("Seeded %d catalog entries from %s.", count, filename)
    return count
