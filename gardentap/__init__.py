"""
GardenTap — Player Economy & Progression Engine
=================================================
Owns a player's mutable game state (energy, experience, level, currency
balances, storage caps, helper income, rank, achievements, daily and season
tasks) for a tap-to-collect Telegram mini-game, and keeps every operation
that touches that state atomic per player.

The HTTP layer, the Telegram bot and the web client live elsewhere; they
call the operations exposed by :mod:`gardentap.services`.

Package layout::

    gardentap/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Currency ids, base tool values, fixed-point helpers
    ├── errors.py          # NotFoundError / InvariantViolation / StorageUnavailable
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, per-player transactions, async bridge
    │   ├── models.py      # Catalog tables + per-player tables
    │   └── seed.py        # Default gameplay settings + catalog from seeds/catalog.yaml
    ├── engine/
    │   ├── catalog.py     # In-memory read-only game catalog
    │   ├── tap.py         # Tap yield + energy regeneration math
    │   ├── leveling.py    # Multi-level-up loop
    │   ├── income.py      # Idle income accrual + collection planning
    │   ├── ranks.py       # Points → rank resolution
    │   ├── achievements.py # Achievement condition registry
    │   └── tasks.py       # Task measures + per-period progress
    ├── services/
    │   ├── ledger_service.py      # Currency ledger (credit / debit)
    │   ├── progress_service.py    # Lazy player creation, storage, unlocks, stats
    │   ├── leveling_service.py    # Experience intake + reward cascade
    │   ├── tap_service.py         # The tap action
    │   ├── income_service.py      # Pending income accrual + collection
    │   ├── achievement_service.py # Rank updates + achievement grants
    │   ├── player_service.py      # Progress snapshot (login reconciliation)
    │   ├── shop_service.py        # Tools, helpers, storage upgrades
    │   ├── task_service.py        # Daily / season task progress + claims
    │   └── notifications.py       # Outbox + fire-and-forget sink delivery
    └── seeds/
        └── catalog.yaml   # Currencies, locations, tools, helpers, levels, ranks…
"""

__version__ = "0.1.0"
