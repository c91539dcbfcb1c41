"""
gardentap.constants — Shared Constants & Helpers
==================================================

Single source of truth for the main currency id, the bare-handed tool
values and the fixed-point rounding rules.  Import from here instead of
re-deriving them in engines and services.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

# ---------------------------------------------------------------------------
# Currencies
# ---------------------------------------------------------------------------
MAIN_CURRENCY = "main"
"""The global (uncapped) currency every tap pays into."""

# ---------------------------------------------------------------------------
# Tap defaults — used when no tool is equipped for the location's character
# ---------------------------------------------------------------------------
BASE_TOOL_POWER = Decimal("1")
BASE_MAIN_COINS_POWER = Decimal("0.5")
BASE_LOCATION_COINS_POWER = Decimal("1")

# ---------------------------------------------------------------------------
# Fixed-point arithmetic
# ---------------------------------------------------------------------------
CENT = Decimal("0.01")
INCOME_QUANTUM = Decimal("0.000001")
ZERO = Decimal("0")


def to_amount(value: Decimal | int | float | str) -> Decimal:
    """Coerce *value* to a 2-decimal :class:`Decimal`, rounding half-up.

    Floats go through ``str()`` first so ``0.1`` stays ``0.10`` instead of
    picking up binary noise.
    """
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_income(value: Decimal) -> Decimal:
    """Pending idle income is kept at micro precision and only rounded to
    cents when it is collected into a balance.
    """
    return value.quantize(INCOME_QUANTUM, rounding=ROUND_HALF_UP)


def round_half_up(value: Decimal) -> Decimal:
    """Round to a whole number the way the game client does (0.5 → 1)."""
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    """Default clock for every operation that takes ``now=None``."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
