"""
gardentap.engine.income — Idle Income Accrual & Collection Planning
=====================================================================

Pure calculation.  Every owned helper earns its level's hourly income in
its location's currency, continuously, from the accrual watermark to now.
Accrual is gated by a minimum elapsed time so repeated calls within the
same minute are no-ops.

Accrued amounts are kept at micro precision (:func:`to_income`).
Collection rounds the pending amount to cents and moves it into the
balance up to the storage capacity; whatever doesn't fit stays pending.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from gardentap.constants import ZERO, to_amount, to_income

if TYPE_CHECKING:
    from gardentap.engine.catalog import Catalog

MINUTES_PER_HOUR = Decimal(60)
SECONDS_PER_MINUTE = Decimal(60)


@dataclass(frozen=True, slots=True)
class OwnedHelper:
    helper_id: int
    level: int


def elapsed_minutes(since: datetime, now: datetime) -> Decimal:
    """Minutes between *since* and *now* (0 if the clock went backwards)."""
    seconds = (now - since).total_seconds()
    if seconds <= 0:
        return ZERO
    return Decimal(str(seconds)) / SECONDS_PER_MINUTE


def accrue(
    catalog: Catalog, helpers: Iterable[OwnedHelper], minutes: Decimal,
) -> dict[str, Decimal]:
    """Income earned by *helpers* over *minutes*, per currency.

    Sums are rounded half-up to micro precision after adding up every
    helper of a currency.  Currencies that earned nothing are omitted.
    """
    raw: dict[str, Decimal] = {}
    for owned in helpers:
        helper = catalog.helper(owned.helper_id)
        rate = catalog.income_per_hour(owned.helper_id, owned.level)
        raw[helper.currency_id] = raw.get(helper.currency_id, ZERO) + rate * minutes / MINUTES_PER_HOUR

    earned: dict[str, Decimal] = {}
    for currency_id, amount in raw.items():
        rounded = to_income(amount)
        if rounded > 0:
            earned[currency_id] = rounded
    return earned


@dataclass(frozen=True, slots=True)
class CollectionLine:
    currency_id: str
    pending: Decimal
    collected: Decimal
    remaining: Decimal

    @property
    def storage_full(self) -> bool:
        return self.collected < self.pending


def plan_collection(
    currency_id: str,
    pending: Decimal,
    balance: Decimal,
    capacity: Decimal | None,
) -> CollectionLine:
    """How much of *pending* fits into storage.

    *pending* is the micro-precision amount; ``line.pending`` is that amount
    in cents.  Collecting everything clears the sub-cent rest as well.
    ``capacity=None`` means the currency is uncapped.
    """
    available = to_amount(pending)
    if capacity is None:
        collectable = available
    else:
        collectable = min(available, max(ZERO, capacity - balance))
    remaining = ZERO if collectable == available else pending - collectable
    return CollectionLine(
        currency_id=currency_id,
        pending=available,
        collected=collectable,
        remaining=remaining,
    )
