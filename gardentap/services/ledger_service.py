"""
gardentap.services.ledger_service — Currency Ledger
=====================================================

Per-(player, currency) balances.  All functions run inside the caller's
session (normally a :func:`~gardentap.database.engine.player_transaction`)
and never commit.

* A missing balance row reads as ``0``; only :func:`ensure_account` and
  :func:`credit` create rows.
* :func:`credit` with a ``capacity`` clamps: only ``capacity - balance``
  is added and the actually-credited amount is returned, so callers can
  detect a full storage.  Without a capacity the full delta is added.
* :func:`debit` is all-or-nothing and reports failure as ``False``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from gardentap.constants import ZERO, to_amount
from gardentap.database.models import PlayerCurrency
from gardentap.errors import InvariantViolation

if TYPE_CHECKING:
    from gardentap.engine.catalog import Catalog

logger = logging.getLogger(__name__)


def _row(session: Session, user_id: str, currency_id: str) -> PlayerCurrency | None:
    return session.get(PlayerCurrency, (user_id, currency_id))


def get_balance(session: Session, catalog: Catalog, user_id: str, currency_id: str) -> Decimal:
    """Balance of *currency_id*; 0 when the player has no row for it."""
    catalog.currency(currency_id)
    row = _row(session, user_id, currency_id)
    return to_amount(row.amount) if row is not None else ZERO


def ensure_account(
    session: Session, catalog: Catalog, user_id: str, currency_id: str,
) -> PlayerCurrency:
    """Return the balance row, creating a zero-balance one if absent."""
    catalog.currency(currency_id)
    row = _row(session, user_id, currency_id)
    if row is None:
        row = PlayerCurrency(user_id=user_id, currency_id=currency_id, amount=ZERO)
        session.add(row)
        session.flush()
    return row


def credit(
    session: Session,
    catalog: Catalog,
    user_id: str,
    currency_id: str,
    delta: Decimal,
    capacity: Decimal | None = None,
) -> Decimal:
    """Add up to *delta* and return what was actually credited.

    Raises
    ------
    ValueError
        If *delta* is negative.
    NotFoundError
        If *currency_id* is not in the catalog.
    """
    delta = to_amount(delta)
    if delta < 0:
        raise ValueError(f"credit delta must be non-negative, got {delta}")

    row = ensure_account(session, catalog, user_id, currency_id)
    balance = to_amount(row.amount)

    if capacity is None:
        credited = delta
    else:
        credited = min(delta, max(ZERO, to_amount(capacity) - balance))

    if credited > 0:
        row.amount = balance + credited
    return credited


def debit(
    session: Session, catalog: Catalog, user_id: str, currency_id: str, amount: Decimal,
) -> bool:
    """Subtract *amount*; return False (and change nothing) if funds are short."""
    amount = to_amount(amount)
    if amount < 0:
        raise ValueError(f"debit amount must be non-negative, got {amount}")

    catalog.currency(currency_id)
    row = _row(session, user_id, currency_id)
    balance = to_amount(row.amount) if row is not None else ZERO
    if balance < amount:
        return False
    if amount == 0:
        return True

    new_balance = balance - amount
    if new_balance < 0:
        raise InvariantViolation(
            f"debit would leave {user_id}/{currency_id} at {new_balance}"
        )
    row.amount = new_balance
    return True
