"""
gardentap.services.income_service — Idle Income Accrual & Collection
======================================================================

Helpers earn continuously once owned.  Their income is accrued lazily,
only when a request touches the player, into ``player_pending_income``;
it reaches the balance only through :func:`collect_idle_income`, where
storage capacity is enforced.

Elapsed time is measured from ``player_progress.income_accrued_at``, which
every accrual advances.  ``last_login`` is a separate stamp written only by
reconciling calls (progress fetch, collection), so peeking at pending
income neither loses time nor counts it twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from gardentap.constants import ZERO, as_utc, to_amount, to_income, utcnow
from gardentap.database.engine import player_transaction
from gardentap.database.models import PlayerPendingIncome, PlayerProgress, TaskType
from gardentap.engine.income import CollectionLine, OwnedHelper, accrue, elapsed_minutes, plan_collection
from gardentap.services import ledger_service, notifications, progress_service, task_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gardentap.engine.catalog import Catalog
    from gardentap.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PendingLine:
    currency_id: str
    amount: Decimal
    balance: Decimal
    capacity: Decimal | None


@dataclass
class PendingIncomeView:
    lines: list[PendingLine] = field(default_factory=list)
    accrued: dict[str, Decimal] = field(default_factory=dict)

    def amount(self, currency_id: str) -> Decimal:
        for line in self.lines:
            if line.currency_id == currency_id:
                return line.amount
        return ZERO


@dataclass
class CollectResult:
    lines: list[CollectionLine] = field(default_factory=list)
    tasks_completed: list[int] = field(default_factory=list)

    @property
    def storage_full(self) -> bool:
        return any(line.storage_full for line in self.lines)

    def collected(self, currency_id: str) -> Decimal:
        for line in self.lines:
            if line.currency_id == currency_id:
                return line.collected
        return ZERO


# ---------------------------------------------------------------------------
# In-transaction API
# ---------------------------------------------------------------------------
def pending_rows(session: Session, user_id: str) -> list[PlayerPendingIncome]:
    return list(session.scalars(
        select(PlayerPendingIncome)
        .where(PlayerPendingIncome.user_id == user_id)
        .order_by(PlayerPendingIncome.currency_id)
    ))


def accrue_pending_income(
    session: Session, catalog: Catalog, progress: PlayerProgress, now: datetime,
) -> dict[str, Decimal]:
    """Merge helper income earned since the watermark into pending income.

    A no-op (returns ``{}``) until ``income.min_minutes`` have passed.
    """
    since = progress.income_accrued_at or progress.last_login
    if since is None:
        progress.income_accrued_at = now
        return {}

    minutes = elapsed_minutes(as_utc(since), now)
    if minutes < catalog.get_int("income.min_minutes", default=1):
        return {}

    owned = [
        OwnedHelper(helper_id=h.helper_id, level=h.level)
        for h in progress_service.owned_helpers(session, progress.user_id)
    ]
    earned = accrue(catalog, owned, minutes)

    for currency_id, amount in earned.items():
        row = session.get(PlayerPendingIncome, (progress.user_id, currency_id))
        if row is None:
            session.add(PlayerPendingIncome(
                user_id=progress.user_id, currency_id=currency_id, amount=amount,
            ))
        else:
            row.amount = to_income(Decimal(row.amount) + amount)

    progress.income_accrued_at = now
    session.flush()

    if earned:
        logger.debug(
            "Accrued %.1f min of helper income for %s: %s",
            minutes, progress.user_id, earned,
        )
    return earned


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
def get_pending_income(
    engine: Engine, catalog: Catalog, user_id: str, *, now: datetime | None = None,
) -> PendingIncomeView:
    """Accrue and return pending income without touching ``last_login``."""
    now = now or utcnow()
    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        accrued = accrue_pending_income(session, catalog, progress, now)
        view = PendingIncomeView(accrued=accrued)
        for row in pending_rows(session, user_id):
            view.lines.append(PendingLine(
                currency_id=row.currency_id,
                amount=to_amount(row.amount),
                balance=ledger_service.get_balance(session, catalog, user_id, row.currency_id),
                capacity=progress_service.capacity_for_currency(
                    session, catalog, user_id, row.currency_id,
                ),
            ))
    return view


def collect_idle_income(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> CollectResult:
    """Move as much pending income into balances as storage allows.

    All currencies are collected in one transaction.  Rows that reach zero
    are deleted; whatever didn't fit stays pending, and so does a sub-cent
    amount that has not yet grown into a whole cent.
    """
    now = now or utcnow()
    result = CollectResult()
    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        accrue_pending_income(session, catalog, progress, now)

        for row in pending_rows(session, user_id):
            pending = Decimal(row.amount)
            if to_amount(pending) == 0:
                continue
            capacity = progress_service.capacity_for_currency(
                session, catalog, user_id, row.currency_id,
            )
            balance = ledger_service.get_balance(session, catalog, user_id, row.currency_id)
            line = plan_collection(row.currency_id, pending, balance, capacity)
            if line.collected > 0:
                ledger_service.credit(
                    session, catalog, user_id, row.currency_id, line.collected, capacity,
                )
            if line.remaining == 0:
                session.delete(row)
            else:
                row.amount = to_income(line.remaining)
            result.lines.append(line)

        gathered = sum((line.collected for line in result.lines), ZERO)
        result.tasks_completed = task_service.record_activity(
            session, catalog, progress, {TaskType.COLLECT_CURRENCY: int(gathered)}, now=now,
        )
        progress.last_login = now
        session.flush()
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    collected = {line.currency_id: line.collected for line in result.lines if line.collected}
    if collected:
        logger.info("Player %s collected idle income: %s", user_id, collected)
    return result
