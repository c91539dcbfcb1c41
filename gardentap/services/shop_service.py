"""
gardentap.services.shop_service — Tools, Helpers & Storage
============================================================

Purchases follow one pattern: validate against the catalog and the
player's state, debit the ledger, then grant the unlock or level.  Each
runs in a single player transaction and every expected refusal comes back
as a :class:`PurchaseResult` with a :class:`~gardentap.errors.RejectReason`.

Before the helper roster changes, pending income is accrued at the old
rates so a new or upgraded helper never earns retroactively.  Successful
purchases report task activity (helper upgrades, tools owned) and then
evaluate achievements.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from gardentap.constants import ZERO, utcnow
from gardentap.database.engine import player_transaction
from gardentap.database.models import PlayerHelper, PlayerStorageLimit, TaskType
from gardentap.errors import RejectReason
from gardentap.services import (
    achievement_service,
    income_service,
    ledger_service,
    notifications,
    progress_service,
    task_service,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Session

    from gardentap.database.models import PlayerProgress
    from gardentap.engine.catalog import Catalog
    from gardentap.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


@dataclass
class PurchaseResult:
    success: bool
    reason: RejectReason | None = None
    item_id: int | None = None
    level: int | None = None
    cost: Decimal = ZERO
    currency_id: str | None = None
    tasks_completed: list[int] = field(default_factory=list)
    achievements: list[int] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def reject(cls, reason: RejectReason, item_id: int | None = None) -> PurchaseResult:
        return cls(success=False, reason=reason, item_id=item_id)


@dataclass(frozen=True, slots=True)
class StorageInfo:
    location_id: int
    currency_id: str
    level: int
    capacity: Decimal
    amount: Decimal
    fill_percent: Decimal
    next_level: int | None = None
    next_capacity: Decimal | None = None
    upgrade_cost: Decimal | None = None
    upgrade_currency_id: str | None = None


def _can_afford(
    session: Session, catalog: Catalog, user_id: str, currency_id: str, cost: Decimal,
) -> bool:
    return ledger_service.get_balance(session, catalog, user_id, currency_id) >= cost


def _finish(
    session: Session, catalog: Catalog, progress: PlayerProgress, now: datetime,
    result: PurchaseResult, counters: Mapping[TaskType, int] | None = None,
) -> PurchaseResult:
    result.tasks_completed = task_service.record_activity(
        session, catalog, progress, counters or {}, now=now,
    )
    result.achievements = achievement_service.evaluate_achievements(
        session, catalog, progress, now=now,
    )
    return result


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def upgrade_tool(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    tool_id: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> PurchaseResult:
    """Buy *tool_id* with its unlock cost and equip it."""
    tool = catalog.tool(tool_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        if progress_service.has_tool(session, user_id, tool_id):
            return PurchaseResult.reject(RejectReason.ALREADY_OWNED, tool_id)
        if progress.level < tool.unlock_level:
            return PurchaseResult.reject(RejectReason.LEVEL_TOO_LOW, tool_id)
        if not ledger_service.debit(session, catalog, user_id, tool.currency_id, tool.unlock_cost):
            return PurchaseResult.reject(RejectReason.INSUFFICIENT_FUNDS, tool_id)

        progress_service.unlock_tool(session, catalog, user_id, tool_id)
        progress_service.equip(session, user_id, tool.character_id, tool_id)
        logger.info(
            "Player %s bought tool %s for %s %s",
            user_id, tool.name, tool.unlock_cost, tool.currency_id,
        )
        result = _finish(session, catalog, progress, now, PurchaseResult(
            success=True, item_id=tool_id, cost=tool.unlock_cost, currency_id=tool.currency_id,
        ))
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result


def equip_tool(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    tool_id: int,
    *,
    now: datetime | None = None,
) -> PurchaseResult:
    """Equip an owned tool for its character.

    A free tool (``unlock_cost == 0``) the player's level already allows is
    unlocked on the spot.
    """
    tool = catalog.tool(tool_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        if not progress_service.has_tool(session, user_id, tool_id):
            if tool.unlock_cost > 0 or progress.level < tool.unlock_level:
                return PurchaseResult.reject(RejectReason.NOT_UNLOCKED, tool_id)
            progress_service.unlock_tool(session, catalog, user_id, tool_id)

        progress_service.equip(session, user_id, tool.character_id, tool_id)
        return PurchaseResult(success=True, item_id=tool_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def buy_helper(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    helper_id: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> PurchaseResult:
    """Hire *helper_id* at level 1, paying its unlock cost in its currency."""
    helper = catalog.helper(helper_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        if session.get(PlayerHelper, (user_id, helper_id)) is not None:
            return PurchaseResult.reject(RejectReason.ALREADY_OWNED, helper_id)
        if progress.level < helper.unlock_level:
            return PurchaseResult.reject(RejectReason.LEVEL_TOO_LOW, helper_id)
        if not _can_afford(session, catalog, user_id, helper.currency_id, helper.unlock_cost):
            return PurchaseResult.reject(RejectReason.INSUFFICIENT_FUNDS, helper_id)

        income_service.accrue_pending_income(session, catalog, progress, now)
        ledger_service.debit(session, catalog, user_id, helper.currency_id, helper.unlock_cost)
        session.add(PlayerHelper(user_id=user_id, helper_id=helper_id, level=1))
        session.flush()
        # Income for the new helper starts now.
        progress.income_accrued_at = now

        logger.info("Player %s hired helper %s", user_id, helper.name)
        result = _finish(session, catalog, progress, now, PurchaseResult(
            success=True,
            item_id=helper_id,
            level=1,
            cost=helper.unlock_cost,
            currency_id=helper.currency_id,
        ), {TaskType.UPGRADE_HELPER: 1})
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result


def upgrade_helper(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    helper_id: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> PurchaseResult:
    """Raise an owned helper one level, paying the next level's upgrade cost."""
    helper = catalog.helper(helper_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        owned = session.get(PlayerHelper, (user_id, helper_id))
        if owned is None:
            return PurchaseResult.reject(RejectReason.NOT_OWNED, helper_id)
        if owned.level >= helper.max_level:
            return PurchaseResult.reject(RejectReason.MAX_LEVEL, helper_id)
        next_level = catalog.helper_level(helper_id, owned.level + 1)
        if next_level is None:
            return PurchaseResult.reject(RejectReason.MAX_LEVEL, helper_id)
        if not _can_afford(session, catalog, user_id, helper.currency_id, next_level.upgrade_cost):
            return PurchaseResult.reject(RejectReason.INSUFFICIENT_FUNDS, helper_id)

        income_service.accrue_pending_income(session, catalog, progress, now)
        ledger_service.debit(session, catalog, user_id, helper.currency_id, next_level.upgrade_cost)
        owned.level = next_level.level
        progress.income_accrued_at = now

        logger.info("Player %s upgraded helper %s to level %d", user_id, helper.name, owned.level)
        result = _finish(session, catalog, progress, now, PurchaseResult(
            success=True,
            item_id=helper_id,
            level=owned.level,
            cost=next_level.upgrade_cost,
            currency_id=helper.currency_id,
        ), {TaskType.UPGRADE_HELPER: 1})
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
def upgrade_storage(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    location_id: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> PurchaseResult:
    """Move a location's storage to the next catalog level."""
    location = catalog.location(location_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        if not progress_service.has_location(session, user_id, location_id):
            return PurchaseResult.reject(RejectReason.NOT_UNLOCKED, location_id)

        current = progress_service.storage_level(
            session, user_id, location_id, location.currency_id,
        )
        nxt = catalog.storage_level(location_id, current + 1)
        if nxt is None:
            return PurchaseResult.reject(RejectReason.MAX_LEVEL, location_id)
        if not ledger_service.debit(session, catalog, user_id, nxt.currency_id, nxt.upgrade_cost):
            return PurchaseResult.reject(RejectReason.INSUFFICIENT_FUNDS, location_id)

        row = progress_service.storage_row(session, user_id, location_id, location.currency_id)
        if row is None:
            session.add(PlayerStorageLimit(
                user_id=user_id,
                location_id=location_id,
                currency_id=location.currency_id,
                storage_level=nxt.level,
                capacity=nxt.capacity,
            ))
        else:
            row.storage_level = nxt.level
            row.capacity = nxt.capacity
        session.flush()

        logger.info(
            "Player %s upgraded %s storage to level %d (capacity %s)",
            user_id, location.name, nxt.level, nxt.capacity,
        )
        result = _finish(session, catalog, progress, now, PurchaseResult(
            success=True,
            item_id=location_id,
            level=nxt.level,
            cost=nxt.upgrade_cost,
            currency_id=nxt.currency_id,
        ))
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result


def get_storage(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    location_id: int,
    *,
    now: datetime | None = None,
) -> StorageInfo:
    """Current level, capacity and fill of a location's storage, plus the next step."""
    location = catalog.location(location_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress_service.load_player(session, catalog, user_id, now)
        level = progress_service.storage_level(
            session, user_id, location_id, location.currency_id,
        )
        capacity = progress_service.storage_capacity(
            session, catalog, user_id, location_id, location.currency_id,
        )
        amount = ledger_service.get_balance(session, catalog, user_id, location.currency_id)

    fill = (amount / capacity * 100).quantize(Decimal("0.01")) if capacity > 0 else ZERO
    nxt = catalog.storage_level(location_id, level + 1)
    return StorageInfo(
        location_id=location_id,
        currency_id=location.currency_id,
        level=level,
        capacity=capacity,
        amount=amount,
        fill_percent=fill,
        next_level=nxt.level if nxt else None,
        next_capacity=nxt.capacity if nxt else None,
        upgrade_cost=nxt.upgrade_cost if nxt else None,
        upgrade_currency_id=nxt.currency_id if nxt else None,
    )
