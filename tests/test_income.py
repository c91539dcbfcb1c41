"""
tests/test_income.py — Tests for Idle Income Accrual & Collection
==================================================================

The Woodcutter (helper 1) earns 10 wood/hour at level 1, so one hour of
idle time is exactly 10.00 wood.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from conftest import NOW, balance, get_progress_row, make_player, set_balance, set_storage
from gardentap.constants import as_utc
from gardentap.database.models import PlayerHelper, PlayerPendingIncome
from gardentap.services import income_service

USER = "idle-user"


def give_helper(engine, user_id: str, helper_id: int, level: int = 1) -> None:
    with Session(engine) as session:
        session.add(PlayerHelper(user_id=user_id, helper_id=helper_id, level=level))
        session.commit()


def pending_row(engine, user_id: str, currency_id: str) -> PlayerPendingIncome | None:
    with Session(engine) as session:
        row = session.get(PlayerPendingIncome, (user_id, currency_id))
        if row is not None:
            session.expunge(row)
        return row


@pytest.fixture
def player(engine, catalog):
    make_player(engine, catalog, USER)
    give_helper(engine, USER, 1)
    return USER


class TestPendingIncome:
    def test_one_hour_of_woodcutter(self, engine, catalog, player):
        view = income_service.get_pending_income(
            engine, catalog, player, now=NOW + timedelta(hours=1),
        )
        assert view.amount("wood") == Decimal("10.00")
        assert view.accrued == {"wood": Decimal("10.00")}
        line = view.lines[0]
        assert line.balance == Decimal("0")
        assert line.capacity == Decimal("500.00")

    def test_repeat_within_a_minute_adds_nothing(self, engine, catalog, player):
        income_service.get_pending_income(engine, catalog, player, now=NOW + timedelta(hours=1))
        view = income_service.get_pending_income(
            engine, catalog, player, now=NOW + timedelta(hours=1, seconds=30),
        )
        assert view.amount("wood") == Decimal("10.00")
        assert view.accrued == {}

    def test_accrual_continues_from_watermark(self, engine, catalog, player):
        income_service.get_pending_income(engine, catalog, player, now=NOW + timedelta(hours=1))
        view = income_service.get_pending_income(
            engine, catalog, player, now=NOW + timedelta(minutes=66),
        )
        assert view.amount("wood") == Decimal("11.00")

    def test_peek_does_not_touch_last_login(self, engine, catalog, player):
        income_service.get_pending_income(engine, catalog, player, now=NOW + timedelta(hours=1))
        row = get_progress_row(engine, player)
        assert as_utc(row.last_login) == NOW
        assert as_utc(row.income_accrued_at) == NOW + timedelta(hours=1)

    def test_no_helpers_no_income(self, engine, catalog):
        make_player(engine, catalog, "lonely")
        view = income_service.get_pending_income(
            engine, catalog, "lonely", now=NOW + timedelta(days=1),
        )
        assert view.lines == []
        assert view.amount("wood") == Decimal("0")

    def test_clock_backwards_adds_nothing(self, engine, catalog, player):
        view = income_service.get_pending_income(
            engine, catalog, player, now=NOW - timedelta(hours=1),
        )
        assert view.lines == []


class TestCollect:
    def test_collect_moves_pending_into_balance(self, engine, catalog, player):
        later = NOW + timedelta(hours=1)
        result = income_service.collect_idle_income(engine, catalog, player, now=later)

        assert result.collected("wood") == Decimal("10.00")
        assert not result.storage_full
        assert balance(engine, player, "wood") == Decimal("10.00")
        assert pending_row(engine, player, "wood") is None
        assert as_utc(get_progress_row(engine, player).last_login) == later

    def test_collect_respects_storage(self, engine, catalog, player):
        set_storage(engine, player, 1, "wood", 4)

        result = income_service.collect_idle_income(
            engine, catalog, player, now=NOW + timedelta(hours=1),
        )

        assert result.collected("wood") == Decimal("4.00")
        assert result.storage_full
        assert balance(engine, player, "wood") == Decimal("4.00")
        assert Decimal(pending_row(engine, player, "wood").amount) == Decimal("6.00")

    def test_full_storage_keeps_everything_pending(self, engine, catalog, player):
        set_storage(engine, player, 1, "wood", 4)
        set_balance(engine, player, "wood", 4)

        result = income_service.collect_idle_income(
            engine, catalog, player, now=NOW + timedelta(hours=1),
        )

        assert result.collected("wood") == Decimal("0")
        assert Decimal(pending_row(engine, player, "wood").amount) == Decimal("10.00")

    def test_peek_then_collect_never_double_counts(self, engine, catalog, player):
        income_service.get_pending_income(engine, catalog, player, now=NOW + timedelta(minutes=30))
        income_service.get_pending_income(engine, catalog, player, now=NOW + timedelta(minutes=45))
        income_service.collect_idle_income(engine, catalog, player, now=NOW + timedelta(hours=1))
        assert balance(engine, player, "wood") == Decimal("10.00")

    def test_second_collect_is_empty(self, engine, catalog, player):
        later = NOW + timedelta(hours=1)
        income_service.collect_idle_income(engine, catalog, player, now=later)
        result = income_service.collect_idle_income(engine, catalog, player, now=later)
        assert result.lines == []
        assert balance(engine, player, "wood") == Decimal("10.00")

    def test_currencies_are_collected_together(self, engine, catalog, player):
        """Garden hand (helper 3) earns dirt alongside the woodcutter's wood."""
        give_helper(engine, player, 3)
        result = income_service.collect_idle_income(
            engine, catalog, player, now=NOW + timedelta(hours=1),
        )
        assert {line.currency_id for line in result.lines} == {"dirt", "wood"}
        assert balance(engine, player, "dirt") == Decimal("10.00")


class TestAccrualFrequency:
    def test_minute_by_minute_equals_one_hour(self, engine, catalog, player):
        make_player(engine, catalog, "patient")
        give_helper(engine, "patient", 1)

        for minute in range(1, 61):
            income_service.get_pending_income(
                engine, catalog, player, now=NOW + timedelta(minutes=minute),
            )
        polled = income_service.get_pending_income(
            engine, catalog, player, now=NOW + timedelta(minutes=60),
        )
        once = income_service.get_pending_income(
            engine, catalog, "patient", now=NOW + timedelta(minutes=60),
        )

        assert polled.amount("wood") == once.amount("wood") == Decimal("10.00")

    def test_polled_income_collects_the_hourly_total(self, engine, catalog, player):
        for minute in range(1, 61):
            income_service.get_pending_income(
                engine, catalog, player, now=NOW + timedelta(minutes=minute),
            )
        result = income_service.collect_idle_income(
            engine, catalog, player, now=NOW + timedelta(minutes=60),
        )

        assert result.collected("wood") == Decimal("10.00")
        assert balance(engine, player, "wood") == Decimal("10.00")
        assert pending_row(engine, player, "wood") is None

    def test_single_minute_is_not_rounded_up(self, engine, catalog, player):
        income_service.get_pending_income(engine, catalog, player, now=NOW + timedelta(minutes=1))
        assert Decimal(pending_row(engine, player, "wood").amount) == Decimal("0.166667")
