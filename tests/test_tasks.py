"""
tests/test_tasks.py — Tests for Daily & Season Tasks
=====================================================

Activity from taps, collection and purchases advances the live tasks;
daily progress starts over every UTC day; a completed task pays coins,
experience and season points exactly once per period, however many
claims arrive.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from conftest import NOW, balance, get_progress_row, make_player, set_balance, set_progress
from gardentap.database.engine import player_transaction
from gardentap.database.models import (
    PlayerPendingIncome,
    PlayerSeasonStanding,
    PlayerTaskProgress,
    Season,
    Task,
    TaskCategory,
)
from gardentap.errors import NotFoundError, RejectReason
from gardentap.services import (
    achievement_service,
    income_service,
    notifications,
    progress_service,
    shop_service,
    tap_service,
    task_service,
)

USER = "gardener"

TAP_DAILY = 101
ENERGY_DAILY = 102
HELPER_DAILY = 103
COLLECT_DAILY = 104
TAP_SEASON = 1
LEVEL_SEASON = 6
DAILIES_SEASON = 9
EXPERIENCE_SEASON = 10


@pytest.fixture
def player(engine, catalog):
    make_player(engine, catalog, USER)
    return USER


def complete_task(engine, catalog, user_id: str, task_id: int, period: date) -> None:
    with Session(engine) as session:
        session.add(PlayerTaskProgress(
            user_id=user_id,
            task_id=task_id,
            period=period,
            progress=catalog.task(task_id).target,
            completed_at=NOW,
            reward_claimed=False,
        ))
        session.commit()


def task_views(engine, catalog, user_id: str, now=NOW) -> dict[int, task_service.TaskView]:
    return {v.task_id: v for v in task_service.list_tasks(engine, catalog, user_id, now=now)}


def season_points(engine, user_id: str, season_id: int = 1) -> int:
    with Session(engine) as session:
        standing = session.get(PlayerSeasonStanding, (user_id, season_id))
        return standing.points if standing else 0


def tap_times(engine, catalog, user_id: str, count: int, **kwargs):
    result = None
    for _ in range(count):
        result = tap_service.tap(engine, catalog, user_id, 1, now=NOW, **kwargs)
    return result


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
class TestProgress:
    def test_taps_advance_daily_and_season_tasks(self, engine, catalog, player):
        tap_times(engine, catalog, player, 3)

        views = task_views(engine, catalog, player)
        assert views[TAP_DAILY].progress == 3
        assert views[ENERGY_DAILY].progress == 3
        assert views[TAP_SEASON].progress == 3
        assert views[EXPERIENCE_SEASON].progress == 3
        assert not views[TAP_DAILY].completed

    def test_twentieth_tap_completes_the_energy_daily(self, engine, catalog, player, sink):
        tap_times(engine, catalog, player, 19)
        result = tap_service.tap(engine, catalog, player, 1, now=NOW, sink=sink)

        assert result.tasks_completed == [ENERGY_DAILY]
        assert "TASK_COMPLETED" in sink.kinds()
        rows = notifications.list_notifications(engine, player)
        completed = [r for r in rows if r.kind == "TASK_COMPLETED"]
        assert [r.payload["task_id"] for r in completed] == [ENERGY_DAILY]

    def test_progress_is_capped_at_target(self, engine, catalog, player):
        tap_times(engine, catalog, player, 25)

        view = task_views(engine, catalog, player)[ENERGY_DAILY]
        assert view.progress == view.target == 20
        assert view.completed
        assert not view.claimed

    def test_daily_progress_resets_next_day(self, engine, catalog, player):
        tap_times(engine, catalog, player, 3)

        tomorrow = task_views(engine, catalog, player, now=NOW + timedelta(days=1))

        assert tomorrow[TAP_DAILY].progress == 0
        assert tomorrow[TAP_DAILY].period == (NOW + timedelta(days=1)).date()
        assert tomorrow[TAP_SEASON].progress == 3

    def test_level_gauge_reads_player_level(self, engine, catalog, player):
        set_progress(engine, player, level=10)

        view = task_views(engine, catalog, player)[LEVEL_SEASON]

        assert view.progress == 10
        assert view.completed

    def test_hiring_and_upgrading_helpers_count(self, engine, catalog, player):
        set_progress(engine, player, level=3)
        set_balance(
            engine, player, "wood",
            catalog.helper(1).unlock_cost + catalog.helper_level(1, 2).upgrade_cost,
        )

        shop_service.buy_helper(engine, catalog, player, 1, now=NOW)
        result = shop_service.upgrade_helper(engine, catalog, player, 1, now=NOW)

        assert result.success
        assert task_views(engine, catalog, player)[HELPER_DAILY].progress == 2

    def test_collected_income_counts(self, engine, catalog, player):
        with Session(engine) as session:
            session.add(PlayerPendingIncome(
                user_id=player, currency_id="wood", amount=Decimal("120"),
            ))
            session.commit()

        result = income_service.collect_idle_income(engine, catalog, player, now=NOW)

        assert result.collected("wood") == Decimal("120.00")
        assert result.tasks_completed == [COLLECT_DAILY]

    def test_category_filter(self, engine, catalog, player):
        views = task_service.list_tasks(
            engine, catalog, player, category=TaskCategory.DAILY, now=NOW,
        )
        assert [v.task_id for v in views] == [101, 102, 103, 104]

    def test_claimed_task_is_not_advanced(self, engine, catalog, player):
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())
        task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW)

        tap_times(engine, catalog, player, 2)

        view = task_views(engine, catalog, player)[TAP_DAILY]
        assert view.claimed
        assert view.progress == catalog.task(TAP_DAILY).target


# ---------------------------------------------------------------------------
# Claiming
# ---------------------------------------------------------------------------
class TestClaim:
    def test_claim_pays_coins_experience_and_points(self, engine, catalog, player, sink):
        """Daily 101 pays 50 coins, 100 exp (→ level 2, +50 coins) and 10 points."""
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())

        result = task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW, sink=sink)

        assert result.success
        assert result.main_coins == Decimal("50.00")
        assert result.level_up
        assert result.new_level == 2
        assert result.rank.points == 10
        assert 8 in result.achievements
        assert balance(engine, player, "main") == Decimal("100.00")
        assert season_points(engine, player) == 10
        assert "LEVEL_UP" in sink.kinds()

    def test_claim_counts_towards_season_tasks(self, engine, catalog, player):
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())
        task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW)

        views = task_views(engine, catalog, player)
        assert views[DAILIES_SEASON].progress == 1
        assert views[EXPERIENCE_SEASON].progress == 100

    def test_season_points_add_to_standing_and_rank_up(self, engine, catalog, player, sink):
        achievement_service.update_rank(engine, catalog, player, 1, 95, now=NOW)
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())

        result = task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW, sink=sink)

        assert result.rank.points == 105
        assert result.rank.rank_id == 2
        assert result.rank.rank_up
        assert "RANK_UP" in sink.kinds()

    def test_second_claim_is_refused(self, engine, catalog, player):
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())
        task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW)
        paid = balance(engine, player, "main")

        again = task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW)

        assert not again
        assert again.reason is RejectReason.ALREADY_CLAIMED
        assert balance(engine, player, "main") == paid
        assert season_points(engine, player) == 10

    def test_incomplete_task_is_refused(self, engine, catalog, player):
        tap_times(engine, catalog, player, 3)

        result = task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW)

        assert result.reason is RejectReason.TASK_NOT_COMPLETED
        assert balance(engine, player, "main") == Decimal("3.00")
        assert get_progress_row(engine, player).experience == 3

    def test_yesterdays_completion_cannot_be_claimed_today(self, engine, catalog, player):
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())

        result = task_service.claim_task(
            engine, catalog, player, TAP_DAILY, now=NOW + timedelta(days=1),
        )

        assert result.reason is RejectReason.TASK_NOT_COMPLETED

    def test_daily_outside_its_window_is_not_active(self, engine, catalog, player):
        with Session(engine) as session:
            session.get(Task, ENERGY_DAILY).active_until = NOW.date() - timedelta(days=1)
            session.commit()
        catalog.load_all()

        result = task_service.claim_task(engine, catalog, player, ENERGY_DAILY, now=NOW)

        assert result.reason is RejectReason.TASK_NOT_ACTIVE
        assert ENERGY_DAILY not in task_views(engine, catalog, player)

    def test_season_task_needs_an_active_season(self, engine, catalog, player):
        with Session(engine) as session:
            session.get(Season, 1).active = False
            session.commit()
        catalog.load_all()

        result = task_service.claim_task(engine, catalog, player, TAP_SEASON, now=NOW)

        assert result.reason is RejectReason.TASK_NOT_ACTIVE

    def test_daily_without_active_season_pays_no_points(self, engine, catalog, player):
        with Session(engine) as session:
            session.get(Season, 1).active = False
            session.commit()
        catalog.load_all()
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())

        result = task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW)

        assert result.success
        assert result.rank is None
        assert season_points(engine, player) == 0

    def test_unknown_task_raises(self, engine, catalog, player):
        with pytest.raises(NotFoundError):
            task_service.claim_task(engine, catalog, player, 999, now=NOW)


# ---------------------------------------------------------------------------
# Claim-once under contention
# ---------------------------------------------------------------------------
class TestClaimOnce:
    def test_parallel_claims_pay_once(self, engine, catalog, player):
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda _: task_service.claim_task(engine, catalog, player, TAP_DAILY, now=NOW),
                range(8),
            ))

        assert sum(1 for r in results if r.success) == 1
        assert {r.reason for r in results if not r.success} == {RejectReason.ALREADY_CLAIMED}
        assert balance(engine, player, "main") == Decimal("100.00")
        assert season_points(engine, player) == 10

    def test_flag_set_after_read_blocks_the_payout(self, engine, catalog, player):
        """The conditional UPDATE refuses even when the loaded row looks unclaimed."""
        complete_task(engine, catalog, player, TAP_DAILY, NOW.date())
        task = catalog.task(TAP_DAILY)

        with player_transaction(engine, player) as session:
            progress_service.load_player(session, catalog, player, NOW)
            row = session.get(PlayerTaskProgress, (player, TAP_DAILY, NOW.date()))
            assert row.reward_claimed is False
            session.execute(
                update(PlayerTaskProgress.__table__)
                .where(PlayerTaskProgress.__table__.c.task_id == TAP_DAILY)
                .values(reward_claimed=True)
            )

            reason = task_service._mark_claimed(session, player, task, NOW.date(), NOW)

        assert reason is RejectReason.ALREADY_CLAIMED
        assert balance(engine, player, "main") == Decimal("0.00")

