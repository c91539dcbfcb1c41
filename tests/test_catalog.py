"""
tests/test_catalog.py — Tests for the Seeder and the Catalog
=============================================================

Seeds the default catalog into in-memory SQLite and checks what the
Catalog exposes, including the warnings-and-skip paths for bad rows.
"""

from __future__ import annotations

import json
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from gardentap.database.models import (
    Achievement,
    ConditionType,
    LevelReward,
    RewardType,
    Setting,
    Task,
    TaskCategory,
    TaskType,
)
from gardentap.database.seed import (
    DEFAULT_SETTINGS,
    helper_level_rows,
    level_rows,
    seed_catalog,
    seed_default_settings,
)
from gardentap.engine.catalog import Catalog
from gardentap.errors import NotFoundError


class TestSeeder:
    def test_seed_catalog_is_skipped_when_present(self, engine):
        """The engine fixture already seeded; a second run inserts nothing."""
        assert seed_catalog(engine) == 0

    def test_seed_settings_keeps_edits(self, engine):
        with Session(engine) as session:
            session.get(Setting, "energy.regen_seconds").value_json = json.dumps(30)
            session.commit()

        seed_default_settings(engine)

        with Session(engine) as session:
            assert json.loads(session.get(Setting, "energy.regen_seconds").value_json) == 30
            assert session.query(Setting).count() == len(DEFAULT_SETTINGS)

    def test_level_curve(self):
        rows = level_rows({"base": 100, "growth": 1.5, "max_level": 5})
        assert [(r.level, r.required_exp) for r in rows] == [
            (2, 100), (3, 150), (4, 225), (5, 337),
        ]

    def test_helper_curve(self):
        curve = {"income_base": 10, "income_growth": 1.5, "cost_base": 50, "cost_growth": 1.8}
        rows = helper_level_rows(1, 3, curve)
        assert [r.income_per_hour for r in rows] == [Decimal(10), Decimal(30), Decimal(67)]
        assert [r.upgrade_cost for r in rows] == [Decimal(50), Decimal(180), Decimal(486)]


class TestCatalogLookups:
    def test_economy(self, catalog):
        assert catalog.currency("wood").name == "Logs"
        assert [loc.id for loc in catalog.locations()] == [1, 2, 3]
        assert catalog.location(2).currency_id == "dirt"
        assert catalog.tool(3).power == Decimal("10")
        assert catalog.storage_level(1, 1).capacity == Decimal("500.00")
        assert catalog.storage_level(3, 4) is None

    def test_location_currency_scope(self, catalog):
        assert catalog.location_for_currency("wood").id == 1
        assert catalog.is_location_currency("grain")
        assert not catalog.is_location_currency("main")
        assert not catalog.is_location_currency("weed")

    def test_helpers(self, catalog):
        assert catalog.helper(1).currency_id == "wood"
        assert catalog.income_per_hour(1, 1) == Decimal("10")
        assert catalog.helper_level(1, 11) is None
        assert catalog.income_per_hour(1, 11) == Decimal("0")

    def test_levels_and_rewards(self, catalog):
        assert catalog.required_exp(1) is None
        assert catalog.required_exp(2) == 100
        assert catalog.required_exp(51) is None
        rewards = catalog.rewards_for_level(10)
        assert {r.reward_type for r in rewards} == {
            RewardType.UNLOCK_TOOL, RewardType.UNLOCK_LOCATION, RewardType.ENERGY,
        }
        assert catalog.rewards_for_level(11) == []

    def test_ranks_have_tiers_in_points_order(self, catalog):
        ranks = catalog.ranks()
        assert [r.min_points for r in ranks] == sorted(r.min_points for r in ranks)
        assert [r.tier for r in ranks] == list(range(1, len(ranks) + 1))
        assert catalog.rank_tier(None) == 0

    def test_tasks_and_active_season(self, catalog):
        assert catalog.active_season().id == 1
        daily = catalog.tasks(TaskCategory.DAILY)
        assert [t.id for t in daily] == [101, 102, 103, 104]
        assert all(t.season_id is None for t in daily)
        first = catalog.task(1)
        assert (first.category, first.task_type, first.target) == (
            TaskCategory.SEASON, TaskType.TAP, 100,
        )
        assert catalog.task(10).main_coins == Decimal("2500.00")

    def test_rank_achievement_target_is_tier(self, catalog):
        golden = catalog.achievement(11)
        assert golden.condition_type is ConditionType.RANK
        assert golden.target == catalog.rank(5).tier

    def test_settings(self, catalog):
        assert catalog.get_int("tap.experience_per_tap") == 1
        assert catalog.get_decimal("storage.default_capacity") == Decimal("1000.00")
        assert catalog.get_int("missing.key", default=7) == 7
        assert catalog.get_bool("missing.key") is False
        assert catalog.starter_location().id == 1

    @pytest.mark.parametrize("lookup,key", [
        ("currency", "gold"),
        ("location", 99),
        ("tool", 99),
        ("helper", 99),
        ("rank", 99),
        ("season", 99),
        ("achievement", 99),
        ("task", 99),
    ])
    def test_unknown_ids_raise(self, catalog, lookup, key):
        with pytest.raises(NotFoundError):
            getattr(catalog, lookup)(key)


class TestCatalogLoadSkipsBadRows:
    def test_unknown_reward_and_condition_types_are_skipped(self, engine, caplog):
        with Session(engine) as session:
            session.add(LevelReward(level=3, reward_type="mystery_box", amount=Decimal("1")))
            session.add(Achievement(
                id=99, name="Broken", condition_type="moon_phase", condition_value=1,
                reward_amount=Decimal("0"), active=True,
            ))
            session.add(Achievement(
                id=98, name="Ghost rank", condition_type="rank", condition_value=404,
                reward_amount=Decimal("0"), active=True,
            ))
            session.commit()

        cat = Catalog(engine)
        cat.load_all()

        assert all(r.reward_type is RewardType.MAIN_CURRENCY for r in cat.rewards_for_level(3))
        ids = {a.id for a in cat.achievements()}
        assert 99 not in ids
        assert 98 not in ids
        assert "mystery_box" in caplog.text

    def test_reload_picks_up_edits(self, engine, catalog):
        with Session(engine) as session:
            session.get(Setting, "tap.experience_per_tap").value_json = json.dumps(5)
            session.commit()

        assert catalog.get_int("tap.experience_per_tap") == 1
        catalog.load_all()
        assert catalog.get_int("tap.experience_per_tap") == 5

    def test_bad_tasks_are_skipped(self, engine, caplog):
        with Session(engine) as session:
            session.add(Task(
                id=97, category="weekly", task_type="tap", description="Unknown period",
                target_value=1, active=True,
            ))
            session.add(Task(
                id=96, category="daily", task_type="dance", description="Unknown type",
                target_value=1, active=True,
            ))
            session.add(Task(
                id=95, category="season", task_type="tap", description="No season",
                target_value=1, active=True,
            ))
            session.commit()

        cat = Catalog(engine)
        cat.load_all()

        ids = {t.id for t in cat.tasks()}
        assert ids.isdisjoint({95, 96, 97})
        assert "weekly" in caplog.text
        assert "Season task 95" in caplog.text
