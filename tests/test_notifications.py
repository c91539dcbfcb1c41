"""
tests/test_notifications.py — Tests for the Notification Outbox
================================================================

Rows written with the operation, post-commit delivery, sink failures that
never reach the caller, and the inbox queries.
"""

from __future__ import annotations

import logging

import pytest

from conftest import NOW, make_player, set_progress
from gardentap.config import GardenTapConfig
from gardentap.database.engine import player_transaction
from gardentap.database.models import NoticeKind
from gardentap.services import leveling_service, notifications, progress_service

USER = "notified"


class ExplodingSink:
    def __init__(self) -> None:
        self.calls = 0

    def deliver(self, notice) -> None:
        self.calls += 1
        raise ConnectionError("bot is down")


@pytest.fixture
def player(engine, catalog):
    make_player(engine, catalog, USER)
    return USER


class TestOutbox:
    def test_level_up_writes_row_and_delivers(self, engine, catalog, player, sink):
        set_progress(engine, player, experience=90)
        leveling_service.add_experience(engine, catalog, player, 15, now=NOW, sink=sink)

        rows = notifications.list_notifications(engine, player)
        kinds = sorted(r.kind for r in rows)
        assert kinds == ["ACHIEVEMENT_UNLOCKED", "LEVEL_UP"]
        level_row = next(r for r in rows if r.kind == "LEVEL_UP")
        assert level_row.payload["old_level"] == 1
        assert level_row.payload["new_level"] == 2
        assert level_row.payload["rewards"][0]["currency"] == "main"

        delivered = next(n for n in sink.notices if n.kind is NoticeKind.LEVEL_UP)
        assert delivered.user_id == player
        assert delivered.created_at == NOW

    def test_sink_failure_does_not_fail_the_operation(self, engine, catalog, player, caplog):
        set_progress(engine, player, experience=90)
        exploding = ExplodingSink()

        result = leveling_service.add_experience(
            engine, catalog, player, 15, now=NOW, sink=exploding,
        )

        assert result.level_up
        assert exploding.calls == 2
        assert "Notification delivery failed" in caplog.text
        assert len(notifications.list_notifications(engine, player)) == 2

    def test_rolled_back_operation_leaves_no_rows(self, engine, catalog, player):
        with pytest.raises(RuntimeError):
            with player_transaction(engine, player) as session:
                progress_service.load_player(session, catalog, player, NOW)
                notifications.enqueue(session, player, NoticeKind.RANK_UP, {"rank_id": 2}, now=NOW)
                session.flush()
                raise RuntimeError("abort")

        assert notifications.list_notifications(engine, player) == []

    def test_drain_empties_the_queue(self, db_session, player):
        notifications.enqueue(db_session, player, NoticeKind.RANK_UP, {"rank_id": 3}, now=NOW)
        assert len(notifications.drain(db_session)) == 1
        assert notifications.drain(db_session) == []

    def test_logging_sink(self, caplog):
        caplog.set_level(logging.INFO, logger="gardentap.services.notifications")
        notifications.LoggingSink().deliver(
            notifications.Notice(user_id="u", kind=NoticeKind.RANK_UP, payload={"rank_id": 4}),
        )
        assert "Notify u" in caplog.text


class TestInbox:
    def test_mark_read(self, engine, catalog, player):
        set_progress(engine, player, experience=90)
        leveling_service.add_experience(engine, catalog, player, 15, now=NOW)
        ids = [r.id for r in notifications.list_notifications(engine, player)]

        assert notifications.mark_notifications_read(engine, player, ids) == 2
        assert notifications.list_notifications(engine, player) == []
        assert len(notifications.list_notifications(engine, player, unread_only=False)) == 2
        assert notifications.mark_notifications_read(engine, player, ids) == 0

    def test_mark_read_ignores_other_players(self, engine, catalog, player):
        make_player(engine, catalog, "someone-else")
        set_progress(engine, player, experience=90)
        leveling_service.add_experience(engine, catalog, player, 15, now=NOW)
        ids = [r.id for r in notifications.list_notifications(engine, player)]

        assert notifications.mark_notifications_read(engine, "someone-else", ids) == 0

    def test_empty_ids(self, engine, player):
        assert notifications.mark_notifications_read(engine, player, []) == 0

    def test_newest_first_with_limit(self, engine, catalog, player):
        set_progress(engine, player, experience=90)
        leveling_service.add_experience(engine, catalog, player, 15, now=NOW)
        rows = notifications.list_notifications(engine, player, limit=1)
        assert len(rows) == 1
        assert rows[0].kind == "ACHIEVEMENT_UNLOCKED"


class TestSinkFromConfig:
    @staticmethod
    def _cfg(log_only: bool) -> GardenTapConfig:
        return GardenTapConfig(
            game_name="G", log_level="INFO", pool_size=1, max_overflow=0,
            notification_log_only=log_only,
        )

    def test_log_only_gives_logging_sink(self):
        assert isinstance(notifications.sink_from_config(self._cfg(True)), notifications.LoggingSink)

    def test_outbox_only_gives_no_sink(self, engine, catalog, player):
        sink = notifications.sink_from_config(self._cfg(False))
        assert sink is None

        set_progress(engine, player, experience=90)
        leveling_service.add_experience(engine, catalog, player, 15, now=NOW, sink=sink)
        assert len(notifications.list_notifications(engine, player)) == 2
