"""
gardentap.services.notifications — Player Notification Outbox
================================================================

Level-ups, rank-ups and achievement grants are written to
``player_notifications`` inside the operation's own transaction and also
queued on the session.  After the transaction commits the service hands
the queued notices to a :class:`NotificationSink` (a bot, a push
service, or the log).

Delivery is fire-and-forget: a sink failure is logged and never reaches
the player operation, and a rolled-back operation never delivers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gardentap.database.models import NoticeKind, PlayerNotification

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gardentap.config import GardenTapConfig

logger = logging.getLogger(__name__)

_OUTBOX_KEY = "gardentap.outbox"


@dataclass(frozen=True, slots=True)
class Notice:
    user_id: str
    kind: NoticeKind
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


class NotificationSink(Protocol):
    def deliver(self, notice: Notice) -> None: ...


class LoggingSink:
    """Sink that writes every notice to the log."""

    def deliver(self, notice: Notice) -> None:
        logger.info("Notify %s: %s %s", notice.user_id, notice.kind, notice.payload)


def sink_from_config(cfg: GardenTapConfig) -> NotificationSink | None:
    """The sink a process should pass to player operations.

    With ``notification_log_only`` every notice is also written to the log.
    Otherwise there is no in-process sink and notices stay in the
    ``player_notifications`` outbox for the bot to read.
    """
    if cfg.notification_log_only:
        return LoggingSink()
    return None


# ---------------------------------------------------------------------------
# Inside a transaction
# ---------------------------------------------------------------------------
def enqueue(
    session: Session,
    user_id: str,
    kind: NoticeKind,
    payload: dict[str, Any],
    *,
    now: datetime | None = None,
) -> Notice:
    """Persist a notification row and queue it for post-commit delivery.

    *payload* must be JSON-serialisable.
    """
    row = PlayerNotification(user_id=user_id, kind=kind.value, payload=payload)
    if now is not None:
        row.created_at = now
    session.add(row)
    notice = Notice(user_id=user_id, kind=kind, payload=payload, created_at=now)
    session.info.setdefault(_OUTBOX_KEY, []).append(notice)
    return notice


def drain(session: Session) -> list[Notice]:
    """Take every notice queued on *session*."""
    return session.info.pop(_OUTBOX_KEY, [])


# ---------------------------------------------------------------------------
# After commit
# ---------------------------------------------------------------------------
def deliver_all(sink: NotificationSink | None, notices: Iterable[Notice]) -> None:
    """Hand *notices* to *sink*; failures are logged, never raised."""
    if sink is None:
        return
    for notice in notices:
        try:
            sink.deliver(notice)
        except Exception:
            logger.exception(
                "Notification delivery failed for %s (%s)", notice.user_id, notice.kind,
            )


# ---------------------------------------------------------------------------
# Inbox queries
# ---------------------------------------------------------------------------
def list_notifications(
    engine: Engine, user_id: str, *, unread_only: bool = True, limit: int = 50,
) -> list[PlayerNotification]:
    """Newest-first notifications for *user_id* (detached rows)."""
    with Session(engine) as session:
        stmt = select(PlayerNotification).where(PlayerNotification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(PlayerNotification.is_read.is_(False))
        rows = session.scalars(
            stmt.order_by(PlayerNotification.id.desc()).limit(limit)
        ).all()
        for row in rows:
            session.expunge(row)
    return list(rows)


def mark_notifications_read(engine: Engine, user_id: str, ids: Iterable[int]) -> int:
    """Mark the given notifications read; returns how many rows changed."""
    id_list = list(ids)
    if not id_list:
        return 0
    with Session(engine) as session:
        result = session.execute(
            update(PlayerNotification)
            .where(
                PlayerNotification.user_id == user_id,
                PlayerNotification.id.in_(id_list),
                PlayerNotification.is_read.is_(False),
            )
            .values(is_read=True)
        )
        session.commit()
    return result.rowcount or 0
