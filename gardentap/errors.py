"""
gardentap.errors — Error Taxonomy
===================================

Expected, user-facing refusals (no energy, not enough coins, storage full,
already owned, max level) are **not** exceptions; they come back inside
result objects as a :class:`RejectReason`.

Exceptions are reserved for:

* :class:`NotFoundError` — a bad catalog reference from the caller.
* :class:`InvariantViolation` — a state that construction should have made
  impossible.  The surrounding transaction is rolled back.
* :class:`StorageUnavailable` — the database failed or timed out.  Safe to
  retry from the caller because nothing was committed.
"""

from __future__ import annotations

import enum


class RejectReason(enum.StrEnum):
    """Why an operation was refused without touching player state."""
    NO_ENERGY = "no_energy"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    STORAGE_FULL = "storage_full"
    ALREADY_OWNED = "already_owned"
    NOT_OWNED = "not_owned"
    MAX_LEVEL = "max_level"
    LEVEL_TOO_LOW = "level_too_low"
    NOT_UNLOCKED = "not_unlocked"
    TASK_NOT_ACTIVE = "task_not_active"
    TASK_NOT_COMPLETED = "task_not_completed"
    ALREADY_CLAIMED = "already_claimed"


class GameError(Exception):
    """Base class for every exception raised by the engine."""


class NotFoundError(GameError):
    """An id did not resolve against the catalog."""

    def __init__(self, kind: str, key: object) -> None:
        super().__init__(f"Unknown {kind}: {key!r}")
        self.kind = kind
        self.key = key


class InvariantViolation(GameError):
    """Internal bug signal — never caught inside the engine."""


class StorageUnavailable(GameError):
    """The database could not complete the transaction."""

    retryable = True
