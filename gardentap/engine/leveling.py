"""
gardentap.engine.leveling — Multi-Level-Up Loop
=================================================

Pure calculation.  Given a player's level and experience, adds an
experience delta and consumes as many level thresholds as it covers,
collecting each reached level's rewards in order.

The threshold to go from level ``L`` to ``L + 1`` is
``catalog.required_exp(L + 1)``.  At the top of the ladder experience
simply keeps accumulating.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gardentap.engine.catalog import Catalog, RewardDef

logger = logging.getLogger(__name__)


@dataclass
class LevelOutcome:
    level: int
    experience: int
    levels_gained: int = 0
    thresholds_consumed: int = 0
    rewards: list[RewardDef] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.levels_gained > 0


def apply_experience(catalog: Catalog, level: int, experience: int, delta: int) -> LevelOutcome:
    """Return the level/experience after adding *delta*.

    ``thresholds_consumed + experience == old_experience + delta`` always
    holds on the result.
    """
    if delta < 0:
        raise ValueError(f"experience delta must be non-negative, got {delta}")

    outcome = LevelOutcome(level=level, experience=experience + delta)
    threshold = catalog.required_exp(outcome.level + 1)
    while threshold is not None and outcome.experience >= threshold:
        outcome.experience -= threshold
        outcome.thresholds_consumed += threshold
        outcome.level += 1
        outcome.levels_gained += 1
        outcome.rewards.extend(catalog.rewards_for_level(outcome.level))
        threshold = catalog.required_exp(outcome.level + 1)

    if outcome.levels_gained > 1:
        logger.debug("Multi-level-up: %d → %d", level, outcome.level)
    return outcome
