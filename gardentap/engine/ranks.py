"""
gardentap.engine.ranks — Points → Rank
========================================

Pure calculation.  A season rank is derived from points alone: the
highest rank whose ``min_points`` is at or below the player's points.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gardentap.engine.catalog import RankDef


def resolve_rank(points: int, ranks: Sequence[RankDef]) -> RankDef:
    """Pick the rank for *points* from *ranks* (ascending ``min_points``).

    Points below every threshold map to the lowest rank.
    """
    if not ranks:
        raise ValueError("rank table is empty")
    chosen = ranks[0]
    for rank in ranks:
        if rank.min_points <= points:
            chosen = rank
        else:
            break
    return chosen


def higher(a: RankDef | None, b: RankDef) -> RankDef:
    """The higher of two ranks by tier; *a* may be None."""
    if a is None or b.tier > a.tier:
        return b
    return a
