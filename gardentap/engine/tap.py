"""
gardentap.engine.tap — Tap Yield & Energy Regeneration
========================================================

Pure calculation.  No DB I/O.

A tap pays ``round(power × location_coins_power)`` of the location's
currency and ``round(power × main_coins_power)`` main coins, rounding
half-up.  When no tool is equipped for the location's character the
bare-handed values from :mod:`gardentap.constants` apply.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from gardentap.constants import (
    BASE_LOCATION_COINS_POWER,
    BASE_MAIN_COINS_POWER,
    BASE_TOOL_POWER,
    round_half_up,
)


@dataclass(frozen=True, slots=True)
class ToolStats:
    power: Decimal
    main_coins_power: Decimal
    location_coins_power: Decimal


BASE_TOOL = ToolStats(
    power=BASE_TOOL_POWER,
    main_coins_power=BASE_MAIN_COINS_POWER,
    location_coins_power=BASE_LOCATION_COINS_POWER,
)


@dataclass(frozen=True, slots=True)
class TapYield:
    location_gain: Decimal
    main_gain: Decimal


def calculate_yield(tool: ToolStats | None) -> TapYield:
    """Gross yield of one tap, before storage clamping."""
    stats = tool or BASE_TOOL
    return TapYield(
        location_gain=round_half_up(stats.power * stats.location_coins_power),
        main_gain=round_half_up(stats.power * stats.main_coins_power),
    )


@dataclass(frozen=True, slots=True)
class EnergyState:
    energy: int
    last_refill: datetime


def regenerate_energy(
    energy: int,
    max_energy: int,
    last_refill: datetime,
    now: datetime,
    interval_seconds: int,
) -> EnergyState:
    """Add one energy point per full *interval_seconds* since *last_refill*.

    The refill clock only advances by whole intervals so a partial interval
    carries over to the next call.  A full tank pins the clock to *now*.
    """
    if energy >= max_energy:
        return EnergyState(energy=max_energy, last_refill=now)
    if interval_seconds <= 0 or now <= last_refill:
        return EnergyState(energy=energy, last_refill=last_refill)

    ticks = int((now - last_refill).total_seconds() // interval_seconds)
    if ticks <= 0:
        return EnergyState(energy=energy, last_refill=last_refill)

    refilled = min(max_energy, energy + ticks)
    if refilled >= max_energy:
        return EnergyState(energy=max_energy, last_refill=now)
    return EnergyState(
        energy=refilled,
        last_refill=last_refill + timedelta(seconds=ticks * interval_seconds),
    )
