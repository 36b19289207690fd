from __future__ import annotations

from dataclasses import dataclass


STATUS_TICKS = 3


@dataclass(frozen=True)
class PoisonStack:
    tick_damage: int
    ticks_left: int = STATUS_TICKS


@dataclass(frozen=True)
class HolyStack:
    tick_heal: int
    ticks_left: int = STATUS_TICKS
