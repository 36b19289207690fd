from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from netbattle.application.services.balance_tables import (
    AI_DEFENSE_CAP_STREAK,
    AI_DEFENSE_CAP_TOTAL,
    ENCOUNTER_CHIP_DROP_CHANCE,
    MAX_PER_CHIP,
    ROUND_SECONDS_DEFAULT,
    ROUND_SECONDS_MINIMUM,
)


class RepairPolicy(str, Enum):
    CLEAR_PREEXISTING = "clear_preexisting"
    CLEAR_ALL = "clear_all"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _repair_policy_env(default: RepairPolicy) -> RepairPolicy:
    raw = str(os.getenv("NETBATTLE_REPAIR_POLICY", "") or "").strip().lower()
    try:
        return RepairPolicy(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class BattleSettings:
    round_seconds: int = ROUND_SECONDS_DEFAULT
    max_per_chip: int = MAX_PER_CHIP
    ai_defense_cap_total: int = AI_DEFENSE_CAP_TOTAL
    ai_defense_cap_streak: int = AI_DEFENSE_CAP_STREAK
    drop_chance: float = ENCOUNTER_CHIP_DROP_CHANCE
    repair_policy: RepairPolicy = RepairPolicy.CLEAR_PREEXISTING

    @property
    def round_millis(self) -> int:
        return max(ROUND_SECONDS_MINIMUM, int(self.round_seconds)) * 1000

    @classmethod
    def from_env(cls) -> "BattleSettings":
        return cls(
            round_seconds=max(ROUND_SECONDS_MINIMUM, _int_env("NETBATTLE_ROUND_SECONDS", ROUND_SECONDS_DEFAULT)),
            max_per_chip=max(1, _int_env("NETBATTLE_MAX_PER_CHIP", MAX_PER_CHIP)),
            ai_defense_cap_total=max(0, _int_env("NETBATTLE_AI_DEFENSE_CAP_TOTAL", AI_DEFENSE_CAP_TOTAL)),
            ai_defense_cap_streak=max(0, _int_env("NETBATTLE_AI_DEFENSE_CAP_STREAK", AI_DEFENSE_CAP_STREAK)),
            drop_chance=min(1.0, max(0.0, _float_env("NETBATTLE_DROP_CHANCE", ENCOUNTER_CHIP_DROP_CHANCE))),
            repair_policy=_repair_policy_env(RepairPolicy.CLEAR_PREEXISTING),
        )
