from __future__ import annotations


ROUND_SECONDS_DEFAULT = 60
ROUND_SECONDS_MINIMUM = 15

MAX_PER_CHIP = 4

AI_DEFENSE_CAP_TOTAL = 5
AI_DEFENSE_CAP_STREAK = 2

ENCOUNTER_CHIP_DROP_CHANCE = 0.33

MAX_MOVES_PER_ENTITY = 4
