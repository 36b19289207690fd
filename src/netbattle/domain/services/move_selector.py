from __future__ import annotations

import random
from typing import Iterable, Mapping, Sequence

from netbattle.domain.models.battle import DefensiveCounters
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.effect import EffectDescriptor


DEFAULT_STREAK_CAP = 2
DEFAULT_TOTAL_CAP = 5


class MoveSelector:
    """Picks an autonomous combatant's move under the anti-stalling caps.

    Once the consecutive defensive streak reaches its cap, or the total
    defensive budget is spent, defense-like moves are avoided whenever an
    alternative exists.
    """

    def __init__(self, *, streak_cap: int = DEFAULT_STREAK_CAP, total_cap: int = DEFAULT_TOTAL_CAP) -> None:
        self.streak_cap = int(streak_cap)
        self.total_cap = int(total_cap)

    def select(
        self,
        moves: Sequence[EffectDescriptor],
        *,
        specials_used: Iterable[str],
        counters: DefensiveCounters,
        rng: random.Random,
    ) -> EffectDescriptor | None:
        spent = set(specials_used)
        eligible = [move for move in moves if not (move.is_special and (move.name or "Move") in spent)]
        if not eligible:
            return None

        if counters.streak >= self.streak_cap or counters.total >= self.total_cap:
            offensive = [move for move in eligible if not move.is_defense_like]
            if offensive:
                return rng.choice(offensive)
        return rng.choice(eligible)


def pick_stand_in_chip(
    chips: Sequence[ChipRecord],
    *,
    usage_counts: Mapping[str, int],
    specials_used: Iterable[str],
    max_per_chip: int,
    rng: random.Random,
) -> ChipRecord | None:
    spent = set(specials_used)
    eligible = [
        chip
        for chip in chips
        if chip.usable_in_battle
        and not chip.is_support
        and int(usage_counts.get(chip.name, 0)) < max_per_chip
        and not (chip.effect.is_special and chip.name in spent)
    ]
    if not eligible:
        return None
    return rng.choice(eligible)
