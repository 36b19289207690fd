from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from netbattle.domain.models.effect import EffectDescriptor


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class AttackOutcome:
    damage: int = 0
    crit: bool = False
    dodged: bool = False
    cancelled_by_barrier: bool = False
    absorbed: int = 0

    @property
    def landed(self) -> bool:
        return not (self.dodged or self.cancelled_by_barrier)


def compute_attack_damage(
    attack: EffectDescriptor,
    *,
    support_bonus: int = 0,
    defender_defense: int = 0,
    defender_has_barrier: bool = False,
    dodge_pct: int = 0,
    crit_pct: int = 0,
    rng: RandomSource,
) -> AttackOutcome:
    """Resolve one attack against one defender.

    Barrier is checked before any roll, so a cancelled attack consumes no
    randomness. Dodge is rolled before crit.
    """
    if defender_has_barrier and not attack.is_break:
        return AttackOutcome(cancelled_by_barrier=True)

    if rng.random() * 100 < dodge_pct:
        return AttackOutcome(dodged=True)

    base = max(0, int(attack.power or 0))
    crit = rng.random() * 100 < crit_pct
    pre_defense = (base * 3) // 2 if crit else base

    if attack.is_break:
        effective = pre_defense
        absorbed = 0
    else:
        effective = max(0, pre_defense - max(0, int(defender_defense)))
        absorbed = pre_defense - effective

    damage = max(0, effective + int(support_bonus))
    return AttackOutcome(damage=damage, crit=crit, absorbed=absorbed)
