from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from netbattle.domain.models.battle import ActionKind, QueuedAction
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.effect import EffectDescriptor, EffectKind


logger = logging.getLogger(__name__)

ChipLookup = Callable[[str], "ChipRecord | None"]


@dataclass(frozen=True)
class RoundIntent:
    """Normalized effect of one side's action for a single round."""

    defense: int = 0
    barrier: bool = False
    attack: EffectDescriptor | None = None
    support_bonus: int = 0
    recovery: int = 0
    holy_amount: int = 0
    repair: bool = False
    used: tuple[str, ...] = ()
    specials: tuple[str, ...] = ()


NO_OP_INTENT = RoundIntent()


def _base_intent(effect: EffectDescriptor, *, used: tuple[str, ...], specials: tuple[str, ...], support_bonus: int = 0) -> RoundIntent:
    defense = max(0, int(effect.defense or 0)) if effect.has(EffectKind.DEFENSE) else 0
    recovery = effect.recovery_amount if effect.has(EffectKind.RECOVERY) else 0
    holy_amount = max(0, effect.holy_amount) if effect.has(EffectKind.HOLY) else 0
    if holy_amount > 0:
        recovery = 0
    return RoundIntent(
        defense=defense,
        barrier=effect.has(EffectKind.BARRIER),
        attack=effect if effect.is_attack else None,
        support_bonus=support_bonus,
        recovery=max(0, recovery),
        holy_amount=holy_amount,
        repair=effect.has(EffectKind.REPAIR),
        used=used,
        specials=specials,
    )


class ActionInterpreter:
    def __init__(self, chip_lookup: ChipLookup) -> None:
        self._chip_lookup = chip_lookup

    def _lookup(self, name: str | None) -> ChipRecord | None:
        if not name:
            return None
        record = self._chip_lookup(name)
        if record is None or record.is_upgrade:
            logger.warning("Queued chip is not usable in battle", extra={"chip": name})
            return None
        return record

    def interpret(self, action: QueuedAction | None, *, stunned: bool) -> RoundIntent:
        if stunned or action is None:
            return NO_OP_INTENT

        if action.kind == ActionKind.MOVE:
            move = action.move
            if move is None:
                return NO_OP_INTENT
            name = move.name or "Move"
            specials = (name,) if move.is_special else ()
            return _base_intent(move, used=(name,), specials=specials)

        if action.kind == ActionKind.SUPPORT:
            support = self._lookup(action.support)
            base = self._lookup(action.name)
            if support is None or base is None:
                return NO_OP_INTENT
            specials = tuple(record.name for record in (support, base) if record.effect.is_special)
            return _base_intent(
                base.effect,
                used=(support.name, base.name),
                specials=specials,
                support_bonus=support.effect.support_bonus,
            )

        record = self._lookup(action.name)
        if record is None:
            return NO_OP_INTENT
        specials = (record.name,) if record.effect.is_special else ()
        return _base_intent(record.effect, used=(record.name,), specials=specials)
