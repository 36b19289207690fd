from __future__ import annotations

import random
from dataclasses import dataclass, replace
from typing import Callable, Sequence

from netbattle.application.settings import BattleSettings, RepairPolicy
from netbattle.domain.models.battle import (
    ActionKind,
    BattleSession,
    QueuedAction,
    SideState,
)
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.effect import EffectKind
from netbattle.domain.models.round_report import BattleOutcome, RoundReport, SideRoundReport
from netbattle.domain.models.status import HolyStack, PoisonStack
from netbattle.domain.services.action_interpreter import ActionInterpreter, RoundIntent
from netbattle.domain.services.damage_formula import AttackOutcome, compute_attack_damage
from netbattle.domain.services.move_selector import MoveSelector, pick_stand_in_chip
from netbattle.domain.services.status_ledger import (
    clamp_hp,
    replace_holy,
    replace_poison,
    tick_holy,
    tick_poison,
)


@dataclass(frozen=True)
class RoundResolution:
    report: RoundReport
    session: BattleSession

    @property
    def outcome(self) -> BattleOutcome:
        return self.report.outcome


@dataclass
class _SideWork:
    """Mutable scratch state for one side while a round is being resolved."""

    intent: RoundIntent
    strike: AttackOutcome
    damage_dealt: int
    recovery: int
    poison: PoisonStack | None
    holy: HolyStack | None
    stun_opponent: bool = False


def _strike(intent: RoundIntent, *, attacker: SideState, defender: SideState, defender_intent: RoundIntent, rng) -> AttackOutcome:
    if intent.attack is None:
        return AttackOutcome()
    return compute_attack_damage(
        intent.attack,
        support_bonus=intent.support_bonus,
        defender_defense=defender_intent.defense,
        defender_has_barrier=defender_intent.barrier,
        dodge_pct=defender.dodge_pct,
        crit_pct=attacker.crit_pct,
        rng=rng,
    )


class RoundResolver:
    """Computes the next battle state for one round without any IO.

    The caller owns locking, persistence, timers and notifications.
    """

    def __init__(
        self,
        interpreter: ActionInterpreter,
        *,
        settings: BattleSettings | None = None,
        move_selector: MoveSelector | None = None,
    ) -> None:
        self.interpreter = interpreter
        self.settings = settings or BattleSettings()
        self.move_selector = move_selector or MoveSelector(
            streak_cap=self.settings.ai_defense_cap_streak,
            total_cap=self.settings.ai_defense_cap_total,
        )

    def fill_autonomous_actions(
        self,
        session: BattleSession,
        rng: random.Random,
        stand_in_chips: Callable[[], Sequence[ChipRecord]] = lambda: (),
    ) -> BattleSession:
        sides = []
        for index, side in enumerate(session.sides):
            if side.autonomous and side.queued is None and not side.stunned:
                side = replace(side, queued=self._choose_autonomous_action(session, index, rng, stand_in_chips))
            sides.append(side)
        return replace(session, first=sides[0], second=sides[1])

    def _choose_autonomous_action(self, session: BattleSession, index: int, rng, stand_in_chips) -> QueuedAction | None:
        side = session.side(index)
        if session.encounter is not None and index == 1:
            move = self.move_selector.select(
                session.encounter.moves,
                specials_used=side.specials_used,
                counters=session.encounter.counters,
                rng=rng,
            )
            return QueuedAction.from_move(move) if move is not None else None
        chip = pick_stand_in_chip(
            list(stand_in_chips()),
            usage_counts=side.usage_counts,
            specials_used=side.specials_used,
            max_per_chip=self.settings.max_per_chip,
            rng=rng,
        )
        return QueuedAction.chip(chip.name) if chip is not None else None

    @staticmethod
    def needs_extension(session: BattleSession) -> bool:
        return all(side.queued is None for side in session.sides)

    @staticmethod
    def ready_to_resolve(session: BattleSession) -> bool:
        return all(side.ready for side in session.sides)

    def extend(self, session: BattleSession, *, now_ms: int) -> BattleSession:
        return replace(session, round_deadline_ms=int(now_ms) + self.settings.round_millis)

    def resolve(self, session: BattleSession, rng: random.Random, *, now_ms: int) -> RoundResolution:
        first, second = session.first, session.second
        intent_1 = self.interpreter.interpret(first.queued, stunned=first.stunned)
        intent_2 = self.interpreter.interpret(second.queued, stunned=second.stunned)

        strike_1 = _strike(intent_1, attacker=first, defender=second, defender_intent=intent_2, rng=rng)
        strike_2 = _strike(intent_2, attacker=second, defender=first, defender_intent=intent_1, rng=rng)

        work_1 = self._side_work(first, intent_1, strike_1)
        work_2 = self._side_work(second, intent_2, strike_2)

        clear_first = self.settings.repair_policy == RepairPolicy.CLEAR_PREEXISTING
        if clear_first:
            self._apply_repair(work_1)
            self._apply_repair(work_2)

        self._apply_conversions(attacker=work_1, defender=work_2)
        self._apply_conversions(attacker=work_2, defender=work_1)

        if not clear_first:
            self._apply_repair(work_1)
            self._apply_repair(work_2)

        next_1, report_1 = self._settle(first, own=work_1, incoming=work_2)
        next_2, report_2 = self._settle(second, own=work_2, incoming=work_1)

        if next_1.hp <= 0 and next_2.hp <= 0:
            outcome = BattleOutcome.DRAW
        elif next_1.hp <= 0:
            outcome = BattleOutcome.SECOND_SIDE_WON
        elif next_2.hp <= 0:
            outcome = BattleOutcome.FIRST_SIDE_WON
        else:
            outcome = BattleOutcome.ONGOING

        encounter = session.encounter
        if encounter is not None:
            entity_action = second.queued
            move = entity_action.move if entity_action is not None and entity_action.kind == ActionKind.MOVE else None
            encounter = replace(encounter, counters=encounter.counters.after(move))

        next_session = replace(
            session,
            first=next_1,
            second=next_2,
            encounter=encounter,
            round_number=session.round_number + (0 if outcome.is_terminal else 1),
            round_deadline_ms=int(now_ms) + self.settings.round_millis,
        )
        report = RoundReport(
            session_key=session.session_key,
            round_number=session.round_number,
            first=report_1,
            second=report_2,
            outcome=outcome,
        )
        return RoundResolution(report=report, session=next_session)

    @staticmethod
    def _side_work(side: SideState, intent: RoundIntent, strike: AttackOutcome) -> _SideWork:
        recovery = intent.recovery
        if strike.cancelled_by_barrier:
            recovery = 0
        return _SideWork(
            intent=intent,
            strike=strike,
            damage_dealt=strike.damage,
            recovery=recovery,
            poison=side.poison,
            holy=side.holy,
        )

    @staticmethod
    def _apply_repair(work: _SideWork) -> None:
        if work.intent.repair:
            work.poison = None
            work.holy = None

    @staticmethod
    def _apply_conversions(*, attacker: _SideWork, defender: _SideWork) -> None:
        attack = attacker.intent.attack
        if attack is not None and attacker.strike.landed:
            if attack.has(EffectKind.POISON):
                defender.poison = replace_poison(attacker.strike.damage + attacker.strike.absorbed)
                attacker.damage_dealt = 0
            if attack.has(EffectKind.PARALYZE):
                attacker.stun_opponent = True
        if attacker.intent.holy_amount > 0:
            attacker.holy = replace_holy(attacker.intent.holy_amount)

    def _settle(self, side: SideState, *, own: _SideWork, incoming: _SideWork) -> tuple[SideState, SideRoundReport]:
        hp = clamp_hp(side.hp - incoming.damage_dealt + own.recovery, side.max_hp)
        poison_tick, poison = tick_poison(own.poison)
        holy_tick, holy = tick_holy(own.holy)
        hp = clamp_hp(hp - poison_tick + holy_tick, side.max_hp)

        usage_counts = dict(side.usage_counts)
        for name in own.intent.used:
            usage_counts[name] = usage_counts.get(name, 0) + 1
        specials_used = set(side.specials_used) | set(own.intent.specials)

        next_side = replace(
            side,
            hp=hp,
            defense=0,
            usage_counts=usage_counts,
            specials_used=specials_used,
            stunned=incoming.stun_opponent,
            poison=poison,
            holy=holy,
            queued=None,
        )
        report = SideRoundReport(
            actor_id=side.actor_id,
            used=own.intent.used,
            damage_dealt=own.damage_dealt,
            absorbed=own.strike.absorbed,
            crit=own.strike.crit,
            dodged=own.strike.dodged,
            cancelled_by_barrier=own.strike.cancelled_by_barrier,
            recovery=own.recovery,
            poison_tick=poison_tick,
            holy_tick=holy_tick,
            hp=hp,
            max_hp=side.max_hp,
            stunned_next_round=incoming.stun_opponent,
        )
        return next_side, report
