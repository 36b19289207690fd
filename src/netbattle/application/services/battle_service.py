from __future__ import annotations

import logging
import random
import threading
import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterator, Optional, Sequence

from netbattle.application.dtos import BattleSnapshotView, CommandResult
from netbattle.application.mappers.session_mapper import to_battle_snapshot_view
from netbattle.application.services.encounter_picker import pick_weighted_template
from netbattle.application.services.encounter_rewards import EncounterRewardService, RewardGrant
from netbattle.application.services.event_bus import EventBus
from netbattle.application.services.round_resolver import RoundResolution, RoundResolver
from netbattle.application.services.round_timer import RoundTimerRegistry
from netbattle.application.settings import BattleSettings
from netbattle.domain.events import (
    ActionQueued,
    BattleEnded,
    BattleForfeited,
    BattleStarted,
    EncounterRewarded,
    RoundExtended,
    RoundResolved,
)
from netbattle.domain.models.battle import (
    BattleKind,
    BattleSession,
    EncounterProfile,
    QueuedAction,
    RejectReason,
    SideState,
)
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.round_report import BattleOutcome
from netbattle.domain.repositories import (
    BattleSessionRepository,
    ChipCatalog,
    EntityCatalog,
    NaviRepository,
    Operation,
    TaskRepository,
)
from netbattle.domain.services.action_interpreter import ActionInterpreter


logger = logging.getLogger(__name__)

BattlePersistor = Callable[[str, Optional[BattleSession], Sequence[Operation]], None]


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class _KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
        with lock:
            yield


class BattleService:
    """Command surface for starting, playing and abandoning battles.

    Every mutation of a session happens under that session's key lock and
    is committed through ``persist_battle`` in a single atomic write.
    Timers are only touched after the write succeeds.
    """

    def __init__(
        self,
        *,
        session_repo: BattleSessionRepository,
        chip_catalog: ChipCatalog,
        entity_catalog: EntityCatalog,
        navi_repo: NaviRepository,
        persist_battle: BattlePersistor,
        task_repo: TaskRepository | None = None,
        event_bus: EventBus | None = None,
        timers: RoundTimerRegistry | None = None,
        settings: BattleSettings | None = None,
        clock: Callable[[], int] | None = None,
        rng: random.Random | None = None,
        resolver: RoundResolver | None = None,
        reward_service: EncounterRewardService | None = None,
    ) -> None:
        self.session_repo = session_repo
        self.chip_catalog = chip_catalog
        self.entity_catalog = entity_catalog
        self.navi_repo = navi_repo
        self.task_repo = task_repo
        self.persist_battle = persist_battle
        self.event_bus = event_bus or EventBus()
        self.timers = timers or RoundTimerRegistry()
        self.settings = settings or BattleSettings()
        self.clock = clock or _epoch_millis
        self.rng = rng or random.Random()
        self.resolver = resolver or RoundResolver(ActionInterpreter(chip_catalog.get), settings=self.settings)
        self.reward_service = reward_service or EncounterRewardService(
            chip_catalog=chip_catalog,
            entity_catalog=entity_catalog,
            navi_repo=navi_repo,
            task_repo=task_repo,
            drop_chance=self.settings.drop_chance,
        )
        self._locks = _KeyedLocks()

    # Battle start

    def start_duel(
        self,
        session_key: str,
        first_id: str,
        second_id: str,
        *,
        stand_in_ids: Sequence[str] = (),
    ) -> CommandResult:
        if first_id == second_id:
            return CommandResult.rejected(RejectReason.NOT_PARTICIPANT, "A duel needs two different participants.")
        stand_ins = set(stand_in_ids)
        with self._locks.hold(session_key):
            if self.session_repo.get(session_key) is not None:
                return CommandResult.rejected(RejectReason.SESSION_EXISTS, "A battle is already running here.")
            now = self.clock()
            session = BattleSession(
                session_key=session_key,
                kind=BattleKind.DUEL,
                first=self._controlled_side(first_id, autonomous=first_id in stand_ins),
                second=self._controlled_side(second_id, autonomous=second_id in stand_ins),
                round_deadline_ms=now + self.settings.round_millis,
                started_at_ms=now,
            )
            self.persist_battle(session_key, session, ())
            self._schedule_round_timer(session)
        logger.info("Duel started", extra={"session_key": session_key, "first": first_id, "second": second_id})
        self.event_bus.publish(
            BattleStarted(
                session_key=session_key,
                kind=BattleKind.DUEL,
                first_actor_id=first_id,
                second_actor_id=second_id,
                round_deadline_ms=session.round_deadline_ms,
            )
        )
        return CommandResult(ok=True, snapshot=to_battle_snapshot_view(session))

    def start_encounter(
        self,
        session_key: str,
        player_id: str,
        entity_name: str | None = None,
        *,
        region: str | None = None,
        zone: int | None = None,
        player_stand_in: bool = False,
    ) -> CommandResult:
        with self._locks.hold(session_key):
            if self.session_repo.get(session_key) is not None:
                return CommandResult.rejected(RejectReason.SESSION_EXISTS, "A battle is already running here.")
            if entity_name:
                template = self.entity_catalog.get(entity_name)
            else:
                template = pick_weighted_template(self.entity_catalog.list_templates(), self.rng, region=region, zone=zone)
            if template is None:
                return CommandResult.rejected(RejectReason.UNKNOWN_ENTITY, "No virus matches that request.")

            now = self.clock()
            stats = template.stats
            session = BattleSession(
                session_key=session_key,
                kind=BattleKind.ENCOUNTER,
                first=self._controlled_side(player_id, autonomous=player_stand_in),
                second=SideState(
                    actor_id=template.name,
                    hp=max(1, stats.max_hp),
                    max_hp=max(1, stats.max_hp),
                    dodge_pct=max(0, min(100, stats.dodge_pct)),
                    crit_pct=max(0, min(100, stats.crit_pct)),
                    autonomous=True,
                ),
                round_deadline_ms=now + self.settings.round_millis,
                started_at_ms=now,
                encounter=EncounterProfile(
                    entity_name=template.name,
                    moves=tuple(template.moves),
                    is_boss=template.is_boss,
                    reward_range=tuple(template.reward_range),
                    image_url=template.image_url,
                ),
            )
            self.persist_battle(session_key, session, ())
            self._schedule_round_timer(session)
        logger.info("Encounter started", extra={"session_key": session_key, "player": player_id, "entity": template.name})
        self.event_bus.publish(
            BattleStarted(
                session_key=session_key,
                kind=BattleKind.ENCOUNTER,
                first_actor_id=player_id,
                second_actor_id=template.name,
                round_deadline_ms=session.round_deadline_ms,
            )
        )
        return CommandResult(ok=True, snapshot=to_battle_snapshot_view(session))

    def _controlled_side(self, actor_id: str, *, autonomous: bool) -> SideState:
        stats = self.navi_repo.get_or_create(actor_id).stats.capped()
        return SideState(
            actor_id=actor_id,
            hp=stats.max_hp,
            max_hp=stats.max_hp,
            dodge_pct=stats.dodge_pct,
            crit_pct=stats.crit_pct,
            autonomous=autonomous,
        )

    # Commands

    def submit_action(
        self,
        session_key: str,
        actor_id: str,
        action_name: str,
        support_name: str | None = None,
    ) -> CommandResult:
        with self._locks.hold(session_key):
            session = self.session_repo.get(session_key)
            if session is None:
                return CommandResult.rejected(RejectReason.NO_SESSION, "No battle is running here.")
            index = session.side_index(actor_id)
            if index is None or session.side(index).autonomous:
                return CommandResult.rejected(RejectReason.NOT_PARTICIPANT, "You are not a participant in this battle.")
            side = session.side(index)

            chip = self._battle_chip(action_name)
            if chip is None:
                return CommandResult.rejected(RejectReason.INVALID_ACTION, f"Unknown or unusable chip: {action_name}")
            support: ChipRecord | None = None
            if support_name:
                support = self._battle_chip(support_name)
                if support is None or not support.is_support:
                    return CommandResult.rejected(RejectReason.INVALID_ACTION, f"{support_name} is not a support chip.")

            records = [support, chip] if support is not None else [chip]
            needed = Counter(record.name for record in records)
            for name, count in needed.items():
                if self.navi_repo.inventory_qty(actor_id, name) < count:
                    return CommandResult.rejected(RejectReason.NOT_OWNED, f"You don't have enough {name}.")

            if side.stunned:
                return CommandResult.rejected(RejectReason.STUNNED, "You are stunned this round.")
            if side.queued is not None:
                return CommandResult.rejected(RejectReason.ALREADY_QUEUED, "You already queued an action this round.")

            for record in records:
                if side.usage_of(record.name) + needed[record.name] > self.settings.max_per_chip:
                    return CommandResult.rejected(
                        RejectReason.CAP_EXCEEDED,
                        f"{record.name} can only be used {self.settings.max_per_chip} times per battle.",
                    )
                if record.effect.is_special and record.name in side.specials_used:
                    return CommandResult.rejected(
                        RejectReason.SPECIAL_ALREADY_USED,
                        f"{record.name} is special and was already used this battle.",
                    )

            action = QueuedAction.supported(support.name, chip.name) if support is not None else QueuedAction.chip(chip.name)
            updated = self._with_side(session, index, replace(side, queued=action))
            operations = [
                self.navi_repo.build_inventory_delta_operation(actor_id, name, -count) for name, count in needed.items()
            ]
            self.persist_battle(session_key, updated, operations)
            self.event_bus.publish(
                ActionQueued(
                    session_key=session_key,
                    actor_id=actor_id,
                    round_number=updated.round_number,
                    chip_names=action.chip_names(),
                )
            )

            if self.resolver.ready_to_resolve(updated):
                try:
                    self._resolve_locked(session_key)
                except Exception:
                    # The action is already committed; the pending round timer retries.
                    logger.exception(
                        "Immediate round resolution failed; waiting for the round timer",
                        extra={"session_key": session_key},
                    )
            current = self.session_repo.get(session_key)
        return CommandResult(
            ok=True,
            snapshot=to_battle_snapshot_view(current) if current is not None else None,
            messages=[f"Queued {' + '.join(action.chip_names())}."],
        )

    def forfeit(self, session_key: str, actor_id: str) -> CommandResult:
        with self._locks.hold(session_key):
            session = self.session_repo.get(session_key)
            if session is None:
                return CommandResult.rejected(RejectReason.NO_SESSION, "No battle is running here.")
            index = session.side_index(actor_id)
            if index is None or session.side(index).autonomous:
                return CommandResult.rejected(RejectReason.NOT_PARTICIPANT, "You are not a participant in this battle.")

            opponent = session.side(1 - index)
            records_updated = session.kind == BattleKind.DUEL and not session.has_autonomous_side
            operations: list[Operation] = []
            if records_updated:
                operations.append(self.navi_repo.build_record_result_operation(opponent.actor_id, actor_id))
            self.persist_battle(session_key, None, operations)
            self.timers.cancel(session_key)
        logger.info("Battle forfeited", extra={"session_key": session_key, "actor": actor_id})
        self.event_bus.publish(
            BattleForfeited(
                session_key=session_key,
                kind=session.kind,
                forfeiting_actor_id=actor_id,
                opponent_actor_id=opponent.actor_id,
                records_updated=records_updated,
            )
        )
        return CommandResult(ok=True, messages=[f"{actor_id} forfeited."])

    def query_state(self, session_key: str) -> BattleSnapshotView | None:
        session = self.session_repo.get(session_key)
        if session is None:
            return None
        return to_battle_snapshot_view(session)

    # Resolution

    def resolve_round(self, session_key: str) -> RoundResolution | None:
        with self._locks.hold(session_key):
            return self._resolve_locked(session_key)

    def on_round_timer(self, session_key: str, round_number: int) -> None:
        with self._locks.hold(session_key):
            session = self.session_repo.get(session_key)
            if session is None:
                logger.debug("Round timer fired for a finished battle", extra={"session_key": session_key})
                return
            if session.round_number != round_number:
                logger.debug(
                    "Round timer fired for a stale round",
                    extra={"session_key": session_key, "round_number": round_number, "current": session.round_number},
                )
                return
            try:
                self._resolve_locked(session_key)
            except Exception:
                logger.exception("Round resolution failed; retrying at next deadline", extra={"session_key": session_key})
                self._schedule_round_timer(self.resolver.extend(session, now_ms=self.clock()))

    def _resolve_locked(self, session_key: str) -> RoundResolution | None:
        session = self.session_repo.get(session_key)
        if session is None:
            return None

        session = self.resolver.fill_autonomous_actions(session, self.rng, self.chip_catalog.list_battle_chips)
        now = self.clock()
        if self.resolver.needs_extension(session):
            extended = self.resolver.extend(session, now_ms=now)
            self.persist_battle(session_key, extended, ())
            self._schedule_round_timer(extended)
            self.event_bus.publish(
                RoundExtended(
                    session_key=session_key,
                    round_number=extended.round_number,
                    round_deadline_ms=extended.round_deadline_ms,
                )
            )
            return None

        resolution = self.resolver.resolve(session, self.rng, now_ms=now)
        if resolution.outcome.is_terminal:
            self._finish(session, resolution)
        else:
            self.persist_battle(session_key, resolution.session, ())
            self._schedule_round_timer(resolution.session)
            self.event_bus.publish(
                RoundResolved(report=resolution.report, round_deadline_ms=resolution.session.round_deadline_ms)
            )
        return resolution

    def _finish(self, session: BattleSession, resolution: RoundResolution) -> None:
        report = resolution.report
        operations: list[Operation] = []
        records_updated = (
            session.kind == BattleKind.DUEL
            and not session.has_autonomous_side
            and report.outcome != BattleOutcome.DRAW
        )
        if records_updated:
            operations.append(self.navi_repo.build_record_result_operation(report.winner_id, report.loser_id))

        rewards: EncounterRewarded | None = None
        if session.kind == BattleKind.ENCOUNTER and report.outcome == BattleOutcome.FIRST_SIDE_WON:
            grant = self.reward_service.grant_victory(
                session,
                player_id=report.first.actor_id,
                used_names=report.first.used,
                rng=self.rng,
            )
            operations.extend(grant.operations)
            rewards = self._reward_event(session, report.first.actor_id, grant)

        self.persist_battle(session.session_key, None, operations)
        self.timers.cancel(session.session_key)
        logger.info(
            "Battle ended",
            extra={"session_key": session.session_key, "outcome": report.outcome.value, "winner": report.winner_id},
        )
        self.event_bus.publish(
            BattleEnded(report=report, kind=session.kind, records_updated=records_updated, rewards=rewards)
        )

    @staticmethod
    def _reward_event(session: BattleSession, player_id: str, grant: RewardGrant) -> EncounterRewarded:
        return EncounterRewarded(
            session_key=session.session_key,
            player_id=player_id,
            entity_name=session.encounter.entity_name if session.encounter else "",
            zenny=grant.zenny,
            dropped_chip=grant.dropped_chip,
            completed_task=grant.completed_task,
            task_reward=grant.task_reward,
        )

    # Helpers

    def _battle_chip(self, name: str | None) -> ChipRecord | None:
        if not name:
            return None
        record = self.chip_catalog.get(name)
        if record is None or not record.usable_in_battle:
            return None
        return record

    @staticmethod
    def _with_side(session: BattleSession, index: int, side: SideState) -> BattleSession:
        if index == 0:
            return replace(session, first=side)
        return replace(session, second=side)

    def _schedule_round_timer(self, session: BattleSession) -> None:
        session_key = session.session_key
        round_number = session.round_number
        delay_seconds = max(0.0, (session.round_deadline_ms - self.clock()) / 1000.0)
        self.timers.schedule(session_key, delay_seconds, lambda: self.on_round_timer(session_key, round_number))

    def recover_timers(self) -> int:
        """Re-arm round timers for every persisted battle after a restart."""
        recovered = 0
        for session_key in self.session_repo.list_keys():
            with self._locks.hold(session_key):
                session = self.session_repo.get(session_key)
                if session is None:
                    continue
                self._schedule_round_timer(session)
                recovered += 1
        if recovered:
            logger.info("Recovered round timers", extra={"count": recovered})
        return recovered

    def shutdown(self) -> None:
        self.timers.cancel_all()
