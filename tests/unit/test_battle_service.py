import random
import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from netbattle.application.services.battle_service import BattleService
from netbattle.application.services.event_bus import EventBus
from netbattle.application.services.round_timer import RoundTimerRegistry
from netbattle.application.settings import BattleSettings
from netbattle.domain.events import (
    ActionQueued,
    BattleEnded,
    BattleForfeited,
    BattleStarted,
    RoundExtended,
    RoundResolved,
)
from netbattle.domain.models.battle import RejectReason
from netbattle.domain.models.combatant import CombatantStats, EntityTemplate, NaviProfile
from netbattle.domain.models.effect import EffectDescriptor
from netbattle.domain.models.round_report import BattleOutcome
from netbattle.domain.models.status import PoisonStack
from netbattle.domain.models.task import ActiveTask
from netbattle.infrastructure.db.inmemory.repos import (
    InMemoryBattleSessionRepository,
    InMemoryChipCatalog,
    InMemoryEntityCatalog,
    InMemoryNaviRepository,
    InMemoryTaskRepository,
)
from netbattle.infrastructure.inmemory.atomic_persistence import create_inmemory_battle_persistor
from netbattle.infrastructure.inmemory.seed_catalog import SEED_CHIPS, SEED_VIRUSES


class _SteadyRandom(random.Random):
    """Uniform rolls always land at 0.5: no dodges or crits below 50%."""

    def random(self) -> float:
        return 0.5


DUMMY = EntityTemplate(
    name="Dummy",
    stats=CombatantStats(max_hp=10, dodge_pct=0, crit_pct=0),
    moves=(EffectDescriptor.from_mapping({"label": "Poke", "kind": "attack", "dmg": 1}),),
    reward_range=(10, 10),
    drop_list=("Cannon",),
)


class BattleServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.now = 1_000_000
        self.events: list[object] = []
        self.service = self._build()

    def _build(self, settings: BattleSettings | None = None) -> BattleService:
        self.session_repo = InMemoryBattleSessionRepository()
        self.navi_repo = InMemoryNaviRepository()
        self.task_repo = InMemoryTaskRepository()
        self.timers = RoundTimerRegistry(start_timers=False)
        bus = EventBus()
        for event_type in (ActionQueued, BattleEnded, BattleForfeited, BattleStarted, RoundExtended, RoundResolved):
            bus.subscribe(event_type, self.events.append)
        return BattleService(
            session_repo=self.session_repo,
            chip_catalog=InMemoryChipCatalog(SEED_CHIPS),
            entity_catalog=InMemoryEntityCatalog(SEED_VIRUSES + (DUMMY,)),
            navi_repo=self.navi_repo,
            task_repo=self.task_repo,
            persist_battle=create_inmemory_battle_persistor(self.session_repo, self.navi_repo, self.task_repo),
            event_bus=bus,
            timers=self.timers,
            settings=settings or BattleSettings(),
            clock=lambda: self.now,
            rng=_SteadyRandom(),
        )

    def _give(self, user_id: str, chip_name: str, qty: int) -> None:
        self.navi_repo.adjust_inventory(user_id, chip_name, qty)

    def _events(self, event_type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]


class SubmitActionValidationTests(BattleServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.service.start_duel("arena", "alice", "bob")

    def test_no_session(self) -> None:
        result = self.service.submit_action("elsewhere", "alice", "Cannon")

        self.assertFalse(result.ok)
        self.assertEqual(RejectReason.NO_SESSION, result.reason)

    def test_outsider_is_not_a_participant(self) -> None:
        result = self.service.submit_action("arena", "carol", "Cannon")

        self.assertEqual(RejectReason.NOT_PARTICIPANT, result.reason)

    def test_unknown_upgrade_and_fake_support_chips_are_invalid(self) -> None:
        self._give("alice", "HP+50", 1)
        self._give("alice", "Cannon", 2)

        self.assertEqual(RejectReason.INVALID_ACTION, self.service.submit_action("arena", "alice", "Nope").reason)
        self.assertEqual(RejectReason.INVALID_ACTION, self.service.submit_action("arena", "alice", "HP+50").reason)
        self.assertEqual(
            RejectReason.INVALID_ACTION,
            self.service.submit_action("arena", "alice", "Cannon", support_name="Cannon").reason,
        )

    def test_chip_must_be_owned(self) -> None:
        result = self.service.submit_action("arena", "alice", "Cannon")

        self.assertEqual(RejectReason.NOT_OWNED, result.reason)

    def test_support_chain_needs_both_chips(self) -> None:
        self._give("alice", "Cannon", 1)

        result = self.service.submit_action("arena", "alice", "Cannon", support_name="Atk+10")

        self.assertEqual(RejectReason.NOT_OWNED, result.reason)

    def test_stunned_side_cannot_queue(self) -> None:
        self._give("alice", "Cannon", 1)
        session = self.session_repo.get("arena")
        session.first.stunned = True
        self.session_repo.save(session)

        result = self.service.submit_action("arena", "alice", "Cannon")

        self.assertEqual(RejectReason.STUNNED, result.reason)
        self.assertEqual(1, self.navi_repo.inventory_qty("alice", "Cannon"))

    def test_second_submission_in_a_round_is_rejected(self) -> None:
        self._give("alice", "Cannon", 2)

        first = self.service.submit_action("arena", "alice", "Cannon")
        second = self.service.submit_action("arena", "alice", "Cannon")

        self.assertTrue(first.ok)
        self.assertEqual(RejectReason.ALREADY_QUEUED, second.reason)
        self.assertEqual(1, self.navi_repo.inventory_qty("alice", "Cannon"))

    def test_rejections_leave_no_trace(self) -> None:
        before = self.session_repo.get("arena")

        self.service.submit_action("arena", "alice", "Cannon")

        self.assertEqual(before, self.session_repo.get("arena"))
        self.assertEqual([], self._events(ActionQueued))


class SubmitActionFlowTests(BattleServiceTestCase):
    def test_submission_consumes_inventory_and_queues(self) -> None:
        self.service.start_duel("arena", "alice", "bob")
        self._give("alice", "Cannon", 3)

        result = self.service.submit_action("arena", "alice", "Cannon")

        self.assertTrue(result.ok)
        self.assertTrue(result.snapshot.first.has_queued_action)
        self.assertEqual(2, self.navi_repo.inventory_qty("alice", "Cannon"))
        self.assertEqual(("Cannon",), self._events(ActionQueued)[0].chip_names)

    def test_round_resolves_as_soon_as_both_sides_queue(self) -> None:
        self.service.start_duel("arena", "alice", "bob")
        self._give("alice", "Cannon", 1)
        self._give("bob", "Guard", 1)

        self.service.submit_action("arena", "alice", "Cannon")
        result = self.service.submit_action("arena", "bob", "Guard")

        self.assertEqual(2, result.snapshot.round_number)
        self.assertEqual(240, result.snapshot.second.hp)
        self.assertEqual(1, len(self._events(RoundResolved)))
        self.assertTrue(self.timers.is_pending("arena"))

    def test_failed_immediate_resolution_keeps_the_action_queued(self) -> None:
        self.service.start_duel("arena", "alice", "bob")
        self._give("alice", "Cannon", 1)
        self._give("bob", "Guard", 1)
        self.service.submit_action("arena", "alice", "Cannon")
        original = self.service.persist_battle

        def fail_on_resolution(session_key, session, operations=()):
            if session is not None and session.round_number > 1:
                raise RuntimeError("disk full")
            original(session_key, session, operations)

        self.service.persist_battle = fail_on_resolution
        with self.assertLogs("netbattle.application.services.battle_service", level="ERROR"):
            result = self.service.submit_action("arena", "bob", "Guard")

        self.assertTrue(result.ok)
        self.assertEqual(1, result.snapshot.round_number)
        self.assertTrue(result.snapshot.second.has_queued_action)
        self.assertEqual(0, self.navi_repo.inventory_qty("bob", "Guard"))
        self.assertEqual([], self._events(RoundResolved))
        self.assertTrue(self.timers.is_pending("arena"))

        self.service.persist_battle = original
        self.assertTrue(self.timers.fire("arena"))
        self.assertEqual(2, self.service.query_state("arena").round_number)

    def test_fifth_use_of_a_chip_exceeds_the_cap(self) -> None:
        self.service.start_duel("arena", "alice", "bob")
        self._give("alice", "Cannon", 5)
        self._give("bob", "Guard", 4)

        for _ in range(4):
            self.assertTrue(self.service.submit_action("arena", "alice", "Cannon").ok)
            self.assertTrue(self.service.submit_action("arena", "bob", "Guard").ok)

        result = self.service.submit_action("arena", "alice", "Cannon")

        self.assertEqual(RejectReason.CAP_EXCEEDED, result.reason)
        self.assertEqual(4, self.service.query_state("arena").first.usage_counts["Cannon"])
        self.assertEqual(1, self.navi_repo.inventory_qty("alice", "Cannon"))

    def test_special_is_spent_after_one_use(self) -> None:
        self.service.start_duel("arena", "alice", "bob")
        self._give("alice", "Muramasa", 2)
        self._give("bob", "Guard", 1)

        self.service.submit_action("arena", "alice", "Muramasa")
        self.service.submit_action("arena", "bob", "Guard")
        result = self.service.submit_action("arena", "alice", "Muramasa")

        self.assertEqual(RejectReason.SPECIAL_ALREADY_USED, result.reason)

    def test_stand_in_side_lets_the_round_resolve_immediately(self) -> None:
        self.service.start_duel("arena", "alice", "bot", stand_in_ids=("bot",))
        self._give("alice", "Cannon", 1)

        result = self.service.submit_action("arena", "alice", "Cannon")

        self.assertEqual(2, result.snapshot.round_number)
        self.assertEqual(RejectReason.NOT_PARTICIPANT, self.service.submit_action("arena", "bot", "Cannon").reason)


class BattleStartTests(BattleServiceTestCase):
    def test_busy_key_is_rejected(self) -> None:
        self.service.start_duel("arena", "alice", "bob")

        result = self.service.start_encounter("arena", "carol", "Mettaur")

        self.assertEqual(RejectReason.SESSION_EXISTS, result.reason)

    def test_unknown_entity_is_rejected(self) -> None:
        result = self.service.start_encounter("field", "alice", "MissingNo")

        self.assertEqual(RejectReason.UNKNOWN_ENTITY, result.reason)
        self.assertIsNone(self.service.query_state("field"))

    def test_encounter_uses_entity_stats_and_schedules_a_timer(self) -> None:
        result = self.service.start_encounter("field", "alice", "Mettaur")

        self.assertTrue(result.ok)
        self.assertEqual(80, result.snapshot.second.hp)
        self.assertTrue(result.snapshot.second.autonomous)
        self.assertEqual("Mettaur", result.snapshot.entity_name)
        self.assertEqual(self.now + 60_000, result.snapshot.round_deadline_ms)
        self.assertTrue(self.timers.is_pending("field"))
        self.assertEqual(1, len(self._events(BattleStarted)))

    def test_weighted_pick_honours_region_and_zone(self) -> None:
        result = self.service.start_encounter("field", "alice", region="ACDC", zone=3)

        self.assertEqual("FireMan", result.snapshot.entity_name)

    def test_controlled_stats_are_capped(self) -> None:
        self.navi_repo.save(NaviProfile(user_id="alice", stats=CombatantStats(max_hp=900, dodge_pct=80, crit_pct=60)))

        result = self.service.start_duel("arena", "alice", "bob")

        self.assertEqual(500, result.snapshot.first.max_hp)
        self.assertEqual(250, result.snapshot.second.max_hp)


class RoundTimerFlowTests(BattleServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.service.start_duel("arena", "alice", "bob")

    def test_idle_round_is_extended(self) -> None:
        self.now += 60_000

        self.assertTrue(self.timers.fire("arena"))

        snapshot = self.service.query_state("arena")
        self.assertEqual(1, snapshot.round_number)
        self.assertEqual(self.now + 60_000, snapshot.round_deadline_ms)
        self.assertEqual(1, len(self._events(RoundExtended)))
        self.assertTrue(self.timers.is_pending("arena"))

    def test_idle_round_with_a_stunned_side_only_moves_the_deadline(self) -> None:
        session = self.session_repo.get("arena")
        session.second.stunned = True
        session.second.poison = PoisonStack(tick_damage=20, ticks_left=3)
        self.session_repo.save(session)
        self.now += 60_000

        self.assertTrue(self.timers.fire("arena"))

        snapshot = self.service.query_state("arena")
        self.assertEqual(1, snapshot.round_number)
        self.assertEqual(250, snapshot.second.hp)
        self.assertTrue(snapshot.second.stunned)
        self.assertEqual(3, snapshot.second.poison_ticks)
        self.assertEqual(self.now + 60_000, snapshot.round_deadline_ms)
        self.assertEqual(1, len(self._events(RoundExtended)))
        self.assertEqual([], self._events(RoundResolved))

    def test_submission_against_a_stunned_side_resolves_at_once(self) -> None:
        session = self.session_repo.get("arena")
        session.second.stunned = True
        self.session_repo.save(session)
        self._give("alice", "Cannon", 1)

        result = self.service.submit_action("arena", "alice", "Cannon")

        self.assertEqual(2, result.snapshot.round_number)
        self.assertFalse(result.snapshot.second.stunned)
        self.assertEqual(1, len(self._events(RoundResolved)))

    def test_timer_resolves_with_the_idle_side_doing_nothing(self) -> None:
        self._give("alice", "Cannon", 1)
        self.service.submit_action("arena", "alice", "Cannon")

        self.timers.fire("arena")

        snapshot = self.service.query_state("arena")
        self.assertEqual(2, snapshot.round_number)
        self.assertEqual(210, snapshot.second.hp)

    def test_stale_round_timer_is_ignored(self) -> None:
        before = self.service.query_state("arena")

        self.service.on_round_timer("arena", 7)

        self.assertEqual(before, self.service.query_state("arena"))
        self.assertEqual([], self._events(RoundExtended))

    def test_timer_after_forfeit_has_no_effect(self) -> None:
        self.service.forfeit("arena", "alice")
        events_before = list(self.events)

        self.service.on_round_timer("arena", 1)

        self.assertFalse(self.timers.fire("arena"))
        self.assertIsNone(self.service.query_state("arena"))
        self.assertEqual(events_before, self.events)

    def test_failed_timer_resolution_is_retried_later(self) -> None:
        original = self.service.persist_battle
        calls = {"count": 0}

        def flaky(session_key, session, operations=()):
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("disk full")
            original(session_key, session, operations)

        self.service.persist_battle = flaky
        with self.assertLogs("netbattle.application.services.battle_service", level="ERROR"):
            self.service.on_round_timer("arena", 1)

        self.assertEqual(1, self.service.query_state("arena").round_number)
        self.assertTrue(self.timers.is_pending("arena"))


class BattleEndTests(BattleServiceTestCase):
    def test_knockout_updates_duel_records(self) -> None:
        self.navi_repo.save(NaviProfile(user_id="bob", stats=CombatantStats(max_hp=30)))
        self.service.start_duel("arena", "alice", "bob")
        self._give("alice", "Cannon", 1)
        self._give("bob", "Cannon", 1)

        self.service.submit_action("arena", "alice", "Cannon")
        self.service.submit_action("arena", "bob", "Cannon")

        self.assertIsNone(self.service.query_state("arena"))
        self.assertFalse(self.timers.is_pending("arena"))
        self.assertEqual(1, self.navi_repo.get_or_create("alice").wins)
        self.assertEqual(1, self.navi_repo.get_or_create("bob").losses)
        ended = self._events(BattleEnded)[0]
        self.assertTrue(ended.records_updated)
        self.assertEqual("alice", ended.report.winner_id)

    def test_double_knockout_is_a_draw_without_records(self) -> None:
        for user_id in ("alice", "bob"):
            self.navi_repo.save(NaviProfile(user_id=user_id, stats=CombatantStats(max_hp=30)))
            self._give(user_id, "Cannon", 1)
        self.service.start_duel("arena", "alice", "bob")

        self.service.submit_action("arena", "alice", "Cannon")
        self.service.submit_action("arena", "bob", "Cannon")

        ended = self._events(BattleEnded)[0]
        self.assertEqual(BattleOutcome.DRAW, ended.report.outcome)
        self.assertFalse(ended.records_updated)
        self.assertEqual(0, self.navi_repo.get_or_create("alice").wins)
        self.assertEqual(0, self.navi_repo.get_or_create("bob").losses)

    def test_forfeit_awards_the_opponent(self) -> None:
        self.service.start_duel("arena", "alice", "bob")

        result = self.service.forfeit("arena", "bob")

        self.assertTrue(result.ok)
        self.assertIsNone(self.service.query_state("arena"))
        self.assertFalse(self.timers.is_pending("arena"))
        self.assertEqual(1, self.navi_repo.get_or_create("alice").wins)
        self.assertTrue(self._events(BattleForfeited)[0].records_updated)

    def test_forfeit_needs_a_participant(self) -> None:
        self.service.start_encounter("field", "alice", "Mettaur")

        self.assertEqual(RejectReason.NOT_PARTICIPANT, self.service.forfeit("field", "Mettaur").reason)
        self.assertEqual(RejectReason.NO_SESSION, self.service.forfeit("nowhere", "alice").reason)

    def test_encounter_forfeit_leaves_records_alone(self) -> None:
        self.service.start_encounter("field", "alice", "Mettaur")

        self.service.forfeit("field", "alice")

        self.assertEqual(0, self.navi_repo.get_or_create("alice").losses)


class EncounterRewardFlowTests(BattleServiceTestCase):
    def test_victory_grants_zenny_without_touching_records(self) -> None:
        self.service.start_encounter("field", "alice", "Dummy")
        self._give("alice", "Cannon", 1)

        self.service.submit_action("field", "alice", "Cannon")

        alice = self.navi_repo.get_or_create("alice")
        self.assertEqual(10, alice.zenny)
        self.assertEqual((0, 0), (alice.wins, alice.losses))
        ended = self._events(BattleEnded)[0]
        self.assertFalse(ended.records_updated)
        self.assertEqual(10, ended.rewards.zenny)
        self.assertIsNone(ended.rewards.dropped_chip)

    def test_drop_and_task_completion(self) -> None:
        self.service = self._build(BattleSettings(drop_chance=1.0))
        self.task_repo.assign("alice", ActiveTask(mission_id="m-1", target_boss="dummy", reward_zenny=100))
        self.service.start_encounter("field", "alice", "Dummy")
        self._give("alice", "Cannon", 1)

        self.service.submit_action("field", "alice", "Cannon")

        self.assertEqual(1, self.navi_repo.inventory_qty("alice", "Cannon"))
        self.assertEqual(110, self.navi_repo.get_or_create("alice").zenny)
        self.assertIsNone(self.task_repo.get_active("alice"))
        self.assertEqual(["m-1"], self.task_repo.completed_for("alice"))
        rewards = self._events(BattleEnded)[0].rewards
        self.assertEqual("Cannon", rewards.dropped_chip)
        self.assertEqual("m-1", rewards.completed_task)


class RecoveryTests(BattleServiceTestCase):
    def test_recover_timers_rearms_persisted_battles(self) -> None:
        self.service.start_duel("arena", "alice", "bob")
        self.timers.cancel_all()

        recovered = self.service.recover_timers()

        self.assertEqual(1, recovered)
        self.assertEqual(["arena"], self.timers.pending_keys())

    def test_shutdown_cancels_every_timer(self) -> None:
        self.service.start_duel("arena", "alice", "bob")
        self.service.start_encounter("field", "carol", "Mettaur")

        self.service.shutdown()

        self.assertEqual([], self.timers.pending_keys())


if __name__ == "__main__":
    unittest.main()
