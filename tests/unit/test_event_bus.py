import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from netbattle.application.services.event_bus import EventBus
from netbattle.domain.events import BattleForfeited
from netbattle.domain.models.battle import BattleKind


def _forfeit_event() -> BattleForfeited:
    return BattleForfeited(
        session_key="arena",
        kind=BattleKind.DUEL,
        forfeiting_actor_id="bob",
        opponent_actor_id="alice",
        records_updated=True,
    )


class EventBusTests(unittest.TestCase):
    def test_handlers_run_in_priority_then_subscription_order(self) -> None:
        bus = EventBus()
        seen: list[str] = []
        bus.subscribe(BattleForfeited, lambda evt: seen.append("late"), priority=200)
        bus.subscribe(BattleForfeited, lambda evt: seen.append("first"))
        bus.subscribe(BattleForfeited, lambda evt: seen.append("second"))

        bus.publish(_forfeit_event())

        self.assertEqual(["first", "second", "late"], seen)

    def test_other_event_types_are_not_delivered(self) -> None:
        bus = EventBus()
        seen: list[object] = []

        class Unrelated:
            pass

        bus.subscribe(Unrelated, seen.append)
        bus.publish(_forfeit_event())

        self.assertEqual([], seen)

    def test_failing_handler_is_isolated_and_logged(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        def explode(_event) -> None:
            raise ValueError("renderer crashed")

        bus.subscribe(BattleForfeited, explode)
        bus.subscribe(BattleForfeited, lambda evt: seen.append(evt.session_key))

        with self.assertLogs("netbattle.application.services.event_bus", level="ERROR"):
            bus.publish(_forfeit_event())

        self.assertEqual(["arena"], seen)
        self.assertEqual(1, len(bus.last_publish_errors()))

    def test_unsubscribe_stops_delivery(self) -> None:
        bus = EventBus()
        seen: list[object] = []
        bus.subscribe(BattleForfeited, seen.append)

        self.assertTrue(bus.unsubscribe(BattleForfeited, seen.append))
        bus.publish(_forfeit_event())

        self.assertEqual([], seen)
        self.assertFalse(bus.unsubscribe(BattleForfeited, seen.append))


if __name__ == "__main__":
    unittest.main()
