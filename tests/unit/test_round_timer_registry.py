import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from netbattle.application.services.round_timer import RoundTimerRegistry


class _FakeTimer:
    def __init__(self, delay_seconds, callback) -> None:
        self.delay_seconds = delay_seconds
        self.callback = callback
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class RoundTimerRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.created: list[_FakeTimer] = []

        def factory(delay_seconds, callback):
            timer = _FakeTimer(delay_seconds, callback)
            self.created.append(timer)
            return timer

        self.registry = RoundTimerRegistry(timer_factory=factory)

    def test_schedule_starts_a_daemon_timer(self) -> None:
        self.registry.schedule("arena", 30.0, lambda: None)

        timer = self.created[0]
        self.assertTrue(timer.started)
        self.assertTrue(timer.daemon)
        self.assertEqual(30.0, timer.delay_seconds)
        self.assertTrue(self.registry.is_pending("arena"))

    def test_rescheduling_cancels_the_previous_timer(self) -> None:
        fired: list[str] = []
        self.registry.schedule("arena", 30.0, lambda: fired.append("old"))
        self.registry.schedule("arena", 30.0, lambda: fired.append("new"))

        self.assertTrue(self.created[0].cancelled)
        # A cancelled thread timer can still race into its callback; it must not run.
        self.created[0].callback()
        self.created[1].callback()

        self.assertEqual(["new"], fired)

    def test_firing_removes_the_entry(self) -> None:
        fired: list[str] = []
        self.registry.schedule("arena", 30.0, lambda: fired.append("arena"))

        self.created[0].callback()
        self.created[0].callback()

        self.assertEqual(["arena"], fired)
        self.assertFalse(self.registry.is_pending("arena"))

    def test_cancel_reports_whether_anything_was_pending(self) -> None:
        self.registry.schedule("arena", 30.0, lambda: None)

        self.assertTrue(self.registry.cancel("arena"))
        self.assertFalse(self.registry.cancel("arena"))
        self.assertTrue(self.created[0].cancelled)

    def test_keys_are_independent(self) -> None:
        self.registry.schedule("arena", 30.0, lambda: None)
        self.registry.schedule("field", 30.0, lambda: None)

        self.registry.cancel("arena")

        self.assertEqual(["field"], self.registry.pending_keys())

    def test_negative_delay_is_clamped(self) -> None:
        self.registry.schedule("arena", -5.0, lambda: None)

        self.assertEqual(0.0, self.created[0].delay_seconds)

    def test_manual_mode_never_starts_threads(self) -> None:
        fired: list[str] = []
        registry = RoundTimerRegistry(timer_factory=lambda delay, callback: _FakeTimer(delay, callback), start_timers=False)
        registry.schedule("arena", 30.0, lambda: fired.append("arena"))

        self.assertTrue(registry.fire("arena"))
        self.assertFalse(registry.fire("arena"))
        self.assertEqual(["arena"], fired)

    def test_cancel_all_clears_everything(self) -> None:
        self.registry.schedule("arena", 30.0, lambda: None)
        self.registry.schedule("field", 30.0, lambda: None)

        self.registry.cancel_all()

        self.assertEqual([], self.registry.pending_keys())
        self.assertTrue(all(timer.cancelled for timer in self.created))


if __name__ == "__main__":
    unittest.main()
