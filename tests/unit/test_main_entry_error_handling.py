import io
import sys
from pathlib import Path
import unittest
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

import netbattle.__main__ as runtime_main


class MainEntryErrorHandlingTests(unittest.TestCase):
    def _run(self, **patch_kwargs):
        output = io.StringIO()
        with mock.patch.object(runtime_main, "load_dotenv"), mock.patch.object(
            runtime_main, "cli_main", **patch_kwargs
        ), mock.patch("sys.stdout", output):
            code = runtime_main.main(["simulate"])
        return code, output.getvalue()

    def test_runtime_exceptions_print_reason_without_traceback(self) -> None:
        code, text = self._run(side_effect=RuntimeError("db unavailable"))

        self.assertEqual(1, code)
        self.assertIn("An unexpected error occurred", text)
        self.assertIn("db unavailable", text)
        self.assertIn("Help:", text)
        self.assertNotIn("Traceback", text)

    def test_keyboard_interrupt_ends_the_session(self) -> None:
        code, text = self._run(side_effect=KeyboardInterrupt)

        self.assertEqual(130, code)
        self.assertIn("Session ended", text)

    def test_exit_code_comes_from_the_cli(self) -> None:
        code, text = self._run(return_value=2)

        self.assertEqual(2, code)
        self.assertEqual("", text)


if __name__ == "__main__":
    unittest.main()
