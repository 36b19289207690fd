import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from netbattle.application import dtos
from netbattle.application.contract import (
    COMMAND_INTENTS,
    CONTRACT_DTO_TYPES,
    CONTRACT_VERSION,
    QUERY_INTENTS,
    REJECT_REASONS,
)
from netbattle.application.services.battle_service import BattleService
from netbattle.domain.models.battle import RejectReason


class ApplicationContractTests(unittest.TestCase):
    def test_contract_version_uses_semver(self) -> None:
        self.assertRegex(CONTRACT_VERSION, r"^\d+\.\d+\.\d+$")

    def test_battle_service_exposes_every_intent(self) -> None:
        missing = [name for name in COMMAND_INTENTS + QUERY_INTENTS if not callable(getattr(BattleService, name, None))]

        self.assertEqual([], missing)

    def test_declared_dto_types_exist(self) -> None:
        for dto_name in CONTRACT_DTO_TYPES:
            self.assertTrue(hasattr(dtos, dto_name), f"Missing contract DTO: {dto_name}")

    def test_reject_reasons_match_the_domain_enum(self) -> None:
        self.assertEqual(sorted(reason.value for reason in RejectReason), sorted(REJECT_REASONS))


if __name__ == "__main__":
    unittest.main()
