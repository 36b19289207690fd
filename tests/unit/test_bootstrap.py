import os
import sys
from pathlib import Path
import unittest
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from netbattle import bootstrap
from netbattle.application.services.round_timer import RoundTimerRegistry
from netbattle.infrastructure.db.inmemory.repos import InMemoryEntityCatalog
from netbattle.infrastructure.remote_catalog import RemoteEntityCatalog


class BootstrapTests(unittest.TestCase):
    def _timers(self) -> RoundTimerRegistry:
        return RoundTimerRegistry(start_timers=False)

    def test_defaults_to_inmemory_seed_catalogs(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=False):
            service = bootstrap.create_battle_service(timers=self._timers())

        self.assertIsInstance(service.entity_catalog, InMemoryEntityCatalog)
        self.assertIsNotNone(service.chip_catalog.get("Cannon"))
        self.assertIsNotNone(service.entity_catalog.get("Mettaur"))

    def test_virus_sheet_url_selects_the_remote_catalog(self) -> None:
        env = {"NETBATTLE_VIRUS_TSV_URL": "https://sheets.example/viruses.tsv", "NETBATTLE_CATALOG_TTL_S": "30"}
        with mock.patch.dict(os.environ, env):
            catalog = bootstrap._build_entity_catalog()

        self.assertIsInstance(catalog, RemoteEntityCatalog)
        self.assertEqual(30, catalog.ttl_seconds)

    def test_chip_sheet_failure_keeps_the_seed_catalog(self) -> None:
        with mock.patch.dict(os.environ, {"NETBATTLE_CHIP_TSV_URL": "https://sheets.example/chips.tsv"}), mock.patch.object(
            bootstrap, "reload_chip_catalog", side_effect=RuntimeError("sheet offline")
        ), self.assertLogs("netbattle.bootstrap", level="ERROR"):
            service = bootstrap.create_inmemory_battle_service(timers=self._timers())

        self.assertIsNotNone(service.chip_catalog.get("Cannon"))

    def test_database_failure_falls_back_to_inmemory(self) -> None:
        with mock.patch.dict(os.environ, {"NETBATTLE_DATABASE_URL": "mysql+mysqlconnector://u@127.0.0.1:1/x"}), mock.patch.object(
            bootstrap, "_build_sql_battle_service", side_effect=RuntimeError("Database connectivity check failed")
        ) as sql_builder, self.assertLogs("netbattle.bootstrap", level="WARNING"):
            service = bootstrap.create_battle_service(timers=self._timers())

        sql_builder.assert_called_once()
        self.assertIsInstance(service.entity_catalog, InMemoryEntityCatalog)

    def test_fallback_can_be_disabled(self) -> None:
        env = {"NETBATTLE_DATABASE_URL": "mysql+mysqlconnector://u@127.0.0.1:1/x", "NETBATTLE_INMEMORY_FALLBACK": "0"}
        with mock.patch.dict(os.environ, env), mock.patch.object(
            bootstrap, "_build_sql_battle_service", side_effect=RuntimeError("connectivity check failed")
        ):
            with self.assertRaisesRegex(RuntimeError, "connectivity check failed"):
                bootstrap.create_battle_service(timers=self._timers())


if __name__ == "__main__":
    unittest.main()
