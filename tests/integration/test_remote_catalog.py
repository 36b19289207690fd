import sys
from pathlib import Path
import unittest

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from netbattle.infrastructure.db.inmemory.repos import InMemoryChipCatalog
from netbattle.infrastructure.remote_catalog import RemoteEntityCatalog, TsvSheetClient, reload_chip_catalog


VIRUS_URL = "https://sheets.example/viruses.tsv"
CHIP_URL = "https://sheets.example/chips.tsv"

VIRUS_SHEET = (
    "Name\tHP\tDodge\tCrit\tBoss\tZenny\tChip Drop\tMove1_JSON\n"
    'Mettaur\t40\t10\t5\tno\t20-45\tCannon\t{"kind":"attack","dmg":10}\n'
    'Bunny\t60\t20\t5\tno\t30-60\tZapRing\t{"kind":"attack+paralyze","dmg":15}\n'
)
CHIP_SHEET = (
    "Name\tEffect\tZenny Cost\tUpgrade\tStock\n"
    'Cannon\t{"kind":"attack","dmg":55}\t100\tno\tyes\n'
    'ZapRing\t{"kind":"attack+paralyze","dmg":20}\t200\tno\tyes\n'
)


class _Sheets:
    def __init__(self) -> None:
        self.bodies = {VIRUS_URL: VIRUS_SHEET, CHIP_URL: CHIP_SHEET}
        self.calls: list[str] = []
        self.failing = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        if self.failing:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, text=self.bodies.get(url, ""))


class RemoteCatalogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sheets = _Sheets()
        self.now = 1_000.0
        self.client = TsvSheetClient(
            retries=0,
            backoff_seconds=0,
            http_client=httpx.Client(transport=httpx.MockTransport(self.sheets)),
        )
        self.addCleanup(self.client.close)
        self.catalog = RemoteEntityCatalog(self.client, VIRUS_URL, ttl_seconds=60, clock=lambda: self.now)

    def test_templates_are_cached_until_the_ttl_expires(self) -> None:
        self.assertEqual(40, self.catalog.get("mettaur").stats.max_hp)
        self.assertEqual(["Mettaur", "Bunny"], [template.name for template in self.catalog.list_templates()])
        self.assertEqual(1, len(self.sheets.calls))

        self.now += 61
        self.catalog.get("Bunny")

        self.assertEqual(2, len(self.sheets.calls))

    def test_failed_refresh_keeps_the_last_snapshot(self) -> None:
        self.catalog.refresh()
        self.sheets.failing = True
        self.now += 120

        with self.assertLogs("netbattle.infrastructure.remote_catalog", level="ERROR"):
            templates = self.catalog.refresh()

        self.assertEqual(["Mettaur", "Bunny"], [template.name for template in templates])

    def test_unknown_virus_is_none(self) -> None:
        self.assertIsNone(self.catalog.get("Gospel"))
        self.assertIsNone(self.catalog.get(""))

    def test_chip_sheet_reload_upserts_into_the_store(self) -> None:
        store = InMemoryChipCatalog()

        count = reload_chip_catalog(self.client, CHIP_URL, store)

        self.assertEqual(2, count)
        self.assertEqual(55, store.get("Cannon").effect.power)

    def test_empty_chip_sheet_is_an_error(self) -> None:
        self.sheets.bodies[CHIP_URL] = ""

        with self.assertRaisesRegex(ValueError, "empty"):
            reload_chip_catalog(self.client, CHIP_URL, InMemoryChipCatalog())


if __name__ == "__main__":
    unittest.main()
