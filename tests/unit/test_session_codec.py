import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from netbattle.domain.models.battle import (
    BattleKind,
    BattleSession,
    DefensiveCounters,
    EncounterProfile,
    QueuedAction,
    SideState,
)
from netbattle.domain.models.effect import EffectDescriptor
from netbattle.domain.models.status import HolyStack, PoisonStack
from netbattle.infrastructure.db.sql.session_codec import (
    SESSION_COLUMNS,
    SessionDecodeError,
    row_to_session,
    session_to_row,
)


def _encounter_session() -> BattleSession:
    shockwave = EffectDescriptor.from_mapping({"kind": "attack", "dmg": 10}, fallback_name="Shockwave")
    guard = EffectDescriptor.from_mapping({"kind": "barrier"}, fallback_name="Guard")
    return BattleSession(
        session_key="field",
        kind=BattleKind.ENCOUNTER,
        first=SideState(
            actor_id="alice",
            hp=180,
            max_hp=250,
            dodge_pct=20,
            crit_pct=5,
            defense=10,
            usage_counts={"Cannon": 2},
            specials_used={"Muramasa"},
            poison=PoisonStack(15, 2),
            holy=HolyStack(25, 1),
            queued=QueuedAction.supported("Attack+10", "Cannon"),
        ),
        second=SideState(
            actor_id="Mettaur",
            hp=30,
            max_hp=40,
            stunned=True,
            autonomous=True,
            queued=QueuedAction.from_move(shockwave),
        ),
        round_deadline_ms=1_700_000_030_000,
        started_at_ms=1_700_000_000_000,
        round_number=4,
        encounter=EncounterProfile(
            entity_name="Mettaur",
            moves=(shockwave, guard),
            reward_range=(20, 45),
            counters=DefensiveCounters(total=1, streak=1),
        ),
    )


class SessionCodecTests(unittest.TestCase):
    def test_row_round_trip_preserves_the_session(self) -> None:
        session = _encounter_session()

        row = session_to_row(session)
        restored = row_to_session(row)

        self.assertEqual(set(SESSION_COLUMNS), set(row))
        self.assertEqual(session, restored)

    def test_corrupt_json_is_rejected(self) -> None:
        row = session_to_row(_encounter_session())
        row["p1_usage_json"] = "{not json"

        with self.assertRaises(SessionDecodeError):
            row_to_session(row)

    def test_unknown_schema_version_is_rejected(self) -> None:
        row = session_to_row(_encounter_session())
        row["schema_version"] = 99

        with self.assertRaisesRegex(SessionDecodeError, "schema version"):
            row_to_session(row)

    def test_unknown_kind_is_rejected(self) -> None:
        row = session_to_row(_encounter_session())
        row["kind"] = "raid"

        with self.assertRaises(SessionDecodeError):
            row_to_session(row)

    def test_encounter_without_snapshot_is_rejected(self) -> None:
        row = session_to_row(_encounter_session())
        row["encounter_json"] = None

        with self.assertRaisesRegex(SessionDecodeError, "entity snapshot"):
            row_to_session(row)

    def test_hp_above_max_is_rejected(self) -> None:
        row = session_to_row(_encounter_session())
        row["p2_hp"] = 41

        with self.assertRaises(SessionDecodeError):
            row_to_session(row)

    def test_stale_status_stack_is_rejected(self) -> None:
        row = session_to_row(_encounter_session())
        row["p1_poison_json"] = '{"tick_damage":15,"ticks_left":0}'

        with self.assertRaises(SessionDecodeError):
            row_to_session(row)

    def test_support_action_without_support_chip_is_rejected(self) -> None:
        row = session_to_row(_encounter_session())
        row["p1_action_json"] = '{"name":"Cannon","type":"support"}'

        with self.assertRaises(SessionDecodeError):
            row_to_session(row)

    def test_bytes_columns_are_decoded(self) -> None:
        row = session_to_row(_encounter_session())
        row["p1_usage_json"] = row["p1_usage_json"].encode("utf-8")

        self.assertEqual({"Cannon": 2}, row_to_session(row).first.usage_counts)


if __name__ == "__main__":
    unittest.main()
