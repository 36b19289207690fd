import json
from typing import Iterable, List, Optional

from sqlalchemy import text

from netbattle.domain.models.battle import BattleSession
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.combatant import CombatantStats, NaviProfile
from netbattle.domain.models.effect import EffectDescriptor
from netbattle.domain.models.task import ActiveTask
from netbattle.domain.repositories import (
    BattleSessionRepository,
    ChipCatalog,
    NaviRepository,
    TaskRepository,
)
from netbattle.infrastructure.db.sql.session_codec import SESSION_COLUMNS, row_to_session
from .connection import SessionLocal


def _dialect(session) -> str:
    return session.bind.dialect.name if session.bind is not None else "mysql"


def _parse_json_object(raw) -> dict:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


class SqlBattleSessionRepository(BattleSessionRepository):
    def get(self, session_key: str) -> Optional[BattleSession]:
        columns = ", ".join(SESSION_COLUMNS)
        with SessionLocal() as session:
            row = session.execute(
                text(f"SELECT {columns} FROM battle_session WHERE session_key = :key"),
                {"key": session_key},
            ).mappings().first()
        if row is None:
            return None
        return row_to_session(dict(row))

    def list_keys(self) -> List[str]:
        with SessionLocal() as session:
            rows = session.execute(text("SELECT session_key FROM battle_session ORDER BY session_key")).all()
        return [str(row.session_key) for row in rows]


class SqlChipCatalog(ChipCatalog):
    def get(self, name: str) -> Optional[ChipRecord]:
        if not name:
            return None
        with SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT name, effect_json, is_upgrade, image_url
                    FROM chip
                    WHERE LOWER(name) = LOWER(:name)
                    """
                ),
                {"name": name.strip()},
            ).first()
        return self._row_to_chip(row) if row is not None else None

    def list_battle_chips(self) -> List[ChipRecord]:
        with SessionLocal() as session:
            rows = session.execute(
                text(
                    """
                    SELECT name, effect_json, is_upgrade, image_url
                    FROM chip
                    WHERE is_upgrade = 0
                    ORDER BY name
                    """
                )
            ).all()
        return [self._row_to_chip(row) for row in rows]

    def upsert_many(self, chips: Iterable[ChipRecord]) -> int:
        rows = [
            {
                "name": chip.name,
                "effect_json": json.dumps(chip.effect.to_mapping(), sort_keys=True),
                "is_upgrade": int(chip.is_upgrade),
                "image_url": chip.image_url,
            }
            for chip in chips
        ]
        if not rows:
            return 0
        with SessionLocal.begin() as session:
            if _dialect(session) == "mysql":
                statement = text(
                    """
                    INSERT INTO chip (name, effect_json, is_upgrade, image_url)
                    VALUES (:name, :effect_json, :is_upgrade, :image_url)
                    ON DUPLICATE KEY UPDATE
                        effect_json = VALUES(effect_json),
                        is_upgrade = VALUES(is_upgrade),
                        image_url = VALUES(image_url)
                    """
                )
            else:
                statement = text(
                    """
                    INSERT INTO chip (name, effect_json, is_upgrade, image_url)
                    VALUES (:name, :effect_json, :is_upgrade, :image_url)
                    ON CONFLICT(name) DO UPDATE SET
                        effect_json = excluded.effect_json,
                        is_upgrade = excluded.is_upgrade,
                        image_url = excluded.image_url
                    """
                )
            session.execute(statement, rows)
        return len(rows)

    @staticmethod
    def _row_to_chip(row) -> ChipRecord:
        effect = _parse_json_object(row.effect_json)
        return ChipRecord(
            name=str(row.name),
            effect=EffectDescriptor.from_mapping(effect, fallback_name=str(row.name)),
            is_upgrade=bool(row.is_upgrade),
            image_url=row.image_url,
        )


class SqlNaviRepository(NaviRepository):
    def get_or_create(self, user_id: str) -> NaviProfile:
        with SessionLocal() as session:
            row = session.execute(
                text("SELECT user_id, max_hp, dodge, crit, wins, losses, zenny FROM navi WHERE user_id = :uid"),
                {"uid": user_id},
            ).first()
        if row is None:
            with SessionLocal.begin() as session:
                self._ensure_navi(session, user_id)
            return NaviProfile(user_id=user_id)
        return NaviProfile(
            user_id=str(row.user_id),
            stats=CombatantStats(max_hp=int(row.max_hp), dodge_pct=int(row.dodge), crit_pct=int(row.crit)),
            wins=int(row.wins or 0),
            losses=int(row.losses or 0),
            zenny=int(row.zenny or 0),
        )

    @staticmethod
    def _ensure_navi(session, user_id: str) -> None:
        if _dialect(session) == "mysql":
            statement = text("INSERT IGNORE INTO navi (user_id) VALUES (:uid)")
        else:
            statement = text("INSERT INTO navi (user_id) VALUES (:uid) ON CONFLICT(user_id) DO NOTHING")
        session.execute(statement, {"uid": user_id})

    def inventory_qty(self, user_id: str, chip_name: str) -> int:
        with SessionLocal() as session:
            row = session.execute(
                text("SELECT qty FROM inventory WHERE user_id = :uid AND chip_name = :chip"),
                {"uid": user_id, "chip": chip_name},
            ).first()
        return int(row.qty) if row is not None else 0

    def build_inventory_delta_operation(self, user_id: str, chip_name: str, delta: int):
        def _operation(session) -> None:
            params = {"uid": user_id, "chip": chip_name, "delta": int(delta)}
            if _dialect(session) == "mysql":
                statement = text(
                    """
                    INSERT INTO inventory (user_id, chip_name, qty)
                    VALUES (:uid, :chip, GREATEST(0, :delta))
                    ON DUPLICATE KEY UPDATE qty = GREATEST(0, qty + :delta)
                    """
                )
            else:
                statement = text(
                    """
                    INSERT INTO inventory (user_id, chip_name, qty)
                    VALUES (:uid, :chip, MAX(0, :delta))
                    ON CONFLICT(user_id, chip_name) DO UPDATE SET qty = MAX(0, inventory.qty + :delta)
                    """
                )
            session.execute(statement, params)

        return _operation

    def build_record_result_operation(self, winner_id: str, loser_id: str):
        def _operation(session) -> None:
            self._ensure_navi(session, winner_id)
            self._ensure_navi(session, loser_id)
            session.execute(text("UPDATE navi SET wins = wins + 1 WHERE user_id = :uid"), {"uid": winner_id})
            session.execute(text("UPDATE navi SET losses = losses + 1 WHERE user_id = :uid"), {"uid": loser_id})

        return _operation

    def build_add_zenny_operation(self, user_id: str, amount: int):
        def _operation(session) -> None:
            self._ensure_navi(session, user_id)
            session.execute(
                text("UPDATE navi SET zenny = zenny + :amount WHERE user_id = :uid"),
                {"uid": user_id, "amount": int(amount)},
            )

        return _operation


class SqlTaskRepository(TaskRepository):
    def get_active(self, user_id: str) -> Optional[ActiveTask]:
        with SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT mission_id, target_chip, target_boss, reward_zenny
                    FROM active_task
                    WHERE user_id = :uid AND status = 'active'
                    """
                ),
                {"uid": user_id},
            ).first()
        if row is None:
            return None
        return ActiveTask(
            mission_id=str(row.mission_id),
            target_chip=row.target_chip,
            target_boss=row.target_boss,
            reward_zenny=int(row.reward_zenny or 0),
        )

    def build_complete_task_operation(self, user_id: str, mission_id: str):
        def _operation(session) -> None:
            session.execute(
                text(
                    """
                    UPDATE active_task
                    SET status = 'complete'
                    WHERE user_id = :uid AND mission_id = :mid AND status = 'active'
                    """
                ),
                {"uid": user_id, "mid": mission_id},
            )

        return _operation
