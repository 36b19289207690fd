from __future__ import annotations

from collections.abc import Callable, Sequence

from sqlalchemy import text

from netbattle.domain.models.battle import BattleSession
from netbattle.infrastructure.db.sql.session_codec import SESSION_COLUMNS, session_to_row
from .connection import SessionLocal


def commit_battle_atomic(
    session_key: str,
    battle: BattleSession | None,
    operations: Sequence[Callable[[object], None]] | None = None,
) -> None:
    """Write (or delete) a battle row plus side effects in one DB transaction."""
    with SessionLocal.begin() as session:
        if battle is None:
            session.execute(text("DELETE FROM battle_session WHERE session_key = :key"), {"key": session_key})
        else:
            _upsert_battle_row(session, battle)
        for operation in operations or ():
            operation(session)


def _upsert_battle_row(session, battle: BattleSession) -> None:
    dialect = session.bind.dialect.name if session.bind is not None else "mysql"
    row = session_to_row(battle)
    columns = ", ".join(SESSION_COLUMNS)
    values = ", ".join(f":{column}" for column in SESSION_COLUMNS)
    updatable = [column for column in SESSION_COLUMNS if column != "session_key"]

    if dialect == "mysql":
        assignments = ",\n                ".join(f"{column} = VALUES({column})" for column in updatable)
        statement = text(
            f"""
            INSERT INTO battle_session ({columns})
            VALUES ({values})
            ON DUPLICATE KEY UPDATE
                {assignments}
            """
        )
    else:
        assignments = ",\n                ".join(f"{column} = excluded.{column}" for column in updatable)
        statement = text(
            f"""
            INSERT INTO battle_session ({columns})
            VALUES ({values})
            ON CONFLICT(session_key) DO UPDATE SET
                {assignments}
            """
        )
    session.execute(statement, row)
