from __future__ import annotations

import copy
from collections.abc import Callable, Sequence

from netbattle.domain.models.battle import BattleSession


def create_inmemory_battle_persistor(session_repo, navi_repo=None, task_repo=None) -> Callable[..., None]:
    def _persist(
        session_key: str,
        session: BattleSession | None,
        operations: Sequence[Callable[[object], None]] | None = None,
    ) -> None:
        snapshot = {
            "sessions": copy.deepcopy(getattr(session_repo, "_sessions", {})),
            "navis": copy.deepcopy(getattr(navi_repo, "_navis", None)),
            "inventory": copy.deepcopy(getattr(navi_repo, "_inventory", None)),
            "active_tasks": copy.deepcopy(getattr(task_repo, "_active", None)),
            "completed_tasks": copy.deepcopy(getattr(task_repo, "_completed", None)),
        }
        try:
            if session is None:
                session_repo.delete(session_key)
            else:
                session_repo.save(session)
            for operation in operations or ():
                operation(None)
        except Exception:
            if hasattr(session_repo, "_sessions"):
                session_repo._sessions = snapshot["sessions"]
            if snapshot["navis"] is not None:
                navi_repo._navis = snapshot["navis"]
            if snapshot["inventory"] is not None:
                navi_repo._inventory = snapshot["inventory"]
            if snapshot["active_tasks"] is not None:
                task_repo._active = snapshot["active_tasks"]
            if snapshot["completed_tasks"] is not None:
                task_repo._completed = snapshot["completed_tasks"]
            raise

    return _persist
