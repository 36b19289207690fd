from __future__ import annotations

import copy
from typing import Dict, Iterable, List, Optional

from netbattle.domain.models.battle import BattleSession
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.combatant import EntityTemplate, NaviProfile
from netbattle.domain.models.task import ActiveTask
from netbattle.domain.repositories import (
    BattleSessionRepository,
    ChipCatalog,
    EntityCatalog,
    NaviRepository,
    TaskRepository,
)


class InMemoryBattleSessionRepository(BattleSessionRepository):
    def __init__(self) -> None:
        self._sessions: Dict[str, BattleSession] = {}

    def get(self, session_key: str) -> Optional[BattleSession]:
        session = self._sessions.get(session_key)
        return copy.deepcopy(session) if session is not None else None

    def list_keys(self) -> List[str]:
        return sorted(self._sessions.keys())

    def save(self, session: BattleSession) -> None:
        self._sessions[session.session_key] = copy.deepcopy(session)

    def delete(self, session_key: str) -> None:
        self._sessions.pop(session_key, None)


class InMemoryChipCatalog(ChipCatalog):
    def __init__(self, chips: Iterable[ChipRecord] = ()) -> None:
        self._chips: Dict[str, ChipRecord] = {}
        self.upsert_many(chips)

    def get(self, name: str) -> Optional[ChipRecord]:
        if not name:
            return None
        return self._chips.get(name.strip().lower())

    def list_battle_chips(self) -> List[ChipRecord]:
        return sorted((chip for chip in self._chips.values() if chip.usable_in_battle), key=lambda chip: chip.name)

    def upsert_many(self, chips: Iterable[ChipRecord]) -> int:
        count = 0
        for chip in chips:
            self._chips[chip.name.strip().lower()] = chip
            count += 1
        return count


class InMemoryEntityCatalog(EntityCatalog):
    def __init__(self, templates: Iterable[EntityTemplate] = ()) -> None:
        self._templates: Dict[str, EntityTemplate] = {
            template.name.strip().lower(): template for template in templates
        }

    def get(self, name: str) -> Optional[EntityTemplate]:
        if not name:
            return None
        return self._templates.get(name.strip().lower())

    def list_templates(self) -> List[EntityTemplate]:
        return sorted(self._templates.values(), key=lambda template: template.name)


class InMemoryNaviRepository(NaviRepository):
    def __init__(self) -> None:
        self._navis: Dict[str, NaviProfile] = {}
        self._inventory: Dict[str, Dict[str, int]] = {}

    def get_or_create(self, user_id: str) -> NaviProfile:
        profile = self._navis.get(user_id)
        if profile is None:
            profile = NaviProfile(user_id=user_id)
            self._navis[user_id] = profile
        return profile

    def save(self, profile: NaviProfile) -> None:
        self._navis[profile.user_id] = profile

    def inventory_qty(self, user_id: str, chip_name: str) -> int:
        return int(self._inventory.get(user_id, {}).get(chip_name, 0))

    def inventory_of(self, user_id: str) -> Dict[str, int]:
        return dict(self._inventory.get(user_id, {}))

    def adjust_inventory(self, user_id: str, chip_name: str, delta: int) -> int:
        bag = self._inventory.setdefault(user_id, {})
        qty = max(0, int(bag.get(chip_name, 0)) + int(delta))
        if qty:
            bag[chip_name] = qty
        else:
            bag.pop(chip_name, None)
        return qty

    def build_inventory_delta_operation(self, user_id: str, chip_name: str, delta: int):
        def _operation(_session: object) -> None:
            self.adjust_inventory(user_id, chip_name, delta)

        return _operation

    def build_record_result_operation(self, winner_id: str, loser_id: str):
        def _operation(_session: object) -> None:
            winner = self.get_or_create(winner_id)
            loser = self.get_or_create(loser_id)
            self._navis[winner_id] = NaviProfile(winner.user_id, winner.stats, winner.wins + 1, winner.losses, winner.zenny)
            self._navis[loser_id] = NaviProfile(loser.user_id, loser.stats, loser.wins, loser.losses + 1, loser.zenny)

        return _operation

    def build_add_zenny_operation(self, user_id: str, amount: int):
        def _operation(_session: object) -> None:
            navi = self.get_or_create(user_id)
            self._navis[user_id] = NaviProfile(navi.user_id, navi.stats, navi.wins, navi.losses, navi.zenny + int(amount))

        return _operation


class InMemoryTaskRepository(TaskRepository):
    def __init__(self) -> None:
        self._active: Dict[str, ActiveTask] = {}
        self._completed: Dict[str, List[str]] = {}

    def assign(self, user_id: str, task: ActiveTask) -> None:
        self._active[user_id] = task

    def get_active(self, user_id: str) -> Optional[ActiveTask]:
        return self._active.get(user_id)

    def completed_for(self, user_id: str) -> List[str]:
        return list(self._completed.get(user_id, []))

    def build_complete_task_operation(self, user_id: str, mission_id: str):
        def _operation(_session: object) -> None:
            task = self._active.get(user_id)
            if task is not None and task.mission_id == mission_id:
                del self._active[user_id]
            self._completed.setdefault(user_id, []).append(mission_id)

        return _operation
