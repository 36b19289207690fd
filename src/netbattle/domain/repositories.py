from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from netbattle.domain.models.battle import BattleSession
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.combatant import EntityTemplate, NaviProfile
from netbattle.domain.models.task import ActiveTask


Operation = Callable[[object], None]


class BattleSessionRepository(ABC):
    @abstractmethod
    def get(self, session_key: str) -> Optional[BattleSession]:
        raise NotImplementedError

    @abstractmethod
    def list_keys(self) -> List[str]:
        raise NotImplementedError


class ChipCatalog(ABC):
    @abstractmethod
    def get(self, name: str) -> Optional[ChipRecord]:
        raise NotImplementedError

    @abstractmethod
    def list_battle_chips(self) -> List[ChipRecord]:
        raise NotImplementedError


class EntityCatalog(ABC):
    @abstractmethod
    def get(self, name: str) -> Optional[EntityTemplate]:
        raise NotImplementedError

    @abstractmethod
    def list_templates(self) -> List[EntityTemplate]:
        raise NotImplementedError


class NaviRepository(ABC):
    @abstractmethod
    def get_or_create(self, user_id: str) -> NaviProfile:
        raise NotImplementedError

    @abstractmethod
    def inventory_qty(self, user_id: str, chip_name: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def build_inventory_delta_operation(self, user_id: str, chip_name: str, delta: int) -> Operation:
        raise NotImplementedError

    @abstractmethod
    def build_record_result_operation(self, winner_id: str, loser_id: str) -> Operation:
        raise NotImplementedError

    @abstractmethod
    def build_add_zenny_operation(self, user_id: str, amount: int) -> Operation:
        raise NotImplementedError


class TaskRepository(ABC):
    @abstractmethod
    def get_active(self, user_id: str) -> Optional[ActiveTask]:
        raise NotImplementedError

    @abstractmethod
    def build_complete_task_operation(self, user_id: str, mission_id: str) -> Operation:
        raise NotImplementedError
