from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Iterable, List

from netbattle.domain.models.battle import BattleSession
from netbattle.domain.repositories import ChipCatalog, EntityCatalog, NaviRepository, Operation, TaskRepository


logger = logging.getLogger(__name__)


@dataclass
class RewardGrant:
    zenny: int = 0
    dropped_chip: str | None = None
    completed_task: str | None = None
    task_reward: int = 0
    operations: List[Operation] = field(default_factory=list)


class EncounterRewardService:
    """Builds the reward operations committed alongside an encounter victory."""

    def __init__(
        self,
        *,
        chip_catalog: ChipCatalog,
        entity_catalog: EntityCatalog,
        navi_repo: NaviRepository,
        task_repo: TaskRepository | None = None,
        drop_chance: float = 0.33,
    ) -> None:
        self.chip_catalog = chip_catalog
        self.entity_catalog = entity_catalog
        self.navi_repo = navi_repo
        self.task_repo = task_repo
        self.drop_chance = float(drop_chance)

    def grant_victory(
        self,
        session: BattleSession,
        *,
        player_id: str,
        used_names: Iterable[str],
        rng: random.Random,
    ) -> RewardGrant:
        encounter = session.encounter
        if encounter is None:
            return RewardGrant()

        grant = RewardGrant()
        low, high = encounter.reward_range
        low, high = int(min(low, high)), int(max(low, high))
        grant.zenny = rng.randint(low, high) if high > 0 else 0
        if grant.zenny > 0:
            grant.operations.append(self.navi_repo.build_add_zenny_operation(player_id, grant.zenny))

        if rng.random() < self.drop_chance:
            grant.dropped_chip = self._roll_drop(encounter.entity_name, rng)
            if grant.dropped_chip:
                grant.operations.append(self.navi_repo.build_inventory_delta_operation(player_id, grant.dropped_chip, 1))

        if self.task_repo is not None:
            task = self.task_repo.get_active(player_id)
            if task is not None and task.is_satisfied_by(used_names=used_names, defeated_entity=encounter.entity_name):
                grant.completed_task = task.mission_id
                grant.task_reward = max(0, int(task.reward_zenny))
                grant.operations.append(self.task_repo.build_complete_task_operation(player_id, task.mission_id))
                if grant.task_reward > 0:
                    grant.operations.append(self.navi_repo.build_add_zenny_operation(player_id, grant.task_reward))
        return grant

    def _roll_drop(self, entity_name: str, rng: random.Random) -> str | None:
        template = self.entity_catalog.get(entity_name)
        if template is None or not template.drop_list:
            return None
        pick = rng.choice(list(template.drop_list))
        chip = self.chip_catalog.get(pick)
        if chip is None:
            logger.warning("Dropped chip missing from catalog", extra={"chip": pick, "entity": entity_name})
            return None
        return chip.name
