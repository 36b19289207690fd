from dataclasses import dataclass
from typing import Optional

from netbattle.domain.models.battle import BattleKind
from netbattle.domain.models.round_report import RoundReport


@dataclass
class BattleStarted:
    session_key: str
    kind: BattleKind
    first_actor_id: str
    second_actor_id: str
    round_deadline_ms: int


@dataclass
class ActionQueued:
    session_key: str
    actor_id: str
    round_number: int
    chip_names: tuple


@dataclass
class RoundExtended:
    session_key: str
    round_number: int
    round_deadline_ms: int


@dataclass
class RoundResolved:
    report: RoundReport
    round_deadline_ms: int


@dataclass
class EncounterRewarded:
    session_key: str
    player_id: str
    entity_name: str
    zenny: int
    dropped_chip: Optional[str] = None
    completed_task: Optional[str] = None
    task_reward: int = 0


@dataclass
class BattleEnded:
    report: RoundReport
    kind: BattleKind
    records_updated: bool
    rewards: Optional[EncounterRewarded] = None


@dataclass
class BattleForfeited:
    session_key: str
    kind: BattleKind
    forfeiting_actor_id: str
    opponent_actor_id: str
    records_updated: bool
