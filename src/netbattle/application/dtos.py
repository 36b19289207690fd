from dataclasses import dataclass, field
from typing import Dict, List, Optional

from netbattle.domain.models.battle import RejectReason


@dataclass
class SideView:
    actor_id: str
    hp: int
    max_hp: int
    autonomous: bool = False
    stunned: bool = False
    has_queued_action: bool = False
    poison_damage: int = 0
    poison_ticks: int = 0
    holy_heal: int = 0
    holy_ticks: int = 0
    usage_counts: Dict[str, int] = field(default_factory=dict)
    specials_used: List[str] = field(default_factory=list)


@dataclass
class BattleSnapshotView:
    session_key: str
    kind: str
    round_number: int
    round_deadline_ms: int
    started_at_ms: int
    first: SideView
    second: SideView
    entity_name: Optional[str] = None

    @property
    def sides(self) -> List[SideView]:
        return [self.first, self.second]


@dataclass
class CommandResult:
    ok: bool
    reason: Optional[RejectReason] = None
    snapshot: Optional[BattleSnapshotView] = None
    messages: List[str] = field(default_factory=list)

    @classmethod
    def rejected(cls, reason: RejectReason, message: str = "") -> "CommandResult":
        return cls(ok=False, reason=reason, messages=[message] if message else [])
