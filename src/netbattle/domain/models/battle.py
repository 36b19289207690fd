from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from netbattle.domain.models.effect import EffectDescriptor
from netbattle.domain.models.status import HolyStack, PoisonStack


SESSION_SCHEMA_VERSION = 1


class BattleKind(str, Enum):
    DUEL = "duel"
    ENCOUNTER = "encounter"


class ActionKind(str, Enum):
    CHIP = "chip"
    SUPPORT = "support"
    MOVE = "move"


class RejectReason(str, Enum):
    INVALID_ACTION = "invalid-action"
    NOT_OWNED = "not-owned"
    CAP_EXCEEDED = "cap-exceeded"
    SPECIAL_ALREADY_USED = "special-already-used"
    ALREADY_QUEUED = "already-queued"
    STUNNED = "stunned"
    NOT_PARTICIPANT = "not-participant"
    NO_SESSION = "no-session"
    SESSION_EXISTS = "session-exists"
    UNKNOWN_ENTITY = "unknown-entity"


@dataclass(frozen=True)
class QueuedAction:
    kind: ActionKind
    name: str
    support: str | None = None
    move: EffectDescriptor | None = None

    @classmethod
    def chip(cls, name: str) -> "QueuedAction":
        return cls(kind=ActionKind.CHIP, name=name)

    @classmethod
    def supported(cls, support: str, with_chip: str) -> "QueuedAction":
        return cls(kind=ActionKind.SUPPORT, name=with_chip, support=support)

    @classmethod
    def from_move(cls, move: EffectDescriptor) -> "QueuedAction":
        return cls(kind=ActionKind.MOVE, name=move.name or "Move", move=move)

    def chip_names(self) -> tuple[str, ...]:
        if self.kind == ActionKind.SUPPORT and self.support:
            return (self.support, self.name)
        if self.kind == ActionKind.CHIP:
            return (self.name,)
        return ()


@dataclass(frozen=True)
class DefensiveCounters:
    total: int = 0
    streak: int = 0

    def after(self, move: EffectDescriptor | None) -> "DefensiveCounters":
        if move is not None and move.is_defense_like:
            return DefensiveCounters(total=self.total + 1, streak=self.streak + 1)
        return DefensiveCounters(total=self.total, streak=0)


@dataclass(frozen=True)
class EncounterProfile:
    """Snapshot of the autonomous entity taken at encounter start."""

    entity_name: str
    moves: tuple[EffectDescriptor, ...] = ()
    is_boss: bool = False
    reward_range: tuple[int, int] = (0, 0)
    image_url: str | None = None
    counters: DefensiveCounters = field(default_factory=DefensiveCounters)


@dataclass
class SideState:
    actor_id: str
    hp: int
    max_hp: int
    dodge_pct: int = 0
    crit_pct: int = 0
    defense: int = 0
    usage_counts: dict[str, int] = field(default_factory=dict)
    specials_used: set[str] = field(default_factory=set)
    stunned: bool = False
    poison: PoisonStack | None = None
    holy: HolyStack | None = None
    queued: QueuedAction | None = None
    autonomous: bool = False

    def usage_of(self, name: str) -> int:
        return int(self.usage_counts.get(name, 0))

    @property
    def ready(self) -> bool:
        return self.queued is not None or self.stunned or self.autonomous


@dataclass
class BattleSession:
    session_key: str
    kind: BattleKind
    first: SideState
    second: SideState
    round_deadline_ms: int
    started_at_ms: int
    round_number: int = 1
    encounter: EncounterProfile | None = None
    schema_version: int = SESSION_SCHEMA_VERSION

    @property
    def sides(self) -> tuple[SideState, SideState]:
        return (self.first, self.second)

    def side_index(self, actor_id: str) -> int | None:
        for index, side in enumerate(self.sides):
            if side.actor_id == actor_id:
                return index
        return None

    def side(self, index: int) -> SideState:
        return self.first if index == 0 else self.second

    @property
    def has_autonomous_side(self) -> bool:
        return self.first.autonomous or self.second.autonomous
