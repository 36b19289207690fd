from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BattleOutcome(str, Enum):
    ONGOING = "ongoing"
    FIRST_SIDE_WON = "first_side_won"
    SECOND_SIDE_WON = "second_side_won"
    DRAW = "draw"

    @property
    def is_terminal(self) -> bool:
        return self != BattleOutcome.ONGOING


@dataclass(frozen=True)
class SideRoundReport:
    """What one side did and suffered during a resolved round."""

    actor_id: str
    used: tuple[str, ...] = ()
    damage_dealt: int = 0
    absorbed: int = 0
    crit: bool = False
    dodged: bool = False
    cancelled_by_barrier: bool = False
    recovery: int = 0
    poison_tick: int = 0
    holy_tick: int = 0
    hp: int = 0
    max_hp: int = 0
    stunned_next_round: bool = False


@dataclass(frozen=True)
class RoundReport:
    session_key: str
    round_number: int
    first: SideRoundReport
    second: SideRoundReport
    outcome: BattleOutcome = BattleOutcome.ONGOING

    @property
    def winner_id(self) -> str | None:
        if self.outcome == BattleOutcome.FIRST_SIDE_WON:
            return self.first.actor_id
        if self.outcome == BattleOutcome.SECOND_SIDE_WON:
            return self.second.actor_id
        return None

    @property
    def loser_id(self) -> str | None:
        if self.outcome == BattleOutcome.FIRST_SIDE_WON:
            return self.second.actor_id
        if self.outcome == BattleOutcome.SECOND_SIDE_WON:
            return self.first.actor_id
        return None
