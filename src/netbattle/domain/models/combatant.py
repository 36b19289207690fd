from __future__ import annotations

from dataclasses import dataclass, field

from netbattle.domain.models.effect import EffectDescriptor


DEFAULT_MAX_HP = 250
DEFAULT_DODGE_PCT = 20
DEFAULT_CRIT_PCT = 5

MAX_HP_CAP = 500
MAX_DODGE_CAP = 40
MAX_CRIT_CAP = 25


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


@dataclass(frozen=True)
class CombatantStats:
    max_hp: int = DEFAULT_MAX_HP
    dodge_pct: int = DEFAULT_DODGE_PCT
    crit_pct: int = DEFAULT_CRIT_PCT

    def capped(self) -> "CombatantStats":
        return CombatantStats(
            max_hp=_clamp(self.max_hp, 1, MAX_HP_CAP),
            dodge_pct=_clamp(self.dodge_pct, 0, MAX_DODGE_CAP),
            crit_pct=_clamp(self.crit_pct, 0, MAX_CRIT_CAP),
        )


@dataclass(frozen=True)
class NaviProfile:
    """Controlled combatant: a player's persistent battle profile."""

    user_id: str
    stats: CombatantStats = field(default_factory=CombatantStats)
    wins: int = 0
    losses: int = 0
    zenny: int = 0


@dataclass(frozen=True)
class EntityTemplate:
    """Catalog entry for an autonomous combatant (virus or boss)."""

    name: str
    stats: CombatantStats
    moves: tuple[EffectDescriptor, ...] = ()
    is_boss: bool = False
    reward_range: tuple[int, int] = (0, 0)
    drop_list: tuple[str, ...] = ()
    region: str | None = None
    zone: int | None = None
    stat_points: int = 1
    image_url: str | None = None

    @property
    def spawn_weight(self) -> float:
        points = int(self.stat_points or 1)
        if not self.is_boss:
            return float(max(1, 5 - _clamp(points, 1, 4)))
        if points <= 5:
            return 1.0
        if points == 6:
            return 0.6
        return 0.4
