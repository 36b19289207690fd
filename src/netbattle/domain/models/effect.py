from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping


logger = logging.getLogger(__name__)

_KIND_SEPARATORS = re.compile(r"[+,/\s]+")


class EffectKind(str, Enum):
    ATTACK = "attack"
    BREAK = "break"
    SUPPORT = "support"
    BARRIER = "barrier"
    DEFENSE = "defense"
    RECOVERY = "recovery"
    PARALYZE = "paralyze"
    POISON = "poison"
    HOLY = "holy"
    REPAIR = "repair"
    SPECIAL = "special"


def parse_kinds(raw: Any) -> frozenset[EffectKind]:
    """Parse a ``kinds``/``kind`` field into the closed kind set.

    Accepts a list of tags or a single string such as ``"attack+break"`` or
    ``"defense, barrier"``. Tags outside the taxonomy are dropped.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        tokens: Iterable[Any] = _KIND_SEPARATORS.split(raw)
    elif isinstance(raw, (list, tuple, set, frozenset)):
        tokens = raw
    else:
        return frozenset()

    kinds: set[EffectKind] = set()
    for token in tokens:
        tag = str(token or "").strip().lower()
        if not tag:
            continue
        try:
            kinds.add(EffectKind(tag))
        except ValueError:
            logger.debug("Dropping unknown effect kind", extra={"kind": tag})
    return frozenset(kinds)


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)
    if isinstance(value, str) and value.strip():
        try:
            return int(float(value.strip()))
        except ValueError:
            return None
    return None


def _first_present(payload: Mapping[str, Any], *keys: str) -> int | None:
    for key in keys:
        parsed = _optional_int(payload.get(key))
        if parsed is not None:
            return parsed
    return None


@dataclass(frozen=True)
class EffectDescriptor:
    name: str
    kinds: frozenset[EffectKind] = frozenset()
    power: int | None = None
    defense: int | None = None
    heal: int | None = None
    rec: int | None = None
    bonus: int | None = None
    special: bool = False

    def has(self, kind: EffectKind) -> bool:
        return kind in self.kinds

    @property
    def is_attack(self) -> bool:
        return EffectKind.ATTACK in self.kinds or EffectKind.BREAK in self.kinds

    @property
    def is_break(self) -> bool:
        return EffectKind.BREAK in self.kinds

    @property
    def is_defense_like(self) -> bool:
        return EffectKind.DEFENSE in self.kinds or EffectKind.BARRIER in self.kinds

    @property
    def is_special(self) -> bool:
        return bool(self.special) or EffectKind.SPECIAL in self.kinds

    @property
    def recovery_amount(self) -> int:
        if self.heal is not None:
            return self.heal
        if self.rec is not None:
            return self.rec
        return 0

    @property
    def holy_amount(self) -> int:
        for value in (self.heal, self.rec, self.power):
            if value is not None:
                return value
        return 0

    @property
    def support_bonus(self) -> int:
        if self.bonus is not None:
            return self.bonus
        if self.power is not None:
            return self.power
        return 0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None, *, fallback_name: str = "") -> "EffectDescriptor":
        data = payload or {}
        raw_kinds = data.get("kinds") if data.get("kinds") is not None else data.get("kind")
        name = str(data.get("name") or data.get("label") or fallback_name or "").strip()
        return cls(
            name=name,
            kinds=parse_kinds(raw_kinds),
            power=_first_present(data, "dmg", "power"),
            defense=_first_present(data, "def", "defense"),
            heal=_first_present(data, "heal"),
            rec=_first_present(data, "rec"),
            bonus=_first_present(data, "add", "bonus"),
            special=bool(data.get("special")),
        )

    def to_mapping(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "kinds": sorted(kind.value for kind in self.kinds),
        }
        for key, value in (
            ("dmg", self.power),
            ("def", self.defense),
            ("heal", self.heal),
            ("rec", self.rec),
            ("add", self.bonus),
        ):
            if value is not None:
                payload[key] = value
        if self.special:
            payload["special"] = True
        return payload
