from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


def normalize_name(value: str | None) -> str:
    return "".join(ch for ch in str(value or "").lower() if ch not in " _-")


@dataclass(frozen=True)
class ActiveTask:
    mission_id: str
    target_chip: str | None = None
    target_boss: str | None = None
    reward_zenny: int = 0

    def is_satisfied_by(self, *, used_names: Iterable[str], defeated_entity: str | None) -> bool:
        if self.target_chip:
            wanted = normalize_name(self.target_chip)
            if any(normalize_name(name) == wanted for name in used_names):
                return True
        if self.target_boss and defeated_entity:
            return normalize_name(self.target_boss) == normalize_name(defeated_entity)
        return False
