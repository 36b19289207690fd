from __future__ import annotations

from dataclasses import dataclass

from netbattle.domain.models.effect import EffectDescriptor, EffectKind


@dataclass(frozen=True)
class ChipRecord:
    name: str
    effect: EffectDescriptor
    is_upgrade: bool = False
    image_url: str | None = None

    @property
    def usable_in_battle(self) -> bool:
        return not self.is_upgrade

    @property
    def is_support(self) -> bool:
        return self.effect.has(EffectKind.SUPPORT)
