from __future__ import annotations

from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.combatant import CombatantStats, EntityTemplate
from netbattle.domain.models.effect import EffectDescriptor


def _chip(name: str, effect: dict, *, upgrade: bool = False) -> ChipRecord:
    return ChipRecord(
        name=name,
        effect=EffectDescriptor.from_mapping(effect, fallback_name=name),
        is_upgrade=upgrade,
    )


def _move(label: str, effect: dict) -> EffectDescriptor:
    return EffectDescriptor.from_mapping({"label": label, **effect})


SEED_CHIPS: tuple[ChipRecord, ...] = (
    _chip("Cannon", {"kind": "attack", "dmg": 40}),
    _chip("WideSword", {"kind": "attack", "dmg": 80}),
    _chip("AirShot", {"kind": "attack+break", "dmg": 20}),
    _chip("PoisonSeed", {"kind": "attack+poison", "dmg": 20}),
    _chip("ZapRing", {"kind": "attack+paralyze", "dmg": 20}),
    _chip("Guard", {"kind": "defense", "def": 30}),
    _chip("Barrier", {"kind": "barrier"}),
    _chip("Recov50", {"kind": "recovery", "heal": 50}),
    _chip("HolyPanel", {"kind": "holy", "heal": 20}),
    _chip("Repair", {"kind": "repair"}),
    _chip("Atk+10", {"kind": "support", "add": 10}),
    _chip("Muramasa", {"kind": "attack", "dmg": 120, "special": True}),
    _chip("HP+50", {"kind": "upgrade", "hp": 50}, upgrade=True),
)


SEED_VIRUSES: tuple[EntityTemplate, ...] = (
    EntityTemplate(
        name="Mettaur",
        stats=CombatantStats(max_hp=80, dodge_pct=10, crit_pct=5),
        moves=(
            _move("Shockwave", {"kind": "attack", "dmg": 20}),
            _move("Helmet", {"kind": "defense", "def": 20}),
        ),
        reward_range=(10, 30),
        drop_list=("Cannon", "AirShot"),
        region="ACDC",
        zone=1,
        stat_points=1,
    ),
    EntityTemplate(
        name="Canodumb",
        stats=CombatantStats(max_hp=120, dodge_pct=0, crit_pct=10),
        moves=(
            _move("Cannonball", {"kind": "attack", "dmg": 35}),
            _move("Brace", {"kind": "defense", "def": 25}),
            _move("Piercer", {"kind": "attack+break", "dmg": 25}),
        ),
        reward_range=(20, 50),
        drop_list=("Cannon", "WideSword"),
        region="ACDC",
        zone=1,
        stat_points=2,
    ),
    EntityTemplate(
        name="Spikey",
        stats=CombatantStats(max_hp=150, dodge_pct=15, crit_pct=10),
        moves=(
            _move("HeatShot", {"kind": "attack", "dmg": 30}),
            _move("Toxin", {"kind": "attack+poison", "dmg": 10}),
            _move("Shell", {"kind": "barrier"}),
        ),
        reward_range=(40, 80),
        drop_list=("PoisonSeed", "Guard"),
        region="ACDC",
        zone=2,
        stat_points=3,
    ),
    EntityTemplate(
        name="FireMan",
        stats=CombatantStats(max_hp=400, dodge_pct=10, crit_pct=15),
        moves=(
            _move("FireArm", {"kind": "attack", "dmg": 45}),
            _move("FlameTower", {"kind": "attack+break", "dmg": 40}),
            _move("Cinder", {"kind": "attack+paralyze", "dmg": 15}),
            _move("Inferno", {"kind": "attack", "dmg": 110, "special": True}),
        ),
        is_boss=True,
        reward_range=(300, 600),
        drop_list=("WideSword", "Muramasa"),
        region="ACDC",
        zone=3,
        stat_points=6,
    ),
)
