from __future__ import annotations

from netbattle.application.dtos import BattleSnapshotView, SideView
from netbattle.domain.models.battle import BattleSession, SideState


def to_side_view(side: SideState) -> SideView:
    return SideView(
        actor_id=side.actor_id,
        hp=side.hp,
        max_hp=side.max_hp,
        autonomous=side.autonomous,
        stunned=side.stunned,
        has_queued_action=side.queued is not None,
        poison_damage=side.poison.tick_damage if side.poison else 0,
        poison_ticks=side.poison.ticks_left if side.poison else 0,
        holy_heal=side.holy.tick_heal if side.holy else 0,
        holy_ticks=side.holy.ticks_left if side.holy else 0,
        usage_counts=dict(side.usage_counts),
        specials_used=sorted(side.specials_used),
    )


def to_battle_snapshot_view(session: BattleSession) -> BattleSnapshotView:
    return BattleSnapshotView(
        session_key=session.session_key,
        kind=session.kind.value,
        round_number=session.round_number,
        round_deadline_ms=session.round_deadline_ms,
        started_at_ms=session.started_at_ms,
        first=to_side_view(session.first),
        second=to_side_view(session.second),
        entity_name=session.encounter.entity_name if session.encounter else None,
    )
