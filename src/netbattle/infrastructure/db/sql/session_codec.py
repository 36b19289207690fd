"""Row <-> BattleSession conversion for the ``battle_session`` table.

Scalars map to typed columns. Usage counts, specials, status stacks, the
queued action and the encounter snapshot are stored as JSON text and are
validated on the way back in; anything malformed raises
``SessionDecodeError`` instead of producing a half-valid session.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from netbattle.domain.models.battle import (
    SESSION_SCHEMA_VERSION,
    ActionKind,
    BattleKind,
    BattleSession,
    DefensiveCounters,
    EncounterProfile,
    QueuedAction,
    SideState,
)
from netbattle.domain.models.effect import EffectDescriptor
from netbattle.domain.models.status import STATUS_TICKS, HolyStack, PoisonStack


class SessionDecodeError(ValueError):
    pass


SIDE_PREFIXES = ("p1", "p2")


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _load(raw: Any, column: str) -> Any:
    if raw is None or raw == "":
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise SessionDecodeError(f"Column {column} is not valid JSON") from exc


def _require_int(value: Any, column: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    if isinstance(value, bool) or value is None:
        raise SessionDecodeError(f"Column {column} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise SessionDecodeError(f"Column {column} must be an integer") from exc
    if minimum is not None and parsed < minimum:
        raise SessionDecodeError(f"Column {column} is below {minimum}")
    if maximum is not None and parsed > maximum:
        raise SessionDecodeError(f"Column {column} is above {maximum}")
    return parsed


def _action_to_payload(action: QueuedAction | None) -> dict | None:
    if action is None:
        return None
    payload: dict[str, Any] = {"type": action.kind.value, "name": action.name}
    if action.support:
        payload["support"] = action.support
    if action.move is not None:
        payload["move"] = action.move.to_mapping()
    return payload


def _action_from_payload(payload: Any, column: str) -> QueuedAction | None:
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise SessionDecodeError(f"Column {column} must hold an object")
    try:
        kind = ActionKind(str(payload.get("type")))
    except ValueError as exc:
        raise SessionDecodeError(f"Column {column} has an unknown action type") from exc
    name = str(payload.get("name") or "").strip()
    if kind == ActionKind.MOVE:
        move = payload.get("move")
        if not isinstance(move, dict):
            raise SessionDecodeError(f"Column {column} move action lacks a descriptor")
        return QueuedAction.from_move(EffectDescriptor.from_mapping(move, fallback_name=name))
    if not name:
        raise SessionDecodeError(f"Column {column} action lacks a chip name")
    if kind == ActionKind.SUPPORT:
        support = str(payload.get("support") or "").strip()
        if not support:
            raise SessionDecodeError(f"Column {column} support action lacks a support chip")
        return QueuedAction.supported(support, name)
    return QueuedAction.chip(name)


def _usage_from_payload(payload: Any, column: str) -> dict[str, int]:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise SessionDecodeError(f"Column {column} must hold an object")
    return {str(name): _require_int(count, column, minimum=0) for name, count in payload.items()}


def _specials_from_payload(payload: Any, column: str) -> set[str]:
    if payload is None:
        return set()
    if not isinstance(payload, list):
        raise SessionDecodeError(f"Column {column} must hold a list")
    return {str(name) for name in payload}


def _stack_values(payload: Any, column: str, amount_key: str) -> tuple[int, int] | None:
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise SessionDecodeError(f"Column {column} must hold an object")
    amount = _require_int(payload.get(amount_key), column, minimum=1)
    ticks = _require_int(payload.get("ticks_left"), column, minimum=1, maximum=STATUS_TICKS)
    return amount, ticks


def _side_to_row(prefix: str, side: SideState) -> dict[str, Any]:
    return {
        f"{prefix}_actor_id": side.actor_id,
        f"{prefix}_hp": side.hp,
        f"{prefix}_max_hp": side.max_hp,
        f"{prefix}_dodge": side.dodge_pct,
        f"{prefix}_crit": side.crit_pct,
        f"{prefix}_defense": side.defense,
        f"{prefix}_autonomous": int(side.autonomous),
        f"{prefix}_stunned": int(side.stunned),
        f"{prefix}_usage_json": _dump(dict(sorted(side.usage_counts.items()))),
        f"{prefix}_specials_json": _dump(sorted(side.specials_used)),
        f"{prefix}_poison_json": _dump(
            {"tick_damage": side.poison.tick_damage, "ticks_left": side.poison.ticks_left} if side.poison else None
        ),
        f"{prefix}_holy_json": _dump(
            {"tick_heal": side.holy.tick_heal, "ticks_left": side.holy.ticks_left} if side.holy else None
        ),
        f"{prefix}_action_json": _dump(_action_to_payload(side.queued)),
    }


def _side_from_row(prefix: str, row: Mapping[str, Any]) -> SideState:
    actor_id = str(row.get(f"{prefix}_actor_id") or "").strip()
    if not actor_id:
        raise SessionDecodeError(f"Column {prefix}_actor_id is empty")
    max_hp = _require_int(row.get(f"{prefix}_max_hp"), f"{prefix}_max_hp", minimum=1)
    poison = _stack_values(_load(row.get(f"{prefix}_poison_json"), f"{prefix}_poison_json"), f"{prefix}_poison_json", "tick_damage")
    holy = _stack_values(_load(row.get(f"{prefix}_holy_json"), f"{prefix}_holy_json"), f"{prefix}_holy_json", "tick_heal")
    return SideState(
        actor_id=actor_id,
        hp=_require_int(row.get(f"{prefix}_hp"), f"{prefix}_hp", minimum=0, maximum=max_hp),
        max_hp=max_hp,
        dodge_pct=_require_int(row.get(f"{prefix}_dodge"), f"{prefix}_dodge", minimum=0, maximum=100),
        crit_pct=_require_int(row.get(f"{prefix}_crit"), f"{prefix}_crit", minimum=0, maximum=100),
        defense=_require_int(row.get(f"{prefix}_defense") or 0, f"{prefix}_defense", minimum=0),
        usage_counts=_usage_from_payload(_load(row.get(f"{prefix}_usage_json"), f"{prefix}_usage_json"), f"{prefix}_usage_json"),
        specials_used=_specials_from_payload(
            _load(row.get(f"{prefix}_specials_json"), f"{prefix}_specials_json"), f"{prefix}_specials_json"
        ),
        stunned=bool(int(row.get(f"{prefix}_stunned") or 0)),
        poison=PoisonStack(*poison) if poison else None,
        holy=HolyStack(*holy) if holy else None,
        queued=_action_from_payload(_load(row.get(f"{prefix}_action_json"), f"{prefix}_action_json"), f"{prefix}_action_json"),
        autonomous=bool(int(row.get(f"{prefix}_autonomous") or 0)),
    )


def _encounter_to_payload(profile: EncounterProfile | None) -> dict | None:
    if profile is None:
        return None
    return {
        "entity_name": profile.entity_name,
        "moves": [move.to_mapping() for move in profile.moves],
        "is_boss": profile.is_boss,
        "reward_range": list(profile.reward_range),
        "image_url": profile.image_url,
        "defense_total": profile.counters.total,
        "defense_streak": profile.counters.streak,
    }


def _encounter_from_payload(payload: Any) -> EncounterProfile | None:
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise SessionDecodeError("Column encounter_json must hold an object")
    name = str(payload.get("entity_name") or "").strip()
    if not name:
        raise SessionDecodeError("Column encounter_json lacks entity_name")
    moves = payload.get("moves") or []
    if not isinstance(moves, list) or not all(isinstance(move, dict) for move in moves):
        raise SessionDecodeError("Column encounter_json moves must be a list of objects")
    reward_range = payload.get("reward_range") or [0, 0]
    if not isinstance(reward_range, list) or len(reward_range) != 2:
        raise SessionDecodeError("Column encounter_json reward_range must be a pair")
    return EncounterProfile(
        entity_name=name,
        moves=tuple(EffectDescriptor.from_mapping(move) for move in moves),
        is_boss=bool(payload.get("is_boss")),
        reward_range=(
            _require_int(reward_range[0], "encounter_json.reward_range"),
            _require_int(reward_range[1], "encounter_json.reward_range"),
        ),
        image_url=payload.get("image_url") or None,
        counters=DefensiveCounters(
            total=_require_int(payload.get("defense_total") or 0, "encounter_json.defense_total", minimum=0),
            streak=_require_int(payload.get("defense_streak") or 0, "encounter_json.defense_streak", minimum=0),
        ),
    )


def session_to_row(session: BattleSession) -> dict[str, Any]:
    row: dict[str, Any] = {
        "session_key": session.session_key,
        "kind": session.kind.value,
        "schema_version": session.schema_version,
        "round_number": session.round_number,
        "round_deadline_ms": session.round_deadline_ms,
        "started_at_ms": session.started_at_ms,
        "encounter_json": _dump(_encounter_to_payload(session.encounter)),
    }
    for prefix, side in zip(SIDE_PREFIXES, session.sides):
        row.update(_side_to_row(prefix, side))
    return row


def row_to_session(row: Mapping[str, Any]) -> BattleSession:
    version = _require_int(row.get("schema_version"), "schema_version")
    if version != SESSION_SCHEMA_VERSION:
        raise SessionDecodeError(f"Unsupported session schema version {version}")
    try:
        kind = BattleKind(str(row.get("kind")))
    except ValueError as exc:
        raise SessionDecodeError(f"Unknown battle kind {row.get('kind')!r}") from exc

    encounter = _encounter_from_payload(_load(row.get("encounter_json"), "encounter_json"))
    if kind == BattleKind.ENCOUNTER and encounter is None:
        raise SessionDecodeError("Encounter session is missing its entity snapshot")

    return BattleSession(
        session_key=str(row.get("session_key")),
        kind=kind,
        first=_side_from_row("p1", row),
        second=_side_from_row("p2", row),
        round_deadline_ms=_require_int(row.get("round_deadline_ms"), "round_deadline_ms"),
        started_at_ms=_require_int(row.get("started_at_ms"), "started_at_ms"),
        round_number=_require_int(row.get("round_number"), "round_number", minimum=1),
        encounter=encounter,
        schema_version=version,
    )


_SIDE_COLUMNS = (
    "actor_id",
    "hp",
    "max_hp",
    "dodge",
    "crit",
    "defense",
    "autonomous",
    "stunned",
    "usage_json",
    "specials_json",
    "poison_json",
    "holy_json",
    "action_json",
)

SESSION_COLUMNS: tuple[str, ...] = (
    "session_key",
    "kind",
    "schema_version",
    "round_number",
    "round_deadline_ms",
    "started_at_ms",
    "encounter_json",
) + tuple(f"{prefix}_{column}" for prefix in SIDE_PREFIXES for column in _SIDE_COLUMNS)
