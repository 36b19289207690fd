"""Parsers for the chip and virus catalog sheets published as TSV."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from netbattle.application.services.balance_tables import MAX_MOVES_PER_ENTITY
from netbattle.domain.models.chip import ChipRecord
from netbattle.domain.models.combatant import CombatantStats, EntityTemplate
from netbattle.domain.models.effect import EffectDescriptor


logger = logging.getLogger(__name__)

_HEADER_NON_WORD = re.compile(r"[^\w]+")
_RANGE_PATTERN = re.compile(r"^(\d+)\s*-\s*(\d+)$")
_DROP_SEPARATORS = re.compile(r"[,|/]+")
_TRUTHY = {"1", "true", "yes", "y"}

_MOVE_HEADER = re.compile(r"^move_?(\d+)(?:_?json)?$")


def normalize_header(value: str | None) -> str:
    return _HEADER_NON_WORD.sub("_", str(value or "").strip().lower())


def parse_tsv(text: str) -> list[dict[str, str]]:
    lines = [line for line in re.split(r"\r?\n", text or "") if line]
    if not lines:
        return []
    headers = [normalize_header(header) for header in lines[0].split("\t")]
    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        cols = line.split("\t")
        rows.append({header: (cols[index] if index < len(cols) else "") for index, header in enumerate(headers)})
    return rows


def parse_range(value: str | None) -> tuple[int, int]:
    text = str(value or "").strip()
    if not text:
        return 0, 0
    match = _RANGE_PATTERN.match(text)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        return min(low, high), max(low, high)
    number = _parse_int(text, 0)
    return number, number


def parse_bool(value: str | None) -> bool:
    return str(value or "").strip().lower() in _TRUTHY


def parse_drop_list(value: str | None) -> tuple[str, ...]:
    return tuple(part.strip() for part in _DROP_SEPARATORS.split(str(value or "")) if part.strip())


def _parse_int(value: Any, default: int) -> int:
    match = re.match(r"^\s*-?\d+", str(value or ""))
    return int(match.group(0)) if match else default


def _first(row: dict[str, str], *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return ""


def _parse_json_object(raw: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def chip_records_from_rows(rows: list[dict[str, str]]) -> list[ChipRecord]:
    records: list[ChipRecord] = []
    for row in rows:
        name = str(row.get("name") or "").strip()
        if not name:
            continue
        raw_effect = _first(row, "effect", "effect_json", "json_effect") or "{}"
        effect = _parse_json_object(raw_effect)
        if effect is None:
            logger.warning("Chip effect is not a JSON object; treating as empty", extra={"chip": name})
            effect = {}
        records.append(
            ChipRecord(
                name=name,
                effect=EffectDescriptor.from_mapping(effect, fallback_name=name),
                is_upgrade=parse_bool(_first(row, "upgrade", "is_upgrade")),
                image_url=str(row.get("image_url") or "").strip() or None,
            )
        )
    return records


def _moves_from_row(row: dict[str, str]) -> list[EffectDescriptor]:
    """Move columns in slot order; the first non-empty header wins per slot."""
    raw_by_slot: dict[int, str] = {}
    for header, value in row.items():
        match = _MOVE_HEADER.match(header)
        if match and str(value or "").strip():
            raw_by_slot.setdefault(int(match.group(1)), str(value))
    moves: list[EffectDescriptor] = []
    for slot in sorted(raw_by_slot):
        payload = _parse_json_object(raw_by_slot[slot])
        if payload is not None:
            moves.append(EffectDescriptor.from_mapping(payload, fallback_name=f"Move{slot}"))
    return moves


def entity_templates_from_rows(rows: list[dict[str, str]]) -> list[EntityTemplate]:
    templates: list[EntityTemplate] = []
    for row in rows:
        name = str(row.get("name") or "").strip()
        if not name:
            continue
        moves = _moves_from_row(row)
        if len(moves) > MAX_MOVES_PER_ENTITY:
            logger.warning(
                "Entity lists too many moves; extras dropped",
                extra={"entity": name, "moves": len(moves), "kept": MAX_MOVES_PER_ENTITY},
            )
            moves = moves[:MAX_MOVES_PER_ENTITY]

        zone = _parse_int(_first(row, "zone", "area"), 0)
        templates.append(
            EntityTemplate(
                name=name,
                stats=CombatantStats(
                    max_hp=max(1, _parse_int(row.get("hp"), 1)),
                    dodge_pct=_parse_int(row.get("dodge"), 0),
                    crit_pct=_parse_int(row.get("crit"), 0),
                ),
                moves=tuple(moves),
                is_boss=parse_bool(row.get("boss")),
                reward_range=parse_range(_first(row, "zenny", "zenny_range")),
                drop_list=parse_drop_list(_first(row, "chip_drop", "chipdrop")),
                region=str(row.get("region") or "").strip() or None,
                zone=zone or None,
                stat_points=_parse_int(row.get("stat_points"), 1) or 1,
                image_url=str(row.get("image_url") or "").strip() or None,
            )
        )
    return templates
