from __future__ import annotations

import random
from typing import Sequence

from netbattle.domain.models.combatant import EntityTemplate


def eligible_templates(
    templates: Sequence[EntityTemplate],
    *,
    region: str | None = None,
    zone: int | None = None,
) -> list[EntityTemplate]:
    wanted_region = str(region or "").strip().lower()
    rows = []
    for template in templates:
        if wanted_region and str(template.region or "").strip().lower() != wanted_region:
            continue
        if zone is not None and template.zone is not None and int(template.zone) != int(zone):
            continue
        rows.append(template)
    return rows


def pick_weighted_template(
    templates: Sequence[EntityTemplate],
    rng: random.Random,
    *,
    region: str | None = None,
    zone: int | None = None,
) -> EntityTemplate | None:
    """Weighted random pick; weaker viruses spawn more often than strong ones."""
    pool = eligible_templates(templates, region=region, zone=zone)
    if not pool:
        return None
    weights = [max(0.0, template.spawn_weight) for template in pool]
    if sum(weights) <= 0:
        return rng.choice(pool)
    return rng.choices(pool, weights=weights, k=1)[0]
