"""Static baseline snapshot.

Built from spots.yaml alone: default zone scores and baseline location text.
Served by read_conditions() before the first fusion run has published.
"""

from datetime import datetime
from statistics import mean
from typing import Optional

from maui_snorkel.core.model import (
    ConditionsSnapshot,
    LocationRecord,
    ScoreSource,
    ZoneScore,
    round_score,
    utc_now,
)
from maui_snorkel.core.spots import SpotDatabase, SpotDefinition, ZoneDefinition


def derived_score(zone_score: float, sibling_scores: list[float]) -> float:
    """Score of a derived location: the rounded mean of its zone and siblings."""
    return round_score(mean([zone_score, *sibling_scores]))


def baseline_location(spot: SpotDefinition, score: float) -> LocationRecord:
    return LocationRecord(
        id=spot.id,
        zone_id=spot.zone_id,
        name=spot.name,
        base_conditions_text=spot.conditions,
        final_score=score,
        final_text=spot.conditions,
        is_derived=spot.is_derived,
        score_source=ScoreSource.DERIVED if spot.is_derived else ScoreSource.ZONE,
    )


def baseline_zone(zone_def: ZoneDefinition) -> ZoneScore:
    zone = ZoneScore(
        id=zone_def.id,
        name=zone_def.name,
        score=zone_def.default_score,
        summary=zone_def.summary,
    )
    for spot in zone_def.spots:
        if spot.is_derived:
            score = derived_score(zone.score, [zone.score] * len(spot.derived_from))
        else:
            score = zone.score
        zone.locations[spot.id] = baseline_location(spot, score)
    return zone


def build_baseline_snapshot(
    spot_db: SpotDatabase,
    generated_at: Optional[datetime] = None,
) -> ConditionsSnapshot:
    generated_at = generated_at or utc_now()
    return ConditionsSnapshot(
        generated_at=generated_at,
        last_updated=generated_at,
        zones={zone_def.id: baseline_zone(zone_def) for zone_def in spot_db.get_zones()},
    )
