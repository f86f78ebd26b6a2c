"""Conditions snapshot data model.

The snapshot is the single published artifact read by the map display:

    generatedAt / lastUpdated
    dataQuality   source name -> fresh | stale | unavailable
    marineSummary buoy and tide readings rendered for display
    alerts        [{type, message}]
    zones         zone id -> zone score fields + locations
    windCheck     optional overlay written by the wind-adjustment pass

Scores are always on a 0-10 scale rounded to one decimal. Serialization uses
the camelCase keys the display layer expects.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterator, Optional


SCORE_MIN = 0.0
SCORE_MAX = 10.0
CLASSIFIER_BAND = 1.0  # Classifier may move a location at most this far from its zone

SNAPSHOT_KEY = "conditions.json"
OVERRIDES_KEY = "manual-overrides.json"


class SnapshotValidationError(Exception):
    """Raised when a snapshot document is missing fields or has out-of-range scores."""

    pass


class SourceStatus(Enum):
    """Freshness of one input source for a single run."""
    FRESH = "fresh"
    STALE = "stale"
    UNAVAILABLE = "unavailable"


class ScoreSource(Enum):
    """Which precedence branch produced a location's final score."""
    OVERRIDE = "override"
    CLASSIFIER = "classifier"
    ZONE = "zone"
    DERIVED = "derived"


class Severity(Enum):
    """Chop severity seen on a webcam frame, calmest first."""
    CALM = "CALM"
    LIGHT = "LIGHT"
    MODERATE = "MODERATE"
    HEAVY = "HEAVY"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, label: str) -> "Severity":
        """Parse an exact severity label.

        Surrounding whitespace and case are ignored. Anything else, including
        sentences that merely contain a label, is rejected.

        Raises:
            ValueError: If the label is not one of the four severities.
        """
        if not isinstance(label, str):
            raise ValueError(f"Severity label must be a string, got {type(label).__name__}")
        return cls(label.strip().upper())


_SEVERITY_ORDER = [Severity.CALM, Severity.LIGHT, Severity.MODERATE, Severity.HEAVY]


def worst_severity(labels: list[Severity]) -> Optional[Severity]:
    """Return the highest severity in the list, or None when it is empty."""
    if not labels:
        return None
    return max(labels, key=lambda s: s.rank)


def is_valid_score(value: Any) -> bool:
    """Check that a value is a finite number on the 0-10 scale."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if not math.isfinite(value):
        return False
    return SCORE_MIN <= value <= SCORE_MAX


def round_score(value: float) -> float:
    """Round half-up to one decimal place."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_to_zone(classifier_score: float, zone_score: float) -> float:
    """Clamp a classifier score into the band around its zone score.

    The band is further limited to the 0-10 scale, then the result is rounded.
    """
    low = max(SCORE_MIN, zone_score - CLASSIFIER_BAND)
    high = min(SCORE_MAX, zone_score + CLASSIFIER_BAND)
    return round_score(clamp(classifier_score, low, high))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise SnapshotValidationError(f"Invalid timestamp: {value!r}") from e


@dataclass
class ManualOverride:
    """Hand-curated score and/or text for one location."""
    location_id: str
    score: Optional[float] = None
    text: Optional[str] = None
    note: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def has_score(self) -> bool:
        return self.score is not None

    @classmethod
    def from_dict(cls, location_id: str, data: dict) -> "ManualOverride":
        """Build an override from its stored form.

        Raises:
            ValueError: If the entry carries neither a usable score nor text.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Override for {location_id} is not an object")

        score = data.get("score")
        if score is not None and not is_valid_score(score):
            raise ValueError(f"Override score for {location_id} out of range: {score!r}")

        text = data.get("text")
        if text is not None and (not isinstance(text, str) or not text.strip()):
            text = None

        if score is None and text is None:
            raise ValueError(f"Override for {location_id} has neither score nor text")

        return cls(
            location_id=location_id,
            score=float(score) if score is not None else None,
            text=text.strip() if text else None,
            note=data.get("note"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> dict:
        data = {}
        if self.score is not None:
            data["score"] = self.score
        if self.text is not None:
            data["text"] = self.text
        if self.note:
            data["note"] = self.note
        data["updatedAt"] = self.updated_at
        return data


@dataclass
class LocationRecord:
    """One snorkel spot as resolved by a fusion run."""
    id: str
    zone_id: str
    name: str
    base_conditions_text: str
    final_score: float
    final_text: str
    is_derived: bool = False

    # Inputs kept for traceability
    classifier_score: Optional[float] = None
    classifier_text: Optional[str] = None
    override_score: Optional[float] = None
    override_text: Optional[str] = None
    score_source: ScoreSource = ScoreSource.ZONE

    # Wind overlay
    wind_adjusted: bool = False
    pre_wind_score: Optional[float] = None

    @property
    def has_manual_override(self) -> bool:
        return self.override_score is not None or self.override_text is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "zoneId": self.zone_id,
            "name": self.name,
            "baseConditionsText": self.base_conditions_text,
            "classifierScore": self.classifier_score,
            "classifierText": self.classifier_text,
            "overrideScore": self.override_score,
            "overrideText": self.override_text,
            "isDerived": self.is_derived,
            "finalScore": self.final_score,
            "finalText": self.final_text,
            "scoreSource": self.score_source.value,
            "hasManualOverride": self.has_manual_override,
            "windAdjusted": self.wind_adjusted,
            "preWindScore": self.pre_wind_score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocationRecord":
        try:
            return cls(
                id=data["id"],
                zone_id=data["zoneId"],
                name=data["name"],
                base_conditions_text=data.get("baseConditionsText", ""),
                final_score=data["finalScore"],
                final_text=data["finalText"],
                is_derived=bool(data.get("isDerived", False)),
                classifier_score=data.get("classifierScore"),
                classifier_text=data.get("classifierText"),
                override_score=data.get("overrideScore"),
                override_text=data.get("overrideText"),
                score_source=ScoreSource(data.get("scoreSource", "zone")),
                wind_adjusted=bool(data.get("windAdjusted", False)),
                pre_wind_score=data.get("preWindScore"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotValidationError(f"Malformed location record: {e}") from e


@dataclass
class ZoneScore:
    """A fixed region, its authoritative score and its locations."""
    id: str
    name: str
    score: float
    narrative: str = ""
    summary: str = ""
    details: str = ""
    score_from_report: bool = False
    locations: dict[str, LocationRecord] = field(default_factory=dict)

    # Wind overlay
    wind_adjusted: bool = False
    wind_condition: Optional[Severity] = None
    pre_wind_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "score": self.score,
            "narrative": self.narrative,
            "summary": self.summary,
            "details": self.details,
            "scoreFromReport": self.score_from_report,
            "windAdjusted": self.wind_adjusted,
            "windCondition": self.wind_condition.value if self.wind_condition else None,
            "preWindScore": self.pre_wind_score,
            "locations": {loc_id: loc.to_dict() for loc_id, loc in self.locations.items()},
        }

    @classmethod
    def from_dict(cls, zone_id: str, data: dict) -> "ZoneScore":
        try:
            locations = {
                loc_id: LocationRecord.from_dict(loc)
                for loc_id, loc in data["locations"].items()
            }
            condition = data.get("windCondition")
            return cls(
                id=data.get("id", zone_id),
                name=data.get("name", zone_id),
                score=data["score"],
                narrative=data.get("narrative", ""),
                summary=data.get("summary", ""),
                details=data.get("details", ""),
                score_from_report=bool(data.get("scoreFromReport", False)),
                locations=locations,
                wind_adjusted=bool(data.get("windAdjusted", False)),
                wind_condition=Severity(condition) if condition else None,
                pre_wind_score=data.get("preWindScore"),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SnapshotValidationError(f"Malformed zone {zone_id}: {e}") from e


@dataclass
class ZoneWindAdjustment:
    """Outcome of one wind-check pass for a single zone."""
    condition: Optional[Severity]
    penalty: float
    cameras_analyzed: int
    original_score: Optional[float] = None
    adjusted_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "condition": self.condition.value if self.condition else None,
            "penalty": self.penalty,
            "camerasAnalyzed": self.cameras_analyzed,
            "originalScore": self.original_score,
            "adjustedScore": self.adjusted_score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ZoneWindAdjustment":
        condition = data.get("condition")
        return cls(
            condition=Severity(condition) if condition else None,
            penalty=data.get("penalty", 0),
            cameras_analyzed=data.get("camerasAnalyzed", 0),
            original_score=data.get("originalScore"),
            adjusted_score=data.get("adjustedScore"),
        )


@dataclass
class WindCheck:
    """Metadata block stamped by the most recent wind-check pass."""
    applied_at: datetime
    per_zone_penalty: dict[str, ZoneWindAdjustment] = field(default_factory=dict)
    cameras: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "appliedAt": _format_time(self.applied_at),
            "perZonePenalty": {
                zone_id: adj.to_dict() for zone_id, adj in self.per_zone_penalty.items()
            },
            "cameras": list(self.cameras),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WindCheck":
        try:
            return cls(
                applied_at=_parse_time(data["appliedAt"]),
                per_zone_penalty={
                    zone_id: ZoneWindAdjustment.from_dict(adj)
                    for zone_id, adj in data.get("perZonePenalty", {}).items()
                },
                cameras=list(data.get("cameras", [])),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SnapshotValidationError(f"Malformed windCheck block: {e}") from e


@dataclass
class ConditionsSnapshot:
    """The full published conditions document."""
    generated_at: datetime
    data_quality: dict[str, SourceStatus] = field(default_factory=dict)
    marine_summary: dict = field(default_factory=dict)
    alerts: list[dict] = field(default_factory=list)
    zones: dict[str, ZoneScore] = field(default_factory=dict)
    wind_check: Optional[WindCheck] = None
    last_updated: Optional[datetime] = None

    def iter_locations(self) -> Iterator[LocationRecord]:
        for zone in self.zones.values():
            yield from zone.locations.values()

    def get_location(self, location_id: str) -> Optional[LocationRecord]:
        for location in self.iter_locations():
            if location.id == location_id:
                return location
        return None

    def to_dict(self) -> dict:
        return {
            "generatedAt": _format_time(self.generated_at),
            "lastUpdated": _format_time(self.last_updated or self.generated_at),
            "dataQuality": {name: status.value for name, status in self.data_quality.items()},
            "marineSummary": self.marine_summary,
            "alerts": list(self.alerts),
            "zones": {zone_id: zone.to_dict() for zone_id, zone in self.zones.items()},
            "windCheck": self.wind_check.to_dict() if self.wind_check else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConditionsSnapshot":
        """Rebuild a snapshot from a published document.

        Raises:
            SnapshotValidationError: If required fields are missing or malformed.
        """
        validate_snapshot_document(data)
        try:
            data_quality = {
                name: SourceStatus(value) for name, value in data["dataQuality"].items()
            }
        except ValueError as e:
            raise SnapshotValidationError(f"Unknown data quality status: {e}") from e

        wind_check = data.get("windCheck")
        return cls(
            generated_at=_parse_time(data["generatedAt"]),
            last_updated=_parse_time(data.get("lastUpdated")),
            data_quality=data_quality,
            marine_summary=data.get("marineSummary") or {},
            alerts=list(data.get("alerts") or []),
            zones={
                zone_id: ZoneScore.from_dict(zone_id, zone)
                for zone_id, zone in data["zones"].items()
            },
            wind_check=WindCheck.from_dict(wind_check) if wind_check else None,
        )


REQUIRED_SNAPSHOT_FIELDS = ["generatedAt", "dataQuality", "marineSummary", "alerts", "zones"]
REQUIRED_ZONE_FIELDS = ["id", "name", "score", "locations"]
REQUIRED_LOCATION_FIELDS = ["id", "zoneId", "name", "finalScore", "finalText", "isDerived", "windAdjusted"]
VALID_STATUSES = {status.value for status in SourceStatus}


def validate_snapshot_document(data: Any) -> None:
    """Check a serialized snapshot before it is published or after it is read.

    Raises:
        SnapshotValidationError: On the first problem found.
    """
    if not isinstance(data, dict):
        raise SnapshotValidationError("Snapshot must be a JSON object")

    missing = [key for key in REQUIRED_SNAPSHOT_FIELDS if key not in data]
    if missing:
        raise SnapshotValidationError(f"Snapshot missing fields: {', '.join(missing)}")

    if not isinstance(data["dataQuality"], dict):
        raise SnapshotValidationError("dataQuality must be an object")
    for name, status in data["dataQuality"].items():
        if status not in VALID_STATUSES:
            raise SnapshotValidationError(f"dataQuality[{name}] has invalid status {status!r}")

    zones = data["zones"]
    if not isinstance(zones, dict) or not zones:
        raise SnapshotValidationError("Snapshot has no zones")

    for zone_id, zone in zones.items():
        if not isinstance(zone, dict):
            raise SnapshotValidationError(f"Zone {zone_id} must be an object")
        missing = [key for key in REQUIRED_ZONE_FIELDS if key not in zone]
        if missing:
            raise SnapshotValidationError(f"Zone {zone_id} missing fields: {', '.join(missing)}")
        if not is_valid_score(zone["score"]):
            raise SnapshotValidationError(f"Zone {zone_id} score out of range: {zone['score']!r}")
        if not isinstance(zone["locations"], dict):
            raise SnapshotValidationError(f"Zone {zone_id} locations must be an object")

        for loc_id, loc in zone["locations"].items():
            if not isinstance(loc, dict):
                raise SnapshotValidationError(f"Location {loc_id} must be an object")
            missing = [key for key in REQUIRED_LOCATION_FIELDS if key not in loc]
            if missing:
                raise SnapshotValidationError(
                    f"Location {loc_id} missing fields: {', '.join(missing)}"
                )
            if not is_valid_score(loc["finalScore"]):
                raise SnapshotValidationError(
                    f"Location {loc_id} finalScore out of range: {loc['finalScore']!r}"
                )
            if not isinstance(loc["finalText"], str) or not loc["finalText"]:
                raise SnapshotValidationError(f"Location {loc_id} has no finalText")
