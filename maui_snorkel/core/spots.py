"""Spot baseline and database loader.

Loads zone, location and webcam definitions from spots.yaml. This is the
fixed baseline the fusion run falls back to: default zone scores, default
condition text per location, and the sibling list for derived locations.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from maui_snorkel.core.model import Severity, is_valid_score


DEFAULT_WIND_PENALTIES = {
    Severity.CALM: 0,
    Severity.LIGHT: 2,
    Severity.MODERATE: 3,
    Severity.HEAVY: 4,
}


class SpotConfigError(Exception):
    """Raised when spots.yaml is missing or inconsistent."""

    pass


@dataclass
class SpotDefinition:
    """Static definition of one snorkel location."""
    id: str
    name: str
    zone_id: str
    conditions: str  # Baseline description
    exposure: str = ""
    characteristics: str = ""
    derived_from: list[str] = field(default_factory=list)

    @property
    def is_derived(self) -> bool:
        return bool(self.derived_from)


@dataclass
class ZoneDefinition:
    """Static definition of a zone and its locations, in publish order."""
    id: str
    name: str
    default_score: float
    summary: str = ""
    spots: list[SpotDefinition] = field(default_factory=list)

    @property
    def independent_spots(self) -> list[SpotDefinition]:
        return [s for s in self.spots if not s.is_derived]

    @property
    def derived_spots(self) -> list[SpotDefinition]:
        return [s for s in self.spots if s.is_derived]


@dataclass
class CameraDefinition:
    """A public webcam watching the water in one zone."""
    id: str
    name: str
    zone_id: str
    snapshot_url: str


@dataclass
class SourceSettings:
    """Endpoints for the upstream data sources."""
    buoy_station: str = "51205"
    tide_station: str = "1615680"
    narrative_url: str = "https://thesnorkelstore.com/maui-snorkeling-conditions-reports/"
    advisory_url: str = "https://mauinow.com/weather/"


@dataclass
class Timeouts:
    """Bounded waits, in seconds."""
    http_seconds: float = 15
    classifier_seconds: float = 60
    webcam_seconds: float = 30
    fusion_join_seconds: float = 180
    wind_join_seconds: float = 240


class SpotDatabase:
    """Database of zones, spots and webcams loaded from YAML."""

    def __init__(self, spots_path: Optional[Path] = None):
        """Initialize the spot database.

        Args:
            spots_path: Path to spots.yaml. Defaults to config/spots.yaml.
        """
        if spots_path is None:
            possible_paths = [
                Path(__file__).parent.parent.parent / "config" / "spots.yaml",
                Path.cwd() / "config" / "spots.yaml",
            ]
            for path in possible_paths:
                if path.exists():
                    spots_path = path
                    break

        if spots_path is None or not Path(spots_path).exists():
            raise SpotConfigError("Could not find spots.yaml")

        self.spots_path = Path(spots_path)
        self._zones: dict[str, ZoneDefinition] = {}
        self._spots: dict[str, SpotDefinition] = {}
        self._cameras: list[CameraDefinition] = []
        self.wind_penalties: dict[Severity, float] = dict(DEFAULT_WIND_PENALTIES)
        self.sources = SourceSettings()
        self.timeouts = Timeouts()
        self._load()

    @classmethod
    def from_dict(cls, data: dict) -> "SpotDatabase":
        """Build a database from an already-parsed mapping (used by tests)."""
        db = cls.__new__(cls)
        db.spots_path = None
        db._zones = {}
        db._spots = {}
        db._cameras = []
        db.wind_penalties = dict(DEFAULT_WIND_PENALTIES)
        db.sources = SourceSettings()
        db.timeouts = Timeouts()
        db._parse(data)
        return db

    def _load(self) -> None:
        """Load spots from the YAML file."""
        with open(self.spots_path) as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise SpotConfigError(f"{self.spots_path} is not a mapping")

        self._parse(data)

    def _parse(self, data: dict) -> None:
        zones = data.get("zones") or {}
        if not zones:
            raise SpotConfigError("No zones defined")

        for zone_id, zone_data in zones.items():
            zone = self._parse_zone(zone_id, zone_data or {})
            self._zones[zone_id] = zone
            for spot in zone.spots:
                if spot.id in self._spots:
                    raise SpotConfigError(f"Duplicate location id: {spot.id}")
                self._spots[spot.id] = spot

        for zone in self._zones.values():
            self._check_derived(zone)

        for camera_data in data.get("cameras") or []:
            try:
                camera = CameraDefinition(
                    id=camera_data["id"],
                    name=camera_data.get("name", camera_data["id"]),
                    zone_id=camera_data["zone"],
                    snapshot_url=camera_data["snapshot_url"],
                )
            except KeyError as e:
                raise SpotConfigError(f"Camera entry missing {e}") from e
            if camera.zone_id not in self._zones:
                raise SpotConfigError(f"Camera {camera.id} watches unknown zone {camera.zone_id}")
            self._cameras.append(camera)

        for label, penalty in (data.get("wind_penalties") or {}).items():
            try:
                severity = Severity.parse(label)
            except ValueError as e:
                raise SpotConfigError(f"Unknown wind penalty label: {label}") from e
            if isinstance(penalty, bool) or not isinstance(penalty, (int, float)) or penalty < 0:
                raise SpotConfigError(f"Wind penalty for {label} must be a non-negative number")
            self.wind_penalties[severity] = penalty

        sources = data.get("sources") or {}
        self.sources = SourceSettings(
            buoy_station=str(sources.get("buoy_station", self.sources.buoy_station)),
            tide_station=str(sources.get("tide_station", self.sources.tide_station)),
            narrative_url=sources.get("narrative_url", self.sources.narrative_url),
            advisory_url=sources.get("advisory_url", self.sources.advisory_url),
        )

        timeouts = data.get("timeouts") or {}
        defaults = Timeouts()
        self.timeouts = Timeouts(
            http_seconds=float(timeouts.get("http_seconds", defaults.http_seconds)),
            classifier_seconds=float(timeouts.get("classifier_seconds", defaults.classifier_seconds)),
            webcam_seconds=float(timeouts.get("webcam_seconds", defaults.webcam_seconds)),
            fusion_join_seconds=float(timeouts.get("fusion_join_seconds", defaults.fusion_join_seconds)),
            wind_join_seconds=float(timeouts.get("wind_join_seconds", defaults.wind_join_seconds)),
        )

    def _parse_zone(self, zone_id: str, data: dict) -> ZoneDefinition:
        """Parse a zone dictionary into a ZoneDefinition."""
        score = data.get("score", 5.0)
        if not is_valid_score(score):
            raise SpotConfigError(f"Zone {zone_id} default score out of range: {score!r}")

        zone = ZoneDefinition(
            id=zone_id,
            name=data.get("name", zone_id),
            default_score=float(score),
            summary=data.get("summary", ""),
        )

        for spot_data in data.get("locations") or []:
            if "id" not in spot_data:
                raise SpotConfigError(f"Location without id in zone {zone_id}")
            zone.spots.append(SpotDefinition(
                id=spot_data["id"],
                name=spot_data.get("name", spot_data["id"]),
                zone_id=zone_id,
                conditions=spot_data.get("conditions") or "Check local conditions before entering the water.",
                exposure=spot_data.get("exposure", ""),
                characteristics=spot_data.get("characteristics", ""),
                derived_from=list(spot_data.get("derived_from") or []),
            ))

        return zone

    def _check_derived(self, zone: ZoneDefinition) -> None:
        """Derived spots may only depend on independent spots in their own zone."""
        independent = {s.id for s in zone.independent_spots}
        for spot in zone.derived_spots:
            for sibling_id in spot.derived_from:
                if sibling_id not in independent:
                    raise SpotConfigError(
                        f"Derived location {spot.id} depends on {sibling_id}, "
                        f"which is not an independent location in zone {zone.id}"
                    )

    def get_zone(self, zone_id: str) -> Optional[ZoneDefinition]:
        return self._zones.get(zone_id)

    def get_zones(self) -> list[ZoneDefinition]:
        """Get all zones in publish order."""
        return list(self._zones.values())

    def get_spot(self, spot_id: str) -> Optional[SpotDefinition]:
        return self._spots.get(spot_id)

    def get_all_spots(self) -> list[SpotDefinition]:
        return list(self._spots.values())

    @property
    def location_ids(self) -> set[str]:
        return set(self._spots)

    def get_cameras(self, zone_id: Optional[str] = None) -> list[CameraDefinition]:
        """Get configured webcams, optionally for a single zone."""
        if zone_id is None:
            return list(self._cameras)
        return [c for c in self._cameras if c.zone_id == zone_id]

    def penalty_for(self, severity: Optional[Severity]) -> float:
        """Score penalty for a severity. No evidence means no penalty."""
        if severity is None:
            return 0
        return self.wind_penalties.get(severity, 0)

    @property
    def spot_count(self) -> int:
        return len(self._spots)


_default_db: Optional[SpotDatabase] = None


def get_spot_database() -> SpotDatabase:
    """Get the default spot database (singleton)."""
    global _default_db
    if _default_db is None:
        _default_db = SpotDatabase()
    return _default_db
