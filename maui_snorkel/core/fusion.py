"""Fusion engine.

Resolves the day's sources into one conditions snapshot:

1. Fetch the buoy, tides, narrative report and advisories concurrently, along
   with the override set and the text classifier. Any of them may fail; the
   failure is recorded in dataQuality and the run continues.
2. Zone score: scraped score if present, else the zone's baseline default.
3. Independent locations: override score, else classifier score clamped to
   within one point of the zone score, else the zone score.
   Text: override text, else classifier text, else the baseline text.
4. Derived locations, once their zone's independent locations are final:
   round(mean(zone score, sibling scores), 1), unless overridden.
5. Publish the whole snapshot in one write.
"""

import concurrent.futures
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from maui_snorkel.clients.buoy_client import BuoyClient, BuoyReading
from maui_snorkel.clients.maui_now_client import AdvisoryReport, MauiNowClient
from maui_snorkel.clients.noaa_tides_client import NOAATidesClient, TideReport
from maui_snorkel.clients.snorkel_store_client import NarrativeReport, SnorkelStoreClient
from maui_snorkel.clients.classifier_errors import ClassifierError
from maui_snorkel.clients.text_classifier import (
    ClassifierRequest,
    ConditionsClassifier,
    LocationSuggestion,
)
from maui_snorkel.core.baseline import derived_score
from maui_snorkel.core.model import (
    ConditionsSnapshot,
    LocationRecord,
    ManualOverride,
    ScoreSource,
    SourceStatus,
    ZoneScore,
    clamp_to_zone,
    is_valid_score,
    round_score,
    utc_now,
)
from maui_snorkel.core.sources import (
    ADVISORY_SOURCE,
    BUOY_SOURCE,
    NARRATIVE_SOURCE,
    TIDES_SOURCE,
    SourceAdapter,
    SourceFailure,
    SourceResult,
    advisory_adapter,
    buoy_adapter,
    narrative_adapter,
    tides_adapter,
)
from maui_snorkel.core.spots import SpotDatabase, SpotDefinition, ZoneDefinition, get_spot_database
from maui_snorkel.storage.overrides import OverrideStore
from maui_snorkel.storage.snapshots import SnapshotStore


logger = logging.getLogger(__name__)

CLASSIFIER_SOURCE = "classifier"
OVERRIDES_SOURCE = "overrides"

UNAVAILABLE = "unavailable"


@dataclass
class FusionInputs:
    """Everything a fusion run resolves, as gathered from its sources."""
    sources: dict[str, SourceResult] = field(default_factory=dict)
    overrides: dict[str, ManualOverride] = field(default_factory=dict)
    overrides_status: SourceStatus = SourceStatus.FRESH
    suggestions: dict[str, LocationSuggestion] = field(default_factory=dict)
    classifier_status: SourceStatus = SourceStatus.FRESH
    classifier_error: Optional[str] = None

    def value(self, source: str) -> Any:
        """Parsed result of a source, or None if it failed or was not fetched."""
        result = self.sources.get(source)
        return result.value if result is not None and result.ok else None

    @property
    def narrative(self) -> Optional[NarrativeReport]:
        return self.value(NARRATIVE_SOURCE)

    @property
    def advisory(self) -> Optional[AdvisoryReport]:
        return self.value(ADVISORY_SOURCE)

    @property
    def buoy(self) -> Optional[BuoyReading]:
        return self.value(BUOY_SOURCE)

    @property
    def tides(self) -> Optional[TideReport]:
        return self.value(TIDES_SOURCE)

    def data_quality(self) -> dict[str, SourceStatus]:
        quality = {name: result.status for name, result in self.sources.items()}
        quality[CLASSIFIER_SOURCE] = self.classifier_status
        quality[OVERRIDES_SOURCE] = self.overrides_status
        return quality

    def failures(self) -> list[SourceFailure]:
        failures = [r.failure for r in self.sources.values() if r.failure is not None]
        if self.classifier_status is not SourceStatus.FRESH:
            failures.append(SourceFailure(
                CLASSIFIER_SOURCE, self.classifier_error or "no response", self.classifier_status
            ))
        if self.overrides_status is not SourceStatus.FRESH:
            failures.append(SourceFailure(OVERRIDES_SOURCE, "override store unreadable", self.overrides_status))
        return failures


@dataclass
class FusionReport:
    """Outcome of a published fusion run."""
    snapshot: ConditionsSnapshot
    etag: str
    failures: list[SourceFailure] = field(default_factory=list)
    classifier_locations: int = 0
    duration_s: float = 0.0

    @property
    def data_quality(self) -> dict[str, SourceStatus]:
        return self.snapshot.data_quality

    @property
    def location_count(self) -> int:
        return sum(1 for _ in self.snapshot.iter_locations())

    @property
    def override_count(self) -> int:
        return sum(1 for loc in self.snapshot.iter_locations() if loc.has_manual_override)

    def summary_lines(self) -> list[str]:
        lines = [
            f"Generated at: {self.snapshot.generated_at.isoformat()}",
            f"Duration: {self.duration_s:.1f}s",
            f"Locations: {self.location_count} "
            f"({self.classifier_locations} classifier, {self.override_count} overridden)",
            "Data quality:",
        ]
        for name, status in self.data_quality.items():
            lines.append(f"  {name}: {status.value}")
        for failure in self.failures:
            lines.append(f"  ! {failure.source}: {failure.reason}")
        lines.append("Zones:")
        for zone in self.snapshot.zones.values():
            source = "report" if zone.score_from_report else "default"
            lines.append(f"  {zone.name}: {zone.score}/10 ({source})")
        lines.append(f"Etag: {self.etag[:12]}")
        return lines


def wave_phrase(wave_height_m: Optional[float]) -> str:
    """Coarse description of the buoy wave height."""
    if wave_height_m is None:
        return "Variable"
    if wave_height_m < 1.2:
        return "Light"
    if wave_height_m < 2.0:
        return "Moderate"
    if wave_height_m < 2.5:
        return "Elevated"
    return "Rough"


def zone_details(buoy: Optional[BuoyReading], advisory: Optional[AdvisoryReport]) -> str:
    """One-line conditions description shared by every zone."""
    temp_f = buoy.water_temp_f if buoy is not None else None
    water = f"Water is {temp_f}°F." if temp_f is not None else "Water temperature unavailable."
    waves = wave_phrase(buoy.wave_height_m if buoy is not None else None)
    wind = advisory.wind_conditions if advisory is not None and advisory.wind_conditions else "light"
    return f"{water} {waves} conditions. {wind[0].upper()}{wind[1:]} winds."


def marine_summary(
    buoy: Optional[BuoyReading],
    tides: Optional[TideReport],
    advisory: Optional[AdvisoryReport],
) -> dict:
    """Buoy, tide and advisory readings rendered for display."""
    summary = {
        "waveHeight": None,
        "waveHeightFt": UNAVAILABLE,
        "waveDirection": UNAVAILABLE,
        "waterTemp": UNAVAILABLE,
        "currentTide": None,
        "nextHighTide": None,
        "nextLowTide": None,
        "windConditions": None,
        "surf": None,
    }

    if buoy is not None:
        summary["waveHeight"] = buoy.wave_height_m
        if buoy.wave_height_ft is not None:
            summary["waveHeightFt"] = f"{buoy.wave_height_ft} ft"
        summary["waveDirection"] = buoy.wave_direction_compass or UNAVAILABLE
        if buoy.water_temp_f is not None:
            summary["waterTemp"] = f"{buoy.water_temp_f}°F"

    if tides is not None:
        summary["currentTide"] = tides.current.to_display() if tides.current else None
        summary["nextHighTide"] = tides.next_high.to_display() if tides.next_high else None
        summary["nextLowTide"] = tides.next_low.to_display() if tides.next_low else None

    if advisory is not None:
        summary["windConditions"] = advisory.wind_conditions
        summary["surf"] = dict(advisory.surf)

    return summary


def merge_alerts(narrative: Optional[NarrativeReport], advisory: Optional[AdvisoryReport]) -> list[dict]:
    """Narrative alerts then advisories, de-duplicated by message."""
    alerts = []
    seen = set()
    for source in (narrative, advisory):
        if source is None:
            continue
        entries = source.alerts if isinstance(source, NarrativeReport) else source.advisories
        for alert in entries:
            key = alert.get("message", "").strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            alerts.append({"type": alert.get("type", "advisory"), "message": alert["message"]})
    return alerts


def resolve_zone_score(zone_def: ZoneDefinition, narrative: Optional[NarrativeReport]) -> tuple[float, bool]:
    """Scraped zone score if usable, else the baseline default.

    Returns:
        (score, whether it came from the report)
    """
    if narrative is not None:
        scraped = narrative.zone_score(zone_def.id)
        if scraped is not None and is_valid_score(scraped):
            return round_score(scraped), True
    return zone_def.default_score, False


def resolve_location(
    spot: SpotDefinition,
    zone_score: float,
    override: Optional[ManualOverride] = None,
    suggestion: Optional[LocationSuggestion] = None,
) -> LocationRecord:
    """Resolve an independently scored location."""
    record = LocationRecord(
        id=spot.id,
        zone_id=spot.zone_id,
        name=spot.name,
        base_conditions_text=spot.conditions,
        final_score=zone_score,
        final_text=spot.conditions,
    )
    if suggestion is not None:
        record.classifier_score = suggestion.score
        record.classifier_text = suggestion.text
    if override is not None:
        record.override_score = override.score
        record.override_text = override.text

    if record.override_score is not None:
        record.final_score = round_score(record.override_score)
        record.score_source = ScoreSource.OVERRIDE
    elif record.classifier_score is not None:
        record.final_score = clamp_to_zone(record.classifier_score, zone_score)
        record.score_source = ScoreSource.CLASSIFIER
    else:
        record.score_source = ScoreSource.ZONE

    record.final_text = record.override_text or record.classifier_text or spot.conditions
    return record


def resolve_derived_location(
    spot: SpotDefinition,
    zone_score: float,
    sibling_scores: list[float],
    override: Optional[ManualOverride] = None,
) -> LocationRecord:
    """Resolve a derived location from its finalized siblings. No classifier input."""
    record = LocationRecord(
        id=spot.id,
        zone_id=spot.zone_id,
        name=spot.name,
        base_conditions_text=spot.conditions,
        final_score=derived_score(zone_score, sibling_scores),
        final_text=spot.conditions,
        is_derived=True,
        score_source=ScoreSource.DERIVED,
    )
    if override is not None:
        record.override_score = override.score
        record.override_text = override.text
        if override.score is not None:
            record.final_score = round_score(override.score)
            record.score_source = ScoreSource.OVERRIDE
        record.final_text = override.text or spot.conditions
    return record


class FusionEngine:
    """Builds and publishes the daily conditions snapshot."""

    def __init__(
        self,
        spot_db: Optional[SpotDatabase] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        override_store: Optional[OverrideStore] = None,
        buoy_client: Optional[BuoyClient] = None,
        tides_client: Optional[NOAATidesClient] = None,
        narrative_client: Optional[SnorkelStoreClient] = None,
        advisory_client: Optional[MauiNowClient] = None,
        classifier: Optional[ConditionsClassifier] = None,
    ):
        """Initialize the engine with optional dependency injection.

        Args:
            spot_db: Static baseline. Defaults to loading config/spots.yaml.
            snapshot_store: Where the snapshot is published.
            override_store: Manual overrides. Defaults to the snapshot store's blob store.
            buoy_client: NDBC buoy client.
            tides_client: NOAA tides client.
            narrative_client: Daily conditions report scraper.
            advisory_client: Regional advisory scraper.
            classifier: Text classifier for per-location suggestions.
        """
        self.spot_db = spot_db or get_spot_database()
        timeouts = self.spot_db.timeouts
        settings = self.spot_db.sources

        self.snapshot_store = snapshot_store or SnapshotStore()
        self.override_store = override_store or OverrideStore(self.snapshot_store.blob_store, self.spot_db)

        self.buoy = buoy_client or BuoyClient(timeout=timeouts.http_seconds)
        self.tides = tides_client or NOAATidesClient(timeout=timeouts.http_seconds)
        self.narrative = narrative_client or SnorkelStoreClient(
            url=settings.narrative_url, timeout=timeouts.http_seconds
        )
        self.advisory = advisory_client or MauiNowClient(
            url=settings.advisory_url, timeout=timeouts.http_seconds
        )
        self.classifier = classifier or ConditionsClassifier(timeout=timeouts.classifier_seconds)

        self.adapters: list[SourceAdapter] = [
            narrative_adapter(self.narrative),
            advisory_adapter(self.advisory),
            buoy_adapter(self.buoy, settings.buoy_station),
            tides_adapter(self.tides, settings.tide_station),
        ]

    def gather(self) -> FusionInputs:
        """Fetch every source, the overrides and the classifier concurrently.

        Each task is joined on its own completion or the run's join timeout.
        A task still running at the deadline counts as failed.
        """
        join_timeout = self.spot_db.timeouts.fusion_join_seconds
        deadline = time.monotonic() + join_timeout

        executor = ThreadPoolExecutor(
            max_workers=len(self.adapters) + 2, thread_name_prefix="fusion"
        )
        try:
            source_futures = {executor.submit(adapter.fetch): adapter for adapter in self.adapters}
            overrides_future = executor.submit(self.override_store.load)
            classifier_future = executor.submit(self._classify_when_ready, source_futures, deadline)

            concurrent.futures.wait(
                [*source_futures, overrides_future, classifier_future],
                timeout=max(0.0, deadline - time.monotonic()),
            )

            inputs = FusionInputs()
            for future, adapter in source_futures.items():
                if future.done():
                    result = future.result()
                else:
                    logger.warning(f"{adapter.name} timed out after {join_timeout:.0f}s")
                    result = adapter.failure(f"timed out after {join_timeout:.0f}s")
                inputs.sources[adapter.name] = result

            if overrides_future.done():
                inputs.overrides, inputs.overrides_status = overrides_future.result()
            else:
                logger.warning("Override store timed out, continuing without overrides")
                inputs.overrides_status = SourceStatus.UNAVAILABLE

            if not classifier_future.done():
                inputs.classifier_status = SourceStatus.UNAVAILABLE
                inputs.classifier_error = f"timed out after {join_timeout:.0f}s"
            else:
                try:
                    inputs.suggestions = classifier_future.result()
                except ClassifierError as e:
                    inputs.classifier_status = SourceStatus.UNAVAILABLE
                    inputs.classifier_error = str(e)
                except Exception as e:
                    logger.exception("Unexpected error from text classifier")
                    inputs.classifier_status = SourceStatus.UNAVAILABLE
                    inputs.classifier_error = f"unexpected error: {e!r}"
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for name, status in inputs.data_quality().items():
            if status is SourceStatus.FRESH:
                logger.info(f"{name}: {status.value}")
        for failure in inputs.failures():
            logger.warning(f"{failure.source}: {failure.status.value} ({failure.reason})")

        return inputs

    def _classify_when_ready(
        self,
        source_futures: dict[Future, SourceAdapter],
        deadline: float,
    ) -> dict[str, LocationSuggestion]:
        """Wait for the sources to finish (not succeed), then call the classifier."""
        concurrent.futures.wait(source_futures, timeout=max(0.0, deadline - time.monotonic()))
        inputs = FusionInputs(sources={
            adapter.name: future.result()
            for future, adapter in source_futures.items()
            if future.done()
        })
        return self.classifier.classify(self.build_classifier_request(inputs))

    def build_classifier_request(self, inputs: FusionInputs) -> ClassifierRequest:
        narrative = inputs.narrative
        return ClassifierRequest(
            zone_scores={
                zone_def.id: resolve_zone_score(zone_def, narrative)[0]
                for zone_def in self.spot_db.get_zones()
            },
            narrative_text=narrative.full_narrative if narrative is not None else "",
            environmental_context=marine_summary(inputs.buoy, inputs.tides, inputs.advisory),
            locations=[
                spot for zone_def in self.spot_db.get_zones() for spot in zone_def.independent_spots
            ],
            zone_names={zone_def.id: zone_def.name for zone_def in self.spot_db.get_zones()},
        )

    def resolve(self, inputs: FusionInputs, generated_at: Optional[datetime] = None) -> ConditionsSnapshot:
        """Resolve gathered inputs into a new snapshot. Pure: no I/O."""
        generated_at = generated_at or utc_now()
        narrative = inputs.narrative
        details = zone_details(inputs.buoy, inputs.advisory)

        zones = {}
        for zone_def in self.spot_db.get_zones():
            score, from_report = resolve_zone_score(zone_def, narrative)
            zone = ZoneScore(
                id=zone_def.id,
                name=zone_def.name,
                score=score,
                narrative=(narrative.zone_narrative(zone_def.id) if narrative else None) or "",
                summary=zone_def.summary,
                details=details,
                score_from_report=from_report,
            )

            # Independent locations first; derived ones read their final scores
            resolved: dict[str, LocationRecord] = {}
            for spot in zone_def.independent_spots:
                resolved[spot.id] = resolve_location(
                    spot, score, inputs.overrides.get(spot.id), inputs.suggestions.get(spot.id)
                )
            for spot in zone_def.derived_spots:
                siblings = [resolved[sibling_id].final_score for sibling_id in spot.derived_from]
                resolved[spot.id] = resolve_derived_location(
                    spot, score, siblings, inputs.overrides.get(spot.id)
                )
                logger.info(
                    f"{spot.id} derived score: {resolved[spot.id].final_score} "
                    f"(zone {score}, siblings {siblings})"
                )

            zone.locations = {spot.id: resolved[spot.id] for spot in zone_def.spots}
            zones[zone_def.id] = zone

        return ConditionsSnapshot(
            generated_at=generated_at,
            last_updated=generated_at,
            data_quality=inputs.data_quality(),
            marine_summary=marine_summary(inputs.buoy, inputs.tides, inputs.advisory),
            alerts=merge_alerts(narrative, inputs.advisory),
            zones=zones,
        )

    def run(self) -> FusionReport:
        """Gather, resolve and publish one snapshot.

        Raises:
            SnapshotWriteError: If the snapshot could not be published.
        """
        start = time.monotonic()
        logger.info("Starting fusion run")

        inputs = self.gather()
        snapshot = self.resolve(inputs)
        etag = self.snapshot_store.publish(snapshot)

        report = FusionReport(
            snapshot=snapshot,
            etag=etag,
            failures=inputs.failures(),
            classifier_locations=sum(
                1 for loc in snapshot.iter_locations() if loc.score_source is ScoreSource.CLASSIFIER
            ),
            duration_s=time.monotonic() - start,
        )
        logger.info(f"Fusion run complete: {report.location_count} locations in {report.duration_s:.1f}s")
        return report
