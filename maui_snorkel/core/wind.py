"""Wind-adjustment engine.

A later pass over the published snapshot. Every configured webcam frame is
fetched and labelled CALM / LIGHT / MODERATE / HEAVY; each zone takes the
worst label among the cameras that produced one, and the matching penalty
is subtracted from the zone score and every location score in that zone.

Cameras that fail to fetch or classify are left out. A zone where every
camera failed is not penalized and reports zero cameras analyzed.

Each pass subtracts from the score in the snapshot it reads, so the morning
and afternoon checks stack. The pre-wind score of the first pass is kept on
every zone and location; engines built with stack_penalties=False re-derive
from it instead, so a repeat pass never compounds.
"""

import concurrent.futures
import copy
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from maui_snorkel.clients.image_classifier import ChopClassifier
from maui_snorkel.clients.classifier_errors import ClassifierError
from maui_snorkel.clients.webcam_client import WebcamClient, WebcamError
from maui_snorkel.core.model import (
    ConditionsSnapshot,
    Severity,
    WindCheck,
    ZoneWindAdjustment,
    round_score,
    utc_now,
    worst_severity,
)
from maui_snorkel.core.spots import CameraDefinition, SpotDatabase, get_spot_database
from maui_snorkel.storage.snapshots import SnapshotNotFoundError, SnapshotStore


logger = logging.getLogger(__name__)


class CameraState(Enum):
    """Per-camera progress through one wind check."""
    PENDING = "pending"
    FETCHED = "fetched"
    CLASSIFIED = "classified"
    FAILED = "failed"


_TRANSITIONS = {
    CameraState.PENDING: {CameraState.FETCHED, CameraState.FAILED},
    CameraState.FETCHED: {CameraState.CLASSIFIED, CameraState.FAILED},
    CameraState.CLASSIFIED: set(),
    CameraState.FAILED: set(),
}


@dataclass
class CameraResult:
    """One camera's outcome."""
    camera: CameraDefinition
    state: CameraState = CameraState.PENDING
    severity: Optional[Severity] = None
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.state in (CameraState.CLASSIFIED, CameraState.FAILED)

    def advance(self, state: CameraState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Camera {self.camera.id}: cannot go from {self.state.value} to {state.value}")
        logger.debug(f"Camera {self.camera.id}: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, reason: str) -> None:
        self.advance(CameraState.FAILED)
        self.error = reason

    def to_dict(self) -> dict:
        return {
            "id": self.camera.id,
            "name": self.camera.name,
            "zone": self.camera.zone_id,
            "state": self.state.value,
            "condition": self.severity.value if self.severity else None,
            "error": self.error,
        }


@dataclass
class WindCheckReport:
    """Outcome of a published wind check."""
    snapshot: ConditionsSnapshot
    etag: str
    adjustments: dict[str, ZoneWindAdjustment] = field(default_factory=dict)
    cameras: list[CameraResult] = field(default_factory=list)
    duration_s: float = 0.0

    @property
    def cameras_analyzed(self) -> int:
        return sum(1 for c in self.cameras if c.state is CameraState.CLASSIFIED)

    @property
    def has_adjustments(self) -> bool:
        return any(adj.penalty > 0 for adj in self.adjustments.values())

    def summary_lines(self) -> list[str]:
        lines = [
            f"Applied at: {self.snapshot.wind_check.applied_at.isoformat()}",
            f"Duration: {self.duration_s:.1f}s",
            f"Cameras analyzed: {self.cameras_analyzed}/{len(self.cameras)}",
        ]
        for camera in self.cameras:
            label = camera.severity.value if camera.severity else f"FAILED ({camera.error})"
            lines.append(f"  {camera.camera.name} [{camera.camera.zone_id}]: {label}")
        lines.append("Zones:")
        for zone_id, adj in self.adjustments.items():
            condition = adj.condition.value if adj.condition else "no evidence"
            lines.append(
                f"  {zone_id}: {adj.original_score} -> {adj.adjusted_score} "
                f"({condition}, -{adj.penalty}, {adj.cameras_analyzed} cameras)"
            )
        lines.append(f"Adjustments applied: {'YES' if self.has_adjustments else 'NO'}")
        lines.append(f"Etag: {self.etag[:12]}")
        return lines


def penalized(
    current: float,
    pre_wind: Optional[float],
    penalty: float,
    stack: bool = True,
) -> tuple[float, float]:
    """Subtract a wind penalty from a score, floored at zero.

    Args:
        current: Score in the snapshot being adjusted.
        pre_wind: Pre-wind score recorded by an earlier pass, if any.
        penalty: Points to subtract.
        stack: If True, each pass subtracts from the current score. If False,
            the penalty is taken from the earliest pre-wind score and the
            result never exceeds the current score.

    Returns:
        (new score, pre-wind score to record)
    """
    base = pre_wind if pre_wind is not None else current
    if stack:
        return round_score(max(0.0, current - penalty)), base
    return round_score(min(current, max(0.0, base - penalty))), base


def aggregate_zone(results: list[CameraResult], spot_db: SpotDatabase) -> ZoneWindAdjustment:
    """Combine one zone's terminal camera results into its condition and penalty."""
    if not all(r.terminal for r in results):
        raise ValueError("Zone aggregation needs every camera in a terminal state")
    labels = [r.severity for r in results if r.state is CameraState.CLASSIFIED]
    condition = worst_severity(labels)
    return ZoneWindAdjustment(
        condition=condition,
        penalty=spot_db.penalty_for(condition),
        cameras_analyzed=len(labels),
    )


def apply_adjustments(
    snapshot: ConditionsSnapshot,
    adjustments: dict[str, ZoneWindAdjustment],
    cameras: list[CameraResult],
    applied_at: Optional[datetime] = None,
    stack: bool = True,
) -> ConditionsSnapshot:
    """Return a copy of the snapshot with the penalties applied and windCheck stamped."""
    applied_at = applied_at or utc_now()
    updated = copy.deepcopy(snapshot)
    per_zone = {}

    for zone_id, adjustment in adjustments.items():
        zone = updated.zones.get(zone_id)
        if zone is None:
            logger.warning(f"Wind check for unknown zone {zone_id}, skipping")
            continue

        adj = copy.copy(adjustment)
        adj.original_score = zone.score

        if adj.penalty > 0:
            zone.score, zone.pre_wind_score = penalized(
                zone.score, zone.pre_wind_score, adj.penalty, stack=stack
            )
            zone.wind_adjusted = True
            zone.wind_condition = adj.condition
            for location in zone.locations.values():
                location.final_score, location.pre_wind_score = penalized(
                    location.final_score, location.pre_wind_score, adj.penalty, stack=stack
                )
                location.wind_adjusted = True
            logger.info(
                f"Zone {zone_id}: {adj.original_score} -> {zone.score} "
                f"({adj.condition.value}, -{adj.penalty})"
            )
        elif adj.condition is None:
            logger.warning(f"Zone {zone_id}: no camera evidence, left unchanged")
        else:
            logger.info(f"Zone {zone_id}: {zone.score} (no change - {adj.condition.value})")

        adj.adjusted_score = zone.score
        per_zone[zone_id] = adj

    updated.wind_check = WindCheck(
        applied_at=applied_at,
        per_zone_penalty=per_zone,
        cameras=[c.to_dict() for c in cameras],
    )
    updated.last_updated = applied_at
    return updated


class WindAdjustmentEngine:
    """Applies the webcam-driven wind penalty to the latest snapshot."""

    def __init__(
        self,
        spot_db: Optional[SpotDatabase] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        webcam_client: Optional[WebcamClient] = None,
        classifier: Optional[ChopClassifier] = None,
        max_workers: int = 4,
        stack_penalties: bool = True,
    ):
        """Initialize the engine with optional dependency injection.

        Args:
            spot_db: Camera list and penalty table. Defaults to config/spots.yaml.
            snapshot_store: Where the snapshot is read from and written back to.
            webcam_client: Frame fetcher.
            classifier: Image classifier.
            max_workers: Concurrent camera fetch+classify pairs.
            stack_penalties: Subtract from the current score on every pass.
                When False, a repeat pass on the same snapshot re-derives the
                score from the first pass's pre-wind value instead.
        """
        self.spot_db = spot_db or get_spot_database()
        timeouts = self.spot_db.timeouts
        self.snapshot_store = snapshot_store or SnapshotStore()
        self.webcams = webcam_client or WebcamClient(timeout=timeouts.webcam_seconds)
        self.classifier = classifier or ChopClassifier(timeout=timeouts.classifier_seconds)
        self.max_workers = max_workers
        self.stack_penalties = stack_penalties

    def observe_camera(self, camera: CameraDefinition) -> CameraResult:
        """Fetch and classify one camera. Never raises; a failure only excludes this camera."""
        result = CameraResult(camera=camera)
        try:
            frame = self.webcams.fetch_frame(camera.id, camera.snapshot_url)
        except WebcamError as e:
            logger.warning(f"Camera {camera.id} unreachable: {e}")
            result.fail(str(e))
            return result
        except Exception as e:
            logger.exception(f"Unexpected error fetching camera {camera.id}")
            result.fail(f"unexpected error: {e!r}")
            return result
        result.advance(CameraState.FETCHED)

        try:
            result.severity = self.classifier.classify(frame)
        except ClassifierError as e:
            logger.warning(f"Camera {camera.id} not classified: {e}")
            result.fail(str(e))
            return result
        except Exception as e:
            logger.exception(f"Unexpected error classifying camera {camera.id}")
            result.fail(f"unexpected error: {e!r}")
            return result
        result.advance(CameraState.CLASSIFIED)

        logger.info(f"{camera.name}: {result.severity.value}")
        return result

    def observe(self) -> tuple[list[CameraResult], dict[str, ZoneWindAdjustment]]:
        """Observe every camera concurrently and aggregate per zone.

        Each zone is aggregated once all of its cameras are terminal. A camera
        still running at the join deadline is counted as failed.
        """
        cameras = self.spot_db.get_cameras()
        join_timeout = self.spot_db.timeouts.wind_join_seconds
        deadline = time.monotonic() + join_timeout

        results: dict[str, CameraResult] = {}
        adjustments: dict[str, ZoneWindAdjustment] = {}

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="wind")
        try:
            futures: dict[Future, CameraDefinition] = {
                executor.submit(self.observe_camera, camera): camera for camera in cameras
            }

            for zone_def in self.spot_db.get_zones():
                zone_futures = {f: c for f, c in futures.items() if c.zone_id == zone_def.id}
                if not zone_futures:
                    continue

                concurrent.futures.wait(zone_futures, timeout=max(0.0, deadline - time.monotonic()))

                zone_results = []
                for future, camera in zone_futures.items():
                    if future.done():
                        result = future.result()
                    else:
                        result = CameraResult(camera=camera)
                        result.fail(f"timed out after {join_timeout:.0f}s")
                        logger.warning(f"Camera {camera.id} timed out")
                    results[camera.id] = result
                    zone_results.append(result)

                adjustments[zone_def.id] = aggregate_zone(zone_results, self.spot_db)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return [results[camera.id] for camera in cameras], adjustments

    def run(self) -> WindCheckReport:
        """Observe, apply to the latest snapshot and write it back.

        Raises:
            SnapshotNotFoundError: If no snapshot has been published.
            SnapshotConflictError: If a fusion run replaced the snapshot meanwhile.
            SnapshotWriteError: If the write fails.
        """
        start = time.monotonic()
        logger.info("Starting wind check")

        if not self.snapshot_store.exists():
            raise SnapshotNotFoundError("No snapshot to adjust; run the daily update first")

        cameras, adjustments = self.observe()

        snapshot, etag = self.snapshot_store.load()
        updated = apply_adjustments(snapshot, adjustments, cameras, stack=self.stack_penalties)
        new_etag = self.snapshot_store.publish(updated, if_match=etag)

        report = WindCheckReport(
            snapshot=updated,
            etag=new_etag,
            adjustments=updated.wind_check.per_zone_penalty,
            cameras=cameras,
            duration_s=time.monotonic() - start,
        )
        logger.info(
            f"Wind check complete: {report.cameras_analyzed}/{len(cameras)} cameras analyzed"
        )
        return report
