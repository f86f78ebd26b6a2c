#!/usr/bin/env python3
"""Tests for the webcam wind-adjustment pass.

Run from project root:
    python scripts/test_wind_check.py
"""

import sys
import tempfile
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from maui_snorkel.clients.classifier_errors import ClassifierMalformed, ClassifierUnavailable
from maui_snorkel.core.baseline import build_baseline_snapshot
from maui_snorkel.core.model import Severity
from maui_snorkel.core.wind import (
    CameraResult,
    CameraState,
    WindAdjustmentEngine,
    aggregate_zone,
    penalized,
)
from maui_snorkel.storage.snapshots import SnapshotConflictError, SnapshotNotFoundError

from fakes import FakeChopClassifier, FakeWebcamClient, make_spot_db, make_stores


CALM_EVERYWHERE = {
    "napili": Severity.CALM,
    "kahekili": Severity.CALM,
    "uluabeach": Severity.CALM,
    "waileapoint": Severity.CALM,
}


def labels(**overrides) -> dict:
    result = dict(CALM_EVERYWHERE)
    result.update(overrides)
    return result


def publish_baseline(snapshot_store, spot_db):
    """Publish the baseline with Ulua at 8.0 so zone and location scores differ."""
    snapshot = build_baseline_snapshot(spot_db)
    snapshot.zones["southshore"].locations["uluabeach"].final_score = 8.0
    return snapshot_store.publish(snapshot)


def make_engine(tmpdir, camera_labels, failing=(), spot_db=None, publish=True):
    spot_db = spot_db or make_spot_db()
    snapshot_store, _ = make_stores(tmpdir, spot_db)
    if publish:
        publish_baseline(snapshot_store, spot_db)
    return WindAdjustmentEngine(
        spot_db=spot_db,
        snapshot_store=snapshot_store,
        webcam_client=FakeWebcamClient(failing=failing),
        classifier=FakeChopClassifier(camera_labels),
    )


class SlowChopClassifier(FakeChopClassifier):
    def __init__(self, labels: dict, slow: set, delay: float):
        super().__init__(labels)
        self.slow = slow
        self.delay = delay

    def classify(self, frame):
        if frame.camera_id in self.slow:
            time.sleep(self.delay)
        return super().classify(frame)


def test_moderate_penalty_applied():
    """MODERATE: zone 7 -> 4, location 8 -> 5, pre-wind scores recorded."""
    print("\n" + "="*60)
    print("TEST: Moderate Chop Penalty")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir, labels(uluabeach=Severity.MODERATE, waileapoint=Severity.LIGHT))
        report = engine.run()

        for line in report.summary_lines():
            print(f"  {line}")

        zone = report.snapshot.zones["southshore"]
        ulua = zone.locations["uluabeach"]
        wailea = zone.locations["waileapoint"]

        assert zone.score == 4.0
        assert zone.pre_wind_score == 7.0
        assert zone.wind_adjusted
        assert zone.wind_condition is Severity.MODERATE
        assert ulua.final_score == 5.0
        assert ulua.pre_wind_score == 8.0
        assert wailea.final_score == 4.0
        assert wailea.wind_adjusted

        adj = report.adjustments["southshore"]
        assert adj.penalty == 3
        assert adj.cameras_analyzed == 2
        assert adj.original_score == 7.0
        assert adj.adjusted_score == 4.0
        assert report.has_adjustments

        # Calm zones untouched
        northwest = report.snapshot.zones["northwest"]
        assert northwest.score == 5.0
        assert not northwest.wind_adjusted
        assert northwest.wind_condition is None
        assert report.adjustments["northwest"].condition is Severity.CALM

        document, etag = engine.snapshot_store.read_document()
        assert etag == report.etag
        assert document["windCheck"]["perZonePenalty"]["southshore"]["penalty"] == 3
        assert document["windCheck"]["perZonePenalty"]["southshore"]["condition"] == "MODERATE"
        assert len(document["windCheck"]["cameras"]) == 4
        assert document["lastUpdated"] == document["windCheck"]["appliedAt"]
        assert document["zones"]["southshore"]["locations"]["uluabeach"]["preWindScore"] == 8.0


def test_all_cameras_failed_leaves_zone_unchanged():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir, labels(), failing=("uluabeach", "waileapoint"))
        report = engine.run()

        zone = report.snapshot.zones["southshore"]
        adj = report.adjustments["southshore"]
        assert adj.cameras_analyzed == 0
        assert adj.condition is None
        assert adj.penalty == 0
        assert zone.score == 7.0
        assert not zone.wind_adjusted
        assert zone.locations["uluabeach"].final_score == 8.0
        assert report.cameras_analyzed == 2

        states = {c.camera.id: c.state for c in report.cameras}
        assert states["uluabeach"] is CameraState.FAILED
        assert states["napili"] is CameraState.CLASSIFIED


def test_partial_failures_use_remaining_cameras():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(
            tmpdir,
            labels(
                waileapoint=Severity.HEAVY,
                kahekili=ClassifierMalformed("Unexpected severity label: 'Choppy'"),
            ),
            failing=("uluabeach",),
        )
        report = engine.run()

        south = report.adjustments["southshore"]
        assert south.cameras_analyzed == 1
        assert south.condition is Severity.HEAVY
        assert report.snapshot.zones["southshore"].score == 3.0

        # Only camera in the zone returned a bad label
        kaanapali = report.adjustments["kaanapali"]
        assert kaanapali.cameras_analyzed == 0
        assert report.snapshot.zones["kaanapali"].score == 6.0

        failed = {c.camera.id: c.error for c in report.cameras if c.state is CameraState.FAILED}
        assert set(failed) == {"uluabeach", "kahekili"}
        assert "Choppy" in failed["kahekili"]


def test_calm_and_light():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir, labels(napili=Severity.LIGHT))
        report = engine.run()

        assert report.snapshot.zones["northwest"].score == 3.0
        assert report.snapshot.zones["kaanapali"].score == 6.0
        assert not report.snapshot.zones["kaanapali"].wind_adjusted
        assert report.snapshot.zones["kaanapali"].locations["malawharf"].final_score == 6.0
        assert report.snapshot.zones["northwest"].locations["honolua"].final_score == 3.0


def test_repeated_runs_stack():
    """Each pass subtracts from the score in the snapshot it reads."""
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir, labels(uluabeach=Severity.MODERATE))

        engine.run()
        report = engine.run()
        zone = report.snapshot.zones["southshore"]
        print(f"  After two MODERATE passes: {zone.score} (pre-wind {zone.pre_wind_score})")
        assert zone.score == 1.0
        assert zone.pre_wind_score == 7.0
        assert zone.locations["uluabeach"].final_score == 2.0
        assert zone.locations["uluabeach"].pre_wind_score == 8.0
        assert report.adjustments["southshore"].original_score == 4.0
        assert report.adjustments["southshore"].adjusted_score == 1.0

        # Floored at zero
        engine.classifier = FakeChopClassifier(labels(uluabeach=Severity.LIGHT))
        zone = engine.run().snapshot.zones["southshore"]
        assert zone.score == 0.0
        assert zone.locations["uluabeach"].final_score == 0.0


def test_repeated_runs_without_stacking():
    """stack_penalties=False re-derives from the first pass's pre-wind score."""
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir, labels(uluabeach=Severity.MODERATE))
        engine.stack_penalties = False

        engine.run()
        report = engine.run()
        zone = report.snapshot.zones["southshore"]
        assert zone.score == 4.0
        assert zone.pre_wind_score == 7.0
        assert zone.locations["uluabeach"].final_score == 5.0

        # A calmer later pass never raises a score
        engine.classifier = FakeChopClassifier(labels(uluabeach=Severity.LIGHT))
        zone = engine.run().snapshot.zones["southshore"]
        assert zone.score == 4.0

        engine.classifier = FakeChopClassifier(labels(uluabeach=Severity.HEAVY))
        zone = engine.run().snapshot.zones["southshore"]
        assert zone.score == 3.0
        assert zone.pre_wind_score == 7.0
        assert zone.locations["uluabeach"].final_score == 4.0


def test_penalized_floor_and_rounding():
    assert penalized(1.5, None, 4) == (0.0, 1.5)
    assert penalized(4.0, 7.0, 3) == (1.0, 7.0)
    assert penalized(4.0, 7.0, 2, stack=False) == (4.0, 7.0)
    assert penalized(6.15, None, 3) == (3.2, 6.15)


class BrokenWebcamClient(FakeWebcamClient):
    """Raises something other than WebcamError for one camera."""

    def __init__(self, broken: str):
        super().__init__()
        self.broken = broken

    def fetch_frame(self, camera_id, snapshot_url):
        if camera_id == self.broken:
            self.fetched.append(camera_id)
            raise OSError("socket closed mid-read")
        return super().fetch_frame(camera_id, snapshot_url)


def test_unexpected_camera_error_excludes_only_that_camera():
    """A bug in one camera's fetch or classify does not abort the check."""
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir, labels(
            napili=RuntimeError("bad image block"),
            uluabeach=Severity.HEAVY,
        ))
        engine.webcams = BrokenWebcamClient(broken="kahekili")
        report = engine.run()

        states = {c.camera.id: c.state for c in report.cameras}
        assert states["napili"] is CameraState.FAILED
        assert states["kahekili"] is CameraState.FAILED
        assert states["uluabeach"] is CameraState.CLASSIFIED
        assert report.cameras_analyzed == 2

        southshore = report.snapshot.zones["southshore"]
        assert southshore.score == 3.0
        assert southshore.locations["uluabeach"].final_score == 4.0

        for zone_id in ("northwest", "kaanapali"):
            assert report.adjustments[zone_id].cameras_analyzed == 0
            assert not report.snapshot.zones[zone_id].wind_adjusted

        assert engine.snapshot_store.exists()
        errors = {c["id"]: c["error"] for c in report.snapshot.wind_check.cameras}
        assert "RuntimeError" in errors["napili"]
        assert "OSError" in errors["kahekili"]


def test_worst_label_wins():
    spot_db = make_spot_db()
    cameras = spot_db.get_cameras("southshore")

    results = []
    for camera, severity in zip(cameras, (Severity.LIGHT, Severity.HEAVY)):
        result = CameraResult(camera=camera)
        result.advance(CameraState.FETCHED)
        result.severity = severity
        result.advance(CameraState.CLASSIFIED)
        results.append(result)

    adj = aggregate_zone(results, spot_db)
    assert adj.condition is Severity.HEAVY
    assert adj.penalty == 4
    assert adj.cameras_analyzed == 2


def test_camera_state_transitions():
    camera = make_spot_db().get_cameras()[0]

    result = CameraResult(camera=camera)
    try:
        result.advance(CameraState.CLASSIFIED)
        raise AssertionError("PENDING -> CLASSIFIED should be rejected")
    except ValueError:
        pass

    result.fail("connection refused")
    assert result.terminal
    try:
        result.advance(CameraState.FETCHED)
        raise AssertionError("FAILED -> FETCHED should be rejected")
    except ValueError:
        pass

    pending = CameraResult(camera=camera)
    try:
        aggregate_zone([pending], make_spot_db())
        raise AssertionError("Aggregation over a pending camera should be rejected")
    except ValueError:
        pass


def test_slow_camera_counts_as_failed():
    with tempfile.TemporaryDirectory() as tmpdir:
        spot_db = make_spot_db(wind_join_seconds=0.3)
        engine = make_engine(tmpdir, labels(), spot_db=spot_db)
        engine.classifier = SlowChopClassifier(
            labels(waileapoint=Severity.HEAVY), slow={"waileapoint"}, delay=2.0
        )

        cameras, adjustments = engine.observe()
        states = {c.camera.id: c for c in cameras}
        assert states["waileapoint"].state is CameraState.FAILED
        assert "timed out" in states["waileapoint"].error
        assert adjustments["southshore"].condition is Severity.CALM
        assert adjustments["southshore"].cameras_analyzed == 1


def test_unavailable_classifier_everywhere():
    with tempfile.TemporaryDirectory() as tmpdir:
        error = ClassifierUnavailable("Image classifier not configured")
        engine = make_engine(tmpdir, {camera: error for camera in CALM_EVERYWHERE})
        report = engine.run()

        assert report.cameras_analyzed == 0
        assert not report.has_adjustments
        for zone in report.snapshot.zones.values():
            assert not zone.wind_adjusted
        assert report.snapshot.wind_check is not None


def test_no_snapshot_published():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(tmpdir, labels(), publish=False)
        try:
            engine.run()
            raise AssertionError("Expected SnapshotNotFoundError")
        except SnapshotNotFoundError as e:
            print(f"  ✓ {e}")
        assert engine.webcams.fetched == []
        assert not engine.snapshot_store.exists()


def test_etag_conflict_detected():
    """A snapshot replaced after it was read is not overwritten."""
    with tempfile.TemporaryDirectory() as tmpdir:
        spot_db = make_spot_db()
        snapshot_store, _ = make_stores(tmpdir, spot_db)
        publish_baseline(snapshot_store, spot_db)

        snapshot, etag = snapshot_store.load()

        # A fusion run publishes in between
        newer = build_baseline_snapshot(spot_db)
        newer.zones["northwest"].score = 2.0
        snapshot_store.publish(newer)

        try:
            snapshot_store.publish(snapshot, if_match=etag)
            raise AssertionError("Expected SnapshotConflictError")
        except SnapshotConflictError as e:
            print(f"  ✓ {e}")

        current, _ = snapshot_store.load()
        assert current.zones["northwest"].score == 2.0


def run_all_tests():
    """Run all tests and report results."""
    print("\n" + "#"*60)
    print("# WIND CHECK TEST SUITE")
    print("#"*60)

    tests = [
        ("Moderate Penalty", test_moderate_penalty_applied),
        ("All Cameras Failed", test_all_cameras_failed_leaves_zone_unchanged),
        ("Partial Failures", test_partial_failures_use_remaining_cameras),
        ("Unexpected Camera Error", test_unexpected_camera_error_excludes_only_that_camera),
        ("Calm And Light", test_calm_and_light),
        ("Repeated Runs Stack", test_repeated_runs_stack),
        ("Opt-out Stacking", test_repeated_runs_without_stacking),
        ("Floor And Rounding", test_penalized_floor_and_rounding),
        ("Worst Label", test_worst_label_wins),
        ("State Transitions", test_camera_state_transitions),
        ("Slow Camera", test_slow_camera_counts_as_failed),
        ("Classifier Unavailable", test_unavailable_classifier_everywhere),
        ("No Snapshot", test_no_snapshot_published),
        ("Etag Conflict", test_etag_conflict_detected),
    ]

    passed = 0
    failed = 0

    for name, test_func in tests:
        try:
            test_func()
            passed += 1
            print(f"  ✓ {name}")
        except AssertionError as e:
            failed += 1
            print(f"\n  ✗ FAILED: {name}")
            print(f"    Error: {e}")
        except Exception as e:
            failed += 1
            print(f"\n  ✗ ERROR: {name}")
            print(f"    Exception: {e}")

    print("\n" + "="*60)
    print(f"  Passed: {passed}/{len(tests)}")
    print("="*60)

    return failed == 0


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
