#!/usr/bin/env python3
"""Tests for the spot baseline loader.

Run from project root:
    python scripts/test_spots.py
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from maui_snorkel.core.baseline import build_baseline_snapshot
from maui_snorkel.core.model import ScoreSource, Severity, validate_snapshot_document
from maui_snorkel.core.spots import SpotConfigError, SpotDatabase

from fakes import make_spot_db, spots_config


def expect_config_error(config: dict, fragment: str) -> None:
    try:
        SpotDatabase.from_dict(config)
    except SpotConfigError as e:
        assert fragment in str(e), f"Expected {fragment!r} in {e}"
        print(f"  ✓ Rejected: {e}")
        return
    raise AssertionError(f"Expected SpotConfigError containing {fragment!r}")


def test_real_config_loads():
    """The shipped spots.yaml is consistent."""
    print("\n" + "="*60)
    print("TEST: Shipped spots.yaml")
    print("="*60)

    db = SpotDatabase()
    zone_ids = [z.id for z in db.get_zones()]
    print(f"  Zones: {zone_ids}")
    print(f"  Locations: {db.spot_count}, cameras: {len(db.get_cameras())}")

    assert zone_ids == ["northwest", "kaanapali", "southshore"]
    assert db.spot_count == 19
    assert db.get_spot("malawharf").derived_from == ["blackrock", "kahekili"]
    assert [c.zone_id for c in db.get_cameras("southshore")] == ["southshore", "southshore"]
    assert db.penalty_for(Severity.MODERATE) == 3
    assert db.sources.buoy_station == "51205"


def test_zone_order_and_spot_order_kept():
    db = make_spot_db()
    zone = db.get_zone("kaanapali")
    assert [s.id for s in zone.spots] == ["blackrock", "kahekili", "malawharf"]
    assert [s.id for s in zone.independent_spots] == ["blackrock", "kahekili"]
    assert [s.id for s in zone.derived_spots] == ["malawharf"]
    assert db.location_ids == {
        "honolua", "napili", "blackrock", "kahekili", "malawharf", "uluabeach", "waileapoint",
    }


def test_duplicate_location_rejected():
    config = spots_config()
    config["zones"]["southshore"]["locations"].append({"id": "napili", "name": "Another Napili"})
    expect_config_error(config, "Duplicate location id: napili")


def test_derived_sibling_must_be_independent_in_zone():
    config = spots_config()
    config["zones"]["kaanapali"]["locations"][2]["derived_from"] = ["blackrock", "uluabeach"]
    expect_config_error(config, "uluabeach")

    config = spots_config()
    config["zones"]["kaanapali"]["locations"].append(
        {"id": "mala2", "name": "Mala 2", "derived_from": ["malawharf"]}
    )
    expect_config_error(config, "malawharf")


def test_camera_zone_must_exist():
    config = spots_config()
    config["cameras"].append({"id": "x", "zone": "molokai", "snapshot_url": "http://cam.test/x"})
    expect_config_error(config, "unknown zone molokai")

    config = spots_config()
    config["cameras"].append({"id": "y", "zone": "northwest"})
    expect_config_error(config, "missing")


def test_penalties_and_scores_validated():
    config = spots_config()
    config["wind_penalties"] = {"heavy": -1}
    expect_config_error(config, "non-negative")

    config = spots_config()
    config["wind_penalties"] = {"whitecaps": 2}
    expect_config_error(config, "whitecaps")

    config = spots_config()
    config["zones"]["northwest"]["score"] = 12
    expect_config_error(config, "out of range")


def test_penalty_lookup():
    config = spots_config()
    config["wind_penalties"] = {"heavy": 5}
    db = SpotDatabase.from_dict(config)

    assert db.penalty_for(None) == 0
    assert db.penalty_for(Severity.CALM) == 0
    assert db.penalty_for(Severity.LIGHT) == 2
    assert db.penalty_for(Severity.HEAVY) == 5


def test_timeouts_override_defaults():
    db = make_spot_db(fusion_join_seconds=0.5)
    assert db.timeouts.fusion_join_seconds == 0.5
    assert db.timeouts.wind_join_seconds == 5
    assert db.timeouts.http_seconds == 15


def test_baseline_snapshot():
    """Static baseline: zone defaults everywhere, derived from equal siblings."""
    snapshot = build_baseline_snapshot(make_spot_db())
    document = snapshot.to_dict()
    validate_snapshot_document(document)

    mala = snapshot.get_location("malawharf")
    assert mala.final_score == 6.0
    assert mala.score_source is ScoreSource.DERIVED
    assert snapshot.get_location("honolua").final_text == "Honolua baseline."
    assert document["zones"]["southshore"]["score"] == 7.0
    assert document["windCheck"] is None


def test_severity_parse_is_strict():
    assert Severity.parse(" moderate\n") is Severity.MODERATE
    for label in ("Moderate chop", "MODERATE.", "", "WHITECAPS"):
        try:
            Severity.parse(label)
            raise AssertionError(f"Expected ValueError for {label!r}")
        except ValueError:
            pass


def run_all_tests():
    """Run all tests and report results."""
    print("\n" + "#"*60)
    print("# SPOT BASELINE TEST SUITE")
    print("#"*60)

    tests = [
        ("Shipped Config", test_real_config_loads),
        ("Spot Order", test_zone_order_and_spot_order_kept),
        ("Duplicate Location", test_duplicate_location_rejected),
        ("Derived Siblings", test_derived_sibling_must_be_independent_in_zone),
        ("Camera Zone", test_camera_zone_must_exist),
        ("Penalty/Score Validation", test_penalties_and_scores_validated),
        ("Penalty Lookup", test_penalty_lookup),
        ("Timeouts", test_timeouts_override_defaults),
        ("Baseline Snapshot", test_baseline_snapshot),
        ("Strict Severity", test_severity_parse_is_strict),
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
