#!/usr/bin/env python3
"""Live check of every upstream source.

Calls each source adapter once, fetches a frame from every webcam and reports
which classifiers are configured. Nothing is published.

Run from project root:
    python scripts/check_sources.py
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from maui_snorkel.clients.buoy_client import BuoyClient
from maui_snorkel.clients.image_classifier import ChopClassifier
from maui_snorkel.clients.maui_now_client import MauiNowClient
from maui_snorkel.clients.noaa_tides_client import NOAATidesClient
from maui_snorkel.clients.snorkel_store_client import SnorkelStoreClient
from maui_snorkel.clients.text_classifier import ConditionsClassifier
from maui_snorkel.clients.webcam_client import WebcamClient, WebcamError
from maui_snorkel.core.sources import (
    advisory_adapter,
    buoy_adapter,
    narrative_adapter,
    tides_adapter,
)
from maui_snorkel.core.spots import SpotConfigError, SpotDatabase


def check_adapters(spot_db: SpotDatabase) -> dict:
    """Fetch each data source once."""
    print("\n" + "="*60)
    print("SOURCES")
    print("="*60)

    settings = spot_db.sources
    timeout = spot_db.timeouts.http_seconds
    adapters = [
        narrative_adapter(SnorkelStoreClient(url=settings.narrative_url, timeout=timeout)),
        advisory_adapter(MauiNowClient(url=settings.advisory_url, timeout=timeout)),
        buoy_adapter(BuoyClient(timeout=timeout), settings.buoy_station),
        tides_adapter(NOAATidesClient(timeout=timeout), settings.tide_station),
    ]

    results = {}
    for adapter in adapters:
        result = adapter.fetch()
        results[adapter.name] = result.ok
        if not result.ok:
            print(f"  ✗ {adapter.name}: {result.status.value} ({result.failure.reason})")
            continue

        value = result.value
        print(f"  ✓ {adapter.name} ({result.elapsed_s:.1f}s)")
        if adapter.name == "snorkelStore":
            for zone_id, zone in value.zones.items():
                print(f"      {zone_id}: score={zone.score}")
            print(f"      narrative: {len(value.full_narrative)} chars, date={value.report_date}")
        elif adapter.name == "mauiNow":
            print(f"      advisories: {len(value.advisories)}, wind: {value.wind_conditions}, "
                  f"swell: {value.swell_direction}")
        elif adapter.name == "noaaBuoy":
            print(f"      waves: {value.wave_height_ft} ft {value.wave_direction_compass}, "
                  f"water: {value.water_temp_f}°F")
        elif adapter.name == "noaaTides":
            if value.current:
                print(f"      now: {value.current.to_display()}")
            if value.next_high:
                print(f"      next high: {value.next_high.to_display()}")

    return results


def check_webcams(spot_db: SpotDatabase) -> dict:
    """Fetch one frame from each camera."""
    print("\n" + "="*60)
    print("WEBCAMS")
    print("="*60)

    client = WebcamClient(timeout=spot_db.timeouts.webcam_seconds)
    results = {}
    for camera in spot_db.get_cameras():
        try:
            frame = client.fetch_frame(camera.id, camera.snapshot_url)
            print(f"  ✓ {camera.name} [{camera.zone_id}]: {frame.size_kb}KB {frame.media_type}")
            results[camera.id] = True
        except WebcamError as e:
            print(f"  ✗ {camera.name} [{camera.zone_id}]: {e}")
            results[camera.id] = False
    return results


def check_classifiers() -> None:
    print("\n" + "="*60)
    print("CLASSIFIERS")
    print("="*60)
    text = ConditionsClassifier()
    image = ChopClassifier()
    print(f"  {'✓' if text.is_configured else '✗'} text ({text.model})")
    print(f"  {'✓' if image.is_configured else '✗'} image ({image.model})")


def main():
    parser = argparse.ArgumentParser(description="Check every upstream source once")
    parser.add_argument("--spots", type=Path, help="Path to spots.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        spot_db = SpotDatabase(args.spots)
    except SpotConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    sources = check_adapters(spot_db)
    cameras = check_webcams(spot_db)
    check_classifiers()

    print("\n" + "="*60)
    print(f"  Sources working: {sum(sources.values())}/{len(sources)}")
    print(f"  Cameras working: {sum(cameras.values())}/{len(cameras)}")
    print("="*60)

    return 0 if any(sources.values()) else 1


if __name__ == "__main__":
    sys.exit(main())
