#!/usr/bin/env python3
"""Show the current conditions, as the display layer would read them.

Falls back to the static baseline when nothing has been published yet.

Usage:
    python scripts/show_conditions.py
    python scripts/show_conditions.py --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from maui_snorkel.core.spots import SpotConfigError, SpotDatabase
from maui_snorkel.storage.blob_store import LocalBlobStore
from maui_snorkel.storage.snapshots import SnapshotStore, read_conditions


def parse_args():
    parser = argparse.ArgumentParser(description="Show the published conditions snapshot")
    parser.add_argument("--data-dir", type=Path, help="Blob store directory")
    parser.add_argument("--spots", type=Path, help="Path to spots.yaml")
    parser.add_argument("--json", action="store_true", help="Print the raw document")
    return parser.parse_args()


def print_table(document: dict, source: str) -> None:
    print(f"Source: {source}")
    print(f"Last updated: {document.get('lastUpdated')}")

    quality = document.get("dataQuality") or {}
    if quality:
        print("Data quality: " + ", ".join(f"{k}={v}" for k, v in quality.items()))

    marine = document.get("marineSummary") or {}
    if marine:
        print(
            f"Waves: {marine.get('waveHeightFt')} {marine.get('waveDirection')}  "
            f"Water: {marine.get('waterTemp')}"
        )

    for alert in document.get("alerts") or []:
        print(f"[{alert['type'].upper()}] {alert['message']}")

    for zone in document["zones"].values():
        wind = f"  wind: {zone['windCondition']}" if zone.get("windAdjusted") else ""
        print()
        print(f"{zone['name']} - {zone['score']}/10{wind}")
        for loc in zone["locations"].values():
            flags = loc.get("scoreSource", "")
            if loc.get("windAdjusted"):
                flags += ", wind"
            print(f"  {loc['finalScore']:4.1f}  {loc['name']:32s} ({flags})")


def main():
    args = parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s - %(message)s")

    try:
        spot_db = SpotDatabase(args.spots)
    except SpotConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    document, source = read_conditions(SnapshotStore(LocalBlobStore(args.data_dir)), spot_db)

    if args.json:
        print(json.dumps({**document, "source": source}, indent=2, ensure_ascii=False))
    else:
        print_table(document, source)
    return 0


if __name__ == "__main__":
    sys.exit(main())
