#!/usr/bin/env python3
"""Daily conditions update.

Fetches every source, resolves the per-location scores and publishes the
conditions snapshot.

Usage:
    # Publish to ./data/conditions.json (or $MAUI_SNORKEL_DATA_DIR)
    python scripts/run_daily.py

    # Publish somewhere else
    python scripts/run_daily.py --data-dir /srv/snorkel/data

    # Resolve and print the snapshot without publishing it
    python scripts/run_daily.py --dry-run

    # Also save a copy of the published document
    python scripts/run_daily.py --output conditions.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from maui_snorkel.core.fusion import FusionEngine
from maui_snorkel.core.spots import SpotConfigError, SpotDatabase
from maui_snorkel.storage.blob_store import LocalBlobStore
from maui_snorkel.storage.snapshots import SnapshotStore, SnapshotWriteError


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Quiet down noisy loggers
    for name in ("urllib3", "httpx", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Fetch sources and publish the daily conditions snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Blob store directory (default: $MAUI_SNORKEL_DATA_DIR or ./data)",
    )

    parser.add_argument(
        "--spots",
        type=Path,
        help="Path to spots.yaml (default: config/spots.yaml)",
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        help="Also write the snapshot document to this file",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve the snapshot and print it, but don't publish",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_args()
    setup_logging(args.verbose)

    try:
        spot_db = SpotDatabase(args.spots)
    except SpotConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    store = SnapshotStore(LocalBlobStore(args.data_dir))
    engine = FusionEngine(spot_db=spot_db, snapshot_store=store)

    if args.dry_run:
        inputs = engine.gather()
        snapshot = engine.resolve(inputs)
        print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
        return 0

    try:
        report = engine.run()
    except SnapshotWriteError as e:
        print(f"Publish failed, previous snapshot left in place: {e}", file=sys.stderr)
        return 1

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(json.dumps(report.snapshot.to_dict(), indent=2, ensure_ascii=False))
        print(f"Output written to: {output_path}", file=sys.stderr)

    # Summary (always to stderr so it doesn't pollute piped output)
    print(file=sys.stderr)
    print("=" * 50, file=sys.stderr)
    print("SUMMARY", file=sys.stderr)
    print("=" * 50, file=sys.stderr)
    for line in report.summary_lines():
        print(f"  {line}", file=sys.stderr)
    print("=" * 50, file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
