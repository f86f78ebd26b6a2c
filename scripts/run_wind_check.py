#!/usr/bin/env python3
"""Wind check.

Labels each webcam frame for wind chop and lowers the scores of choppy zones
in the published snapshot. Scheduled twice a day, after the daily update.

Usage:
    python scripts/run_wind_check.py
    python scripts/run_wind_check.py --data-dir /srv/snorkel/data -v
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from maui_snorkel.core.model import SnapshotValidationError
from maui_snorkel.core.spots import SpotConfigError, SpotDatabase
from maui_snorkel.core.wind import WindAdjustmentEngine
from maui_snorkel.storage.blob_store import LocalBlobStore
from maui_snorkel.storage.snapshots import (
    SnapshotConflictError,
    SnapshotNotFoundError,
    SnapshotStore,
    SnapshotWriteError,
)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for name in ("urllib3", "httpx", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Apply the webcam wind-chop penalty to the published snapshot",
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
        "--no-stack",
        action="store_true",
        help="Take the penalty from the first pass's pre-wind score instead of the current score",
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

    engine = WindAdjustmentEngine(
        spot_db=spot_db,
        snapshot_store=SnapshotStore(LocalBlobStore(args.data_dir)),
        stack_penalties=not args.no_stack,
    )

    try:
        report = engine.run()
    except SnapshotNotFoundError as e:
        print(f"Nothing to adjust: {e}", file=sys.stderr)
        return 1
    except SnapshotValidationError as e:
        print(f"Published snapshot is unreadable: {e}", file=sys.stderr)
        return 1
    except SnapshotConflictError as e:
        print(f"Snapshot changed during the wind check, not written: {e}", file=sys.stderr)
        return 1
    except SnapshotWriteError as e:
        print(f"Publish failed, previous snapshot left in place: {e}", file=sys.stderr)
        return 1

    print(file=sys.stderr)
    print("=" * 50, file=sys.stderr)
    print("WIND CHECK", file=sys.stderr)
    print("=" * 50, file=sys.stderr)
    for line in report.summary_lines():
        print(f"  {line}", file=sys.stderr)
    print("=" * 50, file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
