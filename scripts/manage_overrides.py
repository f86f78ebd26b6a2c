#!/usr/bin/env python3
"""Manage manual score/text overrides.

Overrides win over both the classifier and the zone score at the next daily
update.

Usage:
    python scripts/manage_overrides.py list
    python scripts/manage_overrides.py set honolua --score 2 --text "Closed for reef survey." --note "DLNR notice"
    python scripts/manage_overrides.py remove honolua
    python scripts/manage_overrides.py sync manual-overrides.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from maui_snorkel.core.spots import SpotConfigError, SpotDatabase
from maui_snorkel.storage.blob_store import BlobStoreError, LocalBlobStore
from maui_snorkel.storage.overrides import OverrideStore


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Manage manual location overrides",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--data-dir", type=Path, help="Blob store directory")
    parser.add_argument("--spots", type=Path, help="Path to spots.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="Show current overrides")

    set_cmd = commands.add_parser("set", help="Set or update an override")
    set_cmd.add_argument("location_id")
    set_cmd.add_argument("--score", type=float, help="Score 0-10")
    set_cmd.add_argument("--text", type=str, help="Conditions text")
    set_cmd.add_argument("--note", type=str, help="Why the override exists")

    remove_cmd = commands.add_parser("remove", help="Remove an override")
    remove_cmd.add_argument("location_id")

    sync_cmd = commands.add_parser("sync", help="Replace all overrides from a JSON file")
    sync_cmd.add_argument("path", type=Path)

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

    store = OverrideStore(LocalBlobStore(args.data_dir), spot_db)

    try:
        if args.command == "list":
            overrides = store.list()
            if not overrides:
                print("No overrides set.")
            for location_id, override in sorted(overrides.items()):
                score = f"{override.score:.1f}" if override.score is not None else "-"
                print(f"{location_id:20s} score={score:5s} {override.text or ''}")
                if override.note:
                    print(f"{'':20s} note: {override.note}")

        elif args.command == "set":
            override = store.set(args.location_id, score=args.score, text=args.text, note=args.note)
            print(f"Override set for {args.location_id}: {json.dumps(override.to_dict())}")

        elif args.command == "remove":
            if store.remove(args.location_id):
                print(f"Override removed for {args.location_id}")
            else:
                print(f"No override for {args.location_id}")

        elif args.command == "sync":
            document = json.loads(args.path.read_text())
            count = store.sync(document, synced_from=args.path.name)
            print(f"Synced {count} overrides from {args.path}")

    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except (BlobStoreError, OSError) as e:
        print(f"Override store error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
