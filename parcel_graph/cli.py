#!/usr/bin/env python3
"""CLI entry point for parcel-graph"""

import sys
import json
import argparse

from .main import Settings, run
from .use_codes import ClassificationError
from .utils import setup_logging


def build_parser():
    parser = argparse.ArgumentParser(description="Build property entity graphs from scraped parcel records")
    parser.add_argument("--input-dir", type=str, help="Directory of <parcel_id>.json input records")
    parser.add_argument("--owners-dir", type=str, help="Directory holding owner_data.json and layout_data.json")
    parser.add_argument("--data-dir", type=str, help="Output root; each property is written to <data-dir>/<parcel_id>/")
    parser.add_argument("--seed-csv", type=str, help="Seed CSV with parcel_id, method and url columns")
    parser.add_argument("--use-codes", type=str, help="Alternative use-code taxonomy JSON file")
    parser.add_argument("--log-dir", type=str, help="Directory for workflow_<timestamp>.log files")
    parser.add_argument("--log-level", type=str, help="Log level for the log file (default INFO)")
    parser.add_argument("--no-validate", action="store_true", help="Skip JSON Schema validation of emitted records")
    return parser


def main(argv=None):
    """Main CLI entry point"""
    args = build_parser().parse_args(argv)

    settings = Settings.from_env(
        input_dir=args.input_dir,
        owners_dir=args.owners_dir,
        data_dir=args.data_dir,
        seed_csv=args.seed_csv,
        use_codes=args.use_codes,
        log_dir=args.log_dir,
        log_level=args.log_level,
        validate=False if args.no_validate else None,
    )
    setup_logging(settings.log_dir, settings.log_level)

    try:
        report = run(settings)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except ClassificationError as e:
        print(json.dumps(e.to_dict()), file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if not report.ok:
        for failure in report.failures:
            print(json.dumps(failure), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
