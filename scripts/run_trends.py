#!/usr/bin/env python3
"""Compute per-pixel SST trend and significance tables from a netCDF file.

This script runs the full batch: crop, mask and convert the grid, fit the
AR(1)-GLS trend per pixel, and write the slope and p-value tables.

Usage:
    python run_trends.py --input sst.nc --output-dir out/

Example:
    python run_trends.py --input pathfinder_combined_monthly_data.nc \\
        --output-dir out/ --xmin -100 --xmax -55 --ymin 0 --ymax 40 \\
        --start 1981-09-15 --end 2019-12-16 --workers 8 --prefix Pathfinder
"""

from __future__ import annotations

import argparse
import logging
import math
import sys
import time
from datetime import date
from pathlib import Path

# Check imports before running
try:
    import sstrend
except ImportError:
    print("Error: sstrend not installed. Run: pip install -e .")
    sys.exit(1)

from pydantic import ValidationError

from sstrend.config import config_from_overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Per-pixel SST trends (C/decade) with AR(1)-GLS p-values",
    )
    parser.add_argument("--input", required=True, type=Path, help="netCDF SST dataset")
    parser.add_argument(
        "--output-dir", required=True, type=Path, help="Directory for all outputs"
    )
    parser.add_argument("--prefix", default="sst", help="Output file name prefix")
    parser.add_argument("--variable", help="SST variable name (default: first 3D variable)")
    parser.add_argument("--xmin", type=float, help="Western longitude bound")
    parser.add_argument("--xmax", type=float, help="Eastern longitude bound")
    parser.add_argument("--ymin", type=float, help="Southern latitude bound")
    parser.add_argument("--ymax", type=float, help="Northern latitude bound")
    parser.add_argument("--start", type=date.fromisoformat, help="First date (inclusive)")
    parser.add_argument("--end", type=date.fromisoformat, help="Last date (inclusive)")
    parser.add_argument("--workers", type=int, help="Worker processes for the regression")
    parser.add_argument("--engine", help="xarray netCDF engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = config_from_overrides(
            xmin=args.xmin,
            xmax=args.xmax,
            ymin=args.ymin,
            ymax=args.ymax,
            start_date=args.start,
            end_date=args.end,
            variable=args.variable,
            workers=args.workers,
            netcdf_engine=args.engine,
        )
    except ValidationError as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return 2

    print(f"Computing SST trends for {args.input}...")
    print(f"  Bounding box: {config.bbox}")
    print(f"  Period: {config.start_date} to {config.end_date}")
    print(f"  Workers: {config.workers}")

    started = time.monotonic()
    try:
        result = sstrend.run(args.input, args.output_dir, config, prefix=args.prefix)
    except sstrend.SSTrendError as exc:
        print(f"Run failed: {exc}", file=sys.stderr)
        return 1
    elapsed = time.monotonic() - started

    counts = result.metadata.status_counts
    mean_slope = result.mean_slope
    print(f"Done in {elapsed:.1f}s: {result!r}")
    print(f"  Defined cells: {counts.get('OK', 0)}")
    print(f"  Insufficient data: {counts.get('INSUFFICIENT_DATA', 0)}")
    print(f"  Singular fits: {counts.get('SINGULAR_FIT', 0)}")
    if not math.isnan(mean_slope):
        print(f"  Mean trend: {mean_slope:.3f} C/decade")
    print(f"  Outputs written to {args.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
