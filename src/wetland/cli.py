#!/usr/bin/env python3
"""
Command line for the lake/wetland parameter pipeline.

Usage:
    wetland-profile DEM GRIDID {SEA,LAKE} [options]
    wetland-profile --batch LIST {SEA,LAKE} [options]

The two record lines go to stdout; progress and errors go to stderr.

Exit codes:
    0  success, or an empty DEM file
    1  unreadable input, no valid data, unknown format or bad configuration
    2  command line usage error
    3  memory allocation failure
    4  area conservation failure
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from src import config as defaults
from .diagnostics import plot_profile, plot_wetness_grids
from .errors import EmptyDemError, WetlandProfileError
from .pipeline import (
    LakeParamPipeline,
    PipelineResult,
    parse_output_format,
    read_batch_file,
    run_batch,
    write_grids,
)
from .settings import ProfileConfig

logger = logging.getLogger(__name__)


def setup_logging(level: str = defaults.DEFAULT_LOG_LEVEL) -> logging.Logger:
    """Send package log records to stderr at the given level."""
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    package_logger = logging.getLogger("src.wetland")
    package_logger.setLevel(level.upper())
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)
    return package_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wetland-profile",
        description="Derive VIC lake/wetland elevation-area parameters from a DEM.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One grid, LAKE layout
  wetland-profile data/dem/cell_0042.asc 42 LAKE

  # Projected DEM with grids and plots for inspection
  wetland-profile dem.tif 7 SEA --projected --write-grids out/ --plot-dir out/

  # Many grids listed as 'DEM_PATH GRID_ID' lines
  wetland-profile --batch cells.txt LAKE > lake_params.txt
        """,
    )
    parser.add_argument(
        "args",
        nargs="+",
        metavar="DEM GRIDID FORMAT",
        help="DEM path, grid identifier and output format (SEA or LAKE); "
             "only FORMAT with --batch",
    )
    parser.add_argument("--config", type=Path, help="JSON file of configuration overrides")
    parser.add_argument(
        "--projected",
        action="store_true",
        help="Cell size is in metres (default: degrees on a spherical Earth)",
    )
    parser.add_argument("--write-grids", type=Path, metavar="DIR",
                        help="Write intermediate grids as GeoTIFF to DIR")
    parser.add_argument("--plot-dir", type=Path, metavar="DIR",
                        help="Write diagnostic plots to DIR")
    parser.add_argument(
        "--log-level",
        default=defaults.DEFAULT_LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {defaults.DEFAULT_LOG_LEVEL})",
    )
    parser.add_argument("--batch", type=Path, metavar="LIST",
                        help="File of 'DEM_PATH GRID_ID' lines to process")
    return parser


def _emit(result: PipelineResult, args: argparse.Namespace) -> None:
    for line in result.record.lines():
        print(line)

    if args.write_grids:
        write_grids(result, args.write_grids)
    if args.plot_dir:
        plot_wetness_grids(
            result.grids,
            args.plot_dir / f"{result.grid_id}_grids.png",
            title_prefix=f"Grid {result.grid_id}",
        )
        plot_profile(result.record, args.plot_dir / f"{result.grid_id}_profile.png")

    # Grid snapshots are not needed once written
    result.grids.clear()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.batch and len(args.args) != 1:
        parser.error("with --batch give only FORMAT")
    if not args.batch and len(args.args) != 3:
        parser.error("expected DEM GRIDID FORMAT")

    setup_logging(args.log_level)
    keep_grids = bool(args.write_grids or args.plot_dir)

    try:
        output_format = parse_output_format(args.args[-1])

        config = ProfileConfig.from_json(args.config) if args.config else ProfileConfig()
        if args.projected:
            config = config.with_overrides(geographic=False)
        pipeline = LakeParamPipeline(config)

        if args.batch:
            jobs = read_batch_file(args.batch)
            for result in run_batch(jobs, output_format, pipeline, keep_grids=keep_grids):
                _emit(result, args)
        else:
            dem_path, grid_id = args.args[0], args.args[1]
            _emit(pipeline.run_file(dem_path, grid_id, output_format, keep_grids=keep_grids), args)

    except EmptyDemError as e:
        logger.warning(str(e))
        return e.exit_code
    except WetlandProfileError as e:
        logger.error(str(e))
        return e.exit_code
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
