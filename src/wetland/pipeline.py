"""
Lake/wetland parameter pipeline.

Stages, in order:

1. Load the DEM into a RasterStore and derive the validity mask
2. Fill pits and flats
3. Rank valid cells by conditioned elevation
4. Route flow (multiple flow directions)
5. Compute tan-beta, contour length, wetness index and cell classes
6. Rank wetland cells by wetness index and by elevation
7. Aggregate the lake and wetland bins into a parameter record

The store is released once the record exists; callers that want the
intermediate grids (diagnostic plots, GeoTIFF export) ask for a snapshot.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union
import logging

import numpy as np
from tqdm import tqdm

from .conditioning import fill_pits_and_flats, undrained_cells
from .errors import DemFormatError, NoValidDataError, WetlandProfileError
from .flow_routing import route_flow
from .grid_io import DemGrid, GridHeader, cell_dimensions, load_dem, write_geotiff
from .profile import (
    LakeParameterRecord,
    OutputFormat,
    build_profile,
    parse_output_format,
)
from .ranking import rank_cells, rank_wetland_cells
from .raster_store import RasterStore
from .settings import ProfileConfig
from .topographic_index import CellClass, compute_topographic_index

logger = logging.getLogger(__name__)

__all__ = [
    "OutputFormat",
    "parse_output_format",
    "PipelineResult",
    "LakeParamPipeline",
    "read_batch_file",
    "run_batch",
    "write_grids",
]

# Grids exported by write_grids(), in file-name order
EXPORTED_GRIDS = ("conditioned", "flow_accumulation", "wetness_index", "classes")


@dataclass
class PipelineResult:
    """Parameter record of one grid plus the context it was computed in."""

    record: LakeParameterRecord
    header: GridHeader
    dx: float
    dy: float
    raised: int = 0
    grids: Dict[str, np.ndarray] = field(default_factory=dict)
    """Snapshot of the intermediate grids (empty unless requested)."""

    @property
    def grid_id(self) -> str:
        return self.record.grid_id

    @property
    def cell_area_m2(self) -> float:
        return self.dx * self.dy


class LakeParamPipeline:
    """
    Derive lake/wetland parameter records from DEMs.

    Example:
        >>> pipeline = LakeParamPipeline(ProfileConfig(geographic=False))
        >>> result = pipeline.run_file("cell_0042.asc", "42", "LAKE")
        >>> print(result.record)
    """

    def __init__(self, config: Optional[ProfileConfig] = None):
        self.config = config or ProfileConfig()

    def run(
        self,
        dem: DemGrid,
        grid_id: str,
        output_format: Union[str, OutputFormat],
        keep_grids: bool = False,
    ) -> PipelineResult:
        """
        Compute the parameter record of one DEM.

        Args:
            dem: Elevation grid and header
            grid_id: Model grid identifier written in the record header
            output_format: "SEA" or "LAKE"
            keep_grids: Keep a snapshot of the intermediate grids on the result

        Returns:
            PipelineResult

        Raises:
            UnknownFormatError: Before any computation, for a bad format flag
            NoValidDataError: If every cell is no-data
            GridAllocationError: If a grid cannot be allocated
            AreaConservationError: If the profile does not conserve area
        """
        fmt = parse_output_format(output_format)
        config = self.config
        header = dem.header

        logger.info(f"Grid {grid_id}: {header.nrows}x{header.ncols} cells, format {fmt.value}")

        with RasterStore(dem.shape, header.nodata) as store:
            elevation = store.load_elevation(dem.data)
            valid = store.valid
            if store.valid_count == 0:
                raise NoValidDataError(str(grid_id))

            dx, dy = cell_dimensions(header, config.geographic, config.earth_radius_km)
            if not (dx > 0 and dy > 0):
                raise DemFormatError(
                    f"Degenerate cell dimensions for grid {grid_id}: dx={dx}, dy={dy}"
                )
            logger.info(f"  Cell size {dx:.2f} m x {dy:.2f} m")

            conditioned, raised = fill_pits_and_flats(elevation, valid, config.fill_increment)
            store.put("conditioned", conditioned)
            stuck = int(np.count_nonzero(undrained_cells(conditioned, valid)))
            if stuck:
                logger.debug(f"  {stuck:,} isolated cells left without a lower neighbour")

            order = rank_cells(conditioned, valid)
            accumulation, fractions = route_flow(
                conditioned, valid, order, dx, dy, config.flow_exponent
            )
            store.put("flow_accumulation", accumulation)
            store.put("flow_fractions", fractions)

            index = compute_topographic_index(
                conditioned, accumulation, valid, order, dx, dy,
                thresholds=config.thresholds,
                vertical_resolution=config.vertical_resolution,
            )
            store.put("tan_beta", index.tan_beta)
            store.put("contour_length", index.contour_length)
            store.put("wetness_index", index.wetness_index)
            store.put("elevation_difference", index.elevation_difference)
            store.put("classes", index.classes)

            ranking = rank_wetland_cells(index.wetness_index, conditioned, index.wetland_mask)
            record = build_profile(ranking, index, dx * dy, fmt, str(grid_id), config)

            grids = store.snapshot() if keep_grids else {}

        return PipelineResult(record=record, header=header, dx=dx, dy=dy, raised=raised, grids=grids)

    def run_file(
        self,
        path: Union[str, Path],
        grid_id: str,
        output_format: Union[str, OutputFormat],
        keep_grids: bool = False,
    ) -> PipelineResult:
        """Load a DEM from disk and run the pipeline on it."""
        # Reject a bad format flag before touching the file
        fmt = parse_output_format(output_format)
        dem = load_dem(path)
        return self.run(dem, grid_id, fmt, keep_grids=keep_grids)


def read_batch_file(path: Union[str, Path]) -> List[Tuple[Path, str]]:
    """
    Read a batch list of ``DEM_PATH GRID_ID`` lines.

    Blank lines and lines starting with ``#`` are ignored. Relative DEM paths
    are resolved against the list's directory.
    """
    path = Path(path)
    jobs = []
    with open(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split()
            if len(parts) != 2:
                raise DemFormatError(
                    f"{path}:{lineno}: expected 'DEM_PATH GRID_ID', got {line!r}"
                )
            dem_path = Path(parts[0])
            if not dem_path.is_absolute():
                dem_path = path.parent / dem_path
            jobs.append((dem_path, parts[1]))
    logger.info(f"Read {len(jobs)} jobs from {path}")
    return jobs


def run_batch(
    jobs: Iterable[Tuple[Union[str, Path], str]],
    output_format: Union[str, OutputFormat],
    pipeline: Optional[LakeParamPipeline] = None,
    keep_grids: bool = False,
) -> Iterator[PipelineResult]:
    """
    Run the pipeline over several ``(path, grid_id)`` jobs.

    Results are yielded one grid at a time, so a caller can emit each record
    and drop its grids before the next DEM is read. The output format is
    checked immediately. Grids that fail with a WetlandProfileError are
    logged and skipped; the remaining grids still produce records.
    """
    fmt = parse_output_format(output_format)
    pipeline = pipeline or LakeParamPipeline()
    return _run_jobs(list(jobs), fmt, pipeline, keep_grids)


def _run_jobs(
    jobs: List[Tuple[Union[str, Path], str]],
    fmt: OutputFormat,
    pipeline: LakeParamPipeline,
    keep_grids: bool,
) -> Iterator[PipelineResult]:
    succeeded = 0
    failed = 0
    for path, grid_id in tqdm(jobs, desc="Processing grids"):
        try:
            result = pipeline.run_file(path, grid_id, fmt, keep_grids=keep_grids)
        except WetlandProfileError as e:
            failed += 1
            logger.error(f"Grid {grid_id} ({path}) skipped: {e}")
            continue
        succeeded += 1
        yield result
        del result

    logger.info(f"Batch complete: {succeeded} records, {failed} skipped")


def write_grids(result: PipelineResult, directory: Union[str, Path]) -> List[Path]:
    """
    Export the conditioned DEM, accumulation, wetness index and classes as GeoTIFF.

    Requires a result computed with ``keep_grids=True``. Files are named
    ``{grid_id}_{grid}.tif``.
    """
    if not result.grids:
        raise ValueError("Result holds no grids; run the pipeline with keep_grids=True")

    directory = Path(directory)
    valid = result.grids["valid"]
    written = []
    for name in EXPORTED_GRIDS:
        out_path = directory / f"{result.grid_id}_{name}.tif"
        if name == "classes":
            data = result.grids[name].astype(np.int16)
            written.append(write_geotiff(out_path, data, result.header, nodata=int(CellClass.NODATA)))
        else:
            data = np.where(valid, result.grids[name], result.header.nodata)
            written.append(write_geotiff(out_path, data, result.header))

    logger.info(f"Wrote {len(written)} grids to {directory}")
    return written
