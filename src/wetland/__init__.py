"""
Lake and wetland parameterization package.

Core functionality:
- Pit/flat conditioning and multiple-flow-direction routing of a DEM
- Topographic wetness index and upland/wetland/water classification
- Lake and wetland elevation–area profiles written as VIC parameter records
- LakeParamPipeline driver, batch runner and command line
"""

from .errors import (
    AreaConservationError,
    ConfigError,
    DemFormatError,
    DemNotFoundError,
    EmptyDemError,
    GridAllocationError,
    InputError,
    NoValidDataError,
    UnknownFormatError,
    WetlandProfileError,
)
from .settings import LakeDepthRegression, ProfileConfig, WetnessThresholds
from .grid_io import DemGrid, GridHeader, cell_dimensions, load_dem, write_geotiff
from .raster_store import RasterStore
from .conditioning import fill_pits_and_flats
from .flow_routing import route_flow
from .ranking import RankedCells, rank_cells, rank_wetland_cells
from .topographic_index import CellClass, TopographicIndex, compute_topographic_index
from .profile import (
    LakeParameterRecord,
    OutputFormat,
    ProfileBin,
    aggregate_profile,
    build_profile,
    parse_output_format,
)
from .pipeline import LakeParamPipeline, PipelineResult, run_batch

__all__ = [
    "AreaConservationError",
    "ConfigError",
    "DemFormatError",
    "DemNotFoundError",
    "EmptyDemError",
    "GridAllocationError",
    "InputError",
    "NoValidDataError",
    "UnknownFormatError",
    "WetlandProfileError",
    "LakeDepthRegression",
    "ProfileConfig",
    "WetnessThresholds",
    "DemGrid",
    "GridHeader",
    "cell_dimensions",
    "load_dem",
    "write_geotiff",
    "RasterStore",
    "fill_pits_and_flats",
    "route_flow",
    "RankedCells",
    "rank_cells",
    "rank_wetland_cells",
    "CellClass",
    "TopographicIndex",
    "compute_topographic_index",
    "LakeParameterRecord",
    "OutputFormat",
    "ProfileBin",
    "aggregate_profile",
    "build_profile",
    "parse_output_format",
    "LakeParamPipeline",
    "PipelineResult",
    "run_batch",
]
