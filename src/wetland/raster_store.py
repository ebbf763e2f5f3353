"""
Raster store: ownership of every grid used by the profile pipeline.

All grids are ``float64`` arrays indexed ``[row, column]`` from zero. One
``RasterStore`` is created per DEM by the pipeline driver, handed to each
stage, and released once the parameter record has been produced.
"""

from typing import Dict, Optional, Tuple
import logging

import numpy as np
from scipy import ndimage

from .errors import GridAllocationError

logger = logging.getLogger(__name__)


# ==============================================================================
# NEIGHBOUR GEOMETRY
# ==============================================================================
#
# Neighbours follow the ESRI D8 ordering, starting east and turning
# counter-clockwise:
#
#   3  2  1
#   4  x  0
#   5  6  7
#
# NEIGHBOUR_KIND selects the spacing used for slopes and contour lengths:
#   0 = east/west (spacing dx), 1 = north/south (spacing dy), 2 = diagonal

NEIGHBOUR_OFFSETS = np.array([
    (0, 1),    # East
    (-1, 1),   # Northeast
    (-1, 0),   # North
    (-1, -1),  # Northwest
    (0, -1),   # West
    (1, -1),   # Southwest
    (1, 0),    # South
    (1, 1),    # Southeast
], dtype=np.int64)

KIND_EAST_WEST = 0
KIND_NORTH_SOUTH = 1
KIND_DIAGONAL = 2

NEIGHBOUR_KIND = np.array([0, 2, 1, 2, 0, 2, 1, 2], dtype=np.int64)

ONE_OVER_SQRT2 = 0.707106781187


def allocate_grid(
    shape: Tuple[int, ...],
    name: str,
    dtype=np.float64,
    fill_value: float = 0.0,
) -> np.ndarray:
    """
    Allocate a grid filled with ``fill_value``.

    Raises:
        GridAllocationError: If numpy cannot allocate the array
    """
    try:
        if fill_value == 0:
            return np.zeros(shape, dtype=dtype)
        return np.full(shape, fill_value, dtype=dtype)
    except (MemoryError, ValueError) as e:
        raise GridAllocationError(name, shape) from e


def valid_neighbour_count(valid: np.ndarray) -> np.ndarray:
    """Number of valid cells among each cell's 8 neighbours (outside the grid counts as invalid)."""
    kernel = np.ones((3, 3), dtype=np.int32)
    kernel[1, 1] = 0
    return ndimage.convolve(valid.astype(np.int32), kernel, mode="constant", cval=0)


def boundary_mask(shape: Tuple[int, int]) -> np.ndarray:
    """Boolean mask of the outermost rows and columns."""
    mask = np.zeros(shape, dtype=bool)
    mask[0, :] = True
    mask[-1, :] = True
    mask[:, 0] = True
    mask[:, -1] = True
    return mask


class RasterStore:
    """
    Container owning the elevation grid and every grid derived from it.

    Use as a context manager so that all grids are dropped once the
    pipeline has emitted its record::

        with RasterStore(dem.shape, nodata) as store:
            store.load_elevation(dem)
            ...
    """

    def __init__(self, shape: Tuple[int, int], nodata: float):
        if len(shape) != 2 or shape[0] < 1 or shape[1] < 1:
            raise ValueError(f"Grid shape must be 2D and non-empty, got {shape}")
        self.shape = (int(shape[0]), int(shape[1]))
        self.nodata = float(nodata)
        self.valid: Optional[np.ndarray] = None
        self._grids: Dict[str, np.ndarray] = {}

    def __enter__(self) -> "RasterStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __contains__(self, name: str) -> bool:
        return name in self._grids

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            return self._grids[name]
        except KeyError:
            raise KeyError(f"Grid '{name}' has not been created in this store") from None

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._grids)

    @property
    def valid_count(self) -> int:
        return 0 if self.valid is None else int(np.count_nonzero(self.valid))

    def allocate(self, name: str, layers: Optional[int] = None, dtype=np.float64) -> np.ndarray:
        """Create (or replace) a zero-filled grid, optionally with leading layers."""
        shape = self.shape if layers is None else (layers,) + self.shape
        grid = allocate_grid(shape, name, dtype=dtype)
        self._grids[name] = grid
        return grid

    def put(self, name: str, grid: np.ndarray) -> np.ndarray:
        """Register a grid produced by a stage."""
        if grid.shape[-2:] != self.shape:
            raise ValueError(f"Grid '{name}' has shape {grid.shape}, expected {self.shape}")
        self._grids[name] = grid
        return grid

    def load_elevation(self, elevation: np.ndarray) -> np.ndarray:
        """
        Copy the raw elevation into the store and derive the validity mask.

        Cells equal to the no-data value, negative cells and NaNs are invalid.
        """
        if elevation.shape != self.shape:
            raise ValueError(f"Elevation has shape {elevation.shape}, expected {self.shape}")
        grid = self.allocate("elevation")
        grid[:] = elevation
        invalid = (grid == self.nodata) | (grid < 0) | np.isnan(grid)
        grid[invalid] = self.nodata
        self.valid = ~invalid
        logger.debug(f"Loaded elevation {self.shape}: {self.valid_count:,} valid cells")
        return grid

    def snapshot(self) -> Dict[str, np.ndarray]:
        """Independent copies of every grid, safe to keep after release()."""
        grids = {name: grid.copy() for name, grid in self._grids.items()}
        if self.valid is not None:
            grids["valid"] = self.valid.copy()
        return grids

    def release(self) -> None:
        """Drop every grid held by the store."""
        if self._grids:
            logger.debug(f"Releasing {len(self._grids)} grids")
        self._grids.clear()
        self.valid = None
