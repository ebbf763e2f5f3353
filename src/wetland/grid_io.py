"""
DEM input and grid output.

Reads the 6-line-header ASCII grid format (``ncols``, ``nrows``,
``xllcorner``, ``yllcorner``, ``cellsize``, ``NODATA_value``) and any other
single-band raster rasterio can open, and writes derived grids as GeoTIFF.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union
import logging

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.errors import RasterioIOError
from rasterio.transform import from_origin

from src import config as defaults
from .errors import DemFormatError, DemNotFoundError, EmptyDemError

logger = logging.getLogger(__name__)

ASCII_GRID_SUFFIXES = (".asc", ".txt", ".grd", ".dem")


@dataclass(frozen=True)
class GridHeader:
    """Georeferencing of a DEM, mirroring the ASCII grid header."""

    ncols: int
    nrows: int
    xllcorner: float
    yllcorner: float
    cellsize: float
    nodata: float = defaults.DEFAULT_NODATA
    crs: Optional[CRS] = None

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.nrows, self.ncols)

    @property
    def transform(self) -> rasterio.Affine:
        top = self.yllcorner + self.nrows * self.cellsize
        return from_origin(self.xllcorner, top, self.cellsize, self.cellsize)


@dataclass
class DemGrid:
    """Elevation values plus their header."""

    data: np.ndarray
    header: GridHeader

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @classmethod
    def from_array(
        cls,
        data: np.ndarray,
        cellsize: float,
        nodata: float = defaults.DEFAULT_NODATA,
        xllcorner: float = 0.0,
        yllcorner: float = 0.0,
        crs: Optional[CRS] = None,
    ) -> "DemGrid":
        """Wrap an in-memory elevation array; negative values become no-data."""
        data = np.array(data, dtype=np.float64)
        if data.ndim != 2:
            raise ValueError(f"DEM data must be 2D, got shape {data.shape}")
        data[(data < 0) | np.isnan(data)] = nodata
        header = GridHeader(
            ncols=data.shape[1],
            nrows=data.shape[0],
            xllcorner=float(xllcorner),
            yllcorner=float(yllcorner),
            cellsize=float(cellsize),
            nodata=float(nodata),
            crs=crs,
        )
        return cls(data=data, header=header)


def load_dem(path: Union[str, Path]) -> DemGrid:
    """
    Load a DEM from disk.

    Args:
        path: ASCII grid with the standard 6-line header, or any single-band
            raster readable by rasterio (GeoTIFF, ...)

    Returns:
        DemGrid with float64 data; negative and NaN values are set to no-data

    Raises:
        DemNotFoundError: If the file does not exist
        EmptyDemError: If the file is empty
        DemFormatError: If the header or body cannot be read
    """
    path = Path(path)
    if not path.exists():
        raise DemNotFoundError(f"DEM file not found: {path}")
    if path.stat().st_size == 0:
        raise EmptyDemError(f"DEM file is empty: {path}")

    open_kwargs = {}
    if path.suffix.lower() in ASCII_GRID_SUFFIXES:
        # Keep full precision; the driver otherwise guesses Int32/Float32
        open_kwargs = {"driver": "AAIGrid", "DATATYPE": "Float64"}

    logger.info(f"Loading DEM: {path}")
    try:
        with rasterio.open(path, **open_kwargs) as src:
            if src.count < 1:
                raise DemFormatError(f"No raster bands found in {path}")
            data = src.read(1).astype(np.float64)
            transform = src.transform
            nodata = src.nodata
            crs = src.crs
    except RasterioIOError as e:
        raise DemFormatError(f"Cannot read DEM {path}: {e}") from e

    if abs(abs(transform.a) - abs(transform.e)) > 1e-9 * abs(transform.a):
        raise DemFormatError(
            f"DEM {path} has non-square cells ({transform.a} x {abs(transform.e)})"
        )

    if nodata is None:
        nodata = defaults.DEFAULT_NODATA

    rows, cols = data.shape
    cellsize = abs(transform.a)
    header = GridHeader(
        ncols=cols,
        nrows=rows,
        xllcorner=float(transform.c),
        yllcorner=float(transform.f - rows * cellsize),
        cellsize=float(cellsize),
        nodata=float(nodata),
        crs=crs,
    )

    invalid = (data < 0) | np.isnan(data)
    data[invalid] = header.nodata
    logger.info(
        f"  DEM {rows}x{cols}, cellsize {cellsize}, "
        f"{np.count_nonzero(data != header.nodata):,} valid cells"
    )
    return DemGrid(data=data, header=header)


def great_circle_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    radius_km: float = defaults.EARTH_RADIUS_KM,
) -> float:
    """Great-circle distance in km between two points given in degrees."""
    phi1, theta1, phi2, theta2 = np.radians([lat1, lon1, lat2, lon2])
    cos_angle = (
        np.cos(phi1) * np.cos(theta1) * np.cos(phi2) * np.cos(theta2)
        + np.cos(phi1) * np.sin(theta1) * np.cos(phi2) * np.sin(theta2)
        + np.sin(phi1) * np.sin(phi2)
    )
    return float(radius_km * np.arccos(min(1.0, cos_angle)))


def cell_dimensions(
    header: GridHeader,
    geographic: bool = True,
    radius_km: float = defaults.EARTH_RADIUS_KM,
) -> Tuple[float, float]:
    """
    Cell width (dx, east-west) and height (dy, north-south) in metres.

    Geographic grids are measured at the grid centre, one cell east and one
    cell north. Projected grids use the cell size directly.
    """
    if not geographic:
        return float(header.cellsize), float(header.cellsize)

    center_lat = header.yllcorner + header.cellsize * header.nrows / 2
    center_lon = header.xllcorner + header.cellsize * header.ncols / 2
    dx = 1000.0 * great_circle_distance(
        center_lat, center_lon, center_lat, center_lon + header.cellsize, radius_km
    )
    dy = 1000.0 * great_circle_distance(
        center_lat, center_lon, center_lat + header.cellsize, center_lon, radius_km
    )
    return dx, dy


def write_geotiff(
    path: Union[str, Path], data: np.ndarray, header: GridHeader, nodata: Optional[float] = None
) -> Path:
    """
    Write a 2D array to a GeoTIFF aligned with the DEM header.

    Parameters
    ----------
    path : str or Path
        Output file path
    data : np.ndarray
        Data array to write
    header : GridHeader
        Georeferencing of the source DEM
    nodata : float, optional
        No-data value stored in the file (defaults to the header's)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    height, width = data.shape

    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype=data.dtype,
        crs=header.crs,
        transform=header.transform,
        nodata=header.nodata if nodata is None else nodata,
        compress="lzw",
    ) as dst:
        dst.write(data, 1)

    logger.debug(f"Wrote {path}")
    return path
