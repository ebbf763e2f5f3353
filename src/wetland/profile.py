"""
Lake/wetland elevation–area profile for the VIC lake and wetland model.

The profile starts with the open-water part (an idealised bathymetric basin
whose mean depth comes from a regional depth–area regression) and continues
with the wetland part, built from wetland cells ranked by wetness index.
Each bin records the cumulative area fraction of the grid below a profile
elevation; bins are written highest first on one line after a header line.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union
import logging
import math

import numpy as np

from .errors import AreaConservationError, ConfigError, UnknownFormatError
from .ranking import WetlandRanking
from .settings import LakeDepthRegression, ProfileConfig
from .topographic_index import TopographicIndex

logger = logging.getLogger(__name__)


class OutputFormat(str, Enum):
    """Layouts of the parameter record."""

    SEA = "SEA"
    LAKE = "LAKE"

    @property
    def flag(self) -> int:
        """Format flag written in the header (0 = SEA, 1 = LAKE)."""
        return 0 if self is OutputFormat.SEA else 1


def parse_output_format(value: Union[str, OutputFormat]) -> OutputFormat:
    """Return the OutputFormat for ``"SEA"`` or ``"LAKE"``; raise UnknownFormatError otherwise."""
    if isinstance(value, OutputFormat):
        return value
    try:
        return OutputFormat(value)
    except ValueError:
        raise UnknownFormatError(str(value)) from None


@dataclass
class ProfileBin:
    """One slice of the elevation–area profile."""

    kind: str
    """'lake' or 'wetland'."""

    area_fraction: float
    """Fraction of the valid grid area in this bin."""

    cumulative_area: float
    """Fraction of the valid grid area in this and all lower bins."""

    bathymetry: float
    """Depth of the bin top above the lake bottom (m)."""

    profile_elevation: float
    """Elevation written to the record (bathymetry, or the SEA rescaling)."""

    elevation: float = 0.0
    """Representative DEM elevation of the bin (wetland bins)."""

    wetness_index: float = 0.0
    tan_beta: float = 0.0
    elevation_difference: float = 0.0
    cell_count: int = 0


@dataclass
class LakeParameterRecord:
    """Lake/wetland parameters of one model grid cell."""

    grid_id: str
    output_format: OutputFormat
    bins: List[ProfileBin] = field(default_factory=list)
    lake_depth: float = 0.0
    water_fraction: float = 0.0
    wetland_fraction: float = 0.0
    valid_count: int = 0

    @property
    def bin_count(self) -> int:
        return len(self.bins) if self.bins else 1

    @property
    def cumulative_area(self) -> float:
        return self.bins[-1].cumulative_area if self.bins else 0.0

    def header_line(self) -> str:
        depth = self.lake_depth + 0.01 if self.bins else 0.0
        return (
            f"{self.grid_id} {self.output_format.flag} {self.bin_count} "
            f"{depth:.3f} 0.01 {depth:.3f} 1.0"
        )

    def data_line(self) -> str:
        if not self.bins:
            return "0.0 0.0 0.0 0.0" if self.output_format is OutputFormat.SEA else "0.0 0.0"

        fields_out = []
        for b in reversed(self.bins):
            if self.output_format is OutputFormat.SEA:
                fields_out.append(
                    f"{b.profile_elevation:.3f} {b.cumulative_area:.5f} "
                    f"{b.wetness_index:.1f} {b.tan_beta:.4f}"
                )
            else:
                fields_out.append(f"{b.profile_elevation:.3f} {b.cumulative_area:.5f}")
        return " ".join(fields_out)

    def lines(self) -> List[str]:
        return [self.header_line(), self.data_line()]

    def __str__(self) -> str:
        return "\n".join(self.lines())


def lake_depth(area_km2: float, regression: LakeDepthRegression = LakeDepthRegression()) -> float:
    """
    Mean lake depth (m) for a lake of ``area_km2``.

    With the default regression: ``7.04 - 0.07 * area`` below 40.9375 km^2,
    4.17 m above.
    """
    depth = regression.depth(area_km2)
    if depth <= 0:
        raise ConfigError(
            f"Lake depth regression gives non-positive depth {depth} for area {area_km2} km^2"
        )
    return depth


def wetland_bin_count(
    wetland_fraction: float,
    max_bin_area_fraction: float = 0.091,
    min_bins: int = 5,
) -> int:
    """Number of wetland bins so no bin exceeds ``max_bin_area_fraction`` (at least ``min_bins``)."""
    if wetland_fraction <= 0:
        return 0
    return max(int(math.ceil(wetland_fraction / max_bin_area_fraction)), min_bins)


def _lake_bins(
    water_fraction: float,
    depth: float,
    n_bins: int,
    wetness: float,
    tan_beta: float,
) -> List[ProfileBin]:
    """Bins of an idealised basin whose area grows with the square root of depth."""
    bins = []
    previous = 0.0
    for i in range(1, n_bins + 1):
        bathymetry = i * depth / n_bins
        cumulative = water_fraction * math.sqrt(bathymetry / depth)
        bins.append(ProfileBin(
            kind="lake",
            area_fraction=cumulative - previous,
            cumulative_area=cumulative,
            bathymetry=bathymetry,
            profile_elevation=bathymetry,
            wetness_index=wetness,
            tan_beta=tan_beta,
        ))
        previous = cumulative
    return bins


def _wetland_bins(
    wetness: np.ndarray,
    tan_beta: np.ndarray,
    elevation_difference: np.ndarray,
    elevation: np.ndarray,
    n_bins: int,
    valid_count: int,
    base_area: float,
    depth: float,
) -> List[ProfileBin]:
    """
    Partition the wettest-first wetland population into ``n_bins`` bins.

    Bin ``k`` closes once the cumulative cell count reaches
    ``ceil(k * n / n_bins)``, so every bin holds the same share of the
    wetland area up to one cell. The representative elevation is the
    ascending elevation at the closing position. With fewer cells than bins
    some positions repeat; those bins are empty and carry the previous
    bin's cumulative area and attributes.
    """
    n = wetness.shape[0]
    bins = []
    cumulative = base_area
    start = 0
    lowest = elevation[0]
    for k in range(1, n_bins + 1):
        end = -(-k * n // n_bins)
        count = end - start
        if count == 0:
            previous = bins[-1]
            bins.append(ProfileBin(
                kind="wetland",
                area_fraction=0.0,
                cumulative_area=previous.cumulative_area,
                bathymetry=previous.bathymetry,
                profile_elevation=previous.profile_elevation,
                elevation=previous.elevation,
                wetness_index=previous.wetness_index,
                tan_beta=previous.tan_beta,
                elevation_difference=previous.elevation_difference,
            ))
            continue
        area = count / valid_count
        cumulative += area
        representative = float(elevation[end - 1])
        bathymetry = representative - lowest + depth
        bins.append(ProfileBin(
            kind="wetland",
            area_fraction=area,
            cumulative_area=cumulative,
            bathymetry=bathymetry,
            profile_elevation=bathymetry,
            elevation=representative,
            wetness_index=float(np.mean(wetness[start:end])),
            tan_beta=float(np.mean(tan_beta[start:end])),
            elevation_difference=float(np.mean(elevation_difference[start:end])),
            cell_count=count,
        ))
        start = end
    return bins


def _rescale_sea_elevations(
    bins: List[ProfileBin], max_wetness: float, water_threshold: float, depth: float
) -> None:
    """
    Replace wetland bin elevations by a synthetic profile keyed to wetness.

    Elevation above the lake rises by ``2 * maxTWI / waterThreshold`` between
    the wettest cell and the driest wetland bin, linearly in the bin's drop
    in mean wetness index.
    """
    # The first wetland bin is placed like every other one, also without a lake
    wetland = [b for b in bins if b.kind == "wetland"]
    if not wetland:
        return

    elevation_range = 2.0 * max_wetness / water_threshold
    span = max_wetness - wetland[-1].wetness_index
    for k, b in enumerate(wetland):
        if span > 0:
            position = (max_wetness - b.wetness_index) / span
        else:
            # All bins share one wetness index: spread evenly by position
            position = (k + 1) / len(wetland)
        b.profile_elevation = depth + elevation_range * position


def aggregate_profile(
    wetness: np.ndarray,
    tan_beta: np.ndarray,
    elevation_difference: np.ndarray,
    elevation: np.ndarray,
    water_fraction: float,
    wetland_fraction: float,
    valid_count: int,
    cell_area_m2: float,
    output_format: Union[str, OutputFormat],
    grid_id: str,
    config: Optional[ProfileConfig] = None,
) -> LakeParameterRecord:
    """
    Build the lake/wetland profile of one grid.

    Args:
        wetness: Wetness index of the wetland cells, highest first
        tan_beta: tan-beta of the same cells, same order
        elevation_difference: Mean drop toward wetter neighbours, same order
        elevation: Elevation of the same wetland population, lowest first
        water_fraction: Fraction of valid cells classified as water
        wetland_fraction: Fraction of valid cells classified as wetland
        valid_count: Number of valid cells in the grid
        cell_area_m2: Area of one cell (m^2)
        output_format: "SEA" or "LAKE"
        grid_id: Identifier written at the start of the header
        config: ProfileConfig (defaults when omitted)

    Returns:
        LakeParameterRecord

    Raises:
        UnknownFormatError: If output_format is not SEA or LAKE
        ValueError: If the wetland arrays disagree in length, or are empty
            while wetland_fraction is positive
        AreaConservationError: If the final cumulative area differs from
            water_fraction + wetland_fraction by more than the tolerance
    """
    config = config or ProfileConfig()
    fmt = parse_output_format(output_format)
    n = int(wetness.shape[0])
    if not (tan_beta.shape[0] == elevation_difference.shape[0] == elevation.shape[0] == n):
        raise ValueError("Wetland attribute arrays must all have the same length")

    bins: List[ProfileBin] = []
    depth = 0.0
    wettest = float(wetness[0]) if n else 0.0
    wettest_tan_beta = float(tan_beta[0]) if n else 0.0

    if water_fraction > 0:
        area_km2 = water_fraction * valid_count * cell_area_m2 / (1000.0 * 1000.0)
        depth = lake_depth(area_km2, config.depth_regression)
        bins.extend(_lake_bins(water_fraction, depth, config.lake_bins, wettest, wettest_tan_beta))
        logger.info(f"  Lake: area {area_km2:.4f} km^2, mean depth {depth:.3f} m")

    n_wetland_bins = wetland_bin_count(
        wetland_fraction, config.max_bin_area_fraction, config.min_wetland_bins
    )
    if n == 0 and n_wetland_bins > 0:
        raise ValueError(f"Wetland fraction {wetland_fraction} given without wetland cells")
    if n_wetland_bins > n:
        logger.warning(
            f"Only {n} wetland cells for {n_wetland_bins} bins in grid {grid_id}; "
            f"{n_wetland_bins - n} bins stay empty"
        )

    if n_wetland_bins > 0:
        base_area = bins[-1].cumulative_area if bins else 0.0
        wetland = _wetland_bins(
            wetness, tan_beta, elevation_difference, elevation,
            n_wetland_bins, valid_count, base_area, depth,
        )
        if fmt is OutputFormat.SEA:
            _rescale_sea_elevations(wetland, wettest, config.water_threshold, depth)
        bins.extend(wetland)
        logger.info(f"  Wetland: {n:,} cells in {n_wetland_bins} bins")

    record = LakeParameterRecord(
        grid_id=str(grid_id),
        output_format=fmt,
        bins=bins,
        lake_depth=depth,
        water_fraction=water_fraction,
        wetland_fraction=wetland_fraction,
        valid_count=valid_count,
    )

    expected = water_fraction + wetland_fraction
    discrepancy = record.cumulative_area - expected
    if abs(discrepancy) > config.area_tolerance:
        raise AreaConservationError(discrepancy, record.cumulative_area, expected)

    return record


def build_profile(
    ranking: WetlandRanking,
    index: TopographicIndex,
    cell_area_m2: float,
    output_format: Union[str, OutputFormat],
    grid_id: str,
    config: Optional[ProfileConfig] = None,
) -> LakeParameterRecord:
    """Aggregate ranked wetland cells and class fractions into a parameter record."""
    wettest_first = ranking.by_wetness.descending()
    return aggregate_profile(
        wetness=wettest_first.rank,
        tan_beta=wettest_first.take(index.tan_beta),
        elevation_difference=wettest_first.take(index.elevation_difference),
        elevation=ranking.by_elevation.rank,
        water_fraction=index.water_fraction,
        wetland_fraction=index.wetland_fraction,
        valid_count=index.valid_count,
        cell_area_m2=cell_area_m2,
        output_format=output_format,
        grid_id=grid_id,
        config=config,
    )
