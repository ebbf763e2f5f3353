"""
Tunable constants of the lake/wetland parameterization.

The wetness thresholds and the lake depth regression were tuned for one
study region. They are kept as defaults, not as facts: override them through
``ProfileConfig`` or a JSON file for other regions.
"""

from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Union
import json
import logging

from src import config as defaults
from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WetnessThresholds:
    """Wetness-index limits separating upland, wetland and open water."""

    wetland: float = defaults.DEFAULT_WETLAND_THRESHOLD
    """Cells with TWI >= wetland (and < water) are wetland."""

    water: float = defaults.DEFAULT_WATER_THRESHOLD
    """Cells with TWI >= water are open water."""

    def __post_init__(self):
        if not 0 < self.wetland < self.water:
            raise ConfigError(
                f"Thresholds must satisfy 0 < wetland < water, got wetland={self.wetland}, "
                f"water={self.water}"
            )


@dataclass(frozen=True)
class LakeDepthRegression:
    """Two-branch regression of mean lake depth (m) on lake area (km^2)."""

    intercept: float = defaults.DEFAULT_DEPTH_INTERCEPT
    slope: float = defaults.DEFAULT_DEPTH_SLOPE
    breakpoint_km2: float = defaults.DEFAULT_DEPTH_BREAKPOINT_KM2
    constant: float = defaults.DEFAULT_DEPTH_CONSTANT

    def depth(self, area_km2: float) -> float:
        if area_km2 < self.breakpoint_km2:
            return self.intercept + self.slope * area_km2
        return self.constant


@dataclass
class ProfileConfig:
    """Configuration for the lake/wetland profile pipeline."""

    fill_increment: float = defaults.DEFAULT_FILL_INCREMENT
    """Elevation added to a pit or flat cell above its lowest neighbour (m)."""

    flow_exponent: float = defaults.DEFAULT_FLOW_EXPONENT
    """Slope power used to weight multiple-flow-direction partitions."""

    vertical_resolution: float = defaults.DEFAULT_VERTICAL_RESOLUTION
    """Assumed DEM vertical resolution (m), sets the tan-beta floor."""

    wetland_threshold: float = defaults.DEFAULT_WETLAND_THRESHOLD
    """Lower TWI bound for wetland cells."""

    water_threshold: float = defaults.DEFAULT_WATER_THRESHOLD
    """Lower TWI bound for open-water cells."""

    max_bin_area_fraction: float = defaults.DEFAULT_MAX_BIN_AREA_FRACTION
    """Maximum fraction of the grid area held by one wetland bin."""

    min_wetland_bins: int = defaults.DEFAULT_MIN_WETLAND_BINS
    """Minimum number of wetland bins when wetland is present."""

    lake_bins: int = defaults.DEFAULT_LAKE_BINS
    """Number of depth bins describing the lake bathymetry."""

    area_tolerance: float = defaults.DEFAULT_AREA_TOLERANCE
    """Allowed mismatch between the profile's final area and water + wetland."""

    depth_intercept: float = defaults.DEFAULT_DEPTH_INTERCEPT
    depth_slope: float = defaults.DEFAULT_DEPTH_SLOPE
    depth_breakpoint_km2: float = defaults.DEFAULT_DEPTH_BREAKPOINT_KM2
    depth_constant: float = defaults.DEFAULT_DEPTH_CONSTANT

    geographic: bool = True
    """Cell size is in degrees; cell dimensions are measured on the sphere."""

    earth_radius_km: float = defaults.EARTH_RADIUS_KM
    """Mean Earth radius used for great-circle cell dimensions."""

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError if any value is outside its valid range."""
        if self.fill_increment <= 0:
            raise ConfigError(f"fill_increment must be positive, got {self.fill_increment}")
        if self.flow_exponent <= 0:
            raise ConfigError(f"flow_exponent must be positive, got {self.flow_exponent}")
        if self.vertical_resolution <= 0:
            raise ConfigError(
                f"vertical_resolution must be positive, got {self.vertical_resolution}"
            )
        if not 0 < self.max_bin_area_fraction <= 1:
            raise ConfigError(
                f"max_bin_area_fraction must be in (0, 1], got {self.max_bin_area_fraction}"
            )
        if self.min_wetland_bins < 1:
            raise ConfigError(f"min_wetland_bins must be >= 1, got {self.min_wetland_bins}")
        if self.lake_bins < 1:
            raise ConfigError(f"lake_bins must be >= 1, got {self.lake_bins}")
        if self.area_tolerance < 0:
            raise ConfigError(f"area_tolerance must be non-negative, got {self.area_tolerance}")
        if self.earth_radius_km <= 0:
            raise ConfigError(f"earth_radius_km must be positive, got {self.earth_radius_km}")
        # Raises ConfigError on inconsistent thresholds
        self.thresholds

    @property
    def thresholds(self) -> WetnessThresholds:
        return WetnessThresholds(wetland=self.wetland_threshold, water=self.water_threshold)

    @property
    def depth_regression(self) -> LakeDepthRegression:
        return LakeDepthRegression(
            intercept=self.depth_intercept,
            slope=self.depth_slope,
            breakpoint_km2=self.depth_breakpoint_km2,
            constant=self.depth_constant,
        )

    def with_overrides(self, **overrides) -> "ProfileConfig":
        """Return a copy with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        return replace(self, **overrides)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "ProfileConfig":
        """
        Load a configuration from a JSON object of field overrides.

        Args:
            path: JSON file, e.g. ``{"wetland_threshold": 12000, "geographic": false}``

        Returns:
            ProfileConfig with defaults for every key not present in the file

        Raises:
            ConfigError: If the file is missing, not a JSON object, or has unknown keys
        """
        path = Path(path)
        logger.debug(f"Loading profile configuration from {path}")
        try:
            with open(path) as f:
                overrides = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

        if not isinstance(overrides, dict):
            raise ConfigError(f"Configuration file {path} must contain a JSON object")

        return cls().with_overrides(**overrides)
