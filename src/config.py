"""Configuration module for the wetland-profile project.

Centralizes the default settings and constants of the lake/wetland
parameterization.
"""

# Default settings
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_NODATA = -9999.0

# Conditioning and routing
DEFAULT_FILL_INCREMENT = 0.01  # metres added per pit/flat fix
DEFAULT_FLOW_EXPONENT = 1.1  # slope power of the multiple-flow-direction weights

# Topographic index
DEFAULT_VERTICAL_RESOLUTION = 2.3  # assumed vertical resolution of the DEM (m)
DEFAULT_WETLAND_THRESHOLD = 13552.0
DEFAULT_WATER_THRESHOLD = 216623.0

# Profile aggregation
DEFAULT_MAX_BIN_AREA_FRACTION = 0.091
DEFAULT_MIN_WETLAND_BINS = 5
DEFAULT_LAKE_BINS = 4
DEFAULT_AREA_TOLERANCE = 1e-5

# Regional lake depth (m) vs. lake area (km^2) regression
DEFAULT_DEPTH_INTERCEPT = 7.04
DEFAULT_DEPTH_SLOPE = -0.07
DEFAULT_DEPTH_BREAKPOINT_KM2 = 40.9375
DEFAULT_DEPTH_CONSTANT = 4.17

# Geodesy
EARTH_RADIUS_KM = 6371.0
