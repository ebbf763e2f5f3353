"""
Exception hierarchy for the lake/wetland profile pipeline.

Library code raises these; only the command line turns them into log
records and exit codes.
"""


class WetlandProfileError(Exception):
    """Base class for every failure of the profile pipeline."""

    exit_code = 1


class InputError(WetlandProfileError):
    """The DEM could not be used as input."""


class DemNotFoundError(InputError, FileNotFoundError):
    """Raised when the DEM path does not exist."""


class EmptyDemError(InputError):
    """Raised when the DEM file contains no data at all."""

    exit_code = 0


class DemFormatError(InputError):
    """Raised when the DEM header or body cannot be parsed."""


class ConfigError(WetlandProfileError, ValueError):
    """Raised for invalid configuration values."""


class UnknownFormatError(WetlandProfileError, ValueError):
    """Raised when the output format flag is neither SEA nor LAKE."""

    def __init__(self, flag: str):
        self.flag = flag
        super().__init__(f"Output option is not recognized: {flag!r} (expected 'SEA' or 'LAKE')")


class GridAllocationError(WetlandProfileError, MemoryError):
    """Raised when a grid cannot be allocated."""

    exit_code = 3

    def __init__(self, grid_name: str, shape=None):
        self.grid_name = grid_name
        self.shape = shape
        super().__init__(f"Cannot allocate memory for grid '{grid_name}' with shape {shape}")


class NoValidDataError(WetlandProfileError):
    """Raised when every cell of a grid is no-data."""

    def __init__(self, grid_id: str):
        self.grid_id = grid_id
        super().__init__(f"No valid data in current cell: {grid_id}")


class AreaConservationError(WetlandProfileError):
    """Raised when the profile's cumulative area does not match the classified area."""

    exit_code = 4

    def __init__(self, discrepancy: float, cumulative: float, expected: float):
        self.discrepancy = discrepancy
        self.cumulative = cumulative
        self.expected = expected
        super().__init__(
            f"Total wetland fraction does not match: {discrepancy:e} "
            f"(cumulative {cumulative:.6f}, expected {expected:.6f})"
        )
