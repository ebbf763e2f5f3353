"""Pytest configuration and fixtures for wetland-profile tests."""
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest
import numpy as np


def write_ascii_grid(path, data, cellsize=30.0, xllcorner=0.0, yllcorner=0.0, nodata=-9999):
    """Write ``data`` as a 6-line-header ASCII grid."""
    rows, cols = data.shape
    lines = [
        f"ncols {cols}",
        f"nrows {rows}",
        f"xllcorner {xllcorner}",
        f"yllcorner {yllcorner}",
        f"cellsize {cellsize}",
        f"NODATA_value {nodata}",
    ]
    for row in data:
        lines.append(" ".join(f"{v:.4f}" for v in row))
    path = Path(path)
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def ascii_grid():
    """Factory writing ASCII grids: ``ascii_grid(path, data, cellsize=...)``."""
    return write_ascii_grid


@pytest.fixture
def valley_dem():
    """15x15 V-shaped valley draining south along the middle column."""
    rows, cols = np.mgrid[0:15, 0:15]
    return 100.0 + 0.5 * np.abs(cols - 7) + 0.2 * (14 - rows)


@pytest.fixture
def cone_dem():
    """5x5 single peak in the centre, falling off radially."""
    rows, cols = np.mgrid[0:5, 0:5]
    return 100.0 - 10.0 * np.hypot(rows - 2, cols - 2)


@pytest.fixture
def valley_asc(tmp_path, valley_dem):
    """Valley DEM written as an ASCII grid with 30 m cells."""
    return write_ascii_grid(tmp_path / "valley.asc", valley_dem, cellsize=30.0)


@pytest.fixture
def project_root():
    """Get the project root directory."""
    return Path(__file__).parent.parent
