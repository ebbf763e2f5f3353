"""
Multiple-flow-direction (MFD) flow accumulation.

Each valid cell starts with its own area. Cells are visited from the highest
conditioned elevation to the lowest; each one splits its accumulated area
among all strictly lower valid neighbours in proportion to
``(drop / distance) ** exponent``. On a conditioned (depression-free) surface
the "strictly lower" relation is acyclic, so one pass in descending order
completes every accumulation before it is passed on.

Flow fractions are kept per direction in an ``(8, rows, cols)`` array ordered
like ``NEIGHBOUR_OFFSETS`` (E, NE, N, NW, W, SW, S, SE).
"""

from typing import Tuple
import logging

import numpy as np
from numba import jit

from .ranking import RankedCells
from .raster_store import (
    KIND_EAST_WEST,
    KIND_NORTH_SOUTH,
    NEIGHBOUR_KIND,
    NEIGHBOUR_OFFSETS,
    ONE_OVER_SQRT2,
    allocate_grid,
)

logger = logging.getLogger(__name__)


@jit(nopython=True, cache=True)
def _route_mfd_jit(
    topo: np.ndarray,
    valid: np.ndarray,
    order_rows: np.ndarray,
    order_cols: np.ndarray,
    dx: float,
    dy: float,
    exponent: float,
    offsets: np.ndarray,
    kinds: np.ndarray,
    accumulation: np.ndarray,
    fractions: np.ndarray,
) -> int:
    """
    JIT-compiled MFD routing (numba accelerated).

    ``order_rows``/``order_cols`` list valid cells highest first. Modifies
    accumulation and fractions in-place; returns the number of cells without
    a lower neighbour.
    """
    rows, cols = topo.shape
    diagonal_spacing = 0.5 * (dx + dy)
    weights = np.zeros(8, dtype=np.float64)
    sinks = 0

    for t in range(order_rows.shape[0]):
        i = order_rows[t]
        j = order_cols[t]
        if not valid[i, j]:
            continue

        elev = topo[i, j]
        total = 0.0
        for k in range(8):
            weights[k] = 0.0
            ni = i + offsets[k, 0]
            nj = j + offsets[k, 1]
            if ni < 0 or nj < 0 or ni >= rows or nj >= cols:
                continue
            if not valid[ni, nj]:
                continue
            drop = elev - topo[ni, nj]
            if drop <= 0.0:
                continue

            if kinds[k] == KIND_EAST_WEST:
                w = (drop / dx) ** exponent
            elif kinds[k] == KIND_NORTH_SOUTH:
                w = (drop / dy) ** exponent
            else:
                w = (drop * ONE_OVER_SQRT2 / diagonal_spacing) ** exponent
            weights[k] = w
            total += w

        if total <= 0.0:
            # Local sink of the conditioned surface keeps its accumulation
            sinks += 1
            continue

        outflow = accumulation[i, j]
        for k in range(8):
            if weights[k] > 0.0:
                fraction = weights[k] / total
                fractions[k, i, j] = fraction
                accumulation[i + offsets[k, 0], j + offsets[k, 1]] += outflow * fraction

    return sinks


def route_flow(
    conditioned: np.ndarray,
    valid: np.ndarray,
    order: RankedCells,
    dx: float,
    dy: float,
    exponent: float = 1.1,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute MFD flow accumulation over a conditioned DEM.

    Parameters
    ----------
    conditioned : np.ndarray
        Depression-free elevation grid from ``fill_pits_and_flats``
    valid : np.ndarray (bool)
        True for cells holding data
    order : RankedCells
        Valid cells ranked by conditioned elevation (ascending); routed
        from the end of the ranking backwards
    dx, dy : float
        Cell width (east-west) and height (north-south) in metres
    exponent : float, default 1.1
        Slope power of the partition weights

    Returns
    -------
    accumulation : np.ndarray (float64)
        Upstream contributing area (m^2) through each cell, including the
        cell itself; 0 for no-data cells
    fractions : np.ndarray (float64, shape (8, rows, cols))
        Fraction of each cell's flow sent to each neighbour; all zero for
        sinks and no-data cells

    Notes
    -----
    Cardinal neighbours use ``drop / dx`` (east-west) or ``drop / dy``
    (north-south). Diagonal drops are scaled by ``1/sqrt(2)`` and divided by
    the mean spacing ``(dx + dy) / 2``. With square cells the fractions are
    those of Pelletier's (2008) MFD scheme.
    """
    if conditioned.shape != valid.shape:
        raise ValueError(
            f"conditioned {conditioned.shape} and valid {valid.shape} must have the same shape"
        )
    if dx <= 0 or dy <= 0:
        raise ValueError(f"Cell dimensions must be positive, got dx={dx}, dy={dy}")

    rows, cols = conditioned.shape
    accumulation = allocate_grid((rows, cols), "flow_accumulation")
    accumulation[valid] = dx * dy
    fractions = allocate_grid((8, rows, cols), "flow_fractions")

    highest_first = order.descending()
    sinks = _route_mfd_jit(
        np.ascontiguousarray(conditioned, dtype=np.float64),
        np.ascontiguousarray(valid, dtype=np.bool_),
        np.ascontiguousarray(highest_first.rows),
        np.ascontiguousarray(highest_first.columns),
        float(dx),
        float(dy),
        float(exponent),
        NEIGHBOUR_OFFSETS,
        NEIGHBOUR_KIND,
        accumulation,
        fractions,
    )

    logger.info(
        f"  MFD routing: {len(order):,} cells, {sinks:,} sinks, "
        f"max accumulation {accumulation.max():.3e} m^2"
    )
    return accumulation, fractions


def outflow_totals(fractions: np.ndarray) -> np.ndarray:
    """Sum of the eight outgoing fractions of every cell (1 or 0)."""
    return fractions.sum(axis=0)


def sink_mask(fractions: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """Valid cells that send no flow to any neighbour."""
    return valid & (outflow_totals(fractions) == 0.0)
