"""
Ranking of cells by elevation and by wetness index.

Rankings are ascending and stable: cells with equal rank keep row-major order,
so every run over the same grid visits cells in the same order.
"""

from dataclasses import dataclass
from typing import Iterator
import logging

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class RankedCell:
    """Immutable snapshot of one cell in a ranking."""

    rank: float
    row: int
    column: int


@dataclass(frozen=True)
class RankedCells:
    """Cells sorted by rank, stored as parallel arrays."""

    rank: np.ndarray
    rows: np.ndarray
    columns: np.ndarray

    def __len__(self) -> int:
        return int(self.rank.shape[0])

    def __iter__(self) -> Iterator[RankedCell]:
        for rank, row, column in zip(self.rank, self.rows, self.columns):
            yield RankedCell(float(rank), int(row), int(column))

    def __getitem__(self, position: int) -> RankedCell:
        return RankedCell(
            float(self.rank[position]), int(self.rows[position]), int(self.columns[position])
        )

    def descending(self) -> "RankedCells":
        """Same cells, highest rank first."""
        return RankedCells(self.rank[::-1], self.rows[::-1], self.columns[::-1])

    def take(self, grid: np.ndarray) -> np.ndarray:
        """Values of ``grid`` at the ranked cells, in ranking order."""
        return grid[self.rows, self.columns]


def rank_cells(values: np.ndarray, mask: np.ndarray) -> RankedCells:
    """
    Rank the cells selected by ``mask`` by ascending value.

    Args:
        values: 2D grid of rank values
        mask: Boolean grid selecting the cells to rank

    Returns:
        RankedCells in ascending order, ties in row-major order
    """
    if values.shape != mask.shape:
        raise ValueError(f"values {values.shape} and mask {mask.shape} must have the same shape")

    rows, columns = np.nonzero(mask)
    rank = values[rows, columns].astype(np.float64)
    order = np.argsort(rank, kind="stable")
    return RankedCells(rank[order], rows[order].astype(np.int64), columns[order].astype(np.int64))


@dataclass(frozen=True)
class WetlandRanking:
    """Two parallel rankings of the same wetland cell population."""

    by_wetness: RankedCells
    """Wetland cells by ascending wetness index."""

    by_elevation: RankedCells
    """Wetland cells by ascending conditioned elevation."""

    def __len__(self) -> int:
        return len(self.by_wetness)


def rank_wetland_cells(
    wetness_index: np.ndarray,
    elevation: np.ndarray,
    wetland_mask: np.ndarray,
) -> WetlandRanking:
    """Rank wetland cells by wetness index and, in lockstep, by elevation."""
    ranking = WetlandRanking(
        by_wetness=rank_cells(wetness_index, wetland_mask),
        by_elevation=rank_cells(elevation, wetland_mask),
    )
    logger.debug(f"Ranked {len(ranking):,} wetland cells")
    return ranking
