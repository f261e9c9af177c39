"""Square cell grid backed by a CELL_DTYPE structured array.

The grid only stores cells and answers geometric questions (bounds, Moore
neighbourhood). All state transitions live in engine.py.
"""

from __future__ import annotations

from typing import Iterator, List, Tuple

import numpy as np

from gridepi.types import NO_COUNTDOWN, Cell, HealthState, allocate_cells


class Grid:
    """A size × size matrix of cells. Size is fixed at construction."""

    def __init__(self, size: int):
        if size <= 0:
            raise ValueError(f"Grid size must be positive, got {size}")
        self.size = int(size)
        self.cells = allocate_cells(self.size)

    def __len__(self) -> int:
        return self.size * self.size

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    def _check(self, row: int, col: int) -> None:
        if not self.in_bounds(row, col):
            raise IndexError(
                f"Cell ({row}, {col}) outside {self.size}x{self.size} grid"
            )

    def window(self, row: int, col: int) -> Tuple[int, int, int, int]:
        """Clamped 3x3 window around (row, col) as half-open bounds.

        Returns:
            (r_min, r_max, c_min, c_max), no wraparound.
        """
        return (
            max(0, row - 1),
            min(self.size, row + 2),
            max(0, col - 1),
            min(self.size, col + 2),
        )

    def neighbors(self, row: int, col: int) -> List[Tuple[int, int]]:
        """Moore neighbourhood of (row, col) in row-major order.

        Corner cells have 3 neighbours, edge cells 5, interior cells 8
        (fewer on grids smaller than 3x3).
        """
        self._check(row, col)
        r_min, r_max, c_min, c_max = self.window(row, col)
        return [
            (r, c)
            for r in range(r_min, r_max)
            for c in range(c_min, c_max)
            if (r, c) != (row, col)
        ]

    def cell(self, row: int, col: int) -> Cell:
        """Read-only snapshot of one cell."""
        self._check(row, col)
        rec = self.cells[row, col]
        countdown = int(rec['countdown'])
        return Cell(
            row=row,
            col=col,
            state=HealthState(int(rec['state'])),
            countdown=None if countdown == NO_COUNTDOWN else countdown,
        )

    def __iter__(self) -> Iterator[Cell]:
        """All cells in row-major order."""
        for row in range(self.size):
            for col in range(self.size):
                yield self.cell(row, col)

    def states(self) -> np.ndarray:
        """Copy of the (size, size) state matrix."""
        return self.cells['state'].copy()

    def count_states(self) -> np.ndarray:
        """Full-scan count per HealthState.

        Diagnostic only; the engine keeps its statistics incrementally.
        """
        return np.bincount(
            self.cells['state'].ravel().astype(np.int64),
            minlength=len(HealthState),
        )
