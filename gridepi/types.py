"""Core data types for gridepi.

This module is the SINGLE SOURCE OF TRUTH for:
  - HealthState enumeration
  - CELL_DTYPE: NumPy structured array dtype for grid cells
  - Sentinel values for unset countdown / pending state
  - Read-only views handed to callers (Cell, CellChange, ChangeSet, Statistics)

All modules import these types from here. No other module defines cell fields.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterator, NamedTuple, Optional

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class HealthState(IntEnum):
    """Health compartments for a grid cell.

    HEALTHY → SICK   (infection by a Sick Moore neighbour)
    SICK    → IMMUNE (sickness countdown expires, survives)
    SICK    → DEAD   (sickness countdown expires, dies; absorbing)
    IMMUNE  → HEALTHY (immunity countdown expires)
    """
    HEALTHY = 0
    SICK    = 1
    IMMUNE  = 2
    DEAD    = 3


N_STATES = len(HealthState)


# ═══════════════════════════════════════════════════════════════════════
# CELL_DTYPE — Canonical structured array for grid cells
# ═══════════════════════════════════════════════════════════════════════

NO_COUNTDOWN = -1   # countdown unset (HEALTHY, DEAD)
NO_PENDING = -1     # no transition scheduled for this tick

CELL_DTYPE = np.dtype([
    ('state',     np.int8),    # HealthState enum (0=HEALTHY..3=DEAD)
    ('countdown', np.int32),   # ticks REMAINING in SICK / IMMUNE
                               #   NO_COUNTDOWN otherwise
    ('pending',   np.int8),    # state to enter at commit, NO_PENDING if none
                               #   only ever set inside EpidemicEngine.step()
])


def allocate_cells(size: int) -> np.ndarray:
    """Allocate an all-HEALTHY cell array.

    Args:
        size: Grid edge length.

    Returns:
        Structured array of shape (size, size) with CELL_DTYPE, every cell
        HEALTHY with no countdown and no pending state.
    """
    cells = np.empty((size, size), dtype=CELL_DTYPE)
    cells['state'] = HealthState.HEALTHY
    cells['countdown'] = NO_COUNTDOWN
    cells['pending'] = NO_PENDING
    return cells


# ═══════════════════════════════════════════════════════════════════════
# READ-ONLY VIEWS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Cell:
    """Snapshot of one grid position."""
    row: int
    col: int
    state: HealthState
    countdown: Optional[int] = None

    @property
    def position(self):
        return (self.row, self.col)


class CellChange(NamedTuple):
    """One committed transition: the cell at (row, col) entered new_state."""
    row: int
    col: int
    new_state: HealthState


@dataclass
class ChangeSet:
    """Cells whose state changed during one tick, in row-major commit order.

    Stored as parallel arrays so a caller can redraw in bulk; iterating
    yields CellChange tuples.
    """
    tick: int
    rows: np.ndarray     # (n,) int64
    cols: np.ndarray     # (n,) int64
    states: np.ndarray   # (n,) int8, HealthState values

    def __len__(self) -> int:
        return int(self.rows.shape[0])

    def __iter__(self) -> Iterator[CellChange]:
        for r, c, s in zip(self.rows.tolist(), self.cols.tolist(),
                           self.states.tolist()):
            yield CellChange(r, c, HealthState(s))

    def __bool__(self) -> bool:
        return len(self) > 0

    def counts_by_state(self) -> Dict[HealthState, int]:
        """Number of cells that entered each state this tick."""
        counts = np.bincount(self.states.astype(np.int64), minlength=N_STATES)
        return {state: int(counts[state]) for state in HealthState}

    @classmethod
    def empty(cls, tick: int) -> 'ChangeSet':
        return cls(
            tick=tick,
            rows=np.zeros(0, dtype=np.int64),
            cols=np.zeros(0, dtype=np.int64),
            states=np.zeros(0, dtype=np.int8),
        )


@dataclass(frozen=True)
class Statistics:
    """Aggregate cell counts per HealthState.

    Always sums to size * size.
    """
    healthy: int = 0
    sick: int = 0
    immune: int = 0
    dead: int = 0

    @classmethod
    def from_counts(cls, counts: np.ndarray) -> 'Statistics':
        """Build from a count vector indexed by HealthState."""
        return cls(
            healthy=int(counts[HealthState.HEALTHY]),
            sick=int(counts[HealthState.SICK]),
            immune=int(counts[HealthState.IMMUNE]),
            dead=int(counts[HealthState.DEAD]),
        )

    def __getitem__(self, state: HealthState) -> int:
        return getattr(self, HealthState(state).name.lower())

    @property
    def total(self) -> int:
        return self.healthy + self.sick + self.immune + self.dead

    def as_dict(self) -> Dict[str, int]:
        return {
            'healthy': self.healthy,
            'sick': self.sick,
            'immune': self.immune,
            'dead': self.dead,
        }

    def fractions(self) -> Dict[str, float]:
        """Share of the population in each state (0.0 everywhere if empty)."""
        total = self.total
        if total == 0:
            return {name: 0.0 for name in self.as_dict()}
        return {name: count / total for name, count in self.as_dict().items()}
