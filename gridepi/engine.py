"""Simulation engine: grid epidemic with a two-phase tick.

Per tick:
  1. Evaluate — every Immune cell counts down (→ Healthy at zero); every
     Sick cell rolls one Bernoulli(p_0) trial per Healthy Moore neighbour
     not already marked, then counts down (→ Dead with probability d_0,
     else Immune, at zero). Only committed states are read; outcomes go
     into the per-cell `pending` slot.
  2. Commit — every pending cell moves to its new state, receives a fresh
     countdown, and the statistics vector is adjusted for exactly those
     cells. The changed cells are returned as a ChangeSet.

Because each cell has a single pending slot, a Healthy cell surrounded by
several Sick cells is infected (and counted) at most once per tick.

Statistics are maintained incrementally and always sum to size².
"""

from __future__ import annotations

import dataclasses
import warnings
from typing import Any, List, Optional, Tuple

import numpy as np

from gridepi.config import (
    ConfigurationError,
    EpidemicConfig,
    normalize_field,
    validate_epidemic_config,
)
from gridepi.grid import Grid
from gridepi.perf import PerfMonitor
from gridepi.rng import RandomSource, create_rng
from gridepi.types import (
    N_STATES,
    NO_COUNTDOWN,
    NO_PENDING,
    Cell,
    ChangeSet,
    HealthState,
    Statistics,
)


class EpidemicEngine:
    """Owns the grid, the statistics vector and the random source.

    Build with EpidemicEngine.initialize(); advance with step().
    """

    def __init__(
        self,
        config: EpidemicConfig,
        rng: RandomSource,
        perf: Optional[PerfMonitor] = None,
    ):
        self._config = validate_epidemic_config(config)
        self._rng = rng
        self.perf = perf if perf is not None else PerfMonitor(enabled=False)
        self.grid = Grid(self._config.size)
        self._counts = np.zeros(N_STATES, dtype=np.int64)
        self._counts[HealthState.HEALTHY] = self._config.size ** 2
        self.tick = 0

    # ── construction ─────────────────────────────────────────────────

    @classmethod
    def initialize(
        cls,
        config: EpidemicConfig,
        rng: Optional[RandomSource] = None,
        seed: Optional[int] = None,
        perf: Optional[PerfMonitor] = None,
    ) -> 'EpidemicEngine':
        """Allocate an all-Healthy grid and force-infect the seed cells.

        Seed positions are drawn uniformly WITH replacement (row first,
        then column), so fewer than initial_sick_count distinct cells may
        end up Sick. No propagation happens during initialization.

        Args:
            config: Epidemic parameters.
            rng: Random source; a fresh Generator from `seed` if None.
            seed: Seed used only when rng is None.
            perf: Optional monitor for step() phase timings.

        Raises:
            ConfigurationError: If config is invalid.
        """
        if rng is None:
            rng = create_rng(seed)
        engine = cls(config, rng, perf)
        engine._seed_infections(engine._config.initial_sick_count)
        return engine

    def reinitialize(
        self,
        rng: Optional[RandomSource] = None,
        seed: Optional[int] = None,
    ) -> 'EpidemicEngine':
        """Fresh engine with the current configuration.

        Reuses this engine's random source unless rng or seed is given.
        """
        if rng is None and seed is None:
            rng = self._rng
        return type(self).initialize(self.config, rng=rng, seed=seed, perf=self.perf)

    def _seed_infections(self, n: int) -> None:
        size = self.grid.size
        if n > size * size:
            warnings.warn(
                f"initial_sick_count={n} exceeds the {size * size} cells "
                f"of the grid; at most {size * size} can be infected",
                UserWarning,
                stacklevel=3,
            )
        for _ in range(n):
            row = int(self._rng.integers(0, size))
            col = int(self._rng.integers(0, size))
            self._transition(row, col, HealthState.SICK)

    def _countdown_for(self, state: int) -> int:
        if state == HealthState.SICK:
            return self._config.sick_duration
        if state == HealthState.IMMUNE:
            return self._config.immune_duration
        return NO_COUNTDOWN

    def _transition(self, row: int, col: int, new_state: HealthState) -> None:
        """Apply a single transition immediately (initialization only)."""
        cells = self.grid.cells
        old_state = int(cells['state'][row, col])
        self._counts[old_state] -= 1
        cells['state'][row, col] = new_state
        cells['countdown'][row, col] = self._countdown_for(new_state)
        self._counts[new_state] += 1

    # ── tick ─────────────────────────────────────────────────────────

    def step(self) -> ChangeSet:
        """Advance one tick. Returns the cells that changed state."""
        with self.perf.track('evaluate'):
            self._evaluate()
        with self.perf.track('commit'):
            changes = self._commit()
        return changes

    def _evaluate(self) -> None:
        cells = self.grid.cells
        state = cells['state']
        countdown = cells['countdown']
        pending = cells['pending']

        # Immune cells consume no draws; age them in bulk.
        immune = state == HealthState.IMMUNE
        countdown[immune] -= 1
        pending[immune & (countdown == 0)] = HealthState.HEALTHY

        p_infect = self._config.infection_probability
        p_death = self._config.death_probability
        rng = self._rng

        for row, col in np.argwhere(state == HealthState.SICK).tolist():
            r_min, r_max, c_min, c_max = self.grid.window(row, col)
            for r in range(r_min, r_max):
                for c in range(c_min, c_max):
                    # Self is Sick, so it is skipped along with marked cells.
                    if state[r, c] != HealthState.HEALTHY or pending[r, c] != NO_PENDING:
                        continue
                    if rng.random() < p_infect:
                        pending[r, c] = HealthState.SICK

            countdown[row, col] -= 1
            if countdown[row, col] == 0:
                if rng.random() < p_death:
                    pending[row, col] = HealthState.DEAD
                else:
                    pending[row, col] = HealthState.IMMUNE

    def _commit(self) -> ChangeSet:
        cells = self.grid.cells
        state = cells['state']
        pending = cells['pending']

        flat = np.flatnonzero(pending != NO_PENDING)
        rows, cols = np.divmod(flat, self.grid.size)
        old = state[rows, cols].astype(np.int64)
        new = pending[rows, cols]

        self._counts -= np.bincount(old, minlength=N_STATES)
        self._counts += np.bincount(new.astype(np.int64), minlength=N_STATES)

        countdown = np.full(flat.shape[0], NO_COUNTDOWN, dtype=np.int32)
        countdown[new == HealthState.SICK] = self._config.sick_duration
        countdown[new == HealthState.IMMUNE] = self._config.immune_duration

        state[rows, cols] = new
        cells['countdown'][rows, cols] = countdown
        pending[rows, cols] = NO_PENDING

        self.tick += 1
        return ChangeSet(tick=self.tick, rows=rows, cols=cols, states=new)

    # ── queries ──────────────────────────────────────────────────────

    def get_statistics(self) -> Statistics:
        """Counts per state after the most recent commit. O(1)."""
        return Statistics.from_counts(self._counts)

    def is_active(self) -> bool:
        """True while any cell is Sick."""
        return bool(self._counts[HealthState.SICK] > 0)

    def cell(self, row: int, col: int) -> Cell:
        return self.grid.cell(row, col)

    def neighbors(self, row: int, col: int) -> List[Tuple[int, int]]:
        return self.grid.neighbors(row, col)

    def states(self) -> np.ndarray:
        """Copy of the state matrix, for a full redraw."""
        return self.grid.states()

    @property
    def size(self) -> int:
        return self._config.size

    @property
    def config(self) -> EpidemicConfig:
        """Copy of the current configuration."""
        return dataclasses.replace(self._config)

    # ── reconfiguration ──────────────────────────────────────────────

    def configure(self, **fields: Any) -> None:
        """Update several fields at once, between ticks.

        Every value is validated before any is applied, so a failure
        leaves the engine untouched.

        Raises:
            ConfigurationError: Invalid value, unknown field, or a size
                different from the current grid.
        """
        updates = {}
        for name, value in fields.items():
            normalized = normalize_field(name, value)
            if name == 'size':
                if normalized != self._config.size:
                    raise ConfigurationError(
                        f"size cannot change from {self._config.size} to "
                        f"{normalized} on a running engine; initialize a new one"
                    )
                continue
            updates[name] = normalized
        self._config = dataclasses.replace(self._config, **updates)

    @property
    def infection_probability(self) -> float:
        return self._config.infection_probability

    @infection_probability.setter
    def infection_probability(self, value: Any) -> None:
        self.configure(infection_probability=value)

    @property
    def death_probability(self) -> float:
        return self._config.death_probability

    @death_probability.setter
    def death_probability(self, value: Any) -> None:
        self.configure(death_probability=value)

    @property
    def initial_sick_count(self) -> int:
        return self._config.initial_sick_count

    @initial_sick_count.setter
    def initial_sick_count(self, value: Any) -> None:
        self.configure(initial_sick_count=value)

    @property
    def sick_duration(self) -> int:
        return self._config.sick_duration

    @sick_duration.setter
    def sick_duration(self, value: Any) -> None:
        self.configure(sick_duration=value)

    @property
    def immune_duration(self) -> int:
        return self._config.immune_duration

    @immune_duration.setter
    def immune_duration(self, value: Any) -> None:
        self.configure(immune_duration=value)


def initialize(
    config: EpidemicConfig,
    rng: Optional[RandomSource] = None,
    seed: Optional[int] = None,
    perf: Optional[PerfMonitor] = None,
) -> EpidemicEngine:
    """Module-level alias for EpidemicEngine.initialize()."""
    return EpidemicEngine.initialize(config, rng=rng, seed=seed, perf=perf)
