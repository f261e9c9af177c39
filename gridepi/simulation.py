"""Headless pacing loop.

Drives an EpidemicEngine the way an interactive front end would (step →
read statistics → continue while any cell is Sick) but without any
scheduling delay, and records the per-tick counts as NumPy timeseries.

Usage:
    from gridepi.config import get_preset, SimulationConfig
    from gridepi.simulation import run_simulation

    result = run_simulation(SimulationConfig(epidemic=get_preset('covid_like')))
    print(result.peak_sick, result.final)
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from gridepi.config import SimulationConfig, validate_config
from gridepi.engine import EpidemicEngine
from gridepi.perf import PerfMonitor
from gridepi.rng import RandomSource, create_replicate_rngs, create_rng
from gridepi.types import N_STATES, ChangeSet, HealthState, Statistics


TickCallback = Callable[[int, ChangeSet, Statistics], None]
ReplicateCallback = Callable[[int, int, ChangeSet, Statistics], None]


@dataclass
class SimulationResult:
    """Outcome of one run.

    counts[t] holds the per-state counts after tick t (row 0 = right after
    initialization), columns indexed by HealthState.
    """
    size: int = 0
    n_ticks: int = 0
    halted: bool = False            # stopped because no cell was Sick
    counts: Optional[np.ndarray] = None          # (n_ticks+1, 4) int64
    new_infections: Optional[np.ndarray] = None  # (n_ticks+1,) int64
    changes: List[ChangeSet] = field(default_factory=list)

    # Summary
    peak_sick: int = 0
    peak_tick: int = 0
    total_infections: int = 0
    final: Statistics = field(default_factory=Statistics)
    perf: Optional[dict] = None

    def series(self, state: HealthState) -> np.ndarray:
        """Count timeseries for one state."""
        return self.counts[:, HealthState(state)]

    def summary(self) -> dict:
        """JSON-serializable summary of the run."""
        population = self.size * self.size
        return {
            'size': self.size,
            'n_ticks': self.n_ticks,
            'halted': self.halted,
            'peak_sick': self.peak_sick,
            'peak_tick': self.peak_tick,
            'total_infections': self.total_infections,
            'final': self.final.as_dict(),
            'final_fractions': self.final.fractions(),
            'dead_fraction': self.final.dead / population if population else 0.0,
            'perf': self.perf,
        }


def run_simulation(
    config: SimulationConfig,
    rng: Optional[RandomSource] = None,
    callback: Optional[TickCallback] = None,
) -> SimulationResult:
    """Initialize an engine and step it until no cell is Sick.

    Stops early after config.simulation.max_ticks ticks (halted=False).

    Args:
        config: Full configuration; validated here.
        rng: Random source; a Generator seeded from config.simulation.seed
            if None.
        callback: Called after every tick with (tick, changes, statistics).

    Returns:
        SimulationResult.

    Raises:
        ConfigurationError: If config is invalid.
    """
    config = validate_config(config)
    sim = config.simulation
    if rng is None:
        rng = create_rng(sim.seed)
    perf = PerfMonitor(enabled=sim.perf)

    perf.start()
    engine = EpidemicEngine.initialize(config.epidemic, rng=rng, perf=perf)

    counts: List[np.ndarray] = [_counts_of(engine.get_statistics())]
    new_infections: List[int] = [engine.get_statistics().sick]
    changes: List[ChangeSet] = []

    while engine.is_active() and engine.tick < sim.max_ticks:
        changeset = engine.step()
        stats = engine.get_statistics()
        counts.append(_counts_of(stats))
        new_infections.append(changeset.counts_by_state()[HealthState.SICK])
        if sim.record_changes:
            changes.append(changeset)
        if callback is not None:
            callback(engine.tick, changeset, stats)
    perf.stop()

    counts_arr = np.array(counts, dtype=np.int64).reshape(-1, N_STATES)
    sick = counts_arr[:, HealthState.SICK]
    peak_tick = int(np.argmax(sick))
    infections_arr = np.array(new_infections, dtype=np.int64)

    return SimulationResult(
        size=engine.size,
        n_ticks=engine.tick,
        halted=not engine.is_active(),
        counts=counts_arr,
        new_infections=infections_arr,
        changes=changes,
        peak_sick=int(sick[peak_tick]),
        peak_tick=peak_tick,
        total_infections=int(infections_arr.sum()),
        final=engine.get_statistics(),
        perf=perf.summary() if sim.perf else None,
    )


def run_replicates(
    config: SimulationConfig,
    n_replicates: int,
    callback: Optional[ReplicateCallback] = None,
) -> List[SimulationResult]:
    """Run independent replicates from one master seed.

    Replicate i uses the i-th stream spawned from config.simulation.seed,
    so results are reproducible and adding replicates leaves earlier ones
    unchanged. callback, if given, is called after every tick with
    (replicate, tick, changes, statistics).
    """
    if n_replicates < 1:
        raise ValueError(f"n_replicates must be >= 1, got {n_replicates}")
    config = validate_config(config)
    rngs = create_replicate_rngs(config.simulation.seed, n_replicates)
    results = []
    for i, rng in enumerate(rngs):
        tick_callback = None
        if callback is not None:
            tick_callback = functools.partial(callback, i)
        results.append(run_simulation(config, rng=rng, callback=tick_callback))
    return results


def _counts_of(stats: Statistics) -> np.ndarray:
    return np.array(
        [stats.healthy, stats.sick, stats.immune, stats.dead], dtype=np.int64
    )
