"""Command-line runner for grid epidemic simulations.

Usage:
    gridepi --preset covid_like --seed 7
    gridepi --config run.yaml --set epidemic.size=64 --json out/summary.json
    gridepi --preset small_outbreak --replicates 5 --every 0
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import List, Optional

import numpy as np

from gridepi import __version__
from gridepi.config import (
    PRESETS,
    ConfigurationError,
    SimulationConfig,
    config_from_dict,
    deep_merge,
    load_config,
    parse_override,
)
from gridepi.simulation import SimulationResult, run_replicates
from gridepi.types import ChangeSet, Statistics


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='gridepi',
        description='Run a stochastic grid epidemic until no cell is sick.',
    )
    parser.add_argument('--config', type=Path, default=None,
                        help='YAML configuration file')
    parser.add_argument('--preset', choices=sorted(PRESETS), default=None,
                        help="Bundled scenario; replaces the config file's epidemic values")
    parser.add_argument('--seed', type=int, default=None,
                        help='Master RNG seed (overrides config)')
    parser.add_argument('--max-ticks', type=int, default=None,
                        help='Stop after this many ticks')
    parser.add_argument('--set', dest='overrides', action='append', default=[],
                        metavar='SECTION.KEY=VALUE',
                        help='Override one config value (repeatable)')
    parser.add_argument('--replicates', type=int, default=1,
                        help='Number of independent runs')
    parser.add_argument('--every', type=int, default=10,
                        help='Print progress every N ticks (0 = silent)')
    parser.add_argument('--json', type=Path, default=None,
                        help='Write a JSON summary to this path')
    parser.add_argument('--perf', action='store_true',
                        help='Time the evaluate / commit phases')
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {__version__}')
    return parser


def _resolve_config(args: argparse.Namespace) -> SimulationConfig:
    overrides: dict = {}
    for text in args.overrides:
        deep_merge(overrides, parse_override(text))
    simulation = overrides.setdefault('simulation', {})
    if not isinstance(simulation, dict):
        raise ConfigurationError("'simulation' override must be a mapping")
    if args.seed is not None:
        simulation['seed'] = args.seed
    if args.max_ticks is not None:
        simulation['max_ticks'] = args.max_ticks
    if args.perf:
        simulation['perf'] = True

    if args.config is not None:
        return load_config(args.config, overrides=overrides, preset=args.preset)
    if args.preset is not None:
        overrides['preset'] = args.preset
    return config_from_dict(overrides)


def _format_stats(tick: int, stats: Statistics) -> str:
    frac = stats.fractions()
    return (f"  tick {tick:5d}  healthy={stats.healthy:8d}  sick={stats.sick:8d}  "
            f"immune={stats.immune:8d}  dead={stats.dead:8d}  "
            f"({frac['dead'] * 100:5.2f}% dead)")


def _print_result(i: int, result: SimulationResult) -> None:
    status = 'halted' if result.halted else 'tick cap reached'
    print(f"Replicate {i}: {result.n_ticks} ticks ({status})")
    print(f"  peak sick       : {result.peak_sick} at tick {result.peak_tick}")
    print(f"  total infections: {result.total_infections}")
    print(_format_stats(result.n_ticks, result.final))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = _resolve_config(args)
        if args.replicates < 1:
            raise ConfigurationError(
                f"--replicates must be >= 1, got {args.replicates}"
            )
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"gridepi: {exc}", file=sys.stderr)
        return 2

    ep = config.epidemic
    print("=" * 72)
    print(f"gridepi {__version__}: {ep.size}x{ep.size} grid, "
          f"{args.replicates} replicate(s), seed {config.simulation.seed}")
    print("=" * 72)
    print(f"  p_0={ep.infection_probability:.4f}  d_0={ep.death_probability:.4f}  "
          f"seeds={ep.initial_sick_count}  sick={ep.sick_duration}  "
          f"immune={ep.immune_duration}")
    print()

    def progress(replicate: int, tick: int, changes: ChangeSet,
                 stats: Statistics) -> None:
        if args.every > 0 and tick % args.every == 0:
            print(f"  [{replicate}]{_format_stats(tick, stats)}")

    t0 = time.time()
    results = run_replicates(config, args.replicates, callback=progress)
    elapsed = time.time() - t0

    print()
    for i, result in enumerate(results):
        _print_result(i, result)
        if result.perf is not None:
            for phase, timing in result.perf.items():
                if not phase.startswith('_'):
                    print(f"  {phase:<10} {timing['total_s']:8.3f}s "
                          f"({timing['pct']:5.1f}%)")
    print(f"\nCompleted in {elapsed:.2f}s")

    if args.json is not None:
        dead = np.array([r.final.dead for r in results], dtype=np.float64)
        payload = {
            'config': {
                'epidemic': vars(config.epidemic),
                'simulation': vars(config.simulation),
            },
            'replicates': [r.summary() for r in results],
            'mean_dead': float(dead.mean()),
            'std_dead': float(dead.std()),
        }
        args.json.parent.mkdir(parents=True, exist_ok=True)
        with open(args.json, 'w') as f:
            json.dump(payload, f, indent=2)
        print(f"Summary written to {args.json}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
