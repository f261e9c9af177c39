"""Per-phase timing for EpidemicEngine.step().

Usage:
    from gridepi.perf import PerfMonitor

    perf = PerfMonitor(enabled=True)
    engine = EpidemicEngine.initialize(config, seed=1, perf=perf)
    while engine.is_active():
        engine.step()
    print(perf.report())

A disabled monitor turns every method into a no-op.
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class PhaseStats:
    """Accumulated wall-clock time for one named phase."""
    total_time: float = 0.0
    call_count: int = 0
    min_time: float = float('inf')
    max_time: float = 0.0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.call_count += 1
        self.min_time = min(self.min_time, elapsed)
        self.max_time = max(self.max_time, elapsed)


class PerfMonitor:
    """Wall-clock timer keyed by phase name ('evaluate', 'commit', ...)."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, PhaseStats] = defaultdict(PhaseStats)
        self._start_time: Optional[float] = None
        self._total_time: float = 0.0

    def start(self) -> None:
        if self.enabled:
            self._start_time = time.perf_counter()

    def stop(self) -> None:
        if self.enabled and self._start_time is not None:
            self._total_time = time.perf_counter() - self._start_time

    @contextmanager
    def track(self, phase: str):
        """Time the enclosed block under `phase`."""
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._stats[phase].add(time.perf_counter() - t0)

    def record(self, phase: str, elapsed: float) -> None:
        """Manually record a timing measurement."""
        if self.enabled:
            self._stats[phase].add(elapsed)

    def get_stats(self) -> Dict[str, PhaseStats]:
        return dict(self._stats)

    def _total(self) -> float:
        return self._total_time or sum(s.total_time for s in self._stats.values())

    def summary(self) -> dict:
        """Summary dict suitable for JSON serialization."""
        total = self._total()
        result = {}
        for name, stats in sorted(self._stats.items(), key=lambda x: -x[1].total_time):
            result[name] = {
                'total_s': round(stats.total_time, 4),
                'calls': stats.call_count,
                'mean_ms': round(stats.mean_time * 1000, 3),
                'pct': round(stats.total_time / total * 100, 1) if total > 0 else 0.0,
            }
        result['_total_s'] = round(total, 4)
        return result

    def report(self, title: str = "Step timing") -> str:
        """Human-readable table of phase timings."""
        total = self._total()
        rule = f"{'-'*20} {'-'*10} {'-'*8} {'-'*10} {'-'*6}"
        lines = [
            f"\n{'='*58}",
            f" {title}",
            f"{'='*58}",
            f"{'Phase':<20} {'Total (s)':>10} {'Calls':>8} {'Mean (ms)':>10} {'%':>6}",
            rule,
        ]
        for name, stats in sorted(self._stats.items(), key=lambda x: -x[1].total_time):
            pct = (stats.total_time / total * 100) if total > 0 else 0
            lines.append(
                f"{name:<20} {stats.total_time:>10.4f} {stats.call_count:>8} "
                f"{stats.mean_time*1000:>10.3f} {pct:>5.1f}%"
            )
        lines.append(rule)
        lines.append(f"{'TOTAL':<20} {total:>10.4f}")
        lines.append(f"{'='*58}\n")
        return '\n'.join(lines)

    def reset(self) -> None:
        self._stats.clear()
        self._start_time = None
        self._total_time = 0.0
