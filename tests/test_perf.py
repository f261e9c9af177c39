"""Tests for gridepi.perf — phase timing monitor."""

import json

from gridepi.perf import PerfMonitor


class TestPerfMonitor:
    def test_disabled_is_noop(self):
        perf = PerfMonitor(enabled=False)
        with perf.track('evaluate'):
            pass
        perf.record('commit', 1.0)
        assert perf.get_stats() == {}
        assert perf.summary() == {'_total_s': 0.0}

    def test_track_accumulates(self):
        perf = PerfMonitor(enabled=True)
        for _ in range(3):
            with perf.track('evaluate'):
                pass
        stats = perf.get_stats()['evaluate']
        assert stats.call_count == 3
        assert stats.total_time >= 0.0
        assert stats.min_time <= stats.max_time

    def test_record_and_summary(self):
        perf = PerfMonitor(enabled=True)
        perf.record('evaluate', 0.3)
        perf.record('commit', 0.1)
        summary = perf.summary()
        assert list(summary)[:2] == ['evaluate', 'commit']
        assert summary['evaluate']['pct'] == 75.0
        assert summary['_total_s'] == 0.4
        json.dumps(summary)

    def test_track_records_on_exception(self):
        perf = PerfMonitor(enabled=True)
        try:
            with perf.track('commit'):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert perf.get_stats()['commit'].call_count == 1

    def test_report_lists_phases(self):
        perf = PerfMonitor(enabled=True)
        perf.record('evaluate', 0.02)
        report = perf.report()
        assert 'evaluate' in report
        assert 'TOTAL' in report

    def test_reset(self):
        perf = PerfMonitor(enabled=True)
        perf.record('evaluate', 0.5)
        perf.reset()
        assert perf.get_stats() == {}
