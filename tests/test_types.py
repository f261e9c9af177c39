"""Tests for gridepi.types — enums, cell arrays, and read-only views."""

import dataclasses

import numpy as np
import pytest

from gridepi.types import (
    CELL_DTYPE,
    N_STATES,
    NO_COUNTDOWN,
    NO_PENDING,
    Cell,
    CellChange,
    ChangeSet,
    HealthState,
    Statistics,
    allocate_cells,
)


# ── Enum tests ────────────────────────────────────────────────────────

class TestHealthState:
    def test_values(self):
        assert HealthState.HEALTHY == 0
        assert HealthState.SICK == 1
        assert HealthState.IMMUNE == 2
        assert HealthState.DEAD == 3

    def test_exactly_four_states(self):
        assert len(HealthState) == 4
        assert N_STATES == 4

    def test_integer_compatible(self):
        """States can index a count vector directly."""
        counts = np.zeros(N_STATES, dtype=np.int64)
        counts[HealthState.DEAD] += 1
        assert counts[3] == 1


# ── Cell array tests ──────────────────────────────────────────────────

class TestAllocateCells:
    def test_shape_and_dtype(self):
        cells = allocate_cells(6)
        assert cells.shape == (6, 6)
        assert cells.dtype == CELL_DTYPE

    def test_all_healthy_no_countdown_no_pending(self):
        cells = allocate_cells(4)
        assert np.all(cells['state'] == HealthState.HEALTHY)
        assert np.all(cells['countdown'] == NO_COUNTDOWN)
        assert np.all(cells['pending'] == NO_PENDING)

    def test_field_views_write_through(self):
        cells = allocate_cells(3)
        state = cells['state']
        state[1, 2] = HealthState.SICK
        assert cells[1, 2]['state'] == HealthState.SICK


class TestCell:
    def test_position(self):
        cell = Cell(row=2, col=5, state=HealthState.SICK, countdown=3)
        assert cell.position == (2, 5)

    def test_frozen(self):
        cell = Cell(row=0, col=0, state=HealthState.HEALTHY)
        with pytest.raises(dataclasses.FrozenInstanceError):
            cell.state = HealthState.DEAD


# ── ChangeSet tests ───────────────────────────────────────────────────

class TestChangeSet:
    def make(self):
        return ChangeSet(
            tick=4,
            rows=np.array([0, 0, 2], dtype=np.int64),
            cols=np.array([1, 2, 2], dtype=np.int64),
            states=np.array([1, 1, 3], dtype=np.int8),
        )

    def test_len_and_bool(self):
        changes = self.make()
        assert len(changes) == 3
        assert changes
        assert not ChangeSet.empty(tick=1)

    def test_iter_yields_cell_changes(self):
        items = list(self.make())
        assert items[0] == CellChange(0, 1, HealthState.SICK)
        assert items[2].new_state is HealthState.DEAD
        assert all(isinstance(item.row, int) for item in items)

    def test_counts_by_state(self):
        counts = self.make().counts_by_state()
        assert counts[HealthState.SICK] == 2
        assert counts[HealthState.DEAD] == 1
        assert counts[HealthState.HEALTHY] == 0
        assert counts[HealthState.IMMUNE] == 0

    def test_empty(self):
        empty = ChangeSet.empty(tick=7)
        assert empty.tick == 7
        assert list(empty) == []
        assert sum(empty.counts_by_state().values()) == 0


# ── Statistics tests ──────────────────────────────────────────────────

class TestStatistics:
    def test_from_counts(self):
        stats = Statistics.from_counts(np.array([5, 3, 1, 1]))
        assert stats == Statistics(healthy=5, sick=3, immune=1, dead=1)

    def test_total(self):
        assert Statistics(healthy=5, sick=3, immune=1, dead=1).total == 10

    def test_index_by_state(self):
        stats = Statistics(healthy=5, sick=3, immune=1, dead=0)
        assert stats[HealthState.SICK] == 3
        assert stats[HealthState.HEALTHY] == 5
        assert stats[2] == 1

    def test_as_dict_keys(self):
        assert list(Statistics().as_dict()) == ['healthy', 'sick', 'immune', 'dead']

    def test_fractions_sum_to_one(self):
        frac = Statistics(healthy=50, sick=25, immune=20, dead=5).fractions()
        assert frac['sick'] == pytest.approx(0.25)
        assert sum(frac.values()) == pytest.approx(1.0)

    def test_fractions_of_empty(self):
        assert set(Statistics().fractions().values()) == {0.0}
