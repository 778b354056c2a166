"""Tests for madingley.viz: plots return figures and save PNGs."""

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from madingley.grid import ModelGrid
from madingley.model import DispersalSimResult
from madingley.tracking import DISPERSAL_HEADER
from madingley.types import Realm
from madingley.viz import (
    plot_cohort_count_map,
    plot_dispersal_flow_map,
    plot_dispersal_timeseries,
    plot_realm_map,
)
from madingley.viz.grid import net_outbound_vectors


@pytest.fixture
def grid():
    realm = np.full((2, 3), Realm.MARINE)
    realm[0, 0] = Realm.LAND
    return ModelGrid.from_realm_map(realm, n_cohort_functional_groups=1)


@pytest.fixture
def result(grid):
    return DispersalSimResult(
        n_time_steps=2,
        dispersals=np.array([3, 1]),
        total_abundance=np.array([10.0, 10.0]),
        cohort_counts=np.ones((3, 2, 3), dtype=int),
        initial_total_abundance=10.0,
        grid=grid,
    )


def _table(rows):
    """Dispersal table with zero counts except the given overrides."""
    records = []
    for overrides in rows:
        record = {name: 0 for name in DISPERSAL_HEADER}
        record.update(overrides)
        records.append(record)
    return pd.DataFrame(records, columns=DISPERSAL_HEADER)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


class TestNetOutboundVectors:
    def test_east_and_north(self):
        table = _table([
            {'Cellrow': 0, 'CellCol': 1, 'cohortsExitEast': 2},
            {'Cellrow': 1, 'CellCol': 2, 'cohortsExitNorth': 1, 'cohortsExitSouth': 3},
        ])
        u, v = net_outbound_vectors(table, (2, 3))
        assert u[0, 1] == 2.0 and v[0, 1] == 0.0
        assert u[1, 2] == 0.0 and v[1, 2] == -2.0

    def test_diagonal(self):
        table = _table([{'Cellrow': 1, 'CellCol': 1, 'cohortsExitSouthWest': 1}])
        u, v = net_outbound_vectors(table, (2, 3))
        assert (u[1, 1], v[1, 1]) == (-1.0, -1.0)

    def test_time_step_filter(self):
        table = _table([
            {'TimeStep': 0, 'Cellrow': 0, 'CellCol': 0, 'cohortsExitEast': 1},
            {'TimeStep': 1, 'Cellrow': 0, 'CellCol': 0, 'cohortsExitEast': 4},
        ])
        u, _ = net_outbound_vectors(table, (2, 3), time_step=1)
        assert u[0, 0] == 4.0
        u_all, _ = net_outbound_vectors(table, (2, 3))
        assert u_all[0, 0] == 5.0


class TestPlots:
    def test_realm_map(self, grid, tmp_path):
        path = tmp_path / "realm.png"
        fig = plot_realm_map(grid, save_path=str(path))
        assert isinstance(fig, plt.Figure)
        assert path.exists()

    def test_cohort_count_map(self, result, tmp_path):
        path = tmp_path / "counts.png"
        fig = plot_cohort_count_map(result, time_step=0, save_path=str(path))
        assert isinstance(fig, plt.Figure)
        assert path.exists()

    def test_timeseries(self, result, tmp_path):
        path = tmp_path / "ts.png"
        fig = plot_dispersal_timeseries(result, save_path=str(path))
        assert isinstance(fig, plt.Figure)
        assert path.exists()

    def test_flow_map(self, grid, tmp_path):
        table = _table([{'Cellrow': 0, 'CellCol': 1, 'cohortsExitEast': 2}])
        path = tmp_path / "flow.png"
        fig = plot_dispersal_flow_map(table, grid, save_path=str(path))
        assert isinstance(fig, plt.Figure)
        assert path.exists()

    def test_flow_map_without_moves(self, grid):
        fig = plot_dispersal_flow_map(_table([]), grid)
        assert isinstance(fig, plt.Figure)
