"""Tests for madingley.grid: grid cells, neighbours and pending dispersals."""

import numpy as np
import pytest

from madingley.config import GridSection
from madingley.functional_groups import (
    DEFAULT_COHORT_DEFINITIONS,
    DEFAULT_STOCK_DEFINITIONS,
    FunctionalGroupDefinitions,
)
from madingley.grid import N_MONTHS, GridCell, ModelGrid
from madingley.types import Cohort, Direction, PendingDispersal, Realm


def _cohort(fg, mass=1.0, abundance=10.0):
    return Cohort(fg, mass, 10 * mass, mass, abundance)


@pytest.fixture
def marine_grid():
    """3x4 all-marine grid with 2 cohort groups."""
    realm = np.full((3, 4), Realm.MARINE)
    return ModelGrid.from_realm_map(realm, min_lat=0.0, min_lon=0.0,
                                    n_cohort_functional_groups=2)


@pytest.fixture
def mixed_grid():
    """Left column land, rest marine."""
    realm = np.full((3, 3), Realm.MARINE)
    realm[:, 0] = Realm.LAND
    return ModelGrid.from_realm_map(realm, n_cohort_functional_groups=2)


class TestGridCell:
    def test_environment_layers(self):
        cell = GridCell(10.0, 1, 20.0, 2, 1.0, 1.0, Realm.LAND)
        env = cell.cell_environment
        assert env['Realm'][0] == 1.0
        assert env['Latitude'][0] == 10.0
        assert env['Longitude'][0] == 20.0
        assert env['LatIndex'][0] == 1.0
        assert env['LonIndex'][0] == 2.0
        assert env['Cell Area'][0] > 0
        assert 'uVel' not in env

    def test_velocities_stored(self):
        cell = GridCell(0.0, 0, 0.0, 0, 1.0, 1.0, Realm.MARINE,
                        u_vel=np.arange(12.0), v_vel=np.zeros(12))
        assert cell.get_enviro_layer('uVel', 5) == 5.0

    def test_unknown_layer(self):
        cell = GridCell(0.0, 0, 0.0, 0, 1.0, 1.0, Realm.LAND)
        with pytest.raises(KeyError, match="does not exist"):
            cell.get_enviro_layer('Temperature')
        with pytest.raises(KeyError):
            cell.set_enviro_layer('Temperature', 0, 1.0)

    def test_set_layer(self):
        cell = GridCell(0.0, 0, 0.0, 0, 1.0, 1.0, Realm.LAND)
        cell.set_enviro_layer('Realm', 0, 2.0)
        assert cell.realm == Realm.MARINE


class TestModelGridConstruction:
    def test_shape_and_coordinates(self, marine_grid):
        assert marine_grid.shape == (3, 4)
        np.testing.assert_allclose(marine_grid.lats, [0.0, 1.0, 2.0])
        np.testing.assert_allclose(marine_grid.lons, [0.0, 1.0, 2.0, 3.0])
        assert marine_grid.get_cell_latitude(2) == 2.0
        assert marine_grid.get_cell_longitude(3) == 3.0

    def test_cell_dimensions(self, marine_grid):
        assert np.all(marine_grid.cell_heights_km > 110)
        assert np.all(marine_grid.cell_widths_km > 110)

    def test_realm_shape_mismatch(self):
        with pytest.raises(ValueError, match="realm map"):
            ModelGrid(0, 0, 2, 2, 1.0, 1.0, np.ones((3, 3)))

    def test_velocity_shape_mismatch(self):
        with pytest.raises(ValueError, match="u_vel"):
            ModelGrid(0, 0, 2, 2, 1.0, 1.0, np.full((2, 2), 2),
                      u_vel=np.zeros((2, 2)))

    def test_marine_cells_get_zero_currents(self, marine_grid):
        assert marine_grid.get_enviro_layer('uVel', 3, 1, 1) == 0.0
        assert marine_grid.get_enviro_layer('vVel', 0, 2, 3) == 0.0

    def test_land_cells_have_no_currents(self, mixed_grid):
        with pytest.raises(KeyError):
            mixed_grid.get_enviro_layer('uVel', 0, 0, 0)

    def test_realm_grid(self, mixed_grid):
        realm = mixed_grid.realm_grid()
        assert (realm[:, 0] == Realm.LAND).all()
        assert (realm[:, 1:] == Realm.MARINE).all()

    def test_from_config_uniform(self):
        section = GridSection(min_lat=0, max_lat=2, min_lon=0, max_lon=3,
                              default_u_velocity=0.2)
        grid = ModelGrid.from_config(section, n_cohort_functional_groups=1)
        assert grid.shape == (2, 3)
        assert grid.get_enviro_layer('uVel', 7, 1, 2) == pytest.approx(0.2)
        assert len(grid.get_grid_cell_cohorts(0, 0)) == 1


class TestFromNpz:
    def test_loads_realm_and_currents(self, tmp_path):
        path = tmp_path / "env.npz"
        realm = np.array([[2, 2], [1, 2]])
        u = np.ones((N_MONTHS, 2, 2))
        np.savez(path, realm=realm, u_vel=u, v_vel=-u)
        grid = ModelGrid.from_npz(path, 0.0, 0.0, 1.0, 1.0)
        assert grid.shape == (2, 2)
        assert grid.get_enviro_layer('vVel', 0, 0, 1) == -1.0
        assert grid.get_cell(1, 0).realm == Realm.LAND

    def test_from_config_uses_file(self, tmp_path):
        path = tmp_path / "env.npz"
        np.savez(path, realm=np.full((4, 5), 2))
        grid = ModelGrid.from_config(GridSection(min_lat=0, min_lon=0,
                                                 environment_file=str(path)))
        assert grid.shape == (4, 5)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ModelGrid.from_npz(tmp_path / "none.npz", 0, 0, 1, 1)

    def test_missing_realm(self, tmp_path):
        path = tmp_path / "env.npz"
        np.savez(path, u_vel=np.zeros((12, 2, 2)))
        with pytest.raises(KeyError, match="realm"):
            ModelGrid.from_npz(path, 0, 0, 1, 1)


class TestNeighbours:
    def test_north_increases_lat_index(self, marine_grid):
        assert marine_grid.check_dispersal(1, 1, Direction.N) == (2, 1)
        assert marine_grid.check_dispersal(1, 1, Direction.S) == (0, 1)
        assert marine_grid.check_dispersal(1, 1, Direction.E) == (1, 2)
        assert marine_grid.check_dispersal(1, 1, Direction.SW) == (0, 0)

    def test_interior_cell_has_eight(self, marine_grid):
        assert len(marine_grid.cells_for_dispersal(1, 1)) == 8

    def test_edges_closed(self, marine_grid):
        assert marine_grid.check_dispersal(2, 1, Direction.N) is None
        assert marine_grid.check_dispersal(0, 0, Direction.W) is None
        assert len(marine_grid.cells_for_dispersal(0, 0)) == 3

    def test_no_cross_realm_moves(self, mixed_grid):
        assert mixed_grid.check_dispersal(1, 1, Direction.W) is None
        assert mixed_grid.check_dispersal(1, 0, Direction.E) is None
        assert mixed_grid.check_dispersal(1, 0, Direction.N) == (2, 0)

    def test_global_grid_wraps_longitude(self):
        realm = np.full((2, 4), Realm.MARINE)
        grid = ModelGrid.from_realm_map(realm, min_lat=0.0, min_lon=-180.0,
                                        lat_cell_size=10.0, lon_cell_size=90.0)
        assert grid.check_dispersal(0, 0, Direction.W) == (0, 3)
        assert grid.check_dispersal(1, 3, Direction.E) == (1, 0)

    def test_inactive_cells_have_no_neighbours(self):
        realm = np.array([[0, 2], [2, 2]])
        grid = ModelGrid.from_realm_map(realm)
        assert grid.cells_for_dispersal(0, 0) == {}
        assert grid.check_dispersal(1, 0, Direction.S) is None

    def test_cell_indices_include_inactive(self):
        grid = ModelGrid.from_realm_map(np.array([[0, 2], [2, 2]]))
        assert grid.cell_indices() == [(0, 0), (0, 1), (1, 0), (1, 1)]


class TestCohortManagement:
    def test_add_and_get(self, marine_grid):
        c = _cohort(1)
        marine_grid.add_new_cohort_to_grid_cell(2, 3, 1, c)
        assert marine_grid.get_grid_cell_individual_cohort(2, 3, 1, 0) is c
        assert marine_grid.cohort_count_grid()[2, 3] == 1

    def test_delete_keeps_remaining_order(self, marine_grid):
        cohorts = [_cohort(0, mass=m) for m in (1.0, 2.0, 3.0, 4.0)]
        for c in cohorts:
            marine_grid.add_new_cohort_to_grid_cell(0, 0, 0, c)
        marine_grid.add_new_cohort_to_grid_cell(0, 0, 1, _cohort(1))
        marine_grid.delete_grid_cell_individual_cohorts(0, 0, [0, 1, 0], [1, 0, 3])
        remaining = marine_grid.get_grid_cell_cohorts(0, 0)
        assert [c.individual_body_mass for c in remaining[0]] == [1.0, 3.0]
        assert remaining[1] == []

    def test_total_abundance(self, marine_grid):
        marine_grid.add_new_cohort_to_grid_cell(0, 0, 0, _cohort(0, abundance=3.0))
        marine_grid.add_new_cohort_to_grid_cell(1, 2, 1, _cohort(1, abundance=4.0))
        assert marine_grid.total_abundance() == pytest.approx(7.0)


class TestPendingDispersals:
    def test_add_and_reset(self, marine_grid):
        rec = PendingDispersal(0, 0, (1, 2), Direction.E, Direction.W)
        marine_grid.add_pending_dispersal(1, 1, rec)
        assert marine_grid.pending_dispersals(1, 1) == [rec]
        marine_grid.reset_pending_dispersals(1, 1)
        assert marine_grid.pending_dispersals(1, 1) == []

    def test_reset_all(self, marine_grid):
        rec = PendingDispersal(0, 0, (1, 2), Direction.E, Direction.W)
        marine_grid.add_pending_dispersal(0, 0, rec)
        marine_grid.add_pending_dispersal(2, 3, rec)
        marine_grid.reset_all_pending_dispersals()
        assert all(marine_grid.pending_dispersals(ii, jj) == []
                   for ii, jj in marine_grid.cell_indices())


class TestSeeding:
    @pytest.fixture(scope="class")
    def defs(self):
        return (FunctionalGroupDefinitions.packaged(DEFAULT_COHORT_DEFINITIONS),
                FunctionalGroupDefinitions.packaged(DEFAULT_STOCK_DEFINITIONS))

    def test_seeds_every_cell(self, mixed_grid, defs):
        cohort_defs, stock_defs = defs
        next_id = mixed_grid.seed_grid_cell_stocks_and_cohorts(
            cohort_defs, stock_defs, np.random.default_rng(1))
        counts = mixed_grid.cohort_count_grid()
        # 5 terrestrial groups x 3; 4 marine groups x 3 + whales x 1
        assert (counts[:, 0] == 15).all()
        assert (counts[:, 1:] == 13).all()
        assert next_id == counts.sum()
        assert len(mixed_grid.get_grid_cell_stocks(0, 0)) == 3

    def test_zero_abundance_realms(self, mixed_grid, defs):
        cohort_defs, stock_defs = defs
        mixed_grid.seed_grid_cell_stocks_and_cohorts(
            cohort_defs, stock_defs, np.random.default_rng(1),
            zero_abundance_realms=(Realm.LAND,))
        land = mixed_grid.get_grid_cell_cohorts(1, 0)
        assert land.count() == 5
        assert land.total_abundance() == 0.0
        assert mixed_grid.get_grid_cell_cohorts(1, 1).total_abundance() > 0
