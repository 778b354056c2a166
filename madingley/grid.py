"""Regular latitude/longitude model grid for cross-cell processes.

Cells are defined by their bottom-left corner; latitude index 0 is the
southernmost row and latitude index increases northward. Each cell holds
an environment (named 1-D layers), its cohorts and its stocks, plus a
list of pending dispersals that the cross-grid-cell ecology commits at
the end of a time step.

Dispersal is only possible between cells of the same realm. The grid is
closed at its latitude edges and wraps in longitude only when it spans
the whole globe.

References:
  - Harfoot et al. (2014) Text S1 §4 (dispersal between grid cells)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from madingley.functional_groups import FunctionalGroupDefinitions
from madingley.handlers import GridCellCohortHandler, GridCellStockHandler
from madingley.seeding import seed_grid_cell_cohorts, seed_grid_cell_stocks
from madingley.types import (
    DIRECTION_OFFSETS,
    Cohort,
    Direction,
    PendingDispersal,
    Realm,
)
from madingley.utils import (
    grid_cell_area,
    length_of_degree_latitude,
    length_of_degree_longitude,
)

logger = logging.getLogger(__name__)

CellIndex = Tuple[int, int]

N_MONTHS = 12
GLOBAL_LON_SPAN = 359.9


# ═══════════════════════════════════════════════════════════════════════
# GRID CELL
# ═══════════════════════════════════════════════════════════════════════

class GridCell:
    """One grid cell: environment layers, cohorts and stocks."""

    def __init__(
        self,
        latitude: float,
        lat_index: int,
        longitude: float,
        lon_index: int,
        lat_cell_size: float,
        lon_cell_size: float,
        realm: int,
        n_cohort_functional_groups: int = 0,
        n_stock_functional_groups: int = 0,
        u_vel: Optional[Sequence[float]] = None,
        v_vel: Optional[Sequence[float]] = None,
    ):
        self.lat_index = lat_index
        self.lon_index = lon_index
        self.cell_environment: Dict[str, np.ndarray] = {
            'Realm': np.array([float(realm)]),
            'Latitude': np.array([latitude]),
            'Longitude': np.array([longitude]),
            'Cell Area': np.array([grid_cell_area(latitude, lon_cell_size, lat_cell_size)]),
            'LatIndex': np.array([float(lat_index)]),
            'LonIndex': np.array([float(lon_index)]),
        }
        if u_vel is not None:
            self.cell_environment['uVel'] = np.asarray(u_vel, dtype=np.float64)
        if v_vel is not None:
            self.cell_environment['vVel'] = np.asarray(v_vel, dtype=np.float64)
        self.cohorts = GridCellCohortHandler(n_cohort_functional_groups)
        self.stocks = GridCellStockHandler(n_stock_functional_groups)

    @property
    def realm(self) -> int:
        return int(self.cell_environment['Realm'][0])

    def get_enviro_layer(self, variable_name: str, time_interval: int = 0) -> float:
        """Value of an environment layer at a time index.

        Raises:
            KeyError: If the layer does not exist in this cell.
        """
        if variable_name not in self.cell_environment:
            raise KeyError(
                f"Environmental layer '{variable_name}' does not exist in cell "
                f"({self.lat_index}, {self.lon_index})"
            )
        return float(self.cell_environment[variable_name][time_interval])

    def set_enviro_layer(self, variable_name: str, time_interval: int,
                         value: float) -> None:
        if variable_name not in self.cell_environment:
            raise KeyError(
                f"Environmental layer '{variable_name}' does not exist in cell "
                f"({self.lat_index}, {self.lon_index})"
            )
        self.cell_environment[variable_name][time_interval] = value

    def seed_cohorts_and_stocks(
        self,
        cohort_definitions: FunctionalGroupDefinitions,
        stock_definitions: FunctionalGroupDefinitions,
        rng: np.random.Generator,
        next_cohort_id: int = 0,
        zero_abundance: bool = False,
        terrestrial_stock_biomass_density: float = 1.0e8,
        marine_stock_biomass: float = 1.0e12,
    ) -> int:
        """Replace this cell's cohorts and stocks with freshly seeded ones.

        Returns:
            The next unused cohort id.
        """
        self.cohorts = GridCellCohortHandler(
            cohort_definitions.get_number_of_functional_groups())
        self.stocks = GridCellStockHandler(
            stock_definitions.get_number_of_functional_groups())
        next_cohort_id = seed_grid_cell_cohorts(
            self.cell_environment, self.cohorts, cohort_definitions, rng,
            next_cohort_id=next_cohort_id, zero_abundance=zero_abundance,
        )
        seed_grid_cell_stocks(
            self.cell_environment, self.stocks, stock_definitions,
            terrestrial_stock_biomass_density, marine_stock_biomass,
        )
        return next_cohort_id


# ═══════════════════════════════════════════════════════════════════════
# MODEL GRID
# ═══════════════════════════════════════════════════════════════════════

class ModelGrid:
    """Regular lat/lon grid of GridCells with a same-realm neighbour table.

    Args:
        min_lat, min_lon, max_lat, max_lon: Grid extent (degrees).
        lat_cell_size, lon_cell_size: Cell size (degrees).
        realm: (n_lat, n_lon) realm codes (1 land, 2 marine, other inactive).
        u_vel, v_vel: Optional (12, n_lat, n_lon) monthly ocean velocities
            (m/s). Marine cells without velocities get zero currents.
        n_cohort_functional_groups, n_stock_functional_groups: Sizes of the
            per-cell handlers before seeding.
    """

    def __init__(
        self,
        min_lat: float,
        min_lon: float,
        max_lat: float,
        max_lon: float,
        lat_cell_size: float,
        lon_cell_size: float,
        realm: np.ndarray,
        u_vel: Optional[np.ndarray] = None,
        v_vel: Optional[np.ndarray] = None,
        n_cohort_functional_groups: int = 0,
        n_stock_functional_groups: int = 0,
    ):
        self.min_lat = min_lat
        self.min_lon = min_lon
        self.max_lat = max_lat
        self.max_lon = max_lon
        self.lat_cell_size = lat_cell_size
        self.lon_cell_size = lon_cell_size
        self.num_lat_cells = int(round((max_lat - min_lat) / lat_cell_size))
        self.num_lon_cells = int(round((max_lon - min_lon) / lon_cell_size))
        shape = (self.num_lat_cells, self.num_lon_cells)

        realm = np.asarray(realm)
        if realm.shape != shape:
            raise ValueError(f"realm map has shape {realm.shape}, expected {shape}")
        for name, vel in (('u_vel', u_vel), ('v_vel', v_vel)):
            if vel is not None and np.shape(vel) != (N_MONTHS,) + shape:
                raise ValueError(
                    f"{name} has shape {np.shape(vel)}, expected {(N_MONTHS,) + shape}"
                )

        self.lats = min_lat + np.arange(self.num_lat_cells) * lat_cell_size
        self.lons = min_lon + np.arange(self.num_lon_cells) * lon_cell_size

        # Lengths at the mid-latitude of each row
        mid = self.lats + lat_cell_size / 2.0
        self.cell_heights_km = np.array(
            [length_of_degree_latitude(x) * lat_cell_size for x in mid])
        self.cell_widths_km = np.array(
            [length_of_degree_longitude(x) * lon_cell_size for x in mid])

        zeros = np.zeros(N_MONTHS)
        self._cells: List[List[GridCell]] = []
        for ii in range(self.num_lat_cells):
            row = []
            for jj in range(self.num_lon_cells):
                cell_realm = int(realm[ii, jj])
                u = v = None
                if cell_realm == Realm.MARINE:
                    u = u_vel[:, ii, jj] if u_vel is not None else zeros
                    v = v_vel[:, ii, jj] if v_vel is not None else zeros
                row.append(GridCell(
                    float(self.lats[ii]), ii, float(self.lons[jj]), jj,
                    lat_cell_size, lon_cell_size, cell_realm,
                    n_cohort_functional_groups, n_stock_functional_groups,
                    u_vel=u, v_vel=v,
                ))
            self._cells.append(row)

        self._pending: List[List[List[PendingDispersal]]] = [
            [[] for _ in range(self.num_lon_cells)] for _ in range(self.num_lat_cells)
        ]
        self._neighbours = self._build_neighbour_table(realm)

    # ── Builders ─────────────────────────────────────────────────────

    @classmethod
    def from_realm_map(
        cls,
        realm: np.ndarray,
        min_lat: float = 0.0,
        min_lon: float = 0.0,
        lat_cell_size: float = 1.0,
        lon_cell_size: float = 1.0,
        u_vel: Optional[np.ndarray] = None,
        v_vel: Optional[np.ndarray] = None,
        **kwargs,
    ) -> 'ModelGrid':
        """Grid whose extent follows the shape of a realm map."""
        realm = np.asarray(realm)
        n_lat, n_lon = realm.shape
        return cls(
            min_lat, min_lon,
            min_lat + n_lat * lat_cell_size, min_lon + n_lon * lon_cell_size,
            lat_cell_size, lon_cell_size, realm,
            u_vel=u_vel, v_vel=v_vel, **kwargs,
        )

    @classmethod
    def from_npz(
        cls,
        path: Union[str, Path],
        min_lat: float,
        min_lon: float,
        lat_cell_size: float,
        lon_cell_size: float,
        **kwargs,
    ) -> 'ModelGrid':
        """Load a realm map and optional monthly currents from a .npz file.

        Expected keys: 'realm' (n_lat, n_lon); optionally 'u_vel' and
        'v_vel' (12, n_lat, n_lon) in m/s.

        Raises:
            FileNotFoundError: If the file does not exist.
            KeyError: If the 'realm' array is missing.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Environment file not found: {path}")
        with np.load(path) as data:
            if 'realm' not in data:
                raise KeyError(f"Environment file {path} has no 'realm' array")
            realm = data['realm']
            u_vel = data['u_vel'] if 'u_vel' in data else None
            v_vel = data['v_vel'] if 'v_vel' in data else None
        logger.info("Loaded %dx%d environment from %s", realm.shape[0],
                    realm.shape[1], path)
        return cls.from_realm_map(
            realm, min_lat, min_lon, lat_cell_size, lon_cell_size,
            u_vel=u_vel, v_vel=v_vel, **kwargs,
        )

    @classmethod
    def from_config(cls, grid_section, **kwargs) -> 'ModelGrid':
        """Build the grid described by a GridSection."""
        g = grid_section
        if g.environment_file is not None:
            return cls.from_npz(g.environment_file, g.min_lat, g.min_lon,
                                g.lat_cell_size, g.lon_cell_size, **kwargs)
        n_lat = int(round((g.max_lat - g.min_lat) / g.lat_cell_size))
        n_lon = int(round((g.max_lon - g.min_lon) / g.lon_cell_size))
        realm = np.full((n_lat, n_lon), g.default_realm, dtype=int)
        u_vel = np.full((N_MONTHS, n_lat, n_lon), g.default_u_velocity)
        v_vel = np.full((N_MONTHS, n_lat, n_lon), g.default_v_velocity)
        return cls(g.min_lat, g.min_lon, g.max_lat, g.max_lon,
                   g.lat_cell_size, g.lon_cell_size, realm,
                   u_vel=u_vel, v_vel=v_vel, **kwargs)

    # ── Neighbours ───────────────────────────────────────────────────

    def _build_neighbour_table(
        self, realm: np.ndarray,
    ) -> List[List[Dict[Direction, CellIndex]]]:
        wraps = (self.max_lon - self.min_lon) > GLOBAL_LON_SPAN
        table = []
        for ii in range(self.num_lat_cells):
            row = []
            for jj in range(self.num_lon_cells):
                neighbours: Dict[Direction, CellIndex] = {}
                cell_realm = int(realm[ii, jj])
                if cell_realm in (Realm.LAND, Realm.MARINE):
                    for direction, (d_lat, d_lon) in DIRECTION_OFFSETS.items():
                        ni, nj = ii + d_lat, jj + d_lon
                        if not 0 <= ni < self.num_lat_cells:
                            continue
                        if not 0 <= nj < self.num_lon_cells:
                            if not wraps:
                                continue
                            nj %= self.num_lon_cells
                        if int(realm[ni, nj]) == cell_realm:
                            neighbours[direction] = (ni, nj)
                row.append(neighbours)
            table.append(row)
        return table

    def check_dispersal(self, lat_index: int, lon_index: int,
                        direction: Direction) -> Optional[CellIndex]:
        """Destination cell in ``direction``, or None if not traversable."""
        return self._neighbours[lat_index][lon_index].get(Direction(direction))

    def cells_for_dispersal(self, lat_index: int, lon_index: int) -> Dict[Direction, CellIndex]:
        return dict(self._neighbours[lat_index][lon_index])

    # ── Pending dispersals ───────────────────────────────────────────

    def pending_dispersals(self, lat_index: int, lon_index: int) -> List[PendingDispersal]:
        return self._pending[lat_index][lon_index]

    def add_pending_dispersal(self, lat_index: int, lon_index: int,
                              record: PendingDispersal) -> None:
        self._pending[lat_index][lon_index].append(record)

    def reset_pending_dispersals(self, lat_index: int, lon_index: int) -> None:
        self._pending[lat_index][lon_index] = []

    def reset_all_pending_dispersals(self) -> None:
        for ii, jj in self.cell_indices():
            self._pending[ii][jj] = []

    # ── Cells, cohorts, stocks ───────────────────────────────────────

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.num_lat_cells, self.num_lon_cells)

    def cell_indices(self) -> List[CellIndex]:
        """Every cell, active or not, row by row from the south-west corner."""
        return [(ii, jj) for ii in range(self.num_lat_cells)
                for jj in range(self.num_lon_cells)]

    def get_cell(self, lat_index: int, lon_index: int) -> GridCell:
        return self._cells[lat_index][lon_index]

    def get_grid_cell_cohorts(self, lat_index: int, lon_index: int) -> GridCellCohortHandler:
        return self._cells[lat_index][lon_index].cohorts

    def get_grid_cell_stocks(self, lat_index: int, lon_index: int) -> GridCellStockHandler:
        return self._cells[lat_index][lon_index].stocks

    def get_grid_cell_individual_cohort(self, lat_index: int, lon_index: int,
                                        functional_group: int, cohort_index: int) -> Cohort:
        return self._cells[lat_index][lon_index].cohorts[functional_group, cohort_index]

    def add_new_cohort_to_grid_cell(self, lat_index: int, lon_index: int,
                                    functional_group: int, cohort: Cohort) -> None:
        self._cells[lat_index][lon_index].cohorts[functional_group].append(cohort)

    def delete_grid_cell_individual_cohorts(
        self,
        lat_index: int,
        lon_index: int,
        functional_groups: Sequence[int],
        cohort_indices: Sequence[int],
    ) -> None:
        """Remove cohorts given as parallel (functional group, index) lists.

        Deletion runs from the highest index down within each functional
        group so that earlier positions stay valid.
        """
        by_group: Dict[int, List[int]] = defaultdict(list)
        for fg, idx in zip(functional_groups, cohort_indices):
            by_group[int(fg)].append(int(idx))
        cohorts = self._cells[lat_index][lon_index].cohorts
        for fg, indices in by_group.items():
            for idx in sorted(set(indices), reverse=True):
                del cohorts[fg][idx]

    def cohort_count_grid(self) -> np.ndarray:
        """(n_lat, n_lon) number of cohorts in each cell."""
        counts = np.zeros(self.shape, dtype=np.int64)
        for ii, jj in self.cell_indices():
            counts[ii, jj] = self._cells[ii][jj].cohorts.count()
        return counts

    def total_abundance(self) -> float:
        return float(sum(self._cells[ii][jj].cohorts.total_abundance()
                         for ii, jj in self.cell_indices()))

    # ── Environment ──────────────────────────────────────────────────

    def get_cell_environment(self, lat_index: int, lon_index: int) -> Dict[str, np.ndarray]:
        return self._cells[lat_index][lon_index].cell_environment

    def get_enviro_layer(self, variable_name: str, time_interval: int,
                         lat_index: int, lon_index: int) -> float:
        return self._cells[lat_index][lon_index].get_enviro_layer(variable_name, time_interval)

    def set_enviro_layer(self, variable_name: str, time_interval: int,
                         lat_index: int, lon_index: int, value: float) -> None:
        self._cells[lat_index][lon_index].set_enviro_layer(variable_name, time_interval, value)

    def realm_grid(self) -> np.ndarray:
        realm = np.zeros(self.shape, dtype=int)
        for ii, jj in self.cell_indices():
            realm[ii, jj] = self._cells[ii][jj].realm
        return realm

    def get_cell_latitude(self, lat_index: int) -> float:
        return float(self.lats[lat_index])

    def get_cell_longitude(self, lon_index: int) -> float:
        return float(self.lons[lon_index])

    # ── Seeding ──────────────────────────────────────────────────────

    def seed_grid_cell_stocks_and_cohorts(
        self,
        cohort_definitions: FunctionalGroupDefinitions,
        stock_definitions: FunctionalGroupDefinitions,
        rng: np.random.Generator,
        zero_abundance: bool = False,
        zero_abundance_realms: Iterable[int] = (),
        terrestrial_stock_biomass_density: float = 1.0e8,
        marine_stock_biomass: float = 1.0e12,
        next_cohort_id: int = 0,
    ) -> int:
        """Seed every cell with initial cohorts and stocks.

        Args:
            zero_abundance: Seed one zero-abundance cohort per group everywhere.
            zero_abundance_realms: Realm codes whose cells are seeded with
                zero abundance regardless of ``zero_abundance``.

        Returns:
            The next unused cohort id.
        """
        zero_realms = set(int(r) for r in zero_abundance_realms)
        for ii, jj in self.cell_indices():
            cell = self._cells[ii][jj]
            next_cohort_id = cell.seed_cohorts_and_stocks(
                cohort_definitions, stock_definitions, rng,
                next_cohort_id=next_cohort_id,
                zero_abundance=zero_abundance or cell.realm in zero_realms,
                terrestrial_stock_biomass_density=terrestrial_stock_biomass_density,
                marine_stock_biomass=marine_stock_biomass,
            )
        logger.info("Seeded %d cohorts across %d cells", next_cohort_id,
                    self.num_lat_cells * self.num_lon_cells)
        return next_cohort_id
