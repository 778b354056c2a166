"""Cross-grid-cell ecology: run and commit processes that move cohorts
between grid cells.

EcologyCrossGridCell owns a registry of named cross-cell process
formulations (currently only "Basic dispersal") and the helper that
commits their pending results to the grid. The outer simulation loop
calls, once per time step:

  1. run_cross_grid_cell_ecology()    for every cell (decide moves)
  2. update_cross_grid_cell_ecology() once (apply moves, count them)

Moves decided in step 1 never affect other cells until step 2, so the
order in which cells are visited does not bias dispersal.

References:
  - Harfoot et al. (2014) Text S1 §4 (dispersal)
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Protocol

import numpy as np

from madingley.dispersal import Dispersal
from madingley.functional_groups import FunctionalGroupDefinitions
from madingley.grid import CellIndex, ModelGrid

logger = logging.getLogger(__name__)

BASIC_DISPERSAL = "Basic dispersal"

N_DIRECTIONS = 8


class CrossGridCellProcess(Protocol):
    """Capability shared by all cross-grid-cell process formulations."""

    def run_cross_grid_cell_ecological_process(
        self,
        cell_index: CellIndex,
        grid: ModelGrid,
        dispersal_only: bool,
        cohort_definitions: FunctionalGroupDefinitions,
        stock_definitions: FunctionalGroupDefinitions,
        current_month: int,
    ) -> None:
        ...


# ═══════════════════════════════════════════════════════════════════════
# APPLYING RESULTS
# ═══════════════════════════════════════════════════════════════════════

class ApplyCrossGridCellEcology:
    """Commits pending dispersals to the grid."""

    def update_all_cross_grid_cell_ecology(
        self,
        grid: ModelGrid,
        dispersal_counter: int,
        tracker,
        current_time_step: int,
    ) -> int:
        """Move every queued cohort to its destination cell.

        Each cohort is first appended to its destination; only once all
        cells are processed are the moved cohorts deleted from their source
        cells, so queued cohort indices stay valid throughout.

        Args:
            grid: Model grid holding the pending dispersal lists.
            dispersal_counter: Running count of dispersal events.
            tracker: CrossCellProcessTracker; when tracking is on it
                receives per-cell inbound/outbound direction counts and the
                body masses of dispersing cohorts.
            current_time_step: Model time step being committed.

        Returns:
            The dispersal counter incremented by the number of moves.
        """
        n_lat, n_lon = grid.num_lat_cells, grid.num_lon_cells
        tracking = bool(tracker is not None and tracker.track_cross_cell_processes)
        inbound = np.zeros((n_lat, n_lon, N_DIRECTIONS), dtype=np.int64)
        outbound = np.zeros((n_lat, n_lon, N_DIRECTIONS), dtype=np.int64)
        outbound_weights: List[List[List[float]]] = [
            [[] for _ in range(n_lon)] for _ in range(n_lat)
        ]

        for ii, jj in grid.cell_indices():
            for record in grid.pending_dispersals(ii, jj):
                cohort = grid.get_grid_cell_individual_cohort(
                    ii, jj, record.functional_group, record.cohort_index)
                dest = record.destination
                if tracking:
                    outbound_weights[ii][jj].append(cohort.individual_body_mass)
                    outbound[ii, jj, int(record.exit_direction)] += 1
                    inbound[dest[0], dest[1], int(record.entry_direction)] += 1
                grid.add_new_cohort_to_grid_cell(
                    dest[0], dest[1], record.functional_group, cohort)
                dispersal_counter += 1

        for ii, jj in grid.cell_indices():
            pending = grid.pending_dispersals(ii, jj)
            if not pending:
                continue
            grid.delete_grid_cell_individual_cohorts(
                ii, jj,
                [r.functional_group for r in pending],
                [r.cohort_index for r in pending],
            )
            grid.reset_pending_dispersals(ii, jj)

        if tracking:
            tracker.record_dispersal_for_a_cell(
                inbound, outbound, outbound_weights, current_time_step, grid)
        return dispersal_counter


# ═══════════════════════════════════════════════════════════════════════
# COORDINATOR
# ═══════════════════════════════════════════════════════════════════════

class EcologyCrossGridCell:
    """Coordinator for ecological processes that act across grid cells.

    Args:
        dispersal_factory: Builds the dispersal formulation from
            (draw_randomly, global_model_time_step_unit, model_initialisation).
        applier_factory: Builds the helper that commits pending results.
    """

    def __init__(
        self,
        dispersal_factory: Callable[..., CrossGridCellProcess] = Dispersal,
        applier_factory: Callable[[], ApplyCrossGridCellEcology] = ApplyCrossGridCellEcology,
    ):
        self._dispersal_factory = dispersal_factory
        self._applier_factory = applier_factory
        self._dispersal_implementations: Optional[Mapping[str, CrossGridCellProcess]] = None
        self._apply_cross_grid_cell_ecology: Optional[ApplyCrossGridCellEcology] = None

    @property
    def dispersal_implementations(self) -> Mapping[str, CrossGridCellProcess]:
        """Read-only registry of process formulations, keyed by name."""
        self._require_initialised()
        return self._dispersal_implementations

    @property
    def is_initialised(self) -> bool:
        return self._dispersal_implementations is not None

    def _require_initialised(self) -> None:
        if self._dispersal_implementations is None or self._apply_cross_grid_cell_ecology is None:
            raise RuntimeError(
                "Cross-grid-cell ecology used before "
                "initialize_cross_grid_cell_ecology() was called"
            )

    def initialize_cross_grid_cell_ecology(
        self,
        global_model_time_step_unit: str,
        draw_randomly: bool,
        model_initialisation,
    ) -> None:
        """Build the dispersal formulation registry and the results applier."""
        dispersal = self._dispersal_factory(
            draw_randomly, global_model_time_step_unit, model_initialisation)
        self._dispersal_implementations = MappingProxyType({BASIC_DISPERSAL: dispersal})
        self._apply_cross_grid_cell_ecology = self._applier_factory()
        logger.debug("Initialised cross-grid-cell ecology with %s",
                     list(self._dispersal_implementations))

    def run_cross_grid_cell_ecology(
        self,
        cell_index: CellIndex,
        grid: ModelGrid,
        dispersal_only: bool,
        cohort_definitions: FunctionalGroupDefinitions,
        stock_definitions: FunctionalGroupDefinitions,
        current_month: int,
    ) -> None:
        """Run the registered dispersal formulation for one grid cell.

        Raises:
            RuntimeError: If called before initialisation.
        """
        self._require_initialised()
        self._dispersal_implementations[BASIC_DISPERSAL].run_cross_grid_cell_ecological_process(
            cell_index, grid, dispersal_only, cohort_definitions,
            stock_definitions, current_month)

    def update_cross_grid_cell_ecology(
        self,
        grid: ModelGrid,
        dispersal_counter: int,
        tracker,
        current_time_step: int,
    ) -> int:
        """Commit pending cross-cell results and return the updated counter.

        Raises:
            RuntimeError: If called before initialisation.
        """
        self._require_initialised()
        return self._apply_cross_grid_cell_ecology.update_all_cross_grid_cell_ecology(
            grid, dispersal_counter, tracker, current_time_step)
