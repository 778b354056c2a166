"""Cohort dispersal between grid cells.

Three formulations, chosen per cohort by the Dispersal process:
  - Advective:  planktonic cohorts in marine cells drift with monthly
                ocean currents plus Gaussian horizontal diffusion, in
                several sub-steps per model time step
  - Diffusive:  immature cohorts move at a body-mass dependent speed in
                a uniformly random direction
  - Responsive: mature cohorts move when starving (body mass well below
                adult mass) or when their density is low

All formulations treat the cell as a rectangle displaced by the
velocity (u, v): the displaced area outside the original cell, divided
by the cell area, is the probability of leaving, and the split between
the longitudinal, latitudinal and diagonal slivers picks the neighbour.

Moves are not applied here. Each accepted move is queued on the source
cell as a PendingDispersal and committed by ApplyCrossGridCellEcology.

References:
  - Harfoot et al. (2014) Text S1 §4 (dispersal)
  - Okubo (1971) Deep-Sea Res 18:789-802 (horizontal diffusivity)
"""

from __future__ import annotations

import logging
import math
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

from madingley.config import DispersalSection
from madingley.functional_groups import FunctionalGroupDefinitions
from madingley.grid import CellIndex, ModelGrid
from madingley.rng import DEFAULT_SEED, create_rng_hierarchy
from madingley.types import Cohort, Direction, PendingDispersal, Realm
from madingley.utils import convert_time_units

logger = logging.getLogger(__name__)

ADVECTIVE = "basic advective dispersal"
DIFFUSIVE = "basic diffusive dispersal"
RESPONSIVE = "basic responsive dispersal"

DEFAULT_PLANKTON_THRESHOLD = 0.01  # g


# ═══════════════════════════════════════════════════════════════════════
# SHARED METHODS
# ═══════════════════════════════════════════════════════════════════════

class CommonDispersalMethods:
    """Probability, acceptance and destination logic shared by all formulations."""

    name = ""

    def __init__(self, rng: np.random.Generator):
        self.rng = rng

    def check_for_dispersal(self, dispersal_probability: float) -> float:
        """Draw u ~ U(0, 1); return u if the cohort disperses, else -1."""
        random_value = self.rng.random()
        if dispersal_probability >= random_value:
            return random_value
        return -1.0

    @staticmethod
    def dispersal_probability_from_velocity(
        grid: ModelGrid,
        lat_index: int,
        lon_index: int,
        u_distance: float,
        v_distance: float,
    ) -> np.ndarray:
        """Displaced-area dispersal array for a cell moved by (u, v) km.

        Returns:
            [p_total, p_lon, p_lat, p_diagonal, u, v] where the three
            partial probabilities sum to p_total.
        """
        lat_length = grid.cell_heights_km[lat_index]
        lon_length = grid.cell_widths_km[lat_index]
        area_both = abs(u_distance * v_distance)
        area_u = abs(u_distance * lat_length) - area_both
        area_v = abs(v_distance * lon_length) - area_both
        cell_area = grid.get_enviro_layer('Cell Area', 0, lat_index, lon_index)
        p_total = (area_u + area_v + area_both) / cell_area
        return np.array([
            p_total,
            area_u / cell_area,
            area_v / cell_area,
            area_both / cell_area,
            u_distance,
            v_distance,
        ])

    def cell_to_disperse_to(
        self,
        grid: ModelGrid,
        lat_index: int,
        lon_index: int,
        dispersal_array: np.ndarray,
        random_value: float,
        u_speed: float,
        v_speed: float,
        exit_direction: Optional[Direction] = None,
    ) -> Tuple[Optional[CellIndex], Optional[Direction], Optional[Direction]]:
        """Pick the neighbour a dispersing cohort moves into.

        The random value that triggered dispersal is compared against the
        cumulative longitudinal, latitudinal and diagonal probabilities;
        the signs of u and v give the side.

        Args:
            exit_direction: Exit already recorded earlier in this model
                time step (advective sub-steps), or None.

        Returns:
            (destination, exit_direction, entry_direction). Destination
            is None when the neighbour is not traversable; the exit and
            entry directions are then left as they were.
        """
        if random_value <= dispersal_array[1]:
            direction = Direction.E if u_speed > 0 else Direction.W
        elif random_value <= dispersal_array[1] + dispersal_array[2]:
            direction = Direction.N if v_speed > 0 else Direction.S
        elif u_speed > 0:
            direction = Direction.NE if v_speed > 0 else Direction.SE
        else:
            direction = Direction.NW if v_speed > 0 else Direction.SW

        destination = grid.check_dispersal(lat_index, lon_index, direction)
        if destination is None:
            return None, exit_direction, None
        if exit_direction is None:
            exit_direction = direction
        return destination, exit_direction, direction.opposite()

    def _attempt_move(
        self,
        grid: ModelGrid,
        cell_index: CellIndex,
        dispersal_array: np.ndarray,
        functional_group: int,
        cohort_number: int,
    ) -> bool:
        """Test a dispersal array and queue the move if it succeeds."""
        random_value = self.check_for_dispersal(dispersal_array[0])
        if random_value <= 0:
            return False
        destination, exit_dir, entry_dir = self.cell_to_disperse_to(
            grid, cell_index[0], cell_index[1], dispersal_array, random_value,
            dispersal_array[4], dispersal_array[5],
        )
        if destination is None:
            return False
        grid.add_pending_dispersal(cell_index[0], cell_index[1], PendingDispersal(
            functional_group=functional_group,
            cohort_index=cohort_number,
            destination=destination,
            exit_direction=exit_dir,
            entry_direction=entry_dir,
        ))
        return True

    def run_dispersal(
        self,
        cell_index: CellIndex,
        grid: ModelGrid,
        cohort: Cohort,
        functional_group: int,
        cohort_number: int,
        current_month: int,
    ) -> None:
        raise NotImplementedError


class _BodyMassSpeedMixin:
    """Dispersal speed (km per model time step) scaling with body mass."""

    speed_scalar: float
    speed_exponent: float
    delta_t: float

    def calculate_dispersal_speed(self, body_mass: float) -> float:
        return self.speed_scalar * body_mass ** self.speed_exponent * self.delta_t

    def _random_direction_array(self, grid: ModelGrid, lat_index: int,
                                lon_index: int, speed: float) -> np.ndarray:
        direction = self.rng.random() * 2.0 * math.pi
        u_speed = speed * math.cos(direction)
        v_speed = speed * math.sin(direction)
        return CommonDispersalMethods.dispersal_probability_from_velocity(
            grid, lat_index, lon_index, u_speed, v_speed)


# ═══════════════════════════════════════════════════════════════════════
# DIFFUSIVE DISPERSAL
# ═══════════════════════════════════════════════════════════════════════

class DiffusiveDispersal(_BodyMassSpeedMixin, CommonDispersalMethods):
    """Random-direction dispersal of immature cohorts."""

    name = DIFFUSIVE

    def __init__(
        self,
        global_model_time_step_unit: str,
        rng: np.random.Generator,
        time_unit: str = "month",
        speed_scalar: float = 0.0278,
        speed_exponent: float = 0.48,
    ):
        super().__init__(rng)
        self.time_unit = time_unit
        self.speed_scalar = speed_scalar
        self.speed_exponent = speed_exponent
        self.delta_t = convert_time_units(global_model_time_step_unit, time_unit)

    def calculate_dispersal_probability(self, grid: ModelGrid, lat_index: int,
                                        lon_index: int, speed: float) -> np.ndarray:
        arr = self._random_direction_array(grid, lat_index, lon_index, speed)
        if arr[0] >= 1.0:
            logger.debug("Diffusive dispersal probability %.3f >= 1 in cell (%d, %d)",
                         arr[0], lat_index, lon_index)
        return arr

    def run_dispersal(self, cell_index, grid, cohort, functional_group,
                      cohort_number, current_month):
        speed = self.calculate_dispersal_speed(cohort.individual_body_mass)
        arr = self.calculate_dispersal_probability(grid, cell_index[0], cell_index[1], speed)
        self._attempt_move(grid, cell_index, arr, functional_group, cohort_number)


# ═══════════════════════════════════════════════════════════════════════
# RESPONSIVE DISPERSAL
# ═══════════════════════════════════════════════════════════════════════

class ResponsiveDispersal(_BodyMassSpeedMixin, CommonDispersalMethods):
    """Starvation- and density-driven dispersal of mature cohorts.

    Starvation is checked first: a cohort below the starvation threshold
    (as a fraction of adult mass) always attempts to move; one between the
    threshold and adult mass attempts with probability rising linearly as
    mass falls. Only if no starvation attempt was made is low density
    checked. All attempts travel at the adult-mass speed.
    """

    name = RESPONSIVE

    def __init__(
        self,
        global_model_time_step_unit: str,
        rng: np.random.Generator,
        time_unit: str = "month",
        density_threshold_scaling: float = 50000.0,
        starvation_threshold: float = 0.8,
        speed_scalar: float = 0.0278,
        speed_exponent: float = 0.48,
    ):
        super().__init__(rng)
        self.time_unit = time_unit
        self.density_threshold_scaling = density_threshold_scaling
        self.starvation_threshold = starvation_threshold
        self.speed_scalar = speed_scalar
        self.speed_exponent = speed_exponent
        self.delta_t = convert_time_units(global_model_time_step_unit, time_unit)

    def calculate_dispersal_probability(self, grid: ModelGrid, lat_index: int,
                                        lon_index: int, speed: float) -> np.ndarray:
        arr = self._random_direction_array(grid, lat_index, lon_index, speed)
        arr[0] = min(arr[0], 1.0)
        return arr

    def check_starvation_dispersal(self, grid, cell_index, cohort,
                                   functional_group, cohort_number) -> bool:
        """Returns True if a starvation-driven attempt was made."""
        if cohort.individual_body_mass >= cohort.adult_mass:
            return False
        proportional_mass = cohort.individual_body_mass / cohort.adult_mass
        if proportional_mass >= self.starvation_threshold:
            p_attempt = ((1.0 - proportional_mass)
                         / (1.0 - self.starvation_threshold))
            if p_attempt <= self.rng.random():
                return False
        speed = self.calculate_dispersal_speed(cohort.adult_mass)
        arr = self.calculate_dispersal_probability(grid, cell_index[0], cell_index[1], speed)
        self._attempt_move(grid, cell_index, arr, functional_group, cohort_number)
        return True

    def check_density_driven_dispersal(self, grid, cell_index, cohort,
                                       functional_group, cohort_number) -> None:
        cell_area = grid.get_enviro_layer('Cell Area', 0, cell_index[0], cell_index[1])
        density = cohort.cohort_abundance / cell_area
        if density < self.density_threshold_scaling / cohort.adult_mass:
            speed = self.calculate_dispersal_speed(cohort.adult_mass)
            arr = self.calculate_dispersal_probability(grid, cell_index[0], cell_index[1], speed)
            self._attempt_move(grid, cell_index, arr, functional_group, cohort_number)

    def run_dispersal(self, cell_index, grid, cohort, functional_group,
                      cohort_number, current_month):
        if not self.check_starvation_dispersal(grid, cell_index, cohort,
                                               functional_group, cohort_number):
            self.check_density_driven_dispersal(grid, cell_index, cohort,
                                                functional_group, cohort_number)


# ═══════════════════════════════════════════════════════════════════════
# ADVECTIVE DISPERSAL
# ═══════════════════════════════════════════════════════════════════════

class AdvectiveDispersal(CommonDispersalMethods):
    """Drift with monthly ocean currents, in sub-steps of a few hours.

    Currents (m/s) are converted to km per sub-step. Each sub-step adds an
    isotropic Gaussian diffusive displacement with variance 2·K·Δt, where
    K is the horizontal diffusivity. A cohort can cross several cells in
    one model time step; only its final cell is queued.
    """

    name = ADVECTIVE

    def __init__(
        self,
        global_model_time_step_unit: str,
        rng: np.random.Generator,
        time_unit: str = "month",
        horizontal_diffusivity: float = 100.0,
        time_step_hours: int = 18,
    ):
        super().__init__(rng)
        self.time_unit = time_unit
        self.horizontal_diffusivity = horizontal_diffusivity
        self.time_step_hours = time_step_hours
        # m² s⁻¹ → km² per advective sub-step
        self.horizontal_diffusivity_km2_per_step = (
            horizontal_diffusivity / (1000.0 * 1000.0) * 60.0 * 60.0 * time_step_hours
        )
        self.delta_t = convert_time_units(global_model_time_step_unit, time_unit)
        days_per_step = convert_time_units(global_model_time_step_unit, "day")
        self.advection_steps_per_model_step = days_per_step * 24.0 / time_step_hours
        # m s⁻¹ → km per model time step
        self.velocity_unit_conversion = 60.0 * 60.0 * 24.0 * days_per_step * self.delta_t / 1000.0

    def rescale_dispersal_speed(self, speed: float) -> float:
        """Current speed (m/s) → km per advective sub-step."""
        return speed * self.velocity_unit_conversion / self.advection_steps_per_model_step

    def calculate_diffusion(self) -> Tuple[float, float]:
        scale = math.sqrt(2.0 * self.horizontal_diffusivity_km2_per_step)
        return (self.rng.standard_normal() * scale,
                self.rng.standard_normal() * scale)

    def calculate_dispersal_probability(self, grid: ModelGrid, lat_index: int,
                                        lon_index: int, rescaled_u: float,
                                        rescaled_v: float) -> np.ndarray:
        du, dv = self.calculate_diffusion()
        arr = self.dispersal_probability_from_velocity(
            grid, lat_index, lon_index, rescaled_u + du, rescaled_v + dv)
        if arr[0] >= 1.0:
            logger.debug("Advective dispersal probability %.3f >= 1 in cell (%d, %d)",
                         arr[0], lat_index, lon_index)
        return arr

    def _rescaled_currents(self, grid: ModelGrid, location: CellIndex,
                           current_month: int) -> Tuple[float, float]:
        u = grid.get_enviro_layer('uVel', current_month, location[0], location[1])
        v = grid.get_enviro_layer('vVel', current_month, location[0], location[1])
        return self.rescale_dispersal_speed(u), self.rescale_dispersal_speed(v)

    def run_dispersal(self, cell_index, grid, cohort, functional_group,
                      cohort_number, current_month):
        exit_direction: Optional[Direction] = None
        entry_direction: Optional[Direction] = None
        location = (cell_index[0], cell_index[1])
        u_speed, v_speed = self._rescaled_currents(grid, location, current_month)

        for _ in range(math.ceil(self.advection_steps_per_model_step)):
            arr = self.calculate_dispersal_probability(
                grid, location[0], location[1], u_speed, v_speed)
            random_value = self.check_for_dispersal(arr[0])
            if random_value <= 0:
                continue
            destination, exit_direction, entry = self.cell_to_disperse_to(
                grid, location[0], location[1], arr, random_value,
                arr[4], arr[5], exit_direction,
            )
            if destination is not None:
                entry_direction = entry
                location = destination
                u_speed, v_speed = self._rescaled_currents(grid, location, current_month)

        if location != (cell_index[0], cell_index[1]):
            grid.add_pending_dispersal(cell_index[0], cell_index[1], PendingDispersal(
                functional_group=functional_group,
                cohort_index=cohort_number,
                destination=location,
                exit_direction=exit_direction,
                entry_direction=entry_direction,
            ))


# ═══════════════════════════════════════════════════════════════════════
# DISPERSAL PROCESS
# ═══════════════════════════════════════════════════════════════════════

class Dispersal:
    """Cross-grid-cell dispersal process routing each cohort to a formulation.

    Routing, per cohort:
      - marine cell and (planktonic mobility or mass ≤ plankton threshold)
        → advective
      - otherwise mature → responsive
      - otherwise → diffusive

    Args:
        draw_randomly: Seed the formulations' generators from OS entropy
            instead of the fixed model seed.
        global_model_time_step_unit: Unit of one model time step.
        model_initialisation: Initialisation context; its ``dispersal``
            section and ``plankton_dispersal_threshold`` are read when
            present, defaults otherwise.
        rngs: Optional pre-built RNG hierarchy ('advective', 'diffusive',
            'responsive' streams).
    """

    def __init__(
        self,
        draw_randomly: bool,
        global_model_time_step_unit: str,
        model_initialisation=None,
        rngs: Optional[Dict[str, np.random.Generator]] = None,
    ):
        params = getattr(model_initialisation, 'dispersal', None) or DispersalSection()
        self.plankton_threshold = float(getattr(
            model_initialisation, 'plankton_dispersal_threshold',
            DEFAULT_PLANKTON_THRESHOLD))
        if rngs is None:
            seed = getattr(getattr(model_initialisation, 'model', None), 'seed', DEFAULT_SEED)
            rngs = create_rng_hierarchy(seed, draw_randomly=draw_randomly)

        implementations = {
            ADVECTIVE: AdvectiveDispersal(
                global_model_time_step_unit, rngs['advective'],
                time_unit=params.advective_time_unit,
                horizontal_diffusivity=params.horizontal_diffusivity,
                time_step_hours=params.advective_time_step_hours,
            ),
            DIFFUSIVE: DiffusiveDispersal(
                global_model_time_step_unit, rngs['diffusive'],
                time_unit=params.diffusive_time_unit,
                speed_scalar=params.diffusive_speed_scalar,
                speed_exponent=params.diffusive_speed_exponent,
            ),
            RESPONSIVE: ResponsiveDispersal(
                global_model_time_step_unit, rngs['responsive'],
                time_unit=params.responsive_time_unit,
                density_threshold_scaling=params.density_threshold_scaling,
                starvation_threshold=params.starvation_threshold,
                speed_scalar=params.responsive_speed_scalar,
                speed_exponent=params.responsive_speed_exponent,
            ),
        }
        self._implementations = implementations
        self.implementations: Mapping[str, CommonDispersalMethods] = \
            MappingProxyType(implementations)

    def choose_implementation(
        self,
        cell_realm: float,
        cohort: Cohort,
        cohort_definitions: FunctionalGroupDefinitions,
    ) -> str:
        """Name of the formulation that moves this cohort."""
        if cell_realm == Realm.MARINE and (
            cohort_definitions.get_trait_names('mobility', cohort.functional_group_index)
            == 'planktonic'
            or cohort.individual_body_mass <= self.plankton_threshold
        ):
            return ADVECTIVE
        if cohort.is_mature:
            return RESPONSIVE
        return DIFFUSIVE

    def run_cross_grid_cell_ecological_process(
        self,
        cell_index: CellIndex,
        grid: ModelGrid,
        dispersal_only: bool,
        cohort_definitions: FunctionalGroupDefinitions,
        stock_definitions: FunctionalGroupDefinitions,
        current_month: int,
    ) -> None:
        """Decide dispersal for every cohort in one cell.

        Accepted moves are queued on the cell's pending dispersal list.
        """
        ii, jj = cell_index[0], cell_index[1]
        cell_realm = grid.get_enviro_layer('Realm', 0, ii, jj)
        cohorts = grid.get_grid_cell_cohorts(ii, jj)
        for kk, group in enumerate(cohorts):
            for ll, cohort in enumerate(group):
                name = self.choose_implementation(cell_realm, cohort, cohort_definitions)
                self._implementations[name].run_dispersal(
                    (ii, jj), grid, cohort, kk, ll, current_month)
