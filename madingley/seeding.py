"""Initial seeding of cohorts and stocks into grid cells.

Cohort body masses are drawn per functional group:
  - Adult mass log-uniform between 50× the group minimum and its maximum
  - Juvenile mass from an adult:juvenile ratio drawn until the juvenile
    is lighter than the adult and at least the group minimum mass
  - Initial biomass density falls with juvenile mass as 0.6^log10(m)

Stocks get one entry per matching stock functional group. Marine stocks
start at a fixed biomass; terrestrial stocks at a configured biomass
density times the cell area (no plant model in this package).

References:
  - Harfoot et al. (2014) Text S1 §1.3 (model initialisation)
"""

from __future__ import annotations

import logging
import math
from typing import Dict

import numpy as np

from madingley.functional_groups import FunctionalGroupDefinitions
from madingley.handlers import GridCellCohortHandler, GridCellStockHandler
from madingley.types import Cohort, Realm, Stock

logger = logging.getLogger(__name__)

REALM_TRAIT_VALUES = {
    Realm.LAND: 'terrestrial',
    Realm.MARINE: 'marine',
}

TROPHIC_INDEX = {
    'herbivore': 2.0,
    'omnivore': 2.5,
    'carnivore': 3.0,
}

# Rejection draws before the marine juvenile ratio scaling is relaxed
_MARINE_RATIO_RETRIES = 10


def realm_functional_groups(
    definitions: FunctionalGroupDefinitions, realm: int,
) -> np.ndarray:
    """Indices of the functional groups that live in the given realm."""
    trait_value = REALM_TRAIT_VALUES.get(realm)
    if trait_value is None:
        return np.array([], dtype=int)
    indices = definitions.get_functional_group_index('realm', trait_value)
    if indices is None:
        return np.array([], dtype=int)
    return indices


def total_initial_cohorts(
    definitions: FunctionalGroupDefinitions, realm: int,
) -> float:
    """Sum of initial cohort numbers over the realm's functional groups."""
    groups = realm_functional_groups(definitions, realm)
    if len(groups) == 0:
        return 0.0
    n_initial = definitions.get_biological_property_all_functional_groups(
        'initial number of gridcellcohorts')
    return float(np.sum(n_initial[groups]))


def trophic_index_for(nutrition_source: str) -> float:
    """Initial trophic index from a nutrition source trait value.

    Raises:
        ValueError: For a nutrition source other than herbivore,
            omnivore or carnivore.
    """
    try:
        return TROPHIC_INDEX[nutrition_source]
    except KeyError:
        raise ValueError(
            f"Unexpected nutrition source '{nutrition_source}' when "
            f"assigning trophic index"
        ) from None


def draw_adult_mass(rng: np.random.Generator, min_mass: float,
                    max_mass: float) -> float:
    lo = math.log10(50.0 * min_mass)
    hi = math.log10(max_mass)
    return 10.0 ** (rng.random() * (hi - lo) + lo)


def draw_juvenile_mass(rng: np.random.Generator, adult_mass: float,
                       min_mass: float, realm: int) -> float:
    """Draw a juvenile mass below ``adult_mass`` and at least ``min_mass``.

    Marine cohorts have a wider adult:juvenile ratio; the log-ratio
    scaling is relaxed step by step so that very large marine groups
    (e.g. baleen whales) still find a valid juvenile mass.
    """
    if realm == Realm.LAND:
        while True:
            expected_ln_ratio = 2.24 + 0.13 * math.log(adult_mass)
            ratio = 1.0 + rng.lognormal(expected_ln_ratio, 0.5)
            juvenile = adult_mass / ratio
            if juvenile < adult_mass and juvenile >= min_mass:
                return juvenile

    scaling = 0.2
    counter = 0
    while True:
        expected_ln_ratio = 2.5 + scaling * math.log(adult_mass)
        ratio = 1.0 + 10.0 * rng.lognormal(expected_ln_ratio, 0.5)
        juvenile = adult_mass / ratio
        if juvenile < adult_mass and juvenile >= min_mass:
            return juvenile
        counter += 1
        if counter > _MARINE_RATIO_RETRIES:
            scaling -= 0.01
            counter = 0


def draw_optimal_prey_body_size_ratio(rng: np.random.Generator, realm: int,
                                      diet: str) -> float:
    if realm == Realm.MARINE and diet == 'allspecial':
        # Filter feeders: an absolute prey size, invariant with predator size
        return max(0.00001, rng.normal(0.0001, 0.1))
    return max(0.01, rng.normal(0.1, 0.02))


def seed_grid_cell_cohorts(
    cell_environment: Dict[str, np.ndarray],
    cohorts: GridCellCohortHandler,
    definitions: FunctionalGroupDefinitions,
    rng: np.random.Generator,
    next_cohort_id: int = 0,
    zero_abundance: bool = False,
) -> int:
    """Populate a cell's cohort handler with initial cohorts.

    Args:
        cell_environment: Cell environment layers ("Realm", "Cell Area").
        cohorts: Handler with one (empty) list per cohort functional group.
        definitions: Cohort functional group definitions.
        rng: Generator for body mass draws.
        next_cohort_id: First cohort id to assign.
        zero_abundance: Seed one cohort per group with zero abundance.

    Returns:
        The next unused cohort id.
    """
    realm = int(cell_environment['Realm'][0])
    groups = realm_functional_groups(definitions, realm)
    n_cell_cohorts = total_initial_cohorts(definitions, realm)
    if n_cell_cohorts <= 0:
        return next_cohort_id

    cell_area = float(cell_environment['Cell Area'][0])
    mass_minima = definitions.get_biological_property_all_functional_groups('minimum mass')
    mass_maxima = definitions.get_biological_property_all_functional_groups('maximum mass')
    time_active = definitions.get_biological_property_all_functional_groups(
        'proportion suitable time active')
    n_initial = definitions.get_biological_property_all_functional_groups(
        'initial number of gridcellcohorts')
    nutrition = definitions.get_trait_values_all_functional_groups('nutrition source')

    for fg in groups:
        fg = int(fg)
        n_cohorts = 1 if zero_abundance else int(n_initial[fg])
        diet = definitions.get_trait_names('diet', fg)
        for _ in range(n_cohorts):
            adult = draw_adult_mass(rng, mass_minima[fg], mass_maxima[fg])
            prey_ratio = draw_optimal_prey_body_size_ratio(rng, realm, diet)
            juvenile = draw_juvenile_mass(rng, adult, mass_minima[fg], realm)

            # g ha⁻¹ → g km⁻² → g per cell, rescaled by cohorts per cell
            biomass = ((3300.0 / n_cell_cohorts) * 100.0 * 3000.0
                       * 0.6 ** math.log10(juvenile) * cell_area)
            abundance = 0.0 if zero_abundance else biomass / juvenile

            cohorts[fg].append(Cohort.create(
                functional_group_index=fg,
                juvenile_mass=juvenile,
                adult_mass=adult,
                initial_body_mass=juvenile,
                initial_abundance=abundance,
                optimal_prey_body_size_ratio=prey_ratio,
                birth_time_step=0,
                proportion_time_active=float(time_active[fg]),
                cohort_id=next_cohort_id,
                trophic_index=trophic_index_for(nutrition[fg]),
            ))
            next_cohort_id += 1
    return next_cohort_id


def seed_grid_cell_stocks(
    cell_environment: Dict[str, np.ndarray],
    stocks: GridCellStockHandler,
    definitions: FunctionalGroupDefinitions,
    terrestrial_biomass_density: float,
    marine_biomass: float,
) -> None:
    """Populate a cell's stock handler with one stock per matching group."""
    realm = int(cell_environment['Realm'][0])
    groups = realm_functional_groups(definitions, realm)
    if len(groups) == 0:
        return
    individual_mass = definitions.get_biological_property_all_functional_groups(
        'individual mass')
    cell_area = float(cell_environment['Cell Area'][0])
    for fg in groups:
        fg = int(fg)
        if realm == Realm.LAND:
            total = terrestrial_biomass_density * cell_area
        else:
            total = marine_biomass
        stocks[fg].append(Stock(fg, float(individual_mass[fg]), total))
