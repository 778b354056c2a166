"""Core data types for the Madingley dispersal model.

This module defines:
  - Realm and Direction enumerations
  - Stock: aggregate biomass of one stock functional group in a cell
  - Cohort: a group of heterotrophs sharing a functional group and body mass
  - PendingDispersal: one cohort move decided but not yet committed

All modules import these types from here.

References:
  - Harfoot et al. (2014) PLoS Biol 12(4): e1001841, Text S1 §1 (cohorts)
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class Realm(IntEnum):
    """Cell realm codes as stored in the "Realm" environment layer."""
    LAND = 1
    MARINE = 2


class Direction(IntEnum):
    """Compass directions used to record cell exits and entries.

    Values index the last axis of the inbound/outbound count arrays and
    the column order of the dispersal tracker output.
    """
    N  = 0
    NE = 1
    E  = 2
    SE = 3
    S  = 4
    SW = 5
    W  = 6
    NW = 7

    def opposite(self) -> 'Direction':
        """Direction pointing back the way this one came."""
        return Direction((self.value + 4) % 8)

    @property
    def long_name(self) -> str:
        return DIRECTION_LONG_NAMES[self.value]


DIRECTION_LONG_NAMES = (
    'North', 'NorthEast', 'East', 'SouthEast',
    'South', 'SouthWest', 'West', 'NorthWest',
)

# (d_lat, d_lon) offsets; lat index increases northward
DIRECTION_OFFSETS = {
    Direction.N:  (1, 0),
    Direction.NE: (1, 1),
    Direction.E:  (0, 1),
    Direction.SE: (-1, 1),
    Direction.S:  (-1, 0),
    Direction.SW: (-1, -1),
    Direction.W:  (0, -1),
    Direction.NW: (1, -1),
}


# ═══════════════════════════════════════════════════════════════════════
# STOCKS AND COHORTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Stock:
    """Aggregate biomass of one stock (autotroph) functional group.

    ``functional_group_index`` is fixed at construction; the individual
    body mass and total biomass are mutated in place by ecological
    processes.
    """
    functional_group_index: int
    individual_body_mass: float
    total_biomass: float

    def __setattr__(self, name, value):
        if name == 'functional_group_index' and name in self.__dict__:
            raise AttributeError("functional_group_index is read-only")
        object.__setattr__(self, name, value)

    def copy(self) -> 'Stock':
        """Independent, value-equal copy of this stock."""
        return Stock(
            self.functional_group_index,
            self.individual_body_mass,
            self.total_biomass,
        )

    __copy__ = copy


@dataclass
class Cohort:
    """A cohort of heterotrophs in one grid cell.

    ``maturity_time_step`` is None until the cohort reaches adult mass.
    The optimal prey body size ratio is stored as its natural log.
    """
    functional_group_index: int
    juvenile_mass: float
    adult_mass: float
    individual_body_mass: float
    cohort_abundance: float
    log_optimal_prey_body_size_ratio: float = math.log(0.1)
    birth_time_step: int = 0
    proportion_time_active: float = 1.0
    trophic_index: float = 0.0
    individual_reproductive_potential_mass: float = 0.0
    maximum_achieved_body_mass: Optional[float] = None
    maturity_time_step: Optional[int] = None
    cohort_ids: List[int] = field(default_factory=list)
    merged: bool = False

    def __post_init__(self):
        if self.maximum_achieved_body_mass is None:
            self.maximum_achieved_body_mass = self.juvenile_mass

    def __setattr__(self, name, value):
        if name == 'functional_group_index' and name in self.__dict__:
            raise AttributeError("functional_group_index is read-only")
        object.__setattr__(self, name, value)

    @classmethod
    def create(
        cls,
        functional_group_index: int,
        juvenile_mass: float,
        adult_mass: float,
        initial_body_mass: float,
        initial_abundance: float,
        optimal_prey_body_size_ratio: float,
        birth_time_step: int,
        proportion_time_active: float,
        cohort_id: int,
        trophic_index: float,
    ) -> 'Cohort':
        """Build a newly seeded or newly born cohort.

        Args:
            optimal_prey_body_size_ratio: Ratio on the linear scale; the
                cohort stores its natural log.
            cohort_id: Identifier assigned from the caller's running counter.
        """
        return cls(
            functional_group_index=functional_group_index,
            juvenile_mass=juvenile_mass,
            adult_mass=adult_mass,
            individual_body_mass=initial_body_mass,
            cohort_abundance=initial_abundance,
            log_optimal_prey_body_size_ratio=math.log(optimal_prey_body_size_ratio),
            birth_time_step=birth_time_step,
            proportion_time_active=proportion_time_active,
            trophic_index=trophic_index,
            cohort_ids=[cohort_id],
        )

    @property
    def is_mature(self) -> bool:
        return self.maturity_time_step is not None

    @property
    def biomass(self) -> float:
        """Total cohort biomass (g)."""
        return self.individual_body_mass * self.cohort_abundance

    def copy(self) -> 'Cohort':
        new = copy.copy(self.__dict__)
        new['cohort_ids'] = list(self.cohort_ids)
        return Cohort(**new)

    __copy__ = copy


# ═══════════════════════════════════════════════════════════════════════
# DISPERSAL RECORDS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class PendingDispersal:
    """A cohort flagged to move out of its cell at the end of a time step.

    ``cohort_index`` is the cohort's position within its functional group
    list in the source cell at the time the move was decided.
    """
    functional_group: int
    cohort_index: int
    destination: Tuple[int, int]
    exit_direction: Direction
    entry_direction: Direction
