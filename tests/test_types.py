"""Tests for madingley.types: enums, stocks, cohorts and dispersal records."""

import copy
import math

import numpy as np
import pytest

from madingley.types import (
    DIRECTION_LONG_NAMES,
    DIRECTION_OFFSETS,
    Cohort,
    Direction,
    PendingDispersal,
    Realm,
    Stock,
)


# ── Enum tests ────────────────────────────────────────────────────────

class TestRealmEnum:
    def test_values(self):
        assert Realm.LAND == 1
        assert Realm.MARINE == 2

    def test_compares_with_float_layer(self):
        """Realm layers are stored as floats."""
        assert 2.0 == Realm.MARINE


class TestDirectionEnum:
    def test_count(self):
        assert len(Direction) == 8

    def test_clockwise_from_north(self):
        assert [d.name for d in Direction] == ['N', 'NE', 'E', 'SE', 'S', 'SW', 'W', 'NW']

    @pytest.mark.parametrize("direction,expected", [
        (Direction.N, Direction.S),
        (Direction.NE, Direction.SW),
        (Direction.E, Direction.W),
        (Direction.SE, Direction.NW),
    ])
    def test_opposite(self, direction, expected):
        assert direction.opposite() == expected
        assert expected.opposite() == direction

    def test_long_names(self):
        assert Direction.SE.long_name == 'SouthEast'
        assert Direction.SW.long_name == 'SouthWest'
        assert len(DIRECTION_LONG_NAMES) == 8

    def test_offsets_are_opposite_pairs(self):
        for direction in Direction:
            d_lat, d_lon = DIRECTION_OFFSETS[direction]
            o_lat, o_lon = DIRECTION_OFFSETS[direction.opposite()]
            assert (d_lat + o_lat, d_lon + o_lon) == (0, 0)

    def test_integer_compatible(self):
        """Directions index the last axis of count arrays."""
        arr = np.zeros(8)
        arr[Direction.W] = 1.0
        assert arr[6] == 1.0


# ── Stock tests ───────────────────────────────────────────────────────

class TestStock:
    def test_construction(self):
        s = Stock(2, 1.5, 100.0)
        assert s.functional_group_index == 2
        assert s.individual_body_mass == 1.5
        assert s.total_biomass == 100.0

    def test_mutable_biomass(self):
        s = Stock(2, 1.5, 100.0)
        s.total_biomass = 250.0
        s.individual_body_mass = 2.0
        assert s.total_biomass == 250.0
        assert s.individual_body_mass == 2.0
        assert s.functional_group_index == 2

    def test_functional_group_read_only(self):
        s = Stock(0, 1.0, 1.0)
        with pytest.raises(AttributeError):
            s.functional_group_index = 3

    def test_copy_is_independent(self):
        s = Stock(1, 1.0, 10.0)
        c = s.copy()
        assert c == s
        c.total_biomass = 20.0
        assert s.total_biomass == 10.0

    def test_copy_unaffected_by_original(self):
        s = Stock(1, 1.0, 100.0)
        c = s.copy()
        s.total_biomass = 250.0
        assert c.total_biomass == 100.0

    def test_copy_module(self):
        s = Stock(1, 1.0, 10.0)
        assert copy.copy(s) == s

    def test_zero_biomass_allowed(self):
        assert Stock(0, 1.0, 0.0).total_biomass == 0.0


# ── Cohort tests ──────────────────────────────────────────────────────

class TestCohort:
    @pytest.fixture
    def cohort(self):
        return Cohort.create(
            functional_group_index=3,
            juvenile_mass=2.0,
            adult_mass=50.0,
            initial_body_mass=2.0,
            initial_abundance=1000.0,
            optimal_prey_body_size_ratio=0.1,
            birth_time_step=0,
            proportion_time_active=0.5,
            cohort_id=7,
            trophic_index=2.0,
        )

    def test_create_stores_log_ratio(self, cohort):
        assert cohort.log_optimal_prey_body_size_ratio == pytest.approx(math.log(0.1))

    def test_create_defaults(self, cohort):
        assert cohort.cohort_ids == [7]
        assert cohort.maximum_achieved_body_mass == 2.0
        assert cohort.maturity_time_step is None
        assert cohort.individual_reproductive_potential_mass == 0.0
        assert not cohort.merged

    def test_is_mature(self, cohort):
        assert not cohort.is_mature
        cohort.maturity_time_step = 4
        assert cohort.is_mature

    def test_biomass(self, cohort):
        assert cohort.biomass == pytest.approx(2000.0)

    def test_functional_group_read_only(self, cohort):
        with pytest.raises(AttributeError):
            cohort.functional_group_index = 0

    def test_copy_has_independent_ids(self, cohort):
        c = cohort.copy()
        assert c == cohort
        c.cohort_ids.append(8)
        assert cohort.cohort_ids == [7]


class TestPendingDispersal:
    def test_fields(self):
        rec = PendingDispersal(1, 4, (2, 3), Direction.E, Direction.W)
        assert rec.functional_group == 1
        assert rec.cohort_index == 4
        assert rec.destination == (2, 3)
        assert rec.exit_direction == Direction.E
        assert rec.entry_direction == Direction.W
