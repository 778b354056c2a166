"""Tests for madingley.functional_groups: trait and property lookups."""

import numpy as np
import pytest

from madingley.functional_groups import (
    DEFAULT_COHORT_DEFINITIONS,
    DEFAULT_STOCK_DEFINITIONS,
    FunctionalGroupDefinitions,
)


@pytest.fixture
def small_defs():
    return FunctionalGroupDefinitions.from_records([
        {'DEFINITION_Realm': 'Marine', 'DEFINITION_Mobility': 'Planktonic',
         'PROPERTY_Minimum mass': '0.001', 'NOTES_Group description': 'zooplankton'},
        {'DEFINITION_Realm': 'Terrestrial', 'DEFINITION_Mobility': 'Mobile',
         'PROPERTY_Minimum mass': '1.5', 'NOTES_Group description': 'mammals'},
        {'DEFINITION_Realm': 'Marine', 'DEFINITION_Mobility': 'Mobile',
         'PROPERTY_Minimum mass': '2', 'NOTES_Group description': 'fish'},
    ])


class TestParsing:
    def test_number_of_groups(self, small_defs):
        assert small_defs.get_number_of_functional_groups() == 3
        np.testing.assert_array_equal(small_defs.all_functional_groups_index, [0, 1, 2])

    def test_traits_lower_cased(self, small_defs):
        assert small_defs.get_traits() == ['mobility', 'realm']
        assert small_defs.get_trait_names('Realm', 1) == 'terrestrial'

    def test_properties_numeric(self, small_defs):
        np.testing.assert_allclose(
            small_defs.get_biological_property_all_functional_groups('Minimum Mass'),
            [0.001, 1.5, 2.0])
        assert small_defs.get_biological_property_one_functional_group(
            'minimum mass', 2) == 2.0
        assert set(small_defs.functional_group_properties) == {'minimum mass'}

    def test_name_stops_at_second_underscore(self):
        defs = FunctionalGroupDefinitions.from_records(
            [{'DEFINITION_Realm_code': 'Marine', 'PROPERTY_Minimum mass_g': 1.0}])
        assert defs.get_traits() == ['realm']
        assert set(defs.functional_group_properties) == {'minimum mass'}

    def test_notes_ignored(self, small_defs):
        assert 'group description' not in small_defs.get_traits()

    def test_bad_prefix(self):
        with pytest.raises(ValueError, match="prefixed"):
            FunctionalGroupDefinitions.from_records([{'TRAIT_Realm': 'Marine'}])

    def test_unique_values(self, small_defs):
        assert small_defs.get_unique_trait_values('realm') == ['marine', 'terrestrial']

    def test_trait_values(self, small_defs):
        assert small_defs.get_trait_values(['realm', 'mobility'], 0) == ['marine', 'planktonic']
        assert small_defs.get_trait_values_all_functional_groups('mobility') == [
            'planktonic', 'mobile', 'mobile']


class TestGetFunctionalGroupIndex:
    def test_single_trait(self, small_defs):
        np.testing.assert_array_equal(
            small_defs.get_functional_group_index('realm', 'Marine'), [0, 2])

    def test_unknown_trait_returns_none(self, small_defs):
        assert small_defs.get_functional_group_index('diet', 'all') is None

    def test_unknown_value_returns_none(self, small_defs):
        assert small_defs.get_functional_group_index('realm', 'freshwater') is None

    def test_intersection(self, small_defs):
        np.testing.assert_array_equal(
            small_defs.get_functional_group_index(['realm', 'mobility'], ['marine', 'mobile']),
            [2])

    def test_union(self, small_defs):
        idx = small_defs.get_functional_group_index(
            ['realm', 'mobility'], ['terrestrial', 'planktonic'], intersection=False)
        np.testing.assert_array_equal(idx, [0, 1])

    def test_length_mismatch(self, small_defs):
        with pytest.raises(ValueError):
            small_defs.get_functional_group_index(['realm', 'mobility'], ['marine'])

    def test_unknown_in_sequence_raises(self, small_defs):
        with pytest.raises(KeyError):
            small_defs.get_functional_group_index(['realm'], ['freshwater'])
        with pytest.raises(KeyError):
            small_defs.get_functional_group_index(['diet'], ['all'])


class TestFileLoading:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FunctionalGroupDefinitions.from_csv(tmp_path / "missing.csv")

    def test_csv_roundtrip(self, tmp_path):
        path = tmp_path / "defs.csv"
        path.write_text("DEFINITION_Realm,PROPERTY_Individual mass\nMarine,1\nTerrestrial,2\n")
        defs = FunctionalGroupDefinitions.from_csv(path)
        assert defs.get_number_of_functional_groups() == 2
        assert defs.get_biological_property_one_functional_group('individual mass', 1) == 2.0

    def test_packaged_cohort_table(self):
        defs = FunctionalGroupDefinitions.packaged(DEFAULT_COHORT_DEFINITIONS)
        assert defs.get_number_of_functional_groups() == 10
        planktonic = defs.get_functional_group_index('mobility', 'planktonic')
        assert len(planktonic) == 2
        for fg in planktonic:
            assert defs.get_trait_names('realm', fg) == 'marine'
        assert 'initial number of gridcellcohorts' in defs.functional_group_properties

    def test_packaged_stock_table(self):
        defs = FunctionalGroupDefinitions.packaged(DEFAULT_STOCK_DEFINITIONS)
        assert defs.get_number_of_functional_groups() == 3
        np.testing.assert_array_equal(
            defs.get_functional_group_index('realm', 'terrestrial'), [1, 2])
