"""Functional group definitions for cohorts and stocks.

A definitions table has one row per functional group and columns
prefixed by their role:
  - DEFINITION_<trait>: categorical trait (e.g. realm, nutrition source)
  - PROPERTY_<name>:    numeric biological property (e.g. minimum mass)
  - NOTES_<text>:       free text, ignored

Trait and property names are the text between the first and second
underscores (or up to the end when there is only one), lower-cased;
trait values are lower-cased as well, so all lookups are
case-insensitive.

References:
  - Harfoot et al. (2014) Text S1 §1.2 (functional group traits)
"""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_COHORT_DEFINITIONS = "CohortFunctionalGroupDefinitions.csv"
DEFAULT_STOCK_DEFINITIONS = "StockFunctionalGroupDefinitions.csv"


class FunctionalGroupDefinitions:
    """Lookup tables between functional group indices, traits and properties."""

    def __init__(self, table: pd.DataFrame):
        n_groups = len(table)
        self._all_functional_groups_index = np.arange(n_groups, dtype=int)
        # trait -> value per functional group
        self._trait_lookup_from_index: Dict[str, List[str]] = {}
        # trait -> unique value -> functional group indices
        self._index_lookup_from_trait: Dict[str, Dict[str, np.ndarray]] = {}
        self._functional_group_properties: Dict[str, np.ndarray] = {}

        for column in table.columns:
            prefix, _, rest = str(column).partition('_')
            name = rest.split('_')[0].lower() if rest else ''
            prefix = prefix.upper()
            if prefix == 'DEFINITION':
                values = [str(v).strip().lower() for v in table[column]]
                self._trait_lookup_from_index[name] = values
                lookup: Dict[str, np.ndarray] = {}
                for value in sorted(set(values)):
                    lookup[value] = np.array(
                        [i for i, v in enumerate(values) if v == value], dtype=int
                    )
                self._index_lookup_from_trait[name] = lookup
            elif prefix == 'PROPERTY':
                self._functional_group_properties[name] = (
                    table[column].astype(float).to_numpy()
                )
            elif prefix == 'NOTES':
                continue
            else:
                raise ValueError(
                    f"Functional group column '{column}' must be prefixed by "
                    f"DEFINITION_, PROPERTY_ or NOTES_"
                )

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> 'FunctionalGroupDefinitions':
        """Read a definitions table from a CSV file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Functional group definitions not found: {path}")
        table = pd.read_csv(path, dtype=str, keep_default_na=False)
        logger.debug("Loaded %d functional groups from %s", len(table), path)
        return cls(table)

    @classmethod
    def from_records(
        cls, rows: Sequence[Mapping[str, object]],
    ) -> 'FunctionalGroupDefinitions':
        """Build a definitions table from a list of column→value dicts."""
        return cls(pd.DataFrame.from_records(list(rows)))

    @classmethod
    def packaged(cls, filename: str) -> 'FunctionalGroupDefinitions':
        """Load one of the definition tables shipped in ``madingley/data``."""
        ref = resources.files('madingley') / 'data' / filename
        with resources.as_file(ref) as path:
            return cls.from_csv(path)

    # ── Properties ───────────────────────────────────────────────────

    @property
    def all_functional_groups_index(self) -> np.ndarray:
        return self._all_functional_groups_index

    @property
    def functional_group_properties(self) -> Dict[str, np.ndarray]:
        return self._functional_group_properties

    # ── Lookups ──────────────────────────────────────────────────────

    def get_biological_property_one_functional_group(
        self, property_name: str, functional_group: int,
    ) -> float:
        return float(self._functional_group_properties[property_name.lower()][functional_group])

    def get_biological_property_all_functional_groups(self, property_name: str) -> np.ndarray:
        return self._functional_group_properties[property_name.lower()]

    def get_traits(self) -> List[str]:
        """Names of all categorical traits, sorted."""
        return sorted(self._trait_lookup_from_index)

    def get_unique_trait_values(self, trait: str) -> List[str]:
        return sorted(self._index_lookup_from_trait[trait.lower()])

    def get_trait_values_all_functional_groups(self, trait: str) -> List[str]:
        return list(self._trait_lookup_from_index[trait.lower()])

    def get_trait_names(self, trait: str, functional_group: int) -> str:
        """Value of ``trait`` for one functional group (e.g. 'planktonic')."""
        return self._trait_lookup_from_index[trait.lower()][functional_group]

    def get_all_trait_names(self) -> List[str]:
        return sorted(self._index_lookup_from_trait)

    def get_trait_values(self, traits: Sequence[str], functional_group: int) -> List[str]:
        return [self.get_trait_names(t, functional_group) for t in traits]

    def get_functional_group_index(
        self,
        traits: Union[str, Sequence[str]],
        trait_values: Union[str, Sequence[str]],
        intersection: bool = True,
    ) -> Optional[np.ndarray]:
        """Indices of functional groups with the given trait values.

        With a single trait name, returns the matching indices or None if
        the trait or value is unknown. With sequences of traits and values,
        combines the per-pair index sets by intersection (or union).

        Raises:
            ValueError: If the trait and value sequences differ in length.
            KeyError: If a trait or value in a sequence search is unknown.
        """
        if isinstance(traits, str):
            lookup = self._index_lookup_from_trait.get(traits.lower())
            if lookup is None:
                logger.debug("Trait '%s' not found in lookup tables", traits)
                return None
            indices = lookup.get(str(trait_values).lower())
            if indices is None:
                logger.debug("Trait value '%s' not found for trait '%s'",
                             trait_values, traits)
            return indices

        if len(traits) != len(trait_values):
            raise ValueError("Unequal numbers of traits and trait values")
        index_sets = []
        for trait, value in zip(traits, trait_values):
            lookup = self._index_lookup_from_trait.get(trait.lower())
            if lookup is None:
                raise KeyError(f"Trait '{trait}' not found in lookup tables")
            if value.lower() not in lookup:
                raise KeyError(f"Trait value '{value}' not found for trait '{trait}'")
            index_sets.append(set(lookup[value.lower()].tolist()))
        if not index_sets:
            return np.array([], dtype=int)
        if intersection:
            combined = set.intersection(*index_sets)
        else:
            combined = set.union(*index_sets)
        return np.array(sorted(combined), dtype=int)

    def get_number_of_functional_groups(self) -> int:
        return len(self._all_functional_groups_index)
