"""Per-cell containers of cohorts and stocks, one list per functional group."""

from __future__ import annotations

from typing import Generic, Iterator, List, TypeVar, Union, Tuple

from madingley.types import Cohort, Stock

T = TypeVar('T')


class _FunctionalGroupLists(Generic[T]):
    """Jagged array: outer index is functional group, inner is position."""

    def __init__(self, n_functional_groups: int = 0):
        self._groups: List[List[T]] = [[] for _ in range(n_functional_groups)]

    def __len__(self) -> int:
        return len(self._groups)

    def __iter__(self) -> Iterator[List[T]]:
        return iter(self._groups)

    def __getitem__(self, key: Union[int, Tuple[int, int]]):
        if isinstance(key, tuple):
            fg, pos = key
            return self._groups[fg][pos]
        return self._groups[key]

    def __setitem__(self, fg: int, items: List[T]) -> None:
        self._groups[fg] = items

    def count(self) -> int:
        """Total number of items across all functional groups."""
        return sum(len(g) for g in self._groups)

    def all_items(self) -> Iterator[T]:
        for group in self._groups:
            yield from group


class GridCellCohortHandler(_FunctionalGroupLists[Cohort]):
    """Cohorts in a grid cell, grouped by cohort functional group."""

    def total_abundance(self) -> float:
        return float(sum(c.cohort_abundance for c in self.all_items()))


class GridCellStockHandler(_FunctionalGroupLists[Stock]):
    """Stocks in a grid cell, grouped by stock functional group."""

    def total_biomass(self) -> float:
        return float(sum(s.total_biomass for s in self.all_items()))
