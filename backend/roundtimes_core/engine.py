from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from .export import DEFAULT_SUFFIX, CsvDocument, category_suffix, to_csv
from .index import ResultIndex
from .table import (
    DEFAULT_CATEGORIES,
    Category,
    MergedRow,
    apply_gaps,
    category_for,
    coerce_category,
    division_lookup,
    merge,
    sort_rows,
)

logger = logging.getLogger(__name__)


class AllTimesTable:
    """Combined qualifying/race/fastest-lap view of one round.

    Merging and gap calculation only rerun when the caller hands over
    different input objects; changing the sort column reuses the merged rows.
    """

    def __init__(self, categories: Sequence[Category] = DEFAULT_CATEGORIES, suffix: str = DEFAULT_SUFFIX) -> None:
        self.categories: Tuple[Category, ...] = tuple(categories)
        self.suffix = suffix
        self.sort_key: str = self.categories[0].key if self.categories else ""
        self._results: Mapping[str, Any] = {}
        self._race_events: Any = None
        self._divisions: Any = None
        self._cache_key: Optional[Tuple[Any, ...]] = None
        self._merged: List[MergedRow] = []
        self.has_divisions = False

    @classmethod
    def for_category(cls, key: str) -> "AllTimesTable":
        """Table restricted to one category, exported under that category's suffix."""

        return cls((category_for(key),), suffix=category_suffix(key))

    def load(
        self,
        results: Mapping[str, Iterable[Any] | None],
        race_events: Iterable[Mapping[str, Any]] | None,
        divisions: Mapping[int, str] | Iterable[Mapping[str, Any]] | None = None,
    ) -> "AllTimesTable":
        self._results = results
        self._race_events = race_events
        self._divisions = divisions
        return self

    def _inputs(self) -> Tuple[Any, ...]:
        category_lists = tuple(self._results.get(category.key) for category in self.categories)
        return (self._results, *category_lists, self._race_events, self._divisions)

    def _is_cached(self, inputs: Tuple[Any, ...]) -> bool:
        if self._cache_key is None or len(inputs) != len(self._cache_key):
            return False
        return all(current is cached for current, cached in zip(inputs, self._cache_key))

    def _merged_rows(self) -> List[MergedRow]:
        key = self._inputs()
        if self._is_cached(key):
            logger.debug("Reusing merged rows for %d drivers", len(self._merged))
            return self._merged

        categories = {category.key: coerce_category(self._results.get(category.key)) for category in self.categories}
        lookup = division_lookup(self._divisions)
        rows = merge(categories, ResultIndex.build(self._race_events), lookup)
        self._merged = apply_gaps(rows, categories.keys())
        self.has_divisions = bool(lookup)
        self._cache_key = key
        logger.debug("Merged %d drivers across %d categories", len(self._merged), len(categories))
        return self._merged

    def rows(self, sort_key: Optional[str] = None) -> List[MergedRow]:
        if sort_key is not None:
            if sort_key not in {category.key for category in self.categories}:
                raise ValueError(f"Unknown sort column '{sort_key}'")
            self.sort_key = sort_key
        return sort_rows(self._merged_rows(), self.sort_key)

    def export(
        self,
        sort_key: Optional[str] = None,
        naming_parts: Sequence[Optional[str]] = (),
    ) -> CsvDocument:
        rows = self.rows(sort_key)
        return to_csv(rows, self.categories, self.has_divisions, naming_parts, self.suffix)
