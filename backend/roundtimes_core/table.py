from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple

from .index import ResultIndex
from .timecodec import PLACEHOLDER, format_absolute, format_gap


@dataclass(frozen=True)
class Category:
    key: str
    label: str


QUALIFYING = Category("qualifying", "Qualifying")
RACE = Category("race", "Race")
FASTEST_LAP = Category("fastest_lap", "Fastest Lap")

DEFAULT_CATEGORIES: Tuple[Category, ...] = (QUALIFYING, RACE, FASTEST_LAP)


def category_for(key: str, categories: Sequence[Category] = DEFAULT_CATEGORIES) -> Category:
    for category in categories:
        if category.key == key:
            return category
    raise ValueError(f"Unknown category '{key}'")


DIVISION_COLORS = ("blue", "green", "purple", "orange", "red", "teal")


def division_color(division_id: Optional[int]) -> Optional[str]:
    if division_id is None:
        return None
    return DIVISION_COLORS[(division_id - 1) % len(DIVISION_COLORS)]


@dataclass(frozen=True)
class CategoryResult:
    """One ranked entry of a category leaderboard."""

    position: int
    result_ref: Hashable
    time_ms: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Optional["CategoryResult"]:
        """Build from an API/database record; returns ``None`` for unusable records."""

        ref = payload.get("result_ref", payload.get("race_result_id"))
        if ref is None:
            return None
        position = payload.get("position")
        if position is None:
            position = 0
        time_ms = payload.get("time_ms")
        if not (_is_int(position) and _is_int(time_ms)) or time_ms < 0:
            return None
        return cls(position=position, result_ref=ref, time_ms=time_ms)


def _is_int(value: Any) -> bool:
    # bool is an int subclass; floats and numeric strings are not accepted either
    return isinstance(value, int) and not isinstance(value, bool)


def coerce_category(raw: Iterable[Any] | None) -> Optional[List[CategoryResult]]:
    """Normalise a raw category list; ``None`` stays ``None`` (category absent)."""

    if raw is None:
        return None
    results: List[CategoryResult] = []
    for item in raw:
        if isinstance(item, CategoryResult):
            results.append(item)
        elif isinstance(item, Mapping):
            parsed = CategoryResult.from_payload(item)
            if parsed is not None:
                results.append(parsed)
    return results


@dataclass(frozen=True)
class TimeCell:
    time_ms: Optional[int] = None
    absolute: str = PLACEHOLDER
    gap: Optional[str] = None


@dataclass
class MergedRow:
    """A driver's combined view across every category of a round."""

    driver_name: str
    division_id: Optional[int]
    division_name: Optional[str] = None
    position: int = 0
    cells: Dict[str, TimeCell] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, Optional[int]]:
        return (self.driver_name, self.division_id)

    def time_ms(self, category: str) -> Optional[int]:
        return self.cells.get(category, TimeCell()).time_ms

    def absolute(self, category: str) -> str:
        return self.cells.get(category, TimeCell()).absolute

    def gap(self, category: str) -> Optional[str]:
        return self.cells.get(category, TimeCell()).gap

    def formatted(self, category: str) -> str:
        """Single-string view: the leader shows its time, everyone else ``+gap``."""

        cell = self.cells.get(category, TimeCell())
        return cell.gap if cell.gap is not None else cell.absolute


def division_lookup(divisions: Mapping[int, str] | Iterable[Mapping[str, Any]] | None) -> Dict[int, str]:
    """Accept either an id->name mapping or a list of ``{"id", "name"}`` records."""

    if not divisions:
        return {}
    if isinstance(divisions, Mapping):
        return {int(key): str(value) for key, value in divisions.items()}
    lookup: Dict[int, str] = {}
    for item in divisions:
        if not isinstance(item, Mapping):
            continue
        try:
            lookup[int(item["id"])] = str(item.get("name") or "")
        except (KeyError, TypeError, ValueError):
            continue
    return lookup


def merge(
    categories: Mapping[str, Optional[Sequence[CategoryResult]]],
    index: ResultIndex,
    division_names: Mapping[int, str] | None = None,
) -> List[MergedRow]:
    """Union the category leaderboards into one row per (driver, division)."""

    division_names = division_names or {}
    keys = list(categories)
    rows: Dict[Tuple[str, Optional[int]], MergedRow] = {}

    for key, results in categories.items():
        if results is None:
            continue
        for result in results:
            entry = index.resolve(result.result_ref)
            merge_key = (entry.driver_name, entry.division_id)
            row = rows.get(merge_key)
            if row is None:
                row = MergedRow(
                    driver_name=entry.driver_name,
                    division_id=entry.division_id,
                    division_name=division_names.get(entry.division_id) if entry.division_id is not None else None,
                    cells={name: TimeCell() for name in keys},
                )
                rows[merge_key] = row
            if row.cells[key].time_ms is None:
                row.cells[key] = TimeCell(time_ms=result.time_ms)

    return list(rows.values())


def apply_gaps(rows: Sequence[MergedRow], category_keys: Iterable[str]) -> List[MergedRow]:
    """Return copies of ``rows`` with absolute and gap strings for each category."""

    minimums: Dict[str, Optional[int]] = {}
    for key in category_keys:
        minimums[key] = min(
            (row.time_ms(key) for row in rows if row.time_ms(key) is not None),
            default=None,
        )

    result: List[MergedRow] = []
    for row in rows:
        cells = dict(row.cells)
        for key, minimum in minimums.items():
            time_ms = row.time_ms(key)
            if time_ms is None or minimum is None:
                cells[key] = TimeCell()
                continue
            gap = None if time_ms == minimum else "+" + format_gap(time_ms - minimum)
            cells[key] = TimeCell(time_ms=time_ms, absolute=format_absolute(time_ms), gap=gap)
        result.append(dataclasses.replace(row, cells=cells))
    return result


def sort_rows(rows: Sequence[MergedRow], sort_key: str) -> List[MergedRow]:
    """Order by ``sort_key`` ascending with missing times last, then renumber from 1."""

    if rows and any(sort_key not in row.cells for row in rows):
        raise ValueError(f"Unknown sort column '{sort_key}'")

    ordered = sorted(
        rows,
        key=lambda row: (row.time_ms(sort_key) is None, row.time_ms(sort_key) or 0),
    )
    return [
        dataclasses.replace(row, position=place, cells=dict(row.cells))
        for place, row in enumerate(ordered, start=1)
    ]


def aggregate(
    categories: Mapping[str, Iterable[Any] | None],
    race_events: Iterable[Mapping[str, Any]] | None,
    divisions: Mapping[int, str] | Iterable[Mapping[str, Any]] | None = None,
    sort_key: Optional[str] = None,
) -> List[MergedRow]:
    """Run the whole pipeline: index, merge, gaps and sort."""

    normalised = {key: coerce_category(raw) for key, raw in categories.items()}
    if sort_key is not None and sort_key not in normalised:
        raise ValueError(f"Unknown sort column '{sort_key}'")
    index = ResultIndex.build(race_events)
    rows = merge(normalised, index, division_lookup(divisions))
    rows = apply_gaps(rows, normalised.keys())
    if sort_key is None:
        if not normalised:
            return rows
        sort_key = next(iter(normalised))
    return sort_rows(rows, sort_key)
