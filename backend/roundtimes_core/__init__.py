"""Cross-division time tables for league rounds: merge, gaps, sorting and CSV export."""

from .engine import AllTimesTable
from .export import CsvDocument, build_filename, to_csv
from .index import ResultIndex
from .loader import DataStore
from .table import DEFAULT_CATEGORIES, Category, CategoryResult, MergedRow, aggregate, apply_gaps, merge, sort_rows

__all__ = [
    "AllTimesTable",
    "Category",
    "CategoryResult",
    "CsvDocument",
    "DEFAULT_CATEGORIES",
    "DataStore",
    "MergedRow",
    "ResultIndex",
    "aggregate",
    "apply_gaps",
    "build_filename",
    "merge",
    "sort_rows",
    "to_csv",
]
