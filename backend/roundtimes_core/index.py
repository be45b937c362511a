from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

UNKNOWN_DRIVER = "Unknown Driver"


@dataclass(frozen=True)
class IndexEntry:
    """Display fields for one race-event result record."""

    result_ref: Optional[Hashable]
    driver_name: str
    division_id: Optional[int] = None
    division_name: Optional[str] = None


def _driver_name(result: Mapping[str, Any]) -> str:
    name = result.get("driver_name")
    driver = result.get("driver")
    if not name and isinstance(driver, Mapping):
        name = driver.get("name")
    text = str(name or "").strip()
    return text or UNKNOWN_DRIVER


def _division_id(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class ResultIndex:
    """Lookup from a ``result_ref`` to the driver and division behind it."""

    def __init__(self, entries: Mapping[Hashable, IndexEntry] | None = None) -> None:
        self._entries: Dict[Hashable, IndexEntry] = dict(entries or {})

    @classmethod
    def build(cls, race_events: Iterable[Mapping[str, Any]] | None) -> "ResultIndex":
        """Flatten the results of every race event; a repeated ref keeps the last record seen."""

        entries: Dict[Hashable, IndexEntry] = {}
        for event in race_events or []:
            if not isinstance(event, Mapping):
                continue
            for result in event.get("results") or []:
                if not isinstance(result, Mapping):
                    continue
                ref = result.get("id")
                if ref is None:
                    continue
                entries[ref] = IndexEntry(
                    result_ref=ref,
                    driver_name=_driver_name(result),
                    division_id=_division_id(result.get("division_id")),
                )
        return cls(entries)

    def resolve(self, result_ref: Hashable) -> IndexEntry:
        try:
            return self._entries[result_ref]
        except (KeyError, TypeError):
            logger.debug("No race result for ref %r; using sentinel driver", result_ref)
            return IndexEntry(result_ref=result_ref, driver_name=UNKNOWN_DRIVER)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, result_ref: object) -> bool:
        try:
            return result_ref in self._entries
        except TypeError:
            return False
