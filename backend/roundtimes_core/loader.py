from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .table import CategoryResult, coerce_category

logger = logging.getLogger(__name__)

# Round columns holding the ranked cross-division leaderboards, by category key.
CATEGORY_COLUMNS = {
    "qualifying": "qualifying_results",
    "race": "race_time_results",
    "fastest_lap": "fastest_lap_results",
}


class DataStore:
    """Loads round leaderboards, race events and divisions from Supabase or a local JSON file."""

    def __init__(self, data_dir: Path | None = None) -> None:
        """Initialize the DataStore.

        Args:
            data_dir: Directory holding ``rounds_local.json`` for the offline fallback
        """
        self.data_dir = data_dir or (Path(__file__).parent.parent / "data")
        self.local_rounds_path = self.data_dir / "rounds_local.json"

        self.supabase_url = os.getenv("SUPABASE_URL", "")
        self.supabase_key = (
            os.getenv("SUPABASE_SERVICE_ROLE_KEY")
            or os.getenv("SUPABASE_SERVICE_KEY")
            or os.getenv("SUPABASE_ANON_KEY")
            or ""
        )
        self.supabase_schema = os.getenv("SUPABASE_SCHEMA", "public")
        self.supabase_rounds_table = os.getenv("SUPABASE_ROUNDS_TABLE", "rounds")
        self.supabase_races_table = os.getenv("SUPABASE_RACES_TABLE", "races")
        self.supabase_race_results_table = os.getenv("SUPABASE_RACE_RESULTS_TABLE", "race_results")
        self.supabase_divisions_table = os.getenv("SUPABASE_DIVISIONS_TABLE", "divisions")

    def fetch_round_times(self, round_id: int) -> Dict[str, Any]:
        """Return everything needed to build the all-times table of a round."""

        if not (self.supabase_url and self.supabase_key):
            return self._round_times_local(round_id)

        try:
            return self._round_times_supabase(round_id)
        except httpx.HTTPStatusError as exc:
            raise RuntimeError(f"Failed to fetch round {round_id}: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Supabase round fetch failed (%s); using local fallback", exc)
            return self._round_times_local(round_id)

    # ------------------------------------------------------------------
    # Supabase

    def _round_times_supabase(self, round_id: int) -> Dict[str, Any]:
        headers = self._supabase_headers()
        round_columns = ",".join(
            ["id", "name", "round_number", "season_id", *CATEGORY_COLUMNS.values()]
            + ["season:seasons(name,competition:competitions(name))"]
        )

        with httpx.Client(timeout=10.0) as client:
            response = client.get(
                self._supabase_endpoint(self.supabase_rounds_table),
                params={"select": round_columns, "id": f"eq.{round_id}", "limit": 1},
                headers=headers,
            )
            response.raise_for_status()
            rows = response.json()
            if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
                raise ValueError("Round not found")
            round_row = rows[0]

            response = client.get(
                self._supabase_endpoint(self.supabase_races_table),
                params={"select": "id,name,is_qualifier", "round_id": f"eq.{round_id}", "order": "race_number.asc"},
                headers=headers,
            )
            response.raise_for_status()
            races = [race for race in response.json() or [] if isinstance(race, dict)]

            results: List[Dict[str, Any]] = []
            race_ids = [str(race["id"]) for race in races if race.get("id") is not None]
            if race_ids:
                response = client.get(
                    self._supabase_endpoint(self.supabase_race_results_table),
                    params={
                        "select": "id,race_id,division_id,driver_name",
                        "race_id": f"in.({','.join(race_ids)})",
                    },
                    headers=headers,
                )
                response.raise_for_status()
                results = [row for row in response.json() or [] if isinstance(row, dict)]

            divisions: List[Dict[str, Any]] = []
            if round_row.get("season_id") is not None:
                response = client.get(
                    self._supabase_endpoint(self.supabase_divisions_table),
                    params={"select": "id,name", "season_id": f"eq.{round_row['season_id']}", "order": "id.asc"},
                    headers=headers,
                )
                response.raise_for_status()
                divisions = [row for row in response.json() or [] if isinstance(row, dict)]

        by_race: Dict[Any, List[Dict[str, Any]]] = {}
        for result in results:
            by_race.setdefault(result.get("race_id"), []).append(result)
        for race in races:
            race["results"] = by_race.get(race.get("id"), [])

        season = round_row.get("season") if isinstance(round_row.get("season"), dict) else {}
        competition = season.get("competition") if isinstance(season.get("competition"), dict) else {}
        round_row["season_name"] = season.get("name")
        round_row["competition_name"] = competition.get("name")

        return self._normalise_round(round_row, races, divisions)

    def _supabase_endpoint(self, table: str) -> str:
        return f"{self.supabase_url.rstrip('/')}/rest/v1/{table}"

    def _supabase_headers(self) -> Dict[str, str]:
        headers = {
            "apikey": self.supabase_key,
            "Authorization": f"Bearer {self.supabase_key}",
            "Accept": "application/json",
        }
        if self.supabase_schema and self.supabase_schema != "public":
            headers["Accept-Profile"] = self.supabase_schema
        return headers

    # ------------------------------------------------------------------
    # Local fallback

    def _round_times_local(self, round_id: int) -> Dict[str, Any]:
        data = self._read_json_file(self.local_rounds_path, {})
        record = data.get(str(round_id)) if isinstance(data, dict) else None
        if not isinstance(record, dict):
            raise ValueError("Round not found")

        round_row = dict(record.get("round") or {})
        round_row.setdefault("id", round_id)
        for key, column in CATEGORY_COLUMNS.items():
            if column not in round_row:
                round_row[column] = (record.get("categories") or {}).get(key)
        races = [race for race in record.get("raceEvents") or [] if isinstance(race, dict)]
        divisions = [item for item in record.get("divisions") or [] if isinstance(item, dict)]
        return self._normalise_round(round_row, races, divisions)

    def _read_json_file(self, path: Path, default: Any) -> Any:
        try:
            if not path.exists():
                return default
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Falling back to default for %s due to read error: %s", path, exc)
            return default

    # ------------------------------------------------------------------
    # Normalisation

    def _normalise_round(
        self,
        round_row: Dict[str, Any],
        races: List[Dict[str, Any]],
        divisions: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        round_number = round_row.get("round_number")
        round_name = str(round_row.get("name") or "").strip()
        if not round_name and round_number is not None:
            round_name = f"Round {round_number}"

        categories = {
            key: self._category_results(round_row.get(column)) for key, column in CATEGORY_COLUMNS.items()
        }

        return {
            "round": {
                "id": round_row.get("id"),
                "name": round_name,
                "roundNumber": round_number,
                "seasonName": round_row.get("season_name"),
                "competitionName": round_row.get("competition_name"),
            },
            "namingParts": [
                round_row.get("competition_name"),
                round_row.get("season_name"),
                round_name or None,
            ],
            "categories": categories,
            "raceEvents": [
                {
                    "id": race.get("id"),
                    "name": race.get("name"),
                    "isQualifier": bool(race.get("is_qualifier", race.get("isQualifier", False))),
                    "results": [result for result in race.get("results") or [] if isinstance(result, dict)],
                }
                for race in races
            ],
            "divisions": [
                {"id": item.get("id"), "name": item.get("name")}
                for item in divisions
                if item.get("id") is not None
            ],
        }

    @staticmethod
    def _category_results(raw: Any) -> Optional[List[CategoryResult]]:
        if raw is None:
            return None
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring undecodable category payload")
                return None
        if not isinstance(raw, list):
            return None
        return coerce_category(raw)
