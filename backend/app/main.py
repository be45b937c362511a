from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from roundtimes_core import DEFAULT_CATEGORIES, AllTimesTable, CsvDocument, DataStore, MergedRow
from roundtimes_core.table import division_color
from roundtimes_core.timecodec import format_clock_time

app = FastAPI(title="Round Times API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(__name__)


class CategoryResultModel(BaseModel):
    position: int = Field(default=0, ge=0)
    race_result_id: int = Field(alias="raceResultId")
    time_ms: int = Field(alias="timeMs", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class DriverModel(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None


class RaceResultModel(BaseModel):
    id: int
    driver_name: Optional[str] = Field(default=None, alias="driverName")
    driver: Optional[DriverModel] = None
    division_id: Optional[int] = Field(default=None, alias="divisionId")

    model_config = ConfigDict(populate_by_name=True)


class RaceEventModel(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    is_qualifier: bool = Field(default=False, alias="isQualifier")
    results: List[RaceResultModel] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class DivisionModel(BaseModel):
    id: int
    name: str


class TimesRequest(BaseModel):
    qualifying: Optional[List[CategoryResultModel]] = None
    race: Optional[List[CategoryResultModel]] = None
    fastest_lap: Optional[List[CategoryResultModel]] = Field(default=None, alias="fastestLap")
    race_events: List[RaceEventModel] = Field(default_factory=list, alias="raceEvents")
    divisions: List[DivisionModel] = Field(default_factory=list)
    sort: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class CsvExportRequest(TimesRequest):
    naming_parts: List[Optional[str]] = Field(default_factory=list, alias="namingParts")
    category: Optional[str] = None


class TimeCellModel(BaseModel):
    time_ms: Optional[int] = Field(default=None, alias="timeMs")
    absolute: str
    gap: Optional[str] = None
    formatted: str
    clock: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class TimesRowModel(BaseModel):
    position: int
    driver_name: str = Field(alias="driverName")
    division_id: Optional[int] = Field(default=None, alias="divisionId")
    division_name: Optional[str] = Field(default=None, alias="divisionName")
    division_color: Optional[str] = Field(default=None, alias="divisionColor")
    times: Dict[str, TimeCellModel]

    model_config = ConfigDict(populate_by_name=True)


class TimesResponse(BaseModel):
    sort: str
    has_divisions: bool = Field(alias="hasDivisions")
    rows: List[TimesRowModel]

    model_config = ConfigDict(populate_by_name=True)


class CsvExportResponse(BaseModel):
    content: str
    filename: str


@lru_cache(maxsize=1)
def store() -> DataStore:
    return DataStore()


def _clock(time_ms: Optional[int]) -> Optional[str]:
    return format_clock_time(time_ms) if time_ms is not None else None


def _row_model(row: MergedRow) -> TimesRowModel:
    return TimesRowModel(
        position=row.position,
        driverName=row.driver_name,
        divisionId=row.division_id,
        divisionName=row.division_name,
        divisionColor=division_color(row.division_id),
        times={
            category.key: TimeCellModel(
                timeMs=row.time_ms(category.key),
                absolute=row.absolute(category.key),
                gap=row.gap(category.key),
                formatted=row.formatted(category.key),
                clock=_clock(row.time_ms(category.key)),
            )
            for category in DEFAULT_CATEGORIES
        },
    )


def _new_table(category: Optional[str]) -> AllTimesTable:
    if category is None:
        return AllTimesTable()
    try:
        return AllTimesTable.for_category(category)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _table_from_request(payload: TimesRequest, category: Optional[str] = None) -> AllTimesTable:
    def dump(results: Optional[List[CategoryResultModel]]) -> Optional[List[Dict[str, Any]]]:
        if results is None:
            return None
        return [item.model_dump() for item in results]

    return _new_table(category).load(
        {
            "qualifying": dump(payload.qualifying),
            "race": dump(payload.race),
            "fastest_lap": dump(payload.fastest_lap),
        },
        [event.model_dump() for event in payload.race_events],
        [division.model_dump() for division in payload.divisions],
    )


def _table_for_round(round_id: int, category: Optional[str] = None) -> tuple[AllTimesTable, Dict[str, Any]]:
    table = _new_table(category)
    try:
        data = store().fetch_round_times(round_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    table.load(data["categories"], data["raceEvents"], data["divisions"])
    return table, data


def _sorted_rows(table: AllTimesTable, sort: Optional[str]) -> List[MergedRow]:
    try:
        return table.rows(sort)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _export(table: AllTimesTable, sort: Optional[str], naming_parts: List[Optional[str]]) -> CsvDocument:
    try:
        return table.export(sort_key=sort, naming_parts=naming_parts)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception:
        logger.exception("Failed to export times")
        raise


def _times_response(table: AllTimesTable, sort: Optional[str]) -> TimesResponse:
    rows = _sorted_rows(table, sort)
    return TimesResponse(
        sort=table.sort_key,
        hasDivisions=table.has_divisions,
        rows=[_row_model(row) for row in rows],
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/times", response_model=TimesResponse)
def times(payload: TimesRequest):
    return _times_response(_table_from_request(payload), payload.sort)


@app.post("/times/csv", response_model=CsvExportResponse)
def times_csv(payload: CsvExportRequest):
    table = _table_from_request(payload, payload.category)
    document = _export(table, payload.sort, payload.naming_parts)
    return CsvExportResponse(content=document.content, filename=document.filename)


@app.get("/rounds/{round_id}/times", response_model=TimesResponse)
def round_times(round_id: int, sort: Optional[str] = Query(default=None)):
    table, _ = _table_for_round(round_id)
    return _times_response(table, sort)


@app.get("/rounds/{round_id}/times.csv")
def round_times_csv(
    round_id: int,
    sort: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
):
    table, data = _table_for_round(round_id, category)
    document = _export(table, sort, data["namingParts"])
    return Response(
        content=document.content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )
