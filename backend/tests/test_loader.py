from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from roundtimes_core import DataStore
from roundtimes_core import loader as loader_module

LOCAL_ROUNDS = {
    "7": {
        "round": {
            "name": "",
            "round_number": 3,
            "season_name": "Season 2",
            "competition_name": "GT7 League",
        },
        "categories": {
            "qualifying": [
                {"position": 1, "race_result_id": 1, "time_ms": 85456},
                {"position": 2, "race_result_id": 2, "time_ms": "bad"},
            ],
            "race": None,
        },
        "raceEvents": [
            {
                "id": 10,
                "name": "Qualifying",
                "is_qualifier": True,
                "results": [
                    {"id": 1, "driver_name": "Driver 1", "division_id": 1},
                    {"id": 2, "driver_name": "Driver 2", "division_id": 2},
                ],
            }
        ],
        "divisions": [{"id": 1, "name": "Pro"}, {"id": 2, "name": "Am"}],
    }
}


@pytest.fixture(autouse=True)
def reset_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY", "SUPABASE_ANON_KEY", "SUPABASE_SCHEMA"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def local_store(tmp_path) -> DataStore:
    (tmp_path / "rounds_local.json").write_text(json.dumps(LOCAL_ROUNDS), encoding="utf-8")
    return DataStore(data_dir=tmp_path)


def test_local_round_times(local_store: DataStore) -> None:
    data = local_store.fetch_round_times(7)

    assert data["round"]["name"] == "Round 3"
    assert data["namingParts"] == ["GT7 League", "Season 2", "Round 3"]
    qualifying = data["categories"]["qualifying"]
    assert [item.result_ref for item in qualifying] == [1]
    assert data["categories"]["race"] is None
    assert data["categories"]["fastest_lap"] is None
    assert data["raceEvents"][0]["isQualifier"] is True
    assert data["divisions"] == [{"id": 1, "name": "Pro"}, {"id": 2, "name": "Am"}]


def test_local_round_missing(local_store: DataStore) -> None:
    with pytest.raises(ValueError, match="Round not found"):
        local_store.fetch_round_times(99)


def test_local_file_unreadable_means_no_rounds(tmp_path) -> None:
    (tmp_path / "rounds_local.json").write_text("{not json", encoding="utf-8")
    store = DataStore(data_dir=tmp_path)

    with pytest.raises(ValueError):
        store.fetch_round_times(7)


class _DummyResponse:
    def __init__(self, payload: Any) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:  # pragma: no cover - nothing to do
        return None

    def json(self) -> Any:
        return self._payload


class _RoundClient:
    calls: List[Dict[str, Any]] = []

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    def __enter__(self) -> "_RoundClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - nothing to clean up
        return None

    def get(self, endpoint: str, params: Dict[str, Any], headers: Dict[str, str]) -> _DummyResponse:
        _RoundClient.calls.append({"endpoint": endpoint, "params": params, "headers": headers})
        if endpoint.endswith("/rounds"):
            return _DummyResponse(
                [
                    {
                        "id": 5,
                        "name": "Spa Night",
                        "round_number": 5,
                        "season_id": 3,
                        "qualifying_results": json.dumps([{"position": 1, "race_result_id": 21, "time_ms": 120000}]),
                        "race_time_results": [{"position": 1, "race_result_id": 22, "time_ms": 2400000}],
                        "fastest_lap_results": None,
                        "season": {"name": "Season 4", "competition": {"name": "Endurance Cup"}},
                    }
                ]
            )
        if endpoint.endswith("/races"):
            return _DummyResponse([{"id": 1, "name": "Qualifying", "is_qualifier": True}, {"id": 2, "name": "Race"}])
        if endpoint.endswith("/race_results"):
            return _DummyResponse(
                [
                    {"id": 21, "race_id": 1, "division_id": 1, "driver_name": "Driver A"},
                    {"id": 22, "race_id": 2, "division_id": 1, "driver_name": "Driver A"},
                ]
            )
        if endpoint.endswith("/divisions"):
            return _DummyResponse([{"id": 1, "name": "Gold"}])
        raise AssertionError(f"unexpected endpoint {endpoint}")


def test_round_times_from_supabase(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")
    _RoundClient.calls = []
    monkeypatch.setattr(loader_module.httpx, "Client", _RoundClient)

    data = DataStore(data_dir=tmp_path).fetch_round_times(5)

    assert data["namingParts"] == ["Endurance Cup", "Season 4", "Spa Night"]
    assert data["categories"]["qualifying"][0].time_ms == 120000
    assert data["categories"]["race"][0].result_ref == 22
    assert data["categories"]["fastest_lap"] is None
    assert [len(event["results"]) for event in data["raceEvents"]] == [1, 1]
    assert data["divisions"] == [{"id": 1, "name": "Gold"}]

    results_call = next(call for call in _RoundClient.calls if call["endpoint"].endswith("/race_results"))
    assert results_call["params"]["race_id"] == "in.(1,2)"
    assert results_call["headers"]["apikey"] == "test-key"


def test_supabase_empty_round_is_not_found(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")

    class EmptyClient(_RoundClient):
        def get(self, endpoint, params, headers):
            return _DummyResponse([])

    monkeypatch.setattr(loader_module.httpx, "Client", EmptyClient)

    with pytest.raises(ValueError, match="Round not found"):
        DataStore(data_dir=tmp_path).fetch_round_times(5)


def test_supabase_status_error_raises_runtime_error(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")

    class FailingClient(_RoundClient):
        def get(self, endpoint, params, headers):
            request = loader_module.httpx.Request("GET", endpoint)
            response = loader_module.httpx.Response(500, request=request, json={"message": "boom"})
            raise loader_module.httpx.HTTPStatusError("Server Error", request=request, response=response)

    monkeypatch.setattr(loader_module.httpx, "Client", FailingClient)

    with pytest.raises(RuntimeError, match="Failed to fetch round 5"):
        DataStore(data_dir=tmp_path).fetch_round_times(5)


def test_supabase_transport_error_uses_local_fallback(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")
    (tmp_path / "rounds_local.json").write_text(json.dumps(LOCAL_ROUNDS), encoding="utf-8")

    class OfflineClient(_RoundClient):
        def get(self, endpoint, params, headers):
            raise loader_module.httpx.ConnectError("offline")

    monkeypatch.setattr(loader_module.httpx, "Client", OfflineClient)

    data = DataStore(data_dir=tmp_path).fetch_round_times(7)
    assert data["round"]["name"] == "Round 3"
