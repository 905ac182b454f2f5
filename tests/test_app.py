import random
from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.settings_store import SettingsStore
from services.downsampler import Downsampler
from services.ecowitt import UpstreamFailure, UpstreamSuccess
from services.history import HistoryResolver
from services.mock_data import MockDataGenerator
from services.poller import LivePoller
from services.snapshot_cache import SnapshotCache
from settings import AccountConfig
from storage.reading_store import ReadingStore

ACCOUNTS = (AccountConfig(id="account1", app_key="a", api_key="k", mac="M"),)


class StubUpstream:
    def __init__(self) -> None:
        self.real_time_calls = 0
        self.history_calls = 0

    def fetch_real_time(self, account):
        self.real_time_calls += 1
        epoch = int(datetime.now(timezone.utc).timestamp())
        return UpstreamSuccess(
            {"soil_ch1": {"soilmoisture": {"unit": "%", "value": "44", "time": str(epoch)}}}
        )

    def fetch_history(self, account, start, end, channel):
        self.history_calls += 1
        return UpstreamFailure("history disabled")

    def close(self) -> None:
        pass


@pytest.fixture
def upstream() -> StubUpstream:
    return StubUpstream()


@pytest.fixture
def api_client(tmp_path, monkeypatch, upstream: StubUpstream) -> Iterator[TestClient]:
    store = ReadingStore(root_path=tmp_path / "history")
    poller = LivePoller(
        accounts=ACCOUNTS,
        client=upstream,
        store=store,
        cache=SnapshotCache(ttl_seconds=5),
        mock_data=MockDataGenerator(random.Random(1)),
        workers=1,
    )
    resolver = HistoryResolver(
        accounts=ACCOUNTS,
        client=upstream,
        store=store,
        downsampler=Downsampler(),
        mock_data=MockDataGenerator(random.Random(2)),
    )
    settings_store = SettingsStore(persistence_path=tmp_path / "settings.json")

    def build_test_poller() -> LivePoller:
        return poller

    def noop_clear() -> None:
        return None

    build_test_poller.cache_clear = noop_clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_poller", build_test_poller)
    monkeypatch.setattr("app.api.build_default_poller", build_test_poller)
    monkeypatch.setattr("app.api.build_default_resolver", lambda: resolver)
    monkeypatch.setattr("app.api.build_default_settings_store", lambda: settings_store)

    app = create_app()
    with TestClient(app) as client:
        yield client

    poller.shutdown()


def test_sensors_endpoint_returns_camel_case_snapshot(api_client: TestClient, upstream: StubUpstream) -> None:
    first = api_client.get("/api/sensors")
    second = api_client.get("/api/sensors")

    assert first.status_code == 200
    body = first.json()
    assert body["mock"] is False
    assert body["sensors"][0]["id"] == "account1_soil_ch1"
    assert body["sensors"][0]["accountId"] == "account1"
    assert body["sensors"][0]["sensorKey"] == "Channel 1"
    assert "lastUpdated" in body
    assert second.json() == body
    assert upstream.real_time_calls == 1


def test_history_falls_back_to_locally_stored_readings(api_client: TestClient) -> None:
    api_client.get("/api/sensors")

    response = api_client.get("/api/sensors/account1_soil_ch1/history", params={"period": "24h"})

    assert response.status_code == 200
    body = response.json()
    assert body["sensorId"] == "account1_soil_ch1"
    assert body["period"] == "24h"
    assert body["source"] == "local"
    assert body["error"] == "history disabled"
    assert [point["moisture"] for point in body["points"]] == [44.0]


def test_hourly_history_skips_upstream(api_client: TestClient, upstream: StubUpstream) -> None:
    api_client.get("/api/sensors")

    response = api_client.get("/api/sensors/account1_soil_ch1/history", params={"period": "1h"})

    assert response.json()["source"] == "local"
    assert upstream.history_calls == 0


def test_hourly_history_accepts_anchor(api_client: TestClient) -> None:
    anchor = (datetime.now(timezone.utc) - timedelta(hours=3)).isoformat()

    response = api_client.get(
        "/api/sensors/account1_soil_ch1/history", params={"period": "1h", "anchor": anchor}
    )

    assert response.status_code == 200
    assert response.json()["source"] == "synthetic"


def test_history_rejects_unknown_period(api_client: TestClient) -> None:
    response = api_client.get("/api/sensors/account1_soil_ch1/history", params={"period": "2w"})

    assert response.status_code == 422


def test_history_with_malformed_sensor_id_is_not_an_error(api_client: TestClient) -> None:
    response = api_client.get("/api/sensors/garden/history")

    assert response.status_code == 200
    assert response.json()["error"] == "Invalid sensor ID format"


def test_health_reports_configuration(api_client: TestClient) -> None:
    response = api_client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["configuredAccounts"] == 1
    assert body["mockMode"] is False


def test_settings_partial_update_round_trip(api_client: TestClient) -> None:
    assert api_client.get("/api/settings").json() == {
        "names": {},
        "colors": {},
        "order": [],
        "hidden": [],
        "thresholds": {},
    }

    api_client.post("/api/settings", json={"names": {"s1": "Fern"}, "order": ["s1", "s2"]})
    response = api_client.post("/api/settings", json={"hidden": ["s2"]})

    body = response.json()
    assert body["names"] == {"s1": "Fern"}
    assert body["order"] == ["s1", "s2"]
    assert body["hidden"] == ["s2"]


def test_single_field_settings_endpoints(api_client: TestClient) -> None:
    name = api_client.post("/api/settings/name", json={"sensorId": "s1", "name": "Basil"})
    color = api_client.post("/api/settings/color", json={"sensorId": "s1", "color": "#16a34a"})
    order = api_client.post("/api/settings/order", json={"order": ["s1"]})
    hidden = api_client.post("/api/settings/hidden", json={"hidden": ["s9"]})
    threshold = api_client.post(
        "/api/settings/threshold", json={"sensorId": "s1", "min": 25, "max": 65}
    )

    assert name.json() == {"success": True, "names": {"s1": "Basil"}}
    assert color.json() == {"success": True, "colors": {"s1": "#16a34a"}}
    assert order.json() == {"success": True, "order": ["s1"]}
    assert hidden.json() == {"success": True, "hidden": ["s9"]}
    assert threshold.json() == {"success": True, "thresholds": {"s1": {"min": 25.0, "max": 65.0}}}

    record = api_client.get("/api/settings").json()
    assert record["names"] == {"s1": "Basil"}
    assert record["hidden"] == ["s9"]


def test_invalid_threshold_is_rejected(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/settings/threshold", json={"sensorId": "s1", "min": 70, "max": 30}
    )

    assert response.status_code == 422
