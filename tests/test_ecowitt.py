from __future__ import annotations

from datetime import datetime, timezone

import httpx

from services.ecowitt import (
    EcowittClient,
    UpstreamFailure,
    UpstreamSuccess,
    extract_history_list,
    parse_history_list,
    parse_soil_sensors,
)
from settings import AccountConfig

ACCOUNT = AccountConfig(id="account1", app_key="app", api_key="key", mac="AA:BB")
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _client(handler) -> EcowittClient:
    return EcowittClient(
        base_url="https://api.example.test/api/v3",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def test_real_time_request_carries_credentials() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": 0, "msg": "success", "data": {"soil_ch1": {}}})

    result = _client(handler).fetch_real_time(ACCOUNT)

    assert isinstance(result, UpstreamSuccess)
    assert result.data == {"soil_ch1": {}}
    request = seen[0]
    assert request.url.path == "/api/v3/device/real_time"
    assert request.url.params["application_key"] == "app"
    assert request.url.params["api_key"] == "key"
    assert request.url.params["mac"] == "AA:BB"
    assert request.url.params["call_back"] == "all"


def test_history_request_selects_channel_and_window() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": 0, "data": []})

    start = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
    result = _client(handler).fetch_history(ACCOUNT, start, NOW, "3")

    assert isinstance(result, UpstreamSuccess)
    assert result.data == {}
    params = seen[0].url.params
    assert seen[0].url.path == "/api/v3/device/history"
    assert params["call_back"] == "soil_ch3"
    assert len(params["start_date"]) == len("2026-10-18 12:00:00")


def test_non_zero_code_becomes_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 40010, "msg": "Illegal Application_Key"})

    result = _client(handler).fetch_real_time(ACCOUNT)

    assert result == UpstreamFailure("Illegal Application_Key")


def test_transport_error_becomes_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    result = _client(handler).fetch_real_time(ACCOUNT)

    assert isinstance(result, UpstreamFailure)
    assert "timed out" in result.message


def test_http_status_and_bad_json_become_failures() -> None:
    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    assert isinstance(_client(server_error).fetch_real_time(ACCOUNT), UpstreamFailure)
    assert isinstance(_client(not_json).fetch_real_time(ACCOUNT), UpstreamFailure)


def test_parse_soil_sensors_extracts_channels() -> None:
    data = {
        "outdoor": {"temperature": {"value": "20"}},
        "soil_ch1": {
            "soilmoisture": {"time": "1760875200", "unit": "%", "value": "41"},
            "ad": {"time": "1760875200", "unit": "", "value": "201"},
        },
        "soil_ch2": {"soilmoisture": {"unit": "%", "value": "63.5"}},
        "soil_ch3": {"soilmoisture": {"unit": "%", "value": "--"}},
        "soil_ch4": {"ad": {"value": "180"}},
    }

    sensors = parse_soil_sensors("account1", data, NOW)

    assert [sensor.id for sensor in sensors] == ["account1_soil_ch1", "account1_soil_ch2"]
    first, second = sensors
    assert first.sensor_key == "Channel 1"
    assert first.moisture == 41.0
    assert first.ad == 201
    assert first.timestamp == datetime.fromtimestamp(1760875200, tz=timezone.utc)
    assert second.ad is None
    assert second.timestamp == NOW


def test_extract_history_list_requires_channel_payload() -> None:
    data = {"soil_ch1": {"soilmoisture": {"unit": "%", "list": {"1760875200": "40"}}}}

    assert extract_history_list(data, "1") == {"1760875200": "40"}
    assert extract_history_list(data, "2") is None
    assert extract_history_list({"soil_ch1": {"soilmoisture": {"list": []}}}, "1") is None


def test_parse_history_list_sorts_and_skips_garbage() -> None:
    entries = {"1760875500": "44", "1760875200": "40", "oops": "41", "1760875800": "n/a"}

    readings = parse_history_list("account1_soil_ch1", entries)

    assert [reading.moisture for reading in readings] == [40.0, 44.0]
    assert readings[0].timestamp < readings[1].timestamp
