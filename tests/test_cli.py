from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.config import load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.history_calls: List[tuple[str, str, Optional[str]]] = []
        self.closed = False

    def get_sensors(self) -> Dict[str, Any]:
        return {
            "sensors": [
                {
                    "id": "account1_soil_ch1",
                    "accountId": "account1",
                    "sensorKey": "Channel 1",
                    "moisture": 41.0,
                    "unit": "%",
                    "ad": 201,
                    "timestamp": "2026-10-19T12:00:00Z",
                }
            ],
            "errors": [{"accountId": "account2", "error": "device offline"}],
            "lastUpdated": "2026-10-19T12:00:00Z",
            "mock": False,
        }

    def get_history(self, sensor_id: str, period: str, anchor: Optional[str] = None) -> Dict[str, Any]:
        self.history_calls.append((sensor_id, period, anchor))
        return {
            "sensorId": sensor_id,
            "period": period,
            "source": "local",
            "error": "rate limited",
            "points": [
                {"timestamp": "2026-10-19T11:00:00Z", "moisture": 40.0, "label": "11:00"},
                {"timestamp": "2026-10-19T11:05:00Z", "moisture": 58.0, "label": "11:05"},
            ],
        }

    def get_settings(self) -> Dict[str, Any]:
        return {
            "names": {"s1": "Fern"},
            "colors": {},
            "order": ["s1", "s2"],
            "hidden": ["s2"],
            "thresholds": {"s1": {"min": 30.0, "max": 70.0}},
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    instance = StubClient(config=None)

    def factory(config):
        instance.config = config
        return instance

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return instance


def test_sensors_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["sensors"])

    assert result.exit_code == 0
    assert "account1_soil_ch1: 41.0%" in result.stdout
    assert "account2: device offline" in result.stdout
    assert stub.closed is True


def test_history_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["history", "account1_soil_ch1", "--period", "7d"])

    assert result.exit_code == 0
    assert "source: local" in result.stdout
    assert "advisory: rate limited" in result.stdout
    assert "Points (2)" in result.stdout
    assert stub.history_calls == [("account1_soil_ch1", "7d", None)]


def test_history_command_rejects_unknown_period(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["history", "account1_soil_ch1", "--period", "2w"])

    assert result.exit_code != 0
    assert stub.history_calls == []


def test_settings_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["settings"])

    assert result.exit_code == 0
    assert "s1: Fern [30.0-70.0%]" in result.stdout
    assert "s2: (unnamed) (hidden)" in result.stdout


def test_base_url_option_overrides_environment(runner: CliRunner, stub: StubClient, monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://env.example:9000/")

    runner.invoke(app, ["--base-url", "http://cli.example:8000/", "sensors"])

    assert stub.config.base_url == "http://cli.example:8000"


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://env.example:9000/")
    monkeypatch.setenv("CLI_TIMEOUT", "not-a-number")

    config = load_config()

    assert config.base_url == "http://env.example:9000"
    assert config.timeout == 30.0
