from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_APP_KEY_ENV = "ECOWITT_APP_KEY_{index}"
_API_KEY_ENV = "ECOWITT_API_KEY_{index}"
_MAC_ENV = "ECOWITT_MAC_{index}"
_BASE_URL_ENV = "ECOWITT_BASE_URL"
_TIMEOUT_ENV = "UPSTREAM_TIMEOUT_SECONDS"
_MOCK_ENV = "USE_MOCK_DATA"
_HISTORY_ROOT_ENV = "SENSOR_HISTORY_ROOT_PATH"
_SETTINGS_PATH_ENV = "PLANT_SETTINGS_PATH"
_RETENTION_ENV = "SENSOR_RETENTION_LIMIT"
_CACHE_TTL_ENV = "SENSOR_CACHE_TTL_SECONDS"
_WORKER_COUNT_ENV = "POLLER_WORKER_COUNT"
_BACKGROUND_POLL_ENV = "BACKGROUND_POLL_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

MAX_ACCOUNTS = 8


@dataclass(frozen=True)
class AccountConfig:
    """Credentials for one upstream weather-station account."""

    id: str
    app_key: str
    api_key: str
    mac: str


@dataclass(frozen=True)
class Settings:
    accounts: Tuple[AccountConfig, ...]
    upstream_base_url: str
    upstream_timeout: float
    use_mock_data: bool
    history_root_path: Optional[str]
    settings_path: Optional[str]
    retention_limit: int
    sensor_cache_ttl: float
    poller_workers: int
    background_poll_seconds: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_float(name: str, default: float, allow_zero: bool = False) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in {"1", "true", "yes", "on"}


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _read_accounts() -> Tuple[AccountConfig, ...]:
    accounts: list[AccountConfig] = []
    for index in range(1, MAX_ACCOUNTS + 1):
        app_key = (os.getenv(_APP_KEY_ENV.format(index=index)) or "").strip()
        api_key = (os.getenv(_API_KEY_ENV.format(index=index)) or "").strip()
        mac = (os.getenv(_MAC_ENV.format(index=index)) or "").strip()
        if app_key and api_key and mac:
            accounts.append(
                AccountConfig(id=f"account{index}", app_key=app_key, api_key=api_key, mac=mac)
            )
    return tuple(accounts)


@lru_cache
def get_settings() -> Settings:
    return Settings(
        accounts=_read_accounts(),
        upstream_base_url=_read_str_env(_BASE_URL_ENV, "https://api.ecowitt.net/api/v3").rstrip("/"),
        upstream_timeout=_read_float(_TIMEOUT_ENV, 10.0),
        use_mock_data=_read_bool(_MOCK_ENV, False),
        history_root_path=_read_optional_env(_HISTORY_ROOT_ENV, "./tmp/history"),
        settings_path=_read_optional_env(_SETTINGS_PATH_ENV, "./tmp/plant_settings.json"),
        retention_limit=_read_positive_int(_RETENTION_ENV, 50_000),
        sensor_cache_ttl=_read_float(_CACHE_TTL_ENV, 5.0),
        poller_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        background_poll_seconds=_read_float(_BACKGROUND_POLL_ENV, 0.0, allow_zero=True),
        log_level=_read_log_level("INFO"),
    )
