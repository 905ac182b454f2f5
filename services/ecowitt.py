"""Client and payload parsing for the Ecowitt cloud API."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from app.schemas import SensorReadingOut
from models.records import MoistureReading
from services.errors import describe_error
from settings import AccountConfig, get_settings

logger = logging.getLogger(__name__)

_CHANNEL_KEY = re.compile(r"^soil_ch(\d+)$")
_UPSTREAM_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class UpstreamSuccess:
    data: Dict[str, Any]


@dataclass(frozen=True)
class UpstreamFailure:
    message: str


UpstreamResult = Union[UpstreamSuccess, UpstreamFailure]


class EcowittClient:
    """Thin wrapper over ``httpx.Client`` that never raises for upstream failures."""

    def __init__(
        self,
        base_url: str,
        timeout: float,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def fetch_real_time(self, account: AccountConfig) -> UpstreamResult:
        params = {**_credentials(account), "call_back": "all"}
        return self._get("/device/real_time", params, account.id)

    def fetch_history(
        self,
        account: AccountConfig,
        start: datetime,
        end: datetime,
        channel: str,
    ) -> UpstreamResult:
        params = {
            **_credentials(account),
            "start_date": format_upstream_date(start),
            "end_date": format_upstream_date(end),
            "call_back": f"soil_ch{channel}",
        }
        return self._get("/device/history", params, account.id)

    def _get(self, path: str, params: Dict[str, str], account_id: str) -> UpstreamResult:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Upstream request failed",
                extra={"account_id": account_id, "reason": describe_error(exc)},
            )
            return UpstreamFailure(describe_error(exc))

        if not isinstance(payload, dict):
            return UpstreamFailure("Unexpected response payload")

        if str(payload.get("code")) != "0":
            message = str(payload.get("msg") or "API error")
            logger.warning(
                "Upstream API returned an error",
                extra={"account_id": account_id, "reason": message},
            )
            return UpstreamFailure(message)

        data = payload.get("data")
        return UpstreamSuccess(data if isinstance(data, dict) else {})


def _credentials(account: AccountConfig) -> Dict[str, str]:
    return {
        "application_key": account.app_key,
        "api_key": account.api_key,
        "mac": account.mac,
    }


def format_upstream_date(moment: datetime) -> str:
    """The history endpoint expects wall-clock dates in the server's local zone."""
    return moment.astimezone().strftime(_UPSTREAM_DATE_FORMAT)


def _epoch_to_datetime(raw: Any) -> datetime:
    return datetime.fromtimestamp(int(float(raw)), tz=timezone.utc)


def parse_soil_sensors(
    account_id: str, data: Mapping[str, Any], now: datetime
) -> List[SensorReadingOut]:
    """Extract ``soil_ch<N>`` readings from a real-time payload.

    Channels without a usable moisture value are skipped. A missing report time
    falls back to ``now``.
    """
    sensors: List[SensorReadingOut] = []
    for key, value in data.items():
        match = _CHANNEL_KEY.match(key)
        if not match or not isinstance(value, dict):
            continue
        soil = value.get("soilmoisture")
        if not isinstance(soil, dict):
            continue

        channel = match.group(1)
        try:
            moisture = float(soil["value"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping channel without moisture", extra={"account_id": account_id})
            continue

        try:
            timestamp = _epoch_to_datetime(soil["time"])
        except (KeyError, TypeError, ValueError, OverflowError, OSError):
            timestamp = now

        ad: Optional[int] = None
        ad_block = value.get("ad")
        if isinstance(ad_block, dict):
            try:
                ad = int(float(ad_block["value"]))
            except (KeyError, TypeError, ValueError):
                ad = None

        sensors.append(
            SensorReadingOut(
                id=f"{account_id}_soil_ch{channel}",
                account_id=account_id,
                sensor_key=f"Channel {channel}",
                moisture=moisture,
                unit=str(soil.get("unit") or "%"),
                ad=ad,
                timestamp=timestamp,
            )
        )
    return sensors


def extract_history_list(data: Mapping[str, Any], channel: str) -> Optional[Mapping[str, Any]]:
    """Return the ``{epoch: value}`` map for ``channel`` or None when absent."""
    channel_block = data.get(f"soil_ch{channel}")
    if not isinstance(channel_block, dict):
        return None
    soil = channel_block.get("soilmoisture")
    if not isinstance(soil, dict):
        return None
    entries = soil.get("list")
    if not isinstance(entries, dict):
        return None
    return entries


def parse_history_list(sensor_id: str, entries: Mapping[str, Any]) -> List[MoistureReading]:
    readings: List[MoistureReading] = []
    skipped = 0
    for raw_time, raw_value in entries.items():
        try:
            readings.append(
                MoistureReading(
                    sensor_id=sensor_id,
                    timestamp=_epoch_to_datetime(raw_time),
                    moisture=float(raw_value),
                )
            )
        except (TypeError, ValueError, OverflowError, OSError):
            skipped += 1
    if skipped:
        logger.debug(
            "Skipped unparseable history entries",
            extra={"sensor_id": sensor_id, "error_count": skipped},
        )
    readings.sort(key=lambda reading: reading.timestamp)
    return readings


@lru_cache
def build_default_client() -> EcowittClient:
    settings = get_settings()
    return EcowittClient(base_url=settings.upstream_base_url, timeout=settings.upstream_timeout)
