"""Chart-ready sensor history with live, local and synthetic source tiers."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Sequence

from app.schemas import HistoryPoint, HistoryResponse, HistorySource
from models.periods import HOURLY_BUFFER, Period, spec_for
from models.records import MoistureReading, ensure_utc
from services.downsampler import Downsampler
from services.ecowitt import (
    EcowittClient,
    UpstreamFailure,
    build_default_client,
    extract_history_list,
    parse_history_list,
)
from services.errors import describe_error
from services.mock_data import MockDataGenerator
from settings import AccountConfig, get_settings
from storage.reading_store import ReadingStore, build_default_reading_store

logger = logging.getLogger(__name__)

_SENSOR_ID = re.compile(r"^(account\d+)_soil_ch(\d+)$")

INVALID_SENSOR_ID = "Invalid sensor ID format"
ACCOUNT_NOT_FOUND = "Account not found"
MISSING_CHANNEL = "No history data in upstream response"
NO_LOCAL_DATA = "No locally retained readings"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HistoryResolver:
    """Picks a data source tier for ``(sensor_id, period)`` and shapes the result.

    The hourly view always comes from locally retained minute-level readings,
    since the upstream history only has five-minute buckets. Every other period
    asks upstream first and drops to the local store when that fails. A local
    store with nothing to offer degrades once more, to synthetic data.
    """

    def __init__(
        self,
        accounts: Sequence[AccountConfig],
        client: EcowittClient,
        store: ReadingStore,
        downsampler: Downsampler,
        mock_data: Optional[MockDataGenerator] = None,
        use_mock_data: bool = False,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.accounts: Dict[str, AccountConfig] = {account.id: account for account in accounts}
        self.client = client
        self.store = store
        self.downsampler = downsampler
        self.mock_data = mock_data or MockDataGenerator()
        self.use_mock_data = use_mock_data
        self._now = now

    def resolve(
        self,
        sensor_id: str,
        period: Period,
        anchor: Optional[datetime] = None,
    ) -> HistoryResponse:
        now = self._now()
        match = _SENSOR_ID.match(sensor_id)
        if not match:
            return HistoryResponse(
                sensor_id=sensor_id,
                period=period,
                source=HistorySource.local,
                error=INVALID_SENSOR_ID,
            )

        if self.use_mock_data or not self.accounts:
            return self._synthetic(sensor_id, period, now)

        if period is Period.hour:
            return self._hourly(sensor_id, now, anchor)

        account_id, channel = match.groups()
        account = self.accounts.get(account_id)
        if account is None:
            return self._local(sensor_id, period, now, error=ACCOUNT_NOT_FOUND)

        try:
            return self._live(sensor_id, period, account, channel, now)
        except Exception as exc:
            logger.exception(
                "History lookup failed; using local data",
                extra={"sensor_id": sensor_id, "period": period.value},
            )
            return self._local(sensor_id, period, now, error=describe_error(exc))

    def _live(
        self,
        sensor_id: str,
        period: Period,
        account: AccountConfig,
        channel: str,
        now: datetime,
    ) -> HistoryResponse:
        spec = spec_for(period)
        result = self.client.fetch_history(account, now - spec.lookback, now, channel)
        if isinstance(result, UpstreamFailure):
            logger.info(
                "Upstream history unavailable; using local data",
                extra={"sensor_id": sensor_id, "period": period.value, "reason": result.message},
            )
            return self._local(sensor_id, period, now, error=result.message)

        entries = extract_history_list(result.data, channel)
        if entries is None:
            logger.info(
                "Upstream history missing channel; using local data",
                extra={"sensor_id": sensor_id, "period": period.value},
            )
            return self._local(sensor_id, period, now, error=MISSING_CHANNEL)

        readings = parse_history_list(sensor_id, entries)
        return self._shape(sensor_id, period, readings, HistorySource.live)

    def _local(
        self,
        sensor_id: str,
        period: Period,
        now: datetime,
        error: Optional[str] = None,
    ) -> HistoryResponse:
        readings = self.store.query(sensor_id, now - spec_for(period).lookback)
        if not readings:
            return self._synthetic(sensor_id, period, now, error=error or NO_LOCAL_DATA)
        return self._shape(sensor_id, period, readings, HistorySource.local, error)

    def _hourly(
        self, sensor_id: str, now: datetime, anchor: Optional[datetime]
    ) -> HistoryResponse:
        lookback = spec_for(Period.hour).lookback
        buffer_start = now - HOURLY_BUFFER
        buffered = self.store.query(sensor_id, buffer_start, ordered=False)

        if anchor is None:
            window_start, window_end = now - lookback, None
        else:
            window_start = min(max(ensure_utc(anchor), buffer_start), now)
            window_end = window_start + lookback

        in_window = [
            reading
            for reading in buffered
            if reading.timestamp >= window_start
            and (window_end is None or reading.timestamp < window_end)
        ]
        readings = dedupe_by_minute(in_window)
        if not readings:
            return self._synthetic(sensor_id, Period.hour, now, error=NO_LOCAL_DATA)
        return self._shape(sensor_id, Period.hour, readings, HistorySource.local)

    def _synthetic(
        self,
        sensor_id: str,
        period: Period,
        now: datetime,
        error: Optional[str] = None,
    ) -> HistoryResponse:
        readings = self.mock_data.history(sensor_id, period, now)
        return self._shape(sensor_id, period, readings, HistorySource.synthetic, error)

    def _shape(
        self,
        sensor_id: str,
        period: Period,
        readings: Sequence[MoistureReading],
        source: HistorySource,
        error: Optional[str] = None,
    ) -> HistoryResponse:
        spec = spec_for(period)
        reduced = self.downsampler.downsample(readings, spec.max_points)
        logger.debug(
            "Resolved sensor history",
            extra={
                "sensor_id": sensor_id,
                "period": period.value,
                "source": source.value,
                "reading_count": len(reduced),
            },
        )
        return HistoryResponse(
            sensor_id=sensor_id,
            period=period,
            points=[
                HistoryPoint(
                    timestamp=reading.timestamp,
                    moisture=reading.moisture,
                    label=spec.label(reading.timestamp),
                )
                for reading in reduced
            ],
            source=source,
            error=error,
        )


def dedupe_by_minute(readings: Sequence[MoistureReading]) -> List[MoistureReading]:
    """Keep the first reading seen in each calendar minute, then sort by time.

    "First seen" follows the order of ``readings``, so pass them in append
    order to keep the earliest-stored reading of a minute.
    """
    seen: Dict[datetime, MoistureReading] = {}
    for reading in readings:
        minute = reading.timestamp.replace(second=0, microsecond=0)
        seen.setdefault(minute, reading)
    return sorted(seen.values(), key=lambda reading: reading.timestamp)


@lru_cache
def build_default_resolver() -> HistoryResolver:
    settings = get_settings()
    return HistoryResolver(
        accounts=settings.accounts,
        client=build_default_client(),
        store=build_default_reading_store(),
        downsampler=Downsampler(),
        use_mock_data=settings.use_mock_data,
    )
