"""Fan-out polling of current sensor values across all configured accounts."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from functools import lru_cache
from threading import Event, Thread
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from app.schemas import AccountError, SensorReadingOut, SensorsResponse
from services.ecowitt import EcowittClient, UpstreamFailure, build_default_client, parse_soil_sensors
from services.mock_data import MockDataGenerator
from services.snapshot_cache import SnapshotCache
from settings import AccountConfig, get_settings
from storage.reading_store import ReadingStore, build_default_reading_store

logger = logging.getLogger(__name__)

_AccountOutcome = Tuple[List[SensorReadingOut], Optional[str]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LivePoller:
    """Fetches current readings, feeds the reading store and memoises the result."""

    def __init__(
        self,
        accounts: Sequence[AccountConfig],
        client: EcowittClient,
        store: ReadingStore,
        cache: SnapshotCache[SensorsResponse],
        mock_data: Optional[MockDataGenerator] = None,
        use_mock_data: bool = False,
        workers: int = 4,
        account_timeout: float = 20.0,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.accounts = tuple(accounts)
        self.client = client
        self.store = store
        self.cache = cache
        self.mock_data = mock_data or MockDataGenerator()
        self.use_mock_data = use_mock_data
        self.account_timeout = account_timeout
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="poller")
        self._now = now

    def fetch_current(self) -> SensorsResponse:
        """Return current values for every sensor; never raises for upstream trouble."""
        if self.use_mock_data or not self.accounts:
            logger.info("Serving synthetic sensor data", extra={"source": "synthetic"})
            return self._synthetic()

        try:
            return self.cache.get_or_compute(
                self._fetch_live, should_store=lambda response: not response.mock
            )
        except Exception:
            logger.exception("Sensor fetch failed unexpectedly; serving synthetic data")
            return self._synthetic()

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _fetch_live(self) -> SensorsResponse:
        start_time = time.perf_counter()
        futures: Dict[str, Future[_AccountOutcome]] = {
            account.id: self.executor.submit(self._fetch_account, account)
            for account in self.accounts
        }
        done, _pending = wait(futures.values(), timeout=self.account_timeout)

        sensors: List[SensorReadingOut] = []
        errors: List[AccountError] = []
        for account in self.accounts:
            future = futures[account.id]
            if future not in done:
                future.cancel()
                errors.append(
                    AccountError(account_id=account.id, error="Timed out waiting for upstream")
                )
                continue
            try:
                account_sensors, error = future.result()
            except Exception as exc:
                logger.exception(
                    "Account fetch raised unexpectedly", extra={"account_id": account.id}
                )
                account_sensors, error = [], str(exc) or exc.__class__.__name__
            sensors.extend(account_sensors)
            if error is not None:
                errors.append(AccountError(account_id=account.id, error=error))

        for sensor in sensors:
            self.store.append(sensor.id, sensor.moisture, sensor.timestamp)

        logger.info(
            "Stored sensor readings",
            extra={
                "reading_count": len(sensors),
                "error_count": len(errors),
                "elapsed_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )

        if not sensors and errors:
            logger.warning("Every account failed; serving synthetic data")
            return self._synthetic(errors)

        latest = max((sensor.timestamp for sensor in sensors), default=None)
        return SensorsResponse(
            sensors=sensors,
            errors=errors or None,
            last_updated=latest or self._now(),
        )

    def _fetch_account(self, account: AccountConfig) -> _AccountOutcome:
        result = self.client.fetch_real_time(account)
        if isinstance(result, UpstreamFailure):
            return [], result.message
        return parse_soil_sensors(account.id, result.data, self._now()), None

    def _synthetic(self, errors: Optional[List[AccountError]] = None) -> SensorsResponse:
        now = self._now()
        return SensorsResponse(
            sensors=self.mock_data.sensors(now),
            errors=errors or None,
            last_updated=now,
            mock=True,
        )


class BackgroundPoller:
    """Calls ``fetch_current`` on a fixed interval so the store fills without clients."""

    def __init__(self, poller: LivePoller, interval_seconds: float) -> None:
        self.poller = poller
        self.interval_seconds = interval_seconds
        self._stop = Event()
        self._thread: Optional[Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = Thread(target=self._run, name="background-poller", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poller.fetch_current()
            if self._stop.wait(self.interval_seconds):
                break


@lru_cache
def build_default_poller() -> LivePoller:
    """Factory that wires the poller with configured accounts and stores."""
    settings = get_settings()
    return LivePoller(
        accounts=settings.accounts,
        client=build_default_client(),
        store=build_default_reading_store(),
        cache=SnapshotCache(ttl_seconds=settings.sensor_cache_ttl),
        use_mock_data=settings.use_mock_data,
        workers=settings.poller_workers,
        account_timeout=settings.upstream_timeout * 2,
    )
