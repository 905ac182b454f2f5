from __future__ import annotations

import json
import logging
from collections import deque
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Deque, Dict, List, Optional
from urllib.parse import quote

from models.records import MoistureReading, ensure_utc, format_timestamp, parse_timestamp
from services.errors import suppress_recoverable
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_LIMIT = 50_000


class ReadingStore:
    """Append-only per-sensor moisture series with a sliding retention window.

    Each sensor's series lives in its own JSON file under ``root_path`` and is
    rewritten in full on every append. Without a ``root_path`` the store keeps
    everything in memory, which is what most tests use.
    """

    def __init__(
        self,
        root_path: Optional[Path] = None,
        retention_limit: int = DEFAULT_RETENTION_LIMIT,
    ) -> None:
        if retention_limit <= 0:
            raise ValueError("retention_limit must be positive.")
        self.root_path = root_path
        self.retention_limit = retention_limit
        self._series: Dict[str, Deque[MoistureReading]] = {}
        self._sensor_locks: Dict[str, Lock] = {}
        self._locks_lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)

    def append(self, sensor_id: str, moisture: float, timestamp: datetime) -> None:
        """Record one reading and persist the sensor's series before returning."""
        if not sensor_id:
            raise ValueError("sensor_id must not be empty.")
        reading = MoistureReading(
            sensor_id=sensor_id,
            timestamp=ensure_utc(timestamp),
            moisture=float(moisture),
        )
        with self._lock_for(sensor_id):
            series = self._load_series(sensor_id)
            series.append(reading)
            self._persist(sensor_id, series)

    def query(
        self, sensor_id: str, since: datetime, ordered: bool = True
    ) -> List[MoistureReading]:
        """Return readings at or after ``since``.

        Results are in ascending time order unless ``ordered`` is False, in
        which case they keep the order they were appended in.
        """
        cutoff = ensure_utc(since)
        with self._lock_for(sensor_id):
            snapshot = list(self._load_series(sensor_id))
        selected = [reading for reading in snapshot if reading.timestamp >= cutoff]
        if not ordered:
            return selected
        return sorted(selected, key=lambda reading: reading.timestamp)

    def _lock_for(self, sensor_id: str) -> Lock:
        with self._locks_lock:
            lock = self._sensor_locks.get(sensor_id)
            if lock is None:
                lock = Lock()
                self._sensor_locks[sensor_id] = lock
            return lock

    def _path_for(self, sensor_id: str) -> Path:
        assert self.root_path is not None
        return self.root_path / f"{quote(sensor_id, safe='')}.json"

    def _load_series(self, sensor_id: str) -> Deque[MoistureReading]:
        series = self._series.get(sensor_id)
        if series is not None:
            return series

        series = deque(maxlen=self.retention_limit)
        if self.root_path:
            path = self._path_for(sensor_id)
            if path.exists():
                with suppress_recoverable(
                    logger, "Discarding unreadable sensor history", sensor_id=sensor_id
                ):
                    raw = json.loads(path.read_text() or "[]")
                    series.extend(self._decode_entries(sensor_id, raw))
        self._series[sensor_id] = series
        return series

    def _persist(self, sensor_id: str, series: Deque[MoistureReading]) -> None:
        if not self.root_path:
            return
        payload = [
            {"moisture": reading.moisture, "timestamp": format_timestamp(reading.timestamp)}
            for reading in series
        ]
        path = self._path_for(sensor_id)
        with suppress_recoverable(
            logger,
            "Failed to persist sensor history",
            sensor_id=sensor_id,
            reading_count=len(payload),
        ):
            scratch = path.with_suffix(".json.tmp")
            scratch.write_text(json.dumps(payload))
            scratch.replace(path)

    @staticmethod
    def _decode_entries(sensor_id: str, raw: Any) -> List[MoistureReading]:
        if not isinstance(raw, list):
            raise ValueError("Sensor history file does not contain a list.")

        readings: List[MoistureReading] = []
        skipped = 0
        for entry in raw:
            try:
                readings.append(
                    MoistureReading(
                        sensor_id=sensor_id,
                        timestamp=parse_timestamp(str(entry["timestamp"])),
                        moisture=float(entry["moisture"]),
                    )
                )
            except (KeyError, TypeError, ValueError):
                skipped += 1
        if skipped:
            logger.warning(
                "Skipped malformed history entries",
                extra={"sensor_id": sensor_id, "error_count": skipped},
            )
        return readings


@lru_cache
def build_default_reading_store(
    root_path: Optional[str] = None,
    retention_limit: Optional[int] = None,
) -> ReadingStore:
    settings = get_settings()
    store_root = settings.history_root_path if root_path is None else root_path
    limit = settings.retention_limit if retention_limit is None else retention_limit
    path = Path(store_root) if store_root else None
    return ReadingStore(root_path=path, retention_limit=limit)
