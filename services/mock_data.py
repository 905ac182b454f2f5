"""Plausible stand-in data for demo mode and last-resort fallbacks."""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import List, Optional

from app.schemas import SensorReadingOut
from models.periods import Period
from models.records import MoistureReading

# (account, channel, base moisture, jitter)
_MOCK_CHANNELS = (
    ("account1", 1, 45, 10),
    ("account1", 2, 62, 8),
    ("account1", 3, 28, 5),
    ("account1", 4, 55, 12),
    ("account2", 1, 72, 6),
    ("account2", 2, 38, 10),
    ("account2", 3, 51, 8),
    ("account2", 4, 18, 7),
)

_HISTORY_SHAPES: dict[Period, tuple[int, timedelta]] = {
    Period.hour: (60, timedelta(minutes=1)),
    Period.day: (24, timedelta(hours=1)),
    Period.week: (28, timedelta(hours=6)),
    Period.month: (30, timedelta(days=1)),
    Period.year: (3, timedelta(days=30)),
}


class MockDataGenerator:
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def sensors(self, now: datetime) -> List[SensorReadingOut]:
        return [
            SensorReadingOut(
                id=f"{account}_soil_ch{channel}",
                account_id=account,
                sensor_key=f"Channel {channel}",
                moisture=round(base + self._rng.random() * jitter),
                unit="%",
                ad=self._rng.randrange(150, 250),
                timestamp=now,
            )
            for account, channel, base, jitter in _MOCK_CHANNELS
        ]

    def history(self, sensor_id: str, period: Period, now: datetime) -> List[MoistureReading]:
        """Simulate a drying curve with a watering spike whenever it gets low."""
        points, step = _HISTORY_SHAPES[period]
        moisture = 65 + self._rng.random() * 10
        readings: List[MoistureReading] = []
        for offset in range(points - 1, -1, -1):
            moisture -= self._rng.random() * 3 + 1
            if moisture < 42 + self._rng.random() * 5:
                moisture = 68 + self._rng.random() * 10
            moisture = max(38.0, min(80.0, moisture))
            readings.append(
                MoistureReading(
                    sensor_id=sensor_id,
                    timestamp=now - step * offset,
                    moisture=float(round(moisture)),
                )
            )
        return readings
