"""Query periods and their lookback, display budget and label granularity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


class Period(str, Enum):
    hour = "1h"
    day = "24h"
    week = "7d"
    month = "30d"
    year = "1y"


@dataclass(frozen=True)
class PeriodSpec:
    lookback: timedelta
    max_points: int
    label_format: str

    def label(self, moment: datetime) -> str:
        return moment.astimezone().strftime(self.label_format)


PERIOD_SPECS: dict[Period, PeriodSpec] = {
    Period.hour: PeriodSpec(timedelta(hours=1), 100, "%H:%M"),
    Period.day: PeriodSpec(timedelta(hours=24), 300, "%H:%M"),
    Period.week: PeriodSpec(timedelta(days=7), 400, "%a %H:00"),
    Period.month: PeriodSpec(timedelta(days=30), 300, "%b %d"),
    Period.year: PeriodSpec(timedelta(days=365), 200, "%B"),
}

# The hourly view is cut from this much locally retained minute-level data.
HOURLY_BUFFER = timedelta(hours=24)


def spec_for(period: Period) -> PeriodSpec:
    return PERIOD_SPECS[period]
