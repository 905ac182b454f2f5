"""Extrema-preserving downsampling of moisture series."""

from __future__ import annotations

import math
from typing import List, Sequence

from models.records import MoistureReading

# A bucket whose min and max differ by at least this many percentage points
# contributes both extremes to the output.
SPIKE_THRESHOLD = 2.0


class Downsampler:
    """Pure reduction component that can be unit tested in isolation.

    The input is split into fixed-size buckets of ``ceil(len / max_points)``
    readings. Each bucket emits its earlier extreme, plus the other extreme when
    the swing between them reaches ``SPIKE_THRESHOLD``. Watering spikes and
    drought troughs therefore survive where a bucket mean would flatten them.
    """

    def __init__(self, spike_threshold: float = SPIKE_THRESHOLD) -> None:
        self.spike_threshold = spike_threshold

    def downsample(
        self, readings: Sequence[MoistureReading], max_points: int
    ) -> List[MoistureReading]:
        if max_points <= 0:
            raise ValueError("max_points must be positive.")
        if len(readings) <= max_points:
            return list(readings)

        bucket_size = math.ceil(len(readings) / max_points)
        reduced: List[MoistureReading] = []
        for start in range(0, len(readings), bucket_size):
            reduced.extend(self._reduce_bucket(readings[start : start + bucket_size]))

        reduced.sort(key=lambda reading: reading.timestamp)
        return reduced

    def _reduce_bucket(self, bucket: Sequence[MoistureReading]) -> List[MoistureReading]:
        lowest = highest = bucket[0]
        for reading in bucket:
            if reading.moisture < lowest.moisture:
                lowest = reading
            if reading.moisture > highest.moisture:
                highest = reading

        if lowest.timestamp < highest.timestamp:
            first, second = lowest, highest
        else:
            first, second = highest, lowest

        if highest.moisture - lowest.moisture >= self.spike_threshold:
            return [first, second]
        return [first]
