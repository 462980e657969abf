"""Time-range policy and fixed-width resampling of irregular samples."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Union

from models.records import Bucket, ChartPoint, HistoricalSample, SensorType

# ThingSpeak refuses to return more than this many entries per feed request.
MAX_RESULTS = 8000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TimeRange(str, Enum):
    twelve_hours = "12h"
    day = "24h"
    week = "1w"
    month = "1m"


@dataclass(frozen=True)
class RangePolicy:
    window: timedelta
    interval: timedelta
    results: int
    label: str

    @property
    def slot_count(self) -> int:
        return int(self.window / self.interval) + 1


RANGE_POLICIES: Dict[TimeRange, RangePolicy] = {
    # Fetch sizes assume roughly one entry every 10 minutes (20 for a week,
    # an hour for a month).
    TimeRange.twelve_hours: RangePolicy(timedelta(hours=12), timedelta(minutes=30), 72, "12 Hours"),
    TimeRange.day: RangePolicy(timedelta(hours=24), timedelta(hours=1), 144, "24 Hours"),
    TimeRange.week: RangePolicy(timedelta(days=7), timedelta(hours=12), 504, "1 Week"),
    TimeRange.month: RangePolicy(timedelta(days=30), timedelta(days=1), 720, "1 Month"),
}


def policy_for(time_range: Union[TimeRange, str]) -> RangePolicy:
    return RANGE_POLICIES[TimeRange(time_range)]


def results_for(time_range: Union[TimeRange, str]) -> int:
    """Number of feed entries to request so the whole window is covered."""
    return min(policy_for(time_range).results, MAX_RESULTS)


def floor_to_interval(timestamp: datetime, interval: timedelta) -> datetime:
    """Align ``timestamp`` down to the nearest epoch multiple of ``interval``."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    offset = (timestamp - _EPOCH) % interval
    return (timestamp - offset).astimezone(timezone.utc)


def series_for(history: Iterable[HistoricalSample], sensor_type: SensorType) -> List[ChartPoint]:
    return [
        ChartPoint(timestamp=sample.timestamp, value=sample.value_for(sensor_type))
        for sample in history
    ]


def bucket(
    points: Sequence[ChartPoint],
    time_range: Union[TimeRange, str],
    now: datetime,
) -> List[Bucket]:
    """Average ``points`` into aligned slots covering ``[now - window, now]``.

    Every slot in the window is present even when no point falls into it, so
    the number of buckets depends only on the range.
    """
    policy = policy_for(time_range)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    window_start = now - policy.window

    totals: Dict[datetime, float] = {}
    counts: Dict[datetime, int] = {}
    slot = floor_to_interval(window_start, policy.interval)
    last_slot = floor_to_interval(now, policy.interval)
    while slot <= last_slot:
        totals[slot] = 0.0
        counts[slot] = 0
        slot += policy.interval

    for point in points:
        timestamp = point.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        if not window_start <= timestamp <= now:
            continue
        key = floor_to_interval(timestamp, policy.interval)
        totals[key] += point.value
        counts[key] += 1

    return [
        Bucket(slot_start=key, value=totals[key] / counts[key] if counts[key] else 0.0)
        for key in sorted(totals)
    ]
