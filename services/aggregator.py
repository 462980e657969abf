"""Derived metrics over the poller's readings and history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Tuple

from models.records import AQIStatus, HistoricalSample, SensorReading, SensorType
from services.classification import (
    classify,
    classify_index,
    health_advisory,
    is_classified,
    pm10_aqi,
    pm25_aqi,
    severity_rank,
)

AQI_POLICY = "aqi"
SEVERITY_POLICY = "severity"
POLICIES = (AQI_POLICY, SEVERITY_POLICY)

POLLUTANT_NAMES: Dict[SensorType, str] = {
    SensorType.aqi_co: "Carbon Monoxide",
    SensorType.voc: "VOCs",
    SensorType.pm25: "PM 2.5",
    SensorType.pm10: "PM 10",
}
# Tie-break order for the AQI policy: earlier entries win equal values.
AQI_PRIORITY: Tuple[SensorType, ...] = tuple(POLLUTANT_NAMES)
FALLBACK_POLLUTANT = "Air Quality"


@dataclass
class OverallAirQuality:
    value: float
    pollutant: str
    status: AQIStatus
    policy: str


@dataclass
class AirQualitySummary:
    """Overall status, its advisory, and per-type history averages."""

    overall: OverallAirQuality
    advisory: str
    averages: Dict[SensorType, float] = field(default_factory=dict)


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def average_of(self, history: Iterable[HistoricalSample], sensor_type: SensorType) -> float:
        total = 0.0
        count = 0
        for sample in history:
            total += sample.value_for(sensor_type)
            count += 1
        return total / count if count else 0.0

    def overall_by_aqi(self, readings: Sequence[SensorReading]) -> OverallAirQuality:
        """Highest of CO-AQI, VOC index, and EPA AQI of PM2.5/PM10."""
        latest: Dict[SensorType, float] = {}
        for reading in readings:
            latest.setdefault(reading.type, reading.value)

        candidates = []
        for sensor_type in AQI_PRIORITY:
            if sensor_type not in latest:
                continue
            raw = latest[sensor_type]
            if sensor_type is SensorType.pm25:
                scaled = float(pm25_aqi(raw))
            elif sensor_type is SensorType.pm10:
                scaled = float(pm10_aqi(raw))
            else:
                scaled = max(raw, 0.0)
            candidates.append((scaled, sensor_type))

        if not candidates:
            return OverallAirQuality(
                value=0.0,
                pollutant=FALLBACK_POLLUTANT,
                status=classify_index(0.0),
                policy=AQI_POLICY,
            )

        best_value, best_type = candidates[0]
        for value, sensor_type in candidates[1:]:
            if value > best_value:
                best_value, best_type = value, sensor_type
        return OverallAirQuality(
            value=best_value,
            pollutant=POLLUTANT_NAMES[best_type],
            status=classify_index(best_value),
            policy=AQI_POLICY,
        )

    def overall_by_severity(self, readings: Sequence[SensorReading]) -> OverallAirQuality:
        """Most severe classified level among all classified readings."""
        worst: Optional[Tuple[SensorReading, AQIStatus]] = None
        for reading in readings:
            if not is_classified(reading.type):
                continue
            status = classify(reading.type, reading.value)
            if worst is None or severity_rank(status.level) > severity_rank(worst[1].level):
                worst = (reading, status)

        if worst is None:
            return OverallAirQuality(
                value=0.0,
                pollutant=FALLBACK_POLLUTANT,
                status=classify_index(0.0),
                policy=SEVERITY_POLICY,
            )
        reading, status = worst
        return OverallAirQuality(
            value=reading.value, pollutant=reading.label, status=status, policy=SEVERITY_POLICY
        )

    def summarize(
        self,
        readings: Sequence[SensorReading],
        history: Sequence[HistoricalSample],
        policy: str = AQI_POLICY,
    ) -> AirQualitySummary:
        if policy == SEVERITY_POLICY:
            overall = self.overall_by_severity(readings)
        elif policy == AQI_POLICY:
            overall = self.overall_by_aqi(readings)
        else:
            raise ValueError(f"Unknown overall air quality policy {policy!r}.")

        averages = {
            reading.type: self.average_of(history, reading.type) for reading in readings
        }
        advisory = health_advisory(overall.status if readings else None)
        return AirQualitySummary(overall=overall, advisory=advisory, averages=averages)
