"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict


class SensorType(str, Enum):
    """Semantic type of a channel field; selects classification and defaults."""

    co = "co"
    pm25 = "pm25"
    pm10 = "pm10"
    iaq = "iaq"
    voc = "voc"
    aqi_co = "aqi_co"
    temperature = "temperature"
    humidity = "humidity"
    custom = "custom"


class AQILevel(str, Enum):
    good = "good"
    moderate = "moderate"
    unhealthy_sensitive = "unhealthy-sensitive"
    unhealthy = "unhealthy"
    hazardous = "hazardous"


@dataclass(frozen=True, slots=True)
class FieldMapping:
    """Association of a channel field (``field1``..``field8``) to a sensor type."""

    field: str
    type: SensorType
    label: str
    unit: str


@dataclass(frozen=True, slots=True)
class SensorReading:
    """Latest decoded value for one configured mapping."""

    type: SensorType
    label: str
    value: float
    unit: str
    field: str


@dataclass(frozen=True, slots=True)
class HistoricalSample:
    """One decoded feed record carrying a value for every configured type."""

    timestamp: datetime
    values: Dict[SensorType, float] = field(default_factory=dict)

    def value_for(self, sensor_type: SensorType) -> float:
        return self.values.get(sensor_type, 0.0)


@dataclass(frozen=True, slots=True)
class AQIStatus:
    level: AQILevel
    label: str
    color: str
    bg_class: str
    text_class: str
    border_class: str
    card_class: str


@dataclass(frozen=True, slots=True)
class ChartPoint:
    timestamp: datetime
    value: float


@dataclass(frozen=True, slots=True)
class Bucket:
    """Averaged value for one aligned time slot; 0 when the slot is empty."""

    slot_start: datetime
    value: float
