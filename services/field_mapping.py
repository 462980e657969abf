"""Field mapping configuration and projection of raw channel records."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from models.records import FieldMapping, HistoricalSample, SensorReading, SensorType

logger = logging.getLogger(__name__)

FIELD_SLOTS: Tuple[str, ...] = tuple(f"field{index}" for index in range(1, 9))
MAX_MAPPINGS = len(FIELD_SLOTS)

TYPE_DEFAULTS: Dict[SensorType, Tuple[str, str]] = {
    SensorType.co: ("CO Level", "ppm"),
    SensorType.pm25: ("PM 2.5", "µg/m³"),
    SensorType.pm10: ("PM 10", "µg/m³"),
    SensorType.iaq: ("IAQ", "IAQ"),
    SensorType.voc: ("IAQ VOC", "IAQ"),
    SensorType.aqi_co: ("AQI-CO", "AQI"),
    SensorType.temperature: ("Temperature", "°C"),
    SensorType.humidity: ("Humidity", "%"),
    SensorType.custom: ("Custom", ""),
}

Record = Mapping[str, Any]


class MappingError(ValueError):
    """Raised when a field mapping edit would break the table's invariants."""


def default_mapping(field_id: str, sensor_type: SensorType) -> FieldMapping:
    label, unit = TYPE_DEFAULTS[sensor_type]
    return FieldMapping(field=field_id, type=sensor_type, label=label, unit=unit)


class FieldMappingTable:
    """Ordered, user-editable list of mappings capped at the channel's 8 fields."""

    def __init__(self, mappings: Iterable[FieldMapping] = ()) -> None:
        self._mappings: List[FieldMapping] = []
        for mapping in mappings:
            self._check_slot(mapping.field)
            self._mappings.append(mapping)

    def __iter__(self) -> Iterator[FieldMapping]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    def get(self, field_id: str) -> Optional[FieldMapping]:
        for mapping in self._mappings:
            if mapping.field == field_id:
                return mapping
        return None

    def used_fields(self) -> set[str]:
        return {mapping.field for mapping in self._mappings}

    def add(self, sensor_type: SensorType = SensorType.custom) -> FieldMapping:
        """Append a mapping on the first unused field slot."""
        free = [slot for slot in FIELD_SLOTS if slot not in self.used_fields()]
        if not free:
            raise MappingError(f"All {MAX_MAPPINGS} channel fields are already mapped.")
        mapping = default_mapping(free[0], SensorType(sensor_type))
        self._mappings.append(mapping)
        return mapping

    def update(
        self,
        field_id: str,
        *,
        sensor_type: Optional[SensorType] = None,
        label: Optional[str] = None,
        unit: Optional[str] = None,
        new_field: Optional[str] = None,
    ) -> FieldMapping:
        """Edit a mapping in place.

        Switching to a non-custom type re-derives label and unit from
        ``TYPE_DEFAULTS``, overwriting any explicit ``label``/``unit`` edits.
        """
        index = self._index_of(field_id)
        mapping = self._mappings[index]

        if new_field is not None and new_field != mapping.field:
            self._check_slot(new_field, adding=False)
            mapping = replace(mapping, field=new_field)
        if label is not None:
            mapping = replace(mapping, label=label)
        if unit is not None:
            mapping = replace(mapping, unit=unit)
        if sensor_type is not None:
            kind = SensorType(sensor_type)
            mapping = replace(mapping, type=kind)
            if kind is not SensorType.custom:
                default_label, default_unit = TYPE_DEFAULTS[kind]
                mapping = replace(mapping, label=default_label, unit=default_unit)

        self._mappings[index] = mapping
        return mapping

    def remove(self, field_id: str) -> FieldMapping:
        return self._mappings.pop(self._index_of(field_id))

    def snapshot(self) -> Tuple[FieldMapping, ...]:
        return tuple(self._mappings)

    def _index_of(self, field_id: str) -> int:
        for index, mapping in enumerate(self._mappings):
            if mapping.field == field_id:
                return index
        raise KeyError(f"No mapping configured for {field_id!r}.")

    def _check_slot(self, field_id: str, adding: bool = True) -> None:
        if field_id not in FIELD_SLOTS:
            raise MappingError(f"Unknown channel field {field_id!r}.")
        if field_id in self.used_fields():
            raise MappingError(f"Channel field {field_id!r} is already mapped.")
        if adding and len(self._mappings) >= MAX_MAPPINGS:
            raise MappingError(f"At most {MAX_MAPPINGS} fields can be mapped.")


def parse_mapping_spec(spec: str) -> Tuple[FieldMapping, ...]:
    """Parse ``field1:co,field2:temperature`` into mappings with default labels."""
    mappings: List[FieldMapping] = []
    for chunk in spec.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        field_id, _, type_name = chunk.partition(":")
        try:
            sensor_type = SensorType(type_name.strip().lower() or "custom")
        except ValueError as exc:
            raise MappingError(f"Unknown sensor type in mapping {chunk!r}.") from exc
        mappings.append(default_mapping(field_id.strip(), sensor_type))
    return FieldMappingTable(mappings).snapshot()


@dataclass(frozen=True)
class ChannelConfig:
    """Immutable per-cycle configuration handed to the poller."""

    channel_id: str
    read_key: str
    mappings: Tuple[FieldMapping, ...] = field(default_factory=tuple)
    refresh_interval: float = 15.0
    time_range: str = "24h"

    def problems(self) -> List[str]:
        issues: List[str] = []
        if not self.channel_id.strip():
            issues.append("missing channel id")
        if not self.read_key.strip():
            issues.append("missing read API key")
        if not self.mappings:
            issues.append("no field mappings configured")
        fields = [mapping.field for mapping in self.mappings]
        if len(fields) != len(set(fields)):
            issues.append("duplicate field mapping")
        if len(fields) > MAX_MAPPINGS:
            issues.append(f"more than {MAX_MAPPINGS} field mappings")
        if any(field_id not in FIELD_SLOTS for field_id in fields):
            issues.append("unknown channel field")
        return issues

    @property
    def is_valid(self) -> bool:
        return not self.problems()


def parse_field_value(raw: Any) -> float:
    """Decode a channel field; missing or malformed values decode to 0."""
    if raw is None:
        return 0.0
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
    else:
        candidate = str(raw).strip()
        if not candidate:
            return 0.0
        try:
            value = float(candidate)
        except ValueError:
            logger.debug("Substituting 0 for non-numeric field value", extra={"reason": candidate})
            return 0.0
    return value if math.isfinite(value) else 0.0


def parse_timestamp(value: Any) -> datetime:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}.")
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def project_reading(record: Record, mappings: Iterable[FieldMapping]) -> List[SensorReading]:
    return [
        SensorReading(
            type=mapping.type,
            label=mapping.label,
            value=parse_field_value(record.get(mapping.field)),
            unit=mapping.unit,
            field=mapping.field,
        )
        for mapping in mappings
    ]


def decode_sample(record: Record, mappings: Iterable[FieldMapping]) -> HistoricalSample:
    values: Dict[SensorType, float] = {}
    for mapping in mappings:
        # First mapping of a type wins; later duplicates of the same type are display-only.
        values.setdefault(mapping.type, parse_field_value(record.get(mapping.field)))
    return HistoricalSample(timestamp=parse_timestamp(record.get("created_at", "")), values=values)


def decode_feed(
    records: Iterable[Record], mappings: Iterable[FieldMapping]
) -> Tuple[HistoricalSample, ...]:
    mapping_list = tuple(mappings)
    samples: List[HistoricalSample] = []
    for record in records:
        try:
            samples.append(decode_sample(record, mapping_list))
        except ValueError:
            logger.warning(
                "Skipping feed record with invalid timestamp",
                extra={"reason": record.get("created_at")},
            )
    samples.sort(key=lambda sample: sample.timestamp)
    return tuple(samples)
