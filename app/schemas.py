"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from models.records import AQIStatus, FieldMapping, SensorType
from services.bucketing import TimeRange
from services.field_mapping import FIELD_SLOTS, MAX_MAPPINGS, ChannelConfig


class FieldMappingPayload(BaseModel):
    """One channel field bound to a sensor type."""

    field: str = Field(..., description="Channel field identifier, field1..field8.")
    type: SensorType
    label: str
    unit: str = ""

    @field_validator("field")
    @classmethod
    def _known_field(cls, value: str) -> str:
        if value not in FIELD_SLOTS:
            raise ValueError(f"field must be one of {', '.join(FIELD_SLOTS)}")
        return value

    @classmethod
    def from_domain(cls, mapping: FieldMapping) -> "FieldMappingPayload":
        return cls(field=mapping.field, type=mapping.type, label=mapping.label, unit=mapping.unit)

    def to_domain(self) -> FieldMapping:
        return FieldMapping(field=self.field, type=self.type, label=self.label, unit=self.unit)


class DashboardConfigPayload(BaseModel):
    """Channel credentials and field mappings, as stored and as edited over the API."""

    channel_id: str = ""
    read_key: str = ""
    mappings: List[FieldMappingPayload] = Field(default_factory=list, max_length=MAX_MAPPINGS)
    refresh_interval: float = Field(default=15.0, gt=0)
    time_range: TimeRange = TimeRange.day

    @classmethod
    def from_domain(cls, config: ChannelConfig) -> "DashboardConfigPayload":
        return cls(
            channel_id=config.channel_id,
            read_key=config.read_key,
            mappings=[FieldMappingPayload.from_domain(mapping) for mapping in config.mappings],
            refresh_interval=config.refresh_interval,
            time_range=TimeRange(config.time_range),
        )

    def to_domain(self) -> ChannelConfig:
        return ChannelConfig(
            channel_id=self.channel_id.strip(),
            read_key=self.read_key.strip(),
            mappings=tuple(mapping.to_domain() for mapping in self.mappings),
            refresh_interval=self.refresh_interval,
            time_range=self.time_range.value,
        )


class TimeRangeUpdate(BaseModel):
    time_range: TimeRange


class MappingCreate(BaseModel):
    type: SensorType = SensorType.custom


class MappingUpdate(BaseModel):
    """Partial edit; switching to a non-custom type resets label and unit."""

    type: Optional[SensorType] = None
    label: Optional[str] = None
    unit: Optional[str] = None
    field: Optional[str] = None


class StatusOut(BaseModel):
    level: str
    label: str
    color: str
    bg_class: str
    text_class: str
    border_class: str
    card_class: str

    @classmethod
    def from_domain(cls, status: AQIStatus) -> "StatusOut":
        return cls(
            level=status.level.value,
            label=status.label,
            color=status.color,
            bg_class=status.bg_class,
            text_class=status.text_class,
            border_class=status.border_class,
            card_class=status.card_class,
        )


class ReadingOut(BaseModel):
    type: SensorType
    label: str
    value: float
    unit: str
    field: str
    status: StatusOut
    average: float = Field(..., description="Mean over the current history window.")


class OverallOut(BaseModel):
    value: float
    pollutant: str
    policy: str
    status: StatusOut
    advisory: str


class SnapshotOut(BaseModel):
    """Current dashboard state served to the page and the CLI."""

    state: str
    is_loading: bool
    is_connected: bool
    error: Optional[str] = None
    last_updated: Optional[datetime] = None
    time_range: TimeRange
    sample_count: int = Field(..., ge=0)
    readings: List[ReadingOut] = Field(default_factory=list)
    overall: Optional[OverallOut] = None


class BucketOut(BaseModel):
    timestamp: datetime
    value: float


class SeriesOut(BaseModel):
    """Chart-ready buckets for one sensor type."""

    type: SensorType
    label: str
    unit: str
    time_range: TimeRange
    color: str
    average: float
    current: Optional[float] = None
    buckets: List[BucketOut] = Field(default_factory=list)
