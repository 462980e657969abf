"""HTTP route definitions for the service."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    BucketOut,
    DashboardConfigPayload,
    MappingCreate,
    MappingUpdate,
    OverallOut,
    ReadingOut,
    SeriesOut,
    SnapshotOut,
    StatusOut,
    TimeRangeUpdate,
)
from datastore.config_store import JsonConfigStore, build_default_config_store
from models.records import FieldMapping, SensorType
from services.aggregator import Aggregator
from services.bucketing import TimeRange, bucket, series_for
from services.classification import classify
from services.field_mapping import ChannelConfig, FieldMappingTable, MappingError
from services.poller import Poller, PollerState, build_default_poller
from settings import get_settings

router = APIRouter()


def get_poller() -> Poller:
    return build_default_poller()


def get_config_store() -> JsonConfigStore:
    return build_default_config_store()


def get_aggregator() -> Aggregator:
    return Aggregator()


def build_snapshot(poller: Poller, aggregator: Aggregator) -> SnapshotOut:
    """Project the poller snapshot into the payload shared by the API and the page."""
    snapshot = poller.snapshot
    summary = aggregator.summarize(
        snapshot.readings, snapshot.history, policy=get_settings().overall_policy
    )
    readings = [
        ReadingOut(
            type=reading.type,
            label=reading.label,
            value=reading.value,
            unit=reading.unit,
            field=reading.field,
            status=StatusOut.from_domain(classify(reading.type, reading.value)),
            average=summary.averages.get(reading.type, 0.0),
        )
        for reading in snapshot.readings
    ]
    overall: Optional[OverallOut] = None
    if snapshot.readings:
        overall = OverallOut(
            value=summary.overall.value,
            pollutant=summary.overall.pollutant,
            policy=summary.overall.policy,
            status=StatusOut.from_domain(summary.overall.status),
            advisory=summary.advisory,
        )
    connected = (
        snapshot.error is None
        and not snapshot.is_loading
        and snapshot.state is not PollerState.idle
    )
    return SnapshotOut(
        state=snapshot.state.value,
        is_loading=snapshot.is_loading,
        is_connected=connected,
        error=snapshot.error,
        last_updated=snapshot.last_updated,
        time_range=TimeRange(poller.config.time_range),
        sample_count=len(snapshot.history),
        readings=readings,
        overall=overall,
    )


def build_series(
    poller: Poller,
    aggregator: Aggregator,
    sensor_type: SensorType,
    time_range: TimeRange,
    now: Optional[datetime] = None,
) -> SeriesOut:
    mapping = next((m for m in poller.config.mappings if m.type is sensor_type), None)
    if mapping is None:
        raise KeyError(f"No field is mapped to sensor type {sensor_type.value!r}.")

    history = poller.history
    reading = poller.get_reading(sensor_type)
    current = reading.value if reading is not None else None
    buckets = bucket(
        series_for(history, sensor_type), time_range, now or datetime.now(timezone.utc)
    )
    return SeriesOut(
        type=sensor_type,
        label=mapping.label,
        unit=mapping.unit,
        time_range=time_range,
        color=classify(sensor_type, current or 0.0).color,
        average=aggregator.average_of(history, sensor_type),
        current=current,
        buckets=[BucketOut(timestamp=item.slot_start, value=item.value) for item in buckets],
    )


async def _apply_config(poller: Poller, store: JsonConfigStore, config: ChannelConfig) -> None:
    problems = config.problems()
    if problems:
        raise ValueError("Invalid configuration: " + "; ".join(problems))
    store.save(config)
    await poller.reconfigure(config)


@router.get(
    "/readings",
    response_model=SnapshotOut,
    summary="Latest classified readings and connection state.",
)
async def get_readings(
    poller: Poller = Depends(get_poller),
    aggregator: Aggregator = Depends(get_aggregator),
) -> SnapshotOut:
    return build_snapshot(poller, aggregator)


@router.get(
    "/readings/{sensor_type}",
    response_model=ReadingOut,
    summary="Latest reading for a single sensor type.",
)
async def get_reading(
    sensor_type: SensorType,
    poller: Poller = Depends(get_poller),
    aggregator: Aggregator = Depends(get_aggregator),
) -> ReadingOut:
    for reading in build_snapshot(poller, aggregator).readings:
        if reading.type is sensor_type:
            return reading
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No reading available for sensor type {sensor_type.value!r}.",
    )


@router.post(
    "/refresh",
    response_model=SnapshotOut,
    summary="Fetch from ThingSpeak immediately.",
)
async def refresh(
    poller: Poller = Depends(get_poller),
    aggregator: Aggregator = Depends(get_aggregator),
) -> SnapshotOut:
    await poller.refetch()
    return build_snapshot(poller, aggregator)


@router.get(
    "/series/{sensor_type}",
    response_model=SeriesOut,
    summary="Time-bucketed history for charting.",
)
async def get_series(
    sensor_type: SensorType,
    time_range: Optional[TimeRange] = Query(None, alias="range"),
    poller: Poller = Depends(get_poller),
    aggregator: Aggregator = Depends(get_aggregator),
) -> SeriesOut:
    selected = time_range or TimeRange(poller.config.time_range)
    try:
        return build_series(poller, aggregator, sensor_type, selected)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc


@router.get(
    "/config",
    response_model=DashboardConfigPayload,
    summary="Current channel configuration.",
)
async def get_config(poller: Poller = Depends(get_poller)) -> DashboardConfigPayload:
    return DashboardConfigPayload.from_domain(poller.config)


@router.put(
    "/config",
    response_model=DashboardConfigPayload,
    summary="Replace the channel configuration and restart polling.",
)
async def put_config(
    payload: DashboardConfigPayload,
    poller: Poller = Depends(get_poller),
    store: JsonConfigStore = Depends(get_config_store),
) -> DashboardConfigPayload:
    try:
        await _apply_config(poller, store, payload.to_domain())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return DashboardConfigPayload.from_domain(poller.config)


@router.put(
    "/config/range",
    response_model=DashboardConfigPayload,
    summary="Select the time range that sizes history fetches.",
)
async def put_time_range(
    payload: TimeRangeUpdate,
    poller: Poller = Depends(get_poller),
    store: JsonConfigStore = Depends(get_config_store),
) -> DashboardConfigPayload:
    config = replace(poller.config, time_range=payload.time_range.value)
    store.save(config)
    await poller.reconfigure(config)
    return DashboardConfigPayload.from_domain(poller.config)


async def _edit_mappings(
    poller: Poller,
    store: JsonConfigStore,
    edit: Callable[[FieldMappingTable], FieldMapping],
) -> DashboardConfigPayload:
    try:
        table = FieldMappingTable(poller.config.mappings)
        edit(table)
    except MappingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0]) from exc
    config = replace(poller.config, mappings=table.snapshot())
    store.save(config)
    await poller.reconfigure(config)
    return DashboardConfigPayload.from_domain(poller.config)


@router.post(
    "/config/mappings",
    response_model=DashboardConfigPayload,
    status_code=status.HTTP_201_CREATED,
    summary="Map the first unused channel field to a sensor type.",
)
async def add_mapping(
    payload: MappingCreate,
    poller: Poller = Depends(get_poller),
    store: JsonConfigStore = Depends(get_config_store),
) -> DashboardConfigPayload:
    return await _edit_mappings(poller, store, lambda table: table.add(payload.type))


@router.patch(
    "/config/mappings/{field_id}",
    response_model=DashboardConfigPayload,
    summary="Edit one field mapping.",
)
async def update_mapping(
    field_id: str,
    payload: MappingUpdate,
    poller: Poller = Depends(get_poller),
    store: JsonConfigStore = Depends(get_config_store),
) -> DashboardConfigPayload:
    return await _edit_mappings(
        poller,
        store,
        lambda table: table.update(
            field_id,
            sensor_type=payload.type,
            label=payload.label,
            unit=payload.unit,
            new_field=payload.field,
        ),
    )


@router.delete(
    "/config/mappings/{field_id}",
    response_model=DashboardConfigPayload,
    summary="Remove one field mapping.",
)
async def remove_mapping(
    field_id: str,
    poller: Poller = Depends(get_poller),
    store: JsonConfigStore = Depends(get_config_store),
) -> DashboardConfigPayload:
    return await _edit_mappings(poller, store, lambda table: table.remove(field_id))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /ui for the dashboard and /readings for data."}
