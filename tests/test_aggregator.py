"""Unit tests for the derived-metrics layer."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models.records import AQILevel, HistoricalSample, SensorReading, SensorType
from services.aggregator import AQI_POLICY, SEVERITY_POLICY, Aggregator
from services.field_mapping import TYPE_DEFAULTS


def _reading(sensor_type: SensorType, value: float, field: str = "field1") -> SensorReading:
    """Helper to build deterministic sensor readings."""

    label, unit = TYPE_DEFAULTS[sensor_type]
    return SensorReading(type=sensor_type, label=label, value=value, unit=unit, field=field)


def _sample(**values: float) -> HistoricalSample:
    return HistoricalSample(
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        values={SensorType(key): value for key, value in values.items()},
    )


def test_average_of_empty_history_is_zero() -> None:
    assert Aggregator().average_of([], SensorType.co) == 0.0


def test_average_of_uses_every_sample() -> None:
    history = [_sample(co=1.0), _sample(co=5.0), _sample(co=9.5)]

    assert Aggregator().average_of(history, SensorType.co) == pytest.approx(5.1666666)
    assert Aggregator().average_of(history, SensorType.pm25) == 0.0


def test_overall_by_aqi_picks_highest_scaled_value() -> None:
    readings = [
        _reading(SensorType.aqi_co, 40),
        _reading(SensorType.voc, 80),
        _reading(SensorType.pm25, 35.4),  # AQI 100
        _reading(SensorType.pm10, 20),
    ]

    overall = Aggregator().overall_by_aqi(readings)

    assert overall.value == 100
    assert overall.pollutant == "PM 2.5"
    assert overall.status.level is AQILevel.moderate


def test_overall_by_aqi_ties_follow_priority_order() -> None:
    readings = [
        _reading(SensorType.pm10, 54),  # AQI 50
        _reading(SensorType.voc, 50),
        _reading(SensorType.pm25, 12.0),  # AQI 50
    ]

    assert Aggregator().overall_by_aqi(readings).pollutant == "VOCs"


def test_overall_by_aqi_without_pollutants() -> None:
    overall = Aggregator().overall_by_aqi([_reading(SensorType.temperature, 40)])

    assert overall.value == 0
    assert overall.pollutant == "Air Quality"
    assert overall.status.level is AQILevel.good


def test_overall_by_severity_picks_most_severe_level() -> None:
    readings = [
        _reading(SensorType.voc, 120),  # unhealthy-sensitive
        _reading(SensorType.co, 12),  # unhealthy
        _reading(SensorType.pm25, 40),  # unhealthy-sensitive
        _reading(SensorType.temperature, 400),
    ]

    overall = Aggregator().overall_by_severity(readings)

    assert overall.pollutant == "CO Level"
    assert overall.status.level is AQILevel.unhealthy
    assert overall.value == 12


def test_policies_can_disagree() -> None:
    # Both classify as unhealthy; VOC 190 outranks PM2.5 AQI 151 numerically.
    readings = [_reading(SensorType.pm25, 56), _reading(SensorType.voc, 190)]
    aggregator = Aggregator()

    assert aggregator.overall_by_aqi(readings).pollutant == "VOCs"
    assert aggregator.overall_by_severity(readings).pollutant == "PM 2.5"


def test_summarize_includes_advisory_and_averages() -> None:
    readings = [_reading(SensorType.co, 3.2)]
    history = [_sample(co=1.0), _sample(co=5.0)]

    summary = Aggregator().summarize(readings, history, policy=SEVERITY_POLICY)

    assert summary.overall.status.level is AQILevel.good
    assert summary.advisory.startswith("Air quality is satisfactory")
    assert summary.averages == {SensorType.co: 3.0}


def test_summarize_without_readings_reports_no_data() -> None:
    summary = Aggregator().summarize([], [], policy=AQI_POLICY)

    assert summary.advisory == "No data available."


def test_summarize_rejects_unknown_policy() -> None:
    with pytest.raises(ValueError):
        Aggregator().summarize([], [], policy="median")
