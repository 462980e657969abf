"""Health classification of raw sensor measurements.

Every pollutant type is mapped onto the same five-level scale so that a level
renders with the same color wherever it appears. Thresholds are inclusive on
the safer side: a value sitting exactly on a breakpoint belongs to the lower
level.
"""

from __future__ import annotations

import math
from typing import Dict, Optional, Sequence, Tuple, Union

from models.records import AQILevel, AQIStatus, SensorType


def _status(level: AQILevel, label: str, color: str) -> AQIStatus:
    slug = level.value
    return AQIStatus(
        level=level,
        label=label,
        color=color,
        bg_class=f"bg-aqi-{slug}",
        text_class=f"text-aqi-{slug}",
        border_class=f"border-aqi-{slug}",
        card_class=f"aqi-card-{slug}",
    )


PALETTE: Dict[AQILevel, AQIStatus] = {
    AQILevel.good: _status(AQILevel.good, "Good", "hsl(142, 76%, 45%)"),
    AQILevel.moderate: _status(AQILevel.moderate, "Moderate", "hsl(45, 93%, 50%)"),
    AQILevel.unhealthy_sensitive: _status(
        AQILevel.unhealthy_sensitive, "Unhealthy for Sensitive", "hsl(25, 95%, 53%)"
    ),
    AQILevel.unhealthy: _status(AQILevel.unhealthy, "Unhealthy", "hsl(0, 84%, 55%)"),
    AQILevel.hazardous: _status(AQILevel.hazardous, "Hazardous", "hsl(280, 60%, 35%)"),
}

# (upper bound inclusive, level); values above the last bound fall into ``ceiling``.
Thresholds = Sequence[Tuple[float, AQILevel]]

CO_THRESHOLDS: Thresholds = (
    (4.4, AQILevel.good),
    (9.4, AQILevel.moderate),
)
PM_THRESHOLDS: Thresholds = (
    (12.0, AQILevel.good),
    (35.0, AQILevel.moderate),
    (55.0, AQILevel.unhealthy_sensitive),
    (150.0, AQILevel.unhealthy),
)
INDEX_THRESHOLDS: Thresholds = (
    (50.0, AQILevel.good),
    (100.0, AQILevel.moderate),
    (150.0, AQILevel.unhealthy_sensitive),
    (200.0, AQILevel.unhealthy),
)

_SCALES: Dict[SensorType, Tuple[Thresholds, AQILevel]] = {
    SensorType.co: (CO_THRESHOLDS, AQILevel.unhealthy),
    SensorType.pm25: (PM_THRESHOLDS, AQILevel.hazardous),
    SensorType.pm10: (PM_THRESHOLDS, AQILevel.hazardous),
    SensorType.iaq: (INDEX_THRESHOLDS, AQILevel.hazardous),
    SensorType.voc: (INDEX_THRESHOLDS, AQILevel.hazardous),
    SensorType.aqi_co: (INDEX_THRESHOLDS, AQILevel.hazardous),
}

# Unclassified types (temperature, humidity, custom) render as a neutral status.
NEUTRAL_REFERENCE_VALUE = 50.0

_SEVERITY = (
    AQILevel.good,
    AQILevel.moderate,
    AQILevel.unhealthy_sensitive,
    AQILevel.unhealthy,
    AQILevel.hazardous,
)

_ADVISORIES: Dict[AQILevel, str] = {
    AQILevel.good: "Air quality is satisfactory. Enjoy outdoor activities freely.",
    AQILevel.moderate: (
        "Air quality is acceptable. Unusually sensitive people should consider "
        "reducing prolonged outdoor exertion."
    ),
    AQILevel.unhealthy_sensitive: (
        "Members of sensitive groups may experience health effects. The general "
        "public is less likely to be affected."
    ),
    AQILevel.unhealthy: (
        "Air quality is unhealthy. Everyone may begin to experience health effects. "
        "Avoid prolonged outdoor exposure."
    ),
    AQILevel.hazardous: (
        "Health alert: everyone may experience more serious health effects. "
        "Stay indoors and keep windows closed."
    ),
}
NO_DATA_ADVISORY = "No data available."

# EPA breakpoints: (C_low, C_high, I_low, I_high)
PM25_BREAKPOINTS = (
    (0.0, 12.0, 0, 50),
    (12.1, 35.4, 51, 100),
    (35.5, 55.4, 101, 150),
    (55.5, 150.4, 151, 200),
    (150.5, 250.4, 201, 300),
)
PM10_BREAKPOINTS = (
    (0.0, 54.0, 0, 50),
    (55.0, 154.0, 51, 100),
    (155.0, 254.0, 101, 150),
    (255.0, 354.0, 151, 200),
    (355.0, 424.0, 201, 300),
)
AQI_CEILING = 300

_BREAKPOINTS = {
    SensorType.pm25: PM25_BREAKPOINTS,
    SensorType.pm10: PM10_BREAKPOINTS,
}


def sanitize(value: float) -> float:
    """Clamp negative and NaN measurements to 0."""
    if value is None or math.isnan(value) or value < 0:
        return 0.0
    return float(value)


def _level_for(value: float, thresholds: Thresholds, ceiling: AQILevel) -> AQILevel:
    for upper, level in thresholds:
        if value <= upper:
            return level
    return ceiling


def classify(sensor_type: Union[SensorType, str], value: float) -> AQIStatus:
    """Map a raw measurement of ``sensor_type`` to its health status."""
    try:
        kind = SensorType(sensor_type)
    except ValueError:
        kind = SensorType.custom

    scale = _SCALES.get(kind)
    if scale is None:
        thresholds, ceiling = INDEX_THRESHOLDS, AQILevel.hazardous
        measured = NEUTRAL_REFERENCE_VALUE
    else:
        thresholds, ceiling = scale
        measured = sanitize(value)
    return PALETTE[_level_for(measured, thresholds, ceiling)]


def classify_index(value: float) -> AQIStatus:
    """Classify a value already expressed on the 0-500 index scale."""
    return PALETTE[_level_for(sanitize(value), INDEX_THRESHOLDS, AQILevel.hazardous)]


def is_classified(sensor_type: SensorType) -> bool:
    return sensor_type in _SCALES


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def epa_aqi(sensor_type: Union[SensorType, str], concentration: float) -> int:
    """Convert a PM2.5 or PM10 concentration (µg/m³) to the EPA 0-500 index.

    Concentrations between two published bands are interpolated on the upper
    band; anything past the last band is reported at the ceiling.
    """
    breakpoints = _BREAKPOINTS.get(SensorType(sensor_type))
    if breakpoints is None:
        raise ValueError(f"No EPA breakpoints for sensor type {sensor_type!r}.")

    c = sanitize(concentration)
    for c_low, c_high, i_low, i_high in breakpoints:
        if c <= c_high:
            aqi = (i_high - i_low) / (c_high - c_low) * (c - c_low) + i_low
            return _round_half_up(aqi)
    return AQI_CEILING


def pm25_aqi(concentration: float) -> int:
    return epa_aqi(SensorType.pm25, concentration)


def pm10_aqi(concentration: float) -> int:
    return epa_aqi(SensorType.pm10, concentration)


def severity_rank(level: AQILevel) -> int:
    return _SEVERITY.index(AQILevel(level))


def health_advisory(status: Optional[Union[AQIStatus, AQILevel, str]]) -> str:
    if status is None:
        return NO_DATA_ADVISORY
    level = status.level if isinstance(status, AQIStatus) else status
    try:
        return _ADVISORIES[AQILevel(level)]
    except ValueError:
        return NO_DATA_ADVISORY
