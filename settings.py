from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_CHANNEL_ID_ENV = "THINGSPEAK_CHANNEL_ID"
_READ_KEY_ENV = "THINGSPEAK_READ_API_KEY"
_BASE_URL_ENV = "THINGSPEAK_BASE_URL"
_FIELD_MAPPINGS_ENV = "THINGSPEAK_FIELD_MAPPINGS"
_REFRESH_INTERVAL_ENV = "REFRESH_INTERVAL_SECONDS"
_REQUEST_TIMEOUT_ENV = "REQUEST_TIMEOUT_SECONDS"
_TIME_RANGE_ENV = "DEFAULT_TIME_RANGE"
_CONFIG_PATH_ENV = "DASHBOARD_CONFIG_PATH"
_POLICY_ENV = "OVERALL_AQI_POLICY"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_FIELD_MAPPINGS = (
    "field1:co,field2:temperature,field3:humidity,field4:aqi_co,"
    "field5:voc,field6:pm25,field7:pm10"
)


@dataclass(frozen=True)
class Settings:
    channel_id: str
    read_api_key: str
    base_url: str
    field_mappings: str
    refresh_interval: float
    request_timeout: float
    default_time_range: str
    config_path: Optional[str]
    overall_policy: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    candidate = _read_str_env(name, default).lower()
    return candidate if candidate in choices else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        channel_id=_read_str_env(_CHANNEL_ID_ENV, ""),
        read_api_key=_read_str_env(_READ_KEY_ENV, ""),
        base_url=_read_str_env(_BASE_URL_ENV, "https://api.thingspeak.com").rstrip("/"),
        field_mappings=_read_str_env(_FIELD_MAPPINGS_ENV, DEFAULT_FIELD_MAPPINGS),
        refresh_interval=_read_positive_float(_REFRESH_INTERVAL_ENV, 15.0),
        request_timeout=_read_positive_float(_REQUEST_TIMEOUT_ENV, 10.0),
        default_time_range=_read_choice(_TIME_RANGE_ENV, ("12h", "24h", "1w", "1m"), "24h"),
        config_path=_read_optional_env(_CONFIG_PATH_ENV, "./tmp/dashboard_config.json"),
        overall_policy=_read_choice(_POLICY_ENV, ("aqi", "severity"), "aqi"),
        log_level=_read_log_level("INFO"),
    )
