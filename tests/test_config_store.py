"""Unit tests for the JSON-backed configuration provider."""

from __future__ import annotations

import json

from datastore.config_store import JsonConfigStore, config_from_settings, load_channel_config
from models.records import SensorType
from services.field_mapping import ChannelConfig, default_mapping
from settings import get_settings


def _sample_config(channel_id: str = "123456") -> ChannelConfig:
    return ChannelConfig(
        channel_id=channel_id,
        read_key="READKEY",
        mappings=(
            default_mapping("field1", SensorType.co),
            default_mapping("field6", SensorType.pm25),
        ),
        refresh_interval=30.0,
        time_range="1w",
    )


def test_save_and_load_in_memory() -> None:
    store = JsonConfigStore()
    assert store.load() is None

    store.save(_sample_config())

    assert store.load() == _sample_config()


def test_save_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "nested" / "config.json"
    JsonConfigStore(persistence_path=path).save(_sample_config())

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["channel_id"] == "123456"
    assert payload["mappings"][1] == {
        "field": "field6",
        "type": "pm25",
        "label": "PM 2.5",
        "unit": "µg/m³",
    }

    assert JsonConfigStore(persistence_path=path).load() == _sample_config()


def test_corrupt_file_loads_as_missing(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    assert JsonConfigStore(persistence_path=path).load() is None


def test_invalid_document_loads_as_missing(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"mappings": [{"field": "field9", "type": "co", "label": "x"}]}))

    assert JsonConfigStore(persistence_path=path).load() is None


def test_load_channel_config_prefers_stored_value(monkeypatch) -> None:
    monkeypatch.setenv("THINGSPEAK_CHANNEL_ID", "env-channel")
    get_settings.cache_clear()
    try:
        store = JsonConfigStore()
        assert load_channel_config(store, get_settings()).channel_id == "env-channel"

        store.save(_sample_config("stored-channel"))
        assert load_channel_config(store, get_settings()).channel_id == "stored-channel"
    finally:
        get_settings.cache_clear()


def test_invalid_mapping_setting_yields_no_mappings(monkeypatch) -> None:
    monkeypatch.setenv("THINGSPEAK_FIELD_MAPPINGS", "field1:co,field1:pm25")
    get_settings.cache_clear()
    try:
        config = config_from_settings(get_settings())
    finally:
        get_settings.cache_clear()

    assert config.mappings == ()
    assert "no field mappings configured" in config.problems()
