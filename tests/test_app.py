import json
from typing import Iterator, List

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from clients.thingspeak import ThingSpeakClient
from datastore.config_store import JsonConfigStore, build_default_config_store
from models.records import SensorType
from services.bucketing import RANGE_POLICIES, TimeRange
from services.field_mapping import ChannelConfig, default_mapping
from services.poller import Poller, build_default_poller
from settings import get_settings

CONFIG = ChannelConfig(
    channel_id="42",
    read_key="KEY",
    mappings=(
        default_mapping("field1", SensorType.co),
        default_mapping("field6", SensorType.pm25),
    ),
    refresh_interval=3600.0,
)

LATEST = {"created_at": "2024-01-01T00:10:00Z", "entry_id": 3, "field1": "3.2", "field6": "40"}
FEED = [
    {"created_at": "2024-01-01T00:00:00Z", "entry_id": 1, "field1": "1.0", "field6": "10"},
    {"created_at": "2024-01-01T00:05:00Z", "entry_id": 2, "field1": "5.0", "field6": "20"},
]


def _thingspeak(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/feeds/last.json"):
        return httpx.Response(200, json=LATEST)
    return httpx.Response(200, json={"channel": {"id": 42}, "feeds": FEED})


@pytest.fixture
def store(tmp_path) -> JsonConfigStore:
    return JsonConfigStore(persistence_path=tmp_path / "config.json")


@pytest.fixture
def api_client(store: JsonConfigStore, monkeypatch) -> Iterator[TestClient]:
    pollers: List[Poller] = []

    def build_test_poller() -> Poller:
        if not pollers:
            client = ThingSpeakClient(
                base_url="https://ts.test", transport=httpx.MockTransport(_thingspeak)
            )
            pollers.append(Poller(client=client, config=CONFIG))
        return pollers[0]

    def cache_clear() -> None:
        pollers.clear()

    build_test_poller.cache_clear = cache_clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_poller", build_test_poller)
    monkeypatch.setattr("app.api.build_default_poller", build_test_poller)
    monkeypatch.setattr("services.poller.build_default_poller", build_test_poller)
    monkeypatch.setattr("app.api.build_default_config_store", lambda: store)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_unconfigured_service_stays_idle(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("THINGSPEAK_CHANNEL_ID", "")
    monkeypatch.setenv("THINGSPEAK_READ_API_KEY", "")
    monkeypatch.setenv("DASHBOARD_CONFIG_PATH", str(tmp_path / "config.json"))
    caches = (get_settings, build_default_config_store, build_default_poller)
    for cache in caches:
        cache.cache_clear()

    try:
        with TestClient(create_app()) as client:
            poller_during = build_default_poller()
            body = client.get("/readings").json()

        assert body["state"] == "idle"
        assert body["is_connected"] is False
        assert "not configured" in body["error"]
        assert body["readings"] == []
        assert body["overall"] is None
        assert build_default_poller() is not poller_during
    finally:
        for cache in caches:
            cache.cache_clear()


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").json()["status"] == "ok"


def test_refresh_returns_classified_readings(api_client: TestClient) -> None:
    response = api_client.post("/refresh")

    assert response.status_code == 200
    body = response.json()
    assert body["error"] is None
    assert body["time_range"] == "24h"
    assert body["sample_count"] == 2
    assert body["last_updated"].startswith("2024-01-01T00:10:00")

    readings = {reading["type"]: reading for reading in body["readings"]}
    assert readings["co"]["value"] == 3.2
    assert readings["co"]["status"]["level"] == "good"
    assert readings["co"]["average"] == pytest.approx(3.0)
    assert readings["pm25"]["status"]["level"] == "unhealthy-sensitive"

    overall = body["overall"]
    assert overall["pollutant"] == "PM 2.5"
    assert overall["policy"] == "aqi"
    assert overall["value"] == 112
    assert overall["status"]["level"] == "unhealthy-sensitive"


def test_single_reading_and_missing_type(api_client: TestClient) -> None:
    api_client.post("/refresh")

    response = api_client.get("/readings/co")
    assert response.status_code == 200
    assert response.json()["field"] == "field1"

    missing = api_client.get("/readings/voc")
    assert missing.status_code == 404
    assert "voc" in missing.json()["detail"]


def test_series_uses_requested_range(api_client: TestClient) -> None:
    api_client.post("/refresh")

    response = api_client.get("/series/co", params={"range": "1w"})

    assert response.status_code == 200
    body = response.json()
    assert body["time_range"] == "1w"
    assert body["current"] == 3.2
    assert body["average"] == pytest.approx(3.0)
    assert len(body["buckets"]) == RANGE_POLICIES[TimeRange.week].slot_count


def test_series_rejects_unmapped_type_and_unknown_range(api_client: TestClient) -> None:
    assert api_client.get("/series/pm10").status_code == 404
    assert api_client.get("/series/co", params={"range": "2y"}).status_code == 422


def test_put_config_rejects_incomplete_configuration(api_client: TestClient, store) -> None:
    response = api_client.put(
        "/config",
        json={"channel_id": "", "read_key": "KEY", "mappings": []},
    )

    assert response.status_code == 400
    assert "missing channel id" in response.json()["detail"]
    assert store.load() is None


def test_put_config_persists_and_reconfigures(api_client: TestClient, store) -> None:
    payload = {
        "channel_id": " 777 ",
        "read_key": "OTHER",
        "mappings": [{"field": "field1", "type": "voc", "label": "VOC", "unit": "ppb"}],
        "refresh_interval": 120,
        "time_range": "12h",
    }

    response = api_client.put("/config", json=payload)

    assert response.status_code == 200
    assert response.json()["channel_id"] == "777"
    assert api_client.get("/config").json()["mappings"][0]["type"] == "voc"

    saved = json.loads(store.persistence_path.read_text(encoding="utf-8"))
    assert saved["channel_id"] == "777"
    assert saved["time_range"] == "12h"


def test_put_config_validates_field_ids(api_client: TestClient) -> None:
    payload = {
        "channel_id": "1",
        "read_key": "K",
        "mappings": [{"field": "field9", "type": "co", "label": "CO"}],
    }

    assert api_client.put("/config", json=payload).status_code == 422


def test_put_time_range(api_client: TestClient, store) -> None:
    response = api_client.put("/config/range", json={"time_range": "1m"})

    assert response.status_code == 200
    assert response.json()["time_range"] == "1m"
    assert store.load().time_range == "1m"
    assert api_client.get("/readings").json()["time_range"] == "1m"


def test_dashboard_page_renders(api_client: TestClient) -> None:
    api_client.post("/refresh")

    response = api_client.get("/ui", params={"range": "12h"})

    assert response.status_code == 200
    assert "Air Monitor" in response.text
    assert "PM 2.5" in response.text
    assert "Trends" in response.text


def test_dashboard_refresh_redirects(api_client: TestClient) -> None:
    response = api_client.post("/ui/refresh", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"].endswith("/ui")


def test_add_mapping_uses_first_free_field(api_client: TestClient, store) -> None:
    response = api_client.post("/config/mappings", json={"type": "pm10"})

    assert response.status_code == 201
    added = response.json()["mappings"][-1]
    assert added == {"field": "field2", "type": "pm10", "label": "PM 10", "unit": "µg/m³"}
    assert [mapping.field for mapping in store.load().mappings] == ["field1", "field6", "field2"]


def test_changing_mapping_type_rederives_label_and_unit(api_client: TestClient) -> None:
    response = api_client.patch(
        "/config/mappings/field1",
        json={"type": "voc", "label": "ignored", "unit": "ignored"},
    )

    assert response.status_code == 200
    edited = response.json()["mappings"][0]
    assert edited == {"field": "field1", "type": "voc", "label": "IAQ VOC", "unit": "IAQ"}
    assert api_client.get("/config").json()["mappings"][0]["label"] == "IAQ VOC"


def test_mapping_edit_errors(api_client: TestClient, store) -> None:
    moved = api_client.patch("/config/mappings/field1", json={"field": "field6"})
    missing = api_client.delete("/config/mappings/field8")

    assert moved.status_code == 400
    assert "already mapped" in moved.json()["detail"]
    assert missing.status_code == 404
    assert store.load() is None


def test_remove_mapping(api_client: TestClient) -> None:
    response = api_client.delete("/config/mappings/field6")

    assert response.status_code == 200
    assert [mapping["field"] for mapping in response.json()["mappings"]] == ["field1"]
    assert api_client.get("/series/pm25").status_code == 404


def test_stylesheet_is_served(api_client: TestClient) -> None:
    response = api_client.get("/static/dashboard.css")

    assert response.status_code == 200
    assert "text/css" in response.headers["content-type"]
