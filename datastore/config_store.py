from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Optional

from pydantic import ValidationError

from app.schemas import DashboardConfigPayload
from services.field_mapping import ChannelConfig, MappingError, parse_mapping_spec
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


class JsonConfigStore:
    """Load/save the dashboard configuration as a JSON document.

    Without a path the store only keeps the last saved value in memory.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self.persistence_path = persistence_path
        self._cached: Optional[ChannelConfig] = None
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Optional[ChannelConfig]:
        with self._lock:
            if self._cached is not None:
                return self._cached
            self._cached = self._load_from_disk()
            return self._cached

    def save(self, config: ChannelConfig) -> None:
        with self._lock:
            self._cached = config
            self._persist(config)

    def _persist(self, config: ChannelConfig) -> None:
        if not self.persistence_path:
            return
        payload = DashboardConfigPayload.from_domain(config).model_dump(mode="json")
        self.persistence_path.write_text(
            json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8"
        )

    def _load_from_disk(self) -> Optional[ChannelConfig]:
        if not self.persistence_path or not self.persistence_path.exists():
            return None

        try:
            raw = self.persistence_path.read_text(encoding="utf-8") or "{}"
            return DashboardConfigPayload.model_validate(json.loads(raw)).to_domain()
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable dashboard configuration",
                extra={"reason": type(exc).__name__},
            )
            return None


def config_from_settings(settings: Settings) -> ChannelConfig:
    try:
        mappings = parse_mapping_spec(settings.field_mappings)
    except MappingError as exc:
        logger.warning("Ignoring invalid field mapping setting", extra={"reason": str(exc)})
        mappings = ()
    return ChannelConfig(
        channel_id=settings.channel_id,
        read_key=settings.read_api_key,
        mappings=mappings,
        refresh_interval=settings.refresh_interval,
        time_range=settings.default_time_range,
    )


def load_channel_config(store: JsonConfigStore, settings: Settings) -> ChannelConfig:
    """Prefer the persisted configuration, falling back to the environment."""
    stored = store.load()
    if stored is not None:
        return stored
    return config_from_settings(settings)


@lru_cache
def build_default_config_store(path: Optional[str] = None) -> JsonConfigStore:
    settings = get_settings()
    store_path = settings.config_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return JsonConfigStore(persistence_path=persistence)
