"""Refresh lifecycle for a ThingSpeak channel."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple, Union

from clients.thingspeak import ThingSpeakClient, ThingSpeakError
from datastore.config_store import build_default_config_store, load_channel_config
from models.records import HistoricalSample, SensorReading, SensorType
from services.bucketing import results_for
from services.field_mapping import ChannelConfig, decode_feed, parse_timestamp, project_reading
from settings import get_settings

logger = logging.getLogger(__name__)


class PollerState(str, Enum):
    idle = "idle"
    fetching = "fetching"
    ready = "ready"
    errored = "errored"


@dataclass(frozen=True)
class PollerSnapshot:
    """Everything consumers read; replaced as a whole, never mutated."""

    state: PollerState = PollerState.idle
    readings: Tuple[SensorReading, ...] = ()
    history: Tuple[HistoricalSample, ...] = ()
    is_loading: bool = False
    error: Optional[str] = None
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class _CycleOutcome:
    readings: Tuple[SensorReading, ...] = ()
    history: Tuple[HistoricalSample, ...] = ()
    last_updated: Optional[datetime] = None
    error: Optional[str] = None


class FeedSource(Protocol):
    async def fetch_latest(self, channel_id: str, read_key: str) -> Optional[Dict[str, Any]]: ...

    async def fetch_feed(self, channel_id: str, read_key: str, results: int) -> List[Dict[str, Any]]: ...


class Poller:
    """Fetches latest + historical readings on a fixed cadence.

    Cycles are started on a wall-clock schedule, so a slow cycle can still be
    in flight when the next one starts. Each cycle is numbered and a response
    is only applied when it is newer than the last one applied. ``stop`` and
    ``reconfigure`` invalidate everything still in flight.
    """

    def __init__(self, client: FeedSource, config: ChannelConfig) -> None:
        self._client = client
        self._config = config
        self._snapshot = PollerSnapshot()
        self._settled = PollerState.idle
        self._timer: Optional[asyncio.Task[None]] = None
        self._cycles: Set[asyncio.Task[PollerSnapshot]] = set()
        self._pending: Set[int] = set()
        self._generation = 0
        self._issued = 0
        self._applied = 0

    @property
    def config(self) -> ChannelConfig:
        return self._config

    @property
    def snapshot(self) -> PollerSnapshot:
        return self._snapshot

    @property
    def readings(self) -> Tuple[SensorReading, ...]:
        return self._snapshot.readings

    @property
    def history(self) -> Tuple[HistoricalSample, ...]:
        return self._snapshot.history

    @property
    def is_loading(self) -> bool:
        return self._snapshot.is_loading

    @property
    def error(self) -> Optional[str]:
        return self._snapshot.error

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._snapshot.last_updated

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def get_reading(self, sensor_type: Union[SensorType, str]) -> Optional[SensorReading]:
        kind = SensorType(sensor_type)
        for reading in self._snapshot.readings:
            if reading.type is kind:
                return reading
        return None

    def start(self) -> None:
        """Begin polling; an invalid configuration leaves the poller idle."""
        if self.is_running:
            return
        problems = self._config.problems()
        if problems:
            self._snapshot = PollerSnapshot(
                error=f"ThingSpeak channel is not configured: {', '.join(problems)}"
            )
            logger.info("Poller left idle", extra={"reason": "; ".join(problems)})
            return
        logger.info(
            "Poller started",
            extra={"channel_id": self._config.channel_id, "results": results_for(self._config.time_range)},
        )
        self._timer = asyncio.create_task(self._run(self._generation))

    async def stop(self) -> None:
        """Cancel the refresh timer; late responses are discarded."""
        self._generation += 1
        if self._pending:
            self._pending = set()
            self._publish()
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await timer
        logger.info("Poller stopped", extra={"channel_id": self._config.channel_id})

    async def reconfigure(self, config: ChannelConfig) -> None:
        """Restart the whole lifecycle from idle with a new configuration."""
        await self.stop()
        self._config = config
        self._pending = set()
        self._settled = PollerState.idle
        self._snapshot = PollerSnapshot()
        self.start()

    async def shutdown(self) -> None:
        await self.stop()
        close = getattr(self._client, "aclose", None)
        if close is not None:
            await close()

    async def refetch(self) -> PollerSnapshot:
        """Run one cycle right away, the same way the timer does."""
        if not self._config.is_valid:
            return self._snapshot
        await self._cycle()
        return self._snapshot

    async def _run(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while generation == self._generation:
            task = asyncio.create_task(self._cycle())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)
            next_tick += self._config.refresh_interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def _cycle(self) -> PollerSnapshot:
        config = self._config
        generation = self._generation
        self._issued += 1
        seq = self._issued
        self._pending.add(seq)
        self._publish()

        results = results_for(config.time_range)
        logger.debug(
            "Fetch cycle started",
            extra={"channel_id": config.channel_id, "cycle": seq, "results": results},
        )
        try:
            latest, feed = await asyncio.gather(
                self._client.fetch_latest(config.channel_id, config.read_key),
                self._client.fetch_feed(config.channel_id, config.read_key, results),
            )
            outcome = self._decode(config, latest, feed)
        except ThingSpeakError as exc:
            outcome = _CycleOutcome(error=str(exc))
        except Exception as exc:  # noqa: BLE001 - catch-all settles the cycle
            logger.exception("Fetch cycle crashed", extra={"cycle": seq})
            outcome = _CycleOutcome(error=f"Unreadable ThingSpeak data: {exc}")
        finally:
            self._pending.discard(seq)
        return self._apply(seq, generation, outcome)

    @staticmethod
    def _decode(
        config: ChannelConfig,
        latest: Optional[Dict[str, Any]],
        feed: List[Dict[str, Any]],
    ) -> _CycleOutcome:
        history = decode_feed(feed, config.mappings)
        record = latest if latest is not None else (feed[-1] if feed else None)
        if record is None:
            return _CycleOutcome(history=history)

        try:
            last_updated: Optional[datetime] = parse_timestamp(record.get("created_at", ""))
        except ValueError:
            last_updated = None
        return _CycleOutcome(
            readings=tuple(project_reading(record, config.mappings)),
            history=history,
            last_updated=last_updated,
        )

    def _apply(self, seq: int, generation: int, outcome: _CycleOutcome) -> PollerSnapshot:
        if generation != self._generation:
            logger.debug("Discarding response from a stopped lifecycle", extra={"cycle": seq})
            return self._snapshot
        if seq <= self._applied:
            logger.info("Discarding stale response", extra={"cycle": seq})
            self._publish()
            return self._snapshot

        self._applied = seq
        if outcome.error is not None:
            self._settled = PollerState.errored
            self._publish(error=outcome.error)
            logger.warning(
                "Fetch cycle failed",
                extra={"channel_id": self._config.channel_id, "cycle": seq, "reason": outcome.error},
            )
        else:
            self._settled = PollerState.ready
            self._publish(
                readings=outcome.readings,
                history=outcome.history,
                last_updated=outcome.last_updated,
                error=None,
            )
            logger.info(
                "Fetch cycle completed",
                extra={
                    "channel_id": self._config.channel_id,
                    "cycle": seq,
                    "sample_count": len(outcome.history),
                },
            )
        return self._snapshot

    def _publish(self, **changes: Any) -> None:
        state = PollerState.fetching if self._pending else self._settled
        self._snapshot = replace(
            self._snapshot, state=state, is_loading=bool(self._pending), **changes
        )


@lru_cache
def build_default_poller() -> Poller:
    """Factory that wires the poller with the persisted or env configuration."""
    settings = get_settings()
    config = load_channel_config(build_default_config_store(), settings)
    client = ThingSpeakClient(base_url=settings.base_url, timeout=settings.request_timeout)
    return Poller(client=client, config=config)
