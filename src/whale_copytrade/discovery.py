"""Periodic whale discovery from an external swap event source.

This module provides a background sync service that pulls new swap events
from an injected source, feeds them through the WhaleAggregator and keeps
a cursor so each refresh only asks for events it has not seen.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol

from whale_copytrade.aggregator.aggregator import WhaleAggregator
from whale_copytrade.aggregator.models import WhaleRecord
from whale_copytrade.config import DiscoverySettings
from whale_copytrade.ingestor.models import TradeEvent

logger = logging.getLogger(__name__)


# Default configuration
DEFAULT_SYNC_INTERVAL_SECONDS = 900  # 15 minutes
DEFAULT_MIN_WIN_RATE = 0.55
DEFAULT_MIN_TRADES = 20
DEFAULT_MIN_VOLUME_USD = Decimal("10000")


class SyncState(str, Enum):
    """State of the discovery synchronizer."""

    STOPPED = "stopped"
    STARTING = "starting"
    SYNCING = "syncing"
    IDLE = "idle"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class SyncStats:
    """Statistics for the discovery sync process."""

    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    events_fetched: int = 0
    trades_recorded: int = 0
    events_skipped: int = 0
    last_sync_time: datetime | None = None
    last_sync_duration_seconds: float = 0.0
    last_error: str | None = None


class EventSource(Protocol):
    """Source of swap events, e.g. a subgraph or RPC log poller."""

    async def fetch_events(self, *, since: datetime | None) -> Sequence[TradeEvent]: ...


StateCallback = Callable[[SyncState], None]
SyncCallback = Callable[[SyncStats], None]


class DiscoverySyncError(Exception):
    """Raised when the discovery service cannot start."""


class WhaleDiscoverySync:
    """Background service that discovers whales from a swap event source.

    This service:
    - Runs one sync on startup, then every interval_seconds
    - Asks the source only for events newer than the last seen timestamp
    - Ingests each event; skips (dust, non-wallets, replays) are counted
    - Logs and records a failed fetch, retrying on the next interval

    Example:
        ```python
        aggregator = WhaleAggregator(WhaleStatisticsStore())
        sync = WhaleDiscoverySync(aggregator, source)
        await sync.start()

        for whale in sync.qualified_whales():
            print(whale.address, whale.win_rate)

        await sync.stop()
        ```
    """

    def __init__(
        self,
        aggregator: WhaleAggregator,
        source: EventSource,
        *,
        interval_seconds: int = DEFAULT_SYNC_INTERVAL_SECONDS,
        min_win_rate: float = DEFAULT_MIN_WIN_RATE,
        min_trades: int = DEFAULT_MIN_TRADES,
        min_volume_usd: Decimal = DEFAULT_MIN_VOLUME_USD,
        on_state_change: StateCallback | None = None,
        on_sync_complete: SyncCallback | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._source = source
        self._sync_interval = interval_seconds
        self._min_win_rate = min_win_rate
        self._min_trades = min_trades
        self._min_volume_usd = min_volume_usd
        self._on_state_change = on_state_change
        self._on_sync_complete = on_sync_complete

        self._state = SyncState.STOPPED
        self._stats = SyncStats()
        self._cursor: datetime | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        settings: DiscoverySettings,
        aggregator: WhaleAggregator,
        source: EventSource,
    ) -> WhaleDiscoverySync:
        return cls(
            aggregator,
            source,
            interval_seconds=settings.interval_seconds,
            min_win_rate=settings.min_win_rate,
            min_trades=settings.min_trades,
            min_volume_usd=settings.min_volume_usd,
        )

    @property
    def state(self) -> SyncState:
        """Current sync state."""
        return self._state

    @property
    def stats(self) -> SyncStats:
        """Current sync statistics."""
        return self._stats

    @property
    def cursor(self) -> datetime | None:
        """Timestamp of the newest event seen so far."""
        return self._cursor

    def _set_state(self, new_state: SyncState) -> None:
        old_state = self._state
        self._state = new_state
        if self._on_state_change and old_state != new_state:
            try:
                self._on_state_change(new_state)
            except Exception as e:
                logger.warning("State change callback failed: %s", e)

    def qualified_whales(self) -> list[WhaleRecord]:
        """Whales meeting the configured discovery thresholds."""
        return self._aggregator.store.qualified_whales(
            min_win_rate=self._min_win_rate,
            min_trades=self._min_trades,
            min_volume_usd=self._min_volume_usd,
        )

    async def start(self) -> None:
        """Run an initial sync, then start the background refresh loop.

        Raises:
            DiscoverySyncError: If the initial sync fails.
        """
        if self._state != SyncState.STOPPED:
            logger.warning("Cannot start discovery: already in state %s", self._state.value)
            return

        self._set_state(SyncState.STARTING)
        self._stop_event.clear()

        try:
            await self.sync_once()
        except Exception as e:
            raise DiscoverySyncError(f"Failed to start: initial sync failed: {e}") from e

        self._sync_task = asyncio.create_task(self._sync_loop())
        self._set_state(SyncState.IDLE)
        logger.info("Whale discovery sync started")

    async def stop(self) -> None:
        """Stop the background refresh loop."""
        if self._state == SyncState.STOPPED:
            return

        self._set_state(SyncState.STOPPING)
        self._stop_event.set()

        if self._sync_task:
            self._sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sync_task
            self._sync_task = None

        self._set_state(SyncState.STOPPED)
        logger.info("Whale discovery sync stopped")

    async def _sync_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._sync_interval)
                    break
                except TimeoutError:
                    pass

                if self._stop_event.is_set():
                    break

                await self.sync_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                # Already logged and counted by sync_once; retried on the next interval.
                logger.debug("Discovery loop continuing after error: %s", e)

    async def sync_once(self) -> SyncStats:
        """Fetch events newer than the cursor and ingest them.

        Returns:
            The updated statistics.

        Raises:
            Exception: Whatever the source or aggregator raised; the stats
                record the failure first.
        """
        self._set_state(SyncState.SYNCING)
        start_time = datetime.now(UTC)
        self._stats.total_syncs += 1

        try:
            events = await self._source.fetch_events(since=self._cursor)

            recorded = 0
            skipped = 0
            for event in sorted(events, key=lambda e: e.timestamp):
                result = await self._aggregator.ingest(event)
                if result.recorded:
                    recorded += 1
                else:
                    skipped += 1
                if self._cursor is None or event.timestamp > self._cursor:
                    self._cursor = event.timestamp
        except Exception as e:
            self._stats.failed_syncs += 1
            self._stats.last_error = str(e)
            self._set_state(SyncState.ERROR)
            logger.error("Whale discovery sync failed: %s", e)
            raise

        end_time = datetime.now(UTC)
        self._stats.successful_syncs += 1
        self._stats.events_fetched += len(events)
        self._stats.trades_recorded += recorded
        self._stats.events_skipped += skipped
        self._stats.last_sync_time = end_time
        self._stats.last_sync_duration_seconds = (end_time - start_time).total_seconds()
        self._stats.last_error = None

        self._set_state(SyncState.IDLE)
        logger.info(
            "Discovery synced %d events (%d recorded, %d skipped) in %.2fs; %d qualified whales",
            len(events),
            recorded,
            skipped,
            self._stats.last_sync_duration_seconds,
            len(self.qualified_whales()),
        )

        if self._on_sync_complete:
            try:
                self._on_sync_complete(self._stats)
            except Exception as e:
                logger.warning("Sync complete callback failed: %s", e)

        return self._stats
