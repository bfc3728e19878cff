"""Tests for the whale discovery synchronizer."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from whale_copytrade.aggregator import WhaleAggregator, WhaleStatisticsStore
from whale_copytrade.config import DiscoverySettings
from whale_copytrade.discovery import (
    DEFAULT_SYNC_INTERVAL_SECONDS,
    DiscoverySyncError,
    SyncState,
    SyncStats,
    WhaleDiscoverySync,
)
from whale_copytrade.ingestor.models import TradeEvent

EventFactory = Callable[..., TradeEvent]


@pytest.fixture
def mock_source() -> MagicMock:
    source = MagicMock()
    source.fetch_events = AsyncMock(return_value=[])
    return source


class TestSyncStats:
    def test_defaults(self) -> None:
        stats = SyncStats()
        assert stats.total_syncs == 0
        assert stats.trades_recorded == 0
        assert stats.last_sync_time is None
        assert stats.last_error is None


class TestSyncOnce:
    """Tests for a single discovery pass."""

    @pytest.mark.asyncio
    async def test_ingests_and_advances_cursor(
        self,
        aggregator: WhaleAggregator,
        store: WhaleStatisticsStore,
        mock_source: MagicMock,
        base_time: datetime,
        make_event: EventFactory,
    ) -> None:
        later = base_time + timedelta(minutes=5)
        mock_source.fetch_events = AsyncMock(
            return_value=[make_event(2, timestamp=later), make_event(2), make_event("0.1")]
        )
        sync = WhaleDiscoverySync(aggregator, mock_source)

        stats = await sync.sync_once()

        mock_source.fetch_events.assert_awaited_once_with(since=None)
        assert sync.cursor == later
        assert stats.successful_syncs == 1
        assert stats.events_fetched == 3
        assert stats.trades_recorded == 2
        assert stats.events_skipped == 1
        assert stats.last_sync_time is not None
        assert sync.state == SyncState.IDLE
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_next_sync_uses_cursor(
        self, aggregator: WhaleAggregator, mock_source: MagicMock, base_time: datetime, make_event: EventFactory
    ) -> None:
        mock_source.fetch_events = AsyncMock(return_value=[make_event(2)])
        sync = WhaleDiscoverySync(aggregator, mock_source)

        await sync.sync_once()
        mock_source.fetch_events = AsyncMock(return_value=[])
        await sync.sync_once()

        mock_source.fetch_events.assert_awaited_once_with(since=base_time)
        assert sync.cursor == base_time

    @pytest.mark.asyncio
    async def test_replayed_events_are_skipped(
        self,
        aggregator: WhaleAggregator,
        store: WhaleStatisticsStore,
        whale_address: str,
        mock_source: MagicMock,
        make_event: EventFactory,
    ) -> None:
        event = make_event(2)
        mock_source.fetch_events = AsyncMock(return_value=[event])
        sync = WhaleDiscoverySync(aggregator, mock_source)

        await sync.sync_once()
        stats = await sync.sync_once()

        assert stats.trades_recorded == 1
        assert stats.events_skipped == 1
        assert store.get_whale(whale_address).total_trades == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_recorded(
        self, aggregator: WhaleAggregator, mock_source: MagicMock
    ) -> None:
        mock_source.fetch_events = AsyncMock(side_effect=RuntimeError("subgraph unavailable"))
        sync = WhaleDiscoverySync(aggregator, mock_source)

        with pytest.raises(RuntimeError):
            await sync.sync_once()

        assert sync.stats.failed_syncs == 1
        assert sync.stats.last_error == "subgraph unavailable"
        assert sync.state == SyncState.ERROR
        assert sync.cursor is None

    @pytest.mark.asyncio
    async def test_sync_complete_callback(
        self, aggregator: WhaleAggregator, mock_source: MagicMock
    ) -> None:
        on_complete = MagicMock()
        sync = WhaleDiscoverySync(aggregator, mock_source, on_sync_complete=on_complete)

        await sync.sync_once()

        on_complete.assert_called_once_with(sync.stats)


class TestQualifiedWhales:
    @pytest.mark.asyncio
    async def test_thresholds_applied(
        self, aggregator: WhaleAggregator, mock_source: MagicMock, whale_address: str, make_event: EventFactory
    ) -> None:
        events = [make_event(2) for _ in range(3)]
        mock_source.fetch_events = AsyncMock(return_value=events)
        sync = WhaleDiscoverySync(
            aggregator,
            mock_source,
            min_win_rate=0.5,
            min_trades=2,
            min_volume_usd=Decimal("5000"),
        )
        await sync.sync_once()
        assert sync.qualified_whales() == []

        for event in events[:2]:
            await aggregator.record_outcome(event.tx_hash, is_success=True)

        assert [w.address for w in sync.qualified_whales()] == [whale_address.lower()]

    def test_from_settings(self, aggregator: WhaleAggregator, mock_source: MagicMock) -> None:
        settings = DiscoverySettings(DISCOVERY_INTERVAL_SECONDS=60, DISCOVERY_MIN_TRADES=5)
        sync = WhaleDiscoverySync.from_settings(settings, aggregator, mock_source)

        assert sync._sync_interval == 60
        assert sync._min_trades == 5
        assert sync._min_win_rate == 0.55


class TestLifecycle:
    """Tests for start/stop of the background loop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, aggregator: WhaleAggregator, mock_source: MagicMock) -> None:
        states: list[SyncState] = []
        sync = WhaleDiscoverySync(aggregator, mock_source, on_state_change=states.append)

        await sync.start()
        assert sync.state == SyncState.IDLE
        assert sync.stats.successful_syncs == 1

        await sync.stop()
        assert sync.state == SyncState.STOPPED
        assert states[0] == SyncState.STARTING
        assert states[-1] == SyncState.STOPPED

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, aggregator: WhaleAggregator, mock_source: MagicMock) -> None:
        sync = WhaleDiscoverySync(aggregator, mock_source)
        await sync.start()
        await sync.start()

        assert mock_source.fetch_events.await_count == 1
        await sync.stop()

    @pytest.mark.asyncio
    async def test_initial_failure_raises(self, aggregator: WhaleAggregator, mock_source: MagicMock) -> None:
        mock_source.fetch_events = AsyncMock(side_effect=RuntimeError("down"))
        sync = WhaleDiscoverySync(aggregator, mock_source)

        with pytest.raises(DiscoverySyncError):
            await sync.start()
        assert sync.state == SyncState.ERROR

    @pytest.mark.asyncio
    async def test_loop_survives_failures(self, aggregator: WhaleAggregator, mock_source: MagicMock) -> None:
        calls = 0

        async def flaky(*, since: datetime | None) -> list[TradeEvent]:
            nonlocal calls
            calls += 1
            if calls == 2:
                raise RuntimeError("transient")
            return []

        mock_source.fetch_events = AsyncMock(side_effect=flaky)
        sync = WhaleDiscoverySync(aggregator, mock_source, interval_seconds=0)

        await sync.start()
        for _ in range(50):
            if calls >= 3:
                break
            await asyncio.sleep(0.01)
        await sync.stop()

        assert calls >= 3
        assert sync.stats.failed_syncs == 1

    @pytest.mark.asyncio
    async def test_loop_failure_logged_once(
        self, aggregator: WhaleAggregator, mock_source: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        calls = 0

        async def failing_after_start(*, since: datetime | None) -> list[TradeEvent]:
            nonlocal calls
            calls += 1
            if calls == 2:
                raise RuntimeError("transient")
            return []

        mock_source.fetch_events = AsyncMock(side_effect=failing_after_start)
        sync = WhaleDiscoverySync(aggregator, mock_source, interval_seconds=0)

        with caplog.at_level(logging.DEBUG, logger="whale_copytrade.discovery"):
            await sync.start()
            for _ in range(50):
                if calls >= 3:
                    break
                await asyncio.sleep(0.01)
            await sync.stop()

        errors = [r for r in caplog.records if r.levelno >= logging.ERROR and "transient" in r.getMessage()]
        assert len(errors) == 1

    def test_default_interval(self) -> None:
        assert DEFAULT_SYNC_INTERVAL_SECONDS == 900
