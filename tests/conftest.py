"""Pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from whale_copytrade.aggregator import WhaleAggregator, WhaleStatisticsStore
from whale_copytrade.ingestor.models import TradeEvent

WEI = 10**18


@pytest.fixture
def whale_address() -> str:
    """Sample whale address for testing."""
    return "0xAbCdEf1234567890abcdef1234567890ABCDEF12"


@pytest.fixture
def base_time() -> datetime:
    """Fixed reference time (2026-03-10 12:00 UTC)."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_event(whale_address: str, base_time: datetime) -> Callable[..., TradeEvent]:
    """Factory for swap events; amounts are given in whole native units."""
    counter = iter(range(1, 1_000_000))

    def _make(
        units: str | int = 2,
        *,
        sender: str | None = None,
        timestamp: datetime | None = None,
        tx_hash: str | None = None,
    ) -> TradeEvent:
        return TradeEvent(
            sender=sender or whale_address,
            amount_in=int(Decimal(str(units)) * WEI),
            amount_out=0,
            timestamp=timestamp or base_time,
            tx_hash=tx_hash or f"0x{next(counter):064x}",
        )

    return _make


@pytest.fixture
def store() -> WhaleStatisticsStore:
    return WhaleStatisticsStore()


@pytest.fixture
def aggregator(store: WhaleStatisticsStore) -> WhaleAggregator:
    """Aggregator pricing one native unit at $1000 to keep USD values round."""
    return WhaleAggregator(store, reference_price_usd=Decimal("1000"))
