"""Shared fixtures for recommender tests."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from whale_copytrade.recommender.models import (
    MarketConditions,
    RiskLevel,
    TokenQuote,
    TradeDetails,
    UserContext,
    WhaleStats,
)


@pytest.fixture
def whale_stats() -> WhaleStats:
    """A strong whale with improving recent performance."""
    return WhaleStats(
        address="0xabcdef1234567890abcdef1234567890abcdef12",
        win_rate_30d=0.65,
        win_rate_7d=0.70,
        total_trades=40,
        successful_trades=26,
        avg_trade_size=Decimal("5000"),
        total_volume_usd=Decimal("200000"),
        sharpe_ratio=1.4,
        max_drawdown=0.1,
        risk_score=96.0,
    )


@pytest.fixture
def trade_details() -> TradeDetails:
    """A $500 trade with 0.3% slippage."""
    return TradeDetails(
        token_in=TokenQuote(symbol="WBNB", address="0xbb4c", price=Decimal("675")),
        token_out=TokenQuote(symbol="CAKE", address="0x0e09", price=Decimal("2.5")),
        amount_usd=Decimal("500"),
        slippage=0.3,
    )


@pytest.fixture
def user_context() -> UserContext:
    """A $10,000 balance, so the trade ratio is 0.05."""
    return UserContext(balance=Decimal("10000"), risk_tolerance=RiskLevel.MEDIUM)


@pytest.fixture
def market_conditions() -> MarketConditions:
    return MarketConditions(
        native_price=Decimal("675"),
        market_volatility=3.2,
        gas_price_gwei=1.0,
        timestamp=datetime(2026, 3, 10, 12, 0, tzinfo=UTC),
    )
