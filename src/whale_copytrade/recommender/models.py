"""Data models for the recommender module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from whale_copytrade.aggregator.models import WhaleRecord


class RiskLevel(str, Enum):
    """Risk classification attached to a recommendation."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class WhaleStats:
    """Snapshot of a whale's statistics as fed to recommenders.

    Built from a WhaleRecord before any external call, so a decision is
    computed against one self-consistent view even while ingest continues.
    """

    address: str
    win_rate_30d: float
    win_rate_7d: float
    total_trades: int
    successful_trades: int
    avg_trade_size: Decimal
    total_volume_usd: Decimal
    sharpe_ratio: float
    max_drawdown: float
    risk_score: float

    @classmethod
    def from_record(cls, record: WhaleRecord) -> WhaleStats:
        return cls(
            address=record.address,
            win_rate_30d=record.win_rate_30d,
            win_rate_7d=record.win_rate_7d,
            total_trades=record.total_trades,
            successful_trades=record.successful_trades,
            avg_trade_size=record.avg_trade_size,
            total_volume_usd=record.total_volume_usd,
            sharpe_ratio=record.sharpe_ratio,
            max_drawdown=record.max_drawdown,
            risk_score=record.risk_score,
        )


@dataclass(frozen=True)
class TokenQuote:
    """One leg of a swap."""

    symbol: str
    address: str
    price: Decimal


@dataclass(frozen=True)
class TradeDetails:
    """The observed trade being considered for copying.

    Attributes:
        token_in: Asset sold.
        token_out: Asset bought.
        amount_usd: USD size of the whale's trade.
        slippage: Expected slippage in percent (0.3 means 0.3%).
    """

    token_in: TokenQuote
    token_out: TokenQuote
    amount_usd: Decimal
    slippage: float


@dataclass(frozen=True)
class UserContext:
    """The copying user's situation."""

    balance: Decimal
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM
    current_portfolio: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class MarketConditions:
    """Live market context, only consumed by the advisory path."""

    native_price: Decimal
    market_volatility: float
    gas_price_gwei: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class Recommendation:
    """A copy/no-copy decision.

    Attributes:
        should_copy: Whether to replicate the trade.
        confidence: Confidence in [0, 100].
        position_size: Percentage of available balance to allocate, [0, 100].
        reasoning: Human-readable justification (never empty).
        risk_level: LOW / MEDIUM / HIGH.
        expected_return: Expected return estimate (percent).
        max_loss: Maximum loss estimate (percent).
    """

    should_copy: bool
    confidence: float
    position_size: float
    reasoning: str
    risk_level: RiskLevel
    expected_return: float = 0.0
    max_loss: float = 0.0

    def __post_init__(self) -> None:
        if not self.reasoning:
            raise ValueError("reasoning must not be empty")
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError("confidence must be within [0, 100]")
        if not 0.0 <= self.position_size <= 100.0:
            raise ValueError("position_size must be within [0, 100]")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire schema."""
        return {
            "shouldCopy": self.should_copy,
            "confidence": self.confidence,
            "positionSize": self.position_size,
            "reasoning": self.reasoning,
            "riskLevel": self.risk_level.value,
            "expectedReturn": self.expected_return,
            "maxLoss": self.max_loss,
        }
