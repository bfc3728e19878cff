"""Data models for the aggregator module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

SECONDS_PER_DAY = 86400


def day_index(ts: datetime) -> int:
    """Return the UTC day index for a timezone-aware timestamp."""
    if ts.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware")
    return int(ts.timestamp()) // SECONDS_PER_DAY


class SkipReason(str, Enum):
    """Why an event was discarded before touching the store."""

    BELOW_THRESHOLD = "below_threshold"
    NON_WALLET = "non_wallet"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class WhaleRecord:
    """Running statistics for one whale address.

    Records are immutable snapshots; the aggregator publishes a new one on
    every mutation so readers never observe a half-applied update.

    Attributes:
        address: Lower-cased wallet address.
        first_seen_at: Timestamp of the first qualifying trade.
        last_trade_at: Timestamp of the most recent qualifying trade.
        total_trades: Number of qualifying trades ingested.
        successful_trades: Number of trades settled as successful.
        total_volume_usd: Sum of trade USD values.
        profit_usd: Sum of realized profits.
        loss_usd: Sum of realized losses (positive number).
        win_rate_7d: Win rate over trades in the 7 days before last_trade_at.
        win_rate_30d: Win rate over trades in the 30 days before last_trade_at.
        risk_score: Quality score in [0, 100].
        is_active: True once any qualifying trade has been observed.
        max_drawdown: Worst peak-to-trough fall of realized PnL as a fraction
            of total volume, in [0, 1].
        sharpe_ratio: Mean / stdev of per-trade realized returns.
    """

    address: str
    first_seen_at: datetime
    last_trade_at: datetime
    total_trades: int = 0
    successful_trades: int = 0
    total_volume_usd: Decimal = Decimal(0)
    profit_usd: Decimal = Decimal(0)
    loss_usd: Decimal = Decimal(0)
    win_rate_7d: float = 0.0
    win_rate_30d: float = 0.0
    risk_score: float = 50.0
    is_active: bool = False
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0

    @property
    def avg_trade_size(self) -> Decimal:
        """Average USD trade size, derived from the current totals."""
        if self.total_trades <= 0:
            return Decimal(0)
        return self.total_volume_usd / Decimal(self.total_trades)

    @property
    def win_rate(self) -> float:
        """Lifetime win rate (0 when no trades)."""
        if self.total_trades <= 0:
            return 0.0
        return self.successful_trades / self.total_trades

    @property
    def profit_loss_ratio(self) -> Decimal:
        """Profit divided by loss; 1 until a loss has been realized."""
        if self.loss_usd == 0:
            return Decimal(1)
        return self.profit_usd / self.loss_usd

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "address": self.address,
            "first_seen_at": self.first_seen_at.isoformat(),
            "last_trade_at": self.last_trade_at.isoformat(),
            "total_trades": self.total_trades,
            "successful_trades": self.successful_trades,
            "total_volume_usd": str(self.total_volume_usd),
            "profit_usd": str(self.profit_usd),
            "loss_usd": str(self.loss_usd),
            "avg_trade_size": str(self.avg_trade_size),
            "win_rate": self.win_rate,
            "win_rate_7d": self.win_rate_7d,
            "win_rate_30d": self.win_rate_30d,
            "risk_score": self.risk_score,
            "is_active": self.is_active,
            "max_drawdown": self.max_drawdown,
            "sharpe_ratio": self.sharpe_ratio,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WhaleRecord:
        """Deserialize from a dictionary produced by to_dict()."""
        return cls(
            address=str(data["address"]).lower(),
            first_seen_at=datetime.fromisoformat(data["first_seen_at"]),
            last_trade_at=datetime.fromisoformat(data["last_trade_at"]),
            total_trades=int(data["total_trades"]),
            successful_trades=int(data["successful_trades"]),
            total_volume_usd=Decimal(data["total_volume_usd"]),
            profit_usd=Decimal(data["profit_usd"]),
            loss_usd=Decimal(data["loss_usd"]),
            win_rate_7d=float(data["win_rate_7d"]),
            win_rate_30d=float(data["win_rate_30d"]),
            risk_score=float(data["risk_score"]),
            is_active=bool(data["is_active"]),
            max_drawdown=float(data.get("max_drawdown", 0.0)),
            sharpe_ratio=float(data.get("sharpe_ratio", 0.0)),
        )


@dataclass(frozen=True)
class DayRollup:
    """Aggregated counters for one UTC calendar day."""

    day: int
    volume_usd: Decimal = Decimal(0)
    trade_count: int = 0
    whale_addresses: frozenset[str] = field(default_factory=frozenset)

    @property
    def unique_whale_count(self) -> int:
        return len(self.whale_addresses)

    @property
    def date(self) -> date:
        return datetime.fromtimestamp(self.day * SECONDS_PER_DAY, tz=UTC).date()

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day,
            "date": self.date.isoformat(),
            "volume_usd": str(self.volume_usd),
            "trade_count": self.trade_count,
            "unique_whale_count": self.unique_whale_count,
        }


@dataclass(frozen=True)
class TradeEntry:
    """One qualifying trade in a whale's ledger.

    `is_success` stays None until a settlement signal arrives.
    """

    tx_hash: str
    address: str
    timestamp: datetime
    amount_usd: Decimal
    is_success: bool | None = None
    profit_usd: Decimal = Decimal(0)

    @property
    def is_settled(self) -> bool:
        return self.is_success is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "address": self.address,
            "timestamp": self.timestamp.isoformat(),
            "amount_usd": str(self.amount_usd),
            "is_success": self.is_success,
            "profit_usd": str(self.profit_usd),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradeEntry:
        return cls(
            tx_hash=str(data["tx_hash"]),
            address=str(data["address"]).lower(),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            amount_usd=Decimal(data["amount_usd"]),
            is_success=data.get("is_success"),
            profit_usd=Decimal(data.get("profit_usd", "0")),
        )


@dataclass(frozen=True)
class IngestResult:
    """Outcome of a single ingest call."""

    record: WhaleRecord | None = None
    rollup: DayRollup | None = None
    skip_reason: SkipReason | None = None
    amount_usd: Decimal = Decimal(0)

    @property
    def recorded(self) -> bool:
        return self.skip_reason is None and self.record is not None

    @classmethod
    def skipped(cls, reason: SkipReason, *, amount_usd: Decimal = Decimal(0)) -> IngestResult:
        return cls(skip_reason=reason, amount_usd=amount_usd)
