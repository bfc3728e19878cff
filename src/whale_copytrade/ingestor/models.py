"""Data models for the ingestor module."""

import contextlib
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Swap amounts are raw on-chain integers with 18 decimals.
WEI_PER_UNIT = Decimal(10) ** 18


def _parse_amount(raw: Any) -> int:
    if isinstance(raw, int):
        return raw
    text = str(raw).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(Decimal(text))


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        if raw.tzinfo is None:
            return raw.replace(tzinfo=UTC)
        return raw.astimezone(UTC)
    if isinstance(raw, (int, float)):
        ts_f = float(raw)
        if ts_f > 1e12:
            ts_f /= 1000.0
        return datetime.fromtimestamp(ts_f, tz=UTC)
    if isinstance(raw, str):
        with contextlib.suppress(ValueError):
            return _parse_timestamp(float(raw))
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        return _parse_timestamp(parsed)
    raise ValueError(f"Unsupported timestamp value: {raw!r}")


@dataclass(frozen=True)
class TradeEvent:
    """A swap executed by a tracked sender on the DEX router.

    Amounts are the raw integer values from the Swap event; conversion to
    USD happens in the aggregator against a supplied reference price.
    """

    sender: str
    amount_in: int
    amount_out: int
    timestamp: datetime
    tx_hash: str

    token_in_symbol: str = "BNB"
    token_out_symbol: str = "TOKEN"
    block_number: int | None = None

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        if self.amount_in < 0 or self.amount_out < 0:
            raise ValueError("swap amounts must be non-negative")

    @property
    def sender_address(self) -> str:
        """Lower-cased sender address used as the whale key."""
        return self.sender.lower()

    @property
    def day(self) -> int:
        """UTC day index (epoch seconds // 86400)."""
        return int(self.timestamp.timestamp()) // 86400

    def usd_value(self, reference_price: Decimal) -> Decimal:
        """USD value of the input leg at the given reference price."""
        return Decimal(self.amount_in) / WEI_PER_UNIT * reference_price

    @classmethod
    def from_swap_payload(cls, data: dict[str, Any]) -> "TradeEvent":
        """Create a TradeEvent from a subgraph or RPC Swap payload.

        Accepts both the subgraph's camelCase fields and the decoded event
        `params` layout. Timestamps may be epoch seconds, epoch milliseconds
        or ISO strings; amounts may be decimal or hex strings.
        """
        params = data.get("params", data)
        sender = params.get("sender") or data.get("from") or ""
        tx_hash = (
            data.get("txHash")
            or data.get("transactionHash")
            or data.get("tx_hash")
            or data.get("id")
            or ""
        )
        if not sender or not tx_hash:
            raise ValueError("swap payload requires sender and transaction hash")

        raw_ts = data.get("timestamp", data.get("blockTimestamp"))
        if raw_ts is None:
            raise ValueError("swap payload requires a timestamp")

        block_raw = data.get("blockNumber", data.get("block_number"))
        return cls(
            sender=str(sender),
            amount_in=_parse_amount(params.get("amountIn", params.get("amount_in", 0))),
            amount_out=_parse_amount(params.get("amountOut", params.get("amount_out", 0))),
            timestamp=_parse_timestamp(raw_ts),
            tx_hash=str(tx_hash).lower(),
            token_in_symbol=str(data.get("tokenInSymbol", "BNB")),
            token_out_symbol=str(data.get("tokenOutSymbol", "TOKEN")),
            block_number=_parse_amount(block_raw) if block_raw is not None else None,
        )
