"""Trade event input models."""

from whale_copytrade.ingestor.models import ZERO_ADDRESS, TradeEvent

__all__ = [
    "TradeEvent",
    "ZERO_ADDRESS",
]
