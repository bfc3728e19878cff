"""Aggregation layer - Per-whale statistics and day rollups."""

from whale_copytrade.aggregator.aggregator import (
    AggregatorConsistencyError,
    UnknownTradeError,
    WhaleAggregator,
)
from whale_copytrade.aggregator.models import (
    DayRollup,
    IngestResult,
    SkipReason,
    TradeEntry,
    WhaleRecord,
)
from whale_copytrade.aggregator.risk import LinearRiskScorer, RiskScorer
from whale_copytrade.aggregator.store import WhaleStatisticsStore

__all__ = [
    "AggregatorConsistencyError",
    "DayRollup",
    "IngestResult",
    "LinearRiskScorer",
    "RiskScorer",
    "SkipReason",
    "TradeEntry",
    "UnknownTradeError",
    "WhaleAggregator",
    "WhaleRecord",
    "WhaleStatisticsStore",
]
