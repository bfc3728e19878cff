"""Recommendation layer - Heuristic and advisory copy recommenders."""

from whale_copytrade.recommender.advisory import (
    AdvisoryOutcome,
    AdvisoryRecommender,
    Fallback,
    FallbackReason,
    Validated,
)
from whale_copytrade.recommender.client import (
    AdvisoryClientError,
    AdvisoryConfigurationError,
    OpenRouterClient,
)
from whale_copytrade.recommender.heuristic import HeuristicRecommender
from whale_copytrade.recommender.models import (
    MarketConditions,
    Recommendation,
    RiskLevel,
    TokenQuote,
    TradeDetails,
    UserContext,
    WhaleStats,
)

__all__ = [
    "AdvisoryClientError",
    "AdvisoryConfigurationError",
    "AdvisoryOutcome",
    "AdvisoryRecommender",
    "Fallback",
    "FallbackReason",
    "HeuristicRecommender",
    "MarketConditions",
    "OpenRouterClient",
    "Recommendation",
    "RiskLevel",
    "TokenQuote",
    "TradeDetails",
    "UserContext",
    "Validated",
    "WhaleStats",
]
