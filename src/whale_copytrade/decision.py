"""Copy-trade decision service.

The single entry point callers use: resolve a whale's statistics, run the
selected recommender and return a Decision. The advisory recommender is
the default; the heuristic one is used only when the caller asks for it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from whale_copytrade.aggregator.store import WhaleStatisticsStore
from whale_copytrade.recommender.advisory import AdvisoryOutcome, AdvisoryRecommender
from whale_copytrade.recommender.heuristic import HeuristicRecommender
from whale_copytrade.recommender.models import (
    MarketConditions,
    Recommendation,
    TradeDetails,
    UserContext,
    WhaleStats,
)

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    """Recommender selected for a decision."""

    ADVISORY = "advisory"
    HEURISTIC = "heuristic"


class UnknownWhaleError(Exception):
    """Raised when a decision is requested for an address with no record.

    Distinct from a no-copy recommendation: there is no data to decide on.
    """

    def __init__(self, address: str) -> None:
        super().__init__(f"Whale not found: {address}")
        self.address = address


@dataclass(frozen=True)
class DecisionRequest:
    """Input to a copy decision."""

    whale_address: str
    trade: TradeDetails
    user: UserContext
    market: MarketConditions | None = None


@dataclass(frozen=True)
class Decision:
    """Result of a copy decision.

    Attributes:
        whale: The statistics snapshot the decision was computed against.
        strategy: Recommender that produced the recommendation.
        recommendation: The copy/no-copy recommendation.
        advisory_outcome: For the advisory strategy, the tagged outcome
            (Validated or Fallback with its reason).
    """

    whale: WhaleStats
    strategy: Strategy
    recommendation: Recommendation
    advisory_outcome: AdvisoryOutcome | None = None

    @property
    def is_fallback(self) -> bool:
        return self.advisory_outcome is not None and self.advisory_outcome.is_fallback


class CopyTradeDecisionService:
    """Resolves whale statistics and produces copy recommendations.

    Example:
        ```python
        service = CopyTradeDecisionService(store, advisory=advisory)
        try:
            decision = await service.decide(request)
        except UnknownWhaleError:
            return {"error": "Whale not found"}
        return decision.recommendation.to_dict()
        ```
    """

    def __init__(
        self,
        store: WhaleStatisticsStore,
        *,
        advisory: AdvisoryRecommender | None = None,
        heuristic: HeuristicRecommender | None = None,
    ) -> None:
        self._store = store
        self._advisory = advisory
        self._heuristic = heuristic or HeuristicRecommender()

    def whale_stats(self, address: str) -> WhaleStats:
        """Snapshot a whale's statistics.

        Raises:
            UnknownWhaleError: If the address has never been ingested.
        """
        record = self._store.get_whale(address)
        if record is None:
            raise UnknownWhaleError(address.lower())
        return WhaleStats.from_record(record)

    async def decide(
        self,
        request: DecisionRequest,
        *,
        strategy: Strategy = Strategy.ADVISORY,
    ) -> Decision:
        """Produce a recommendation for one observed trade.

        Raises:
            UnknownWhaleError: If the whale address is unknown.
            ValueError: If the advisory strategy is requested without market
                conditions or without an advisory recommender.
        """
        # Records are immutable snapshots; no store lock is held past this point.
        whale = self.whale_stats(request.whale_address)

        if strategy == Strategy.HEURISTIC:
            recommendation = self._heuristic.recommend(whale, request.trade, request.user)
            decision = Decision(whale=whale, strategy=strategy, recommendation=recommendation)
        else:
            if self._advisory is None:
                raise ValueError("Advisory strategy requested but no advisory recommender is configured")
            if request.market is None:
                raise ValueError("Advisory strategy requires market conditions")
            outcome = await self._advisory.evaluate(whale, request.trade, request.user, request.market)
            decision = Decision(
                whale=whale,
                strategy=strategy,
                recommendation=outcome.recommendation,
                advisory_outcome=outcome,
            )

        logger.info(
            "Decision for %s via %s: copy=%s confidence=%.0f size=%.0f%% risk=%s%s",
            whale.address[:10] + "...",
            strategy.value,
            decision.recommendation.should_copy,
            decision.recommendation.confidence,
            decision.recommendation.position_size,
            decision.recommendation.risk_level.value,
            " (fallback)" if decision.is_fallback else "",
        )
        return decision
