"""Deterministic rule-based copy recommender.

Scoring Formula:
    score = 0
    win_rate_30d > 0.6            +30   (else > 0.5: +15)
    win_rate_7d > win_rate_30d    +10
    trade/balance > 0.5           -20   (else < 0.1: +10)
    slippage > 2%                 -15   (else < 0.5%: +10)
    LOW tolerance, drawdown > 20% -20

    should_copy   = score > 40
    confidence    = clamp(score + 50, 0, 100)
    position_size = clamp(score // 5, 5, 20) if should_copy else 0
    risk_level    = MEDIUM if score > 30 else HIGH

The LOW risk level is never produced: the upper branch of the original
formula (score > 60) also mapped to MEDIUM and is kept that way.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal

from whale_copytrade.recommender.models import (
    Recommendation,
    RiskLevel,
    TradeDetails,
    UserContext,
    WhaleStats,
)

logger = logging.getLogger(__name__)

STRONG_WIN_RATE = 0.6
MODERATE_WIN_RATE = 0.5
STRONG_WIN_RATE_POINTS = 30
MODERATE_WIN_RATE_POINTS = 15
MOMENTUM_POINTS = 10

LARGE_TRADE_RATIO = 0.5
SMALL_TRADE_RATIO = 0.1
LARGE_TRADE_PENALTY = -20
SMALL_TRADE_POINTS = 10

HIGH_SLIPPAGE_PCT = 2.0
LOW_SLIPPAGE_PCT = 0.5
HIGH_SLIPPAGE_PENALTY = -15
LOW_SLIPPAGE_POINTS = 10

LOW_TOLERANCE_MAX_DRAWDOWN = 0.2
DRAWDOWN_PENALTY = -20

COPY_THRESHOLD = 40
MEDIUM_RISK_THRESHOLD = 30
CONFIDENCE_OFFSET = 50
MIN_POSITION_SIZE = 5
MAX_POSITION_SIZE = 20
EXPECTED_RETURN_PCT = 5.0
MAX_LOSS_PCT = 2.0

DEFAULT_REASONING = "Rule-based analysis"


def _trade_ratio(amount_usd: Decimal, balance: Decimal) -> float:
    if balance <= 0:
        return math.inf
    return float(amount_usd / balance)


class HeuristicRecommender:
    """Auditable rule engine producing a score and the reasons behind it."""

    def score(
        self,
        whale: WhaleStats,
        trade: TradeDetails,
        user: UserContext,
    ) -> tuple[int, list[str]]:
        """Return the raw score and the triggered reasons, in rule order."""
        score = 0
        reasons: list[str] = []

        if whale.win_rate_30d > STRONG_WIN_RATE:
            score += STRONG_WIN_RATE_POINTS
            reasons.append("strong historical win rate")
        elif whale.win_rate_30d > MODERATE_WIN_RATE:
            score += MODERATE_WIN_RATE_POINTS
            reasons.append("moderate win rate")

        if whale.win_rate_7d > whale.win_rate_30d:
            score += MOMENTUM_POINTS
            reasons.append("recent performance improving")

        ratio = _trade_ratio(trade.amount_usd, user.balance)
        if ratio > LARGE_TRADE_RATIO:
            score += LARGE_TRADE_PENALTY
            reasons.append("trade size too large relative to balance")
        elif ratio < SMALL_TRADE_RATIO:
            score += SMALL_TRADE_POINTS
            reasons.append("manageable trade size")

        if trade.slippage > HIGH_SLIPPAGE_PCT:
            score += HIGH_SLIPPAGE_PENALTY
            reasons.append("high slippage warning")
        elif trade.slippage < LOW_SLIPPAGE_PCT:
            score += LOW_SLIPPAGE_POINTS
            reasons.append("low slippage favorable")

        if user.risk_tolerance == RiskLevel.LOW and whale.max_drawdown > LOW_TOLERANCE_MAX_DRAWDOWN:
            score += DRAWDOWN_PENALTY
            reasons.append("drawdown incompatible with risk tolerance")

        return score, reasons

    def recommend(
        self,
        whale: WhaleStats,
        trade: TradeDetails,
        user: UserContext,
    ) -> Recommendation:
        score, reasons = self.score(whale, trade, user)

        should_copy = score > COPY_THRESHOLD
        confidence = min(100, max(0, score + CONFIDENCE_OFFSET))
        position_size = (
            min(MAX_POSITION_SIZE, max(MIN_POSITION_SIZE, math.floor(score / 5))) if should_copy else 0
        )
        risk_level = RiskLevel.MEDIUM if score > MEDIUM_RISK_THRESHOLD else RiskLevel.HIGH

        logger.debug(
            "Heuristic score for %s: %d (%s)",
            whale.address[:10] + "...",
            score,
            ", ".join(reasons) or "no rules triggered",
        )

        return Recommendation(
            should_copy=should_copy,
            confidence=float(confidence),
            position_size=float(position_size),
            reasoning="; ".join(reasons) or DEFAULT_REASONING,
            risk_level=risk_level,
            expected_return=EXPECTED_RETURN_PCT if should_copy else 0.0,
            max_loss=MAX_LOSS_PCT if should_copy else 0.0,
        )
