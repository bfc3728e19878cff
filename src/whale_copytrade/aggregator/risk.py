"""Whale quality scoring.

The default scorer is a fixed linear weighting, not a fitted model. It
favors experienced, high-volume whales with a winning history. The
aggregator depends only on the `RiskScorer` protocol so the model can be
swapped without touching aggregation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

BASE_SCORE = 50.0
WIN_RATE_WEIGHT = 40.0
EXPERIENCE_WEIGHT = 30.0
VOLUME_WEIGHT = 30.0

# Saturation points for the experience and volume terms
EXPERIENCE_SATURATION_TRADES = 100
VOLUME_SATURATION_USD = Decimal("100000")

MIN_SCORE = 0.0
MAX_SCORE = 100.0


class RiskScorer(Protocol):
    """Maps whale statistics to a bounded score in [0, 100]."""

    def score(
        self,
        *,
        win_rate_30d: float,
        total_trades: int,
        total_volume_usd: Decimal,
    ) -> float: ...


class LinearRiskScorer:
    """Monotonic, saturating linear score.

    Scoring Formula:
        score = 50
              + win_rate_30d * 40
              + min(total_trades / 100, 1) * 30
              + min(total_volume_usd / 100_000, 1) * 30
        clamped to [0, 100]
    """

    def __init__(
        self,
        *,
        base_score: float = BASE_SCORE,
        win_rate_weight: float = WIN_RATE_WEIGHT,
        experience_weight: float = EXPERIENCE_WEIGHT,
        volume_weight: float = VOLUME_WEIGHT,
    ) -> None:
        self._base = base_score
        self._win_rate_weight = win_rate_weight
        self._experience_weight = experience_weight
        self._volume_weight = volume_weight

    def score(
        self,
        *,
        win_rate_30d: float,
        total_trades: int,
        total_volume_usd: Decimal,
    ) -> float:
        experience = min(total_trades / EXPERIENCE_SATURATION_TRADES, 1.0)
        volume = min(float(total_volume_usd / VOLUME_SATURATION_USD), 1.0)

        score = self._base
        score += win_rate_30d * self._win_rate_weight
        score += experience * self._experience_weight
        score += volume * self._volume_weight
        return min(MAX_SCORE, max(MIN_SCORE, score))
