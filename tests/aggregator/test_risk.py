"""Tests for whale risk scoring."""

from decimal import Decimal

import pytest

from whale_copytrade.aggregator.risk import LinearRiskScorer


class TestLinearRiskScorer:
    """Tests for the linear saturating scorer."""

    def test_base_score(self) -> None:
        scorer = LinearRiskScorer()
        assert scorer.score(win_rate_30d=0.0, total_trades=0, total_volume_usd=Decimal(0)) == 50.0

    def test_partial_terms(self) -> None:
        scorer = LinearRiskScorer()
        score = scorer.score(win_rate_30d=0.5, total_trades=50, total_volume_usd=Decimal("25000"))
        assert score == pytest.approx(50 + 20 + 15 + 7.5)

    def test_clamped_to_max(self) -> None:
        scorer = LinearRiskScorer()
        score = scorer.score(win_rate_30d=1.0, total_trades=1000, total_volume_usd=Decimal("10000000"))
        assert score == 100.0

    def test_experience_saturates(self) -> None:
        scorer = LinearRiskScorer(base_score=0.0)
        at_cap = scorer.score(win_rate_30d=0.0, total_trades=100, total_volume_usd=Decimal(0))
        past_cap = scorer.score(win_rate_30d=0.0, total_trades=500, total_volume_usd=Decimal(0))
        assert at_cap == past_cap == pytest.approx(30.0)

    def test_monotonic_in_each_input(self) -> None:
        scorer = LinearRiskScorer(base_score=0.0)
        previous = -1.0
        for step in range(11):
            score = scorer.score(
                win_rate_30d=step / 10,
                total_trades=step * 10,
                total_volume_usd=Decimal(step * 10000),
            )
            assert score >= previous
            previous = score

    def test_clamped_to_min(self) -> None:
        scorer = LinearRiskScorer(base_score=-500.0)
        assert scorer.score(win_rate_30d=0.2, total_trades=3, total_volume_usd=Decimal(10)) == 0.0
