"""Tests for composite severity scoring."""
import pytest

from mentionguard.shared.models import CrisisSeverity
from mentionguard.services.crisis_engine.detectors import (
    DetectionResult,
    SentimentSpikeResult,
    ViralSpreadResult,
    VolumeSpikeResult,
)
from mentionguard.services.crisis_engine.scorer import SeverityScorer


def _detection(
    volume_spike=False,
    multiplier=1.0,
    sentiment_spike=False,
    percentage=0.0,
    viral=False,
    reach=0,
):
    return DetectionResult(
        volume=VolumeSpikeResult(
            is_spike=volume_spike,
            current_volume=int(multiplier * 10),
            baseline_average=10.0,
            baseline_samples=24,
            multiplier_observed=multiplier,
        ),
        sentiment=SentimentSpikeResult(
            is_spike=sentiment_spike,
            negative_count=round(percentage * 100),
            total_count=10_000,
            percentage=percentage,
        ),
        viral=ViralSpreadResult(
            is_viral=viral,
            total_reach=reach,
            recent_reach=reach,
            growth_rate=0.9 if viral else 0.0,
        ),
    )


@pytest.fixture
def scorer():
    return SeverityScorer()


class TestContributions:
    """Per-detector point tiers."""

    @pytest.mark.parametrize("multiplier,points", [
        (3.5, 10),
        (5.0, 20),
        (9.9, 20),
        (10.0, 30),
        (42.0, 30),
    ])
    def test_volume_tiers(self, scorer, multiplier, points):
        result = scorer.score(_detection(volume_spike=True, multiplier=multiplier))
        assert result.volume_points == points

    @pytest.mark.parametrize("percentage,points", [
        (61.0, 20),
        (70.0, 30),
        (79.99, 30),
        (80.0, 40),
        (100.0, 40),
    ])
    def test_sentiment_tiers(self, scorer, percentage, points):
        result = scorer.score(_detection(sentiment_spike=True, percentage=percentage))
        assert result.sentiment_points == points

    def test_sentiment_tier_uses_unrounded_share(self, scorer):
        """16000 of 20001 reports as 80.0 but sits below the top tier."""
        detection = _detection(sentiment_spike=True)
        detection = DetectionResult(
            volume=detection.volume,
            sentiment=SentimentSpikeResult(
                is_spike=True, negative_count=16_000, total_count=20_001, percentage=80.0,
            ),
            viral=detection.viral,
        )

        assert scorer.score(detection).sentiment_points == 30

    @pytest.mark.parametrize("reach,points", [
        (1_500_000, 15),
        (5_000_000, 20),
        (10_000_000, 30),
    ])
    def test_viral_tiers(self, scorer, reach, points):
        result = scorer.score(_detection(viral=True, reach=reach))
        assert result.viral_points == points

    def test_unfired_detectors_contribute_nothing(self, scorer):
        """Large raw numbers do not score unless the detector fired."""
        result = scorer.score(_detection(
            multiplier=50.0,
            percentage=95.0,
            reach=20_000_000,
        ))

        assert result.score == 0
        assert result.level == CrisisSeverity.LOW


class TestLevels:
    """Score to severity level mapping."""

    @pytest.mark.parametrize("score,level", [
        (0, CrisisSeverity.LOW),
        (29, CrisisSeverity.LOW),
        (30, CrisisSeverity.MEDIUM),
        (49, CrisisSeverity.MEDIUM),
        (50, CrisisSeverity.HIGH),
        (69, CrisisSeverity.HIGH),
        (70, CrisisSeverity.CRITICAL),
        (100, CrisisSeverity.CRITICAL),
    ])
    def test_level_boundaries(self, scorer, score, level):
        assert scorer.level_for(score) == level

    def test_maximum_score_is_100(self, scorer):
        result = scorer.score(_detection(
            volume_spike=True, multiplier=20.0,
            sentiment_spike=True, percentage=90.0,
            viral=True, reach=12_000_000,
        ))

        assert result.score == 100
        assert result.level == CrisisSeverity.CRITICAL

    def test_volume_and_sentiment_top_tiers_are_critical(self, scorer):
        result = scorer.score(_detection(
            volume_spike=True, multiplier=12.0,
            sentiment_spike=True, percentage=80.0,
        ))

        assert result.score == 70
        assert result.level == CrisisSeverity.CRITICAL

    def test_moderate_spike_is_medium(self, scorer):
        result = scorer.score(_detection(
            volume_spike=True, multiplier=3.5,
            sentiment_spike=True, percentage=71.0,
        ))

        assert result.score == 40
        assert result.level == CrisisSeverity.MEDIUM


class TestMonotonicity:
    """Stronger inputs never lower the score."""

    def test_score_non_decreasing_in_multiplier(self, scorer):
        scores = [
            scorer.score(_detection(volume_spike=True, multiplier=m / 2)).score
            for m in range(7, 60)
        ]
        assert scores == sorted(scores)

    def test_score_non_decreasing_in_percentage(self, scorer):
        scores = [
            scorer.score(_detection(sentiment_spike=True, percentage=float(p))).score
            for p in range(61, 101)
        ]
        assert scores == sorted(scores)

    def test_score_non_decreasing_in_reach(self, scorer):
        scores = [
            scorer.score(_detection(viral=True, reach=r * 500_000)).score
            for r in range(3, 30)
        ]
        assert scores == sorted(scores)

    def test_level_non_decreasing_in_score(self, scorer):
        ranks = [scorer.level_for(s).rank for s in range(0, 101)]
        assert ranks == sorted(ranks)
