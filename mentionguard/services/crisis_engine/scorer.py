"""Composite severity scoring.

Fuses detector outputs into a 0-100 score: volume contributes up to 30,
negative sentiment up to 40, viral spread up to 30. A contribution only
applies when its detector fired.
"""
from dataclasses import dataclass
from typing import Optional

from mentionguard.shared.models import CrisisSeverity
from .config import SeverityThresholds
from .detectors import (
    DetectionResult,
    SentimentSpikeResult,
    ViralSpreadResult,
    VolumeSpikeResult,
)


@dataclass(frozen=True)
class SeverityScore:
    score: int
    level: CrisisSeverity
    volume_points: int = 0
    sentiment_points: int = 0
    viral_points: int = 0


class SeverityScorer:
    """Maps detection results to a score and severity level."""

    def __init__(self, thresholds: Optional[SeverityThresholds] = None):
        self.thresholds = thresholds or SeverityThresholds()

    def score(self, detection: DetectionResult) -> SeverityScore:
        volume = self._volume_points(detection.volume)
        sentiment = self._sentiment_points(detection.sentiment)
        viral = self._viral_points(detection.viral)
        total = volume + sentiment + viral

        return SeverityScore(
            score=total,
            level=self.level_for(total),
            volume_points=volume,
            sentiment_points=sentiment,
            viral_points=viral,
        )

    def level_for(self, score: int) -> CrisisSeverity:
        t = self.thresholds
        if score >= t.CRITICAL_MIN:
            return CrisisSeverity.CRITICAL
        elif score >= t.HIGH_MIN:
            return CrisisSeverity.HIGH
        elif score >= t.MEDIUM_MIN:
            return CrisisSeverity.MEDIUM
        else:
            return CrisisSeverity.LOW

    def _volume_points(self, result: VolumeSpikeResult) -> int:
        t = self.thresholds
        if not result.is_spike:
            return 0
        if result.multiplier_observed >= t.VOLUME_MULTIPLIER_TOP:
            return t.VOLUME_POINTS_TOP
        if result.multiplier_observed >= t.VOLUME_MULTIPLIER_MID:
            return t.VOLUME_POINTS_MID
        return t.VOLUME_POINTS_BASE

    def _sentiment_points(self, result: SentimentSpikeResult) -> int:
        t = self.thresholds
        if not result.is_spike:
            return 0
        if result.exact_percentage >= t.SENTIMENT_PERCENTAGE_TOP:
            return t.SENTIMENT_POINTS_TOP
        if result.exact_percentage >= t.SENTIMENT_PERCENTAGE_MID:
            return t.SENTIMENT_POINTS_MID
        return t.SENTIMENT_POINTS_BASE

    def _viral_points(self, result: ViralSpreadResult) -> int:
        t = self.thresholds
        if not result.is_viral:
            return 0
        if result.total_reach >= t.VIRAL_REACH_TOP:
            return t.VIRAL_POINTS_TOP
        if result.total_reach >= t.VIRAL_REACH_MID:
            return t.VIRAL_POINTS_MID
        return t.VIRAL_POINTS_BASE
