"""Built-in crisis signal detectors.

Three independent detectors: volume spike, negative sentiment spike and
viral spread. Each is a pure function of a window of signals (and the
baseline, for volume), so they can be tested in isolation and never get
mutable access to stored buckets.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

from mentionguard.shared.models import Baseline, CrisisTriggers, Signal, TimeBucket
from .config import CrisisConfig


@dataclass(frozen=True)
class VolumeSpikeResult:
    is_spike: bool
    current_volume: int
    baseline_average: float
    baseline_samples: int
    multiplier_observed: float


@dataclass(frozen=True)
class SentimentSpikeResult:
    is_spike: bool
    negative_count: int
    total_count: int
    percentage: float   # 0-100, rounded for reporting

    @property
    def exact_percentage(self) -> float:
        """Unrounded negative share; thresholds compare against this."""
        if not self.total_count:
            return 0.0
        return self.negative_count * 100 / self.total_count


@dataclass(frozen=True)
class ViralSpreadResult:
    is_viral: bool
    total_reach: int
    recent_reach: int
    growth_rate: float  # share of the window in the recent sub-window


@dataclass(frozen=True)
class DetectionResult:
    """Combined output of one detection pass over a bucket."""
    volume: VolumeSpikeResult
    sentiment: SentimentSpikeResult
    viral: ViralSpreadResult

    @property
    def triggers(self) -> CrisisTriggers:
        return CrisisTriggers(
            volume_spike=self.volume.is_spike,
            negative_sentiment=self.sentiment.is_spike,
            viral_spread=self.viral.is_viral,
        )

    @property
    def is_crisis(self) -> bool:
        return self.triggers.any()


def detect_volume_spike(
    window: Sequence[Signal],
    baseline: Baseline,
    multiplier: float = 3.0,
) -> VolumeSpikeResult:
    """Flag a spike when volume exceeds multiplier x baseline average.

    Without history (sample_count == 0) significance cannot be assessed
    and the detector never fires.
    """
    current_volume = len(window)
    if baseline.sample_count == 0:
        is_spike = False
    else:
        is_spike = current_volume > baseline.average * multiplier

    return VolumeSpikeResult(
        is_spike=is_spike,
        current_volume=current_volume,
        baseline_average=baseline.average,
        baseline_samples=baseline.sample_count,
        multiplier_observed=current_volume / max(baseline.average, 1.0),
    )


def negative_share(
    window: Sequence[Signal],
    cutoff: float = -0.3,
) -> SentimentSpikeResult:
    """Count negative signals without applying any spike threshold."""
    total = len(window)
    negative = sum(1 for s in window if s.sentiment < cutoff)
    percentage = round(negative / total * 100, 2) if total else 0.0
    return SentimentSpikeResult(
        is_spike=False,
        negative_count=negative,
        total_count=total,
        percentage=percentage,
    )


def detect_negative_sentiment(
    window: Sequence[Signal],
    min_sample: int = 5,
    cutoff: float = -0.3,
    threshold_percentage: float = 60.0,
) -> SentimentSpikeResult:
    """Flag a spike when the negative share exceeds threshold_percentage.

    Below min_sample signals the share is statistically meaningless and
    the detector never fires.
    """
    share = negative_share(window, cutoff)
    is_spike = (
        share.total_count >= min_sample
        and share.exact_percentage > threshold_percentage
    )
    return SentimentSpikeResult(
        is_spike=is_spike,
        negative_count=share.negative_count,
        total_count=share.total_count,
        percentage=share.percentage,
    )


def detect_viral_spread(
    window: Sequence[Signal],
    reach_threshold: int = 1_000_000,
    growth_threshold: float = 0.5,
    recent_minutes: int = 30,
) -> ViralSpreadResult:
    """Flag viral spread: large total reach concentrated in recent minutes.

    The recent sub-window is anchored on the latest signal's capture time,
    not the wall clock, so replayed or backdated buckets score the same.
    """
    if not window:
        return ViralSpreadResult(
            is_viral=False, total_reach=0, recent_reach=0, growth_rate=0.0
        )

    total_reach = sum(s.reach for s in window)
    latest = max(s.captured_at for s in window)
    cutoff = latest - timedelta(minutes=recent_minutes)
    recent = [s for s in window if s.captured_at > cutoff]
    growth_rate = len(recent) / len(window)

    return ViralSpreadResult(
        is_viral=total_reach > reach_threshold and growth_rate > growth_threshold,
        total_reach=total_reach,
        recent_reach=sum(s.reach for s in recent),
        growth_rate=round(growth_rate, 2),
    )


class SignalDetectors:
    """Runs all three detectors with configured thresholds."""

    def __init__(self, config: Optional[CrisisConfig] = None):
        self.config = config or CrisisConfig()

    def run(self, bucket: TimeBucket, baseline: Baseline) -> DetectionResult:
        window = bucket.signals
        cfg = self.config
        return DetectionResult(
            volume=detect_volume_spike(window, baseline, cfg.volume_multiplier),
            sentiment=detect_negative_sentiment(
                window,
                min_sample=cfg.sentiment_min_sample,
                cutoff=cfg.negative_sentiment_cutoff,
                threshold_percentage=cfg.negative_percentage_threshold,
            ),
            viral=detect_viral_spread(
                window,
                reach_threshold=cfg.viral_reach_threshold,
                growth_threshold=cfg.viral_growth_threshold,
                recent_minutes=cfg.recent_window_minutes,
            ),
        )
