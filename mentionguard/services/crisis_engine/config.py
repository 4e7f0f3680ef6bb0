"""Crisis engine configuration and severity thresholds.

Detector constants come from the brand-monitoring playbook: a spike is
3x the trailing 24h hourly average, a sentiment spike is >60% negative
mentions over a minimum sample, viral spread is >1M reach with most of
the volume in the last 30 minutes.
"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class SeverityThresholds:
    """Composite score contributions and level cut-offs.

    Tier comparisons are inclusive (>=).
    """
    # Volume spike contribution (0-30)
    VOLUME_MULTIPLIER_TOP: float = 10.0
    VOLUME_MULTIPLIER_MID: float = 5.0
    VOLUME_POINTS_TOP: int = 30
    VOLUME_POINTS_MID: int = 20
    VOLUME_POINTS_BASE: int = 10

    # Negative sentiment contribution (0-40)
    SENTIMENT_PERCENTAGE_TOP: float = 80.0
    SENTIMENT_PERCENTAGE_MID: float = 70.0
    SENTIMENT_POINTS_TOP: int = 40
    SENTIMENT_POINTS_MID: int = 30
    SENTIMENT_POINTS_BASE: int = 20

    # Viral spread contribution (0-30)
    VIRAL_REACH_TOP: int = 10_000_000
    VIRAL_REACH_MID: int = 5_000_000
    VIRAL_POINTS_TOP: int = 30
    VIRAL_POINTS_MID: int = 20
    VIRAL_POINTS_BASE: int = 15

    # Level cut-offs
    CRITICAL_MIN: int = 70
    HIGH_MIN: int = 50
    MEDIUM_MIN: int = 30


@dataclass(frozen=True)
class CrisisConfig:
    """Tunable detection and publishing settings."""

    # Baselining
    baseline_hours: int = 24

    # Volume spike
    volume_multiplier: float = 3.0

    # Negative sentiment spike
    sentiment_min_sample: int = 5
    negative_sentiment_cutoff: float = -0.3
    negative_percentage_threshold: float = 60.0

    # Viral spread
    viral_reach_threshold: int = 1_000_000
    viral_growth_threshold: float = 0.5
    recent_window_minutes: int = 30

    # Outbound event stream
    events_enabled: bool = False
    stream_name: str = "mentionguard-crisis-events"
    region: str = "us-east-1"

    @classmethod
    def from_env(cls) -> "CrisisConfig":
        """Create config from environment variables.

        Environment variables:
            CRISIS_BASELINE_HOURS: Trailing hours averaged (default 24)
            CRISIS_VOLUME_MULTIPLIER: Spike multiplier (default 3)
            CRISIS_SENTIMENT_MIN_SAMPLE: Sentiment floor (default 5)
            CRISIS_NEGATIVE_CUTOFF: Negative sentiment cut-off (default -0.3)
            CRISIS_NEGATIVE_PERCENTAGE: Spike percentage (default 60)
            CRISIS_VIRAL_REACH: Viral reach threshold (default 1000000)
            CRISIS_VIRAL_GROWTH: Viral growth rate threshold (default 0.5)
            CRISIS_RECENT_WINDOW_MINUTES: Recent sub-window (default 30)
            CRISIS_EVENTS_ENABLED: Publish to Kinesis (default false)
            KINESIS_STREAM_NAME: Kinesis stream name
            AWS_REGION: AWS region (default us-east-1)
        """
        return cls(
            baseline_hours=int(os.getenv("CRISIS_BASELINE_HOURS", "24")),
            volume_multiplier=float(os.getenv("CRISIS_VOLUME_MULTIPLIER", "3.0")),
            sentiment_min_sample=int(os.getenv("CRISIS_SENTIMENT_MIN_SAMPLE", "5")),
            negative_sentiment_cutoff=float(os.getenv("CRISIS_NEGATIVE_CUTOFF", "-0.3")),
            negative_percentage_threshold=float(os.getenv("CRISIS_NEGATIVE_PERCENTAGE", "60")),
            viral_reach_threshold=int(os.getenv("CRISIS_VIRAL_REACH", "1000000")),
            viral_growth_threshold=float(os.getenv("CRISIS_VIRAL_GROWTH", "0.5")),
            recent_window_minutes=int(os.getenv("CRISIS_RECENT_WINDOW_MINUTES", "30")),
            events_enabled=os.getenv("CRISIS_EVENTS_ENABLED", "false").lower() == "true",
            stream_name=os.getenv("KINESIS_STREAM_NAME", "mentionguard-crisis-events"),
            region=os.getenv("AWS_REGION", "us-east-1"),
        )
