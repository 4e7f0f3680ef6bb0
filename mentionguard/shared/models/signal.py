"""Signal and time bucket domain models.

A Signal is one observed brand mention with sentiment and reach already
scored upstream. Signals are grouped into hourly TimeBuckets, which are
the substrate for baselining and detection.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple
import uuid

from mentionguard.shared.errors import ValidationError

BUCKET_WIDTH = timedelta(hours=1)


def bucket_key_for(timestamp: datetime) -> datetime:
    """Floor a timestamp to the start of its hourly bucket."""
    return timestamp.replace(minute=0, second=0, microsecond=0)


def parse_timestamp(value: Any) -> datetime:
    """Parse a capture timestamp into a naive UTC datetime.

    Accepts datetime instances, ISO-8601 strings (with or without a
    trailing "Z") and epoch seconds.

    Raises:
        ValidationError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValidationError(f"Unparseable timestamp: {value!r}") from e
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Unparseable timestamp: {value!r}") from e
    else:
        raise ValidationError(f"Unparseable timestamp: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _coerce_sentiment(value: Any) -> float:
    try:
        sentiment = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(sentiment):
        return 0.0
    # +/-inf clamps to the bounds
    return min(max(sentiment, -1.0), 1.0)


def _coerce_reach(value: Any) -> int:
    try:
        reach = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(reach) or reach < 0:
        return 0
    return int(reach)


@dataclass(frozen=True)
class Signal:
    """One observed mention. Immutable once appended to a bucket."""
    id: str
    sentiment: float        # -1.0 to 1.0
    reach: int              # >= 0
    captured_at: datetime   # naive UTC
    content: Optional[str] = None

    def __post_init__(self):
        if not -1.0 <= self.sentiment <= 1.0:
            raise ValueError(f"Sentiment must be -1.0-1.0, got {self.sentiment}")
        if self.reach < 0:
            raise ValueError(f"Reach must be >= 0, got {self.reach}")

    @classmethod
    def from_payload(
        cls,
        data: Dict[str, Any],
        captured_at: datetime,
    ) -> "Signal":
        """Build a Signal from a loosely typed payload.

        Malformed numeric fields are clamped or defaulted instead of
        rejected. The capture time is resolved by the caller.

        Args:
            data: Raw payload from an upstream producer
            captured_at: Resolved capture timestamp

        Returns:
            Coerced Signal
        """
        signal_id = data.get("id") or f"sig_{uuid.uuid4().hex[:12]}"
        content = data.get("content")
        return cls(
            id=str(signal_id),
            sentiment=_coerce_sentiment(data.get("sentiment")),
            reach=_coerce_reach(data.get("reach")),
            captured_at=captured_at,
            content=str(content) if content is not None else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sentiment": self.sentiment,
            "reach": self.reach,
            "captured_at": self.captured_at.isoformat(),
            "content": self.content,
        }


@dataclass(frozen=True)
class TimeBucket:
    """Point-in-time snapshot of one hourly bucket.

    Detectors only ever see these copies, never the live bucket.
    """
    key: datetime
    started_at: datetime
    signals: Tuple[Signal, ...] = field(default_factory=tuple)

    @property
    def volume(self) -> int:
        return len(self.signals)


@dataclass(frozen=True)
class Baseline:
    """Rolling average volume over the buckets preceding the current one.

    sample_count == 0 means no history; spike detection is disabled.
    """
    average: float = 0.0
    sample_count: int = 0
