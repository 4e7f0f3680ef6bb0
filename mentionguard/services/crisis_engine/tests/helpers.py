"""Builders shared by the crisis engine tests."""
from datetime import datetime, timedelta

from mentionguard.shared.models import Signal

# Start of the bucket most tests evaluate
CURRENT_HOUR = datetime(2026, 1, 14, 10, 0)


class FakeClock:
    """Deterministic replacement for datetime.utcnow."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_signal(
    signal_id: str,
    captured_at: datetime,
    sentiment: float = 0.2,
    reach: int = 100,
    content: str = None,
) -> Signal:
    return Signal(
        id=signal_id,
        sentiment=sentiment,
        reach=reach,
        captured_at=captured_at,
        content=content,
    )


def seed_history(store, current_key: datetime, per_hour: int, hours: int = 24) -> None:
    """Fill the hours preceding current_key with per_hour signals each."""
    for h in range(1, hours + 1):
        hour_start = current_key - timedelta(hours=h)
        for i in range(per_hour):
            store.append(make_signal(
                f"hist_{h}_{i}",
                hour_start + timedelta(seconds=i * 10),
            ))


def fill_bucket(store, count: int, negative: int = 0, reach: int = 100, start=CURRENT_HOUR):
    """Append count signals to the bucket at start; the first `negative` are negative."""
    for i in range(count):
        store.append(make_signal(
            f"cur_{i}",
            start + timedelta(seconds=i * 20),
            sentiment=-0.8 if i < negative else 0.2,
            reach=reach,
        ))
