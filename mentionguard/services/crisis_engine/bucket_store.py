"""Hourly time bucket storage for ingested signals.

Append-only: signals are grouped by the hour of their capture time and
never removed. Eviction belongs to the persistence layer.

Concurrency:
    Each bucket has its own lock, so writers to different hours never
    block each other. Reads return frozen TimeBucket snapshots copied
    under the bucket lock, so a reader never sees a half-applied append.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional

from mentionguard.shared.models import (
    BUCKET_WIDTH,
    Signal,
    TimeBucket,
    bucket_key_for,
)

logger = logging.getLogger(__name__)


class TimeBucketStore(ABC):
    """Storage interface for hourly signal buckets."""

    @abstractmethod
    def append(self, signal: Signal) -> datetime:
        """Append a signal to the bucket for its capture hour.

        Returns:
            Key of the bucket the signal landed in
        """
        pass

    @abstractmethod
    def get_bucket(self, key: datetime) -> Optional[TimeBucket]:
        """Snapshot of the bucket at key, or None if no signal landed there."""
        pass

    def get_preceding_buckets(self, key: datetime, n: int) -> List[TimeBucket]:
        """Snapshots of up to n hourly buckets strictly before key.

        Returned oldest-first. Hours without data are skipped, not
        zero-filled.
        """
        key = bucket_key_for(key)
        buckets = []
        for offset in range(n, 0, -1):
            bucket = self.get_bucket(key - offset * BUCKET_WIDTH)
            if bucket is not None:
                buckets.append(bucket)
        return buckets


class _LiveBucket:
    """Mutable bucket owned by the in-memory store."""

    __slots__ = ("key", "started_at", "signals", "lock")

    def __init__(self, key: datetime, started_at: datetime):
        self.key = key
        self.started_at = started_at
        self.signals: List[Signal] = []
        self.lock = Lock()

    def snapshot(self) -> TimeBucket:
        with self.lock:
            return TimeBucket(
                key=self.key,
                started_at=self.started_at,
                signals=tuple(self.signals),
            )


class InMemoryTimeBucketStore(TimeBucketStore):
    """Process-local bucket store."""

    def __init__(self):
        self._buckets: Dict[datetime, _LiveBucket] = {}
        self._lock = Lock()  # Guards bucket creation only

        logger.info("BUCKET_STORE_INITIALIZED", extra={"backend": "memory"})

    def _bucket_for(self, key: datetime, started_at: datetime) -> _LiveBucket:
        bucket = self._buckets.get(key)
        if bucket is not None:
            return bucket
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _LiveBucket(key, started_at)
                self._buckets[key] = bucket
                logger.info(
                    "BUCKET_CREATED",
                    extra={"bucket_key": key.isoformat()}
                )
            return bucket

    def append(self, signal: Signal) -> datetime:
        key = bucket_key_for(signal.captured_at)
        bucket = self._bucket_for(key, signal.captured_at)
        with bucket.lock:
            bucket.signals.append(signal)
            volume = len(bucket.signals)

        logger.debug(
            "SIGNAL_APPENDED",
            extra={
                "signal_id": signal.id,
                "bucket_key": key.isoformat(),
                "bucket_volume": volume,
            }
        )
        return key

    def get_bucket(self, key: datetime) -> Optional[TimeBucket]:
        bucket = self._buckets.get(bucket_key_for(key))
        if bucket is None:
            return None
        return bucket.snapshot()

    def bucket_count(self) -> int:
        return len(self._buckets)
