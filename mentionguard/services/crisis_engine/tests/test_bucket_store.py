"""Tests for the hourly bucket store."""
import threading
from datetime import timedelta

from mentionguard.shared.models import bucket_key_for
from .helpers import CURRENT_HOUR, make_signal


class TestAppend:
    """Tests for appending signals to buckets."""

    def test_append_returns_floored_hour_key(self, store):
        key = store.append(make_signal("m1", CURRENT_HOUR + timedelta(minutes=37, seconds=12)))
        assert key == CURRENT_HOUR

    def test_bucket_created_lazily_on_first_signal(self, store):
        assert store.get_bucket(CURRENT_HOUR) is None

        store.append(make_signal("m1", CURRENT_HOUR + timedelta(minutes=5)))

        bucket = store.get_bucket(CURRENT_HOUR)
        assert bucket is not None
        assert bucket.volume == 1
        assert bucket.started_at == CURRENT_HOUR + timedelta(minutes=5)

    def test_signals_kept_in_append_order(self, store):
        for i in range(3):
            store.append(make_signal(f"m{i}", CURRENT_HOUR + timedelta(minutes=i)))

        bucket = store.get_bucket(CURRENT_HOUR)
        assert [s.id for s in bucket.signals] == ["m0", "m1", "m2"]

    def test_get_bucket_accepts_any_time_in_hour(self, store):
        store.append(make_signal("m1", CURRENT_HOUR))
        assert store.get_bucket(CURRENT_HOUR + timedelta(minutes=59)).volume == 1


class TestSnapshots:
    """Reads return copies that later appends cannot change."""

    def test_snapshot_unaffected_by_later_append(self, store):
        store.append(make_signal("m1", CURRENT_HOUR))
        snapshot = store.get_bucket(CURRENT_HOUR)

        store.append(make_signal("m2", CURRENT_HOUR))

        assert snapshot.volume == 1
        assert store.get_bucket(CURRENT_HOUR).volume == 2

    def test_snapshot_signals_are_a_tuple(self, store):
        store.append(make_signal("m1", CURRENT_HOUR))
        assert isinstance(store.get_bucket(CURRENT_HOUR).signals, tuple)


class TestPrecedingBuckets:
    """Tests for historical bucket lookup."""

    def test_oldest_first_skipping_missing_hours(self, store):
        store.append(make_signal("a", CURRENT_HOUR - timedelta(hours=5)))
        store.append(make_signal("b", CURRENT_HOUR - timedelta(hours=2)))
        store.append(make_signal("c", CURRENT_HOUR - timedelta(hours=1)))

        buckets = store.get_preceding_buckets(CURRENT_HOUR, 24)

        assert [b.key for b in buckets] == [
            CURRENT_HOUR - timedelta(hours=5),
            CURRENT_HOUR - timedelta(hours=2),
            CURRENT_HOUR - timedelta(hours=1),
        ]

    def test_excludes_current_bucket(self, store):
        store.append(make_signal("now", CURRENT_HOUR))
        assert store.get_preceding_buckets(CURRENT_HOUR, 24) == []

    def test_limited_to_n_hours(self, store):
        store.append(make_signal("old", CURRENT_HOUR - timedelta(hours=25)))
        store.append(make_signal("recent", CURRENT_HOUR - timedelta(hours=3)))

        buckets = store.get_preceding_buckets(CURRENT_HOUR, 24)

        assert len(buckets) == 1
        assert buckets[0].signals[0].id == "recent"


class TestConcurrentAppends:
    """Concurrent producers must not lose signals."""

    def test_no_lost_appends_to_same_bucket(self, store):
        def producer(worker: int):
            for i in range(250):
                store.append(make_signal(f"w{worker}_{i}", CURRENT_HOUR + timedelta(seconds=i)))

        threads = [threading.Thread(target=producer, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get_bucket(CURRENT_HOUR).volume == 2000
        assert store.bucket_count() == 1

    def test_appends_across_hours(self, store):
        def producer(hour: int):
            start = CURRENT_HOUR - timedelta(hours=hour)
            for i in range(100):
                store.append(make_signal(f"h{hour}_{i}", start + timedelta(seconds=i)))

        threads = [threading.Thread(target=producer, args=(h,)) for h in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for h in range(6):
            key = bucket_key_for(CURRENT_HOUR - timedelta(hours=h))
            assert store.get_bucket(key).volume == 100
