"""Tests for the crisis handler boundary."""
from datetime import datetime, timedelta

import pytest

from mentionguard.shared.errors import NotFoundError
from mentionguard.shared.models import CrisisSeverity, CrisisStatus
from mentionguard.services.crisis_engine.config import CrisisConfig
from mentionguard.services.crisis_engine.events import (
    CrisisEventType,
    InMemoryEventPublisher,
    KinesisEventPublisher,
)
from mentionguard.services.crisis_engine.handler import CrisisHandler, build_publisher
from .helpers import CURRENT_HOUR, fill_bucket, make_signal, seed_history


@pytest.fixture
def handler(store, publisher, clock):
    return CrisisHandler(store=store, publisher=publisher, clock=clock)


class TestSignalCoercion:
    """Malformed payloads are clamped, never rejected."""

    def test_well_formed_payload(self, handler):
        result = handler.ingest_signal({
            "id": "mention_1",
            "sentiment": -0.6,
            "reach": 15000,
            "captured_at": "2026-01-14T10:05:00Z",
            "content": "Worst support experience ever",
        })

        assert result.signal.id == "mention_1"
        assert result.signal.captured_at == datetime(2026, 1, 14, 10, 5)
        assert result.bucket_key == CURRENT_HOUR
        assert result.is_crisis is False

    def test_out_of_range_values_clamped(self, handler):
        result = handler.ingest_signal({
            "id": "m1",
            "sentiment": 7,
            "reach": -40,
            "captured_at": "2026-01-14T10:05:00",
        })

        assert result.signal.sentiment == 1.0
        assert result.signal.reach == 0

    def test_non_numeric_values_defaulted(self, handler):
        result = handler.ingest_signal({
            "id": "m1",
            "sentiment": "very bad",
            "reach": None,
        })

        assert result.signal.sentiment == 0.0
        assert result.signal.reach == 0

    def test_nan_sentiment_is_neutral(self, handler):
        result = handler.ingest_signal({"id": "m1", "sentiment": float("nan")})
        assert result.signal.sentiment == 0.0

    def test_missing_timestamp_uses_ingestion_time(self, handler, clock):
        result = handler.ingest_signal({"id": "m1", "sentiment": 0.1, "reach": 1})
        assert result.signal.captured_at == clock.now

    def test_unparseable_timestamp_uses_ingestion_time(self, handler, clock):
        result = handler.ingest_signal({"id": "m1", "captured_at": "yesterday-ish"})
        assert result.signal.captured_at == clock.now

    def test_offset_timestamp_normalized_to_utc(self, handler):
        result = handler.ingest_signal({"id": "m1", "captured_at": "2026-01-14T12:05:00+02:00"})
        assert result.signal.captured_at == datetime(2026, 1, 14, 10, 5)

    def test_missing_id_generated(self, handler):
        result = handler.ingest_signal({"sentiment": 0.1})
        assert result.signal.id.startswith("sig_")

    @pytest.mark.parametrize("payload", [None, [], "refund please", 42])
    def test_non_mapping_payload_treated_as_empty(self, handler, clock, payload):
        result = handler.ingest_signal(payload)

        assert result.signal.id.startswith("sig_")
        assert result.signal.captured_at == clock.now
        assert result.signal.sentiment == 0.0
        assert result.signal.reach == 0
        assert result.bucket_key == CURRENT_HOUR

    def test_signal_instance_passes_through(self, handler):
        signal = make_signal("m1", CURRENT_HOUR + timedelta(minutes=2))
        assert handler.ingest_signal(signal).signal is signal


class TestIngestPipeline:
    """Append, detect and evaluate rules per signal."""

    def test_volume_spike_detected_once(self, handler, store):
        """Later signals in the same bucket return the existing crisis."""
        seed_history(store, CURRENT_HOUR, per_hour=1)

        results = [
            handler.ingest_signal(make_signal(f"m{i}", CURRENT_HOUR + timedelta(minutes=i)))
            for i in range(10)
        ]

        assert [r.is_crisis for r in results[:3]] == [False, False, False]
        assert results[3].created is True
        crisis_id = results[3].crisis.id
        assert all(r.is_crisis and not r.created for r in results[4:])
        assert {r.crisis.id for r in results[3:]} == {crisis_id}
        assert len(handler.crises.list_all()) == 1

    def test_critical_crisis_through_ingest(self, handler, store, publisher):
        seed_history(store, CURRENT_HOUR, per_hour=5)
        fill_bucket(store, 59, negative=48)

        result = handler.ingest_signal(make_signal("last", CURRENT_HOUR + timedelta(minutes=30)))

        assert result.created is True
        assert result.crisis.severity == CrisisSeverity.CRITICAL
        assert result.crisis.escalated is True
        event_types = [e.event_type for e in publisher.drain()]
        assert CrisisEventType.CRISIS_ESCALATED in event_types

    def test_matched_rules_reported(self, handler):
        rule = handler.create_crisis_rule({"keywords": ["recall"]})

        result = handler.ingest_signal({"id": "m1", "content": "Is this a recall?"})

        assert [r.id for r in result.matched_rules] == [rule.id]
        assert result.to_dict()["matched_rules"] == [rule.id]

    def test_detection_failure_still_evaluates_rules(self, handler, store, monkeypatch):
        def explode(bucket_key):
            raise RuntimeError("detector bug")

        monkeypatch.setattr(handler.lifecycle, "detect_bucket", explode)
        rule = handler.create_crisis_rule({"keywords": ["recall"]})

        result = handler.ingest_signal(make_signal("m1", CURRENT_HOUR, content="recall notice"))

        assert result.is_crisis is False
        assert result.crisis is None
        assert [r.id for r in result.matched_rules] == [rule.id]
        assert store.get_bucket(CURRENT_HOUR).volume == 1

    def test_rule_failure_keeps_detected_crisis(self, handler, store, publisher, monkeypatch):
        """A faulty rule engine does not hide a crisis detection already opened."""
        def explode(signal):
            raise RuntimeError("rule bug")

        monkeypatch.setattr(handler.rule_engine, "evaluate", explode)
        seed_history(store, CURRENT_HOUR, per_hour=5)
        fill_bucket(store, 59, negative=48)

        result = handler.ingest_signal(make_signal("last", CURRENT_HOUR + timedelta(minutes=30)))

        assert result.is_crisis is True
        assert result.created is True
        assert result.crisis.severity == CrisisSeverity.CRITICAL
        assert result.crisis.escalated is True
        assert result.matched_rules == []
        assert handler.get_crisis(result.crisis.id).escalated is True

    def test_result_to_dict(self, handler):
        payload = handler.ingest_signal(make_signal("m1", CURRENT_HOUR)).to_dict()

        assert payload == {
            "signal_id": "m1",
            "bucket_key": CURRENT_HOUR.isoformat(),
            "is_crisis": False,
            "crisis": None,
            "created": False,
            "matched_rules": [],
        }


class TestCrisisOperations:
    """Handler delegates lifecycle and query operations."""

    def _open_crisis(self, handler, store):
        seed_history(store, CURRENT_HOUR, per_hour=10)
        fill_bucket(store, 34, negative=25)
        return handler.ingest_signal(make_signal("m_last", CURRENT_HOUR + timedelta(minutes=20))).crisis

    def test_full_lifecycle(self, handler, store, clock):
        crisis = self._open_crisis(handler, store)
        assert crisis.severity == CrisisSeverity.MEDIUM

        handler.assign_crisis(crisis.id, "user_1", user_name="Dana")
        handler.add_note(crisis.id, "Drafting statement", author="user_1")
        record = handler.escalate_crisis(crisis.id, reason="manual", escalated_by="user_1")
        clock.advance(minutes=30)
        resolved = handler.update_crisis_status(crisis.id, "resolved", notes="Back to baseline")

        assert resolved.status == CrisisStatus.RESOLVED
        assert handler.get_crisis(crisis.id).assigned_to.user_id == "user_1"
        assert [e.id for e in handler.list_escalations(crisis.id)] == [record.id]
        events = [e.event for e in resolved.timeline]
        assert events == [
            "crisis_detected",
            "crisis_assigned",
            "note_added",
            "crisis_escalated",
            "status_changed_to_resolved",
        ]

        stats = handler.get_statistics()
        assert stats["resolved"] == 1
        assert stats["avg_resolution_minutes"] == 30.0
        assert handler.list_active_crises() == []

    def test_list_active_filters(self, handler, store):
        crisis = self._open_crisis(handler, store)

        assert [c.id for c in handler.list_active_crises(severity="medium")] == [crisis.id]
        assert handler.list_active_crises(escalated_only=True) == []

    def test_unknown_crisis(self, handler):
        with pytest.raises(NotFoundError):
            handler.get_crisis("crisis_missing")
        with pytest.raises(NotFoundError):
            handler.list_escalations("crisis_missing")

    def test_rule_management(self, handler):
        rule = handler.create_crisis_rule({"reach_threshold": 1000})

        handler.set_rule_active(rule.id, False)

        assert handler.list_rules(active_only=True) == []
        assert [r.id for r in handler.list_rules()] == [rule.id]


class TestPublisherSelection:

    def test_in_memory_by_default(self):
        assert isinstance(build_publisher(CrisisConfig()), InMemoryEventPublisher)

    def test_kinesis_when_enabled(self):
        publisher = build_publisher(CrisisConfig(
            events_enabled=True,
            stream_name="crisis-test",
            region="eu-west-1",
        ))

        assert isinstance(publisher, KinesisEventPublisher)
        assert publisher.stream_name == "crisis-test"
        assert publisher.region == "eu-west-1"
