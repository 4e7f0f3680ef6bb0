"""Crisis handler - library boundary of the crisis engine.

Upstream producers push scored mentions through ingest_signal(); the
dashboard and escalation tooling use the remaining operations. Each call
is synchronous and returns the resulting entity or raises one of the
errors in mentionguard.shared.errors.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from mentionguard.shared.errors import ValidationError
from mentionguard.shared.models import (
    Crisis,
    CrisisRule,
    CrisisSeverity,
    CrisisStatus,
    EscalationRecord,
    Signal,
    parse_timestamp,
)
from .bucket_store import InMemoryTimeBucketStore, TimeBucketStore
from .config import CrisisConfig, SeverityThresholds
from .events import EventPublisher, InMemoryEventPublisher, KinesisEventPublisher
from .lifecycle import CrisisLifecycle, DetectionOutcome
from .query_service import CrisisQueryService
from .repository import (
    CrisisRepository,
    EscalationRepository,
    InMemoryCrisisRepository,
    InMemoryEscalationRepository,
    InMemoryRuleRepository,
    RuleRepository,
)
from .rules import RuleEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Outcome of ingesting one signal."""
    signal: Signal
    bucket_key: datetime
    is_crisis: bool
    crisis: Optional[Crisis] = None
    created: bool = False
    matched_rules: List[CrisisRule] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "signal_id": self.signal.id,
            "bucket_key": self.bucket_key.isoformat(),
            "is_crisis": self.is_crisis,
            "crisis": self.crisis.to_dict() if self.crisis else None,
            "created": self.created,
            "matched_rules": [r.id for r in self.matched_rules],
        }


def build_publisher(config: CrisisConfig) -> EventPublisher:
    """Kinesis when event publishing is enabled, in-process queue otherwise."""
    if config.events_enabled:
        return KinesisEventPublisher(
            stream_name=config.stream_name,
            enabled=True,
            region=config.region,
        )
    return InMemoryEventPublisher()


class CrisisHandler:
    """Wires the bucket store, lifecycle, rule engine and query service."""

    def __init__(
        self,
        config: Optional[CrisisConfig] = None,
        store: Optional[TimeBucketStore] = None,
        crisis_repository: Optional[CrisisRepository] = None,
        escalation_repository: Optional[EscalationRepository] = None,
        rule_repository: Optional[RuleRepository] = None,
        publisher: Optional[EventPublisher] = None,
        thresholds: Optional[SeverityThresholds] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize handler with dependencies.

        Args:
            config: Detection and publishing configuration
            store: Bucket store (in-memory by default)
            crisis_repository: Crisis storage (in-memory by default)
            escalation_repository: Escalation record storage
            rule_repository: Crisis rule storage
            publisher: Outbound event channel (built from config by default)
            thresholds: Severity scoring thresholds
            clock: Returns the current naive UTC time (injected for testing)
        """
        self.config = config or CrisisConfig()
        self._clock = clock or datetime.utcnow
        self.store = store or InMemoryTimeBucketStore()
        self.publisher = publisher or build_publisher(self.config)
        self.crises = crisis_repository or InMemoryCrisisRepository()

        self.lifecycle = CrisisLifecycle(
            store=self.store,
            crisis_repository=self.crises,
            escalation_repository=escalation_repository or InMemoryEscalationRepository(),
            publisher=self.publisher,
            config=self.config,
            thresholds=thresholds,
            clock=self._clock,
        )
        self.rule_engine = RuleEngine(
            lifecycle=self.lifecycle,
            store=self.store,
            rule_repository=rule_repository or InMemoryRuleRepository(),
            publisher=self.publisher,
            config=self.config,
            clock=self._clock,
        )
        self.queries = CrisisQueryService(self.crises)

        logger.info(
            "CRISIS_HANDLER_INITIALIZED",
            extra={"events_enabled": self.config.events_enabled}
        )

    def _coerce_signal(self, payload: Union[Signal, Dict[str, Any]]) -> Signal:
        if isinstance(payload, Signal):
            return payload

        if not isinstance(payload, Mapping):
            logger.warning(
                "SIGNAL_PAYLOAD_DEFAULTED",
                extra={"payload_type": type(payload).__name__}
            )
            payload = {}

        now = self._clock()
        raw_time = payload.get("captured_at")
        if raw_time is None:
            captured_at = now
        else:
            try:
                captured_at = parse_timestamp(raw_time)
            except ValidationError:
                logger.warning(
                    "SIGNAL_TIMESTAMP_DEFAULTED",
                    extra={"signal_id": payload.get("id"), "captured_at": str(raw_time)}
                )
                captured_at = now
        return Signal.from_payload(payload, captured_at)

    def ingest_signal(self, payload: Union[Signal, Dict[str, Any]]) -> IngestResult:
        """Append a signal, run detection on its bucket, then evaluate rules.

        Never fails for malformed input: numeric fields are clamped and an
        unparseable timestamp falls back to ingestion time. A payload that
        is not a mapping is treated as empty. Detection and rule evaluation
        fail independently: a fault in one is logged and does not hide the
        other's result. The appended signal stays in its bucket.

        Args:
            payload: Signal or raw dict with id, sentiment, reach,
                captured_at and optional content

        Returns:
            IngestResult

        Logs:
            - SIGNAL_INGESTED: After append
            - SIGNAL_PAYLOAD_DEFAULTED: Payload was not a mapping
            - CRISIS_DETECTION_FAILED: Detection raised
            - CRISIS_RULES_FAILED: Rule evaluation raised
        """
        signal = self._coerce_signal(payload)
        bucket_key = self.store.append(signal)

        logger.info(
            "SIGNAL_INGESTED",
            extra={
                "signal_id": signal.id,
                "bucket_key": bucket_key.isoformat(),
                "reach": signal.reach,
                "sentiment": signal.sentiment,
            }
        )

        try:
            outcome = self.lifecycle.detect_bucket(bucket_key)
        except Exception:
            logger.exception(
                "CRISIS_DETECTION_FAILED",
                extra={"signal_id": signal.id, "bucket_key": bucket_key.isoformat()}
            )
            outcome = DetectionOutcome(is_crisis=False)

        try:
            matched = self.rule_engine.evaluate(signal)
        except Exception:
            logger.exception(
                "CRISIS_RULES_FAILED",
                extra={"signal_id": signal.id, "bucket_key": bucket_key.isoformat()}
            )
            matched = []

        return IngestResult(
            signal=signal,
            bucket_key=bucket_key,
            is_crisis=outcome.is_crisis,
            crisis=outcome.crisis,
            created=outcome.created,
            matched_rules=matched,
        )

    def escalate_crisis(
        self,
        crisis_id: str,
        reason: str,
        escalated_by: Optional[str] = None,
    ) -> EscalationRecord:
        return self.lifecycle.escalate(crisis_id, reason=reason, escalated_by=escalated_by)

    def update_crisis_status(
        self,
        crisis_id: str,
        status: Union[str, CrisisStatus],
        notes: Optional[str] = None,
    ) -> Crisis:
        return self.lifecycle.update_status(crisis_id, status, notes=notes)

    def assign_crisis(
        self,
        crisis_id: str,
        user_id: str,
        user_name: Optional[str] = None,
    ) -> Crisis:
        return self.lifecycle.assign(crisis_id, user_id, user_name=user_name)

    def add_note(self, crisis_id: str, note: str, author: Optional[str] = None) -> Crisis:
        return self.lifecycle.add_note(crisis_id, note, author=author)

    def get_crisis(self, crisis_id: str) -> Crisis:
        return self.lifecycle.get(crisis_id)

    def list_escalations(self, crisis_id: str) -> List[EscalationRecord]:
        return self.lifecycle.list_escalations(crisis_id)

    def create_crisis_rule(self, definition: Dict[str, Any]) -> CrisisRule:
        return self.rule_engine.create_rule(definition)

    def list_rules(self, active_only: bool = False) -> List[CrisisRule]:
        return self.rule_engine.list_rules(active_only=active_only)

    def set_rule_active(self, rule_id: str, is_active: bool) -> CrisisRule:
        return self.rule_engine.set_rule_active(rule_id, is_active)

    def list_active_crises(
        self,
        severity: Union[str, CrisisSeverity, None] = None,
        escalated_only: bool = False,
    ) -> List[Crisis]:
        return self.queries.list_active(severity=severity, escalated_only=escalated_only)

    def get_statistics(self) -> Dict[str, Any]:
        return self.queries.statistics()
