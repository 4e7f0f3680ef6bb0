"""Crisis lifecycle - detect, escalate, assign, resolve.

State machine:
    none -> active -> active (escalated) -> resolved

RESOLVED is terminal. A recurrence after resolution creates a new crisis.

Concurrency:
    - Mutations of one crisis are serialized by a per-crisis lock.
    - The cooldown check in detect() (find-then-create) is serialized by
      a lock scoped to the bucket key, so unrelated buckets never contend.
    - Rule-opened crises (ensure_open_crisis) look across all buckets and
      are serialized by a single lock of their own.
    - Keyed locks exist only while a caller holds or waits on them.
    - Lock order is always bucket lock -> crisis lock.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Hashable, Iterator, List, Optional, Tuple, Union
import uuid

from mentionguard.shared.errors import InvalidStateError, NotFoundError, ValidationError
from mentionguard.shared.models import (
    Assignment,
    Baseline,
    Crisis,
    CrisisNote,
    CrisisSeverity,
    CrisisStatus,
    CrisisTriggers,
    EscalationPriority,
    EscalationRecord,
    Signal,
    TimeBucket,
    TimelineEvent,
    bucket_key_for,
)
from .baseline import BaselineCalculator
from .bucket_store import TimeBucketStore
from .config import CrisisConfig, SeverityThresholds
from .detectors import DetectionResult, SignalDetectors
from .events import CrisisEvent, CrisisEventType, EventPublisher, InMemoryEventPublisher
from .repository import (
    CrisisRepository,
    EscalationRepository,
    InMemoryCrisisRepository,
    InMemoryEscalationRepository,
)
from .scorer import SeverityScorer

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class DetectionOutcome:
    """Result of one detection pass.

    created is False when the cooldown guard returned an existing crisis.
    """
    is_crisis: bool
    crisis: Optional[Crisis] = None
    detection: Optional[DetectionResult] = None
    created: bool = False


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = Lock()
        self.users = 0


class KeyedLocks:
    """One lock per key, dropped when the last holder or waiter leaves."""

    def __init__(self):
        self._guard = Lock()
        self._entries: Dict[Hashable, _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]


def _parse_status(status: Union[str, CrisisStatus]) -> CrisisStatus:
    if isinstance(status, CrisisStatus):
        return status
    try:
        return CrisisStatus(str(status).lower())
    except ValueError:
        raise ValidationError(f"Unknown crisis status: {status!r}")


class CrisisLifecycle:
    """Creates crises from detections and applies lifecycle transitions."""

    def __init__(
        self,
        store: TimeBucketStore,
        crisis_repository: Optional[CrisisRepository] = None,
        escalation_repository: Optional[EscalationRepository] = None,
        publisher: Optional[EventPublisher] = None,
        config: Optional[CrisisConfig] = None,
        thresholds: Optional[SeverityThresholds] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize lifecycle with dependencies.

        Args:
            store: Bucket store detection reads from
            crisis_repository: Crisis storage (in-memory by default)
            escalation_repository: Escalation record storage
            publisher: Outbound event channel for notifications
            config: Detection configuration
            thresholds: Severity scoring thresholds
            clock: Returns the current naive UTC time (injected for testing)
        """
        self.store = store
        self.config = config or CrisisConfig()
        self.crises = crisis_repository or InMemoryCrisisRepository()
        self.escalations = escalation_repository or InMemoryEscalationRepository()
        self.publisher = publisher or InMemoryEventPublisher()
        self.baseline_calculator = BaselineCalculator(store, self.config)
        self.detectors = SignalDetectors(self.config)
        self.scorer = SeverityScorer(thresholds)
        self._clock = clock or datetime.utcnow

        self._crisis_locks = KeyedLocks()
        self._bucket_locks = KeyedLocks()
        self._rule_open_lock = Lock()

        logger.info(
            "CRISIS_LIFECYCLE_INITIALIZED",
            extra={
                "volume_multiplier": self.config.volume_multiplier,
                "baseline_hours": self.config.baseline_hours,
            }
        )

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _require(self, crisis_id: str) -> Crisis:
        crisis = self.crises.get(crisis_id)
        if crisis is None:
            logger.warning("CRISIS_NOT_FOUND", extra={"crisis_id": crisis_id})
            raise NotFoundError(f"Crisis not found: {crisis_id}")
        return crisis

    def _emit(self, event: CrisisEvent) -> None:
        try:
            self.publisher.publish(event)
        except Exception as e:
            logger.error(
                "CRISIS_EVENT_PUBLISH_FAILED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type.value,
                    "crisis_id": event.crisis_id,
                    "error": str(e),
                }
            )

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect_bucket(self, bucket_key: datetime) -> DetectionOutcome:
        """Snapshot the bucket and its baseline, then run detect()."""
        bucket = self.store.get_bucket(bucket_key)
        if bucket is None:
            return DetectionOutcome(is_crisis=False)
        baseline = self.baseline_calculator.compute(bucket.key)
        return self.detect(bucket, baseline)

    def detect(self, bucket: TimeBucket, baseline: Baseline) -> DetectionOutcome:
        """Run all detectors over a bucket snapshot.

        If any detector fires and an active crisis from the same bucket
        with an overlapping trigger set exists, that crisis is returned
        unchanged. Otherwise a new crisis is created; critical crises are
        escalated before this method returns.

        Args:
            bucket: Snapshot of the bucket under evaluation
            baseline: Baseline computed for that bucket

        Returns:
            DetectionOutcome

        Logs:
            - CRISIS_DEDUPLICATED: Cooldown guard matched an existing crisis
            - CRISIS_DETECTED: New crisis created (critical)
        """
        detection = self.detectors.run(bucket, baseline)
        if not detection.is_crisis:
            return DetectionOutcome(is_crisis=False, detection=detection)

        triggers = detection.triggers
        with self._bucket_locks.hold(bucket.key):
            for existing in self.crises.find_active_in_bucket(bucket.key):
                if existing.triggers.overlaps(triggers):
                    logger.info(
                        "CRISIS_DEDUPLICATED",
                        extra={
                            "crisis_id": existing.id,
                            "bucket_key": bucket.key.isoformat(),
                            "bucket_volume": bucket.volume,
                        }
                    )
                    return DetectionOutcome(
                        is_crisis=True,
                        crisis=existing,
                        detection=detection,
                        created=False,
                    )

            crisis = self._create_from_detection(bucket, detection)

        self._emit(CrisisEvent.create(
            CrisisEventType.CRISIS_DETECTED,
            crisis_id=crisis.id,
            severity=crisis.severity.value,
            data={"triggers": triggers.to_dict(), "score": crisis.score},
            timestamp=crisis.detected_at,
        ))

        if crisis.severity == CrisisSeverity.CRITICAL:
            try:
                self.escalate(crisis.id, reason="auto")
            except InvalidStateError:
                # Already escalated or resolved by a concurrent caller
                logger.info("CRISIS_AUTO_ESCALATION_SKIPPED", extra={"crisis_id": crisis.id})
            crisis = self._require(crisis.id)

        return DetectionOutcome(
            is_crisis=True,
            crisis=crisis,
            detection=detection,
            created=True,
        )

    def _create_from_detection(
        self,
        bucket: TimeBucket,
        detection: DetectionResult,
    ) -> Crisis:
        severity = self.scorer.score(detection)
        signals = bucket.signals
        now = self._clock()

        crisis = Crisis(
            id=f"crisis_{uuid.uuid4().hex[:12]}",
            status=CrisisStatus.ACTIVE,
            severity=severity.level,
            triggers=detection.triggers,
            detected_at=now,
            bucket_key=bucket.key,
            score=severity.score,
            source="detector",
            mention_ids=[s.id for s in signals],
            total_mentions=len(signals),
            peak_volume=len(signals),
            total_reach=sum(s.reach for s in signals),
            average_sentiment=(
                sum(s.sentiment for s in signals) / len(signals) if signals else 0.0
            ),
            timeline=[
                TimelineEvent(
                    event="crisis_detected",
                    timestamp=now,
                    details={
                        "triggers": detection.triggers.to_dict(),
                        "score": severity.score,
                        "multiplier_observed": detection.volume.multiplier_observed,
                        "negative_percentage": detection.sentiment.percentage,
                        "total_reach": detection.viral.total_reach,
                    },
                )
            ],
        )
        self.crises.save(crisis)

        logger.critical(
            "CRISIS_DETECTED",
            extra={
                "crisis_id": crisis.id,
                "bucket_key": bucket.key.isoformat(),
                "severity": crisis.severity.value,
                "score": crisis.score,
                "volume_spike": crisis.triggers.volume_spike,
                "negative_sentiment": crisis.triggers.negative_sentiment,
                "viral_spread": crisis.triggers.viral_spread,
            }
        )
        return crisis

    def ensure_open_crisis(self, signal: Signal, source: str) -> Tuple[Crisis, bool]:
        """Return the most recent active crisis, opening a minimal one if none.

        Used by rule actions that need a crisis to act on.

        Returns:
            (crisis, created)
        """
        bucket_key = bucket_key_for(signal.captured_at)
        with self._rule_open_lock:
            existing = self.crises.most_recent_active()
            if existing is not None:
                return existing, False

            now = self._clock()
            crisis = Crisis(
                id=f"crisis_{uuid.uuid4().hex[:12]}",
                status=CrisisStatus.ACTIVE,
                severity=CrisisSeverity.LOW,
                triggers=CrisisTriggers(),
                detected_at=now,
                bucket_key=bucket_key,
                source=source,
                mention_ids=[signal.id],
                total_mentions=1,
                peak_volume=1,
                total_reach=signal.reach,
                average_sentiment=signal.sentiment,
                timeline=[
                    TimelineEvent(
                        event="crisis_opened",
                        timestamp=now,
                        details={"source": source, "signal_id": signal.id},
                    )
                ],
            )
            self.crises.save(crisis)

        logger.warning(
            "CRISIS_OPENED_BY_RULE",
            extra={"crisis_id": crisis.id, "source": source}
        )
        self._emit(CrisisEvent.create(
            CrisisEventType.CRISIS_DETECTED,
            crisis_id=crisis.id,
            severity=crisis.severity.value,
            data={"source": source},
            timestamp=now,
        ))
        return crisis, True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def escalate(
        self,
        crisis_id: str,
        reason: str,
        escalated_by: Optional[str] = None,
    ) -> EscalationRecord:
        """Escalate a crisis for higher-priority handling.

        A crisis is escalated at most once.

        Raises:
            NotFoundError: Unknown crisis id
            InvalidStateError: Crisis is resolved or already escalated
        """
        if reason == "auto" or reason.startswith("rule:"):
            escalated_by = SYSTEM_ACTOR

        with self._crisis_locks.hold(crisis_id):
            crisis = self._require(crisis_id)
            if crisis.status == CrisisStatus.RESOLVED:
                logger.warning(
                    "CRISIS_ESCALATE_REJECTED",
                    extra={"crisis_id": crisis_id, "reason": "resolved"}
                )
                raise InvalidStateError(f"Cannot escalate resolved crisis: {crisis_id}")
            if crisis.escalated:
                logger.warning(
                    "CRISIS_ESCALATE_REJECTED",
                    extra={"crisis_id": crisis_id, "reason": "already_escalated"}
                )
                raise InvalidStateError(f"Crisis already escalated: {crisis_id}")

            now = self._clock()
            crisis.escalated = True
            crisis.escalated_at = now
            crisis.timeline.append(TimelineEvent(
                event="crisis_escalated",
                timestamp=now,
                details={"reason": reason, "escalated_by": escalated_by},
            ))
            self.crises.save(crisis)

            record = EscalationRecord(
                id=f"esc_{uuid.uuid4().hex[:12]}",
                crisis_id=crisis_id,
                reason=reason,
                priority=(
                    EscalationPriority.URGENT
                    if crisis.severity == CrisisSeverity.CRITICAL
                    else EscalationPriority.HIGH
                ),
                escalated_at=now,
                escalated_by=escalated_by,
            )
            self.escalations.add(record)

        logger.critical(
            "CRISIS_ESCALATED",
            extra={
                "crisis_id": crisis_id,
                "escalation_id": record.id,
                "reason": reason,
                "priority": record.priority.value,
                "severity": crisis.severity.value,
            }
        )
        self._emit(CrisisEvent.create(
            CrisisEventType.CRISIS_ESCALATED,
            crisis_id=crisis_id,
            severity=crisis.severity.value,
            data={
                "escalation_id": record.id,
                "reason": reason,
                "priority": record.priority.value,
            },
            timestamp=now,
        ))
        return record

    def update_status(
        self,
        crisis_id: str,
        status: Union[str, CrisisStatus],
        notes: Optional[str] = None,
    ) -> Crisis:
        """Change crisis status.

        Resolving an already resolved crisis is a no-op apart from a
        timeline entry recording the repeated call; resolved_at keeps its
        first value. Re-opening a resolved crisis is not supported.

        Raises:
            NotFoundError: Unknown crisis id
            ValidationError: Unknown status value
            InvalidStateError: Attempt to re-open a resolved crisis
        """
        new_status = _parse_status(status)

        with self._crisis_locks.hold(crisis_id):
            crisis = self._require(crisis_id)
            now = self._clock()

            if crisis.status == CrisisStatus.RESOLVED:
                if new_status != CrisisStatus.RESOLVED:
                    raise InvalidStateError(f"Cannot re-open resolved crisis: {crisis_id}")
                crisis.timeline.append(TimelineEvent(
                    event="duplicate_resolution",
                    timestamp=now,
                    details={"notes": notes},
                ))
                self.crises.save(crisis)
                logger.info(
                    "CRISIS_ALREADY_RESOLVED",
                    extra={"crisis_id": crisis_id}
                )
                return crisis

            crisis.status = new_status
            if new_status == CrisisStatus.RESOLVED:
                crisis.resolved_at = now
            if notes:
                crisis.notes.append(CrisisNote(note=notes, added_at=now))
            crisis.timeline.append(TimelineEvent(
                event=f"status_changed_to_{new_status.value}",
                timestamp=now,
                details={"notes": notes},
            ))
            self.crises.save(crisis)

        if new_status == CrisisStatus.RESOLVED:
            logger.info(
                "CRISIS_RESOLVED",
                extra={
                    "crisis_id": crisis_id,
                    "time_to_resolve_seconds": (
                        crisis.resolved_at - crisis.detected_at
                    ).total_seconds(),
                }
            )
            event_type = CrisisEventType.CRISIS_RESOLVED
        else:
            event_type = CrisisEventType.CRISIS_STATUS_CHANGED

        self._emit(CrisisEvent.create(
            event_type,
            crisis_id=crisis_id,
            severity=crisis.severity.value,
            data={"status": new_status.value},
            timestamp=now,
        ))
        return crisis

    def assign(
        self,
        crisis_id: str,
        user_id: str,
        user_name: Optional[str] = None,
    ) -> Crisis:
        """Assign a crisis to a team member; the last assignment wins.

        Raises:
            NotFoundError: Unknown crisis id
            ValidationError: Missing user id
            InvalidStateError: Crisis is resolved
        """
        if not user_id:
            raise ValidationError("user_id is required")

        with self._crisis_locks.hold(crisis_id):
            crisis = self._require(crisis_id)
            if crisis.status == CrisisStatus.RESOLVED:
                raise InvalidStateError(f"Cannot assign resolved crisis: {crisis_id}")

            now = self._clock()
            previous = crisis.assigned_to.user_id if crisis.assigned_to else None
            crisis.assigned_to = Assignment(
                user_id=user_id,
                user_name=user_name,
                assigned_at=now,
            )
            crisis.timeline.append(TimelineEvent(
                event="crisis_assigned",
                timestamp=now,
                details={
                    "user_id": user_id,
                    "user_name": user_name,
                    "previous_user_id": previous,
                },
            ))
            self.crises.save(crisis)

        logger.info(
            "CRISIS_ASSIGNED",
            extra={"crisis_id": crisis_id, "user_id": user_id, "previous_user_id": previous}
        )
        self._emit(CrisisEvent.create(
            CrisisEventType.CRISIS_ASSIGNED,
            crisis_id=crisis_id,
            severity=crisis.severity.value,
            data={"user_id": user_id, "user_name": user_name},
            notify_users=[user_id],
            timestamp=now,
        ))
        return crisis

    def add_note(
        self,
        crisis_id: str,
        note: str,
        author: Optional[str] = None,
    ) -> Crisis:
        """Attach a note to a crisis in any state."""
        if not note or not note.strip():
            raise ValidationError("note must not be empty")

        with self._crisis_locks.hold(crisis_id):
            crisis = self._require(crisis_id)
            now = self._clock()
            crisis.notes.append(CrisisNote(note=note, added_at=now, author=author))
            crisis.timeline.append(TimelineEvent(
                event="note_added",
                timestamp=now,
                details={"author": author},
            ))
            self.crises.save(crisis)

        logger.info("CRISIS_NOTE_ADDED", extra={"crisis_id": crisis_id, "author": author})
        return crisis

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, crisis_id: str) -> Crisis:
        return self._require(crisis_id)

    def list_escalations(self, crisis_id: str) -> List[EscalationRecord]:
        self._require(crisis_id)
        return self.escalations.list_for_crisis(crisis_id)
