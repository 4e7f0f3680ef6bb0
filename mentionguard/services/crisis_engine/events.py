"""Crisis event definitions and publishing.

Detection and escalation emit events on an outbound channel instead of
calling the notification service directly. Delivery failures are logged
and never fail the lifecycle operation that produced the event.
"""
import json
import logging
import queue
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

logger = logging.getLogger(__name__)


class CrisisEventType(Enum):
    """Types of events consumed by the notification collaborator."""
    CRISIS_DETECTED = "crisis.detected"
    CRISIS_ESCALATED = "crisis.escalated"
    CRISIS_ASSIGNED = "crisis.assigned"
    CRISIS_STATUS_CHANGED = "crisis.status_changed"
    CRISIS_RESOLVED = "crisis.resolved"
    RULE_TRIGGERED = "crisis.rule.triggered"


@dataclass(frozen=True)
class CrisisEvent:
    """Immutable event for the outbound stream."""
    event_id: str
    event_type: CrisisEventType
    crisis_id: Optional[str]
    severity: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    notify_users: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def create(
        cls,
        event_type: CrisisEventType,
        crisis_id: Optional[str],
        severity: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        notify_users: Optional[List[str]] = None,
        timestamp: Optional[datetime] = None,
    ) -> "CrisisEvent":
        """Factory method with a generated event id."""
        return cls(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            event_type=event_type,
            crisis_id=crisis_id,
            severity=severity,
            data=data or {},
            notify_users=notify_users or [],
            timestamp=timestamp or datetime.utcnow(),
        )

    def to_event_payload(self) -> dict:
        """Convert to event stream payload format.

        Returns:
            Dictionary suitable for Kinesis put_record
        """
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat() + "Z",
            "source": "crisis-engine",
            "data": {
                "crisis_id": self.crisis_id,
                "severity": self.severity,
                "notify_users": self.notify_users,
                **self.data,
            }
        }


class EventPublisher(ABC):
    """Outbound channel for crisis events."""

    @abstractmethod
    def publish(self, event: CrisisEvent) -> bool:
        """Publish an event. Returns True if it was accepted."""
        pass


class InMemoryEventPublisher(EventPublisher):
    """Queue-backed channel for local runs and tests.

    The notification collaborator consumes with get() or drain().
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[CrisisEvent]" = queue.Queue(maxsize=maxsize)

    def publish(self, event: CrisisEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.error(
                "CRISIS_EVENT_QUEUE_FULL",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type.value,
                }
            )
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> CrisisEvent:
        return self._queue.get(timeout=timeout)

    def drain(self) -> List[CrisisEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class KinesisEventPublisher(EventPublisher):
    """Publishes crisis events to a Kinesis stream.

    Failure Handling:
        - Publishing failure does NOT block detection or escalation
        - Failures are logged at ERROR level for alerting
    """

    def __init__(
        self,
        stream_name: str = "mentionguard-crisis-events",
        enabled: bool = True,
        region: str = "us-east-1",
    ):
        """Initialize publisher.

        Args:
            stream_name: Kinesis stream name
            enabled: Whether publishing is enabled (disable for local dev)
            region: AWS region
        """
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region
        self._kinesis_client = None

        logger.info(
            "CRISIS_EVENT_PUBLISHER_INITIALIZED",
            extra={
                "stream_name": stream_name,
                "enabled": enabled,
                "region": region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                import boto3
                self._kinesis_client = boto3.client(
                    "kinesis",
                    region_name=self.region,
                )
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_INIT_FAILED",
                    extra={"error": str(e)}
                )
        return self._kinesis_client

    def publish(self, event: CrisisEvent) -> bool:
        """Publish a crisis event to the stream.

        Returns:
            True if published successfully

        Logs:
            - CRISIS_EVENT_PUBLISH_SKIPPED: Publisher disabled
            - CRISIS_EVENT_PUBLISHED: After successful publish
            - CRISIS_EVENT_PUBLISH_FAILED: On failure
        """
        if not self.enabled:
            logger.info(
                "CRISIS_EVENT_PUBLISH_SKIPPED",
                extra={"event_id": event.event_id, "reason": "disabled"}
            )
            return False

        payload = event.to_event_payload()

        try:
            client = self.kinesis_client
            if client is None:
                logger.warning(
                    "CRISIS_EVENT_FALLBACK_LOG",
                    extra={"event_id": event.event_id, "payload": json.dumps(payload)}
                )
                return False

            response = client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(payload),
                PartitionKey=event.crisis_id or event.event_id,
            )

            logger.info(
                "CRISIS_EVENT_PUBLISHED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type.value,
                    "crisis_id": event.crisis_id,
                    "shard_id": response.get("ShardId"),
                }
            )
            return True

        except Exception as e:
            logger.error(
                "CRISIS_EVENT_PUBLISH_FAILED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type.value,
                    "error": str(e),
                }
            )
            return False
