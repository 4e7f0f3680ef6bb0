"""Crisis, escalation and rule domain models.

A Crisis is created only by the lifecycle on a positive detection and is
mutated only through lifecycle operations. It is never deleted, only
resolved; its timeline is the append-only audit trail.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class CrisisStatus(Enum):
    """Lifecycle states. RESOLVED is terminal."""
    ACTIVE = "active"
    RESOLVED = "resolved"


class CrisisSeverity(Enum):
    """Discrete urgency level derived from the composite score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    CrisisSeverity.CRITICAL: 4,
    CrisisSeverity.HIGH: 3,
    CrisisSeverity.MEDIUM: 2,
    CrisisSeverity.LOW: 1,
}


class EscalationPriority(Enum):
    URGENT = "urgent"   # Critical crises
    HIGH = "high"


@dataclass(frozen=True)
class CrisisTriggers:
    """Which built-in detectors fired."""
    volume_spike: bool = False
    negative_sentiment: bool = False
    viral_spread: bool = False

    def any(self) -> bool:
        return self.volume_spike or self.negative_sentiment or self.viral_spread

    def overlaps(self, other: "CrisisTriggers") -> bool:
        """True if at least one detector fired in both trigger sets."""
        return (
            (self.volume_spike and other.volume_spike)
            or (self.negative_sentiment and other.negative_sentiment)
            or (self.viral_spread and other.viral_spread)
        )

    def to_dict(self) -> dict:
        return {
            "volume_spike": self.volume_spike,
            "negative_sentiment": self.negative_sentiment,
            "viral_spread": self.viral_spread,
        }


@dataclass(frozen=True)
class TimelineEvent:
    event: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "event": self.event,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }


@dataclass(frozen=True)
class CrisisNote:
    note: str
    added_at: datetime
    author: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "note": self.note,
            "added_at": self.added_at.isoformat(),
            "author": self.author,
        }


@dataclass(frozen=True)
class Assignment:
    user_id: str
    assigned_at: datetime
    user_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "assigned_at": self.assigned_at.isoformat(),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Crisis:
    """Mutable crisis entity tracked by the lifecycle.

    Repositories hand out copies; callers persist changes with save().
    """
    id: str
    status: CrisisStatus
    severity: CrisisSeverity
    triggers: CrisisTriggers
    detected_at: datetime
    bucket_key: datetime
    score: int = 0
    source: str = "detector"
    mention_ids: List[str] = field(default_factory=list)
    total_mentions: int = 0
    peak_volume: int = 0
    total_reach: int = 0
    average_sentiment: float = 0.0
    escalated: bool = False
    escalated_at: Optional[datetime] = None
    assigned_to: Optional[Assignment] = None
    notes: List[CrisisNote] = field(default_factory=list)
    timeline: List[TimelineEvent] = field(default_factory=list)
    resolved_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == CrisisStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "severity": self.severity.value,
            "score": self.score,
            "source": self.source,
            "triggers": self.triggers.to_dict(),
            "detected_at": self.detected_at.isoformat(),
            "bucket_key": self.bucket_key.isoformat(),
            "mention_ids": list(self.mention_ids),
            "total_mentions": self.total_mentions,
            "peak_volume": self.peak_volume,
            "total_reach": self.total_reach,
            "average_sentiment": self.average_sentiment,
            "escalated": self.escalated,
            "escalated_at": _iso(self.escalated_at),
            "assigned_to": self.assigned_to.to_dict() if self.assigned_to else None,
            "notes": [n.to_dict() for n in self.notes],
            "timeline": [e.to_dict() for e in self.timeline],
            "resolved_at": _iso(self.resolved_at),
        }


@dataclass(frozen=True)
class EscalationRecord:
    """Append-only record of one escalation action."""
    id: str
    crisis_id: str
    reason: str
    priority: EscalationPriority
    escalated_at: datetime
    escalated_by: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "crisis_id": self.crisis_id,
            "reason": self.reason,
            "priority": self.priority.value,
            "escalated_at": self.escalated_at.isoformat(),
            "escalated_by": self.escalated_by,
        }


@dataclass(frozen=True)
class RuleTriggers:
    """Thresholds a rule author configured. None means unset, not zero."""
    volume_threshold: Optional[int] = None
    negative_sentiment_percentage: Optional[float] = None
    reach_threshold: Optional[int] = None
    keywords: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return (
            self.volume_threshold is None
            and self.negative_sentiment_percentage is None
            and self.reach_threshold is None
            and not self.keywords
        )

    def to_dict(self) -> dict:
        return {
            "volume_threshold": self.volume_threshold,
            "negative_sentiment_percentage": self.negative_sentiment_percentage,
            "reach_threshold": self.reach_threshold,
            "keywords": list(self.keywords),
        }


@dataclass(frozen=True)
class RuleActions:
    auto_escalate: bool = False
    notify_users: Tuple[str, ...] = ()
    assign_to: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "auto_escalate": self.auto_escalate,
            "notify_users": list(self.notify_users),
            "assign_to": self.assign_to,
        }


@dataclass
class CrisisRule:
    """User-authored detection policy, independent of built-in detectors."""
    id: str
    name: str
    triggers: RuleTriggers
    actions: RuleActions
    created_at: datetime
    description: str = ""
    is_active: bool = True
    triggered_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "triggers": self.triggers.to_dict(),
            "actions": self.actions.to_dict(),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "triggered_count": self.triggered_count,
        }
