"""Shared domain models for the MentionGuard crisis engine."""
from .signal import (
    BUCKET_WIDTH,
    Baseline,
    Signal,
    TimeBucket,
    bucket_key_for,
    parse_timestamp,
)
from .crisis import (
    Assignment,
    Crisis,
    CrisisNote,
    CrisisRule,
    CrisisSeverity,
    CrisisStatus,
    CrisisTriggers,
    EscalationPriority,
    EscalationRecord,
    RuleActions,
    RuleTriggers,
    TimelineEvent,
)

__all__ = [
    "BUCKET_WIDTH",
    "Baseline",
    "Signal",
    "TimeBucket",
    "bucket_key_for",
    "parse_timestamp",
    "Assignment",
    "Crisis",
    "CrisisNote",
    "CrisisRule",
    "CrisisSeverity",
    "CrisisStatus",
    "CrisisTriggers",
    "EscalationPriority",
    "EscalationRecord",
    "RuleActions",
    "RuleTriggers",
    "TimelineEvent",
]
