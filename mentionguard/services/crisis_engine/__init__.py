"""Crisis Engine: brand-mention anomaly detection and escalation.

Watches a stream of scored mentions and decides continuously whether
the current hour is a crisis:
1. Signals are appended to hourly buckets
2. A rolling 24h baseline is computed from preceding buckets
3. Volume, negative sentiment and viral detectors run over the bucket
4. A composite score sets severity; critical crises auto-escalate
5. User-defined rules are evaluated independently per signal

Endpoints (http_handler):
- POST /signals - Ingest a scored mention
- POST /crisis/<id>/escalate - Escalate crisis
- PUT /crisis/<id>/status - Update or resolve crisis
- POST /crisis/<id>/assign - Assign crisis
- GET /crisis/active - List active crises
- GET /crisis/statistics - Dashboard statistics
"""

from .handler import CrisisHandler, IngestResult
from .config import CrisisConfig, SeverityThresholds
from .bucket_store import TimeBucketStore, InMemoryTimeBucketStore
from .baseline import BaselineCalculator
from .detectors import SignalDetectors, DetectionResult
from .scorer import SeverityScorer, SeverityScore
from .lifecycle import CrisisLifecycle, DetectionOutcome
from .rules import RuleEngine
from .query_service import CrisisQueryService
from .events import (
    CrisisEvent,
    CrisisEventType,
    EventPublisher,
    InMemoryEventPublisher,
    KinesisEventPublisher,
)

__all__ = [
    "CrisisHandler",
    "IngestResult",
    "CrisisConfig",
    "SeverityThresholds",
    "TimeBucketStore",
    "InMemoryTimeBucketStore",
    "BaselineCalculator",
    "SignalDetectors",
    "DetectionResult",
    "SeverityScorer",
    "SeverityScore",
    "CrisisLifecycle",
    "DetectionOutcome",
    "RuleEngine",
    "CrisisQueryService",
    "CrisisEvent",
    "CrisisEventType",
    "EventPublisher",
    "InMemoryEventPublisher",
    "KinesisEventPublisher",
]
