"""Read-side aggregation of crises for dashboards."""
import logging
from typing import Any, Dict, List, Optional, Union

from mentionguard.shared.errors import ValidationError
from mentionguard.shared.models import Crisis, CrisisSeverity, CrisisStatus
from .repository import CrisisRepository

logger = logging.getLogger(__name__)


def _parse_severity(severity: Union[str, CrisisSeverity, None]) -> Optional[CrisisSeverity]:
    if severity is None or isinstance(severity, CrisisSeverity):
        return severity
    try:
        return CrisisSeverity(str(severity).lower())
    except ValueError:
        raise ValidationError(f"Unknown severity: {severity!r}")


class CrisisQueryService:
    """Active crisis listing and statistics."""

    def __init__(self, crisis_repository: CrisisRepository):
        self.crises = crisis_repository

    def list_active(
        self,
        severity: Union[str, CrisisSeverity, None] = None,
        escalated_only: bool = False,
    ) -> List[Crisis]:
        """Active crises, most severe first, then newest first.

        Args:
            severity: Only crises at this level (optional)
            escalated_only: Only escalated crises

        Returns:
            Sorted list of active crises
        """
        wanted = _parse_severity(severity)
        results = self.crises.list_active()

        if wanted is not None:
            results = [c for c in results if c.severity == wanted]
        if escalated_only:
            results = [c for c in results if c.escalated]

        results.sort(
            key=lambda c: (c.severity.rank, c.detected_at),
            reverse=True,
        )
        return results

    def statistics(self) -> Dict[str, Any]:
        """Aggregate counts and mean time to resolution.

        avg_resolution_minutes covers resolved crises only; 0 if none.
        """
        all_crises = self.crises.list_all()
        active = [c for c in all_crises if c.status == CrisisStatus.ACTIVE]
        resolved = [
            c for c in all_crises
            if c.status == CrisisStatus.RESOLVED and c.resolved_at is not None
        ]

        if resolved:
            total_minutes = sum(
                (c.resolved_at - c.detected_at).total_seconds() / 60
                for c in resolved
            )
            avg_resolution = round(total_minutes / len(resolved), 2)
        else:
            avg_resolution = 0.0

        stats = {
            "total": len(all_crises),
            "active": len(active),
            "resolved": len(resolved),
            "by_severity": {
                level.value: sum(1 for c in all_crises if c.severity == level)
                for level in CrisisSeverity
            },
            "escalated_count": sum(1 for c in all_crises if c.escalated),
            "avg_resolution_minutes": avg_resolution,
            "critical_active_count": sum(
                1 for c in active if c.severity == CrisisSeverity.CRITICAL
            ),
        }

        logger.info(
            "CRISIS_STATISTICS_COMPUTED",
            extra={"total": stats["total"], "active": stats["active"]}
        )
        return stats
