"""Rolling baseline of hourly mention volume."""
import logging
from datetime import datetime
from typing import Optional

from mentionguard.shared.models import Baseline
from .bucket_store import TimeBucketStore
from .config import CrisisConfig

logger = logging.getLogger(__name__)


class BaselineCalculator:
    """Averages bucket volume over the hours preceding the current one.

    Hours with no data are excluded from both numerator and denominator,
    so sparse periods and cold start do not drag the average toward zero.
    """

    def __init__(
        self,
        store: TimeBucketStore,
        config: Optional[CrisisConfig] = None,
    ):
        self.store = store
        self.config = config or CrisisConfig()

    def compute(self, current_key: datetime) -> Baseline:
        """Compute the baseline for the bucket at current_key.

        Args:
            current_key: Key of the bucket under evaluation (excluded)

        Returns:
            Baseline; sample_count == 0 when there is no history
        """
        history = self.store.get_preceding_buckets(
            current_key, self.config.baseline_hours
        )
        if not history:
            return Baseline(average=0.0, sample_count=0)

        total = sum(bucket.volume for bucket in history)
        baseline = Baseline(
            average=total / len(history),
            sample_count=len(history),
        )

        logger.debug(
            "BASELINE_COMPUTED",
            extra={
                "bucket_key": current_key.isoformat(),
                "average": baseline.average,
                "sample_count": baseline.sample_count,
            }
        )
        return baseline
