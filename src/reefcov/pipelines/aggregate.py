"""Reduce per-asset zonal statistics into one covariate per record."""

import logging
from typing import Callable, Optional, Sequence

import numpy as np

from reefcov.models import CovariateResult, CovariateStatus, SurveyRecord, ZonalStatResult

logger = logging.getLogger(__name__)

# Decimal places kept in the aggregate
PRECISION = 2

# How per-asset values of each statistic combine over a window.
# All are order-independent.
REDUCERS: dict[str, Callable[[Sequence[float]], float]] = {
    "max": lambda values: float(np.max(values)),
    "min": lambda values: float(np.min(values)),
    "mean": lambda values: float(np.mean(values)),
    "sum": lambda values: float(np.sum(values)),
}


class RecordAggregator:
    """Combines a record's zonal results using the statistic's reducer.

    Example:
        >>> aggregator = RecordAggregator("max")
        >>> aggregator.aggregate(record, results).aggregate_value
        7.83
    """

    def __init__(self, stat: str = "max", precision: int = PRECISION):
        if stat not in REDUCERS:
            raise ValueError(f"Unsupported stat: {stat}. Must be one of {sorted(REDUCERS)}")
        self.stat = stat
        self.reduce = REDUCERS[stat]
        self.precision = precision

    def aggregate(
        self,
        record: SurveyRecord,
        results: Sequence[ZonalStatResult],
        window_months: Optional[int] = None,
    ) -> CovariateResult:
        """Reduce one record's results.

        Args:
            record: The survey record
            results: One result per matched asset (empty if none matched)
            window_months: Window length, for the warning when nothing matched

        Returns:
            CovariateResult; aggregate_value is None unless status is ok
        """
        if not results:
            logger.warning(
                f"Record {record.record_id}: no assets in the {window_months}-month "
                f"window ending {record.sample_date}"
            )
            return CovariateResult(
                record_id=record.record_id,
                aggregate_value=None,
                status=CovariateStatus.NO_MATCHING_ASSETS,
            )

        succeeded = [r for r in results if r.ok]
        values = [r.value for r in succeeded if r.value is not None]

        if not values:
            return CovariateResult(
                record_id=record.record_id,
                aggregate_value=None,
                status=CovariateStatus.NO_SUCCESSFUL_REQUESTS,
                n_assets=len(results),
                n_succeeded=len(succeeded),
            )

        # Round after reducing, not before
        value = round(self.reduce(values), self.precision)
        return CovariateResult(
            record_id=record.record_id,
            aggregate_value=value,
            status=CovariateStatus.OK,
            n_assets=len(results),
            n_succeeded=len(succeeded),
        )
