"""Small statistics shared by the aggregator and the edge simulator."""

from __future__ import annotations

import math

import numpy as np

from risk_lab.core.contracts import DistributionBucket

DISTRIBUTION_BUCKETS = 20


def nearest_rank(sorted_values: np.ndarray, p: float) -> float:
    """Nearest-rank percentile of an ascending array: ``ceil(p/100 * n) - 1``."""
    n = len(sorted_values)
    if n == 0:
        raise ValueError("percentile of empty array")
    idx = math.ceil(p / 100 * n) - 1
    return sorted_values[max(0, min(idx, n - 1))]


def sharpe(values: np.ndarray) -> float:
    """Mean over population std. 0 when there is no dispersion."""
    if len(values) == 0:
        return 0.0
    std = float(np.std(values))
    return float(np.mean(values)) / std if std > 0 else 0.0


def downside_deviation(values: np.ndarray, target: float = 0.0) -> float:
    """Root mean square of shortfalls below ``target``, over all values."""
    if len(values) == 0:
        return 0.0
    shortfall = np.minimum(values - target, 0.0)
    return float(np.sqrt(np.mean(shortfall**2)))


def sortino(values: np.ndarray) -> float:
    dd = downside_deviation(values)
    return float(np.mean(values)) / dd if dd > 0 else 0.0


def distribution(
    values: np.ndarray, bucket_count: int = DISTRIBUTION_BUCKETS
) -> list[DistributionBucket]:
    """Equal-width histogram between min and max, last bucket closed."""
    n = len(values)
    if n == 0:
        return []
    lo = float(np.min(values))
    hi = float(np.max(values))
    width = (hi - lo) / bucket_count or 1.0

    buckets: list[DistributionBucket] = []
    for i in range(bucket_count):
        start = lo + i * width
        end = lo + (i + 1) * width
        if i == bucket_count - 1:
            end = max(end, hi)
            count = int(np.count_nonzero((values >= start) & (values <= end)))
        else:
            count = int(np.count_nonzero((values >= start) & (values < end)))
        buckets.append(
            DistributionBucket(
                range_start=start,
                range_end=end,
                count=count,
                percentage=count / n * 100,
            )
        )
    return buckets
