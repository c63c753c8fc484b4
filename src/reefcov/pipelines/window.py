"""Trailing monthly windows over the asset index.

Windows are counted in calendar months, never fixed-length day steps: a
3-month window ending 2024-03-31 is January, February and March 2024.
"""

from datetime import date

import pandas as pd

from reefcov.models import AssetDescriptor, AssetIndex, SurveyRecord, WindowQuery


def select_window(sample_date: date, window_months: int) -> list[str]:
    """Monthly buckets covering the window ending at ``sample_date``.

    Args:
        sample_date: Last day covered by the window
        window_months: Number of calendar months, including the sample month

    Returns:
        ``window_months`` distinct YYYY-MM keys, oldest first

    Raises:
        ValueError: If window_months < 1
    """
    if window_months < 1:
        raise ValueError(f"window_months must be >= 1, got {window_months}")

    end = pd.Period(pd.Timestamp(sample_date), freq="M")
    return [(end - offset).strftime("%Y-%m") for offset in range(window_months - 1, -1, -1)]


def build_window_query(record: SurveyRecord, window_months: int) -> WindowQuery:
    return WindowQuery(
        record_id=record.record_id,
        time_buckets=tuple(select_window(record.sample_date, window_months)),
    )


def resolve_window(index: AssetIndex, time_buckets) -> list[AssetDescriptor]:
    """Assets for the given buckets, in bucket order.

    Buckets missing from the index are skipped.
    """
    assets: list[AssetDescriptor] = []
    for bucket in time_buckets:
        assets.extend(index.lookup(bucket))
    return assets
