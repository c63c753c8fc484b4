"""Survey record tables.

Survey data arrives as an exported table (CSV or parquet) with one row per
observation. Required columns:

- id: unique record identifier
- latitude, longitude: decimal degrees
- sample_date: survey date (anything pandas can parse)
- measured_value: surveyed response

``buffer_radius_m`` is optional when a default buffer is supplied. Any other
columns (project, site, depth, ...) travel through to the output table.
"""

import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from reefcov.models import SurveyRecord
from reefcov.utils.io import read_table

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["id", "latitude", "longitude", "sample_date", "measured_value"]
RECORD_COLUMNS = REQUIRED_COLUMNS + ["buffer_radius_m"]


def records_from_dataframe(
    df: pd.DataFrame,
    default_buffer_m: Optional[float] = None,
) -> list[SurveyRecord]:
    """Convert a survey table into SurveyRecords, preserving row order.

    Args:
        df: Survey table
        default_buffer_m: Buffer for rows without ``buffer_radius_m``

    Returns:
        One SurveyRecord per row

    Raises:
        ValueError: If required columns are missing, ids repeat, dates do
            not parse, or a row has no buffer and no default was given.
    """
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Survey table is missing columns: {missing}")

    ids = df["id"].astype(str)
    duplicated = ids[ids.duplicated()].unique().tolist()
    if duplicated:
        raise ValueError(f"Survey table has duplicate ids: {duplicated[:10]}")

    dates = pd.to_datetime(df["sample_date"], errors="coerce")
    if dates.isna().any():
        bad = ids[dates.isna()].tolist()
        raise ValueError(f"Unparseable sample_date for ids: {bad[:10]}")

    if "buffer_radius_m" in df.columns:
        buffers = df["buffer_radius_m"].astype(float)
        if default_buffer_m is not None:
            buffers = buffers.fillna(default_buffer_m)
    elif default_buffer_m is not None:
        buffers = pd.Series(default_buffer_m, index=df.index, dtype=float)
    else:
        raise ValueError("Survey table has no buffer_radius_m column and no default buffer")

    if buffers.isna().any():
        bad = ids[buffers.isna()].tolist()
        raise ValueError(f"No buffer radius for ids: {bad[:10]}")

    extra_columns = [col for col in df.columns if col not in RECORD_COLUMNS]

    records = []
    for i, (_, row) in enumerate(df.iterrows()):
        records.append(SurveyRecord(
            record_id=ids.iloc[i],
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            sample_date=dates.iloc[i].date(),
            buffer_radius_m=float(buffers.iloc[i]),
            measured_value=float(row["measured_value"]),
            extra={col: row[col] for col in extra_columns},
        ))
    return records


def load_survey_records(path: Path, default_buffer_m: Optional[float] = None) -> list[SurveyRecord]:
    """Read a CSV/parquet survey table into SurveyRecords."""
    df = read_table(path)
    records = records_from_dataframe(df, default_buffer_m=default_buffer_m)
    logger.info(f"Loaded {len(records)} survey records from {path}")
    return records


def records_to_dataframe(records: list[SurveyRecord]) -> pd.DataFrame:
    """Inverse of records_from_dataframe, with extra columns flattened."""
    rows = []
    for record in records:
        rows.append({
            "id": record.record_id,
            **record.extra,
            "latitude": record.latitude,
            "longitude": record.longitude,
            "sample_date": record.sample_date,
            "buffer_radius_m": record.buffer_radius_m,
            "measured_value": record.measured_value,
        })
    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    return pd.DataFrame.from_records(rows)
