"""I/O utilities for data paths and output tables."""

from pathlib import Path

import pandas as pd

# Project root is 4 levels up from this file
_PROJECT_ROOT = Path(__file__).parent.parent.parent.parent


def get_data_path(stage: str = "processed") -> Path:
    """Get standardized data path for a pipeline stage.

    Args:
        stage: One of 'raw', 'processed'

    Returns:
        Path to the data directory (creates if doesn't exist)

    Example:
        >>> path = get_data_path("processed")
        >>> path
        PosixPath('.../reefcov/data/processed')
    """
    valid_stages = {"raw", "processed"}

    if stage not in valid_stages:
        raise ValueError(f"Invalid stage: {stage}. Must be one of {valid_stages}")

    path = _PROJECT_ROOT / "data" / stage
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_table(path: Path) -> pd.DataFrame:
    """Read a CSV or parquet table, chosen by file extension."""
    path = Path(path)
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix == ".csv":
        return pd.read_csv(path)
    raise ValueError(f"Unsupported table format: {path.suffix} (expected .csv or .parquet)")


def write_table(df: pd.DataFrame, path: Path) -> Path:
    """Write a DataFrame as CSV or parquet, chosen by file extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".parquet":
        df.to_parquet(path, index=False)
    elif path.suffix == ".csv":
        df.to_csv(path, index=False)
    else:
        raise ValueError(f"Unsupported table format: {path.suffix} (expected .csv or .parquet)")
    return path
