"""Covariate extraction pipeline stages.

Each stage is a small, separately testable piece:
- catalog: page through the STAC catalog and index assets by month
- window: pick the monthly buckets trailing a sample date
- zonal: request one zonal statistic per (record, asset)
- aggregate: reduce a record's statistics to one value
- covariates: drive the batch and assemble the output table
"""

from .aggregate import RecordAggregator
from .catalog import CatalogClient, CatalogPaginator, build_index, parse_item
from .covariates import (
    CovariatePipeline,
    ExtractionReport,
    ExtractionSummary,
    extract_covariates,
)
from .window import resolve_window, select_window
from .zonal import ZonalStatsClient

__all__ = [
    "CatalogClient",
    "CatalogPaginator",
    "build_index",
    "parse_item",
    "select_window",
    "resolve_window",
    "ZonalStatsClient",
    "RecordAggregator",
    "CovariatePipeline",
    "ExtractionReport",
    "ExtractionSummary",
    "extract_covariates",
]
