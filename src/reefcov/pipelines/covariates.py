"""Covariate extraction over a batch of survey records.

For each record the pipeline selects the assets in its trailing window,
requests one zonal statistic per asset and reduces them into a single value.
A record's failure is recorded on its own row and never stops the batch;
only catalog failures abort a run.

Example:
    >>> settings = ExtractionSettings(
    ...     catalog_url="https://stac.example.org",
    ...     zonal_url="https://zonal.example.org",
    ...     collection_id="noaa-crw-dhw-monthly",
    ...     window_months=12,
    ... )
    >>> report = extract_covariates(records, settings)
    >>> df = report.to_dataframe(records)
"""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import pandas as pd
import requests

from reefcov.config import ExtractionSettings
from reefcov.errors import ExtractionCancelled
from reefcov.models import (
    AssetIndex,
    CovariateResult,
    CovariateStatus,
    Diagnostic,
    SurveyRecord,
)
from reefcov.pipelines.aggregate import RecordAggregator
from reefcov.pipelines.catalog import CatalogClient
from reefcov.pipelines.window import build_window_query, resolve_window
from reefcov.pipelines.zonal import ZonalStatsClient
from reefcov.records import records_to_dataframe
from reefcov.utils import BasePipeline, ValidationResult

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = ["aggregate_value", "status", "n_assets", "n_succeeded"]


@dataclass
class ExtractionSummary:
    """Counts of record outcomes for a run."""

    total: int
    ok: int
    no_matching_assets: int
    no_successful_requests: int
    failed_requests: int
    duration_ms: int

    @property
    def success_rate(self) -> float:
        """Percentage of records with a covariate value."""
        if self.total == 0:
            return 0.0
        return (self.ok / self.total) * 100

    def __str__(self) -> str:
        return (
            f"Extraction complete: {self.ok}/{self.total} records ok, "
            f"{self.no_matching_assets} without matching assets, "
            f"{self.no_successful_requests} without successful requests, "
            f"{self.failed_requests} failed requests "
            f"({self.duration_ms}ms)"
        )


@dataclass
class ExtractionReport:
    """Results of a run, one per input record in input order, plus warnings."""

    results: list[CovariateResult]
    diagnostics: list[Diagnostic] = field(default_factory=list)
    summary: Optional[ExtractionSummary] = None

    def results_dataframe(self) -> pd.DataFrame:
        rows = [r.to_dict() for r in self.results]
        if not rows:
            return pd.DataFrame(columns=["record_id"] + OUTPUT_COLUMNS)
        return pd.DataFrame.from_records(rows)

    def diagnostics_dataframe(self) -> pd.DataFrame:
        columns = ["code", "message", "record_id", "asset_ref"]
        return pd.DataFrame(
            [[getattr(d, col) for col in columns] for d in self.diagnostics],
            columns=columns,
        )

    def to_dataframe(self, records: Sequence[SurveyRecord]) -> pd.DataFrame:
        """Join results onto the survey records by id.

        Returns:
            One row per record with the record's columns followed by
            aggregate_value, status, n_assets and n_succeeded.
            Survey columns sharing one of those names are renamed with a
            "survey_" prefix.
        """
        left = records_to_dataframe(list(records))
        clashes = [col for col in OUTPUT_COLUMNS if col in left.columns]
        if clashes:
            logger.warning(f"Renaming survey columns that clash with results: {clashes}")
            left = left.rename(columns={col: f"survey_{col}" for col in clashes})
        right = self.results_dataframe().rename(columns={"record_id": "id"})
        return left.merge(right, on="id", how="left", validate="one_to_one")


class CovariatePipeline(BasePipeline):
    """Extracts a windowed zonal covariate for each survey record.

    The asset index is built once, either passed in or fetched from the
    catalog on first use, and is only read afterwards.

    Example:
        >>> pipeline = CovariatePipeline(
        ...     zonal_client=ZonalStatsClient("https://zonal.example.org"),
        ...     catalog=CatalogClient("https://stac.example.org"),
        ...     collection_id="noaa-crw-dhw-monthly",
        ... )
        >>> report = pipeline.run(records, window_months=3)
        >>> print(report.summary)
    """

    def __init__(
        self,
        zonal_client: ZonalStatsClient,
        index: Optional[AssetIndex] = None,
        catalog: Optional[CatalogClient] = None,
        collection_id: Optional[str] = None,
        max_workers: int = 1,
        stop_event: Optional[threading.Event] = None,
    ):
        """Initialize the pipeline.

        Args:
            zonal_client: Client for the zonal statistics service
            index: Prebuilt asset index; fetched from ``catalog`` if None
            catalog: Catalog client used to build the index
            collection_id: Collection to index (required with ``catalog``)
            max_workers: Records processed concurrently (1 = sequential)
            stop_event: When set, the run stops before the next record
        """
        if index is None and (catalog is None or collection_id is None):
            raise ValueError("Provide either an index or a catalog and collection_id")
        self.zonal_client = zonal_client
        self.catalog = catalog
        self.collection_id = collection_id
        self.max_workers = max_workers
        self.stop_event = stop_event or threading.Event()
        self._index = index
        self._catalog_diagnostics: list[Diagnostic] = []

    @classmethod
    def from_settings(
        cls,
        settings: ExtractionSettings,
        session: Optional[requests.Session] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> "CovariatePipeline":
        session = session or requests.Session()
        catalog = CatalogClient(
            settings.catalog_url,
            session=session,
            timeout=settings.request_timeout,
            page_limit=settings.page_limit,
            max_pages=settings.max_pages,
            asset_key=settings.asset_key,
        )
        zonal_client = ZonalStatsClient(
            settings.zonal_url,
            session=session,
            timeout=settings.request_timeout,
            band=settings.band,
        )
        return cls(
            zonal_client=zonal_client,
            catalog=catalog,
            collection_id=settings.collection_id,
            max_workers=settings.max_workers,
            stop_event=stop_event,
        )

    @property
    def index(self) -> AssetIndex:
        """The asset index, fetched from the catalog on first access.

        Raises:
            CatalogUnavailable: If the catalog cannot be read completely.
        """
        if self._index is None:
            logger.info(f"Building asset index for collection {self.collection_id}")
            self._index = self.catalog.build_index(self.collection_id)
            self._catalog_diagnostics = list(self.catalog.diagnostics)
        return self._index

    def process_record(
        self,
        record: SurveyRecord,
        window_months: int,
        aggregator: RecordAggregator,
        buffer_radius: Optional[float] = None,
    ) -> tuple[CovariateResult, list[Diagnostic]]:
        """Extract the covariate for one record.

        Returns:
            The record's result and the warnings raised while producing it.
        """
        diagnostics: list[Diagnostic] = []
        query = build_window_query(record, window_months)
        assets = resolve_window(self.index, query.time_buckets)
        buffer = buffer_radius if buffer_radius is not None else record.buffer_radius_m

        results = []
        for asset in assets:
            stat_result = self.zonal_client.compute_stat(
                record.point, buffer, asset.asset_ref, aggregator.stat, record_id=record.record_id
            )
            if not stat_result.ok:
                diagnostics.append(Diagnostic(
                    code="request_failed",
                    message=stat_result.error or "request failed",
                    record_id=record.record_id,
                    asset_ref=asset.asset_ref,
                ))
            results.append(stat_result)

        result = aggregator.aggregate(record, results, window_months=window_months)
        if result.status == CovariateStatus.NO_MATCHING_ASSETS:
            diagnostics.append(Diagnostic(
                code=result.status.value,
                message=(
                    f"No assets for {query.time_buckets[0]}..{query.time_buckets[-1]} "
                    f"({window_months}-month window)"
                ),
                record_id=record.record_id,
            ))
        elif result.status == CovariateStatus.NO_SUCCESSFUL_REQUESTS:
            diagnostics.append(Diagnostic(
                code=result.status.value,
                message=f"None of {result.n_assets} zonal requests returned a value",
                record_id=record.record_id,
            ))
        return result, diagnostics

    def _safe_process(
        self,
        position: int,
        total: int,
        record: SurveyRecord,
        window_months: int,
        aggregator: RecordAggregator,
        buffer_radius: Optional[float],
    ) -> Optional[tuple[CovariateResult, list[Diagnostic]]]:
        """process_record with per-record isolation; None if stopped."""
        if self.stop_event.is_set():
            return None

        try:
            result, diagnostics = self.process_record(record, window_months, aggregator, buffer_radius)
        except Exception as e:
            logger.error(f"[{position}/{total}] {record.record_id}: failed - {e}")
            result = CovariateResult(
                record_id=record.record_id,
                aggregate_value=None,
                status=CovariateStatus.NO_SUCCESSFUL_REQUESTS,
            )
            diagnostics = [Diagnostic(code="record_failed", message=str(e), record_id=record.record_id)]
            return result, diagnostics

        logger.info(
            f"[{position}/{total}] {record.record_id}: {result.status.value} "
            f"(value={result.aggregate_value}, {result.n_succeeded}/{result.n_assets} requests ok)"
        )
        return result, diagnostics

    def run(
        self,
        records: Sequence[SurveyRecord],
        window_months: int,
        buffer_radius: Optional[float] = None,
        stat: str = "max",
    ) -> ExtractionReport:
        """Extract covariates for every record.

        Args:
            records: Survey records, in the order results should come back
            window_months: Trailing window length in calendar months
            buffer_radius: Buffer in meters for all records; None uses each
                record's own buffer_radius_m
            stat: Statistic to request and reduce ('max', 'min', 'mean', 'sum')

        Returns:
            ExtractionReport with exactly one result per record, in input order

        Raises:
            CatalogUnavailable: If the asset index cannot be built.
            ExtractionCancelled: If stop_event is set, or the run is interrupted,
                before all records ran.
            ValueError: If window_months < 1 or stat is unsupported.
        """
        if window_months < 1:
            raise ValueError(f"window_months must be >= 1, got {window_months}")
        aggregator = RecordAggregator(stat)
        index = self.index
        total = len(records)
        start_time = time.time()

        logger.info(
            f"Extracting {stat} over {window_months}-month windows for {total} records "
            f"({index.asset_count} assets indexed, {self.max_workers} workers)"
        )

        # One slot per record so workers never share a position
        slots: list[Optional[tuple[CovariateResult, list[Diagnostic]]]] = [None] * total
        args = [
            (i + 1, total, record, window_months, aggregator, buffer_radius)
            for i, record in enumerate(records)
        ]

        if self.max_workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {executor.submit(self._safe_process, *a): i for i, a in enumerate(args)}
                try:
                    for future, i in futures.items():
                        slots[i] = future.result()
                except KeyboardInterrupt:
                    # Running records finish, queued ones never start
                    self.stop_event.set()
                    executor.shutdown(wait=True, cancel_futures=True)
                    for future, i in futures.items():
                        if not future.cancelled() and future.exception() is None:
                            slots[i] = future.result()
        else:
            for i, a in enumerate(args):
                slots[i] = self._safe_process(*a)
                if slots[i] is None:
                    break

        if any(slot is None for slot in slots):
            completed = [slot[0] for slot in slots if slot is not None]
            logger.warning(f"Extraction stopped after {len(completed)}/{total} records")
            raise ExtractionCancelled(completed)

        results = [slot[0] for slot in slots]
        diagnostics = list(self._catalog_diagnostics)
        for slot in slots:
            diagnostics.extend(slot[1])

        summary = summarize(results, diagnostics, int((time.time() - start_time) * 1000))
        logger.info(str(summary))
        return ExtractionReport(results=results, diagnostics=diagnostics, summary=summary)

    def validate(self, data: Any) -> ValidationResult:
        """Validate an output table from ExtractionReport.to_dataframe.

        Args:
            data: Output DataFrame

        Returns:
            ValidationResult; missing_pct is the share of null aggregates
        """
        if not isinstance(data, pd.DataFrame):
            return ValidationResult(
                valid=False,
                total_rows=0,
                missing_pct=100.0,
                issues=["Data is not a DataFrame"],
            )

        total_rows = len(data)
        if total_rows == 0:
            return ValidationResult(
                valid=False,
                total_rows=0,
                missing_pct=100.0,
                issues=["No records in output"],
            )

        required_cols = ["id"] + OUTPUT_COLUMNS
        missing_cols = [col for col in required_cols if col not in data.columns]
        if missing_cols:
            return ValidationResult(
                valid=False,
                total_rows=total_rows,
                missing_pct=100.0,
                issues=[f"Missing required columns: {missing_cols}"],
            )

        issues = []
        duplicate_ids = int(data["id"].duplicated().sum())
        if duplicate_ids:
            issues.append(f"{duplicate_ids} duplicate record ids")

        known = {s.value for s in CovariateStatus}
        unknown = sorted(set(data["status"].dropna()) - known)
        if unknown or data["status"].isna().any():
            issues.append(f"Unexpected status values: {unknown or ['<missing>']}")

        ok_rows = data["status"] == CovariateStatus.OK.value
        ok_without_value = int((ok_rows & data["aggregate_value"].isna()).sum())
        if ok_without_value:
            issues.append(f"{ok_without_value} ok rows have no aggregate_value")

        missing_pct = float(data["aggregate_value"].isna().mean() * 100)
        status_counts = {str(k): int(v) for k, v in data["status"].value_counts().items()}

        values = data.loc[ok_rows, "aggregate_value"].dropna()
        stats: dict[str, Any] = {"status_counts": status_counts}
        if len(values) > 0:
            stats["aggregate_min"] = float(values.min())
            stats["aggregate_max"] = float(values.max())
            stats["aggregate_mean"] = float(values.mean())

        return ValidationResult(
            valid=len(issues) == 0,
            total_rows=total_rows,
            missing_pct=missing_pct,
            issues=issues,
            stats=stats,
        )


def summarize(
    results: Sequence[CovariateResult],
    diagnostics: Sequence[Diagnostic],
    duration_ms: int = 0,
) -> ExtractionSummary:
    counts = Counter(r.status for r in results)
    return ExtractionSummary(
        total=len(results),
        ok=counts[CovariateStatus.OK],
        no_matching_assets=counts[CovariateStatus.NO_MATCHING_ASSETS],
        no_successful_requests=counts[CovariateStatus.NO_SUCCESSFUL_REQUESTS],
        failed_requests=sum(1 for d in diagnostics if d.code == "request_failed"),
        duration_ms=duration_ms,
    )


def extract_covariates(
    records: Sequence[SurveyRecord],
    settings: ExtractionSettings,
    session: Optional[requests.Session] = None,
    stop_event: Optional[threading.Event] = None,
) -> ExtractionReport:
    """Fetch the catalog and extract covariates in one call.

    Raises:
        CatalogUnavailable: If the catalog cannot be read completely.
    """
    pipeline = CovariatePipeline.from_settings(settings, session=session, stop_event=stop_event)
    return pipeline.run(
        records,
        window_months=settings.window_months,
        buffer_radius=settings.buffer_radius_m,
        stat=settings.stat,
    )
