"""Data model for covariate extraction.

Records, catalog assets and per-record results are plain dataclasses; the
asset index is a read-only mapping built once per run.
"""

from collections.abc import Iterator, Mapping
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from reefcov.utils.geo import Point


class StatStatus(str, Enum):
    """Outcome of a single zonal statistics request."""

    OK = "ok"
    REQUEST_FAILED = "request_failed"


class CovariateStatus(str, Enum):
    """Outcome of a record's aggregation."""

    OK = "ok"
    NO_MATCHING_ASSETS = "no_matching_assets"
    NO_SUCCESSFUL_REQUESTS = "no_successful_requests"


@dataclass(frozen=True)
class AssetDescriptor:
    """A time-stamped raster asset from the catalog.

    Attributes:
        timestamp: Acquisition time from the item's properties
        time_bucket: Year-month key (YYYY-MM) derived from ``timestamp``
        asset_ref: URL of the raster the zonal service reads
        item_id: STAC item id, for diagnostics
    """

    timestamp: datetime
    time_bucket: str
    asset_ref: str
    item_id: Optional[str] = None


class AssetIndex(Mapping):
    """Mapping of time bucket (YYYY-MM) to the assets in that month.

    Assets sharing a bucket are all kept, in catalog order.
    """

    def __init__(self, buckets: dict[str, tuple[AssetDescriptor, ...]]):
        self._buckets = dict(buckets)

    def __getitem__(self, bucket: str) -> tuple[AssetDescriptor, ...]:
        return self._buckets[bucket]

    def __iter__(self) -> Iterator[str]:
        return iter(self._buckets)

    def __len__(self) -> int:
        return len(self._buckets)

    def lookup(self, bucket: str) -> tuple[AssetDescriptor, ...]:
        """Assets for a bucket, or an empty tuple if the month is absent."""
        return self._buckets.get(bucket, ())

    @property
    def asset_count(self) -> int:
        return sum(len(assets) for assets in self._buckets.values())

    def __repr__(self) -> str:
        return f"AssetIndex(buckets={len(self)}, assets={self.asset_count})"


@dataclass(frozen=True)
class SurveyRecord:
    """A geo-located survey observation.

    Attributes:
        record_id: Unique identifier, used to join results back
        latitude: Latitude in decimal degrees
        longitude: Longitude in decimal degrees
        sample_date: Date the survey was taken
        buffer_radius_m: Radius of the area of interest in meters
        measured_value: The surveyed response (e.g. percent bleaching)
        extra: Any other columns from the source table (project, site, ...)
    """

    record_id: str
    latitude: float
    longitude: float
    sample_date: date
    buffer_radius_m: float
    measured_value: float
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def point(self) -> Point:
        return Point(lat=self.latitude, lon=self.longitude)


@dataclass(frozen=True)
class WindowQuery:
    """Monthly buckets covering a record's trailing window, oldest first."""

    record_id: str
    time_buckets: tuple[str, ...]


@dataclass
class ZonalStatResult:
    """Result of one zonal statistics request.

    ``value`` is None when the request failed, or when it succeeded over
    pixels that were all no-data.
    """

    asset_ref: str
    value: Optional[float]
    status: StatStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == StatStatus.OK

    @classmethod
    def failed(cls, asset_ref: str, error: str) -> "ZonalStatResult":
        return cls(asset_ref=asset_ref, value=None, status=StatStatus.REQUEST_FAILED, error=error)


@dataclass
class CovariateResult:
    """Final covariate for one survey record."""

    record_id: str
    aggregate_value: Optional[float]
    status: CovariateStatus
    n_assets: int = 0
    n_succeeded: int = 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass(frozen=True)
class Diagnostic:
    """A warning raised during a run, kept alongside the results.

    Attributes:
        code: Short machine-readable reason (e.g. 'request_failed')
        message: Human-readable description
        record_id: Survey record involved, if any
        asset_ref: Asset involved, if any
    """

    code: str
    message: str
    record_id: Optional[str] = None
    asset_ref: Optional[str] = None
