"""Client for the zonal statistics service.

The service computes one statistic for one geometry against one raster per
request:

    POST {base}/zonal-stats
    {
        "aoi": {"type": "Point", "coordinates": [lon, lat], "buffer_size": 1000},
        "image": {"url": "<asset href>"},
        "stats": ["max"]
    }

and answers with one object per band, e.g. ``{"band_1": {"max": 4.2}}``.
Failures never raise out of this module; they come back as
``request_failed`` results so a batch can carry on.
"""

import logging
import math
from typing import Optional

import requests

from reefcov.errors import ZonalRequestFailed
from reefcov.models import StatStatus, ZonalStatResult
from reefcov.utils.geo import Point

logger = logging.getLogger(__name__)

# Request timeout in seconds
REQUEST_TIMEOUT = 60

DEFAULT_BAND = "band_1"


class ZonalStatsClient:
    """Requests zonal statistics for a point + buffer against a raster.

    Example:
        >>> client = ZonalStatsClient("https://zonal.example.org")
        >>> result = client.compute_stat(
        ...     Point(lat=-16.9, lon=145.8), 1000, "https://.../dhw_2024_03.tif"
        ... )
        >>> result.value
        4.2
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        band: str = DEFAULT_BAND,
    ):
        self.endpoint = f"{base_url.rstrip('/')}/zonal-stats"
        self.session = session or requests.Session()
        self.timeout = timeout
        self.band = band

    def build_payload(self, point: Point, buffer_radius: float, asset_ref: str, stat: str) -> dict:
        return {
            "aoi": point.to_geojson(buffer_size=buffer_radius),
            "image": {"url": asset_ref},
            "stats": [stat],
        }

    def _request(self, payload: dict, asset_ref: str) -> dict:
        try:
            response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ZonalRequestFailed(asset_ref, str(e)) from e

        if response.status_code != 200:
            raise ZonalRequestFailed(asset_ref, f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ZonalRequestFailed(asset_ref, f"invalid JSON: {e}") from e
        if not isinstance(body, dict):
            raise ZonalRequestFailed(asset_ref, "response is not a JSON object")
        return body

    def _extract(self, body: dict, stat: str, asset_ref: str) -> Optional[float]:
        band = body.get(self.band)
        if not isinstance(band, dict):
            raise ZonalRequestFailed(asset_ref, f"response has no {self.band!r} object")
        if stat not in band:
            raise ZonalRequestFailed(asset_ref, f"{self.band!r} has no {stat!r} field")

        raw = band[stat]
        # null over all-nodata pixels
        if raw is None:
            return None
        try:
            value = float(raw)
        except (TypeError, ValueError) as e:
            raise ZonalRequestFailed(asset_ref, f"non-numeric {stat!r}: {raw!r}") from e
        return None if math.isnan(value) else value

    def compute_stat(
        self,
        point: Point,
        buffer_radius: float,
        asset_ref: str,
        stat: str = "max",
        record_id: Optional[str] = None,
    ) -> ZonalStatResult:
        """Compute one statistic for one asset.

        Args:
            point: Centre of the area of interest
            buffer_radius: Buffer radius in meters
            asset_ref: URL of the raster
            stat: Statistic name understood by the service
            record_id: Survey record this request is for (logging only)

        Returns:
            ZonalStatResult; ``status`` is request_failed on any error
        """
        payload = self.build_payload(point, buffer_radius, asset_ref, stat)
        try:
            body = self._request(payload, asset_ref)
            value = self._extract(body, stat, asset_ref)
        except ZonalRequestFailed as e:
            logger.warning(f"Record {record_id}: {e}")
            return ZonalStatResult.failed(asset_ref, e.reason)

        if value is None:
            logger.debug(f"Record {record_id}: no data in {asset_ref}")
        return ZonalStatResult(asset_ref=asset_ref, value=value, status=StatStatus.OK)
