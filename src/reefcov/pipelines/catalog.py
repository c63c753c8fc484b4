"""STAC catalog paging and the monthly asset index.

The catalog is read once per run and must be read completely: any failed
page aborts the run with CatalogUnavailable. Individual items that cannot be
dated are dropped with a warning instead.

Endpoints:
- Collections: GET {base}/collections
- Items: GET {base}/collections/{id}/items?limit=N, continued through the
  link whose rel is "next"
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Optional

import pandas as pd
import requests

from reefcov.errors import (
    AssetTimestampUnresolvable,
    CatalogUnavailable,
    PaginationLoopDetected,
)
from reefcov.models import AssetDescriptor, AssetIndex, Diagnostic

logger = logging.getLogger(__name__)

# Request timeout in seconds
REQUEST_TIMEOUT = 60

# Default items per page and page ceiling
DEFAULT_PAGE_LIMIT = 100
DEFAULT_MAX_PAGES = 1000


def time_bucket(timestamp: pd.Timestamp) -> str:
    """Year-month key (YYYY-MM) for a timestamp, in UTC when tz-aware."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert("UTC")
    return timestamp.strftime("%Y-%m")


def parse_item(item: dict, asset_key: Optional[str] = None) -> AssetDescriptor:
    """Convert a STAC item into an AssetDescriptor.

    The timestamp is ``properties.datetime``, or ``properties.start_datetime``
    for ranged items whose ``datetime`` is null.

    Args:
        item: STAC item (GeoJSON Feature)
        asset_key: Asset to reference; the first listed asset if None

    Returns:
        AssetDescriptor for the item

    Raises:
        AssetTimestampUnresolvable: If the item has no parseable timestamp
            or no asset href.
    """
    if not isinstance(item, dict):
        raise AssetTimestampUnresolvable(None, f"item is not an object: {item!r}")
    item_id = item.get("id")
    properties = item.get("properties") or {}
    if not isinstance(properties, dict):
        raise AssetTimestampUnresolvable(item_id, "properties is not an object")

    raw_time = properties.get("datetime") or properties.get("start_datetime")
    if not raw_time:
        raise AssetTimestampUnresolvable(item_id, "no datetime in properties")

    try:
        timestamp = pd.Timestamp(raw_time)
    except (ValueError, TypeError) as e:
        raise AssetTimestampUnresolvable(item_id, f"bad datetime {raw_time!r}: {e}") from e
    if pd.isna(timestamp):
        raise AssetTimestampUnresolvable(item_id, f"bad datetime {raw_time!r}")

    assets = item.get("assets") or {}
    if not isinstance(assets, dict):
        raise AssetTimestampUnresolvable(item_id, "assets is not an object")
    if asset_key is not None:
        asset = assets.get(asset_key)
    else:
        asset = next(iter(assets.values()), None)
    href = asset.get("href") if isinstance(asset, dict) else None
    if not href:
        wanted = f"asset {asset_key!r}" if asset_key else "any asset"
        raise AssetTimestampUnresolvable(item_id, f"no href for {wanted}")

    return AssetDescriptor(
        timestamp=timestamp.to_pydatetime(),
        time_bucket=time_bucket(timestamp),
        asset_ref=href,
        item_id=item_id,
    )


def get_json(
    session: requests.Session,
    url: str,
    timeout: float,
    params: Optional[dict] = None,
) -> dict:
    """GET a catalog URL and return its JSON object body.

    Raises:
        CatalogUnavailable: On transport errors, non-2xx status, or a body
            that is not a JSON object.
    """
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        raise CatalogUnavailable(url, str(e)) from e

    if not response.ok:
        raise CatalogUnavailable(url, f"HTTP {response.status_code}")

    try:
        body = response.json()
    except ValueError as e:
        raise CatalogUnavailable(url, f"invalid JSON: {e}") from e

    if not isinstance(body, dict):
        raise CatalogUnavailable(url, "body is not a JSON object")
    return body


def next_link(page: dict) -> Optional[str]:
    """Return the href of the page's rel="next" link, if any."""
    for link in page.get("links") or []:
        if isinstance(link, dict) and link.get("rel") == "next" and link.get("href"):
            return link["href"]
    return None


class CatalogPaginator:
    """Walks a paginated STAC items endpoint to the end.

    Example:
        >>> paginator = CatalogPaginator()
        >>> assets = paginator.fetch_all(
        ...     "https://stac.example.org/collections/dhw/items"
        ... )
        >>> len(assets)
        480
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        max_pages: int = DEFAULT_MAX_PAGES,
        asset_key: Optional[str] = None,
    ):
        """Initialize the paginator.

        Args:
            session: HTTP session to reuse; a new one is created if None
            timeout: HTTP request timeout in seconds
            page_limit: Items requested per page (sent on the first request only)
            max_pages: Pages to read before raising PaginationLoopDetected
            asset_key: Asset key passed through to parse_item
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.page_limit = page_limit
        self.max_pages = max_pages
        self.asset_key = asset_key
        self.diagnostics: list[Diagnostic] = []

    def iter_pages(self, start_url: str) -> Iterator[dict]:
        """Yield each page object, following rel="next" links.

        Raises:
            CatalogUnavailable: If any page request fails.
            PaginationLoopDetected: If a link repeats or max_pages is exceeded.
        """
        url: Optional[str] = start_url
        params: Optional[dict] = {"limit": self.page_limit}
        seen: set[str] = set()
        pages = 0

        while url is not None:
            if pages >= self.max_pages:
                raise PaginationLoopDetected(url, f"more than {self.max_pages} pages")
            if url in seen:
                raise PaginationLoopDetected(url, "next link repeats an earlier page")
            seen.add(url)

            page = get_json(self.session, url, self.timeout, params)
            pages += 1
            logger.debug(f"Fetched catalog page {pages}: {url}")
            yield page

            url = next_link(page)
            # Continuation links already carry the query string
            params = None

    def iter_assets(self, start_url: str) -> Iterator[AssetDescriptor]:
        """Lazily yield AssetDescriptors in catalog order.

        Finite and not restartable. Undatable items are skipped with a
        warning and recorded in ``self.diagnostics``.
        """
        for page in self.iter_pages(start_url):
            features = page.get("features")
            if not isinstance(features, list):
                raise CatalogUnavailable(start_url, "page has no 'features' list")
            for item in features:
                try:
                    yield parse_item(item, self.asset_key)
                except AssetTimestampUnresolvable as e:
                    logger.warning(str(e))
                    self.diagnostics.append(
                        Diagnostic(code="asset_timestamp_unresolvable", message=str(e))
                    )

    def fetch_all(self, start_url: str) -> list[AssetDescriptor]:
        """Fetch every asset reachable from ``start_url``.

        Returns:
            AssetDescriptors from all pages, in catalog order.

        Raises:
            CatalogUnavailable: If any page request fails.
            PaginationLoopDetected: If pagination does not terminate.
        """
        assets = list(self.iter_assets(start_url))
        logger.info(f"Fetched {len(assets)} assets from {start_url}")
        return assets


def build_index(descriptors: Iterable[AssetDescriptor]) -> AssetIndex:
    """Group assets by time bucket, keeping every asset in catalog order."""
    buckets: dict[str, list[AssetDescriptor]] = {}
    for descriptor in descriptors:
        buckets.setdefault(descriptor.time_bucket, []).append(descriptor)
    return AssetIndex({bucket: tuple(assets) for bucket, assets in buckets.items()})


class CatalogClient:
    """Thin client for the catalog endpoints this package needs.

    Example:
        >>> client = CatalogClient("https://stac.example.org")
        >>> client.list_collections()
        ['noaa-crw-dhw-monthly', 'noaa-crw-sst-monthly']
        >>> index = client.build_index("noaa-crw-dhw-monthly")
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        max_pages: int = DEFAULT_MAX_PAGES,
        asset_key: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.paginator = CatalogPaginator(
            session=self.session,
            timeout=timeout,
            page_limit=page_limit,
            max_pages=max_pages,
            asset_key=asset_key,
        )

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return self.paginator.diagnostics

    def items_url(self, collection_id: str) -> str:
        return f"{self.base_url}/collections/{collection_id}/items"

    def list_collections(self) -> list[str]:
        """Return the collection ids the catalog advertises.

        Raises:
            CatalogUnavailable: If the request fails or the body is malformed.
        """
        url = f"{self.base_url}/collections"
        body = get_json(self.session, url, self.paginator.timeout)
        collections = body.get("collections")
        if not isinstance(collections, list):
            raise CatalogUnavailable(url, "response has no 'collections' list")
        return [c["id"] for c in collections if isinstance(c, dict) and c.get("id")]

    def fetch_assets(self, collection_id: str) -> list[AssetDescriptor]:
        return self.paginator.fetch_all(self.items_url(collection_id))

    def build_index(self, collection_id: str) -> AssetIndex:
        """Fetch a collection and index its assets by month."""
        index = build_index(self.fetch_assets(collection_id))
        logger.info(f"Indexed {collection_id}: {index.asset_count} assets in {len(index)} months")
        return index
