"""Shared pytest fixtures for reefcov tests.

Test Tiers:
- unit: Fast tests with fixtures, no network (default)
- live: Real API tests, slow, requires network

Run live tests with: pytest -m live --run-live
"""

import threading
from datetime import date
from unittest.mock import MagicMock

import pytest

from reefcov.models import SurveyRecord

CATALOG_URL = "https://stac.test"
COLLECTION = "dhw-monthly"
ITEMS_URL = f"{CATALOG_URL}/collections/{COLLECTION}/items"


def pytest_addoption(parser):
    """Add command line options for test configuration."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run live API tests (slow, requires network)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests using fixtures")
    config.addinivalue_line("markers", "live: real API tests (slow, requires network)")


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


def _response(status_code=200, body=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_error:
        response.json.side_effect = ValueError("Expecting value: line 1 column 1")
    else:
        response.json.return_value = body
    return response


def _item(item_id, when, href=None, asset_key="data"):
    return {
        "type": "Feature",
        "id": item_id,
        "properties": {"datetime": when},
        "assets": {asset_key: {"href": href or f"https://data.test/{item_id}.tif"}},
    }


def _page(items, next_href=None):
    links = [{"rel": "self", "href": "ignored"}]
    if next_href is not None:
        links.append({"rel": "next", "href": next_href})
    return {"type": "FeatureCollection", "features": items, "links": links}


class FakeSession:
    """Stand-in for requests.Session.

    GET requests are answered from ``pages`` (url -> response, 404 if
    absent); POST requests are answered by ``zonal(payload)``.
    """

    def __init__(self, pages=None, zonal=None):
        self.pages = pages or {}
        self.zonal = zonal
        self.get_calls = []
        self.post_calls = []
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None):
        self.get_calls.append((url, params))
        if url not in self.pages:
            return _response(404, {"detail": "not found"})
        return self.pages[url]

    def post(self, url, json=None, timeout=None):
        with self._lock:
            self.post_calls.append(json)
        return self.zonal(json)


def _zonal_handler(values, band="band_1", stat="max"):
    """Build a POST handler answering from ``values`` (asset href -> value).

    A value of "fail" answers HTTP 500; hrefs not in ``values`` answer 404.
    """

    def handler(payload):
        ref = payload["image"]["url"]
        if ref not in values:
            return _response(404, {"detail": "unknown image"})
        value = values[ref]
        if value == "fail":
            return _response(500, {"detail": "internal error"})
        return _response(200, {band: {stat: value}})

    return handler


@pytest.fixture
def make_response():
    """Factory for fake HTTP responses."""
    return _response


@pytest.fixture
def make_item():
    """Factory for STAC items."""
    return _item


@pytest.fixture
def make_page():
    """Factory for STAC item pages."""
    return _page


@pytest.fixture
def fake_session():
    """Factory for FakeSession instances."""
    return FakeSession


@pytest.fixture
def zonal_handler():
    """Factory for zonal statistics POST handlers."""
    return _zonal_handler


@pytest.fixture
def two_page_catalog():
    """Catalog with 2024-01 and 2024-02 on page 1 and 2024-03 on page 2."""
    page2_url = f"{ITEMS_URL}?token=page2"
    return {
        ITEMS_URL: _response(200, _page(
            [
                _item("dhw_2024_01", "2024-01-15T00:00:00Z"),
                _item("dhw_2024_02", "2024-02-15T00:00:00Z"),
            ],
            next_href=page2_url,
        )),
        page2_url: _response(200, _page([_item("dhw_2024_03", "2024-03-15T00:00:00Z")])),
    }


@pytest.fixture
def sample_records() -> list[SurveyRecord]:
    """Two reef survey records."""
    return [
        SurveyRecord(
            record_id="A",
            latitude=-16.9,
            longitude=145.8,
            sample_date=date(2024, 3, 10),
            buffer_radius_m=1000.0,
            measured_value=42.0,
            extra={"site": "Moore Reef"},
        ),
        SurveyRecord(
            record_id="B",
            latitude=-18.3,
            longitude=147.7,
            sample_date=date(2024, 1, 5),
            buffer_radius_m=500.0,
            measured_value=12.5,
            extra={"site": "Kelso Reef"},
        ),
    ]
