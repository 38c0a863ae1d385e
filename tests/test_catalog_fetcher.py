"""Tests for the pipelined catalog fetcher against a fake paginated source."""
import concurrent.futures
import threading

import pytest
import requests

from core.catalog_fetcher import CatalogFetcher, parse_catalog_item
from core.errors import OperationTimeout, ParseError, RemoteRejection, RequestTimeout, TransportError
from core.models import ProductStatus


def product(product_id, quantities=(0,), status="active"):
    return {
        "id": product_id,
        "title": f"Product {product_id}",
        "status": status,
        "variants": [{"inventory_quantity": q} for q in quantities]
    }


class FakeResponse:
    def __init__(self, source, body, headers, body_error=None):
        self.source = source
        self.body = body
        self.headers = headers
        self.body_error = body_error

    def json(self):
        if self.body_error:
            raise self.body_error
        return self.body

    def close(self):
        self.source.closed()


class FakeCatalog:
    """Paginated product listing where page k's Link header names page k+1."""

    def __init__(self, pages, fail_on=None, body_errors=None):
        self.pages = pages
        self.fail_on = fail_on
        self.body_errors = body_errors or {}
        self.requested = []
        self.lock = threading.Lock()
        self.open_count = 0
        self.max_open = 0

    def open_product_page(self, page_info=None, status="active", limit=250):
        index = 0 if page_info is None else int(page_info[1:])
        with self.lock:
            self.requested.append(page_info)
            self.open_count += 1
            self.max_open = max(self.max_open, self.open_count)

        if index == self.fail_on:
            with self.lock:
                self.open_count -= 1
            raise RemoteRejection("Internal Server Error", status_code=500)

        headers = {}
        if index < len(self.pages) - 1:
            headers["Link"] = (
                f'<https://shop.myshopify.com/admin/api/2025-01/products.json?limit={limit}'
                f'&page_info=c{index + 1}>; rel="next"'
            )
        return FakeResponse(self, {"products": self.pages[index]}, headers, self.body_errors.get(index))

    def closed(self):
        with self.lock:
            self.open_count -= 1


def make_pages(sizes):
    pages, next_id = [], 1
    for size in sizes:
        pages.append([product(next_id + i) for i in range(size)])
        next_id += size
    return pages


class TestFetchAll:
    """Tests for CatalogFetcher.fetch_all."""

    @pytest.mark.parametrize("window", [1, 2, 3, 4, 5])
    def test_returns_every_item_in_order(self, window):
        sizes = [3, 1, 4, 1, 5]
        source = FakeCatalog(make_pages(sizes))
        fetcher = CatalogFetcher(source, window=window, default_delay=0)

        items = fetcher.fetch_all()

        ids = [item.id for item in items]
        assert len(ids) == sum(sizes)
        assert len(set(ids)) == len(ids)
        assert ids == [str(i) for i in range(1, sum(sizes) + 1)]

    @pytest.mark.parametrize("window", [1, 3])
    def test_never_requests_without_cursor(self, window):
        source = FakeCatalog(make_pages([2, 2, 2, 2]))

        CatalogFetcher(source, window=window, default_delay=0).fetch_all()

        assert source.requested == [None, "c1", "c2", "c3"]

    def test_in_flight_bounded_by_window(self):
        source = FakeCatalog(make_pages([1] * 8))

        CatalogFetcher(source, window=2, default_delay=0).fetch_all()

        assert source.max_open <= 2

    def test_single_page(self):
        source = FakeCatalog(make_pages([2]))
        items = CatalogFetcher(source, window=3, default_delay=0).fetch_all()
        assert len(items) == 2
        assert source.requested == [None]

    def test_empty_page_ends_pagination(self):
        pages = make_pages([2, 0, 3])
        source = FakeCatalog(pages)

        items = CatalogFetcher(source, window=1, default_delay=0).fetch_all()

        assert len(items) == 2
        assert "c2" not in source.requested

    def test_page_failure_propagates(self):
        source = FakeCatalog(make_pages([2, 2, 2]), fail_on=1)

        with pytest.raises(RemoteRejection):
            CatalogFetcher(source, window=3, default_delay=0).fetch_all()

    def test_malformed_listing_fails(self):
        source = FakeCatalog([[{"title": "no id", "status": "active", "variants": []}]])

        with pytest.raises(ParseError):
            CatalogFetcher(source, window=1, default_delay=0).fetch_all()

    @pytest.mark.parametrize("error,expected", [
        (requests.exceptions.ChunkedEncodingError("connection reset mid-body"), TransportError),
        (requests.exceptions.ReadTimeout("read timed out"), RequestTimeout),
    ])
    def test_body_read_failure_is_translated(self, error, expected):
        source = FakeCatalog(make_pages([2, 2]), body_errors={1: error})

        with pytest.raises(expected):
            CatalogFetcher(source, window=1, default_delay=0).fetch_all()

        assert source.open_count == 0

    def test_header_failure_does_not_hang(self):
        class BrokenHeaders:
            def get(self, *args):
                raise RuntimeError("undecodable header")

        class BrokenCatalog(FakeCatalog):
            def open_product_page(self, page_info=None, status="active", limit=250):
                response = super().open_product_page(page_info, status, limit)
                response.headers = BrokenHeaders()
                return response

        source = BrokenCatalog(make_pages([2, 2]))

        with pytest.raises(RuntimeError, match="undecodable header"):
            CatalogFetcher(source, window=2, default_delay=0).fetch_all()
        assert source.requested == [None]

    def test_failure_shutdown_uses_plain_wait_flag(self, monkeypatch):
        shutdowns = []

        class PlainExecutor(concurrent.futures.ThreadPoolExecutor):
            def shutdown(self, wait=True):
                shutdowns.append(wait)
                super().shutdown(wait=wait)

        monkeypatch.setattr("core.catalog_fetcher.ThreadPoolExecutor", PlainExecutor)
        source = FakeCatalog(make_pages([2, 2, 2]), fail_on=1)

        with pytest.raises(RemoteRejection):
            CatalogFetcher(source, window=3, default_delay=0).fetch_all()
        assert shutdowns == [False]

    def test_deadline(self):
        release = threading.Event()

        class SlowCatalog:
            def open_product_page(self, page_info=None, status="active", limit=250):
                release.wait(5)
                raise RemoteRejection("never reached in time")

        try:
            with pytest.raises(OperationTimeout):
                CatalogFetcher(SlowCatalog(), window=1, default_delay=0, deadline=0.05).fetch_all()
        finally:
            release.set()

    def test_waits_between_dispatches(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr("core.catalog_fetcher.time.sleep", sleeps.append)
        source = FakeCatalog(make_pages([1, 1, 1]))

        CatalogFetcher(source, window=2, default_delay=0.1).fetch_all()

        assert sleeps == [0.1, 0.1]

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            CatalogFetcher(FakeCatalog([]), window=0)


class TestParseCatalogItem:
    """Tests for parse_catalog_item."""

    def test_parses_fields(self):
        item = parse_catalog_item(product(7, quantities=(0, -2), status="ACTIVE"))

        assert item.id == "7"
        assert item.status == ProductStatus.ACTIVE
        assert [v.inventory_quantity for v in item.variants] == [0, -2]

    def test_unknown_status(self):
        with pytest.raises(ParseError):
            parse_catalog_item(product(7, status="unlisted"))

    def test_missing_quantity(self):
        data = product(7)
        data["variants"] = [{"sku": "A"}]
        with pytest.raises(ParseError):
            parse_catalog_item(data)

    def test_no_variants(self):
        data = product(7)
        data["variants"] = []
        assert parse_catalog_item(data).variants == []
