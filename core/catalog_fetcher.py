"""Pipelined fetch of the full product catalog over cursor pagination."""
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Deque, Dict, List, Optional, Tuple

import requests

from core.errors import OperationTimeout, ParseError, RequestTimeout, TransportError
from core.models import CatalogItem, PageCursor, ProductStatus, Variant
from utils.helpers import compute_rate_limit_delay, extract_next_page_info


def parse_catalog_item(product: Dict[str, Any]) -> CatalogItem:
    """Convert one listing payload into a CatalogItem.

    Raises:
        ParseError: If id or status is missing, or a variant has no quantity
    """
    if not isinstance(product, dict) or product.get("id") is None:
        raise ParseError(f"Product without id in listing: {product!r}")

    try:
        status = ProductStatus.parse(product.get("status"))
    except ValueError:
        raise ParseError(f"Product {product['id']} has unknown status {product.get('status')!r}")

    variants = []
    for variant in product.get("variants") or []:
        quantity = variant.get("inventory_quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ParseError(f"Product {product['id']} has a variant without inventory_quantity")
        variants.append(Variant(inventory_quantity=quantity, sku=variant.get("sku") or None))

    return CatalogItem(
        id=str(product["id"]),
        title=product.get("title") or "",
        status=status,
        variants=variants
    )


class CatalogFetcher:
    """Fetch every product page with up to ``window`` pages in flight.

    Shopify only reveals the cursor of page k+1 in page k's Link header, so a
    request is never sent before its cursor is known. Each page task publishes
    its cursor as soon as the response headers arrive and only then downloads
    and parses the body, which lets the next page start while the previous body
    is still streaming. Pages are joined in dispatch order, which is cursor
    order, so the result matches a sequential fetch.
    """

    def __init__(
        self,
        client,
        window: int = 3,
        status: Optional[str] = ProductStatus.ACTIVE.value,
        page_size: int = 250,
        default_delay: float = 0.1,
        deadline: Optional[float] = None
    ):
        """Initialize fetcher.

        Args:
            client: ShopifyClient (anything with ``open_product_page``)
            window: Maximum number of page requests in flight
            status: Status filter applied to the first page
            page_size: Products per page
            default_delay: Delay between dispatches when no rate-limit header is present
            deadline: Overall time budget in seconds, None for no limit
        """
        if window < 1:
            raise ValueError(f"window must be at least 1, got {window}")
        self.client = client
        self.window = window
        self.status = status
        self.page_size = page_size
        self.default_delay = default_delay
        self.deadline = deadline

    def _fetch_page(self, page_info: PageCursor, cursor_ready: Future) -> List[CatalogItem]:
        try:
            response = self.client.open_product_page(
                page_info=page_info,
                status=self.status,
                limit=self.page_size
            )
        except BaseException as e:
            cursor_ready.set_exception(e)
            raise

        try:
            try:
                next_cursor = extract_next_page_info(response.headers.get("Link"))
                delay = compute_rate_limit_delay(response.headers, self.default_delay)
            except BaseException as e:
                cursor_ready.set_exception(e)
                raise
            cursor_ready.set_result((next_cursor, delay))

            body = self._read_body(response)
        finally:
            response.close()

        products = body.get("products") if isinstance(body, dict) else None
        if not isinstance(products, list):
            raise ParseError("Listing response has no 'products' array")

        return [parse_catalog_item(p) for p in products]

    def _read_body(self, response) -> Any:
        # Body is still streaming here
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Failed to parse JSON: {e}")
        except requests.exceptions.Timeout as e:
            raise RequestTimeout(f"Reading product page timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Reading product page failed: {e}")

    def _remaining(self, started: float) -> Optional[float]:
        if self.deadline is None:
            return None
        remaining = self.deadline - (time.monotonic() - started)
        if remaining <= 0:
            raise OperationTimeout(f"Catalog fetch exceeded its {self.deadline}s deadline")
        return remaining

    def _wait(self, future: Future, started: float) -> Any:
        try:
            return future.result(timeout=self._remaining(started))
        except FutureTimeout:
            raise OperationTimeout(f"Catalog fetch exceeded its {self.deadline}s deadline")

    def fetch_all(self) -> List[CatalogItem]:
        """Fetch the whole catalog.

        Returns:
            All items in server order

        Raises:
            InventoryError: First page failure; nothing partial is returned
            OperationTimeout: If the deadline passes
        """
        pool = ThreadPoolExecutor(max_workers=self.window, thread_name_prefix="catalog-page")
        submitted: List[Future] = []
        try:
            items = self._run(pool, submitted)
        except BaseException:
            for future in submitted:
                future.cancel()
            pool.shutdown(wait=False)
            raise
        pool.shutdown(wait=True)
        return items

    def _run(self, pool: ThreadPoolExecutor, submitted: List[Future]) -> List[CatalogItem]:
        started = time.monotonic()
        in_flight: Deque[Tuple[int, Future]] = deque()
        items: List[CatalogItem] = []
        page_info: PageCursor = None
        page_number = 0
        exhausted = False

        def collect(number: int, future: Future) -> bool:
            page_items = self._wait(future, started)
            if not page_items:
                return False
            print(f"   📄 Page {number}: {len(page_items)} products")
            items.extend(page_items)
            return True

        while True:
            page_number += 1
            cursor_ready: Future = Future()
            future = pool.submit(self._fetch_page, page_info, cursor_ready)
            submitted.append(future)
            in_flight.append((page_number, future))

            next_cursor, delay = self._wait(cursor_ready, started)

            # Join finished pages from the front (and block when the window is full)
            while in_flight and (in_flight[0][1].done() or len(in_flight) >= self.window):
                number, future = in_flight.popleft()
                if not collect(number, future):
                    exhausted = True
                    break

            if exhausted or next_cursor is None:
                break

            page_info = next_cursor
            if delay > 0:
                time.sleep(delay)

        if not exhausted:
            while in_flight:
                number, future = in_flight.popleft()
                if not collect(number, future):
                    break

        for _, future in in_flight:
            future.cancel()

        return items
