"""Shopify API client with rate limiting and retry logic."""
import time
from typing import Any, Dict, List, Optional

import requests
from requests.structures import CaseInsensitiveDict

from core.errors import ParseError, RemoteRejection, RequestTimeout, TransportError
from core.models import Product, ProductStatus, ProductVariant
from utils.config_loader import AppConfig
from utils.helpers import clean_html_description, from_gid, safe_int, to_gid

PRODUCT_LIST_FIELDS = "id,title,status,variants"

GRAPHQL_PRODUCT_FIELDS = """
    id
    title
    handle
    descriptionHtml
    updatedAt
    priceRangeV2 { minVariantPrice { amount } }
    images(first: 5) { edges { node { src } } }
    variants(first: 50) {
        edges {
            node {
                id
                title
                inventoryItem { id }
                inventoryQuantity
                price
                sku
            }
        }
    }
"""

INVENTORY_ADJUST_MUTATION = """
mutation inventoryAdjustQuantities($input: InventoryAdjustQuantitiesInput!) {
    inventoryAdjustQuantities(input: $input) {
        userErrors { field message }
        inventoryAdjustmentGroup {
            id
            createdAt
            reason
            changes { name delta }
        }
    }
}
"""


def parse_product(product: Dict[str, Any]) -> Product:
    """Convert a REST product payload into a Product.

    Raises:
        ParseError: If the product id is missing
    """
    if not isinstance(product, dict) or product.get("id") is None:
        raise ParseError("Missing product id")

    variants = []
    for variant in product.get("variants") or []:
        if variant.get("inventory_item_id") is None:
            continue
        variants.append(ProductVariant(
            variant_id=str(variant.get("id", "")),
            inventory_item_id=str(variant["inventory_item_id"]),
            title=variant.get("title") or "Default",
            inventory_quantity=safe_int(variant.get("inventory_quantity"), default=0),
            price=str(variant.get("price") or "0.00"),
            sku=variant.get("sku") or None
        ))

    images = [img["src"] for img in product.get("images") or [] if img.get("src")]

    return Product(
        id=str(product["id"]),
        title=product.get("title") or "Unknown",
        handle=product.get("handle") or "",
        price=variants[0].price if variants else "0.00",
        description=clean_html_description(product.get("body_html")),
        images=images,
        variants=variants,
        total_inventory=sum(v.inventory_quantity for v in variants)
    )


def parse_graphql_product(node: Dict[str, Any]) -> Product:
    """Convert a GraphQL product node into a Product.

    Raises:
        ParseError: If id or title is missing
    """
    if not node.get("id") or node.get("title") is None:
        raise ParseError("GraphQL product node is missing id or title")

    variants = []
    for edge in (node.get("variants") or {}).get("edges", []):
        variant = edge.get("node") or {}
        variants.append(ProductVariant(
            variant_id=from_gid(variant.get("id")),
            inventory_item_id=from_gid((variant.get("inventoryItem") or {}).get("id")),
            title=variant.get("title") or "",
            inventory_quantity=safe_int(variant.get("inventoryQuantity"), default=0),
            price=str(variant.get("price") or "0.00"),
            sku=variant.get("sku") or None
        ))

    images = [
        edge["node"]["src"]
        for edge in (node.get("images") or {}).get("edges", [])
        if (edge.get("node") or {}).get("src")
    ]
    price = (((node.get("priceRangeV2") or {}).get("minVariantPrice") or {}).get("amount")) or "0.00"

    return Product(
        id=from_gid(node["id"]),
        title=node["title"],
        handle=node.get("handle") or "",
        price=str(price),
        description=clean_html_description(node.get("descriptionHtml")),
        images=images,
        variants=variants,
        total_inventory=sum(v.inventory_quantity for v in variants)
    )


class ShopifyClient:
    """Client for interacting with Shopify Admin API."""

    def __init__(
        self,
        shop_url: str,
        access_token: str,
        api_version: str = "2025-01",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """Initialize Shopify client.

        Args:
            shop_url: Shopify store URL (e.g., "your-store.myshopify.com")
            access_token: Shopify Admin API access token
            api_version: API version to use
            timeout: Per-request timeout in seconds
            session: Optional pre-built session (connection pool is shared by all threads)
        """
        self.shop_url = shop_url.replace('https://', '').replace('http://', '').strip('/')
        self.access_token = access_token
        self.api_version = api_version
        self.base_url = f"https://{self.shop_url}/admin/api/{api_version}"
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json"
        })

        # Rate limiting configuration
        self.max_retries = 3  # only for idempotent (GET) requests
        self.retry_delay = 2  # seconds
        self.max_rate_limit_attempts = 20
        self.last_headers: CaseInsensitiveDict = CaseInsensitiveDict()

    @classmethod
    def from_config(cls, config: AppConfig) -> "ShopifyClient":
        return cls(
            shop_url=config.shop_domain,
            access_token=config.access_token,
            api_version=config.api_version,
            timeout=config.request_timeout
        )

    def _send(
        self,
        method: str,
        url: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        stream: bool = False
    ) -> requests.Response:
        """Send a request, waiting out 429s and retrying idempotent calls on network errors.

        Returns:
            The successful response (body not yet consumed when ``stream`` is set)

        Raises:
            RequestTimeout: If the call timed out
            TransportError: On network failure
            RemoteRejection: On a non-2xx status
        """
        attempts = self.max_retries if method.upper() == "GET" else 1

        for attempt in range(attempts):
            try:
                # Separate loop for handling rate limiting (don't count as retries)
                for _ in range(self.max_rate_limit_attempts):
                    response = self.session.request(
                        method=method,
                        url=url,
                        json=data,
                        params=params,
                        timeout=self.timeout,
                        stream=stream
                    )

                    if response.status_code == 429:
                        retry_after = safe_int(response.headers.get('Retry-After', self.retry_delay), default=self.retry_delay)
                        print(f"⏳ Rate limited. Waiting {retry_after} seconds...")
                        response.close()
                        time.sleep(retry_after)
                        continue

                    break
                else:
                    raise RemoteRejection(
                        f"Rate limited too many times ({self.max_rate_limit_attempts} attempts)",
                        status_code=429
                    )

                self.last_headers = CaseInsensitiveDict(response.headers)

                if not response.ok:
                    text = response.text
                    response.close()
                    raise RemoteRejection(
                        response.reason or "Request rejected",
                        status_code=response.status_code,
                        response_text=text
                    )

                return response

            except requests.exceptions.Timeout as e:
                error = RequestTimeout(f"Request to {url} timed out after {self.timeout}s: {e}")
            except requests.exceptions.RequestException as e:
                error = TransportError(f"Request to {url} failed: {e}")

            if attempt < attempts - 1:
                wait_time = self.retry_delay * (2 ** attempt)  # Exponential backoff
                print(f"⚠️  Request failed (attempt {attempt + 1}/{attempts}): {error}")
                print(f"   Retrying in {wait_time} seconds...")
                time.sleep(wait_time)
            else:
                raise error

        raise TransportError(f"Failed after {attempts} attempts")

    def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None
    ) -> Dict[str, Any]:
        """Make HTTP request to Shopify API and decode the JSON body.

        Args:
            method: HTTP method (GET, POST, PUT, etc.)
            endpoint: API endpoint (without base URL)
            data: Request body data
            params: URL parameters

        Returns:
            Response JSON data

        Raises:
            ParseError: If the body is not JSON
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        response = self._send(method, url, data=data, params=params)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Failed to parse JSON from {endpoint}: {e}")

    def _graphql(self, query: str, variables: Optional[Dict] = None) -> Dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object.

        Raises:
            RemoteRejection: If the response contains GraphQL errors
        """
        payload: Dict[str, Any] = {"query": query}
        if variables is not None:
            payload["variables"] = variables

        body = self._make_request("POST", "graphql.json", data=payload)
        if body.get("errors"):
            raise RemoteRejection(f"GraphQL errors: {body['errors']}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise ParseError("GraphQL response has no data object")
        return data

    def open_product_page(
        self,
        page_info: Optional[str] = None,
        status: Optional[str] = ProductStatus.ACTIVE.value,
        fields: str = PRODUCT_LIST_FIELDS,
        limit: int = 250
    ) -> requests.Response:
        """Request one page of products and return as soon as the headers arrive.

        The caller reads the Link header for the next cursor and then consumes the
        body. Shopify rejects filters other than ``limit``/``fields`` on cursor
        pages, so ``status`` only applies to the first page.

        Args:
            page_info: Cursor of the page to fetch, None for the first page
            status: Product status filter for the first page
            fields: Comma-separated product fields to return
            limit: Page size (max 250)

        Returns:
            Streaming response; the caller must close it
        """
        params: Dict[str, Any] = {"limit": limit, "fields": fields}
        if page_info:
            params["page_info"] = page_info
        elif status:
            params["status"] = status

        return self._send("GET", f"{self.base_url}/products.json", params=params, stream=True)

    def update_product_status(self, product_id: str, status: str) -> Dict[str, Any]:
        """Set a product's status ("active", "draft" or "archived").

        Setting a product to the status it already has succeeds as a no-op.
        """
        target = ProductStatus.parse(status).value
        try:
            numeric_id = int(product_id)
        except (ValueError, TypeError):
            raise ParseError(f"Invalid product ID: {product_id}")

        data = {"product": {"id": numeric_id, "status": target}}
        return self._make_request("PUT", f"products/{numeric_id}.json", data=data)

    def adjust_inventory(self, inventory_item_id: str, location_id: str, delta: int) -> Dict[str, Any]:
        """Adjust available quantity of an item at a location by a signed delta."""
        data = {
            "location_id": safe_int(location_id),
            "inventory_item_id": safe_int(inventory_item_id),
            "available_adjustment": int(delta)
        }
        return self._make_request("POST", "inventory_levels/adjust.json", data=data)

    def adjust_inventory_graphql(
        self,
        inventory_item_id: str,
        location_id: str,
        delta: int,
        reason: str = "correction"
    ) -> Dict[str, Any]:
        """Adjust available quantity through the inventoryAdjustQuantities mutation.

        Raises:
            RemoteRejection: If Shopify reports userErrors
        """
        variables = {
            "input": {
                "reason": reason,
                "name": "available",
                "referenceDocumentUri": "app://inventario-cappelletto",
                "changes": [{
                    "delta": int(delta),
                    "inventoryItemId": to_gid("InventoryItem", inventory_item_id),
                    "locationId": to_gid("Location", location_id)
                }]
            }
        }
        data = self._graphql(INVENTORY_ADJUST_MUTATION, variables)
        result = data.get("inventoryAdjustQuantities") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            raise RemoteRejection(f"Inventory adjustment errors: {user_errors}")
        return result.get("inventoryAdjustmentGroup") or {}

    def set_inventory_level(self, inventory_item_id: str, location_id: str, available: int) -> Dict[str, Any]:
        """Set the absolute available quantity for an item at a location."""
        data = {
            "inventory_item_id": safe_int(inventory_item_id),
            "location_id": safe_int(location_id),
            "available": safe_int(available)
        }
        return self._make_request("POST", "inventory_levels/set.json", data=data)

    def get_inventory_levels(self, inventory_item_ids: List[str]) -> Dict[str, Dict[str, int]]:
        """Get available quantities per location.

        Returns:
            ``{inventory_item_id: {location_id: available}}``
        """
        if not inventory_item_ids:
            return {}

        response = self._make_request(
            "GET",
            "inventory_levels.json",
            params={"inventory_item_ids": ",".join(str(i) for i in inventory_item_ids), "limit": 250}
        )
        levels = response.get("inventory_levels")
        if not isinstance(levels, list):
            raise ParseError("No inventory levels found in response")

        result: Dict[str, Dict[str, int]] = {}
        for level in levels:
            if level.get("inventory_item_id") is None or level.get("location_id") is None:
                raise ParseError(f"Inventory level missing ids: {level}")
            item_id = str(level["inventory_item_id"])
            location_id = str(level["location_id"])
            result.setdefault(item_id, {})[location_id] = safe_int(level.get("available"), default=0)

        return result

    def get_inventory_levels_for_locations(
        self,
        inventory_item_ids: List[str],
        primary_location_id: str,
        secondary_location_id: str
    ) -> Dict[str, Dict[str, int]]:
        """Get quantities at the two shop locations only.

        Returns:
            ``{inventory_item_id: {"primary": qty, "secondary": qty}}``
        """
        labels = {str(primary_location_id): "primary", str(secondary_location_id): "secondary"}
        result: Dict[str, Dict[str, int]] = {}

        for item_id, by_location in self.get_inventory_levels(inventory_item_ids).items():
            for location_id, available in by_location.items():
                label = labels.get(location_id)
                if label:
                    result.setdefault(item_id, {})[label] = available

        return result

    def has_zero_inventory(self, product_id: str) -> bool:
        """Check whether every variant of a product is at or below zero at every location."""
        product = self.get_product(product_id)
        item_ids = [v.inventory_item_id for v in product.variants]
        levels = self.get_inventory_levels(item_ids)
        return not any(qty > 0 for by_location in levels.values() for qty in by_location.values())

    def get_product(self, product_id: str) -> Product:
        response = self._make_request("GET", f"products/{product_id}.json")
        if "product" not in response:
            raise ParseError(f"Product {product_id} missing from response")
        return parse_product(response["product"])

    def get_products(self, limit: int = 250) -> List[Product]:
        """Get the first page of products."""
        response = self._make_request("GET", "products.json", params={"limit": limit})
        return [parse_product(p) for p in response.get("products", [])]

    def search_products(self, title: str) -> List[Product]:
        """Search products by title through the REST endpoint."""
        response = self._make_request("GET", "products.json", params={"title": title, "limit": 250})
        return [parse_product(p) for p in response.get("products", [])]

    def search_products_by_sku(self, sku: str, first: int = 50) -> List[Product]:
        """Search active products whose variants carry the given SKU (case-insensitive)."""
        query = f'{{ products(first: {first}, query: "sku:{_escape(sku)} status:active") {{ edges {{ node {{ {GRAPHQL_PRODUCT_FIELDS} }} }} }} }}'
        data = self._graphql(query)
        products = [parse_graphql_product(edge["node"]) for edge in data.get("products", {}).get("edges", [])]
        wanted = sku.lower()
        return [p for p in products if any((v.sku or "").lower() == wanted for v in p.variants)]

    def find_product_by_exact_sku(self, sku: str) -> Optional[Product]:
        """Return the first active product with a variant whose SKU matches exactly."""
        matches = self.search_products_by_sku(sku, first=10)
        return matches[0] if matches else None

    def search_products_by_name(
        self,
        name: str,
        sort_key: str = "RELEVANCE",
        reverse: bool = False
    ) -> List[Product]:
        """Search active products by title prefix through GraphQL."""
        query = (
            f'{{ products(first: 40, query: "title:{_escape(name)}* status:active", '
            f'sortKey: {sort_key}, reverse: {str(bool(reverse)).lower()}) '
            f'{{ edges {{ node {{ {GRAPHQL_PRODUCT_FIELDS} }} }} }} }}'
        )
        data = self._graphql(query)
        return [parse_graphql_product(edge["node"]) for edge in data.get("products", {}).get("edges", [])]

    def enhanced_search_products(self, query: str) -> List[Product]:
        """Search by exact SKU first, then by title, then by partial SKU.

        Args:
            query: Free text typed by staff (a title fragment or a SKU)

        Returns:
            Products de-duplicated by id, exact SKU match alone if found
        """
        query = query.strip()
        results: List[Product] = []
        seen = set()

        def add(products: List[Product]):
            for product in products:
                if product.id not in seen:
                    seen.add(product.id)
                    results.append(product)

        # SKUs are longer than 5 characters
        if len(query) > 5:
            try:
                exact = self.find_product_by_exact_sku(query)
                if exact:
                    return [exact]
            except (RemoteRejection, TransportError, ParseError) as e:
                print(f"⚠️  SKU search failed: {e}")

        try:
            add(self.search_products_by_name(query))
        except (RemoteRejection, TransportError, ParseError) as e:
            print(f"⚠️  GraphQL title search failed, falling back to REST: {e}")
            add(self.search_products(query))

        if not results:
            add(self.search_products_by_sku(query))

        return results

    def get_low_stock_products(self, threshold: int) -> List[Dict[str, Any]]:
        """List variants at or below a stock threshold from the first product page."""
        response = self._make_request("GET", "products.json", params={"limit": 250})
        low_stock = []
        for product in response.get("products", []):
            for variant in product.get("variants") or []:
                quantity = safe_int(variant.get("inventory_quantity"), default=0)
                if quantity <= threshold:
                    low_stock.append({
                        "product_id": product.get("id"),
                        "product_title": product.get("title"),
                        "variant_id": variant.get("id"),
                        "variant_title": variant.get("title"),
                        "inventory_quantity": quantity,
                        "sku": variant.get("sku")
                    })
        return low_stock

    def test_connection(self) -> bool:
        """Test connection to Shopify API.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self._make_request("GET", "shop.json")
            shop_name = response.get("shop", {}).get("name", "Unknown")
            print(f"✓ Successfully connected to Shopify store: {shop_name}")
            return True
        except (RemoteRejection, TransportError, ParseError) as e:
            print(f"✗ Failed to connect to Shopify: {e}")
            return False


def _escape(term: str) -> str:
    return term.replace("\\", "\\\\").replace('"', '\\"')
