"""Helper functions for the inventory tools."""
import html
import re
from datetime import datetime
from typing import Any, Mapping, Optional, Set, Tuple
from urllib.parse import parse_qs, urlparse


def safe_int(value: Any, default: int = 0) -> int:
    """Convert a value to int, returning a default when it can't be parsed.

    Examples:
        >>> safe_int("42")
        42
        >>> safe_int("4.0")
        4
        >>> safe_int(None, default=7)
        7
    """
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        pass
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return default


def extract_next_page_info(link_header: Optional[str]) -> Optional[str]:
    """Extract the ``page_info`` cursor of the rel="next" link.

    Args:
        link_header: Raw Link header, e.g.
            ``<https://shop/admin/api/2025-01/products.json?limit=250&page_info=abc>; rel="next"``

    Returns:
        The cursor string, or None when there is no next page
    """
    if not link_header:
        return None

    for link in link_header.split(","):
        if 'rel="next"' not in link:
            continue
        url = link.split(";")[0].strip().strip("<>")
        values = parse_qs(urlparse(url).query).get("page_info")
        if values:
            return values[0]

    return None


def parse_call_limit(header: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse ``X-Shopify-Shop-Api-Call-Limit`` ("used/limit").

    Examples:
        >>> parse_call_limit("32/40")
        (32, 40)
        >>> parse_call_limit("garbage") is None
        True
    """
    if not header:
        return None
    match = re.match(r"^\s*(\d+)\s*/\s*(\d+)\s*$", header)
    if not match:
        return None
    used, limit = int(match.group(1)), int(match.group(2))
    if limit <= 0:
        return None
    return used, limit


def compute_rate_limit_delay(
    headers: Optional[Mapping[str, str]],
    default_delay: float,
    leak_rate: float = 2.0,
    reserve: int = 4
) -> float:
    """Work out how long to wait before the next call from rate-limit headers.

    Shopify's REST limit is a leaky bucket: ``leak_rate`` calls drain per second.
    ``Retry-After`` wins when present. When the bucket has fewer than ``reserve``
    free slots we wait for enough to drain. Without any rate-limit header the
    fixed ``default_delay`` is used.

    Args:
        headers: Response headers of the previous call (case-insensitive mapping)
        default_delay: Fallback delay in seconds
        leak_rate: Calls per second the bucket drains
        reserve: Free slots to keep for other callers

    Returns:
        Delay in seconds
    """
    if not headers:
        return default_delay

    retry_after = headers.get("Retry-After")
    if retry_after is not None:
        try:
            return max(float(retry_after), 0.0)
        except (ValueError, TypeError):
            pass

    call_limit = parse_call_limit(headers.get("X-Shopify-Shop-Api-Call-Limit"))
    if call_limit is None:
        return default_delay

    used, limit = call_limit
    free = limit - used
    if free >= reserve:
        return 0.0
    return (reserve - free) / leak_rate


def to_gid(resource: str, resource_id: Any) -> str:
    """Convert a numeric id to a Shopify global id.

    Examples:
        >>> to_gid("Location", 123)
        'gid://shopify/Location/123'
    """
    text = str(resource_id)
    if text.startswith("gid://"):
        return text
    return f"gid://shopify/{resource}/{text}"


def from_gid(gid: Optional[str]) -> str:
    """Strip a Shopify global id down to its numeric part.

    Examples:
        >>> from_gid("gid://shopify/Product/42")
        '42'
        >>> from_gid("42")
        '42'
    """
    if not gid:
        return ""
    return str(gid).rsplit("/", 1)[-1]


def clean_html_description(raw_html: Optional[str]) -> str:
    """Strip tags and entities from a product description."""
    if not raw_html:
        return ""
    without_tags = re.sub(r"<[^>]*>", "", raw_html)
    text = html.unescape(without_tags).replace("\xa0", " ")
    return re.sub(r"\s+", " ", text).strip()


def timestamp_date(timestamp: str) -> str:
    """Return the YYYY-MM-DD part of an ISO/RFC3339 timestamp.

    Falls back to the text before "T" when the timestamp can't be parsed.
    """
    try:
        return datetime.fromisoformat(timestamp.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except (ValueError, AttributeError):
        return (timestamp or "unknown").split("T")[0] or "unknown"


def parse_id_list(raw: Optional[str]) -> Set[str]:
    """Parse a comma-separated id list into a set of trimmed strings.

    Examples:
        >>> sorted(parse_id_list(" 1, 2,,3 "))
        ['1', '2', '3']
    """
    if not raw:
        return set()
    return {part.strip() for part in str(raw).split(",") if part.strip()}
