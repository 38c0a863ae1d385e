"""Data structures shared by the stock scanner, inventory mover and audit log."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


# Opaque continuation token from the Link header; None ends the stream.
PageCursor = Optional[str]


class ProductStatus(str, Enum):
    """Shopify product visibility status."""

    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, value: str) -> "ProductStatus":
        """Parse a status string as returned by Shopify (REST lowercase, GraphQL uppercase).

        Raises:
            ValueError: If the status is unknown
        """
        return cls(str(value).strip().lower())


class TransferStatus(str, Enum):
    """Terminal states of an inventory transfer."""

    COMMITTED = "committed"
    FAILED = "failed"  # removal from the source failed, nothing changed
    ROLLED_BACK = "rolled_back"
    UNRECOVERABLE = "unrecoverable"


@dataclass(frozen=True)
class Variant:
    inventory_quantity: int
    sku: Optional[str] = None


@dataclass(frozen=True)
class CatalogItem:
    """One product as returned by the paginated listing endpoint."""

    id: str
    title: str
    status: ProductStatus
    variants: List[Variant] = field(default_factory=list)


@dataclass(frozen=True)
class NoStockCandidate:
    id: str
    title: str
    status: ProductStatus
    is_excluded: bool


@dataclass
class UpdateOutcome:
    product_id: str
    title: str
    success: bool
    error: Optional[str] = None


@dataclass
class UpdateSummary:
    total_found: int
    excluded_count: int
    eligible_count: int
    successful_updates: int
    failed_updates: int


@dataclass
class StockUpdateResult:
    products_found: List[NoStockCandidate]
    update_results: List[UpdateOutcome]
    summary: UpdateSummary


@dataclass(frozen=True)
class TransferRequest:
    """Move ``quantity_delta`` units of an inventory item between two locations."""

    item_id: str
    from_location_id: str
    to_location_id: str
    quantity_delta: int = 1


@dataclass
class TransferOutcome:
    status: TransferStatus
    message: str
    status_changed: Optional[str] = None  # "to_draft" / "to_active"
    product_status: Optional[str] = None
    diagnostics: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == TransferStatus.COMMITTED

    @property
    def is_retryable(self) -> bool:
        """True when remote state is unchanged and the operation may be retried."""
        return self.status in (TransferStatus.FAILED, TransferStatus.ROLLED_BACK)


@dataclass
class ProductVariant:
    variant_id: str
    inventory_item_id: str
    title: str
    inventory_quantity: int
    price: str
    sku: Optional[str] = None


@dataclass
class Product:
    """Product with the fields shown to staff in search results."""

    id: str
    title: str
    handle: str
    price: str
    description: str
    images: List[str] = field(default_factory=list)
    variants: List[ProductVariant] = field(default_factory=list)
    total_inventory: int = 0
    locations: Dict[str, int] = field(default_factory=dict)


@dataclass
class ProductContext:
    """Descriptive fields of the product/variant being adjusted, copied into audit records."""

    product_id: str
    variant_title: str
    product_name: str
    price: str
    images: List[str] = field(default_factory=list)


@dataclass
class LogData:
    id: str
    variant: str
    negozio: str
    inventory_item_id: str
    nome: str
    prezzo: str
    rettifica: int
    images: List[str] = field(default_factory=list)


@dataclass
class LogEntry:
    """Audit record stored in the ``logs`` collection."""

    request_type: str
    data: LogData
    timestamp: str


@dataclass
class CheckRequest:
    """Staff request to physically verify a product's stock."""

    location: List[str]
    priority: str
    product_id: int
    product_name: str
    requested_by: str
    status: str
    timestamp: str
    notes: str = ""
    check_all: bool = False
    checked: bool = False
    checked_at: Optional[str] = None
    checked_by: Optional[str] = None
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    image_url: Optional[str] = None
    closing_notes: Optional[str] = None
    id: Optional[str] = None  # Firestore document id, set when read back


@dataclass
class ModificationDetail:
    timestamp: str
    source: str
    change: int
    reason: Optional[str] = None


@dataclass
class DailyModificationGroup:
    date: str
    app_net_change: int
    app_details: List[ModificationDetail] = field(default_factory=list)


@dataclass
class VariantModificationHistory:
    variant_title: str
    inventory_item_id: str
    app_net_change: int
    current_quantity: int
    daily_modifications: List[DailyModificationGroup] = field(default_factory=list)


@dataclass
class DateRange:
    start_date: str
    end_date: str
    days_back: int


@dataclass
class ProductModificationHistory:
    product_id: str
    location: str
    date_range: DateRange
    variants: List[VariantModificationHistory] = field(default_factory=list)
