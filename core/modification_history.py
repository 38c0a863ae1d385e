"""Per-variant history of the inventory changes made through this app."""
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from core.models import (
    DailyModificationGroup,
    DateRange,
    LogEntry,
    ModificationDetail,
    ProductModificationHistory,
    VariantModificationHistory,
)
from utils.config_loader import AppConfig
from utils.helpers import timestamp_date
from utils.location_store import location_id_for


def group_modifications_by_date(logs: Iterable[LogEntry]) -> List[DailyModificationGroup]:
    """Group audit records by calendar day, most recent day first.

    Every record counts as an app change; ``reason`` carries its request type.
    """
    groups: Dict[str, List[LogEntry]] = OrderedDict()
    for log in logs:
        groups.setdefault(timestamp_date(log.timestamp), []).append(log)

    daily = [
        DailyModificationGroup(
            date=day,
            app_net_change=sum(log.data.rettifica for log in day_logs),
            app_details=[
                ModificationDetail(
                    timestamp=log.timestamp,
                    source="app",
                    change=log.data.rettifica,
                    reason=log.request_type
                )
                for log in day_logs
            ]
        )
        for day, day_logs in groups.items()
    ]
    daily.sort(key=lambda group: group.date, reverse=True)
    return daily


def get_product_modification_history(
    client,
    firestore,
    config: AppConfig,
    product_id: str,
    location: str,
    days_back: int,
    now: Optional[datetime] = None
) -> ProductModificationHistory:
    """Summarize what the app changed for each variant of a product at one location.

    Only app-recorded changes are reported; edits made directly in Shopify are
    not reconstructed.

    Args:
        client: ShopifyClient
        firestore: FirestoreClient
        config: Loaded configuration (location ids)
        product_id: Shopify product id
        location: Location display name ("Treviso" or "Mogliano")
        days_back: Size of the window ending now
        now: End of the window, defaults to the current UTC time

    Returns:
        ProductModificationHistory with one entry per variant

    Raises:
        ValidationError: If the location is unknown
        InventoryError: If Shopify or Firestore calls fail
    """
    location_id = location_id_for(location, config)

    end = now or datetime.now(timezone.utc)
    start = end - timedelta(days=days_back)
    date_range = DateRange(start_date=start.isoformat(), end_date=end.isoformat(), days_back=days_back)

    print("📊 Starting modification history analysis:")
    print(f"   📦 Product ID: {product_id}")
    print(f"   🏪 Location: {location}")
    print(f"   📅 Days back: {days_back}")

    logs = firestore.get_logs_by_product_id(product_id, location, date_range.start_date, date_range.end_date)
    print(f"📝 Found {len(logs)} Firebase logs for this product")

    product = client.get_product(product_id)
    print(f"🛍️ Retrieved product: {product.title}")

    levels = client.get_inventory_levels([v.inventory_item_id for v in product.variants])

    variants = []
    for variant in product.variants:
        variant_logs = [log for log in logs if log.data.variant == variant.title]
        current_quantity = levels.get(str(variant.inventory_item_id), {}).get(str(location_id), 0)

        variants.append(VariantModificationHistory(
            variant_title=variant.title,
            inventory_item_id=variant.inventory_item_id,
            app_net_change=sum(log.data.rettifica for log in variant_logs),
            current_quantity=current_quantity,
            daily_modifications=group_modifications_by_date(variant_logs)
        ))

    print("✅ Modification history analysis completed")
    return ProductModificationHistory(
        product_id=str(product_id),
        location=location,
        date_range=date_range,
        variants=variants
    )
