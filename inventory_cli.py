"""Staff command line for the two shop locations.

Search products, record sales and undo them, move stock between Treviso and
Mogliano, and read the audit log and stock check requests.
"""
import argparse
import sys
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from core.errors import InventoryError, ValidationError
from core.firestore_client import FirestoreClient
from core.inventory_mover import InventoryMover
from core.logger import RunLogger
from core.modification_history import get_product_modification_history
from core.models import CheckRequest, Product, ProductContext, ProductVariant, TransferRequest
from core.shopify_client import ShopifyClient
from utils.config_loader import AppConfig, ConfigLoader
from utils.location_store import LOCATIONS, LocationStore, get_available_locations


class Services:
    """Clients and settings shared by the subcommands, built on first use."""

    def __init__(self, config: AppConfig, store: LocationStore):
        self.config = config
        self.store = store
        self._shopify: Optional[ShopifyClient] = None
        self._firestore: Optional[FirestoreClient] = None

    @property
    def shopify(self) -> ShopifyClient:
        if self._shopify is None:
            self._shopify = ShopifyClient.from_config(self.config)
        return self._shopify

    @property
    def firestore(self) -> FirestoreClient:
        if self._firestore is None:
            self._firestore = FirestoreClient.from_config(self.config)
        return self._firestore

    def mover(self) -> InventoryMover:
        audit_sink = self.firestore if self.config.firebase_api_key else None
        return InventoryMover(self.shopify, audit_sink=audit_sink)


def select_variant(product: Product, variant: Optional[str]) -> ProductVariant:
    """Pick a variant by id, inventory item id, SKU or title; the only variant when omitted.

    Raises:
        ValidationError: If no variant matches or the choice is ambiguous
    """
    if not product.variants:
        raise ValidationError(f"Product {product.id} has no variants", field="variant")

    if variant is None:
        if len(product.variants) > 1:
            titles = ", ".join(v.title for v in product.variants)
            raise ValidationError(f"Product has several variants, choose one of: {titles}", field="variant")
        return product.variants[0]

    wanted = variant.strip().lower()
    for candidate in product.variants:
        keys = {candidate.variant_id, candidate.inventory_item_id, (candidate.sku or "").lower(), candidate.title.lower()}
        if wanted in keys:
            return candidate
    raise ValidationError(f"Variant '{variant}' not found on product {product.id}", field="variant")


def build_context(product: Product, variant: ProductVariant) -> ProductContext:
    return ProductContext(
        product_id=product.id,
        variant_title=variant.title,
        product_name=product.title,
        price=variant.price,
        images=list(product.images)
    )


def _load_target(services: Services, product_id: str, variant: Optional[str]) -> Tuple[ProductContext, ProductVariant]:
    product = services.shopify.get_product(product_id)
    chosen = select_variant(product, variant)
    return build_context(product, chosen), chosen


def cmd_search(args, services: Services) -> int:
    products = services.shopify.enhanced_search_products(args.query)
    if not products:
        print("No products found")
        return 0

    locations = services.store.get_current_location_config(services.config)
    item_ids = [v.inventory_item_id for p in products for v in p.variants]
    levels = services.shopify.get_inventory_levels_for_locations(
        item_ids,
        locations.primary_location.id,
        locations.secondary_location.id
    )

    here = locations.primary_location.name
    there = locations.secondary_location.name
    for product in products:
        print(f"\n📦 {product.title} (ID: {product.id}) - €{product.price}")
        for variant in product.variants:
            stock = levels.get(variant.inventory_item_id, {})
            print(
                f"   • {variant.title} [SKU: {variant.sku or '-'}] "
                f"{here}: {stock.get('primary', 0)}  {there}: {stock.get('secondary', 0)}"
            )
    return 0


def cmd_low_stock(args, services: Services) -> int:
    rows = services.shopify.get_low_stock_products(args.threshold)
    for row in rows:
        print(f"   • {row['product_title']} ({row['variant_title']}): {row['inventory_quantity']}")
    print(f"\n{len(rows)} variants at or below {args.threshold}")
    return 0


def _report(outcome, kind: str, context: ProductContext) -> int:
    logger = RunLogger(kind=kind)
    logger.log_transfer(outcome, {"product_id": context.product_id, "variant": context.variant_title})
    logger.save()

    icon = "✅" if outcome.succeeded else "❌"
    print(f"\n{icon} {outcome.message}")
    for diagnostic in outcome.diagnostics:
        print(f"   ⚠️  {diagnostic}")
    return 0 if outcome.succeeded else 1


def cmd_decrease(args, services: Services) -> int:
    context, variant = _load_target(services, args.product_id, args.variant)
    current = services.store.get_current_location_config(services.config).primary_location
    outcome = services.mover().decrease_with_logging(context, variant.inventory_item_id, current.id, current.name)
    return _report(outcome, "decrease", context)


def cmd_undo(args, services: Services) -> int:
    context, variant = _load_target(services, args.product_id, args.variant)
    current = services.store.get_current_location_config(services.config).primary_location
    outcome = services.mover().undo_decrease_with_logging(context, variant.inventory_item_id, current.id, current.name)
    return _report(outcome, "undo", context)


def cmd_transfer(args, services: Services) -> int:
    context, variant = _load_target(services, args.product_id, args.variant)
    locations = services.store.get_current_location_config(services.config)
    source, destination = locations.primary_location, locations.secondary_location

    request = TransferRequest(
        item_id=variant.inventory_item_id,
        from_location_id=source.id,
        to_location_id=destination.id,
        quantity_delta=args.quantity
    )
    outcome = services.mover().transfer(request, context, source.name, destination.name)
    if outcome.is_retryable:
        print("ℹ️  Inventory is unchanged, the transfer can be retried")
    elif not outcome.succeeded:
        print("🚨 Inventory may be inconsistent, check both locations manually")
    return _report(outcome, "transfer", context)


def cmd_location(args, services: Services) -> int:
    if args.name:
        services.store.set(args.name)
        print(f"📍 Current location set to {args.name}")
        return 0

    current = services.store.get()
    print(f"📍 Current location: {current or 'not set (defaulting to Treviso)'}")
    for info in get_available_locations(services.config):
        print(f"   • {info.name} (ID: {info.id})")
    return 0


def cmd_logs(args, services: Services) -> int:
    location = args.location or services.store.get_current_location_config(services.config).primary_location.name
    if args.start:
        logs = services.firestore.get_logs_date_range(args.query, location, args.start, args.end or args.start)
    else:
        logs = services.firestore.get_logs(args.query, location)

    for log in logs:
        print(
            f"   {log.timestamp}  {log.request_type:<13} {log.data.rettifica:+d}  "
            f"{log.data.nome} ({log.data.variant})"
        )
    print(f"\n{len(logs)} log entries for {location}")
    return 0


def cmd_history(args, services: Services) -> int:
    location = args.location or services.store.get_current_location_config(services.config).primary_location.name
    history = get_product_modification_history(
        services.shopify,
        services.firestore,
        services.config,
        args.product_id,
        location,
        args.days
    )

    for variant in history.variants:
        print(f"\n🔹 {variant.variant_title}: now {variant.current_quantity}, app change {variant.app_net_change:+d}")
        for day in variant.daily_modifications:
            print(f"   {day.date}: {day.app_net_change:+d}")
            for detail in day.app_details:
                print(f"      {detail.timestamp} {detail.reason} {detail.change:+d}")
    return 0


def cmd_checks(args, services: Services) -> int:
    if args.action == "list":
        location = args.location or services.store.get_current_location_config(services.config).primary_location.name
        for check in services.firestore.get_check_requests(location):
            print(f"   [{check.status}] {check.id}: {check.product_name} ({check.priority}) by {check.requested_by}")
        return 0

    if args.action == "create":
        product = services.shopify.get_product(args.product_id)
        variant = select_variant(product, args.variant) if args.variant else None
        request = CheckRequest(
            location=args.locations or list(LOCATIONS),
            priority=args.priority,
            product_id=int(product.id),
            product_name=product.title,
            requested_by=args.requested_by,
            status="pending",
            timestamp=datetime.now(timezone.utc).isoformat(),
            notes=args.notes or "",
            check_all=variant is None,
            variant_id=int(variant.variant_id) if variant else None,
            variant_name=variant.title if variant else None,
            image_url=product.images[0] if product.images else None
        )
        doc_id = services.firestore.create_check_request(request)
        print(f"✅ Check request created: {doc_id}")
        return 0

    services.firestore.update_check_request(args.id, args.status, args.notes or "")
    print(f"✅ Check request {args.id} updated to {args.status}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage stock at the Treviso and Mogliano shops",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python inventory_cli.py location Mogliano
  python inventory_cli.py search "giacca"
  python inventory_cli.py decrease 7428394 --variant M
  python inventory_cli.py transfer 7428394 --variant M
  python inventory_cli.py history 7428394 --days 30
        """
    )
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search products by title or SKU")
    search.add_argument("query")
    search.set_defaults(func=cmd_search)

    low = sub.add_parser("low-stock", help="List variants at or below a quantity")
    low.add_argument("--threshold", type=int, default=0)
    low.set_defaults(func=cmd_low_stock)

    for name, func, help_text in (
        ("decrease", cmd_decrease, "Remove one unit at the current location"),
        ("undo", cmd_undo, "Give back one unit removed by decrease"),
        ("transfer", cmd_transfer, "Move stock from the current location to the other one"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("product_id")
        command.add_argument("--variant", help="Variant title, SKU or id")
        if name == "transfer":
            command.add_argument("--quantity", type=int, default=1)
        command.set_defaults(func=func)

    location = sub.add_parser("location", help="Show or set the current location")
    location.add_argument("name", nargs="?", choices=list(LOCATIONS))
    location.set_defaults(func=cmd_location)

    logs = sub.add_parser("logs", help="Show audit log entries (today by default)")
    logs.add_argument("--query", help="Filter by product name")
    logs.add_argument("--location", choices=list(LOCATIONS))
    logs.add_argument("--start", help="Start date YYYY-MM-DD")
    logs.add_argument("--end", help="End date YYYY-MM-DD")
    logs.set_defaults(func=cmd_logs)

    history = sub.add_parser("history", help="Show app changes per variant")
    history.add_argument("product_id")
    history.add_argument("--location", choices=list(LOCATIONS))
    history.add_argument("--days", type=int, default=30)
    history.set_defaults(func=cmd_history)

    checks = sub.add_parser("checks", help="Stock check requests")
    checks_sub = checks.add_subparsers(dest="action", required=True)
    checks_list = checks_sub.add_parser("list")
    checks_list.add_argument("--location", choices=list(LOCATIONS))
    checks_create = checks_sub.add_parser("create")
    checks_create.add_argument("product_id")
    checks_create.add_argument("--variant")
    checks_create.add_argument("--requested-by", required=True)
    checks_create.add_argument("--priority", default="normal")
    checks_create.add_argument("--locations", nargs="+", choices=list(LOCATIONS))
    checks_create.add_argument("--notes")
    checks_update = checks_sub.add_parser("update")
    checks_update.add_argument("id")
    checks_update.add_argument("status")
    checks_update.add_argument("--notes")
    checks.set_defaults(func=cmd_checks)

    return parser


def main(argv: Optional[List[str]] = None, services: Optional[Services] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        if services is None:
            services = Services(ConfigLoader().load_app_config(), LocationStore())
        return args.func(args, services)
    except InventoryError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
