"""Find active products with no stock and demote them to draft."""
import time
from typing import Iterable, List, Optional, Set

from core.catalog_fetcher import CatalogFetcher
from core.errors import InventoryError
from core.logger import RunLogger
from core.models import (
    CatalogItem,
    NoStockCandidate,
    ProductStatus,
    StockUpdateResult,
    UpdateOutcome,
    UpdateSummary,
)
from utils.config_loader import AppConfig
from utils.helpers import compute_rate_limit_delay

EXCLUDED_NOTE = "Excluded from updates"


def find_products_with_no_stock(
    products: Iterable[CatalogItem],
    excluded_ids: Set[str]
) -> List[NoStockCandidate]:
    """Select active products where no variant has positive stock.

    A product with no variants counts as out of stock.

    Args:
        products: Fetched catalog items
        excluded_ids: Product ids that must never be demoted automatically

    Returns:
        Candidates in input order, each tagged with ``is_excluded``
    """
    candidates = []
    for product in products:
        if product.status != ProductStatus.ACTIVE:
            continue
        if any(variant.inventory_quantity > 0 for variant in product.variants):
            continue
        candidates.append(NoStockCandidate(
            id=product.id,
            title=product.title,
            status=product.status,
            is_excluded=product.id in excluded_ids
        ))
    return candidates


class DraftStatusUpdater:
    """Set candidates to draft one at a time."""

    def __init__(self, client, default_delay: float = 0.25):
        """Initialize updater.

        Args:
            client: ShopifyClient
            default_delay: Pause between updates when no rate-limit header is available
        """
        self.client = client
        self.default_delay = default_delay

    def update_products_to_draft(self, candidates: List[NoStockCandidate]) -> List[UpdateOutcome]:
        """Update every non-excluded candidate; a failure never stops the batch.

        Returns:
            One outcome per candidate, in order
        """
        results = []
        total = len(candidates)

        for index, candidate in enumerate(candidates):
            print(f"   📝 ({index + 1}/{total}) Updating: \"{candidate.title}\" (ID: {candidate.id})")

            if candidate.is_excluded:
                print("   🛡️ EXCLUDED - Skipping update")
                results.append(UpdateOutcome(
                    product_id=candidate.id,
                    title=candidate.title,
                    success=True,
                    error=EXCLUDED_NOTE
                ))
                continue

            try:
                self.client.update_product_status(candidate.id, ProductStatus.DRAFT.value)
                print("   ✅ Successfully set to draft")
                results.append(UpdateOutcome(product_id=candidate.id, title=candidate.title, success=True))
            except InventoryError as e:
                print(f"   ❌ Failed to update: {e}")
                results.append(UpdateOutcome(
                    product_id=candidate.id,
                    title=candidate.title,
                    success=False,
                    error=str(e)
                ))

            if index < total - 1:
                delay = compute_rate_limit_delay(getattr(self.client, "last_headers", None), self.default_delay)
                if delay > 0:
                    time.sleep(delay)

        return results


def generate_summary(
    candidates: List[NoStockCandidate],
    update_results: List[UpdateOutcome]
) -> UpdateSummary:
    """Count candidates and outcomes.

    Excluded products are reported as successful outcomes but counted in neither
    ``successful_updates`` nor ``failed_updates``.
    """
    excluded_count = sum(1 for c in candidates if c.is_excluded)
    return UpdateSummary(
        total_found=len(candidates),
        excluded_count=excluded_count,
        eligible_count=len(candidates) - excluded_count,
        successful_updates=sum(1 for r in update_results if r.success and r.error is None),
        failed_updates=sum(1 for r in update_results if not r.success)
    )


def print_results(
    candidates: List[NoStockCandidate],
    update_results: List[UpdateOutcome],
    summary: UpdateSummary,
    dry_run: bool
):
    print("\n🎯 FINAL RESULTS:")
    print("═" * 80)

    if not candidates:
        print("✨ No active products found with zero stock!")
    elif dry_run:
        print(f"📦 Found {summary.total_found} active products with no stock")
        print("\n🧪 DRY RUN - Products that would be affected:")
        for index, candidate in enumerate(candidates, start=1):
            marker = " [EXCLUDED]" if candidate.is_excluded else ""
            print(f"{index}. \"{candidate.title}\" (ID: {candidate.id}){marker}")
        if summary.excluded_count:
            print(f"\n🛡️ {summary.excluded_count} products are excluded from updates")
        print(f"\n💡 {summary.eligible_count} products would be updated to draft status.")
    else:
        print(f"📦 Found {summary.total_found} active products with no stock")
        print(f"\n✅ Successfully updated: {summary.successful_updates} products")
        if summary.excluded_count:
            print(f"🛡️ Excluded from updates: {summary.excluded_count} products")
        if summary.failed_updates:
            print(f"❌ Failed to update: {summary.failed_updates} products")
            print("\nFailed products:")
            failed = [r for r in update_results if not r.success]
            for index, result in enumerate(failed, start=1):
                print(f"{index}. \"{result.title}\" (ID: {result.product_id}): {result.error or 'Unknown error'}")

    print("═" * 80)


def scan_and_update_products(
    client,
    config: AppConfig,
    dry_run: bool,
    logger: Optional[RunLogger] = None,
    fetcher: Optional[CatalogFetcher] = None,
    updater: Optional[DraftStatusUpdater] = None
) -> StockUpdateResult:
    """Fetch the catalog, find active products without stock and demote them.

    Args:
        client: ShopifyClient
        config: Loaded configuration (exclusions, concurrency, deadline)
        dry_run: Report only, make no changes
        logger: Optional run logger to record candidates and outcomes

    Returns:
        StockUpdateResult with candidates, per-item outcomes and the summary

    Raises:
        InventoryError: If the catalog fetch fails
    """
    print(f"📍 Shop: {config.shop_domain}")
    print(f"🔧 API Version: {config.api_version}")
    if dry_run:
        print("🧪 DRY RUN MODE - No changes will be made")
    else:
        print("⚡ LIVE MODE - Products will be set to draft status")

    fetcher = fetcher or CatalogFetcher(
        client,
        window=config.fetch_concurrency,
        deadline=config.operation_deadline
    )
    updater = updater or DraftStatusUpdater(client)

    print("\n📄 Fetching all products...")
    all_products = fetcher.fetch_all()
    print(f"✅ Fetched {len(all_products)} total products")

    print("\n🔍 Analyzing inventory...")
    candidates = find_products_with_no_stock(all_products, config.excluded_product_ids)
    print(f"🎯 Found {len(candidates)} active products with no stock")

    update_results: List[UpdateOutcome] = []
    if not dry_run and candidates:
        print("\n📝 Updating products to draft status...")
        update_results = updater.update_products_to_draft(candidates)

    summary = generate_summary(candidates, update_results)
    print_results(candidates, update_results, summary, dry_run)

    if logger:
        logger.set_dry_run(dry_run)
        logger.log_candidates(candidates)
        logger.log_update_outcomes(update_results)
        logger.log_summary(summary)
        for result in update_results:
            if not result.success:
                logger.log_error("draft_update", result.error or "Unknown error", {"product_id": result.product_id})

    return StockUpdateResult(products_found=candidates, update_results=update_results, summary=summary)
