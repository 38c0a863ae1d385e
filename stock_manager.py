"""Scan the shop and set active products with no stock to draft."""
import argparse
import sys
from typing import List, Optional

from core.errors import ConfigError, InventoryError
from core.logger import RunLogger
from core.shopify_client import ShopifyClient
from core.stock_manager import scan_and_update_products
from utils.config_loader import ConfigLoader


def run(dry_run: bool = False, config_loader: Optional[ConfigLoader] = None) -> int:
    """Run one scan.

    Args:
        dry_run: If True, only report what would change

    Returns:
        Process exit code: 0 on success, 1 on a configuration or fetch failure
    """
    print("🛠️  Shopify Stock Manager")
    print("=========================\n")

    try:
        config = (config_loader or ConfigLoader()).load_shopify_config()
    except ConfigError as e:
        print(f"❌ Failed to load configuration: {e}", file=sys.stderr)
        print("💡 Make sure your .env file is properly configured.", file=sys.stderr)
        return 1

    logger = RunLogger(kind="stock_scan")
    client = ShopifyClient.from_config(config)

    try:
        result = scan_and_update_products(client, config, dry_run, logger=logger)
    except InventoryError as e:
        print(f"\n❌ Operation failed: {e}", file=sys.stderr)
        logger.log_error("fatal", str(e))
        logger.save()
        return 1

    logger.print_summary()
    logger.save()

    print("\n🎉 Operation completed successfully!")
    if not dry_run and result.summary.successful_updates > 0:
        print(f"📈 Updated {result.summary.successful_updates} products to draft status")
    return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description=(
            "Scans all active products in your Shopify store and sets products with zero "
            "inventory to 'draft' status so customers don't see products they can't purchase."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what would be changed (recommended first)
  python stock_manager.py --dry-run

  # Actually update products to draft status
  python stock_manager.py

Configuration:
  Reads settings from the .env file in the project root.
  SHOPIFY_SHOP_DOMAIN and SHOPIFY_ACCESS_TOKEN must be set.
        """
    )

    parser.add_argument(
        "-d", "--dry-run",
        action="store_true",
        help="Preview changes without making any updates"
    )

    args = parser.parse_args(argv)
    sys.exit(run(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
