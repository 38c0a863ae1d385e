"""Tests for the command line entry points."""
from unittest.mock import MagicMock

import pytest

import inventory_cli
import stock_manager
from core.errors import ConfigError, RemoteRejection, ValidationError
from core.models import Product, ProductVariant, StockUpdateResult, UpdateSummary
from utils.config_loader import AppConfig
from utils.location_store import LocationStore


@pytest.fixture
def config():
    return AppConfig(
        shop_domain="shop.myshopify.com",
        access_token="token",
        primary_location="111",
        secondary_location="222"
    )


class TestStockManagerScript:
    """Tests for stock_manager.py."""

    def test_config_error_exits_1(self):
        loader = MagicMock()
        loader.load_shopify_config.side_effect = ConfigError("Missing required Shopify configuration")

        assert stock_manager.run(dry_run=True, config_loader=loader) == 1

    def test_fetch_failure_exits_1(self, config, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        loader = MagicMock()
        loader.load_shopify_config.return_value = config
        monkeypatch.setattr(
            stock_manager, "scan_and_update_products",
            MagicMock(side_effect=RemoteRejection("Service Unavailable", status_code=503))
        )

        assert stock_manager.run(dry_run=False, config_loader=loader) == 1

    def test_success_exits_0(self, config, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        loader = MagicMock()
        loader.load_shopify_config.return_value = config
        result = StockUpdateResult([], [], UpdateSummary(0, 0, 0, 0, 0))
        scan = MagicMock(return_value=result)
        monkeypatch.setattr(stock_manager, "scan_and_update_products", scan)

        assert stock_manager.run(dry_run=True, config_loader=loader) == 0
        assert scan.call_args.args[2] is True
        assert (tmp_path / "logs").is_dir()

    def test_short_dry_run_flag(self, monkeypatch):
        run = MagicMock(return_value=0)
        monkeypatch.setattr(stock_manager, "run", run)

        with pytest.raises(SystemExit) as exc_info:
            stock_manager.main(["-d"])

        assert exc_info.value.code == 0
        run.assert_called_once_with(dry_run=True)

    def test_help(self):
        with pytest.raises(SystemExit) as exc_info:
            stock_manager.main(["--help"])
        assert exc_info.value.code == 0


class TestSelectVariant:
    """Tests for variant selection."""

    @pytest.fixture
    def product(self):
        return Product(
            id="101", title="Giacca", handle="giacca", price="99.00", description="",
            variants=[
                ProductVariant("1", "501", "M", 3, "99.00", sku="GIA-M"),
                ProductVariant("2", "502", "L", 0, "99.00", sku="GIA-L"),
            ]
        )

    def test_by_title_sku_or_id(self, product):
        assert inventory_cli.select_variant(product, "l").variant_id == "2"
        assert inventory_cli.select_variant(product, "GIA-M").variant_id == "1"
        assert inventory_cli.select_variant(product, "502").variant_id == "2"

    def test_ambiguous_without_choice(self, product):
        with pytest.raises(ValidationError):
            inventory_cli.select_variant(product, None)

    def test_unknown(self, product):
        with pytest.raises(ValidationError):
            inventory_cli.select_variant(product, "XL")


class TestInventoryCli:
    """Tests for inventory_cli.py subcommands."""

    @pytest.fixture
    def services(self, config, tmp_path):
        return inventory_cli.Services(config, LocationStore(tmp_path))

    def test_location_set_and_show(self, services, capsys):
        assert inventory_cli.main(["location", "Mogliano"], services=services) == 0
        assert services.store.get() == "Mogliano"

        assert inventory_cli.main(["location"], services=services) == 0
        assert "Current location: Mogliano" in capsys.readouterr().out

    def test_transfer_from_current_location(self, services, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        shopify = MagicMock()
        shopify.get_product.return_value = Product(
            id="101", title="Giacca", handle="giacca", price="99.00", description="",
            variants=[ProductVariant("1", "501", "M", 3, "99.00")]
        )
        shopify.has_zero_inventory.return_value = False
        services._shopify = shopify
        services.store.set("Mogliano")

        assert inventory_cli.main(["transfer", "101"], services=services) == 0

        assert [c.args for c in shopify.adjust_inventory.call_args_list] == [("501", "222", -1), ("501", "111", 1)]

    def test_errors_exit_1(self, services):
        shopify = MagicMock()
        shopify.get_product.side_effect = RemoteRejection("Not Found", status_code=404)
        services._shopify = shopify

        assert inventory_cli.main(["decrease", "999"], services=services) == 1
