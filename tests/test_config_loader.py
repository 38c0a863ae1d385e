"""Tests for configuration loading."""
import json

import pytest

from core.errors import ConfigError
from utils.config_loader import AppConfig, ConfigLoader, normalize_shop_domain

ENV_VARS = [
    "SHOPIFY_SHOP_DOMAIN", "SHOPIFY_SHOP_URL", "SHOPIFY_ACCESS_TOKEN", "SHOPIFY_API_VERSION",
    "LOCATION_TREVISO", "LOCATION_MOGLIANO", "FIREBASE_API_KEY", "FIREBASE_PROJECT_ID",
    "STOCK_EXCLUDED_PRODUCT_IDS", "FETCH_CONCURRENCY", "REQUEST_TIMEOUT", "OPERATION_DEADLINE",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every setting and keep a local .env file out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("utils.config_loader.load_dotenv", lambda *args, **kwargs: False)
    return monkeypatch


@pytest.fixture
def loader(tmp_path, clean_env):
    return ConfigLoader(config_dir=str(tmp_path))


class TestShopifyConfig:
    """Tests for load_shopify_config."""

    def test_missing_settings_raise(self, loader):
        with pytest.raises(ConfigError, match="SHOPIFY_SHOP_DOMAIN"):
            loader.load_shopify_config()

    def test_defaults(self, loader, clean_env):
        clean_env.setenv("SHOPIFY_SHOP_DOMAIN", "https://cappelletto.myshopify.com/")
        clean_env.setenv("SHOPIFY_ACCESS_TOKEN", "shpat_test")

        config = loader.load_shopify_config()

        assert config.shop_domain == "cappelletto.myshopify.com"
        assert config.api_version == "2025-01"
        assert config.excluded_product_ids == {"3587363962985"}
        assert config.fetch_concurrency == 3
        assert config.request_timeout == 30.0
        assert config.operation_deadline == 600.0

    def test_shop_url_alias_and_overrides(self, loader, clean_env):
        clean_env.setenv("SHOPIFY_SHOP_URL", "shop.myshopify.com")
        clean_env.setenv("SHOPIFY_ACCESS_TOKEN", "token")
        clean_env.setenv("STOCK_EXCLUDED_PRODUCT_IDS", "42, 7")
        clean_env.setenv("FETCH_CONCURRENCY", "5")

        config = loader.load_shopify_config()

        assert config.shop_domain == "shop.myshopify.com"
        assert config.excluded_product_ids == {"42", "7"}
        assert config.fetch_concurrency == 5

    def test_invalid_concurrency(self, loader, clean_env):
        clean_env.setenv("SHOPIFY_SHOP_DOMAIN", "shop.myshopify.com")
        clean_env.setenv("SHOPIFY_ACCESS_TOKEN", "token")
        clean_env.setenv("FETCH_CONCURRENCY", "0")

        with pytest.raises(ConfigError):
            loader.load_shopify_config()

    def test_invalid_timeout(self, loader, clean_env):
        clean_env.setenv("SHOPIFY_SHOP_DOMAIN", "shop.myshopify.com")
        clean_env.setenv("SHOPIFY_ACCESS_TOKEN", "token")
        clean_env.setenv("REQUEST_TIMEOUT", "soon")

        with pytest.raises(ConfigError, match="REQUEST_TIMEOUT"):
            loader.load_shopify_config()

    def test_json_file_fallback(self, tmp_path, loader):
        (tmp_path / "shopify.json").write_text(json.dumps({
            "shop_domain": "file-shop.myshopify.com",
            "access_token": "file-token",
            "excluded_product_ids": [1, 2]
        }))

        config = loader.load_shopify_config()

        assert config.shop_domain == "file-shop.myshopify.com"
        assert config.excluded_product_ids == {"1", "2"}

    def test_invalid_json_raises(self, tmp_path, loader):
        (tmp_path / "shopify.json").write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            loader.load_shopify_config()


class TestAppConfig:
    """Tests for load_app_config."""

    @pytest.fixture
    def shop_env(self, clean_env):
        clean_env.setenv("SHOPIFY_SHOP_DOMAIN", "shop.myshopify.com")
        clean_env.setenv("SHOPIFY_ACCESS_TOKEN", "token")
        return clean_env

    def test_locations_required(self, loader, shop_env):
        shop_env.setenv("LOCATION_TREVISO", "111")
        with pytest.raises(ConfigError, match="LOCATION_MOGLIANO"):
            loader.load_app_config()

    def test_locations_must_differ(self, loader, shop_env):
        shop_env.setenv("LOCATION_TREVISO", "111")
        shop_env.setenv("LOCATION_MOGLIANO", "111")
        with pytest.raises(ConfigError, match="different"):
            loader.load_app_config()

    def test_full_config(self, loader, shop_env):
        shop_env.setenv("LOCATION_TREVISO", "111")
        shop_env.setenv("LOCATION_MOGLIANO", "222")
        shop_env.setenv("FIREBASE_API_KEY", "key")
        shop_env.setenv("FIREBASE_PROJECT_ID", "project")

        config = loader.load_app_config()

        assert config.primary_location == "111"
        assert config.secondary_location == "222"
        config.require_firestore()

    def test_firestore_optional_until_required(self, loader, shop_env):
        shop_env.setenv("LOCATION_TREVISO", "111")
        shop_env.setenv("LOCATION_MOGLIANO", "222")

        config = loader.load_app_config()

        with pytest.raises(ConfigError, match="FIREBASE_API_KEY"):
            config.require_firestore()


def test_urls_and_headers():
    config = AppConfig(shop_domain="shop.myshopify.com", access_token="token", api_version="2025-01")
    assert config.get_api_url("/products.json") == "https://shop.myshopify.com/admin/api/2025-01/products.json"
    assert config.graphql_url.endswith("/graphql.json")
    assert config.get_headers()["X-Shopify-Access-Token"] == "token"


def test_normalize_shop_domain():
    assert normalize_shop_domain(" http://shop.myshopify.com/ ") == "shop.myshopify.com"
    assert normalize_shop_domain(None) == ""
