"""Configuration loader for the inventory tools."""
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Set

from dotenv import load_dotenv

from core.errors import ConfigError
from utils.helpers import parse_id_list, safe_int

DEFAULT_API_VERSION = "2025-01"
DEFAULT_EXCLUDED_PRODUCT_IDS = "3587363962985"


@dataclass
class AppConfig:
    """Settings needed to talk to Shopify and Firestore."""

    shop_domain: str
    access_token: str
    api_version: str = DEFAULT_API_VERSION
    primary_location: str = ""
    secondary_location: str = ""
    firebase_api_key: Optional[str] = None
    firebase_project_id: Optional[str] = None
    excluded_product_ids: Set[str] = field(default_factory=set)
    fetch_concurrency: int = 3
    request_timeout: float = 30.0
    operation_deadline: float = 600.0

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}"

    @property
    def graphql_url(self) -> str:
        return f"{self.base_url}/graphql.json"

    def get_api_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def get_headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json"
        }

    def require_firestore(self):
        """Ensure the Firestore settings are present.

        Raises:
            ConfigError: If FIREBASE_API_KEY or FIREBASE_PROJECT_ID is missing
        """
        if not self.firebase_api_key or not self.firebase_project_id:
            raise ConfigError(
                "Missing Firestore configuration. "
                "Please set FIREBASE_API_KEY and FIREBASE_PROJECT_ID in .env file"
            )


def normalize_shop_domain(value: Optional[str]) -> str:
    """Remove protocol and stray slashes from a shop domain."""
    domain = (value or "").strip()
    domain = domain.replace("https://", "").replace("http://", "")
    return domain.strip("/ ")


def _float_setting(name: str, default: Any) -> float:
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


class ConfigLoader:
    """Load configuration from JSON files and environment variables."""

    def __init__(self, config_dir: str = "config"):
        """Initialize configuration loader.

        Args:
            config_dir: Directory containing optional JSON configuration files
        """
        self.config_dir = Path(config_dir)
        load_dotenv()  # Load environment variables from .env file

    def load_json(self, filename: str) -> Dict[str, Any]:
        """Load JSON configuration file.

        Args:
            filename: Name of the JSON file (without .json extension)

        Returns:
            Dictionary containing configuration data, empty if the file doesn't exist

        Raises:
            ConfigError: If the file exists but isn't valid JSON
        """
        file_path = self.config_dir / f"{filename}.json"

        if not file_path.exists():
            return {}

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {file_path}: {e}")

    def load_shopify_config(self) -> AppConfig:
        """Load the Shopify connection settings only.

        Returns:
            AppConfig without location or Firestore settings

        Raises:
            ConfigError: If shop domain or access token is missing
        """
        config = self.load_json("shopify")

        shop_domain = normalize_shop_domain(
            os.getenv('SHOPIFY_SHOP_DOMAIN')
            or os.getenv('SHOPIFY_SHOP_URL')
            or config.get('shop_domain')
        )
        access_token = os.getenv('SHOPIFY_ACCESS_TOKEN', config.get('access_token'))

        if not shop_domain or not access_token:
            raise ConfigError(
                "Missing required Shopify configuration. "
                "Please set SHOPIFY_SHOP_DOMAIN and SHOPIFY_ACCESS_TOKEN in .env file or config/shopify.json"
            )

        excluded = os.getenv(
            'STOCK_EXCLUDED_PRODUCT_IDS',
            config.get('excluded_product_ids', DEFAULT_EXCLUDED_PRODUCT_IDS)
        )
        if isinstance(excluded, list):
            excluded = ",".join(str(x) for x in excluded)

        concurrency = safe_int(os.getenv('FETCH_CONCURRENCY', config.get('fetch_concurrency', 3)), default=3)
        if concurrency < 1:
            raise ConfigError(f"FETCH_CONCURRENCY must be at least 1, got {concurrency}")

        return AppConfig(
            shop_domain=shop_domain,
            access_token=access_token,
            api_version=os.getenv('SHOPIFY_API_VERSION', config.get('api_version', DEFAULT_API_VERSION)),
            excluded_product_ids=parse_id_list(excluded),
            fetch_concurrency=concurrency,
            request_timeout=_float_setting("REQUEST_TIMEOUT", config.get("request_timeout", 30)),
            operation_deadline=_float_setting("OPERATION_DEADLINE", config.get("operation_deadline", 600))
        )

    def load_app_config(self) -> AppConfig:
        """Load the full configuration used by the staff commands.

        Returns:
            AppConfig including both location ids and optional Firestore settings

        Raises:
            ConfigError: If any required setting is missing
        """
        config = self.load_shopify_config()
        locations = self.load_json("locations")
        firebase = self.load_json("firebase")

        config.primary_location = os.getenv('LOCATION_TREVISO', locations.get('treviso', ''))
        config.secondary_location = os.getenv('LOCATION_MOGLIANO', locations.get('mogliano', ''))

        missing = []
        if not config.primary_location:
            missing.append('LOCATION_TREVISO')
        if not config.secondary_location:
            missing.append('LOCATION_MOGLIANO')
        if missing:
            raise ConfigError(f"Missing required location configuration: {', '.join(missing)}")

        if config.primary_location == config.secondary_location:
            raise ConfigError("LOCATION_TREVISO and LOCATION_MOGLIANO must be different locations")

        config.firebase_api_key = os.getenv('FIREBASE_API_KEY', firebase.get('api_key'))
        config.firebase_project_id = os.getenv('FIREBASE_PROJECT_ID', firebase.get('project_id'))

        return config
