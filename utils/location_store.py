"""Persisted "current location" setting and the fixed location table."""
import json
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from core.errors import ParseError, ValidationError
from utils.config_loader import AppConfig

LOCATION_FILENAME = "locationCappelletto.json"
DEFAULT_LOCATION = "Treviso"


class LocationRole(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


# Display name -> role. Ids come from configuration.
LOCATIONS: Dict[str, LocationRole] = {
    "Treviso": LocationRole.PRIMARY,
    "Mogliano": LocationRole.SECONDARY,
}


@dataclass(frozen=True)
class LocationInfo:
    name: str
    id: str


@dataclass(frozen=True)
class LocationConfig:
    """The location staff are working at, and the other one."""

    primary_location: LocationInfo
    secondary_location: LocationInfo


def location_id_for(name: str, config: AppConfig) -> str:
    """Map a location display name to its Shopify location id.

    Raises:
        ValidationError: If the name is not one of the known locations
    """
    role = LOCATIONS.get(name)
    if role is None:
        raise ValidationError(f"Location '{name}' not found", field="location")
    if role == LocationRole.PRIMARY:
        return config.primary_location
    return config.secondary_location


def get_available_locations(config: AppConfig) -> List[LocationInfo]:
    return [LocationInfo(name=name, id=location_id_for(name, config)) for name in LOCATIONS]


def get_location_by_name(name: str, config: AppConfig) -> LocationInfo:
    return LocationInfo(name=name, id=location_id_for(name, config))


def other_location(name: str) -> str:
    """Return the display name of the other location."""
    if name not in LOCATIONS:
        raise ValidationError(f"Location '{name}' not found", field="location")
    return next(other for other in LOCATIONS if other != name)


def default_settings_dir() -> Path:
    """Per-user data directory for the settings file."""
    override = os.getenv("INVENTORY_DATA_DIR")
    if override:
        return Path(override)
    return Path.home() / ".inventario-cappelletto"


class LocationStore:
    """Read and write the selected location in a small JSON file."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else default_settings_dir()
        self.path = self.directory / LOCATION_FILENAME

    def get(self) -> Optional[str]:
        """Return the stored location name, or None when it was never set.

        Raises:
            ParseError: If the file exists but is unreadable
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ParseError(f"Failed to parse location file {self.path}: {e}")

        location = data.get("location") if isinstance(data, dict) else None
        if not isinstance(location, str) or not location:
            raise ParseError(f"Location file {self.path} has no 'location' field")
        return location

    def set(self, location: str):
        """Store a location name, replacing the file atomically.

        Raises:
            ValidationError: If the location is not one of the known locations
        """
        if location not in LOCATIONS:
            raise ValidationError(f"Location '{location}' not found", field="location")

        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".location-", suffix=".json")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump({"location": location}, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get_current_location_config(self, config: AppConfig) -> LocationConfig:
        """Build the (current, other) location pair, defaulting to Treviso when unset."""
        current = self.get() or DEFAULT_LOCATION
        if current not in LOCATIONS:
            current = DEFAULT_LOCATION
        other = other_location(current)
        return LocationConfig(
            primary_location=get_location_by_name(current, config),
            secondary_location=get_location_by_name(other, config)
        )
