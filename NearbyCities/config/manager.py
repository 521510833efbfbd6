"""
Configuration manager for NearbyCities.

This module implements the ConfigManager class that provides a centralized
configuration system with support for hierarchical keys, deep merging, and
loading from files.
"""

import os
import yaml
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union, List
import copy

from NearbyCities.config.defaults import DEFAULT_CONFIG
from NearbyCities.config.schema import validate_config
from NearbyCities.config.utils import deep_merge
from NearbyCities.utils.logging import get_logger

IP2LOCATION_TOKEN_ENV_VAR = 'IP2LOCATION_TOKEN'

CONFIG_FILE_NAME = 'nearbycities.yml'


class ConfigManager:
    """
    Configuration manager for NearbyCities.

    Implements a singleton pattern to ensure only one configuration
    instance exists across the application.

    Features:
    - Hierarchical key access (e.g., "search.radius_km")
    - Deep merging of configuration dictionaries
    - Loading from YAML or JSON files
    - Configuration validation
    - Feature flags management
    """
    _instance = None

    def __new__(cls) -> 'ConfigManager':
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self) -> None:
        """Reset the configuration to the default values."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self.logger = get_logger(__name__)
        self.config_path: Optional[Path] = None

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key (str): Hierarchical key using dot notation (e.g., "search.radius_km")
            default (Any, optional): Value returned when the key is not found.

        Returns:
            Any: The configuration value if found, otherwise the default value.

        Examples:
            >>> config = get_config()
            >>> radius = config.get("search.radius_km", 100)
        """
        if not key:
            return default

        value = self._config
        for part in key.split('.'):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value using dot notation.

        Intermediate dictionaries are created when they don't exist.

        Examples:
            >>> config = get_config()
            >>> config.set("database.type", "postgresql")
            >>> config.set("api.port", 9000)
        """
        if not key:
            return

        parts = key.split('.')
        config = self._config

        for part in parts[:-1]:
            if part not in config or not isinstance(config[part], dict):
                config[part] = {}
            config = config[part]

        config[parts[-1]] = value

    def is_feature_enabled(self, feature_name: str) -> bool:
        """
        Check if a feature flag is enabled.

        Examples:
            >>> if get_config().is_feature_enabled("enable_ip_lookup"):
            ...     location = cities.resolve_ip(address)
        """
        return bool(self.get(f"features.{feature_name}", False))

    def enable_feature(self, feature_name: str) -> None:
        """Enable a feature flag."""
        self.set(f"features.{feature_name}", True)

    def disable_feature(self, feature_name: str) -> None:
        """Disable a feature flag."""
        self.set(f"features.{feature_name}", False)

    def get_enabled_countries(self) -> Optional[List[str]]:
        """
        Get the list of countries to import.

        Returns:
            Optional[List[str]]: Upper-cased ISO2 codes, or None when all
            countries are included ("ALL").
        """
        countries = self.get("data.countries", "ALL") or "ALL"

        if countries.strip().upper() == "ALL":
            return None

        return [code.strip().upper() for code in countries.split(",") if code.strip()]

    def should_auto_download(self) -> bool:
        """Check if missing datasets may be downloaded automatically."""
        return self.is_feature_enabled("auto_fetch_data")

    def get_ip2location_token(self) -> Optional[str]:
        """
        Get the IP2Location download token.

        The IP2LOCATION_TOKEN environment variable takes precedence over the
        ``data.ip2location.token`` setting.
        """
        return os.environ.get(IP2LOCATION_TOKEN_ENV_VAR) or self.get("data.ip2location.token")

    def get_search_settings(self) -> Dict[str, Any]:
        """
        Get proximity search settings.

        Returns:
            Dict[str, Any]: radius_km, max_radius_km and strict_radius
        """
        return {
            "radius_km": self.get("search.radius_km", 100),
            "max_radius_km": self.get("search.max_radius_km", 500),
            "strict_radius": self.get("search.strict_radius", False)
        }

    def get_database_uri(self) -> str:
        """
        Get the database URI for connecting to the database.

        For SQLite, this is ``sqlite:///<path>`` with the configured path or
        ``~/.nearbycities/data/nearby_cities.db``. For PostgreSQL, the URI is
        assembled from the connection settings.

        Examples:
            >>> get_config().get_database_uri()
            'sqlite:////home/me/.nearbycities/data/nearby_cities.db'
        """
        db_type = self.get("database.type", "sqlite")

        if db_type == "sqlite":
            path = self.get("database.sqlite.path")

            if path is None:
                path = str(Path.home() / ".nearbycities" / "data" / "nearby_cities.db")
                os.makedirs(os.path.dirname(path), exist_ok=True)

            return f"sqlite:///{path}"

        elif db_type == "postgresql":
            host = self.get("database.postgresql.host", "localhost")
            port = self.get("database.postgresql.port", 5432)
            database = self.get("database.postgresql.database", "nearby_cities")
            user = self.get("database.postgresql.user")
            password = self.get("database.postgresql.password")

            uri = "postgresql://"
            if user:
                uri += user
                if password:
                    uri += f":{password}"
                uri += "@"
            uri += f"{host}:{port}/{database}"

            return uri

        else:
            self.logger.warning(f"Unsupported database type: {db_type}, falling back to SQLite")
            return "sqlite:///nearby_cities.db"

    def find_config_file(self) -> Optional[Path]:
        """
        Find the configuration file in standard locations.

        Searches, in order:
        1. Current working directory: ./nearbycities.yml
        2. User's home directory: ~/.nearbycities/nearbycities.yml

        Returns:
            Optional[Path]: Path to the configuration file if found, None otherwise
        """
        search_locations = [
            Path.cwd() / CONFIG_FILE_NAME,
            Path.home() / '.nearbycities' / CONFIG_FILE_NAME,
        ]

        for path in search_locations:
            if path.is_file():
                self.logger.debug(f"Found configuration file at: {path}")
                return path

        self.logger.debug("No configuration file found in standard locations")
        return None

    def load_config(self) -> bool:
        """
        Load configuration from the first available standard location.

        Returns:
            bool: True if a configuration file was found and loaded, False otherwise
        """
        config_path = self.find_config_file()

        if not config_path:
            self.logger.info("No configuration file found, using defaults")
            return False

        try:
            errors = self.load_from_file(config_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            self.logger.error(f"Failed to load configuration file {config_path}: {e}")
            return False

        if errors:
            self.logger.warning(f"Configuration validation errors: {errors}")
            return False

        self.logger.info(f"Loaded configuration from {config_path}")
        return True

    def load_from_file(self, path: Union[str, Path]) -> Dict[str, List[str]]:
        """
        Load configuration from a specific YAML or JSON file.

        The file is validated first and only merged over the current
        configuration when it has no errors.

        Returns:
            Dict[str, List[str]]: Dictionary of validation errors, if any

        Examples:
            >>> errors = get_config().load_from_file("/etc/nearbycities.yml")
            >>> if errors:
            ...     print("Configuration validation errors:", errors)
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        if path.suffix.lower() in ('.yaml', '.yml'):
            with open(path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f) or {}
        elif path.suffix.lower() == '.json':
            with open(path, 'r', encoding='utf-8') as f:
                config = json.load(f)
        else:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        errors = validate_config(config)

        if not errors:
            self._config = deep_merge(self._config, config)
            self.config_path = path

        return errors

    def get_all(self) -> Dict[str, Any]:
        """Get a copy of the entire configuration dictionary."""
        return copy.deepcopy(self._config)


def get_config() -> ConfigManager:
    """
    Get the singleton ConfigManager instance.

    Examples:
        >>> from NearbyCities.config import get_config
        >>> radius = get_config().get("search.radius_km")
    """
    return ConfigManager()
