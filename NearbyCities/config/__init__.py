"""
NearbyCities Configuration System.

A single, process-wide configuration with dot-notation access, deep merging
over the defaults and validation of configuration files.

Usage:
    from NearbyCities.config import get_config

    radius = get_config().get("search.radius_km")
    get_config().set("logging.level", "debug")
    get_config().load_config()
"""

from NearbyCities.config.manager import ConfigManager, get_config
from NearbyCities.config.schema import validate_config
from NearbyCities.config.utils import deep_merge

__all__ = ["ConfigManager", "get_config", "validate_config", "deep_merge"]
