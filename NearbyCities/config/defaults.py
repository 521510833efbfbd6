"""
Default configuration values for NearbyCities.

These values are used when no configuration file is found and serve as the
base that file-provided settings are deep-merged over. They can be overridden
by a configuration file (nearbycities.yml) or programmatically through the
ConfigManager.
"""

from typing import Dict, Any

# Default database configuration
DATABASE_DEFAULTS: Dict[str, Any] = {
    # Database backend: 'sqlite' (default) or 'postgresql'
    "type": "sqlite",
    "sqlite": {
        # Path to the SQLite database file (null = ~/.nearbycities/data/nearby_cities.db)
        "path": None,
        # Use FTS5 for city name lookups when the SQLite build supports it
        "fts": True
    },
    "postgresql": {
        "host": "localhost",
        "port": 5432,
        "database": "nearby_cities",
        # User for PostgreSQL connection (null = use system user)
        "user": None,
        # Password for PostgreSQL connection (null = use system auth)
        "password": None
    },
    # Seconds to wait for a database lock or connection
    "timeout": 30
}

# Default proximity search configuration
SEARCH_DEFAULTS: Dict[str, Any] = {
    # Neighbourhood radius in kilometres
    "radius_km": 100,
    # Largest radius accepted from API and CLI callers
    "max_radius_km": 500,
    # Drop candidates farther than the radius from the origin
    "strict_radius": False
}

# Default logging configuration
LOGGING_DEFAULTS: Dict[str, Any] = {
    # Logging level: 'debug', 'info', 'warning', 'error', 'critical'
    "level": "info",
    # Logging format: 'json', 'text'
    "format": "json",
    # Log file path (null = log to stderr)
    "file": None
}

# Default feature flags
FEATURES_DEFAULTS: Dict[str, bool] = {
    # Resolve callers and explicit addresses through the IP2Location table
    "enable_ip_lookup": True,
    # WAL journal and tuned pragmas for SQLite
    "enable_advanced_db": True,
    # Download missing datasets when a URL or token is configured
    "auto_fetch_data": True
}

# Default data configuration
DATA_DEFAULTS: Dict[str, Any] = {
    # Path to the world cities CSV (null = <data dir>/worldcities.csv)
    "cities_path": None,
    # URL the world cities CSV (or a zip holding it) is downloaded from
    "cities_url": None,
    # Countries to include: "ALL" or comma-separated list of ISO2 codes
    "countries": "ALL",
    # Rows per insert batch when importing
    "batch_size": 5000,
    "ip2location": {
        # Path to the IP2Location LITE DB5 CSV (null = <data dir>/IP2LOCATION-LITE-DB5.CSV)
        "path": None,
        # Download token (the IP2LOCATION_TOKEN environment variable takes precedence)
        "token": None,
        "url": "https://www.ip2location.com/download/?token={token}&file=DB5LITE"
    }
}

# Default API configuration
API_DEFAULTS: Dict[str, Any] = {
    "host": "0.0.0.0",
    "port": 8080,
    "debug": False,
    # Take the client address from X-Forwarded-For / X-Real-IP; only behind a reverse proxy
    "trust_proxy_headers": False
}

# Complete default configuration structure
DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "database": DATABASE_DEFAULTS,
    "logging": LOGGING_DEFAULTS,
    "features": FEATURES_DEFAULTS,
    "data": DATA_DEFAULTS,
    "search": SEARCH_DEFAULTS,
    "api": API_DEFAULTS
}
