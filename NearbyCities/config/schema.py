from typing import TypedDict, Literal, Optional, Dict, Any, List
import re
from pathlib import Path

DatabaseType = Literal["sqlite", "postgresql"]
LoggingLevel = Literal["debug", "info", "warning", "error", "critical"]
LoggingFormat = Literal["json", "text"]


class SQLiteConfig(TypedDict):
    """TypedDict for SQLite configuration validation"""
    path: Optional[str]
    fts: bool


class PostgreSQLConfig(TypedDict):
    """TypedDict for PostgreSQL configuration validation"""
    host: str
    port: int
    database: str
    user: Optional[str]
    password: Optional[str]


class DatabaseConfig(TypedDict):
    """TypedDict for database configuration validation"""
    type: DatabaseType
    sqlite: SQLiteConfig
    postgresql: PostgreSQLConfig
    timeout: int


class SearchConfig(TypedDict):
    """TypedDict for proximity search configuration validation"""
    radius_km: float
    max_radius_km: float
    strict_radius: bool


class LoggingConfig(TypedDict):
    """TypedDict for logging configuration validation"""
    level: LoggingLevel
    format: LoggingFormat
    file: Optional[str]


class FeaturesConfig(TypedDict):
    """TypedDict for feature flags validation"""
    enable_ip_lookup: bool
    enable_advanced_db: bool
    auto_fetch_data: bool


class IP2LocationConfig(TypedDict):
    """TypedDict for IP2Location dataset configuration validation"""
    path: Optional[str]
    token: Optional[str]
    url: str


class DataConfig(TypedDict):
    """TypedDict for data configuration validation"""
    cities_path: Optional[str]
    cities_url: Optional[str]
    countries: str
    batch_size: int
    ip2location: IP2LocationConfig


class ApiConfig(TypedDict):
    """TypedDict for API configuration validation"""
    host: str
    port: int
    debug: bool
    trust_proxy_headers: bool


class ConfigSchema(TypedDict):
    """Root configuration schema that includes all config sections"""
    database: DatabaseConfig
    logging: LoggingConfig
    features: FeaturesConfig
    data: DataConfig
    search: SearchConfig
    api: ApiConfig


SECTIONS = ("database", "logging", "features", "data", "search", "api")


def is_valid_database_type(db_type: str) -> bool:
    """Validate the database type against allowed values"""
    return db_type in ("sqlite", "postgresql")


def is_valid_logging_level(level: str) -> bool:
    """Validate the logging level against allowed values"""
    return level in ("debug", "info", "warning", "error", "critical")


def is_valid_logging_format(fmt: str) -> bool:
    """Validate the logging format against allowed values"""
    return fmt in ("json", "text")


def is_valid_country_list(countries: str) -> bool:
    """
    Validate a country list string. Valid formats:
    - "ALL" (case-insensitive)
    - Comma-separated list of 2-letter ISO country codes
    """
    if countries.upper() == "ALL":
        return True

    country_pattern = re.compile(r'^([A-Za-z]{2}\s*,\s*)*[A-Za-z]{2}$')
    return bool(country_pattern.match(countries.strip()))


def is_valid_url(url: str) -> bool:
    """
    Basic validation for URLs. Checks for common URL patterns.
    """
    url_pattern = re.compile(
        r'^https?://'  # http:// or https://
        r'(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,6}\.?|'  # domain
        r'localhost|'  # localhost
        r'\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})'  # or IPv4
        r'(?::\d+)?'  # optional port
        r'(?:/?|[/?]\S+)$', re.IGNORECASE)
    return bool(url_pattern.match(url))


def is_valid_sqlite_path(path: Optional[str]) -> bool:
    """Validate SQLite database path or None"""
    if path is None or path == ":memory:":
        return True
    if not isinstance(path, str) or not path:
        return False

    parent_dir = Path(path).expanduser().resolve().parent
    # The parent itself may be created on first use
    return parent_dir.exists() or parent_dir.parent.exists()


def is_valid_hostname(hostname: str) -> bool:
    """
    Validate hostname according to RFC 1123.
    """
    if not hostname or not isinstance(hostname, str):
        return False

    if hostname == "localhost":
        return True

    ip_pattern = re.compile(r'^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$')
    if ip_pattern.match(hostname):
        return all(int(octet) <= 255 for octet in hostname.split('.'))

    hostname_pattern = re.compile(
        r'^(([a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9\-]*[a-zA-Z0-9])\.)*'
        r'([A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9\-]*[A-Za-z0-9])$'
    )
    return bool(hostname_pattern.match(hostname))


def is_valid_port(port: int) -> bool:
    """Validate that a port number is within the allowed range."""
    return isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_features(features: Dict[str, Any]) -> List[str]:
    """
    Validate the feature flags configuration.

    Args:
        features: Feature flags configuration dictionary

    Returns:
        List of validation error messages
    """
    errors = []

    expected_features = {"enable_ip_lookup", "enable_advanced_db", "auto_fetch_data"}

    for feature, value in features.items():
        if feature not in expected_features:
            errors.append(f"Unknown feature flag '{feature}'")
        elif not isinstance(value, bool):
            errors.append(f"Feature flag '{feature}' must be a boolean value, got {type(value).__name__}")

    return errors


def validate_data_config(data_config: Dict[str, Any]) -> List[str]:
    """
    Validate the data configuration section.

    Args:
        data_config: Data configuration dictionary

    Returns:
        List of validation error messages
    """
    errors = []

    for key in ("cities_path", "cities_url"):
        value = data_config.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"Data {key} must be a string or null, got {type(value).__name__}")

    cities_url = data_config.get("cities_url")
    if isinstance(cities_url, str) and not is_valid_url(cities_url):
        errors.append(f"Invalid cities URL: {cities_url}")

    if "countries" in data_config:
        if not isinstance(data_config["countries"], str):
            errors.append(f"Countries must be a string, got {type(data_config['countries']).__name__}")
        elif not is_valid_country_list(data_config["countries"]):
            errors.append(f"Invalid countries format: {data_config['countries']}. Must be 'ALL' or comma-separated ISO country codes")

    if "batch_size" in data_config:
        batch_size = data_config["batch_size"]
        if not isinstance(batch_size, int) or isinstance(batch_size, bool):
            errors.append(f"Batch size must be an integer, got {type(batch_size).__name__}")
        elif batch_size < 100 or batch_size > 50000:
            errors.append(f"Batch size must be between 100 and 50000, got {batch_size}")

    ip_config = data_config.get("ip2location")
    if ip_config is not None:
        if not isinstance(ip_config, dict):
            errors.append("ip2location settings must be a mapping")
        else:
            for key in ("path", "token"):
                value = ip_config.get(key)
                if value is not None and not isinstance(value, str):
                    errors.append(f"ip2location {key} must be a string or null")
            url = ip_config.get("url")
            if url is not None and (not isinstance(url, str) or "{token}" not in url):
                errors.append("ip2location url must be a string containing a {token} placeholder")

    return errors


def validate_database_config(db_config: Dict[str, Any]) -> List[str]:
    """
    Validate the database configuration section.

    Args:
        db_config: Database configuration dictionary

    Returns:
        List of validation error messages
    """
    errors = []

    if "type" in db_config and not is_valid_database_type(db_config["type"]):
        errors.append(f"Invalid database type: {db_config['type']}. Must be one of: sqlite, postgresql")

    if isinstance(db_config.get("sqlite"), dict):
        sqlite_config = db_config["sqlite"]

        if "path" in sqlite_config and not is_valid_sqlite_path(sqlite_config["path"]):
            errors.append(f"Invalid SQLite path: {sqlite_config['path']}")

        if "fts" in sqlite_config and not isinstance(sqlite_config["fts"], bool):
            errors.append("SQLite fts setting must be a boolean")

    if isinstance(db_config.get("postgresql"), dict):
        pg_config = db_config["postgresql"]

        if "host" in pg_config and not is_valid_hostname(pg_config["host"]):
            errors.append(f"Invalid PostgreSQL host: {pg_config['host']}")

        if "port" in pg_config and not is_valid_port(pg_config["port"]):
            errors.append(f"Invalid PostgreSQL port: {pg_config['port']}. Must be between 1 and 65535")

        if "database" in pg_config and not isinstance(pg_config["database"], str):
            errors.append("PostgreSQL database name must be a string")

    if "timeout" in db_config:
        if not _is_number(db_config["timeout"]) or db_config["timeout"] <= 0:
            errors.append(f"Database timeout must be a positive number, got {db_config['timeout']}")

    return errors


def validate_search_config(search_config: Dict[str, Any]) -> List[str]:
    """
    Validate the search configuration section.

    Args:
        search_config: Search configuration dictionary

    Returns:
        List of validation error messages
    """
    errors = []

    for key in ("radius_km", "max_radius_km"):
        if key in search_config:
            value = search_config[key]
            if not _is_number(value) or value <= 0:
                errors.append(f"Search {key} must be a positive number, got {value}")

    radius = search_config.get("radius_km")
    max_radius = search_config.get("max_radius_km")
    if _is_number(radius) and _is_number(max_radius) and radius > max_radius:
        errors.append(f"Search radius_km ({radius}) cannot exceed max_radius_km ({max_radius})")

    if "strict_radius" in search_config and not isinstance(search_config["strict_radius"], bool):
        errors.append("Search strict_radius setting must be a boolean")

    return errors


def validate_logging_config(logging_config: Dict[str, Any]) -> List[str]:
    """
    Validate the logging configuration section.

    Args:
        logging_config: Logging configuration dictionary

    Returns:
        List of validation error messages
    """
    errors = []

    if "level" in logging_config and not is_valid_logging_level(logging_config["level"]):
        errors.append(f"Invalid logging level: {logging_config['level']}. Must be one of: debug, info, warning, error, critical")

    if "format" in logging_config and not is_valid_logging_format(logging_config["format"]):
        errors.append(f"Invalid logging format: {logging_config['format']}. Must be one of: json, text")

    log_file = logging_config.get("file")
    if log_file is not None and not isinstance(log_file, str):
        errors.append("Logging file must be a string or null")

    return errors


def validate_api_config(api_config: Dict[str, Any]) -> List[str]:
    """
    Validate the API configuration section.

    Args:
        api_config: API configuration dictionary

    Returns:
        List of validation error messages
    """
    errors = []

    if "host" in api_config and not is_valid_hostname(api_config["host"]):
        errors.append(f"Invalid API host: {api_config['host']}")

    if "port" in api_config and not is_valid_port(api_config["port"]):
        errors.append(f"Invalid API port: {api_config['port']}. Must be between 1 and 65535")

    for key in ("debug", "trust_proxy_headers"):
        if key in api_config and not isinstance(api_config[key], bool):
            errors.append(f"API {key} setting must be a boolean")

    return errors


_SECTION_VALIDATORS = {
    "database": validate_database_config,
    "logging": validate_logging_config,
    "features": validate_features,
    "data": validate_data_config,
    "search": validate_search_config,
    "api": validate_api_config,
}


def validate_config(config: Dict[str, Any]) -> Dict[str, list]:
    """
    Validate a configuration dictionary.

    Sections may be omitted since file settings are merged over the defaults,
    but every section that is present must be a mapping with valid values.

    Args:
        config: The configuration dictionary to validate

    Returns:
        Dictionary mapping sections to lists of error messages
    """
    if not isinstance(config, dict):
        return {"config": ["Configuration must be a mapping of sections"]}

    errors = {}

    for section, value in config.items():
        validator = _SECTION_VALIDATORS.get(section)
        if validator is None:
            errors[section] = [f"Unknown configuration section: {section}"]
        elif not isinstance(value, dict):
            errors[section] = [f"Section '{section}' must be a mapping"]
        else:
            section_errors = validator(value)
            if section_errors:
                errors[section] = section_errors

    return errors
