"""
Configuration-related commands for the NearbyCities CLI.

This module provides commands for interacting with the NearbyCities configuration system,
including viewing, initializing, and validating configurations.
"""

import os
import json
from pathlib import Path
from typing import Optional

import click
import yaml

from NearbyCities.config import get_config, validate_config
from NearbyCities.config.manager import CONFIG_FILE_NAME
from NearbyCities.utils.logging import get_logger

# Get logger for this module
logger = get_logger(__name__)


def config_show(format_type: str = 'yaml', section: Optional[str] = None) -> int:
    """
    Display the current active configuration.

    Args:
        format_type: Output format (yaml or json)
        section: Optional section to display (e.g., 'database', 'search')

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    config = get_config()

    if section:
        config_data = config.get(section)
        if config_data is None:
            click.echo(f"Error: Section '{section}' not found in configuration")
            return 1
    else:
        config_data = config.get_all()

    if format_type.lower() == 'json':
        click.echo(json.dumps(config_data, indent=2))
    else:
        click.echo(yaml.safe_dump(config_data, default_flow_style=False, sort_keys=False))

    return 0


def config_init(output_path: Optional[str] = None) -> int:
    """
    Create a template configuration file with explanatory comments.

    Args:
        output_path: Path where to create the template file

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if not output_path:
        output_path = os.path.join(os.getcwd(), CONFIG_FILE_NAME)

    output_path = Path(output_path)

    if output_path.exists():
        click.confirm(f"File {output_path} already exists. Overwrite?", abort=True)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(_create_config_template())
    except OSError as e:
        logger.error(f"Error creating configuration template: {str(e)}")
        click.echo(f"Error: Could not write {output_path}: {e}")
        return 1

    click.echo(f"Configuration template created at: {output_path}")
    return 0


def config_validate(config_path: str) -> int:
    """
    Validate a configuration file.

    Args:
        config_path: Path to the configuration file to validate

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    path = Path(config_path)

    if not path.exists():
        click.echo(f"Error: Configuration file not found: {path}")
        return 1

    try:
        if path.suffix.lower() in ('.yaml', '.yml'):
            with open(path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        elif path.suffix.lower() == '.json':
            with open(path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        else:
            click.echo(f"Error: Unsupported file format: {path.suffix}")
            return 1
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        logger.error(f"Error parsing configuration file {path}: {str(e)}")
        click.echo(f"Error: Could not parse {path}: {e}")
        return 1

    if not isinstance(config_data, dict):
        click.echo("Error: The configuration must be a mapping of sections")
        return 1

    errors = validate_config(config_data)

    if not errors:
        click.echo(f"Configuration file is valid: {path}")
        return 0

    click.echo("Configuration validation errors:")
    for section, section_errors in errors.items():
        for error in section_errors:
            click.echo(f"  - {section}: {error}")
    return 1


def _create_config_template() -> str:
    """
    Create a template configuration file with explanatory comments.

    Returns:
        YAML string with the template configuration
    """
    template = """# NearbyCities Configuration File
# Every setting below shows its default value.

# Database Configuration
database:
  # Database type: 'sqlite' or 'postgresql'
  type: sqlite

  # SQLite Configuration (used when type is 'sqlite')
  sqlite:
    # Path to SQLite database file (null for ~/.nearbycities/data/nearby_cities.db)
    path: null
    # Use FTS5 for city name lookups (falls back to exact names when unavailable)
    fts: true

  # PostgreSQL Configuration (used when type is 'postgresql')
  postgresql:
    host: localhost
    port: 5432
    database: nearby_cities
    # Authentication (null for system authentication)
    user: null
    password: null

  # Seconds to wait for a database lock or connection
  timeout: 30

# Proximity Search Configuration
search:
  # Neighbourhood radius in kilometers
  radius_km: 100
  # Largest radius accepted from callers
  max_radius_km: 500
  # Drop cities that share the geohash prefix but lie beyond the radius
  strict_radius: false

# Logging Configuration
logging:
  # Logging level (debug, info, warning, error, critical)
  level: info
  # Log format (json, text)
  format: json
  # Log file path (null for console only)
  file: null

# Feature Flags
features:
  enable_ip_lookup: true
  enable_advanced_db: true
  auto_fetch_data: true

# Data Configuration
data:
  # World cities CSV (null for <data dir>/worldcities.csv)
  cities_path: null
  # URL to download the world cities CSV or a zip holding it
  cities_url: null
  # Countries to include (comma-separated ISO2 codes or 'ALL')
  countries: ALL
  # Batch size for database operations
  batch_size: 5000
  ip2location:
    # IP2Location LITE DB5 CSV (null for <data dir>/IP2LOCATION-LITE-DB5.CSV)
    path: null
    # Download token; the IP2LOCATION_TOKEN environment variable takes precedence
    token: null

# API Server Configuration
api:
  host: 0.0.0.0
  port: 8080
  debug: false
  # Use X-Forwarded-For / X-Real-IP to find the caller's address.
  # Enable only behind a reverse proxy that sets these headers.
  trust_proxy_headers: false
"""
    return template
