"""
NearbyCities - find the cities around a city, a point or an IP address.

City coordinates are stored with a full-precision geohash in a relational
database (SQLite by default, PostgreSQL optionally). A query truncates the
reference point's geohash to a precision derived from the search radius,
fetches every city sharing that prefix with a range scan and ranks the
candidates by great-circle distance.

Key Components:
- CityData: Builds the spatial index and answers proximity queries
- API Server: REST API for programmatic or browser access
- CLI: Command-line interface (``nearbycities``)

Usage Examples:
    # Basic usage with CityData
    from NearbyCities import CityData
    with CityData() as cities:
        cities.prepare('worldcities.csv')
        result = cities.find_nearby_by_name('Hanoi')

    # Starting the API server
    from NearbyCities import start_server
    start_server(host='localhost', port=8080)

    # Setting the log level
    from NearbyCities import set_log_level
    set_log_level('debug')  # Show more detailed logs
"""

__version__ = '1.0.0'

# Import configuration system first
from NearbyCities.config import get_config

# Import and configure logging early
from NearbyCities.utils.logging import get_logger, set_log_level

# Get a logger for the main package
logger = get_logger(__name__)


def initialize_config() -> bool:
    """
    Initialize the NearbyCities configuration system.

    This function searches for a configuration file in standard locations
    and loads it if found. If not found, defaults are used.

    Returns:
        bool: True if a config file was found and loaded, False if using defaults
    """
    logger.debug("Initializing configuration system")
    return get_config().load_config()


# Import key components to expose in the package namespace
# These imports are done after logging configuration to ensure they use the configured logging
from NearbyCities.data.city_manager import CityData
from NearbyCities.api.server import create_app, start_server

# Export key functions for public API
__all__ = ['CityData', 'create_app', 'start_server', 'initialize_config', 'set_log_level', 'get_config']
