"""
City service module for the NearbyCities package.

This module provides service methods for proximity queries that can be used
by both the CLI and API layers.
"""

from typing import Dict, List, Any, Optional

from NearbyCities.data import CityData
from NearbyCities.utils.logging import get_logger

# Get a logger for this module
logger = get_logger(__name__)


class CityService:
    """
    Service class for city data operations.

    This class wraps the CityData class to provide standardized service methods
    that can be used by both the CLI and API layers.
    """

    def __init__(self, db_uri: Optional[str] = None, persistent: bool = False):
        """
        Initialize the CityService.

        Args:
            db_uri: Database URI to connect to. If None, uses the configured database.
            persistent: Whether to keep a single database connection open
        """
        self.city_data = CityData(db_uri=db_uri, persistent=persistent)

    def prepare(self, csv_path: Optional[str] = None, ip2location_path: Optional[str] = None) -> int:
        """
        Build the spatial index if it has not been built yet.

        Returns:
            Number of cities indexed (0 when nothing had to be built)
        """
        logger.debug(f"Preparing city data from CSV: {csv_path if csv_path else 'default'}")
        return self.city_data.prepare(csv_path=csv_path, ip2location_path=ip2location_path)

    def nearby_by_name(self, city: str, radius_km: Optional[float] = None,
                       strict: Optional[bool] = None) -> Dict[str, Any]:
        """
        Find the cities near a city given by name.
        """
        logger.debug(f"Finding cities near '{city}' within {radius_km} km")
        return self.city_data.find_nearby_by_name(city, radius_km=radius_km, strict=strict)

    def nearby_by_ip(self, ip: str, radius_km: Optional[float] = None,
                     strict: Optional[bool] = None) -> Dict[str, Any]:
        """
        Find the cities near the location of an IPv4 address.
        """
        logger.debug(f"Finding cities near IP {ip} within {radius_km} km")
        return self.city_data.find_nearby_by_ip(ip, radius_km=radius_km, strict=strict)

    def nearby_by_coordinates(
        self,
        lat: float,
        lng: float,
        radius_km: Optional[float] = None,
        strict: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """
        Find the cities near a point, ordered by distance.
        """
        logger.debug(f"Finding cities near coordinates: ({lat}, {lng}) within {radius_km} km")
        return self.city_data.find_nearby(lat, lng, radius_km=radius_km, strict=strict)

    def get_table_info(self) -> Dict[str, Any]:
        """
        Get row counts and the build state of the city data.
        """
        logger.debug("Getting city data table information")
        return self.city_data.get_table_info()

    def reset(self) -> None:
        """
        Drop the city data so the next prepare rebuilds it.
        """
        logger.debug("Resetting city data")
        self.city_data.reset()

    def close(self) -> None:
        """
        Close the database connection.

        This should be called when the service is no longer needed.
        """
        if hasattr(self, 'city_data'):
            self.city_data.close()

    def __enter__(self):
        """Context manager entry point."""
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Context manager exit point."""
        self.close()
