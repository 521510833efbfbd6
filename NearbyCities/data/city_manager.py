"""
City data management module for the NearbyCities package.

This module provides the main CityData class that serves as a facade over the
database, the one-time index build and the repositories. It resolves a
reference point from a city name or an IP address and ranks the cities that
share its geohash prefix by great-circle distance.
"""

from typing import Dict, List, Any, Optional, Tuple, TypeVar, Type

from NearbyCities.config.manager import get_config
from NearbyCities.data.database import DatabaseManager
from NearbyCities.data.importer import CityDataImporter, IP2LocationImporter
from NearbyCities.data.index_builder import BuildState, SpatialIndexBuilder
from NearbyCities.data.models import IPLocation, NearbyCity
from NearbyCities.data.repositories import CityRepository, GeoRepository, IPLocationRepository
from NearbyCities.data.schema import SchemaManager
from NearbyCities.exceptions import IndexBuildError, NoMatchError, ValidationError
from NearbyCities.geo.distance import haversine, validate_coordinates, validate_radius
from NearbyCities.geo.geohash import MAX_PRECISION, encode, estimate_length_required
from NearbyCities.geo.ip import is_private_ip, ip_to_integer
from NearbyCities.utils.logging import get_logger

# Get a logger for this module
logger = get_logger(__name__)

T = TypeVar('T', bound='CityData')

# IP2Location marks ranges without a known place with '-'
_UNKNOWN_PLACE = '-'


class CityData:
    """
    A facade for building the spatial index and running proximity queries.

    Example:
        >>> with CityData('sqlite:///cities.db') as city_data:
        ...     city_data.prepare('worldcities.csv')
        ...     result = city_data.find_nearby_by_name('Hanoi')
        >>> result['cities'][0]['name']
        'Hanoi'
    """

    def __init__(self, db_uri: Optional[str] = None, persistent: bool = False, config=None) -> None:
        """
        Initialize the CityData manager.

        Args:
            db_uri: Database URI to connect to. If None, uses config or default.
            persistent: Whether to keep a single database connection open
            config: Configuration manager instance. If None, gets global instance.
        """
        if config is None:
            config = get_config()

        self.config = config

        if db_uri is None:
            db_uri = config.get_database_uri()

        logger.info(f"Initializing CityData with database URI: {db_uri} (persistent: {persistent})")

        self.db_manager = DatabaseManager(
            db_uri,
            persistent=persistent,
            connection_timeout=config.get("database.timeout", 30),
            use_advanced_features=config.is_feature_enabled('enable_advanced_db')
        )
        self.persistent = self.db_manager.persistent

        self.schema_manager = SchemaManager(self.db_manager, config)
        self.city_importer = CityDataImporter(self.db_manager, config)
        self.ip_importer = IP2LocationImporter(self.db_manager, config)
        self.index_builder = SpatialIndexBuilder(
            self.db_manager,
            schema_manager=self.schema_manager,
            city_importer=self.city_importer,
            ip_importer=self.ip_importer,
            config=config
        )

        self.city_repository = CityRepository(self.db_manager)
        self.geo_repository = GeoRepository(self.db_manager)
        self.ip_repository = IPLocationRepository(self.db_manager)

    def prepare(self, csv_path: Optional[str] = None, ip2location_path: Optional[str] = None) -> int:
        """
        Build the spatial index unless it already exists.

        Locates (and, when ``auto_fetch_data`` is enabled, downloads) the
        cities CSV and, if IP lookup is enabled, the IP2Location CSV, then
        runs the one-time build.

        Args:
            csv_path: Path to the world cities CSV. If None, uses config or the data directory.
            ip2location_path: Path to the IP2Location DB5 CSV. If None, uses config or the data directory.

        Returns:
            Number of cities indexed (0 when the index was already built)

        Raises:
            DataImportError: If the city data cannot be found or read
            IndexBuildError: If the build fails
        """
        if self.index_builder.is_built():
            logger.info("Spatial index already built, nothing to prepare")
            return 0

        records = self.city_importer.load_records(self.city_importer.find_csv(csv_path))

        ip_path = None
        if self.config.is_feature_enabled('enable_ip_lookup'):
            ip_path = self.ip_importer.find_csv(ip2location_path)

        return self.index_builder.build(records, ip2location_path=ip_path)

    def _require_index(self) -> None:
        if self.index_builder.state is BuildState.BUILT or self.index_builder.is_built():
            return
        raise IndexBuildError(
            message="The spatial index has not been built",
            user_message="City data is not ready yet. Run `nearbycities prepare` first.",
            context={"state": self.index_builder.state.value}
        )

    def _search_radius(self, radius_km: Optional[float]) -> float:
        settings = self.config.get_search_settings()
        radius = validate_radius(settings['radius_km'] if radius_km is None else radius_km)

        max_radius = settings['max_radius_km']
        if max_radius and radius > max_radius:
            raise ValidationError(
                message=f"Radius {radius} km exceeds the maximum of {max_radius} km",
                user_message=f"The search radius cannot exceed {max_radius} km.",
                context={"radius_km": radius, "max_radius_km": max_radius}
            )
        return radius

    def _rank(self, lat: float, lng: float, radius_km: Optional[float],
              strict: Optional[bool]) -> Tuple[float, int, str, List[NearbyCity]]:
        lat, lng = validate_coordinates(lat, lng)
        radius = self._search_radius(radius_km)
        if strict is None:
            strict = bool(self.config.get("search.strict_radius", False))

        self._require_index()

        precision = estimate_length_required(radius)
        prefix = encode(lat, lng, MAX_PRECISION)[:precision]
        candidates = self.geo_repository.find_by_prefix(prefix)

        cities: List[NearbyCity] = []
        for candidate in candidates:
            distance = haversine(lat, lng, candidate['lat'], candidate['lng'])
            if strict and distance > radius:
                continue
            cities.append(NearbyCity(distance=round(distance, 2), **candidate))

        cities.sort(key=lambda city: (city['distance'], city['id']))

        logger.debug(
            f"Found {len(cities)} of {len(candidates)} candidates near ({lat}, {lng})",
            extra={'prefix': prefix, 'radius_km': radius, 'strict': strict}
        )
        return radius, precision, prefix, cities

    def find_nearby(
        self,
        lat: float,
        lng: float,
        radius_km: Optional[float] = None,
        strict: Optional[bool] = None
    ) -> List[NearbyCity]:
        """
        Find the cities in the geohash neighbourhood of a point.

        The query precision is derived from the radius, every indexed city
        sharing the point's geohash prefix is a candidate, and candidates are
        sorted by distance and then by id.

        Args:
            lat: Latitude of the reference point
            lng: Longitude of the reference point
            radius_km: Neighbourhood radius; defaults to ``search.radius_km``
            strict: Drop candidates farther than ``radius_km``; defaults to
                ``search.strict_radius``

        Returns:
            Cities ordered by distance, each with its distance in km

        Raises:
            ValidationError: If the coordinates or the radius are invalid
        """
        return self._rank(lat, lng, radius_km, strict)[3]

    def resolve_city(self, query: str) -> Dict[str, Any]:
        """
        Resolve a free-text city name to a single city.

        Raises:
            ValidationError: If the query is empty after removing punctuation
            NoMatchError: If no city matches
        """
        self._require_index()
        city = self.city_repository.find_by_name(query, self.schema_manager.search_mode)
        if city is None:
            raise NoMatchError(
                message=f"No city matches {query!r}",
                user_message=f"No city found matching '{query}'.",
                context={"query": query}
            )
        return city

    def resolve_ip(self, address: str) -> IPLocation:
        """
        Resolve an IPv4 address to the location of its IP2Location range.

        Private addresses are rejected before any lookup.

        Raises:
            ValidationError: If the address is not a valid IPv4 address
            NoMatchError: If the address is private or has no known location
        """
        if is_private_ip(address):
            raise NoMatchError(
                message=f"{address} is a private address",
                user_message="Private IP addresses cannot be located.",
                context={"ip": address}
            )

        if not self.config.is_feature_enabled('enable_ip_lookup'):
            raise NoMatchError(
                message="IP lookup is disabled",
                user_message="IP-based location is not enabled.",
                context={"ip": address}
            )

        self._require_index()
        location = self.ip_repository.find_by_ip_number(ip_to_integer(address))
        if location is None or location['city'] in (None, _UNKNOWN_PLACE):
            raise NoMatchError(
                message=f"No location known for {address}",
                user_message="Your location could not be determined from your IP address.",
                context={"ip": address}
            )
        return location

    def find_nearby_by_name(self, query: str, radius_km: Optional[float] = None,
                            strict: Optional[bool] = None) -> Dict[str, Any]:
        """
        Find the cities near the city best matching ``query``.

        Returns:
            Dictionary with ``origin`` (the matched city), ``radius_km``,
            ``precision``, ``prefix``, ``count`` and ``cities``
        """
        city = self.resolve_city(query)
        origin = {
            'type': 'city',
            'query': query,
            'id': city['id'],
            'name': city['city'],
            'ascii_name': city['city_ascii'],
            'admin_name': city['admin_name'],
            'country': city['country'],
            'iso2': city['iso2'],
            'population': city['population'],
            'lat': city['lat'],
            'lng': city['lng'],
        }
        return self._result(origin, radius_km, strict)

    def find_nearby_by_ip(self, address: str, radius_km: Optional[float] = None,
                          strict: Optional[bool] = None) -> Dict[str, Any]:
        """
        Find the cities near the location of an IPv4 address.

        Returns:
            Same shape as find_nearby_by_name, with the IP range's place as ``origin``
        """
        location = self.resolve_ip(address)
        origin = {
            'type': 'ip',
            'ip': address,
            'name': location['city'],
            'admin_name': location['region'],
            'country': location['country'],
            'iso2': location['iso2'],
            'lat': location['lat'],
            'lng': location['lng'],
        }
        return self._result(origin, radius_km, strict)

    def _result(self, origin: Dict[str, Any], radius_km: Optional[float],
                strict: Optional[bool]) -> Dict[str, Any]:
        radius, precision, prefix, cities = self._rank(origin['lat'], origin['lng'], radius_km, strict)
        return {
            'origin': origin,
            'radius_km': radius,
            'precision': precision,
            'prefix': prefix,
            'count': len(cities),
            'cities': cities,
        }

    def get_city(self, city_id: int) -> Optional[Dict[str, Any]]:
        """
        Get a city by its ID.
        """
        return self.city_repository.get_by_id(city_id)

    def get_table_info(self) -> Dict[str, Any]:
        """
        Get row counts, the name search mode and the build state.
        """
        info = self.schema_manager.get_table_info()
        info['build_state'] = self.index_builder.refresh_state().value
        return info

    def reset(self) -> None:
        """
        Drop the city data and the migration marker so the next prepare rebuilds.
        """
        self.schema_manager.drop_schema()
        self.index_builder.refresh_state()

    def close(self) -> None:
        """
        Close the database connection.

        This should be called when the CityData instance is no longer needed
        to release database resources.
        """
        if getattr(self, 'db_manager', None):
            self.db_manager.close()
            logger.debug("Closed database connection")

    def __enter__(self: T) -> T:
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[Any]) -> None:
        self.close()
