"""Record shapes passed between the importer, the repositories and callers."""

from typing import Optional, TypedDict


class CityRecord(TypedDict):
    """One row of the world cities dataset."""
    id: int
    city: str
    city_ascii: Optional[str]
    lat: float
    lng: float
    country: Optional[str]
    iso2: Optional[str]
    iso3: Optional[str]
    admin_name: Optional[str]
    capital: Optional[str]
    population: Optional[int]


class NearbyCity(TypedDict):
    """A city found near a reference point."""
    id: int
    name: str
    ascii_name: Optional[str]
    lat: float
    lng: float
    admin_name: Optional[str]
    country: Optional[str]
    iso2: Optional[str]
    geohash: str
    # Kilometres from the reference point, rounded to 2 decimals
    distance: float


class IPLocation(TypedDict):
    """An IP2Location range and the place it resolves to."""
    start_ip: int
    end_ip: int
    iso2: Optional[str]
    country: Optional[str]
    region: Optional[str]
    city: Optional[str]
    lat: float
    lng: float


CITY_COLUMNS = (
    'id', 'city', 'city_ascii', 'lat', 'lng', 'country',
    'iso2', 'iso3', 'admin_name', 'capital', 'population',
)

IP2LOCATION_CSV_COLUMNS = (
    'ip_from', 'ip_to', 'country_code', 'country_name',
    'region_name', 'city_name', 'latitude', 'longitude',
)
