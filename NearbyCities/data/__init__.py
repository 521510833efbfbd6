"""
Data management module for the NearbyCities package.

This module provides classes and functions for managing city data, including
database management, schema management, data import, the spatial index build
and the query repositories.
"""

from NearbyCities.data.city_manager import CityData
from NearbyCities.data.database import DatabaseManager
from NearbyCities.data.schema import SchemaManager
from NearbyCities.data.importer import CityDataImporter, IP2LocationImporter
from NearbyCities.data.index_builder import BuildState, SpatialIndexBuilder
from NearbyCities.data.repositories import (
    BaseRepository,
    CityRepository,
    GeoRepository,
    IPLocationRepository,
    normalize_query,
    build_match_query
)

__all__ = [
    'CityData',
    'DatabaseManager',
    'SchemaManager',
    'CityDataImporter',
    'IP2LocationImporter',
    'BuildState',
    'SpatialIndexBuilder',
    'BaseRepository',
    'CityRepository',
    'GeoRepository',
    'IPLocationRepository',
    'normalize_query',
    'build_match_query'
]
