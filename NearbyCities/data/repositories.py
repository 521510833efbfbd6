"""
Repository module for the NearbyCities package.

Read-only query classes over the tables built by the index builder:

- CityRepository: city lookup by id and by name
- GeoRepository: geohash prefix scans joined to the cities
- IPLocationRepository: IPv4 range lookups
"""

import re
import unicodedata
from typing import Dict, List, Any, Optional

from NearbyCities.data.database import DatabaseManager
from NearbyCities.data.models import IPLocation
from NearbyCities.data.schema import (
    CITIES_TABLE, CITIES_FTS_TABLE, GEOSPATIAL_INDEX_TABLE, IP2LOCATION_TABLE, PG_SEARCH_VECTOR
)
from NearbyCities.exceptions import ValidationError
from NearbyCities.geo.geohash import prefix_range
from NearbyCities.utils.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r'\s+')

_CITY_FIELDS = "c.id, c.city, c.city_ascii, c.lat, c.lng, c.country, c.iso2, c.iso3, c.admin_name, c.capital, c.population"

# The most populous match wins, then the lowest id
_NAME_MATCH_ORDER = "ORDER BY COALESCE(c.population, 0) DESC, c.id LIMIT 1"


def normalize_query(query: str) -> str:
    """
    Turn free text into a city name query.

    Every Unicode punctuation character is replaced with a space and runs of
    whitespace are collapsed, so "Hanoi!" becomes "Hanoi" and
    "Boulogne-Billancourt" becomes "Boulogne Billancourt".

    Raises:
        ValidationError: If nothing is left after normalization
    """
    if query is None:
        raise ValidationError("City name query is missing", user_message="Please enter a city name.")

    replaced = ''.join(
        ' ' if unicodedata.category(char).startswith('P') else char
        for char in str(query)
    )
    normalized = _WHITESPACE.sub(' ', replaced).strip()

    if not normalized:
        raise ValidationError(
            message=f"City name query {query!r} is empty after normalization",
            user_message="Please enter a city name."
        )
    return normalized


def query_tokens(normalized: str) -> List[str]:
    """Tokens that can match an indexed word (at least one letter or digit)."""
    return [token for token in normalized.split(' ') if any(char.isalnum() for char in token)]


def build_match_query(normalized: str) -> str:
    """
    FTS5 MATCH expression requiring every token, each as a quoted string.

    Example:
        >>> build_match_query('Hai Duong')
        '"Hai" "Duong"'
    """
    return ' '.join('"{}"'.format(token.replace('"', '""')) for token in query_tokens(normalized))


class BaseRepository:
    """
    Base class for all repositories.
    """

    def __init__(self, db_manager: DatabaseManager) -> None:
        self.db_manager = db_manager

    def _row_to_dict(self, row: Any) -> Dict[str, Any]:
        """Convert a sqlite3.Row or psycopg2 RealDictRow to a plain dictionary."""
        return dict(row)

    def _rows_to_dicts(self, rows: List[Any]) -> List[Dict[str, Any]]:
        return [self._row_to_dict(row) for row in rows]


class CityRepository(BaseRepository):
    """
    Repository for city lookup by id and by name.
    """

    def get_by_id(self, city_id: int) -> Optional[Dict[str, Any]]:
        with self.db_manager.cursor() as cursor:
            cursor.execute(f"SELECT {_CITY_FIELDS} FROM {CITIES_TABLE} c WHERE c.id = ?", (city_id,))
            row = cursor.fetchone()
        return self._row_to_dict(row) if row else None

    def count(self) -> int:
        with self.db_manager.cursor() as cursor:
            cursor.execute(f"SELECT COUNT(*) AS city_count FROM {CITIES_TABLE}")
            return cursor.fetchone()['city_count']

    def find_by_name(self, query: str, search_mode: str = 'fts5') -> Optional[Dict[str, Any]]:
        """
        Find the city best matching a name query.

        All tokens of the normalized query must match the city's name, ASCII
        name, administrative region or country. When several cities match,
        the most populous one is returned.

        Args:
            query: Free-text city name, e.g. "Hanoi!" or "Paris France"
            search_mode: 'fts5', 'tsvector' or 'exact' (see SchemaManager.search_mode)

        Returns:
            The matching city, or None if nothing matches

        Raises:
            ValidationError: If the query is empty after normalization
        """
        normalized = normalize_query(query)
        tokens = query_tokens(normalized)
        if not tokens:
            return None

        with self.db_manager.cursor() as cursor:
            if search_mode == 'fts5':
                cursor.execute(f"""
                    SELECT {_CITY_FIELDS}
                    FROM {CITIES_FTS_TABLE} f
                    JOIN {CITIES_TABLE} c ON c.id = f.rowid
                    WHERE {CITIES_FTS_TABLE} MATCH ?
                    {_NAME_MATCH_ORDER}
                """, (build_match_query(normalized),))
            elif search_mode == 'tsvector':
                cursor.execute(f"""
                    SELECT {_CITY_FIELDS}
                    FROM {CITIES_TABLE} c
                    WHERE {PG_SEARCH_VECTOR} @@ plainto_tsquery('simple', ?)
                    {_NAME_MATCH_ORDER}
                """, (' '.join(tokens),))
            else:
                cursor.execute(f"""
                    SELECT {_CITY_FIELDS}
                    FROM {CITIES_TABLE} c
                    WHERE lower(c.city) = lower(?) OR lower(c.city_ascii) = lower(?)
                    {_NAME_MATCH_ORDER}
                """, (normalized, normalized))
            row = cursor.fetchone()

        if row is None:
            logger.debug(f"No city matches {normalized!r}")
            return None
        return self._row_to_dict(row)


class GeoRepository(BaseRepository):
    """
    Repository for geohash prefix queries.
    """

    def find_by_prefix(self, prefix: str) -> List[Dict[str, Any]]:
        """
        Cities whose stored geohash starts with ``prefix``.

        Runs as a range scan (``geohash >= prefix AND geohash < prefix + '~'``)
        so the B-tree index on ``geospatial_index.geohash`` is used.

        Returns:
            Candidate cities with their geohash, in geohash order
        """
        low, high = prefix_range(prefix)
        with self.db_manager.cursor() as cursor:
            cursor.execute(f"""
                SELECT c.id, c.city AS name, c.city_ascii AS ascii_name, c.lat, c.lng,
                       c.admin_name, c.country, c.iso2, g.geohash
                FROM {GEOSPATIAL_INDEX_TABLE} g
                JOIN {CITIES_TABLE} c ON c.id = g.city_id
                WHERE g.geohash >= ? AND g.geohash < ?
                ORDER BY g.geohash
            """, (low, high))
            rows = cursor.fetchall()
        return self._rows_to_dicts(rows)


class IPLocationRepository(BaseRepository):
    """
    Repository for IP2Location range lookups.
    """

    def find_by_ip_number(self, ip_number: int) -> Optional[IPLocation]:
        """
        Find the range containing an IPv4 address given as a 32-bit integer.

        Takes the first range ending at or after the address and checks that
        it also starts at or before it, which lets the index on ``end_ip``
        answer the lookup.
        """
        with self.db_manager.cursor() as cursor:
            cursor.execute(f"""
                SELECT start_ip, end_ip, iso2, country, region, city, lat, lng
                FROM {IP2LOCATION_TABLE}
                WHERE end_ip >= ?
                ORDER BY end_ip
                LIMIT 1
            """, (ip_number,))
            row = cursor.fetchone()

        if row is None or row['start_ip'] > ip_number:
            return None
        return IPLocation(**self._row_to_dict(row))
