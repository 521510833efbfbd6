"""
One-time construction of the geohash spatial index.

The build loads the cities, computes a full-precision geohash for each of
them, optionally loads the IP2Location ranges, and records the
``cities_table`` migration marker, all in a single transaction. Once the
marker exists later builds are no-ops.
"""

import threading
import time
from enum import Enum
from typing import List, Optional

from NearbyCities.config.manager import get_config
from NearbyCities.data.database import DatabaseManager, QueryCursor
from NearbyCities.data.importer import CityDataImporter, IP2LocationImporter
from NearbyCities.data.models import CityRecord
from NearbyCities.data.schema import (
    CITIES_MIGRATION, CITIES_TABLE, GEOSPATIAL_INDEX_TABLE, MIGRATIONS_TABLE, SchemaManager
)
from NearbyCities.exceptions import IndexBuildError, ValidationError
from NearbyCities.geo.geohash import MAX_PRECISION, encode
from NearbyCities.utils.logging import get_logger

logger = get_logger(__name__, {'component': 'index_builder'})


class BuildState(Enum):
    NOT_BUILT = 'not_built'
    BUILDING = 'building'
    BUILT = 'built'
    BUILD_FAILED = 'build_failed'


class SpatialIndexBuilder:
    """
    Builds the ``geospatial_index`` table from city records.

    Example:
        >>> builder = SpatialIndexBuilder(db_manager)
        >>> builder.build(CityDataImporter(db_manager).load_records('worldcities.csv'))
        47868
        >>> builder.state
        <BuildState.BUILT: 'built'>
    """

    def __init__(self, db_manager: DatabaseManager,
                 schema_manager: Optional[SchemaManager] = None,
                 city_importer: Optional[CityDataImporter] = None,
                 ip_importer: Optional[IP2LocationImporter] = None,
                 config=None,
                 batch_size: Optional[int] = None) -> None:
        self.db_manager = db_manager
        self.config = config if config is not None else get_config()
        self.schema_manager = schema_manager or SchemaManager(db_manager, self.config)
        self.city_importer = city_importer or CityDataImporter(db_manager, self.config)
        self.ip_importer = ip_importer or IP2LocationImporter(db_manager, self.config)
        self.batch_size = batch_size or self.config.get("data.batch_size", 5000)

        self._state = BuildState.NOT_BUILT
        self._lock = threading.Lock()

    @property
    def state(self) -> BuildState:
        return self._state

    def refresh_state(self) -> BuildState:
        """Set the state from the migration marker, keeping a recorded failure."""
        if self._state is BuildState.BUILDING:
            return self._state
        if self.schema_manager.is_migration_applied(CITIES_MIGRATION):
            self._state = BuildState.BUILT
        elif self._state is not BuildState.BUILD_FAILED:
            self._state = BuildState.NOT_BUILT
        return self._state

    def is_built(self) -> bool:
        return self.refresh_state() is BuildState.BUILT

    def build(self, city_records: List[CityRecord], ip2location_path: Optional[str] = None) -> int:
        """
        Build the index unless the migration marker says it already exists.

        Args:
            city_records: Cities to load and index
            ip2location_path: Optional IP2Location CSV to load in the same transaction

        Returns:
            Number of index entries written (0 when the index already existed)

        Raises:
            IndexBuildError: If anything fails; nothing is committed in that case
        """
        if not self._lock.acquire(blocking=False):
            raise IndexBuildError(
                message="A spatial index build is already running",
                context={"state": self._state.value}
            )

        try:
            if self.schema_manager.is_migration_applied(CITIES_MIGRATION):
                logger.info("Spatial index already built, skipping")
                self._state = BuildState.BUILT
                return 0

            # Resolved outside the write transaction, it may need its own connection
            search_mode = self.schema_manager.search_mode

            self._state = BuildState.BUILDING
            start_time = time.time()
            logger.info(f"Building spatial index for {len(city_records)} cities (name search: {search_mode})")

            try:
                with self.db_manager.cursor(exclusive=True) as cursor:
                    if self._marker_present(cursor):
                        # Another process finished the build while we waited for the lock
                        logger.info("Spatial index was built concurrently, skipping")
                        self._state = BuildState.BUILT
                        return 0

                    self.schema_manager.create_schema(cursor)
                    self.city_importer.insert_records(cursor, city_records, self.batch_size)
                    self.schema_manager.populate_search_index(cursor)
                    indexed = self._index_cities(cursor)

                    ip_ranges = 0
                    if ip2location_path:
                        ip_ranges = self.ip_importer.import_csv(cursor, ip2location_path, self.batch_size)

                    self.schema_manager.mark_migration_applied(cursor, CITIES_MIGRATION)
            except Exception as e:
                self._state = BuildState.BUILD_FAILED
                logger.error(f"Spatial index build failed, changes rolled back: {e}")
                raise IndexBuildError(
                    message=f"Spatial index build failed: {e}",
                    context={"city_count": len(city_records)},
                    cause=e
                ) from e

            self._state = BuildState.BUILT
            logger.info(
                f"Spatial index built in {time.time() - start_time:.2f} seconds",
                extra={'indexed_cities': indexed, 'ip_ranges': ip_ranges}
            )
            return indexed
        finally:
            self._lock.release()

    def _marker_present(self, cursor: QueryCursor) -> bool:
        cursor.execute(f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (name TEXT PRIMARY KEY)")
        cursor.execute(
            f"SELECT COUNT(*) AS applied FROM {MIGRATIONS_TABLE} WHERE name = ?", (CITIES_MIGRATION,)
        )
        return bool(cursor.fetchone()['applied'])

    def _index_cities(self, cursor: QueryCursor) -> int:
        """Compute and store the geohash of every city, in ascending id order."""
        cursor.execute(f"SELECT id, lat, lng FROM {CITIES_TABLE} ORDER BY id")
        rows = cursor.fetchall()

        query = f"INSERT INTO {GEOSPATIAL_INDEX_TABLE} (geohash, city_id) VALUES (?, ?)"
        batch = []
        for row in rows:
            try:
                geohash = encode(row['lat'], row['lng'], MAX_PRECISION)
            except ValidationError as e:
                raise ValidationError(
                    message=f"City {row['id']} has malformed coordinates ({row['lat']!r}, {row['lng']!r})",
                    context={"city_id": row['id']},
                    cause=e
                ) from e
            batch.append((geohash, row['id']))

            if len(batch) >= self.batch_size:
                cursor.executemany(query, batch)
                batch = []

        if batch:
            cursor.executemany(query, batch)

        return len(rows)
