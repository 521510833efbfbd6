"""
Schema management module for the NearbyCities package.

Defines the tables behind the proximity service and the migration marker
that records whether the spatial index has been built:

- ``cities``: the world cities dataset
- ``geospatial_index``: one full-precision geohash per city
- ``cities_fts``: FTS5 name index (SQLite); PostgreSQL uses a GIN expression index
- ``ip2location``: IPv4 ranges with their location
- ``migrations``: applied one-time migrations
"""

from typing import Dict, Any, Optional

from NearbyCities.data.database import DatabaseManager, QueryCursor
from NearbyCities.utils.logging import get_logger
from NearbyCities.config.manager import get_config

logger = get_logger(__name__)

CITIES_TABLE = 'cities'
GEOSPATIAL_INDEX_TABLE = 'geospatial_index'
CITIES_FTS_TABLE = 'cities_fts'
IP2LOCATION_TABLE = 'ip2location'
MIGRATIONS_TABLE = 'migrations'

# Marker recorded once the cities, their index and the IP ranges are in place
CITIES_MIGRATION = 'cities_table'

DATA_TABLES = (GEOSPATIAL_INDEX_TABLE, CITIES_FTS_TABLE, IP2LOCATION_TABLE, CITIES_TABLE)

# Expression indexed for PostgreSQL text search; queries must repeat it verbatim
PG_SEARCH_VECTOR = (
    "to_tsvector('simple', coalesce(city, '') || ' ' || coalesce(city_ascii, '') || ' ' || "
    "coalesce(admin_name, '') || ' ' || coalesce(country, ''))"
)

_SQLITE_TABLES = [
    f'''
    CREATE TABLE IF NOT EXISTS {CITIES_TABLE} (
        id INTEGER PRIMARY KEY,
        city TEXT NOT NULL,
        city_ascii TEXT,
        lat REAL NOT NULL,
        lng REAL NOT NULL,
        country TEXT,
        iso2 TEXT,
        iso3 TEXT,
        admin_name TEXT,
        capital TEXT,
        population INTEGER
    )
    ''',
    f'''
    CREATE TABLE IF NOT EXISTS {GEOSPATIAL_INDEX_TABLE} (
        geohash TEXT NOT NULL,
        city_id INTEGER NOT NULL UNIQUE,
        FOREIGN KEY(city_id) REFERENCES {CITIES_TABLE}(id)
    )
    ''',
    f'''
    CREATE TABLE IF NOT EXISTS {IP2LOCATION_TABLE} (
        start_ip INTEGER NOT NULL,
        end_ip INTEGER NOT NULL,
        iso2 TEXT,
        country TEXT,
        region TEXT,
        city TEXT,
        lat REAL,
        lng REAL
    )
    ''',
]

_POSTGRESQL_TABLES = [
    f'''
    CREATE TABLE IF NOT EXISTS {CITIES_TABLE} (
        id BIGINT PRIMARY KEY,
        city TEXT NOT NULL,
        city_ascii TEXT,
        lat DOUBLE PRECISION NOT NULL,
        lng DOUBLE PRECISION NOT NULL,
        country TEXT,
        iso2 TEXT,
        iso3 TEXT,
        admin_name TEXT,
        capital TEXT,
        population BIGINT
    )
    ''',
    f'''
    CREATE TABLE IF NOT EXISTS {GEOSPATIAL_INDEX_TABLE} (
        geohash TEXT COLLATE "C" NOT NULL,
        city_id BIGINT NOT NULL UNIQUE REFERENCES {CITIES_TABLE}(id)
    )
    ''',
    f'''
    CREATE TABLE IF NOT EXISTS {IP2LOCATION_TABLE} (
        start_ip BIGINT NOT NULL,
        end_ip BIGINT NOT NULL,
        iso2 TEXT,
        country TEXT,
        region TEXT,
        city TEXT,
        lat DOUBLE PRECISION,
        lng DOUBLE PRECISION
    )
    ''',
]

_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_geospatial_geohash ON {GEOSPATIAL_INDEX_TABLE}(geohash)",
    f"CREATE INDEX IF NOT EXISTS idx_ip2location_end_ip ON {IP2LOCATION_TABLE}(end_ip)",
    f"CREATE INDEX IF NOT EXISTS idx_cities_city ON {CITIES_TABLE}(city)",
    f"CREATE INDEX IF NOT EXISTS idx_cities_city_ascii ON {CITIES_TABLE}(city_ascii)",
]


class SchemaManager:
    """
    Creates, inspects and drops the NearbyCities schema.

    DDL methods take an open cursor so that the index builder can run them
    inside its single build transaction.
    """

    def __init__(self, db_manager: DatabaseManager, config=None) -> None:
        """
        Args:
            db_manager: The database manager to use for schema operations
            config: Configuration manager instance. If None, gets global instance.
        """
        self.db_manager = db_manager
        self.config = config if config is not None else get_config()
        self._search_mode: Optional[str] = None

    @property
    def search_mode(self) -> str:
        """
        How city names are matched: ``'fts5'``, ``'tsvector'`` or ``'exact'``.
        """
        if self._search_mode is None:
            if self.db_manager.db_type == 'postgresql':
                self._search_mode = 'tsvector'
            elif self.config.get("database.sqlite.fts", True) and self.db_manager.has_fts5_support():
                self._search_mode = 'fts5'
            else:
                logger.warning("FTS5 is disabled or unavailable; city names will be matched exactly")
                self._search_mode = 'exact'
        return self._search_mode

    def ensure_migrations_table(self) -> None:
        with self.db_manager.cursor() as cursor:
            cursor.execute(f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (name TEXT PRIMARY KEY)")

    def is_migration_applied(self, name: str = CITIES_MIGRATION) -> bool:
        """Check whether a migration marker has been recorded."""
        if not self.db_manager.table_exists(MIGRATIONS_TABLE):
            return False
        with self.db_manager.cursor() as cursor:
            cursor.execute(f"SELECT COUNT(*) AS applied FROM {MIGRATIONS_TABLE} WHERE name = ?", (name,))
            row = cursor.fetchone()
            return bool(row and row['applied'])

    def mark_migration_applied(self, cursor: QueryCursor, name: str = CITIES_MIGRATION) -> None:
        cursor.execute(f"INSERT INTO {MIGRATIONS_TABLE} (name) VALUES (?)", (name,))

    def create_schema(self, cursor: QueryCursor) -> None:
        """
        Create the data tables, their indexes and the name search index.
        """
        cursor.execute(f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (name TEXT PRIMARY KEY)")

        tables = _SQLITE_TABLES if self.db_manager.db_type == 'sqlite' else _POSTGRESQL_TABLES
        for statement in tables:
            cursor.execute(statement)

        for statement in _INDEXES:
            cursor.execute(statement)

        if self.search_mode == 'fts5':
            cursor.execute(f'''
            CREATE VIRTUAL TABLE IF NOT EXISTS {CITIES_FTS_TABLE} USING fts5(
                city,
                city_ascii,
                admin_name,
                country,
                content='{CITIES_TABLE}',
                content_rowid='id',
                tokenize='unicode61 remove_diacritics 2'
            )
            ''')
        elif self.search_mode == 'tsvector':
            cursor.execute(
                f"CREATE INDEX IF NOT EXISTS idx_cities_search ON {CITIES_TABLE} USING GIN ({PG_SEARCH_VECTOR})"
            )

        logger.info(f"Schema created (name search: {self.search_mode})")

    def populate_search_index(self, cursor: QueryCursor) -> None:
        """Fill the FTS5 table from ``cities``; the PostgreSQL GIN index maintains itself."""
        if self.search_mode != 'fts5':
            return
        cursor.execute(f'''
        INSERT INTO {CITIES_FTS_TABLE}(rowid, city, city_ascii, admin_name, country)
        SELECT id, city, city_ascii, admin_name, country FROM {CITIES_TABLE}
        ''')

    def drop_schema(self) -> None:
        """
        Drop every data table and the cities migration marker.

        This is the only way to rebuild the index from fresh data.
        """
        with self.db_manager.cursor(exclusive=True) as cursor:
            for table in DATA_TABLES:
                if table == CITIES_FTS_TABLE and self.db_manager.db_type != 'sqlite':
                    continue
                cursor.execute(f"DROP TABLE IF EXISTS {table}")
            cursor.execute(f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (name TEXT PRIMARY KEY)")
            cursor.execute(f"DELETE FROM {MIGRATIONS_TABLE} WHERE name = ?", (CITIES_MIGRATION,))
        logger.info("Dropped city data tables and migration marker")

    def get_table_info(self) -> Dict[str, Any]:
        """
        Get row counts for the data tables and the build status.

        Returns:
            Dictionary with database type, name search mode, migration status
            and a ``tables`` mapping of table name to row count (None when
            the table does not exist)
        """
        info: Dict[str, Any] = {
            'database_type': self.db_manager.db_type,
            'search_mode': self.search_mode,
            'migration_applied': self.is_migration_applied(),
            'tables': {},
        }

        for table in (CITIES_TABLE, GEOSPATIAL_INDEX_TABLE, IP2LOCATION_TABLE):
            if not self.db_manager.table_exists(table):
                info['tables'][table] = None
                continue
            with self.db_manager.cursor() as cursor:
                cursor.execute(f"SELECT COUNT(*) AS row_count FROM {table}")
                info['tables'][table] = cursor.fetchone()['row_count']

        return info
