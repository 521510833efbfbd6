"""
Database management module for the NearbyCities package.

This module provides the DatabaseManager class for managing database connections
and transactions. It supports both SQLite and PostgreSQL. Queries throughout the
package are written with ``?`` placeholders and rows are accessed by column
name, so the same statements run on either backend.
"""

import os
import re
import threading
from typing import Optional, Any, Dict, Tuple, List, Iterable, Sequence, Type, TypeVar, Union

from NearbyCities.utils.logging import get_logger
from NearbyCities.exceptions import (
    ConnectionError, QueryError, TransactionError, ConfigurationError
)

logger = get_logger(__name__)

T = TypeVar('T', bound='DatabaseManager')

_PG_URI_PATTERN = re.compile(
    r'postgresql://(?:([^:@/]+)(?::([^@]+))?@)?([^:/]+)(?::(\d+))?/([^?]+)'
)


class QueryCursor:
    """
    Thin wrapper over a DB-API cursor.

    Rewrites ``?`` placeholders to the ``%s`` style psycopg2 expects and
    turns driver errors into QueryError.
    """

    def __init__(self, cursor: Any, db_type: str):
        self._cursor = cursor
        self.db_type = db_type

    def _adapt(self, query: str) -> str:
        if self.db_type == 'postgresql':
            return query.replace('?', '%s')
        return query

    def execute(self, query: str, params: Sequence[Any] = ()) -> 'QueryCursor':
        try:
            self._cursor.execute(self._adapt(query), tuple(params))
        except Exception as e:
            raise QueryError(
                message=f"Error executing query: {e}",
                context={"query": query.strip().split('\n')[0]},
                cause=e
            ) from e
        return self

    def executemany(self, query: str, params_list: Iterable[Sequence[Any]]) -> 'QueryCursor':
        try:
            self._cursor.executemany(self._adapt(query), [tuple(p) for p in params_list])
        except Exception as e:
            raise QueryError(
                message=f"Error executing batch query: {e}",
                context={"query": query.strip().split('\n')[0]},
                cause=e
            ) from e
        return self

    def fetchone(self) -> Optional[Any]:
        return self._cursor.fetchone()

    def fetchall(self) -> List[Any]:
        return self._cursor.fetchall()

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    def close(self) -> None:
        self._cursor.close()


class DatabaseManager:
    """
    Manager for database connections and transactions.

    Non-persistent managers open a fresh connection for every cursor, so a
    manager can be shared between request threads. Persistent managers keep
    one connection open and serialize access to it.
    """

    def __init__(self, db_uri: str, persistent: bool = False, connection_timeout: int = 30,
                 use_advanced_features: Optional[bool] = None) -> None:
        """
        Initialize a DatabaseManager instance.

        Args:
            db_uri: Database URI (``sqlite:///path`` or ``postgresql://...``)
            persistent: Whether to keep a single connection open
            connection_timeout: Timeout in seconds for locks and connects
            use_advanced_features: Apply WAL and tuned pragmas (defaults to the
                ``enable_advanced_db`` feature flag)
        """
        self.db_uri = db_uri
        self.db_type = self._get_db_type(db_uri)
        self.persistent = persistent
        self.connection_timeout = connection_timeout

        # Every connection to :memory: is a new, empty database
        if self.db_type == 'sqlite' and self.sqlite_path == ':memory:' and not persistent:
            logger.debug("In-memory SQLite database, keeping a single persistent connection")
            self.persistent = True

        if use_advanced_features is None:
            from NearbyCities.config.manager import get_config
            use_advanced_features = get_config().is_feature_enabled('enable_advanced_db')
        self.use_advanced_features = use_advanced_features

        self.connection = None
        self._lock = threading.RLock()
        self._fts5_supported: Optional[bool] = None

        logger.debug(f"Initialized DatabaseManager for {self.db_type}")

    def __enter__(self: T) -> T:
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_val: Optional[BaseException],
                 exc_tb: Optional[Any]) -> bool:
        self.close()
        return False

    def _get_db_type(self, db_uri: str) -> str:
        """
        Get the database type from the URI.

        Raises:
            ConfigurationError: If the database URI is not supported
        """
        if db_uri.startswith('sqlite:'):
            return 'sqlite'
        elif db_uri.startswith(('postgresql:', 'postgres:')):
            return 'postgresql'
        else:
            raise ConfigurationError(
                message=f"Unsupported database URI: {db_uri}",
                user_message="The database configuration is invalid.",
                context={"db_uri": db_uri}
            )

    @property
    def sqlite_path(self) -> str:
        """Filesystem path of a SQLite database."""
        return self.db_uri.replace('sqlite:///', '', 1)

    def _connect_sqlite(self) -> Any:
        import sqlite3

        path = self.sqlite_path
        if path != ':memory:':
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

        try:
            # Autocommit mode; DatabaseCursor issues BEGIN/COMMIT itself
            connection = sqlite3.connect(
                path,
                timeout=self.connection_timeout,
                isolation_level=None,
                check_same_thread=not self.persistent
            )
        except sqlite3.Error as e:
            raise ConnectionError(
                message=f"Failed to open SQLite database {path}: {e}",
                context={"db_uri": self.db_uri},
                cause=e
            ) from e

        connection.execute('PRAGMA foreign_keys = ON')

        if self.use_advanced_features and path != ':memory:':
            connection.execute('PRAGMA journal_mode = WAL')
            connection.execute('PRAGMA synchronous = NORMAL')
            connection.execute('PRAGMA cache_size = -2000')  # 2MB page cache
            connection.execute('PRAGMA temp_store = MEMORY')

        connection.row_factory = sqlite3.Row
        return connection

    def _connect_postgresql(self) -> Any:
        import psycopg2
        from psycopg2.extras import RealDictCursor

        match = _PG_URI_PATTERN.match(self.db_uri.replace('postgres://', 'postgresql://', 1))
        if not match:
            raise ConfigurationError(
                message=f"Invalid PostgreSQL URI: {self.db_uri}",
                user_message="The database configuration is invalid.",
                context={"db_uri": self.db_uri}
            )

        user, password, host, port, dbname = match.groups()

        conn_params: Dict[str, Any] = {}
        if self.use_advanced_features:
            conn_params.update({
                'application_name': 'NearbyCities',
                'client_encoding': 'utf8',
            })

        try:
            connection = psycopg2.connect(
                dbname=dbname,
                user=user,
                password=password,
                host=host,
                port=port or 5432,
                connect_timeout=self.connection_timeout,
                **conn_params
            )
        except psycopg2.Error as e:
            raise ConnectionError(
                message=f"Failed to connect to PostgreSQL: {e}",
                user_message="Could not connect to the PostgreSQL database.",
                context={"host": host, "database": dbname},
                cause=e
            ) from e

        connection.cursor_factory = RealDictCursor
        return connection

    def _get_connection(self) -> Any:
        """
        Get a database connection.

        Persistent managers reuse their open connection; otherwise a new one
        is created and owned by the caller.
        """
        if self.persistent and self.connection is not None:
            return self.connection

        if self.db_type == 'sqlite':
            connection = self._connect_sqlite()
        else:
            connection = self._connect_postgresql()

        if self.persistent:
            self.connection = connection

        return connection

    def cursor(self, exclusive: bool = False) -> 'DatabaseCursor':
        """
        Get a transactional cursor context.

        The transaction commits when the ``with`` block exits normally and
        rolls back when it raises.

        Args:
            exclusive: Take the SQLite write lock up front (``BEGIN IMMEDIATE``)
                so that DDL and inserts run in one atomic transaction.
        """
        return DatabaseCursor(self, exclusive=exclusive)

    def close(self) -> None:
        """Close the persistent connection, if any."""
        with self._lock:
            if self.connection is not None:
                logger.debug("Closing persistent connection")
                try:
                    self.connection.close()
                except Exception as e:
                    logger.warning(f"Error closing connection: {e}")
                self.connection = None

    def table_exists(self, table_name: str) -> bool:
        """
        Check if a table exists in the database.

        Args:
            table_name: Name of the table to check
        """
        with self.cursor() as cursor:
            if self.db_type == 'sqlite':
                cursor.execute(
                    "SELECT COUNT(*) AS present FROM sqlite_master WHERE type IN ('table', 'view') AND name = ?",
                    (table_name,)
                )
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS present FROM information_schema.tables "
                    "WHERE table_schema = current_schema() AND table_name = ?",
                    (table_name,)
                )
            row = cursor.fetchone()
            return bool(row and row['present'])

    def execute(self, query: str, params: Sequence[Any] = ()) -> List[Any]:
        """
        Execute a single query in its own transaction and return all rows.

        Raises:
            QueryError: If there's an error executing the query
        """
        with self.cursor() as cursor:
            cursor.execute(query, params)
            if query.lstrip().upper().startswith(('SELECT', 'PRAGMA', 'WITH')):
                return cursor.fetchall()
            return []

    def has_fts5_support(self) -> bool:
        """
        Check if the SQLite library provides the FTS5 extension.

        Returns:
            True if FTS5 virtual tables can be created, False otherwise
        """
        if self.db_type != 'sqlite':
            return False

        if self._fts5_supported is not None:
            return self._fts5_supported

        import sqlite3

        supported = False
        try:
            with self.cursor() as cursor:
                cursor.execute("PRAGMA compile_options")
                options = [row[0].upper() for row in cursor.fetchall()]
            supported = 'ENABLE_FTS5' in options
            if not supported:
                # Some builds load FTS5 without advertising the compile option
                with self.cursor() as cursor:
                    cursor.execute("CREATE VIRTUAL TABLE temp.fts5_probe USING fts5(x)")
                    cursor.execute("DROP TABLE temp.fts5_probe")
                supported = True
        except (QueryError, sqlite3.Error) as e:
            logger.debug(f"FTS5 is not available: {e}")

        self._fts5_supported = supported
        return supported


class DatabaseCursor:
    """
    Context manager wrapping one database transaction.

    For non-persistent managers the connection is opened on enter and closed
    on exit. Persistent managers hold their lock for the duration of the
    block so that the shared connection is never used concurrently.
    """

    def __init__(self, db_manager: DatabaseManager, exclusive: bool = False):
        self.db_manager = db_manager
        self.exclusive = exclusive
        self.connection = None
        self.cursor: Optional[QueryCursor] = None

    def __enter__(self) -> QueryCursor:
        if self.db_manager.persistent:
            self.db_manager._lock.acquire()

        try:
            self.connection = self.db_manager._get_connection()
            raw_cursor = self.connection.cursor()
            if self.db_manager.db_type == 'sqlite':
                raw_cursor.execute('BEGIN IMMEDIATE' if self.exclusive else 'BEGIN')
            self.cursor = QueryCursor(raw_cursor, self.db_manager.db_type)
            return self.cursor
        except ConnectionError:
            self._release()
            raise
        except Exception as e:
            self._release()
            logger.error(f"Error creating cursor: {e}")
            raise ConnectionError(
                message=f"Failed to create database cursor: {e}",
                user_message="Could not connect to the database.",
                cause=e
            ) from e

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_val: Optional[BaseException],
                 exc_tb: Optional[Any]) -> bool:
        try:
            if exc_type is None:
                self.connection.commit()
            else:
                self.connection.rollback()
        except Exception as e:
            error_msg = f"Error committing/rolling back transaction: {e}"
            logger.error(error_msg)
            raise TransactionError(error_msg, cause=e) from e
        finally:
            self._release()
        return False

    def _release(self) -> None:
        try:
            if self.cursor is not None:
                self.cursor.close()
        except Exception as e:
            logger.error(f"Error closing cursor: {e}")

        if self.connection is not None and not self.db_manager.persistent:
            try:
                self.connection.close()
            except Exception as e:
                logger.error(f"Error closing connection: {e}")

        if self.db_manager.persistent:
            self.db_manager._lock.release()


def create_db_manager_from_config(db_uri: Optional[str] = None, persistent: bool = False) -> DatabaseManager:
    """
    Create a DatabaseManager from the configuration settings.

    Args:
        db_uri: Explicit database URI; the configured one is used when omitted
        persistent: Keep a single connection open (CLI usage)
    """
    from NearbyCities.config.manager import get_config

    config = get_config()
    db_manager = DatabaseManager(
        db_uri=db_uri or config.get_database_uri(),
        persistent=persistent,
        connection_timeout=config.get("database.timeout", 30),
        use_advanced_features=config.is_feature_enabled('enable_advanced_db')
    )

    logger.info(f"Database manager created with URI type: {db_manager.db_type}")
    return db_manager
