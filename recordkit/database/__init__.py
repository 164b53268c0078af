"""Database connection management.

Connection handling plus thin statement helpers. Records build their own SQL
and hand it to these helpers; nothing here knows about tables or records.
"""

import logging
import os
import re
from collections.abc import Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

try:
    from pysqlcipher3 import dbapi2 as sqlite3

    SQLCIPHER_AVAILABLE = True
except ImportError:
    import sqlite3

    SQLCIPHER_AVAILABLE = False

# Store reference to real sqlite3.Error for exception handling
# This ensures we can catch sqlite3.Error even when sqlite3 module is mocked in tests
SQLiteError = sqlite3.Error

DEFAULT_DB_PATH = "data/recordkit.db"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when database connection fails."""

    pass


def quote_name(name: str) -> str:
    """Quote a table or column name for SQL.

    Raises:
        ValueError: If name is not a plain identifier
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return f'"{name}"'


def _sanitize_encryption_key(key: str) -> str:
    """Sanitize encryption key to prevent SQL injection.

    Args:
        key: Encryption key to sanitize

    Returns:
        Sanitized key safe for use in SQL PRAGMA statement

    Raises:
        ValueError: If key contains invalid characters
    """
    if not re.match(r"^[a-zA-Z0-9_-]+$", key):
        raise ValueError(
            "Encryption key contains invalid characters. "
            "Only alphanumeric, underscore, and hyphen allowed."
        )

    return key.replace("'", "''")


class Database:
    """Database connection manager.

    Every helper opens its own connection, so each statement is its own
    unit of work. Use ``connection()`` directly to group statements.
    """

    def __init__(self, db_path: str, encryption_key: str | None = None):
        """Initialize database connection.

        Args:
            db_path: Path to database file
            encryption_key: Encryption key for SQLCipher (if enabled)

        Raises:
            DatabaseConnectionError: If directory creation fails
        """
        self.db_path = db_path
        self.encryption_key = encryption_key
        self.encryption_enabled = encryption_key is not None and SQLCIPHER_AVAILABLE

        try:
            if db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                f"Failed to create database directory for {db_path}: {e}",
                exc_info=True,
            )
            raise DatabaseConnectionError(
                f"Cannot create database directory: {e}"
            ) from e

    def __repr__(self):
        return f"Database(db_path={self.db_path!r})"

    @classmethod
    def from_env(cls) -> "Database":
        """Build a Database from ``DB_PATH`` and ``DB_ENCRYPTION_KEY``.

        A ``.env`` file in the working directory is loaded first; variables
        already present in the environment win.
        """
        load_dotenv()

        db_path = os.getenv("DB_PATH", DEFAULT_DB_PATH)
        db_key = os.getenv("DB_ENCRYPTION_KEY") or None

        if db_key and not SQLCIPHER_AVAILABLE:
            logger.warning(
                "DB_ENCRYPTION_KEY is set but pysqlcipher3 is not installed; "
                "using unencrypted database"
            )

        return cls(db_path=db_path, encryption_key=db_key)

    @contextmanager
    def connection(self):
        """Context manager for database connections.

        Usage:
            with db.connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM customers")

        Raises:
            DatabaseConnectionError: If connection fails
        """
        try:
            conn = self._connect()
        except SQLiteError as e:
            logger.error(f"Failed to connect to database: {e}", exc_info=True)
            raise DatabaseConnectionError(f"Database connection failed: {e}") from e
        except Exception as e:
            # Catch all other exceptions (including mocked sqlite3.Error in tests)
            logger.error(
                f"Unexpected error during database connection: {e}", exc_info=True
            )
            raise DatabaseConnectionError(f"Unexpected database error: {e}") from e

        try:
            yield conn
            conn.commit()
        except SQLiteError as e:
            conn.rollback()
            logger.error(
                f"Database transaction rolled back due to SQLite error: {e}",
                exc_info=True,
            )
            raise
        except Exception as e:
            conn.rollback()
            logger.error(f"Database transaction rolled back: {e}", exc_info=True)
            raise
        finally:
            try:
                conn.close()
            except Exception as e:
                logger.warning(f"Error closing database connection: {e}", exc_info=True)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run an INSERT/UPDATE/DELETE statement.

        Returns:
            Number of rows affected by the statement
        """
        logger.debug(f"execute: {sql} {list(params)}")
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(sql, list(params))
            return cursor.rowcount

    def execute_insert(self, sql: str, params: Sequence[Any] = ()) -> int | None:
        """Run an INSERT statement.

        Returns:
            The rowid of the inserted row
        """
        logger.debug(f"execute_insert: {sql} {list(params)}")
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(sql, list(params))
            return cursor.lastrowid

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a SELECT statement and return every row as a column->value dict."""
        logger.debug(f"fetch_all: {sql} {list(params)}")
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(sql, list(params))
            rows = cursor.fetchall()

            if not rows:
                return []

            columns = [desc[0] for desc in cursor.description]
            return [dict(zip(columns, row)) for row in rows]

    def fetch_scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Run a SELECT statement and return the first column of the first row."""
        logger.debug(f"fetch_scalar: {sql} {list(params)}")
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(sql, list(params))
            row = cursor.fetchone()
            return row[0] if row is not None else None

    def table_columns(self, table_name: str) -> list[str]:
        """Column names of a table, in declaration order.

        Raises:
            ValueError: If table_name is not a plain identifier
        """
        sql = f"PRAGMA table_info({quote_name(table_name)})"
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(sql)
            return [row[1] for row in cursor.fetchall()]

    def _connect(self):
        """Create and configure database connection.

        Returns:
            sqlite3.Connection with WAL mode and foreign keys enabled

        Raises:
            sqlite3.Error: If connection or PRAGMA commands fail
            ValueError: If encryption key is invalid
        """
        # Validate the key before opening anything
        sanitized_key = None
        if self.encryption_enabled:
            if not self.encryption_key:
                raise ValueError(
                    "Encryption key cannot be None when encryption is enabled"
                )
            sanitized_key = _sanitize_encryption_key(self.encryption_key)

        try:
            conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,  # Autocommit mode - each statement is a transaction
            )
        except SQLiteError as e:
            logger.error(
                f"sqlite3.connect failed for {self.db_path}: {e}", exc_info=True
            )
            raise

        try:
            conn.execute("PRAGMA journal_mode=WAL")

            if self.encryption_enabled:
                conn.execute(f"PRAGMA key = '{sanitized_key}'")

            conn.execute("PRAGMA foreign_keys=ON")
        except SQLiteError as e:
            conn.close()
            logger.error(f"Failed to configure database PRAGMAs: {e}", exc_info=True)
            raise

        return conn
