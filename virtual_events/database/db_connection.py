"""
PostgreSQL connection handle.

`Database` owns a psycopg2 connection pool with an explicit lifecycle: the
gateway opens it at startup and closes it at shutdown. Services never
create connections themselves; they receive the handle (or the store built
on top of it) from the application.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from flask import current_app
from psycopg2.extras import DictCursor
from psycopg2.pool import ThreadedConnectionPool

from virtual_events.errors import StorageError, translate_db_error


class Database:
    """
    Pooled access to the PostgreSQL database.

    Usage:
        db = Database(dsn)
        db.open()
        with db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(...)
        db.close()
    """

    def __init__(self, dsn: str, min_connections: int = 1, max_connections: int = 10) -> None:
        if not dsn:
            raise RuntimeError("DATABASE_URL is not set. Please set the environment variable.")
        self.dsn = dsn
        self.min_connections = min_connections
        self.max_connections = max_connections
        self._pool: Optional[ThreadedConnectionPool] = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None and not self._pool.closed

    def open(self) -> None:
        if self.is_open:
            return
        try:
            # Rows come back with dictionary-style access, e.g. row["event_id"]
            self._pool = ThreadedConnectionPool(
                self.min_connections,
                self.max_connections,
                self.dsn,
                cursor_factory=DictCursor,
            )
        except psycopg2.Error as e:
            logging.error(f"Error connecting to database: {e}")
            raise StorageError("Could not connect to the database") from e
        logging.info("Database pool opened")

    def close(self) -> None:
        if self.is_open:
            self._pool.closeall()
            logging.info("Database pool closed")
        self._pool = None

    @contextmanager
    def connection(self) -> Iterator["psycopg2.extensions.connection"]:
        """
        Borrow a connection for one unit of work.

        Commits when the block exits normally and rolls back when it raises.
        psycopg2 errors are translated into the storage error taxonomy.
        """
        if not self.is_open:
            raise StorageError("Database is not open")

        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise translate_db_error(e) from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)


def get_store():
    """Return the EventStore attached to the running application."""
    return current_app.extensions["event_store"]
