"""
pool.py

Bounded Postgres connection pool shared by request handlers and the
embedding backfill job. When every connection is checked out, callers wait
for one to be returned instead of failing.
"""

import os
import threading
from contextlib import contextmanager
from typing import Optional

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from hts_classifier.logger import get_logger
from hts_classifier.exception import StoreUnavailableError

logger = get_logger(__name__)


class ConnectionPool:
    def __init__(
        self,
        conn_str: Optional[str] = None,
        minconn: int = 1,
        maxconn: int = 5,
        acquire_timeout: float = 30.0,
    ):
        self.conn_str = conn_str or os.getenv("HTS_DB_CONN_STR")
        if not self.conn_str:
            raise StoreUnavailableError("Database connection string (HTS_DB_CONN_STR) not found.")

        try:
            self._pool = ThreadedConnectionPool(minconn, maxconn, self.conn_str)
        except psycopg2.Error as e:
            logger.error(f"Failed to open connection pool: {e}")
            raise StoreUnavailableError(e)

        # getconn() raises PoolError at maxconn, so checkouts are gated here
        self._slots = threading.BoundedSemaphore(maxconn)
        self.acquire_timeout = acquire_timeout

        logger.info(f"Initialized Postgres connection pool (min={minconn}, max={maxconn}).")

    @classmethod
    def from_config(cls, config: dict) -> "ConnectionPool":
        db_config = config.get("database", {})
        return cls(
            conn_str=db_config.get("conn_str"),
            minconn=db_config.get("minconn", 1),
            maxconn=db_config.get("maxconn", 5),
            acquire_timeout=db_config.get("acquire_timeout_seconds", 30.0),
        )

    @contextmanager
    def connection(self):
        """
        Borrow a connection for the duration of the block.
        Waits up to acquire_timeout for a free slot. Commits on success,
        rolls back on error, always returns it to the pool.
        """
        if not self._slots.acquire(timeout=self.acquire_timeout):
            logger.error(f"Timed out after {self.acquire_timeout}s waiting for a pooled connection.")
            raise StoreUnavailableError("Timed out waiting for a database connection.")

        try:
            try:
                conn = self._pool.getconn()
            except psycopg2.Error as e:
                logger.error(f"Could not acquire a pooled connection: {e}")
                raise StoreUnavailableError(e)

            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                self._pool.putconn(conn)
        finally:
            self._slots.release()

    def close(self):
        self._pool.closeall()
        logger.info("Closed Postgres connection pool.")
