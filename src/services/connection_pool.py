"""
Database connection pooling for the feed store.

Hands out pooled psycopg2 connections inside a transaction scope and backs
off after repeated connection failures instead of hammering the server.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import psycopg2
from psycopg2 import pool

from src.config.common_settings import DB_POOL_MAX, DB_POOL_MIN, DB_POOL_TIMEOUT
from src.config.database_config import get_connection_string, get_database_config
from src.utils.logger import logger


class DatabaseConnectionPool:
    """Thread-safe database connection pool with failure backoff."""

    def __init__(
        self,
        min_connections: int = DB_POOL_MIN,
        max_connections: int = DB_POOL_MAX,
        slot_timeout: float = DB_POOL_TIMEOUT,
    ):
        self._pool: Optional[pool.ThreadedConnectionPool] = None
        self._lock = threading.Lock()
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._last_failure_time = 0.0
        self._failure_count = 0
        self._max_failure_count = 3
        self._backoff_seconds = 30
        # One slot per pooled connection
        self._slots = threading.BoundedSemaphore(max_connections)
        self._slot_timeout = slot_timeout

    def _create_pool(self) -> pool.ThreadedConnectionPool:
        config = get_database_config()
        logger.info("DatabaseConnectionPool: Creating connection pool for %s (min=%d, max=%d)",
                    get_connection_string(), self._min_connections, self._max_connections)
        return pool.ThreadedConnectionPool(
            self._min_connections,
            self._max_connections,
            **config.get_connection_params()
        )

    def _in_backoff(self) -> bool:
        if self._failure_count < self._max_failure_count:
            return False
        return time.time() - self._last_failure_time <= self._backoff_seconds

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.time()

    def get_connection(self):
        """Get a connection from the pool."""
        with self._lock:
            if self._in_backoff():
                raise RuntimeError(
                    f"Database connection pool in backoff mode after {self._failure_count} failures. "
                    f"Retry in {self._backoff_seconds} seconds."
                )

            if self._pool is None:
                try:
                    self._pool = self._create_pool()
                except Exception as e:
                    self._record_failure()
                    logger.error("DatabaseConnectionPool: Failed to create pool: %s", e)
                    raise RuntimeError(f"Failed to create database connection pool: {e}") from e

            try:
                conn = self._pool.getconn()
            except pool.PoolError as e:
                # Every connection is checked out; the server is fine
                logger.warning("DatabaseConnectionPool: Pool exhausted: %s", e)
                raise RuntimeError(f"Database connection pool exhausted: {e}") from e
            except psycopg2.Error as e:
                self._record_failure()
                logger.error("DatabaseConnectionPool: Failed to get connection: %s", e)
                raise RuntimeError(f"Failed to get database connection: {e}") from e

            self._failure_count = 0
            return conn

    def return_connection(self, conn, close_connection: bool = False) -> None:
        """Return a connection to the pool."""
        if self._pool is None:
            return
        try:
            self._pool.putconn(conn, close=close_connection)
        except Exception as e:
            logger.error("DatabaseConnectionPool: Error returning connection: %s", e)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Yield a connection whose work is committed on success and rolled back on error."""
        if not self._slots.acquire(timeout=self._slot_timeout):
            raise RuntimeError(
                f"Timed out after {self._slot_timeout}s waiting for a database connection"
            )
        try:
            conn = self.get_connection()
            broken = False
            try:
                yield conn
                conn.commit()
            except BaseException:
                try:
                    conn.rollback()
                except psycopg2.InterfaceError:
                    broken = True
                raise
            finally:
                self.return_connection(conn, close_connection=broken or bool(conn.closed))
        finally:
            self._slots.release()

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                try:
                    self._pool.closeall()
                    logger.info("DatabaseConnectionPool: Closed connection pool")
                finally:
                    self._pool = None

    def get_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics."""
        with self._lock:
            return {
                "pool_exists": self._pool is not None,
                "min_connections": self._min_connections,
                "max_connections": self._max_connections,
                "failure_count": self._failure_count,
                "last_failure_time": self._last_failure_time,
                "in_backoff": self._in_backoff(),
            }


# Global connection pool instance
_connection_pool: Optional[DatabaseConnectionPool] = None
_pool_lock = threading.Lock()


def get_connection_pool() -> DatabaseConnectionPool:
    """Get the global connection pool instance."""
    global _connection_pool

    with _pool_lock:
        if _connection_pool is None:
            _connection_pool = DatabaseConnectionPool()
        return _connection_pool


def close_connection_pool() -> None:
    """Close the global connection pool."""
    global _connection_pool

    with _pool_lock:
        if _connection_pool is not None:
            _connection_pool.close()
            _connection_pool = None
