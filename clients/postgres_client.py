"""
PostgreSQL client with connection pooling.

Uses psycopg2 with ThreadedConnectionPool. Pools are shared per database URL
so every store built on the same URL reuses one pool. Statements run in their
own transaction: committed on success, rolled back on any exception.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

Params = Tuple | Dict | None


class PostgresClient:
    """
    Thin query helper over a shared psycopg2 connection pool.

    Usage:
        db = PostgresClient(database_url)
        row = db.execute_single("SELECT credits FROM user_profiles WHERE user_id = %s", (user_id,))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, min_connections: int = 1, max_connections: int = 10):
        self._database_url = database_url
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            pool = self._connection_pools.get(self._database_url)
            if pool is None:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._min_connections,
                    maxconn=self._max_connections,
                    dsn=self._database_url,
                    connect_timeout=10,
                )
                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")
            return pool

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Borrow a connection and run one transaction on it."""
        pool = self._ensure_connection_pool()
        conn = pool.getconn()
        if conn is None:
            raise RuntimeError("Could not get connection from pool")

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    @staticmethod
    def _convert_params(params: Params) -> Params:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            return value

        if isinstance(params, dict):
            return {k: convert(v) for k, v in params.items()}
        return tuple(convert(v) for v in params)

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self.transaction() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, self._convert_params(params))
                if cur.description:
                    return [dict(row) for row in cur.fetchall()]
                return []

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def close(self) -> None:
        """Close this URL's connection pool."""
        with self._pools_lock:
            pool = self._connection_pools.pop(self._database_url, None)
            if pool is not None:
                pool.closeall()
                logger.info("Connection pool closed")
