"""
core/db.py -- Shared SQLAlchemy plumbing for the feed and dashboard stores.

Both repositories (feeds/store.py, dashboards/store.py) build their engine
here and open every connection through store_connection(), which is the one
place a driver exception is turned into a StoreError. Route handlers never
see a raw sqlalchemy exception.

SQLite is the default backend. Swapping to PostgreSQL is a connection string
change: nothing in the stores uses dialect-specific SQL.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import StoreError

logger = logging.getLogger("cyberdash.db")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a thread pool; the same pooled
        # connection may be used from more than one thread.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def store_connection(engine: Engine, operation: str, begin: bool = False) -> Iterator[Connection]:
    """Yield a connection; translate driver failures into StoreError.

    begin=True wraps the block in a single transaction that commits on exit
    and rolls back on any exception (used for multi-statement writes).
    """
    try:
        if begin:
            with engine.begin() as conn:
                yield conn
        else:
            with engine.connect() as conn:
                yield conn
    except SQLAlchemyError as exc:
        logger.exception("Store operation %s failed", operation)
        raise StoreError(operation) from exc
