"""
FastAPI Dependency Injection

Provides database connections for API endpoints using FastAPI's
dependency injection system.
"""

from functools import partial
from typing import Callable, Generator

import psycopg2
from psycopg2.extras import RealDictCursor

from inbox_pipeline.db.connection import get_connection, get_connection_string


def get_db() -> Generator:
    """
    FastAPI dependency for database connections.

    Yields a database connection with RealDictCursor for dict-style row access.
    Automatically commits on success, rolls back on error, and closes connection.
    """
    conn = psycopg2.connect(
        get_connection_string(),
        cursor_factory=RealDictCursor
    )
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_sweep_connector() -> Callable:
    """
    Connection factory for the supervisor sweep.

    Returns a callable rather than an open connection: the endpoint opens it
    inside its own error handling, so a connect failure is reported in the
    sweep's ``{ok, error, elapsed_ms}`` shape. Connections are autocommit, so
    a failure late in the sweep does not roll back earlier incidents and claims.
    """
    return partial(get_connection, autocommit=True, cursor_factory=RealDictCursor)
