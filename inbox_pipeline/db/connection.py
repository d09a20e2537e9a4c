"""PostgreSQL database connection and schema setup."""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

import psycopg2


def get_connection_string() -> str:
    """Get database connection string from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/inbox_pipeline"
    )


@contextmanager
def get_connection(autocommit: bool = False, cursor_factory=None) -> Generator:
    """Get a database connection context manager.

    Commits on success, rolls back on error and always closes. With
    ``autocommit=True`` every statement is committed on its own, so work done
    before a failure stays committed and one failed statement does not abort
    the ones after it.
    """
    conn = psycopg2.connect(get_connection_string(), cursor_factory=cursor_factory)
    conn.autocommit = autocommit
    try:
        yield conn
        if not autocommit:
            conn.commit()
    except Exception:
        if not autocommit:
            conn.rollback()
        raise
    finally:
        conn.close()


def init_db(schema_path: Optional[Path] = None) -> None:
    """Initialize database schema (tables, pgmq queues, views)."""
    schema_path = schema_path or Path(__file__).parent / "schema.sql"
    with open(schema_path) as f:
        schema_sql = f.read()

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(schema_sql)
