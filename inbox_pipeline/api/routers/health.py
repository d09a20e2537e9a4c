"""
Health Check Endpoints

Liveness and database connectivity checks for the pipeline API.
Used by monitoring systems and the scheduler.
"""

import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from inbox_pipeline.api.deps import get_db


router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime


class DatabaseHealthResponse(BaseModel):
    """Database connectivity check response."""
    connected: bool
    latency_ms: Optional[float] = None
    pgmq_installed: Optional[bool] = None
    error: Optional[str] = None


@router.get("/health", response_model=HealthResponse)
def health_check():
    """
    Basic health check endpoint.

    Returns 200 OK if the API is running.
    Does not check external dependencies.
    """
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc)
    )


@router.get("/health/db", response_model=DatabaseHealthResponse)
def database_health_check(db=Depends(get_db)):
    """
    Database connectivity check.

    Verifies the database is reachable and the pgmq extension is installed.
    """
    try:
        start = time.time()
        with db.cursor() as cur:
            cur.execute("SELECT EXISTS (SELECT 1 FROM pg_extension WHERE extname = 'pgmq') AS pgmq")
            row = cur.fetchone()
        latency = (time.time() - start) * 1000  # Convert to ms

        return DatabaseHealthResponse(
            connected=True,
            latency_ms=round(latency, 2),
            pgmq_installed=bool(row["pgmq"]) if row else False,
        )
    except Exception as e:
        return DatabaseHealthResponse(
            connected=False,
            error=str(e)
        )
