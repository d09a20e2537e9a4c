"""
Inbox Pipeline API - Main Application

FastAPI application exposing the pipeline supervisor to the scheduler and
open incidents to operators.

Run with:
    uvicorn inbox_pipeline.api.main:app --port 8000

API Documentation available at:
    - Swagger UI: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

# Load .env from project root before reading any PIPELINE_* settings
load_dotenv(Path(__file__).parent.parent.parent / ".env")

from inbox_pipeline import __version__
from inbox_pipeline.api.routers import health, supervisor
from inbox_pipeline.config import get_log_file
from inbox_pipeline.errors import PipelineHTTPError
from inbox_pipeline.logging_utils import configure_service_logging

# File-based logging survives the scheduler closing stdout
configure_service_logging(get_log_file())

logger = logging.getLogger(__name__)


app = FastAPI(
    title="Inbox Pipeline API",
    description="""
    Supervisor for the asynchronous message-ingestion pipeline.

    ## Features

    - **Supervisor sweep**: detect stalled runs and events, re-enqueue stuck work
    - **Incidents**: deduplicated operational alerts
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(PipelineHTTPError)
async def pipeline_http_error_handler(request: Request, exc: PipelineHTTPError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.message},
    )


# Register routers
app.include_router(health.router)
app.include_router(supervisor.router)


@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "name": "Inbox Pipeline API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
