"""
Pipeline Supervisor Endpoints

Invoked by the scheduler every couple of minutes. Requests must carry the
worker credential in X-Pipeline-Worker-Token; it is checked before any
database connection is opened.
"""

import hmac
import logging
import time
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse

from inbox_pipeline.api.deps import get_db, get_sweep_connector
from inbox_pipeline.api.schemas.supervisor import (
    ErrorResponse,
    IncidentListResponse,
    SweepErrorResponse,
    SweepResponse,
)
from inbox_pipeline.config import SupervisorSettings, get_worker_token
from inbox_pipeline.errors import PipelineHTTPError, WorkerAuthError
from inbox_pipeline.services.incident_ledger import IncidentLedger
from inbox_pipeline.supervisor import PipelineSupervisor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pipeline", tags=["supervisor"])


def verify_worker_token(
    x_pipeline_worker_token: Optional[str] = Header(None, alias="X-Pipeline-Worker-Token"),
) -> None:
    """
    Require the worker credential.

    Raises:
        PipelineHTTPError 500 if PIPELINE_WORKER_TOKEN is not configured
        WorkerAuthError 401 if the header is missing or does not match
    """
    expected = get_worker_token()
    if not expected:
        logger.error("PIPELINE_WORKER_TOKEN not configured - rejecting supervisor request")
        raise PipelineHTTPError(500, "Worker token not configured")

    if not x_pipeline_worker_token:
        raise WorkerAuthError("Missing worker token")

    if not hmac.compare_digest(x_pipeline_worker_token.encode(), expected.encode()):
        logger.warning("Invalid worker token on supervisor request")
        raise WorkerAuthError()


def get_incident_ledger(
    _auth: None = Depends(verify_worker_token),
    db=Depends(get_db),
) -> IncidentLedger:
    return IncidentLedger(db)


@router.post(
    "/supervisor",
    response_model=SweepResponse,
    responses={
        401: {"model": ErrorResponse},
        500: {"model": SweepErrorResponse},
    },
)
def run_supervisor(
    _auth: None = Depends(verify_worker_token),
    connect: Callable = Depends(get_sweep_connector),
):
    """
    Run one supervisor sweep.

    Detects stalled runs and events, re-enqueues stuck MATERIALIZE and
    CLASSIFY work within the nudge limit, and records deduplicated incidents.
    The worker token is checked before any connection is opened.
    """
    start = time.monotonic()
    try:
        with connect() as conn:
            supervisor = PipelineSupervisor(conn, settings=SupervisorSettings.from_env())
            summary = supervisor.run_sweep()
    except Exception as e:
        logger.exception("Supervisor sweep failed")
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": str(e) or "Unexpected error",
                "elapsed_ms": int((time.monotonic() - start) * 1000),
            },
        )

    return SweepResponse(
        **summary.to_dict(),
        elapsed_ms=int((time.monotonic() - start) * 1000),
    )


@router.api_route(
    "/supervisor",
    methods=["GET", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
def supervisor_method_not_allowed():
    return JSONResponse(
        status_code=405,
        content={"ok": False, "error": "Method not allowed"},
        headers={"Allow": "POST"},
    )


@router.get("/incidents", response_model=IncidentListResponse)
def list_incidents(
    workspace_id: Optional[str] = Query(default=None, description="Filter by workspace"),
    limit: int = Query(default=50, ge=1, le=200),
    ledger: IncidentLedger = Depends(get_incident_ledger),
):
    """Open (unresolved) pipeline incidents, newest first."""
    incidents = ledger.list_open_incidents(workspace_id=workspace_id, limit=limit)
    return IncidentListResponse(incidents=incidents, total=len(incidents))
