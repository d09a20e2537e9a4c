"""
Supervisor API Schemas

Pydantic models for supervisor sweep and incident responses.
"""

from typing import List

from pydantic import BaseModel, Field

from inbox_pipeline.db.models import PipelineIncident


class SweepResponse(BaseModel):
    """Result of one supervisor sweep."""

    ok: bool = True
    stalled_runs: int = Field(description="Running runs with a stale heartbeat")
    stalled_events: int = Field(description="Events scanned as stalled")
    nudged_materialize: int = Field(description="MATERIALIZE jobs re-enqueued")
    nudged_classify: int = Field(description="CLASSIFY jobs re-enqueued")
    elapsed_ms: int


class ErrorResponse(BaseModel):
    """Error body shared by every pipeline endpoint."""

    ok: bool = False
    error: str


class SweepErrorResponse(ErrorResponse):
    """Sweep aborted by an internal error."""

    elapsed_ms: int


class IncidentListResponse(BaseModel):
    """Open incidents, newest first."""

    ok: bool = True
    incidents: List[PipelineIncident]
    total: int
