"""
Job Contracts

Typed payloads for the pipeline queues. Each job kind is its own model with
a literal ``job_type`` tag, and ``PipelineJob`` is the tagged union that
consumers validate raw queue messages against.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .db.models import Channel

INGEST_QUEUE = "ingest_jobs"
CLASSIFY_QUEUE = "classify_jobs"
DEADLETTER_QUEUE = "deadletter_jobs"


class MaterializeJob(BaseModel):
    """Turn a received message event into conversation/message rows."""

    model_config = ConfigDict(extra="ignore")

    job_type: Literal["MATERIALIZE"] = "MATERIALIZE"
    event_id: str
    workspace_id: str
    run_id: Optional[str] = None
    channel: Channel
    config_id: str
    supervisor_nudge: bool = False
    nudged_at: Optional[datetime] = None


class ClassifyJob(BaseModel):
    """Classify the target message of a conversation."""

    model_config = ConfigDict(extra="ignore")

    job_type: Literal["CLASSIFY"] = "CLASSIFY"
    workspace_id: str
    run_id: Optional[str] = None
    config_id: str
    channel: Channel
    event_id: str
    conversation_id: str
    target_message_id: str
    supervisor_nudge: bool = False


PipelineJob = Annotated[Union[MaterializeJob, ClassifyJob], Field(discriminator="job_type")]

_JOB_ADAPTER = TypeAdapter(PipelineJob)

_QUEUE_BY_JOB_TYPE = {
    "MATERIALIZE": INGEST_QUEUE,
    "CLASSIFY": CLASSIFY_QUEUE,
}


def parse_job(payload: Dict[str, Any]) -> Union[MaterializeJob, ClassifyJob]:
    """Validate a raw queue message into its job model.

    Raises:
        pydantic.ValidationError: unknown job_type or missing required fields
    """
    return _JOB_ADAPTER.validate_python(payload)


def queue_for(job: Union[MaterializeJob, ClassifyJob]) -> str:
    """Queue a job kind is delivered on."""
    return _QUEUE_BY_JOB_TYPE[job.job_type]


def job_payload(job: Union[MaterializeJob, ClassifyJob]) -> Dict[str, Any]:
    """JSON-ready message body for a job.

    ``nudged_at`` is omitted unless set, so worker-originated MATERIALIZE
    jobs carry the same shape they always had.
    """
    payload = job.model_dump(mode="json")
    if payload.get("nudged_at") is None:
        payload.pop("nudged_at", None)
    return payload


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
