"""Pydantic models for pipeline store entities."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Channel = Literal["email", "whatsapp", "sms", "facebook", "voice"]

RunMode = Literal["onboarding", "backfill", "live"]

# Only 'running' runs are eligible for stall detection
RunState = Literal["running", "paused", "failed", "completed"]

Direction = Literal["inbound", "outbound"]

# Forward-only lifecycle of a message event. decided/drafted are the
# downstream decision and draft stages, so 'classified' is not terminal.
EventStatus = Literal["received", "materialized", "classified", "decided", "drafted"]

EVENT_STATUS_ORDER: tuple = ("received", "materialized", "classified", "decided", "drafted")

# Statuses where an event is still expected to make progress
STALLABLE_EVENT_STATUSES: tuple = ("received", "materialized", "classified")

Severity = Literal["info", "warning", "error", "critical"]

SEVERITIES = frozenset({"info", "warning", "error", "critical"})


class PipelineRun(BaseModel):
    """One bounded execution, e.g. importing a workspace's inbox."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    config_id: Optional[str] = None
    channel: Channel
    mode: RunMode
    state: RunState = "running"
    params: Dict[str, Any] = Field(default_factory=dict)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    last_heartbeat_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @field_validator("params", "metrics", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v if v is not None else {}


class MessageEvent(BaseModel):
    """One channel message moving through ingestion. Never deleted."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    run_id: Optional[str] = None
    channel: Channel
    config_id: str
    status: EventStatus = "received"
    direction: Direction = "inbound"
    materialized_conversation_id: Optional[str] = None
    materialized_message_id: Optional[str] = None
    updated_at: datetime
    last_error: Optional[str] = None


class ConversationCursor(BaseModel):
    """Classification cursor fields living on a conversation row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    channel: Optional[Channel] = None
    last_inbound_message_id: Optional[str] = None
    last_classified_message_id: Optional[str] = None
    last_classify_enqueued_message_id: Optional[str] = None

    @property
    def is_caught_up(self) -> bool:
        return (
            self.last_inbound_message_id is not None
            and self.last_inbound_message_id == self.last_classified_message_id
        )

    @property
    def needs_classification(self) -> bool:
        """A classify job is owed: inbound differs from both classified and enqueued."""
        target = self.last_inbound_message_id
        if target is None:
            return False
        return (
            target != self.last_classified_message_id
            and target != self.last_classify_enqueued_message_id
        )


class IncidentCreate(BaseModel):
    """Incident to be inserted into the ledger.

    Values are normalized the way the store's insert routine does it, so a
    detector can never fail to alert because of a malformed field.
    """

    workspace_id: str
    run_id: Optional[str] = None
    severity: Severity = "error"
    scope: str = "pipeline"
    error: str = "Unknown pipeline incident"
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, v):
        if isinstance(v, str) and v in SEVERITIES:
            return v
        return "error"

    @field_validator("scope", mode="before")
    @classmethod
    def _default_scope(cls, v):
        if v is None or not str(v).strip():
            return "pipeline"
        return str(v).strip()

    @field_validator("error", mode="before")
    @classmethod
    def _default_error(cls, v):
        if v is None or not str(v).strip():
            return "Unknown pipeline incident"
        return str(v).strip()

    @field_validator("context", mode="before")
    @classmethod
    def _default_context(cls, v):
        return v if v is not None else {}


class PipelineIncident(BaseModel):
    """An operational alert. Open while resolved_at is null."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    run_id: Optional[str] = None
    severity: Severity
    scope: str
    error: str
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @field_validator("context", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v if v is not None else {}
