"""Database module for the inbox pipeline."""

from .connection import get_connection, get_connection_string, init_db
from .models import (
    ConversationCursor,
    IncidentCreate,
    MessageEvent,
    PipelineIncident,
    PipelineRun,
)

__all__ = [
    "ConversationCursor",
    "IncidentCreate",
    "MessageEvent",
    "PipelineIncident",
    "PipelineRun",
    "get_connection",
    "get_connection_string",
    "init_db",
]
