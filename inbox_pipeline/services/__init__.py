"""
Pipeline Services

Store-backed services for the ingestion pipeline. Each service wraps a
psycopg2 connection and expects dict-style rows (RealDictCursor).
"""

from .classification_cursor import ClassificationCursorStore
from .incident_ledger import IncidentLedger
from .job_queue import JobQueue, QueueRecord
from .message_events import MessageEventStore
from .run_tracker import RunTracker

__all__ = [
    "ClassificationCursorStore",
    "IncidentLedger",
    "JobQueue",
    "MessageEventStore",
    "QueueRecord",
    "RunTracker",
]
