"""
Message Event Store

A message event tracks one inbound/outbound channel message through
ingestion: received -> materialized -> classified -> decided -> drafted.
Status only moves forward, and every write that could race a worker is
guarded on the value it expects to replace. Events are never deleted.
"""

import logging
from datetime import datetime
from typing import List, Optional

from ..db.models import EVENT_STATUS_ORDER, STALLABLE_EVENT_STATUSES, MessageEvent
from ..errors import InvalidTransitionError

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = """
    id, workspace_id, run_id, channel, config_id, status, direction,
    materialized_conversation_id, materialized_message_id, updated_at, last_error
"""


def can_advance(current: str, target: str) -> bool:
    """True only for a strictly forward status move."""
    if current not in EVENT_STATUS_ORDER or target not in EVENT_STATUS_ORDER:
        return False
    return EVENT_STATUS_ORDER.index(target) > EVENT_STATUS_ORDER.index(current)


class MessageEventStore:
    """Reads and guarded writes on message_events."""

    def __init__(self, db_connection):
        self.db = db_connection

    def get_event(self, event_id: str) -> Optional[MessageEvent]:
        with self.db.cursor() as cur:
            cur.execute(f"SELECT {_EVENT_COLUMNS} FROM message_events WHERE id = %s", (event_id,))
            row = cur.fetchone()
        return MessageEvent(**row) if row else None

    def find_stalled_events(self, cutoff: datetime, limit: int) -> List[MessageEvent]:
        """Events still expected to progress whose last update is older than ``cutoff``.

        Oldest first, at most ``limit`` rows.
        """
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT {_EVENT_COLUMNS}
                FROM message_events
                WHERE status = ANY(%s)
                  AND updated_at < %s
                ORDER BY updated_at ASC
                LIMIT %s
            """, (list(STALLABLE_EVENT_STATUSES), cutoff, limit))
            rows = cur.fetchall()
        return [MessageEvent(**row) for row in rows]

    def find_originating_event(
        self,
        conversation_id: str,
        message_id: str,
    ) -> Optional[MessageEvent]:
        """Most recently updated event materialized into this conversation + message."""
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT {_EVENT_COLUMNS}
                FROM message_events
                WHERE materialized_conversation_id = %s
                  AND materialized_message_id = %s
                ORDER BY updated_at DESC
                LIMIT 1
            """, (conversation_id, message_id))
            row = cur.fetchone()
        return MessageEvent(**row) if row else None

    def claim_materialize_nudge(
        self,
        event_id: str,
        observed_updated_at: datetime,
        note: str,
    ) -> bool:
        """
        Claim an event stuck in 'received' for a materialize re-enqueue.

        Succeeds only if the event is still 'received' and has not been
        touched since it was observed, so neither a worker that just
        advanced it nor an overlapping sweep that already nudged it is
        raced. Returns True when this caller won the claim.
        """
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE message_events
                SET updated_at = NOW(),
                    last_error = %s
                WHERE id = %s
                  AND status = 'received'
                  AND updated_at = %s
            """, (note, event_id, observed_updated_at))
            return cur.rowcount == 1

    def advance_status(
        self,
        event_id: str,
        from_status: str,
        to_status: str,
        conversation_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> bool:
        """
        Move an event forward, guarded on its current status.

        Used by the stage workers. Returns False when the event is no longer
        in ``from_status`` (another worker got there first).

        Raises:
            InvalidTransitionError: the move is not strictly forward
        """
        if not can_advance(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE message_events
                SET status = %s,
                    materialized_conversation_id = COALESCE(%s, materialized_conversation_id),
                    materialized_message_id = COALESCE(%s, materialized_message_id),
                    last_error = NULL,
                    updated_at = NOW()
                WHERE id = %s
                  AND status = %s
            """, (to_status, conversation_id, message_id, event_id, from_status))
            advanced = cur.rowcount == 1

        if not advanced:
            logger.info(f"Event {event_id} no longer '{from_status}', skipped move to '{to_status}'")
        return advanced

    def record_error(
        self,
        event_id: str,
        error: str,
        expected_status: Optional[str] = None,
    ) -> bool:
        """Set last_error without moving status; optionally guarded on status.

        updated_at is left alone so a failing event still ages into the
        supervisor's stalled-event scan.
        """
        with self.db.cursor() as cur:
            if expected_status is None:
                cur.execute("""
                    UPDATE message_events
                    SET last_error = %s
                    WHERE id = %s
                """, (error, event_id))
            else:
                cur.execute("""
                    UPDATE message_events
                    SET last_error = %s
                    WHERE id = %s AND status = %s
                """, (error, event_id, expected_status))
            return cur.rowcount == 1
