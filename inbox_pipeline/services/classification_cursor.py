"""
Classification Cursor Store

Three cursor columns on each conversation make re-enqueuing classification
idempotent:

- last_inbound_message_id: latest inbound message seen
- last_classified_message_id: latest message successfully classified
- last_classify_enqueued_message_id: latest message a classify job was sent for

A classify job is owed when the inbound cursor differs from both of the
others. Claiming one is a compare-and-set on the enqueued cursor; the
affected-row count decides who won, no lock is taken.
"""

import logging
from typing import List, Optional

from ..db.models import ConversationCursor

logger = logging.getLogger(__name__)

_CURSOR_COLUMNS = """
    id, workspace_id, channel,
    last_inbound_message_id, last_classified_message_id, last_classify_enqueued_message_id
"""


class ClassificationCursorStore:
    """Reads and compare-and-set writes on conversation classification cursors."""

    def __init__(self, db_connection):
        self.db = db_connection

    def get_cursor(self, conversation_id: str) -> Optional[ConversationCursor]:
        with self.db.cursor() as cur:
            cur.execute(
                f"SELECT {_CURSOR_COLUMNS} FROM conversations WHERE id = %s",
                (conversation_id,),
            )
            row = cur.fetchone()
        return ConversationCursor(**row) if row else None

    def find_conversations_needing_classification(self, limit: int) -> List[ConversationCursor]:
        """Conversations owed a classify job, least recently updated first.

        IS DISTINCT FROM treats NULL cursors as "different", so a conversation
        that was never classified or enqueued qualifies. Only conversations
        whose latest inbound message has an inbound originating event are
        returned; the sweep never writes the others, so leaving them in would
        pin them at the head of every bounded scan.
        """
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT c.id, c.workspace_id, c.channel,
                       c.last_inbound_message_id, c.last_classified_message_id,
                       c.last_classify_enqueued_message_id
                FROM conversations c
                WHERE c.last_inbound_message_id IS NOT NULL
                  AND c.last_inbound_message_id IS DISTINCT FROM c.last_classified_message_id
                  AND c.last_inbound_message_id IS DISTINCT FROM c.last_classify_enqueued_message_id
                  AND EXISTS (
                      SELECT 1
                      FROM message_events e
                      WHERE e.materialized_conversation_id = c.id
                        AND e.materialized_message_id = c.last_inbound_message_id
                        AND e.direction = 'inbound'
                  )
                ORDER BY c.updated_at ASC
                LIMIT %s
            """, (limit,))
            rows = cur.fetchall()
        return [ConversationCursor(**row) for row in rows]

    def claim_classify(self, conversation_id: str, target_message_id: str) -> bool:
        """
        Advance the enqueued cursor to ``target_message_id`` if it is not there yet.

        Returns True when this caller moved it (and therefore owns sending the
        classify job); False when a concurrent sweep or worker already had.
        """
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE conversations
                SET last_classify_enqueued_message_id = %s,
                    updated_at = NOW()
                WHERE id = %s
                  AND last_classify_enqueued_message_id IS DISTINCT FROM %s
            """, (target_message_id, conversation_id, target_message_id))
            return cur.rowcount == 1

    def release_classify_claim(
        self,
        conversation_id: str,
        target_message_id: str,
        previous_message_id: Optional[str],
    ) -> bool:
        """
        Undo a claim whose classify job could not be sent.

        Only reverts if the enqueued cursor still points at our target, so a
        newer claim is never clobbered.
        """
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE conversations
                SET last_classify_enqueued_message_id = %s,
                    updated_at = NOW()
                WHERE id = %s
                  AND last_classify_enqueued_message_id = %s
            """, (previous_message_id, conversation_id, target_message_id))
            released = cur.rowcount == 1

        if not released:
            logger.warning(
                f"Classify claim for conversation {conversation_id} moved on before release"
            )
        return released

    def mark_classified(self, conversation_id: str, message_id: str) -> bool:
        """Advance the classified cursor after a successful classification."""
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE conversations
                SET last_classified_message_id = %s,
                    updated_at = NOW()
                WHERE id = %s
                  AND last_classified_message_id IS DISTINCT FROM %s
            """, (message_id, conversation_id, message_id))
            return cur.rowcount == 1
