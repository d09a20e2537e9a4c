"""
Job Queue Service

Thin adapter over pgmq queues in the pipeline database. Delivery is
at-least-once: a read message becomes visible again after its visibility
timeout unless it is deleted or archived.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json
from pydantic import BaseModel

from ..db.models import IncidentCreate
from ..jobs import DEADLETTER_QUEUE, ClassifyJob, MaterializeJob, job_payload, queue_for, utcnow
from .incident_ledger import IncidentLedger

logger = logging.getLogger(__name__)


class QueueRecord(BaseModel):
    """A message read from a queue."""

    msg_id: int
    read_ct: int
    enqueued_at: datetime
    vt: datetime
    message: Dict[str, Any]


class JobQueue:
    """
    Sends and receives pipeline jobs.

    Responsibilities:
    - Route each job kind to its queue
    - Apply visibility delays (never negative)
    - Read/delete/archive for consumers
    - Dead-letter exhausted messages and audit job outcomes
    """

    def __init__(self, db_connection):
        self.db = db_connection

    def send(
        self,
        job: Union[MaterializeJob, ClassifyJob],
        delay_seconds: int = 0,
    ) -> int:
        """Enqueue a job. Returns the queue message id."""
        queue_name = queue_for(job)
        with self.db.cursor() as cur:
            cur.execute(
                "SELECT pgmq.send(%s, %s::jsonb, %s) AS msg_id",
                (queue_name, Json(job_payload(job)), max(0, int(delay_seconds))),
            )
            row = cur.fetchone()
        msg_id = int(row["msg_id"])
        logger.debug(f"Sent {job.job_type} to {queue_name} as msg {msg_id}")
        return msg_id

    def send_batch(
        self,
        jobs: List[Union[MaterializeJob, ClassifyJob]],
        delay_seconds: int = 0,
    ) -> List[int]:
        """Enqueue several jobs of the same kind in one call."""
        if not jobs:
            return []

        queue_names = {queue_for(job) for job in jobs}
        if len(queue_names) > 1:
            raise ValueError(f"send_batch requires one queue, got {sorted(queue_names)}")

        with self.db.cursor() as cur:
            cur.execute(
                "SELECT * FROM pgmq.send_batch(%s, %s::jsonb[], %s) AS msg_id",
                (
                    queue_names.pop(),
                    [Json(job_payload(job)) for job in jobs],
                    max(0, int(delay_seconds)),
                ),
            )
            rows = cur.fetchall()
        return [int(row["msg_id"]) for row in rows]

    def read(
        self,
        queue_name: str,
        visibility_timeout_seconds: int,
        limit: int,
    ) -> List[QueueRecord]:
        """Read up to ``limit`` visible messages, hiding them for the timeout."""
        with self.db.cursor() as cur:
            cur.execute(
                """
                SELECT msg_id, read_ct, enqueued_at, vt, message
                FROM pgmq.read(%s, %s, %s)
                """,
                (queue_name, max(1, int(visibility_timeout_seconds)), max(1, int(limit))),
            )
            rows = cur.fetchall()
        return [QueueRecord(**row) for row in rows]

    def delete(self, queue_name: str, msg_id: int) -> bool:
        """Acknowledge a processed message."""
        with self.db.cursor() as cur:
            cur.execute("SELECT pgmq.delete(%s, %s::bigint) AS deleted", (queue_name, msg_id))
            row = cur.fetchone()
        return bool(row and row["deleted"])

    def archive(self, queue_name: str, msg_id: int) -> bool:
        """Move a message to the queue's archive table."""
        with self.db.cursor() as cur:
            cur.execute("SELECT pgmq.archive(%s, %s::bigint) AS archived", (queue_name, msg_id))
            row = cur.fetchone()
        return bool(row and row["archived"])

    def deadletter(
        self,
        from_queue: str,
        msg_id: int,
        attempts: int,
        payload: Dict[str, Any],
        error: str,
        scope: str,
        workspace_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> int:
        """
        Give up on a message that keeps failing.

        The payload is copied to the dead-letter queue with provenance fields,
        the source message is archived, an error incident is recorded when the
        workspace is known, and the outcome is written to the job audit.
        Returns the dead-letter message id.
        """
        body = {
            **payload,
            "deadlettered_from": from_queue,
            "deadlettered_msg_id": msg_id,
            "deadlettered_attempts": attempts,
            "deadlettered_error": error,
            "deadlettered_at": utcnow().isoformat(),
        }
        with self.db.cursor() as cur:
            cur.execute(
                "SELECT pgmq.send(%s, %s::jsonb, %s) AS msg_id",
                (DEADLETTER_QUEUE, Json(body), 0),
            )
            row = cur.fetchone()
        deadletter_id = int(row["msg_id"])

        self.archive(from_queue, msg_id)
        logger.warning(
            f"Dead-lettered msg {msg_id} from {from_queue} after {attempts} attempts: {error}"
        )

        if workspace_id:
            IncidentLedger(self.db).record_incident(IncidentCreate(
                workspace_id=workspace_id,
                run_id=run_id,
                severity="error",
                scope=scope,
                error=error,
                context={
                    "from_queue": from_queue,
                    "msg_id": msg_id,
                    "attempts": attempts,
                    "job": payload,
                },
            ))

        self.audit_job(
            queue_name=from_queue,
            payload=payload,
            outcome="deadlettered",
            error=error,
            attempts=attempts,
            workspace_id=workspace_id,
            run_id=run_id,
        )
        return deadletter_id

    def audit_job(
        self,
        queue_name: str,
        payload: Dict[str, Any],
        outcome: str,
        error: Optional[str] = None,
        attempts: int = 0,
        workspace_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> bool:
        """Append a job outcome to pipeline_job_audit. Failures are logged, not raised."""
        try:
            with self.db.cursor() as cur:
                cur.execute("""
                    INSERT INTO pipeline_job_audit (
                        workspace_id, run_id, queue_name, job_payload, outcome, error, attempts
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """, (
                    workspace_id,
                    run_id,
                    queue_name,
                    Json(payload),
                    outcome,
                    error,
                    attempts,
                ))
        except psycopg2.Error as e:
            logger.error(f"Job audit insert failed for {queue_name} ({outcome}): {e}")
            return False
        return True

    def visible_count(self, queue_name: str) -> int:
        """Messages currently visible (enqueued and past their delay)."""
        query = sql.SQL("SELECT COUNT(*) AS visible FROM pgmq.{} WHERE vt <= NOW()").format(
            sql.Identifier(f"q_{queue_name}")
        )
        with self.db.cursor() as cur:
            cur.execute(query)
            row: Optional[dict] = cur.fetchone()
        return int(row["visible"]) if row else 0
