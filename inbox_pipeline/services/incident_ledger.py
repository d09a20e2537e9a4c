"""
Incident Ledger

Deduplicated operational alerts. Every detector goes through
``record_incident_once``, which suppresses a new incident while an open one
for the same workspace + scope (+ run) is younger than the detector's
dedupe window.

The gate fails open toward "already open": when the lookup itself errors,
no incident is inserted. During a store outage this under-alerts rather
than flooding operators with one incident per sweep.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import Json

from ..db.models import IncidentCreate, PipelineIncident
from ..jobs import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DEDUPE_MINUTES = 10


class IncidentLedger:
    """Insert-only store for pipeline incidents, with a dedup gate."""

    def __init__(self, db_connection):
        self.db = db_connection

    def has_recent_open_incident(
        self,
        workspace_id: str,
        scope: str,
        run_id: Optional[str] = None,
        lookback_minutes: int = DEFAULT_DEDUPE_MINUTES,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Whether an unresolved incident for workspace + scope (+ run) exists
        inside the lookback window.

        Returns True if the lookup fails (fail-open toward "do not duplicate").
        """
        since = (now or utcnow()) - timedelta(minutes=lookback_minutes)

        query = """
            SELECT COUNT(*) AS open_count
            FROM pipeline_incidents
            WHERE workspace_id = %s
              AND scope = %s
              AND resolved_at IS NULL
              AND created_at >= %s
        """
        params: list = [workspace_id, scope, since]
        if run_id:
            query += " AND run_id = %s"
            params.append(run_id)

        try:
            with self.db.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        except psycopg2.Error as e:
            logger.warning(
                f"Incident dedupe lookup failed for {scope} in workspace {workspace_id}, "
                f"treating as already open: {e}"
            )
            return True

        return bool(row) and int(row["open_count"]) > 0

    def record_incident(self, incident: IncidentCreate) -> str:
        """Insert an incident unconditionally. Returns its id."""
        with self.db.cursor() as cur:
            cur.execute("""
                INSERT INTO pipeline_incidents (
                    workspace_id, run_id, severity, scope, error, context
                ) VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
            """, (
                incident.workspace_id,
                incident.run_id,
                incident.severity,
                incident.scope,
                incident.error,
                Json(incident.context),
            ))
            row = cur.fetchone()
        return str(row["id"])

    def record_incident_once(
        self,
        workspace_id: str,
        scope: str,
        error: str,
        severity: str = "warning",
        run_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        dedupe_minutes: int = DEFAULT_DEDUPE_MINUTES,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Record an incident unless a fresh open one already covers it.

        Returns True only when a new incident row was inserted. An insert
        failure is logged and reported as False; the next sweep will
        rediscover the same condition.
        """
        if self.has_recent_open_incident(
            workspace_id=workspace_id,
            scope=scope,
            run_id=run_id,
            lookback_minutes=dedupe_minutes,
            now=now,
        ):
            return False

        incident = IncidentCreate(
            workspace_id=workspace_id,
            run_id=run_id,
            severity=severity,
            scope=scope,
            error=error,
            context=context,
        )
        try:
            incident_id = self.record_incident(incident)
        except psycopg2.Error as e:
            logger.error(f"Failed to record incident {incident.scope} for workspace {workspace_id}: {e}")
            return False

        logger.info(f"Recorded {incident.severity} incident {incident_id} ({incident.scope})")
        return True

    def list_open_incidents(
        self,
        workspace_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[PipelineIncident]:
        """Unresolved incidents, newest first."""
        query = """
            SELECT id, workspace_id, run_id, severity, scope, error, context,
                   created_at, resolved_at
            FROM open_pipeline_incidents
        """
        params: list = []
        if workspace_id:
            query += " WHERE workspace_id = %s"
            params.append(workspace_id)
        query += " ORDER BY created_at DESC LIMIT %s"
        params.append(limit)

        with self.db.cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [PipelineIncident(**row) for row in rows]
