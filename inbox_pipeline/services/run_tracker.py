"""
Pipeline Run Tracker

Groups message events under one bounded execution and exposes its
heartbeat. Workers own a run's state; the supervisor only reads runs and
touches their heartbeat/metrics.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from psycopg2.extras import Json

from ..db.models import PipelineRun

logger = logging.getLogger(__name__)

STALLED_RUN_SCAN_LIMIT = 100

_RUN_COLUMNS = """
    id, workspace_id, config_id, channel, mode, state,
    params, metrics, last_heartbeat_at, started_at, completed_at, last_error
"""


def is_stalled(run: PipelineRun, now: datetime, stalled_run_minutes: int) -> bool:
    """A run is stalled when it is running and its heartbeat is older than the threshold."""
    if run.state != "running":
        return False
    return run.last_heartbeat_at < now - timedelta(minutes=stalled_run_minutes)


class RunTracker:
    """
    Manages pipeline run rows.

    Responsibilities:
    - Start runs and keep their heartbeat fresh
    - Merge metrics patches without overwriting worker-owned keys
    - Find running runs whose heartbeat has gone stale
    """

    def __init__(self, db_connection):
        self.db = db_connection

    def start_run(
        self,
        workspace_id: str,
        channel: str,
        mode: str,
        config_id: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> PipelineRun:
        """Create a run in 'running' state with a fresh heartbeat."""
        with self.db.cursor() as cur:
            cur.execute(f"""
                INSERT INTO pipeline_runs (workspace_id, config_id, channel, mode, params)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_RUN_COLUMNS}
            """, (workspace_id, config_id, channel, mode, Json(params or {})))
            row = cur.fetchone()

        run = PipelineRun(**row)
        logger.info(f"Started {run.mode} run {run.id} for workspace {workspace_id} on {channel}")
        return run

    def touch_run(
        self,
        run_id: Optional[str],
        metrics_patch: Optional[Dict[str, Any]] = None,
        state: Optional[str] = None,
        last_error: Optional[str] = None,
        mark_completed: bool = False,
    ) -> None:
        """
        Bump the run's heartbeat and merge ``metrics_patch`` into its metrics.

        ``state``, ``last_error`` and ``completed_at`` only change when asked;
        the supervisor never passes them. A missing run id is a no-op.
        """
        if not run_id:
            return

        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE pipeline_runs
                SET last_heartbeat_at = NOW(),
                    metrics = COALESCE(metrics, '{}'::jsonb) || %s::jsonb,
                    state = COALESCE(%s, state),
                    last_error = COALESCE(%s, last_error),
                    completed_at = CASE
                        WHEN %s THEN COALESCE(completed_at, NOW())
                        ELSE completed_at
                    END,
                    updated_at = NOW()
                WHERE id = %s
            """, (Json(metrics_patch or {}), state, last_error, mark_completed, run_id))

    def complete_run(self, run_id: str, metrics_patch: Optional[Dict[str, Any]] = None) -> None:
        self.touch_run(run_id, metrics_patch, state="completed", mark_completed=True)

    def fail_run(
        self,
        run_id: str,
        error: str,
        metrics_patch: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.touch_run(run_id, metrics_patch, state="failed", last_error=error, mark_completed=True)

    def get_run(self, run_id: str) -> Optional[PipelineRun]:
        with self.db.cursor() as cur:
            cur.execute(f"SELECT {_RUN_COLUMNS} FROM pipeline_runs WHERE id = %s", (run_id,))
            row = cur.fetchone()
        return PipelineRun(**row) if row else None

    def find_stalled_runs(
        self,
        cutoff: datetime,
        limit: int = STALLED_RUN_SCAN_LIMIT,
    ) -> List[PipelineRun]:
        """Running runs with a heartbeat older than ``cutoff``, oldest first."""
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT {_RUN_COLUMNS}
                FROM pipeline_runs
                WHERE state = 'running'
                  AND last_heartbeat_at < %s
                ORDER BY last_heartbeat_at ASC
                LIMIT %s
            """, (cutoff, limit))
            rows = cur.fetchall()
        return [PipelineRun(**row) for row in rows]
