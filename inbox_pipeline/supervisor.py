"""
Pipeline Supervisor

Stateless sweep invoked on an external schedule. It reads runs, message
events and classification cursors, decides what has stalled, and emits
corrective queue messages and deduplicated incidents.

Phases run in order:
1. Stalled runs: alert and touch the run's metrics.
2. Stalled events: alert, and re-enqueue MATERIALIZE for events stuck in
   'received' (bounded by the nudge limit).
3. Classification lag: claim the conversation's enqueued cursor and send
   CLASSIFY (bounded by the nudge limit).

A failing detection query aborts the sweep. A failing per-row action is
logged and the loop moves on, since rows are independent. Nothing is rolled
back or retried inside a sweep; the next invocation rediscovers whatever is
still stalled, and every write is either deduplicated or guarded.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from .config import SupervisorSettings
from .db.models import ConversationCursor, MessageEvent, PipelineRun
from .jobs import ClassifyJob, MaterializeJob, utcnow
from .services.classification_cursor import ClassificationCursorStore
from .services.incident_ledger import IncidentLedger
from .services.job_queue import JobQueue
from .services.message_events import MessageEventStore
from .services.run_tracker import STALLED_RUN_SCAN_LIMIT, RunTracker

logger = logging.getLogger(__name__)

STALLED_RUN_SCOPE = "pipeline-supervisor:stalled-run"
STALLED_EVENT_SCOPE = "pipeline-supervisor:stalled-event"
NUDGE_CLASSIFY_SCOPE = "pipeline-supervisor:nudge-classify"

STALLED_RUN_DEDUPE_MINUTES = 10
STALLED_EVENT_DEDUPE_MINUTES = 15
NUDGE_CLASSIFY_DEDUPE_MINUTES = 30

MATERIALIZE_NUDGE_NOTE = "Supervisor nudge: materialize re-enqueued"


@dataclass
class SweepSummary:
    """Counts from one sweep."""

    stalled_runs: int = 0
    stalled_events: int = 0
    nudged_materialize: int = 0
    nudged_classify: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class PipelineSupervisor:
    """
    Detects stalled pipeline work and safely resumes it.

    All collaborators share one store connection. Run it on an autocommit
    connection so each corrective write is committed as it happens.
    """

    def __init__(
        self,
        db_connection,
        settings: Optional[SupervisorSettings] = None,
        runs: Optional[RunTracker] = None,
        events: Optional[MessageEventStore] = None,
        cursors: Optional[ClassificationCursorStore] = None,
        ledger: Optional[IncidentLedger] = None,
        queue: Optional[JobQueue] = None,
    ):
        self.db = db_connection
        self.settings = settings or SupervisorSettings.from_env()
        self.runs = runs or RunTracker(db_connection)
        self.events = events or MessageEventStore(db_connection)
        self.cursors = cursors or ClassificationCursorStore(db_connection)
        self.ledger = ledger or IncidentLedger(db_connection)
        self.queue = queue or JobQueue(db_connection)

    def run_sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        """Run all detection phases once and return the summary."""
        now = now or utcnow()
        summary = SweepSummary()

        summary.stalled_runs = self.check_stalled_runs(now)
        summary.stalled_events, summary.nudged_materialize = self.check_stalled_events(now)
        summary.nudged_classify = self.nudge_classification(now)

        logger.info(
            f"Supervisor sweep: {summary.stalled_runs} stalled runs, "
            f"{summary.stalled_events} stalled events, "
            f"{summary.nudged_materialize} materialize nudges, "
            f"{summary.nudged_classify} classify nudges"
        )
        return summary

    # -------------------------------------------------------------------------
    # Phase 1: stalled runs
    # -------------------------------------------------------------------------

    def check_stalled_runs(self, now: datetime) -> int:
        cutoff = now - timedelta(minutes=self.settings.stalled_run_minutes)
        stalled_runs = self.runs.find_stalled_runs(cutoff, limit=STALLED_RUN_SCAN_LIMIT)

        for run in stalled_runs:
            try:
                self._handle_stalled_run(run, now)
            except Exception:
                logger.exception(f"Supervisor failed handling stalled run {run.id}")

        return len(stalled_runs)

    def _handle_stalled_run(self, run: PipelineRun, now: datetime) -> None:
        self.ledger.record_incident_once(
            workspace_id=run.workspace_id,
            run_id=run.id,
            severity="warning",
            scope=STALLED_RUN_SCOPE,
            error=f"Run heartbeat stale since {run.last_heartbeat_at.isoformat()}",
            context={
                "run_id": run.id,
                "channel": run.channel,
                "mode": run.mode,
                "last_heartbeat_at": run.last_heartbeat_at.isoformat(),
                "threshold_minutes": self.settings.stalled_run_minutes,
            },
            dedupe_minutes=STALLED_RUN_DEDUPE_MINUTES,
            now=now,
        )
        self.runs.touch_run(
            run.id,
            metrics_patch={"supervisor_last_checked_at": now.isoformat()},
        )

    # -------------------------------------------------------------------------
    # Phase 2: stalled events
    # -------------------------------------------------------------------------

    def check_stalled_events(self, now: datetime) -> tuple:
        """Returns (stalled event count, materialize nudges sent)."""
        cutoff = now - timedelta(minutes=self.settings.stalled_event_minutes)
        stalled_events = self.events.find_stalled_events(
            cutoff, limit=self.settings.event_scan_limit
        )

        nudged_materialize = 0
        for event in stalled_events:
            try:
                self._record_stalled_event(event, now)
            except Exception:
                logger.exception(f"Supervisor failed recording stalled event {event.id}")

            if event.status != "received" or nudged_materialize >= self.settings.nudge_limit:
                continue

            try:
                if self._nudge_materialize(event, now):
                    nudged_materialize += 1
            except Exception:
                logger.exception(f"Supervisor failed nudging materialize for event {event.id}")

        return len(stalled_events), nudged_materialize

    def _record_stalled_event(self, event: MessageEvent, now: datetime) -> None:
        self.ledger.record_incident_once(
            workspace_id=event.workspace_id,
            run_id=event.run_id,
            severity="warning",
            scope=STALLED_EVENT_SCOPE,
            error=f"Event {event.id} is stalled in status {event.status}",
            context={
                "event_id": event.id,
                "status": event.status,
                "updated_at": event.updated_at.isoformat(),
                "threshold_minutes": self.settings.stalled_event_minutes,
            },
            dedupe_minutes=STALLED_EVENT_DEDUPE_MINUTES,
            now=now,
        )

    def _nudge_materialize(self, event: MessageEvent, now: datetime) -> bool:
        """Claim the event, then re-enqueue MATERIALIZE. False if the claim was lost."""
        if not self.events.claim_materialize_nudge(
            event.id, event.updated_at, MATERIALIZE_NUDGE_NOTE
        ):
            logger.info(f"Event {event.id} moved on or was nudged concurrently, skipping")
            return False

        job = MaterializeJob(
            event_id=event.id,
            workspace_id=event.workspace_id,
            run_id=event.run_id,
            channel=event.channel,
            config_id=event.config_id,
            supervisor_nudge=True,
            nudged_at=now,
        )
        try:
            self.queue.send(job, delay_seconds=0)
        except Exception as e:
            self.events.record_error(
                event.id,
                f"Supervisor nudge failed to enqueue materialize: {e}",
                expected_status="received",
            )
            raise
        return True

    # -------------------------------------------------------------------------
    # Phase 3: classification lag
    # -------------------------------------------------------------------------

    def nudge_classification(self, now: datetime) -> int:
        conversations = self.cursors.find_conversations_needing_classification(
            limit=self.settings.conversation_scan_limit
        )

        nudged_classify = 0
        for conversation in conversations:
            if nudged_classify >= self.settings.nudge_limit:
                break
            try:
                if self._nudge_classify(conversation, now):
                    nudged_classify += 1
            except Exception:
                logger.exception(
                    f"Supervisor failed nudging classify for conversation {conversation.id}"
                )

        return nudged_classify

    def _nudge_classify(self, conversation: ConversationCursor, now: datetime) -> bool:
        # Caught up, or already queued and a worker just hasn't finished yet
        if not conversation.needs_classification:
            return False

        target_message_id = conversation.last_inbound_message_id
        event = self.events.find_originating_event(conversation.id, target_message_id)
        if event is None or event.direction != "inbound":
            return False

        if not self.cursors.claim_classify(conversation.id, target_message_id):
            logger.info(f"Classify for conversation {conversation.id} already claimed, skipping")
            return False

        job = ClassifyJob(
            workspace_id=event.workspace_id,
            run_id=event.run_id,
            config_id=event.config_id,
            channel=event.channel,
            event_id=event.id,
            conversation_id=conversation.id,
            target_message_id=target_message_id,
            supervisor_nudge=True,
        )
        try:
            self.queue.send(job, delay_seconds=0)
        except Exception:
            self.cursors.release_classify_claim(
                conversation.id,
                target_message_id,
                conversation.last_classify_enqueued_message_id,
            )
            raise

        self.ledger.record_incident_once(
            workspace_id=event.workspace_id,
            run_id=event.run_id,
            severity="info",
            scope=NUDGE_CLASSIFY_SCOPE,
            error=f"Supervisor re-enqueued classify for conversation {conversation.id}",
            context={
                "conversation_id": conversation.id,
                "event_id": event.id,
                "target_message_id": target_message_id,
            },
            dedupe_minutes=NUDGE_CLASSIFY_DEDUPE_MINUTES,
            now=now,
        )
        return True
