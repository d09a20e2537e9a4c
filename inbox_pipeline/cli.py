#!/usr/bin/env python
"""
Inbox Pipeline CLI - set up the store, run the supervisor, view incidents.

Usage:
    inbox-pipeline init-db                 # Create tables, views and queues
    inbox-pipeline sweep                   # Run one supervisor sweep (cron-friendly)
    inbox-pipeline incidents               # List open incidents
"""

import argparse
import json
import logging
import sys
import time

from dotenv import load_dotenv
from psycopg2.extras import RealDictCursor

from inbox_pipeline.config import SupervisorSettings
from inbox_pipeline.db.connection import get_connection, init_db
from inbox_pipeline.logging_utils import configure_safe_logging
from inbox_pipeline.services.incident_ledger import IncidentLedger
from inbox_pipeline.supervisor import PipelineSupervisor

logger = logging.getLogger(__name__)


def cmd_init_db(args):
    """Create the schema."""
    init_db()
    print("Database schema initialized.")
    return 0


def cmd_sweep(args):
    """Run one sweep and print the summary as JSON."""
    start = time.monotonic()
    try:
        with get_connection(autocommit=True, cursor_factory=RealDictCursor) as conn:
            supervisor = PipelineSupervisor(conn, settings=SupervisorSettings.from_env())
            summary = supervisor.run_sweep()
    except Exception as e:
        logger.exception("Supervisor sweep failed")
        print(json.dumps({
            "ok": False,
            "error": str(e) or "Unexpected error",
            "elapsed_ms": int((time.monotonic() - start) * 1000),
        }))
        return 1

    print(json.dumps({
        "ok": True,
        **summary.to_dict(),
        "elapsed_ms": int((time.monotonic() - start) * 1000),
    }))
    return 0


def cmd_incidents(args):
    """List open incidents."""
    with get_connection(cursor_factory=RealDictCursor) as conn:
        incidents = IncidentLedger(conn).list_open_incidents(
            workspace_id=args.workspace, limit=args.limit
        )

    if not incidents:
        print("No open incidents.")
        return 0

    print(f"\n{'Created':<20} {'Severity':<9} {'Scope':<36} {'Workspace':<36} Error")
    print("-" * 130)
    for incident in incidents:
        created = incident.created_at.strftime("%Y-%m-%d %H:%M:%S")
        print(
            f"{created:<20} {incident.severity:<9} {incident.scope:<36} "
            f"{incident.workspace_id:<36} {incident.error}"
        )
    print()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inbox Pipeline CLI - supervisor and incidents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  inbox-pipeline init-db                       # Create schema and pgmq queues
  inbox-pipeline sweep                         # One supervisor sweep
  inbox-pipeline incidents -w WORKSPACE -l 20  # Open incidents for a workspace
        """
    )
    subparsers = parser.add_subparsers(dest="command", help="Command")

    # init-db
    p_init = subparsers.add_parser("init-db", help="Initialize database schema")
    p_init.set_defaults(func=cmd_init_db)

    # sweep
    p_sweep = subparsers.add_parser("sweep", help="Run one supervisor sweep")
    p_sweep.set_defaults(func=cmd_sweep)

    # incidents
    p_incidents = subparsers.add_parser("incidents", help="List open incidents")
    p_incidents.add_argument("-w", "--workspace", default=None, help="Filter by workspace id")
    p_incidents.add_argument("-l", "--limit", type=int, default=50, help="Limit results")
    p_incidents.set_defaults(func=cmd_incidents)

    return parser


def main(argv=None) -> int:
    load_dotenv()
    configure_safe_logging()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
