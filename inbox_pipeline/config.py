"""
Supervisor configuration.

All values come from the environment. They tune how aggressively the
supervisor detects and remediates stalls; none of them affect correctness.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_STALLED_RUN_MINUTES = 6
DEFAULT_STALLED_EVENT_MINUTES = 10
DEFAULT_NUDGE_LIMIT = 25

DEFAULT_LOG_FILE = "/tmp/inbox-pipeline.log"


def _parse_env_int(name: str, default: int, min_val: int, max_val: int) -> int:
    """Parse an integer environment variable with bounds checking.

    Args:
        name: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)

    Returns:
        Parsed integer within bounds, or default if invalid
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        val = int(raw.strip())
    except ValueError:
        logger.warning(f"{name} invalid, using {default}")
        return default
    if not (min_val <= val <= max_val):
        logger.warning(f"{name}={val} out of bounds [{min_val}, {max_val}], using {default}")
        return default
    return val


def get_worker_token() -> Optional[str]:
    """Worker/service credential expected on supervisor invocations."""
    token = os.getenv("PIPELINE_WORKER_TOKEN", "").strip()
    return token or None


def get_log_file() -> str:
    return os.getenv("PIPELINE_LOG_FILE", DEFAULT_LOG_FILE)


@dataclass(frozen=True)
class SupervisorSettings:
    """Thresholds and per-sweep limits for the supervisor."""

    stalled_run_minutes: int = DEFAULT_STALLED_RUN_MINUTES
    stalled_event_minutes: int = DEFAULT_STALLED_EVENT_MINUTES
    nudge_limit: int = DEFAULT_NUDGE_LIMIT

    @classmethod
    def from_env(cls) -> "SupervisorSettings":
        return cls(
            stalled_run_minutes=_parse_env_int(
                "PIPELINE_STALLED_RUN_MINUTES", DEFAULT_STALLED_RUN_MINUTES, 1, 1440
            ),
            stalled_event_minutes=_parse_env_int(
                "PIPELINE_STALLED_EVENT_MINUTES", DEFAULT_STALLED_EVENT_MINUTES, 1, 1440
            ),
            nudge_limit=_parse_env_int(
                "PIPELINE_SUPERVISOR_NUDGE_LIMIT", DEFAULT_NUDGE_LIMIT, 1, 500
            ),
        )

    @property
    def event_scan_limit(self) -> int:
        """Rows scanned for stalled events per sweep (3x nudge limit, capped at 200)."""
        return max(1, min(200, self.nudge_limit * 3))

    @property
    def conversation_scan_limit(self) -> int:
        """Conversations scanned for classification lag per sweep (capped at 150)."""
        return max(1, min(150, self.nudge_limit * 3))
