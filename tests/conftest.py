"""
Pytest configuration for inbox pipeline tests.

Test Tier System:
- fast (default): Pure unit tests, all I/O mocked
- medium: API TestClient and threaded concurrency tests
- slow: Live database tests

Run tiers:
- pytest                          # Fast + medium (default)
- pytest -m fast                  # Fast only
- pytest -m medium                # Medium only
- pytest --override-ini="addopts=" -v   # Full suite (all tiers)

Note: Unmarked tests are auto-assigned to 'fast' tier. To add a new test:
- No marker needed for fast (unit) tests
- Add @pytest.mark.medium for API TestClient tests
- Add @pytest.mark.slow for tests that need a live database
- Tests marked @pytest.mark.integration (without tier) default to 'medium'

Credential Safety:
- Every tier force-sets a fake PIPELINE_WORKER_TOKEN and a local log file so
  a developer's real .env never leaks into assertions.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

TEST_WORKER_TOKEN = "test-worker-token"


# =============================================================================
# Tier Auto-Assignment
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """
    Automatically assign tier markers to unmarked tests.

    Tests are fast by default unless explicitly marked as medium or slow.
    Tests marked with @pytest.mark.integration (but no tier) are assigned
    to 'medium'.
    """
    for item in items:
        has_tier = (
            list(item.iter_markers(name='fast')) or
            list(item.iter_markers(name='medium')) or
            list(item.iter_markers(name='slow'))
        )
        if has_tier:
            continue

        # Skip if test is marked as skip (don't assign tier to skipped tests)
        if list(item.iter_markers(name='skip')):
            continue

        if list(item.iter_markers(name='integration')):
            item.add_marker(pytest.mark.medium)
            continue

        item.add_marker(pytest.mark.fast)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Pin credentials and log destination before any app module is imported."""
    os.environ["PIPELINE_WORKER_TOKEN"] = TEST_WORKER_TOKEN
    os.environ.setdefault(
        "PIPELINE_LOG_FILE",
        str(Path(os.getenv("TMPDIR", "/tmp")) / "inbox-pipeline-test.log"),
    )


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return project root path (session-scoped for efficiency)."""
    return PROJECT_ROOT


@pytest.fixture
def mock_db():
    """Create a mock database connection. Returns (connection, cursor)."""
    db = Mock()
    cursor = MagicMock()
    db.cursor.return_value.__enter__ = Mock(return_value=cursor)
    db.cursor.return_value.__exit__ = Mock(return_value=False)
    return db, cursor


@pytest.fixture
def now():
    """Fixed, timezone-aware sweep clock."""
    return datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def worker_token():
    return TEST_WORKER_TOKEN
