"""
Supervisor Configuration Tests

Bounded env parsing and derived scan limits.
Run with: pytest tests/test_config.py -v
"""

import logging

import pytest

from inbox_pipeline.config import (
    DEFAULT_NUDGE_LIMIT,
    DEFAULT_STALLED_EVENT_MINUTES,
    DEFAULT_STALLED_RUN_MINUTES,
    SupervisorSettings,
    _parse_env_int,
    get_log_file,
    get_worker_token,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "PIPELINE_STALLED_RUN_MINUTES",
        "PIPELINE_STALLED_EVENT_MINUTES",
        "PIPELINE_SUPERVISOR_NUDGE_LIMIT",
        "PIPELINE_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


class TestParseEnvInt:
    def test_unset_uses_default(self):
        assert _parse_env_int("PIPELINE_STALLED_RUN_MINUTES", 6, 1, 1440) == 6

    def test_blank_uses_default(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_STALLED_RUN_MINUTES", "   ")
        assert _parse_env_int("PIPELINE_STALLED_RUN_MINUTES", 6, 1, 1440) == 6

    def test_valid_value_is_parsed(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_STALLED_RUN_MINUTES", " 12 ")
        assert _parse_env_int("PIPELINE_STALLED_RUN_MINUTES", 6, 1, 1440) == 12

    def test_non_integer_falls_back_with_warning(self, monkeypatch, caplog):
        monkeypatch.setenv("PIPELINE_STALLED_RUN_MINUTES", "six")
        with caplog.at_level(logging.WARNING, logger="inbox_pipeline.config"):
            assert _parse_env_int("PIPELINE_STALLED_RUN_MINUTES", 6, 1, 1440) == 6
        assert "invalid" in caplog.text

    @pytest.mark.parametrize("raw", ["0", "-5", "1441"])
    def test_out_of_bounds_falls_back(self, monkeypatch, raw):
        monkeypatch.setenv("PIPELINE_STALLED_RUN_MINUTES", raw)
        assert _parse_env_int("PIPELINE_STALLED_RUN_MINUTES", 6, 1, 1440) == 6

    def test_bounds_are_inclusive(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_SUPERVISOR_NUDGE_LIMIT", "500")
        assert _parse_env_int("PIPELINE_SUPERVISOR_NUDGE_LIMIT", 25, 1, 500) == 500


class TestSupervisorSettings:
    def test_defaults(self):
        settings = SupervisorSettings.from_env()

        assert settings.stalled_run_minutes == DEFAULT_STALLED_RUN_MINUTES == 6
        assert settings.stalled_event_minutes == DEFAULT_STALLED_EVENT_MINUTES == 10
        assert settings.nudge_limit == DEFAULT_NUDGE_LIMIT == 25

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_STALLED_RUN_MINUTES", "3")
        monkeypatch.setenv("PIPELINE_STALLED_EVENT_MINUTES", "20")
        monkeypatch.setenv("PIPELINE_SUPERVISOR_NUDGE_LIMIT", "5")

        settings = SupervisorSettings.from_env()

        assert settings == SupervisorSettings(3, 20, 5)

    def test_nudge_limit_above_bound_falls_back(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_SUPERVISOR_NUDGE_LIMIT", "501")
        assert SupervisorSettings.from_env().nudge_limit == 25

    @pytest.mark.parametrize("nudge_limit,events,conversations", [
        (1, 3, 3),
        (25, 75, 75),
        (60, 180, 150),
        (500, 200, 150),
    ])
    def test_scan_limits(self, nudge_limit, events, conversations):
        settings = SupervisorSettings(nudge_limit=nudge_limit)

        assert settings.event_scan_limit == events
        assert settings.conversation_scan_limit == conversations


class TestEnvAccessors:
    def test_worker_token_from_env(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_WORKER_TOKEN", " secret ")
        assert get_worker_token() == "secret"

    def test_blank_worker_token_is_unconfigured(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_WORKER_TOKEN", "")
        assert get_worker_token() is None

    def test_log_file_default(self):
        assert get_log_file() == "/tmp/inbox-pipeline.log"
