"""
Unit tests for config/settings.py and config/logging_config.py
"""
import logging

from config.logging_config import get_logger, set_console_level
from config.settings import Settings


class TestSettings:
    """Test Settings loading."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.poll_fast_interval == 2.0
        assert settings.poll_slow_interval == 10.0
        assert settings.poll_stall_threshold == 3
        assert settings.settle_delay == 2.0

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("POLICY_JOBS_RELAY_BASE_URL", "https://relay.example.com/api")
        monkeypatch.setenv("POLICY_JOBS_POLL_SLOW_INTERVAL", "15")
        settings = Settings(_env_file=None)
        assert settings.relay_base_url == "https://relay.example.com/api"
        assert settings.poll_slow_interval == 15.0

    def test_identity_headers(self):
        settings = Settings(_env_file=None, user_id="u-1", user_role="admin")
        assert settings.identity_headers() == {"x-user-id": "u-1", "x-user-role": "admin"}

    def test_identity_headers_empty(self):
        settings = Settings(_env_file=None, user_id="", user_role="")
        assert settings.identity_headers() == {}


class TestLogging:
    """Test logger setup."""

    def test_module_loggers_share_root_handlers(self):
        root = get_logger()
        child = get_logger("policy_jobs.test_logging")

        assert root.name == "policy_jobs"
        assert len(root.handlers) == 2
        assert child.handlers == []
        assert child.parent is root

    def test_foreign_names_nested(self):
        assert get_logger("tests.helpers").name == "policy_jobs.tests.helpers"

    def test_set_console_level(self):
        root = get_logger()
        set_console_level("DEBUG")
        try:
            levels = {type(h).__name__: h.level for h in root.handlers}
            assert levels["StreamHandler"] == logging.DEBUG
            assert levels["RotatingFileHandler"] == logging.DEBUG
        finally:
            set_console_level(logging.INFO)
