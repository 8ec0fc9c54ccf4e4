"""
Unit Tests - Configuration and Errors
"""
import io
import json
import logging

import pytest
import structlog

from salesdwh.config import DatabaseSettings, PipelineSettings, Settings
from salesdwh.config.logging import configure_logging
from salesdwh.errors import SchemaMismatch, Stage


class TestSettings:
    """Tests for the settings sections"""

    def test_defaults(self):
        """Test pipeline defaults"""
        settings = PipelineSettings()

        assert settings.continue_on_load_error is True
        assert settings.parallel_loads is False
        assert settings.strict_business_keys is False
        assert settings.erp_customer_prefixes == ["NAS"]

    def test_environment_overrides(self, monkeypatch):
        """Test prefixed environment variables are honoured"""
        monkeypatch.setenv("PIPELINE_STRICT_BUSINESS_KEYS", "true")
        monkeypatch.setenv("PIPELINE_ERP_CUSTOMER_PREFIXES", '["NAS", "XY"]')

        settings = PipelineSettings()

        assert settings.strict_business_keys is True
        assert settings.erp_customer_prefixes == ["NAS", "XY"]

    def test_database_url(self):
        """Test the psycopg2 URL and its explicit override"""
        db = DatabaseSettings(host="db", port=5433, db="dwh", user="etl", password="secret")

        assert db.sync_url == "postgresql+psycopg2://etl:secret@db:5433/dwh"
        assert DatabaseSettings(url="sqlite:///x.db").sync_url == "sqlite:///x.db"

    def test_invalid_environment(self):
        """Test app_env validation"""
        with pytest.raises(ValueError):
            Settings(app_env="qa")


class TestLogging:
    """Tests for configure_logging"""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_log_level_applied(self, test_settings):
        """Test the override level reaches the root logger"""
        configure_logging("WARNING", settings=test_settings)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_json_lines_carry_run_context(self, test_settings):
        """Test events are rendered as JSON with the bound run id"""
        stream = io.StringIO()
        configure_logging("INFO", settings=test_settings, stream=stream)

        with structlog.contextvars.bound_contextvars(run_id="abc123"):
            structlog.get_logger("salesdwh.test").info("stage_started", stage="load")

        event = json.loads(stream.getvalue().splitlines()[-1])
        assert event["event"] == "stage_started"
        assert event["stage"] == "load"
        assert event["run_id"] == "abc123"
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_below_level_is_dropped(self, test_settings):
        """Test events under the configured level are not written"""
        stream = io.StringIO()
        configure_logging("WARNING", settings=test_settings, stream=stream)

        structlog.get_logger("salesdwh.test").info("stage_started")

        assert stream.getvalue() == ""


class TestErrors:
    """Tests for the error taxonomy"""

    def test_to_dict(self):
        """Test diagnostic fields of a pipeline error"""
        error = SchemaMismatch("bad header", stage=Stage.LOAD, table="erp_loc_a101")

        assert error.to_dict() == {
            "error_code": "SchemaMismatch",
            "error_message": "bad header",
            "error_stage": "load",
            "table": "erp_loc_a101",
        }
