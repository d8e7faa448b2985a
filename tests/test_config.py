"""Tests for configuration loading and the logging setup."""

import json
import logging

import pytest

from dbtriage.config import (
    Config,
    EvaluatorSettings,
    get_config,
    load_config_from_env,
    load_config_from_file,
    reset_config,
)
from dbtriage.exceptions import ConfigurationError
from dbtriage.logging_config import configure_logging, mask_dsn


class TestConfigDefaults:
    """Tests for the default configuration."""

    def test_defaults(self, config):
        assert config.dsn is None
        assert config.statement_timeout_ms == 30_000
        assert config.max_rows == 100
        assert config.top_tables == 5
        assert config.log_level == "INFO"

    def test_evaluators_enabled_by_default(self, config):
        assert config.is_evaluator_enabled("HIGH_BLOAT")
        assert config.evaluator_overrides("HIGH_BLOAT") == {}

    def test_fetch_workers(self):
        assert Config().fetch_workers == 1
        assert Config(concurrent_fetch=True, max_workers=3).fetch_workers == 3


class TestLoadFromEnv:
    """Tests for DBTRIAGE_* environment variables."""

    def test_global_settings(self, monkeypatch):
        monkeypatch.setenv("DBTRIAGE_DSN", "postgresql://app@db/prod")
        monkeypatch.setenv("DBTRIAGE_STATEMENT_TIMEOUT_MS", "5000")
        monkeypatch.setenv("DBTRIAGE_CONCURRENT_FETCH", "yes")
        monkeypatch.setenv("DBTRIAGE_LOG_LEVEL", "debug")

        config = load_config_from_env()

        assert config.dsn == "postgresql://app@db/prod"
        assert config.statement_timeout_ms == 5000
        assert config.concurrent_fetch is True
        assert config.log_level == "DEBUG"

    def test_database_url_fallback(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://fallback@db/app")
        assert load_config_from_env().dsn == "postgresql://fallback@db/app"

    def test_dsn_wins_over_database_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://fallback@db/app")
        monkeypatch.setenv("DBTRIAGE_DSN", "postgresql://primary@db/app")
        assert load_config_from_env().dsn == "postgresql://primary@db/app"

    def test_non_integer_ignored(self, monkeypatch):
        monkeypatch.setenv("DBTRIAGE_MAX_ROWS", "lots")
        assert load_config_from_env().max_rows == 100

    def test_invalid_value_raises(self, monkeypatch):
        monkeypatch.setenv("DBTRIAGE_MAX_ROWS", "0")
        with pytest.raises(ConfigurationError):
            load_config_from_env()

    def test_evaluator_settings(self, monkeypatch):
        monkeypatch.setenv("DBTRIAGE_EVALUATOR_IDLE_CONNECTIONS_ENABLED", "false")
        monkeypatch.setenv("DBTRIAGE_EVALUATOR_HIGH_BLOAT_DEAD_TUPLE_RATIO", "0.2")
        monkeypatch.setenv("DBTRIAGE_EVALUATOR_HIGH_SEQ_SCAN_MIN_SEQ_SCANS", "50")

        config = load_config_from_env()

        assert not config.is_evaluator_enabled("IDLE_CONNECTIONS")
        assert config.evaluator_overrides("HIGH_BLOAT") == {"dead_tuple_ratio": 0.2}
        assert config.evaluator_overrides("HIGH_SEQ_SCAN") == {"min_seq_scans": 50}

    def test_unknown_evaluator_ignored(self, monkeypatch):
        monkeypatch.setenv("DBTRIAGE_EVALUATOR_NOT_A_RULE_ENABLED", "false")
        assert load_config_from_env().evaluators == {}


class TestLoadFromFile:
    """Tests for JSON and YAML config files."""

    def test_json_file(self, tmp_path):
        path = tmp_path / "dbtriage.json"
        path.write_text(json.dumps({
            "max_rows": 25,
            "evaluators": {"HIGH_BLOAT": {"enabled": False}},
        }))

        config = load_config_from_file(path)

        assert config.max_rows == 25
        assert not config.is_evaluator_enabled("HIGH_BLOAT")

    def test_yaml_file_overrides_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DBTRIAGE_DSN", "postgresql://env@db/app")
        monkeypatch.setenv("DBTRIAGE_TOP_TABLES", "3")
        path = tmp_path / "dbtriage.yaml"
        path.write_text(
            "top_tables: 8\n"
            "evaluators:\n"
            "  HIGH_SEQ_SCAN:\n"
            "    thresholds:\n"
            "      min_seq_scans: 200\n"
        )

        config = load_config_from_file(path)

        assert config.top_tables == 8
        assert config.dsn == "postgresql://env@db/app"
        assert config.evaluator_overrides("HIGH_SEQ_SCAN") == {"min_seq_scans": 200}

    def test_missing_file_falls_back_to_env(self, tmp_path, monkeypatch, caplog):
        monkeypatch.setenv("DBTRIAGE_MAX_ROWS", "7")
        with caplog.at_level(logging.WARNING, logger="dbtriage.config"):
            config = load_config_from_file(tmp_path / "missing.yaml")

        assert config.max_rows == 7
        assert "Config file not found" in caplog.text

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{oops")
        with pytest.raises(ConfigurationError, match="Failed to load config"):
            load_config_from_file(path)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_config_from_file(path)

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"top_tables": -1}))
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config_from_file(path)


class TestGetConfig:
    """Tests for the cached global configuration."""

    def test_cached(self):
        assert get_config() is get_config()

    def test_reset(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("DBTRIAGE_MAX_ROWS", "11")
        reset_config()

        assert get_config() is not first
        assert get_config().max_rows == 11

    def test_config_file_env(self, tmp_path, monkeypatch):
        path = tmp_path / "dbtriage.json"
        path.write_text(json.dumps({"application_name": "nightly-check"}))
        monkeypatch.setenv("DBTRIAGE_CONFIG_FILE", str(path))

        assert get_config().application_name == "nightly-check"

    def test_config_is_frozen(self, config):
        with pytest.raises(Exception):
            config.max_rows = 5  # type: ignore[misc]

    def test_evaluator_settings_copy(self):
        settings = EvaluatorSettings(thresholds={"ratio": 0.5})
        config = Config(evaluators={"X": settings})
        overrides = config.evaluator_overrides("X")
        overrides["ratio"] = 0.9

        assert config.evaluator_overrides("X") == {"ratio": 0.5}


class TestLogging:
    """Tests for DSN masking and handler setup."""

    @pytest.mark.parametrize(
        "dsn,expected",
        [
            ("postgresql://app:s3cret@db:5432/prod", "postgresql://app:***@db:5432/prod"),
            ("host=db user=app password=s3cret dbname=prod", "host=db user=app password=*** dbname=prod"),
            ("postgresql://app@db/prod", "postgresql://app@db/prod"),
            (None, ""),
        ],
    )
    def test_mask_dsn(self, dsn, expected):
        assert mask_dsn(dsn) == expected

    def test_handlers_not_duplicated(self, tmp_path):
        root = logging.getLogger()
        before = list(root.handlers)
        before_level = root.level
        try:
            configure_logging("DEBUG", tmp_path / "logs" / "dbtriage.log")
            configure_logging("WARNING", tmp_path / "logs" / "dbtriage.log")

            names = [h.get_name() for h in root.handlers if h.get_name()]
            assert names.count("dbtriage.console") == 1
            assert names.count("dbtriage.file") == 1
            assert root.level == logging.WARNING
            assert (tmp_path / "logs" / "dbtriage.log").exists()
        finally:
            for handler in list(root.handlers):
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
            root.setLevel(before_level)
