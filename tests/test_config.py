"""Tests for configuration, settings and the error hierarchy."""

import pytest
from loguru import logger
from pydantic import ValidationError

from adaptgov.exceptions import (
    AdaptationError,
    InvalidTransitionError,
    ParameterValidationError,
)
from adaptgov.utils.config import (
    Bound,
    EnvSettings,
    GovernanceConfig,
    get_config_hash,
    governance_config_from,
    load_config,
    save_config,
)
from adaptgov.utils.logging import get_logger, setup_logging, setup_logging_from_config


class TestLoadConfig:
    """Tests for YAML configuration loading."""

    def test_default_file(self, default_config_path):
        config = load_config(default_config_path)

        assert config.logging.level == "INFO"
        assert config.governance.gates.min_signals == 50

    def test_default_file_matches_model_defaults(self, default_config_path):
        from_file = governance_config_from(load_config(default_config_path))
        defaults = GovernanceConfig()

        assert from_file.gates == defaults.gates
        assert from_file.consent == defaults.consent
        assert from_file.drift == defaults.drift
        assert from_file.bounds.coach_frequency.minimum is None
        assert from_file.bounds.coach_frequency.maximum == pytest.approx(1 / 15)

    def test_overrides(self, default_config_path):
        config = load_config(
            default_config_path,
            overrides={"governance": {"consent": {"max_tasks_threshold": 6}}},
        )

        governance = governance_config_from(config)

        assert governance.consent.max_tasks_threshold == 6
        assert governance.consent.strictness_threshold == 0.4

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            load_config(temp_dir / "missing.yaml")

    def test_none_gives_defaults(self):
        assert governance_config_from(None) == GovernanceConfig()

    def test_invalid_values_rejected(self, default_config_path):
        config = load_config(default_config_path, overrides={"governance": {"drift": {"max_snapshots": 10}}})

        with pytest.raises(ValidationError):
            governance_config_from(config)

    def test_save_round_trip(self, default_config_path, temp_dir):
        config = load_config(default_config_path)
        path = temp_dir / "nested" / "saved.yaml"

        save_config(config, path)

        assert get_config_hash(load_config(path)) == get_config_hash(config)

    def test_hash(self, default_config_path):
        config = load_config(default_config_path)
        changed = load_config(default_config_path, overrides={"governance": {"gates": {"min_signals": 60}}})

        assert len(get_config_hash(config)) == 16
        assert get_config_hash(config) != get_config_hash(changed)


class TestBound:
    """Tests for Bound."""

    def test_order(self):
        with pytest.raises(ValidationError):
            Bound(minimum=5, maximum=1)

    def test_one_sided(self):
        assert Bound(maximum=2).minimum is None


class TestEnvSettings:
    """Tests for environment settings."""

    def test_prefix(self, monkeypatch):
        monkeypatch.setenv("ADAPTGOV_LOG_LEVEL", "DEBUG")

        assert EnvSettings().log_level == "DEBUG"

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ADAPTGOV_LOG_LEVEL", raising=False)
        monkeypatch.delenv("ADAPTGOV_CONFIG_PATH", raising=False)

        settings = EnvSettings(_env_file=None)

        assert settings.log_level == "INFO"
        assert settings.config_path == "configs/default.yaml"


class TestLogging:
    """Tests for logging setup."""

    def test_file_sink(self, temp_dir):
        log_file = temp_dir / "logs" / "governance.log"

        setup_logging(level="DEBUG", log_file=log_file, structured=True)
        get_logger("test").info("hello")
        logger.remove()

        assert log_file.exists()
        assert "hello" in log_file.read_text()

    def test_from_config_with_env_override(self, default_config_path, temp_dir):
        config = load_config(default_config_path)
        log_file = temp_dir / "audit.log"

        setup_logging_from_config(config, level="WARNING", log_file=str(log_file))
        logger.info("quiet")
        logger.warning("loud")
        logger.remove()

        content = log_file.read_text()
        assert "loud" in content
        assert "quiet" not in content


class TestErrors:
    """Tests for the error hierarchy."""

    def test_to_dict(self):
        error = ParameterValidationError("max_tasks", 12, "outside range [3, 7]")

        assert error.to_dict() == {
            "error": {
                "code": "ParameterValidationError",
                "message": "Invalid value for max_tasks: outside range [3, 7]",
                "details": {
                    "parameter": "max_tasks",
                    "value": "12",
                    "reason": "outside range [3, 7]",
                },
            }
        }

    def test_hierarchy(self):
        error = InvalidTransitionError("IDLE", "APPLY")

        assert isinstance(error, AdaptationError)
        assert "IDLE -> APPLY" in str(error)
