"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from ..config import AppConfig, load_config
from ..commit.monitor import DEFAULT_MARKERS


class TestLoadConfig:
    """Tests for load_config()."""

    def test_defaults(self):
        config = load_config(environ={})

        assert config.oracle.base_url == "http://localhost:1234/v1"
        assert config.oracle.model_name == "gpt-4o-mini"
        assert config.monitor.window_seconds == 1.0
        assert tuple(config.monitor.markers) == DEFAULT_MARKERS
        assert config.store.data_dir is None
        assert config == AppConfig()

    def test_environment_overrides(self):
        config = load_config(environ={
            "RULESMITH_ORACLE__MODEL_NAME": "local-model",
            "RULESMITH_ORACLE__MAX_RETRIES": "2",
            "RULESMITH_MONITOR__WINDOW_SECONDS": "2.5",
            "RULESMITH_MONITOR__MARKERS": "invalid, must be ,",
            "RULESMITH_CORPUS_PATH": "/tmp/corpus.md",
            "OTHER_SETTING": "ignored",
        })

        assert config.oracle.model_name == "local-model"
        assert config.oracle.max_retries == 2
        assert config.monitor.window_seconds == 2.5
        assert config.monitor.markers == ["invalid", "must be"]
        assert config.corpus_path == "/tmp/corpus.md"

    def test_explicit_overrides_win(self):
        config = load_config(
            environ={"RULESMITH_MONITOR__WINDOW_SECONDS": "3", "RULESMITH_MONITOR__HOST_LOGGER": "host.rules"},
            monitor={"window_seconds": 0},
            env="test",
        )

        assert config.monitor.window_seconds == 0
        assert config.monitor.host_logger == "host.rules"
        assert config.env == "test"

    def test_bad_value_is_rejected(self):
        with pytest.raises(ValidationError):
            load_config(environ={"RULESMITH_RETRIEVAL__MAX_EXAMPLES": "many"})
