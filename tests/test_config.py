"""
Unit tests for configuration loading and validation.

Tests defaults, strict validation and error handling.
"""

import os
import tempfile

import pytest
import yaml

from bankgpt.config.loader import (
    AdvisorConfig,
    BudgetConfig,
    ContextConfig,
    ModelConfig,
    load_advisor_config,
)
from bankgpt.core.cache import CacheScope


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_defaults(self):
        config = load_advisor_config(None)

        assert config == AdvisorConfig()
        assert config.models.active == "gpt-3.5-turbo"
        assert config.generation.max_tokens == 500
        assert config.generation.temperature == 0.7
        assert config.generation.presence_penalty == 0.1
        assert config.generation.frequency_penalty == 0.1
        assert config.context.keep_recent == 2
        assert config.context.summarize_after == 20
        assert config.cache.scope == CacheScope.CONVERSATION
        assert config.budget.alert_thresholds == (50, 75, 90, 100)
        assert config.gateway.max_retries == 2
        assert config.requests.max_message_length == 1000
        assert config.history_budget == 4096 - 500

    def test_valid_config_loads_correctly(self):
        config_data = {
            "models": {"default": "gpt-3.5-turbo", "premium": "gpt-4", "use_premium": True},
            "generation": {"max_tokens": 300, "temperature": 0.2},
            "context": {"total_tokens": 2000, "keep_recent": 4, "summarize_after": 10},
            "cache": {"ttl_seconds": 120, "scope": "global", "backend": "sqlite"},
            "budget": {"daily": 5, "monthly": 100, "alert_thresholds": [80, 100]},
            "gateway": {"timeout_seconds": 2, "max_retries": 1},
            "requests": {"rate_limit_per_minute": 30},
            "storage": {"db_path": "/tmp/bank.db"},
            "system_prompt": "  Be brief.  ",
        }

        config = load_advisor_config(self._write_config(config_data))

        assert config.models.active == "gpt-4"
        assert config.generation.max_tokens == 300
        assert config.generation.presence_penalty == 0.1
        assert config.history_budget == 1700
        assert config.cache.scope == CacheScope.GLOBAL
        assert config.cache.ttl_seconds == 120.0
        assert config.cache.backend == "sqlite"
        assert config.budget.daily == 5.0
        assert config.budget.alert_thresholds == (80, 100)
        assert config.gateway.timeout_seconds == 2.0
        assert config.requests.rate_limit_per_minute == 30
        assert config.storage.db_path == "/tmp/bank.db"
        assert config.system_prompt == "Be brief."

    def test_empty_file_uses_defaults(self):
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, "w").close()
        assert load_advisor_config(path) == AdvisorConfig()

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError, match="not found"):
            load_advisor_config(os.path.join(self.temp_dir, "nope.yaml"))

    def test_invalid_yaml(self):
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("budget: [unclosed")
        with pytest.raises(yaml.YAMLError, match="Invalid YAML"):
            load_advisor_config(path)

    def test_unknown_top_level_key(self):
        path = self._write_config({"budgets": {"daily": 1}})
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_advisor_config(path)

    def test_unknown_section_key(self):
        path = self._write_config({"budget": {"daily": 1, "weekly": 5}})
        with pytest.raises(ValueError, match="Unknown keys in budget"):
            load_advisor_config(path)

    def test_section_must_be_dict(self):
        path = self._write_config({"budget": 10})
        with pytest.raises(ValueError, match="'budget' must be a dictionary"):
            load_advisor_config(path)

    def test_wrong_types(self):
        with pytest.raises(ValueError, match="generation.max_tokens' must be an integer"):
            load_advisor_config(self._write_config({"generation": {"max_tokens": "lots"}}))

        with pytest.raises(ValueError, match="must be true or false"):
            load_advisor_config(self._write_config({"models": {"use_premium": "yes"}}))

        with pytest.raises(ValueError, match="must be a list of integers"):
            load_advisor_config(self._write_config({"budget": {"alert_thresholds": "50"}}))

    def test_invalid_cache_scope(self):
        path = self._write_config({"cache": {"scope": "team"}})
        with pytest.raises(ValueError, match="must be one of"):
            load_advisor_config(path)

    def test_unsupported_model(self):
        with pytest.raises(ValueError, match="Unsupported model"):
            load_advisor_config(self._write_config({"models": {"premium": "gpt-9"}}))

    def test_budget_must_be_positive(self):
        with pytest.raises(ValueError, match="daily budget must be > 0"):
            BudgetConfig(daily=0)

    def test_summarize_after_must_exceed_keep_recent(self):
        with pytest.raises(ValueError, match="summarize_after must be > keep_recent"):
            ContextConfig(keep_recent=5, summarize_after=5)

    def test_response_reserve_must_fit_context(self):
        path = self._write_config({"context": {"total_tokens": 400}})
        with pytest.raises(ValueError, match="total_tokens must exceed"):
            load_advisor_config(path)

    def test_model_config_active(self):
        assert ModelConfig(use_premium=False).active == "gpt-3.5-turbo"
        assert ModelConfig(use_premium=True).active == "gpt-4"
