"""
Tests for the CLI interface.
"""
import json
import logging
import os
import tempfile
from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from bankgpt.cli.main import EXIT_CODE_FAIL, EXIT_CODE_INVALID, EXIT_CODE_PASS, app
from bankgpt.core.errors import InvalidRequest, RateLimited, UpstreamRejected
from bankgpt.core.token_counter import TokenUsage
from bankgpt.sdk.advisor import ChatResponse
from bankgpt.storage.models import UsageRecord
from bankgpt.storage.repository import initialize_schema, insert_usage_record

runner = CliRunner()


@pytest.fixture
def mock_advisor():
    """Replace advisor construction with a mock."""
    with patch('bankgpt.cli.main._build_advisor') as mock_build:
        advisor = MagicMock()
        advisor.info.return_value = {
            "name": "BankGPT", "version": "1.0.0", "model": "gpt-3.5-turbo", "cache_scope": "conversation"
        }
        mock_build.return_value = advisor
        yield advisor


class TestCLI:
    """Test CLI commands."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "cli.db")
        self.config_path = os.path.join(self.temp_dir, "bankgpt.yaml")
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump({"storage": {"db_path": self.db_path}, "budget": {"daily": 2.0}}, f)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def invoke(self, *args):
        return runner.invoke(app, ["--config", self.config_path, *args])

    def test_no_command_prints_usage_hint(self):
        result = self.invoke()
        assert result.exit_code == EXIT_CODE_PASS
        assert "Use --help" in result.output

    def test_init_creates_database(self):
        result = self.invoke("init")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized" in result.output
        assert os.path.exists(self.db_path)

    def test_init_with_bad_config(self):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            f.write("unknown_section: {}\n")

        result = self.invoke("init")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error initializing database" in result.output

    def test_chat_prints_reply(self, mock_advisor):
        mock_advisor.chat.return_value = ChatResponse(
            response_text="Open a high-yield savings account.",
            usage=TokenUsage(120, 30),
            model="gpt-3.5-turbo"
        )

        result = self.invoke("chat", "Where should I save?", "-c", "alice")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Open a high-yield savings account." in result.output
        assert "120 prompt" in result.output
        mock_advisor.chat.assert_called_once_with("Where should I save?", "alice")

    def test_chat_cached_reply(self, mock_advisor):
        mock_advisor.chat.return_value = ChatResponse(
            response_text="Hello!", usage=TokenUsage(0, 0), cached=True
        )

        result = self.invoke("chat", "hi")
        assert result.exit_code == EXIT_CODE_PASS
        assert "served from cache" in result.output
        mock_advisor.chat.assert_called_once_with("hi", "cli")

    def test_chat_invalid_request(self, mock_advisor):
        mock_advisor.chat.side_effect = InvalidRequest("message is required and cannot be empty")

        result = self.invoke("chat", " ")
        assert result.exit_code == EXIT_CODE_INVALID
        assert "Invalid request" in result.output

    def test_chat_upstream_rejected(self, mock_advisor):
        mock_advisor.chat.side_effect = UpstreamRejected("invalid api key", 401)

        result = self.invoke("chat", "hello")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Advisor error" in result.output

    def test_reset(self, mock_advisor):
        mock_advisor.reset.return_value = 4

        result = self.invoke("reset", "-c", "alice")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Removed 4 turns from alice" in result.output

    def test_health_all_up(self, mock_advisor):
        mock_advisor.health.return_value = {"gateway": True, "cache": True, "store": True}

        result = self.invoke("health")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Status: healthy" in result.output

    def test_health_dependency_down(self, mock_advisor):
        mock_advisor.health.return_value = {"gateway": False, "cache": True, "store": True}

        result = self.invoke("health")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Status: unhealthy" in result.output

    def test_costs_empty(self):
        initialize_schema(self.db_path)

        result = self.invoke("costs")
        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage recorded" in result.output

    def test_costs_summary(self):
        from datetime import datetime

        initialize_schema(self.db_path)
        insert_usage_record(UsageRecord(
            timestamp=datetime.now(),
            model="gpt-4",
            prompt_tokens=1000,
            completion_tokens=1000,
            total_tokens=2000,
            cost=0.09
        ), self.db_path)

        result = self.invoke("costs", "--days", "1")
        assert result.exit_code == EXIT_CODE_PASS
        assert "gpt-4" in result.output
        assert "Total: $0.0900 of $2.0000 budget (4.5%)" in result.output

    def test_chat_json_output(self, mock_advisor):
        mock_advisor.chat.return_value = ChatResponse(
            response_text="Pay your card in full each month.",
            usage=TokenUsage(120, 30),
            model="gpt-3.5-turbo"
        )

        result = self.invoke("chat", "credit tips", "--json")

        assert result.exit_code == EXIT_CODE_PASS
        payload = json.loads(result.output.strip().splitlines()[-1])
        assert payload == {
            "responseText": "Pay your card in full each month.",
            "usage": {"promptTokens": 120, "completionTokens": 30, "totalTokens": 150},
            "model": "gpt-3.5-turbo",
            "cached": False,
            "degraded": False,
        }

    def test_chat_json_error_carries_status(self, mock_advisor):
        mock_advisor.chat.side_effect = RateLimited("Too many requests for cli", retry_after=12.0)

        result = self.invoke("chat", "hello", "--json")

        assert result.exit_code == EXIT_CODE_INVALID
        payload = json.loads(result.output.strip().splitlines()[-1])
        assert payload["status"] == 429
        assert "Too many requests" in payload["error"]

    def test_log_dir_writes_json_log(self):
        log_dir = os.path.join(self.temp_dir, "logs")
        root = logging.getLogger()
        try:
            result = runner.invoke(app, ["--config", self.config_path, "--log-dir", log_dir, "init"])
            assert result.exit_code == EXIT_CODE_PASS
            logging.getLogger("bankgpt.cli").warning("after init")
            for h in root.handlers:
                h.flush()
        finally:
            for h in list(root.handlers):
                root.removeHandler(h)
                h.close()

        with open(os.path.join(log_dir, "bankgpt.log"), encoding="utf-8") as f:
            lines = [json.loads(line) for line in f if line.strip()]
        assert lines[-1]["message"] == "after init"
        assert lines[-1]["level"] == "WARNING"
