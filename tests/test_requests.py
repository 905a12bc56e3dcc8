"""
Tests for request validation, rate limiting, locking, canned replies
and logging setup.
"""
import json
import logging
import os
import tempfile
import threading

import pytest

from bankgpt.core.errors import InvalidRequest, RateLimited
from bankgpt.core.fallback import DEGRADED_NOTICE, GENERIC_REPLY, canned_reply, degraded_reply
from bankgpt.core.locks import KeyedLock
from bankgpt.core.logging_config import LOG_LEVEL_ENV, resolve_level, setup_logging
from bankgpt.core.rate_limit import RateLimiter
from bankgpt.core.validation import validate_conversation_id, validate_request


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestValidation:
    """Test inbound request validation."""

    def test_valid_request_is_stripped(self):
        request = validate_request("  How do I save?\n", "user_42")
        assert request.message == "How do I save?"
        assert request.conversation_id == "user_42"

    @pytest.mark.parametrize("message", ["", "   \n\t", None, 42])
    def test_empty_message(self, message):
        with pytest.raises(InvalidRequest, match="message is required"):
            validate_request(message, "c1")

    def test_length_limit(self):
        validate_request("x" * 1000, "c1")
        with pytest.raises(InvalidRequest, match="exceeds 1000 characters"):
            validate_request("x" * 1001, "c1")
        with pytest.raises(InvalidRequest, match="exceeds 10 characters"):
            validate_request("x" * 11, "c1", max_length=10)

    @pytest.mark.parametrize("conversation_id", ["a", "A-b_9", "x" * 64])
    def test_valid_conversation_ids(self, conversation_id):
        assert validate_conversation_id(conversation_id) == conversation_id

    @pytest.mark.parametrize("conversation_id", ["", "x" * 65, "a b", "a/b", "conv:1", "é", 7])
    def test_invalid_conversation_ids(self, conversation_id):
        with pytest.raises(InvalidRequest):
            validate_conversation_id(conversation_id)

    def test_invalid_request_status(self):
        assert InvalidRequest("bad").status_code == 400


class TestRateLimiter:
    """Test the sliding one-minute window."""

    def setup_method(self):
        self.clock = FakeClock(1000.0)
        self.limiter = RateLimiter(limit=3, clock=self.clock)

    def test_blocks_after_limit(self):
        for _ in range(3):
            self.limiter.check("alice")

        with pytest.raises(RateLimited) as excinfo:
            self.limiter.check("alice")
        assert excinfo.value.retry_after == 60.0
        assert "try again later" in str(excinfo.value)

    def test_keys_are_independent(self):
        for _ in range(3):
            self.limiter.check("alice")
        self.limiter.check("bob")

    def test_window_slides(self):
        self.limiter.check("alice")
        self.clock.now += 30
        self.limiter.check("alice")
        self.limiter.check("alice")

        self.clock.now += 30
        self.limiter.check("alice")
        with pytest.raises(RateLimited) as excinfo:
            self.limiter.check("alice")
        assert excinfo.value.retry_after == 30.0

    def test_rejected_requests_do_not_count(self):
        for _ in range(3):
            self.limiter.check("alice")
        for _ in range(5):
            with pytest.raises(RateLimited):
                self.limiter.check("alice")

        self.clock.now += 60
        self.limiter.check("alice")

    def test_idle_keys_are_dropped(self):
        for key in ("alice", "bob", "carol"):
            self.limiter.check(key)
        assert len(self.limiter) == 3

        self.clock.now += 30
        self.limiter.check("alice")
        assert len(self.limiter) == 3

        self.clock.now += 45
        self.limiter.check("dave")
        # alice's second hit is still inside the window
        assert len(self.limiter) == 2

    def test_invalid_limit(self):
        with pytest.raises(ValueError, match="limit must be > 0"):
            RateLimiter(limit=0)


class TestKeyedLock:
    """Test per-key mutual exclusion."""

    def test_table_is_cleaned_up(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with locks.hold("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        with locks.hold("a"):
            pass

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other():
            with locks.hold("b"):
                entered.set()

        with locks.hold("a"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=2)
        thread.join()

    def test_same_key_is_serialized(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other():
            with locks.hold("a"):
                entered.set()

        with locks.hold("a"):
            thread = threading.Thread(target=other)
            thread.start()
            assert not entered.wait(timeout=0.1)
        thread.join()
        assert entered.is_set()


class TestCannedReplies:
    """Test keyword-matched fallback replies."""

    @pytest.mark.parametrize("message,expected", [
        ("Hello there", "How can I help"),
        ("What savings account should I open?", "emergency fund"),
        ("How do I improve my credit score?", "utilization"),
        ("Should I invest in index funds?", "index funds"),
        ("Help me budget", "50/30/20"),
        ("Is a mortgage a good idea?", "APR"),
        ("thanks!", "You're welcome"),
    ])
    def test_keyword_match(self, message, expected):
        assert expected in canned_reply(message)

    def test_no_match_uses_generic_reply(self):
        assert canned_reply("What's the weather like?") == GENERIC_REPLY

    def test_first_match_wins(self):
        assert canned_reply("hi, how do savings work?") == canned_reply("hi")

    def test_degraded_reply_has_notice(self):
        reply = degraded_reply("credit")
        assert reply.startswith(DEGRADED_NOTICE)
        assert reply.endswith(canned_reply("credit"))


class TestLoggingSetup:
    """Test console and JSON file logging."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_level = self.root.level

    def teardown_method(self):
        import shutil
        for h in list(self.root.handlers):
            self.root.removeHandler(h)
            h.close()
        for h in self.saved_handlers:
            self.root.addHandler(h)
        self.root.setLevel(self.saved_level)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_resolve_level(self, monkeypatch):
        monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
        assert resolve_level() == logging.INFO
        assert resolve_level("debug") == logging.DEBUG
        assert resolve_level(logging.ERROR) == logging.ERROR

        monkeypatch.setenv(LOG_LEVEL_ENV, "WARNING")
        assert resolve_level() == logging.WARNING

        with pytest.raises(ValueError, match="Unknown log level"):
            resolve_level("chatty")

    def test_console_only(self):
        root = setup_logging("WARNING")
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_file_log(self):
        setup_logging("INFO", log_dir=self.temp_dir)
        logging.getLogger("bankgpt.test").info("cache hit for %s", "alice")
        for h in self.root.handlers:
            h.flush()

        with open(os.path.join(self.temp_dir, "bankgpt.log"), encoding="utf-8") as f:
            entry = json.loads(f.readline())
        assert entry["level"] == "INFO"
        assert entry["logger"] == "bankgpt.test"
        assert entry["message"] == "cache hit for alice"
