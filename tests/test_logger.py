"""
Unit tests for logger.py: context formatting, handlers, timing decorator and request stats.
"""

import logging
import uuid

import pytest

from logger import QuizGenLogger, RequestLogger, format_context, log_execution_time


def _fresh_logger(tmp_path):
    return QuizGenLogger(f"quizgen-test-{uuid.uuid4().hex[:8]}", log_dir=str(tmp_path), level="DEBUG")


def _flush(qlogger):
    for handler in qlogger.logger.handlers:
        handler.flush()


class TestFormatContext:

    def test_plain_message(self):
        assert format_context("hello", {}) == "hello"

    def test_none_values_dropped(self):
        assert format_context("done", {"count": 3, "user": None}) == 'done | {"count": 3}'


class TestQuizGenLogger:

    def test_writes_main_and_error_files(self, tmp_path):
        qlogger = _fresh_logger(tmp_path)
        qlogger.info("generated", questions=4)
        qlogger.error("exploded", reason="test")
        _flush(qlogger)

        main_log = (tmp_path / f"{qlogger.name}.log").read_text()
        error_log = (tmp_path / f"{qlogger.name}_errors.log").read_text()
        assert 'generated | {"questions": 4}' in main_log
        assert "exploded" in main_log
        assert "exploded" in error_log
        assert "generated" not in error_log

    def test_handlers_installed_once(self, tmp_path):
        qlogger = _fresh_logger(tmp_path)
        again = QuizGenLogger(qlogger.name, log_dir=str(tmp_path))
        assert len(again.logger.handlers) == 3

    def test_without_log_dir_no_handlers(self):
        qlogger = QuizGenLogger(f"quizgen.child-{uuid.uuid4().hex[:8]}")
        assert qlogger.logger.handlers == []


class TestLogExecutionTime:

    def test_sync_function(self, caplog):
        qlogger = QuizGenLogger("quizgen.timing")

        @log_execution_time(qlogger, "Adding")
        def add(a, b):
            return a + b

        with caplog.at_level(logging.INFO, logger="quizgen.timing"):
            assert add(2, 3) == 5
        assert "Adding completed" in caplog.text

    async def test_async_failure_is_logged_and_raised(self, caplog):
        qlogger = QuizGenLogger("quizgen.timing")

        @log_execution_time(qlogger, "Fetching")
        async def fetch():
            raise RuntimeError("nope")

        with caplog.at_level(logging.INFO, logger="quizgen.timing"):
            with pytest.raises(RuntimeError):
                await fetch()
        assert "Fetching failed" in caplog.text
        assert '"error": "nope"' in caplog.text


class TestRequestLogger:

    def test_stats(self):
        requests = RequestLogger(QuizGenLogger("quizgen.requests"))
        requests.log_request("/health", "GET")
        requests.log_response("/health", 200, 10.0)
        requests.log_request("/api/quiz/generate", "POST")
        requests.log_response("/api/quiz/generate", 400, 30.0)

        stats = requests.get_stats()
        assert stats["total_requests"] == 2
        assert stats["total_errors"] == 1
        assert stats["success_rate"] == 50.0
        assert stats["avg_duration_ms"] == 20.0
        assert stats["busiest_endpoints"] == {"GET /health": 1, "POST /api/quiz/generate": 1}
