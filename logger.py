"""
Logging and request monitoring for QuizGen AI Service
"""
import inspect
import json
import logging
import os
import sys
import time
from collections import Counter
from functools import wraps
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

CONSOLE_FORMAT = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
FILE_FORMAT = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
MAX_LOG_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUPS = 5


def format_context(message: str, context: Dict[str, Any]) -> str:
    """Append non-None context as JSON: ``"message | {...}"``."""
    context = {k: v for k, v in context.items() if v is not None}
    if not context:
        return message
    return f"{message} | {json.dumps(context, default=str)}"


def _rotating_handler(path: str, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
    handler.setLevel(level)
    handler.setFormatter(FILE_FORMAT)
    return handler


class QuizGenLogger:
    """Wraps a stdlib logger with key/value context on every call.

    Only the instance created with ``log_dir`` installs handlers: console,
    ``<name>.log`` and ``<name>_errors.log``. Module loggers named under
    ``quizgen.`` propagate to it.
    """

    def __init__(self, name: str = "quizgen", log_dir: Optional[str] = None, level: str = "INFO"):
        self.name = name
        self.logger = logging.getLogger(name)
        if log_dir:
            self.configure(log_dir, getattr(logging, level.upper(), logging.INFO))

    def configure(self, log_dir: str, console_level: int = logging.INFO):
        os.makedirs(log_dir, exist_ok=True)
        self.logger.setLevel(logging.DEBUG)
        if self.logger.handlers:
            return

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(console_level)
        console.setFormatter(CONSOLE_FORMAT)
        self.logger.addHandler(console)
        self.logger.addHandler(_rotating_handler(os.path.join(log_dir, f"{self.name}.log"), logging.DEBUG))
        self.logger.addHandler(_rotating_handler(os.path.join(log_dir, f"{self.name}_errors.log"), logging.ERROR))

    def log(self, level: int, message: str, **context):
        self.logger.log(level, format_context(message, context))

    def debug(self, message: str, **context):
        self.log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self.log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self.log(logging.WARNING, message, **context)

    def error(self, message: str, **context):
        self.log(logging.ERROR, message, **context)


def log_execution_time(logger: QuizGenLogger, operation_name: str):
    """Decorator logging how long a sync or async function took, and whether it failed."""
    def decorator(func):
        def report(start_time: float, error: Optional[Exception] = None):
            duration = round(time.time() - start_time, 2)
            if error is None:
                logger.info(f"{operation_name} completed", duration_seconds=duration, function=func.__name__)
            else:
                logger.error(
                    f"{operation_name} failed",
                    duration_seconds=duration,
                    function=func.__name__,
                    error=str(error)
                )

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    report(start_time, e)
                    raise
                report(start_time)
                return result
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                report(start_time, e)
                raise
            report(start_time)
            return result
        return sync_wrapper

    return decorator


class RequestLogger:
    """Logs API traffic and keeps running totals for /health."""

    def __init__(self, logger: QuizGenLogger):
        self.logger = logger
        self.request_count = 0
        self.error_count = 0
        self.total_duration_ms = 0.0
        self.endpoint_counts: Counter = Counter()

    def log_request(self, endpoint: str, method: str, user_id: Optional[str] = None):
        self.request_count += 1
        self.endpoint_counts[f"{method} {endpoint}"] += 1
        self.logger.info(
            f"API Request: {method} {endpoint}",
            user_id=user_id,
            request_count=self.request_count
        )

    def log_response(self, endpoint: str, status_code: int, duration_ms: float):
        self.total_duration_ms += duration_ms
        if status_code >= 400:
            self.error_count += 1
            level = logging.ERROR if status_code >= 500 else logging.WARNING
        else:
            level = logging.INFO
        self.logger.log(
            level,
            f"API Response: {endpoint}",
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            error_count=self.error_count
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get request statistics"""
        requests = max(self.request_count, 1)
        return {
            "total_requests": self.request_count,
            "total_errors": self.error_count,
            "success_rate": round((1 - self.error_count / requests) * 100, 2),
            "avg_duration_ms": round(self.total_duration_ms / requests, 2),
            "busiest_endpoints": dict(self.endpoint_counts.most_common(5)),
        }
