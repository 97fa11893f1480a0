"""
Error taxonomy and retry logic utilities for QuizGen AI Service
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

logger = logging.getLogger("quizgen.errors")

T = TypeVar('T')


class QuizServiceError(Exception):
    """Base exception for quiz service errors"""

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidConfig(QuizServiceError):
    """Raised when a request violates the quiz configuration contract"""
    pass


class ExtractionFailed(QuizServiceError):
    """Raised when text could not be extracted from an uploaded source"""
    pass


class GenerationUnavailable(QuizServiceError):
    """Raised when the text-generation model cannot be reached after retries"""
    pass


class MalformedOutput(QuizServiceError):
    """Raised when model output cannot be parsed even after repair"""
    pass


class ValidationFailed(QuizServiceError):
    """Raised when a candidate quiz violates the structural contract"""

    def __init__(self, message: str, violations: Optional[List[str]] = None):
        self.violations = list(violations or [])
        super().__init__(message, "; ".join(self.violations))


class QuizNotFound(QuizServiceError):
    """Raised when a shared quiz id does not exist"""
    pass


class AuthenticationError(QuizServiceError):
    """Raised when credentials or tokens are rejected"""
    pass


class RetryConfig:
    """Configuration for retry behavior (linear backoff)"""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 10.0,
        give_up_on: Tuple[Type[BaseException], ...] = ()
    ):
        self.max_attempts = max(1, max_attempts)
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.give_up_on = give_up_on

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following failed attempt number ``attempt`` (1-based)"""
        return min(self.initial_delay * attempt, self.max_delay)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    config: Optional[RetryConfig] = None,
    *args,
    **kwargs
) -> T:
    """
    Retry an async function with linearly increasing delay.

    Cancellation is never retried: ``asyncio.CancelledError`` propagates from
    both the call and the sleep, so an abandoned request stops retrying.

    Args:
        func: Async function to retry
        config: RetryConfig instance (uses default if None)
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from successful function call

    Raises:
        Last exception if all attempts fail
    """
    if config is None:
        config = RetryConfig()

    last_exception: Optional[Exception] = None

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func(*args, **kwargs)
            if attempt > 1:
                logger.info("Retry succeeded on attempt %d", attempt)
            return result
        except config.give_up_on:
            raise
        except Exception as e:
            last_exception = e
            if attempt >= config.max_attempts:
                logger.error("All %d attempts failed: %s", config.max_attempts, e)
                break

            delay = config.delay_for(attempt)
            logger.warning("Attempt %d failed: %s. Retrying in %.2f seconds", attempt, e, delay)
            await asyncio.sleep(delay)

    raise last_exception


class CircuitBreaker:
    """
    Stops calling the generation backend after repeated failures.

    CLOSED passes calls through. After ``failure_threshold`` consecutive
    failures it goes OPEN and rejects calls with GenerationUnavailable for
    ``timeout`` seconds. It then lets calls through HALF_OPEN until
    ``success_threshold`` successes close it or one failure reopens it.
    """

    def __init__(self, failure_threshold: int = 5, success_threshold: int = 2, timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self.reset()

    def reset(self):
        self.state = "CLOSED"
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None

    def _check_open(self):
        if self.state != "OPEN":
            return
        remaining = self.timeout - (time.monotonic() - self.last_failure_time)
        if remaining > 0:
            raise GenerationUnavailable(
                "Generation service unavailable",
                f"Circuit breaker is OPEN for {remaining:.0f} more seconds"
            )
        logger.info("Circuit breaker moving to HALF_OPEN state")
        self.state = "HALF_OPEN"
        self.success_count = 0

    async def call_async(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        self._check_open()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self):
        self.failure_count = 0

        if self.state == "HALF_OPEN":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                logger.info("Circuit breaker CLOSED - service recovered")
                self.state = "CLOSED"
                self.success_count = 0

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == "HALF_OPEN":
            logger.warning("Circuit breaker OPEN - service still failing")
            self.state = "OPEN"
            self.failure_count = 0
            self.success_count = 0
        elif self.failure_count >= self.failure_threshold:
            logger.warning("Circuit breaker OPEN - %d failures detected", self.failure_count)
            self.state = "OPEN"

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state"""
        return {
            "state": self.state,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time
        }
