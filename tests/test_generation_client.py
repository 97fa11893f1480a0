"""
Unit tests for error_handling.py retry/circuit breaker and the GenerationClient.
No model backend or network required.
"""

import asyncio

import pytest

from ai_models import GenerationClient, ModelLoader
from conftest import FakeComplete, fast_client
from error_handling import (
    CircuitBreaker,
    GenerationUnavailable,
    RetryConfig,
    ValidationFailed,
    retry_with_backoff,
)


@pytest.fixture
def recorded_sleeps(monkeypatch):
    sleeps = []

    async def _fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr(asyncio, "sleep", _fake_sleep)
    return sleeps


# ────────────────────────────────────────────────────────────────────────────
# retry_with_backoff
# ────────────────────────────────────────────────────────────────────────────

class TestRetryWithBackoff:

    async def test_linear_delays_then_last_error(self, recorded_sleeps):
        fake = FakeComplete([RuntimeError("boom")])
        config = RetryConfig(max_attempts=3, initial_delay=1.0, max_delay=10.0)
        with pytest.raises(RuntimeError, match="boom"):
            await retry_with_backoff(fake, config, "prompt")
        assert len(fake.prompts) == 3
        assert recorded_sleeps == [1.0, 2.0]

    async def test_delay_capped(self):
        config = RetryConfig(initial_delay=4.0, max_delay=10.0)
        assert [config.delay_for(n) for n in (1, 2, 3)] == [4.0, 8.0, 10.0]

    async def test_succeeds_after_failure(self, recorded_sleeps):
        fake = FakeComplete([ConnectionError("down"), "ok"])
        assert await retry_with_backoff(fake, RetryConfig(max_attempts=3), "p") == "ok"
        assert len(fake.prompts) == 2

    async def test_give_up_on_is_not_retried(self, recorded_sleeps):
        fake = FakeComplete([GenerationUnavailable("open")])
        config = RetryConfig(max_attempts=5, give_up_on=(GenerationUnavailable,))
        with pytest.raises(GenerationUnavailable):
            await retry_with_backoff(fake, config, "p")
        assert len(fake.prompts) == 1
        assert recorded_sleeps == []

    async def test_cancellation_propagates(self):
        started = asyncio.Event()

        async def _hang(prompt):
            started.set()
            await asyncio.Event().wait()

        task = asyncio.create_task(retry_with_backoff(_hang, RetryConfig(max_attempts=3), "p"))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


# ────────────────────────────────────────────────────────────────────────────
# CircuitBreaker
# ────────────────────────────────────────────────────────────────────────────

class TestCircuitBreaker:

    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, timeout=60.0)
        fake = FakeComplete([RuntimeError("fail")])
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call_async(fake, "p")
        assert breaker.get_state()["state"] == "OPEN"

        with pytest.raises(GenerationUnavailable):
            await breaker.call_async(fake, "p")
        assert len(fake.prompts) == 2

    async def test_half_open_recovers(self):
        breaker = CircuitBreaker(failure_threshold=1, success_threshold=1, timeout=0.0)
        with pytest.raises(RuntimeError):
            await breaker.call_async(FakeComplete([RuntimeError("fail")]), "p")
        assert breaker.state == "OPEN"

        assert await breaker.call_async(FakeComplete(["ok"]), "p") == "ok"
        assert breaker.state == "CLOSED"


# ────────────────────────────────────────────────────────────────────────────
# GenerationClient
# ────────────────────────────────────────────────────────────────────────────

class TestGenerationClient:

    async def test_returns_model_text(self):
        client = fast_client(FakeComplete(["[]"]))
        assert await client.complete("p") == "[]"

    async def test_retries_then_unavailable(self):
        fake = FakeComplete([TimeoutError("slow")])
        client = fast_client(fake, max_attempts=3)
        with pytest.raises(GenerationUnavailable) as exc_info:
            await client.complete("p")
        assert len(fake.prompts) == 3
        assert "slow" in exc_info.value.details

    async def test_no_backend(self):
        with pytest.raises(GenerationUnavailable, match="No generation backend configured"):
            await GenerationClient(None).complete("p")

    async def test_open_circuit_short_circuits(self):
        breaker = CircuitBreaker(failure_threshold=1, timeout=60.0)
        fake = FakeComplete([RuntimeError("fail")])
        client = GenerationClient(
            fake,
            retry_config=RetryConfig(max_attempts=3, initial_delay=0, max_delay=0,
                                     give_up_on=(GenerationUnavailable,)),
            circuit_breaker=breaker,
        )
        with pytest.raises(GenerationUnavailable):
            await client.complete("p")
        # second attempt hits the open circuit and gives up immediately
        assert len(fake.prompts) == 1

    async def test_other_service_errors_are_wrapped(self):
        client = fast_client(FakeComplete([ValidationFailed("odd", ["x"])]))
        with pytest.raises(GenerationUnavailable):
            await client.complete("p")


def test_model_loader_without_backend():
    loader = ModelLoader()
    assert loader.backend is None
    assert loader.backend_name == "none"
