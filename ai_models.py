import asyncio
import logging
import os
import threading
from typing import Awaitable, Callable, Optional

from groq import AsyncGroq

from config import settings
from error_handling import CircuitBreaker, GenerationUnavailable, RetryConfig, retry_with_backoff
from quiz_prompts import SYSTEM_PROMPT

logger = logging.getLogger("quizgen.ai_models")

CompleteFn = Callable[[str], Awaitable[str]]


class RemoteBackend:
    """Chat-completion backend on the Groq API."""

    name = "groq"

    def __init__(self, api_key: str, model: str, max_tokens: int, temperature: float):
        self.client = AsyncGroq(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def complete(self, prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
            max_completion_tokens=self.max_tokens,
            top_p=1,
            stream=False,
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("Model returned an empty response")
        return content


class LocalBackend:
    """GGUF model run in-process through llama.cpp, loaded on first use."""

    name = "local"

    def __init__(self, model_path: str, max_tokens: int, temperature: float):
        self.model_path = model_path
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.llm = None
        # llama.cpp contexts are not safe for concurrent calls
        self._lock = threading.Lock()

    def _generate(self, prompt: str) -> str:
        with self._lock:
            if self.llm is None:
                from llama_cpp import Llama

                logger.info("Loading local model from %s", self.model_path)
                self.llm = Llama(
                    model_path=self.model_path,
                    n_ctx=4096,
                    n_gpu_layers=0,  # CPU only for now
                    n_threads=8,
                    n_batch=512,
                    verbose=False
                )
            output = self.llm(
                f"[INST]\n{SYSTEM_PROMPT}\n\n{prompt}\n[/INST]",
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                repeat_penalty=1.2,
                echo=False
            )
        return output['choices'][0]['text'].strip()

    async def complete(self, prompt: str) -> str:
        return await asyncio.to_thread(self._generate, prompt)


class ModelLoader:
    """Picks the generation backend once at startup.

    Groq is used when an API key is configured, otherwise a local GGUF model
    if one exists at ``local_model_path``. With neither, ``backend`` is None
    and every generation falls back to placeholder quizzes.
    """

    def __init__(self):
        self.backend = self._find_backend()

    def _find_backend(self):
        api_key = settings.groq_api_key.strip()
        if api_key:
            logger.info("Using Groq backend (%s)", settings.groq_model)
            return RemoteBackend(
                api_key, settings.groq_model, settings.llm_max_tokens_quiz, settings.llm_temperature
            )
        if os.path.exists(settings.local_model_path):
            logger.info("Using local model backend: %s", settings.local_model_path)
            return LocalBackend(
                settings.local_model_path, settings.llm_max_tokens_quiz, settings.llm_temperature
            )
        logger.warning("No generation backend configured - quizzes will use fallback content")
        return None

    @property
    def backend_name(self) -> str:
        return self.backend.name if self.backend else "none"


class GenerationClient:
    """
    Wraps a ``complete(prompt) -> str`` coroutine with bounded retries.

    Transport and model errors are retried with linearly increasing delay;
    once attempts are exhausted the failure surfaces as GenerationUnavailable.
    The client never fabricates content.
    """

    def __init__(
        self,
        complete_fn: Optional[CompleteFn],
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._complete = complete_fn
        self.retry_config = retry_config or RetryConfig(give_up_on=(GenerationUnavailable,))
        self.circuit_breaker = circuit_breaker

    async def _attempt(self, prompt: str) -> str:
        if self.circuit_breaker is not None:
            return await self.circuit_breaker.call_async(self._complete, prompt)
        return await self._complete(prompt)

    async def complete(self, prompt: str) -> str:
        if self._complete is None:
            raise GenerationUnavailable("No generation backend configured")
        try:
            return await retry_with_backoff(self._attempt, self.retry_config, prompt)
        except GenerationUnavailable:
            raise
        except Exception as e:
            raise GenerationUnavailable(
                f"Generation failed after {self.retry_config.max_attempts} attempts", str(e)
            ) from e


# Shared across requests so repeated failures open the circuit for everyone.
ai_circuit_breaker = CircuitBreaker(
    failure_threshold=settings.cb_failure_threshold,
    success_threshold=2,
    timeout=settings.cb_timeout
)


def build_generation_client(complete_fn: Optional[CompleteFn]) -> GenerationClient:
    """Create a client using the configured retry and circuit-breaker settings."""
    return GenerationClient(
        complete_fn,
        retry_config=RetryConfig(
            max_attempts=settings.max_retries,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            give_up_on=(GenerationUnavailable,),
        ),
        circuit_breaker=ai_circuit_breaker if settings.enable_circuit_breaker else None,
    )
