"""
Shared pytest fixtures and configuration for the test suite.
"""

import os
import tempfile

import pytest

# Minimal env so Settings validates on import and no real backend is picked up
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="quizgen-logs-")
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-32chars!"
os.environ["GROQ_API_KEY"] = ""
os.environ["LOCAL_MODEL_PATH"] = os.path.join(os.environ["LOG_DIR"], "missing-model.gguf")

from ai_models import GenerationClient
from error_handling import RetryConfig
from quiz_prompts import option_label
from quiz_store import QuizStore
from schemas import QuizConfig


def make_question(text="What is tested?", qtype="single", n_options=4, answers=None):
    """A well-formed question dict in the model's output shape."""
    if answers is None:
        answers = [0] if qtype == "single" else [0, 1]
    return {
        "question": text,
        "type": qtype,
        "options": [f"{option_label(i)}) Choice {i + 1}" for i in range(n_options)],
        "correctAnswers": answers,
    }


def make_quiz(single, multiple, n_options=4):
    return (
        [make_question(f"Single {i + 1}?", "single", n_options) for i in range(single)]
        + [make_question(f"Multiple {i + 1}?", "multiple", n_options) for i in range(multiple)]
    )


class FakeComplete:
    """Scripted ``complete(prompt)`` coroutine that records every prompt."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts = []

    async def __call__(self, prompt):
        self.prompts.append(prompt)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(prompt)
        return item


def fast_client(complete_fn, max_attempts=1):
    """A GenerationClient with no retry delay."""
    return GenerationClient(
        complete_fn,
        retry_config=RetryConfig(max_attempts=max_attempts, initial_delay=0, max_delay=0),
    )


@pytest.fixture
def config():
    return QuizConfig(total_questions=4, single_correct=2, multiple_correct=2, options_per_question=4)


@pytest.fixture
def store():
    return QuizStore()
