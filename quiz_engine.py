"""
Quiz generation pipeline.

Source text is chunked, each chunk is sent to the model with its share of the
question quota, and the per-chunk results are aggregated and validated as a
whole. Chunks run strictly in order because a failed chunk hands its quota on
to the next one; whatever is still owed after the last chunk is filled with
fallback questions, so a valid config always yields a structurally valid quiz.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from ai_models import GenerationClient
from error_handling import GenerationUnavailable, InvalidConfig, MalformedOutput, ValidationFailed
from logger import QuizGenLogger, log_execution_time
from output_parser import extract_questions, parse_model_output
from processing import chunk_text
from quiz_prompts import build_quiz_prompt
from quiz_validation import (
    adjust_quiz,
    synthesize_fallback,
    synthesize_questions,
    validate_quiz,
)
from schemas import GenerationResult, Question, QuizConfig

logger = logging.getLogger("quizgen.quiz_engine")
engine_logger = QuizGenLogger("quizgen.quiz_engine")


def allocate_chunks(chunks: List[str], total_questions: int) -> List[Tuple[str, int]]:
    """
    Pair chunks with their share of ``total_questions``.

    When there are more chunks than questions, consecutive chunks are merged
    so every group owes at least one question. Shares differ by at most one,
    with earlier groups taking the remainder.
    """
    if not chunks:
        return []
    if len(chunks) > total_questions:
        per_group, extra = divmod(len(chunks), total_questions)
        groups, start = [], 0
        for i in range(total_questions):
            size = per_group + (1 if i < extra else 0)
            groups.append(" ".join(chunks[start:start + size]))
            start += size
        chunks = groups

    base, extra = divmod(total_questions, len(chunks))
    return [(chunk, base + (1 if i < extra else 0)) for i, chunk in enumerate(chunks)]


def _to_questions(raw_questions: List[Dict[str, Any]]) -> List[Question]:
    questions = []
    for q in raw_questions:
        answers = []
        for a in q["correctAnswers"]:
            if a not in answers:
                answers.append(a)
        questions.append(Question(
            question=q["question"],
            type=q["type"],
            options=list(q["options"]),
            correct_answers=answers,
        ))
    return questions


class QuizGenerator:
    """Generation orchestrator exposed to the API layer."""

    def __init__(
        self,
        client: GenerationClient,
        store=None,
        chunk_size: int = 1000,
        chunk_attempts: int = 3,
        attempt_delay: float = 1.0,
        request_timeout: Optional[float] = None,
    ):
        self.client = client
        self.store = store
        self.chunk_size = chunk_size
        self.chunk_attempts = max(1, chunk_attempts)
        self.attempt_delay = attempt_delay
        self.request_timeout = request_timeout

    def _accept(self, raw: str, config: QuizConfig, chunk: str) -> Tuple[List[Dict[str, Any]], int, List[str]]:
        """
        Parse and validate one model response, adjusting once if needed.

        Returns the accepted questions, how many of them are placeholders and
        the violations seen before adjustment.

        Raises:
            MalformedOutput: if the response cannot be parsed.
            ValidationFailed: if the adjusted candidate is still invalid.
        """
        candidate = extract_questions(parse_model_output(raw))
        report = validate_quiz(candidate, config)
        if report.valid:
            # counts are right but the model may interleave types; stable sort keeps singles first
            return sorted(candidate, key=lambda q: q["type"] != "single"), 0, []

        adjusted = adjust_quiz(candidate, config, chunk)
        recheck = validate_quiz(adjusted, config)
        if not recheck.valid:
            raise ValidationFailed("Quiz validation failed even after adjustment", recheck.violations)

        kept = candidate[:config.total_questions] if isinstance(candidate, list) else []
        padded = config.total_questions - sum(1 for q in kept if isinstance(q, dict))
        return adjusted, padded, report.violations

    async def _generate_chunk(
        self, number: int, chunk: str, config: QuizConfig, trail: List[str]
    ) -> Tuple[Optional[List[Dict[str, Any]]], int, int]:
        """Returns (questions or None, attempts used, placeholder count)."""
        prompt = build_quiz_prompt(chunk, config)

        for attempt in range(1, self.chunk_attempts + 1):
            try:
                raw = await self.client.complete(prompt)
            except GenerationUnavailable as e:
                trail.append(f"Chunk {number}: generation unavailable: {e.message} {e.details}".rstrip())
                return None, attempt, 0

            try:
                questions, padded, violations = self._accept(raw, config, chunk)
            except MalformedOutput as e:
                trail.append(f"Chunk {number} attempt {attempt}: {e.message}: {e.details}")
            except ValidationFailed as e:
                trail.extend(f"Chunk {number} attempt {attempt}: {v}" for v in e.violations)
            else:
                trail.extend(f"Chunk {number} attempt {attempt} (adjusted): {v}" for v in violations)
                return questions, attempt, padded

            logger.warning("Chunk %d attempt %d/%d rejected", number, attempt, self.chunk_attempts)
            if attempt < self.chunk_attempts:
                await asyncio.sleep(self.attempt_delay * attempt)

        return None, self.chunk_attempts, 0

    async def _run_pipeline(self, content: str, config: QuizConfig) -> GenerationResult:
        plan = allocate_chunks(chunk_text(content, self.chunk_size), config.total_questions)
        logger.info("Generating %d questions from %d chunk(s)", config.total_questions, len(plan))

        singles: List[Dict[str, Any]] = []
        multiples: List[Dict[str, Any]] = []
        remaining_single = config.single_correct
        owed = 0
        attempts = 0
        degraded = False
        trail: List[str] = []

        for number, (chunk, share) in enumerate(plan, start=1):
            chunk_total = share + owed
            chunk_single = min(remaining_single, chunk_total)
            chunk_config = QuizConfig(
                total_questions=chunk_total,
                single_correct=chunk_single,
                multiple_correct=chunk_total - chunk_single,
                options_per_question=config.options_per_question,
            )

            questions, used, padded = await self._generate_chunk(number, chunk, chunk_config, trail)
            attempts += used
            if questions is None:
                owed = chunk_total
                logger.warning("Chunk %d failed, carrying %d question(s) forward", number, owed)
                continue

            singles.extend(questions[:chunk_single])
            multiples.extend(questions[chunk_single:])
            remaining_single -= chunk_single
            owed = 0
            degraded = degraded or padded > 0

        if owed:
            degraded = True
            missing_single = config.single_correct - len(singles)
            missing_multiple = config.multiple_correct - len(multiples)
            trail.append(f"Synthesized {missing_single + missing_multiple} fallback question(s)")
            singles.extend(synthesize_questions(
                missing_single, 0, config.options_per_question, content, start=len(singles)
            ))
            multiples.extend(synthesize_questions(
                0, missing_multiple, config.options_per_question, content,
                start=config.single_correct + len(multiples)
            ))

        aggregate = singles + multiples
        final = validate_quiz(aggregate, config)
        if not final.valid:
            trail.extend(f"Aggregate: {v}" for v in final.violations)
            degraded = True
            aggregate = adjust_quiz(aggregate, config, content)
            if not validate_quiz(aggregate, config).valid:
                aggregate = synthesize_fallback(config, content)

        return GenerationResult(
            questions=_to_questions(aggregate),
            degraded=degraded,
            attempts=attempts,
            diagnostics=trail,
        )

    @log_execution_time(engine_logger, "Quiz generation")
    async def generate(
        self,
        content: str,
        config: QuizConfig,
        creator_id: Optional[str] = None,
        shareable: bool = False,
        title: str = "",
        description: str = "",
    ) -> GenerationResult:
        """
        Generate a quiz for ``config`` from ``content``.

        Model, parsing and validation failures never escape: they are absorbed
        by adjustment and fallback and reported through ``degraded`` and
        ``diagnostics``. When ``shareable`` is set the quiz is published to
        the store and its id returned on the result.

        Raises:
            InvalidConfig: if there is no content, or a shareable quiz is
                requested without a creator or store.
        """
        if not content or not content.strip():
            raise InvalidConfig("Missing or invalid input fields", "Content is required")
        if shareable and (self.store is None or creator_id is None):
            raise InvalidConfig("Sharing requires an authenticated creator")

        try:
            result = await asyncio.wait_for(self._run_pipeline(content, config), self.request_timeout)
        except asyncio.TimeoutError:
            logger.error("Quiz generation timed out after %s seconds", self.request_timeout)
            result = GenerationResult(
                questions=_to_questions(synthesize_fallback(config, content)),
                degraded=True,
                diagnostics=[f"Generation timed out after {self.request_timeout} seconds"],
            )

        engine_logger.info(
            "Quiz generated",
            questions=len(result.questions),
            degraded=result.degraded,
            attempts=result.attempts,
            violations=len(result.diagnostics),
        )

        if shareable:
            stored = self.store.publish_quiz(
                creator_id, result.questions, title=title, description=description
            )
            result.quiz_id = stored.quiz_id
        return result
