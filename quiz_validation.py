"""
Structural validation, deterministic adjustment and fallback synthesis of quizzes.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from quiz_prompts import option_label
from schemas import Question, QuizConfig

EXCERPT_LENGTH = 20


@dataclass
class ValidationReport:
    valid: bool
    violations: List[str] = field(default_factory=list)


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_quiz(candidate: Any, config: QuizConfig) -> ValidationReport:
    """
    Check a parsed candidate against the requested quiz shape.

    Every check runs, so one call reports every defect. The only exception is
    a candidate that is not an array, for which nothing else can be checked.
    """
    if not isinstance(candidate, list):
        return ValidationReport(False, ["Quiz must be an array"])

    violations = []
    n_options = config.options_per_question

    if len(candidate) != config.total_questions:
        violations.append(f"Expected {config.total_questions} questions, but got {len(candidate)}")

    types = [q.get("type") if isinstance(q, dict) else None for q in candidate]
    single_count = types.count("single")
    multiple_count = types.count("multiple")
    if single_count != config.single_correct:
        violations.append(
            f"Expected {config.single_correct} single correct questions, but got {single_count}"
        )
    if multiple_count != config.multiple_correct:
        violations.append(
            f"Expected {config.multiple_correct} multiple correct questions, but got {multiple_count}"
        )

    for index, q in enumerate(candidate, start=1):
        if not isinstance(q, dict):
            violations.append(f"Question {index}: must be an object")
            continue

        text = q.get("question")
        if not isinstance(text, str) or not text.strip():
            violations.append(f"Question {index}: question text must be a non-empty string")

        options = q.get("options")
        if not isinstance(options, list) or len(options) != n_options:
            got = len(options) if isinstance(options, list) else 0
            violations.append(f"Question {index}: Expected {n_options} options, but got {got}")
        elif not all(isinstance(opt, str) and opt.strip() for opt in options):
            violations.append(f"Question {index}: every option must be a non-empty string")

        answers = q.get("correctAnswers")
        if not isinstance(answers, list) or not answers:
            violations.append(f"Question {index}: correctAnswers must be a non-empty array")
            continue

        distinct = len({a for a in answers if _is_index(a)})
        if q.get("type") == "single" and distinct != 1:
            violations.append(
                f"Question {index}: Single correct question must have exactly 1 correct answer, got {distinct}"
            )
        if q.get("type") == "multiple" and distinct < 2:
            violations.append(
                f"Question {index}: Multiple correct question must have 2 or more correct answers, got {distinct}"
            )
        for pos, answer in enumerate(answers):
            if not _is_index(answer) or not 0 <= answer < n_options:
                violations.append(
                    f"Question {index}: correctAnswers[{pos}] = {answer!r} is out of bounds "
                    f"(must be between 0 and {n_options - 1})"
                )

    return ValidationReport(not violations, violations)


def _excerpt(source_sample: str) -> str:
    return " ".join(source_sample.split())[:EXCERPT_LENGTH]


def placeholder_question(index: int, is_single: bool, n_options: int, source_sample: str, kind: str) -> Dict[str, Any]:
    """A trivially valid question numbered ``index`` (0-based)."""
    return {
        "question": f"{kind} Question {index + 1} (From: {_excerpt(source_sample)}...)",
        "type": "single" if is_single else "multiple",
        "options": [f"{option_label(j)}) {kind} Option {j + 1}" for j in range(n_options)],
        "correctAnswers": [0] if is_single else [0, 1],
    }


def _valid_indices(answers: Any, n_options: int) -> List[int]:
    if not isinstance(answers, list):
        return []
    seen = []
    for a in answers:
        if _is_index(a) and 0 <= a < n_options and a not in seen:
            seen.append(a)
    return seen


def adjust_quiz(candidate: Any, config: QuizConfig, source_sample: str = "") -> List[Dict[str, Any]]:
    """
    Coerce a near-valid candidate towards the requested shape.

    Extra questions are dropped, missing ones padded with placeholders, and
    every entry is retyped by position: the first ``single_correct`` become
    single with one answer, the rest multiple with exactly two. Options and
    question text are left alone, so the result still needs validating.
    """
    questions = list(candidate) if isinstance(candidate, list) else []
    questions = questions[:config.total_questions]
    n_options = config.options_per_question

    adjusted = []
    for i in range(config.total_questions):
        is_single = i < config.single_correct
        q = questions[i] if i < len(questions) else None
        if not isinstance(q, dict):
            adjusted.append(placeholder_question(i, is_single, n_options, source_sample, "Adjusted"))
            continue

        answers = _valid_indices(q.get("correctAnswers"), n_options)
        if is_single:
            correct = answers[:1] or [0]
        else:
            correct = answers[:2] if len(answers) >= 2 else [0, 1]
        adjusted.append({**q, "type": "single" if is_single else "multiple", "correctAnswers": correct})

    return adjusted


def synthesize_questions(
    single_count: int,
    multiple_count: int,
    n_options: int,
    source_sample: str,
    start: int = 0,
) -> List[Dict[str, Any]]:
    """Placeholder questions, singles first, numbered from ``start``."""
    return [
        placeholder_question(start + i, i < single_count, n_options, source_sample, "Fallback")
        for i in range(single_count + multiple_count)
    ]


def synthesize_fallback(config: QuizConfig, source_sample: str = "") -> List[Dict[str, Any]]:
    """A complete placeholder quiz that satisfies validate_quiz by construction."""
    return synthesize_questions(
        config.single_correct, config.multiple_correct, config.options_per_question, source_sample
    )


def check_authored_questions(questions: Sequence[Question]) -> List[str]:
    """Violations for a manually authored quiz, where option counts may vary per question."""
    if not questions:
        return ["Quiz must contain at least one question"]

    violations = []
    for index, q in enumerate(questions, start=1):
        if not q.question.strip():
            violations.append(f"Question {index}: question text is required")
        if len(q.options) < 2:
            violations.append(f"Question {index}: at least 2 options are required")
        if not all(opt.strip() for opt in q.options):
            violations.append(f"Question {index}: every option needs text")
        if not q.correct_answers:
            violations.append(f"Question {index}: select at least one correct answer")
            continue
        distinct = len(set(q.correct_answers))
        if q.type == "single" and distinct != 1:
            violations.append(f"Question {index}: single correct question must have exactly 1 correct answer")
        if q.type == "multiple" and distinct < 2:
            violations.append(f"Question {index}: multiple correct question must have 2 or more correct answers")
        if any(not 0 <= a < len(q.options) for a in q.correct_answers):
            violations.append(f"Question {index}: correct answer index out of range")
    return violations
