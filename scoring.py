"""
Scoring of submitted answers.

Single-correct questions earn 1 only for exactly the correct option.
Multiple-correct questions earn the fraction of correct options selected, but
nothing at all once any wrong option is selected. A question counts as correct
only with full credit.
"""
import logging
from typing import Any, Iterable, List, Mapping, Sequence, Set, Union

from schemas import Question, QuestionResult, QuizResult

logger = logging.getLogger("quizgen.scoring")

Selection = Iterable[Union[int, str]]


def _to_index(item: Any) -> int:
    if isinstance(item, bool):
        return -1
    if isinstance(item, int):
        return item
    if isinstance(item, str):
        label = item.strip().lower()
        if label.isdigit():
            return int(label)
        # "a", "b)", "c." -> letter position
        if label and "a" <= label[0] <= "z" and (len(label) == 1 or label[1] in ").:"):
            return ord(label[0]) - ord("a")
    return -1


def normalize_selection(selection: Selection, n_options: int) -> Set[int]:
    """Convert option letters or indices into a set of valid 0-based indices."""
    indices = {_to_index(item) for item in selection or ()}
    return {i for i in indices if 0 <= i < n_options}


def score_question(question: Question, selected: Set[int]) -> QuestionResult:
    correct = set(question.correct_answers)

    if question.type == "single":
        score = 1.0 if selected == correct else 0.0
    elif selected - correct:
        score = 0.0
    else:
        score = len(selected & correct) / len(correct)

    user_label = ", ".join(question.options[i] for i in sorted(selected)) or "Not answered"
    correct_label = ", ".join(
        question.options[i] for i in question.correct_answers if 0 <= i < len(question.options)
    )
    return QuestionResult(
        question_text=question.question,
        user_answer_label=user_label,
        correct_answer_label=correct_label,
        is_correct=score == 1.0,
        score=score,
        type=question.type,
    )


def score_quiz(questions: Sequence[Question], submission: Mapping[Any, Selection]) -> QuizResult:
    """
    Score a submission keyed by question index (ints or numeric strings).

    Unanswered questions score 0.
    """
    answers = {}
    for key, selection in (submission or {}).items():
        try:
            answers[int(key)] = selection
        except (TypeError, ValueError):
            logger.warning("Ignoring answer for invalid question key %r", key)

    results: List[QuestionResult] = []
    for index, question in enumerate(questions):
        selected = normalize_selection(answers.get(index, ()), len(question.options))
        results.append(score_question(question, selected))

    correct_count = sum(1 for r in results if r.is_correct)
    return QuizResult(
        total_score=sum(r.score for r in results),
        correct_count=correct_count,
        incorrect_count=len(results) - correct_count,
        per_question=results,
    )
