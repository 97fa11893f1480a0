"""
Domain models for quiz generation, storage and scoring.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from error_handling import InvalidConfig

QuestionType = Literal["single", "multiple"]
HistoryType = Literal["taken", "created", "shared-taken"]

CONFIG_FIELDS = ("totalQuestions", "singleCorrect", "multipleCorrect", "optionsPerQuestion")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuizConfig(BaseModel):
    """Requested quiz shape. Single-type questions always come first."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total_questions: int = Field(alias="totalQuestions", gt=0)
    single_correct: int = Field(alias="singleCorrect", ge=0)
    multiple_correct: int = Field(alias="multipleCorrect", ge=0)
    options_per_question: int = Field(alias="optionsPerQuestion", ge=2)

    @model_validator(mode="after")
    def check_type_split(self) -> "QuizConfig":
        if self.single_correct + self.multiple_correct != self.total_questions:
            raise ValueError("Single + Multiple correct questions must equal Total questions")
        return self


class Question(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    type: QuestionType
    options: List[str]
    correct_answers: List[int] = Field(alias="correctAnswers")


class QuestionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_text: str = Field(alias="questionText")
    user_answer_label: str = Field(alias="userAnswerLabel")
    correct_answer_label: str = Field(alias="correctAnswerLabel")
    is_correct: bool = Field(alias="isCorrect")
    score: float
    type: QuestionType


class QuizResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_score: float = Field(alias="totalScore")
    correct_count: int = Field(alias="correctCount")
    incorrect_count: int = Field(alias="incorrectCount")
    per_question: List[QuestionResult] = Field(alias="perQuestion")


class GenerationResult(BaseModel):
    """Outcome of one generation request.

    ``degraded`` is set when any question was synthesized rather than
    produced by the model; ``diagnostics`` carries the validator violations
    and failure notes collected along the way.
    """

    model_config = ConfigDict(populate_by_name=True)

    questions: List[Question]
    degraded: bool = False
    attempts: int = 0
    diagnostics: List[str] = Field(default_factory=list)
    quiz_id: Optional[str] = Field(default=None, alias="quizId")


class StoredQuiz(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quiz_id: str = Field(alias="quizId")
    creator_id: str = Field(alias="creatorId")
    title: str = ""
    description: str = ""
    questions: List[Question]
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")


class HistoryRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quiz_id: str = Field(alias="quizId")
    type: HistoryType = "taken"
    date: datetime = Field(default_factory=_utcnow)
    score: float = 0.0
    total_questions: int = Field(default=0, alias="totalQuestions")
    correct_answers: int = Field(default=0, alias="correctAnswers")
    incorrect_answers: int = Field(default=0, alias="incorrectAnswers")
    details: List[Dict[str, Any]] = Field(default_factory=list)


class User(BaseModel):
    id: str
    username: str
    email: str
    password_hash: str
    is_admin: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


def _error_message(error: Dict[str, Any]) -> str:
    msg = str(error.get("msg", "invalid value"))
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    loc = ".".join(str(part) for part in error.get("loc", ()))
    return f"{loc}: {msg}" if loc else msg


def parse_quiz_config(
    data: Mapping[str, Any],
    max_total_questions: Optional[int] = None,
    max_options: Optional[int] = None,
) -> QuizConfig:
    """Build a QuizConfig from loosely-typed request data.

    Raises:
        InvalidConfig: on missing fields, bad types, bounds or a type split
            that does not add up to the total.
    """
    missing = [name for name in CONFIG_FIELDS if data.get(name) is None]
    if missing:
        raise InvalidConfig("Missing or invalid input fields", f"Missing: {', '.join(missing)}")

    try:
        config = QuizConfig.model_validate({name: data[name] for name in CONFIG_FIELDS})
    except ValidationError as e:
        messages = [_error_message(err) for err in e.errors()]
        raise InvalidConfig(messages[0], "; ".join(messages)) from e

    if max_total_questions is not None and config.total_questions > max_total_questions:
        raise InvalidConfig(
            f"Total questions cannot exceed {max_total_questions}",
            f"Requested {config.total_questions}"
        )
    if max_options is not None and config.options_per_question > max_options:
        raise InvalidConfig(
            f"Options per question cannot exceed {max_options}",
            f"Requested {config.options_per_question}"
        )
    return config
