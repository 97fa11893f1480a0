# Load environment variables FIRST before any imports
from dotenv import load_dotenv
load_dotenv()

import io
import logging
import os
import time
from typing import Any, Dict, List, Optional, Union

import uvicorn
from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import get_settings, print_settings
from logger import QuizGenLogger, RequestLogger

settings = get_settings()

# Initialize logging
quizgen_logger = QuizGenLogger("quizgen", log_dir=settings.log_dir, level=settings.log_level)
request_logger = RequestLogger(quizgen_logger)
logger = logging.getLogger("quizgen.api")

from ai_models import ai_circuit_breaker, build_generation_client, ModelLoader
from auth import create_access_token, get_current_admin, get_current_user, login_user, register_user
from error_handling import (
    AuthenticationError,
    ExtractionFailed,
    InvalidConfig,
    QuizNotFound,
    QuizServiceError,
    ValidationFailed,
)
from processing import extract_text_from_bytes
from quiz_engine import QuizGenerator
from quiz_store import quiz_store
from quiz_validation import check_authored_questions
from schemas import HistoryRecord, Question, QuizResult, User, parse_quiz_config
from scoring import score_quiz

# --- App Initialization ---
app = FastAPI(
    title="QuizGen AI API",
    description="Generate multiple-choice quizzes from text, PDFs and images; share, take and score them.",
    version=settings.app_version
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

models = ModelLoader()
generator = QuizGenerator(
    build_generation_client(models.backend.complete if models.backend else None),
    store=quiz_store,
    chunk_size=settings.chunk_size,
    chunk_attempts=settings.chunk_attempts,
    attempt_delay=settings.retry_initial_delay,
    request_timeout=settings.request_timeout_seconds,
)


def get_generator() -> QuizGenerator:
    return generator


# --- Pydantic Models ---

class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class GenerateRequest(BaseModel):
    """Config fields are loosely typed here and checked by parse_quiz_config."""
    content: Optional[str] = None
    totalQuestions: Any = None
    singleCorrect: Any = None
    multipleCorrect: Any = None
    optionsPerQuestion: Any = None
    shareable: bool = False
    title: str = ""
    description: str = ""


class CreateQuizRequest(BaseModel):
    title: str = ""
    description: str = ""
    questions: List[Question]


class SubmitRequest(BaseModel):
    answers: Dict[str, List[Union[int, str]]] = Field(default_factory=dict)


class ScoreRequest(SubmitRequest):
    questions: List[Question]
    quizId: Optional[str] = None


# --- Error handling ---

_STATUS_CODES = (
    (InvalidConfig, 400),
    (ExtractionFailed, 400),
    (ValidationFailed, 400),
    (AuthenticationError, 401),
    (QuizNotFound, 404),
)

EXTRACTION_HINT = "Try a different source: paste the text directly, or upload a text-based PDF instead of a scan."


@app.exception_handler(QuizServiceError)
async def quiz_service_error_handler(request: Request, exc: QuizServiceError):
    status_code = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    details = exc.details
    if isinstance(exc, ExtractionFailed):
        details = f"{details} {EXTRACTION_HINT}".strip()
    return JSONResponse(status_code=status_code, content={"error": exc.message, "details": details})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    request_logger.log_request(request.url.path, request.method)
    response = await call_next(request)
    request_logger.log_response(request.url.path, response.status_code, (time.time() - start_time) * 1000)
    return response


def _result_payload(result: QuizResult) -> Dict[str, Any]:
    return {
        "score": result.total_score,
        "correctCount": result.correct_count,
        "incorrectCount": result.incorrect_count,
        "details": [r.model_dump(by_alias=True) for r in result.per_question],
    }


def _user_payload(user: User) -> Dict[str, Any]:
    return {"id": user.id, "username": user.username, "email": user.email, "isAdmin": user.is_admin}


def _history_record(quiz_id: str, kind: str, result: QuizResult) -> HistoryRecord:
    return HistoryRecord(
        quiz_id=quiz_id,
        type=kind,
        score=result.total_score,
        total_questions=len(result.per_question),
        correct_answers=result.correct_count,
        incorrect_answers=result.incorrect_count,
        details=[r.model_dump(by_alias=True) for r in result.per_question],
    )


# --- API Endpoints ---

@app.on_event("startup")
async def startup_event():
    print_settings()
    logger.info("Generation backend: %s", models.backend_name)


@app.get("/health", status_code=200)
async def health_check():
    """A simple endpoint to confirm the API is running correctly."""
    return {
        "status": "ok",
        "generation_backend": models.backend_name,
        "circuit_breaker": ai_circuit_breaker.get_state()["state"],
        "requests": request_logger.get_stats(),
        "store": quiz_store.get_stats(),
    }


@app.post("/api/auth/register", status_code=201)
async def register(body: RegisterRequest):
    """Create a new user account and return a token."""
    try:
        user = register_user(body.username, body.email, body.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {
        "user": _user_payload(user),
        "token": create_access_token(user.id),
    }


@app.post("/api/auth/login")
async def login(body: LoginRequest):
    """Sign in and return a token."""
    user = login_user(body.email, body.password)
    return {
        "user": _user_payload(user),
        "token": create_access_token(user.id),
    }


@app.get("/api/auth/quiz-history")
async def quiz_history(user: User = Depends(get_current_user)):
    """Quizzes the user has taken and created."""
    history = [r.model_dump(by_alias=True, mode="json") for r in quiz_store.get_history(user.id)]
    return {
        "taken": [r for r in history if r["type"] in ("taken", "shared-taken")],
        "created": [r for r in history if r["type"] == "created"],
    }


@app.post("/api/extract")
async def extract_source(file: UploadFile = File(...)):
    """Extract text from an uploaded PDF, image or document."""
    filename = file.filename or ""
    file_ext = os.path.splitext(filename)[1].lower()
    if file_ext not in settings.allowed_extensions:
        raise ExtractionFailed(
            "Unsupported file type",
            f"Allowed: {', '.join(settings.allowed_extensions)}."
        )

    max_size = settings.max_file_size_mb * 1024 * 1024
    buffer = io.BytesIO()
    file_size = 0
    chunk = await file.read(8192)
    while chunk:
        file_size += len(chunk)
        if file_size > max_size:
            raise HTTPException(
                status_code=400,
                detail=f"File size exceeds {settings.max_file_size_mb}MB limit"
            )
        buffer.write(chunk)
        chunk = await file.read(8192)

    text = extract_text_from_bytes(buffer.getvalue(), filename)
    return {"filename": filename, "text": text, "characterCount": len(text)}


@app.post("/api/quiz/generate")
async def generate_quiz(
    body: GenerateRequest,
    user: User = Depends(get_current_user),
    quiz_generator: QuizGenerator = Depends(get_generator),
):
    """
    Generate a quiz from source text.

    Always returns a structurally valid quiz for a valid request; ``degraded``
    marks quizzes that contain placeholder questions.
    """
    config = parse_quiz_config(
        body.model_dump(),
        max_total_questions=settings.max_total_questions,
        max_options=settings.max_options_per_question,
    )
    try:
        result = await quiz_generator.generate(
            body.content or "",
            config,
            creator_id=user.id,
            shareable=body.shareable,
            title=body.title,
            description=body.description,
        )
    except QuizServiceError:
        raise
    except Exception as e:
        logger.exception("Quiz generation error")
        return JSONResponse(status_code=500, content={"error": "Failed to generate quiz", "details": str(e)})

    return {
        "quiz": [q.model_dump(by_alias=True) for q in result.questions],
        "degraded": result.degraded,
        "attempts": result.attempts,
        "diagnostics": result.diagnostics,
        "quizId": result.quiz_id,
    }


@app.post("/api/quiz/create", status_code=201)
async def create_shared_quiz(body: CreateQuizRequest, user: User = Depends(get_current_user)):
    """Store a generated or hand-written quiz and return its share id."""
    violations = check_authored_questions(body.questions)
    if violations:
        raise ValidationFailed("Please fill all questions, options and select correct answers", violations)

    quiz = quiz_store.publish_quiz(user.id, body.questions, title=body.title, description=body.description)
    logger.info("User %s created quiz %s (%d questions)", user.id, quiz.quiz_id, len(quiz.questions))
    return {"quizId": quiz.quiz_id, "title": quiz.title, "totalQuestions": len(quiz.questions)}


@app.get("/api/quiz/{quiz_id}")
async def get_shared_quiz(quiz_id: str):
    """Return a shared quiz for taking, without its answer key."""
    quiz = quiz_store.load_quiz(quiz_id)
    creator = quiz_store.get_user(quiz.creator_id)
    return {
        "quizId": quiz.quiz_id,
        "title": quiz.title,
        "description": quiz.description,
        "creator": creator.username if creator else None,
        "createdAt": quiz.created_at.isoformat(),
        "questions": [
            {"question": q.question, "type": q.type, "options": q.options}
            for q in quiz.questions
        ],
    }


@app.post("/api/quiz/{quiz_id}/submit")
async def submit_shared_quiz(quiz_id: str, body: SubmitRequest, user: User = Depends(get_current_user)):
    """Score answers to a shared quiz and record them in the user's history."""
    quiz = quiz_store.load_quiz(quiz_id)
    result = score_quiz(quiz.questions, body.answers)
    quiz_store.append_history(user.id, _history_record(quiz_id, "shared-taken", result))
    return _result_payload(result)


@app.post("/api/quiz/score")
async def score_unsaved_quiz(body: ScoreRequest, user: User = Depends(get_current_user)):
    """Score a quiz carried in the request, e.g. one just generated."""
    violations = check_authored_questions(body.questions)
    if violations:
        raise ValidationFailed("Quiz is not well formed", violations)

    result = score_quiz(body.questions, body.answers)
    quiz_store.append_history(
        user.id, _history_record(body.quizId or str(int(time.time() * 1000)), "taken", result)
    )
    return _result_payload(result)


@app.get("/api/admin/users")
async def admin_list_users(admin: User = Depends(get_current_admin)):
    """All registered users, without password hashes."""
    return [
        {**_user_payload(u), "createdAt": u.created_at.isoformat()}
        for u in quiz_store.list_users()
    ]


@app.get("/api/admin/quizzes")
async def admin_list_quizzes(admin: User = Depends(get_current_admin)):
    """All stored quizzes, answer keys included."""
    return [q.model_dump(by_alias=True, mode="json") for q in quiz_store.list_quizzes()]


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        timeout_keep_alive=300,  # 5 minutes keep-alive
        timeout_graceful_shutdown=30  # 30 seconds for graceful shutdown
    )
