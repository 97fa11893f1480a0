"""
In-memory store for users, shared quizzes and quiz history
"""
import secrets
import threading
import uuid
from typing import Any, Dict, List, Optional, Sequence

from error_handling import AuthenticationError, QuizNotFound
from schemas import HistoryRecord, Question, StoredQuiz, User


class QuizStore:
    """Thread-safe store keyed by quiz id and user id"""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._quizzes: Dict[str, StoredQuiz] = {}
        self._history: Dict[str, List[HistoryRecord]] = {}
        self._lock = threading.RLock()

    # --- Users ---

    def create_user(self, username: str, email: str, password_hash: str, is_admin: bool = False) -> User:
        """
        Register a user.

        Raises:
            AuthenticationError: if the username or email is already taken
        """
        email = email.strip().lower()
        with self._lock:
            for user in self._users.values():
                if user.email == email or user.username == username:
                    raise AuthenticationError("User already exists")
            user = User(
                id=str(uuid.uuid4()),
                username=username,
                email=email,
                password_hash=password_hash,
                is_admin=is_admin,
            )
            self._users[user.id] = user
            self._history[user.id] = []
            return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        with self._lock:
            return next((u for u in self._users.values() if u.email == email), None)

    def list_users(self) -> List[User]:
        """All users, oldest first."""
        with self._lock:
            return sorted(self._users.values(), key=lambda u: u.created_at)

    # --- Quizzes ---

    def save_quiz(
        self,
        creator_id: str,
        questions: Sequence[Question],
        title: str = "",
        description: str = ""
    ) -> StoredQuiz:
        """Store a quiz under a new short, unique id."""
        with self._lock:
            quiz_id = secrets.token_urlsafe(8)
            while quiz_id in self._quizzes:
                quiz_id = secrets.token_urlsafe(8)
            quiz = StoredQuiz(
                quiz_id=quiz_id,
                creator_id=creator_id,
                title=title,
                description=description,
                questions=list(questions),
            )
            self._quizzes[quiz_id] = quiz
            return quiz

    def load_quiz(self, quiz_id: str) -> StoredQuiz:
        """
        Raises:
            QuizNotFound: if no quiz has this id
        """
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
        if quiz is None:
            raise QuizNotFound("Quiz not found", f"No quiz with id {quiz_id}")
        return quiz

    def list_quizzes(self) -> List[StoredQuiz]:
        with self._lock:
            return sorted(self._quizzes.values(), key=lambda q: q.created_at)

    def publish_quiz(
        self,
        creator_id: str,
        questions: Sequence[Question],
        title: str = "",
        description: str = ""
    ) -> StoredQuiz:
        """Save a shareable quiz and record it in the creator's history."""
        quiz = self.save_quiz(creator_id, questions, title=title, description=description)
        self.append_history(creator_id, HistoryRecord(
            quiz_id=quiz.quiz_id,
            type="created",
            total_questions=len(quiz.questions),
            details=[q.model_dump(by_alias=True) for q in quiz.questions],
        ))
        return quiz

    # --- History ---

    def append_history(self, user_id: str, record: HistoryRecord) -> None:
        with self._lock:
            self._history.setdefault(user_id, []).append(record)

    def get_history(self, user_id: str) -> List[HistoryRecord]:
        with self._lock:
            return list(self._history.get(user_id, []))

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics"""
        with self._lock:
            return {
                "users": len(self._users),
                "quizzes": len(self._quizzes),
                "history_records": sum(len(h) for h in self._history.values()),
            }


# Global store instance
quiz_store = QuizStore()
