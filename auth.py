"""Password hashing, JWT issuing and the current-user dependencies."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import get_settings
from error_handling import AuthenticationError
from quiz_store import quiz_store
from schemas import User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    return jwt.encode(
        {"sub": user_id, "exp": expire, "type": "access"},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def authenticate(token: str) -> User:
    """Resolve a bearer token to its user, or raise AuthenticationError."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthenticationError("Invalid or expired token") from e

    user = quiz_store.get_user(payload.get("sub", ""))
    if user is None or payload.get("type") != "access":
        raise AuthenticationError("Invalid or expired token")
    return user


def is_admin_email(email: str) -> bool:
    email = email.strip().lower()
    return any(email == admin.strip().lower() for admin in get_settings().admin_emails)


def register_user(username: str, email: str, password: str) -> User:
    if not username.strip() or not email.strip() or not password:
        raise AuthenticationError("Username, email and password are required")
    return quiz_store.create_user(
        username.strip(), email, hash_password(password), is_admin=is_admin_email(email)
    )


def login_user(email: str, password: str) -> User:
    user = quiz_store.find_user_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    """Validate JWT and return the authenticated user. Raises 401 if invalid."""
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return authenticate(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    """Like get_current_user, but 403 unless the user is an admin."""
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
