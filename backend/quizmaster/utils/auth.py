"""Password hashing, JWT tokens and login lockout."""

import time
from datetime import datetime, timedelta
from typing import Callable

from jose import JWTError, jwt
from passlib.context import CryptContext

from quizmaster.config import LOCKOUT_SECONDS, MAX_LOGIN_ATTEMPTS, settings

SECRET_KEY = settings.secret_key
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

__all__ = [
    "ACCESS_TOKEN_EXPIRE_MINUTES",
    "ALGORITHM",
    "JWTError",
    "LoginAttemptTracker",
    "SECRET_KEY",
    "create_access_token",
    "decode_access_token",
    "get_password_hash",
    "jwt",
    "verify_password",
]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(
    data: dict,
    expires_delta: timedelta | None = None,
    secret_key: str = SECRET_KEY,
) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str = SECRET_KEY) -> str | None:
    """Return the token subject, or None if the token is invalid or expired."""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


class LoginAttemptTracker:
    """Locks an identifier out after too many failed logins within a window."""

    def __init__(
        self,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        window: float = LOCKOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.window = window
        self.clock = clock
        self._attempts: dict[str, list[float]] = {}

    def _recent(self, identifier: str) -> list[float]:
        cutoff = self.clock() - self.window
        attempts = [t for t in self._attempts.get(identifier, []) if t > cutoff]
        if attempts:
            self._attempts[identifier] = attempts
        else:
            self._attempts.pop(identifier, None)
        return attempts

    def __len__(self) -> int:
        return len(self._attempts)

    def is_locked(self, identifier: str) -> bool:
        return len(self._recent(identifier)) >= self.max_attempts

    def record_failure(self, identifier: str) -> None:
        cutoff = self.clock() - self.window
        expired = [key for key, attempts in self._attempts.items() if attempts[-1] <= cutoff]
        for key in expired:
            del self._attempts[key]
        self._attempts[identifier] = self._recent(identifier) + [self.clock()]

    def reset(self, identifier: str) -> None:
        self._attempts.pop(identifier, None)
