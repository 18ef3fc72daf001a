"""Form input validation, run before any database call."""

import re

from quizmaster.config import settings

EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
SIMPLE_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
SPECIAL_CHARS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")

RESERVED_USERNAMES = {"admin", "root", "user", "test", "null", "undefined", "system"}
WEAK_PASSWORDS = {"password", "123456", "qwerty", "admin", "letmein"}
MAX_EMAIL_LENGTH = 254


def is_valid_email(email: str) -> bool:
    """Quick format check used for inline feedback."""
    return bool(SIMPLE_EMAIL_PATTERN.match(email or ""))


def validate_email(email: str) -> list[str]:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        return ["Please enter a valid email address"]
    if len(email) > MAX_EMAIL_LENGTH:
        return ["Email address is too long"]
    return []


def validate_username(username: str) -> list[str]:
    username = (username or "").strip()
    errors = []
    if len(username) < 3:
        errors.append("Username must be at least 3 characters long")
    if len(username) > 19:
        errors.append("Username must be less than 20 characters long")
    if not USERNAME_PATTERN.match(username):
        errors.append("Username can only contain letters, numbers, and underscores")
    if username.lower() in RESERVED_USERNAMES:
        errors.append("This username is not allowed")
    return errors


def validate_password(password: str, min_length: int | None = None) -> list[str]:
    password = password or ""
    min_length = min_length or settings.password_min_length
    errors = []
    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain lowercase letters")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain uppercase letters")
    if not re.search(r"\d", password):
        errors.append("Password must contain numbers")
    if not SPECIAL_CHARS.search(password):
        errors.append("Password must contain special characters")
    if password.lower() in WEAK_PASSWORDS:
        errors.append("This password is too common and weak")
    return errors


def password_strength(password: str) -> dict:
    """Score 0-5 with a strength label and feedback for a password meter."""
    checks = [
        (len(password) >= 8, "Password must be at least 8 characters long"),
        (bool(re.search(r"[a-z]", password)), "Password must contain lowercase letters"),
        (bool(re.search(r"[A-Z]", password)), "Password must contain uppercase letters"),
        (bool(re.search(r"\d", password)), "Password must contain numbers"),
        (bool(SPECIAL_CHARS.search(password)), "Password must contain special characters"),
    ]
    score = sum(1 for passed, _ in checks if passed)
    if score <= 2:
        strength = "weak"
    elif score == 3:
        strength = "fair"
    elif score == 4:
        strength = "good"
    else:
        strength = "strong"
    return {
        "score": score,
        "strength": strength,
        "feedback": [message for passed, message in checks if not passed],
    }


def validate_registration(email: str, password: str, username: str) -> dict[str, list[str]]:
    """Field -> messages for every field that failed. Empty when all pass."""
    errors = {
        "email": validate_email(email),
        "password": validate_password(password),
        "username": validate_username(username),
    }
    return {field: messages for field, messages in errors.items() if messages}
