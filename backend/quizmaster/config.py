"""Application configuration settings."""

from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class PointsSystem(BaseModel):
    """Base points per difficulty plus streak/penalty factors."""

    easy: int = 10
    medium: int = 20
    hard: int = 30
    bonus_multiplier: float = 1.5  # applied to base points on a streak
    penalty_percentage: float = 0.1  # share of base points lost on a wrong answer


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "QuizMaster"
    version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"  # development | staging | production

    # Database ("hosted backend")
    base_dir: Path = Path(__file__).parent.parent
    data_dir: Path = base_dir / "data"
    questions_dir: Path = data_dir / "questions"
    database_url: str = f"sqlite+aiosqlite:///{data_dir / 'quizmaster.db'}"
    use_remote_backend: bool = True

    # Browser-storage analogue
    local_store_path: Path = data_dir / "local_store.json"

    # Auth
    secret_key: str = "change-me-in-production"
    access_token_expire_minutes: int = 60
    password_min_length: int = 8

    # Quiz settings
    questions_per_quiz: int = 10
    time_per_question: int = 30  # seconds
    points: PointsSystem = PointsSystem()
    auto_timer: bool = True

    # Caching / retries
    question_cache_ttl: float = 600.0  # seconds
    leaderboard_cache_ttl: float = 120.0
    max_retries: int = 3
    retry_base_delay: float = 1.0

    # UI timings
    toast_duration: float = 4.0
    change_debounce_seconds: float = 0.5

    # Leaderboard development aid
    simulate_leaderboard: bool = False
    leaderboard_poll_interval: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"


settings = Settings()


CATEGORIES = [
    "General Knowledge",
    "Science",
    "History",
    "Geography",
    "Sports",
    "Entertainment",
    "Technology",
    "Literature",
    "Art",
    "Music",
]

DIFFICULTIES = ["easy", "medium", "hard"]

# Seconds under which a correct answer earns a speed bonus
SPEED_THRESHOLDS = {
    "easy": 10,
    "medium": 15,
    "hard": 20,
}

# (minimum accuracy, letter, description, color)
GRADE_TABLE = [
    (95, "A+", "Outstanding!", "#10b981"),
    (90, "A", "Excellent!", "#10b981"),
    (85, "A-", "Very Good!", "#34d399"),
    (80, "B+", "Good!", "#60a5fa"),
    (75, "B", "Above Average", "#60a5fa"),
    (70, "B-", "Satisfactory", "#93c5fd"),
    (65, "C+", "Fair", "#fbbf24"),
    (60, "C", "Needs Improvement", "#fbbf24"),
    (50, "D", "Below Average", "#f87171"),
    (0, "F", "Keep Practicing!", "#ef4444"),
]

ERROR_MESSAGES = {
    "auth": {
        "invalid_credentials": "Invalid email or password",
        "email_exists": "An account with this email already exists",
        "weak_password": "Password must be at least 8 characters long",
        "network_error": "Network error. Please check your connection",
        "session_expired": "Your session has expired. Please log in again",
        "locked_out": "Too many login attempts. Please wait a few minutes before trying again.",
    },
    "quiz": {
        "load_failed": "Failed to load quiz questions",
        "submit_failed": "Failed to submit quiz answers",
        "no_questions": "No questions available for this category",
        "no_active_question": "No active question",
    },
    "general": {
        "unexpected_error": "An unexpected error occurred",
        "server_error": "Server error. Please try again later",
        "validation_error": "Please check your input and try again",
    },
}

SUCCESS_MESSAGES = {
    "auth": {
        "login_success": "Welcome back!",
        "register_success": "Account created successfully!",
        "logout_success": "Logged out successfully",
    },
    "quiz": {
        "started": "Quiz started successfully!",
        "submitted": "Quiz submitted successfully!",
        "completed": "Congratulations on completing the quiz!",
    },
    "profile": {
        "updated": "Profile updated successfully!",
    },
}

STORAGE_KEYS = {
    "theme": "quizmaster_theme",
    "settings": "quizmaster_settings",
    "quiz_results": "quizmaster_quiz_results",
}

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_SECONDS = 15 * 60
