"""User-related Pydantic models."""

from datetime import datetime

from pydantic import BaseModel, Field

from .scoring import AchievementProgress


class UserRegister(BaseModel):
    """Registration form. Validated before any database call."""

    email: str
    password: str
    username: str
    full_name: str | None = None


class Token(BaseModel):
    access_token: str
    token_type: str


class Profile(BaseModel):
    """Public profile with cumulative statistics."""

    id: str
    username: str
    email: str
    full_name: str | None = None
    avatar_url: str | None = None
    total_points: int = 0
    quizzes_completed: int = 0
    average_score: float = 0.0
    best_score: int = 0
    favorite_category: str | None = None
    streak_count: int = 0
    last_quiz_date: datetime | None = None
    created_at: datetime | None = None


class ProfileUpdate(BaseModel):
    """Editable profile fields."""

    username: str | None = None
    full_name: str | None = None


class ProfileStats(BaseModel):
    """Cumulative statistics written after each quiz."""

    total_points: int = 0
    quizzes_completed: int = 0
    average_score: float = 0.0
    best_score: int = 0
    last_quiz_date: datetime | None = None


class ProfileOverview(BaseModel):
    """Profile page payload."""

    profile: Profile
    achievements: list[AchievementProgress] = Field(default_factory=list)
    earned_achievements: list[str] = Field(default_factory=list)


class UserSettings(BaseModel):
    """Client preferences kept in local storage."""

    theme: str = "light"
    notifications: bool = True
    sound: bool = True
