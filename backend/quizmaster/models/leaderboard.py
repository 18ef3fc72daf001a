"""Leaderboard models."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class LeaderboardEntry(BaseModel):
    """A ranked user row."""

    id: str
    username: str
    full_name: str | None = None
    avatar_url: str | None = None
    total_points: int = 0
    quizzes_completed: int = 0
    average_score: float = 0.0
    best_score: int = 0
    rank: int = 0
    joined_date: date | datetime | None = None

    @property
    def avatar(self) -> str:
        return self.username[:1].upper() if self.username else "U"


class LeaderboardPage(BaseModel):
    """Result of a top-users query."""

    success: bool = True
    users: list[LeaderboardEntry] = Field(default_factory=list)
    total: int = 0
    category: str = "all"
    source: Literal["remote", "fallback"] = "fallback"


class UserRankResult(BaseModel):
    """A single user's rank plus neighbouring entries."""

    success: bool
    user: LeaderboardEntry | None = None
    rank: int | None = None
    total_users: int | None = None
    context: list[LeaderboardEntry] = Field(default_factory=list)
    message: str | None = None


class ScoreUpdateResult(BaseModel):
    """Outcome of update_user_score."""

    success: bool
    message: str | None = None
    error: str | None = None


class LeaderboardStatistics(BaseModel):
    """Aggregate view of the current ranked list."""

    total_users: int = 0
    total_quizzes: int = 0
    average_score: int = 0
    top_score: int = 0
    most_active_user: str | None = None


class LeaderboardState(BaseModel):
    """Current cache status."""

    is_loading: bool
    total_users: int
    current_user_rank: LeaderboardEntry | None = None
    has_simulated_updates: bool
    subscribers: int
    last_updated: datetime | None = None
