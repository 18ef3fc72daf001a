"""Database layer for the QuizMaster application."""

from .change_feed import ProfileChangeFeed
from .database import Database, get_db, init_db
from .models import (
    AchievementDB,
    Base,
    CategoryDB,
    ProfileDB,
    QuestionDB,
    QuizAnswerDB,
    QuizResultDB,
    QuizSessionDB,
    UserAchievementDB,
)

__all__ = [
    "ProfileChangeFeed",
    "Database",
    "get_db",
    "init_db",
    "AchievementDB",
    "Base",
    "CategoryDB",
    "ProfileDB",
    "QuestionDB",
    "QuizAnswerDB",
    "QuizResultDB",
    "QuizSessionDB",
    "UserAchievementDB",
]
