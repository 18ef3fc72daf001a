"""Business logic services."""

from .leaderboard import DatabaseRankingSource, InMemoryRankingSource, LeaderboardCache, RankingSource
from .notifications import NotificationCenter, quiz_toast_listener
from .question_bank import DatabaseQuestionSource, InMemoryQuestionSource, QuestionLoader, QuestionSource
from .quiz_session import QuizSessionManager, QuizSessionRegistry
from .quiz_store import DatabaseQuizStore, QuizStore
from .scoring import ScoreCalculator

__all__ = [
    "DatabaseRankingSource",
    "InMemoryRankingSource",
    "LeaderboardCache",
    "RankingSource",
    "NotificationCenter",
    "quiz_toast_listener",
    "DatabaseQuestionSource",
    "InMemoryQuestionSource",
    "QuestionLoader",
    "QuestionSource",
    "QuizSessionManager",
    "QuizSessionRegistry",
    "DatabaseQuizStore",
    "QuizStore",
    "ScoreCalculator",
]
