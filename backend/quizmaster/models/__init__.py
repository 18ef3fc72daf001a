"""Pydantic models for the QuizMaster application."""

from .question import CategoryInfo, Difficulty, PublicQuestion, Question, QuestionStatistics, QuestionType
from .scoring import AnswerScore, Grade, PointsBreakdown, PointsLineItem, QuizInfo, TotalScore
from .quiz import (
    AnswerOutcome,
    AnswerRecord,
    EndReason,
    QuizResult,
    QuizSession,
    QuizStartResult,
    QuizState,
    SessionStatus,
)
from .leaderboard import LeaderboardEntry, LeaderboardPage, UserRankResult
from .notification import Notification, NotificationType
from .user import Profile, ProfileStats, UserSettings

__all__ = [
    "CategoryInfo",
    "Difficulty",
    "PublicQuestion",
    "Question",
    "QuestionStatistics",
    "QuestionType",
    "AnswerScore",
    "Grade",
    "PointsBreakdown",
    "PointsLineItem",
    "QuizInfo",
    "TotalScore",
    "AnswerOutcome",
    "AnswerRecord",
    "EndReason",
    "QuizResult",
    "QuizSession",
    "QuizStartResult",
    "QuizState",
    "SessionStatus",
    "LeaderboardEntry",
    "LeaderboardPage",
    "UserRankResult",
    "Notification",
    "NotificationType",
    "Profile",
    "ProfileStats",
    "UserSettings",
]
