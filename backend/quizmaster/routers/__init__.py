"""API routers for the QuizMaster application."""

from .auth import router as auth_router
from .leaderboard import router as leaderboard_router
from .notifications import router as notifications_router
from .profile import router as profile_router
from .quiz import router as quiz_router

__all__ = [
    "auth_router",
    "leaderboard_router",
    "notifications_router",
    "profile_router",
    "quiz_router",
]
