"""Remote persistence for quiz sessions, answers, results and achievements."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from fractions import Fraction

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from quizmaster.db.database import Database
from quizmaster.db.models import (
    AchievementDB,
    ProfileDB,
    QuestionDB,
    QuizAnswerDB,
    QuizResultDB,
    QuizSessionDB,
    UserAchievementDB,
)
from quizmaster.errors import ExternalServiceError
from quizmaster.models.quiz import AnswerRecord, QuizResult
from quizmaster.models.user import ProfileStats
from quizmaster.utils.formatting import round_half_up

logger = logging.getLogger(__name__)


class QuizStore(ABC):
    """Write side of the backing store, used best-effort by the session manager."""

    @abstractmethod
    async def create_session(
        self,
        user_id: str | None,
        category: str,
        difficulty: str,
        total_questions: int,
        time_limit: int,
    ) -> str:
        """Create an active session row and return its id."""

    @abstractmethod
    async def record_answer(self, session_id: str, record: AnswerRecord) -> None:
        ...

    @abstractmethod
    async def update_session(self, session_id: str, **updates) -> None:
        ...

    @abstractmethod
    async def save_result(self, result: QuizResult) -> None:
        ...

    @abstractmethod
    async def update_profile_stats(self, user_id: str, result: QuizResult) -> ProfileStats | None:
        ...

    @abstractmethod
    async def check_achievements(self, user_id: str) -> list[str]:
        """Award any newly earned achievements; returns their names."""


class DatabaseQuizStore(QuizStore):
    """QuizStore backed by the SQLAlchemy database."""

    SESSION_FIELDS = {
        "questions_answered",
        "correct_answers",
        "total_points",
        "time_spent",
        "status",
        "completed_at",
    }

    def __init__(self, database: Database):
        self.database = database

    async def create_session(
        self,
        user_id: str | None,
        category: str,
        difficulty: str,
        total_questions: int,
        time_limit: int,
    ) -> str:
        try:
            async with self.database.async_session() as session:
                db_session = QuizSessionDB(
                    user_id=user_id,
                    category=category,
                    difficulty=difficulty,
                    total_questions=total_questions,
                    time_limit=time_limit,
                    status="active",
                )
                session.add(db_session)
                await session.commit()
                return db_session.id
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to create quiz session: {e}", code="connection_error") from e

    async def record_answer(self, session_id: str, record: AnswerRecord) -> None:
        try:
            async with self.database.async_session() as session:
                session.add(
                    QuizAnswerDB(
                        quiz_session_id=session_id,
                        question_id=record.question_id,
                        user_answer=record.selected_answer,
                        is_correct=record.is_correct,
                        points_earned=record.points,
                        time_taken=record.time_spent,
                        answered_at=record.timestamp,
                    )
                )
                db_question = await session.get(QuestionDB, record.question_id)
                if db_question is not None:
                    db_question.times_answered += 1
                    if record.is_correct:
                        db_question.times_correct += 1
                await session.commit()
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to save answer: {e}", code="connection_error") from e

    async def update_session(self, session_id: str, **updates) -> None:
        unknown = set(updates) - self.SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        try:
            async with self.database.async_session() as session:
                db_session = await session.get(QuizSessionDB, session_id)
                if db_session is None:
                    raise ExternalServiceError(f"Quiz session {session_id} not found", code="PGRST116", transient=False)
                for key, value in updates.items():
                    setattr(db_session, key, value)
                await session.commit()
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to update quiz session: {e}", code="connection_error") from e

    async def save_result(self, result: QuizResult) -> None:
        if result.user_id is None:
            return
        try:
            async with self.database.async_session() as session:
                session.add(
                    QuizResultDB(
                        user_id=result.user_id,
                        quiz_session_id=result.session_id,
                        category=result.category,
                        difficulty=result.difficulty,
                        questions_answered=result.answered,
                        correct_answers=result.correct_answers,
                        total_points=result.score,
                        accuracy=result.accuracy,
                        time_spent=result.time_spent,
                        completed_at=result.completed_at,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to save quiz result: {e}", code="connection_error") from e

    async def update_profile_stats(self, user_id: str, result: QuizResult) -> ProfileStats | None:
        """Fold one result into the cumulative profile statistics."""
        try:
            async with self.database.async_session() as session:
                profile = await session.get(ProfileDB, user_id)
                if profile is None:
                    logger.warning(f"Profile {user_id} not found; skipping statistics update")
                    return None

                profile.total_points = (profile.total_points or 0) + result.score
                profile.quizzes_completed = (profile.quizzes_completed or 0) + 1
                profile.average_score = round_half_up(Fraction(profile.total_points, profile.quizzes_completed), 2)
                profile.best_score = max(profile.best_score or 0, result.score)
                profile.last_quiz_date = result.completed_at

                favorite = await session.execute(
                    select(QuizResultDB.category, func.count().label("plays"))
                    .where(QuizResultDB.user_id == user_id)
                    .group_by(QuizResultDB.category)
                    .order_by(func.count().desc())
                    .limit(1)
                )
                row = favorite.first()
                if row is not None:
                    profile.favorite_category = row[0]

                await session.commit()
                return ProfileStats(
                    total_points=profile.total_points,
                    quizzes_completed=profile.quizzes_completed,
                    average_score=profile.average_score,
                    best_score=profile.best_score,
                    last_quiz_date=profile.last_quiz_date,
                )
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to update profile statistics: {e}", code="connection_error") from e

    async def check_achievements(self, user_id: str) -> list[str]:
        try:
            async with self.database.async_session() as session:
                profile = await session.get(ProfileDB, user_id)
                if profile is None:
                    return []

                categories_tried = await session.scalar(
                    select(func.count(func.distinct(QuizResultDB.category))).where(QuizResultDB.user_id == user_id)
                )
                best_accuracy = await session.scalar(
                    select(func.max(QuizResultDB.accuracy)).where(QuizResultDB.user_id == user_id)
                )
                earned_ids = select(UserAchievementDB.achievement_id).where(UserAchievementDB.user_id == user_id)
                result = await session.execute(
                    select(AchievementDB).where(AchievementDB.is_active.is_(True), AchievementDB.id.not_in(earned_ids))
                )

                progress = {
                    "quizzes": profile.quizzes_completed or 0,
                    "points": profile.total_points or 0,
                    "categories": categories_tried or 0,
                    "accuracy": best_accuracy or 0,
                }
                awarded = []
                for achievement in result.scalars().all():
                    current = progress.get(achievement.requirement_type)
                    if current is None or current < achievement.requirement_value:
                        continue
                    session.add(UserAchievementDB(user_id=user_id, achievement_id=achievement.id))
                    if achievement.points_reward > 0:
                        profile.total_points = (profile.total_points or 0) + achievement.points_reward
                    awarded.append(achievement.name)

                await session.commit()
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to check achievements: {e}", code="connection_error") from e

        if awarded:
            logger.info(f"User {user_id} earned achievements: {', '.join(awarded)}")
        return awarded

    async def earned_achievements(self, user_id: str) -> list[str]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(AchievementDB.name)
                .join(UserAchievementDB, UserAchievementDB.achievement_id == AchievementDB.id)
                .where(UserAchievementDB.user_id == user_id)
                .order_by(UserAchievementDB.earned_at)
            )
            return list(result.scalars().all())

    async def best_accuracy(self, user_id: str) -> float:
        async with self.database.async_session() as session:
            value = await session.scalar(
                select(func.max(QuizResultDB.accuracy)).where(QuizResultDB.user_id == user_id)
            )
            return value or 0.0
