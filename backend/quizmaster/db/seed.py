"""Seed reference data and the question bank when tables are empty."""

import json
import logging
import os
from pathlib import Path

from sqlalchemy import func, select, update

from .database import Database
from .models import AchievementDB, CategoryDB, QuestionDB

logger = logging.getLogger(__name__)

CATEGORY_SEED = [
    ("General Knowledge", "Mixed topics and general trivia", "🧠", "#6366f1"),
    ("Science", "Physics, Chemistry, Biology, and more", "🔬", "#10b981"),
    ("History", "World history and historical events", "📚", "#f59e0b"),
    ("Geography", "Countries, capitals, and world facts", "🌍", "#3b82f6"),
    ("Sports", "Sports trivia and athletic knowledge", "⚽", "#ef4444"),
    ("Entertainment", "Movies, music, and pop culture", "🎬", "#8b5cf6"),
    ("Technology", "Computers, internet, and tech trends", "💻", "#06b6d4"),
    ("Literature", "Books, authors, and literary works", "📖", "#84cc16"),
    ("Art", "Paintings, sculptures, and artists", "🎨", "#f97316"),
    ("Music", "Musical knowledge and trivia", "🎵", "#ec4899"),
]

# (name, description, icon, category, requirement_type, requirement_value, points_reward)
ACHIEVEMENT_SEED = [
    ("First Steps", "Complete your first quiz", "🎯", "milestone", "quizzes", 1, 50),
    ("Quiz Novice", "Complete 5 quizzes", "📝", "milestone", "quizzes", 5, 100),
    ("Quiz Enthusiast", "Complete 25 quizzes", "🎓", "milestone", "quizzes", 25, 250),
    ("Quiz Master", "Complete 100 quizzes", "👑", "milestone", "quizzes", 100, 500),
    ("Point Collector", "Earn 1000 total points", "💎", "points", "points", 1000, 100),
    ("High Scorer", "Earn 5000 total points", "⭐", "points", "points", 5000, 300),
    ("Perfect Score", "Get 100% accuracy in a quiz", "💯", "accuracy", "accuracy", 100, 200),
    ("Speed Demon", "Complete a quiz in under 2 minutes", "⚡", "speed", "time", 120, 150),
    ("Streak Starter", "Get 5 questions correct in a row", "🔥", "streak", "streak", 5, 100),
    ("Knowledge Seeker", "Try all quiz categories", "🌟", "variety", "categories", 10, 300),
]


async def seed_categories(database: Database) -> None:
    async with database.async_session() as session:
        count = await session.scalar(select(func.count()).select_from(CategoryDB))
        if count:
            return
        for name, description, icon, color in CATEGORY_SEED:
            session.add(CategoryDB(name=name, description=description, icon=icon, color=color))
        await session.commit()
        logger.info(f"Seeded {len(CATEGORY_SEED)} categories.")


async def seed_achievements(database: Database) -> None:
    async with database.async_session() as session:
        count = await session.scalar(select(func.count()).select_from(AchievementDB))
        if count:
            return
        for name, description, icon, category, req_type, req_value, reward in ACHIEVEMENT_SEED:
            session.add(
                AchievementDB(
                    name=name,
                    description=description,
                    icon=icon,
                    category=category,
                    requirement_type=req_type,
                    requirement_value=req_value,
                    points_reward=reward,
                )
            )
        await session.commit()
        logger.info(f"Seeded {len(ACHIEVEMENT_SEED)} achievements.")


async def seed_questions(database: Database, questions_dir: Path) -> int:
    """Seed the question bank from JSON files if it is empty. Returns rows imported."""
    if os.getenv("SKIP_SEEDING", "").lower() == "true":
        logger.info("SKIP_SEEDING is set. Skipping question seed.")
        return 0

    async with database.async_session() as session:
        count = await session.scalar(select(func.count()).select_from(QuestionDB))
        if count and count > 0:
            logger.info(f"Database already has {count} questions. Skipping seed.")
            return 0

        if not questions_dir.exists():
            logger.warning(f"Questions directory not found: {questions_dir}")
            return 0

        logger.info("Seeding database with questions...")
        total_imported = 0
        for json_file in sorted(questions_dir.glob("*.json")):
            logger.info(f"Loading {json_file.name}...")
            with open(json_file, encoding="utf-8") as f:
                data = json.load(f)

            questions = data if isinstance(data, list) else data.get("questions", [])
            for q in questions:
                try:
                    db_question = QuestionDB(
                        question_text=q["question"],
                        question_type=q.get("type", "multiple_choice"),
                        category=q["category"],
                        difficulty=q.get("difficulty", "medium"),
                        correct_answer=q["correct_answer"],
                        options=json.dumps(q.get("options", [])),
                        explanation=q.get("explanation"),
                        points_value=q.get("points", 10),
                    )
                    session.add(db_question)
                    total_imported += 1
                except KeyError as e:
                    logger.error(f"Error importing question from {json_file.name}: missing {e}")

        await session.commit()

        # Keep per-category question counts in step with the bank
        rows = await session.execute(
            select(QuestionDB.category, func.count())
            .where(QuestionDB.is_active.is_(True))
            .group_by(QuestionDB.category)
        )
        for category, question_count in rows.all():
            await session.execute(
                update(CategoryDB).where(CategoryDB.name == category).values(question_count=question_count)
            )
        await session.commit()

    logger.info(f"Imported {total_imported} questions.")
    return total_imported


async def seed_all(database: Database, questions_dir: Path) -> None:
    await seed_categories(database)
    await seed_achievements(database)
    await seed_questions(database, questions_dir)
