"""Question sources and the filter-relaxing question loader."""

import json
import logging
import random
from abc import ABC, abstractmethod
from collections import Counter

from cachetools import TTLCache
from pydantic import ValidationError as ModelValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from quizmaster.config import CATEGORIES, settings
from quizmaster.db.database import Database
from quizmaster.db.models import CategoryDB, QuestionDB
from quizmaster.errors import ExternalServiceError, NoQuestionsAvailableError
from quizmaster.models.question import CategoryInfo, Question, QuestionStatistics
from quizmaster.utils.retry import retry_async

logger = logging.getLogger(__name__)


def _is_filter(value: str | None) -> bool:
    return bool(value) and value.lower() != "all"


class QuestionSource(ABC):
    """Somewhere questions can be read from."""

    name: str = "source"

    @abstractmethod
    async def fetch_questions(
        self,
        category: str | None,
        difficulty: str | None,
        limit: int,
    ) -> list[Question]:
        """Active questions matching the filters, in random order, at most ``limit``."""

    @abstractmethod
    async def categories(self) -> list[CategoryInfo]:
        ...

    @abstractmethod
    async def statistics(self) -> QuestionStatistics:
        ...


class DatabaseQuestionSource(QuestionSource):
    """Reads the question bank table."""

    name = "remote"

    def __init__(
        self,
        database: Database,
        cache_ttl: float = settings.question_cache_ttl,
        rng: random.Random | None = None,
    ):
        self.database = database
        self.rng = rng or random.Random()
        self._cache: TTLCache = TTLCache(maxsize=256, ttl=cache_ttl)

    async def fetch_questions(
        self,
        category: str | None,
        difficulty: str | None,
        limit: int,
    ) -> list[Question]:
        cache_key = (category or "all", difficulty or "all", limit)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Using cached questions for {cache_key}")
            return list(cached)

        query = select(QuestionDB).where(QuestionDB.is_active.is_(True))
        if _is_filter(category):
            query = query.where(func.lower(QuestionDB.category) == category.lower())
        if _is_filter(difficulty):
            query = query.where(func.lower(QuestionDB.difficulty) == difficulty.lower())
        # Over-fetch so the shuffle has something to choose from
        query = query.order_by(QuestionDB.created_at.desc()).limit(limit * 3)

        try:
            async with self.database.async_session() as session:
                result = await session.execute(query)
                db_questions = result.scalars().all()
        except SQLAlchemyError as e:
            raise ExternalServiceError(
                f"Failed to load questions: {e}",
                code="connection_error",
                transient=isinstance(e, OperationalError),
            ) from e

        questions = [q for q in (self._db_to_model(row) for row in db_questions) if q is not None]
        self.rng.shuffle(questions)
        questions = questions[:limit]
        if questions:
            self._cache[cache_key] = list(questions)
        return questions

    async def categories(self) -> list[CategoryInfo]:
        try:
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(CategoryDB).where(CategoryDB.is_active.is_(True)).order_by(CategoryDB.name)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to load categories: {e}", code="connection_error") from e

        return [
            CategoryInfo(
                name=c.name,
                description=c.description,
                icon=c.icon,
                color=c.color,
                question_count=c.question_count,
            )
            for c in rows
        ]

    async def statistics(self) -> QuestionStatistics:
        try:
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(QuestionDB.category, QuestionDB.difficulty, func.count())
                    .where(QuestionDB.is_active.is_(True))
                    .group_by(QuestionDB.category, QuestionDB.difficulty)
                )
                rows = result.all()
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to load question statistics: {e}", code="connection_error") from e

        category_counts: Counter = Counter()
        difficulty_counts: Counter = Counter()
        for category, difficulty, count in rows:
            category_counts[category] += count
            difficulty_counts[difficulty] += count
        return QuestionStatistics(
            total_questions=sum(category_counts.values()),
            category_counts=dict(category_counts),
            difficulty_counts=dict(difficulty_counts),
        )

    def clear_cache(self) -> None:
        self._cache.clear()

    def _db_to_model(self, db_question: QuestionDB) -> Question | None:
        """Convert a row to a Question; malformed rows are skipped."""
        try:
            return Question(
                id=db_question.id,
                question=db_question.question_text,
                type=db_question.question_type,
                options=db_question.get_options(),
                correct_answer=db_question.correct_answer,
                explanation=db_question.explanation,
                category=db_question.category,
                difficulty=db_question.difficulty,
                points=db_question.points_value,
            )
        except (ModelValidationError, json.JSONDecodeError) as e:
            logger.warning(f"Skipping malformed question {db_question.id}: {e}")
            return None


FALLBACK_QUESTIONS = [
    Question(
        id="1",
        question="What is the capital of France?",
        options=["London", "Berlin", "Paris", "Madrid"],
        correct_answer="Paris",
        explanation="Paris is the capital and most populous city of France.",
        category="Geography",
        difficulty="easy",
        points=10,
    ),
    Question(
        id="2",
        question="Which planet is known as the Red Planet?",
        options=["Venus", "Mars", "Jupiter", "Saturn"],
        correct_answer="Mars",
        explanation="Mars is called the Red Planet due to its reddish appearance.",
        category="Science",
        difficulty="easy",
        points=10,
    ),
    Question(
        id="3",
        question="Who painted the Mona Lisa?",
        options=["Vincent van Gogh", "Pablo Picasso", "Leonardo da Vinci", "Michelangelo"],
        correct_answer="Leonardo da Vinci",
        explanation="The Mona Lisa was painted by Leonardo da Vinci between 1503 and 1519.",
        category="Art",
        difficulty="medium",
        points=20,
    ),
    Question(
        id="4",
        question="What is the largest ocean on Earth?",
        options=["Atlantic Ocean", "Indian Ocean", "Arctic Ocean", "Pacific Ocean"],
        correct_answer="Pacific Ocean",
        explanation="The Pacific Ocean is the largest and deepest ocean on Earth.",
        category="Geography",
        difficulty="easy",
        points=10,
    ),
    Question(
        id="5",
        question="In which year did World War II end?",
        options=["1944", "1945", "1946", "1947"],
        correct_answer="1945",
        explanation="World War II ended in 1945 with the surrender of Japan.",
        category="History",
        difficulty="medium",
        points=20,
    ),
    Question(
        id="6",
        question="The Great Wall of China is visible from space.",
        type="true_false",
        correct_answer="False",
        explanation="This is a common myth. The Great Wall is not visible from space with the naked eye.",
        category="General Knowledge",
        difficulty="medium",
        points=20,
    ),
    Question(
        id="7",
        question="What gas do plants absorb from the atmosphere?",
        options=["Oxygen", "Nitrogen", "Carbon Dioxide", "Hydrogen"],
        correct_answer="Carbon Dioxide",
        explanation="Plants absorb carbon dioxide from the atmosphere during photosynthesis.",
        category="Science",
        difficulty="easy",
        points=10,
    ),
    Question(
        id="8",
        question="How many players are on a basketball team on the court at one time?",
        options=["4", "5", "6", "7"],
        correct_answer="5",
        explanation="Each basketball team has 5 players on the court at one time.",
        category="Sports",
        difficulty="easy",
        points=10,
    ),
    Question(
        id="9",
        question='Which movie features the song "Let It Go"?',
        options=["Moana", "Frozen", "Tangled", "The Little Mermaid"],
        correct_answer="Frozen",
        explanation="\"Let It Go\" is the famous song from Disney's Frozen, sung by Elsa.",
        category="Entertainment",
        difficulty="easy",
        points=10,
    ),
    Question(
        id="10",
        question='What does "WWW" stand for?',
        options=["World Wide Web", "World Web Wide", "Wide World Web", "Web World Wide"],
        correct_answer="World Wide Web",
        explanation="WWW stands for World Wide Web, the information system on the Internet.",
        category="Technology",
        difficulty="easy",
        points=10,
    ),
]


class InMemoryQuestionSource(QuestionSource):
    """Fixed local question set used when the database is absent or failing."""

    name = "fallback"

    def __init__(self, questions: list[Question] | None = None, rng: random.Random | None = None):
        self.questions = list(FALLBACK_QUESTIONS if questions is None else questions)
        self.rng = rng or random.Random()

    async def fetch_questions(
        self,
        category: str | None,
        difficulty: str | None,
        limit: int,
    ) -> list[Question]:
        matches = self.questions
        if _is_filter(category):
            matches = [q for q in matches if q.category.lower() == category.lower()]
        if _is_filter(difficulty):
            matches = [q for q in matches if q.difficulty.lower() == difficulty.lower()]
        shuffled = list(matches)
        self.rng.shuffle(shuffled)
        return shuffled[:limit]

    async def categories(self) -> list[CategoryInfo]:
        counts = Counter(q.category for q in self.questions)
        return [CategoryInfo(name=name, question_count=counts.get(name, 0)) for name in CATEGORIES]

    async def statistics(self) -> QuestionStatistics:
        return QuestionStatistics(
            total_questions=len(self.questions),
            category_counts=dict(Counter(q.category for q in self.questions)),
            difficulty_counts=dict(Counter(q.difficulty for q in self.questions)),
        )


class QuestionLoader:
    """Loads a question set, relaxing filters and falling back to local questions."""

    def __init__(
        self,
        remote: QuestionSource | None,
        fallback: QuestionSource | None = None,
        max_retries: int = settings.max_retries,
        retry_base_delay: float = settings.retry_base_delay,
    ):
        self.remote = remote
        self.fallback = fallback or InMemoryQuestionSource()
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.last_source: str | None = None

    @staticmethod
    def _stages(category: str | None, difficulty: str | None) -> list[tuple[str | None, str | None]]:
        """Filter combinations from most to least specific, without repeats."""
        stages = [(category, difficulty), (category, None), (None, None)]
        unique = []
        for stage in stages:
            normalized = tuple(value if _is_filter(value) else None for value in stage)
            if normalized not in unique:
                unique.append(normalized)
        return unique

    async def _load_from(
        self,
        source: QuestionSource,
        category: str | None,
        difficulty: str | None,
        count: int,
        retry: bool,
    ) -> list[Question]:
        for stage_category, stage_difficulty in self._stages(category, difficulty):
            if retry:
                fetched = await retry_async(
                    lambda: source.fetch_questions(stage_category, stage_difficulty, count),
                    max_retries=self.max_retries,
                    base_delay=self.retry_base_delay,
                    description=f"Loading questions from {source.name}",
                )
            else:
                fetched = await source.fetch_questions(stage_category, stage_difficulty, count)

            seen: set[str] = set()
            questions = []
            for question in fetched:
                if question.id not in seen:
                    seen.add(question.id)
                    questions.append(question)
            if questions:
                if (stage_category, stage_difficulty) != (category, difficulty):
                    logger.info(
                        f"No questions for category={category} difficulty={difficulty}; "
                        f"relaxed to category={stage_category} difficulty={stage_difficulty}"
                    )
                return questions[:count]
        return []

    async def load(self, category: str | None, difficulty: str | None, count: int) -> list[Question]:
        """Return ``min(count, available)`` distinct questions.

        Raises NoQuestionsAvailableError when every source and stage is empty.
        """
        if self.remote is not None:
            try:
                questions = await self._load_from(self.remote, category, difficulty, count, retry=True)
                if questions:
                    self.last_source = self.remote.name
                    return questions
                logger.warning("Remote question source returned no questions, using fallback questions")
            except Exception as e:
                logger.warning(f"Remote question source unavailable, using fallback questions: {e}")

        questions = await self._load_from(self.fallback, category, difficulty, count, retry=False)
        if not questions:
            raise NoQuestionsAvailableError()
        self.last_source = self.fallback.name
        return questions

    async def categories(self) -> list[CategoryInfo]:
        if self.remote is not None:
            try:
                categories = await self.remote.categories()
                if categories:
                    return categories
            except Exception as e:
                logger.warning(f"Failed to load categories, using defaults: {e}")
        return await self.fallback.categories()

    async def statistics(self) -> QuestionStatistics:
        if self.remote is not None:
            try:
                return await self.remote.statistics()
            except Exception as e:
                logger.warning(f"Failed to load question statistics, using fallback: {e}")
        return await self.fallback.statistics()
