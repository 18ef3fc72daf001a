"""Shared fixtures."""

import random

import pytest

from quizmaster.config import Settings
from quizmaster.db import Database
from quizmaster.db.seed import seed_all
from quizmaster.models.question import Question
from quizmaster.services.leaderboard import InMemoryRankingSource, LeaderboardCache
from quizmaster.services.question_bank import InMemoryQuestionSource, QuestionLoader
from quizmaster.services.quiz_session import QuizSessionManager
from quizmaster.services.scoring import ScoreCalculator
from quizmaster.utils.storage import LocalStore


def make_question(qid: str, category: str = "Science", difficulty: str = "medium", **kwargs) -> Question:
    data = {
        "id": qid,
        "question": f"Question {qid}?",
        "options": ["A", "B", "C", "D"],
        "correct_answer": "A",
        "category": category,
        "difficulty": difficulty,
    }
    data.update(kwargs)
    return Question(**data)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def scorer():
    return ScoreCalculator()


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(tmp_path / "local_store.json")


@pytest.fixture
def quiz_settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        local_store_path=tmp_path / "local_store.json",
        auto_timer=False,
        retry_base_delay=0,
        change_debounce_seconds=0,
        toast_duration=60,
    )


@pytest.fixture
def science_questions():
    return [make_question(f"s{i}") for i in range(1, 11)]


@pytest.fixture
def loader(science_questions, rng):
    return QuestionLoader(None, InMemoryQuestionSource(science_questions, rng=rng))


@pytest.fixture
def leaderboard(rng):
    return LeaderboardCache(fallback=InMemoryRankingSource(rng=rng), retry_base_delay=0)


@pytest.fixture
def manager(loader, scorer, leaderboard, local_store, quiz_settings):
    return QuizSessionManager(
        loader,
        scorer,
        leaderboard=leaderboard,
        local_store=local_store,
        settings=quiz_settings,
    )


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'quizmaster.db'}")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
async def seeded_database(database, quiz_settings):
    await seed_all(database, quiz_settings.questions_dir)
    return database
