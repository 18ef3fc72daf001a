"""Tests for question sources and the question loader."""

import pytest

from quizmaster.errors import ExternalServiceError, NoQuestionsAvailableError
from quizmaster.services.question_bank import (
    FALLBACK_QUESTIONS,
    DatabaseQuestionSource,
    InMemoryQuestionSource,
    QuestionLoader,
    QuestionSource,
)

from tests.conftest import make_question


class ScriptedSource(QuestionSource):
    """Returns queued responses; exceptions in the queue are raised."""

    name = "remote"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def fetch_questions(self, category, difficulty, limit):
        self.calls.append((category, difficulty, limit))
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, Exception):
            raise response
        return response

    async def categories(self):
        raise ExternalServiceError("down")

    async def statistics(self):
        raise ExternalServiceError("down")


@pytest.fixture
def mixed_source(rng):
    questions = [
        make_question("e1", "Science", "easy"),
        make_question("e2", "Science", "easy"),
        make_question("m1", "Science", "medium"),
        make_question("h1", "History", "hard"),
        make_question("h2", "History", "medium"),
    ]
    return InMemoryQuestionSource(questions, rng=rng)


class TestInMemorySource:
    async def test_filters_case_insensitively(self, mixed_source):
        questions = await mixed_source.fetch_questions("science", "EASY", 10)
        assert {q.id for q in questions} == {"e1", "e2"}

    async def test_all_means_unfiltered(self, mixed_source):
        questions = await mixed_source.fetch_questions("all", "all", 10)
        assert len(questions) == 5

    def test_default_fallback_set(self):
        source = InMemoryQuestionSource()
        assert len(source.questions) == 10
        assert source.questions[0].correct_answer == "Paris"
        assert FALLBACK_QUESTIONS[5].type == "true_false"
        assert FALLBACK_QUESTIONS[5].options == ["True", "False"]

    async def test_statistics(self):
        stats = await InMemoryQuestionSource().statistics()
        assert stats.total_questions == 10
        assert stats.category_counts["Geography"] == 2


class TestRelaxation:
    async def test_exact_match(self, mixed_source):
        loader = QuestionLoader(None, mixed_source)
        questions = await loader.load("Science", "easy", 5)
        assert {q.id for q in questions} == {"e1", "e2"}
        assert loader.last_source == "fallback"

    async def test_drops_difficulty_first(self, mixed_source):
        loader = QuestionLoader(None, mixed_source)
        questions = await loader.load("History", "easy", 5)
        assert {q.id for q in questions} == {"h1", "h2"}

    async def test_then_drops_category(self, mixed_source):
        loader = QuestionLoader(None, mixed_source)
        questions = await loader.load("Music", "hard", 10)
        assert len(questions) == 5

    async def test_caps_at_requested_count(self, mixed_source):
        loader = QuestionLoader(None, mixed_source)
        assert len(await loader.load("all", "all", 3)) == 3

    async def test_nothing_anywhere(self):
        loader = QuestionLoader(None, InMemoryQuestionSource([]))
        with pytest.raises(NoQuestionsAvailableError):
            await loader.load("Science", "easy", 5)

    async def test_duplicates_removed(self):
        question = make_question("dup")
        remote = ScriptedSource([question, question, make_question("other")])
        loader = QuestionLoader(remote, InMemoryQuestionSource([]), retry_base_delay=0)

        questions = await loader.load("Science", "medium", 5)

        assert [q.id for q in questions] == ["dup", "other"]


class TestRemoteFallback:
    async def test_uses_remote_when_available(self, mixed_source):
        remote = ScriptedSource([make_question("r1")])
        loader = QuestionLoader(remote, mixed_source, retry_base_delay=0)

        questions = await loader.load("Science", "medium", 5)

        assert [q.id for q in questions] == ["r1"]
        assert loader.last_source == "remote"

    async def test_retries_transient_failures(self, mixed_source):
        remote = ScriptedSource(ExternalServiceError("timeout"), ConnectionError("reset"), [make_question("r1")])
        loader = QuestionLoader(remote, mixed_source, max_retries=3, retry_base_delay=0)

        questions = await loader.load("Science", "medium", 5)

        assert [q.id for q in questions] == ["r1"]
        assert len(remote.calls) == 3

    async def test_falls_back_after_retries_exhausted(self, mixed_source):
        failures = [ExternalServiceError("down") for _ in range(4)]
        remote = ScriptedSource(*failures)
        loader = QuestionLoader(remote, mixed_source, max_retries=3, retry_base_delay=0)

        questions = await loader.load("Science", "easy", 5)

        assert {q.id for q in questions} == {"e1", "e2"}
        assert loader.last_source == "fallback"
        assert len(remote.calls) == 4

    async def test_client_errors_are_not_retried(self, mixed_source):
        remote = ScriptedSource(ExternalServiceError("bad request", status=400))
        loader = QuestionLoader(remote, mixed_source, retry_base_delay=0)

        await loader.load("Science", "easy", 5)

        assert len(remote.calls) == 1

    async def test_empty_remote_falls_back(self, mixed_source):
        remote = ScriptedSource([], [], [])
        loader = QuestionLoader(remote, mixed_source, retry_base_delay=0)

        questions = await loader.load("Science", "easy", 5)

        assert loader.last_source == "fallback"
        assert len(questions) == 2

    async def test_categories_and_statistics_fall_back(self, mixed_source):
        loader = QuestionLoader(ScriptedSource(), mixed_source)

        categories = await loader.categories()
        stats = await loader.statistics()

        assert len(categories) == 10
        assert stats.total_questions == 5


class TestDatabaseSource:
    async def test_fetch_seeded_questions(self, seeded_database, rng):
        source = DatabaseQuestionSource(seeded_database, rng=rng)

        questions = await source.fetch_questions("science", "medium", 5)

        assert len(questions) == 5
        assert all(q.category == "Science" and q.difficulty == "medium" for q in questions)
        assert all(q.correct_answer in q.options for q in questions)

    async def test_results_are_cached(self, seeded_database, rng):
        source = DatabaseQuestionSource(seeded_database, rng=rng)

        first = await source.fetch_questions("Science", None, 3)
        second = await source.fetch_questions("Science", None, 3)

        assert [q.id for q in first] == [q.id for q in second]

    async def test_categories_and_statistics(self, seeded_database):
        source = DatabaseQuestionSource(seeded_database)

        categories = {c.name: c for c in await source.categories()}
        stats = await source.statistics()

        assert len(categories) == 10
        assert categories["Science"].question_count == 14
        assert stats.total_questions == 125
        assert stats.category_counts["Science"] == 14

    async def test_loader_over_database(self, seeded_database, rng):
        loader = QuestionLoader(DatabaseQuestionSource(seeded_database, rng=rng), retry_base_delay=0)

        questions = await loader.load("Science", "hard", 10)

        assert len(questions) == 2
        assert loader.last_source == "remote"
