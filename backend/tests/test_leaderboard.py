"""Tests for ranking sources and the leaderboard cache."""

import asyncio

import pytest

from quizmaster.db import ProfileDB, QuizResultDB
from quizmaster.errors import ExternalServiceError
from quizmaster.models.leaderboard import LeaderboardEntry
from quizmaster.services.leaderboard import (
    DatabaseRankingSource,
    InMemoryRankingSource,
    LeaderboardCache,
)


def entry(user_id, username, points, quizzes=1):
    return LeaderboardEntry(id=user_id, username=username, total_points=points, quizzes_completed=quizzes)


class CountingRanking(InMemoryRankingSource):
    """In-memory ranking posing as the remote source, counting reads."""

    name = "remote"

    def __init__(self, users=None, fail=False):
        super().__init__(users)
        self.fail = fail
        self.top_calls = 0

    async def top_users(self, limit, category=None):
        self.top_calls += 1
        if self.fail:
            raise ExternalServiceError("leaderboard unavailable", status=503)
        return await super().top_users(limit, category)


@pytest.fixture
def small_board():
    fallback = InMemoryRankingSource(
        [entry("user1", "alice", 100), entry("user2", "bob", 100), entry("user3", "carol", 50)]
    )
    return LeaderboardCache(fallback=fallback, retry_base_delay=0)


class TestFallbackRanking:
    async def test_score_update_reorders(self, small_board):
        result = await small_board.update_user_score("user3", 60)

        assert result.success
        assert result.message == "Score updated successfully"
        page = await small_board.get_top_users(10)
        totals = [u.total_points for u in page.users]
        assert page.users[0].id == "user3"
        assert page.users[0].total_points == 110
        assert all(t < 110 for t in totals[1:])
        assert [u.rank for u in page.users] == [1, 2, 3]

    async def test_ties_keep_previous_order(self, small_board):
        await small_board.update_user_score("user3", 60)
        page = await small_board.get_top_users(10)
        assert [u.id for u in page.users] == ["user3", "user1", "user2"]

    async def test_new_user_is_created(self, small_board):
        await small_board.update_user_score("abcd-9876", 75)

        rank = await small_board.get_user_rank("abcd-9876")

        assert rank.success
        assert rank.user.username == "User9876"
        assert rank.user.quizzes_completed == 1
        assert rank.rank == 3
        assert rank.total_users == 4

    async def test_existing_user_average(self, small_board):
        await small_board.update_user_score("user3", 50)
        rank = await small_board.get_user_rank("user3")
        assert rank.user.total_points == 100
        assert rank.user.quizzes_completed == 2
        assert rank.user.average_score == 50

    async def test_unknown_user_rank(self, small_board):
        rank = await small_board.get_user_rank("ghost")
        assert not rank.success
        assert rank.message == "User not found in leaderboard"

    async def test_rank_context(self, leaderboard):
        rank = await leaderboard.get_user_rank("5")
        assert rank.rank == 5
        assert [u.rank for u in rank.context] == [3, 4, 5, 6, 7]

        top = await leaderboard.get_user_rank("1")
        assert [u.rank for u in top.context] == [1, 2, 3]

    async def test_default_dataset(self, leaderboard):
        page = await leaderboard.get_top_users(3, category="Science")
        assert page.source == "fallback"
        assert page.category == "Science"
        assert [u.username for u in page.users] == ["QuizMaster2024", "BrainiacBob", "SmartSarah"]
        assert page.total == 10


class TestCaching:
    async def test_remote_pages_are_cached(self):
        remote = CountingRanking([entry("a", "alice", 10)])
        cache = LeaderboardCache(remote=remote, retry_base_delay=0)

        first = await cache.get_top_users(10)
        second = await cache.get_top_users(10)

        assert first.source == "remote"
        assert second is first
        assert remote.top_calls == 1

    async def test_mutation_invalidates_cache(self):
        remote = CountingRanking([entry("a", "alice", 10)])
        cache = LeaderboardCache(remote=remote, retry_base_delay=0)
        await cache.get_top_users(10)

        await cache.update_user_score("a", 5)
        await cache.get_top_users(10)

        # one read each for the first page, the post-update refresh and the re-read
        assert remote.top_calls == 3

    async def test_remote_failure_uses_fallback(self):
        remote = CountingRanking(fail=True)
        cache = LeaderboardCache(remote=remote, retry_base_delay=0)

        page = await cache.get_top_users(5)

        assert page.source == "fallback"
        assert len(page.users) == 5
        assert remote.top_calls == 4


class TestSubscribers:
    async def test_subscribers_receive_snapshot(self, small_board):
        received = []
        unsubscribe = small_board.subscribe(received.append)

        await small_board.update_user_score("user3", 60)
        unsubscribe()
        await small_board.update_user_score("user3", 60)

        assert len(received) == 1
        assert received[0][0].id == "user3"
        assert small_board.subscriber_count == 0

    async def test_failing_subscriber_is_isolated(self, small_board):
        received = []

        def broken(users):
            raise RuntimeError("boom")

        small_board.subscribe(broken)
        small_board.subscribe(received.append)

        result = await small_board.update_user_score("user1", 1)

        assert result.success
        assert len(received) == 1

    async def test_async_subscriber(self, small_board):
        received = asyncio.Event()

        async def on_update(users):
            received.set()

        small_board.subscribe(on_update)
        small_board.notify_subscribers()

        await asyncio.wait_for(received.wait(), timeout=1)

    async def test_change_notification_refreshes(self):
        remote = CountingRanking([entry("a", "alice", 10)])
        cache = LeaderboardCache(remote=remote, debounce_seconds=0, retry_base_delay=0)
        received = []
        cache.subscribe(received.append)

        cache.handle_change_notification({"a"})
        cache.handle_change_notification({"a"})
        await asyncio.sleep(0.05)

        assert len(received) == 1
        assert cache.snapshot[0].id == "a"

    async def test_change_notification_ignored_without_remote(self, small_board):
        small_board.handle_change_notification({"user1"})
        await asyncio.sleep(0.01)
        assert small_board.last_updated is None


class TestViews:
    def test_statistics(self, leaderboard):
        stats = leaderboard.get_statistics()
        assert stats.total_users == 10
        assert stats.total_quizzes == 642
        assert stats.average_score == 179
        assert stats.top_score == 15420
        assert stats.most_active_user == "BrainiacBob"

    def test_search(self, leaderboard):
        assert leaderboard.search_users("") == []
        assert [u.username for u in leaderboard.search_users("QUIZ")] == ["QuizMaster2024", "QuizWhiz"]
        assert leaderboard.search_users("zzz") == []

    def test_search_is_capped(self):
        users = [entry(str(i), f"player{i}", 100 - i) for i in range(15)]
        cache = LeaderboardCache(fallback=InMemoryRankingSource(users))
        assert len(cache.search_users("player")) == 10

    async def test_simulated_updates(self, leaderboard):
        before = sum(u.total_points for u in leaderboard.snapshot)
        await leaderboard.simulate_once()
        after = sum(u.total_points for u in leaderboard.snapshot)
        assert after > before

        leaderboard.start_simulated_updates(interval=60)
        assert leaderboard.get_current_state().has_simulated_updates
        leaderboard.stop_simulated_updates()
        assert not leaderboard.get_current_state().has_simulated_updates

    async def test_close(self, small_board):
        small_board.subscribe(lambda users: None)
        small_board.start_simulated_updates(interval=60)

        await small_board.close()

        state = small_board.get_current_state()
        assert state.subscribers == 0
        assert not state.has_simulated_updates


async def add_profile(database, username, points, quizzes):
    async with database.async_session() as session:
        profile = ProfileDB(
            username=username,
            email=f"{username}@example.com",
            hashed_password="x",
            total_points=points,
            quizzes_completed=quizzes,
        )
        session.add(profile)
        await session.commit()
        return profile.id


class TestDatabaseRanking:
    async def test_global_ranking(self, database):
        a = await add_profile(database, "alice", 300, 2)
        b = await add_profile(database, "bob", 300, 5)
        c = await add_profile(database, "carol", 100, 1)
        await add_profile(database, "dave", 0, 0)
        source = DatabaseRankingSource(database)

        top = await source.top_users(10)

        assert [u.id for u in top] == [b, a, c]
        assert [u.rank for u in top] == [1, 2, 3]
        assert await source.count() == 3
        rank = await source.user_rank(c)
        assert rank.rank == 3
        window = await source.rank_window(2, 3)
        assert [u.id for u in window] == [a, c]

    async def test_category_ranking(self, database):
        a = await add_profile(database, "alice", 300, 2)
        b = await add_profile(database, "bob", 200, 2)
        async with database.async_session() as session:
            for user_id, category, points, accuracy in [
                (a, "Science", 50, 50.0),
                (a, "History", 250, 100.0),
                (b, "Science", 120, 80.0),
                (b, "Science", 80, 60.0),
            ]:
                session.add(
                    QuizResultDB(
                        user_id=user_id,
                        category=category,
                        difficulty="medium",
                        questions_answered=10,
                        correct_answers=5,
                        total_points=points,
                        accuracy=accuracy,
                        time_spent=100,
                    )
                )
            await session.commit()
        source = DatabaseRankingSource(database)

        top = await source.top_users(10, category="science")

        assert [u.id for u in top] == [b, a]
        assert top[0].total_points == 200
        assert top[0].quizzes_completed == 2
        assert top[0].average_score == 70.0
        assert top[0].best_score == 120
        assert await source.count("Science") == 2

    async def test_cache_over_database(self, database):
        user_id = await add_profile(database, "alice", 300, 2)
        cache = LeaderboardCache(remote=DatabaseRankingSource(database), retry_base_delay=0)

        page = await cache.get_top_users(10)
        rank = await cache.get_user_rank(user_id)

        assert page.source == "remote"
        assert page.users[0].username == "alice"
        assert rank.rank == 1 and rank.total_users == 1
