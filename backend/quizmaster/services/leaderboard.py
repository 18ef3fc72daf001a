"""Ranking sources and the leaderboard cache."""

import asyncio
import inspect
import logging
import random
from abc import ABC, abstractmethod
from datetime import date, datetime
from fractions import Fraction
from typing import Any, Callable

from cachetools import TTLCache
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from quizmaster.config import settings
from quizmaster.db.database import Database
from quizmaster.db.models import ProfileDB, QuizResultDB
from quizmaster.errors import ExternalServiceError
from quizmaster.models.leaderboard import (
    LeaderboardEntry,
    LeaderboardPage,
    LeaderboardState,
    LeaderboardStatistics,
    ScoreUpdateResult,
    UserRankResult,
)
from quizmaster.utils.formatting import round_half_up
from quizmaster.utils.retry import retry_async
from quizmaster.utils.timing import Debouncer

logger = logging.getLogger(__name__)

RANK_CONTEXT = 2  # neighbours shown on each side of a user's rank
REFRESH_SIZE = 50
MAX_SEARCH_RESULTS = 10

LeaderboardCallback = Callable[[list[LeaderboardEntry]], Any]


def _is_filter(category: str | None) -> bool:
    return bool(category) and category.lower() != "all"


class RankingSource(ABC):
    """Read side of the ranking, global or per category."""

    name: str = "source"

    @abstractmethod
    async def top_users(self, limit: int, category: str | None = None) -> list[LeaderboardEntry]:
        ...

    @abstractmethod
    async def user_rank(self, user_id: str, category: str | None = None) -> LeaderboardEntry | None:
        ...

    @abstractmethod
    async def rank_window(self, start: int, end: int, category: str | None = None) -> list[LeaderboardEntry]:
        """Entries with ``start <= rank <= end``."""

    @abstractmethod
    async def count(self, category: str | None = None) -> int:
        ...


class DatabaseRankingSource(RankingSource):
    """Ranks profiles (or per-category quiz results) in the database."""

    name = "remote"

    def __init__(self, database: Database):
        self.database = database

    def _ranked(self, category: str | None):
        if not _is_filter(category):
            order = (
                ProfileDB.total_points.desc(),
                ProfileDB.quizzes_completed.desc(),
                ProfileDB.created_at.asc(),
            )
            return (
                select(
                    ProfileDB.id,
                    ProfileDB.username,
                    ProfileDB.full_name,
                    ProfileDB.avatar_url,
                    ProfileDB.total_points.label("total_points"),
                    ProfileDB.quizzes_completed.label("quizzes_completed"),
                    ProfileDB.average_score.label("average_score"),
                    ProfileDB.best_score.label("best_score"),
                    ProfileDB.created_at.label("joined_date"),
                    func.row_number().over(order_by=order).label("rank"),
                )
                .where(ProfileDB.total_points > 0)
                .subquery()
            )

        points = func.sum(QuizResultDB.total_points)
        quizzes = func.count(QuizResultDB.id)
        return (
            select(
                ProfileDB.id,
                ProfileDB.username,
                ProfileDB.full_name,
                ProfileDB.avatar_url,
                points.label("total_points"),
                quizzes.label("quizzes_completed"),
                func.avg(QuizResultDB.accuracy).label("average_score"),
                func.max(QuizResultDB.total_points).label("best_score"),
                ProfileDB.created_at.label("joined_date"),
                func.row_number().over(order_by=(points.desc(), quizzes.desc())).label("rank"),
            )
            .join(QuizResultDB, QuizResultDB.user_id == ProfileDB.id)
            .where(func.lower(QuizResultDB.category) == category.lower())
            .group_by(ProfileDB.id)
            .subquery()
        )

    async def _fetch(self, query) -> list[LeaderboardEntry]:
        try:
            async with self.database.async_session() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to load leaderboard: {e}", code="connection_error") from e
        return [self._row_to_entry(row) for row in rows]

    async def top_users(self, limit: int, category: str | None = None) -> list[LeaderboardEntry]:
        ranked = self._ranked(category)
        return await self._fetch(select(ranked).order_by(ranked.c.rank).limit(limit))

    async def user_rank(self, user_id: str, category: str | None = None) -> LeaderboardEntry | None:
        ranked = self._ranked(category)
        entries = await self._fetch(select(ranked).where(ranked.c.id == user_id))
        return entries[0] if entries else None

    async def rank_window(self, start: int, end: int, category: str | None = None) -> list[LeaderboardEntry]:
        ranked = self._ranked(category)
        return await self._fetch(
            select(ranked).where(ranked.c.rank >= start, ranked.c.rank <= end).order_by(ranked.c.rank)
        )

    async def count(self, category: str | None = None) -> int:
        ranked = self._ranked(category)
        try:
            async with self.database.async_session() as session:
                return await session.scalar(select(func.count()).select_from(ranked)) or 0
        except SQLAlchemyError as e:
            raise ExternalServiceError(f"Failed to count leaderboard: {e}", code="connection_error") from e

    @staticmethod
    def _row_to_entry(row) -> LeaderboardEntry:
        return LeaderboardEntry(
            id=row["id"],
            username=row["username"],
            full_name=row["full_name"],
            avatar_url=row["avatar_url"],
            total_points=int(row["total_points"] or 0),
            quizzes_completed=int(row["quizzes_completed"] or 0),
            average_score=round_half_up(row["average_score"] or 0, 2),
            best_score=int(row["best_score"] or 0),
            rank=int(row["rank"]),
            joined_date=row["joined_date"],
        )


def _fallback_user(user_id, username, points, quizzes, average, joined) -> LeaderboardEntry:
    return LeaderboardEntry(
        id=user_id,
        username=username,
        total_points=points,
        quizzes_completed=quizzes,
        average_score=average,
        rank=int(user_id),
        joined_date=date.fromisoformat(joined),
    )


FALLBACK_USERS = [
    _fallback_user("1", "QuizMaster2024", 15420, 87, 177.2, "2024-01-15"),
    _fallback_user("2", "BrainiacBob", 14850, 92, 161.4, "2024-01-20"),
    _fallback_user("3", "SmartSarah", 13990, 78, 179.4, "2024-02-01"),
    _fallback_user("4", "TriviaKing", 12750, 65, 196.2, "2024-02-10"),
    _fallback_user("5", "KnowledgeNinja", 11980, 71, 168.7, "2024-02-15"),
    _fallback_user("6", "QuizWhiz", 10850, 58, 187.1, "2024-03-01"),
    _fallback_user("7", "FactFinder", 9720, 54, 180.0, "2024-03-05"),
    _fallback_user("8", "DataDragon", 8950, 49, 182.7, "2024-03-10"),
    _fallback_user("9", "InfoImpact", 8200, 46, 178.3, "2024-03-15"),
    _fallback_user("10", "WisdomWolf", 7650, 42, 182.1, "2024-03-20"),
]


class InMemoryRankingSource(RankingSource):
    """Mutable local ranking used when no database ranking is available.

    Category filters are ignored: the local dataset has no per-category data.
    """

    name = "fallback"

    def __init__(self, users: list[LeaderboardEntry] | None = None, rng: random.Random | None = None):
        source = FALLBACK_USERS if users is None else users
        self.users = [user.model_copy() for user in source]
        self.rng = rng or random.Random()
        self._rerank()

    def _rerank(self) -> None:
        # list.sort is stable, so equal totals keep their previous order
        self.users.sort(key=lambda user: user.total_points, reverse=True)
        for position, user in enumerate(self.users, start=1):
            user.rank = position

    async def top_users(self, limit: int, category: str | None = None) -> list[LeaderboardEntry]:
        return [user.model_copy() for user in self.users[:limit]]

    async def user_rank(self, user_id: str, category: str | None = None) -> LeaderboardEntry | None:
        for user in self.users:
            if user.id == user_id:
                return user.model_copy()
        return None

    async def rank_window(self, start: int, end: int, category: str | None = None) -> list[LeaderboardEntry]:
        return [user.model_copy() for user in self.users[max(0, start - 1):end]]

    async def count(self, category: str | None = None) -> int:
        return len(self.users)

    def apply_score(self, user_id: str, delta: int) -> LeaderboardEntry:
        """Add a quiz score to a user (creating them if needed) and re-rank."""
        user = next((u for u in self.users if u.id == user_id), None)
        if user is None:
            user = LeaderboardEntry(
                id=user_id,
                username=f"User{user_id[-4:]}",
                total_points=delta,
                quizzes_completed=1,
                average_score=delta,
                best_score=max(delta, 0),
                joined_date=datetime.utcnow().date(),
            )
            self.users.append(user)
        else:
            user.total_points += delta
            user.quizzes_completed += 1
            user.average_score = round_half_up(Fraction(user.total_points, user.quizzes_completed))
            user.best_score = max(user.best_score, delta)
        self._rerank()
        return user.model_copy()

    def simulate_changes(self) -> None:
        """Give one to three random users a small score bump."""
        if not self.users:
            return
        for _ in range(self.rng.randint(1, 3)):
            user = self.rng.choice(self.users)
            user.total_points += self.rng.randint(10, 109)
            user.quizzes_completed += 1
            user.average_score = round_half_up(Fraction(user.total_points, user.quizzes_completed))
        self._rerank()


class LeaderboardCache:
    """Ranked snapshot of top users with TTL caching and subscriber notification."""

    def __init__(
        self,
        remote: RankingSource | None = None,
        fallback: InMemoryRankingSource | None = None,
        ttl: float = settings.leaderboard_cache_ttl,
        debounce_seconds: float = settings.change_debounce_seconds,
        max_retries: int = settings.max_retries,
        retry_base_delay: float = settings.retry_base_delay,
    ):
        self.remote = remote
        self.fallback = fallback or InMemoryRankingSource()
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._cache: TTLCache = TTLCache(maxsize=64, ttl=ttl)
        self._subscribers: list[LeaderboardCallback] = []
        self._pending: set[asyncio.Task] = set()
        self._simulation_task: asyncio.Task | None = None
        self._debounced_change = Debouncer(self._apply_change_notification, debounce_seconds)

        self.snapshot: list[LeaderboardEntry] = [user.model_copy() for user in self.fallback.users]
        self.current_user_rank: LeaderboardEntry | None = None
        self.is_loading = False
        self.last_updated: datetime | None = None

    async def _read(self, description: str, operation: Callable[[RankingSource], Any]):
        """Run a read against the remote source with retries."""
        return await retry_async(
            lambda: operation(self.remote),
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            description=description,
        )

    async def get_top_users(self, limit: int = 10, category: str | None = None) -> LeaderboardPage:
        category_key = category if _is_filter(category) else "all"
        cache_key = (category_key, limit)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Using cached leaderboard for {cache_key}")
            return cached

        self.is_loading = True
        try:
            if self.remote is not None:
                try:
                    users = await self._read("Loading leaderboard", lambda s: s.top_users(limit, category))
                    total = await self._read("Counting leaderboard", lambda s: s.count(category))
                    page = LeaderboardPage(users=users, total=total, category=category_key, source="remote")
                    self._cache[cache_key] = page
                    logger.info(f"Retrieved {len(users)} top users from database")
                    return page
                except Exception as e:
                    logger.warning(f"Leaderboard unavailable, using local rankings: {e}")

            if _is_filter(category):
                logger.debug(f"Category {category} ignored for local rankings")
            users = await self.fallback.top_users(limit, category)
            return LeaderboardPage(
                users=users,
                total=await self.fallback.count(category),
                category=category_key,
                source="fallback",
            )
        finally:
            self.is_loading = False

    async def get_user_rank(self, user_id: str, category: str | None = None) -> UserRankResult:
        if self.remote is not None:
            try:
                user = await self._read("Loading user rank", lambda s: s.user_rank(user_id, category))
                if user is None:
                    return UserRankResult(success=False, message="User not found in leaderboard")
                context = await self._read(
                    "Loading rank context",
                    lambda s: s.rank_window(max(1, user.rank - RANK_CONTEXT), user.rank + RANK_CONTEXT, category),
                )
                total = await self._read("Counting leaderboard", lambda s: s.count(category))
                self.current_user_rank = user
                return UserRankResult(success=True, user=user, rank=user.rank, total_users=total, context=context)
            except Exception as e:
                logger.warning(f"Rank lookup unavailable, using local rankings: {e}")

        user = await self.fallback.user_rank(user_id)
        if user is None:
            return UserRankResult(success=False, message="User not found in leaderboard")
        context = await self.fallback.rank_window(max(1, user.rank - RANK_CONTEXT), user.rank + RANK_CONTEXT)
        self.current_user_rank = user
        return UserRankResult(
            success=True,
            user=user,
            rank=user.rank,
            total_users=await self.fallback.count(),
            context=context,
        )

    async def update_user_score(self, user_id: str, delta: int) -> ScoreUpdateResult:
        """Record a finished quiz's score and notify subscribers.

        With a database the authoritative update has already happened there;
        this only refreshes. Without one the local rankings are mutated.
        """
        logger.info(f"Updating score for user {user_id}: {delta:+d}")
        try:
            if self.remote is None:
                self.fallback.apply_score(user_id, delta)
            self._cache.clear()
            await self.refresh()
            self.notify_subscribers()
        except Exception as e:
            logger.error(f"Failed to update user score: {e}")
            return ScoreUpdateResult(success=False, error=str(e))
        return ScoreUpdateResult(success=True, message="Score updated successfully")

    async def refresh(self) -> None:
        try:
            page = await self.get_top_users(REFRESH_SIZE)
        except Exception as e:
            logger.error(f"Failed to refresh leaderboard: {e}")
            return
        if page.success:
            self.snapshot = page.users
            self.last_updated = datetime.utcnow()

    # --- Subscribers ---

    def subscribe(self, callback: LeaderboardCallback) -> Callable[[], None]:
        """Register ``callback(snapshot)``; returns an unsubscribe function."""
        self._subscribers.append(callback)
        logger.debug("Subscribed to leaderboard updates")

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
                logger.debug("Unsubscribed from leaderboard updates")

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def notify_subscribers(self) -> None:
        """Send the current snapshot to every subscriber. Errors are logged, never raised."""
        for callback in list(self._subscribers):
            try:
                outcome = callback([user.model_copy() for user in self.snapshot])
                if inspect.isawaitable(outcome):
                    task = asyncio.ensure_future(outcome)
                    self._pending.add(task)
                    task.add_done_callback(self._subscriber_done)
            except Exception as e:
                logger.error(f"Error in leaderboard subscriber: {e}")

    def _subscriber_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Error in leaderboard subscriber: {task.exception()}")

    def handle_change_notification(self, profile_ids: set[str] | None = None) -> None:
        """Profile rows changed in the database; refresh soon (debounced)."""
        if self.remote is None:
            return
        self._debounced_change()

    async def _apply_change_notification(self) -> None:
        self._cache.clear()
        await self.refresh()
        self.notify_subscribers()

    # --- Development aid ---

    def start_simulated_updates(self, interval: float = settings.leaderboard_poll_interval) -> None:
        """Periodically bump random local scores. Only for demos without a database."""
        self.stop_simulated_updates()
        self._simulation_task = asyncio.get_running_loop().create_task(self._simulate(interval))
        logger.info(f"Started simulated leaderboard updates ({interval}s interval)")

    def stop_simulated_updates(self) -> None:
        if self._simulation_task is not None:
            self._simulation_task.cancel()
            self._simulation_task = None
            logger.info("Stopped simulated leaderboard updates")

    async def _simulate(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.simulate_once()

    async def simulate_once(self) -> None:
        self.fallback.simulate_changes()
        self._cache.clear()
        if self.remote is None:
            self.snapshot = await self.fallback.top_users(REFRESH_SIZE)
            self.last_updated = datetime.utcnow()
        self.notify_subscribers()
        logger.debug("Simulated leaderboard changes")

    # --- Views over the snapshot ---

    def get_statistics(self) -> LeaderboardStatistics:
        users = self.snapshot
        if not users:
            return LeaderboardStatistics()
        most_active = max(users, key=lambda user: user.quizzes_completed)
        return LeaderboardStatistics(
            total_users=len(users),
            total_quizzes=sum(user.quizzes_completed for user in users),
            average_score=int(round_half_up(sum(Fraction(user.average_score) for user in users) / len(users), 0)),
            top_score=max(user.total_points for user in users),
            most_active_user=most_active.username if most_active.quizzes_completed > 0 else "None",
        )

    def search_users(self, query: str) -> list[LeaderboardEntry]:
        term = (query or "").strip().lower()
        if not term:
            return []
        return [user for user in self.snapshot if term in user.username.lower()][:MAX_SEARCH_RESULTS]

    def get_current_state(self) -> LeaderboardState:
        return LeaderboardState(
            is_loading=self.is_loading,
            total_users=len(self.snapshot),
            current_user_rank=self.current_user_rank,
            has_simulated_updates=self._simulation_task is not None,
            subscribers=len(self._subscribers),
            last_updated=self.last_updated,
        )

    async def close(self) -> None:
        self.stop_simulated_updates()
        self._debounced_change.cancel()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self._subscribers.clear()
        logger.info("Leaderboard cache closed")
