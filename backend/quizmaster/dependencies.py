"""Application service container and FastAPI dependencies."""

import logging
import random
from typing import Annotated, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from quizmaster.config import Settings
from quizmaster.db import Database, ProfileChangeFeed, ProfileDB, get_db
from quizmaster.db.seed import seed_all
from quizmaster.errors import (
    AuthError,
    ErrorHandler,
    NoQuestionsAvailableError,
    QuizMasterError,
    SessionStateError,
    ValidationError,
)
from quizmaster.services import (
    DatabaseQuestionSource,
    DatabaseQuizStore,
    DatabaseRankingSource,
    InMemoryQuestionSource,
    InMemoryRankingSource,
    LeaderboardCache,
    NotificationCenter,
    QuestionLoader,
    QuizSessionManager,
    QuizSessionRegistry,
    QuizStore,
    ScoreCalculator,
    quiz_toast_listener,
)
from quizmaster.utils.auth import LoginAttemptTracker, decode_access_token
from quizmaster.utils.storage import LocalStore

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login")


class AppServices:
    """Everything a request handler needs, created once per application."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        local_store: LocalStore,
        scorer: ScoreCalculator,
        loader: QuestionLoader,
        store: QuizStore | None,
        leaderboard: LeaderboardCache,
        notifications: NotificationCenter,
    ):
        self.settings = settings
        self.database = database
        self.local_store = local_store
        self.scorer = scorer
        self.loader = loader
        self.store = store
        self.leaderboard = leaderboard
        self.notifications = notifications
        self.error_handler = ErrorHandler(notifications)
        self.login_tracker = LoginAttemptTracker()
        self.change_feed = ProfileChangeFeed()
        self.registry = QuizSessionRegistry(self._new_manager)
        self.registry.subscribe(quiz_toast_listener(notifications))
        self._unsubscribers: list[Callable[[], None]] = []

    def _new_manager(self) -> QuizSessionManager:
        return QuizSessionManager(
            self.loader,
            self.scorer,
            store=self.store,
            leaderboard=self.leaderboard,
            local_store=self.local_store,
            settings=self.settings,
        )

    async def startup(self) -> None:
        self.settings.data_dir.mkdir(parents=True, exist_ok=True)
        await self.database.init()
        if self.settings.use_remote_backend:
            await seed_all(self.database, self.settings.questions_dir)
            self.change_feed.install()
            self._unsubscribers.append(self.change_feed.subscribe(self.leaderboard.handle_change_notification))
        if self.settings.simulate_leaderboard:
            self.leaderboard.start_simulated_updates(self.settings.leaderboard_poll_interval)
        await self.leaderboard.refresh()

    async def shutdown(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.change_feed.uninstall()
        await self.registry.close()
        await self.leaderboard.close()
        await self.database.close()


def build_services(settings: Settings, rng: random.Random | None = None) -> AppServices:
    """Wire the database or in-memory adapters according to ``settings``."""
    rng = rng or random.Random()
    database = Database(settings.database_url, echo=settings.debug)

    question_source = None
    store = None
    ranking = None
    if settings.use_remote_backend:
        question_source = DatabaseQuestionSource(database, cache_ttl=settings.question_cache_ttl, rng=rng)
        store = DatabaseQuizStore(database)
        ranking = DatabaseRankingSource(database)
    else:
        logger.info("Remote backend disabled; using local questions and rankings")

    loader = QuestionLoader(
        question_source,
        InMemoryQuestionSource(rng=rng),
        max_retries=settings.max_retries,
        retry_base_delay=settings.retry_base_delay,
    )
    leaderboard = LeaderboardCache(
        ranking,
        InMemoryRankingSource(rng=rng),
        ttl=settings.leaderboard_cache_ttl,
        debounce_seconds=settings.change_debounce_seconds,
        max_retries=settings.max_retries,
        retry_base_delay=settings.retry_base_delay,
    )
    return AppServices(
        settings=settings,
        database=database,
        local_store=LocalStore(settings.local_store_path),
        scorer=ScoreCalculator(settings.points),
        loader=loader,
        store=store,
        leaderboard=leaderboard,
        notifications=NotificationCenter(settings.toast_duration),
    )


# --- Dependencies ---

def get_services(connection: HTTPConnection) -> AppServices:
    return connection.app.state.services


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    services: Annotated[AppServices, Depends(get_services)],
    db: AsyncSession = Depends(get_db),
) -> ProfileDB:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_access_token(token, services.settings.secret_key)
    if user_id is None:
        raise credentials_exception

    user = await db.get(ProfileDB, user_id)
    if user is None:
        raise credentials_exception
    return user


def get_quiz_manager(
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
) -> QuizSessionManager:
    return services.registry.get(current_user.id)


def to_http_exception(error: QuizMasterError, services: AppServices, recipient: str | None = None) -> HTTPException:
    """Map a domain error to an HTTP error carrying the user-facing message."""
    if isinstance(error, ValidationError):
        form = services.error_handler.handle_validation(error)
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": error.message, "errors": form.as_dict()},
        )

    message = services.error_handler.handle(error, recipient=recipient)
    if isinstance(error, AuthError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(error, NoQuestionsAvailableError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
    if isinstance(error, SessionStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)
