"""Profile, settings and quiz history endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quizmaster.config import STORAGE_KEYS, SUCCESS_MESSAGES
from quizmaster.db import ProfileDB, get_db
from quizmaster.dependencies import AppServices, get_current_user, get_services, to_http_exception
from quizmaster.errors import ValidationError
from quizmaster.models.user import Profile, ProfileOverview, ProfileUpdate, UserSettings
from quizmaster.services.quiz_store import DatabaseQuizStore
from quizmaster.utils.validation import validate_username

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["profile"])


async def _best_accuracy(user: ProfileDB, services: AppServices) -> float:
    if isinstance(services.store, DatabaseQuizStore):
        try:
            return await services.store.best_accuracy(user.id)
        except Exception as e:
            logger.warning(f"Failed to load best accuracy for {user.id}: {e}")
    history = services.local_store.get_history(STORAGE_KEYS["quiz_results"], user.id)
    return max((entry.get("accuracy", 0) for entry in history), default=0.0)


@router.get("/me", response_model=ProfileOverview)
async def get_profile(
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
):
    """Profile with statistics and achievement progress."""
    stats = {
        "quizzes_completed": current_user.quizzes_completed or 0,
        "total_points": current_user.total_points or 0,
        "best_accuracy": await _best_accuracy(current_user, services),
    }
    earned = []
    if isinstance(services.store, DatabaseQuizStore):
        earned = await services.store.earned_achievements(current_user.id)

    return ProfileOverview(
        profile=Profile.model_validate(current_user, from_attributes=True),
        achievements=services.scorer.get_achievement_progress(stats),
        earned_achievements=earned,
    )


@router.patch("/me", response_model=Profile)
async def update_profile(
    update: ProfileUpdate,
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
    db: AsyncSession = Depends(get_db),
):
    if update.username is not None:
        username = update.username.strip()
        errors = validate_username(username)
        if errors:
            raise to_http_exception(ValidationError({"username": errors}), services)
        taken = await db.scalar(
            select(func.count())
            .select_from(ProfileDB)
            .where(func.lower(ProfileDB.username) == username.lower(), ProfileDB.id != current_user.id)
        )
        if taken:
            raise HTTPException(status_code=409, detail="Username is already taken")
        current_user.username = username

    if update.full_name is not None:
        full_name = update.full_name.strip()
        if len(full_name) > 100:
            raise to_http_exception(
                ValidationError({"full_name": ["Full name must be less than 100 characters long"]}),
                services,
            )
        current_user.full_name = full_name or None

    await db.commit()
    await db.refresh(current_user)
    services.notifications.success(current_user.id, "Profile", SUCCESS_MESSAGES["profile"]["updated"])
    return Profile.model_validate(current_user, from_attributes=True)


@router.get("/me/settings", response_model=UserSettings)
async def get_settings(
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
):
    saved = services.local_store.get(STORAGE_KEYS["settings"], {}) or {}
    return UserSettings(**saved.get(current_user.id, {}))


@router.put("/me/settings", response_model=UserSettings)
async def save_settings(
    user_settings: UserSettings,
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
):
    saved = dict(services.local_store.get(STORAGE_KEYS["settings"], {}) or {})
    saved[current_user.id] = user_settings.model_dump()
    services.local_store.set(STORAGE_KEYS["settings"], saved)
    return user_settings


@router.get("/me/history", response_model=list[dict])
async def get_history(
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
):
    """Quiz results recorded locally, most recent first."""
    return services.local_store.get_history(STORAGE_KEYS["quiz_results"], current_user.id)
