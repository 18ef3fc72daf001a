"""Registration, login and current-user endpoints."""

import logging
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from quizmaster.config import SUCCESS_MESSAGES
from quizmaster.db import ProfileDB, get_db
from quizmaster.dependencies import AppServices, get_current_user, get_services, to_http_exception
from quizmaster.errors import AUTH_MESSAGES, AuthError, ValidationError
from quizmaster.models.user import Profile, Token, UserRegister
from quizmaster.utils.auth import create_access_token, get_password_hash, verify_password
from quizmaster.utils.validation import validate_registration

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _issue_token(user: ProfileDB, services: AppServices) -> Token:
    access_token = create_access_token(
        data={"sub": user.id},
        expires_delta=timedelta(minutes=services.settings.access_token_expire_minutes),
        secret_key=services.settings.secret_key,
    )
    return Token(access_token=access_token, token_type="bearer")


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(
    user: UserRegister,
    services: Annotated[AppServices, Depends(get_services)],
    db: AsyncSession = Depends(get_db),
):
    """Create an account and log it in."""
    email = user.email.strip().lower()
    username = user.username.strip()
    errors = validate_registration(email, user.password, username)
    if errors:
        raise to_http_exception(ValidationError(errors), services)

    result = await db.execute(
        select(ProfileDB).where(
            or_(func.lower(ProfileDB.email) == email, func.lower(ProfileDB.username) == username.lower())
        )
    )
    existing = result.scalars().first()
    if existing is not None:
        detail = AUTH_MESSAGES["email_exists"] if existing.email.lower() == email else "Username is already taken"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    profile = ProfileDB(
        email=email,
        username=username,
        full_name=user.full_name or username,
        hashed_password=get_password_hash(user.password),
    )
    db.add(profile)
    await db.commit()
    await db.refresh(profile)

    logger.info(f"Registered user {profile.id} ({username})")
    services.notifications.success(profile.id, "Welcome!", SUCCESS_MESSAGES["auth"]["register_success"])
    return _issue_token(profile, services)


@router.post("/login", response_model=Token)
async def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    services: Annotated[AppServices, Depends(get_services)],
    db: AsyncSession = Depends(get_db),
):
    # OAuth2 form uses the 'username' field; we treat it as the email
    identifier = form_data.username.strip().lower()
    tracker = services.login_tracker
    if tracker.is_locked(identifier):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=AUTH_MESSAGES["locked_out"],
        )

    result = await db.execute(select(ProfileDB).where(func.lower(ProfileDB.email) == identifier))
    user = result.scalar_one_or_none()
    if not user or not verify_password(form_data.password, user.hashed_password):
        tracker.record_failure(identifier)
        raise to_http_exception(AuthError("invalid_credentials"), services)

    tracker.reset(identifier)
    services.notifications.success(user.id, "Signed In", SUCCESS_MESSAGES["auth"]["login_success"])
    return _issue_token(user, services)


@router.get("/me", response_model=Profile)
async def read_users_me(current_user: Annotated[ProfileDB, Depends(get_current_user)]):
    return Profile.model_validate(current_user, from_attributes=True)
