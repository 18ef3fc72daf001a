"""Toast notification endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from quizmaster.db import ProfileDB
from quizmaster.dependencies import AppServices, get_current_user, get_services
from quizmaster.models.notification import Notification

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[Notification])
async def list_notifications(
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
):
    return services.notifications.active(current_user.id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(
    notification_id: str,
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    services: Annotated[AppServices, Depends(get_services)],
):
    if not services.notifications.dismiss(current_user.id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
