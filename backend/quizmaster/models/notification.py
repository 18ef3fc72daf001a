"""Toast notification models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Notification(BaseModel):
    """A dismissible, auto-expiring toast."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: NotificationType = NotificationType.INFO
    title: str
    message: str
    duration: float = Field(default=4.0, description="Seconds until auto-dismiss; 0 keeps it")
    created_at: datetime = Field(default_factory=datetime.utcnow)
