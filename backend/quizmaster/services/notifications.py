"""Per-player toast notifications."""

import logging
import time
from collections import defaultdict
from typing import Callable

from quizmaster.config import settings
from quizmaster.models.notification import Notification, NotificationType
from quizmaster.models.quiz import EndReason
from quizmaster.utils.timing import Throttle

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"
DUPLICATE_ERROR_WINDOW = 1.0  # seconds


class NotificationCenter:
    """Holds dismissible, auto-expiring toasts for each recipient."""

    def __init__(
        self,
        default_duration: float = settings.toast_duration,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_duration = default_duration
        self.clock = clock
        self._toasts: dict[str, list[tuple[float, Notification]]] = defaultdict(list)
        self._error_throttle = Throttle(DUPLICATE_ERROR_WINDOW, clock=clock)

    def show(
        self,
        recipient: str | None,
        type: str | NotificationType = NotificationType.INFO,
        title: str = "",
        message: str = "",
        duration: float | None = None,
    ) -> Notification | None:
        """Queue a toast. Identical error titles within a second are dropped."""
        recipient = recipient or ANONYMOUS
        kind = NotificationType(type)
        self._prune(self.clock())
        if kind == NotificationType.ERROR and not self._error_throttle.allow((recipient, title)):
            logger.debug(f"Dropped duplicate error toast for {recipient}: {title}")
            return None

        notification = Notification(
            type=kind,
            title=title,
            message=message,
            duration=self.default_duration if duration is None else duration,
        )
        self._toasts[recipient].append((self.clock(), notification))
        return notification

    def success(self, recipient: str | None, title: str, message: str) -> Notification | None:
        return self.show(recipient, NotificationType.SUCCESS, title, message)

    def error(self, recipient: str | None, title: str, message: str) -> Notification | None:
        return self.show(recipient, NotificationType.ERROR, title, message)

    def dismiss(self, recipient: str | None, notification_id: str) -> bool:
        toasts = self._toasts.get(recipient or ANONYMOUS, [])
        for i, (_, notification) in enumerate(toasts):
            if notification.id == notification_id:
                del toasts[i]
                return True
        return False

    def active(self, recipient: str | None) -> list[Notification]:
        """Current toasts, oldest first. Expired ones are pruned."""
        self._prune(self.clock())
        return [notification for _, notification in self._toasts.get(recipient or ANONYMOUS, [])]

    def _prune(self, now: float) -> None:
        for key in list(self._toasts):
            live = [
                (shown_at, notification)
                for shown_at, notification in self._toasts[key]
                if notification.duration <= 0 or now - shown_at < notification.duration
            ]
            if live:
                self._toasts[key] = live
            else:
                del self._toasts[key]

    @property
    def recipient_count(self) -> int:
        return len(self._toasts)

    def clear(self, recipient: str | None = None) -> None:
        if recipient is None:
            self._toasts.clear()
        else:
            self._toasts.pop(recipient, None)


def quiz_toast_listener(center: NotificationCenter):
    """Session listener that announces finished quizzes."""

    def listener(event: str, manager) -> None:
        if event != "ended" or manager.result is None:
            return
        result = manager.result
        recipient = result.user_id
        if result.end_reason == EndReason.TIMEOUT:
            center.show(
                recipient,
                NotificationType.WARNING,
                "Time's Up!",
                f"You scored {result.score} points ({result.correct_answers}/{result.total_questions} correct).",
            )
        elif result.end_reason == EndReason.ABANDONED:
            center.show(recipient, NotificationType.INFO, "Quiz Ended", f"You scored {result.score} points.")
        else:
            center.success(
                recipient,
                "Quiz Completed!",
                f"Grade {result.grade.letter}: {result.score} points, {result.accuracy}% accuracy.",
            )

    return listener
