"""Change notifications for profile rows."""

import logging
from typing import Callable

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from .models import ProfileDB

logger = logging.getLogger(__name__)

_PENDING_KEY = "quizmaster_profile_changes"


class ProfileChangeFeed:
    """Calls subscribers with the ids of profiles changed by each committed transaction."""

    def __init__(self):
        self._callbacks: list[Callable[[set[str]], None]] = []
        self._installed = False

    def install(self) -> None:
        if self._installed:
            return
        event.listen(ProfileDB, "after_insert", self._mark_changed)
        event.listen(ProfileDB, "after_update", self._mark_changed)
        event.listen(Session, "after_commit", self._on_commit)
        event.listen(Session, "after_rollback", self._on_rollback)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        event.remove(ProfileDB, "after_insert", self._mark_changed)
        event.remove(ProfileDB, "after_update", self._mark_changed)
        event.remove(Session, "after_commit", self._on_commit)
        event.remove(Session, "after_rollback", self._on_rollback)
        self._installed = False

    def subscribe(self, callback: Callable[[set[str]], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _mark_changed(self, mapper, connection, target: ProfileDB) -> None:
        session = object_session(target)
        if session is not None:
            session.info.setdefault(_PENDING_KEY, set()).add(target.id)

    def _on_commit(self, session: Session) -> None:
        changed = session.info.pop(_PENDING_KEY, None)
        if changed:
            self.emit(changed)

    def _on_rollback(self, session: Session) -> None:
        session.info.pop(_PENDING_KEY, None)

    def emit(self, profile_ids: set[str]) -> None:
        for callback in list(self._callbacks):
            try:
                callback(set(profile_ids))
            except Exception as e:
                logger.error(f"Profile change subscriber failed: {e}")
