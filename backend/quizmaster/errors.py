"""Error types and the user-facing error handler."""

import logging
from collections import Counter, deque
from datetime import datetime

from quizmaster.config import ERROR_MESSAGES

logger = logging.getLogger(__name__)


class QuizMasterError(Exception):
    """Base error carrying a message that is safe to show to a user."""

    def __init__(self, message: str = ERROR_MESSAGES["general"]["unexpected_error"]):
        super().__init__(message)
        self.message = message


class ValidationError(QuizMasterError):
    """Form input rejected before any database call."""

    def __init__(self, errors: dict[str, list[str]], message: str | None = None):
        super().__init__(message or ERROR_MESSAGES["general"]["validation_error"])
        self.errors = errors


class AuthError(QuizMasterError):
    """Authentication failure. The message always comes from AUTH_MESSAGES."""

    def __init__(self, code: str = "invalid_credentials"):
        super().__init__(AUTH_MESSAGES.get(code, DEFAULT_AUTH_MESSAGE))
        self.code = code


class ExternalServiceError(QuizMasterError):
    """The backing store is unreachable or rejected a request."""

    def __init__(
        self,
        message: str = ERROR_MESSAGES["general"]["server_error"],
        code: str | None = None,
        status: int | None = None,
        transient: bool = True,
    ):
        super().__init__(message)
        self.code = code
        self.status = status
        self.transient = transient


class NoQuestionsAvailableError(QuizMasterError):
    def __init__(self, message: str = ERROR_MESSAGES["quiz"]["no_questions"]):
        super().__init__(message)


class SessionStateError(QuizMasterError):
    """Operation not valid in the session's current state."""


AUTH_MESSAGES = {
    "invalid_credentials": ERROR_MESSAGES["auth"]["invalid_credentials"],
    "email_not_confirmed": "Please check your email and click the confirmation link",
    "too_many_requests": "Too many attempts. Please wait a moment and try again",
    "user_not_found": "No account found with this email address",
    "email_address_invalid": "Please enter a valid email address",
    "password_too_short": ERROR_MESSAGES["auth"]["weak_password"],
    "signup_disabled": "New registrations are currently disabled",
    "email_address_not_authorized": "This email address is not authorized",
    "email_exists": ERROR_MESSAGES["auth"]["email_exists"],
    "locked_out": ERROR_MESSAGES["auth"]["locked_out"],
    "session_expired": ERROR_MESSAGES["auth"]["session_expired"],
}
DEFAULT_AUTH_MESSAGE = "Authentication failed. Please try again."

DATABASE_MESSAGES = {
    "PGRST116": "No data found",
    "PGRST301": "Database connection error",
    "23505": "This record already exists",
    "23503": "Referenced record not found",
    "42P01": "Database table not found",
    "connection_error": "Unable to connect to the database",
}
DEFAULT_DATABASE_MESSAGE = "A database error occurred. Please try again."

HTTP_MESSAGES = {
    400: "Bad request. Please check your input",
    401: "Authentication required. Please log in",
    403: "Access denied. You do not have permission",
    404: "The requested resource was not found",
    408: "Request timeout. Please try again",
    429: "Too many requests. Please wait a moment",
    500: ERROR_MESSAGES["general"]["server_error"],
    502: "Service temporarily unavailable",
    503: "Service unavailable. Please try again later",
    504: "Gateway timeout. Please try again",
}
DEFAULT_HTTP_MESSAGE = "A network error occurred. Please try again."


class FormErrors:
    """Inline field errors, cleared on the next interaction with the field."""

    def __init__(self):
        self._errors: dict[str, str] = {}

    def set(self, field: str, message: str) -> None:
        self._errors[field] = message

    def touch(self, field: str) -> None:
        self._errors.pop(field, None)

    def clear(self) -> None:
        self._errors.clear()

    def get(self, field: str) -> str | None:
        return self._errors.get(field)

    def as_dict(self) -> dict[str, str]:
        return dict(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)

    @classmethod
    def from_validation(cls, error: ValidationError) -> "FormErrors":
        form = cls()
        for field, messages in error.errors.items():
            if messages:
                form.set(field, messages[0])
        return form


class ErrorHandler:
    """Maps errors to user-facing messages and keeps a bounded error log."""

    MAX_LOG_SIZE = 100

    def __init__(self, notifications=None):
        self.notifications = notifications
        self._log: deque[dict] = deque(maxlen=self.MAX_LOG_SIZE)

    def auth_message(self, code: str | None) -> str:
        return AUTH_MESSAGES.get(code or "", DEFAULT_AUTH_MESSAGE)

    def database_message(self, code: str | None) -> str:
        return DATABASE_MESSAGES.get(code or "", DEFAULT_DATABASE_MESSAGE)

    def http_message(self, status: int | None) -> str:
        return HTTP_MESSAGES.get(status or 0, DEFAULT_HTTP_MESSAGE)

    def user_message(self, error: Exception) -> str:
        """Resolve the message to show for an arbitrary error."""
        if isinstance(error, AuthError):
            return self.auth_message(error.code)
        if isinstance(error, ExternalServiceError):
            if error.status is not None:
                return self.http_message(error.status)
            if error.code is not None:
                return self.database_message(error.code)
            return error.message
        if isinstance(error, QuizMasterError):
            return error.message
        return ERROR_MESSAGES["general"]["unexpected_error"]

    def handle(
        self,
        error: Exception,
        context: str = "",
        recipient: str | None = None,
        notify: bool = True,
    ) -> str:
        """Log the error, record it, and optionally show a toast. Returns the user message."""
        message = self.user_message(error)
        error_type = self._error_type(error)
        self._log.append(
            {
                "type": error_type,
                "message": str(error),
                "code": getattr(error, "code", None),
                "status": getattr(error, "status", None),
                "context": context,
                "timestamp": datetime.utcnow().isoformat(),
            }
        )
        logger.error(f"{error_type} error{f' in {context}' if context else ''}: {error}")

        if notify and self.notifications is not None:
            self.notifications.show(
                recipient,
                type="error",
                title=self._title(error_type),
                message=message,
            )
        return message

    def handle_validation(self, error: ValidationError) -> FormErrors:
        """Validation errors render inline instead of as toasts."""
        self._log.append(
            {
                "type": "validation",
                "message": error.message,
                "code": None,
                "status": None,
                "context": ",".join(error.errors),
                "timestamp": datetime.utcnow().isoformat(),
            }
        )
        return FormErrors.from_validation(error)

    def get_error_log(self) -> list[dict]:
        return list(self._log)

    def clear_error_log(self) -> None:
        self._log.clear()

    def get_error_stats(self) -> dict:
        counts = Counter(entry["type"] for entry in self._log)
        return {"total": len(self._log), "by_type": dict(counts)}

    @staticmethod
    def _error_type(error: Exception) -> str:
        if isinstance(error, AuthError):
            return "auth"
        if isinstance(error, ExternalServiceError):
            return "network" if error.status is not None else "database"
        if isinstance(error, ValidationError):
            return "validation"
        if isinstance(error, QuizMasterError):
            return "quiz"
        return "general"

    @staticmethod
    def _title(error_type: str) -> str:
        return {
            "auth": "Authentication Error",
            "database": "Database Error",
            "network": "Network Error",
            "validation": "Validation Error",
            "quiz": "Quiz Error",
        }.get(error_type, "Error")
