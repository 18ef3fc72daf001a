"""Quiz session, answer and result models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from .question import PublicQuestion, Question
from .scoring import Grade, PointsBreakdown, PointsLineItem, ScoreBreakdown


class SessionStatus(str, Enum):
    """Session lifecycle. Transitions only move forward."""

    NOT_STARTED = "not_started"
    ACTIVE = "active"
    ENDED = "ended"


class EndReason(str, Enum):
    """Why a session ended."""

    COMPLETED = "completed"
    TIMEOUT = "timeout"
    ABANDONED = "abandoned"


class AnswerRecord(BaseModel):
    """One answered question. Never mutated after creation."""

    question_id: str
    question: str
    question_index: int
    selected_answer: str
    correct_answer: str
    is_correct: bool
    points: int
    base_points: int
    bonuses: list[PointsLineItem] = Field(default_factory=list)
    penalties: list[PointsLineItem] = Field(default_factory=list)
    breakdown: PointsBreakdown
    time_spent: int = 0  # seconds on this question
    elapsed: int = 0  # seconds since the quiz started
    category: str
    difficulty: str
    explanation: str | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        frozen = True


class QuizSession(BaseModel):
    """State of one quiz attempt, owned by a QuizSessionManager."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str | None = None
    remote_session_id: str | None = None
    category: str
    difficulty: str
    requested_count: int
    questions: list[Question] = Field(default_factory=list)
    time_limit: int = 0
    time_remaining: int = 0
    current_question_index: int = 0
    score: int = 0
    status: SessionStatus = SessionStatus.NOT_STARTED
    answers: list[AnswerRecord] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def elapsed(self) -> int:
        return self.time_limit - self.time_remaining

    @property
    def correct_count(self) -> int:
        return sum(1 for a in self.answers if a.is_correct)


class SessionInfo(BaseModel):
    """Public view of a session (no questions or answers)."""

    id: str
    remote_session_id: str | None
    category: str
    difficulty: str
    requested_count: int
    question_count: int
    time_limit: int
    started_at: datetime

    @classmethod
    def from_session(cls, session: QuizSession) -> "SessionInfo":
        return cls(
            id=session.id,
            remote_session_id=session.remote_session_id,
            category=session.category,
            difficulty=session.difficulty,
            requested_count=session.requested_count,
            question_count=session.question_count,
            time_limit=session.time_limit,
            started_at=session.started_at,
        )


class QuizResult(BaseModel):
    """Aggregate result of an ended session. Computed once, then immutable."""

    quiz_id: str
    session_id: str | None
    user_id: str | None
    category: str
    difficulty: str
    end_reason: EndReason
    total_questions: int
    answered: int
    correct_answers: int
    incorrect_answers: int
    unanswered: int
    accuracy: float
    score: int
    max_possible_points: int
    grade: Grade
    breakdown: ScoreBreakdown
    completion_bonuses: list[PointsLineItem]
    time_spent: int
    time_limit: int
    answers: list[AnswerRecord]
    started_at: datetime
    completed_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        frozen = True


class QuizStartRequest(BaseModel):
    """Request body for starting a quiz."""

    category: str = "General Knowledge"
    difficulty: str = "medium"
    question_count: int = Field(default=10, ge=1, le=50)


class QuizStartResult(BaseModel):
    """Outcome of start_quiz; failures do not transition the session."""

    success: bool
    quiz: SessionInfo | None = None
    first_question: PublicQuestion | None = None
    message: str
    error: str | None = None


class AnswerSubmission(BaseModel):
    """Request body for answering the current question."""

    answer: str


class AnswerOutcome(BaseModel):
    """Outcome of submit_answer."""

    success: bool
    message: str | None = None
    is_correct: bool | None = None
    points: int | None = None
    total_score: int | None = None
    correct_answer: str | None = None
    explanation: str | None = None
    record: AnswerRecord | None = None
    finished: bool = False
    next_question: PublicQuestion | None = None
    result: QuizResult | None = None


class QuizState(BaseModel):
    """Snapshot of the manager for presentation."""

    status: SessionStatus
    is_active: bool
    current_question: PublicQuestion | None = None
    question_number: int = 0
    total_questions: int = 0
    score: int = 0
    time_remaining: int = 0
    quiz: SessionInfo | None = None


class QuizHistoryStatistics(BaseModel):
    """Statistics derived from the local quiz history."""

    total_quizzes: int = 0
    total_score: int = 0
    average_score: int = 0
    average_accuracy: float = 0.0
    best_score: int = 0
    favorite_category: str = "None"
