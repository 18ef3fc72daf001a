"""Scoring result models."""

from pydantic import BaseModel, Field


class PointsLineItem(BaseModel):
    """A single bonus or penalty applied to an answer or a whole quiz."""

    type: str
    amount: int
    description: str


class PointsBreakdown(BaseModel):
    """Per-answer points breakdown."""

    base: int
    bonuses: int = 0
    penalties: int = 0
    net: int = 0


class AnswerScore(BaseModel):
    """Outcome of scoring one answer."""

    base_points: int
    final_points: int
    is_correct: bool
    bonuses: list[PointsLineItem] = Field(default_factory=list)
    penalties: list[PointsLineItem] = Field(default_factory=list)
    breakdown: PointsBreakdown


class Grade(BaseModel):
    """Letter grade derived from accuracy."""

    letter: str
    description: str
    color: str
    percentage: float


class QuizInfo(BaseModel):
    """Quiz-level context used for completion bonuses."""

    category: str | None = None
    difficulty: str | None = None
    time_spent: int | None = None  # seconds
    time_limit: int | None = None  # seconds


class ScoreBreakdown(BaseModel):
    """Aggregate breakdown of a quiz score."""

    base_score: int = 0
    bonuses: int = 0
    penalties: int = 0
    completion_bonuses: int = 0


class TotalScore(BaseModel):
    """Aggregate score of a finished quiz."""

    total_points: int = Field(ge=0)
    correct_answers: int
    total_questions: int
    accuracy: float
    max_possible_points: int
    total_bonuses: int
    total_penalties: int
    completion_bonuses: list[PointsLineItem]
    grade: Grade
    breakdown: ScoreBreakdown


class ScoringStatistics(BaseModel):
    """Summary over a list of past quiz results."""

    average_score: int = 0
    best_score: int = 0
    total_points: int = 0
    average_accuracy: float = 0.0
    best_accuracy: float = 0.0
    total_quizzes: int = 0


class AchievementProgress(BaseModel):
    """Progress towards a single achievement."""

    name: str
    description: str
    target: int
    current: float
    type: str
    progress: float
    completed: bool
