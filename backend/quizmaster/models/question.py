"""Question-related Pydantic models."""

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class Difficulty(str, Enum):
    """Difficulty tiers; each maps to a base point value."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, Enum):
    """How the answer options are presented."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"


TRUE_FALSE_OPTIONS = ["True", "False"]


class Question(BaseModel):
    """A single trivia question. Immutable once loaded into a session."""

    id: str
    question: str = Field(description="Prompt text")
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: list[str] = Field(default_factory=list)
    correct_answer: str
    explanation: str | None = None
    category: str = "General Knowledge"
    # Kept as a plain string so unknown tiers degrade to "medium" when scored
    difficulty: str = Difficulty.MEDIUM.value
    points: int | None = Field(default=None, description="Base points; tier-derived if unset")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "1",
                "question": "What is the capital of France?",
                "type": "multiple_choice",
                "options": ["London", "Berlin", "Paris", "Madrid"],
                "correct_answer": "Paris",
                "explanation": "Paris is the capital and most populous city of France.",
                "category": "Geography",
                "difficulty": "easy",
                "points": 10,
            }
        }

    @model_validator(mode="before")
    @classmethod
    def _fill_true_false_options(cls, data):
        if isinstance(data, dict) and data.get("type") in (QuestionType.TRUE_FALSE, "true_false"):
            if not data.get("options"):
                data = {**data, "options": list(TRUE_FALSE_OPTIONS)}
        return data

    @model_validator(mode="after")
    def _check_correct_answer(self):
        if self.type == QuestionType.TRUE_FALSE and len(self.options) != 2:
            raise ValueError("true/false questions have exactly two options")
        if self.correct_answer not in self.options:
            raise ValueError("correct_answer must match one of the options exactly")
        return self


class PublicQuestion(BaseModel):
    """Question as shown to a player: no correct answer or explanation."""

    id: str
    question: str
    type: QuestionType
    options: list[str]
    category: str
    difficulty: str
    points: int | None = None

    @classmethod
    def from_question(cls, question: Question) -> "PublicQuestion":
        return cls(
            id=question.id,
            question=question.question,
            type=question.type,
            options=list(question.options),
            category=question.category,
            difficulty=question.difficulty,
            points=question.points,
        )


class QuestionStatistics(BaseModel):
    """Counts of active questions in the bank."""

    total_questions: int = 0
    category_counts: dict[str, int] = Field(default_factory=dict)
    difficulty_counts: dict[str, int] = Field(default_factory=dict)


class CategoryInfo(BaseModel):
    """Category metadata shown on the category picker."""

    name: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    question_count: int = 0
