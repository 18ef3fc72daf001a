"""Quiz session endpoints. Each player has one session manager."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from quizmaster.config import ERROR_MESSAGES
from quizmaster.db import ProfileDB
from quizmaster.dependencies import (
    AppServices,
    get_current_user,
    get_quiz_manager,
    get_services,
    to_http_exception,
)
from quizmaster.errors import NoQuestionsAvailableError, SessionStateError
from quizmaster.models.question import CategoryInfo, QuestionStatistics
from quizmaster.models.quiz import (
    AnswerOutcome,
    AnswerSubmission,
    QuizHistoryStatistics,
    QuizResult,
    QuizStartRequest,
    QuizStartResult,
    QuizState,
)
from quizmaster.services.quiz_session import QuizSessionManager

router = APIRouter(prefix="/api/quiz", tags=["quiz"])


@router.get("/categories", response_model=list[CategoryInfo])
async def list_categories(services: Annotated[AppServices, Depends(get_services)]):
    """Active categories with question counts."""
    return await services.loader.categories()


@router.get("/statistics", response_model=QuestionStatistics)
async def question_statistics(services: Annotated[AppServices, Depends(get_services)]):
    return await services.loader.statistics()


@router.post("/start", response_model=QuizStartResult)
async def start_quiz(
    request: QuizStartRequest,
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    manager: Annotated[QuizSessionManager, Depends(get_quiz_manager)],
    services: Annotated[AppServices, Depends(get_services)],
):
    """Start a quiz, abandoning any quiz already in progress."""
    result = await manager.start_quiz(
        user_id=current_user.id,
        category=request.category,
        difficulty=request.difficulty,
        question_count=request.question_count,
    )
    if not result.success:
        if result.error == ERROR_MESSAGES["quiz"]["no_questions"]:
            error = NoQuestionsAvailableError()
        else:
            error = SessionStateError(result.message)
        raise to_http_exception(error, services, recipient=current_user.id)
    return result


@router.get("/state", response_model=QuizState)
async def get_state(manager: Annotated[QuizSessionManager, Depends(get_quiz_manager)]):
    return manager.get_current_state()


@router.post("/answer", response_model=AnswerOutcome)
async def submit_answer(
    submission: AnswerSubmission,
    manager: Annotated[QuizSessionManager, Depends(get_quiz_manager)],
):
    """Answer the current question."""
    outcome = await manager.submit_answer(submission.answer)
    if not outcome.success:
        raise HTTPException(status_code=409, detail=outcome.message)
    return outcome


@router.post("/end", response_model=QuizResult)
async def end_quiz(manager: Annotated[QuizSessionManager, Depends(get_quiz_manager)]):
    """End the quiz early, keeping the answers given so far."""
    result = await manager.end_quiz()
    if result is None:
        raise HTTPException(status_code=409, detail="No quiz in progress")
    return result


@router.get("/stats", response_model=QuizHistoryStatistics)
async def quiz_stats(
    current_user: Annotated[ProfileDB, Depends(get_current_user)],
    manager: Annotated[QuizSessionManager, Depends(get_quiz_manager)],
):
    """Statistics from the player's local quiz history."""
    return manager.get_statistics(current_user.id)
