"""Quiz session state machine."""

import asyncio
import logging
from collections import Counter
from datetime import datetime
from fractions import Fraction
from typing import Any, Callable

from quizmaster.config import ERROR_MESSAGES, STORAGE_KEYS, SUCCESS_MESSAGES, Settings, settings
from quizmaster.errors import QuizMasterError
from quizmaster.models.question import PublicQuestion
from quizmaster.models.quiz import (
    AnswerOutcome,
    AnswerRecord,
    EndReason,
    QuizHistoryStatistics,
    QuizResult,
    QuizSession,
    QuizStartResult,
    QuizState,
    SessionInfo,
    SessionStatus,
)
from quizmaster.models.scoring import QuizInfo
from quizmaster.utils.formatting import generate_uuid, round_half_up
from quizmaster.utils.storage import LocalStore

from .leaderboard import LeaderboardCache
from .question_bank import QuestionLoader
from .quiz_store import QuizStore
from .scoring import ScoreCalculator

logger = logging.getLogger(__name__)

SessionListener = Callable[[str, "QuizSessionManager"], Any]


class QuizSessionManager:
    """Runs one player's quiz: Idle -> Active -> Ended.

    All state changes happen synchronously between awaits, so a tick and an
    answer submission never interleave mid-mutation. Remote writes are best
    effort and never block the player.
    """

    def __init__(
        self,
        loader: QuestionLoader,
        scorer: ScoreCalculator,
        store: QuizStore | None = None,
        leaderboard: LeaderboardCache | None = None,
        local_store: LocalStore | None = None,
        settings: Settings = settings,
    ):
        self.loader = loader
        self.scorer = scorer
        self.store = store
        self.leaderboard = leaderboard
        self.local_store = local_store or LocalStore()
        self.settings = settings

        self.session: QuizSession | None = None
        self.result: QuizResult | None = None
        self._generation = 0
        self._timer_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._listeners: list[SessionListener] = []

    # --- State ---

    @property
    def status(self) -> SessionStatus:
        return self.session.status if self.session else SessionStatus.NOT_STARTED

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def current_question(self) -> PublicQuestion | None:
        if not self.is_active or self.session.current_question_index >= self.session.question_count:
            return None
        return PublicQuestion.from_question(self.session.questions[self.session.current_question_index])

    def get_current_state(self) -> QuizState:
        session = self.session
        if session is None:
            return QuizState(status=SessionStatus.NOT_STARTED, is_active=False)
        return QuizState(
            status=session.status,
            is_active=self.is_active,
            current_question=self.current_question,
            question_number=min(session.current_question_index + 1, session.question_count),
            total_questions=session.question_count,
            score=session.score,
            time_remaining=session.time_remaining,
            quiz=SessionInfo.from_session(session),
        )

    # --- Observers ---

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener(event, manager)`` for started/answered/tick/ended events."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self)
            except Exception as e:
                logger.error(f"Quiz listener failed on {event}: {e}")

    # --- Transitions ---

    async def start_quiz(
        self,
        user_id: str | None = None,
        category: str = "General Knowledge",
        difficulty: str = "medium",
        question_count: int | None = None,
    ) -> QuizStartResult:
        """Load questions and start the countdown. Failures leave the manager idle."""
        question_count = question_count or self.settings.questions_per_quiz
        if self.is_active:
            logger.info(f"Abandoning quiz {self.session.id} to start a new one")
            self._discard_active()

        self._generation += 1
        generation = self._generation

        try:
            questions = await self.loader.load(category, difficulty, question_count)
        except QuizMasterError as e:
            logger.warning(f"Could not start quiz ({category}/{difficulty}): {e.message}")
            return QuizStartResult(success=False, message=e.message, error=e.message)

        time_limit = question_count * self.settings.time_per_question
        session = QuizSession(
            user_id=user_id,
            category=category,
            difficulty=difficulty,
            requested_count=question_count,
            questions=questions,
            time_limit=time_limit,
            time_remaining=time_limit,
        )
        session.remote_session_id = await self._create_remote_session(session)

        if generation != self._generation:
            message = "Quiz start was superseded by a newer request"
            return QuizStartResult(success=False, message=message, error=message)
        if self.is_active:
            self._discard_active()

        session.status = SessionStatus.ACTIVE
        session.started_at = datetime.utcnow()
        self.session = session
        self.result = None
        if self.settings.auto_timer:
            self._timer_task = asyncio.get_running_loop().create_task(self._run_timer(session.id))

        logger.info(
            f"Quiz {session.id} started: {len(questions)} questions, "
            f"{category}/{difficulty}, {time_limit}s (source: {self.loader.last_source})"
        )
        self._emit("started")
        return QuizStartResult(
            success=True,
            quiz=SessionInfo.from_session(session),
            first_question=self.current_question,
            message=SUCCESS_MESSAGES["quiz"]["started"],
        )

    async def submit_answer(self, selected_answer: str) -> AnswerOutcome:
        """Answer the current question. Each question index is answered at most once."""
        session = self.session
        if not self.is_active or session.current_question_index >= session.question_count:
            return AnswerOutcome(success=False, message=ERROR_MESSAGES["quiz"]["no_active_question"])

        index = session.current_question_index
        question = session.questions[index]
        is_correct = selected_answer == question.correct_answer
        consecutive = self.scorer.consecutive_correct(session.answers)
        elapsed = session.elapsed
        previous_elapsed = session.answers[-1].elapsed if session.answers else 0
        time_spent = max(0, elapsed - previous_elapsed)

        scored = self.scorer.calculate_answer_points(question, is_correct, time_spent, consecutive)
        record = AnswerRecord(
            question_id=question.id,
            question=question.question,
            question_index=index,
            selected_answer=selected_answer,
            correct_answer=question.correct_answer,
            is_correct=is_correct,
            points=scored.final_points,
            base_points=scored.base_points,
            bonuses=scored.bonuses,
            penalties=scored.penalties,
            breakdown=scored.breakdown,
            time_spent=time_spent,
            elapsed=elapsed,
            category=question.category,
            difficulty=question.difficulty,
            explanation=question.explanation,
        )
        session.answers.append(record)
        session.score += scored.final_points
        session.current_question_index += 1
        finished = session.current_question_index >= session.question_count

        result = self._finish(EndReason.COMPLETED) if finished else None
        if not finished:
            self._emit("answered")

        await self._mirror_answer(session, record)

        return AnswerOutcome(
            success=True,
            is_correct=is_correct,
            points=scored.final_points,
            total_score=session.score,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            record=record,
            finished=finished,
            next_question=None if finished else self.current_question,
            result=result,
        )

    async def tick(self) -> None:
        """One second of countdown; ends the quiz when time runs out."""
        if not self.is_active:
            return
        self.session.time_remaining = max(0, self.session.time_remaining - 1)
        if self.session.time_remaining <= 0:
            logger.info(f"Quiz {self.session.id} timed out")
            self._finish(EndReason.TIMEOUT)
        else:
            self._emit("tick")

    async def end_quiz(self) -> QuizResult | None:
        """Abandon the active quiz, keeping whatever was answered."""
        if self.session is None:
            return None
        if self.session.status == SessionStatus.ENDED:
            return self.result
        return self._finish(EndReason.ABANDONED)

    async def wait_for_background(self) -> None:
        """Await pending best-effort persistence."""
        pending = [task for task in self._background if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._background if not task.done()]

    async def close(self) -> None:
        self._stop_timer()
        await self.wait_for_background()

    # --- Internals ---

    def _finish(self, reason: EndReason) -> QuizResult:
        session = self.session
        session.status = SessionStatus.ENDED
        self._stop_timer()

        time_spent = session.elapsed
        total = self.scorer.calculate_total_score(
            session.answers,
            QuizInfo(
                category=session.category,
                difficulty=session.difficulty,
                time_spent=time_spent,
                time_limit=session.time_limit,
            ),
        )
        answered = len(session.answers)
        result = QuizResult(
            quiz_id=session.id,
            session_id=session.remote_session_id,
            user_id=session.user_id,
            category=session.category,
            difficulty=session.difficulty,
            end_reason=reason,
            total_questions=session.question_count,
            answered=answered,
            correct_answers=total.correct_answers,
            incorrect_answers=answered - total.correct_answers,
            unanswered=session.question_count - answered,
            accuracy=total.accuracy,
            score=total.total_points,
            max_possible_points=total.max_possible_points,
            grade=total.grade,
            breakdown=total.breakdown,
            completion_bonuses=total.completion_bonuses,
            time_spent=time_spent,
            time_limit=session.time_limit,
            answers=list(session.answers),
            started_at=session.started_at,
        )
        self.result = result

        self.local_store.append_history(
            STORAGE_KEYS["quiz_results"],
            session.user_id,
            {
                "quiz_id": result.quiz_id,
                "category": result.category,
                "difficulty": result.difficulty,
                "score": result.score,
                "accuracy": result.accuracy,
                "correct_answers": result.correct_answers,
                "total_questions": result.total_questions,
                "time_spent": result.time_spent,
                "grade": result.grade.letter,
                "end_reason": result.end_reason.value,
                "completed_at": result.completed_at.isoformat(),
            },
        )
        logger.info(
            f"Quiz {session.id} ended ({reason.value}): {result.correct_answers}/{result.total_questions} "
            f"correct, {result.score} points, grade {result.grade.letter}"
        )
        self._emit("ended")
        self._spawn(self._persist_result(session, result))
        return result

    def _discard_active(self) -> None:
        """Drop the active session without computing or saving a result."""
        self.session.status = SessionStatus.ENDED
        self._stop_timer()
        self.session = None
        self.result = None

    def _stop_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if task is not current:
                task.cancel()

    async def _run_timer(self, session_id: str) -> None:
        while True:
            await asyncio.sleep(1)
            if self.session is None or self.session.id != session_id or not self.is_active:
                return
            await self.tick()

    def _spawn(self, coro) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.error("No running event loop; skipping background persistence")
            return
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _create_remote_session(self, session: QuizSession) -> str:
        if self.store is None:
            return generate_uuid()
        try:
            return await self.store.create_session(
                session.user_id,
                session.category,
                session.difficulty,
                session.question_count,
                session.time_limit,
            )
        except Exception as e:
            logger.error(f"Failed to create remote quiz session, using a local id: {e}")
            return generate_uuid()

    async def _mirror_answer(self, session: QuizSession, record: AnswerRecord) -> None:
        if self.store is None or session.remote_session_id is None:
            return
        try:
            await self.store.record_answer(session.remote_session_id, record)
            await self.store.update_session(
                session.remote_session_id,
                questions_answered=len(session.answers),
                correct_answers=session.correct_count,
                total_points=session.score,
            )
        except Exception as e:
            logger.error(f"Failed to mirror answer for quiz {session.id}: {e}")

    async def _persist_result(self, session: QuizSession, result: QuizResult) -> None:
        if self.store is not None and session.remote_session_id is not None:
            try:
                await self.store.update_session(
                    session.remote_session_id,
                    status="abandoned" if result.end_reason == EndReason.ABANDONED else "completed",
                    questions_answered=result.answered,
                    correct_answers=result.correct_answers,
                    total_points=result.score,
                    time_spent=result.time_spent,
                    completed_at=result.completed_at,
                )
            except Exception as e:
                logger.error(f"Failed to complete remote session for quiz {session.id}: {e}")

        if session.user_id is None:
            return

        if self.store is not None:
            try:
                await self.store.save_result(result)
                await self.store.update_profile_stats(session.user_id, result)
                await self.store.check_achievements(session.user_id)
            except Exception as e:
                logger.error(f"Failed to save results for quiz {session.id}: {e}")

        if self.session is not session:
            logger.info(f"Quiz {session.id} was replaced before its results were saved; skipping leaderboard update")
            return

        if self.leaderboard is not None:
            try:
                await self.leaderboard.update_user_score(session.user_id, result.score)
            except Exception as e:
                logger.error(f"Failed to update leaderboard for quiz {session.id}: {e}")

    # --- History ---

    def get_history(self, user_id: str | None) -> list[dict]:
        return self.local_store.get_history(STORAGE_KEYS["quiz_results"], user_id)

    def get_statistics(self, user_id: str | None) -> QuizHistoryStatistics:
        history = self.get_history(user_id)
        if not history:
            return QuizHistoryStatistics()

        total_quizzes = len(history)
        total_score = sum(r.get("score", 0) for r in history)
        favorite = Counter(r.get("category") for r in history if r.get("category")).most_common(1)
        return QuizHistoryStatistics(
            total_quizzes=total_quizzes,
            total_score=total_score,
            average_score=int(round_half_up(Fraction(total_score) / total_quizzes, 0)),
            average_accuracy=round_half_up(sum(Fraction(r.get("accuracy", 0)) for r in history) / total_quizzes),
            best_score=max(r.get("score", 0) for r in history),
            favorite_category=favorite[0][0] if favorite else "None",
        )


class QuizSessionRegistry:
    """One QuizSessionManager per player, created on first use."""

    def __init__(self, factory: Callable[[], QuizSessionManager]):
        self.factory = factory
        self._managers: dict[str, QuizSessionManager] = {}
        self._listeners: list[SessionListener] = []

    def get(self, user_id: str) -> QuizSessionManager:
        manager = self._managers.get(user_id)
        if manager is None:
            manager = self.factory()
            for listener in self._listeners:
                manager.subscribe(listener)
            self._managers[user_id] = manager
        return manager

    def subscribe(self, listener: SessionListener) -> None:
        """Attach a listener to every current and future manager."""
        self._listeners.append(listener)
        for manager in self._managers.values():
            manager.subscribe(listener)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._managers

    def __len__(self) -> int:
        return len(self._managers)

    async def close(self) -> None:
        for manager in self._managers.values():
            await manager.close()
        self._managers.clear()
