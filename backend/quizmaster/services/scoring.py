"""Scoring engine: per-answer points and aggregate quiz results."""

import logging
import math
from fractions import Fraction
from typing import Iterable

from quizmaster.config import GRADE_TABLE, SPEED_THRESHOLDS, PointsSystem, settings
from quizmaster.models.question import Question
from quizmaster.models.quiz import AnswerRecord
from quizmaster.models.scoring import (
    AchievementProgress,
    AnswerScore,
    Grade,
    PointsBreakdown,
    PointsLineItem,
    QuizInfo,
    ScoreBreakdown,
    ScoringStatistics,
    TotalScore,
)
from quizmaster.utils.formatting import format_number, round_half_up

logger = logging.getLogger(__name__)

SLOW_ANSWER_SECONDS = 60
SPEED_BONUS_SHARE = Fraction(3, 10)
HARD_BONUS_SHARE = Fraction(1, 5)
PERFECT_BONUS_SHARE = Fraction(1, 2)


def _floor(value) -> int:
    return math.floor(Fraction(value))


def _ratio(value: float) -> Fraction:
    # str() keeps 0.1 as exactly 1/10
    return Fraction(str(value))


class ScoreCalculator:
    """Pure scoring functions. Holds configuration only, no per-quiz state."""

    def __init__(self, points: PointsSystem | None = None):
        self.points = points or settings.points

    def get_base_points(self, difficulty: str | None) -> int:
        """Base points for a tier; unknown tiers score as medium."""
        return {
            "easy": self.points.easy,
            "medium": self.points.medium,
            "hard": self.points.hard,
        }.get(difficulty or "", self.points.medium)

    def calculate_speed_bonus(self, base_points: int, time_spent: float, difficulty: str | None) -> int:
        threshold = SPEED_THRESHOLDS.get(difficulty or "", SPEED_THRESHOLDS["medium"])
        if time_spent > threshold:
            return 0
        speed_ratio = (threshold - Fraction(time_spent)) / threshold
        return _floor(base_points * speed_ratio * SPEED_BONUS_SHARE)

    def calculate_answer_points(
        self,
        question: Question,
        is_correct: bool,
        time_spent: float,
        consecutive_correct: int = 0,
        perfect_accuracy: bool = False,
    ) -> AnswerScore:
        """Score one answer.

        ``consecutive_correct`` counts the correct answers immediately before
        this one. Correct answers score at least 1; incorrect answers lose at
        most half the base points.
        """
        base_points = question.points or self.get_base_points(question.difficulty)
        time_spent = max(0, time_spent)
        bonuses: list[PointsLineItem] = []
        penalties: list[PointsLineItem] = []

        if is_correct:
            final_points = base_points

            if consecutive_correct >= 2:
                streak_bonus = _floor(base_points * (_ratio(self.points.bonus_multiplier) - 1))
                final_points += streak_bonus
                bonuses.append(
                    PointsLineItem(
                        type="streak",
                        amount=streak_bonus,
                        description=f"{consecutive_correct + 1} in a row!",
                    )
                )

            speed_bonus = self.calculate_speed_bonus(base_points, time_spent, question.difficulty)
            if speed_bonus > 0:
                final_points += speed_bonus
                bonuses.append(PointsLineItem(type="speed", amount=speed_bonus, description="Quick answer!"))

            if question.difficulty == "hard":
                difficulty_bonus = _floor(base_points * HARD_BONUS_SHARE)
                final_points += difficulty_bonus
                bonuses.append(
                    PointsLineItem(
                        type="difficulty",
                        amount=difficulty_bonus,
                        description="Hard question mastery!",
                    )
                )

            if perfect_accuracy:
                perfect_bonus = _floor(base_points * PERFECT_BONUS_SHARE)
                final_points += perfect_bonus
                bonuses.append(
                    PointsLineItem(type="perfect", amount=perfect_bonus, description="Perfect accuracy!")
                )

            final_points = max(final_points, 1)
        else:
            penalty = _floor(base_points * _ratio(self.points.penalty_percentage))
            final_points = -penalty
            penalties.append(PointsLineItem(type="incorrect", amount=penalty, description="Incorrect answer"))

            if time_spent > SLOW_ANSWER_SECONDS:
                time_penalty = _floor(Fraction(penalty, 2))
                final_points -= time_penalty
                penalties.append(PointsLineItem(type="time", amount=time_penalty, description="Slow response"))

            final_points = max(final_points, -_floor(Fraction(base_points, 2)))

        return AnswerScore(
            base_points=base_points,
            final_points=final_points,
            is_correct=is_correct,
            bonuses=bonuses,
            penalties=penalties,
            breakdown=self.create_points_breakdown(base_points, bonuses, penalties, final_points),
        )

    def create_points_breakdown(
        self,
        base_points: int,
        bonuses: list[PointsLineItem],
        penalties: list[PointsLineItem],
        net: int | None = None,
    ) -> PointsBreakdown:
        bonus_total = sum(b.amount for b in bonuses)
        penalty_total = sum(p.amount for p in penalties)
        if net is None:
            net = base_points + bonus_total - penalty_total
        return PointsBreakdown(base=base_points, bonuses=bonus_total, penalties=penalty_total, net=net)

    def calculate_total_score(
        self,
        answers: list[AnswerRecord],
        quiz_info: QuizInfo | None = None,
    ) -> TotalScore:
        """Aggregate answer records into a quiz score. The total never goes below 0."""
        quiz_info = quiz_info or QuizInfo()
        answer_points = sum(a.points for a in answers)
        correct_answers = sum(1 for a in answers if a.is_correct)
        max_possible_points = sum(a.base_points or self.get_base_points(a.difficulty) for a in answers)
        total_bonuses = sum(b.amount for a in answers for b in a.bonuses)
        total_penalties = sum(p.amount for a in answers for p in a.penalties)

        accuracy = self._accuracy(correct_answers, len(answers))
        completion_bonuses = self.calculate_completion_bonuses(len(answers), correct_answers, quiz_info)
        completion_total = sum(b.amount for b in completion_bonuses)

        return TotalScore(
            total_points=max(0, answer_points + completion_total),
            correct_answers=correct_answers,
            total_questions=len(answers),
            accuracy=round_half_up(Fraction(correct_answers * 100, len(answers))) if answers else 0.0,
            max_possible_points=max_possible_points,
            total_bonuses=total_bonuses,
            total_penalties=total_penalties,
            completion_bonuses=completion_bonuses,
            grade=self.calculate_grade(accuracy),
            breakdown=ScoreBreakdown(
                base_score=answer_points - total_bonuses + total_penalties,
                bonuses=total_bonuses,
                penalties=total_penalties,
                completion_bonuses=completion_total,
            ),
        )

    def calculate_completion_bonuses(
        self,
        answered: int,
        correct: int,
        quiz_info: QuizInfo,
    ) -> list[PointsLineItem]:
        """Quiz-level awards. Each rule applies independently."""
        if answered == 0:
            return []

        bonuses = []
        accuracy = self._accuracy(correct, answered)

        if accuracy == 100:
            bonuses.append(
                PointsLineItem(type="perfect_score", amount=answered * 10, description="Perfect Score!")
            )
        elif accuracy >= 90:
            bonuses.append(
                PointsLineItem(type="high_accuracy", amount=answered * 5, description="Excellent Performance!")
            )

        if answered >= 10:
            bonuses.append(
                PointsLineItem(type="completion", amount=answered * 2, description="Quiz Completion Bonus")
            )

        if quiz_info.time_spent is not None and quiz_info.time_limit:
            time_ratio = Fraction(quiz_info.time_spent, quiz_info.time_limit)
            if time_ratio < Fraction(1, 2) and accuracy >= 70:
                bonuses.append(
                    PointsLineItem(type="speed_completion", amount=answered * 3, description="Lightning Fast!")
                )

        if quiz_info.category and quiz_info.category.lower() != "all" and accuracy == 100:
            bonuses.append(
                PointsLineItem(
                    type="category_mastery",
                    amount=answered * 8,
                    description=f"{quiz_info.category} Master!",
                )
            )

        return bonuses

    def calculate_grade(self, accuracy: float) -> Grade:
        for minimum, letter, description, color in GRADE_TABLE:
            if accuracy >= minimum:
                return Grade(letter=letter, description=description, color=color, percentage=accuracy)
        _, letter, description, color = GRADE_TABLE[-1]
        return Grade(letter=letter, description=description, color=color, percentage=accuracy)

    @staticmethod
    def calculate_streak_multiplier(streak_length: int) -> float:
        if streak_length < 2:
            return 1.0
        if streak_length < 5:
            return 1.2
        if streak_length < 10:
            return 1.5
        return 2.0

    @staticmethod
    def consecutive_correct(answers: Iterable[AnswerRecord]) -> int:
        """Length of the run of correct answers ending at the most recent one."""
        count = 0
        for answer in reversed(list(answers)):
            if not answer.is_correct:
                break
            count += 1
        return count

    def get_scoring_statistics(self, results: list[dict]) -> ScoringStatistics:
        """Summarize stored results (dicts with ``score`` and ``accuracy``)."""
        if not results:
            return ScoringStatistics()

        scores = [r.get("score") or 0 for r in results]
        accuracies = [r.get("accuracy") or 0 for r in results]
        return ScoringStatistics(
            average_score=int(round_half_up(sum(Fraction(s) for s in scores) / len(results), 0)),
            best_score=max(scores),
            total_points=sum(scores),
            average_accuracy=round_half_up(sum(Fraction(a) for a in accuracies) / len(results)),
            best_accuracy=max(accuracies),
            total_quizzes=len(results),
        )

    def get_achievement_progress(self, stats: dict) -> list[AchievementProgress]:
        targets = [
            ("First Steps", "Complete your first quiz", 1, stats.get("quizzes_completed") or 0, "quizzes"),
            ("Quiz Enthusiast", "Complete 25 quizzes", 25, stats.get("quizzes_completed") or 0, "quizzes"),
            ("Point Collector", "Earn 1000 total points", 1000, stats.get("total_points") or 0, "points"),
            ("Perfect Score", "Get 100% accuracy in a quiz", 100, stats.get("best_accuracy") or 0, "accuracy"),
        ]
        return [
            AchievementProgress(
                name=name,
                description=description,
                target=target,
                current=current,
                type=kind,
                progress=min(current / target * 100, 100),
                completed=current >= target,
            )
            for name, description, target, current, kind in targets
        ]

    @staticmethod
    def format_points(points: int, show_sign: bool = False) -> str:
        sign = "+" if show_sign and points > 0 else ""
        return f"{sign}{format_number(points)}"

    @staticmethod
    def _accuracy(correct: int, total: int) -> float:
        if total == 0:
            return 0.0
        return correct / total * 100
