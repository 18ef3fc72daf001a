"""Tests for the scoring engine."""

import pytest

from quizmaster.config import PointsSystem
from quizmaster.models.quiz import AnswerRecord
from quizmaster.models.scoring import QuizInfo
from quizmaster.services.scoring import ScoreCalculator

from tests.conftest import make_question


def record_for(scorer, question, is_correct, time_spent=5, consecutive=0, index=0):
    scored = scorer.calculate_answer_points(question, is_correct, time_spent, consecutive)
    return AnswerRecord(
        question_id=question.id,
        question=question.question,
        question_index=index,
        selected_answer=question.correct_answer if is_correct else "wrong",
        correct_answer=question.correct_answer,
        is_correct=is_correct,
        points=scored.final_points,
        base_points=scored.base_points,
        bonuses=scored.bonuses,
        penalties=scored.penalties,
        breakdown=scored.breakdown,
        time_spent=time_spent,
        category=question.category,
        difficulty=question.difficulty,
    )


class TestAnswerPoints:
    def test_streak_and_speed_bonus(self, scorer):
        question = make_question("q1", difficulty="medium")
        score = scorer.calculate_answer_points(question, True, 5, consecutive_correct=2)

        assert score.base_points == 20
        assert score.final_points == 34
        assert [(b.type, b.amount) for b in score.bonuses] == [("streak", 10), ("speed", 4)]
        assert score.bonuses[0].description == "3 in a row!"
        assert score.breakdown.net == 34

    def test_incorrect_slow_answer(self, scorer):
        question = make_question("q1", difficulty="easy")
        score = scorer.calculate_answer_points(question, False, 70)

        assert score.final_points == -1
        assert [(p.type, p.amount) for p in score.penalties] == [("incorrect", 1), ("time", 0)]

    def test_no_streak_bonus_below_two_prior_correct(self, scorer):
        question = make_question("q1", difficulty="medium")
        score = scorer.calculate_answer_points(question, True, 30, consecutive_correct=1)
        assert score.final_points == 20
        assert score.bonuses == []

    def test_hard_question_bonus(self, scorer):
        question = make_question("q1", difficulty="hard")
        score = scorer.calculate_answer_points(question, True, 25)
        assert score.final_points == 36
        assert score.bonuses[0].type == "difficulty"

    def test_perfect_accuracy_bonus(self, scorer):
        question = make_question("q1", difficulty="easy")
        score = scorer.calculate_answer_points(question, True, 30, perfect_accuracy=True)
        assert score.final_points == 15

    def test_unknown_difficulty_scores_as_medium(self, scorer):
        question = make_question("q1", difficulty="impossible")
        assert scorer.calculate_answer_points(question, True, 100).final_points == 20
        assert scorer.get_base_points(None) == 20

    def test_question_points_override_tier(self, scorer):
        question = make_question("q1", difficulty="easy", points=50)
        assert scorer.calculate_answer_points(question, True, 100).base_points == 50

    def test_correct_answer_scores_at_least_one(self):
        scorer = ScoreCalculator(PointsSystem(easy=0, medium=0, hard=0))
        question = make_question("q1", difficulty="easy")
        assert scorer.calculate_answer_points(question, True, 100).final_points == 1

    def test_penalty_capped_at_half_base(self):
        scorer = ScoreCalculator(PointsSystem(penalty_percentage=0.9))
        question = make_question("q1", difficulty="medium")
        assert scorer.calculate_answer_points(question, False, 100).final_points == -10

    @pytest.mark.parametrize("difficulty", ["easy", "medium", "hard"])
    @pytest.mark.parametrize("time_spent", [0, 3, 9, 14, 19, 45, 90])
    @pytest.mark.parametrize("consecutive", [0, 2, 7])
    def test_bounds(self, scorer, difficulty, time_spent, consecutive):
        question = make_question("q1", difficulty=difficulty)
        base = scorer.get_base_points(difficulty)

        correct = scorer.calculate_answer_points(question, True, time_spent, consecutive)
        wrong = scorer.calculate_answer_points(question, False, time_spent, consecutive)

        assert correct.final_points >= 1
        assert wrong.final_points <= 0
        assert wrong.final_points >= -(base // 2)


class TestTotalScore:
    def test_perfect_science_quiz(self, scorer):
        questions = [make_question(f"q{i}", difficulty="easy") for i in range(10)]
        answers = [record_for(scorer, q, True, time_spent=20, index=i) for i, q in enumerate(questions)]

        total = scorer.calculate_total_score(
            answers,
            QuizInfo(category="Science", difficulty="easy", time_spent=120, time_limit=300),
        )

        amounts = {b.type: b.amount for b in total.completion_bonuses}
        assert amounts == {
            "perfect_score": 100,
            "completion": 20,
            "speed_completion": 30,
            "category_mastery": 80,
        }
        assert total.grade.letter == "A+"
        assert total.accuracy == 100.0
        assert total.total_points == sum(a.points for a in answers) + 230

    def test_high_accuracy_bonus(self, scorer):
        questions = [make_question(f"q{i}") for i in range(10)]
        answers = [record_for(scorer, q, i != 0, time_spent=40, index=i) for i, q in enumerate(questions)]

        total = scorer.calculate_total_score(answers, QuizInfo(category="all", time_spent=300, time_limit=300))

        types = [b.type for b in total.completion_bonuses]
        assert types == ["high_accuracy", "completion"]
        assert total.grade.letter == "A"

    def test_total_never_negative(self, scorer):
        questions = [make_question(f"q{i}") for i in range(3)]
        answers = [record_for(scorer, q, False, index=i) for i, q in enumerate(questions)]

        total = scorer.calculate_total_score(answers)

        assert total.total_points == 0
        assert total.total_penalties == 6
        assert total.grade.letter == "F"

    def test_empty_quiz(self, scorer):
        total = scorer.calculate_total_score([], QuizInfo(category="Science", time_spent=0, time_limit=300))
        assert total.total_points == 0
        assert total.completion_bonuses == []
        assert total.accuracy == 0.0

    def test_accuracy_rounds_half_up(self, scorer):
        questions = [make_question(f"q{i}") for i in range(16)]
        answers = [record_for(scorer, q, i == 0, index=i) for i, q in enumerate(questions)]

        total = scorer.calculate_total_score(answers)

        assert total.accuracy == 6.3

    def test_statistics_round_half_up(self, scorer):
        stats = scorer.get_scoring_statistics([{"score": 10, "accuracy": 6.25}, {"score": 11, "accuracy": 6.25}])
        assert stats.average_score == 11
        assert stats.average_accuracy == 6.3

    def test_breakdown_base_excludes_bonuses(self, scorer):
        question = make_question("q1", difficulty="medium")
        answers = [record_for(scorer, question, True, time_spent=5)]
        total = scorer.calculate_total_score(answers)
        assert total.breakdown.base_score == 20
        assert total.breakdown.bonuses == 4


class TestGrades:
    @pytest.mark.parametrize(
        "accuracy,letter",
        [(100, "A+"), (95, "A+"), (94.9, "A"), (85, "A-"), (80, "B+"), (75, "B"), (70, "B-"),
         (65, "C+"), (60, "C"), (50, "D"), (49.9, "F"), (0, "F")],
    )
    def test_grade_table(self, scorer, accuracy, letter):
        assert scorer.calculate_grade(accuracy).letter == letter

    @pytest.mark.parametrize("streak,multiplier", [(0, 1.0), (1, 1.0), (2, 1.2), (4, 1.2), (5, 1.5), (10, 2.0)])
    def test_streak_multiplier(self, streak, multiplier):
        assert ScoreCalculator.calculate_streak_multiplier(streak) == multiplier


class TestStatistics:
    def test_scoring_statistics(self, scorer):
        stats = scorer.get_scoring_statistics(
            [{"score": 100, "accuracy": 80}, {"score": 51, "accuracy": 65}]
        )
        assert stats.total_quizzes == 2
        assert stats.average_score == 76
        assert stats.best_score == 100
        assert stats.average_accuracy == 72.5

    def test_scoring_statistics_empty(self, scorer):
        assert scorer.get_scoring_statistics([]).total_quizzes == 0

    def test_achievement_progress(self, scorer):
        progress = scorer.get_achievement_progress(
            {"quizzes_completed": 5, "total_points": 2500, "best_accuracy": 80}
        )
        by_name = {p.name: p for p in progress}
        assert by_name["First Steps"].completed
        assert by_name["Quiz Enthusiast"].progress == 20
        assert by_name["Point Collector"].progress == 100
        assert not by_name["Perfect Score"].completed

    def test_format_points(self):
        assert ScoreCalculator.format_points(1234, show_sign=True) == "+1,234"
        assert ScoreCalculator.format_points(-5, show_sign=True) == "-5"

    def test_consecutive_correct(self, scorer):
        questions = [make_question(f"q{i}") for i in range(4)]
        answers = [record_for(scorer, q, ok, index=i) for i, (q, ok) in enumerate(zip(questions, [True, False, True, True]))]
        assert ScoreCalculator.consecutive_correct(answers) == 2
