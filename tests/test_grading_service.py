import pytest

from lms_quiz.services.grading_service import GradingService
from lms_quiz.services.quiz_definition import Question


def _questions(correct, tips=None):
    tips = tips or [""] * len(correct)
    return [
        Question(text=f"Q{idx}", options=["a", "b", "c", "d"], correct_index=answer, tip=tips[idx])
        for idx, answer in enumerate(correct)
    ]


@pytest.fixture
def grader():
    return GradingService(fallback_tip="Review this topic again")


def test_three_of_four_fails_at_eighty(grader):
    questions = _questions([1, 0, 2, 3], tips=["", "", "", "Revisit the last example"])
    result = grader.grade_quiz(questions, {0: 1, 1: 0, 2: 2, 3: 0}, passing_threshold=80)

    assert result.correct_count == 3
    assert result.score_percent == 75
    assert result.passed is False
    assert [f.correct for f in result.feedback] == [True, True, True, False]
    assert result.feedback[3].tip == "Revisit the last example"
    assert all(f.tip is None for f in result.feedback[:3])


def test_all_correct_passes(grader):
    result = grader.grade_quiz(_questions([1, 0, 2, 3]), {0: 1, 1: 0, 2: 2, 3: 3}, passing_threshold=80)
    assert result.score_percent == 100
    assert result.passed is True


def test_fallback_tip_for_untipped_question(grader):
    result = grader.grade_quiz(_questions([0]), {0: 2}, passing_threshold=80)
    assert result.feedback[0].tip == "Review this topic again"


def test_score_equal_to_threshold_passes(grader):
    result = grader.grade_quiz(_questions([0, 0, 0, 0]), {0: 0, 1: 0, 2: 0}, passing_threshold=75)
    assert result.score_percent == 75
    assert result.passed is True


def test_unanswered_and_out_of_range_answers_are_incorrect(grader):
    questions = [Question(text="Q", options=["a", "b"], correct_index=5)]
    assert grader.grade_quiz(questions, {0: 1}, passing_threshold=50).correct_count == 0
    assert grader.grade_quiz(questions, {}, passing_threshold=50).correct_count == 0


def test_no_answers_scores_zero(grader):
    result = grader.grade_quiz(_questions([1, 2, 3]), {}, passing_threshold=80)
    assert result.score_percent == 0
    assert result.passed is False


@pytest.mark.parametrize(
    "correct, total, expected",
    [
        (1, 8, 13),   # 12.5 rounds up, not to even
        (3, 8, 38),   # 37.5
        (1, 3, 33),
        (2, 3, 67),
        (0, 5, 0),
        (5, 5, 100),
    ],
)
def test_score_percent_rounds_half_up(correct, total, expected):
    assert GradingService.score_percent(correct, total) == expected


def test_empty_quiz_scores_zero():
    assert GradingService.score_percent(0, 0) == 0


def test_one_more_correct_answer_never_lowers_score():
    for total in range(1, 21):
        scores = [GradingService.score_percent(k, total) for k in range(total + 1)]
        assert scores == sorted(scores)
        assert scores[0] == 0 and scores[-1] == 100
