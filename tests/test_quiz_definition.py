from lms_quiz.services.quiz_definition import normalize_question, normalize_quiz
from tests.fakes import QUIZ_ID, make_quiz_row


def test_current_field_names():
    question = normalize_question(
        {"question": "2 + 2?", "options": ["3", "4"], "correct": 1, "tip": "Count again"}, 0
    )
    assert question.text == "2 + 2?"
    assert question.options == ["3", "4"]
    assert question.correct_index == 1
    assert question.tip == "Count again"


def test_legacy_field_names():
    question = normalize_question({"question": "2 + 2?", "answers": ["3", "4"], "correctAnswer": 1}, 0)
    assert question.options == ["3", "4"]
    assert question.correct_index == 1
    assert question.tip == ""


def test_options_win_over_answers_and_correct_over_correct_answer():
    question = normalize_question(
        {"options": ["a", "b"], "answers": ["x", "y", "z"], "correct": 0, "correctAnswer": 2}, 0
    )
    assert question.options == ["a", "b"]
    assert question.correct_index == 0


def test_missing_fields_fall_back():
    question = normalize_question({}, 2)
    assert question.text == "Question 3"
    assert question.options == []
    assert question.correct_index == 0
    assert question.tip == ""


def test_non_integer_correct_index_is_ignored():
    assert normalize_question({"correct": True, "correctAnswer": 2}, 0).correct_index == 2
    assert normalize_question({"correct": "1"}, 0).correct_index == 0


def test_hint_used_when_tip_missing():
    assert normalize_question({"hint": "Look at chapter 2"}, 0).tip == "Look at chapter 2"


def test_non_object_question_becomes_placeholder():
    question = normalize_question("broken", 0)
    assert question.text == "Question 1"
    assert question.options == []


def test_quiz_defaults_for_threshold_and_timer():
    row = make_quiz_row(threshold=None, timer=None)
    quiz = normalize_quiz(row)
    assert quiz.id == QUIZ_ID
    assert quiz.passing_threshold == 80
    assert quiz.timer_minutes == 5
    assert quiz.duration_seconds == 300
    assert len(quiz.questions) == 4


def test_non_positive_timer_uses_default():
    assert normalize_quiz(make_quiz_row(timer=0)).timer_minutes == 5


def test_explicit_threshold_kept():
    assert normalize_quiz(make_quiz_row(threshold=60)).passing_threshold == 60


def test_zero_threshold_uses_default():
    assert normalize_quiz(make_quiz_row(threshold=0)).passing_threshold == 80


def test_missing_quiz_json_has_no_questions():
    quiz = normalize_quiz({"id": QUIZ_ID, "lesson_id": "l1", "quiz_json": None})
    assert quiz.questions == []


def test_question_order_preserved():
    quiz = normalize_quiz(make_quiz_row(correct=(3, 2, 1, 0)))
    assert [q.correct_index for q in quiz.questions] == [3, 2, 1, 0]
