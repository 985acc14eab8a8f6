"""
Unit Tests for answer grading helpers
"""
from types import SimpleNamespace

from app.models.question import QuestionType
from app.services.attempt_service import (
    normalize_answer,
    grade_choice,
    grade_text,
    grade_response,
    summarize_scores,
)


def make_question(question_type, marks=1, options=(), correct_answer=None, question_id="q1"):
    return SimpleNamespace(
        id=question_id,
        type=question_type,
        marks=marks,
        correct_answer=correct_answer,
        options=[SimpleNamespace(id=option_id, is_correct=is_correct) for option_id, is_correct in options],
    )


def make_response(selected=(), essay_answer=None):
    return SimpleNamespace(selected_options=list(selected), essay_answer=essay_answer)


class TestNormalizeAnswer:

    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_answer("  Income   STATEMENT \n") == "income statement"

    def test_none_is_empty(self):
        assert normalize_answer(None) == ""


class TestChoiceGrading:

    def test_single_correct_option(self):
        question = make_question(QuestionType.SINGLE_CHOICE, marks=2, options=[("a", True), ("b", False)])

        assert grade_choice(question, ["a"]) == (True, 2.0)
        assert grade_choice(question, ["b"]) == (False, 0.0)

    def test_multiple_choice_requires_exact_set(self):
        question = make_question(
            QuestionType.MULTIPLE_CHOICE, marks=3,
            options=[("a", True), ("b", True), ("c", False)],
        )

        assert grade_choice(question, ["b", "a"]) == (True, 3.0)
        assert grade_choice(question, ["a"]) == (False, 0.0)
        assert grade_choice(question, ["a", "b", "c"]) == (False, 0.0)

    def test_no_selection_is_wrong(self):
        question = make_question(QuestionType.TRUE_FALSE, options=[("t", True), ("f", False)])

        assert grade_choice(question, []) == (False, 0.0)


class TestTextGrading:

    def test_any_accepted_answer_matches(self):
        question = make_question(
            QuestionType.SHORT_ANSWER, correct_answer="income statement|profit and loss statement"
        )

        assert grade_text(question, "Profit and Loss   Statement")[0] is True
        assert grade_text(question, "balance sheet") == (False, 0.0)

    def test_blank_answer_is_wrong(self):
        question = make_question(QuestionType.FILL_IN_THE_BLANK, correct_answer="100")

        assert grade_text(question, "") == (False, 0.0)
        assert grade_text(question, None) == (False, 0.0)


class TestGradeResponse:

    def test_choice_question(self):
        question = make_question(QuestionType.SINGLE_CHOICE, options=[("a", True), ("b", False)])

        outcome = grade_response(question, make_response(selected=["a"]))

        assert outcome == {"is_correct": True, "marks_obtained": 1.0, "scoring_details": None}

    def test_text_question(self):
        question = make_question(QuestionType.FILL_IN_THE_BLANK, correct_answer="100|one hundred")

        outcome = grade_response(question, make_response(essay_answer="One Hundred"))

        assert outcome["is_correct"] is True
        assert outcome["marks_obtained"] == 1.0

    def test_essay_is_scored_with_details(self):
        model = (
            "Photosynthesis converts light energy into chemical energy. Plants use carbon dioxide "
            "and water to produce glucose and oxygen inside the chloroplasts."
        )
        question = make_question(QuestionType.ESSAY, marks=10, correct_answer=model)

        outcome = grade_response(question, make_response(essay_answer=model))

        assert 0 < outcome["marks_obtained"] <= 10
        assert outcome["scoring_details"]["max_marks"] == 10.0

    def test_essay_without_model_answer_scores_zero(self):
        question = make_question(QuestionType.ESSAY, marks=5, correct_answer=None)

        outcome = grade_response(question, make_response(essay_answer="Some answer text"))

        assert outcome == {"is_correct": False, "marks_obtained": 0.0, "scoring_details": None}


class TestSummarizeScores:

    def test_unanswered_questions_count_as_zero(self):
        questions = [
            make_question(QuestionType.SINGLE_CHOICE, marks=2, question_id="q1"),
            make_question(QuestionType.SINGLE_CHOICE, marks=2, question_id="q2"),
        ]

        summary = summarize_scores(questions, {"q1": 2.0}, passing_marks=50)

        assert summary == {"total_score": 2.0, "max_score": 4.0, "percentage": 50.0, "is_passed": True}

    def test_below_passing_mark(self):
        questions = [make_question(QuestionType.SINGLE_CHOICE, marks=4, question_id="q1")]

        summary = summarize_scores(questions, {"q1": 1.0}, passing_marks=60)

        assert summary["percentage"] == 25.0
        assert summary["is_passed"] is False

    def test_no_questions(self):
        summary = summarize_scores([], {}, passing_marks=50)

        assert summary["percentage"] == 0.0
        assert summary["is_passed"] is False
