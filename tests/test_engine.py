import json

import pytest

from quiz_grading.engine import GradingEngine
from quiz_grading.exceptions import UnknownQuestionTypeError
from quiz_grading.graders.base import BaseGrader
from quiz_grading.types import QuestionRecord
from tests.conftest import FakeExecutor, build_coding_question, build_question


class ExplodingGrader(BaseGrader):
    def evaluate(self, question, answer, correct, config=None):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_scenario_single_choice(engine):
    question = build_question("single_choice", points=10, question_data={"correct_option_index": 1})

    result = await engine.grade_question(question, {"selected_option_index": 1})

    assert (result.is_correct, result.points_earned) == (True, 10)


@pytest.mark.asyncio
async def test_scenario_multiple_choice(engine):
    question = build_question("multiple_choice", points=15, question_data={"correct_option_indices": [0, 1, 2]})

    result = await engine.grade_question(question, {"selected_option_indices": [0, 1]})

    assert (result.is_correct, result.points_earned) == (False, 10)


@pytest.mark.asyncio
async def test_scenario_ordering(engine):
    items = [{"id": "A", "order": 1}, {"id": "B", "order": 2}, {"id": "C", "order": 3}]
    question = build_question("ordering", points=6, question_data={"items": items})

    result = await engine.grade_question(question, {"ordered_item_ids": ["A", "C", "B"]})

    assert (result.is_correct, result.points_earned) == (False, 2)


@pytest.mark.asyncio
async def test_scenario_coding():
    engine = GradingEngine(executor=FakeExecutor(passing={"case_0", "case_1", "case_2"}))

    result = await engine.grade_question(build_coding_question(4, points=12), {"code": "x = 1"})

    assert (result.is_correct, result.points_earned) == (False, 9)


@pytest.mark.asyncio
async def test_scenario_short_answer_without_keywords(engine):
    question = build_question("short_answer", points=5)

    result = await engine.grade_question(question, {"answer": "Mitochondria is the powerhouse of the cell"})

    assert (result.is_correct, result.points_earned, result.feedback) == (False, 0, "Manual grading required")


@pytest.mark.asyncio
async def test_unknown_question_type_is_raised(engine):
    with pytest.raises(UnknownQuestionTypeError):
        await engine.grade_question({"question_type": "essay", "points": 5}, {"answer": "text"})


@pytest.mark.asyncio
async def test_storage_rows_with_json_columns(engine):
    row = {
        "id": 7,
        "question_type": "multiple_choice",
        "points": "6",
        "question_data": json.dumps({"options": ["a", "b", "c"]}),
        "correct_answer": json.dumps([0, 2]),
    }

    result = await engine.grade_question(row, json.dumps({"selected_option_indices": ["0", "2"]}))

    assert result.is_correct is True
    assert result.points_earned == 6


@pytest.mark.asyncio
async def test_grader_exception_becomes_error_result(engine):
    engine.register_grader("true_false", ExplodingGrader())
    question = build_question("true_false", points=3, question_data={"correct_answer": True})

    result = await engine.grade_question(question, {"selected_answer": True})

    assert result.is_correct is False
    assert result.points_earned == 0
    assert result.max_points == 3
    assert result.feedback == "Error occurred during automatic grading"


@pytest.mark.asyncio
async def test_zero_point_question_has_zero_percentage(engine):
    question = build_question("single_choice", points=0, question_data={"correct_option_index": 0})

    result = await engine.grade_question(question, {"selected_option_index": 0})

    assert result.is_correct is True
    assert result.percentage == 0


CLAMP_CASES = [
    ("single_choice", {"correct_option_index": 1}, None, {"selected_option_index": 1}),
    ("multiple_choice", {"correct_option_indices": [0]}, None, {"selected_option_indices": [0, 0, 0, 1]}),
    ("true_false", {"correct_answer": False}, None, {"selected_answer": "maybe"}),
    ("numerical", {"correct_answer": 3}, None, {"answer": 3}),
    ("fill_blank", {"acceptable_answers": ["x"]}, None, {"answers": [{"blank_index": 0, "answer": "x"}] * 3}),
    ("short_answer", {"keywords": ["a", "b"]}, None, {"answer": "a b a b"}),
    ("matching", {"correct_matches": {"1": "a"}}, None, {"matches": {"1": "a", "2": "b"}}),
    ("ordering", {}, {"ordered_item_ids": ["A"]}, {"ordered_item_ids": ["A", "A", "A"]}),
    ("dropdown", {}, ["x"], {"selections": [{"dropdown_index": 0, "selected_option": "X"}] * 2}),
]


@pytest.mark.asyncio
@pytest.mark.parametrize("question_type, question_data, correct_answer, answer", CLAMP_CASES)
async def test_points_stay_within_bounds(engine, question_type, question_data, correct_answer, answer):
    question = build_question(question_type, points=7, question_data=question_data, correct_answer=correct_answer)

    plain = await engine.grade_question(question, answer)
    configured = await engine.grade_with_config(question, answer)

    for result in (plain, configured):
        assert 0 <= result.points_earned <= 7
        assert result.max_points == 7


@pytest.mark.asyncio
async def test_grading_never_mutates_question(engine):
    items = [{"id": "B", "order": 2}, {"id": "A", "order": 1}]
    question = QuestionRecord.from_dict({"question_type": "ordering", "points": 2, "question_data": {"items": items}})

    await engine.grade_question(question, {"ordered_item_ids": ["A", "B"]})

    assert [item["id"] for item in question.question_data["items"]] == ["B", "A"]
