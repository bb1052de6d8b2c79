import pytest

from tests.conftest import build_question

ITEMS = [{"id": "A", "order": 1}, {"id": "B", "order": 2}, {"id": "C", "order": 3}]


def matching_question(points=9):
    return build_question(
        "matching", points=points, question_data={"correct_matches": {"1": "a", "2": "b", "3": "c"}}
    )


def dropdown_question():
    return build_question(
        "dropdown",
        points=10,
        question_data={"dropdown_options": [["Red", "Blue"], ["Cat", "Dog"]]},
        correct_answer=["red", "Dog"],
    )


@pytest.mark.asyncio
async def test_matching_all_pairs_correct(engine):
    result = await engine.grade_question(matching_question(), {"matches": {1: "a", 2: "b", 3: "c"}})

    assert result.is_correct is True
    assert result.points_earned == 9
    assert result.feedback == "3/3 matches correct"


@pytest.mark.asyncio
async def test_matching_partial_pairs(engine):
    result = await engine.grade_question(matching_question(), {"matches": {"1": "a", "2": "c", "3": "b"}})

    assert result.is_correct is False
    assert result.points_earned == 3


@pytest.mark.asyncio
async def test_matching_empty_matches(engine):
    result = await engine.grade_question(matching_question(), {"matches": {}})

    assert result.points_earned == 0
    assert result.feedback == "Matching question: No matches provided"


@pytest.mark.asyncio
async def test_matching_without_correct_matches(engine):
    question = build_question("matching")

    result = await engine.grade_question(question, {"matches": {"1": "a"}})

    assert result.feedback == "Matching question: No correct matches defined"


@pytest.mark.asyncio
async def test_ordering_positional_comparison(engine):
    question = build_question("ordering", points=10, question_data={"items": ITEMS})

    result = await engine.grade_question(question, {"ordered_item_ids": ["A", "C", "B"]})

    assert result.is_correct is False
    assert result.points_earned == 3
    assert result.feedback == "1/3 items in correct order"


@pytest.mark.asyncio
async def test_ordering_correct_order(engine):
    question = build_question("ordering", points=10, question_data={"items": list(reversed(ITEMS))})

    result = await engine.grade_question(question, {"ordered_item_ids": ["A", "B", "C"]})

    assert result.is_correct is True
    assert result.points_earned == 10


@pytest.mark.asyncio
async def test_ordering_weighted_positions(engine):
    question = build_question("ordering", points=12, question_data={"items": ITEMS})
    config = {"position_weight_mode": "weighted"}

    first_only = await engine.grade_with_config(question, {"ordered_item_ids": ["A", "C", "B"]}, config)
    middle_only = await engine.grade_with_config(question, {"ordered_item_ids": ["C", "B", "A"]}, config)

    assert first_only.points_earned == 2
    assert middle_only.points_earned == 4


@pytest.mark.asyncio
async def test_ordering_without_correct_order(engine):
    question = build_question("ordering")

    result = await engine.grade_question(question, {"ordered_item_ids": ["A"]})

    assert result.feedback == "Question grading configuration error"


@pytest.mark.asyncio
async def test_dropdown_case_insensitive_slots(engine):
    selections = [
        {"dropdown_index": 0, "selected_option": "Red"},
        {"dropdown_index": 1, "selected_option": "cat"},
    ]

    result = await engine.grade_question(dropdown_question(), {"selections": selections})

    assert result.points_earned == 5
    assert result.feedback == "1/2 dropdowns correct"


@pytest.mark.asyncio
async def test_dropdown_default_config_is_all_or_nothing(engine):
    selections = [
        {"dropdown_index": 0, "selected_option": "Red"},
        {"dropdown_index": 1, "selected_option": "cat"},
    ]

    result = await engine.grade_with_config(dropdown_question(), {"selections": selections})

    assert result.points_earned == 0
    assert result.detailed_feedback.breakdown["partial_credit_removed"] == 5


@pytest.mark.asyncio
async def test_dropdown_slot_count_ignores_stored_index_values(engine):
    stored = [
        {"dropdown_index": 0, "selected_option": "Red"},
        {"dropdown_index": 1000, "selected_option": "Dog"},
    ]
    question = build_question("dropdown", points=10, correct_answer=stored)
    selections = [{"dropdown_index": 0, "selected_option": "red"}]

    result = await engine.grade_question(question, {"selections": selections})

    assert result.points_earned == 5
    assert result.feedback == "1/2 dropdowns correct"


@pytest.mark.asyncio
async def test_dropdown_negative_stored_index(engine):
    question = build_question(
        "dropdown", points=4, correct_answer=[{"dropdown_index": -1, "selected_option": "Red"}]
    )

    result = await engine.grade_question(
        question, {"selections": [{"dropdown_index": 0, "selected_option": "Red"}]}
    )

    assert result.points_earned == 0
    assert result.feedback == "0/1 dropdowns correct"


@pytest.mark.asyncio
async def test_dropdown_rejects_non_list(engine):
    result = await engine.grade_question(dropdown_question(), {"selections": "Red"})

    assert result.feedback == "Dropdown question: Invalid answer format - expected selections array"
