import pytest

from quiz_grading.graders.keywords import fuzzy_similarity, keyword_present, match_keywords
from tests.conftest import build_question


def numerical_question(**question_data):
    data = {"correct_answer": 42, "tolerance": 0.5}
    data.update(question_data)
    return build_question("numerical", points=5, question_data=data)


@pytest.mark.asyncio
@pytest.mark.parametrize("submitted, expected", [(42.5, True), (41.5, True), (42.51, False), (41.49, False)])
async def test_numerical_tolerance_boundary(engine, submitted, expected):
    result = await engine.grade_question(numerical_question(), {"answer": submitted})

    assert result.is_correct is expected
    assert result.points_earned == (5 if expected else 0)


@pytest.mark.asyncio
async def test_numerical_feedback_names_expected_value(engine):
    result = await engine.grade_question(numerical_question(units="m"), {"answer": 50})

    assert result.feedback == "Expected 42 m (tolerance: ±0.5)"


@pytest.mark.asyncio
async def test_numerical_range_must_also_hold(engine):
    question = numerical_question(tolerance=5, acceptable_range={"min": 40, "max": 43})

    inside = await engine.grade_question(question, {"answer": 43})
    outside = await engine.grade_question(question, {"answer": 45})

    assert inside.is_correct is True
    assert outside.is_correct is False


@pytest.mark.asyncio
async def test_numerical_string_answer_is_parsed(engine):
    result = await engine.grade_question(numerical_question(), {"answer": "42.2"})

    assert result.is_correct is True


@pytest.mark.asyncio
async def test_numerical_unreadable_answer(engine):
    result = await engine.grade_question(numerical_question(), {"answer": "forty-two"})

    assert result.points_earned == 0
    assert result.feedback == "Numerical question: Invalid number format"


@pytest.mark.asyncio
async def test_numerical_without_correct_answer(engine):
    question = build_question("numerical", question_data={"tolerance": 1})

    result = await engine.grade_question(question, {"answer": 1})

    assert result.feedback == "Numerical question: No correct answer defined"


@pytest.mark.asyncio
@pytest.mark.parametrize("case_sensitive, expected", [(False, True), (True, False)])
async def test_fill_blank_case_sensitivity(engine, case_sensitive, expected):
    question = build_question(
        "fill_blank",
        points=4,
        question_data={"acceptable_answers": [{"answers": ["Paris"], "case_sensitive": case_sensitive}]},
    )

    result = await engine.grade_question(question, {"answers": [{"blank_index": 0, "answer": "paris"}]})

    assert result.is_correct is expected


@pytest.mark.asyncio
async def test_fill_blank_partial_credit(engine):
    question = build_question(
        "fill_blank",
        points=9,
        question_data={"acceptable_answers": [{"answers": ["H2O", "water"]}, "oxygen", {"correct_answer": "two"}]},
    )
    answers = [
        {"blank_index": 0, "answer": "Water"},
        {"blank_index": 1, "answer": "nitrogen"},
        {"blank_index": 2, "answer": "two"},
    ]

    result = await engine.grade_question(question, {"answers": answers})

    assert result.points_earned == 6
    assert result.feedback == "2/3 blanks correct"


@pytest.mark.asyncio
async def test_fill_blank_missing_blank_configuration(engine):
    question = build_question("fill_blank", question_data={"acceptable_answers": ["a", {"answers": []}]})

    result = await engine.grade_question(question, {"answers": [{"blank_index": 0, "answer": "a"}]})

    assert result.points_earned == 0
    assert result.feedback == "Fill blank question: Blank 2 has no acceptable answers defined"


@pytest.mark.asyncio
async def test_fill_blank_rejects_non_list(engine):
    question = build_question("fill_blank", question_data={"acceptable_answers": ["a"]})

    result = await engine.grade_question(question, {"answers": "a"})

    assert result.feedback == "Fill blank question: Invalid answer format - expected answers array"


@pytest.mark.asyncio
async def test_short_answer_without_keywords_needs_manual_grading(engine):
    question = build_question("short_answer", question_data={"correct_answer": "anything"})

    for answer in ("anything", "", "a perfect essay"):
        result = await engine.grade_question(question, {"answer": answer})
        assert result.is_correct is False
        assert result.points_earned == 0
        assert result.feedback == "Manual grading required"


@pytest.mark.asyncio
async def test_short_answer_keyword_partial_credit(engine):
    question = build_question(
        "short_answer", question_data={"keywords": ["chlorophyll", "sunlight"]}
    )

    result = await engine.grade_question(question, {"answer": "Plants need SUNLIGHT to grow"})

    assert result.points_earned == 5
    assert result.feedback == "Found 1/2 key concepts"


@pytest.mark.asyncio
async def test_short_answer_max_length(engine):
    question = build_question("short_answer", question_data={"keywords": ["cell"], "max_length": 10})

    result = await engine.grade_question(question, {"answer": "the cell is the unit of life"})

    assert result.feedback == "Answer exceeds maximum length"


def test_exact_mode_matches_whole_words_only():
    assert keyword_present("cell", "a living cell", mode="exact")
    assert not keyword_present("cell", "many cells", mode="exact")
    assert keyword_present("cell", "many cells", mode="partial")


def test_case_sensitive_matching():
    assert not keyword_present("DNA", "dna strands", case_sensitive=True)
    assert keyword_present("DNA", "dna strands")


def test_fuzzy_similarity_bounds():
    assert fuzzy_similarity("photosynthesis", "the photosynthesis step") == pytest.approx(1.0)
    assert fuzzy_similarity("photosynthesis", "xyz") < 0.8
    assert fuzzy_similarity("photosynthesis", "") == 0.0


def test_unknown_mode_falls_back_to_partial():
    matched, missing = match_keywords(["cell", "atom"], "cells divide", mode="telepathic")

    assert matched == ["cell"]
    assert missing == ["atom"]
