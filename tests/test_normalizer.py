import json

import pytest

from quiz_grading.exceptions import UnknownQuestionTypeError
from quiz_grading.normalizer import normalize_answer, normalize_correct_answer, resolve_correct_value
from quiz_grading.types import QuestionType
from tests.conftest import build_question


@pytest.mark.parametrize(
    "question_type, raw",
    [
        ("single_choice", {"selected_option_index": "2"}),
        ("multiple_choice", {"selected_option_indices": ["0", 2]}),
        ("true_false", {"selected_answer": "true"}),
        ("numerical", {"answer": "42.5", "units": "m"}),
        ("short_answer", {"answer": "photosynthesis"}),
        ("fill_blank", {"answers": [{"blank_index": "0", "answer": "Paris"}]}),
        ("matching", {"matches": {"1": 2, "2": "a"}}),
        ("ordering", {"ordered_item_ids": [3, "b", 1]}),
        ("dropdown", {"selections": [{"dropdown_index": 0, "selected_option": "Red"}]}),
        ("coding", {"code": "print(1)"}),
    ],
)
def test_normalizing_canonical_answer_is_a_no_op(question_type, raw):
    once = normalize_answer(raw, question_type)
    twice = normalize_answer(once.data, question_type)

    assert twice.data == once.data
    assert twice.type == once.type == QuestionType(question_type)


def test_answer_string_encodings_are_unwrapped():
    payload = json.dumps(json.dumps({"selected_option_index": 1}))

    answer = normalize_answer(payload, "single_choice")

    assert answer.data == {"selected_option_index": 1}


def test_answer_explanation_is_kept_outside_the_payload():
    answer = normalize_answer({"selected_answer": True, "explanation": "because"}, "true_false")

    assert answer.data == {"selected_answer": True}
    assert answer.explanation == "because"


def test_malformed_answer_is_passed_through():
    answer = normalize_answer({"selected_option_indices": "0,1"}, "multiple_choice")

    assert answer.data == {"selected_option_indices": "0,1"}


def test_unknown_type_is_rejected():
    with pytest.raises(UnknownQuestionTypeError):
        normalize_answer({"answer": 1}, "essay")


def test_single_choice_chain_prefers_correct_option_index():
    question = build_question(
        "single_choice",
        question_data={"correct_option_index": 2, "correct_answer": 1},
        correct_answer=0,
    )

    assert normalize_correct_answer(question).data == {"selected_option_index": 2}


def test_single_choice_chain_reads_numeric_string_in_question_data():
    question = build_question("single_choice", question_data={"correct_answer": "3"})

    assert normalize_correct_answer(question).data == {"selected_option_index": 3}


def test_single_choice_chain_falls_back_to_stored_column():
    question = build_question("single_choice", correct_answer='{"selected_option_index": 1}')

    value, source = resolve_correct_value(QuestionType.SINGLE_CHOICE, {}, question.correct_answer)

    assert value == 1
    assert source == "_sc_stored_answer"


def test_multiple_choice_chain_parses_string_indices():
    question = build_question("multiple_choice", question_data={"correct_answer": ["0", "2"]})

    assert normalize_correct_answer(question).data == {"selected_option_indices": [0, 2]}


def test_true_false_stored_string_is_read_leniently():
    question = build_question("true_false", correct_answer="yes")

    assert normalize_correct_answer(question).data == {"selected_answer": False}


def test_true_false_question_data_takes_precedence():
    question = build_question("true_false", question_data={"correct_answer": 1}, correct_answer=False)

    assert normalize_correct_answer(question).data == {"selected_answer": True}


def test_ordering_prefers_stored_ids_then_item_order():
    items = [{"id": "C", "order": 3}, {"id": "A", "order": 1}, {"id": "B", "order": 2}]
    from_items = build_question("ordering", question_data={"items": items})
    stored = build_question(
        "ordering", question_data={"items": items}, correct_answer={"ordered_item_ids": ["B", "A", "C"]}
    )

    assert normalize_correct_answer(from_items).data == {"ordered_item_ids": ["A", "B", "C"]}
    assert normalize_correct_answer(stored).data == {"ordered_item_ids": ["B", "A", "C"]}
    assert [item["id"] for item in items] == ["C", "A", "B"]


def test_dropdown_stored_option_list():
    question = build_question("dropdown", correct_answer=["red", "blue"])

    assert normalize_correct_answer(question).data == {
        "selections": [
            {"dropdown_index": 0, "selected_option": "red"},
            {"dropdown_index": 1, "selected_option": "blue"},
        ]
    }


def test_matching_falls_back_to_stored_mappings():
    question = build_question("matching", correct_answer={"mappings": {"1": "a"}})

    assert normalize_correct_answer(question).data == {"matches": {"1": "a"}}


def test_missing_correct_answer_gives_none():
    question = build_question("numerical", question_data={"tolerance": 1})

    assert normalize_correct_answer(question).data is None
