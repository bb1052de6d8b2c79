"""Canonical answer shapes.

Submitted answers and stored correct answers are both reduced to one
canonical payload per question type before any comparison:

    single_choice    {'selected_option_index': int}
    multiple_choice  {'selected_option_indices': [int, ...]}
    true_false       {'selected_answer': bool}
    numerical        {'answer': float}
    short_answer     {'answer': str}
    fill_blank       {'answers': [{'blank_index': int, 'answer': str}, ...]}
    matching         {'matches': {left_id: right_id}}
    ordering         {'ordered_item_ids': [str, ...]}
    dropdown         {'selections': [{'dropdown_index': int, 'selected_option': str}, ...]}
    coding           {'code': str}

Stored correct answers may live in several fields depending on which
authoring path saved the question, so each type has an ordered chain of
extractors that is tried until one yields a value.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .coercion import decode_json_payload, to_bool, to_float, to_int
from .types import NormalizedAnswer, NormalizedCorrectAnswer, QuestionRecord, QuestionType

logger = logging.getLogger('normalization')

Extractor = Callable[[Dict[str, Any], Any], Any]


def _exact_index(value: Any) -> Optional[int]:
    """Index stored as a JSON number (strings are handled separately)."""
    if isinstance(value, str):
        return None
    return to_int(value)


def _index_list(values: Any) -> Optional[List[int]]:
    if not isinstance(values, list):
        return None
    indices = [to_int(value) for value in values]
    if any(index is None for index in indices):
        return None
    return indices


def _id_list(values: Any) -> Optional[List[str]]:
    if not isinstance(values, list):
        return None
    if any(value is None or isinstance(value, (dict, list)) for value in values):
        return None
    return [str(value) for value in values]


def _string_mapping(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, dict) or not value:
        return None
    if any(isinstance(right, (dict, list)) for right in value.values()):
        return None
    return {str(left): str(right) for left, right in value.items() if right is not None}


# -- submitted answers ------------------------------------------------------

def _canonical_single_choice(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    index = to_int(raw.get('selected_option_index'))
    return None if index is None else {'selected_option_index': index}


def _canonical_multiple_choice(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    indices = _index_list(raw.get('selected_option_indices'))
    return None if indices is None else {'selected_option_indices': indices}


def _canonical_true_false(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    selected = to_bool(raw.get('selected_answer'))
    return None if selected is None else {'selected_answer': selected}


def _canonical_numerical(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    value = to_float(raw.get('answer'))
    if value is None:
        return None
    canonical = {'answer': value}
    if isinstance(raw.get('units'), str):
        canonical['units'] = raw['units']
    return canonical


def _canonical_short_answer(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    answer = raw.get('answer')
    return {'answer': answer} if isinstance(answer, str) else None


def _canonical_fill_blank(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    entries = raw.get('answers')
    if not isinstance(entries, list):
        return None
    answers = []
    for entry in entries:
        if not isinstance(entry, dict):
            return None
        index = to_int(entry.get('blank_index'))
        if index is None or not isinstance(entry.get('answer'), str):
            return None
        answers.append({'blank_index': index, 'answer': entry['answer']})
    return {'answers': answers}


def _canonical_matching(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    matches = raw.get('matches')
    if not isinstance(matches, dict):
        return None
    mapping = _string_mapping(matches) if matches else {}
    return None if mapping is None else {'matches': mapping}


def _canonical_ordering(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    ids = _id_list(raw.get('ordered_item_ids'))
    return None if ids is None else {'ordered_item_ids': ids}


def _canonical_dropdown(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    entries = raw.get('selections')
    if not isinstance(entries, list):
        return None
    selections = []
    for entry in entries:
        if not isinstance(entry, dict):
            return None
        index = to_int(entry.get('dropdown_index'))
        if index is None or not isinstance(entry.get('selected_option'), str):
            return None
        selections.append({'dropdown_index': index, 'selected_option': entry['selected_option']})
    return {'selections': selections}


def _canonical_coding(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    code = raw.get('code')
    return {'code': code} if isinstance(code, str) else None


_ANSWER_CANONICALIZERS = {
    QuestionType.SINGLE_CHOICE: _canonical_single_choice,
    QuestionType.MULTIPLE_CHOICE: _canonical_multiple_choice,
    QuestionType.TRUE_FALSE: _canonical_true_false,
    QuestionType.NUMERICAL: _canonical_numerical,
    QuestionType.SHORT_ANSWER: _canonical_short_answer,
    QuestionType.FILL_BLANK: _canonical_fill_blank,
    QuestionType.MATCHING: _canonical_matching,
    QuestionType.ORDERING: _canonical_ordering,
    QuestionType.DROPDOWN: _canonical_dropdown,
    QuestionType.CODING: _canonical_coding,
}


def normalize_answer(raw: Any, question_type: Any) -> NormalizedAnswer:
    """Tag a submitted answer with its type and reduce it to canonical form.

    Payloads that do not fit the canonical shape are passed through as
    decoded so the grader can report exactly what was wrong with them.

    Raises:
        UnknownQuestionTypeError: if ``question_type`` is not recognised
    """
    question_type = QuestionType.parse(question_type)
    decoded = decode_json_payload(raw)
    if not isinstance(decoded, dict):
        logger.debug(f"Submitted {question_type.value} answer is not an object: {type(decoded).__name__}")
        return NormalizedAnswer(type=question_type, data=decoded)

    explanation = decoded.get('explanation')
    canonical = _ANSWER_CANONICALIZERS[question_type](decoded)
    if canonical is None:
        logger.debug(f"Submitted {question_type.value} answer kept as-is: {decoded!r}")
        canonical = decoded
    return NormalizedAnswer(
        type=question_type,
        data=canonical,
        explanation=explanation if isinstance(explanation, str) else None,
    )


# -- correct answers --------------------------------------------------------

def _sc_correct_option_index(data, stored):
    return _exact_index(data.get('correct_option_index'))


def _sc_data_correct_answer(data, stored):
    return to_int(data.get('correct_answer'))


def _sc_selected_option_index(data, stored):
    return _exact_index(data.get('selected_option_index'))


def _sc_nested_selected_option_index(data, stored):
    nested = data.get('correct_answer')
    if isinstance(nested, dict):
        return _exact_index(nested.get('selected_option_index'))
    return None


def _sc_stored_answer(data, stored):
    stored = decode_json_payload(stored)
    if isinstance(stored, dict):
        index = _exact_index(stored.get('selected_option_index'))
        if index is None:
            index = _exact_index(stored.get('correct_option_index'))
        return index
    return to_int(stored)


def _mc_correct_option_indices(data, stored):
    return _index_list(data.get('correct_option_indices'))


def _mc_data_correct_answer(data, stored):
    return _index_list(data.get('correct_answer'))


def _mc_stored_answer(data, stored):
    stored = decode_json_payload(stored)
    if isinstance(stored, dict):
        return _index_list(stored.get('correct_option_indices'))
    return _index_list(stored)


def _tf_data_correct_answer(data, stored):
    return to_bool(data.get('correct_answer'), strict=False)


def _tf_stored_answer(data, stored):
    stored = decode_json_payload(stored)
    if isinstance(stored, dict):
        return to_bool(stored.get('answer'), strict=False)
    return to_bool(stored, strict=False)


def _numerical_correct_answer(data, stored):
    return to_float(data.get('correct_answer'))


def _short_answer_correct_answer(data, stored):
    answer = data.get('correct_answer')
    return answer if isinstance(answer, str) else None


def _fill_blank_acceptable_answers(data, stored):
    blanks = data.get('acceptable_answers')
    if not isinstance(blanks, list) or not blanks:
        return None
    answers = []
    for index, blank in enumerate(blanks):
        if isinstance(blank, dict):
            options = blank.get('answers')
            answer = options[0] if isinstance(options, list) and options else blank.get('correct_answer')
        else:
            answer = blank
        answers.append({'blank_index': index, 'answer': answer})
    return answers


def _matching_correct_matches(data, stored):
    return _string_mapping(data.get('correct_matches'))


def _matching_stored_mappings(data, stored):
    stored = decode_json_payload(stored)
    if isinstance(stored, dict):
        return _string_mapping(stored.get('mappings'))
    return None


def _ordering_stored_ids(data, stored):
    stored = decode_json_payload(stored)
    if isinstance(stored, dict):
        return _id_list(stored.get('ordered_item_ids'))
    return None


def _ordering_item_order(data, stored):
    items = data.get('items')
    if not isinstance(items, list) or not items:
        return None
    if not all(isinstance(item, dict) and item.get('id') is not None for item in items):
        return None

    def order_key(item):
        order = to_float(item.get('order'))
        return (order is None, order if order is not None else 0)

    return [str(item['id']) for item in sorted(items, key=order_key)]


def _dropdown_stored_options(data, stored):
    stored = decode_json_payload(stored)
    if isinstance(stored, list) and stored and all(isinstance(option, str) for option in stored):
        return [{'dropdown_index': index, 'selected_option': option}
                for index, option in enumerate(stored)]
    return None


def _dropdown_stored_selections(data, stored):
    stored = decode_json_payload(stored)
    if not isinstance(stored, list) or not stored:
        return None
    selections = []
    for entry in stored:
        if not isinstance(entry, dict):
            return None
        index = to_int(entry.get('dropdown_index'))
        option = entry.get('selected_option')
        if index is None or option is None:
            return None
        selections.append({'dropdown_index': index, 'selected_option': str(option)})
    return selections


def _dropdown_correct_selections(data, stored):
    values = data.get('correct_selections')
    if not isinstance(values, list) or not values:
        return None
    selections = []
    for index, value in enumerate(values):
        if isinstance(value, list):
            value = value[0] if value else None
        if value is None:
            continue
        selections.append({'dropdown_index': index, 'selected_option': str(value)})
    return selections or None


def _coding_expected_code(data, stored):
    code = data.get('expected_code')
    return code if isinstance(code, str) and code else None


CORRECT_ANSWER_CHAINS: Dict[QuestionType, Tuple[str, Sequence[Extractor]]] = {
    QuestionType.SINGLE_CHOICE: ('selected_option_index', (
        _sc_correct_option_index,
        _sc_data_correct_answer,
        _sc_selected_option_index,
        _sc_nested_selected_option_index,
        _sc_stored_answer,
    )),
    QuestionType.MULTIPLE_CHOICE: ('selected_option_indices', (
        _mc_correct_option_indices,
        _mc_data_correct_answer,
        _mc_stored_answer,
    )),
    QuestionType.TRUE_FALSE: ('selected_answer', (
        _tf_data_correct_answer,
        _tf_stored_answer,
    )),
    QuestionType.NUMERICAL: ('answer', (_numerical_correct_answer,)),
    QuestionType.SHORT_ANSWER: ('answer', (_short_answer_correct_answer,)),
    QuestionType.FILL_BLANK: ('answers', (_fill_blank_acceptable_answers,)),
    QuestionType.MATCHING: ('matches', (
        _matching_correct_matches,
        _matching_stored_mappings,
    )),
    QuestionType.ORDERING: ('ordered_item_ids', (
        _ordering_stored_ids,
        _ordering_item_order,
    )),
    QuestionType.DROPDOWN: ('selections', (
        _dropdown_stored_options,
        _dropdown_stored_selections,
        _dropdown_correct_selections,
    )),
    QuestionType.CODING: ('code', (_coding_expected_code,)),
}


def question_data_of(question: QuestionRecord) -> Dict[str, Any]:
    """The question's type-specific payload as a dict (empty when unreadable)."""
    data = decode_json_payload(question.question_data)
    return data if isinstance(data, dict) else {}


def resolve_correct_value(question_type: QuestionType, question_data: Dict[str, Any],
                          stored_answer: Any) -> Tuple[Any, Optional[str]]:
    """Run the precedence chain for ``question_type``.

    Returns:
        Tuple of the extracted value (or None) and the name of the extractor
        that produced it
    """
    _, extractors = CORRECT_ANSWER_CHAINS[question_type]
    for extractor in extractors:
        value = extractor(question_data, stored_answer)
        if value is not None:
            return value, extractor.__name__
    return None, None


def normalize_correct_answer(question: QuestionRecord) -> NormalizedCorrectAnswer:
    """Resolve a question's correct answer into canonical form.

    ``data`` is None when no field in the chain holds a usable value.
    """
    question_type = QuestionType.parse(question.type)
    key, _ = CORRECT_ANSWER_CHAINS[question_type]
    value, source = resolve_correct_value(question_type, question_data_of(question), question.correct_answer)

    if value is None:
        logger.warning(f"No correct answer resolvable for {question_type.value} question {question.id}")
        data = None
    else:
        logger.debug(f"Correct answer for question {question.id} resolved via {source}")
        data = {key: value}

    return NormalizedCorrectAnswer(type=question_type, data=data, explanation=question.explanation)
