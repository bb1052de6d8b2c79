import logging
from typing import Any, Dict, List, Optional, Tuple

from ..coercion import to_float, to_int
from ..config import NumericalGradingConfig, ShortAnswerGradingConfig
from ..normalizer import question_data_of
from ..types import GradingResult
from .base import BaseGrader, MANUAL_GRADING_REQUIRED
from .keywords import match_keywords

logger = logging.getLogger('grading')


def _format_number(value: float) -> str:
    return f"{value:g}"


class NumericalGrader(BaseGrader):
    """Grader for numeric answers with tolerance and an optional range.

    Both conditions must hold: the answer is within ``tolerance`` of the
    correct value and, when ``acceptable_range`` is set, inside that
    inclusive range.
    """

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        submitted = payload.get('answer')

        if isinstance(submitted, str):
            return GradingResult.failure(question.points, "Numerical question: Invalid number format")
        if isinstance(submitted, bool) or not isinstance(submitted, (int, float)):
            return GradingResult.failure(
                question.points, "Numerical question: Invalid answer format - expected numeric value")

        correct_value = self.correct_value(correct, 'answer')
        if correct_value is None:
            return GradingResult.failure(question.points, "Numerical question: No correct answer defined")

        question_data = question_data_of(question)
        tolerance = self._tolerance(question_data, correct_value, config)
        acceptable_range = self._range(question_data, config)

        if config is not None and config.tolerance_mode == 'range' and acceptable_range is not None:
            within_tolerance = True
        else:
            within_tolerance = abs(submitted - correct_value) <= tolerance

        within_range = True
        if acceptable_range is not None:
            within_range = acceptable_range[0] <= submitted <= acceptable_range[1]

        units = question_data.get('units') if isinstance(question_data.get('units'), str) else ''
        submitted_units = payload.get('units') if isinstance(payload.get('units'), str) else ''
        units_mismatch = bool(units) and submitted_units.strip().lower() != units.strip().lower()

        is_correct = within_tolerance and within_range
        if is_correct:
            feedback = "Correct numerical answer!"
        else:
            feedback = (f"Expected {_format_number(correct_value)}{' ' + units if units else ''} "
                        f"(tolerance: ±{_format_number(tolerance)})")

        breakdown = {
            'difference': abs(submitted - correct_value),
            'tolerance': tolerance,
            'units_mismatch': 1 if units_mismatch else 0,
        }
        return self.all_or_nothing(question, is_correct, feedback, breakdown)

    @staticmethod
    def _tolerance(question_data: Dict[str, Any], correct_value: float,
                   config: Optional[NumericalGradingConfig]) -> float:
        tolerance = to_float(question_data.get('tolerance'))
        if config is not None:
            if config.tolerance_mode == 'percentage' and config.percentage_tolerance is not None:
                return abs(correct_value) * config.percentage_tolerance / 100
            if tolerance is None and config.absolute_tolerance is not None:
                return config.absolute_tolerance
        return abs(tolerance) if tolerance is not None else 0.0

    @staticmethod
    def _range(question_data: Dict[str, Any],
               config: Optional[NumericalGradingConfig]) -> Optional[Tuple[float, float]]:
        candidates = [question_data.get('acceptable_range')]
        if config is not None and config.acceptable_range is not None:
            candidates.insert(0, config.acceptable_range)
        for candidate in candidates:
            if isinstance(candidate, dict):
                low, high = to_float(candidate.get('min')), to_float(candidate.get('max'))
                if low is not None and high is not None:
                    return low, high
        return None


class FillBlankGrader(BaseGrader):
    """Grader for fill-in-the-blank questions.

    Each blank is checked against its own ``acceptable_answers`` list,
    case-insensitively unless the blank sets ``case_sensitive``.
    """

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        entries = payload.get('answers')
        if not isinstance(entries, list):
            return GradingResult.failure(
                question.points, "Fill blank question: Invalid answer format - expected answers array")

        blanks = question_data_of(question).get('acceptable_answers')
        if not isinstance(blanks, list) or not blanks:
            return GradingResult.failure(
                question.points,
                "Fill blank question: No acceptable answers defined in question configuration")

        specs = []
        for index, blank in enumerate(blanks):
            spec = self._blank_spec(blank)
            if spec is None:
                return GradingResult.failure(
                    question.points, f"Fill blank question: Blank {index + 1} has no acceptable answers defined")
            specs.append(spec)

        submitted = {}
        for entry in entries:
            if isinstance(entry, dict) and isinstance(entry.get('answer'), str):
                index = to_int(entry.get('blank_index'))
                if index is not None and index not in submitted:
                    submitted[index] = entry['answer']

        if config is not None and not config.blank_independence:
            correct_blanks = self._count_unordered(list(submitted.values()), specs)
        else:
            correct_blanks = sum(
                1 for index, spec in enumerate(specs)
                if index in submitted and self._accepts(spec, submitted[index])
            )

        total_blanks = len(specs)
        return self.proportional(
            question, correct_blanks, total_blanks, f"{correct_blanks}/{total_blanks} blanks correct",
            {'correct_blanks': correct_blanks, 'total_blanks': total_blanks})

    @staticmethod
    def _blank_spec(blank: Any) -> Optional[Tuple[List[str], bool]]:
        if isinstance(blank, str):
            return [blank], False
        if not isinstance(blank, dict):
            return None
        options = blank.get('answers')
        if not isinstance(options, list):
            options = [blank['correct_answer']] if blank.get('correct_answer') is not None else []
        options = [option for option in options if isinstance(option, str)]
        if not options:
            return None
        return options, blank.get('case_sensitive') is True

    @staticmethod
    def _accepts(spec: Tuple[List[str], bool], value: str) -> bool:
        options, case_sensitive = spec
        if case_sensitive:
            return value in options
        lowered = value.lower()
        return any(lowered == option.lower() for option in options)

    def _count_unordered(self, values: List[str], specs: List[Tuple[List[str], bool]]) -> int:
        """Blanks filled in any order; each submitted value fills at most one blank."""
        remaining = list(values)
        count = 0
        for spec in specs:
            for position, value in enumerate(remaining):
                if self._accepts(spec, value):
                    count += 1
                    del remaining[position]
                    break
        return count


class ShortAnswerGrader(BaseGrader):
    """Grader for short-answer submissions using keyword matching.

    Without a keyword list the answer is left for a human: zero points and
    "Manual grading required", whatever the content.
    """

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        text = payload.get('answer')
        if not isinstance(text, str):
            return GradingResult.failure(question.points, "Invalid answer format")

        question_data = question_data_of(question)
        max_length = to_int(question_data.get('max_length'))
        if max_length and len(text) > max_length:
            return GradingResult.failure(question.points, "Answer exceeds maximum length")

        keywords = question_data.get('keywords')
        if isinstance(keywords, list):
            keywords = [keyword for keyword in keywords if isinstance(keyword, str) and keyword.strip()]
        if not keywords:
            return GradingResult.failure(question.points, MANUAL_GRADING_REQUIRED)

        config = config or ShortAnswerGradingConfig()
        matched_keywords, missing_keywords = match_keywords(
            keywords, text,
            mode=config.keyword_matching_mode,
            case_sensitive=config.case_sensitive,
            fuzzy_threshold=config.fuzzy_threshold,
        )
        logger.debug(f"Short answer keywords matched: {matched_keywords}, missing: {missing_keywords}")

        found, total = len(matched_keywords), len(keywords)
        result = self.proportional(
            question, found, total, f"Found {found}/{total} key concepts",
            {'keywords_found': found, 'keywords_total': total})
        result.detailed_feedback.breakdown['keyword_score'] = result.points_earned
        return result
