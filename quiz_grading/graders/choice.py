import json

from ..equality import deep_equal
from ..types import GradingResult
from .base import BaseGrader, NO_CORRECT_ANSWER


class SingleChoiceGrader(BaseGrader):
    """Grader for single-choice questions: one option index, exact match."""

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        selected = payload.get('selected_option_index')

        if isinstance(selected, bool) or not isinstance(selected, int):
            return GradingResult.failure(
                question.points,
                "Invalid answer format - selected_option_index must be a number. "
                f"Received: {json.dumps(selected, default=str)} of type {type(selected).__name__}"
            )

        correct_index = self.correct_value(correct, 'selected_option_index')
        if isinstance(correct_index, bool) or not isinstance(correct_index, int):
            return GradingResult.failure(question.points, NO_CORRECT_ANSWER)

        is_correct = deep_equal({'selected_option_index': selected}, correct.data)
        return self.all_or_nothing(question, is_correct, "Correct!" if is_correct else "Incorrect selection")


class MultipleChoiceGrader(BaseGrader):
    """Grader for multiple-choice questions with partial credit.

    Partial credit counts the student's selections that are in the correct
    set. Extra wrong selections are reported in the breakdown and only cost
    points when a grading config sets a penalty.
    """

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        selected = payload.get('selected_option_indices')

        if not isinstance(selected, list):
            return GradingResult.failure(question.points, "Invalid answer format")
        if any(isinstance(index, bool) or not isinstance(index, int) for index in selected):
            return GradingResult.failure(
                question.points, "Invalid answer format - selected_option_indices must contain numbers")

        correct_indices = self.correct_value(correct, 'selected_option_indices')
        if not isinstance(correct_indices, list) or not correct_indices:
            return GradingResult.failure(question.points, NO_CORRECT_ANSWER)

        # repeated indices count once on both sides
        correct_set = set(correct_indices)
        chosen = set(selected)
        correct_selections = len(chosen & correct_set)
        wrong_selections = len(chosen - correct_set)
        breakdown = {
            'correct_selections': correct_selections,
            'wrong_selections': wrong_selections,
            'correct_total': len(correct_set),
        }

        if deep_equal(sorted(chosen), sorted(correct_set)):
            return self.all_or_nothing(question, True, "All selections correct!", breakdown)

        result = self.proportional(
            question, correct_selections, len(correct_set), "Some selections incorrect", breakdown)
        # every correct option plus extra wrong ones is still an incorrect answer
        result.is_correct = False
        return result


class TrueFalseGrader(BaseGrader):
    """Grader for true/false questions."""

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        selected = payload.get('selected_answer')

        if not isinstance(selected, bool):
            return GradingResult.failure(
                question.points, "Invalid answer format - selected_answer must be a boolean")

        if not isinstance(self.correct_value(correct, 'selected_answer'), bool):
            return GradingResult.failure(question.points, NO_CORRECT_ANSWER)

        is_correct = deep_equal({'selected_answer': selected}, correct.data)
        return self.all_or_nothing(question, is_correct, "Correct!" if is_correct else "Incorrect answer")
