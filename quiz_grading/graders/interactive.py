from ..coercion import round_points, to_int
from ..normalizer import question_data_of
from ..types import DetailedFeedback, GradingResult
from .base import BaseGrader


class MatchingGrader(BaseGrader):
    """Grader for matching questions: every left item maps to one right item."""

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        matches = payload.get('matches')
        if not isinstance(matches, dict):
            return GradingResult.failure(
                question.points, "Matching question: Invalid answer format - expected matches object")

        correct_matches = self.correct_value(correct, 'matches')
        if not isinstance(correct_matches, dict) or not correct_matches:
            return GradingResult.failure(question.points, "Matching question: No correct matches defined")

        if not matches:
            return GradingResult.failure(question.points, "Matching question: No matches provided")

        total_matches = len(correct_matches)
        correct_pairs = sum(
            1 for left_id, right_id in correct_matches.items()
            if left_id in matches and str(matches[left_id]) == right_id
        )
        return self.proportional(
            question, correct_pairs, total_matches, f"{correct_pairs}/{total_matches} matches correct",
            {'correct_matches': correct_pairs, 'total_matches': total_matches})


class OrderingGrader(BaseGrader):
    """Grader for ordering questions.

    Positions are compared one by one: the item at position i must be the
    correct item for position i. Adjacent pairs kept in the correct relative
    order are counted in the breakdown for the adjacency bonus.
    """

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        submitted = payload.get('ordered_item_ids')
        if not isinstance(submitted, list):
            return GradingResult.failure(question.points, "Invalid answer format")

        correct_order = self.correct_value(correct, 'ordered_item_ids')
        if not isinstance(correct_order, list) or not correct_order:
            return GradingResult.failure(question.points, "Question grading configuration error")

        submitted = [str(item_id) for item_id in submitted]
        total_items = len(correct_order)
        hits = [
            position < len(submitted) and submitted[position] == item_id
            for position, item_id in enumerate(correct_order)
        ]
        correct_positions = sum(hits)

        correct_pairs = set(zip(correct_order, correct_order[1:]))
        kept_pairs = sum(1 for pair in zip(submitted, submitted[1:]) if pair in correct_pairs)
        breakdown = {
            'correct_positions': correct_positions,
            'total_items': total_items,
            'adjacent_pairs_kept': kept_pairs,
            'adjacent_pairs_total': max(total_items - 1, 0),
        }
        feedback = f"{correct_positions}/{total_items} items in correct order"

        if config is not None and config.position_weight_mode == 'weighted':
            # later positions weigh more: position i counts i + 1
            weights = range(1, total_items + 1)
            earned = sum(weight for weight, hit in zip(weights, hits) if hit)
            points = min(round_points(earned / sum(weights) * question.points), question.points)
            breakdown['base_score'] = points
            return GradingResult.scored(
                is_correct=correct_positions == total_items,
                points_earned=points,
                max_points=question.points,
                feedback=feedback,
                detailed_feedback=DetailedFeedback(breakdown=breakdown),
            )

        return self.proportional(question, correct_positions, total_items, feedback, breakdown)


class DropdownGrader(BaseGrader):
    """Grader for inline dropdowns, compared slot by slot ignoring case."""

    def evaluate(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        selections = payload.get('selections')
        if not isinstance(selections, list):
            return GradingResult.failure(
                question.points, "Dropdown question: Invalid answer format - expected selections array")

        correct_selections = self.correct_value(correct, 'selections')
        if not isinstance(correct_selections, list) or not correct_selections:
            return GradingResult.failure(question.points, "Dropdown question: No correct selections defined")

        expected = {entry['dropdown_index']: entry['selected_option'] for entry in correct_selections}
        dropdown_options = question_data_of(question).get('dropdown_options')
        if isinstance(dropdown_options, list) and dropdown_options:
            total_dropdowns = len(dropdown_options)
            slots = [index for index in expected if 0 <= index < total_dropdowns]
        else:
            # stored indices may be sparse or out of range
            total_dropdowns = len(expected)
            slots = list(expected)

        submitted = {}
        for entry in selections:
            if isinstance(entry, dict) and isinstance(entry.get('selected_option'), str):
                index = to_int(entry.get('dropdown_index'))
                if index is not None and index not in submitted:
                    submitted[index] = entry['selected_option']

        correct_count = sum(
            1 for index in slots
            if index in submitted
            and submitted[index].lower() == expected[index].lower()
        )
        return self.proportional(
            question, correct_count, total_dropdowns, f"{correct_count}/{total_dropdowns} dropdowns correct",
            {'correct_selections': correct_count, 'total_dropdowns': total_dropdowns})
