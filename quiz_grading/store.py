"""Attempt stores used by GradingEngine.auto_grade_submission."""
import json
import logging
import os
from typing import Any, Dict, List, Optional

from .types import GradingResult, NormalizedAnswer, NormalizedCorrectAnswer, QuestionAttempt, QuestionRecord

logger = logging.getLogger('grading')


class AttemptStore:
    """Where submission attempts come from and where their grades go."""

    def list_attempts(self, submission_id: Any) -> List[QuestionAttempt]:
        raise NotImplementedError("Subclasses must implement list_attempts method")

    def save_grade(self, submission_id: Any, attempt: QuestionAttempt, answer: NormalizedAnswer,
                   correct: NormalizedCorrectAnswer, result: GradingResult):
        raise NotImplementedError("Subclasses must implement save_grade method")


def grade_record(answer: NormalizedAnswer, correct: NormalizedCorrectAnswer,
                 result: GradingResult) -> Dict[str, Any]:
    """Serializable record of one graded attempt."""
    return {
        'normalized_answer': {'type': answer.type.value, 'data': answer.data,
                              'explanation': answer.explanation},
        'correct_answer': correct.data,
        'is_correct': result.is_correct,
        'points_earned': result.points_earned,
        'max_points': result.max_points,
        'feedback': result.feedback,
        'result': result.to_dict(),
    }


class InMemoryAttemptStore(AttemptStore):
    def __init__(self):
        self.attempts: Dict[Any, List[QuestionAttempt]] = {}
        self.grades: Dict[Any, Dict[Any, Dict[str, Any]]] = {}

    def add_attempt(self, submission_id: Any, question: QuestionRecord, submitted_answer: Any,
                    question_id: Any = None) -> QuestionAttempt:
        attempt = QuestionAttempt(
            question_id=question_id if question_id is not None else question.id,
            question=question,
            submitted_answer=submitted_answer,
        )
        self.attempts.setdefault(submission_id, []).append(attempt)
        return attempt

    def list_attempts(self, submission_id):
        return list(self.attempts.get(submission_id, []))

    def save_grade(self, submission_id, attempt, answer, correct, result):
        self.grades.setdefault(submission_id, {})[attempt.question_id] = grade_record(answer, correct, result)


class JsonAttemptStore(AttemptStore):
    """Attempts read from a submission export file; grades are written back into it.

    Expected layout::

        {"submission_id": "s-1",
         "attempts": [{"question_id": 1, "question": {...}, "submitted_answer": {...}}]}
    """

    def __init__(self, path: str):
        self.path = path
        with open(path, 'r', encoding='utf-8') as f:
            self.data = json.load(f)
        if not isinstance(self.data.get('attempts'), list):
            self.data['attempts'] = []
        logger.info(f"Loaded {len(self.data['attempts'])} attempts from {path}")

    @property
    def submission_id(self) -> Optional[Any]:
        return self.data.get('submission_id')

    def list_attempts(self, submission_id):
        if str(submission_id) != str(self.submission_id):
            return []
        attempts = []
        for entry in self.data['attempts']:
            question = QuestionRecord.from_dict(entry.get('question') or {})
            question_id = entry.get('question_id', question.id)
            attempts.append(QuestionAttempt(
                question_id=question_id,
                question=question,
                submitted_answer=entry.get('submitted_answer'),
            ))
        return attempts

    def save_grade(self, submission_id, attempt, answer, correct, result):
        for entry in self.data['attempts']:
            question = entry.get('question') or {}
            if entry.get('question_id', question.get('id')) == attempt.question_id:
                entry['grade'] = grade_record(answer, correct, result)
                break
        else:
            logger.warning(f"Attempt for question {attempt.question_id} not found in {self.path}")
            return
        self._write()

    def _write(self):
        temp_path = f"{self.path}.tmp"
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(self.data, f, indent=2, default=str)
        os.replace(temp_path, self.path)
