from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from .coercion import decode_json_payload, to_points
from .exceptions import UnknownQuestionTypeError


class QuestionType(str, Enum):
    SINGLE_CHOICE = 'single_choice'
    MULTIPLE_CHOICE = 'multiple_choice'
    TRUE_FALSE = 'true_false'
    NUMERICAL = 'numerical'
    FILL_BLANK = 'fill_blank'
    SHORT_ANSWER = 'short_answer'
    MATCHING = 'matching'
    ORDERING = 'ordering'
    DROPDOWN = 'dropdown'
    CODING = 'coding'

    @classmethod
    def parse(cls, value: Any) -> 'QuestionType':
        """Return the matching member or raise UnknownQuestionTypeError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownQuestionTypeError(value) from None


class GradingStrategy(str, Enum):
    ALL_OR_NOTHING = 'all_or_nothing'
    PARTIAL_CREDIT = 'partial_credit'
    PENALTY_BASED = 'penalty_based'
    WEIGHTED_PARTIAL = 'weighted_partial'


@dataclass(frozen=True)
class QuestionRecord:
    """A question as stored by the quiz service."""
    type: QuestionType
    points: float
    question_data: Dict[str, Any] = field(default_factory=dict)
    correct_answer: Any = None
    explanation: Optional[str] = None
    id: Any = None

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> 'QuestionRecord':
        """Build a record from a storage row.

        Accepts either ``question_type`` or ``type`` as the tag; point values
        and JSON columns may arrive as strings.
        """
        question_type = QuestionType.parse(row.get('question_type', row.get('type')))
        question_data = decode_json_payload(row.get('question_data'))
        if not isinstance(question_data, dict):
            question_data = {}
        return cls(
            type=question_type,
            points=to_points(row.get('points')),
            question_data=question_data,
            correct_answer=decode_json_payload(row.get('correct_answer')),
            explanation=row.get('explanation'),
            id=row.get('id'),
        )


@dataclass(frozen=True)
class NormalizedAnswer:
    type: QuestionType
    data: Any
    explanation: Optional[str] = None


@dataclass(frozen=True)
class NormalizedCorrectAnswer:
    type: QuestionType
    data: Any
    explanation: Optional[str] = None


@dataclass
class DetailedFeedback:
    strategy_used: Optional[GradingStrategy] = None
    breakdown: Dict[str, float] = field(default_factory=dict)
    penalties_applied: Dict[str, float] = field(default_factory=dict)
    bonuses_earned: Dict[str, float] = field(default_factory=dict)


@dataclass
class TestCase:
    __test__ = False

    id: str
    input: Any
    expected_output: Any
    is_hidden: bool = False
    points: float = 1
    time_limit: float = 5
    memory_limit: int = 256


@dataclass
class TestExecutionResult:
    """Outcome of one test case as reported by the sandbox."""
    __test__ = False

    test_case_id: str
    passed: bool
    output: Optional[str] = None
    error: Optional[str] = None
    execution_time: float = 0.0
    memory_used: Optional[float] = None
    compilation_error: bool = False
    timed_out: bool = False
    memory_exceeded: bool = False


@dataclass
class GradingResult:
    is_correct: bool
    points_earned: float
    max_points: float
    percentage: float
    feedback: str
    detailed_feedback: Optional[DetailedFeedback] = None
    test_results: List[TestExecutionResult] = field(default_factory=list)

    @classmethod
    def failure(cls, max_points: float, feedback: str) -> 'GradingResult':
        """Zero-point result used for malformed input and configuration errors."""
        return cls(is_correct=False, points_earned=0, max_points=max_points,
                   percentage=0.0, feedback=feedback)

    @classmethod
    def scored(cls, is_correct: bool, points_earned: float, max_points: float,
               feedback: str, **kwargs) -> 'GradingResult':
        return cls(
            is_correct=is_correct,
            points_earned=points_earned,
            max_points=max_points,
            percentage=percentage_of(points_earned, max_points),
            feedback=feedback,
            **kwargs
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.detailed_feedback and self.detailed_feedback.strategy_used:
            data['detailed_feedback']['strategy_used'] = self.detailed_feedback.strategy_used.value
        return data


@dataclass(frozen=True)
class QuestionAttempt:
    """One submitted answer to one question within a submission."""
    question_id: Any
    question: QuestionRecord
    submitted_answer: Any


@dataclass
class AttemptGrade:
    question_id: Any
    question_type: QuestionType
    points_earned: float
    max_points: float
    is_correct: bool
    feedback: str


@dataclass
class SubmissionGrade:
    submission_id: Any
    total_earned: float
    max_possible: float
    percentage: float
    passed: bool
    details: List[AttemptGrade] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for detail in data['details']:
            detail['question_type'] = detail['question_type'].value
        return data


def percentage_of(points_earned: float, max_points: float) -> float:
    if max_points == 0:
        return 0.0
    return points_earned / max_points * 100
