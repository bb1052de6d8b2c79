import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .config import BaseGradingConfig, ConfigRegistry, Settings, config_from_dict, default_registry
from .exceptions import GradingError, SubmissionNotFoundError, UnknownQuestionTypeError
from .graders import (
    BaseGrader,
    CodingGrader,
    DropdownGrader,
    FillBlankGrader,
    MatchingGrader,
    MultipleChoiceGrader,
    NumericalGrader,
    OrderingGrader,
    ShortAnswerGrader,
    SingleChoiceGrader,
    TrueFalseGrader,
)
from .normalizer import normalize_answer, normalize_correct_answer
from .sandbox import CodeExecutor
from .types import (
    AttemptGrade,
    DetailedFeedback,
    GradingResult,
    GradingStrategy,
    NormalizedAnswer,
    NormalizedCorrectAnswer,
    QuestionRecord,
    QuestionType,
    SubmissionGrade,
    percentage_of,
)

logger = logging.getLogger('grading')

GRADER_ERROR_FEEDBACK = "Error occurred during automatic grading"

QuestionLike = Union[QuestionRecord, Mapping[str, Any]]


class GradingEngine:
    """Grade quiz answers, one question or a whole submission at a time.

    Every public entry point is a coroutine; only coding questions actually
    wait on anything (the code sandbox).
    """

    def __init__(self, executor: Optional[CodeExecutor] = None,
                 registry: Optional[ConfigRegistry] = None,
                 attempt_store=None,
                 settings: Optional[Settings] = None):
        """Initialize the grading engine.

        Args:
            executor: Sandbox used by the coding grader
            registry: Per-type grading configs, defaults to default_registry()
            attempt_store: Source of submission attempts for bulk grading
            settings: Runtime settings (passing percentage, sandbox limits)
        """
        self.settings = settings or Settings()
        self.registry = registry or default_registry()
        self.attempt_store = attempt_store
        self.graders: Dict[QuestionType, BaseGrader] = {}

        self.register_grader(QuestionType.SINGLE_CHOICE, SingleChoiceGrader())
        self.register_grader(QuestionType.MULTIPLE_CHOICE, MultipleChoiceGrader())
        self.register_grader(QuestionType.TRUE_FALSE, TrueFalseGrader())
        self.register_grader(QuestionType.NUMERICAL, NumericalGrader())
        self.register_grader(QuestionType.FILL_BLANK, FillBlankGrader())
        self.register_grader(QuestionType.SHORT_ANSWER, ShortAnswerGrader())
        self.register_grader(QuestionType.MATCHING, MatchingGrader())
        self.register_grader(QuestionType.ORDERING, OrderingGrader())
        self.register_grader(QuestionType.DROPDOWN, DropdownGrader())
        self.register_grader(QuestionType.CODING, CodingGrader(executor, self.settings))

    def register_grader(self, question_type: Any, grader: BaseGrader):
        """Register a grader for a question type, replacing any existing one.

        Args:
            question_type: QuestionType or its string value
            grader: Grader instance
        """
        self.graders[QuestionType.parse(question_type)] = grader

    def grader_for(self, question_type: Any) -> BaseGrader:
        question_type = QuestionType.parse(question_type)
        if question_type not in self.graders:
            raise UnknownQuestionTypeError(question_type.value)
        return self.graders[question_type]

    async def grade_question(self, question: QuestionLike, submitted_answer: Any) -> GradingResult:
        """Grade one answer with the plain per-type grader.

        Args:
            question: QuestionRecord or a storage row accepted by QuestionRecord.from_dict
            submitted_answer: Raw answer payload as submitted

        Returns:
            GradingResult with 0 <= points_earned <= max_points

        Raises:
            UnknownQuestionTypeError: if the question type is not recognised
        """
        question = self._question(question)
        _, _, result = await self._grade(question, submitted_answer, None)
        return result

    async def grade_with_config(self, question: QuestionLike, submitted_answer: Any,
                                config: Union[BaseGradingConfig, Mapping[str, Any], None] = None) -> GradingResult:
        """Grade one answer and apply the grading config on top.

        Args:
            question: QuestionRecord or a storage row
            submitted_answer: Raw answer payload as submitted
            config: Config for this call; a dict is merged over the registry's
                config for the type. Defaults to the registry's config.

        Raises:
            UnknownQuestionTypeError: if the question type is not recognised
        """
        question = self._question(question)
        config = self._config_for(question.type, config)
        _, _, result = await self._grade(question, submitted_answer, config)
        return result

    async def auto_grade_submission(self, submission_id: Any) -> SubmissionGrade:
        """Grade every attempt of a submission and store the results.

        Re-running it re-normalizes and re-grades each attempt and overwrites
        the stored grades, so it is safe to call again.

        Returns:
            SubmissionGrade with totals, percentage and pass flag

        Raises:
            SubmissionNotFoundError: if the submission has no attempts
            UnknownQuestionTypeError: if an attempt's question type is not recognised
        """
        if self.attempt_store is None:
            raise GradingError("No attempt store configured for bulk grading")

        start_time = time.time()
        attempts = list(self.attempt_store.list_attempts(submission_id))
        if not attempts:
            raise SubmissionNotFoundError(submission_id)

        logger.info(f"Auto-grading submission {submission_id}: {len(attempts)} attempts")
        details = []
        total_earned = 0.0
        max_possible = 0.0
        for attempt in attempts:
            question = attempt.question
            config = self._config_for(question.type, None)
            answer, correct, result = await self._grade(question, attempt.submitted_answer, config)
            self.attempt_store.save_grade(submission_id, attempt, answer, correct, result)

            total_earned += result.points_earned
            max_possible += question.points
            details.append(AttemptGrade(
                question_id=attempt.question_id,
                question_type=question.type,
                points_earned=result.points_earned,
                max_points=question.points,
                is_correct=result.is_correct,
                feedback=result.feedback,
            ))

        percentage = percentage_of(total_earned, max_possible)
        passed = percentage >= self.settings.passing_percentage
        logger.info(f"Submission {submission_id} graded: {total_earned:g}/{max_possible:g} "
                    f"({percentage:.1f}%) in {time.time() - start_time:.2f}s")
        return SubmissionGrade(
            submission_id=submission_id,
            total_earned=total_earned,
            max_possible=max_possible,
            percentage=percentage,
            passed=passed,
            details=details,
        )

    @staticmethod
    def _question(question: QuestionLike) -> QuestionRecord:
        if isinstance(question, QuestionRecord):
            return question
        return QuestionRecord.from_dict(question)

    def _config_for(self, question_type: QuestionType,
                    config: Union[BaseGradingConfig, Mapping[str, Any], None]) -> BaseGradingConfig:
        if config is None:
            return self.registry.get(question_type)
        if isinstance(config, BaseGradingConfig):
            return config
        return config_from_dict(question_type, config, self.registry.get(question_type))

    async def _grade(self, question: QuestionRecord, submitted_answer: Any,
                     config: Optional[BaseGradingConfig]
                     ) -> Tuple[NormalizedAnswer, NormalizedCorrectAnswer, GradingResult]:
        grader = self.grader_for(question.type)
        answer = normalize_answer(submitted_answer, question.type)
        correct = normalize_correct_answer(question)

        try:
            result = await grader.grade(question, answer, correct, config)
        except Exception as e:
            logger.error(f"Error grading {question.type.value} question {question.id}: {str(e)}", exc_info=True)
            result = GradingResult.failure(question.points, GRADER_ERROR_FEEDBACK)

        if config is None:
            result = self._clamp(question, result)
        else:
            result = self._apply_config(question, result, config)
        logger.debug(f"Question {question.id} ({question.type.value}): "
                     f"{result.points_earned:g}/{question.points:g} - {result.feedback}")
        return answer, correct, result

    @staticmethod
    def _clamp(question: QuestionRecord, result: GradingResult) -> GradingResult:
        points = min(max(result.points_earned, 0), question.points)
        result.points_earned = points
        result.max_points = question.points
        result.percentage = percentage_of(points, question.points)
        return result

    def _apply_config(self, question: QuestionRecord, result: GradingResult,
                      config: BaseGradingConfig) -> GradingResult:
        """Adjust a base result with strategy, penalties, bonuses and the score floor.

        Penalty and bonus settings are percentages of the question's points,
        except the multiple-choice penalty which is in points per wrong
        selection.
        """
        max_points = question.points
        question_type = question.type
        if result.detailed_feedback is not None:
            breakdown = dict(result.detailed_feedback.breakdown)
        else:
            breakdown = {'base_score': result.points_earned}
        penalties: Dict[str, float] = {}
        bonuses: Dict[str, float] = {}
        points = result.points_earned
        is_correct = result.is_correct

        if (config.strategy == GradingStrategy.ALL_OR_NOTHING and not config.enable_partial_credit
                and not is_correct and points > 0):
            breakdown['partial_credit_removed'] = points
            points = 0

        if question_type == QuestionType.MULTIPLE_CHOICE:
            wrong = breakdown.get('wrong_selections', 0)
            if config.penalty_per_wrong_selection > 0 and not is_correct and wrong:
                penalties['wrong_selections'] = wrong * config.penalty_per_wrong_selection

        elif question_type in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE):
            if config.explanation_required and config.explanation_bonus > 0 and is_correct:
                bonuses['explanation'] = config.explanation_bonus / 100 * max_points

        elif question_type == QuestionType.SHORT_ANSWER:
            found = breakdown.get('keywords_found')
            if found is not None and found < config.minimum_keywords_required and points > 0:
                breakdown['minimum_keywords_required'] = config.minimum_keywords_required
                points = 0

        elif question_type == QuestionType.NUMERICAL:
            if config.units_required and config.units_penalty > 0 and breakdown.get('units_mismatch'):
                penalties['units'] = config.units_penalty / 100 * max_points

        elif question_type == QuestionType.FILL_BLANK:
            if not config.partial_blank_credit and not is_correct and points > 0:
                breakdown['partial_credit_removed'] = points
                points = 0

        elif question_type == QuestionType.MATCHING:
            if not config.allow_partial_matches and not is_correct and points > 0:
                breakdown['partial_credit_removed'] = points
                points = 0
            if config.bonus_for_perfect_order > 0 and is_correct:
                bonuses['perfect_order'] = config.bonus_for_perfect_order / 100 * max_points

        elif question_type == QuestionType.ORDERING:
            kept = breakdown.get('adjacent_pairs_kept', 0)
            pairs = breakdown.get('adjacent_pairs_total', 0)
            if config.adjacency_bonus > 0 and pairs and kept and not is_correct:
                bonuses['adjacency'] = config.adjacency_bonus / 100 * max_points * kept / pairs

        elif question_type == QuestionType.CODING:
            flags = {
                'compilation': (config.compilation_penalty, any(r.compilation_error for r in result.test_results)),
                'runtime': (config.runtime_penalty, any(r.timed_out for r in result.test_results)),
                'memory': (config.memory_penalty, any(r.memory_exceeded for r in result.test_results)),
            }
            for name, (percentage, raised) in flags.items():
                if percentage > 0 and raised:
                    penalties[name] = percentage / 100 * max_points

        total_penalty = sum(penalties.values())
        if config.maximum_penalty_percentage > 0:
            penalty_cap = config.maximum_penalty_percentage / 100 * max_points
            if total_penalty > penalty_cap:
                breakdown['penalty_cap'] = penalty_cap
                total_penalty = penalty_cap
        points = points - total_penalty + sum(bonuses.values())

        floor = config.minimum_score_percentage / 100 * max_points
        negative_allowed = (question_type == QuestionType.MULTIPLE_CHOICE
                            and config.allow_negative_score and floor == 0)
        if not negative_allowed:
            points = max(points, floor, 0)
        points = min(points, max_points)

        return GradingResult.scored(
            is_correct=is_correct,
            points_earned=points,
            max_points=max_points,
            feedback=result.feedback,
            detailed_feedback=DetailedFeedback(
                strategy_used=config.strategy,
                breakdown=breakdown,
                penalties_applied=penalties,
                bonuses_earned=bonuses,
            ),
            test_results=result.test_results,
        )
