import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..coercion import round_points, to_float, to_int
from ..config import CodingGradingConfig, Settings
from ..exceptions import SandboxError
from ..normalizer import question_data_of
from ..sandbox import CodeExecutor, ExecutionRequest
from ..types import DetailedFeedback, GradingResult, TestCase, TestExecutionResult
from .base import BaseGrader

logger = logging.getLogger('grading')

NO_TEST_CASES = "No test cases defined for this coding question. Manual grading required."


class CodingGrader(BaseGrader):
    """Grader for coding questions.

    The submitted code is run against the question's test cases by a
    CodeExecutor. The score is the share of passed cases (weighted when the
    config asks for custom weights); the sandbox gets the summed time limits
    plus a grace period before every case is failed as timed out.
    """

    def __init__(self, executor: Optional[CodeExecutor] = None, settings: Optional[Settings] = None):
        self.executor = executor
        self.settings = settings or Settings()

    async def grade(self, question, answer, correct, config=None):
        payload = self.answer_payload(answer)
        code = payload.get('code')
        if not isinstance(code, str):
            return GradingResult.failure(question.points, "Invalid answer format - code is required")
        if not code.strip():
            return GradingResult.failure(question.points, "No code submitted")

        question_data = question_data_of(question)
        request = self.build_request(question_data, code)
        if not request.test_cases:
            return GradingResult.failure(question.points, NO_TEST_CASES)
        if self.executor is None:
            return GradingResult.failure(question.points, "Code execution failed: no code executor configured")

        try:
            results = await self._execute(request)
        except SandboxError as e:
            logger.error(f"Sandbox error while grading question {question.id}: {str(e)}")
            return GradingResult.failure(question.points, f"Code execution failed: {str(e)}")
        except Exception as e:
            logger.error(f"Code executor failed while grading question {question.id}: {str(e)}", exc_info=True)
            return GradingResult.failure(question.points, f"Code execution failed: {str(e)}")

        return self._score(question, request.test_cases, results, config)

    def build_request(self, question_data: Dict[str, Any], code: str) -> ExecutionRequest:
        """Build the sandbox request; cases inherit the question's limits."""
        time_limit = to_float(question_data.get('time_limit')) or self.settings.default_time_limit
        memory_limit = to_int(question_data.get('memory_limit')) or self.settings.default_memory_limit
        language = question_data.get('language')
        if not isinstance(language, str) or not language.strip():
            language = self.settings.default_language

        test_cases = []
        raw_cases = question_data.get('test_cases')
        if isinstance(raw_cases, list):
            for index, case in enumerate(raw_cases):
                if not isinstance(case, dict):
                    continue
                test_cases.append(TestCase(
                    id=str(case.get('id') or f"test_{index}"),
                    input=case.get('input'),
                    expected_output=case.get('expected_output'),
                    is_hidden=case.get('is_hidden') is True,
                    points=to_float(case.get('points')) or 1,
                    time_limit=to_float(case.get('time_limit')) or time_limit,
                    memory_limit=to_int(case.get('memory_limit')) or memory_limit,
                ))

        return ExecutionRequest(
            language=language,
            code=code,
            test_cases=test_cases,
            time_limit=time_limit,
            memory_limit=memory_limit,
        )

    async def _execute(self, request: ExecutionRequest) -> List[TestExecutionResult]:
        deadline = sum(case.time_limit for case in request.test_cases) + self.settings.sandbox_grace_seconds
        logger.info(f"Executing {len(request.test_cases)} test cases in {request.language} "
                    f"(deadline {deadline:g}s)")
        try:
            return await asyncio.wait_for(self.executor.execute_tests(request), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(f"Sandbox did not answer within {deadline:g}s, failing all test cases")
            return [
                TestExecutionResult(
                    test_case_id=case.id,
                    passed=False,
                    error=f"Execution timeout ({deadline:g} seconds)",
                    timed_out=True,
                )
                for case in request.test_cases
            ]

    def _score(self, question, test_cases: List[TestCase], results: List[TestExecutionResult],
               config: Optional[CodingGradingConfig]) -> GradingResult:
        by_id = {}
        for result in results:
            by_id.setdefault(str(result.test_case_id), result)

        ordered_results = []
        for case in test_cases:
            result = by_id.get(case.id)
            if result is None:
                result = TestExecutionResult(test_case_id=case.id, passed=False, error="No result returned")
            ordered_results.append(result)

        total_tests = len(test_cases)
        passed_tests = sum(1 for result in ordered_results if result.passed)

        weights = self._weights(test_cases, config)
        earned_weight = sum(weight for weight, result in zip(weights, ordered_results) if result.passed)
        total_weight = sum(weights)
        if total_weight > 0:
            points = round_points(earned_weight / total_weight * question.points)
        else:
            points = 0
        points = min(max(points, 0), question.points)

        feedback = f"Passed {passed_tests}/{total_tests} test cases"
        if passed_tests == total_tests:
            feedback += " - Excellent work!"
        elif passed_tests > 0:
            feedback += " - Good progress, review failed test cases"
        else:
            feedback += " - All tests failed, check your implementation"

        breakdown = {
            'tests_passed': passed_tests,
            'tests_total': total_tests,
            'base_score': points,
        }
        return GradingResult.scored(
            is_correct=passed_tests == total_tests,
            points_earned=points,
            max_points=question.points,
            feedback=feedback,
            detailed_feedback=DetailedFeedback(breakdown=breakdown),
            test_results=ordered_results,
        )

    @staticmethod
    def _weights(test_cases: List[TestCase], config: Optional[CodingGradingConfig]) -> List[float]:
        if config is None or config.test_case_weights != 'custom' or not config.custom_weights:
            return [1.0] * len(test_cases)
        weights = []
        for case in test_cases:
            weight = to_float(config.custom_weights.get(case.id))
            weights.append(max(weight, 0.0) if weight is not None else 1.0)
        return weights
