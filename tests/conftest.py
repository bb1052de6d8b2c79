from __future__ import annotations

import asyncio
from typing import Any

import pytest

from quiz_grading.engine import GradingEngine
from quiz_grading.sandbox import CodeExecutor, ExecutionRequest
from quiz_grading.store import InMemoryAttemptStore
from quiz_grading.types import QuestionRecord, QuestionType, TestExecutionResult


def build_question(
    question_type: str,
    *,
    points: float = 10,
    question_data: dict[str, Any] | None = None,
    correct_answer: Any = None,
    question_id: Any = 1,
) -> QuestionRecord:
    """Create a question record the way the storage layer hands it over."""

    return QuestionRecord(
        type=QuestionType(question_type),
        points=points,
        question_data=question_data or {},
        correct_answer=correct_answer,
        id=question_id,
    )


def build_coding_question(
    case_count: int = 4,
    *,
    points: float = 8,
    language: str = "python",
    time_limit: float | None = None,
) -> QuestionRecord:
    test_cases = [
        {"id": f"case_{idx}", "input": str(idx), "expected_output": str(idx * 2)}
        for idx in range(case_count)
    ]
    question_data: dict[str, Any] = {"language": language, "test_cases": test_cases}
    if time_limit is not None:
        question_data["time_limit"] = time_limit
    return build_question("coding", points=points, question_data=question_data)


class FakeExecutor(CodeExecutor):
    """Sandbox double: passes the cases named in ``passing`` and fails the rest."""

    def __init__(
        self,
        passing: set[str] | None = None,
        *,
        flags: dict[str, dict[str, bool]] | None = None,
        error: Exception | None = None,
        delay: float = 0,
        drop: set[str] | None = None,
    ) -> None:
        self.passing = passing or set()
        self.flags = flags or {}
        self.error = error
        self.delay = delay
        self.drop = drop or set()
        self.requests: list[ExecutionRequest] = []

    async def execute_tests(self, request: ExecutionRequest) -> list[TestExecutionResult]:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        results = [
            TestExecutionResult(
                test_case_id=case.id,
                passed=case.id in self.passing,
                output=str(case.expected_output) if case.id in self.passing else "wrong",
                **self.flags.get(case.id, {}),
            )
            for case in request.test_cases
            if case.id not in self.drop
        ]
        # the sandbox may answer in any order
        return list(reversed(results))


@pytest.fixture
def engine() -> GradingEngine:
    return GradingEngine()


@pytest.fixture
def attempt_store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()
