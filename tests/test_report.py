import json
import logging
import os

import pandas as pd
import pytest

import grade_cli
from logging_config import CONCERN_LOGGERS
from quiz_grading.report import ReportGenerator
from quiz_grading.types import AttemptGrade, QuestionType, SubmissionGrade


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name in CONCERN_LOGGERS.values():
        concern_logger = logging.getLogger(name)
        for handler in list(concern_logger.handlers):
            if getattr(handler, "quiz_grader_handler", False):
                concern_logger.removeHandler(handler)
                handler.close()


def build_submission_grade():
    return SubmissionGrade(
        submission_id="sub/42",
        total_earned=12,
        max_possible=20,
        percentage=60.0,
        passed=True,
        details=[
            AttemptGrade(1, QuestionType.SINGLE_CHOICE, 10, 10, True, "Correct!"),
            AttemptGrade(2, QuestionType.SHORT_ANSWER, 2, 10, False, "Found 1/5 key concepts <b>"),
        ],
    )


def test_grade_csv(tmp_path):
    generator = ReportGenerator(str(tmp_path))

    path = generator.generate_grade_csv(build_submission_grade())

    assert os.path.basename(path).startswith("sub_42_grades_")
    frame = pd.read_csv(path)
    assert list(frame["Question Type"]) == ["single_choice", "short_answer"]
    assert list(frame["Points Earned"]) == [10, 2]


def test_submission_html_escapes_feedback(tmp_path):
    generator = ReportGenerator(str(tmp_path))

    path = generator.generate_submission_html(build_submission_grade())

    with open(path, encoding="utf-8") as f:
        html = f.read()
    assert "Grade Report - Submission sub/42" in html
    assert "Passed" in html
    assert "&lt;b&gt;" in html


def test_summary_json_totals_by_type(tmp_path):
    generator = ReportGenerator(str(tmp_path))

    summary = generator.generate_summary_json(build_submission_grade())

    with open(summary["path"], encoding="utf-8") as f:
        written = json.load(f)
    assert written["by_question_type"]["short_answer"] == {"earned": 2, "possible": 10, "count": 1}
    assert written["details"][0]["question_type"] == "single_choice"


def test_cli_grades_submission_file(tmp_path, monkeypatch, capsys):
    submission = tmp_path / "submission.json"
    submission.write_text(
        json.dumps(
            {
                "submission_id": "cli-1",
                "attempts": [
                    {
                        "question_id": 1,
                        "question": {"question_type": "single_choice", "points": 4, "question_data": {"correct_option_index": 0}},
                        "submitted_answer": {"selected_option_index": 0},
                    }
                ],
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("QUIZ_GRADER_LOG_DIR", str(tmp_path / "logs"))

    exit_code = grade_cli.main([str(submission), "--executor", "none", "--output-dir", str(tmp_path / "reports")])

    assert exit_code == 0
    assert "Total: 4/4 (100.0%) - PASSED" in capsys.readouterr().out
    assert len(os.listdir(tmp_path / "reports")) == 3


def test_cli_reports_missing_file(tmp_path, monkeypatch):
    monkeypatch.setenv("QUIZ_GRADER_LOG_DIR", str(tmp_path / "logs"))

    assert grade_cli.main([str(tmp_path / "absent.json"), "--no-reports"]) == 1
