import datetime
import json
import logging
import os
import re
from typing import Any, Dict

import jinja2
import pandas as pd

from .types import SubmissionGrade

logger = logging.getLogger('grading')

FALLBACK_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <title>{{ title }}</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; }
        h1 { color: #333; }
        table { border-collapse: collapse; width: 100%; margin-top: 20px; }
        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
        tr:nth-child(even) { background-color: #f2f2f2; }
        th { background-color: #4CAF50; color: white; }
        .incorrect { background-color: #FFDDDD; }
        .summary { margin: 20px 0; padding: 10px; background-color: #f5f5f5; border-left: 5px solid #4CAF50; }
    </style>
</head>
<body>
    <h1>{{ title }}</h1>
    <div class="summary">
        <p><strong>Date:</strong> {{ date }}</p>
        <p><strong>Score:</strong> {{ grade.total_earned }} / {{ grade.max_possible }}</p>
        <p><strong>Percentage:</strong> {{ grade.percentage | round(2) }}%</p>
        <p><strong>Result:</strong> {{ "Passed" if grade.passed else "Failed" }}</p>
    </div>
    <table>
        <thead>
            <tr><th>Question</th><th>Type</th><th>Points</th><th>Feedback</th></tr>
        </thead>
        <tbody>
            {% for detail in grade.details %}
            <tr {% if not detail.is_correct %}class="incorrect"{% endif %}>
                <td>{{ detail.question_id }}</td>
                <td>{{ detail.question_type.value }}</td>
                <td>{{ detail.points_earned }} / {{ detail.max_points }}</td>
                <td>{{ detail.feedback }}</td>
            </tr>
            {% endfor %}
        </tbody>
    </table>
</body>
</html>
"""


def _file_stem(submission_id: Any) -> str:
    return re.sub(r'[^\w.-]', '_', str(submission_id))


class ReportGenerator:
    """Write grade reports for a graded submission."""

    def __init__(self, output_dir: str = './reports'):
        """Initialize the report generator.

        Args:
            output_dir: Directory to save reports
        """
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)

        self.jinja_env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(os.path.join(os.path.dirname(__file__), 'templates')),
            autoescape=jinja2.select_autoescape(['html', 'xml'])
        )

    def _filepath(self, submission_grade: SubmissionGrade, kind: str, extension: str) -> str:
        timestamp = datetime.datetime.now().strftime('%Y%m%d_%H%M%S')
        filename = f"{_file_stem(submission_grade.submission_id)}_{kind}_{timestamp}.{extension}"
        return os.path.join(self.output_dir, filename)

    def generate_grade_csv(self, submission_grade: SubmissionGrade) -> str:
        """Generate a CSV file with one row per graded question.

        Returns:
            Path to the generated CSV file
        """
        filepath = self._filepath(submission_grade, 'grades', 'csv')
        rows = [
            {
                'Question ID': detail.question_id,
                'Question Type': detail.question_type.value,
                'Points Earned': detail.points_earned,
                'Max Points': detail.max_points,
                'Correct': detail.is_correct,
                'Feedback': detail.feedback,
            }
            for detail in submission_grade.details
        ]
        columns = ['Question ID', 'Question Type', 'Points Earned', 'Max Points', 'Correct', 'Feedback']
        pd.DataFrame(rows, columns=columns).to_csv(filepath, index=False)
        logger.info(f"Grade CSV written to {filepath}")
        return filepath

    def generate_submission_html(self, submission_grade: SubmissionGrade) -> str:
        """Generate an HTML summary of a graded submission.

        Returns:
            Path to the generated HTML file
        """
        filepath = self._filepath(submission_grade, 'report', 'html')

        try:
            template = self.jinja_env.get_template('submission_report.html')
        except jinja2.exceptions.TemplateNotFound:
            template = jinja2.Environment(autoescape=True).from_string(FALLBACK_TEMPLATE)

        html_content = template.render(
            title=f"Grade Report - Submission {submission_grade.submission_id}",
            date=datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            grade=submission_grade,
        )

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(html_content)

        logger.info(f"HTML report written to {filepath}")
        return filepath

    def generate_summary_json(self, submission_grade: SubmissionGrade) -> Dict[str, Any]:
        """Write the submission grade and per-type totals as JSON.

        Returns:
            Summary data, with the file path under ``'path'``
        """
        by_type: Dict[str, Dict[str, float]] = {}
        for detail in submission_grade.details:
            totals = by_type.setdefault(detail.question_type.value, {'earned': 0, 'possible': 0, 'count': 0})
            totals['earned'] += detail.points_earned
            totals['possible'] += detail.max_points
            totals['count'] += 1

        summary = dict(submission_grade.to_dict())
        summary['date'] = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        summary['by_question_type'] = by_type

        filepath = self._filepath(submission_grade, 'summary', 'json')
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(summary, f, indent=2, default=str)

        summary['path'] = filepath
        return summary
