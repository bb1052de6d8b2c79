"""Grade an exported quiz submission from the command line."""
import argparse
import asyncio
import sys
import time

from logging_config import (
    get_logger,
    log_error_with_traceback,
    log_function_entry,
    log_function_exit,
    log_sandbox_operation,
    setup_logging,
)
from quiz_grading.config import ConfigRegistry, Settings
from quiz_grading.engine import GradingEngine
from quiz_grading.exceptions import GradingError
from quiz_grading.report import ReportGenerator
from quiz_grading.sandbox import DockerCodeExecutor, LocalProcessExecutor
from quiz_grading.store import JsonAttemptStore

logger = get_logger('main')


def build_executor(kind, settings):
    if kind == 'docker':
        log_sandbox_operation('SELECT', 'docker', result=', '.join(sorted(settings.docker_images)))
        return DockerCodeExecutor(images=settings.docker_images)
    if kind == 'local':
        log_sandbox_operation('SELECT', 'local python subprocess')
        return LocalProcessExecutor()
    log_sandbox_operation('SELECT', 'none (coding questions will not be executed)')
    return None


def build_parser():
    parser = argparse.ArgumentParser(prog='grade_cli', description=__doc__)
    parser.add_argument('submission', help='Submission export JSON file')
    parser.add_argument('--output-dir', default='./reports', help='Directory for generated reports')
    parser.add_argument('--config', default=None, help='JSON file with per-question-type grading config')
    parser.add_argument('--executor', choices=['docker', 'local', 'none'], default='docker',
                        help='Sandbox used for coding questions')
    parser.add_argument('--log-level', default=None, help='DEBUG, INFO, WARNING, ERROR or CRITICAL')
    parser.add_argument('--no-reports', action='store_true', help='Only print the aggregate grade')
    return parser


async def grade_file(args, settings):
    log_function_entry(logger, 'grade_file', submission=args.submission, executor=args.executor)
    start_time = time.time()

    store = JsonAttemptStore(args.submission)
    registry = ConfigRegistry.from_file(args.config) if args.config else None
    engine = GradingEngine(
        executor=build_executor(args.executor, settings),
        registry=registry,
        attempt_store=store,
        settings=settings,
    )
    submission_grade = await engine.auto_grade_submission(store.submission_id)

    log_function_exit(logger, 'grade_file', result=f"{submission_grade.percentage:.1f}%",
                      execution_time=time.time() - start_time)
    return submission_grade


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    log_files = setup_logging(log_level=args.log_level or settings.log_level, log_dir=settings.log_dir)
    logger.debug(f"Log files: {log_files}")

    try:
        submission_grade = asyncio.run(grade_file(args, settings))
    except (GradingError, OSError, ValueError) as e:
        log_error_with_traceback(logger, e, context=f"grading {args.submission}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for detail in submission_grade.details:
        print(f"{str(detail.question_id):>10}  {detail.question_type.value:<16} "
              f"{detail.points_earned:>6g}/{detail.max_points:<6g} {detail.feedback}")
    print(f"Total: {submission_grade.total_earned:g}/{submission_grade.max_possible:g} "
          f"({submission_grade.percentage:.1f}%) - {'PASSED' if submission_grade.passed else 'FAILED'}")

    if not args.no_reports:
        generator = ReportGenerator(args.output_dir)
        csv_path = generator.generate_grade_csv(submission_grade)
        html_path = generator.generate_submission_html(submission_grade)
        summary = generator.generate_summary_json(submission_grade)
        print(f"Reports: {csv_path}, {html_path}, {summary['path']}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
