"""
Logging Configuration for the Quiz Grader

Sets up console and file logging for the grading engine, the code sandbox
and answer normalization.
"""

import logging
import logging.handlers
import sys
import traceback
from datetime import datetime
from pathlib import Path

CONCERN_LOGGERS = {
    'grading': 'grading',
    'sandbox': 'sandbox_operations',
    'normalization': 'normalization',
}


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        'DEBUG': '\033[36m',  # Cyan
        'INFO': '\033[32m',  # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',  # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        if hasattr(record, 'no_color'):
            return super().format(record)

        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        # keep the record intact for the file handlers
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{reset}"

        return super().format(record)


def setup_logging(log_level='INFO', log_dir='logs'):
    """
    Set up logging for the grader.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory to store log files

    Returns:
        Dict of log file paths keyed by log name
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    console_handler.setFormatter(ColoredFormatter(
        '%(asctime)s | %(name)-20s | %(levelname)-8s | %(message)s',
        datefmt='%H:%M:%S'
    ))
    root_logger.addHandler(console_handler)

    file_formatter = logging.Formatter(
        '%(asctime)s | %(name)-25s | %(levelname)-8s | %(funcName)-15s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    main_log_file = log_path / f'quiz_grader_{timestamp}.log'
    file_handler = logging.handlers.RotatingFileHandler(
        main_log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    error_log_file = log_path / f'errors_{timestamp}.log'
    error_handler = logging.FileHandler(error_log_file)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_formatter)
    root_logger.addHandler(error_handler)

    paths = {
        'main_log': str(main_log_file),
        'error_log': str(error_log_file),
    }

    for key, logger_name in CONCERN_LOGGERS.items():
        concern_file = log_path / f'{key}_{timestamp}.log'
        handler = logging.FileHandler(concern_file)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(file_formatter)

        concern_logger = logging.getLogger(logger_name)
        for existing in list(concern_logger.handlers):
            if getattr(existing, 'quiz_grader_handler', False):
                concern_logger.removeHandler(existing)
                existing.close()
        handler.quiz_grader_handler = True
        concern_logger.addHandler(handler)
        concern_logger.setLevel(logging.DEBUG)
        paths[f'{key}_log'] = str(concern_file)

    main_logger = logging.getLogger('main')
    main_logger.info("=" * 60)
    main_logger.info("Quiz Grader Starting Up")
    main_logger.info(f"Log Level: {log_level}")
    for name, path in paths.items():
        main_logger.info(f"{name.replace('_', ' ').title()} File: {path}")
    main_logger.info("=" * 60)

    return paths


def get_logger(name):
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def log_function_entry(logger, func_name, **kwargs):
    """Log function entry with parameters."""
    params = ', '.join([f"{k}={v}" for k, v in kwargs.items()])
    logger.debug(f"ENTRY: {func_name}({params})")


def log_function_exit(logger, func_name, result=None, execution_time=None):
    """Log function exit with result."""
    msg = f"EXIT: {func_name}"
    if execution_time:
        msg += f" (took {execution_time:.2f}s)"
    if result is not None:
        if isinstance(result, (list, dict)):
            msg += f" -> {type(result).__name__}(len={len(result)})"
        else:
            msg += f" -> {result}"
    logger.debug(msg)


def log_error_with_traceback(logger, error, context=""):
    """Log error with full traceback."""
    logger.error(f"ERROR in {context}: {str(error)}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")


def log_sandbox_operation(operation, detail, result=None, error=None):
    """Log a sandbox operation to the sandbox_operations logger."""
    sandbox_logger = logging.getLogger('sandbox_operations')
    sandbox_logger.info(f"SANDBOX {operation}: {detail}")
    if error:
        sandbox_logger.error(f"SANDBOX ERROR: {error}")
    else:
        sandbox_logger.debug(f"SANDBOX RESULT: {result[:200] if result else 'No output'}")


# Suppress noisy loggers
logging.getLogger('urllib3').setLevel(logging.WARNING)
logging.getLogger('requests').setLevel(logging.WARNING)
logging.getLogger('docker').setLevel(logging.WARNING)
