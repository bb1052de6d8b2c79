class GradingError(Exception):
    """Base class for errors raised by the grading engine."""


class UnknownQuestionTypeError(GradingError, ValueError):
    """Raised when a question carries a type tag the engine does not know."""

    def __init__(self, question_type):
        self.question_type = question_type
        super().__init__(f"Unknown question type: {question_type!r}")


class SubmissionNotFoundError(GradingError, LookupError):
    """Raised when a submission has no attempts to grade."""

    def __init__(self, submission_id):
        self.submission_id = submission_id
        super().__init__(f"No attempts found for submission {submission_id}")


class SandboxError(GradingError):
    """Base class for code-execution sandbox failures."""


class SandboxUnavailableError(SandboxError):
    """Raised when the sandbox backend cannot be reached."""


class UnsupportedLanguageError(SandboxError):
    """Raised when a sandbox cannot run the requested language."""

    def __init__(self, language: str):
        self.language = language
        super().__init__(f"Language '{language}' is not supported yet")
