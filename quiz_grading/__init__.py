from .config import ConfigRegistry, Settings, default_registry
from .engine import GradingEngine
from .equality import deep_equal
from .exceptions import (
    GradingError,
    SandboxError,
    SandboxUnavailableError,
    SubmissionNotFoundError,
    UnknownQuestionTypeError,
    UnsupportedLanguageError,
)
from .normalizer import normalize_answer, normalize_correct_answer
from .sandbox import CodeExecutor, DockerCodeExecutor, ExecutionRequest, LocalProcessExecutor, compare_outputs
from .types import GradingResult, QuestionRecord, QuestionType, SubmissionGrade

__version__ = '0.1.0'
