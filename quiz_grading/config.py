"""Grading configuration.

Two layers live here:

* per-question-type grading configs (strategy, floors, penalties, bonuses)
  collected in a ConfigRegistry that is handed to the engine, and
* runtime Settings read from the environment (passing score, sandbox
  images and limits, logging).
"""
import json
import logging
import os
import pathlib
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional

from .types import GradingStrategy, QuestionType

logger = logging.getLogger('grading')


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class BaseGradingConfig:
    strategy: GradingStrategy = GradingStrategy.ALL_OR_NOTHING
    enable_partial_credit: bool = False
    # percentages of the question's points
    minimum_score_percentage: float = 0
    maximum_penalty_percentage: float = 0


@dataclass(frozen=True)
class ChoiceGradingConfig(BaseGradingConfig):
    """single_choice and true_false."""
    explanation_required: bool = False
    explanation_bonus: float = 0


@dataclass(frozen=True)
class MultipleChoiceGradingConfig(BaseGradingConfig):
    strategy: GradingStrategy = GradingStrategy.PARTIAL_CREDIT
    enable_partial_credit: bool = True
    maximum_penalty_percentage: float = 50
    # absolute points per wrong option selected
    penalty_per_wrong_selection: float = 0.5
    allow_negative_score: bool = False


@dataclass(frozen=True)
class ShortAnswerGradingConfig(BaseGradingConfig):
    strategy: GradingStrategy = GradingStrategy.PARTIAL_CREDIT
    enable_partial_credit: bool = True
    keyword_matching_mode: str = 'partial'
    minimum_keywords_required: int = 1
    case_sensitive: bool = False
    fuzzy_threshold: float = 0.8


@dataclass(frozen=True)
class NumericalGradingConfig(BaseGradingConfig):
    tolerance_mode: str = 'absolute'
    absolute_tolerance: Optional[float] = None
    percentage_tolerance: Optional[float] = None
    acceptable_range: Optional[Dict[str, float]] = None
    units_required: bool = False
    units_penalty: float = 0


@dataclass(frozen=True)
class FillBlankGradingConfig(BaseGradingConfig):
    strategy: GradingStrategy = GradingStrategy.PARTIAL_CREDIT
    enable_partial_credit: bool = True
    blank_independence: bool = True
    partial_blank_credit: bool = True


@dataclass(frozen=True)
class MatchingGradingConfig(BaseGradingConfig):
    strategy: GradingStrategy = GradingStrategy.PARTIAL_CREDIT
    enable_partial_credit: bool = True
    allow_partial_matches: bool = True
    bonus_for_perfect_order: float = 0


@dataclass(frozen=True)
class OrderingGradingConfig(BaseGradingConfig):
    strategy: GradingStrategy = GradingStrategy.PARTIAL_CREDIT
    enable_partial_credit: bool = True
    position_weight_mode: str = 'equal'
    adjacency_bonus: float = 0


@dataclass(frozen=True)
class CodingGradingConfig(BaseGradingConfig):
    strategy: GradingStrategy = GradingStrategy.WEIGHTED_PARTIAL
    enable_partial_credit: bool = True
    maximum_penalty_percentage: float = 100
    compilation_penalty: float = 20
    test_case_weights: str = 'equal'
    custom_weights: Optional[Dict[str, float]] = None
    runtime_penalty: float = 10
    memory_penalty: float = 5


CONFIG_TYPES = {
    QuestionType.SINGLE_CHOICE: ChoiceGradingConfig,
    QuestionType.TRUE_FALSE: ChoiceGradingConfig,
    QuestionType.MULTIPLE_CHOICE: MultipleChoiceGradingConfig,
    QuestionType.SHORT_ANSWER: ShortAnswerGradingConfig,
    QuestionType.NUMERICAL: NumericalGradingConfig,
    QuestionType.FILL_BLANK: FillBlankGradingConfig,
    QuestionType.MATCHING: MatchingGradingConfig,
    QuestionType.ORDERING: OrderingGradingConfig,
    QuestionType.DROPDOWN: BaseGradingConfig,
    QuestionType.CODING: CodingGradingConfig,
}


def config_from_dict(question_type: Any, values: Mapping[str, Any],
                     base: Optional[BaseGradingConfig] = None) -> BaseGradingConfig:
    """Build a config for ``question_type`` from plain values.

    Unknown keys are ignored with a warning; missing keys keep the values of
    ``base`` (or the type's defaults).
    """
    question_type = QuestionType.parse(question_type)
    config_cls = CONFIG_TYPES[question_type]
    known = {f.name for f in fields(config_cls)}
    values = dict(values)
    unknown = sorted(set(values) - known)
    if unknown:
        logger.warning(f"Ignoring unknown {question_type.value} config keys: {unknown}")
    kwargs = {key: value for key, value in values.items() if key in known}
    if 'strategy' in kwargs:
        kwargs['strategy'] = GradingStrategy(kwargs['strategy'])
    return replace(base or config_cls(), **kwargs)


class ConfigRegistry:
    """Grading config per question type, passed to the engine at construction."""

    def __init__(self, configs: Optional[Mapping[QuestionType, BaseGradingConfig]] = None):
        self._configs = {question_type: config_cls() for question_type, config_cls in CONFIG_TYPES.items()}
        for question_type, config in (configs or {}).items():
            self._configs[QuestionType.parse(question_type)] = config

    def get(self, question_type: Any) -> BaseGradingConfig:
        return self._configs[QuestionType.parse(question_type)]

    def with_override(self, question_type: Any, config: BaseGradingConfig) -> 'ConfigRegistry':
        """Return a new registry with one type's config replaced."""
        configs = dict(self._configs)
        configs[QuestionType.parse(question_type)] = config
        return ConfigRegistry(configs)

    @classmethod
    def from_dict(cls, overrides: Mapping[str, Mapping[str, Any]]) -> 'ConfigRegistry':
        registry = cls()
        for question_type, values in overrides.items():
            registry = registry.with_override(
                question_type, config_from_dict(question_type, values, registry.get(question_type)))
        return registry

    @classmethod
    def from_file(cls, path) -> 'ConfigRegistry':
        """Load per-type overrides from a JSON file keyed by question type."""
        overrides = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
        logger.info(f"Loaded grading config overrides for: {sorted(overrides)}")
        return cls.from_dict(overrides)


def default_registry() -> ConfigRegistry:
    return ConfigRegistry()


DEFAULT_IMAGES = {
    'python': 'python:3.11-slim',
    'javascript': 'node:20-slim',
    'c': 'gcc:13',
    'cpp': 'gcc:13',
}


@dataclass(frozen=True)
class Settings:
    passing_percentage: float = 60
    default_language: str = 'javascript'
    default_time_limit: float = 5
    default_memory_limit: int = 256
    sandbox_grace_seconds: float = 2
    docker_images: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_IMAGES))
    log_level: str = 'INFO'
    log_dir: str = 'logs'

    @classmethod
    def from_env(cls) -> 'Settings':
        images = dict(DEFAULT_IMAGES)
        for language in images:
            images[language] = _env_str(f"QUIZ_GRADER_IMAGE_{language.upper()}", images[language])
        return cls(
            passing_percentage=_env_float("QUIZ_GRADER_PASSING_PERCENTAGE", cls.passing_percentage),
            default_language=_env_str("QUIZ_GRADER_DEFAULT_LANGUAGE", cls.default_language),
            default_time_limit=_env_float("QUIZ_GRADER_TIME_LIMIT", cls.default_time_limit),
            default_memory_limit=_env_int("QUIZ_GRADER_MEMORY_LIMIT", cls.default_memory_limit),
            sandbox_grace_seconds=_env_float("QUIZ_GRADER_SANDBOX_GRACE", cls.sandbox_grace_seconds),
            docker_images=images,
            log_level=_env_str("QUIZ_GRADER_LOG_LEVEL", cls.log_level),
            log_dir=_env_str("QUIZ_GRADER_LOG_DIR", cls.log_dir),
        )
