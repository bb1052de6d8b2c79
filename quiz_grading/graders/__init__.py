from .base import BaseGrader
from .choice import MultipleChoiceGrader, SingleChoiceGrader, TrueFalseGrader
from .coding import CodingGrader
from .interactive import DropdownGrader, MatchingGrader, OrderingGrader
from .text_input import FillBlankGrader, NumericalGrader, ShortAnswerGrader

__all__ = [
    'BaseGrader',
    'SingleChoiceGrader',
    'MultipleChoiceGrader',
    'TrueFalseGrader',
    'NumericalGrader',
    'FillBlankGrader',
    'ShortAnswerGrader',
    'MatchingGrader',
    'OrderingGrader',
    'DropdownGrader',
    'CodingGrader',
]
