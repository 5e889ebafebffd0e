"""
Validation Module.

Debounced dispatch of grader justifications to the judgment service.
"""

from rubricguard.validation.debounce import DebounceTimer
from rubricguard.validation.dispatcher import (
    CriterionValidator,
    ValidationDispatcher,
    ValidationRequest,
    parse_score,
)
from rubricguard.validation.judge import Judge, LLMJudge, StubJudge, create_judge
from rubricguard.validation.llm_client import LLMClient, LLMError
from rubricguard.validation.parser import JudgmentParseError, JudgmentParser
from rubricguard.validation.prompt_builder import PromptBuilder

__all__ = [
    "CriterionValidator",
    "DebounceTimer",
    "Judge",
    "JudgmentParseError",
    "JudgmentParser",
    "LLMClient",
    "LLMError",
    "LLMJudge",
    "PromptBuilder",
    "StubJudge",
    "ValidationDispatcher",
    "ValidationRequest",
    "create_judge",
    "parse_score",
]
