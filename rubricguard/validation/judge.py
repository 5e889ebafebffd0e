"""
Judgment service implementations.

A judge takes the submission, the criterion, the proposed score and the
grader's justification and returns a ValidationJudgment, asynchronously.
The LLM-backed judge is used when an API key is configured; otherwise the
deterministic StubJudge keeps the pipeline usable offline.
"""

import asyncio
import logging
import re
from typing import Protocol

from rubricguard.config import Settings, get_settings
from rubricguard.models import JudgmentStatus, RubricCriterion, ValidationJudgment
from rubricguard.validation.llm_client import LLMClient
from rubricguard.validation.parser import JudgmentParser
from rubricguard.validation.prompt_builder import PromptBuilder

LOG = logging.getLogger(__name__)


class Judge(Protocol):
    """Anything that can judge a justification."""

    async def judge(
        self,
        submission_text: str,
        criterion: RubricCriterion,
        score: float,
        explanation: str,
    ) -> ValidationJudgment: ...


class LLMJudge:
    """Judge backed by an OpenAI-compatible chat model."""

    def __init__(self, settings: Settings | None = None, client: LLMClient | None = None):
        self._settings = settings or get_settings()
        self._client = client or LLMClient(self._settings)
        self._parser = JudgmentParser()

    async def judge(
        self,
        submission_text: str,
        criterion: RubricCriterion,
        score: float,
        explanation: str,
    ) -> ValidationJudgment:
        """
        Judge one justification.

        Raises:
            LLMError: If the service call fails.
            JudgmentParseError: If the response is malformed.
        """
        user_prompt = PromptBuilder.build_judgment_prompt(submission_text, criterion, score, explanation)
        raw_response = await self._client.generate(
            system_prompt=PromptBuilder.get_system_prompt(),
            user_prompt=user_prompt,
        )
        judgment = self._parser.parse(raw_response)
        LOG.debug("Judged '%s' at %g: %s", criterion.name, score, judgment.status.value)
        return judgment

    async def health_check(self) -> bool:
        return await self._client.health_check()


class StubJudge:
    """
    Deterministic local stand-in for the judgment service.

    A high score justified as "poor" is not supported, a low score justified
    as "excellent" is only partially supported, and everything else is
    supported.
    """

    HIGH_SCORE_RATIO = 0.8
    LOW_SCORE_RATIO = 0.6

    def __init__(self, latency: float = 0.0):
        """
        Args:
            latency: Seconds to wait before answering, to mimic a remote call.
        """
        self.latency = latency

    async def judge(
        self,
        submission_text: str,
        criterion: RubricCriterion,
        score: float,
        explanation: str,
    ) -> ValidationJudgment:
        if self.latency:
            await asyncio.sleep(self.latency)

        ratio = score / criterion.max_points
        words = explanation.lower()
        status = JudgmentStatus.SUPPORTED
        if ratio < self.LOW_SCORE_RATIO and "excellent" in words:
            status = JudgmentStatus.PARTIALLY_SUPPORTED
        if ratio > self.HIGH_SCORE_RATIO and "poor" in words:
            status = JudgmentStatus.NOT_SUPPORTED

        return ValidationJudgment(
            status=status,
            referenced_excerpt=self._first_sentence(submission_text),
            reasoning=self._reasoning(status, criterion),
            suggested_refinement=(
                f"Quote the passage of the submission that drives your "
                f"'{criterion.name}' score to make the justification verifiable."
            ),
        )

    async def health_check(self) -> bool:
        return True

    @staticmethod
    def _first_sentence(text: str) -> str:
        match = re.search(r"[^.!?]*[.!?]", text.strip())
        return match.group(0).strip() if match else text.strip()

    @staticmethod
    def _reasoning(status: JudgmentStatus, criterion: RubricCriterion) -> str:
        if status is JudgmentStatus.NOT_SUPPORTED:
            return f"The justification describes weak work but the {criterion.name} score is high."
        if status is JudgmentStatus.PARTIALLY_SUPPORTED:
            return f"The justification praises the work but the {criterion.name} score is low."
        return "The justification aligns with the submission text and the score."


def create_judge(settings: Settings | None = None) -> LLMJudge | StubJudge:
    """
    Create the judge for the current environment.

    Returns:
        An LLMJudge when an API key is configured, otherwise a StubJudge.
    """
    settings = settings or get_settings()
    if settings.has_live_judge:
        return LLMJudge(settings)

    LOG.warning("No judgment API key configured. Using the local stub judge.")
    return StubJudge()
