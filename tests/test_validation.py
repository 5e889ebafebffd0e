"""
Unit tests for the judgment service.

Tests prompt builder, response parser, LLM client and judges with
mocked LLM responses.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rubricguard.config import Settings
from rubricguard.models import JudgmentStatus, RubricCriterion, Submission, ValidationJudgment
from rubricguard.validation import (
    JudgmentParseError,
    JudgmentParser,
    LLMClient,
    LLMError,
    LLMJudge,
    PromptBuilder,
    StubJudge,
    create_judge,
)


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def test_get_system_prompt(self) -> None:
        """Test system prompt contains the output rules."""
        prompt = PromptBuilder.get_system_prompt()

        assert "RubricGuard" in prompt
        assert "exact quote" in prompt
        assert "JSON" in prompt

    def test_build_judgment_prompt(
        self, submission: Submission, criterion_25: RubricCriterion
    ) -> None:
        prompt = PromptBuilder.build_judgment_prompt(
            submission.content, criterion_25, 20, "The thesis is clear."
        )

        assert submission.content in prompt
        assert criterion_25.name in prompt
        assert criterion_25.description in prompt
        assert "Score: 20 / 25" in prompt
        assert "The thesis is clear." in prompt

    def test_prompt_lists_every_status(self, criterion_25: RubricCriterion) -> None:
        prompt = PromptBuilder.build_judgment_prompt("text", criterion_25, 1, "explanation")

        for status in JudgmentStatus:
            assert f'"{status.value}"' in prompt
        assert '"referencedExcerpt"' in prompt
        assert '"suggestedRefinement"' in prompt


class TestJudgmentParser:
    """Tests for JudgmentParser."""

    def test_parse_valid_response(self, sample_llm_response: str) -> None:
        judgment = JudgmentParser().parse(sample_llm_response)

        assert isinstance(judgment, ValidationJudgment)
        assert judgment.status is JudgmentStatus.PARTIALLY_SUPPORTED
        assert judgment.referenced_excerpt.startswith("Recurring revenue")
        assert judgment.suggested_refinement == "Mention the stability argument explicitly."

    def test_parse_response_in_markdown_block(self, sample_llm_response: str) -> None:
        judgment = JudgmentParser().parse(f"Here you go:\n```json\n{sample_llm_response}\n```")

        assert judgment.status is JudgmentStatus.PARTIALLY_SUPPORTED

    def test_parse_response_with_surrounding_text(self, sample_llm_response: str) -> None:
        judgment = JudgmentParser().parse(f"Verdict: {sample_llm_response} Hope this helps.")

        assert judgment.status is JudgmentStatus.PARTIALLY_SUPPORTED

    def test_braces_inside_strings(self) -> None:
        response = json.dumps(
            {
                "status": "Supported",
                "referencedExcerpt": "a {curly} quote",
                "reasoning": "Fine.",
                "suggestedRefinement": "",
            }
        )

        judgment = JudgmentParser().parse(f"prefix {response}")

        assert judgment.referenced_excerpt == "a {curly} quote"

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("supported", JudgmentStatus.SUPPORTED),
            ("NOT_SUPPORTED", JudgmentStatus.NOT_SUPPORTED),
            ("partially-supported", JudgmentStatus.PARTIALLY_SUPPORTED),
        ],
    )
    def test_status_normalization(self, raw: str, expected: JudgmentStatus) -> None:
        response = json.dumps(
            {"status": raw, "referencedExcerpt": "", "reasoning": "", "suggestedRefinement": ""}
        )

        assert JudgmentParser().parse(response).status is expected

    def test_parse_invalid_json(self) -> None:
        with pytest.raises(JudgmentParseError) as exc_info:
            JudgmentParser().parse("```json\n{not valid}\n```")

        assert "Invalid JSON" in str(exc_info.value)
        assert exc_info.value.raw_response is not None

    def test_parse_no_json(self) -> None:
        with pytest.raises(JudgmentParseError, match="No JSON object"):
            JudgmentParser().parse("I cannot judge this.")

    def test_parse_unclosed_object(self) -> None:
        with pytest.raises(JudgmentParseError, match="Unclosed JSON object"):
            JudgmentParser().parse('{"status": "Supported"')

    def test_parse_missing_field(self) -> None:
        response = json.dumps({"status": "Supported", "reasoning": "ok", "suggestedRefinement": ""})

        with pytest.raises(JudgmentParseError, match="Missing required field: referencedExcerpt"):
            JudgmentParser().parse(response)

    def test_parse_non_string_field(self) -> None:
        response = json.dumps(
            {"status": "Supported", "referencedExcerpt": 3, "reasoning": "", "suggestedRefinement": ""}
        )

        with pytest.raises(JudgmentParseError, match="must be a string"):
            JudgmentParser().parse(response)

    def test_parse_unknown_status(self) -> None:
        response = json.dumps(
            {"status": "Maybe", "referencedExcerpt": "", "reasoning": "", "suggestedRefinement": ""}
        )

        with pytest.raises(JudgmentParseError, match="Unknown judgment status"):
            JudgmentParser().parse(response)


class TestLLMClient:
    """Tests for LLMClient."""

    def test_requires_api_key(self, test_settings: Settings) -> None:
        with pytest.raises(LLMError, match="No API key"):
            LLMClient(test_settings)

    @pytest.mark.asyncio
    async def test_generate(self, live_settings: Settings, sample_llm_response: str) -> None:
        with patch("rubricguard.validation.llm_client.AsyncOpenAI") as mock_openai:
            create = AsyncMock(return_value=_completion(sample_llm_response))
            mock_openai.return_value.chat.completions.create = create

            client = LLMClient(live_settings)
            result = await client.generate("system", "user")

        assert result == sample_llm_response
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert kwargs["temperature"] == live_settings.llm_temperature

    @pytest.mark.asyncio
    async def test_empty_response(self, live_settings: Settings) -> None:
        with patch("rubricguard.validation.llm_client.AsyncOpenAI") as mock_openai:
            mock_openai.return_value.chat.completions.create = AsyncMock(
                return_value=_completion(None)
            )

            client = LLMClient(live_settings)
            with pytest.raises(LLMError, match="Empty response"):
                await client.generate("system", "user")

    @pytest.mark.asyncio
    async def test_health_check_failure(self, live_settings: Settings) -> None:
        with patch("rubricguard.validation.llm_client.AsyncOpenAI") as mock_openai:
            mock_openai.return_value.chat.completions.create = AsyncMock(
                side_effect=RuntimeError("unreachable")
            )

            client = LLMClient(live_settings)
            assert await client.health_check() is False

    def test_backoff_delay(self, live_settings: Settings) -> None:
        with patch("rubricguard.validation.llm_client.AsyncOpenAI"):
            client = LLMClient(live_settings)

        assert client._calculate_delay(0) == 1.0
        assert client._calculate_delay(2) == 4.0
        assert client._calculate_delay(10) == 30.0

    def test_base_url_trailing_slash_removed(self, live_settings: Settings) -> None:
        assert live_settings.llm_base_url == "https://test.api.local"


class TestLLMJudge:
    """Tests for LLMJudge with a mocked client."""

    @pytest.mark.asyncio
    async def test_judge(
        self,
        live_settings: Settings,
        submission: Submission,
        criterion_25: RubricCriterion,
        sample_llm_response: str,
    ) -> None:
        client = MagicMock()
        client.generate = AsyncMock(return_value=sample_llm_response)

        judge = LLMJudge(live_settings, client=client)
        judgment = await judge.judge(submission.content, criterion_25, 12, "Clear but thin.")

        assert judgment.status is JudgmentStatus.PARTIALLY_SUPPORTED
        kwargs = client.generate.call_args.kwargs
        assert kwargs["system_prompt"] == PromptBuilder.get_system_prompt()
        assert submission.content in kwargs["user_prompt"]
        assert "Clear but thin." in kwargs["user_prompt"]

    @pytest.mark.asyncio
    async def test_malformed_response_raises(
        self, live_settings: Settings, criterion_25: RubricCriterion
    ) -> None:
        client = MagicMock()
        client.generate = AsyncMock(return_value="not json at all")

        judge = LLMJudge(live_settings, client=client)
        with pytest.raises(JudgmentParseError):
            await judge.judge("text", criterion_25, 12, "Clear but thin.")

    @pytest.mark.asyncio
    async def test_client_error_propagates(
        self, live_settings: Settings, criterion_25: RubricCriterion
    ) -> None:
        client = MagicMock()
        client.generate = AsyncMock(side_effect=LLMError("boom"))

        judge = LLMJudge(live_settings, client=client)
        with pytest.raises(LLMError):
            await judge.judge("text", criterion_25, 12, "Clear but thin.")


class TestStubJudge:
    """Tests for the deterministic local judge."""

    @pytest.mark.asyncio
    async def test_supported_by_default(
        self, submission: Submission, criterion_25: RubricCriterion
    ) -> None:
        judgment = await StubJudge().judge(submission.content, criterion_25, 20, "Clear thesis.")

        assert judgment.status is JudgmentStatus.SUPPORTED
        assert judgment.referenced_excerpt == (
            "The firm should pivot to a subscription-based pricing model."
        )
        assert judgment.referenced_excerpt in submission.content

    @pytest.mark.asyncio
    async def test_high_score_with_poor_explanation(
        self, submission: Submission, criterion_25: RubricCriterion
    ) -> None:
        judgment = await StubJudge().judge(submission.content, criterion_25, 24, "Poor structure.")

        assert judgment.status is JudgmentStatus.NOT_SUPPORTED

    @pytest.mark.asyncio
    async def test_low_score_with_excellent_explanation(
        self, submission: Submission, criterion_25: RubricCriterion
    ) -> None:
        judgment = await StubJudge().judge(
            submission.content, criterion_25, 10, "Excellent argument."
        )

        assert judgment.status is JudgmentStatus.PARTIALLY_SUPPORTED

    @pytest.mark.asyncio
    async def test_deterministic(self, submission: Submission, criterion_25: RubricCriterion) -> None:
        judge = StubJudge()
        first = await judge.judge(submission.content, criterion_25, 15, "Reasonable work.")
        second = await judge.judge(submission.content, criterion_25, 15, "Reasonable work.")

        assert first == second

    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        assert await StubJudge().health_check() is True


class TestCreateJudge:
    """Tests for judge selection."""

    def test_stub_without_api_key(self, test_settings: Settings) -> None:
        assert isinstance(create_judge(test_settings), StubJudge)

    def test_llm_with_api_key(self, live_settings: Settings) -> None:
        with patch("rubricguard.validation.llm_client.AsyncOpenAI"):
            judge = create_judge(live_settings)

        assert isinstance(judge, LLMJudge)
