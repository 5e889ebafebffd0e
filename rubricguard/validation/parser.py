"""
Response parser for judgment output.

Parses the JSON response from the LLM and validates it into a
ValidationJudgment. Anything malformed is reported as a
JudgmentParseError, which callers treat exactly like a service failure.
"""

import json
import re
from typing import Any

from rubricguard.models import JudgmentStatus, ValidationJudgment


class JudgmentParseError(Exception):
    """Raised when a judgment response cannot be parsed."""

    def __init__(self, message: str, raw_response: str | None = None):
        self.raw_response = raw_response
        super().__init__(message)


class JudgmentParser:
    """
    Parses and validates judgment responses.

    Ensures:
    1. Response contains a JSON object
    2. All required fields are present and are strings
    3. The status is one of the known verdicts
    """

    REQUIRED_FIELDS = ("status", "referencedExcerpt", "reasoning", "suggestedRefinement")

    def parse(self, response: str) -> ValidationJudgment:
        """
        Parse an LLM response into a ValidationJudgment.

        Raises:
            JudgmentParseError: If parsing or validation fails.
        """
        json_str = self._extract_json(response)

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise JudgmentParseError(f"Invalid JSON in response: {e}", raw_response=response) from e

        if not isinstance(data, dict):
            raise JudgmentParseError("Response JSON must be an object", raw_response=response)

        return self._validate_and_convert(data, response)

    def _extract_json(self, response: str) -> str:
        """Extract JSON from response, handling markdown code blocks."""
        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response)
        if json_match:
            return json_match.group(1).strip()

        brace_start = response.find("{")
        if brace_start == -1:
            raise JudgmentParseError("No JSON object found in response", raw_response=response)

        # Find matching closing brace
        depth = 0
        in_string = False
        escaped = False
        for i, char in enumerate(response[brace_start:], start=brace_start):
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return response[brace_start : i + 1]

        raise JudgmentParseError("Unclosed JSON object in response", raw_response=response)

    def _validate_and_convert(self, data: dict[str, Any], raw_response: str) -> ValidationJudgment:
        for field in self.REQUIRED_FIELDS:
            if field not in data:
                raise JudgmentParseError(f"Missing required field: {field}", raw_response=raw_response)
            if not isinstance(data[field], str):
                raise JudgmentParseError(f"Field '{field}' must be a string", raw_response=raw_response)

        return ValidationJudgment(
            status=self._parse_status(data["status"], raw_response),
            referenced_excerpt=data["referencedExcerpt"],
            reasoning=data["reasoning"],
            suggested_refinement=data["suggestedRefinement"],
        )

    def _parse_status(self, value: str, raw_response: str) -> JudgmentStatus:
        """Match a status case- and separator-insensitively."""
        normalized = re.sub(r"[\s_-]+", " ", value).strip().lower()
        for status in JudgmentStatus:
            if status.value.lower() == normalized:
                return status
        raise JudgmentParseError(f"Unknown judgment status: '{value}'", raw_response=raw_response)
