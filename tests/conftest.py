"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import asyncio
import json
import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest

from rubricguard.catalog import Catalog, load_sample_catalog
from rubricguard.config import HighRiskPolicy, Settings
from rubricguard.models import (
    JudgmentStatus,
    RubricCriterion,
    Submission,
    ValidationJudgment,
)


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Catalog Fixtures
# ==============================================================================


@pytest.fixture
def sample_catalog() -> Catalog:
    """The catalog bundled with the package (assignment A1, 4 criteria, 3 submissions)."""
    return load_sample_catalog()


@pytest.fixture
def sample_criteria(sample_catalog: Catalog) -> list[RubricCriterion]:
    return sample_catalog.criteria_for("A1")


@pytest.fixture
def sample_submissions(sample_catalog: Catalog) -> list[Submission]:
    return sample_catalog.submissions_for("A1")


@pytest.fixture
def criterion_25() -> RubricCriterion:
    """A single criterion worth 25 points."""
    return RubricCriterion(
        id="C1",
        assignment_id="A1",
        name="Argument Clarity",
        description="Thesis is clear and reasoning is logical",
        max_points=25,
        weight=1.0,
    )


@pytest.fixture
def submission() -> Submission:
    return Submission(
        id="S1",
        assignment_id="A1",
        student_id="STU001",
        content=(
            "The firm should pivot to a subscription-based pricing model. "
            "Recurring revenue streams offer greater financial stability."
        ),
        grading_order=1,
    )


@pytest.fixture
def catalog_data() -> dict[str, Any]:
    """A small, valid catalog as raw JSON data."""
    return {
        "assignments": [{"id": "A1", "course": "BUS302", "title": "Case Analysis"}],
        "criteria": [
            {
                "id": "C1",
                "assignment_id": "A1",
                "name": "Clarity",
                "description": "Thesis is clear",
                "max_points": 25,
                "weight": 0.5,
            },
            {
                "id": "C2",
                "assignment_id": "A1",
                "name": "Evidence",
                "description": "Claims are supported",
                "max_points": 25,
                "weight": 0.5,
            },
        ],
        "submissions": [
            {"id": "S2", "assignment_id": "A1", "student_id": "STU002", "content": "Second.", "grading_order": 2},
            {"id": "S1", "assignment_id": "A1", "student_id": "STU001", "content": "First.", "grading_order": 1},
        ],
    }


@pytest.fixture
def catalog_file(temp_dir: Path, catalog_data: dict[str, Any]) -> Path:
    path = temp_dir / "catalog.json"
    path.write_text(json.dumps(catalog_data), encoding="utf-8")
    return path


# ==============================================================================
# Judgment Fixtures
# ==============================================================================


@pytest.fixture
def supported_judgment() -> ValidationJudgment:
    return ValidationJudgment(
        status=JudgmentStatus.SUPPORTED,
        referenced_excerpt="Recurring revenue streams offer greater financial stability.",
        reasoning="The justification matches the submission.",
        suggested_refinement="Quote the revenue argument directly.",
    )


@pytest.fixture
def sample_llm_response() -> str:
    """Sample judgment response in JSON format."""
    return json.dumps(
        {
            "status": "Partially Supported",
            "referencedExcerpt": "Recurring revenue streams offer greater financial stability.",
            "reasoning": "The justification is accurate but the score seems low.",
            "suggestedRefinement": "Mention the stability argument explicitly.",
        }
    )


class RecordingJudge:
    """
    Fake judge that records calls.

    Delays are consumed one per call; criteria listed in fail_for raise
    fail_with. The reasoning echoes the judged score so tests can tell
    which request a judgment came from.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, float, str]] = []
        self.delays: list[float] = []
        self.status = JudgmentStatus.SUPPORTED
        self.fail_with: Exception | None = None
        self.fail_for: set[str] | None = None
        self.active = 0
        self.max_active = 0

    async def judge(
        self,
        submission_text: str,
        criterion: RubricCriterion,
        score: float,
        explanation: str,
    ) -> ValidationJudgment:
        self.calls.append((criterion.id, score, explanation))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.pop(0) if self.delays else 0.0
            if delay:
                await asyncio.sleep(delay)
            if self.fail_with is not None and (self.fail_for is None or criterion.id in self.fail_for):
                raise self.fail_with
            return ValidationJudgment(
                status=self.status,
                referenced_excerpt=submission_text[:20],
                reasoning=f"judged {score:g}",
                suggested_refinement=explanation,
            )
        finally:
            self.active -= 1


@pytest.fixture
def recording_judge() -> RecordingJudge:
    return RecordingJudge()


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with a short debounce window and no API key."""
    return Settings(
        llm_api_key=None,
        llm_base_url="https://test.api.local/",
        llm_model="test-model",
        llm_max_retries=0,
        judge_timeout_seconds=2.0,
        debounce_delay_seconds=0.05,
        min_explanation_length=10,
        consistency_threshold_step=0.03,
        high_risk_policy=HighRiskPolicy.PARTIAL_ABOVE_DEVIATION,
        partial_deviation_threshold=0.1,
        output_directory=temp_dir / "output",
    )


@pytest.fixture
def live_settings(test_settings: Settings) -> Settings:
    """Test settings with an API key configured."""
    return test_settings.model_copy(update={"llm_api_key": "test-api-key-for-testing"})
