"""
Pydantic models for RubricGuard.

These models define the schemas for:
- The static catalog (assignments, rubric criteria, submissions)
- Judgments returned by the validation service
- The mutable grading state of an active session

Catalog records and judgments are frozen; graded state is validated on
every assignment so the store never holds an invalid entry.
"""

import math
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# ==============================================================================
# Catalog Models
# ==============================================================================


class Assignment(BaseModel):
    """An assignment that a rubric and a batch of submissions belong to."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Assignment identifier")

    course: str = Field(default="", description="Course code (e.g., 'BUS302')")

    title: str = Field(..., min_length=1, description="Assignment title")

    rubric_version: str = Field(default="v1.0", description="Version of the rubric in use")


class RubricCriterion(BaseModel):
    """
    A single scored dimension of an assignment's rubric.

    Weights across one rubric are expected to sum to 1; that is checked by
    the catalog validator rather than here.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Criterion identifier")

    assignment_id: str = Field(..., min_length=1, description="Owning assignment")

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Name of the criterion (e.g., 'Argument Clarity')",
    )

    description: str = Field(
        ...,
        min_length=1,
        description="What this criterion evaluates",
    )

    max_points: float = Field(
        ...,
        gt=0,
        le=1000,
        description="Maximum points for this criterion",
    )

    weight: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Fraction of the assignment grade carried by this criterion",
    )


class Submission(BaseModel):
    """A student's submission for one assignment."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Submission identifier")

    assignment_id: str = Field(..., min_length=1, description="Owning assignment")

    student_id: str = Field(..., min_length=1, description="Student identifier")

    content: str = Field(..., description="Submission text")

    grading_order: int = Field(
        ...,
        description="Position in the grading traversal (unique within an assignment)",
    )


# ==============================================================================
# Validation Models
# ==============================================================================


class JudgmentStatus(str, Enum):
    """Verdict of the judgment service on a grader's justification."""

    SUPPORTED = "Supported"
    PARTIALLY_SUPPORTED = "Partially Supported"
    NOT_SUPPORTED = "Not Supported"


class ValidationPhase(str, Enum):
    """Transient validation state of one criterion card."""

    UNVALIDATED = "Unvalidated"
    VALIDATING = "Validating"
    SUPPORTED = "Supported"
    PARTIALLY_SUPPORTED = "Partially Supported"
    NOT_SUPPORTED = "Not Supported"
    ERROR = "Error"

    @classmethod
    def from_status(cls, status: JudgmentStatus) -> "ValidationPhase":
        """Map a resolved judgment status onto its phase."""
        return cls(status.value)

    @property
    def is_resolved(self) -> bool:
        """Whether the phase carries a judgment."""
        return self in (
            ValidationPhase.SUPPORTED,
            ValidationPhase.PARTIALLY_SUPPORTED,
            ValidationPhase.NOT_SUPPORTED,
        )


class ValidationJudgment(BaseModel):
    """
    Structured result of the judgment service.

    The referenced excerpt should be a verbatim substring of the
    submission, but the service is advisory so this is not enforced.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: JudgmentStatus = Field(..., description="Verdict on the justification")

    referenced_excerpt: str = Field(
        default="",
        alias="referencedExcerpt",
        description="Quote from the submission the verdict relies on",
    )

    reasoning: str = Field(
        default="",
        description="Brief explanation of the verdict",
    )

    suggested_refinement: str = Field(
        default="",
        alias="suggestedRefinement",
        description="Suggested improvement to the grader's justification",
    )


# ==============================================================================
# Grading State Models
# ==============================================================================


class GradedCriterion(BaseModel):
    """
    The grader's current work on one criterion of one submission.

    A criterion is complete once it has a score and a non-blank explanation.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    criterion_id: str = Field(..., min_length=1, description="Criterion being graded")

    score: float | None = Field(
        default=None,
        ge=0,
        description="Awarded points; None until the grader enters a score",
    )

    explanation: str = Field(default="", description="Grader's justification")

    highlighted_excerpt: str | None = Field(
        default=None,
        description="Excerpt of the submission attached as evidence",
    )

    validation: ValidationJudgment | None = Field(
        default=None,
        description="Judgment of the current score and explanation; None until that pair is judged",
    )

    @field_validator("score", mode="before")
    @classmethod
    def reject_non_finite(cls, v: Any) -> Any:
        """Scores must be finite numbers."""
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("score must be a finite number")
        return v

    @property
    def is_complete(self) -> bool:
        """Whether the criterion has a score and an explanation."""
        return self.score is not None and bool(self.explanation.strip())


class GradedSubmission(BaseModel):
    """Grading state of a single submission, one entry per rubric criterion."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    submission_id: str = Field(..., min_length=1, description="Submission being graded")

    criteria: list[GradedCriterion] = Field(
        default_factory=list,
        description="Graded criteria in rubric order",
    )

    def criterion(self, criterion_id: str) -> GradedCriterion | None:
        """Return the entry for a criterion, if present."""
        for graded in self.criteria:
            if graded.criterion_id == criterion_id:
                return graded
        return None

    @property
    def is_complete(self) -> bool:
        """Whether every criterion is complete."""
        return all(c.is_complete for c in self.criteria)

    @property
    def total_score(self) -> float:
        """Sum of entered scores; missing scores count as zero."""
        return sum((c.score or 0.0) for c in self.criteria)
