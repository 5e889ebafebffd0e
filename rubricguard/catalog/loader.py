"""
Catalog loading.

The catalog is the static, read-only lookup of assignments, rubric criteria
and submissions. It is loaded once from JSON and never mutated.
"""

import json
import logging
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rubricguard.models import Assignment, RubricCriterion, Submission

LOG = logging.getLogger(__name__)

SAMPLE_CATALOG = "sample_catalog.json"


class CatalogLoadError(Exception):
    """Raised when a catalog file cannot be read or parsed."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class Catalog(BaseModel):
    """Assignments, criteria and submissions available for grading."""

    model_config = ConfigDict(frozen=True)

    assignments: tuple[Assignment, ...] = Field(default=())
    criteria: tuple[RubricCriterion, ...] = Field(default=())
    submissions: tuple[Submission, ...] = Field(default=())

    def get_assignment(self, assignment_id: str) -> Assignment | None:
        return next((a for a in self.assignments if a.id == assignment_id), None)

    def get_criterion(self, criterion_id: str) -> RubricCriterion | None:
        return next((c for c in self.criteria if c.id == criterion_id), None)

    def get_submission(self, submission_id: str) -> Submission | None:
        return next((s for s in self.submissions if s.id == submission_id), None)

    def criteria_for(self, assignment_id: str) -> list[RubricCriterion]:
        """Rubric criteria of an assignment, in catalog order."""
        return [c for c in self.criteria if c.assignment_id == assignment_id]

    def submissions_for(self, assignment_id: str) -> list[Submission]:
        """Submissions of an assignment, sorted by grading order."""
        return sorted(
            (s for s in self.submissions if s.assignment_id == assignment_id),
            key=lambda s: s.grading_order,
        )


def parse_catalog(content: str, path: Path | None = None) -> Catalog:
    """
    Parse catalog JSON text.

    Args:
        content: JSON document with "assignments", "criteria" and "submissions".
        path: Source path, used in error messages only.

    Returns:
        The parsed Catalog.

    Raises:
        CatalogLoadError: If the text is not valid JSON or doesn't match the schema.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise CatalogLoadError(f"Invalid JSON: {e}", path) from e

    if not isinstance(data, dict):
        raise CatalogLoadError("Catalog must be a JSON object", path)

    try:
        catalog = Catalog.model_validate(data)
    except ValidationError as e:
        raise CatalogLoadError(f"Invalid catalog: {e}", path) from e

    LOG.debug(
        "Loaded catalog with %d assignments, %d criteria, %d submissions",
        len(catalog.assignments),
        len(catalog.criteria),
        len(catalog.submissions),
    )
    return catalog


def load_catalog(path: Path) -> Catalog:
    """Load a catalog from a JSON file."""
    if not path.exists():
        raise CatalogLoadError("File not found", path)

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogLoadError(f"Cannot read file: {e}", path) from e

    return parse_catalog(content, path)


def load_sample_catalog() -> Catalog:
    """Load the catalog bundled with the package."""
    data_dir = resources.files("rubricguard.catalog").joinpath("data")
    content = data_dir.joinpath(SAMPLE_CATALOG).read_text(encoding="utf-8")
    return parse_catalog(content)
