"""
Catalog validation module.

Checks the integrity of a loaded catalog before a grading session starts:
references between records, unique grading order, and rubric weights.
"""

from collections import Counter
from typing import Sequence

from rubricguard.catalog.loader import Catalog
from rubricguard.models import Assignment, RubricCriterion, Submission


class CatalogValidationError(Exception):
    """Raised when catalog validation fails."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = "Catalog validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


class CatalogValidator:
    """
    Validates a catalog for completeness and consistency.

    Checks:
    1. Identifiers are unique per record type
    2. Criteria and submissions reference known assignments
    3. Every assignment has a rubric
    4. Grading order is unique within an assignment
    5. Rubric weights sum to 1
    """

    def __init__(self, weight_tolerance: float = 0.01):
        """
        Initialize the validator.

        Args:
            weight_tolerance: Allowed distance of a rubric's weight sum from 1.
        """
        self.weight_tolerance = weight_tolerance

    def validate(self, catalog: Catalog) -> tuple[bool, list[str]]:
        """
        Validate a catalog and return any issues found.

        Args:
            catalog: The catalog to validate.

        Returns:
            Tuple of (is_valid, list of issues).
        """
        issues: list[str] = []

        issues.extend(self._check_duplicate_ids("Assignment", catalog.assignments))
        issues.extend(self._check_duplicate_ids("Criterion", catalog.criteria))
        issues.extend(self._check_duplicate_ids("Submission", catalog.submissions))
        issues.extend(self._check_references(catalog))

        for assignment in catalog.assignments:
            criteria = catalog.criteria_for(assignment.id)
            submissions = catalog.submissions_for(assignment.id)
            issues.extend(self._validate_rubric(assignment, criteria))
            issues.extend(self._validate_submissions(assignment, submissions))

        return len(issues) == 0, issues

    def validate_or_raise(self, catalog: Catalog) -> None:
        """
        Validate a catalog and raise if invalid.

        Raises:
            CatalogValidationError: If validation fails.
        """
        is_valid, issues = self.validate(catalog)
        if not is_valid:
            raise CatalogValidationError(issues)

    def _check_duplicate_ids(
        self, kind: str, records: Sequence[Assignment | RubricCriterion | Submission]
    ) -> list[str]:
        counts = Counter(r.id for r in records)
        return [f"Duplicate {kind.lower()} id: '{rid}'" for rid, n in counts.items() if n > 1]

    def _check_references(self, catalog: Catalog) -> list[str]:
        """Check that every criterion and submission belongs to a known assignment."""
        issues: list[str] = []
        known = {a.id for a in catalog.assignments}

        for criterion in catalog.criteria:
            if criterion.assignment_id not in known:
                issues.append(
                    f"Criterion '{criterion.id}' references unknown assignment "
                    f"'{criterion.assignment_id}'"
                )

        for submission in catalog.submissions:
            if submission.assignment_id not in known:
                issues.append(
                    f"Submission '{submission.id}' references unknown assignment "
                    f"'{submission.assignment_id}'"
                )

        return issues

    def _validate_rubric(
        self, assignment: Assignment, criteria: list[RubricCriterion]
    ) -> list[str]:
        """Validate one assignment's rubric."""
        prefix = f"Assignment {assignment.id}"

        if not criteria:
            return [f"{prefix}: Rubric has no criteria"]

        issues: list[str] = []
        names = Counter(c.name.lower().strip() for c in criteria)
        for name, n in names.items():
            if n > 1:
                issues.append(f"{prefix}: Duplicate criterion name '{name}'")

        weight_sum = sum(c.weight for c in criteria)
        if abs(weight_sum - 1.0) > self.weight_tolerance:
            issues.append(f"{prefix}: Rubric weights sum to {weight_sum:.3f}, expected 1.0")

        return issues

    def _validate_submissions(
        self, assignment: Assignment, submissions: list[Submission]
    ) -> list[str]:
        """Validate one assignment's submissions."""
        issues: list[str] = []
        prefix = f"Assignment {assignment.id}"

        orders = Counter(s.grading_order for s in submissions)
        for order, n in sorted(orders.items()):
            if n > 1:
                issues.append(f"{prefix}: grading_order {order} is used by {n} submissions")

        for submission in submissions:
            if not submission.content.strip():
                issues.append(f"{prefix}: Submission '{submission.id}' has no content")

        return issues
