"""
Consistency monitor.

Flags a proposed score that deviates abnormally from the grader's own
earlier scores for the same criterion. The threshold widens as more prior
scores accumulate. Alerts are advisory and hold no state: they are
recomputed on every score edit.
"""

import math
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from rubricguard.models import GradedSubmission, RubricCriterion


class ConsistencyAlert(BaseModel):
    """A proposed score that is out of line with earlier scoring."""

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    proposed_score: float
    mean: float = Field(..., description="Mean of prior scores, rounded to 1 decimal")
    deviation: float = Field(..., description="|proposed - mean| / max_points")
    threshold: float
    prior_count: int
    reference_submission_id: str = Field(
        ..., description="Earlier submission whose score is closest to the mean"
    )
    reference_score: float

    @property
    def message(self) -> str:
        return f"This score deviates significantly from the session average of {self.mean:.1f}."

    @property
    def example(self) -> str:
        return (
            f"Recall for submission {self.reference_submission_id} you gave a score of "
            f"{self.reference_score:g}."
        )


class ConsistencyMonitor:
    """Compares a proposed score against earlier scores for the same criterion."""

    def __init__(self, threshold_step: float = 0.03):
        """
        Args:
            threshold_step: Threshold growth per prior score; the threshold is
                threshold_step * (prior_count + 1).
        """
        self.threshold_step = threshold_step

    def threshold(self, prior_count: int) -> float:
        return self.threshold_step * (prior_count + 1)

    def check(
        self,
        criterion: RubricCriterion,
        proposed_score: float | None,
        prior_submissions: Iterable[GradedSubmission],
    ) -> ConsistencyAlert | None:
        """
        Check a proposed score against earlier submissions.

        Args:
            criterion: The criterion being scored.
            proposed_score: The score currently entered, if any.
            prior_submissions: Submissions graded before the current one only.

        Returns:
            An alert if the score deviates beyond the threshold, otherwise None.
        """
        if proposed_score is None or not math.isfinite(proposed_score):
            return None

        priors: list[tuple[str, float]] = []
        for submission in prior_submissions:
            graded = submission.criterion(criterion.id)
            if graded is not None and graded.score is not None:
                priors.append((submission.submission_id, graded.score))

        if not priors:
            return None

        mean = sum(score for _, score in priors) / len(priors)
        deviation = abs(proposed_score - mean) / criterion.max_points
        threshold = self.threshold(len(priors))
        if deviation <= threshold:
            return None

        # min() keeps the first of equally close scores
        reference_id, reference_score = min(priors, key=lambda p: abs(p[1] - mean))

        return ConsistencyAlert(
            criterion_id=criterion.id,
            proposed_score=proposed_score,
            mean=round(mean, 1),
            deviation=deviation,
            threshold=threshold,
            prior_count=len(priors),
            reference_submission_id=reference_id,
            reference_score=reference_score,
        )
