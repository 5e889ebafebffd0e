"""
Session analytics aggregator.

Derives session-wide statistics from the graded submissions: how often
justifications were supported, how spread out each criterion's scores are,
the score timeline, overall drift, and the decisions worth a second look.

Everything here is a pure function of its inputs and is recomputed on
read. Inputs are never mutated, and empty inputs yield 0 or an explicit
insufficient_data flag instead of NaN.
"""

import statistics
from collections.abc import Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from rubricguard.config import HighRiskPolicy, Settings, get_settings
from rubricguard.models import (
    GradedCriterion,
    GradedSubmission,
    JudgmentStatus,
    RubricCriterion,
)

MIN_SPREAD_SAMPLES = 2


class DriftLevel(str, Enum):
    """Overall scoring drift of a session."""

    UNKNOWN = "unknown"
    STABLE = "stable"
    MODERATE_DRIFT = "moderate_drift"
    HIGH_DRIFT = "high_drift"


class CriterionSpread(BaseModel):
    """Variance or standard deviation of one criterion's scores."""

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    name: str
    sample_count: int = Field(..., ge=0)
    value: float = Field(..., description="0.0 when insufficient_data is set")
    mean: float = Field(default=0.0, description="Mean score, 0.0 without samples")
    insufficient_data: bool = Field(
        ..., description="Fewer than two scores, so the spread is undefined"
    )
    flagged: bool = Field(default=False, description="Spread above the configured threshold")


class TimelinePoint(BaseModel):
    """Total score of one submission, in grading order."""

    model_config = ConfigDict(frozen=True)

    label: str
    submission_id: str
    score: float = Field(..., description="Sum of entered scores; missing scores count as 0")
    is_complete: bool = Field(..., description="Every criterion has a score")


class ValidationDistribution(BaseModel):
    """Count of judgments per verdict."""

    model_config = ConfigDict(frozen=True)

    supported: int = 0
    partially_supported: int = 0
    not_supported: int = 0

    @property
    def total(self) -> int:
        return self.supported + self.partially_supported + self.not_supported


class HighRiskDecision(BaseModel):
    """A grading decision the judge did not (fully) back."""

    model_config = ConfigDict(frozen=True)

    submission_id: str
    criterion_id: str
    criterion_name: str
    score: float
    status: JudgmentStatus
    explanation: str
    deviation: float = Field(
        ..., description="|score - criterion mean| / max_points across the session"
    )


class SessionSummary(BaseModel):
    """Every statistic of a session in one place."""

    model_config = ConfigDict(frozen=True)

    total_submissions: int
    graded_criteria: int
    validity_rate: float
    validation_distribution: ValidationDistribution
    average_score: float
    drift: DriftLevel
    drift_percent: float
    criterion_variance: list[CriterionSpread]
    criterion_stability: list[CriterionSpread]
    score_timeline: list[TimelinePoint]
    high_risk_decisions: list[HighRiskDecision]
    high_risk_policy: HighRiskPolicy


# ==============================================================================
# Helpers
# ==============================================================================


def scored_criteria(submissions: Sequence[GradedSubmission]) -> list[GradedCriterion]:
    """Every graded criterion that has a score."""
    return [c for s in submissions for c in s.criteria if c.score is not None]


def scores_by_criterion(submissions: Sequence[GradedSubmission]) -> dict[str, list[float]]:
    """Entered scores grouped by criterion id."""
    grouped: dict[str, list[float]] = {}
    for graded in scored_criteria(submissions):
        grouped.setdefault(graded.criterion_id, []).append(graded.score)  # type: ignore[arg-type]
    return grouped


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


# ==============================================================================
# Statistics
# ==============================================================================


def validation_distribution(submissions: Sequence[GradedSubmission]) -> ValidationDistribution:
    """Count judgments on scored criteria by verdict."""
    counts = {status: 0 for status in JudgmentStatus}
    for graded in scored_criteria(submissions):
        if graded.validation is not None:
            counts[graded.validation.status] += 1
    return ValidationDistribution(
        supported=counts[JudgmentStatus.SUPPORTED],
        partially_supported=counts[JudgmentStatus.PARTIALLY_SUPPORTED],
        not_supported=counts[JudgmentStatus.NOT_SUPPORTED],
    )


def validity_rate(submissions: Sequence[GradedSubmission]) -> float:
    """Percentage of judged criteria that were supported; 0 with no judgments."""
    distribution = validation_distribution(submissions)
    if distribution.total == 0:
        return 0.0
    return distribution.supported / distribution.total * 100


def criterion_variance(
    submissions: Sequence[GradedSubmission],
    criteria: Sequence[RubricCriterion],
    flag_threshold: float | None = None,
) -> list[CriterionSpread]:
    """Population variance of each criterion's scores."""
    grouped = scores_by_criterion(submissions)
    spreads = []
    for criterion in criteria:
        scores = grouped.get(criterion.id, [])
        insufficient = len(scores) < MIN_SPREAD_SAMPLES
        value = 0.0 if insufficient else statistics.pvariance(scores)
        spreads.append(
            CriterionSpread(
                criterion_id=criterion.id,
                name=criterion.name,
                sample_count=len(scores),
                value=value,
                mean=_mean(scores),
                insufficient_data=insufficient,
                flagged=flag_threshold is not None and value > flag_threshold,
            )
        )
    return spreads


def criterion_stability(
    submissions: Sequence[GradedSubmission],
    criteria: Sequence[RubricCriterion],
    flag_threshold: float | None = None,
) -> list[CriterionSpread]:
    """Population standard deviation of each criterion's scores across all submissions."""
    grouped = scores_by_criterion(submissions)
    spreads = []
    for criterion in criteria:
        scores = grouped.get(criterion.id, [])
        insufficient = len(scores) < MIN_SPREAD_SAMPLES
        value = 0.0 if insufficient else statistics.pstdev(scores)
        spreads.append(
            CriterionSpread(
                criterion_id=criterion.id,
                name=criterion.name,
                sample_count=len(scores),
                value=value,
                mean=_mean(scores),
                insufficient_data=insufficient,
                flagged=flag_threshold is not None and value > flag_threshold,
            )
        )
    return spreads


def score_timeline(submissions: Sequence[GradedSubmission]) -> list[TimelinePoint]:
    """
    One point per submission with its total score.

    Missing scores count as 0, which conflates "not graded yet" with
    "scored zero"; is_complete tells the two apart.
    """
    return [
        TimelinePoint(
            label=f"Sub {index}",
            submission_id=s.submission_id,
            score=s.total_score,
            is_complete=all(c.score is not None for c in s.criteria),
        )
        for index, s in enumerate(submissions, start=1)
    ]


def average_score(submissions: Sequence[GradedSubmission]) -> float:
    """Mean of the timeline totals; 0 for an empty session."""
    return _mean([point.score for point in score_timeline(submissions)])


def drift_percent(
    submissions: Sequence[GradedSubmission], criteria: Sequence[RubricCriterion]
) -> float:
    """
    Mean absolute deviation of scores from their criterion mean, as a percent of max points.

    Criteria with fewer than two scores contribute zero deviation.
    """
    scored = scored_criteria(submissions)
    if not scored:
        return 0.0

    grouped = scores_by_criterion(submissions)
    max_points = {c.id: c.max_points for c in criteria}
    total = 0.0
    for graded in scored:
        scores = grouped[graded.criterion_id]
        if len(scores) < MIN_SPREAD_SAMPLES or graded.criterion_id not in max_points:
            continue
        total += abs(graded.score - _mean(scores)) / max_points[graded.criterion_id]  # type: ignore[operator]

    return total / len(scored) * 100


def session_drift(
    submissions: Sequence[GradedSubmission],
    criteria: Sequence[RubricCriterion],
    moderate_percent: float = 5.0,
    high_percent: float = 10.0,
) -> DriftLevel:
    """Classify overall scoring drift."""
    if not scored_criteria(submissions):
        return DriftLevel.UNKNOWN

    percent = drift_percent(submissions, criteria)
    if percent > high_percent:
        return DriftLevel.HIGH_DRIFT
    if percent > moderate_percent:
        return DriftLevel.MODERATE_DRIFT
    return DriftLevel.STABLE


def high_risk_decisions(
    submissions: Sequence[GradedSubmission],
    criteria: Sequence[RubricCriterion],
    policy: HighRiskPolicy = HighRiskPolicy.PARTIAL_ABOVE_DEVIATION,
    partial_deviation_threshold: float = 0.1,
) -> list[HighRiskDecision]:
    """
    Decisions to review, in grading order.

    Every NOT_SUPPORTED decision is included. PARTIALLY_SUPPORTED ones are
    included according to the policy: never, always, or only when the score
    deviates from the criterion's session mean by more than the threshold.
    """
    by_id = {c.id: c for c in criteria}
    grouped = scores_by_criterion(submissions)
    decisions = []

    for submission in submissions:
        for graded in submission.criteria:
            if graded.score is None or graded.validation is None:
                continue
            criterion = by_id.get(graded.criterion_id)
            if criterion is None:
                continue

            deviation = abs(graded.score - _mean(grouped[graded.criterion_id])) / criterion.max_points
            status = graded.validation.status

            if status is JudgmentStatus.NOT_SUPPORTED:
                include = True
            elif status is JudgmentStatus.PARTIALLY_SUPPORTED:
                include = policy is HighRiskPolicy.ALL_PARTIAL or (
                    policy is HighRiskPolicy.PARTIAL_ABOVE_DEVIATION
                    and deviation > partial_deviation_threshold
                )
            else:
                include = False

            if include:
                decisions.append(
                    HighRiskDecision(
                        submission_id=submission.submission_id,
                        criterion_id=criterion.id,
                        criterion_name=criterion.name,
                        score=graded.score,
                        status=status,
                        explanation=graded.explanation,
                        deviation=deviation,
                    )
                )

    return decisions


def summarize(
    submissions: Sequence[GradedSubmission],
    criteria: Sequence[RubricCriterion],
    settings: Settings | None = None,
) -> SessionSummary:
    """Compute every session statistic."""
    settings = settings or get_settings()
    return SessionSummary(
        total_submissions=len(submissions),
        graded_criteria=len(scored_criteria(submissions)),
        validity_rate=validity_rate(submissions),
        validation_distribution=validation_distribution(submissions),
        average_score=average_score(submissions),
        drift=session_drift(
            submissions,
            criteria,
            settings.drift_moderate_percent,
            settings.drift_high_percent,
        ),
        drift_percent=drift_percent(submissions, criteria),
        criterion_variance=criterion_variance(
            submissions, criteria, settings.variance_flag_threshold
        ),
        criterion_stability=criterion_stability(
            submissions, criteria, settings.stability_flag_threshold
        ),
        score_timeline=score_timeline(submissions),
        high_risk_decisions=high_risk_decisions(
            submissions,
            criteria,
            settings.high_risk_policy,
            settings.partial_deviation_threshold,
        ),
        high_risk_policy=settings.high_risk_policy,
    )
