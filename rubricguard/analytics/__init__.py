"""
Analytics Module.

Live consistency alerts and session-wide grading statistics.
"""

from rubricguard.analytics.aggregator import (
    CriterionSpread,
    DriftLevel,
    HighRiskDecision,
    SessionSummary,
    TimelinePoint,
    ValidationDistribution,
    criterion_stability,
    criterion_variance,
    high_risk_decisions,
    score_timeline,
    session_drift,
    summarize,
    validation_distribution,
    validity_rate,
)
from rubricguard.analytics.consistency import ConsistencyAlert, ConsistencyMonitor

__all__ = [
    "ConsistencyAlert",
    "ConsistencyMonitor",
    "CriterionSpread",
    "DriftLevel",
    "HighRiskDecision",
    "SessionSummary",
    "TimelinePoint",
    "ValidationDistribution",
    "criterion_stability",
    "criterion_variance",
    "high_risk_decisions",
    "score_timeline",
    "session_drift",
    "summarize",
    "validation_distribution",
    "validity_rate",
]
