"""
Session report generation.

Renders a SessionSummary as JSON, Markdown or plain text, and saves or
loads graded sessions, which is how a finished session is handed to
whatever renders it.
"""

import json
from enum import Enum
from pathlib import Path

from pydantic import TypeAdapter

from rubricguard.analytics.aggregator import CriterionSpread, SessionSummary
from rubricguard.models import Assignment, GradedSubmission

_SESSION_ADAPTER = TypeAdapter(list[GradedSubmission])


class ReportFormat(str, Enum):
    """Output formats for session reports."""

    JSON = "json"
    MARKDOWN = "markdown"
    TEXT = "text"


class ReportGenerator:
    """Formats session summaries."""

    EXTENSIONS = {
        ReportFormat.JSON: ".json",
        ReportFormat.MARKDOWN: ".md",
        ReportFormat.TEXT: ".txt",
    }

    def generate(
        self,
        summary: SessionSummary,
        assignment: Assignment | None = None,
        format: ReportFormat = ReportFormat.JSON,
    ) -> str:
        """Render a summary in the requested format."""
        if format is ReportFormat.JSON:
            return self._to_json(summary, assignment)
        if format is ReportFormat.MARKDOWN:
            return self._to_markdown(summary, assignment)
        return self._to_text(summary, assignment)

    def save(
        self,
        summary: SessionSummary,
        output_path: Path,
        assignment: Assignment | None = None,
        format: ReportFormat = ReportFormat.JSON,
    ) -> Path:
        """
        Write a report to disk.

        The format's extension is added when the path has none.
        """
        if not output_path.suffix:
            output_path = output_path.with_suffix(self.EXTENSIONS[format])
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.generate(summary, assignment, format), encoding="utf-8")
        return output_path

    def _to_json(self, summary: SessionSummary, assignment: Assignment | None) -> str:
        data = {
            "assignment": assignment.model_dump(mode="json") if assignment else None,
            "summary": summary.model_dump(mode="json"),
        }
        return json.dumps(data, indent=2)

    def _to_markdown(self, summary: SessionSummary, assignment: Assignment | None) -> str:
        title = assignment.title if assignment else "Grading Session"
        dist = summary.validation_distribution
        lines = [
            f"# Grading Session Analytics: {title}",
            "",
            f"- **Submissions graded:** {summary.total_submissions}",
            f"- **Average score:** {summary.average_score:.1f}",
            f"- **AI support rate:** {summary.validity_rate:.0f}%",
            f"- **Judgments:** {dist.supported} supported, {dist.partially_supported} partial, "
            f"{dist.not_supported} not supported",
            f"- **Drift:** {summary.drift.value} ({summary.drift_percent:.1f}%)",
            "",
            "## Criterion Stability",
            "",
            "| Criterion | Samples | Mean | Std Dev | Variance |",
            "|---|---:|---:|---:|---:|",
        ]
        for stability, variance in zip(summary.criterion_stability, summary.criterion_variance):
            lines.append(
                f"| {stability.name} | {stability.sample_count} | {stability.mean:.1f} "
                f"| {_spread(stability)} | {_spread(variance)} |"
            )

        lines += ["", "## Score Timeline", ""]
        for point in summary.score_timeline:
            marker = "" if point.is_complete else " (incomplete)"
            lines.append(f"- {point.label} ({point.submission_id}): {point.score:g}{marker}")

        lines += ["", "## High-Risk Grading Decisions to Review", ""]
        if not summary.high_risk_decisions:
            lines.append("No high-risk decisions flagged.")
        for decision in summary.high_risk_decisions:
            lines.append(
                f"- **{decision.criterion_name}** on submission {decision.submission_id}: "
                f"score {decision.score:g}, {decision.status.value}. _\"{decision.explanation}\"_"
            )

        return "\n".join(lines) + "\n"

    def _to_text(self, summary: SessionSummary, assignment: Assignment | None) -> str:
        title = assignment.title if assignment else "Grading Session"
        lines = [
            f"GRADING SESSION ANALYTICS: {title}",
            f"Submissions graded: {summary.total_submissions}",
            f"Average score:      {summary.average_score:.1f}",
            f"AI support rate:    {summary.validity_rate:.0f}%",
            f"Drift:              {summary.drift.value}",
            "",
            "CRITERION STABILITY",
        ]
        for stability in summary.criterion_stability:
            flag = " !" if stability.flagged else ""
            lines.append(f"  {stability.name}: {_spread(stability)}{flag}")

        lines += ["", f"HIGH-RISK DECISIONS ({len(summary.high_risk_decisions)})"]
        for decision in summary.high_risk_decisions:
            lines.append(
                f"  {decision.submission_id} / {decision.criterion_name}: "
                f"{decision.score:g} ({decision.status.value})"
            )

        return "\n".join(lines) + "\n"


def _spread(spread: CriterionSpread) -> str:
    return "n/a" if spread.insufficient_data else f"{spread.value:.2f}"


def save_session(submissions: list[GradedSubmission], output_path: Path) -> Path:
    """Write graded submissions as JSON."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(_SESSION_ADAPTER.dump_json(submissions, indent=2))
    return output_path


def load_session(path: Path) -> list[GradedSubmission]:
    """
    Read graded submissions saved by save_session.

    Raises:
        pydantic.ValidationError: If the file does not hold graded submissions.
    """
    return _SESSION_ADAPTER.validate_json(path.read_bytes())
