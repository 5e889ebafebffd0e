"""
Grading session orchestration.

Ties the pieces of a session together: the store holds the grades, every
edit is forwarded to the validation dispatcher, the consistency monitor
looks back at earlier submissions, and analytics are recomputed from the
store on demand.
"""

import asyncio
import logging

from rubricguard.analytics.aggregator import SessionSummary, summarize
from rubricguard.analytics.consistency import ConsistencyAlert, ConsistencyMonitor
from rubricguard.catalog.loader import Catalog
from rubricguard.config import Settings, get_settings
from rubricguard.models import (
    Assignment,
    GradedCriterion,
    GradedSubmission,
    RubricCriterion,
    Submission,
)
from rubricguard.session.store import GradingStore, InvalidScoreError
from rubricguard.validation.dispatcher import (
    CriterionValidator,
    PhaseListener,
    ValidationDispatcher,
    parse_score,
)
from rubricguard.validation.judge import Judge

LOG = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised when a session operation is not allowed in the current state."""


class GradingSession:
    """
    One grader working through one assignment.

    Submissions are graded in grading order; advancing past a submission
    requires every criterion to have a score and an explanation.
    """

    def __init__(
        self,
        catalog: Catalog,
        assignment_id: str,
        judge: Judge,
        settings: Settings | None = None,
        on_phase_change: PhaseListener | None = None,
    ):
        """
        Initialize the session.

        Raises:
            SessionError: If the assignment is unknown or has nothing to grade.
        """
        assignment = catalog.get_assignment(assignment_id)
        if assignment is None:
            raise SessionError(f"Unknown assignment: {assignment_id}")

        self._settings = settings or get_settings()
        self.assignment: Assignment = assignment
        self.criteria: list[RubricCriterion] = catalog.criteria_for(assignment_id)
        self.submissions: list[Submission] = catalog.submissions_for(assignment_id)
        if not self.criteria or not self.submissions:
            raise SessionError(f"Assignment {assignment_id} has no criteria or no submissions")

        self.store = GradingStore()
        self.store.initialize(self.submissions, self.criteria)
        self.dispatcher = ValidationDispatcher(
            judge, store=self.store, settings=self._settings, on_phase_change=on_phase_change
        )
        self.monitor = ConsistencyMonitor(self._settings.consistency_threshold_step)
        self.current_index = 0

    # ------------------------------------------------------------- navigation

    @property
    def current_submission(self) -> Submission:
        return self.submissions[self.current_index]

    @property
    def is_last(self) -> bool:
        return self.current_index == len(self.submissions) - 1

    @property
    def can_advance(self) -> bool:
        """Whether the current submission is fully graded."""
        return self.store.completion_status(self.current_submission.id)

    def next_submission(self) -> Submission:
        """
        Move to the next submission.

        Raises:
            SessionError: If the current submission is incomplete or is the last one.
        """
        if not self.can_advance:
            raise SessionError(
                f"Submission {self.current_submission.id} is not fully graded yet"
            )
        if self.is_last:
            raise SessionError("Already at the last submission")
        self.current_index += 1
        return self.current_submission

    def previous_submission(self) -> Submission:
        """Move back to the previous submission."""
        if self.current_index == 0:
            raise SessionError("Already at the first submission")
        self.current_index -= 1
        return self.current_submission

    # ------------------------------------------------------------------ edits

    def criterion(self, criterion_id: str) -> RubricCriterion:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        raise SessionError(f"Unknown criterion: {criterion_id}")

    def card(self, criterion_id: str) -> CriterionValidator:
        """The validator of a criterion on the current submission."""
        return self.dispatcher.card(self.current_submission, self.criterion(criterion_id))

    def graded(self, criterion_id: str) -> GradedCriterion:
        graded = self.store.get_criterion(self.current_submission.id, criterion_id)
        if graded is None:
            raise SessionError(f"Unknown criterion: {criterion_id}")
        return graded

    def edit_score(self, criterion_id: str, value: str | float | None) -> ConsistencyAlert | None:
        """
        Record a score edit on the current submission.

        A blank value clears the score.

        Returns:
            The consistency alert for the new score, if any.

        Raises:
            InvalidScoreError: If the value is not a number within 0..max_points.
            SessionError: If called outside a running event loop.
        """
        score = parse_score(value)
        if score is None and value is not None and str(value).strip():
            raise InvalidScoreError(f"Score is not a number: {value!r}", criterion_id)

        self._require_event_loop()
        self.store.update(self.current_submission.id, criterion_id, {"score": score})
        self.card(criterion_id).edit_score(score)
        return self.consistency_alert(criterion_id)

    def edit_explanation(self, criterion_id: str, text: str) -> None:
        """Record an explanation edit on the current submission."""
        self._require_event_loop()
        self.store.update(self.current_submission.id, criterion_id, {"explanation": text})
        self.card(criterion_id).edit_explanation(text)

    @staticmethod
    def _require_event_loop() -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            raise SessionError("Score and explanation edits need a running event loop") from None

    def attach_highlight(self, criterion_id: str, excerpt: str) -> None:
        """
        Attach an excerpt of the current submission as evidence.

        Raises:
            ValueError: If the excerpt is not part of the submission.
        """
        if not excerpt or excerpt not in self.current_submission.content:
            raise ValueError("Highlighted excerpt must be taken from the submission text")
        self.store.update(
            self.current_submission.id, criterion_id, {"highlighted_excerpt": excerpt}
        )

    def clear_highlight(self, criterion_id: str) -> None:
        self.store.update(self.current_submission.id, criterion_id, {"highlighted_excerpt": None})

    # -------------------------------------------------------------- analytics

    def consistency_alert(self, criterion_id: str) -> ConsistencyAlert | None:
        """Compare the current score against submissions graded before this one."""
        criterion = self.criterion(criterion_id)
        graded = self.graded(criterion_id)
        return self.monitor.check(
            criterion,
            graded.score,
            self.store.submissions_before(self.current_submission.id),
        )

    def live_summary(self) -> SessionSummary:
        """Analytics over everything graded so far."""
        return summarize(self.store.read(), self.criteria, self._settings)

    # -------------------------------------------------------------- lifecycle

    async def settle(self) -> None:
        """Send any debounced edits now and wait for outstanding judgments."""
        self.dispatcher.flush()
        await self.dispatcher.drain()

    def finalize(self) -> list[GradedSubmission]:
        """
        Hand over the graded session.

        Raises:
            SessionError: If the last submission is not fully graded.
        """
        graded = self.store.read()
        if not self.is_last or not all(s.is_complete for s in graded):
            raise SessionError("Grade every submission before finalizing the session")
        LOG.info("Finalized session for %s", self.assignment.id)
        return graded

    def close(self) -> None:
        """Discard the session."""
        self.dispatcher.cancel_all()
        self.store.clear()
