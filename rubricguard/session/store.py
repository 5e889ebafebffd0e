"""
Grading state store.

The single source of truth for an active grading session: one
GradedSubmission per submission, one GradedCriterion per rubric criterion.
Entries are replaced wholesale on update, and reads hand out deep copies so
callers never observe a partial write.
"""

import logging
import math
from collections.abc import Callable, Mapping
from typing import Any, NamedTuple

from pydantic import ValidationError

from rubricguard.models import GradedCriterion, GradedSubmission, RubricCriterion, Submission

LOG = logging.getLogger(__name__)


class InvalidScoreError(ValueError):
    """Raised when a score is outside the criterion's point range."""

    def __init__(self, message: str, criterion_id: str | None = None):
        self.criterion_id = criterion_id
        super().__init__(message)


class StoreChange(NamedTuple):
    """A single applied update."""

    version: int
    submission_id: str
    criterion_id: str
    fields: frozenset[str]


Listener = Callable[[StoreChange], None]


class GradingStore:
    """
    In-memory grading state for one session.

    Consumers react to changes through subscribe() or by comparing the
    version counter, which increases on every applied update.
    """

    def __init__(self) -> None:
        self._submissions: list[GradedSubmission] = []
        self._criteria: dict[str, RubricCriterion] = {}
        self._listeners: list[Listener] = []
        self._changelog: list[StoreChange] = []
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def changelog(self) -> list[StoreChange]:
        return list(self._changelog)

    @property
    def submission_ids(self) -> list[str]:
        return [s.submission_id for s in self._submissions]

    def __len__(self) -> int:
        return len(self._submissions)

    def initialize(
        self, submissions: list[Submission], criteria: list[RubricCriterion]
    ) -> list[GradedSubmission]:
        """
        Start a new session, discarding any previous state.

        Args:
            submissions: Submissions to grade (any order).
            criteria: Rubric criteria, in rubric order.

        Returns:
            Snapshot of the freshly initialised state.
        """
        ordered = sorted(submissions, key=lambda s: s.grading_order)
        self._criteria = {c.id: c for c in criteria}
        self._submissions = [
            GradedSubmission(
                submission_id=s.id,
                criteria=[GradedCriterion(criterion_id=c.id) for c in criteria],
            )
            for s in ordered
        ]
        self._changelog = []
        self._version += 1
        LOG.info(
            "Initialized grading session: %d submissions x %d criteria",
            len(ordered),
            len(criteria),
        )
        return self.read()

    def clear(self) -> None:
        """Discard the session."""
        self._submissions = []
        self._criteria = {}
        self._changelog = []
        self._version += 1

    def update(self, submission_id: str, criterion_id: str, patch: Mapping[str, Any]) -> bool:
        """
        Replace one graded criterion with a patched copy.

        Args:
            submission_id: Submission being graded.
            criterion_id: Criterion being graded.
            patch: Field values to change (e.g. {"score": 20, "explanation": "..."}).

        Returns:
            True if the entry was updated, False if either id is unknown.

        Raises:
            InvalidScoreError: If the patched score is outside 0..max_points.
            ValidationError: If the patch names unknown fields or invalid values.
        """
        graded_submission = self._find(submission_id)
        if graded_submission is None:
            LOG.debug("Ignoring update for unknown submission %s", submission_id)
            return False

        index = next(
            (i for i, c in enumerate(graded_submission.criteria) if c.criterion_id == criterion_id),
            None,
        )
        if index is None:
            LOG.debug("Ignoring update for unknown criterion %s on %s", criterion_id, submission_id)
            return False

        current = graded_submission.criteria[index]
        if "score" in patch:
            self._check_score(criterion_id, patch["score"])

        try:
            replacement = GradedCriterion.model_validate(
                {**current.model_dump(), **patch, "criterion_id": criterion_id}
            )
        except ValidationError as e:
            if any(err["loc"] and err["loc"][0] == "score" for err in e.errors()):
                raise InvalidScoreError(f"Invalid score: {patch.get('score')!r}", criterion_id) from e
            raise

        criteria = list(graded_submission.criteria)
        criteria[index] = replacement
        graded_submission.criteria = criteria

        self._version += 1
        change = StoreChange(self._version, submission_id, criterion_id, frozenset(patch))
        self._changelog.append(change)
        self._notify(change)
        return True

    def read(self) -> list[GradedSubmission]:
        """Return a deep copy of every graded submission, in grading order."""
        return [s.model_copy(deep=True) for s in self._submissions]

    snapshot = read

    def get(self, submission_id: str) -> GradedSubmission | None:
        """Return a copy of one graded submission."""
        found = self._find(submission_id)
        return found.model_copy(deep=True) if found is not None else None

    def get_criterion(self, submission_id: str, criterion_id: str) -> GradedCriterion | None:
        """Return a copy of one graded criterion."""
        found = self._find(submission_id)
        if found is None:
            return None
        graded = found.criterion(criterion_id)
        return graded.model_copy(deep=True) if graded is not None else None

    def completion_status(self, submission_id: str) -> bool:
        """Whether every criterion of the submission has a score and an explanation."""
        found = self._find(submission_id)
        return found is not None and found.is_complete

    def submissions_before(self, submission_id: str) -> list[GradedSubmission]:
        """Copies of the submissions graded before the given one."""
        ids = self.submission_ids
        if submission_id not in ids:
            return []
        return [s.model_copy(deep=True) for s in self._submissions[: ids.index(submission_id)]]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _find(self, submission_id: str) -> GradedSubmission | None:
        return next((s for s in self._submissions if s.submission_id == submission_id), None)

    def _check_score(self, criterion_id: str, score: Any) -> None:
        if score is None:
            return
        criterion = self._criteria.get(criterion_id)
        try:
            value = float(score)
        except (TypeError, ValueError) as e:
            raise InvalidScoreError(f"Score is not a number: {score!r}", criterion_id) from e
        if not math.isfinite(value) or value < 0:
            raise InvalidScoreError(f"Score must be a finite non-negative number: {score!r}", criterion_id)
        if criterion is not None and value > criterion.max_points:
            raise InvalidScoreError(
                f"Score ({value:g}) exceeds max points ({criterion.max_points:g}) "
                f"for '{criterion.name}'",
                criterion_id,
            )

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            listener(change)
