"""
Unit tests for the grading state store.
"""

import pytest
from pydantic import ValidationError

from rubricguard.models import (
    GradedCriterion,
    GradedSubmission,
    JudgmentStatus,
    RubricCriterion,
    Submission,
    ValidationJudgment,
)
from rubricguard.session import GradingStore, InvalidScoreError, StoreChange


@pytest.fixture
def store(sample_submissions: list[Submission], sample_criteria: list[RubricCriterion]) -> GradingStore:
    store = GradingStore()
    store.initialize(sample_submissions, sample_criteria)
    return store


def _complete(store: GradingStore, submission_id: str, criteria: list[RubricCriterion]) -> None:
    for criterion in criteria:
        store.update(submission_id, criterion.id, {"score": 10, "explanation": "Solid work overall."})


class TestInitialize:
    """Tests for GradingStore.initialize."""

    def test_one_entry_per_submission_and_criterion(
        self, sample_submissions: list[Submission], sample_criteria: list[RubricCriterion]
    ) -> None:
        """N submissions x M criteria gives N entries with M null-scored criteria each."""
        store = GradingStore()
        graded = store.initialize(sample_submissions, sample_criteria)

        assert len(graded) == len(sample_submissions)
        for submission in graded:
            assert [c.criterion_id for c in submission.criteria] == [c.id for c in sample_criteria]
            assert all(c.score is None for c in submission.criteria)
            assert all(c.explanation == "" for c in submission.criteria)
            assert all(c.validation is None for c in submission.criteria)

    def test_sorted_by_grading_order(self, sample_criteria: list[RubricCriterion]) -> None:
        """Entries follow grading order regardless of input order."""
        submissions = [
            Submission(id="late", assignment_id="A1", student_id="X", content="b", grading_order=3),
            Submission(id="early", assignment_id="A1", student_id="Y", content="a", grading_order=1),
            Submission(id="middle", assignment_id="A1", student_id="Z", content="c", grading_order=2),
        ]
        store = GradingStore()
        graded = store.initialize(submissions, sample_criteria)

        assert [s.submission_id for s in graded] == ["early", "middle", "late"]
        assert store.submission_ids == ["early", "middle", "late"]

    def test_reinitialize_discards_previous_state(
        self, store: GradingStore, sample_submissions: list[Submission], sample_criteria: list[RubricCriterion]
    ) -> None:
        """A new session starts from scratch."""
        store.update("S1", "C1", {"score": 20})
        store.initialize(sample_submissions, sample_criteria)

        assert store.get_criterion("S1", "C1").score is None
        assert store.changelog == []

    def test_empty_session(self) -> None:
        store = GradingStore()
        assert store.initialize([], []) == []
        assert len(store) == 0


class TestUpdate:
    """Tests for GradingStore.update."""

    def test_update_replaces_criterion(self, store: GradingStore) -> None:
        assert store.update("S1", "C1", {"score": 20, "explanation": "Clear thesis."}) is True

        graded = store.get_criterion("S1", "C1")
        assert graded.score == 20
        assert graded.explanation == "Clear thesis."

    def test_patch_keeps_other_fields(self, store: GradingStore) -> None:
        store.update("S1", "C1", {"score": 20})
        store.update("S1", "C1", {"explanation": "Clear thesis."})

        graded = store.get_criterion("S1", "C1")
        assert graded.score == 20
        assert graded.explanation == "Clear thesis."

    def test_update_other_entries_untouched(self, store: GradingStore) -> None:
        store.update("S1", "C1", {"score": 20})

        assert store.get_criterion("S1", "C2").score is None
        assert store.get_criterion("S2", "C1").score is None

    def test_unknown_submission_is_noop(self, store: GradingStore) -> None:
        """Unknown ids are ignored rather than raising."""
        before = store.read()
        version = store.version

        assert store.update("S404", "C1", {"score": 1}) is False
        assert store.read() == before
        assert store.version == version

    def test_unknown_criterion_is_noop(self, store: GradingStore) -> None:
        version = store.version

        assert store.update("S1", "C404", {"score": 1}) is False
        assert store.version == version

    def test_score_above_max_points_rejected(self, store: GradingStore) -> None:
        """C1 is worth 25 points."""
        with pytest.raises(InvalidScoreError) as exc_info:
            store.update("S1", "C1", {"score": 26})

        assert exc_info.value.criterion_id == "C1"
        assert "exceeds max points" in str(exc_info.value)
        assert store.get_criterion("S1", "C1").score is None

    def test_max_points_accepted(self, store: GradingStore) -> None:
        assert store.update("S1", "C1", {"score": 25}) is True

    @pytest.mark.parametrize("score", [-1, float("nan"), float("inf"), "abc"])
    def test_invalid_scores_rejected(self, store: GradingStore, score: object) -> None:
        with pytest.raises(InvalidScoreError):
            store.update("S1", "C1", {"score": score})

    def test_score_can_be_cleared(self, store: GradingStore) -> None:
        store.update("S1", "C1", {"score": 20})
        store.update("S1", "C1", {"score": None})

        assert store.get_criterion("S1", "C1").score is None

    def test_unknown_field_rejected(self, store: GradingStore) -> None:
        with pytest.raises(ValidationError):
            store.update("S1", "C1", {"grade": "A"})

    def test_criterion_id_cannot_be_patched(self, store: GradingStore) -> None:
        store.update("S1", "C1", {"criterion_id": "C2", "score": 5})

        graded = store.get("S1")
        assert [c.criterion_id for c in graded.criteria] == ["C1", "C2", "C3", "C4"]
        assert graded.criteria[0].score == 5

    def test_validation_stored(self, store: GradingStore, supported_judgment: ValidationJudgment) -> None:
        store.update("S1", "C1", {"validation": supported_judgment})

        graded = store.get_criterion("S1", "C1")
        assert graded.validation == supported_judgment
        assert graded.validation.status is JudgmentStatus.SUPPORTED


class TestSnapshots:
    """Tests for read consistency."""

    def test_read_returns_copies(self, store: GradingStore) -> None:
        """Mutating a snapshot never leaks into the store."""
        snapshot = store.read()
        snapshot[0].criteria[0].score = 3
        snapshot[0].criteria.append(GradedCriterion(criterion_id="extra"))

        assert store.get_criterion("S1", "C1").score is None
        assert len(store.get("S1").criteria) == 4

    def test_earlier_snapshot_unchanged_by_update(self, store: GradingStore) -> None:
        snapshot = store.snapshot()
        store.update("S1", "C1", {"score": 20})

        assert snapshot[0].criteria[0].score is None
        assert store.read()[0].criteria[0].score == 20

    def test_get_unknown(self, store: GradingStore) -> None:
        assert store.get("S404") is None
        assert store.get_criterion("S1", "C404") is None
        assert store.get_criterion("S404", "C1") is None

    def test_submissions_before(self, store: GradingStore) -> None:
        assert store.submissions_before("S1") == []
        assert [s.submission_id for s in store.submissions_before("S3")] == ["S1", "S2"]
        assert store.submissions_before("S404") == []


class TestCompletionStatus:
    """Tests for completion gating."""

    def test_fresh_submission_incomplete(self, store: GradingStore) -> None:
        assert store.completion_status("S1") is False

    def test_complete_when_every_criterion_scored_and_explained(
        self, store: GradingStore, sample_criteria: list[RubricCriterion]
    ) -> None:
        _complete(store, "S1", sample_criteria)

        assert store.completion_status("S1") is True
        assert store.completion_status("S2") is False

    def test_one_missing_explanation(
        self, store: GradingStore, sample_criteria: list[RubricCriterion]
    ) -> None:
        _complete(store, "S1", sample_criteria)
        store.update("S1", "C3", {"explanation": ""})

        assert store.completion_status("S1") is False

    def test_whitespace_explanation_incomplete(
        self, store: GradingStore, sample_criteria: list[RubricCriterion]
    ) -> None:
        _complete(store, "S1", sample_criteria)
        store.update("S1", "C2", {"explanation": "   "})

        assert store.completion_status("S1") is False

    def test_zero_score_counts_as_scored(
        self, store: GradingStore, sample_criteria: list[RubricCriterion]
    ) -> None:
        _complete(store, "S1", sample_criteria)
        store.update("S1", "C4", {"score": 0})

        assert store.completion_status("S1") is True

    def test_unknown_submission(self, store: GradingStore) -> None:
        assert store.completion_status("S404") is False


class TestChangeTracking:
    """Tests for the version counter, changelog and listeners."""

    def test_version_increases_on_update(self, store: GradingStore) -> None:
        version = store.version
        store.update("S1", "C1", {"score": 20})
        store.update("S1", "C1", {"explanation": "Good."})

        assert store.version == version + 2

    def test_changelog_records_fields(self, store: GradingStore) -> None:
        store.update("S2", "C3", {"score": 12, "explanation": "Some evidence."})

        (change,) = store.changelog
        assert change == StoreChange(store.version, "S2", "C3", frozenset({"score", "explanation"}))

    def test_subscribe_and_unsubscribe(self, store: GradingStore) -> None:
        received: list[StoreChange] = []
        unsubscribe = store.subscribe(received.append)

        store.update("S1", "C1", {"score": 20})
        unsubscribe()
        store.update("S1", "C1", {"score": 21})

        assert len(received) == 1
        assert received[0].criterion_id == "C1"

    def test_listener_not_called_for_noop(self, store: GradingStore) -> None:
        received: list[StoreChange] = []
        store.subscribe(received.append)

        store.update("S404", "C1", {"score": 1})

        assert received == []

    def test_clear(self, store: GradingStore) -> None:
        version = store.version
        store.clear()

        assert len(store) == 0
        assert store.read() == []
        assert store.version == version + 1


class TestGradedModels:
    """Tests for the graded state models."""

    def test_total_score_treats_missing_as_zero(self) -> None:
        graded = GradedSubmission(
            submission_id="S1",
            criteria=[GradedCriterion(criterion_id="C1"), GradedCriterion(criterion_id="C2", score=20)],
        )

        assert graded.total_score == 20
        assert graded.is_complete is False

    def test_non_finite_score_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GradedCriterion(criterion_id="C1", score=float("nan"))

    def test_json_round_trip(self, supported_judgment: ValidationJudgment) -> None:
        graded = GradedSubmission(
            submission_id="S1",
            criteria=[
                GradedCriterion(
                    criterion_id="C1",
                    score=20,
                    explanation="Clear thesis.",
                    validation=supported_judgment,
                )
            ],
        )

        assert GradedSubmission.model_validate_json(graded.model_dump_json()) == graded
