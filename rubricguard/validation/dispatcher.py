"""
Debounced validation dispatcher.

Each criterion card watches its (score, explanation) pair. Edits to either
field restart one shared debounce timer; when it expires the latest pair is
sent to the judge if the explanation is long enough and the score is a
finite number.

At most one request is in flight per card. A trigger that arrives while a
request is outstanding replaces the pending pair instead of queuing behind
it; the outstanding response is then stale and is discarded when it lands,
and the pending pair is sent next. Responses are matched to their request
id, so a late answer can never overwrite the result of newer input.
"""

import asyncio
import logging
import math
from collections.abc import Callable
from typing import Any, NamedTuple

from rubricguard.config import Settings, get_settings
from rubricguard.models import RubricCriterion, Submission, ValidationJudgment, ValidationPhase
from rubricguard.session.store import GradingStore
from rubricguard.validation.debounce import DebounceTimer
from rubricguard.validation.judge import Judge

LOG = logging.getLogger(__name__)


class ValidationRequest(NamedTuple):
    """Input snapshot a judgment request was issued for."""

    request_id: int
    score: float
    explanation: str


def parse_score(value: Any) -> float | None:
    """
    Parse a raw score field.

    Returns:
        The score as a finite float, or None when blank or not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return score if math.isfinite(score) else None


PhaseListener = Callable[["CriterionValidator"], None]


class CriterionValidator:
    """Validation state machine for one criterion of one submission."""

    def __init__(
        self,
        submission: Submission,
        criterion: RubricCriterion,
        judge: Judge,
        store: GradingStore | None = None,
        settings: Settings | None = None,
        on_phase_change: PhaseListener | None = None,
    ):
        self.submission = submission
        self.criterion = criterion
        self._judge = judge
        self._store = store
        self._settings = settings or get_settings()
        self._on_phase_change = on_phase_change

        self._timer = DebounceTimer(
            self._settings.debounce_delay_seconds,
            self._on_settled,
            name=f"{submission.id}/{criterion.id}",
        )
        self._raw_score: Any = None
        self._explanation = ""

        self._next_id = 0
        self._latest: ValidationRequest | None = None
        self._in_flight: ValidationRequest | None = None
        self._pending: ValidationRequest | None = None
        self._task: asyncio.Task[None] | None = None

        self.phase = ValidationPhase.UNVALIDATED
        self.judgment: ValidationJudgment | None = None
        self.judged_request: ValidationRequest | None = None
        self.requests_sent = 0
        self.stale_discarded = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.submission.id, self.criterion.id)

    @property
    def busy(self) -> bool:
        """Whether a debounce or a request is outstanding."""
        return self._timer.pending or self._task is not None

    @property
    def is_current(self) -> bool:
        """Whether the stored judgment matches the current inputs."""
        if self.judged_request is None:
            return False
        return (
            self.judged_request.score == parse_score(self._raw_score)
            and self.judged_request.explanation == self._explanation
        )

    # ------------------------------------------------------------------ edits

    def edit_score(self, value: Any) -> None:
        """Record a score edit and restart the debounce window."""
        self._timer.arm()
        self._raw_score = value
        self._withdraw_outdated()

    def edit_explanation(self, text: str) -> None:
        """Record an explanation edit and restart the debounce window."""
        self._timer.arm()
        self._explanation = text
        self._withdraw_outdated()

    def _withdraw_outdated(self) -> None:
        # the stored verdict always describes the stored score and explanation
        if self.judgment is not None and not self.is_current:
            self._write_store(None)

    def flush(self) -> None:
        """Skip the rest of the debounce window."""
        if self._timer.pending:
            self._timer.fire()

    def close(self) -> None:
        """Stop the timer and abandon any outstanding request."""
        self._timer.cancel()
        self._pending = None
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._in_flight = None

    async def wait_idle(self) -> None:
        """Wait until no debounce or request is outstanding."""
        while self.busy:
            if self._task is not None:
                await asyncio.wait({self._task})
            else:
                await asyncio.sleep(min(self._timer.delay, 0.05) or 0)

    # --------------------------------------------------------------- dispatch

    def ready_input(self) -> tuple[float, str] | None:
        """The (score, explanation) pair to judge, if it meets the preconditions."""
        score = parse_score(self._raw_score)
        if score is None:
            return None
        if len(self._explanation.strip()) <= self._settings.min_explanation_length:
            return None
        return score, self._explanation

    def _on_settled(self) -> None:
        ready = self.ready_input()
        if ready is None:
            LOG.debug("%s/%s settled without a judgeable input", *self.key)
            self._reset()
            return

        score, explanation = ready
        latest = self._latest
        if (
            latest is not None
            and (latest.score, latest.explanation) == (score, explanation)
            and self.phase is not ValidationPhase.ERROR
        ):
            if self.is_current:
                self._write_store(self.judgment)
            return

        self._next_id += 1
        request = ValidationRequest(self._next_id, score, explanation)
        self._latest = request

        if self._in_flight is not None:
            LOG.debug(
                "%s/%s request %d deferred behind in-flight request %d",
                *self.key,
                request.request_id,
                self._in_flight.request_id,
            )
            self._pending = request
            return

        self._start(request)

    def _start(self, request: ValidationRequest) -> None:
        self._in_flight = request
        self.requests_sent += 1
        self._set_phase(ValidationPhase.VALIDATING)
        LOG.debug("%s/%s dispatching request %d", *self.key, request.request_id)
        self._task = asyncio.get_running_loop().create_task(self._run(request))

    async def _run(self, request: ValidationRequest) -> None:
        judgment: ValidationJudgment | None = None
        try:
            judgment = await asyncio.wait_for(
                self._judge.judge(
                    self.submission.content,
                    self.criterion,
                    request.score,
                    request.explanation,
                ),
                timeout=self._settings.judge_timeout_seconds,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            LOG.warning(
                "Validation of %s/%s failed: %s: %s", *self.key, type(e).__name__, e
            )

        self._in_flight = None
        self._task = None

        if self._latest is None or request.request_id != self._latest.request_id:
            self.stale_discarded += 1
            LOG.debug("%s/%s discarding stale response %d", *self.key, request.request_id)
        elif judgment is None:
            self._apply(None, request)
        else:
            self._apply(judgment, request)

        if self._pending is not None:
            pending, self._pending = self._pending, None
            self._start(pending)

    def _reset(self) -> None:
        """Forget every request; an in-flight response will land as stale."""
        if self._latest is None and self.judgment is None and self.phase is ValidationPhase.UNVALIDATED:
            return
        self._latest = None
        self._pending = None
        self.judgment = None
        self.judged_request = None
        self._write_store(None)
        self._set_phase(ValidationPhase.UNVALIDATED)

    def _apply(self, judgment: ValidationJudgment | None, request: ValidationRequest) -> None:
        self.judgment = judgment
        self.judged_request = request if judgment is not None else None
        self._write_store(judgment)
        self._set_phase(
            ValidationPhase.from_status(judgment.status) if judgment else ValidationPhase.ERROR
        )

    def _write_store(self, judgment: ValidationJudgment | None) -> None:
        if self._store is not None:
            self._store.update(self.submission.id, self.criterion.id, {"validation": judgment})

    def _set_phase(self, phase: ValidationPhase) -> None:
        self.phase = phase
        if self._on_phase_change is not None:
            self._on_phase_change(self)


class ValidationDispatcher:
    """
    Owns the criterion validators of a grading session.

    Validators are created on first use and are independent: a slow or
    failing judgment on one card never blocks another.
    """

    def __init__(
        self,
        judge: Judge,
        store: GradingStore | None = None,
        settings: Settings | None = None,
        on_phase_change: PhaseListener | None = None,
    ):
        self._judge = judge
        self._store = store
        self._settings = settings or get_settings()
        self._on_phase_change = on_phase_change
        self._cards: dict[tuple[str, str], CriterionValidator] = {}

    def card(self, submission: Submission, criterion: RubricCriterion) -> CriterionValidator:
        """Return the validator for a criterion card, creating it if needed."""
        key = (submission.id, criterion.id)
        if key not in self._cards:
            self._cards[key] = CriterionValidator(
                submission,
                criterion,
                self._judge,
                store=self._store,
                settings=self._settings,
                on_phase_change=self._on_phase_change,
            )
        return self._cards[key]

    def get(self, submission_id: str, criterion_id: str) -> CriterionValidator | None:
        return self._cards.get((submission_id, criterion_id))

    def phase(self, submission_id: str, criterion_id: str) -> ValidationPhase:
        card = self.get(submission_id, criterion_id)
        return card.phase if card is not None else ValidationPhase.UNVALIDATED

    def phases(self, submission_id: str) -> dict[str, ValidationPhase]:
        """Phases of every card of a submission, keyed by criterion id."""
        return {
            criterion_id: card.phase
            for (sid, criterion_id), card in self._cards.items()
            if sid == submission_id
        }

    def flush(self) -> None:
        """Skip the remaining debounce window on every card."""
        for card in list(self._cards.values()):
            card.flush()

    async def drain(self) -> None:
        """Wait until every card is idle."""
        while any(card.busy for card in self._cards.values()):
            await asyncio.gather(*(card.wait_idle() for card in list(self._cards.values())))

    def cancel_all(self) -> None:
        """Stop every card; used when the session is discarded."""
        for card in self._cards.values():
            card.close()
        self._cards.clear()
