# app/services/attempt.py
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AccessDenied,
    AlreadyCompleted,
    AttemptError,
    AttemptExpired,
    AttemptNotActive,
    AttemptNotFound,
    DuplicateAttempt,
    StoreConflict,
    TestNotAvailable,
)
from app.models.attempt import Attempt, AttemptStatus, ProctoringState
from app.services.attempt_store import AttemptStore
from app.services.definitions import (
    DbTestDefinitions,
    TestDefinition,
    TestDefinitionLookup,
)
from app.services.notification import NotificationDispatcher, get_notification_dispatcher
from app.services.proctoring import AUTO_SUBMIT_TEMPLATE, ProctoringEngine
from app.services.question_oracle import DbQuestionOracle, QuestionOracle
from app.services.scoring import ScoreSummary, apply_correctness, score_answers
from app.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Read-modify-write attempts per mutation (first try + one retry)
MUTATION_TRIES = 2
# start() must never surface a conflict for a legitimate re-entry
START_TRIES = 5


@dataclass(frozen=True)
class SubmitResult:
    attempt: Attempt
    earned_points: int
    total_points: int
    percentage: int
    is_passed: bool
    auto_submitted: bool = False

    @property
    def score(self) -> int:
        return self.earned_points

    @classmethod
    def from_attempt(cls, attempt: Attempt) -> "SubmitResult":
        return cls(
            attempt=attempt,
            earned_points=attempt.earned_points,
            total_points=attempt.total_points,
            percentage=attempt.percentage,
            is_passed=attempt.is_passed,
            auto_submitted=attempt.auto_submitted,
        )


@dataclass(frozen=True)
class FlagResult:
    attempt: Attempt
    counters: ProctoringState
    recorded: bool
    auto_submitted: bool
    result: Optional[SubmitResult] = None

    @property
    def total_warnings(self) -> int:
        return self.counters.total_warnings


class AttemptService:
    """
    Lifecycle of a candidate's attempt: start, answer, submit, flag, expire.

    Every mutation is a read-modify-write against the store. A concurrent
    write is detected by the store and the whole mutation is replayed once
    on a fresh copy of the attempt.
    """

    def __init__(
        self,
        db: Session,
        oracle: Optional[QuestionOracle] = None,
        tests: Optional[TestDefinitionLookup] = None,
        notifier: Optional[NotificationDispatcher] = None,
        warning_limit: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.store = AttemptStore(db)
        self.tests = tests or DbTestDefinitions(db)
        self.oracle = oracle
        self.notifier = notifier if notifier is not None else get_notification_dispatcher()
        self.proctoring = ProctoringEngine(
            warning_limit if warning_limit is not None else settings.proctor_warning_limit
        )
        self.clock = clock
        self._tests: Dict[int, TestDefinition] = {}

    # ==================== Helpers ====================

    def now(self) -> datetime:
        return ensure_utc(self.clock())

    def _test(self, test_id: int) -> TestDefinition:
        if test_id not in self._tests:
            self._tests[test_id] = self.tests.get(test_id)
        return self._tests[test_id]

    def _oracle_for(self, test_id: int) -> QuestionOracle:
        if self.oracle is not None:
            return self.oracle
        return DbQuestionOracle(self.db, test_id=test_id)

    def _load_owned(self, attempt_id: int, candidate_id: int) -> Attempt:
        attempt = self.store.get(attempt_id)
        if not attempt:
            raise AttemptNotFound()
        if attempt.candidate_id != candidate_id:
            logger.warning(
                f"Candidate {candidate_id} tried to access attempt {attempt_id} "
                f"owned by {attempt.candidate_id}"
            )
            raise AccessDenied()
        return attempt

    @staticmethod
    def _require_active(attempt: Attempt) -> None:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise AttemptNotActive()

    def _finish(
        self,
        attempt: Attempt,
        status: AttemptStatus,
        now: datetime,
        auto_submitted: bool = False,
    ) -> ScoreSummary:
        """Score the current answers and move the attempt to a terminal state."""
        test = self._test(attempt.test_id)
        oracle = self._oracle_for(attempt.test_id)
        answers = list(attempt.answers or [])

        prefetch = getattr(oracle, "prefetch", None)
        if prefetch is not None:
            prefetch(record["question_id"] for record in answers)

        summary = score_answers(answers, oracle, test.passing_score)

        attempt.answers = apply_correctness(answers, summary)
        attempt.earned_points = summary.earned_points
        attempt.total_points = summary.total_points
        attempt.percentage = summary.percentage
        attempt.is_passed = summary.is_passed
        attempt.auto_submitted = auto_submitted
        attempt.mark_finished(status, now)
        return summary

    def _run(
        self,
        attempt_id: int,
        candidate_id: int,
        mutation: Optional[Callable[[Attempt, datetime], Any]] = None,
    ) -> Tuple[Attempt, Any]:
        """
        Load, expire-check, mutate and save one attempt.

        With ``mutation=None`` this is a read: an overdue attempt is still
        moved to ``expired`` but no error is raised.
        """
        for try_no in range(1, MUTATION_TRIES + 1):
            attempt = self._load_owned(attempt_id, candidate_id)
            now = self.now()
            expired = attempt.is_overdue(now)
            outcome = None

            if expired:
                self._finish(attempt, AttemptStatus.EXPIRED, now)
            elif mutation is not None:
                try:
                    outcome = mutation(attempt, now)
                except AttemptError:
                    self.store.discard()
                    raise

            try:
                self.store.save(attempt)
            except StoreConflict:
                if try_no == MUTATION_TRIES:
                    logger.error(f"Attempt {attempt_id}: conflict persisted after retry")
                    raise
                logger.warning(f"Attempt {attempt_id}: concurrent update, retrying")
                continue

            if expired:
                logger.info(f"Attempt {attempt_id} expired at {attempt.expires_at}")
                if mutation is not None:
                    raise AttemptExpired()
            return attempt, outcome

        raise StoreConflict()

    # ==================== Operations ====================

    def start(self, test_id: int, candidate_id: int) -> Attempt:
        """Create the candidate's attempt, or resume the existing one."""
        test = self._test(test_id)
        if not test.is_available:
            logger.info(f"Start rejected: test {test_id} is {test.status}")
            raise TestNotAvailable()
        attempt = self.store.get_by_test_and_candidate(test_id, candidate_id)

        if attempt is None:
            try:
                attempt = self.store.create(
                    Attempt.begin(test_id, candidate_id, self.now(), test.duration_minutes)
                )
                logger.info(
                    f"Attempt {attempt.id} started: test={test_id} candidate={candidate_id}"
                )
                return attempt
            except DuplicateAttempt:
                logger.info(
                    f"Concurrent start for test={test_id} candidate={candidate_id}; "
                    "using the existing attempt"
                )

        for _ in range(START_TRIES):
            attempt = self.store.get_by_test_and_candidate(test_id, candidate_id)
            if attempt is None:
                raise AttemptNotFound()
            if attempt.is_terminal:
                raise AlreadyCompleted()

            now = self.now()
            if attempt.is_overdue(now):
                self._finish(attempt, AttemptStatus.EXPIRED, now)
            elif attempt.status == AttemptStatus.NOT_STARTED or not attempt.has_timing:
                attempt.mark_started(now, test.duration_minutes)
            else:
                logger.info(f"Attempt {attempt.id} resumed by candidate {candidate_id}")
                return attempt

            try:
                self.store.save(attempt)
            except StoreConflict:
                continue

            if attempt.status == AttemptStatus.EXPIRED:
                raise AttemptExpired()
            logger.info(f"Attempt {attempt.id} timing initialized on resume")
            return attempt

        # Contended beyond START_TRIES: whatever is stored now is the answer
        attempt = self.store.get_by_test_and_candidate(test_id, candidate_id)
        if attempt is None:
            raise AttemptNotFound()
        if attempt.is_terminal:
            raise AlreadyCompleted()
        return attempt

    def answer(
        self,
        attempt_id: int,
        candidate_id: int,
        question_id: int,
        value: Any,
        time_spent: int = 0,
    ) -> Attempt:
        """Upsert the answer for one question. Correctness is left to scoring."""

        def apply(attempt: Attempt, now: datetime) -> None:
            self._require_active(attempt)
            record = {
                "question_id": question_id,
                "answer": value,
                "is_correct": None,
                "time_spent": max(0, int(time_spent or 0)),
                "answered_at": now.isoformat(),
            }
            answers = list(attempt.answers or [])
            for index, existing in enumerate(answers):
                if existing.get("question_id") == question_id:
                    answers[index] = record
                    break
            else:
                answers.append(record)
            attempt.answers = answers

        attempt, _ = self._run(attempt_id, candidate_id, apply)
        return attempt

    def submit(self, attempt_id: int, candidate_id: int) -> SubmitResult:
        def apply(attempt: Attempt, now: datetime) -> None:
            self._require_active(attempt)
            self._finish(attempt, AttemptStatus.COMPLETED, now)

        attempt, _ = self._run(attempt_id, candidate_id, apply)
        logger.info(
            f"Attempt {attempt.id} submitted: {attempt.earned_points}/"
            f"{attempt.total_points} ({attempt.percentage}%)"
        )
        return SubmitResult.from_attempt(attempt)

    def flag(
        self,
        attempt_id: int,
        candidate_id: int,
        kind: str,
        occurred_at: Optional[datetime] = None,
    ) -> FlagResult:
        """
        Record a proctoring violation.

        Flags on a finished attempt are accepted and ignored. Reaching the
        warning limit submits the attempt through the same path as a manual
        submit and notifies the test owner without waiting for delivery.
        """
        self.proctoring.validate_kind(kind)

        def apply(attempt: Attempt, now: datetime) -> Tuple[bool, bool]:
            if attempt.is_terminal:
                return False, False
            self._require_active(attempt)
            self.proctoring.record(attempt, kind, ensure_utc(occurred_at) or now)
            if self.proctoring.threshold_reached(attempt):
                self._finish(attempt, AttemptStatus.COMPLETED, now, auto_submitted=True)
                return True, True
            return True, False

        attempt, (recorded, auto_submitted) = self._run(attempt_id, candidate_id, apply)

        if not recorded:
            logger.info(f"Ignoring {kind} on finished attempt {attempt_id}")
            return FlagResult(
                attempt=attempt,
                counters=attempt.proctoring,
                recorded=False,
                auto_submitted=False,
            )

        result = None
        if auto_submitted:
            logger.warning(
                f"Attempt {attempt.id} auto-submitted after "
                f"{attempt.total_warnings} proctoring warnings"
            )
            result = SubmitResult.from_attempt(attempt)
            self._notify_owner(attempt)

        return FlagResult(
            attempt=attempt,
            counters=attempt.proctoring,
            recorded=True,
            auto_submitted=auto_submitted,
            result=result,
        )

    def get_result(self, attempt_id: int, candidate_id: int) -> Attempt:
        attempt, _ = self._run(attempt_id, candidate_id)
        return attempt

    def expire_overdue(self, limit: int = 200) -> int:
        """Move overdue in-progress attempts to ``expired``; returns how many."""
        now = self.now()
        expired = 0
        for attempt in self.store.list_overdue(now, limit):
            # Earlier commits reload the batch; skip rows finished since the query
            if not attempt.is_overdue(now):
                continue
            self._finish(attempt, AttemptStatus.EXPIRED, now)
            try:
                self.store.save(attempt)
            except StoreConflict:
                # Touched concurrently; the lazy check on next access handles it
                continue
            expired += 1
        if expired:
            logger.info(f"Expired {expired} overdue attempt(s)")
        return expired

    def _notify_owner(self, attempt: Attempt) -> None:
        try:
            test = self._test(attempt.test_id)
            self.notifier.enqueue(
                test.owner_telegram_id,
                AUTO_SUBMIT_TEMPLATE,
                self.proctoring.owner_alert(attempt, test),
            )
        except Exception as e:
            logger.error(f"Failed to enqueue auto-submit notification: {e}")
