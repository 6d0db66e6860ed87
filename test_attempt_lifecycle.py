from datetime import timedelta

import pytest

from app.core.exceptions import (
    AccessDenied,
    AlreadyCompleted,
    AttemptExpired,
    AttemptNotActive,
    AttemptNotFound,
    StoreConflict,
    TestNotAvailable,
    TestNotFound,
)
from app.models import Attempt, AttemptStatus
from app.services.attempt_store import AttemptStore
from app.utils.clock import ensure_utc

CANDIDATE = 101
OTHER_CANDIDATE = 202


class FlakyStore(AttemptStore):
    """Fails the first ``failures`` saves as if another writer got there first."""

    def __init__(self, db, failures=1):
        super().__init__(db)
        self.failures = failures
        self.saves = 0

    def save(self, attempt):
        self.saves += 1
        if self.failures:
            self.failures -= 1
            self.discard()
            raise StoreConflict()
        return super().save(attempt)


class RaceLosingStore(AttemptStore):
    """Reports no existing attempt on the first lookup, like a concurrent starter."""

    def __init__(self, db):
        super().__init__(db)
        self.blind_lookups = 1

    def get_by_test_and_candidate(self, test_id, candidate_id):
        if self.blind_lookups:
            self.blind_lookups -= 1
            return None
        return super().get_by_test_and_candidate(test_id, candidate_id)


class InterleavingStore(AttemptStore):
    """Runs ``after_first_save`` once, right after the first commit."""

    def __init__(self, db, after_first_save):
        super().__init__(db)
        self.after_first_save = after_first_save

    def save(self, attempt):
        saved = super().save(attempt)
        if self.after_first_save:
            hook, self.after_first_save = self.after_first_save, None
            hook()
        return saved


# ==================== start ====================


def test_start_creates_in_progress_attempt(service, sample_test, clock):
    attempt = service.start(sample_test.id, CANDIDATE)

    assert attempt.status == AttemptStatus.IN_PROGRESS
    assert ensure_utc(attempt.started_at) == clock()
    assert ensure_utc(attempt.expires_at) == clock() + timedelta(minutes=30)
    assert attempt.completed_at is None


def test_start_twice_returns_same_attempt(service, sample_test, db):
    first = service.start(sample_test.id, CANDIDATE)
    second = service.start(sample_test.id, CANDIDATE)

    assert first.id == second.id
    assert db.query(Attempt).filter(Attempt.test_id == sample_test.id).count() == 1


def test_concurrent_start_loser_rereads_winner(make_service, session_factory, sample_test):
    winner_session, loser_session = session_factory(), session_factory()
    try:
        winner = make_service(session=winner_session)
        loser = make_service(session=loser_session)
        loser.store = RaceLosingStore(loser_session)

        won = winner.start(sample_test.id, CANDIDATE)
        lost = loser.start(sample_test.id, CANDIDATE)

        assert won.id == lost.id
        assert (
            loser_session.query(Attempt)
            .filter(Attempt.test_id == sample_test.id, Attempt.candidate_id == CANDIDATE)
            .count()
            == 1
        )
    finally:
        winner_session.close()
        loser_session.close()


def test_start_unknown_test(service):
    with pytest.raises(TestNotFound):
        service.start(9999, CANDIDATE)


def test_start_after_completion_fails(service, sample_test):
    attempt = service.start(sample_test.id, CANDIDATE)
    service.submit(attempt.id, CANDIDATE)

    with pytest.raises(AlreadyCompleted):
        service.start(sample_test.id, CANDIDATE)


def test_start_initializes_missing_timing(service, sample_test, db, clock):
    stub = Attempt.begin(sample_test.id, CANDIDATE, clock(), 30)
    stub.status = AttemptStatus.NOT_STARTED
    stub.started_at = None
    stub.expires_at = None
    AttemptStore(db).create(stub)

    clock.advance(minutes=5)
    attempt = service.start(sample_test.id, CANDIDATE)

    assert attempt.id == stub.id
    assert attempt.status == AttemptStatus.IN_PROGRESS
    assert ensure_utc(attempt.started_at) == clock()
    assert ensure_utc(attempt.expires_at) == clock() + timedelta(minutes=30)


def test_start_rejects_unpublished_test(service, sample_test, db):
    sample_test.status = "draft"
    db.commit()

    with pytest.raises(TestNotAvailable):
        service.start(sample_test.id, CANDIDATE)
    assert db.query(Attempt).filter(Attempt.test_id == sample_test.id).count() == 0


def test_resume_rejected_once_test_is_archived(make_service, sample_test, db):
    attempt = make_service().start(sample_test.id, CANDIDATE)
    sample_test.status = "archived"
    db.commit()

    with pytest.raises(TestNotAvailable):
        make_service().start(sample_test.id, CANDIDATE)
    assert make_service().get_result(attempt.id, CANDIDATE).status == AttemptStatus.IN_PROGRESS


def test_start_on_overdue_attempt_expires_it(service, sample_test, clock):
    attempt = service.start(sample_test.id, CANDIDATE)
    clock.advance(minutes=31)

    with pytest.raises(AttemptExpired):
        service.start(sample_test.id, CANDIDATE)
    assert service.get_result(attempt.id, CANDIDATE).status == AttemptStatus.EXPIRED

    with pytest.raises(AlreadyCompleted):
        service.start(sample_test.id, CANDIDATE)


# ==================== answer ====================


def test_answer_upserts_in_insertion_order(service, sample_test, question_ids):
    q1, q2 = question_ids
    attempt = service.start(sample_test.id, CANDIDATE)

    service.answer(attempt.id, CANDIDATE, q1, "a", time_spent=12)
    service.answer(attempt.id, CANDIDATE, q2, "where")
    updated = service.answer(attempt.id, CANDIDATE, q1, "b", time_spent=20)

    assert [r["question_id"] for r in updated.answers] == [q1, q2]
    assert updated.answers[0]["answer"] == "b"
    assert updated.answers[0]["time_spent"] == 20
    assert all(r["is_correct"] is None for r in updated.answers)


def test_answer_at_exact_deadline_is_accepted(service, sample_test, question_ids, clock):
    attempt = service.start(sample_test.id, CANDIDATE)
    clock.advance(minutes=30)

    updated = service.answer(attempt.id, CANDIDATE, question_ids[0], "b")

    assert updated.status == AttemptStatus.IN_PROGRESS
    assert ensure_utc(updated.expires_at) == clock()

    clock.advance(seconds=1)
    with pytest.raises(AttemptExpired):
        service.answer(attempt.id, CANDIDATE, question_ids[1], "having")


def test_answer_requires_owner(service, sample_test, question_ids):
    attempt = service.start(sample_test.id, CANDIDATE)
    with pytest.raises(AccessDenied):
        service.answer(attempt.id, OTHER_CANDIDATE, question_ids[0], "b")


def test_answer_unknown_attempt(service):
    with pytest.raises(AttemptNotFound):
        service.answer(12345, CANDIDATE, 1, "a")


def test_answer_after_submit_is_rejected(service, sample_test, question_ids):
    attempt = service.start(sample_test.id, CANDIDATE)
    service.submit(attempt.id, CANDIDATE)

    with pytest.raises(AttemptNotActive):
        service.answer(attempt.id, CANDIDATE, question_ids[0], "b")


def test_answer_after_expiry_marks_attempt_expired(service, sample_test, question_ids, clock):
    attempt = service.start(sample_test.id, CANDIDATE)
    service.answer(attempt.id, CANDIDATE, question_ids[0], "b")
    clock.advance(minutes=30, seconds=1)

    with pytest.raises(AttemptExpired):
        service.answer(attempt.id, CANDIDATE, question_ids[1], "having")

    result = service.get_result(attempt.id, CANDIDATE)
    assert result.status == AttemptStatus.EXPIRED
    assert [r["question_id"] for r in result.answers] == [question_ids[0]]
    # answers given in time are still scored
    assert result.earned_points == 10
    assert result.time_spent_seconds == 30 * 60 + 1


def test_answer_retries_once_on_conflict(service, sample_test, question_ids, db):
    attempt = service.start(sample_test.id, CANDIDATE)
    service.store = FlakyStore(db, failures=1)

    updated = service.answer(attempt.id, CANDIDATE, question_ids[0], "b")

    assert service.store.saves == 2
    assert updated.answers[0]["answer"] == "b"


def test_answer_surfaces_recurring_conflict(service, sample_test, question_ids, db):
    attempt = service.start(sample_test.id, CANDIDATE)
    service.store = FlakyStore(db, failures=2)

    with pytest.raises(StoreConflict):
        service.answer(attempt.id, CANDIDATE, question_ids[0], "b")

    assert AttemptStore(db).get(attempt.id).answers == []


def test_answers_from_two_sessions_are_both_kept(make_service, session_factory, sample_test, question_ids):
    one, two = session_factory(), session_factory()
    try:
        first = make_service(session=one)
        second = make_service(session=two)
        attempt = first.start(sample_test.id, CANDIDATE)

        # Second session holds a stale copy when the first one writes
        stale = second.store.get(attempt.id)
        first.answer(attempt.id, CANDIDATE, question_ids[0], "b")
        stale.answers = [{"question_id": question_ids[1], "answer": "having"}]
        with pytest.raises(StoreConflict):
            second.store.save(stale)

        # Going through the service re-reads and applies on top
        second.answer(attempt.id, CANDIDATE, question_ids[1], "having")
        result = second.get_result(attempt.id, CANDIDATE)
        assert [r["question_id"] for r in result.answers] == question_ids
    finally:
        one.close()
        two.close()


# ==================== submit ====================


def test_submit_scores_attempt(service, sample_test, question_ids, clock):
    q1, q2 = question_ids
    attempt = service.start(sample_test.id, CANDIDATE)
    service.answer(attempt.id, CANDIDATE, q1, "b")
    service.answer(attempt.id, CANDIDATE, q2, "WHERE")
    clock.advance(minutes=12, seconds=30)

    result = service.submit(attempt.id, CANDIDATE)

    assert result.score == 10
    assert result.total_points == 20
    assert result.percentage == 50
    assert result.is_passed is True
    assert result.auto_submitted is False
    assert result.attempt.status == AttemptStatus.COMPLETED
    assert result.attempt.time_spent_seconds == 750
    assert ensure_utc(result.attempt.completed_at) == clock()
    assert [r["is_correct"] for r in result.attempt.answers] == [True, False]


def test_submit_twice_keeps_stored_score(service, sample_test, question_ids, clock):
    attempt = service.start(sample_test.id, CANDIDATE)
    service.answer(attempt.id, CANDIDATE, question_ids[0], "b")
    first = service.submit(attempt.id, CANDIDATE)
    clock.advance(minutes=1)

    with pytest.raises(AttemptNotActive):
        service.submit(attempt.id, CANDIDATE)

    stored = service.get_result(attempt.id, CANDIDATE)
    assert stored.percentage == first.percentage == 100
    assert ensure_utc(stored.completed_at) == ensure_utc(first.attempt.completed_at)


def test_submit_requires_owner(service, sample_test):
    attempt = service.start(sample_test.id, CANDIDATE)
    with pytest.raises(AccessDenied):
        service.submit(attempt.id, OTHER_CANDIDATE)


def test_submit_ignores_questions_from_other_tests(service, sample_test, question_ids):
    attempt = service.start(sample_test.id, CANDIDATE)
    service.answer(attempt.id, CANDIDATE, question_ids[0], "b")
    service.answer(attempt.id, CANDIDATE, 987654, "ghost")

    result = service.submit(attempt.id, CANDIDATE)

    assert result.total_points == 10
    assert result.percentage == 100
    assert result.attempt.answers[1]["is_correct"] is None


def test_submit_after_expiry(service, sample_test, clock):
    attempt = service.start(sample_test.id, CANDIDATE)
    clock.advance(hours=1)

    with pytest.raises(AttemptExpired):
        service.submit(attempt.id, CANDIDATE)
    with pytest.raises(AttemptNotActive):
        service.submit(attempt.id, CANDIDATE)


def test_percentage_always_in_range(service, sample_test, question_ids):
    attempt = service.start(sample_test.id, CANDIDATE)
    for qid in question_ids:
        service.answer(attempt.id, CANDIDATE, qid, "b" if qid == question_ids[0] else " having ")

    result = service.submit(attempt.id, CANDIDATE)

    assert 0 <= result.percentage <= 100
    assert result.percentage == 100


# ==================== get_result / sweep ====================


def test_get_result_requires_owner(service, sample_test):
    attempt = service.start(sample_test.id, CANDIDATE)
    with pytest.raises(AccessDenied):
        service.get_result(attempt.id, OTHER_CANDIDATE)


def test_get_result_before_expiry_is_read_only(service, sample_test):
    attempt = service.start(sample_test.id, CANDIDATE)
    version = attempt.version

    result = service.get_result(attempt.id, CANDIDATE)

    assert result.status == AttemptStatus.IN_PROGRESS
    assert result.version == version


def test_expire_overdue_sweep(service, sample_test, clock):
    stale = service.start(sample_test.id, CANDIDATE)
    clock.advance(minutes=20)
    fresh = service.start(sample_test.id, OTHER_CANDIDATE)
    clock.advance(minutes=15)

    assert service.expire_overdue() == 1

    assert service.get_result(stale.id, CANDIDATE).status == AttemptStatus.EXPIRED
    assert service.get_result(fresh.id, OTHER_CANDIDATE).status == AttemptStatus.IN_PROGRESS


def test_sweep_skips_attempts_expired_while_it_runs(
    make_service, session_factory, sample_test, clock, db
):
    first = make_service().start(sample_test.id, CANDIDATE)
    clock.advance(minutes=1)
    second = make_service().start(sample_test.id, OTHER_CANDIDATE)
    clock.advance(minutes=40)

    other = session_factory()
    try:
        reader = make_service(session=other)
        lazily_expired = {}

        def expire_second_on_access():
            attempt = reader.get_result(second.id, OTHER_CANDIDATE)
            lazily_expired["version"] = attempt.version

        sweeper = make_service()
        sweeper.store = InterleavingStore(db, expire_second_on_access)

        assert sweeper.expire_overdue() == 1

        stored = make_service(session=other).get_result(second.id, OTHER_CANDIDATE)
        assert stored.status == AttemptStatus.EXPIRED
        assert stored.version == lazily_expired["version"]
        assert make_service().get_result(first.id, CANDIDATE).status == AttemptStatus.EXPIRED
    finally:
        other.close()
