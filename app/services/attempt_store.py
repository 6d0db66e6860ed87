# app/services/attempt_store.py
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.decorator import db_exception
from app.core.exceptions import DuplicateAttempt, StoreConflict
from app.models.attempt import Attempt, AttemptStatus

logger = logging.getLogger(__name__)


class AttemptStore:
    """
    Durable read/write of attempt records.

    Uniqueness of (test_id, candidate_id) is enforced by the table's unique
    constraint; concurrent writers to one attempt are detected through the
    ``version`` column and reported as ``StoreConflict``.
    """

    def __init__(self, db: Session):
        self.db = db

    @db_exception
    def get(self, attempt_id: int) -> Optional[Attempt]:
        return (
            self.db.query(Attempt)
            .filter(Attempt.id == attempt_id)
            .populate_existing()
            .first()
        )

    @db_exception
    def get_by_test_and_candidate(
        self, test_id: int, candidate_id: int
    ) -> Optional[Attempt]:
        return (
            self.db.query(Attempt)
            .filter(Attempt.test_id == test_id, Attempt.candidate_id == candidate_id)
            .populate_existing()
            .first()
        )

    @db_exception
    def create(self, attempt: Attempt) -> Attempt:
        self.db.add(attempt)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # Only a row for the same pair means we lost the creation race;
            # any other integrity failure is a genuine error.
            if self.get_by_test_and_candidate(attempt.test_id, attempt.candidate_id):
                logger.info(
                    f"Attempt for test {attempt.test_id} / candidate "
                    f"{attempt.candidate_id} already exists"
                )
                raise DuplicateAttempt()
            raise e
        self.db.refresh(attempt)
        return attempt

    @db_exception
    def save(self, attempt: Attempt) -> Attempt:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Stale write detected for attempt {attempt.id}")
            raise StoreConflict()
        self.db.refresh(attempt)
        return attempt

    def discard(self) -> None:
        """Drop pending in-memory changes."""
        self.db.rollback()

    @db_exception
    def list_overdue(self, now: datetime, limit: int = 200) -> List[Attempt]:
        return (
            self.db.query(Attempt)
            .filter(
                Attempt.status == AttemptStatus.IN_PROGRESS,
                Attempt.expires_at.isnot(None),
                Attempt.expires_at < now,
            )
            .order_by(Attempt.expires_at)
            .limit(limit)
            .all()
        )
