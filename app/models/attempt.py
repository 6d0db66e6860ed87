import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.core.database import Base, JSONType
from app.utils.clock import ensure_utc


class AttemptStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptStatus.COMPLETED, AttemptStatus.EXPIRED)


@dataclass(frozen=True)
class ProctoringState:
    """Snapshot of the integrity counters embedded in an attempt."""

    tab_switches: int = 0
    fullscreen_exits: int = 0
    copy_paste_attempts: int = 0
    suspicious: bool = False
    events: Tuple[dict, ...] = ()

    @property
    def total_warnings(self) -> int:
        return self.tab_switches + self.fullscreen_exits + self.copy_paste_attempts


class Attempt(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        # At most one attempt per candidate per test, ever
        UniqueConstraint("test_id", "candidate_id", name="uq_attempts_test_candidate"),
        Index("ix_attempts_status_expires_at", "status", "expires_at"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False, index=True)
    candidate_id = Column(Integer, nullable=False, index=True)

    status = Column(
        Enum(
            AttemptStatus,
            name="attempt_status",
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=AttemptStatus.NOT_STARTED,
    )

    # Time tracking (only set for the states that need them)
    started_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    time_spent_seconds = Column(Integer, nullable=True)

    # Insertion-ordered answer records:
    # [{"question_id": 1, "answer": "a", "is_correct": null, "time_spent": 12,
    #   "answered_at": "2024-01-01T10:00:00+00:00"}, ...]
    answers = Column(JSONType, nullable=False, default=list)

    # Scoring summary (always recomputed server-side)
    earned_points = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    percentage = Column(Integer, nullable=False, default=0)
    is_passed = Column(Boolean, nullable=False, default=False)
    auto_submitted = Column(Boolean, nullable=False, default=False)

    # Proctoring
    tab_switches = Column(Integer, nullable=False, default=0)
    fullscreen_exits = Column(Integer, nullable=False, default=0)
    copy_paste_attempts = Column(Integer, nullable=False, default=0)
    is_suspicious = Column(Boolean, nullable=False, default=False)
    proctoring_events = Column(
        JSONType, nullable=False, default=list
    )  # [{"type": "tab_switch", "occurred_at": "..."}, ...]

    # Optimistic concurrency
    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def begin(
        cls, test_id: int, candidate_id: int, started_at: datetime, duration_minutes: int
    ) -> "Attempt":
        attempt = cls(
            test_id=test_id,
            candidate_id=candidate_id,
            answers=[],
            earned_points=0,
            total_points=0,
            percentage=0,
            is_passed=False,
            auto_submitted=False,
            tab_switches=0,
            fullscreen_exits=0,
            copy_paste_attempts=0,
            is_suspicious=False,
            proctoring_events=[],
        )
        attempt.mark_started(started_at, duration_minutes)
        return attempt

    def mark_started(self, started_at: datetime, duration_minutes: int) -> None:
        self.status = AttemptStatus.IN_PROGRESS
        self.started_at = started_at
        self.expires_at = started_at + timedelta(minutes=duration_minutes)

    def mark_finished(self, status: AttemptStatus, finished_at: datetime) -> None:
        self.status = status
        self.completed_at = finished_at
        started_at = ensure_utc(self.started_at)
        if started_at is not None:
            self.time_spent_seconds = max(
                0, int((ensure_utc(finished_at) - started_at).total_seconds())
            )

    @property
    def is_terminal(self) -> bool:
        return AttemptStatus(self.status).is_terminal

    @property
    def has_timing(self) -> bool:
        return self.started_at is not None and self.expires_at is not None

    def is_overdue(self, now: datetime) -> bool:
        expires_at = ensure_utc(self.expires_at)
        return (
            self.status == AttemptStatus.IN_PROGRESS
            and expires_at is not None
            and now > expires_at
        )

    def remaining_seconds(self, now: datetime) -> int:
        expires_at = ensure_utc(self.expires_at)
        if expires_at is None or self.is_terminal:
            return 0
        return max(0, int((expires_at - now).total_seconds()))

    @property
    def correct_answers(self) -> int:
        return sum(1 for record in self.answers or [] if record.get("is_correct"))

    @property
    def duration_minutes_spent(self) -> int:
        return round((self.time_spent_seconds or 0) / 60)

    @property
    def proctoring(self) -> ProctoringState:
        return ProctoringState(
            tab_switches=self.tab_switches or 0,
            fullscreen_exits=self.fullscreen_exits or 0,
            copy_paste_attempts=self.copy_paste_attempts or 0,
            suspicious=bool(self.is_suspicious),
            events=tuple(self.proctoring_events or ()),
        )

    @property
    def total_warnings(self) -> int:
        return self.proctoring.total_warnings

    def answer_for(self, question_id: int) -> Optional[dict]:
        for record in self.answers or []:
            if record.get("question_id") == question_id:
                return record
        return None

    def __repr__(self):
        return (
            f"<Attempt(id={self.id}, test_id={self.test_id}, "
            f"candidate_id={self.candidate_id}, status={self.status})>"
        )
