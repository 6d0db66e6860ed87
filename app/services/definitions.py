# app/services/definitions.py
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from app.core.exceptions import TestNotFound
from app.models.test import TEST_STATUS_PUBLISHED, Test


@dataclass(frozen=True)
class TestDefinition:
    __test__ = False

    id: int
    title: str
    duration_minutes: int
    passing_score: int
    owner_id: int
    owner_telegram_id: Optional[str] = None
    status: str = TEST_STATUS_PUBLISHED

    @property
    def is_available(self) -> bool:
        return self.status == TEST_STATUS_PUBLISHED


class TestDefinitionLookup(Protocol):
    def get(self, test_id: int) -> TestDefinition: ...


class DbTestDefinitions:
    """Reads test settings (duration, passing score, owner) from the tests table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, test_id: int) -> TestDefinition:
        test = self.db.query(Test).filter(Test.id == test_id).first()
        if not test:
            raise TestNotFound()
        return TestDefinition(
            id=test.id,
            title=test.title,
            duration_minutes=test.duration_minutes,
            passing_score=test.passing_score or 0,
            owner_id=test.owner_id,
            owner_telegram_id=test.owner_telegram_id,
            status=test.status,
        )
