import os

# Configure the app before anything under app/ is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TELEGRAM_NOTIFICATION_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.database import Base, create_db_engine
from app.models import Question, Test
from app.services.attempt import AttemptService


class FakeClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingDispatcher:
    """Collects enqueued notifications instead of delivering them."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def enqueue(self, recipient, template_kind, data):
        if self.fail:
            raise RuntimeError("notification queue unavailable")
        self.sent.append((recipient, template_kind, data))
        return None


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'attempts.db'}")
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return RecordingDispatcher()


@pytest.fixture
def sample_test(db):
    """Two questions worth 10 points each, passing score 50."""
    test = Test(
        title="Backend Fundamentals",
        duration_minutes=30,
        passing_score=50,
        owner_id=900,
        owner_telegram_id="555001",
        status="published",
    )
    db.add(test)
    db.flush()

    db.add_all(
        [
            Question(
                test_id=test.id,
                type="multiple_choice",
                text="Which HTTP method is idempotent?",
                points=10,
                options=[
                    {"id": "a", "text": "POST", "is_correct": False},
                    {"id": "b", "text": "PUT", "is_correct": True},
                    {"id": "c", "text": "PATCH", "is_correct": False},
                ],
            ),
            Question(
                test_id=test.id,
                type="short_answer",
                text="Name the SQL clause used to filter grouped rows.",
                points=10,
                correct_answer="HAVING",
            ),
        ]
    )
    db.commit()
    db.refresh(test)
    return test


@pytest.fixture
def question_ids(db, sample_test):
    questions = (
        db.query(Question)
        .filter(Question.test_id == sample_test.id)
        .order_by(Question.id)
        .all()
    )
    return [q.id for q in questions]


@pytest.fixture
def make_service(db, clock, notifier):
    def factory(session=None, **kwargs):
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("warning_limit", 5)
        return AttemptService(session or db, **kwargs)

    return factory


@pytest.fixture
def service(make_service):
    return make_service()
