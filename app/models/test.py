from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from app.core.database import Base

TEST_STATUS_DRAFT = "draft"
TEST_STATUS_PUBLISHED = "published"
TEST_STATUS_ARCHIVED = "archived"


class Test(Base):
    """Authored test definition. Read-only from the attempt engine."""

    __test__ = False
    __tablename__ = "tests"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    duration_minutes = Column(Integer, nullable=False)
    passing_score = Column(Integer, nullable=False, default=0)  # percentage 0-100

    # Owner (company / admin) who receives proctoring alerts
    owner_id = Column(Integer, nullable=False, index=True)
    owner_telegram_id = Column(String(64), nullable=True)

    # draft, published, archived; only published tests can be started
    status = Column(String(20), nullable=False, default=TEST_STATUS_DRAFT, index=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<Test(id={self.id}, title={self.title!r})>"
