from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from app.core.database import Base, JSONType

QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer")


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False, index=True)

    type = Column(String(32), nullable=False)  # multiple_choice, true_false, short_answer
    text = Column(Text, nullable=False)
    points = Column(Integer, nullable=False, default=1)

    # Canonical answer: option id, "true"/"false", or expected short answer
    correct_answer = Column(String(500), nullable=True)
    options = Column(
        JSONType, nullable=True
    )  # [{"id": "a", "text": "...", "is_correct": true}, ...]

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<Question(id={self.id}, type={self.type}, points={self.points})>"
