# app/models/relations.py

from sqlalchemy.orm import relationship

# Import all relevant models
from .question import Question
from .test import Test


def setup_relationships():
    """
    Configure all SQLAlchemy relationships between models.
    """

    # Test to Questions (One-to-Many)
    Test.questions = relationship(
        "Question",
        back_populates="test",
        order_by=Question.id,
        cascade="all, delete-orphan",
    )
    Question.test = relationship("Test", back_populates="questions")

