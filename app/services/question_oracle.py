# app/services/question_oracle.py
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import UnknownQuestion
from app.models.question import Question
from app.services.scoring import check_answer


@dataclass(frozen=True)
class QuestionDefinition:
    id: int
    type: str
    points: int = 1
    correct_answer: Optional[str] = None
    options: Tuple[dict, ...] = field(default_factory=tuple)


class QuestionOracle(Protocol):
    def check_answer(self, question_id: int, submitted_value: Any) -> bool: ...

    def points_of(self, question_id: int) -> int: ...


class InMemoryQuestionOracle:
    """Oracle over a fixed set of question definitions."""

    def __init__(self, questions: Iterable[QuestionDefinition]):
        self._questions: Dict[int, QuestionDefinition] = {q.id: q for q in questions}

    def _get(self, question_id: int) -> QuestionDefinition:
        question = self._questions.get(question_id)
        if question is None:
            raise UnknownQuestion(question_id)
        return question

    def check_answer(self, question_id: int, submitted_value: Any) -> bool:
        return check_answer(self._get(question_id), submitted_value)

    def points_of(self, question_id: int) -> int:
        return max(0, self._get(question_id).points)


class DbQuestionOracle(InMemoryQuestionOracle):
    """
    Oracle backed by the questions table.

    Definitions are loaded lazily and cached for the lifetime of the
    instance (one request), so a batch of answers costs a single query
    when ``prefetch`` is called first.
    """

    def __init__(self, db: Session, test_id: Optional[int] = None):
        super().__init__(())
        self.db = db
        self.test_id = test_id
        self._missing = set()

    @staticmethod
    def _to_definition(question: Question) -> QuestionDefinition:
        return QuestionDefinition(
            id=question.id,
            type=question.type,
            points=question.points if question.points is not None else 1,
            correct_answer=question.correct_answer,
            options=tuple(question.options or ()),
        )

    def prefetch(self, question_ids: Iterable[int]) -> None:
        wanted = {
            qid
            for qid in question_ids
            if qid not in self._questions and qid not in self._missing
        }
        if not wanted:
            return

        query = self.db.query(Question).filter(Question.id.in_(wanted))
        if self.test_id is not None:
            query = query.filter(Question.test_id == self.test_id)

        for question in query.all():
            self._questions[question.id] = self._to_definition(question)
        self._missing.update(wanted - set(self._questions))

    def _get(self, question_id: int) -> QuestionDefinition:
        self.prefetch([question_id])
        return super()._get(question_id)
