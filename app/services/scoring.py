# app/services/scoring.py
"""
Scoring engine.

Correctness is always evaluated here from the stored answer values and the
current question definitions; nothing the client sends about correctness or
score is trusted. ``score_answers`` is a pure function of its inputs.
"""

import logging
from dataclasses import dataclass, field
from fractions import Fraction
from math import floor
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from app.core.exceptions import UnknownQuestion

if TYPE_CHECKING:
    from app.services.question_oracle import QuestionOracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreSummary:
    earned_points: int
    total_points: int
    percentage: int
    is_passed: bool
    correctness: Dict[int, bool] = field(default_factory=dict)
    skipped_questions: Tuple[int, ...] = ()

    @property
    def correct_answers(self) -> int:
        return sum(1 for ok in self.correctness.values() if ok)


def _normalize(value: Any) -> str:
    return str(value).strip().lower()


def check_answer(question, submitted: Any) -> bool:
    """Type-specific correctness for a single answer."""
    if submitted is None:
        return False

    if question.type == "multiple_choice":
        # Compare option identity, never display text
        if question.correct_answer:
            return str(submitted) == str(question.correct_answer)
        for option in question.options or ():
            if option.get("is_correct"):
                return str(submitted) == str(option.get("id"))
        return False

    if question.type == "true_false":
        if question.correct_answer is None:
            return False
        return str(submitted).lower() == str(question.correct_answer).lower()

    if question.type == "short_answer":
        if question.correct_answer is None:
            return False
        return _normalize(submitted) == _normalize(question.correct_answer)

    return False


def compute_percentage(earned_points: int, total_points: int) -> int:
    """round(earned / total * 100), halves rounded up, clamped to 0..100."""
    if total_points <= 0:
        return 0
    ratio = Fraction(earned_points * 100, total_points)
    return min(100, max(0, floor(ratio + Fraction(1, 2))))


def score_answers(
    answers: Sequence[dict],
    oracle: "QuestionOracle",
    passing_score: Optional[int],
) -> ScoreSummary:
    earned = 0
    total = 0
    correctness: Dict[int, bool] = {}
    skipped: List[int] = []

    for record in answers:
        question_id = record["question_id"]
        try:
            points = oracle.points_of(question_id)
            is_correct = oracle.check_answer(question_id, record.get("answer"))
        except UnknownQuestion:
            # Excluded from earned and total rather than failing the submit
            logger.warning(f"Skipping unknown question {question_id} while scoring")
            skipped.append(question_id)
            continue

        total += points
        if is_correct:
            earned += points
        correctness[question_id] = is_correct

    percentage = compute_percentage(earned, total)
    return ScoreSummary(
        earned_points=earned,
        total_points=total,
        percentage=percentage,
        is_passed=percentage >= (passing_score or 0),
        correctness=correctness,
        skipped_questions=tuple(skipped),
    )


def apply_correctness(answers: Sequence[dict], summary: ScoreSummary) -> List[dict]:
    """Copy of ``answers`` with each record's ``is_correct`` filled in."""
    graded = []
    for record in answers:
        updated = dict(record)
        updated["is_correct"] = summary.correctness.get(record["question_id"])
        graded.append(updated)
    return graded
