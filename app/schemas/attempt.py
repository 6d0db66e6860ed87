# app/schemas/attempt.py
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ProctoringEventType = Literal["tab_switch", "fullscreen_exit", "copy_paste"]


class AnswerRecordResponse(BaseModel):
    question_id: int
    answer: Any = None
    is_correct: Optional[bool] = None
    time_spent: int = 0
    answered_at: datetime


class ProctoringEventResponse(BaseModel):
    type: ProctoringEventType
    occurred_at: datetime


class ProctoringStateResponse(BaseModel):
    tab_switches: int = 0
    fullscreen_exits: int = 0
    copy_paste_attempts: int = 0
    suspicious: bool = False
    total_warnings: int = 0
    events: List[ProctoringEventResponse] = []


class AttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    test_id: int
    candidate_id: int
    status: str
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_spent_seconds: Optional[int] = None
    remaining_seconds: int = 0

    answers: List[AnswerRecordResponse] = []
    earned_points: int = 0
    total_points: int = 0
    percentage: int = Field(0, ge=0, le=100)
    is_passed: bool = False
    correct_answers: int = 0
    auto_submitted: bool = False

    proctoring: ProctoringStateResponse


class AnswerSubmit(BaseModel):
    """Candidate answer for one question"""

    question_id: int
    answer: Any = Field(..., description="Option id, true/false, or short text")
    time_spent: int = Field(0, ge=0, description="Seconds spent on the question")


class AnswerAck(BaseModel):
    attempt_id: int
    question_id: int
    answered_questions: int
    status: str


class SubmitResponse(BaseModel):
    attempt_id: int
    status: str
    score: int
    total_points: int
    percentage: int = Field(..., ge=0, le=100)
    is_passed: bool
    time_spent_seconds: Optional[int] = None
    auto_submitted: bool = False


class FlagCreate(BaseModel):
    type: ProctoringEventType
    occurred_at: Optional[datetime] = None


class FlagResponse(BaseModel):
    attempt_id: int
    status: str
    recorded: bool
    counters: ProctoringStateResponse
    total_warnings: int
    auto_submitted: bool = False
    result: Optional[SubmitResponse] = None
