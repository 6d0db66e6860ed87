# app/routers/attempt.py
from fastapi import APIRouter, Depends

from app.core.dependencies import get_attempt_service, get_current_candidate
from app.models.attempt import Attempt, AttemptStatus
from app.schemas.attempt import (
    AnswerAck,
    AnswerSubmit,
    AttemptResponse,
    FlagCreate,
    FlagResponse,
    ProctoringStateResponse,
    SubmitResponse,
)
from app.services.attempt import AttemptService, SubmitResult
from app.services.proctoring import ordered_events

router = APIRouter(
    tags=["Test Attempts"],
    responses={404: {"description": "Not found"}},
)


def _status(attempt: Attempt) -> str:
    return AttemptStatus(attempt.status).value


def _proctoring_response(attempt: Attempt) -> dict:
    state = attempt.proctoring
    return ProctoringStateResponse(
        tab_switches=state.tab_switches,
        fullscreen_exits=state.fullscreen_exits,
        copy_paste_attempts=state.copy_paste_attempts,
        suspicious=state.suspicious,
        total_warnings=state.total_warnings,
        events=ordered_events(attempt),
    ).model_dump()


def _attempt_response(attempt: Attempt, service: AttemptService) -> dict:
    return {
        "id": attempt.id,
        "test_id": attempt.test_id,
        "candidate_id": attempt.candidate_id,
        "status": _status(attempt),
        "started_at": attempt.started_at,
        "expires_at": attempt.expires_at,
        "completed_at": attempt.completed_at,
        "time_spent_seconds": attempt.time_spent_seconds,
        "remaining_seconds": attempt.remaining_seconds(service.now()),
        "answers": attempt.answers or [],
        "earned_points": attempt.earned_points,
        "total_points": attempt.total_points,
        "percentage": attempt.percentage,
        "is_passed": attempt.is_passed,
        "correct_answers": attempt.correct_answers,
        "auto_submitted": attempt.auto_submitted,
        "proctoring": _proctoring_response(attempt),
    }


def _submit_response(result: SubmitResult) -> dict:
    return {
        "attempt_id": result.attempt.id,
        "status": _status(result.attempt),
        "score": result.score,
        "total_points": result.total_points,
        "percentage": result.percentage,
        "is_passed": result.is_passed,
        "time_spent_seconds": result.attempt.time_spent_seconds,
        "auto_submitted": result.auto_submitted,
    }


# ==================== Attempt Endpoints ====================


@router.post("/tests/{test_id}/attempts/start", response_model=AttemptResponse)
def start_attempt(
    test_id: int,
    candidate_id: int = Depends(get_current_candidate),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Start the candidate's attempt for a test, or resume the existing one.
    Only one attempt per candidate per test ever exists.
    """
    attempt = service.start(test_id, candidate_id)
    return _attempt_response(attempt, service)


@router.put("/attempts/{attempt_id}/answers", response_model=AnswerAck)
def save_answer(
    attempt_id: int,
    answer_in: AnswerSubmit,
    candidate_id: int = Depends(get_current_candidate),
    service: AttemptService = Depends(get_attempt_service),
):
    """Save (or replace) the answer to one question."""
    attempt = service.answer(
        attempt_id,
        candidate_id,
        answer_in.question_id,
        answer_in.answer,
        time_spent=answer_in.time_spent,
    )
    return {
        "attempt_id": attempt.id,
        "question_id": answer_in.question_id,
        "answered_questions": len(attempt.answers or []),
        "status": _status(attempt),
    }


@router.post("/attempts/{attempt_id}/submit", response_model=SubmitResponse)
def submit_attempt(
    attempt_id: int,
    candidate_id: int = Depends(get_current_candidate),
    service: AttemptService = Depends(get_attempt_service),
):
    """Finish the attempt and return the computed score."""
    return _submit_response(service.submit(attempt_id, candidate_id))


@router.post("/attempts/{attempt_id}/flags", response_model=FlagResponse)
def flag_attempt(
    attempt_id: int,
    flag_in: FlagCreate,
    candidate_id: int = Depends(get_current_candidate),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Record a proctoring event (tab switch, fullscreen exit, copy/paste).
    The attempt is auto-submitted once the warning limit is reached.
    """
    result = service.flag(attempt_id, candidate_id, flag_in.type, flag_in.occurred_at)
    return {
        "attempt_id": result.attempt.id,
        "status": _status(result.attempt),
        "recorded": result.recorded,
        "counters": _proctoring_response(result.attempt),
        "total_warnings": result.total_warnings,
        "auto_submitted": result.auto_submitted,
        "result": _submit_response(result.result) if result.result else None,
    }


@router.get("/attempts/{attempt_id}", response_model=AttemptResponse)
def get_attempt_result(
    attempt_id: int,
    candidate_id: int = Depends(get_current_candidate),
    service: AttemptService = Depends(get_attempt_service),
):
    """Current state of the attempt, including score once finished."""
    attempt = service.get_result(attempt_id, candidate_id)
    return _attempt_response(attempt, service)
