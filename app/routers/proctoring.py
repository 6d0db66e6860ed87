# app/routers/proctoring.py
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import get_current_user_id
from app.core.exceptions import AccessDenied, AttemptNotFound
from app.services.attempt_store import AttemptStore
from app.services.definitions import DbTestDefinitions
from app.services.proctoring import events_csv, events_pdf

router = APIRouter(
    prefix="/tests/{test_id}/proctoring",
    tags=["Proctoring"],
    responses={404: {"description": "Not found"}},
)


@router.get("/export")
def export_proctoring_events(
    test_id: int,
    attempt_id: int = Query(..., description="Attempt to export"),
    format: Literal["csv", "pdf"] = Query("csv", description="Export format"),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """
    Export an attempt's proctoring event timeline as CSV or a PDF report.
    Only the owner of the test may export.
    """
    test = DbTestDefinitions(db).get(test_id)
    if test.owner_id != user_id:
        raise AccessDenied()

    attempt = AttemptStore(db).get(attempt_id)
    if not attempt or attempt.test_id != test_id:
        raise AttemptNotFound()

    if format == "pdf":
        content, media_type = events_pdf(attempt, test), "application/pdf"
    else:
        content, media_type = events_csv(attempt), "text/csv"

    filename = f"proctoring-events-{attempt.id}.{format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
