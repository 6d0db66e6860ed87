# app/services/proctoring.py
import csv
import io
import logging
from datetime import datetime
from typing import Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from app.core.exceptions import InvalidProctoringEvent
from app.models.attempt import Attempt
from app.services.definitions import TestDefinition
from app.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Event kind -> attempt counter column
EVENT_COUNTERS: Dict[str, str] = {
    "tab_switch": "tab_switches",
    "fullscreen_exit": "fullscreen_exits",
    "copy_paste": "copy_paste_attempts",
}

AUTO_SUBMIT_TEMPLATE = "proctoring_auto_submit"


def _parse_occurred_at(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


class ProctoringEngine:
    """Bookkeeping for integrity violations and the forced-termination policy."""

    def __init__(self, warning_limit: int = 5):
        if warning_limit < 1:
            raise ValueError("warning_limit must be at least 1")
        self.warning_limit = warning_limit

    @staticmethod
    def validate_kind(kind: str) -> str:
        if kind not in EVENT_COUNTERS:
            raise InvalidProctoringEvent(
                f"Unknown proctoring event type '{kind}'. "
                f"Expected one of: {', '.join(EVENT_COUNTERS)}"
            )
        return kind

    def record(self, attempt: Attempt, kind: str, occurred_at: datetime) -> int:
        """Register one violation on an active attempt; returns total warnings."""
        counter = EVENT_COUNTERS[self.validate_kind(kind)]

        attempt.is_suspicious = True
        setattr(attempt, counter, (getattr(attempt, counter) or 0) + 1)
        # Reassign so the JSON column is flagged dirty
        attempt.proctoring_events = list(attempt.proctoring_events or []) + [
            {"type": kind, "occurred_at": ensure_utc(occurred_at).isoformat()}
        ]

        total = attempt.total_warnings
        logger.info(
            f"Attempt {attempt.id}: {kind} recorded "
            f"({total}/{self.warning_limit} warnings)"
        )
        return total

    def threshold_reached(self, attempt: Attempt) -> bool:
        return attempt.total_warnings >= self.warning_limit

    def owner_alert(self, attempt: Attempt, test: TestDefinition) -> dict:
        state = attempt.proctoring
        return {
            "test_id": test.id,
            "test_title": test.title,
            "attempt_id": attempt.id,
            "candidate_id": attempt.candidate_id,
            "total_warnings": state.total_warnings,
            "tab_switches": state.tab_switches,
            "fullscreen_exits": state.fullscreen_exits,
            "copy_paste_attempts": state.copy_paste_attempts,
            "warning_limit": self.warning_limit,
        }


def ordered_events(attempt: Attempt) -> List[dict]:
    """Event log sorted by occurrence time; ties keep insertion order."""
    return sorted(
        attempt.proctoring_events or [],
        key=lambda event: _parse_occurred_at(event["occurred_at"]),
    )


def events_csv(attempt: Attempt) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Type", "Occurred At"])
    for event in ordered_events(attempt):
        occurred_at = _parse_occurred_at(event["occurred_at"])
        writer.writerow([event["type"], occurred_at.isoformat()])
    return buffer.getvalue()


def _report_styles():
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="ReportTitle",
            parent=styles["Title"],
            fontSize=20,
            textColor=colors.HexColor("#2563EB"),
            fontName="Helvetica-Bold",
            spaceAfter=12,
        )
    )
    styles.add(
        ParagraphStyle(
            name="Meta",
            parent=styles["Normal"],
            fontSize=11,
            textColor=colors.HexColor("#1F2937"),
            leading=16,
        )
    )
    styles.add(
        ParagraphStyle(
            name="SectionHeader",
            parent=styles["Heading2"],
            fontSize=13,
            textColor=colors.HexColor("#1F2937"),
            spaceBefore=14,
            spaceAfter=8,
        )
    )
    return styles


def events_pdf(
    attempt: Attempt,
    test: TestDefinition,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """
    Render the proctoring report for one attempt.

    The report lists the test title, attempt id, counter totals and a
    numbered timeline of events in occurrence order.
    """
    styles = _report_styles()
    state = attempt.proctoring
    generated_at = ensure_utc(generated_at) or utcnow()
    story = []

    story.append(Paragraph("<b>Proctoring Events Report</b>", styles["ReportTitle"]))
    story.append(Paragraph(f"Test: {escape(test.title)}", styles["Meta"]))
    story.append(Paragraph(f"Attempt ID: {attempt.id}", styles["Meta"]))
    story.append(Paragraph(f"Candidate ID: {attempt.candidate_id}", styles["Meta"]))
    story.append(
        Paragraph(f"Generated At: {generated_at.isoformat()}", styles["Meta"])
    )
    story.append(
        HRFlowable(
            width="100%",
            thickness=1,
            color=colors.HexColor("#2563EB"),
            spaceBefore=8,
            spaceAfter=8,
        )
    )

    story.append(Paragraph("Totals", styles["SectionHeader"]))
    totals = Table(
        [
            ["Tab Switches", "Fullscreen Exits", "Copy/Paste", "Total"],
            [
                state.tab_switches,
                state.fullscreen_exits,
                state.copy_paste_attempts,
                state.total_warnings,
            ],
        ],
        colWidths=[1.5 * inch] * 4,
    )
    totals.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#EFF6FF")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (0, 0), (-1, -1), "CENTER"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#D1D5DB")),
            ]
        )
    )
    story.append(totals)

    story.append(Paragraph("Event Timeline", styles["SectionHeader"]))
    events = ordered_events(attempt)
    if not events:
        story.append(Paragraph("No events recorded.", styles["Meta"]))
    for idx, event in enumerate(events, 1):
        occurred_at = _parse_occurred_at(event["occurred_at"])
        label = event["type"].replace("_", " ")
        story.append(
            Paragraph(f"{idx}. {label} - {occurred_at.isoformat()}", styles["Meta"])
        )
    story.append(Spacer(1, 0.2 * inch))

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=45,
        leftMargin=45,
        topMargin=50,
        bottomMargin=45,
        title=f"Proctoring events - attempt {attempt.id}",
    )
    doc.build(story)
    return buffer.getvalue()
