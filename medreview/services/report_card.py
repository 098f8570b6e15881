"""
Plain-text Medical Standards Report Card for finalized reviews.
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from medreview.core.exceptions import InvalidTransition
from medreview.services.review_states import FINALIZED_STATUSES, status_label
from medreview.services.review_workflow import Submission, utcnow

NO_NOTES = "No notes provided"
NONE_DOCUMENTED = "None documented"
NONE_REQUIRED = "None required"


def _section(title: str, body: str) -> List[str]:
    return [title, "-" * len(title), body, ""]


def _bullets(items: Iterable[str], empty: str) -> str:
    items = list(items)
    if not items:
        return empty
    return "\n".join(f"• {item}" for item in items)


def _money(amount: Optional[Decimal]) -> str:
    if amount is None:
        return "$0"
    if amount == amount.to_integral_value():
        return f"${int(amount):,}"
    return f"${amount:,.2f}"


def _score(value: Optional[int]) -> str:
    return f"{value}/10" if value is not None else "N/A"


def render_report_card(
    submission: Submission,
    brand_name: Optional[str] = None,
    deal_name: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    """
    Render the report card text.

    Only finalized submissions (approved, rejected, requires_revision) have a
    report card; anything else raises InvalidTransition.
    """
    if submission.status not in FINALIZED_STATUSES:
        raise InvalidTransition(
            "Report cards are only available for finalized reviews",
            {
                "submission_id": submission.id,
                "current_status": submission.status.value,
                "allowed_from": sorted(s.value for s in FINALIZED_STATUSES),
            },
        )

    generated_at = generated_at or utcnow()
    reviewed_at = submission.medical_reviewed_at or submission.updated_at
    scores = submission.scores
    grade = submission.effective_grade

    title = "MEDICAL STANDARDS REPORT CARD"
    lines = [title, "=" * len(title), ""]
    lines.append(f"Brand: {brand_name or 'Unknown'}")
    if deal_name:
        lines.append(f"Deal: {deal_name}")
    lines.append(f"Review Date: {reviewed_at:%B} {reviewed_at.day}, {reviewed_at:%Y}")
    lines.append(f"Final Decision: {status_label(submission.status)}")
    lines.append("")

    lines += _section("SCORES", "\n".join([
        f"Clinical Evidence: {_score(scores.clinical if scores else None)}",
        f"Safety Profile: {_score(scores.safety if scores else None)}",
        f"Transparency: {_score(scores.transparency if scores else None)}",
    ]))
    lines += [f"OVERALL GRADE: {grade.value if grade else 'N/A'}", ""]
    lines += _section("REVENUE OPPORTUNITY", f"Estimated Value: {_money(submission.revenue_estimate)}")
    lines += _section("BD NOTES", submission.bd_notes or NO_NOTES)
    lines += _section("MEDICAL REVIEW NOTES", submission.medical_notes or NO_NOTES)
    lines += _section("CLINICAL CLAIMS", _bullets(submission.clinical_claims, NONE_DOCUMENTED))
    lines += _section("SAFETY CONCERNS", _bullets(submission.safety_concerns, NONE_DOCUMENTED))
    lines += _section("REQUIRED DISCLAIMERS", _bullets(submission.required_disclaimers, NONE_REQUIRED))
    lines += _section("FINAL DECISION NOTES", submission.decision_notes or NO_NOTES)

    lines += [
        "---",
        f"Report generated on {generated_at:%B} {generated_at.day}, {generated_at:%Y %H:%M}",
        "Medical Standards Review System",
    ]
    return "\n".join(lines)


def report_filename(brand_name: Optional[str], generated_at: Optional[datetime] = None) -> str:
    generated_at = generated_at or utcnow()
    slug = re.sub(r"\s+", "-", (brand_name or "unknown").strip().lower())
    return f"medical-report-{slug}-{generated_at:%Y-%m-%d}.txt"
