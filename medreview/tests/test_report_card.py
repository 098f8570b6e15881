"""
Tests for the plain-text report card.
"""
from datetime import datetime, timezone

import pytest

from medreview.core.exceptions import InvalidTransition
from medreview.services.report_card import render_report_card, report_filename

GENERATED = datetime(2026, 3, 5, 14, 30, tzinfo=timezone.utc)


def section(title, body):
    return f"{title}\n{'-' * len(title)}\n{body}"


class TestRenderReportCard:
    """Report card content for finalized reviews."""

    def test_full_report(self, service, scored):
        service.submit_scores(
            scored.id, 9, 9, 8,
            notes="Well documented",
            clinical_claims=["Supports restful sleep", "Non-habit forming"],
            required_disclaimers=["Not evaluated by the FDA"],
        )
        s = service.final_decision(scored.id, "approved", notes="Cleared for launch")

        text = render_report_card(s, brand_name="Helio Sleep Labs", deal_name="Q3 launch",
                                  generated_at=GENERATED)

        lines = text.splitlines()
        assert lines[0] == "MEDICAL STANDARDS REPORT CARD"
        assert lines[1] == "=" * len(lines[0])
        assert "Brand: Helio Sleep Labs" in text
        assert "Deal: Q3 launch" in text
        assert "Final Decision: Approved" in text
        assert "Clinical Evidence: 9/10" in text
        assert "Safety Profile: 9/10" in text
        assert "Transparency: 8/10" in text
        assert "OVERALL GRADE: A" in text
        assert "Estimated Value: $50,000" in text
        assert "• Supports restful sleep\n• Non-habit forming" in text
        assert section("SAFETY CONCERNS", "None documented") in text
        assert "• Not evaluated by the FDA" in text
        assert section("BD NOTES", "No notes provided") in text
        assert "Cleared for launch" in text
        assert text.endswith("Report generated on March 5, 2026 14:30\nMedical Standards Review System")

    def test_unknown_brand_and_no_deal(self, service, scored):
        s = service.final_decision(scored.id, "rejected")
        text = render_report_card(s, generated_at=GENERATED)
        assert "Brand: Unknown" in text
        assert "Deal:" not in text
        assert section("REQUIRED DISCLAIMERS", "None required") in text

    def test_requires_revision_has_report(self, service, scored):
        s = service.final_decision(scored.id, "requires_revision")
        assert "Final Decision: Requires Revision" in render_report_card(s)

    def test_active_review_has_no_report(self, scored):
        with pytest.raises(InvalidTransition):
            render_report_card(scored)


class TestReportFilename:
    def test_slugified(self):
        assert report_filename("Helio Sleep  Labs", GENERATED) == "medical-report-helio-sleep-labs-2026-03-05.txt"
