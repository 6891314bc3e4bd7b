#!/usr/bin/env python3
"""Integration tests for Excel report generation."""

import pytest
from openpyxl import load_workbook

from dinkup_recon.config import ReconConfig
from dinkup_recon.reports.excel_generator import ExcelReportGenerator
from dinkup_recon.utils.exceptions import ReportGenerationError


@pytest.fixture
def reconciled(engine, make_payload):
    """Results and summary for one settled, one flagged and one unmatched email."""
    payloads = [
        make_payload(
            "John Smith paid you $20.00",
            text="Note: Pickleball #dinkup-abc123",
            message_id="<m1@venmo.com>",
        ),
        make_payload("Alice Wong paid you $7.00"),
    ]
    results = engine.ingest_batch(payloads)
    summary = engine.generate_summary(results, len(payloads), processing_time=0.1)
    return summary, results


@pytest.mark.integration
class TestExcelReportGenerator:
    """Test workbook contents."""

    def test_sheets_and_rows(self, config, reconciled, temp_dir):
        """Test each outcome lands on its own sheet."""
        summary, results = reconciled
        path = ExcelReportGenerator(config).generate_report(
            summary, results, temp_dir / "out" / "report.xlsx"
        )

        wb = load_workbook(path)
        assert wb["Summary"]["A1"].value == "Payment Reconciliation Summary"
        assert wb["Summary"]["B7"].value == 2
        assert wb["Auto Settled"].max_row == 2
        assert wb["Unmatched"].max_row == 2
        assert wb["Unmatched"].cell(row=2, column=4).value == "Alice Wong"
        assert wb["Needs Review"].max_row == 1

        audit = wb["Audit Trail"]
        logged = [audit.cell(row=r, column=7).value for r in range(1, audit.max_row + 1)]
        assert "<m1@venmo.com>" in logged

    def test_disabled_sheets_are_skipped(self, reconciled, temp_dir):
        """Test sheets can be switched off in configuration."""
        config = ReconConfig(
            output={
                "sheets": {
                    "audit_trail": {"enabled": False, "name": "Audit Trail"},
                    "review": {"enabled": False, "name": "Needs Review"},
                }
            }
        )
        summary, results = reconciled

        path = ExcelReportGenerator(config).generate_report(
            summary, results, temp_dir / "report.xlsx"
        )

        assert load_workbook(path).sheetnames == ["Summary", "Auto Settled", "Unmatched"]

    def test_unwritable_path(self, config, reconciled, temp_dir):
        """Test save failures raise ReportGenerationError."""
        summary, results = reconciled

        with pytest.raises(ReportGenerationError):
            ExcelReportGenerator(config).generate_report(summary, results, temp_dir)
