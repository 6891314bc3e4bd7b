"""
Excel report generator for payment reconciliation runs.
Creates multi-sheet workbooks with formatted output.
"""

from datetime import datetime
from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..models.transaction import (
    ReconciliationOutcome,
    ReconciliationResult,
    ReconciliationSummary,
)
from ..config import ReconConfig, SheetConfig
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
SETTLED_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
REVIEW_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

TRANSACTION_HEADERS = [
    "Transaction ID",
    "Type",
    "Amount",
    "Sender",
    "Recipient",
    "Note",
    "Correlation Tag",
    "Email Subject",
    "Obligation ID",
    "Owing Party",
    "Obligation Amount",
    "Match Score",
    "Reason",
]


class ExcelReportGenerator:
    """Generates Excel reconciliation reports with one sheet per outcome."""

    def __init__(self, config: ReconConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config
        self.sheet_config = config.output.sheets

    def generate_report(
        self,
        summary: ReconciliationSummary,
        results: list[ReconciliationResult],
        output_path: Path,
    ) -> Path:
        """
        Generate the complete reconciliation report.

        Args:
            summary: Reconciliation summary
            results: Result of every classified email
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        sheets = self.sheet_config
        if sheets.summary.enabled:
            self._create_summary_sheet(wb, summary)

        outcome_sheets = [
            (sheets.settled, ReconciliationOutcome.AUTO_SETTLED, SETTLED_FILL),
            (sheets.review, ReconciliationOutcome.FLAGGED_FOR_REVIEW, REVIEW_FILL),
            (sheets.unmatched, ReconciliationOutcome.UNMATCHED, UNMATCHED_FILL),
        ]
        for sheet, outcome, fill in outcome_sheets:
            if sheet.enabled:
                self._create_outcome_sheet(
                    wb, sheet, [r for r in results if r.outcome == outcome], fill
                )

        if sheets.audit_trail.enabled:
            self._create_audit_trail_sheet(wb, summary, results)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            logger.error(f"Failed to save report {output_path}: {e}")
            raise ReportGenerationError(f"Failed to save report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(self, wb: Workbook, summary: ReconciliationSummary) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = "Payment Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Run Information"
        ws["A3"].font = Font(bold=True)
        ws["A4"] = "Reconciliation Date:"
        ws["B4"] = summary.reconciliation_date.strftime("%Y-%m-%d %H:%M:%S")

        ws["A6"] = "Email Counts"
        ws["A6"].font = Font(bold=True)

        count_data = [
            ("Emails Received:", summary.emails_received),
            ("Discarded (not transactions):", summary.discarded_count),
            ("Transactions Stored:", summary.transaction_count),
            ("Auto Settled:", summary.auto_settled_count),
            ("Flagged for Review:", summary.flagged_count),
            ("Unmatched:", summary.unmatched_count),
        ]
        for i, (label, value) in enumerate(count_data, start=7):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        ws["A14"] = "Rates"
        ws["A14"].font = Font(bold=True)
        ws["A15"] = "Settlement Rate:"
        ws["B15"] = f"{summary.settlement_rate:.1f}%"
        ws["A16"] = "Match Rate:"
        ws["B16"] = f"{summary.match_rate:.1f}%"

        ws["A18"] = "Amount Totals"
        ws["A18"].font = Font(bold=True)

        amount_data = [
            ("Settled Amount:", f"${summary.settled_amount:,.2f}"),
            ("Flagged Amount:", f"${summary.flagged_amount:,.2f}"),
            ("Unmatched Amount:", f"${summary.unmatched_amount:,.2f}"),
        ]
        for i, (label, value) in enumerate(amount_data, start=19):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        ws["A23"] = "Outcomes by Type"
        ws["A23"].font = Font(bold=True)

        row = 24
        for txn_type, counts in summary.outcomes_by_type.items():
            ws[f"A{row}"] = txn_type
            ws[f"B{row}"] = ", ".join(f"{k}: {v}" for k, v in counts.items())
            row += 1

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_outcome_sheet(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        results: list[ReconciliationResult],
        fill: PatternFill,
    ) -> None:
        """Create a sheet listing the transactions that reached one outcome."""
        ws = wb.create_sheet(sheet.name)
        self._write_headers(ws, TRANSACTION_HEADERS, row=1)

        for row_num, result in enumerate(results, start=2):
            txn = result.transaction
            obligation = result.obligation

            row_data = [
                txn.id,
                txn.transaction_type.value,
                float(txn.amount),
                txn.sender_name,
                txn.recipient_name,
                txn.note or "",
                txn.correlation_tag or "",
                txn.email_subject,
                obligation.id if obligation else "",
                obligation.owing_party if obligation else "",
                float(obligation.amount) if obligation else "",
                f"{result.match_score:.2f}",
                result.reason,
            ]

            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = fill

        self._auto_fit_columns(ws)

    def _create_audit_trail_sheet(
        self,
        wb: Workbook,
        summary: ReconciliationSummary,
        results: list[ReconciliationResult],
    ) -> None:
        ws = wb.create_sheet(self.sheet_config.audit_trail.name)

        ws["A1"] = "Reconciliation Audit Trail"
        ws["A1"].font = Font(size=14, bold=True)

        audit_info = [
            ("Generated At:", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
            ("Config File:", summary.config_file_used or "Default"),
            ("Processing Time:", f"{summary.processing_time_seconds:.2f} seconds"),
        ]

        row = 3
        for label, value in audit_info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        row += 1
        ws[f"A{row}"] = "Decision Log"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        headers = [
            "Timestamp",
            "Transaction ID",
            "Outcome",
            "Match Method",
            "Obligation ID",
            "Email From",
            "Message ID",
            "Reason",
        ]
        self._write_headers(ws, headers, row=row)
        row += 1

        for result in results:
            txn = result.transaction
            log_data = [
                result.reconciled_at.strftime("%Y-%m-%d %H:%M:%S"),
                txn.id,
                result.outcome.value,
                result.match_method.value if result.match_method else "",
                result.obligation.id if result.obligation else "",
                txn.email_from,
                txn.raw_source.get("messageId") or "",
                result.reason,
            ]
            for col, value in enumerate(log_data, start=1):
                ws.cell(row=row, column=col, value=value)
            row += 1

        self._auto_fit_columns(ws)

    def _write_headers(self, ws: Worksheet, headers: list[str], row: int) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            column = column_cells[0].column_letter
            max_length = max(
                (len(str(cell.value)) for cell in column_cells if cell.value is not None),
                default=0,
            )
            ws.column_dimensions[column].width = min(max_length + 2, 50)
