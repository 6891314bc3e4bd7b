"""
Command-line interface for the payment email reconciliation tool.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import load_config, generate_default_config, ReconConfig
from .matching.engine import ReconciliationEngine
from .models.transaction import ReconciliationSummary
from .parsers.email_parser import EmailTransactionParser
from .parsers.message_loader import load_payloads
from .parsers.obligation_parser import ObligationParser
from .reports.excel_generator import ExcelReportGenerator
from .storage import (
    InMemoryObligationStore,
    InMemoryTransactionStore,
    SqliteObligationStore,
    SqliteTransactionStore,
    init_db,
)
from .utils.logging_config import get_logger, setup_logging

console = Console()
logger = get_logger("cli")


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Payment notification email reconciliation for session obligations."""
    pass


@main.command()
@click.argument("obligations_file", type=click.Path(exists=True, path_type=Path))
@click.argument(
    "email_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option(
    "--db",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite ledger path (in-memory stores when omitted)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--dry-run", is_flag=True, help="Reconcile and show summary without generating report"
)
def reconcile(
    obligations_file: Path,
    email_files: tuple[Path, ...],
    config: Optional[Path],
    output: Optional[Path],
    db: Optional[Path],
    verbose: bool,
    dry_run: bool,
):
    """
    Reconcile payment notification emails against outstanding obligations.

    OBLIGATIONS_FILE: CSV export of session obligations
    EMAIL_FILES: One or more .eml or .json payload files
    """
    try:
        recon_config = load_config(config)
        _configure_logging(recon_config, verbose)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading obligations...", total=None)
            obligations = ObligationParser(recon_config).parse_file(obligations_file)
            progress.update(task, completed=True)

            task = progress.add_task("Loading emails...", total=None)
            payloads = []
            for email_file in email_files:
                payloads.extend(
                    load_payloads(email_file, recon_config.input.email_encoding)
                )
            progress.update(task, completed=True)

            task = progress.add_task("Running reconciliation...", total=None)
            engine = _build_engine(recon_config, obligations, db)
            start_time = datetime.now()
            results = engine.ingest_batch(payloads)
            processing_time = (datetime.now() - start_time).total_seconds()
            progress.update(task, completed=True)

            summary = engine.generate_summary(
                results=results,
                emails_received=len(payloads),
                processing_time=processing_time,
            )

        _display_summary(summary)

        if dry_run:
            console.print("\n[yellow]Dry run - no report generated[/yellow]")
            return

        if output is None:
            output = _default_report_path(recon_config)

        report_generator = ExcelReportGenerator(recon_config)
        report_path = report_generator.generate_report(
            summary=summary,
            results=results,
            output_path=output,
        )

        console.print(f"\n[green]Report generated: {report_path}[/green]")

    except Exception as e:
        logger.debug(f"Reconciliation failed: {e}")
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command("parse-email")
@click.argument(
    "email_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def parse_email(email_files: tuple[Path, ...], config: Optional[Path]):
    """
    Parse notification emails and display the extracted transactions.

    EMAIL_FILES: One or more .eml or .json payload files
    """
    try:
        recon_config = load_config(config)
        parser = EmailTransactionParser(recon_config)

        table = Table(title="Parsed Emails")
        table.add_column("Subject")
        table.add_column("Type")
        table.add_column("Amount", justify="right")
        table.add_column("Sender")
        table.add_column("Recipient")
        table.add_column("Note")
        table.add_column("Tag")

        parsed_count = 0
        total = 0
        for email_file in email_files:
            for payload in load_payloads(email_file, recon_config.input.email_encoding):
                total += 1
                parsed = parser.parse(payload)
                if parsed is None:
                    table.add_row(_truncate(payload.subject), "-", "-", "-", "-", "-", "-")
                    continue

                parsed_count += 1
                table.add_row(
                    _truncate(payload.subject),
                    parsed.transaction_type.value,
                    f"${parsed.amount:,.2f}",
                    parsed.sender_name,
                    parsed.recipient_name,
                    _truncate(parsed.note or "-"),
                    parsed.correlation_tag or "-",
                )

        console.print(table)
        console.print(f"\nTransactions: {parsed_count} of {total} emails")

    except Exception as e:
        console.print(f"[red]Error parsing email: {e}[/red]")
        sys.exit(1)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _build_engine(
    config: ReconConfig, obligations: list, db: Optional[Path]
) -> ReconciliationEngine:
    """Create stores (SQLite when a path is configured) and seed obligations."""
    db_path = db or (Path(config.storage.sqlite_path) if config.storage.sqlite_path else None)

    if db_path is not None:
        init_db(db_path)
        transaction_store = SqliteTransactionStore(db_path)
        obligation_store = SqliteObligationStore(db_path)
        for obligation in obligations:
            obligation_store.add(obligation)
        logger.info(f"Using SQLite ledger: {db_path}")
    else:
        transaction_store = InMemoryTransactionStore()
        obligation_store = InMemoryObligationStore(obligations)

    return ReconciliationEngine(config, transaction_store, obligation_store)


def _configure_logging(config: ReconConfig, verbose: bool) -> None:
    """Apply the logging section of the configuration; -v forces DEBUG."""
    log_config = config.logging
    setup_logging(
        logging.DEBUG if verbose else log_config.level,
        log_file=Path(log_config.file) if log_config.file else None,
        log_format=log_config.format,
        max_bytes=log_config.max_bytes,
        backup_count=log_config.backup_count,
    )


def _default_report_path(config: ReconConfig) -> Path:
    """Report filename from the template; without a timestamp, {time} is dropped."""
    excel = config.output.excel
    now = datetime.now()
    time = now.strftime("%H%M%S") if excel.include_timestamp else ""
    filename = excel.filename_template.format(date=now.strftime("%Y%m%d"), time=time)
    return Path(filename.replace("_.", "."))


def _truncate(text: str, width: int = 40) -> str:
    return text[:width] + "..." if len(text) > width else text


def _display_summary(summary: ReconciliationSummary) -> None:
    """Display reconciliation summary in console."""
    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Emails Received", str(summary.emails_received))
    table.add_row("Discarded", str(summary.discarded_count))
    table.add_row("Transactions", str(summary.transaction_count))
    table.add_row("Auto Settled", str(summary.auto_settled_count))
    table.add_row("Flagged for Review", str(summary.flagged_count))
    table.add_row("Unmatched", str(summary.unmatched_count))
    table.add_row("Settled Amount", f"${summary.settled_amount:,.2f}")
    table.add_row("Settlement Rate", f"{summary.settlement_rate:.1f}%")
    table.add_row("Match Rate", f"{summary.match_rate:.1f}%")
    table.add_row("Processing Time", f"{summary.processing_time_seconds:.2f}s")

    console.print(table)


if __name__ == "__main__":
    main()
