"""Custom exceptions for the reconciliation application."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class EmailParseError(ReconciliationError):
    """Error reading or decoding a payment notification email."""

    pass


class ObligationParseError(ReconciliationError):
    """Error parsing an obligation ledger export."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class PersistenceError(ReconciliationError):
    """A transaction record could not be written."""

    pass


class DuplicateMatchError(PersistenceError):
    """An obligation already has a tag match recorded against it."""

    pass


class SettlementError(ReconciliationError):
    """An obligation could not be transitioned to paid."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
