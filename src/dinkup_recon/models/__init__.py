"""Data models for reconciliation."""

from .transaction import (
    ACCOUNT_HOLDER,
    EmailPayload,
    ParsedTransaction,
    Transaction,
    TransactionType,
    MatchMethod,
    Obligation,
    ObligationStatus,
    ReconciliationOutcome,
    ReconciliationResult,
    ReconciliationSummary,
)

__all__ = [
    "ACCOUNT_HOLDER",
    "EmailPayload",
    "ParsedTransaction",
    "Transaction",
    "TransactionType",
    "MatchMethod",
    "Obligation",
    "ObligationStatus",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "ReconciliationSummary",
]
