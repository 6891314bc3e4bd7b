"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    EmailParseError,
    ObligationParseError,
    ConfigurationError,
    PersistenceError,
    DuplicateMatchError,
    SettlementError,
    ReportGenerationError,
)
from .logging_config import setup_logging, get_logger

__all__ = [
    "ReconciliationError",
    "EmailParseError",
    "ObligationParseError",
    "ConfigurationError",
    "PersistenceError",
    "DuplicateMatchError",
    "SettlementError",
    "ReportGenerationError",
    "setup_logging",
    "get_logger",
]
