"""Parsers for payment notification emails and obligation ledgers."""

from .email_parser import EmailTransactionParser, clean_subject, parse_amount
from .message_loader import load_payloads
from .obligation_parser import ObligationParser
from .text import is_garbage, normalize_body, strip_html

__all__ = [
    "EmailTransactionParser",
    "clean_subject",
    "parse_amount",
    "load_payloads",
    "ObligationParser",
    "is_garbage",
    "normalize_body",
    "strip_html",
]
