"""
Payment notification email parser.
Classifies the subject line into a transaction shape and pulls the note and
correlation tag out of the body with ordered fallback strategies.
"""

from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Optional
import logging
import re

from ..models.transaction import (
    ACCOUNT_HOLDER,
    EmailPayload,
    ParsedTransaction,
    TransactionType,
)
from ..config import ReconConfig
from .text import is_garbage, normalize_body

logger = logging.getLogger(__name__)

# Stripped once only: "Fwd: Re: x" becomes "Re: x"
_REPLY_PREFIX = re.compile(r"^(?:fwd|fw|re):\s*", re.IGNORECASE)

_AMOUNT = r"\$?(?P<amount>\d[\d,]*\.?\d*)"

# Priority order matters: "You paid" must be tried before "<name> paid you"
SUBJECT_PATTERNS: tuple[tuple[re.Pattern, TransactionType], ...] = (
    (
        re.compile(rf"You paid (?P<name>.+?) {_AMOUNT}", re.IGNORECASE),
        TransactionType.PAYMENT_SENT,
    ),
    (
        re.compile(rf"(?P<name>.+?) paid you {_AMOUNT}", re.IGNORECASE),
        TransactionType.PAYMENT_RECEIVED,
    ),
    (
        re.compile(rf"You requested {_AMOUNT} from (?P<name>.+)", re.IGNORECASE),
        TransactionType.REQUEST_SENT,
    ),
    (
        re.compile(rf"(?P<name>.+?) requests {_AMOUNT}", re.IGNORECASE),
        TransactionType.REQUEST_RECEIVED,
    ),
)

_OUTGOING_TYPES = {TransactionType.PAYMENT_SENT, TransactionType.REQUEST_SENT}

_QUOTED_SPAN = re.compile(r'"([^"]+)"')
_LABELED_NOTES = (
    re.compile(r"Note:\s*(.+)", re.IGNORECASE),
    re.compile(r"Message:\s*(.+)", re.IGNORECASE),
    re.compile(r'for\s+"([^"]+)"', re.IGNORECASE),
)
_UUID_TAG = re.compile(
    r"#[\w-]*[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}",
    re.IGNORECASE | re.ASCII,
)


def clean_subject(subject: str) -> str:
    """Remove a single leading Fwd:/Fw:/Re: prefix and trim."""
    return _REPLY_PREFIX.sub("", subject or "", count=1).strip()


def parse_amount(amount_str: str) -> Optional[Decimal]:
    """
    Parse a displayed amount such as "1,234.56" or "100".

    Args:
        amount_str: Amount text without the currency symbol

    Returns:
        Decimal amount or None if the text is not a number
    """
    if not amount_str:
        return None

    try:
        return Decimal(amount_str.replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return None


def _first_hit(
    attempts: Iterable[Callable[[str], Optional[str]]], text: str
) -> Optional[str]:
    for attempt in attempts:
        result = attempt(text)
        if result:
            return result
    return None


class EmailTransactionParser:
    """
    Parser for peer-to-peer payment notification emails.

    Pure: the same payload always produces an equal ParsedTransaction,
    so re-delivered emails can be parsed again safely.
    """

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the parser with configuration.

        Args:
            config: Application configuration object (defaults if omitted)
        """
        self.config = config or ReconConfig()
        parsing = self.config.parsing

        self.note_max_length = parsing.note_max_length
        self.min_alnum_ratio = parsing.garbage_min_alnum_ratio

        prefixes = "|".join(re.escape(p) for p in parsing.tag_prefixes)
        self._tag_shape = re.compile(rf"#(?:{prefixes})[-_]", re.IGNORECASE | re.ASCII)
        self._prefixed_tag = re.compile(
            rf"#(?:{prefixes})[-_][\w-]+", re.IGNORECASE | re.ASCII
        )

        self._note_strategies = (
            self._quoted_note,
            self._labeled_note,
            self._tagged_line_note,
        )
        self._tag_strategies = (
            self._prefixed_tag_token,
            self._uuid_tag_token,
        )

    def parse(self, payload: EmailPayload) -> Optional[ParsedTransaction]:
        """
        Parse a notification email into a transaction.

        Args:
            payload: Inbound email

        Returns:
            ParsedTransaction, or None when the subject is not a transaction
        """
        classified = self.classify_subject(payload.subject)
        if classified is None:
            logger.debug(f"Subject not recognised as a transaction: {payload.subject!r}")
            return None

        transaction_type, name, amount = classified

        if transaction_type in _OUTGOING_TYPES:
            sender_name, recipient_name = ACCOUNT_HOLDER, name
        else:
            sender_name, recipient_name = name, ACCOUNT_HOLDER

        body = normalize_body(payload.text, payload.html)
        dump = payload.text_dump()

        note = (
            self.extract_note(body)
            or self.extract_note(payload.subject)
            or self.extract_note(dump)
        )
        correlation_tag = self._first_tag([body, note or "", payload.subject, dump])

        return ParsedTransaction(
            transaction_type=transaction_type,
            amount=amount,
            sender_name=sender_name,
            recipient_name=recipient_name,
            note=note,
            correlation_tag=correlation_tag,
            email_subject=payload.subject,
            email_from=payload.from_address,
            transaction_date=payload.date or None,
        )

    def classify_subject(
        self, subject: str
    ) -> Optional[tuple[TransactionType, str, Decimal]]:
        """
        Match the subject against the four transaction shapes.

        Args:
            subject: Raw subject line

        Returns:
            Tuple of (type, counterparty name, amount) or None
        """
        cleaned = clean_subject(subject)

        for pattern, transaction_type in SUBJECT_PATTERNS:
            match = pattern.search(cleaned)
            if not match:
                continue

            amount = parse_amount(match.group("amount"))
            if amount is None:
                logger.warning(f"Unparseable amount in subject: {subject!r}")
                return None

            return transaction_type, clean_subject(match.group("name")), amount

        return None

    def extract_note(self, text: str) -> Optional[str]:
        """
        Extract a human-written note from a block of text.

        Args:
            text: Normalized body, subject, or payload dump

        Returns:
            Trimmed note or None if nothing trustworthy was found
        """
        if self.is_garbage(text):
            return None
        return _first_hit(self._note_strategies, text)

    def extract_correlation_tag(self, text: str) -> Optional[str]:
        """
        Extract the correlation tag token (including '#') from text.

        Args:
            text: Text to search

        Returns:
            Tag token or None
        """
        if not text:
            return None
        return _first_hit(self._tag_strategies, text)

    def is_garbage(self, text: str) -> bool:
        return is_garbage(text, self.min_alnum_ratio)

    def _first_tag(self, sources: list[str]) -> Optional[str]:
        for source in sources:
            tag = self.extract_correlation_tag(source)
            if tag:
                return tag
        return None

    def _quoted_note(self, text: str) -> Optional[str]:
        match = _QUOTED_SPAN.search(text)
        if not match:
            return None

        candidate = match.group(1)
        if len(candidate) < self.note_max_length and not self.is_garbage(candidate):
            return candidate.strip()
        return None

    def _labeled_note(self, text: str) -> Optional[str]:
        for pattern in _LABELED_NOTES:
            match = pattern.search(text)
            if match and not self.is_garbage(match.group(1)):
                return match.group(1).strip()
        return None

    def _tagged_line_note(self, text: str) -> Optional[str]:
        for line in text.split("\n"):
            if "#" in line and self._tag_shape.search(line):
                if len(line) < self.note_max_length:
                    return line.strip()
                return None
        return None

    def _prefixed_tag_token(self, text: str) -> Optional[str]:
        match = self._prefixed_tag.search(text)
        return match.group(0) if match else None

    def _uuid_tag_token(self, text: str) -> Optional[str]:
        match = _UUID_TAG.search(text)
        return match.group(0) if match else None
