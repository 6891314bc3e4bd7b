"""Data models for payment notification transactions and reconciliation results."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
import uuid

# Display name the payment provider uses for the mailbox owner
ACCOUNT_HOLDER = "You"

DEFAULT_TAG_PREFIX = "#dinkup-"


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class TransactionType(Enum):
    """Shape of a payment notification, from the account holder's perspective."""

    PAYMENT_SENT = "payment_sent"
    PAYMENT_RECEIVED = "payment_received"
    REQUEST_SENT = "request_sent"
    REQUEST_RECEIVED = "request_received"


class MatchMethod(Enum):
    """How a transaction was linked to an obligation."""

    TAG_MATCH = "tag_match"  # Correlation tag resolved, settled automatically
    AMOUNT_NAME_MATCH = "amount_name_match"  # Advisory, needs a human


class ObligationStatus(Enum):
    """Payment state of an obligation."""

    PENDING = "pending"
    PAID = "paid"


class ReconciliationOutcome(Enum):
    """Terminal state reached by a transaction in the reconciliation engine."""

    AUTO_SETTLED = "auto_settled"
    FLAGGED_FOR_REVIEW = "flagged_for_review"
    UNMATCHED = "unmatched"


@dataclass
class EmailPayload:
    """
    Inbound notification email as delivered by the mail transport.

    The transport is responsible for MIME decoding; ``text`` is whatever
    plain-text body it managed to extract and may be empty.
    """

    from_address: str
    to_address: str
    subject: str
    text: str = ""
    html: str = ""
    date: Optional[str] = None
    message_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmailPayload":
        """Build a payload from its delivery (wire) representation."""
        return cls(
            from_address=str(data.get("from") or ""),
            to_address=str(data.get("to") or ""),
            subject=str(data.get("subject") or ""),
            text=str(data.get("text") or ""),
            html=str(data.get("html") or ""),
            date=_optional_str(data.get("date")),
            message_id=_optional_str(data.get("messageId")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Delivery (wire) representation, kept verbatim as the audit copy."""
        return {
            "from": self.from_address,
            "to": self.to_address,
            "subject": self.subject,
            "text": self.text,
            "html": self.html,
            "date": self.date,
            "messageId": self.message_id,
        }

    def text_dump(self) -> str:
        """All non-empty field values, one per line."""
        values = [
            self.from_address,
            self.to_address,
            self.subject,
            self.text,
            self.html,
            self.date,
            self.message_id,
        ]
        return "\n".join(v for v in values if v)


@dataclass(frozen=True)
class ParsedTransaction:
    """Structured fields extracted from a single notification email."""

    transaction_type: TransactionType
    amount: Decimal
    sender_name: str
    recipient_name: str
    note: Optional[str]
    correlation_tag: Optional[str]
    email_subject: str
    email_from: str
    transaction_date: Optional[str] = None

    @property
    def counterparty_name(self) -> str:
        """The party on the other side of the account holder."""
        if self.sender_name == ACCOUNT_HOLDER:
            return self.recipient_name
        return self.sender_name


@dataclass
class Transaction:
    """
    Persisted record of a parsed notification email.

    Created once per classifiable email and mutated at most once afterwards,
    when the reconciliation engine attaches a match.
    """

    id: str
    transaction_type: TransactionType
    amount: Decimal
    sender_name: str
    recipient_name: str
    note: Optional[str] = None
    correlation_tag: Optional[str] = None

    # Provenance, as received
    email_subject: str = ""
    email_from: str = ""
    transaction_date: Optional[str] = None

    # Original payload for audit trail
    raw_source: dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=datetime.now)

    # Matching state
    matched_obligation_id: Optional[str] = None
    match_method: Optional[MatchMethod] = None
    review_required: bool = False
    matched_at: Optional[datetime] = None
    processed: bool = False

    @classmethod
    def from_parsed(
        cls,
        parsed: ParsedTransaction,
        raw_source: dict[str, Any],
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        """Create an unmatched record from extractor output."""
        return cls(
            id=transaction_id or str(uuid.uuid4()),
            transaction_type=parsed.transaction_type,
            amount=parsed.amount,
            sender_name=parsed.sender_name,
            recipient_name=parsed.recipient_name,
            note=parsed.note,
            correlation_tag=parsed.correlation_tag,
            email_subject=parsed.email_subject,
            email_from=parsed.email_from,
            transaction_date=parsed.transaction_date,
            raw_source=dict(raw_source),
        )

    @property
    def counterparty_name(self) -> str:
        if self.sender_name == ACCOUNT_HOLDER:
            return self.recipient_name
        return self.sender_name

    @property
    def is_matched(self) -> bool:
        return self.matched_obligation_id is not None


@dataclass
class Obligation:
    """
    Money owed by one participant for one session.

    Owned by the session-management system; reconciliation only reads it,
    settles it, or annotates it with candidate transactions.
    """

    id: str
    amount: Decimal
    owing_party: str
    status: ObligationStatus = ObligationStatus.PENDING
    correlation_tag: Optional[str] = None
    session_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    candidate_transaction_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Derive the correlation tag the session system embeds in requests."""
        if not self.correlation_tag:
            self.correlation_tag = f"{DEFAULT_TAG_PREFIX}{self.id}"

    @property
    def is_pending(self) -> bool:
        return self.status == ObligationStatus.PENDING


@dataclass
class ReconciliationResult:
    """Result of running one transaction through the reconciliation engine."""

    transaction: Transaction
    outcome: ReconciliationOutcome
    reason: str
    obligation: Optional[Obligation] = None
    match_method: Optional[MatchMethod] = None
    match_score: float = 0.0  # 0.0 to 1.0

    # Timestamp for audit
    reconciled_at: datetime = field(default_factory=datetime.now)

    @property
    def is_settled(self) -> bool:
        return self.outcome == ReconciliationOutcome.AUTO_SETTLED


@dataclass
class ReconciliationSummary:
    """Summary of a batch reconciliation run."""

    reconciliation_date: datetime

    # Email counts
    emails_received: int
    discarded_count: int
    transaction_count: int

    # Outcome counts
    auto_settled_count: int
    flagged_count: int
    unmatched_count: int

    # Amount totals
    settled_amount: Decimal
    flagged_amount: Decimal
    unmatched_amount: Decimal

    # Outcome breakdown per transaction type
    outcomes_by_type: dict[str, dict[str, int]] = field(default_factory=dict)

    # Processing metadata
    processing_time_seconds: float = 0.0
    config_file_used: Optional[str] = None

    @property
    def settlement_rate(self) -> float:
        """Percentage of transactions settled automatically."""
        if self.transaction_count == 0:
            return 0.0
        return (self.auto_settled_count / self.transaction_count) * 100

    @property
    def match_rate(self) -> float:
        """Percentage of transactions settled or flagged for review."""
        if self.transaction_count == 0:
            return 0.0
        matched = self.auto_settled_count + self.flagged_count
        return (matched / self.transaction_count) * 100
