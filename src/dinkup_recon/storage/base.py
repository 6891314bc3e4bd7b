"""
Storage interfaces for the transaction ledger and the obligations it settles.

Implementations must make ObligationStore.mark_paid a conditional update:
it transitions an obligation only while it is still pending.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..models.transaction import MatchMethod, Obligation, Transaction


class TransactionStore(ABC):
    """Persisted transaction records."""

    @abstractmethod
    def add(self, transaction: Transaction) -> None:
        """
        Persist a new transaction.

        Raises:
            PersistenceError: If the record cannot be written
        """
        pass

    @abstractmethod
    def get(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    def list_all(self) -> list[Transaction]:
        """All transactions in insertion order."""
        pass

    @abstractmethod
    def attach_match(
        self,
        transaction_id: str,
        obligation_id: str,
        match_method: MatchMethod,
        review_required: bool,
        matched_at: Optional[datetime] = None,
    ) -> Transaction:
        """
        Record the match for an unmatched transaction.

        Args:
            transaction_id: Transaction to update
            obligation_id: Obligation it was matched to
            match_method: How the match was made
            review_required: True when a human must confirm
            matched_at: Match timestamp (defaults to now)

        Returns:
            The updated transaction

        Raises:
            PersistenceError: If the transaction is missing or already matched
            DuplicateMatchError: If another transaction already holds a tag
                match for the obligation
        """
        pass

    def find_by_tag(self, correlation_tag: str) -> list[Transaction]:
        return [t for t in self.list_all() if t.correlation_tag == correlation_tag]

    def find_by_amount(
        self, amount: Decimal, epsilon: Decimal = Decimal("0.01")
    ) -> list[Transaction]:
        return [t for t in self.list_all() if abs(t.amount - amount) < epsilon]

    def find_by_sender(self, sender_name: str) -> list[Transaction]:
        wanted = sender_name.strip().lower()
        return [t for t in self.list_all() if t.sender_name.strip().lower() == wanted]

    def list_matched(self) -> list[Transaction]:
        return [t for t in self.list_all() if t.is_matched and not t.review_required]

    def list_review_required(self) -> list[Transaction]:
        return [t for t in self.list_all() if t.review_required]

    def list_unmatched(self) -> list[Transaction]:
        return [t for t in self.list_all() if not t.is_matched]


class ObligationStore(ABC):
    """Outstanding payment obligations, owned by the session-management system."""

    @abstractmethod
    def add(self, obligation: Obligation) -> None:
        """Insert or replace an obligation received from the session system."""
        pass

    @abstractmethod
    def get(self, obligation_id: str) -> Optional[Obligation]:
        pass

    @abstractmethod
    def list_all(self) -> list[Obligation]:
        pass

    @abstractmethod
    def mark_paid(
        self,
        obligation_id: str,
        paid_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """
        Transition a pending obligation to paid.

        Returns:
            True if this call settled it, False if it was not pending

        Raises:
            SettlementError: If the underlying write fails
        """
        pass

    @abstractmethod
    def add_candidate(self, obligation_id: str, transaction_id: str) -> None:
        """Annotate an obligation with a transaction awaiting review."""
        pass

    def find_by_tag(self, correlation_tag: str) -> list[Obligation]:
        """Obligations carrying the tag, whatever their status."""
        return [o for o in self.list_all() if o.correlation_tag == correlation_tag]

    def list_pending(self) -> list[Obligation]:
        """Pending obligations in discovery (insertion) order."""
        return [o for o in self.list_all() if o.is_pending]
