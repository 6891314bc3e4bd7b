"""In-process ledger stores guarded by locks."""

from datetime import datetime
from typing import Optional
import threading

from ..models.transaction import (
    MatchMethod,
    Obligation,
    ObligationStatus,
    Transaction,
)
from ..utils.exceptions import DuplicateMatchError, PersistenceError
from .base import ObligationStore, TransactionStore


class InMemoryTransactionStore(TransactionStore):
    """Transaction ledger kept in a dict, safe for concurrent ingest calls."""

    def __init__(self) -> None:
        self._transactions: dict[str, Transaction] = {}
        self._lock = threading.Lock()

    def add(self, transaction: Transaction) -> None:
        with self._lock:
            if transaction.id in self._transactions:
                raise PersistenceError(f"Transaction {transaction.id} already exists")
            self._transactions[transaction.id] = transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(transaction_id)

    def list_all(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions.values())

    def attach_match(
        self,
        transaction_id: str,
        obligation_id: str,
        match_method: MatchMethod,
        review_required: bool,
        matched_at: Optional[datetime] = None,
    ) -> Transaction:
        with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None:
                raise PersistenceError(f"Unknown transaction {transaction_id}")
            if transaction.is_matched:
                raise PersistenceError(
                    f"Transaction {transaction_id} is already matched to "
                    f"{transaction.matched_obligation_id}"
                )

            if match_method == MatchMethod.TAG_MATCH:
                for other in self._transactions.values():
                    if (
                        other.matched_obligation_id == obligation_id
                        and other.match_method == MatchMethod.TAG_MATCH
                    ):
                        raise DuplicateMatchError(
                            f"Obligation {obligation_id} already tag-matched by {other.id}"
                        )

            transaction.matched_obligation_id = obligation_id
            transaction.match_method = match_method
            transaction.review_required = review_required
            transaction.matched_at = matched_at or datetime.now()
            transaction.processed = not review_required
            return transaction


class InMemoryObligationStore(ObligationStore):
    """Obligation ledger with lock-guarded compare-and-set settlement."""

    def __init__(self, obligations: Optional[list[Obligation]] = None) -> None:
        self._obligations: dict[str, Obligation] = {}
        self._lock = threading.Lock()
        for obligation in obligations or []:
            self.add(obligation)

    def add(self, obligation: Obligation) -> None:
        with self._lock:
            self._obligations[obligation.id] = obligation

    def get(self, obligation_id: str) -> Optional[Obligation]:
        with self._lock:
            return self._obligations.get(obligation_id)

    def list_all(self) -> list[Obligation]:
        with self._lock:
            return list(self._obligations.values())

    def mark_paid(
        self,
        obligation_id: str,
        paid_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> bool:
        with self._lock:
            obligation = self._obligations.get(obligation_id)
            if obligation is None or obligation.status != ObligationStatus.PENDING:
                return False

            obligation.status = ObligationStatus.PAID
            obligation.paid_at = paid_at or datetime.now()
            if notes:
                obligation.notes = notes
            return True

    def add_candidate(self, obligation_id: str, transaction_id: str) -> None:
        with self._lock:
            obligation = self._obligations.get(obligation_id)
            if obligation is None:
                raise PersistenceError(f"Unknown obligation {obligation_id}")
            if transaction_id not in obligation.candidate_transaction_ids:
                obligation.candidate_transaction_ids.append(transaction_id)
