"""
Reconciliation engine for payment notification emails.
Parses each email, stores the transaction, then settles or flags an obligation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
import logging

from ..models.transaction import (
    EmailPayload,
    MatchMethod,
    Obligation,
    ReconciliationOutcome,
    ReconciliationResult,
    ReconciliationSummary,
    Transaction,
    TransactionType,
)
from ..config import ReconConfig
from ..parsers.email_parser import EmailTransactionParser
from ..storage.base import ObligationStore, TransactionStore
from ..utils.exceptions import PersistenceError, SettlementError
from .strategies import AmountNameStrategy, TagMatchStrategy, amounts_agree

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Turns notification emails into stored transactions and reconciles them.

    Each transaction ends in one of three states: auto-settled (correlation
    tag and amount agree), flagged for review (amount and fuzzy name agree),
    or unmatched. The transaction is stored before matching starts, so a
    matching failure never loses the raw record.
    """

    def __init__(
        self,
        config: ReconConfig,
        transactions: TransactionStore,
        obligations: ObligationStore,
        parser: Optional[EmailTransactionParser] = None,
    ):
        """
        Initialize the reconciliation engine.

        Args:
            config: Application configuration
            transactions: Store receiving every parsed transaction
            obligations: Store of obligations to settle or annotate
            parser: Email parser (built from config if omitted)
        """
        self.config = config
        self.transactions = transactions
        self.obligations = obligations
        self.parser = parser or EmailTransactionParser(config)

        matching = config.matching
        self.amount_epsilon = Decimal(str(matching.amount_epsilon))
        self.eligible_types = {TransactionType(t) for t in matching.eligible_types}
        self.tag_strategy = TagMatchStrategy() if matching.tag_settlement_enabled else None
        self.amount_name_strategy = (
            AmountNameStrategy(self.amount_epsilon) if matching.amount_name_enabled else None
        )

    def ingest(self, payload: EmailPayload) -> Optional[ReconciliationResult]:
        """
        Parse, store and reconcile one notification email.

        Args:
            payload: Inbound email

        Returns:
            Reconciliation result, or None when the email is not a transaction

        Raises:
            PersistenceError: If the transaction cannot be stored
            SettlementError: If settling a tag-matched obligation fails
        """
        parsed = self.parser.parse(payload)
        if parsed is None:
            logger.info(f"Discarding non-transaction email: {payload.subject!r}")
            return None

        transaction = Transaction.from_parsed(parsed, raw_source=payload.to_dict())

        try:
            self.transactions.add(transaction)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Failed to store transaction from {payload.subject!r}: {e}")
            raise PersistenceError(f"Failed to store transaction: {e}") from e

        logger.info(
            f"Stored transaction {transaction.id}: {transaction.transaction_type.value} "
            f"${transaction.amount:,.2f} ({transaction.counterparty_name})"
        )

        return self.reconcile(transaction)

    def ingest_batch(self, payloads: Iterable[EmailPayload]) -> list[ReconciliationResult]:
        """Ingest several emails in order; discarded emails produce no result."""
        results: list[ReconciliationResult] = []
        for payload in payloads:
            result = self.ingest(payload)
            if result is not None:
                results.append(result)
        return results

    def reconcile(self, transaction: Transaction) -> ReconciliationResult:
        """
        Run a stored transaction through the matching state machine.

        Args:
            transaction: Transaction already persisted in the store

        Returns:
            Reconciliation result describing the terminal state
        """
        if transaction.transaction_type not in self.eligible_types:
            return self._unmatched(
                transaction,
                f"{transaction.transaction_type.value} transactions are not reconciled",
            )

        if transaction.correlation_tag and self.tag_strategy:
            tagged = self.tag_strategy.find_matches(
                transaction, self.obligations.find_by_tag(transaction.correlation_tag)
            )
            if tagged:
                return self._settle_by_tag(transaction, tagged[0])
            logger.debug(
                f"Tag {transaction.correlation_tag} did not resolve to an obligation"
            )

        if self.amount_name_strategy:
            candidates = self.amount_name_strategy.find_matches(
                transaction, self.obligations.list_pending()
            )
            if candidates:
                return self._flag_for_review(transaction, candidates[0])

        return self._unmatched(transaction, "No obligation matched amount and name")

    def _settle_by_tag(
        self, transaction: Transaction, obligation: Obligation
    ) -> ReconciliationResult:
        """Settle a tag-resolved obligation if it is pending and the amount agrees."""
        if not obligation.is_pending:
            logger.warning(
                f"Transaction {transaction.id}: obligation {obligation.id} "
                f"for {transaction.correlation_tag} is already paid"
            )
            return self._unmatched(
                transaction, f"Obligation {obligation.id} already paid", obligation
            )

        if not amounts_agree(transaction.amount, obligation.amount, self.amount_epsilon):
            logger.warning(
                f"Transaction {transaction.id}: amount ${transaction.amount:,.2f} "
                f"does not match obligation {obligation.id} (${obligation.amount:,.2f})"
            )
            return self._unmatched(
                transaction,
                f"Tag {transaction.correlation_tag} resolved but amount "
                f"${transaction.amount:,.2f} != ${obligation.amount:,.2f}",
                obligation,
            )

        notes = f"Auto-matched from payment email ({transaction.correlation_tag})"
        try:
            settled = self.obligations.mark_paid(
                obligation.id, paid_at=datetime.now(), notes=notes
            )
        except SettlementError:
            raise
        except Exception as e:
            logger.error(f"Failed to settle obligation {obligation.id}: {e}")
            raise SettlementError(f"Failed to settle obligation {obligation.id}: {e}") from e

        if not settled:
            # Another ingest settled it between the lookup and the update
            logger.warning(
                f"Transaction {transaction.id}: obligation {obligation.id} "
                f"was settled concurrently"
            )
            return self._unmatched(
                transaction, f"Obligation {obligation.id} already paid", obligation
            )

        updated = self.transactions.attach_match(
            transaction.id,
            obligation.id,
            MatchMethod.TAG_MATCH,
            review_required=False,
        )
        score, reason = self.tag_strategy.calculate_match_score(updated, obligation)

        logger.info(f"Transaction {transaction.id} settled obligation {obligation.id}")
        return ReconciliationResult(
            transaction=updated,
            outcome=ReconciliationOutcome.AUTO_SETTLED,
            reason=reason,
            obligation=self.obligations.get(obligation.id) or obligation,
            match_method=MatchMethod.TAG_MATCH,
            match_score=score,
        )

    def _flag_for_review(
        self, transaction: Transaction, obligation: Obligation
    ) -> ReconciliationResult:
        """Link a candidate obligation without changing its status."""
        updated = self.transactions.attach_match(
            transaction.id,
            obligation.id,
            MatchMethod.AMOUNT_NAME_MATCH,
            review_required=True,
        )
        self.obligations.add_candidate(obligation.id, transaction.id)

        score, reason = self.amount_name_strategy.calculate_match_score(updated, obligation)

        logger.info(
            f"Transaction {transaction.id} flagged for review against "
            f"obligation {obligation.id}"
        )
        return ReconciliationResult(
            transaction=updated,
            outcome=ReconciliationOutcome.FLAGGED_FOR_REVIEW,
            reason=reason,
            obligation=self.obligations.get(obligation.id) or obligation,
            match_method=MatchMethod.AMOUNT_NAME_MATCH,
            match_score=score,
        )

    def _unmatched(
        self,
        transaction: Transaction,
        reason: str,
        obligation: Optional[Obligation] = None,
    ) -> ReconciliationResult:
        logger.info(f"Transaction {transaction.id} unmatched: {reason}")
        return ReconciliationResult(
            transaction=transaction,
            outcome=ReconciliationOutcome.UNMATCHED,
            reason=reason,
            obligation=obligation,
        )

    def generate_summary(
        self,
        results: list[ReconciliationResult],
        emails_received: int,
        processing_time: float,
    ) -> ReconciliationSummary:
        """
        Generate a summary of a batch run.

        Args:
            results: Results of every classified email
            emails_received: Number of emails fed in, including discarded ones
            processing_time: Time taken in seconds

        Returns:
            Reconciliation summary object
        """
        by_outcome: dict[ReconciliationOutcome, list[ReconciliationResult]] = {
            outcome: [] for outcome in ReconciliationOutcome
        }
        outcomes_by_type: dict[str, dict[str, int]] = {}

        for result in results:
            by_outcome[result.outcome].append(result)
            type_counts = outcomes_by_type.setdefault(
                result.transaction.transaction_type.value, {}
            )
            type_counts[result.outcome.value] = type_counts.get(result.outcome.value, 0) + 1

        def total(outcome: ReconciliationOutcome) -> Decimal:
            return sum((r.transaction.amount for r in by_outcome[outcome]), Decimal("0"))

        return ReconciliationSummary(
            reconciliation_date=datetime.now(),
            emails_received=emails_received,
            discarded_count=emails_received - len(results),
            transaction_count=len(results),
            auto_settled_count=len(by_outcome[ReconciliationOutcome.AUTO_SETTLED]),
            flagged_count=len(by_outcome[ReconciliationOutcome.FLAGGED_FOR_REVIEW]),
            unmatched_count=len(by_outcome[ReconciliationOutcome.UNMATCHED]),
            settled_amount=total(ReconciliationOutcome.AUTO_SETTLED),
            flagged_amount=total(ReconciliationOutcome.FLAGGED_FOR_REVIEW),
            unmatched_amount=total(ReconciliationOutcome.UNMATCHED),
            outcomes_by_type=outcomes_by_type,
            processing_time_seconds=processing_time,
            config_file_used=self.config.config_file_path,
        )
