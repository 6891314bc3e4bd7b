"""
Matching strategies for payment reconciliation.
Each strategy implements one way of linking a transaction to an obligation.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from ..models.transaction import MatchMethod, Obligation, Transaction
from .names import fuzzy_name_match


def amounts_agree(a: Decimal, b: Decimal, epsilon: Decimal) -> bool:
    """True when two amounts differ by less than epsilon."""
    return abs(a - b) < epsilon


class MatchingStrategy(ABC):
    """Abstract base class for matching strategies."""

    match_method: MatchMethod

    @abstractmethod
    def find_matches(
        self,
        transaction: Transaction,
        candidates: list[Obligation],
    ) -> list[Obligation]:
        """
        Find obligations the transaction may satisfy.

        Args:
            transaction: Parsed payment transaction
            candidates: Obligations to consider, in discovery order

        Returns:
            Matching obligations (at most one)
        """
        pass

    @abstractmethod
    def calculate_match_score(
        self,
        transaction: Transaction,
        obligation: Obligation,
    ) -> tuple[float, str]:
        """
        Calculate the confidence score and reason for a match.

        Returns:
            Tuple of (score 0.0-1.0, reason string)
        """
        pass


class TagMatchStrategy(MatchingStrategy):
    """
    Correlation tag matching - the tag is an identifier the session system
    embedded in its payment request, so a hit is exact.
    Amount agreement is checked separately by the engine.
    """

    match_method = MatchMethod.TAG_MATCH

    def find_matches(
        self,
        transaction: Transaction,
        candidates: list[Obligation],
    ) -> list[Obligation]:
        """Find the obligation carrying the transaction's tag, whatever its status."""
        if not transaction.correlation_tag:
            return []

        for obligation in candidates:
            if obligation.correlation_tag == transaction.correlation_tag:
                return [obligation]
        return []

    def calculate_match_score(
        self,
        transaction: Transaction,
        obligation: Obligation,
    ) -> tuple[float, str]:
        """Tag matches have perfect score."""
        return 1.0, f"Correlation tag {transaction.correlation_tag} and amount match"


class AmountNameStrategy(MatchingStrategy):
    """
    Amount plus fuzzy first-name matching against pending obligations.
    Advisory only: the first candidate found is flagged for human review.
    """

    match_method = MatchMethod.AMOUNT_NAME_MATCH

    def __init__(self, amount_epsilon: Decimal = Decimal("0.01")):
        """
        Initialize with amount tolerance.

        Args:
            amount_epsilon: Amounts closer than this are considered equal
        """
        self.amount_epsilon = amount_epsilon

    def find_matches(
        self,
        transaction: Transaction,
        candidates: list[Obligation],
    ) -> list[Obligation]:
        """Return the first pending obligation with equal amount and a similar name."""
        counterparty = transaction.counterparty_name.lower()
        if not counterparty:
            return []

        for obligation in candidates:
            if not obligation.is_pending:
                continue
            if not amounts_agree(transaction.amount, obligation.amount, self.amount_epsilon):
                continue
            if fuzzy_name_match(obligation.owing_party.lower(), counterparty):
                return [obligation]

        return []

    def calculate_match_score(
        self,
        transaction: Transaction,
        obligation: Obligation,
    ) -> tuple[float, str]:
        """Score higher when the full names agree, not just the first names."""
        counterparty = " ".join(transaction.counterparty_name.lower().split())
        owing_party = " ".join(obligation.owing_party.lower().split())

        score = 0.8 if counterparty == owing_party else 0.5
        reason = (
            f"Amount ${transaction.amount:,.2f} matches and "
            f"'{transaction.counterparty_name}' resembles '{obligation.owing_party}'"
        )
        return score, reason
