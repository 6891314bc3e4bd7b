"""Matching engine and strategies."""

from .engine import ReconciliationEngine
from .names import NICKNAMES, fuzzy_name_match
from .strategies import (
    MatchingStrategy,
    TagMatchStrategy,
    AmountNameStrategy,
    amounts_agree,
)

__all__ = [
    "ReconciliationEngine",
    "NICKNAMES",
    "fuzzy_name_match",
    "MatchingStrategy",
    "TagMatchStrategy",
    "AmountNameStrategy",
    "amounts_agree",
]
