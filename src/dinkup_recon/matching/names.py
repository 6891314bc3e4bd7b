"""
Fuzzy person-name matching used to rank obligations for manual review.

Only first names are compared; this is a ranking aid, not an identity proof.
"""

from types import MappingProxyType
from typing import Mapping

NICKNAME_FAMILIES: tuple[frozenset[str], ...] = (
    frozenset({"mike", "michael", "mikey"}),
    frozenset({"john", "jon", "johnny", "jonathan"}),
    frozenset({"matt", "matthew", "matty"}),
    frozenset({"dan", "daniel", "danny"}),
    frozenset({"rob", "robert", "robby", "bob"}),
    frozenset({"will", "william", "bill", "billy"}),
    frozenset({"chris", "christopher"}),
)


def _build_nickname_table() -> Mapping[str, frozenset[str]]:
    table: dict[str, frozenset[str]] = {}
    for family in NICKNAME_FAMILIES:
        for name in family:
            table[name] = family - {name}
    return MappingProxyType(table)


NICKNAMES: Mapping[str, frozenset[str]] = _build_nickname_table()


def _first_token(name: str) -> str:
    parts = (name or "").split()
    return parts[0] if parts else ""


def fuzzy_name_match(name1: str, name2: str) -> bool:
    """
    Decide whether two names plausibly refer to the same person.

    Matches when either first name is a prefix of the other (as given,
    case-sensitive) or when both belong to the same nickname family.

    Args:
        name1: First full or partial name
        name2: Second full or partial name

    Returns:
        True for a plausible match
    """
    first1 = _first_token(name1)
    first2 = _first_token(name2)

    if not first1 or not first2:
        return False

    if first1.startswith(first2) or first2.startswith(first1):
        return True

    lower1, lower2 = first1.lower(), first2.lower()
    return lower2 in NICKNAMES.get(lower1, frozenset()) or lower1 in NICKNAMES.get(
        lower2, frozenset()
    )
