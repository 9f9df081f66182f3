"""Bonus rule resolution by flexible name matching.

Operators register one rule per bonus family ("Hoş Geldin") and it applies to
every variant name ("Hoş Geldin Bonusu 2025"). A rule matches when the names
are equal or either one contains the other (case-sensitive).
"""

from typing import Callable, Literal, Optional, Sequence, TypeVar

from validation.models import BonusRule

T = TypeVar("T")
MatchPolicy = Literal["longest", "first"]


def names_match(bonus_name: str, candidate: str) -> bool:
    """Equality or substring containment in either direction."""
    if not bonus_name or not candidate:
        return False
    return candidate == bonus_name or candidate in bonus_name or bonus_name in candidate


def resolve_by_name(
    bonus_name: str,
    items: Sequence[T],
    name_of: Callable[[T], str],
    policy: MatchPolicy = "longest",
) -> Optional[T]:
    """Pick the item whose name matches bonus_name.

    Args:
        bonus_name: Bonus name from the report.
        items: Candidate items (rules, prompts, special logics).
        name_of: Returns the matching key of an item.
        policy: "longest" prefers the most specific (longest) matching name,
            ties keep collection order; "first" returns the first match.

    Returns:
        Matching item, or None.
    """
    best = None
    for item in items:
        name = name_of(item)
        if not names_match(bonus_name, name):
            continue
        if policy == "first":
            return item
        if best is None or len(name) > len(name_of(best)):
            best = item
    return best


def resolve_rule(
    bonus_name: str,
    rules: Sequence[BonusRule],
    policy: MatchPolicy = "longest",
) -> Optional[BonusRule]:
    """Find the configured rule for a bonus name."""
    return resolve_by_name(bonus_name, rules, lambda r: r.bonus_name, policy)


resolve = resolve_rule
