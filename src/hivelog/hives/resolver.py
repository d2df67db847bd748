"""Resolve a spoken hive reference to a hive in the registry.

Match cascade (case-insensitive, input trimmed), first rule with a hit wins:
  1. exact      - reference equals a hive name
  2. contains   - reference is a substring of a hive name (registry order)
  3. positional - reference contains a number N with 1 <= N <= len(registry);
                  the N-th hive in registry order is returned
Anything else is unresolved. Ambiguity is never reported.

The positional rule ties "bikupa 2" to the second hive in the *current*
list, not to a stored identifier. If hive order changes between sessions,
the same transcript resolves to a different hive.

``suggest_hives`` is advisory only: it ranks hives with RapidFuzz for a
human choosing a manual assignment and is never used to auto-resolve.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from rapidfuzz import fuzz

from hivelog.models import Hive

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"\d+")

# Minimum token_set_ratio for a hive to be offered as a suggestion
SUGGEST_MIN_SCORE = 50


def _exact(term: str, hives: Sequence[Hive]) -> Hive | None:
    return next((h for h in hives if h.name.casefold() == term), None)


def _contains(term: str, hives: Sequence[Hive]) -> Hive | None:
    return next((h for h in hives if term in h.name.casefold()), None)


def _positional(term: str, hives: Sequence[Hive]) -> Hive | None:
    match = _NUMBER.search(term)
    if match is None:
        return None
    digits = match.group().lstrip("0") or "0"
    # More digits than the registry size has cannot be in range.
    if len(digits) > len(str(len(hives))):
        return None
    position = int(digits)
    if 1 <= position <= len(hives):
        return hives[position - 1]
    return None


MatchRule = Callable[[str, Sequence[Hive]], Hive | None]

# The order of this tuple is the matching priority.
MATCH_RULES: tuple[tuple[str, MatchRule], ...] = (
    ("exact", _exact),
    ("contains", _contains),
    ("positional", _positional),
)


@dataclass(frozen=True, slots=True)
class HiveMatch:
    """A resolved hive and the rule that matched it."""

    hive: Hive
    rule: str


def match_hive(reference: str | None, hives: Sequence[Hive]) -> HiveMatch | None:
    """Run the match cascade and report which rule matched.

    Args:
        reference: Free-text hive reference from the extraction.
        hives: Known hives in registration order.

    Returns:
        HiveMatch, or None when unresolved.
    """
    if not reference:
        return None
    term = reference.strip().casefold()
    if not term:
        return None

    for rule_name, rule in MATCH_RULES:
        hive = rule(term, hives)
        if hive is not None:
            return HiveMatch(hive=hive, rule=rule_name)
    return None


def resolve_hive(reference: str | None, hives: Sequence[Hive]) -> Hive | None:
    """Resolve *reference* to exactly one hive, or None."""
    match = match_hive(reference, hives)
    return match.hive if match is not None else None


def suggest_hives(
    reference: str | None, hives: Sequence[Hive], limit: int = 3
) -> list[tuple[Hive, float]]:
    """Rank hives by fuzzy similarity to *reference* for manual review.

    Uses rapidfuzz.fuzz.token_set_ratio. Returns up to *limit*
    (hive, score) pairs with score >= SUGGEST_MIN_SCORE, best first;
    ties keep registry order.
    """
    if not reference or not reference.strip():
        return []
    term = reference.strip().casefold()

    scored: list[tuple[Hive, float]] = []
    for hive in hives:
        score = fuzz.token_set_ratio(term, hive.name.casefold())
        if score >= SUGGEST_MIN_SCORE:
            scored.append((hive, score))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit]
