# -*- coding: utf-8 -*-
"""
String Similarity - CarbonLedger

Sørensen-Dice coefficient over character bigrams, used to score source
column headers and category labels against synonym tables.

    score = 2 * |bigrams(a) ∩ bigrams(b)| / (|bigrams(a)| + |bigrams(b)|)

Whitespace is ignored and bigram multiplicity is respected, so
"natural gas" and "naturalgas" compare as identical. Strings shorter
than two characters score 0.0 unless they are identical.

Example:
    >>> from carbonledger.ingestion.similarity import compare_two_strings
    >>> compare_two_strings("Quantity", "quantity")
    0.8571428571428571
    >>> compare_two_strings("quantity", "quantity")
    1.0

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Tuple

__all__ = [
    "compare_two_strings",
    "find_best_match",
]

_WHITESPACE_RE = re.compile(r"\s+")


def _generate_bigrams(text: str) -> List[str]:
    """Generate character bigrams."""
    return [text[i:i + 2] for i in range(len(text) - 1)]


def compare_two_strings(first: str, second: str) -> float:
    """Return the Dice bigram similarity of two strings in [0, 1].

    Comparison is case-sensitive; callers lower-case both sides first.

    Args:
        first: First string.
        second: Second string.

    Returns:
        Similarity score, 1.0 for identical strings.
    """
    first = _WHITESPACE_RE.sub("", first)
    second = _WHITESPACE_RE.sub("", second)

    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    counts: Dict[str, int] = {}
    for bigram in _generate_bigrams(first):
        counts[bigram] = counts.get(bigram, 0) + 1

    intersection = 0
    for bigram in _generate_bigrams(second):
        remaining = counts.get(bigram, 0)
        if remaining > 0:
            counts[bigram] = remaining - 1
            intersection += 1

    return (2.0 * intersection) / (len(first) + len(second) - 2)


def find_best_match(
    target: str,
    candidates: Iterable[str],
) -> Tuple[Optional[str], float]:
    """Find the candidate most similar to ``target``.

    Ties keep the earliest candidate.

    Returns:
        Tuple of (best candidate or None, score).
    """
    best: Optional[str] = None
    best_score = 0.0
    for candidate in candidates:
        score = compare_two_strings(target, candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score
