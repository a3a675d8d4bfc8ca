"""Deterministic string similarity helpers for entity resolution."""

from __future__ import annotations

import re

_MULTISPACE_RE = re.compile(r"\s+")

EXACT_SCORE = 1.0
CONTAINS_SCORE = 0.9
WORD_EQUALS_SCORE = 0.85
WORD_PREFIX_SCORE = 0.8
SUBSEQUENCE_WEIGHT = 0.7


def normalize_entity_text(value: str) -> str:
    """Lowercase and collapse whitespace for matching."""

    return _MULTISPACE_RE.sub(" ", value.strip().lower())


def fuzzy_score(needle: str, haystack: str) -> float:
    """Score how well ``needle`` matches ``haystack`` in [0, 1], case-insensitively.

    Precedence, first match wins:

    1. exact match -> 1.0
    2. ``haystack`` contains ``needle`` (prefixes included) -> 0.9
    3. every word of ``needle`` equals a word of ``haystack`` -> 0.85,
       or every word is a prefix of one -> 0.8
    4. ordered character coverage scaled into [0, 0.7]

    A containment match therefore never scores below a partial one.
    """

    n = normalize_entity_text(needle)
    h = normalize_entity_text(haystack)
    if n == h:
        return EXACT_SCORE
    if not n or not h:
        return 0.0
    if n in h:
        return CONTAINS_SCORE

    needle_words = n.split(" ")
    haystack_words = h.split(" ")
    if all(word in haystack_words for word in needle_words):
        return WORD_EQUALS_SCORE
    if all(any(candidate.startswith(word) for candidate in haystack_words) for word in needle_words):
        return WORD_PREFIX_SCORE

    return subsequence_coverage(n, h) * SUBSEQUENCE_WEIGHT


def subsequence_coverage(needle: str, haystack: str) -> float:
    """Fraction of characters of ``needle`` found in order within ``haystack``.

    The cursor only moves forward; characters that are not found are skipped
    without moving it. Normalized by the longer of the two strings.
    """

    if not needle or not haystack:
        return 0.0
    matches = 0
    cursor = -1
    for char in needle:
        index = haystack.find(char, cursor + 1)
        if index != -1:
            matches += 1
            cursor = index
    return matches / max(len(needle), len(haystack))
