"""Composite string similarity used by every fuzzy path.

Scores are in [0, 1] and blend three signals:

    0.4 * levenshtein + 0.4 * jaccard + 0.2 * substring

Inputs are expected to be canonicalized already; ``similarity`` does not
canonicalize on its own.
"""

from rapidfuzz.distance import Levenshtein

from .canonicalizer import words

LEVENSHTEIN_WEIGHT = 0.4
JACCARD_WEIGHT = 0.4
SUBSTRING_WEIGHT = 0.2
CONTAINED_SUBSTRING_SCORE = 0.8


def edit_distance(a: str, b: str) -> int:
    """Classic edit distance with unit insert/delete/substitute costs."""
    return Levenshtein.distance(a, b)


def levenshtein_similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 1.0 - edit_distance(a, b) / longest


def jaccard_similarity(a: str, b: str) -> float:
    words_a = words(a)
    words_b = words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def longest_common_substring(a: str, b: str) -> int:
    """Length of the longest contiguous run shared by both strings."""
    if not a or not b:
        return 0
    best = 0
    previous = [0] * (len(b) + 1)
    for char_a in a:
        current = [0] * (len(b) + 1)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current[j] = previous[j - 1] + 1
                if current[j] > best:
                    best = current[j]
        previous = current
    return best


def substring_score(a: str, b: str) -> float:
    if len(a) < len(b):
        shorter, longer = a, b
    else:
        shorter, longer = b, a
    if shorter in longer:
        return CONTAINED_SUBSTRING_SCORE
    return longest_common_substring(a, b) / max(len(a), len(b))


def similarity(a: str, b: str) -> float:
    """Composite similarity of two canonicalized strings.

    Symmetric, 1.0 for identical non-empty strings and 0.0 when either side
    is empty.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    score = (
        LEVENSHTEIN_WEIGHT * levenshtein_similarity(a, b)
        + JACCARD_WEIGHT * jaccard_similarity(a, b)
        + SUBSTRING_WEIGHT * substring_score(a, b)
    )
    return max(0.0, min(1.0, score))
