"""Shared text canonicalization for cut and product names."""

import re

from .rules import DEFAULT_RULES, RuleSet

_WHITESPACE = re.compile(r"\s+")


def _strip_noise(text: str, rules: RuleSet) -> str:
    # Removing one noise phrase can make two others adjacent, so repeat until
    # the text stops changing.
    previous = None
    while previous != text:
        previous = text
        for pattern in rules.compiled_noise:
            text = pattern.sub(" ", text)
        text = _WHITESPACE.sub(" ", text).strip()
    return text


def canonicalize(text: object, rules: RuleSet = DEFAULT_RULES, strip_noise: bool = True) -> str:
    """Canonicalize a raw name into its comparison form.

    Order: trim, lowercase, drop characters outside the kept set, remove noise
    words, collapse whitespace, apply letter corrections, trim.

    Args:
        text: Raw name. Anything that is not a non-empty string yields "".
        rules: Rule set to apply.
        strip_noise: Skip noise-word removal when False.

    Returns:
        The canonical string.
    """
    if not isinstance(text, str):
        return ""

    cleaned = text.strip().lower()
    if not cleaned:
        return ""

    cleaned = rules.compiled_character_filter.sub("", cleaned)
    cleaned = rules.compiled_marks_filter.sub("", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()

    if strip_noise:
        cleaned = _strip_noise(cleaned, rules)

    for pattern, replacement in rules.compiled_corrections:
        cleaned = pattern.sub(replacement, cleaned)

    cleaned = _WHITESPACE.sub(" ", cleaned)
    return cleaned.strip(rules.edge_punctuation)


def words(text: str) -> set[str]:
    """Split canonical text into its set of words."""
    return {token for token in text.split() if token}

