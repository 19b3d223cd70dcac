"""Keyword-based category, cut type and premium detection."""

import re

from .canonicalizer import canonicalize
from .rules import DEFAULT_RULES, RuleSet


def _attribute_text(text: str, rules: RuleSet) -> str:
    # Noise words are kept here: "premium" and friends are evidence.
    return canonicalize(text, rules, strip_noise=False)


def _first_label(
    text: str, table: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...]
) -> str | None:
    for label, patterns in table:
        if any(pattern.search(text) for pattern in patterns):
            return label
    return None


def detect_category(text: str, rules: RuleSet = DEFAULT_RULES) -> str | None:
    """Return the first category whose keyword appears as a whole word."""
    cleaned = _attribute_text(text, rules)
    if not cleaned:
        return None
    return _first_label(cleaned, rules.compiled_categories)


def detect_cut_type(text: str, rules: RuleSet = DEFAULT_RULES) -> str | None:
    """Return the first cut type whose keyword appears as a whole word."""
    cleaned = _attribute_text(text, rules)
    if not cleaned:
        return None
    return _first_label(cleaned, rules.compiled_cut_types)


def is_premium(text: str, rules: RuleSet = DEFAULT_RULES) -> bool:
    """Check for any premium keyword as a plain substring."""
    cleaned = _attribute_text(text, rules)
    if not cleaned:
        return False
    return any(keyword.lower() in cleaned for keyword in rules.premium_keywords)
