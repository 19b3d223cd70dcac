"""Tests for category, cut type and premium detection."""

import pytest

from cut_normalizer.detector import detect_category, detect_cut_type, is_premium
from cut_normalizer.rules import RuleSet


class TestDetectCategory:
    """Tests for detect_category."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("אנטריקוט בקר טרי", "בקר"),
            ("חזה עוף", "עוף"),
            ("סטייק פרגית", "עוף"),
            ("שוק טלה", "טלה"),
            ("פילה סלמון", "דגים"),
            ("chicken breast", "עוף"),
            ("Beef Ribs", "בקר"),
        ],
    )
    def test_detects(self, text, expected):
        """Keywords select their category."""
        assert detect_category(text) == expected

    def test_whole_words_only(self):
        """A keyword inside a longer word does not count."""
        assert detect_category("פטרוזיליה") is None
        assert detect_category("עוף ובקר") == "עוף"

    def test_no_category(self):
        """Unknown text has no category."""
        assert detect_category("xyz לא קיים כלל") is None
        assert detect_category("") is None

    def test_first_declared_category_wins(self):
        """With two categories present the earlier table entry wins."""
        assert detect_category("עוף בקר") == "בקר"

    def test_custom_rules(self):
        """A custom keyword table is honored."""
        rules = RuleSet(category_keywords=(("ציד", ("צבי",)),))
        assert detect_category("צלי צבי", rules) == "ציד"


class TestDetectCutType:
    """Tests for detect_cut_type."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("סטייק פרגית", "סטייק"),
            ("צלעות בקר", "צלעות"),
            ("פילה בקר", "פילה"),
            ("chicken breast", "חזה"),
            ("בקר טחון", "טחון"),
            ("עוף שלם", "שלם"),
        ],
    )
    def test_detects(self, text, expected):
        """Keywords select their cut type."""
        assert detect_cut_type(text) == expected

    def test_no_cut_type(self):
        """Unknown text has no cut type."""
        assert detect_cut_type("אנטריקוט") is None


class TestIsPremium:
    """Tests for is_premium."""

    @pytest.mark.parametrize(
        "text",
        ["אנטרקוט בלק אנגוס", "Wagyu steak", "סטייק פרמיום", "סלמון נורווגי"],
    )
    def test_premium(self, text):
        """Premium keywords are detected, including noise-listed ones."""
        assert is_premium(text) is True

    @pytest.mark.parametrize("text", ["חזה עוף", "", "בקר טחון"])
    def test_not_premium(self, text):
        """Ordinary names are not premium."""
        assert is_premium(text) is False
