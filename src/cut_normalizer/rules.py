"""Ordered text rules for canonicalization and attribute detection.

Every table here is plain data so the rule set can be extended or replaced
without touching the matching code.
"""

import re
from dataclasses import dataclass, field

# Characters kept by the canonicalizer: Hebrew block, ASCII letters/digits,
# whitespace and a little punctuation.
CHARACTER_FILTER = r"[^\u0590-\u05FFa-z0-9\s.,%&+/-]"

# Niqqud, cantillation and geresh/gershayim inside the Hebrew block.
MARKS_FILTER = r"[\u0591-\u05C7\u05F3\u05F4]"

# Dangling punctuation trimmed from both ends of the result.
EDGE_PUNCTUATION = " .,&+/-"

NOISE_PATTERNS: tuple[str, ...] = (
    # weights and prices
    r"\d+(?:[.,]\d+)?\s*(?:קג|קילו|גרם|גר|kg|gr|g)(?!\w)",
    r"\d+[.,]\d+",
    r"(?<!\w)מבצע(?!\w).*$",
    r"(?<!\w)מחיר\s+ל\S+(?:\s+גרם)?",
    r"(?<!\w)לפי\s+משקל(?!\w)",
    r"(?<!\w)משקל\s+משתנה(?!\w)",
    # condition and marketing words
    r"(?<!\w)(?:טרי|טריה|טריים|טריות)(?!\w)",
    r"(?<!\w)(?:קפוא|קפואה|קפואים|קפואות)(?!\w)",
    r"(?<!\w)(?:מופשר|ארוז|מיובא|מקומי|מוכשר|צרכני|איכות)(?!\w)",
    r"(?<!\w)(?:פרמיום|premium|fresh|frozen|kosher)(?!\w)",
    r"(?<!\w)מס\.?(?!\w)",
)

# Applied in order after noise removal; longer patterns come before their
# prefixes so a pass never re-triggers an earlier rule.
CORRECTIONS: tuple[tuple[str, str], ...] = (
    (r"(?<!\w)false\s+fillet(?!\w)", "פילה מדומה"),
    (r"(?<!\w)פאלש\s+פילה(?!\w)", "פילה מדומה"),
    (r"(?<!\w)(?:false|פאלש)(?!\w)", "פילה מדומה"),
    (r"(?<!\w)(?:entrecote|ribeye|rib eye)(?!\w)", "אנטריקוט"),
    (r"(?<!\w)(?:אנטרקוט|אנטירקוט|אנטריקוטים)(?!\w)", "אנטריקוט"),
    (r"(?<!\w)אסדו(?!\w)", "אסאדו"),
    (r"(?<!\w)(?:גולאש|goulash)(?!\w)", "גולש"),
    (r"(?<!\w)שוקיים(?!\w)", "שוק"),
    (r"(?<!\w)(?:chicken)(?!\w)", "עוף"),
    (r"(?<!\w)(?:beef)(?!\w)", "בקר"),
    (r"(?<!\w)(?:lamb)(?!\w)", "טלה"),
    (r"(?<!\w)(?:pork)(?!\w)", "חזיר"),
    (r"(?<!\w)(?:turkey)(?!\w)", "הודו"),
    (r"(?<!\w)(?:fish)(?!\w)", "דג"),
    (r"(?<!\w)(?:breast)(?!\w)", "חזה"),
    (r"(?<!\w)(?:thigh)(?!\w)", "שוק"),
    (r"(?<!\w)(?:wings)(?!\w)", "כנפיים"),
)

CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("בקר", ("בקר", "beef", "פרה", "שור", "עגל")),
    ("עוף", ("עוף", "chicken", "תרנגולת", "פטר", "הודו", "turkey", "פרגית", "פרגיות")),
    ("טלה", ("טלה", "כבש", "lamb", "sheep", "עז", "גדי")),
    ("חזיר", ("חזיר", "pork", "pig", "ham", "bacon")),
    ("דגים", ("דג", "דגים", "fish", "סלמון", "טונה", "דניס", "אמנון", "בורי", "לוקוס")),
)

CUT_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("סטייק", ("סטייק", "steak", "מנה", "פרוסה")),
    ("צלי", ("צלי", "roast", "רוסט")),
    ("טחון", ("טחון", "ground", "קציצות", "המבורגר", "קבב")),
    ("פילה", ("פילה", "fillet", "filet")),
    ("שוק", ("שוק", "leg", "thigh", "drumstick")),
    ("כנף", ("כנף", "wing", "כנפיים")),
    ("חזה", ("חזה", "breast")),
    ("צלעות", ("צלע", "rib", "צלעות", "ribs")),
    ("גיד", ("גיד", "strip", "רצועה")),
    ("שלם", ("שלם", "whole", "מלא")),
)

PREMIUM_KEYWORDS: tuple[str, ...] = (
    "פרמיום",
    "premium",
    "מובחר",
    "מעולה",
    "אורגני",
    "organic",
    "חופשי",
    "free range",
    "בלק אנגוס",
    "black angus",
    "אנגוס",
    "angus",
    "וואגיו",
    "ואגיו",
    "wagyu",
    "מיושן",
    "dry aged",
    "אטלנטי",
    "נורווגי",
    "פארו",
    "ים תיכוני",
)


def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(keyword.lower())}(?!\w)")


@dataclass(frozen=True)
class RuleSet:
    """Compiled, ordered rule tables shared by canonicalizer and detector."""

    noise_patterns: tuple[str, ...] = NOISE_PATTERNS
    corrections: tuple[tuple[str, str], ...] = CORRECTIONS
    category_keywords: tuple[tuple[str, tuple[str, ...]], ...] = CATEGORY_KEYWORDS
    cut_type_keywords: tuple[tuple[str, tuple[str, ...]], ...] = CUT_TYPE_KEYWORDS
    premium_keywords: tuple[str, ...] = PREMIUM_KEYWORDS
    character_filter: str = CHARACTER_FILTER
    marks_filter: str = MARKS_FILTER
    edge_punctuation: str = EDGE_PUNCTUATION

    _noise: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)
    _corrections: tuple[tuple[re.Pattern[str], str], ...] = field(
        init=False, repr=False, compare=False
    )
    _categories: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...] = field(
        init=False, repr=False, compare=False
    )
    _cut_types: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...] = field(
        init=False, repr=False, compare=False
    )
    _character_filter: re.Pattern[str] = field(init=False, repr=False, compare=False)
    _marks_filter: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # frozen dataclass: compiled caches are set through object.__setattr__
        object.__setattr__(self, "_noise", tuple(_compile(p) for p in self.noise_patterns))
        object.__setattr__(
            self,
            "_corrections",
            tuple((_compile(p), repl) for p, repl in self.corrections),
        )
        object.__setattr__(
            self,
            "_categories",
            tuple(
                (label, tuple(_keyword_pattern(k) for k in keywords))
                for label, keywords in self.category_keywords
            ),
        )
        object.__setattr__(
            self,
            "_cut_types",
            tuple(
                (label, tuple(_keyword_pattern(k) for k in keywords))
                for label, keywords in self.cut_type_keywords
            ),
        )
        object.__setattr__(self, "_character_filter", re.compile(self.character_filter))
        object.__setattr__(self, "_marks_filter", re.compile(self.marks_filter))

    @property
    def compiled_noise(self) -> tuple[re.Pattern[str], ...]:
        return self._noise

    @property
    def compiled_corrections(self) -> tuple[tuple[re.Pattern[str], str], ...]:
        return self._corrections

    @property
    def compiled_categories(self) -> tuple[tuple[str, tuple[re.Pattern[str], ...]], ...]:
        return self._categories

    @property
    def compiled_cut_types(self) -> tuple[tuple[str, tuple[re.Pattern[str], ...]], ...]:
        return self._cut_types

    @property
    def compiled_character_filter(self) -> re.Pattern[str]:
        return self._character_filter

    @property
    def compiled_marks_filter(self) -> re.Pattern[str]:
        return self._marks_filter

    def with_extra_noise(self, *patterns: str) -> "RuleSet":
        """Return a copy with additional noise patterns appended."""
        return RuleSet(
            noise_patterns=self.noise_patterns + tuple(patterns),
            corrections=self.corrections,
            category_keywords=self.category_keywords,
            cut_type_keywords=self.cut_type_keywords,
            premium_keywords=self.premium_keywords,
            character_filter=self.character_filter,
            marks_filter=self.marks_filter,
            edge_punctuation=self.edge_punctuation,
        )


DEFAULT_RULES = RuleSet()
