"""Core data models for Cut Normalizer."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Category(str, Enum):
    """Meat categories."""

    BEEF = "בקר"
    CHICKEN = "עוף"
    LAMB = "טלה"
    PORK = "חזיר"
    FISH = "דגים"
    OTHER = "אחר"


class CutType(str, Enum):
    """Cut types."""

    STEAK = "סטייק"
    ROAST = "צלי"
    GROUND = "טחון"
    FILLET = "פילה"
    LEG = "שוק"
    WING = "כנף"
    BREAST = "חזה"
    RIBS = "צלעות"
    STRIP = "גיד"
    WHOLE = "שלם"


class VariationSource(str, Enum):
    """How a variation was linked to its canonical entity."""

    MANUAL = "manual"
    MAPPING = "mapping"
    MAPPING_FUZZY = "mapping_fuzzy"
    DATABASE = "database"
    AUTO = "auto"
    ORIGINAL = "original"


class Decision(str, Enum):
    """What normalize would do with the best candidate."""

    REUSE = "reuse"
    SUGGEST = "suggest"
    CREATE = "create"


# Lower value wins when candidates tie on confidence.
SOURCE_PRIORITY: dict[VariationSource, int] = {
    VariationSource.MAPPING: 0,
    VariationSource.MAPPING_FUZZY: 1,
    VariationSource.DATABASE: 2,
}


class CanonicalDraft(BaseModel):
    """Fields for a canonical entity that does not exist yet."""

    name: str
    category: str = Category.OTHER.value
    cut_type: str | None = None
    subcategory: str | None = None
    is_premium: bool = False
    typical_weight_range: str | None = None
    cooking_methods: list[str] = Field(default_factory=list)


class CanonicalEntity(CanonicalDraft):
    """The single authoritative record for one real-world cut."""

    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class VariationDraft(BaseModel):
    """An observed name waiting to be linked to a canonical entity."""

    original_name: str
    confidence_score: float = Field(default=1.0, ge=0.0, le=1.0)
    source: VariationSource = VariationSource.MANUAL
    created_by: str | None = None


class VariationRecord(VariationDraft):
    """A raw name linked to a canonical entity."""

    id: UUID = Field(default_factory=uuid4)
    canonical_entity_id: UUID
    verified: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class MatchCandidate(BaseModel):
    """A possible canonical match for an input name."""

    canonical_name: str
    confidence: float
    source: VariationSource
    matched_text: str
    entity: CanonicalEntity | None = None

    @property
    def sort_key(self) -> tuple[float, int, int]:
        """Confidence descending, then source priority, then shorter text."""
        return (
            -self.confidence,
            SOURCE_PRIORITY.get(self.source, len(SOURCE_PRIORITY)),
            len(self.matched_text),
        )


class NormalizeOptions(BaseModel):
    """Caller options for a normalize or analyze request."""

    force_create: bool = False
    category_hint: str | None = None
    cut_type_hint: str | None = None
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    user_id: str | None = None
    source: VariationSource = VariationSource.MANUAL


class AnalysisReport(BaseModel):
    """Read-only analysis of a name."""

    original_name: str
    cleaned_name: str
    detected_category: str | None = None
    detected_cut_type: str | None = None
    is_premium: bool = False
    suggested_name: str
    confidence: float = 0.0
    decision: Decision = Decision.CREATE
    reasons: list[str] = Field(default_factory=list)
    ranked_candidates: list[MatchCandidate] = Field(default_factory=list)


class ResolutionEnvelope(BaseModel):
    """Outcome of normalizing a name."""

    canonical_entity: CanonicalEntity
    variation_record: VariationRecord
    is_new_entity: bool
    confidence: float
    source: VariationSource
    alternatives: list[MatchCandidate] = Field(default_factory=list)


class CategoryStats(BaseModel):
    """Aggregate counts for one category."""

    category: str
    canonical_count: int = 0
    variation_count: int = 0
    avg_confidence: float | None = None
    verified_count: int = 0


class BatchResult(BaseModel):
    """Summary of a batch normalization run."""

    processed: int = 0
    new_entities: int = 0
    reused_entities: int = 0
    failures: dict[str, str] = Field(default_factory=dict)
    results: list[ResolutionEnvelope] = Field(default_factory=list)
