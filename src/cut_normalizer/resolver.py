"""Match resolution: decide whether a raw name reuses an entity or creates one.

The resolver holds no mutable state of its own. The mapping table is
immutable and every durable write goes through the store, so one resolver can
serve concurrent callers.
"""

import logging
from collections.abc import Iterable

from .canonicalizer import canonicalize
from .config import ThresholdsConfig
from .data_store import DuplicateNameError, NormalizationStore, StorageUnavailableError
from .detector import detect_category, detect_cut_type, is_premium
from .mapping_table import MappingTable
from .models import (
    AnalysisReport,
    BatchResult,
    CanonicalDraft,
    CanonicalEntity,
    Category,
    CategoryStats,
    Decision,
    MatchCandidate,
    NormalizeOptions,
    ResolutionEnvelope,
    VariationDraft,
    VariationRecord,
    VariationSource,
)
from .rules import DEFAULT_RULES, RuleSet
from .similarity import similarity

logger = logging.getLogger(__name__)

# Sources allowed on the first variation of a freshly created entity.
CREATION_SOURCES = (VariationSource.MANUAL, VariationSource.ORIGINAL)

# Attempts at create-or-attach before giving up on a name that keeps
# appearing and disappearing under us.
_CREATE_ATTEMPTS = 3


class InvalidInputError(ValueError):
    """Raised when the input name is not a non-empty string."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Expected a non-empty product name, got {value!r}")


def rank_candidates(candidates: Iterable[MatchCandidate]) -> list[MatchCandidate]:
    """Sort candidates best first and keep one per canonical name."""
    ranked: list[MatchCandidate] = []
    seen: set[str] = set()
    for candidate in sorted(candidates, key=lambda c: c.sort_key):
        key = candidate.canonical_name.casefold()
        if key in seen:
            continue
        seen.add(key)
        ranked.append(candidate)
    return ranked


class MatchResolver:
    """Resolves raw product names against the mapping table and the store."""

    def __init__(
        self,
        store: NormalizationStore,
        mapping: MappingTable | None = None,
        thresholds: ThresholdsConfig | None = None,
        rules: RuleSet = DEFAULT_RULES,
        default_category: str = Category.OTHER.value,
    ):
        """Initialize the resolver.

        Args:
            store: Normalization store that owns all durable state
            mapping: Curated mapping table, empty if not given
            thresholds: Decision thresholds, defaults if not given
            rules: Rule set for canonicalization and detection
            default_category: Category used when nothing else applies
        """
        self.store = store
        self.mapping = mapping if mapping is not None else MappingTable.empty(rules)
        self.thresholds = thresholds or ThresholdsConfig()
        self.rules = rules
        self.default_category = default_category

    # --- Public operations ---

    def analyze(self, text: object, min_confidence: float | None = None) -> AnalysisReport:
        """Describe how a name would resolve, without writing anything.

        Args:
            text: Raw product name
            min_confidence: Minimum store confidence, analyze default if None

        Raises:
            InvalidInputError: If text is empty or not a string
            StorageUnavailableError: If the store cannot be read
        """
        raw = self._validate(text)
        cleaned = canonicalize(raw, self.rules)
        category = detect_category(raw, self.rules)
        cut_type = detect_cut_type(raw, self.rules)
        premium = is_premium(raw, self.rules)

        if min_confidence is None:
            min_confidence = self.thresholds.analyze_min_confidence
        candidates = self._collect_candidates(raw, cleaned, min_confidence)
        best = candidates[0] if candidates else None

        reasons = []
        if cleaned != raw.lower():
            reasons.append(f"cleaned to '{cleaned}'")
        if category:
            reasons.append(f"category detected: {category}")
        if cut_type:
            reasons.append(f"cut type detected: {cut_type}")
        if premium:
            reasons.append("premium keyword present")

        if best is not None and best.confidence > self.thresholds.suggest:
            suggested = best.canonical_name
            reasons.append(
                f"best match '{best.canonical_name}' ({best.source.value}, {best.confidence:.2f})"
            )
        elif category and cut_type:
            suggested = f"{cut_type} {category}"
            reasons.append("name built from detected cut type and category")
        else:
            suggested = cleaned or raw.lower()
            if best is None:
                reasons.append("no match found")
            else:
                reasons.append(f"best match below {self.thresholds.suggest:.2f}")

        decision = self._decision(best)
        if decision == Decision.SUGGEST:
            reasons.append(f"'{best.canonical_name}' is a suggestion to accept or reject")

        return AnalysisReport(
            original_name=raw,
            cleaned_name=cleaned,
            detected_category=category,
            detected_cut_type=cut_type,
            is_premium=premium,
            suggested_name=suggested,
            confidence=best.confidence if best else 0.0,
            decision=decision,
            reasons=reasons,
            ranked_candidates=candidates[: self.thresholds.alternatives + 1],
        )

    def normalize(
        self, text: object, options: NormalizeOptions | None = None
    ) -> ResolutionEnvelope:
        """Resolve a name to a canonical entity, creating one if needed.

        Args:
            text: Raw product name
            options: Caller options, defaults if None

        Returns:
            The entity, its variation record and the decision details

        Raises:
            InvalidInputError: If text is empty or not a string
            StorageUnavailableError: If the store cannot be read or written
        """
        options = options or NormalizeOptions()
        raw = self._validate(text)
        cleaned = canonicalize(raw, self.rules)

        min_confidence = options.min_confidence
        if min_confidence is None:
            min_confidence = self.thresholds.normalize_min_confidence
        candidates = self._collect_candidates(raw, cleaned, min_confidence)
        top = candidates[0] if candidates else None

        if top is not None and top.confidence > self.thresholds.reuse and not options.force_create:
            entity, record, is_new = self._reuse(raw, top, options)
            alternatives = candidates[1:]
        else:
            entity, record, is_new = self._create(raw, cleaned, options)
            alternatives = candidates

        return ResolutionEnvelope(
            canonical_entity=entity,
            variation_record=record,
            is_new_entity=is_new,
            confidence=record.confidence_score,
            source=record.source,
            alternatives=alternatives[: self.thresholds.alternatives],
        )

    def normalize_many(
        self, texts: Iterable[object], options: NormalizeOptions | None = None
    ) -> BatchResult:
        """Normalize several names, recording invalid ones as failures.

        Raises:
            StorageUnavailableError: If the store fails; earlier items stay written
        """
        result = BatchResult()
        for text in texts:
            try:
                envelope = self.normalize(text, options)
            except InvalidInputError as e:
                result.failures[repr(text)] = str(e)
                continue
            result.processed += 1
            if envelope.is_new_entity:
                result.new_entities += 1
            else:
                result.reused_entities += 1
            result.results.append(envelope)
        return result

    def find_best_matches(
        self,
        text: object,
        min_confidence: float = 0.6,
        category: str | None = None,
        limit: int = 10,
    ) -> list[MatchCandidate]:
        """Rank every mapping variation and stored entity against a name.

        Args:
            text: Raw product name
            min_confidence: Minimum similarity to include
            category: Only keep matches in this category
            limit: Maximum number of results

        Raises:
            InvalidInputError: If text is empty or not a string
            StorageUnavailableError: If the store cannot be read
        """
        raw = self._validate(text)
        cleaned = canonicalize(raw, self.rules)
        if not cleaned:
            return []

        candidates = []
        for entry in self.mapping.entries:
            if not entry.key:
                continue
            if category and detect_category(entry.canonical_name, self.rules) != category:
                continue
            score = similarity(cleaned, entry.key)
            if score >= min_confidence:
                source = VariationSource.MAPPING if score >= 1.0 else VariationSource.MAPPING_FUZZY
                candidates.append(
                    MatchCandidate(
                        canonical_name=entry.canonical_name,
                        confidence=score,
                        source=source,
                        matched_text=entry.variation,
                    )
                )

        candidates.extend(self._store_candidates(cleaned, min_confidence, limit, category))
        return rank_candidates(candidates)[:limit]

    def get_stats(self) -> list[CategoryStats]:
        """Per-category aggregates from the store."""
        return self.store.get_stats()

    # --- Candidate collection ---

    def _validate(self, text: object) -> str:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError(text)
        return text.strip()

    def _decision(self, best: MatchCandidate | None) -> Decision:
        """Reuse above the reuse threshold, suggest from the create threshold up."""
        if best is None:
            return Decision.CREATE
        if best.confidence > self.thresholds.reuse:
            return Decision.REUSE
        if best.confidence >= self.thresholds.create:
            return Decision.SUGGEST
        return Decision.CREATE

    def _collect_candidates(
        self, raw: str, cleaned: str, min_confidence: float
    ) -> list[MatchCandidate]:
        candidates = self._mapping_candidates(raw, cleaned)
        if not candidates:
            candidates = self._store_candidates(cleaned, min_confidence, limit=10)
        return rank_candidates(candidates)

    def _mapping_candidates(self, raw: str, cleaned: str) -> list[MatchCandidate]:
        exact = self.mapping.lookup_exact(raw)
        if exact is not None:
            return [
                MatchCandidate(
                    canonical_name=exact,
                    confidence=1.0,
                    source=VariationSource.MAPPING,
                    matched_text=raw.lower(),
                )
            ]

        if not cleaned:
            return []

        candidates = []
        for entry in self.mapping.entries:
            if not entry.key:
                continue
            score = similarity(cleaned, entry.key)
            if score > self.thresholds.mapping_fuzzy:
                candidates.append(
                    MatchCandidate(
                        canonical_name=entry.canonical_name,
                        confidence=score,
                        source=VariationSource.MAPPING_FUZZY,
                        matched_text=entry.variation,
                    )
                )
        return candidates

    def _store_candidates(
        self,
        cleaned: str,
        min_confidence: float,
        limit: int,
        category: str | None = None,
    ) -> list[MatchCandidate]:
        if not cleaned:
            return []
        return [
            MatchCandidate(
                canonical_name=entity.name,
                confidence=confidence,
                source=VariationSource.DATABASE,
                matched_text=entity.name,
                entity=entity,
            )
            for entity, confidence in self.store.fuzzy_search(
                cleaned, min_confidence, limit, category
            )
        ]

    # --- Writes ---

    def _reuse(
        self, raw: str, top: MatchCandidate, options: NormalizeOptions
    ) -> tuple[CanonicalEntity, VariationRecord, bool]:
        entity = top.entity or self.store.find_by_exact_name(top.canonical_name)
        if entity is not None:
            logger.debug("Reusing '%s' for '%s' (%.2f)", entity.name, raw, top.confidence)
            record = self.store.upsert_variation(
                raw, entity.id, top.confidence, top.source, options.user_id
            )
            return entity, record, False

        # The mapping names an entity the store has not seen yet.
        draft = self._draft_from_mapping(raw, top.canonical_name, options)
        variation = VariationDraft(
            original_name=raw,
            confidence_score=top.confidence,
            source=top.source,
            created_by=options.user_id,
        )
        return self._create_or_attach(draft, variation)

    def _create(
        self, raw: str, cleaned: str, options: NormalizeOptions
    ) -> tuple[CanonicalEntity, VariationRecord, bool]:
        category = detect_category(raw, self.rules)
        cut_type = detect_cut_type(raw, self.rules)

        if category and cut_type:
            name = f"{cut_type} {category}"
        else:
            name = cleaned or raw.lower()

        draft = CanonicalDraft(
            name=name,
            category=options.category_hint
            or category
            or detect_category(name, self.rules)
            or self.default_category,
            cut_type=options.cut_type_hint or cut_type,
            is_premium=is_premium(raw, self.rules),
        )
        source = options.source if options.source in CREATION_SOURCES else VariationSource.ORIGINAL
        variation = VariationDraft(
            original_name=raw,
            confidence_score=1.0,
            source=source,
            created_by=options.user_id,
        )
        return self._create_or_attach(draft, variation)

    def _draft_from_mapping(
        self, raw: str, canonical_name: str, options: NormalizeOptions
    ) -> CanonicalDraft:
        return CanonicalDraft(
            name=canonical_name,
            category=options.category_hint
            or detect_category(raw, self.rules)
            or detect_category(canonical_name, self.rules)
            or self.default_category,
            cut_type=options.cut_type_hint
            or detect_cut_type(canonical_name, self.rules)
            or detect_cut_type(raw, self.rules),
            is_premium=is_premium(canonical_name, self.rules),
        )

    def _create_or_attach(
        self, draft: CanonicalDraft, variation: VariationDraft
    ) -> tuple[CanonicalEntity, VariationRecord, bool]:
        """Create the entity, or attach the variation if the name already exists."""
        for _ in range(_CREATE_ATTEMPTS):
            try:
                entity, record = self.store.create_canonical_with_variation(draft, variation)
            except DuplicateNameError:
                existing = self.store.find_by_exact_name(draft.name)
                if existing is None:
                    continue
                logger.info(
                    "Canonical '%s' created concurrently; attaching '%s'",
                    existing.name,
                    variation.original_name,
                )
                record = self.store.upsert_variation(
                    variation.original_name,
                    existing.id,
                    variation.confidence_score,
                    variation.source,
                    variation.created_by,
                )
                return existing, record, False

            logger.info(
                "Created canonical '%s' [%s] for '%s'",
                entity.name,
                entity.category,
                variation.original_name,
            )
            return entity, record, True

        raise StorageUnavailableError(
            f"Could not create or find canonical entity '{draft.name}'"
        )
