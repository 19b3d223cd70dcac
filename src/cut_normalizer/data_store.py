"""Data persistence for Cut Normalizer.

This module provides the normalization store with support for JSON (default)
or SQLite backends. Use create_store() to get the appropriate backend based on
configuration.
"""

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterable
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import UUID

from pydantic import ValidationError

from .canonicalizer import canonicalize
from .models import (
    CanonicalDraft,
    CanonicalEntity,
    CategoryStats,
    VariationDraft,
    VariationRecord,
    VariationSource,
)
from .rules import DEFAULT_RULES, RuleSet
from .similarity import similarity

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class BackendType(str, Enum):
    """Data storage backend types."""

    JSON = "json"
    SQLITE = "sqlite"


class StoreError(Exception):
    """Base class for store failures."""


class StorageUnavailableError(StoreError):
    """Raised when the backing storage cannot be read or written."""


class DuplicateNameError(StoreError):
    """Raised when a canonical name already exists (case-insensitive)."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Canonical entity '{name}' already exists")


class NotFoundError(StoreError):
    """Raised when a referenced record does not exist."""

    def __init__(self, kind: str, record_id: UUID | str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} with ID '{record_id}' not found")


class NormalizationStore(Protocol):
    """Protocol defining the normalization store interface."""

    def find_by_exact_name(self, name: str) -> CanonicalEntity | None: ...
    def get_canonical(self, entity_id: UUID | str) -> CanonicalEntity | None: ...
    def list_canonicals(self, category: str | None = None) -> list[CanonicalEntity]: ...
    def fuzzy_search(
        self,
        text: str,
        min_confidence: float = 0.6,
        limit: int = 10,
        category: str | None = None,
    ) -> list[tuple[CanonicalEntity, float]]: ...
    def create_canonical(self, draft: CanonicalDraft) -> CanonicalEntity: ...
    def create_canonical_with_variation(
        self, draft: CanonicalDraft, variation: VariationDraft
    ) -> tuple[CanonicalEntity, VariationRecord]: ...
    def upsert_variation(
        self,
        original_name: str,
        canonical_id: UUID,
        confidence: float,
        source: VariationSource,
        created_by: str | None = None,
    ) -> VariationRecord: ...
    def list_variations(self, canonical_id: UUID | str | None = None) -> list[VariationRecord]: ...
    def verify_variation(self, variation_id: UUID | str) -> VariationRecord: ...
    def get_stats(self) -> list[CategoryStats]: ...


def name_key(name: str) -> str:
    """Case-insensitive uniqueness key for canonical names."""
    return name.strip().casefold()


def rank_entities(
    text: str,
    entities: Iterable[CanonicalEntity],
    variation_names: dict[UUID, list[str]],
    min_confidence: float,
    limit: int,
    rules: RuleSet = DEFAULT_RULES,
) -> list[tuple[CanonicalEntity, float]]:
    """Score entities by their best-matching name or variation.

    Args:
        text: Canonicalized query text
        entities: Candidate canonical entities
        variation_names: Entity ID -> observed variation names
        min_confidence: Minimum composite similarity to keep
        limit: Maximum number of results

    Returns:
        (entity, confidence) pairs, best first
    """
    if not text:
        return []

    scored = []
    for entity in entities:
        best = similarity(text, canonicalize(entity.name, rules))
        for original_name in variation_names.get(entity.id, []):
            if best >= 1.0:
                break
            best = max(best, similarity(text, canonicalize(original_name, rules)))
        if best >= min_confidence:
            scored.append((entity, best))

    scored.sort(key=lambda pair: (-pair[1], len(pair[0].name), pair[0].name))
    return scored[:limit]


def aggregate_stats(
    entities: Iterable[CanonicalEntity], variations: Iterable[VariationRecord]
) -> list[CategoryStats]:
    """Build per-category aggregates from entities and their variations."""
    by_category: dict[str, CategoryStats] = {}
    category_of: dict[UUID, str] = {}
    confidences: dict[str, list[float]] = {}

    for entity in entities:
        stats = by_category.setdefault(entity.category, CategoryStats(category=entity.category))
        stats.canonical_count += 1
        category_of[entity.id] = entity.category

    for variation in variations:
        category = category_of.get(variation.canonical_entity_id)
        if category is None:
            continue
        stats = by_category[category]
        stats.variation_count += 1
        if variation.verified:
            stats.verified_count += 1
        confidences.setdefault(category, []).append(variation.confidence_score)

    for category, values in confidences.items():
        by_category[category].avg_confidence = round(sum(values) / len(values), 4)

    return [by_category[category] for category in sorted(by_category)]


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for our data types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, time):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


_FILE_LOCKS: dict[Path, threading.RLock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _FILE_LOCKS_GUARD:
        return _FILE_LOCKS.setdefault(path.resolve(), threading.RLock())


class DataStore:
    """Manages JSON file persistence for normalization data.

    Every write rewrites one file through an atomic rename while holding a
    per-file lock, so an entity and its first variation land together or not
    at all. The lock covers threads of one process only.
    """

    def __init__(
        self,
        data_dir: Path | None = None,
        clock: Clock | None = None,
        rules: RuleSet = DEFAULT_RULES,
    ):
        """Initialize data store.

        Args:
            data_dir: Directory for data files. Defaults to ./data
            clock: Timestamp source, defaults to datetime.now
            rules: Rule set used when scoring stored names
        """
        self.data_dir = data_dir or Path.cwd() / "data"
        self._clock = clock or datetime.now
        self.rules = rules
        self._ensure_directories()
        self._lock = _lock_for(self._data_path())

    def _ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create {self.data_dir}: {e}") from e

    def _data_path(self) -> Path:
        """Path to the normalization data file."""
        return self.data_dir / "normalization.json"

    # --- File access ---

    def _read(self) -> tuple[list[CanonicalEntity], list[VariationRecord]]:
        path = self._data_path()
        if not path.exists():
            return [], []

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageUnavailableError(f"Cannot read {path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageUnavailableError(f"Corrupt data in {path}: expected an object")

        try:
            entities = [CanonicalEntity(**item) for item in data.get("canonical_entities", [])]
            variations = [VariationRecord(**item) for item in data.get("variations", [])]
        except (AttributeError, TypeError, ValidationError) as e:
            raise StorageUnavailableError(f"Corrupt data in {path}: {e}") from e
        return entities, variations

    def _write(self, entities: list[CanonicalEntity], variations: list[VariationRecord]) -> None:
        path = self._data_path()
        payload = {
            "version": "1.0",
            "canonical_entities": [entity.model_dump() for entity in entities],
            "variations": [variation.model_dump() for variation in variations],
        }
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, cls=JSONEncoder, ensure_ascii=False, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write {path}: {e}") from e

    # --- Canonical entities ---

    def find_by_exact_name(self, name: str) -> CanonicalEntity | None:
        """Find a canonical entity by name, ignoring case.

        Args:
            name: Canonical name

        Returns:
            CanonicalEntity if found, None otherwise
        """
        key = name_key(name)
        with self._lock:
            entities, _ = self._read()
        for entity in entities:
            if name_key(entity.name) == key:
                return entity
        return None

    def get_canonical(self, entity_id: UUID | str) -> CanonicalEntity | None:
        """Get a canonical entity by ID."""
        if isinstance(entity_id, str):
            entity_id = UUID(entity_id)
        with self._lock:
            entities, _ = self._read()
        for entity in entities:
            if entity.id == entity_id:
                return entity
        return None

    def list_canonicals(self, category: str | None = None) -> list[CanonicalEntity]:
        """List canonical entities, optionally filtered by category."""
        with self._lock:
            entities, _ = self._read()
        if category:
            entities = [e for e in entities if e.category == category]
        return sorted(entities, key=lambda e: (e.category, e.name))

    def fuzzy_search(
        self,
        text: str,
        min_confidence: float = 0.6,
        limit: int = 10,
        category: str | None = None,
    ) -> list[tuple[CanonicalEntity, float]]:
        """Rank entities against canonicalized text.

        Args:
            text: Canonicalized query text
            min_confidence: Minimum confidence to include
            limit: Maximum number of results
            category: Optional category filter

        Returns:
            (entity, confidence) pairs, best first
        """
        with self._lock:
            entities, variations = self._read()
        if category:
            entities = [e for e in entities if e.category == category]

        names: dict[UUID, list[str]] = {}
        for variation in variations:
            names.setdefault(variation.canonical_entity_id, []).append(variation.original_name)

        return rank_entities(text, entities, names, min_confidence, limit, self.rules)

    def create_canonical(self, draft: CanonicalDraft) -> CanonicalEntity:
        """Create a canonical entity.

        Raises:
            DuplicateNameError: If the name exists, ignoring case
        """
        entity, _ = self._create(draft, None)
        return entity

    def create_canonical_with_variation(
        self, draft: CanonicalDraft, variation: VariationDraft
    ) -> tuple[CanonicalEntity, VariationRecord]:
        """Create a canonical entity and its first variation in one write.

        Raises:
            DuplicateNameError: If the name exists, ignoring case
        """
        entity, record = self._create(draft, variation)
        return entity, record  # type: ignore[return-value]

    def _create(
        self, draft: CanonicalDraft, variation: VariationDraft | None
    ) -> tuple[CanonicalEntity, VariationRecord | None]:
        now = self._clock()
        with self._lock:
            entities, variations = self._read()
            key = name_key(draft.name)
            if any(name_key(e.name) == key for e in entities):
                raise DuplicateNameError(draft.name)

            entity = CanonicalEntity(**draft.model_dump(), created_at=now, updated_at=now)
            entities.append(entity)

            record = None
            if variation is not None:
                record = VariationRecord(
                    **variation.model_dump(),
                    canonical_entity_id=entity.id,
                    created_at=now,
                    updated_at=now,
                )
                variations.append(record)

            self._write(entities, variations)
        return entity, record

    # --- Variations ---

    def upsert_variation(
        self,
        original_name: str,
        canonical_id: UUID,
        confidence: float,
        source: VariationSource,
        created_by: str | None = None,
    ) -> VariationRecord:
        """Insert a variation, or refresh it if (original_name, canonical_id) exists.

        Raises:
            NotFoundError: If the canonical entity does not exist
        """
        if isinstance(canonical_id, str):
            canonical_id = UUID(canonical_id)
        now = self._clock()
        with self._lock:
            entities, variations = self._read()
            if not any(e.id == canonical_id for e in entities):
                raise NotFoundError("Canonical entity", canonical_id)

            for index, existing in enumerate(variations):
                if (
                    existing.original_name == original_name
                    and existing.canonical_entity_id == canonical_id
                ):
                    record = existing.model_copy(
                        update={
                            "confidence_score": confidence,
                            "source": source,
                            "updated_at": now,
                        }
                    )
                    variations[index] = record
                    break
            else:
                record = VariationRecord(
                    original_name=original_name,
                    canonical_entity_id=canonical_id,
                    confidence_score=confidence,
                    source=source,
                    created_by=created_by,
                    created_at=now,
                    updated_at=now,
                )
                variations.append(record)

            self._write(entities, variations)
        return record

    def list_variations(self, canonical_id: UUID | str | None = None) -> list[VariationRecord]:
        """List variations, optionally for one canonical entity."""
        if isinstance(canonical_id, str):
            canonical_id = UUID(canonical_id)
        with self._lock:
            _, variations = self._read()
        if canonical_id is not None:
            variations = [v for v in variations if v.canonical_entity_id == canonical_id]
        return sorted(variations, key=lambda v: (-v.confidence_score, v.created_at))

    def verify_variation(self, variation_id: UUID | str) -> VariationRecord:
        """Mark a variation as verified.

        Raises:
            NotFoundError: If the variation does not exist
        """
        if isinstance(variation_id, str):
            variation_id = UUID(variation_id)
        now = self._clock()
        with self._lock:
            entities, variations = self._read()
            for index, existing in enumerate(variations):
                if existing.id == variation_id:
                    record = existing.model_copy(update={"verified": True, "updated_at": now})
                    variations[index] = record
                    self._write(entities, variations)
                    return record
        raise NotFoundError("Variation", variation_id)

    # --- Statistics ---

    def get_stats(self) -> list[CategoryStats]:
        """Per-category counts of entities and variations."""
        with self._lock:
            entities, variations = self._read()
        return aggregate_stats(entities, variations)


def create_store(
    backend: BackendType = BackendType.JSON,
    data_dir: Path | None = None,
    db_path: Path | None = None,
    clock: Clock | None = None,
) -> NormalizationStore:
    """Create a normalization store with the specified backend.

    Args:
        backend: Which backend to use (json or sqlite)
        data_dir: Directory for data files (used by JSON backend, also used
                  as base path for SQLite if db_path not specified)
        db_path: Path to SQLite database file (only used by SQLite backend)
        clock: Timestamp source for both backends

    Returns:
        A DataStore or SQLiteStore instance

    Example:
        # Use JSON backend (default)
        store = create_store()

        # Use SQLite with custom path
        store = create_store(
            BackendType.SQLITE,
            db_path=Path("./my_data/cuts.db")
        )
    """
    if backend == BackendType.SQLITE:
        from .sqlite_store import SQLiteStore

        if db_path is None and data_dir is not None:
            db_path = data_dir / "cuts.db"

        return SQLiteStore(db_path=db_path, clock=clock)
    else:
        return DataStore(data_dir=data_dir, clock=clock)
