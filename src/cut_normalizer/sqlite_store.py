"""SQLite-based persistence for Cut Normalizer.

This module provides SQLite database storage as an alternative to the JSON
file. It implements the same interface as DataStore for seamless switching,
and relies on unique indexes so concurrent writers cannot create the same
canonical name twice.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import UUID

from .data_store import (
    Clock,
    DuplicateNameError,
    NotFoundError,
    StorageUnavailableError,
    name_key,
    rank_entities,
)
from .models import (
    CanonicalDraft,
    CanonicalEntity,
    CategoryStats,
    VariationDraft,
    VariationRecord,
    VariationSource,
)
from .rules import DEFAULT_RULES, RuleSet

logger = logging.getLogger(__name__)


def _id_text(value: UUID | str) -> str:
    # Raises ValueError on malformed IDs, like the JSON store.
    return str(value if isinstance(value, UUID) else UUID(value))


class SQLiteStore:
    """Manages SQLite database persistence for normalization data."""

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: Path | None = None,
        clock: Clock | None = None,
        timeout: float = 30.0,
        rules: RuleSet = DEFAULT_RULES,
    ):
        """Initialize SQLite store.

        Args:
            db_path: Path to the SQLite database file. Defaults to ./data/cuts.db
            clock: Timestamp source, defaults to datetime.now
            timeout: Seconds to wait for a locked database
            rules: Rule set used when scoring stored names
        """
        if db_path is None:
            db_path = Path.cwd() / "data" / "cuts.db"
        self.db_path = db_path
        self.timeout = timeout
        self.rules = rules
        self._clock = clock or datetime.now
        self._ensure_directories()
        self._init_database()

    def _ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create {self.db_path.parent}: {e}") from e

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup.

        Commits on success and rolls back on any error. Integrity errors are
        re-raised for the caller to translate; every other database error
        becomes StorageUnavailableError.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            logger.warning("SQLite error on %s: %s", self.db_path, e)
            raise StorageUnavailableError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema if not exists."""
        with self._get_connection() as conn:
            conn.executescript("""
                -- Schema version tracking
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                );

                -- Canonical entities
                CREATE TABLE IF NOT EXISTS canonical_entities (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    name_key TEXT NOT NULL UNIQUE,
                    category TEXT NOT NULL DEFAULT 'אחר',
                    cut_type TEXT,
                    subcategory TEXT,
                    is_premium INTEGER NOT NULL DEFAULT 0,
                    typical_weight_range TEXT,
                    cooking_methods TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_canonical_category
                    ON canonical_entities(category);

                -- Observed names linked to canonical entities
                CREATE TABLE IF NOT EXISTS variations (
                    id TEXT PRIMARY KEY,
                    original_name TEXT NOT NULL,
                    canonical_entity_id TEXT NOT NULL
                        REFERENCES canonical_entities(id) ON DELETE RESTRICT,
                    confidence_score REAL NOT NULL
                        CHECK (confidence_score >= 0.0 AND confidence_score <= 1.0),
                    source TEXT NOT NULL,
                    verified INTEGER NOT NULL DEFAULT 0,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(original_name, canonical_entity_id)
                );

                CREATE INDEX IF NOT EXISTS idx_variations_canonical
                    ON variations(canonical_entity_id);

                -- Record schema version
                INSERT OR IGNORE INTO schema_version (version) VALUES (1);
            """)

    # --- Row conversion ---

    def _row_to_entity(self, row: sqlite3.Row) -> CanonicalEntity:
        return CanonicalEntity(
            id=UUID(row["id"]),
            name=row["name"],
            category=row["category"],
            cut_type=row["cut_type"],
            subcategory=row["subcategory"],
            is_premium=bool(row["is_premium"]),
            typical_weight_range=row["typical_weight_range"],
            cooking_methods=json.loads(row["cooking_methods"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_variation(self, row: sqlite3.Row) -> VariationRecord:
        return VariationRecord(
            id=UUID(row["id"]),
            original_name=row["original_name"],
            canonical_entity_id=UUID(row["canonical_entity_id"]),
            confidence_score=row["confidence_score"],
            source=VariationSource(row["source"]),
            verified=bool(row["verified"]),
            created_by=row["created_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # --- Canonical entities ---

    def find_by_exact_name(self, name: str) -> CanonicalEntity | None:
        """Find a canonical entity by name, ignoring case.

        Args:
            name: Canonical name

        Returns:
            CanonicalEntity if found, None otherwise
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM canonical_entities WHERE name_key = ?",
                (name_key(name),),
            ).fetchone()
            return self._row_to_entity(row) if row else None

    def get_canonical(self, entity_id: UUID | str) -> CanonicalEntity | None:
        """Get a canonical entity by ID."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM canonical_entities WHERE id = ?",
                (_id_text(entity_id),),
            ).fetchone()
            return self._row_to_entity(row) if row else None

    def list_canonicals(self, category: str | None = None) -> list[CanonicalEntity]:
        """List canonical entities, optionally filtered by category."""
        with self._get_connection() as conn:
            if category:
                rows = conn.execute(
                    "SELECT * FROM canonical_entities WHERE category = ? ORDER BY name",
                    (category,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM canonical_entities ORDER BY category, name"
                ).fetchall()
            return [self._row_to_entity(row) for row in rows]

    def fuzzy_search(
        self,
        text: str,
        min_confidence: float = 0.6,
        limit: int = 10,
        category: str | None = None,
    ) -> list[tuple[CanonicalEntity, float]]:
        """Rank entities against canonicalized text.

        SQLite has no trigram similarity, so every canonical name and
        variation is scored in Python with the composite similarity.

        Args:
            text: Canonicalized query text
            min_confidence: Minimum confidence to include
            limit: Maximum number of results
            category: Optional category filter

        Returns:
            (entity, confidence) pairs, best first
        """
        entities = self.list_canonicals(category)
        if not entities:
            return []

        names: dict[UUID, list[str]] = {}
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT canonical_entity_id, original_name FROM variations"
            ).fetchall()
        for row in rows:
            names.setdefault(UUID(row["canonical_entity_id"]), []).append(row["original_name"])

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
        """Create a canonical entity and its first variation in one transaction.

        Raises:
            DuplicateNameError: If the name exists, ignoring case
        """
        entity, record = self._create(draft, variation)
        return entity, record  # type: ignore[return-value]

    def _create(
        self, draft: CanonicalDraft, variation: VariationDraft | None
    ) -> tuple[CanonicalEntity, VariationRecord | None]:
        now = self._clock()
        entity = CanonicalEntity(**draft.model_dump(), created_at=now, updated_at=now)
        record = None
        if variation is not None:
            record = VariationRecord(
                **variation.model_dump(),
                canonical_entity_id=entity.id,
                created_at=now,
                updated_at=now,
            )

        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO canonical_entities
                    (id, name, name_key, category, cut_type, subcategory, is_premium,
                     typical_weight_range, cooking_methods, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(entity.id),
                        entity.name,
                        name_key(entity.name),
                        entity.category,
                        entity.cut_type,
                        entity.subcategory,
                        int(entity.is_premium),
                        entity.typical_weight_range,
                        json.dumps(entity.cooking_methods, ensure_ascii=False),
                        entity.created_at.isoformat(),
                        entity.updated_at.isoformat(),
                    ),
                )
                if record is not None:
                    self._insert_variation(conn, record)
        except sqlite3.IntegrityError as e:
            raise DuplicateNameError(draft.name) from e

        return entity, record

    # --- Variations ---

    def _insert_variation(self, conn: sqlite3.Connection, record: VariationRecord) -> None:
        conn.execute(
            """
            INSERT INTO variations
            (id, original_name, canonical_entity_id, confidence_score, source,
             verified, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(record.id),
                record.original_name,
                str(record.canonical_entity_id),
                record.confidence_score,
                record.source.value,
                int(record.verified),
                record.created_by,
                record.created_at.isoformat(),
                record.updated_at.isoformat(),
            ),
        )

    def upsert_variation(
        self,
        original_name: str,
        canonical_id: UUID,
        confidence: float,
        source: VariationSource,
        created_by: str | None = None,
    ) -> VariationRecord:
        """Insert a variation, or refresh it if (original_name, canonical_id) exists.

        Tries the insert first; on a uniqueness conflict the existing row is
        looked up and updated in the same transaction.

        Raises:
            NotFoundError: If the canonical entity does not exist
        """
        now = self._clock()
        record = VariationRecord(
            original_name=original_name,
            canonical_entity_id=canonical_id,
            confidence_score=confidence,
            source=source,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

        with self._get_connection() as conn:
            exists = conn.execute(
                "SELECT 1 FROM canonical_entities WHERE id = ?",
                (str(record.canonical_entity_id),),
            ).fetchone()
            if not exists:
                raise NotFoundError("Canonical entity", canonical_id)

            try:
                self._insert_variation(conn, record)
            except sqlite3.IntegrityError:
                conn.execute(
                    """
                    UPDATE variations
                    SET confidence_score = ?, source = ?, updated_at = ?
                    WHERE original_name = ? AND canonical_entity_id = ?
                    """,
                    (
                        confidence,
                        record.source.value,
                        now.isoformat(),
                        original_name,
                        str(record.canonical_entity_id),
                    ),
                )

            row = conn.execute(
                "SELECT * FROM variations WHERE original_name = ? AND canonical_entity_id = ?",
                (original_name, str(record.canonical_entity_id)),
            ).fetchone()
            return self._row_to_variation(row)

    def list_variations(self, canonical_id: UUID | str | None = None) -> list[VariationRecord]:
        """List variations, optionally for one canonical entity."""
        with self._get_connection() as conn:
            if canonical_id is not None:
                rows = conn.execute(
                    """
                    SELECT * FROM variations WHERE canonical_entity_id = ?
                    ORDER BY confidence_score DESC, created_at
                    """,
                    (_id_text(canonical_id),),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM variations ORDER BY confidence_score DESC, created_at"
                ).fetchall()
            return [self._row_to_variation(row) for row in rows]

    def verify_variation(self, variation_id: UUID | str) -> VariationRecord:
        """Mark a variation as verified.

        Raises:
            NotFoundError: If the variation does not exist
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE variations SET verified = 1, updated_at = ? WHERE id = ?",
                (self._clock().isoformat(), _id_text(variation_id)),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Variation", variation_id)
            row = conn.execute(
                "SELECT * FROM variations WHERE id = ?", (_id_text(variation_id),)
            ).fetchone()
            return self._row_to_variation(row)

    # --- Statistics ---

    def get_stats(self) -> list[CategoryStats]:
        """Per-category counts of entities and variations."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT
                    ce.category AS category,
                    COUNT(DISTINCT ce.id) AS canonical_count,
                    COUNT(v.id) AS variation_count,
                    AVG(v.confidence_score) AS avg_confidence,
                    COALESCE(SUM(v.verified), 0) AS verified_count
                FROM canonical_entities ce
                LEFT JOIN variations v ON v.canonical_entity_id = ce.id
                GROUP BY ce.category
                ORDER BY ce.category
                """
            ).fetchall()

        return [
            CategoryStats(
                category=row["category"],
                canonical_count=row["canonical_count"],
                variation_count=row["variation_count"],
                avg_confidence=round(row["avg_confidence"], 4)
                if row["avg_confidence"] is not None
                else None,
                verified_count=row["verified_count"],
            )
            for row in rows
        ]

