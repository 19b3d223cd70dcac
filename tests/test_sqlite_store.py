"""Tests for SQLite data store implementation."""

import sqlite3
import threading

import pytest

from cut_normalizer.data_store import DuplicateNameError, StorageUnavailableError
from cut_normalizer.models import CanonicalDraft, VariationDraft, VariationSource
from cut_normalizer.sqlite_store import SQLiteStore


class TestSchema:
    """Tests for database initialization."""

    def test_creates_tables(self, sqlite_store):
        """Schema tables exist after init."""
        with sqlite3.connect(sqlite_store.db_path) as conn:
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        assert {"schema_version", "canonical_entities", "variations"} <= tables

    def test_reopen_keeps_data(self, sqlite_store, clock):
        """Reopening the same file sees earlier writes."""
        entity = sqlite_store.create_canonical(CanonicalDraft(name="אנטריקוט", category="בקר"))

        reopened = SQLiteStore(db_path=sqlite_store.db_path, clock=clock)
        assert reopened.find_by_exact_name("אנטריקוט").id == entity.id

    def test_name_key_unique_index(self, sqlite_store):
        """Uniqueness is enforced by the database itself."""
        sqlite_store.create_canonical(CanonicalDraft(name="Ribeye"))

        with sqlite3.connect(sqlite_store.db_path) as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    """
                    INSERT INTO canonical_entities
                    (id, name, name_key, created_at, updated_at)
                    VALUES ('x', 'RIBEYE', 'ribeye', '2026-01-01', '2026-01-01')
                    """
                )

    def test_confidence_check_constraint(self, sqlite_store):
        """Confidence scores outside [0, 1] are rejected by the schema."""
        entity = sqlite_store.create_canonical(CanonicalDraft(name="אנטריקוט"))

        with sqlite3.connect(sqlite_store.db_path) as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    """
                    INSERT INTO variations
                    (id, original_name, canonical_entity_id, confidence_score, source,
                     created_at, updated_at)
                    VALUES ('v', 'אנטרקוט', ?, 1.5, 'manual', '2026-01-01', '2026-01-01')
                    """,
                    (str(entity.id),),
                )


class TestFailures:
    """Tests for storage failure translation."""

    def test_not_a_database(self, tmp_path):
        """A file that is not a database is reported as unavailable."""
        db_path = tmp_path / "broken.db"
        db_path.write_bytes(b"this is not a sqlite database" * 100)

        with pytest.raises(StorageUnavailableError):
            SQLiteStore(db_path=db_path)

    def test_directory_in_the_way(self, tmp_path):
        """An unopenable path is reported as unavailable."""
        db_path = tmp_path / "dir.db"
        db_path.mkdir()

        with pytest.raises(StorageUnavailableError):
            SQLiteStore(db_path=db_path)

    def test_failed_variation_rolls_back_entity(self, sqlite_store, monkeypatch):
        """Entity and first variation commit together or not at all."""

        def fail_insert(self, conn, record):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(SQLiteStore, "_insert_variation", fail_insert)

        with pytest.raises(StorageUnavailableError):
            sqlite_store.create_canonical_with_variation(
                CanonicalDraft(name="אנטריקוט"),
                VariationDraft(original_name="אנטרקוט"),
            )

        assert sqlite_store.list_canonicals() == []
        assert sqlite_store.list_variations() == []


class TestConcurrentCreation:
    """Tests for concurrent canonical creation."""

    def test_only_one_writer_wins(self, sqlite_store):
        """Simultaneous creates of one name produce exactly one entity."""
        workers = 8
        barrier = threading.Barrier(workers)
        created = []
        duplicates = []
        errors = []

        def create(index: int) -> None:
            barrier.wait()
            try:
                entity, _ = sqlite_store.create_canonical_with_variation(
                    CanonicalDraft(name="New Cut" if index % 2 else "NEW CUT"),
                    VariationDraft(
                        original_name=f"new cut {index}", source=VariationSource.ORIGINAL
                    ),
                )
                created.append(entity)
            except DuplicateNameError:
                duplicates.append(index)
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(created) == 1
        assert len(duplicates) == workers - 1
        assert len(sqlite_store.list_canonicals()) == 1
        assert len(sqlite_store.list_variations()) == 1
