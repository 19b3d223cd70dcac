"""Tests for the normalization stores.

Contract tests run against both backends through the ``store`` fixture;
JSON-specific behavior is tested on ``data_store``.
"""

import json
from uuid import uuid4

import pytest

from cut_normalizer.data_store import (
    BackendType,
    DataStore,
    DuplicateNameError,
    NotFoundError,
    StorageUnavailableError,
    create_store,
)
from cut_normalizer.models import (
    CanonicalDraft,
    VariationDraft,
    VariationSource,
)
from cut_normalizer.sqlite_store import SQLiteStore


@pytest.fixture
def seeded(store):
    """Store with a few beef, chicken and fish entities."""
    entrecote, _ = store.create_canonical_with_variation(
        CanonicalDraft(name="אנטריקוט", category="בקר", is_premium=True),
        VariationDraft(original_name="אנטרקוט", confidence_score=1.0),
    )
    fillet = store.create_canonical(CanonicalDraft(name="פילה בקר", category="בקר", cut_type="פילה"))
    breast = store.create_canonical(CanonicalDraft(name="חזה עוף", category="עוף", cut_type="חזה"))
    salmon = store.create_canonical(CanonicalDraft(name="פילה סלמון", category="דגים"))
    return store, {"entrecote": entrecote, "fillet": fillet, "breast": breast, "salmon": salmon}


class TestCanonicalEntities:
    """Tests for creating and finding canonical entities."""

    def test_create_and_find(self, store, clock):
        """Created entities are found by exact name."""
        entity = store.create_canonical(CanonicalDraft(name="Ribeye", category="בקר"))

        found = store.find_by_exact_name("Ribeye")
        assert found is not None
        assert found.id == entity.id
        assert found.category == "בקר"
        assert found.created_at == found.updated_at

    def test_find_ignores_case(self, store):
        """Name lookups ignore case and surrounding whitespace."""
        entity = store.create_canonical(CanonicalDraft(name="Ribeye"))
        assert store.find_by_exact_name("  RIBEYE ").id == entity.id

    def test_find_missing(self, store):
        """Unknown names return None."""
        assert store.find_by_exact_name("לא קיים") is None

    def test_duplicate_name_rejected(self, store):
        """A second entity with the same name in another case is rejected."""
        store.create_canonical(CanonicalDraft(name="Ribeye"))

        with pytest.raises(DuplicateNameError) as exc_info:
            store.create_canonical(CanonicalDraft(name="ribeye"))
        assert exc_info.value.name == "ribeye"
        assert len(store.list_canonicals()) == 1

    def test_duplicate_with_variation_writes_nothing(self, store):
        """A rejected create leaves no orphan variation."""
        store.create_canonical(CanonicalDraft(name="אסאדו"))

        with pytest.raises(DuplicateNameError):
            store.create_canonical_with_variation(
                CanonicalDraft(name="אסאדו"),
                VariationDraft(original_name="אסדו"),
            )
        assert store.list_variations() == []

    def test_create_with_variation(self, store):
        """Entity and first variation are written together."""
        entity, record = store.create_canonical_with_variation(
            CanonicalDraft(name="שייטל", category="בקר"),
            VariationDraft(original_name="שפיץ שייטל", source=VariationSource.ORIGINAL),
        )

        assert record.canonical_entity_id == entity.id
        assert record.source == VariationSource.ORIGINAL
        assert record.confidence_score == 1.0
        assert [v.model_dump() for v in store.list_variations(entity.id)] == [record.model_dump()]

    def test_get_canonical(self, seeded):
        """Entities are fetched by UUID or its string form."""
        store, entities = seeded
        fillet = entities["fillet"]

        assert store.get_canonical(fillet.id).name == "פילה בקר"
        assert store.get_canonical(str(fillet.id)).name == "פילה בקר"
        assert store.get_canonical(uuid4()) is None

    def test_entity_fields_round_trip(self, seeded):
        """Stored fields come back unchanged."""
        store, entities = seeded
        entity = store.get_canonical(entities["entrecote"].id)

        assert entity.is_premium is True
        assert entity.cooking_methods == []
        assert entity.model_dump() == entities["entrecote"].model_dump()

    def test_list_canonicals_by_category(self, seeded):
        """Listing filters by category."""
        store, _ = seeded
        beef = store.list_canonicals("בקר")

        assert {e.name for e in beef} == {"אנטריקוט", "פילה בקר"}
        assert len(store.list_canonicals()) == 4


class TestFuzzySearch:
    """Tests for fuzzy_search."""

    def test_exact_name_scores_one(self, seeded):
        """An identical name ranks first with confidence 1.0."""
        store, _ = seeded
        results = store.fuzzy_search("אנטריקוט", min_confidence=0.6)

        entity, confidence = results[0]
        assert entity.name == "אנטריקוט"
        assert confidence == 1.0

    def test_matches_variation_names(self, seeded):
        """Stored variations count as names of their entity."""
        store, entities = seeded
        store.upsert_variation(
            "טנדרלוין", entities["fillet"].id, 0.9, VariationSource.MANUAL
        )

        results = store.fuzzy_search("טנדרלוין", min_confidence=0.9)
        assert [(e.name, c) for e, c in results] == [("פילה בקר", 1.0)]

    def test_ranked_descending(self, seeded):
        """Results are ordered best first and respect the minimum."""
        store, _ = seeded
        results = store.fuzzy_search("פילה", min_confidence=0.3, limit=10)

        confidences = [c for _, c in results]
        assert confidences == sorted(confidences, reverse=True)
        assert all(c >= 0.3 for c in confidences)
        assert {"פילה בקר", "פילה סלמון"} <= {e.name for e, _ in results}

    def test_category_filter(self, seeded):
        """A category limits the search."""
        store, _ = seeded
        results = store.fuzzy_search("פילה", min_confidence=0.3, category="דגים")
        assert [e.name for e, _ in results] == ["פילה סלמון"]

    def test_limit(self, seeded):
        """No more than limit results."""
        store, _ = seeded
        assert len(store.fuzzy_search("פילה", min_confidence=0.0, limit=2)) == 2

    def test_empty_text(self, seeded):
        """Empty text matches nothing."""
        store, _ = seeded
        assert store.fuzzy_search("", min_confidence=0.0) == []


class TestVariations:
    """Tests for variation upsert, listing and verification."""

    def test_upsert_is_idempotent(self, seeded):
        """Upserting the same key twice refreshes one record."""
        store, entities = seeded
        entity_id = entities["fillet"].id

        first = store.upsert_variation("פילה", entity_id, 0.7, VariationSource.DATABASE)
        second = store.upsert_variation("פילה", entity_id, 0.9, VariationSource.MAPPING)

        records = store.list_variations(entity_id)
        assert len(records) == 1
        assert second.id == first.id
        assert second.confidence_score == 0.9
        assert second.source == VariationSource.MAPPING
        assert second.created_at == first.created_at
        assert second.updated_at > first.updated_at

    def test_same_name_different_entities(self, seeded):
        """The key includes the entity."""
        store, entities = seeded
        store.upsert_variation("פילה", entities["fillet"].id, 0.9, VariationSource.MANUAL)
        store.upsert_variation("פילה", entities["salmon"].id, 0.5, VariationSource.MANUAL)

        assert len(store.list_variations()) == 3

    def test_upsert_unknown_entity(self, store):
        """Variations need an existing entity."""
        with pytest.raises(NotFoundError):
            store.upsert_variation("פילה", uuid4(), 0.9, VariationSource.MANUAL)

    def test_upsert_keeps_created_by(self, seeded):
        """Provenance is recorded on insert."""
        store, entities = seeded
        record = store.upsert_variation(
            "פילה", entities["fillet"].id, 0.9, VariationSource.MANUAL, created_by="dana"
        )
        assert record.created_by == "dana"

    def test_list_variations_ordered(self, seeded):
        """Highest confidence first."""
        store, entities = seeded
        entity_id = entities["fillet"].id
        store.upsert_variation("פילה", entity_id, 0.7, VariationSource.DATABASE)
        store.upsert_variation("טנדרלוין", entity_id, 0.95, VariationSource.MANUAL)

        names = [v.original_name for v in store.list_variations(str(entity_id))]
        assert names == ["טנדרלוין", "פילה"]

    def test_verify_variation(self, seeded):
        """Verification sets the flag and bumps updated_at."""
        store, entities = seeded
        record = store.list_variations(entities["entrecote"].id)[0]

        verified = store.verify_variation(str(record.id))

        assert verified.verified is True
        assert verified.updated_at > record.updated_at
        assert store.list_variations(entities["entrecote"].id)[0].verified is True

    def test_verify_unknown(self, store):
        """Unknown variation IDs raise NotFoundError."""
        with pytest.raises(NotFoundError):
            store.verify_variation(uuid4())

    def test_malformed_ids(self, store):
        """Malformed IDs raise ValueError on both backends."""
        with pytest.raises(ValueError):
            store.verify_variation("not-a-uuid")
        with pytest.raises(ValueError):
            store.get_canonical("not-a-uuid")


class TestStats:
    """Tests for get_stats."""

    def test_empty(self, store):
        """No entities, no rows."""
        assert store.get_stats() == []

    def test_counts_sum_to_variations(self, seeded):
        """Per-category variation counts add up to all variations."""
        store, entities = seeded
        store.upsert_variation("פילה", entities["fillet"].id, 0.8, VariationSource.DATABASE)
        store.upsert_variation("חזה", entities["breast"].id, 0.6, VariationSource.MAPPING)
        store.upsert_variation("סלמון", entities["salmon"].id, 1.0, VariationSource.MAPPING)

        stats = {s.category: s for s in store.get_stats()}

        assert sum(s.variation_count for s in stats.values()) == 4
        assert stats["בקר"].canonical_count == 2
        assert stats["בקר"].variation_count == 2
        assert stats["בקר"].avg_confidence == pytest.approx(0.9)
        assert stats["עוף"].variation_count == 1
        assert stats["דגים"].verified_count == 0

    def test_verified_counted(self, seeded):
        """Verified variations are counted per category."""
        store, entities = seeded
        record = store.list_variations(entities["entrecote"].id)[0]
        store.verify_variation(record.id)

        stats = {s.category: s for s in store.get_stats()}
        assert stats["בקר"].verified_count == 1

    def test_category_without_variations(self, seeded):
        """Categories with entities but no variations have no average."""
        store, _ = seeded
        stats = {s.category: s for s in store.get_stats()}

        assert stats["עוף"].canonical_count == 1
        assert stats["עוף"].variation_count == 0
        assert stats["עוף"].avg_confidence is None


class TestJSONDataStore:
    """Tests specific to the JSON file store."""

    def test_file_layout(self, data_store, temp_data_dir):
        """Data lives in one versioned JSON file."""
        data_store.create_canonical(CanonicalDraft(name="אנטריקוט", category="בקר"))

        payload = json.loads((temp_data_dir / "normalization.json").read_text(encoding="utf-8"))
        assert payload["version"] == "1.0"
        assert payload["canonical_entities"][0]["name"] == "אנטריקוט"
        assert payload["variations"] == []

    def test_persists_across_instances(self, data_store, temp_data_dir):
        """A new store over the same directory sees earlier writes."""
        entity = data_store.create_canonical(CanonicalDraft(name="אנטריקוט"))

        reopened = DataStore(data_dir=temp_data_dir)
        assert reopened.get_canonical(entity.id).model_dump() == entity.model_dump()

    def test_no_temp_files_left(self, data_store, temp_data_dir):
        """Atomic writes clean up after themselves."""
        data_store.create_canonical(CanonicalDraft(name="אנטריקוט"))
        assert [p.name for p in temp_data_dir.iterdir()] == ["normalization.json"]

    def test_corrupt_file(self, data_store, temp_data_dir):
        """Unreadable data surfaces as StorageUnavailableError."""
        (temp_data_dir / "normalization.json").write_text("{broken", encoding="utf-8")

        with pytest.raises(StorageUnavailableError):
            data_store.list_canonicals()

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"canonical_entities": [{"bogus": 1}]},
            {"canonical_entities": ["אנטריקוט"]},
            {"variations": 42},
        ],
    )
    def test_wrong_shape(self, data_store, temp_data_dir, payload):
        """Valid JSON with the wrong shape is reported as unavailable storage."""
        (temp_data_dir / "normalization.json").write_text(json.dumps(payload), encoding="utf-8")

        with pytest.raises(StorageUnavailableError, match="Corrupt data"):
            data_store.list_canonicals()

    def test_failed_write_leaves_nothing(self, data_store, temp_data_dir, monkeypatch):
        """A failed rename writes neither the entity nor its variation."""

        def refuse(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("cut_normalizer.data_store.os.replace", refuse)

        with pytest.raises(StorageUnavailableError):
            data_store.create_canonical_with_variation(
                CanonicalDraft(name="אנטריקוט"),
                VariationDraft(original_name="אנטרקוט"),
            )

        monkeypatch.undo()
        assert list(temp_data_dir.iterdir()) == []
        assert data_store.list_canonicals() == []
        assert data_store.list_variations() == []

    def test_uses_clock(self, data_store, clock):
        """Timestamps come from the injected clock."""
        entity = data_store.create_canonical(CanonicalDraft(name="אנטריקוט"))
        assert entity.created_at == clock.current


class TestCreateStore:
    """Tests for the store factory."""

    def test_json_backend(self, temp_data_dir):
        """JSON is the default backend."""
        store = create_store(data_dir=temp_data_dir)
        assert isinstance(store, DataStore)
        assert store.data_dir == temp_data_dir

    def test_sqlite_backend(self, temp_data_dir):
        """SQLite databases default to cuts.db in the data directory."""
        store = create_store(BackendType.SQLITE, data_dir=temp_data_dir)
        assert isinstance(store, SQLiteStore)
        assert store.db_path == temp_data_dir / "cuts.db"
        assert store.db_path.exists()
