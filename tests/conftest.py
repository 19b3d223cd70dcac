"""Shared test fixtures for Cut Normalizer."""

import json
from datetime import datetime, timedelta

import pytest

from cut_normalizer.data_store import DataStore
from cut_normalizer.mapping_table import MappingTable, load_mapping_table
from cut_normalizer.resolver import MatchResolver
from cut_normalizer.sqlite_store import SQLiteStore


class TickingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 25, 12, 0, 0)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    """A clock that ticks forward on every call."""
    return TickingClock()


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary data directory."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def data_store(temp_data_dir, clock):
    """Create a JSON DataStore with temporary directory."""
    return DataStore(data_dir=temp_data_dir, clock=clock)


@pytest.fixture
def sqlite_store(tmp_path, clock):
    """Create a SQLite store with a temporary database."""
    return SQLiteStore(db_path=tmp_path / "test.db", clock=clock)


@pytest.fixture(params=["json", "sqlite"])
def store(request, data_store, sqlite_store):
    """Each store backend in turn."""
    return data_store if request.param == "json" else sqlite_store


@pytest.fixture
def sample_mapping_data():
    """A small mapping dictionary."""
    return {
        "אנטריקוט": ["אנטרקוט", "אנטרקוט בלק אנגוס", "entrecote"],
        "פילה בקר": ["פילה", "טנדרלוין"],
        "פילה סלמון": ["סלמון", "salmon fillet"],
        "חזה עוף": ["חזה", "פילה עוף"],
    }


@pytest.fixture
def small_mapping(sample_mapping_data):
    """A MappingTable built from the small mapping dictionary."""
    return MappingTable.from_dict(sample_mapping_data)


@pytest.fixture
def mapping_file(tmp_path, sample_mapping_data):
    """The small mapping written to a JSON file."""
    path = tmp_path / "mapping.json"
    path.write_text(json.dumps(sample_mapping_data, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture(scope="session")
def default_mapping():
    """The mapping table shipped with the package."""
    return load_mapping_table()


@pytest.fixture
def resolver(store, default_mapping):
    """A resolver over each store backend and the shipped mapping."""
    return MatchResolver(store, default_mapping)
