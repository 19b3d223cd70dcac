"""Static canonical-name mapping loaded once per process.

The mapping file is a JSON object ``{canonical_name: [variation, ...]}``.
A ``MappingTable`` is immutable after construction and is passed explicitly
to whatever needs it.
"""

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from types import MappingProxyType
from typing import Any, NamedTuple

from .canonicalizer import canonicalize
from .rules import DEFAULT_RULES, RuleSet

logger = logging.getLogger(__name__)

DEFAULT_MAPPING_PATH = Path(__file__).parent / "data" / "meat_names_mapping.json"


class MappingLoadError(Exception):
    """Raised when a mapping file cannot be read or has the wrong shape."""

    def __init__(self, path: Path | str | None, reason: str):
        self.path = path
        self.reason = reason
        location = f" '{path}'" if path else ""
        super().__init__(f"Cannot load mapping{location}: {reason}")


class MappingEntry(NamedTuple):
    """One reverse-index entry."""

    variation: str
    canonical_name: str
    key: str


class MappingTable:
    """Immutable canonical-name dictionary with a reverse index."""

    def __init__(
        self,
        mapping: dict[str, list[str]] | None = None,
        rules: RuleSet = DEFAULT_RULES,
    ):
        """Build the table and its indexes.

        Args:
            mapping: Canonical name to variation strings. Validated by the
                     ``from_*`` constructors, not here.
            rules: Rule set used to canonicalize variations for fuzzy lookups.
        """
        mapping = mapping or {}
        index: dict[str, str] = {}
        canonical_index: dict[str, str] = {}
        entries: list[MappingEntry] = []
        conflicts: list[tuple[str, str, str]] = []

        def add(variation: str, canonical_name: str) -> None:
            lowered = variation.strip().lower()
            if not lowered:
                return
            existing = index.get(lowered)
            if existing is not None:
                if existing != canonical_name:
                    conflicts.append((lowered, existing, canonical_name))
                    logger.warning(
                        "Mapping conflict: '%s' claimed by '%s' and '%s'; keeping '%s'",
                        lowered,
                        existing,
                        canonical_name,
                        existing,
                    )
                return
            index[lowered] = canonical_name
            key = canonicalize(variation, rules)
            if key:
                canonical_index.setdefault(key, canonical_name)
            entries.append(MappingEntry(lowered, canonical_name, key))

        for canonical_name, variations in mapping.items():
            for variation in variations:
                add(variation, canonical_name)
            add(canonical_name, canonical_name)

        self._mapping = MappingProxyType({name: tuple(vs) for name, vs in mapping.items()})
        self._index = MappingProxyType(index)
        self._canonical_index = MappingProxyType(canonical_index)
        self._entries = tuple(entries)
        self._conflicts = tuple(conflicts)
        self.rules = rules

    # --- Construction ---

    @classmethod
    def empty(cls, rules: RuleSet = DEFAULT_RULES) -> "MappingTable":
        """Return a table with no entries."""
        return cls({}, rules)

    @classmethod
    def from_dict(cls, data: Any, rules: RuleSet = DEFAULT_RULES) -> "MappingTable":
        """Validate a decoded mapping object and build a table.

        Raises:
            MappingLoadError: If data is not a non-empty object of
                string -> list of strings
        """
        if not isinstance(data, dict):
            raise MappingLoadError(None, "expected a JSON object")
        if not data:
            raise MappingLoadError(None, "mapping object is empty")

        for name, variations in data.items():
            if not isinstance(name, str) or not name.strip():
                raise MappingLoadError(None, f"invalid canonical name {name!r}")
            if not isinstance(variations, list):
                raise MappingLoadError(None, f"variations for '{name}' must be a list")
            for variation in variations:
                if not isinstance(variation, str):
                    raise MappingLoadError(
                        None, f"variation {variation!r} for '{name}' is not a string"
                    )

        return cls(data, rules)

    @classmethod
    def from_file(cls, path: Path, rules: RuleSet = DEFAULT_RULES) -> "MappingTable":
        """Load and validate a mapping JSON file.

        Raises:
            MappingLoadError: If the file is missing, unreadable or invalid
        """
        if not path.exists():
            raise MappingLoadError(path, "file not found")

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise MappingLoadError(path, f"invalid JSON ({e.msg})") from e
        except OSError as e:
            raise MappingLoadError(path, str(e)) from e

        try:
            return cls.from_dict(data, rules)
        except MappingLoadError as e:
            raise MappingLoadError(path, e.reason) from e

    # --- Lookup ---

    def lookup_exact(self, text: str) -> str | None:
        """Find the canonical name for a listed variation, ignoring case.

        The trimmed, lowercased text is tried first; then its canonical form
        against the canonical forms of the variations.
        """
        if not isinstance(text, str):
            return None
        lowered = text.strip().lower()
        if not lowered:
            return None
        found = self._index.get(lowered)
        if found is not None:
            return found
        key = canonicalize(text, self.rules)
        if not key:
            return None
        return self._canonical_index.get(key)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        for entry in self._entries:
            yield entry.variation, entry.canonical_name

    @property
    def entries(self) -> tuple[MappingEntry, ...]:
        """Reverse-index entries with their canonical forms."""
        return self._entries

    def __len__(self) -> int:
        return len(self._index)

    def __bool__(self) -> bool:
        return bool(self._index)

    @property
    def canonical_names(self) -> list[str]:
        return list(self._mapping)

    def variations_for(self, canonical_name: str) -> list[str]:
        return list(self._mapping.get(canonical_name, ()))

    @property
    def conflicts(self) -> tuple[tuple[str, str, str], ...]:
        """(variation, kept canonical, rejected canonical) triples."""
        return self._conflicts

    def summary(self) -> dict[str, int]:
        """Counts describing the table."""
        return {
            "canonical_names": len(self._mapping),
            "variations": sum(len(vs) for vs in self._mapping.values()),
            "index_entries": len(self._index),
            "conflicts": len(self._conflicts),
        }


def load_mapping_table(path: Path | None = None, rules: RuleSet = DEFAULT_RULES) -> MappingTable:
    """Load the mapping table, degrading to an empty table on any failure.

    Args:
        path: Mapping file. Defaults to the file shipped with the package.
        rules: Rule set for the canonical index.

    Returns:
        The loaded table, or an empty one if loading failed
    """
    path = path or DEFAULT_MAPPING_PATH
    try:
        table = MappingTable.from_file(path, rules)
    except MappingLoadError as e:
        logger.warning("%s; continuing with an empty mapping table", e)
        return MappingTable.empty(rules)

    summary = table.summary()
    logger.info(
        "Loaded %d canonical names with %d variations from %s",
        summary["canonical_names"],
        summary["variations"],
        path,
    )
    return table
