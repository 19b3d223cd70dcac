"""Cut Normalizer - map raw meat cut product names onto canonical entities."""

from .canonicalizer import canonicalize
from .config import ConfigManager, ThresholdsConfig
from .data_store import (
    BackendType,
    DataStore,
    DuplicateNameError,
    NormalizationStore,
    NotFoundError,
    StorageUnavailableError,
    StoreError,
    create_store,
)
from .detector import detect_category, detect_cut_type, is_premium
from .mapping_table import MappingLoadError, MappingTable, load_mapping_table
from .models import (
    AnalysisReport,
    BatchResult,
    CanonicalDraft,
    CanonicalEntity,
    Category,
    CategoryStats,
    CutType,
    Decision,
    MatchCandidate,
    NormalizeOptions,
    ResolutionEnvelope,
    VariationDraft,
    VariationRecord,
    VariationSource,
)
from .output_formatter import OutputFormatter
from .resolver import InvalidInputError, MatchResolver
from .rules import DEFAULT_RULES, RuleSet
from .similarity import similarity
from .sqlite_store import SQLiteStore

__version__ = "0.1.0"

__all__ = [
    "AnalysisReport",
    "BackendType",
    "BatchResult",
    "CanonicalDraft",
    "CanonicalEntity",
    "canonicalize",
    "Category",
    "CategoryStats",
    "ConfigManager",
    "create_store",
    "CutType",
    "DataStore",
    "Decision",
    "DEFAULT_RULES",
    "detect_category",
    "detect_cut_type",
    "DuplicateNameError",
    "InvalidInputError",
    "is_premium",
    "load_mapping_table",
    "MappingLoadError",
    "MappingTable",
    "MatchCandidate",
    "MatchResolver",
    "NormalizationStore",
    "NormalizeOptions",
    "NotFoundError",
    "OutputFormatter",
    "ResolutionEnvelope",
    "RuleSet",
    "similarity",
    "SQLiteStore",
    "StorageUnavailableError",
    "StoreError",
    "ThresholdsConfig",
    "VariationDraft",
    "VariationRecord",
    "VariationSource",
]
