"""Configuration management for Cut Normalizer."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .data_store import BackendType
from .models import Category, VariationSource

# Decision thresholds. Empirical constants carried over as-is.
REUSE_THRESHOLD = 0.8
CREATE_THRESHOLD = 0.6
MAPPING_FUZZY_THRESHOLD = 0.85
SUGGEST_THRESHOLD = 0.7
NORMALIZE_MIN_CONFIDENCE = 0.6
ANALYZE_MIN_CONFIDENCE = 0.4
DEFAULT_ALTERNATIVES = 5


@dataclass
class DataConfig:
    """Data storage configuration."""

    storage_dir: Path
    backend: str = BackendType.JSON.value


@dataclass
class MappingConfig:
    """Mapping table configuration."""

    path: Path | None = None


@dataclass
class ThresholdsConfig:
    """Match decision thresholds."""

    reuse: float = REUSE_THRESHOLD
    create: float = CREATE_THRESHOLD
    mapping_fuzzy: float = MAPPING_FUZZY_THRESHOLD
    suggest: float = SUGGEST_THRESHOLD
    normalize_min_confidence: float = NORMALIZE_MIN_CONFIDENCE
    analyze_min_confidence: float = ANALYZE_MIN_CONFIDENCE
    alternatives: int = DEFAULT_ALTERNATIVES


@dataclass
class DefaultsConfig:
    """Default values configuration."""

    category: str = Category.OTHER.value
    source: str = VariationSource.MANUAL.value


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"


@dataclass
class Config:
    """Complete application configuration."""

    data: DataConfig
    mapping: MappingConfig = field(default_factory=MappingConfig)
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages application configuration from TOML files."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional explicit path to config file.
                        If not provided, searches standard locations.
        """
        self.config_path = config_path or self._find_config()
        self._config = self._load_config()

    @property
    def data(self) -> DataConfig:
        """Get data configuration."""
        return self._config.data

    @property
    def mapping(self) -> MappingConfig:
        """Get mapping configuration."""
        return self._config.mapping

    @property
    def thresholds(self) -> ThresholdsConfig:
        """Get threshold configuration."""
        return self._config.thresholds

    @property
    def defaults(self) -> DefaultsConfig:
        """Get defaults configuration."""
        return self._config.defaults

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        return self._config.logging

    def _find_config(self) -> Path:
        """Find config file in standard locations."""
        locations = [
            Path.cwd() / "config.toml",
            Path.home() / ".config" / "cut-normalizer" / "config.toml",
            Path.home() / ".cut-normalizer" / "config.toml",
        ]

        for loc in locations:
            if loc.exists():
                return loc

        # Return default location if none found
        return Path.home() / ".config" / "cut-normalizer" / "config.toml"

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "rb") as f:
            data = tomllib.load(f)

        data_section = data.get("data", {})
        mapping_section = data.get("mapping", {})
        thresholds_section = data.get("thresholds", {})
        defaults_section = data.get("defaults", {})

        mapping_path = mapping_section.get("path")
        defaults = ThresholdsConfig()

        return Config(
            data=DataConfig(
                storage_dir=Path(
                    data_section.get("storage_dir", "~/cut-normalizer/data")
                ).expanduser(),
                backend=BackendType(data_section.get("backend", BackendType.JSON.value)).value,
            ),
            mapping=MappingConfig(
                path=Path(mapping_path).expanduser() if mapping_path else None,
            ),
            thresholds=ThresholdsConfig(
                reuse=thresholds_section.get("reuse", defaults.reuse),
                create=thresholds_section.get("create", defaults.create),
                mapping_fuzzy=thresholds_section.get("mapping_fuzzy", defaults.mapping_fuzzy),
                suggest=thresholds_section.get("suggest", defaults.suggest),
                normalize_min_confidence=thresholds_section.get(
                    "normalize_min_confidence", defaults.normalize_min_confidence
                ),
                analyze_min_confidence=thresholds_section.get(
                    "analyze_min_confidence", defaults.analyze_min_confidence
                ),
                alternatives=thresholds_section.get("alternatives", defaults.alternatives),
            ),
            defaults=DefaultsConfig(
                category=defaults_section.get("category", Category.OTHER.value),
                source=VariationSource(
                    defaults_section.get("source", VariationSource.MANUAL.value)
                ).value,
            ),
            logging=LoggingConfig(
                level=str(data.get("logging", {}).get("level", "WARNING")).upper(),
            ),
        )

    def _default_config(self) -> Config:
        """Return default configuration."""
        return Config(
            data=DataConfig(storage_dir=Path.home() / "cut-normalizer" / "data"),
        )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-notation path.

        Args:
            key_path: Dot-separated path like 'thresholds.reuse'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value: Any = self._config

        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        return value if value is not None else default
