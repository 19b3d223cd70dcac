"""CLI entry point for Cut Normalizer."""

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from .config import ConfigManager
from .data_store import (
    BackendType,
    NormalizationStore,
    NotFoundError,
    StorageUnavailableError,
    create_store,
)
from .mapping_table import MappingTable, load_mapping_table
from .models import CutType, NormalizeOptions, VariationSource
from .output_formatter import OutputFormatter
from .resolver import InvalidInputError, MatchResolver

app = typer.Typer(
    name="cutnorm",
    help="Normalize meat cut product names to canonical entities",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# Global state for formatter and resolver (set by callback)
formatter: OutputFormatter = OutputFormatter()
config: ConfigManager | None = None
store: NormalizationStore | None = None
mapping: MappingTable | None = None
resolver: MatchResolver | None = None


def setup_logging(level: str) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def get_resolver() -> MatchResolver:
    """Get the resolver built by the callback."""
    if resolver is None:
        raise StorageUnavailableError("Store not initialized")
    return resolver


def fail(error: Exception) -> NoReturn:
    """Report an error with its code and exit with status 1."""
    if isinstance(error, InvalidInputError):
        formatter.error(str(error), error_code="INVALID_INPUT")
    elif isinstance(error, NotFoundError):
        formatter.error(str(error), error_code="NOT_FOUND")
    elif isinstance(error, StorageUnavailableError):
        formatter.error(str(error), error_code="STORAGE_UNAVAILABLE")
    elif isinstance(error, ValueError):
        formatter.error(str(error), error_code="INVALID_INPUT")
    else:
        formatter.error(str(error))
    raise typer.Exit(code=1)


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON for programmatic use")
    ] = False,
    data_dir: Annotated[Path | None, typer.Option("--data-dir", help="Data directory path")] = None,
    mapping_path: Annotated[
        Path | None, typer.Option("--mapping", help="Mapping JSON file path")
    ] = None,
    config_path: Annotated[
        Path | None, typer.Option("--config", help="Config TOML file path")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    """Cut Normalizer CLI - map product names onto canonical cuts."""
    global formatter, config, store, mapping, resolver

    formatter = OutputFormatter(json_mode=json_output)

    # Load config early; TOMLDecodeError is a ValueError
    try:
        config = ConfigManager(config_path)
    except (OSError, ValueError) as e:
        formatter.error(f"Invalid configuration: {e}", error_code="INVALID_CONFIG")
        raise typer.Exit(code=1)
    setup_logging("DEBUG" if verbose else config.logging.level)

    # CLI options override config, which overrides defaults
    effective_data_dir = data_dir if data_dir else config.data.storage_dir
    backend = BackendType(config.data.backend)

    try:
        store = create_store(backend=backend, data_dir=effective_data_dir)
    except StorageUnavailableError as e:
        fail(e)

    mapping = load_mapping_table(mapping_path or config.mapping.path)
    resolver = MatchResolver(
        store,
        mapping,
        thresholds=config.thresholds,
        default_category=config.defaults.category,
    )


@app.command()
def analyze(
    text: Annotated[str, typer.Argument(help="Product name to analyze")],
    min_confidence: Annotated[
        float | None,
        typer.Option("--min-confidence", min=0.0, max=1.0, help="Minimum match confidence"),
    ] = None,
) -> None:
    """Analyze a product name without saving anything."""
    try:
        report = get_resolver().analyze(text, min_confidence=min_confidence)
    except Exception as e:
        fail(e)

    output_data = {"success": True, "data": {"analysis": report.model_dump(mode="json")}}
    formatter.output(output_data)


@app.command()
def normalize(
    text: Annotated[str, typer.Argument(help="Product name to normalize")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Always create a new canonical entity")
    ] = False,
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="Category for a new entity")
    ] = None,
    cut_type: Annotated[
        CutType | None, typer.Option("--cut-type", help="Cut type for a new entity")
    ] = None,
    min_confidence: Annotated[
        float | None,
        typer.Option("--min-confidence", min=0.0, max=1.0, help="Minimum match confidence"),
    ] = None,
    created_by: Annotated[
        str | None, typer.Option("--by", help="Person recording the name")
    ] = None,
    source: Annotated[
        VariationSource | None,
        typer.Option("--source", help="Source recorded when a new entity is created"),
    ] = None,
) -> None:
    """Normalize a product name, creating a canonical entity if needed."""
    try:
        cfg = config or ConfigManager()
        options = NormalizeOptions(
            force_create=force,
            category_hint=category,
            cut_type_hint=cut_type.value if cut_type else None,
            min_confidence=min_confidence,
            user_id=created_by,
            source=source or VariationSource(cfg.defaults.source),
        )
        envelope = get_resolver().normalize(text, options)
    except Exception as e:
        fail(e)

    entity = envelope.canonical_entity
    message = (
        f"Created '{entity.name}'" if envelope.is_new_entity else f"Matched '{entity.name}'"
    )
    output_data = {
        "success": True,
        "message": message,
        "data": {"resolution": envelope.model_dump(mode="json")},
    }
    formatter.output(output_data, message)


@app.command()
def match(
    text: Annotated[str, typer.Argument(help="Product name to match")],
    min_confidence: Annotated[
        float,
        typer.Option("--min-confidence", min=0.0, max=1.0, help="Minimum match confidence"),
    ] = 0.6,
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="Only matches in this category")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Maximum results")] = 10,
) -> None:
    """Rank mapping variations and stored entities against a name."""
    try:
        matches = get_resolver().find_best_matches(
            text, min_confidence=min_confidence, category=category, limit=limit
        )
    except Exception as e:
        fail(e)

    output_data = {
        "success": True,
        "data": {
            "query": text,
            "matches": [m.model_dump(mode="json", exclude={"entity"}) for m in matches],
        },
    }
    formatter.output(output_data)


@app.command()
def stats() -> None:
    """Show per-category statistics."""
    try:
        category_stats = get_resolver().get_stats()
    except Exception as e:
        fail(e)

    output_data = {
        "success": True,
        "data": {"stats": [s.model_dump(mode="json") for s in category_stats]},
    }
    formatter.output(output_data)


@app.command("mapping")
def mapping_command(
    text: Annotated[
        str | None, typer.Argument(help="Name to look up; omit for a summary")
    ] = None,
) -> None:
    """Show the mapping table summary or look up one name."""
    table = mapping or MappingTable.empty()

    if text is None:
        output_data = {"success": True, "data": {"mapping_summary": table.summary()}}
        formatter.output(output_data)
        return

    canonical_name = table.lookup_exact(text)
    output_data = {
        "success": True,
        "data": {
            "mapping_lookup": {
                "text": text,
                "canonical_name": canonical_name,
                "variations": table.variations_for(canonical_name) if canonical_name else [],
            }
        },
    }
    formatter.output(output_data)


@app.command("import")
def import_names(
    file: Annotated[Path, typer.Argument(help="Text file with one product name per line")],
    created_by: Annotated[
        str | None, typer.Option("--by", help="Person recording the names")
    ] = None,
) -> None:
    """Normalize every non-empty line of a file."""
    try:
        with open(file, encoding="utf-8") as f:
            names = [line.strip() for line in f if line.strip()]
    except OSError as e:
        formatter.error(f"Cannot read {file}: {e}")
        raise typer.Exit(code=1)

    if not names:
        formatter.warning(f"No product names in {file.name}")
        return

    try:
        options = NormalizeOptions(source=VariationSource.ORIGINAL, user_id=created_by)
        batch = get_resolver().normalize_many(names, options)
    except Exception as e:
        fail(e)

    message = f"Imported {batch.processed} names from {file.name}"
    output_data = {
        "success": True,
        "message": message,
        "data": {"batch": batch.model_dump(mode="json")},
    }
    formatter.output(output_data, message)


@app.command()
def show(
    entity_id: Annotated[str, typer.Argument(help="Canonical entity ID")],
) -> None:
    """Show a canonical entity with its variations."""
    try:
        current = get_resolver().store
        entity = current.get_canonical(entity_id)
        if entity is None:
            raise NotFoundError("Canonical entity", entity_id)
        variations = current.list_variations(entity.id)
    except Exception as e:
        fail(e)

    output_data = {
        "success": True,
        "data": {
            "entity": entity.model_dump(mode="json"),
            "variations": [v.model_dump(mode="json") for v in variations],
        },
    }
    formatter.output(output_data)


@app.command("list")
def list_entities(
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="Only entities in this category")
    ] = None,
) -> None:
    """List canonical entities."""
    try:
        entities = get_resolver().store.list_canonicals(category)
    except Exception as e:
        fail(e)

    output_data = {
        "success": True,
        "data": {
            "entities": [entity.model_dump(mode="json") for entity in entities],
            "category": category,
        },
    }
    formatter.output(output_data)


@app.command()
def variations(
    entity_id: Annotated[
        str | None, typer.Option("--entity", "-e", help="Only variations of this entity")
    ] = None,
) -> None:
    """List recorded variations."""
    try:
        records = get_resolver().store.list_variations(entity_id)
    except Exception as e:
        fail(e)

    output_data = {
        "success": True,
        "data": {"variations_list": [record.model_dump(mode="json") for record in records]},
    }
    formatter.output(output_data)


@app.command()
def verify(
    variation_id: Annotated[str, typer.Argument(help="Variation ID")],
) -> None:
    """Mark a variation as verified."""
    try:
        record = get_resolver().store.verify_variation(variation_id)
    except Exception as e:
        fail(e)

    formatter.success(
        f"Verified '{record.original_name}'",
        {"variation": record.model_dump(mode="json")},
    )


if __name__ == "__main__":
    app()
