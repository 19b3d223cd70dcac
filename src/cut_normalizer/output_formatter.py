"""Output formatting for CLI and programmatic use."""

import json
from datetime import date, datetime, time
from enum import Enum
from typing import Any
from uuid import UUID

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for output."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def _confidence_style(confidence: float) -> str:
    if confidence > 0.8:
        return "green"
    if confidence >= 0.6:
        return "yellow"
    return "red"


def _percent(confidence: float | None) -> str:
    if confidence is None:
        return "-"
    style = _confidence_style(confidence)
    return f"[{style}]{confidence:.0%}[/{style}]"


class OutputFormatter:
    """Formats output for both Rich terminal and JSON modes."""

    def __init__(self, json_mode: bool = False):
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode
        self.console = Console()

    def output(self, data: dict[str, Any], message: str = "") -> None:
        """Output data in appropriate format.

        Args:
            data: Data to output, with the payload under "data"
            message: Optional message for Rich mode
        """
        if self.json_mode:
            self._output_json(data)
        else:
            self._output_rich(data, message)

    def _output_json(self, data: dict[str, Any]) -> None:
        """Output as JSON to stdout."""
        print(json.dumps(data, cls=JSONEncoder, ensure_ascii=False, indent=2))

    def _output_rich(self, data: dict[str, Any], message: str) -> None:
        """Output with Rich formatting."""
        if message:
            self.console.print(f"[green]✓[/green] {escape(message)}")

        payload = data.get("data", {})
        if "analysis" in payload:
            self._render_analysis(payload["analysis"])
        elif "resolution" in payload:
            self._render_resolution(payload["resolution"])
        elif "matches" in payload:
            self._render_matches(payload["matches"], payload.get("query", ""))
        elif "stats" in payload:
            self._render_stats(payload["stats"])
        elif "entity" in payload:
            self._render_entity(payload["entity"], payload.get("variations", []))
        elif "entities" in payload:
            self._render_entities(payload["entities"], payload.get("category"))
        elif "variations_list" in payload:
            self._render_variations(payload["variations_list"])
        elif "mapping_summary" in payload:
            self._render_mapping_summary(payload["mapping_summary"])
        elif "mapping_lookup" in payload:
            self._render_mapping_lookup(payload["mapping_lookup"])
        elif "batch" in payload:
            self._render_batch(payload["batch"])
        elif "variation" in payload:
            self._render_variation(payload["variation"])

    def _render_analysis(self, report: dict) -> None:
        """Render an analysis report."""
        lines = [
            f"[bold]{escape(report['original_name'])}[/bold]",
            "",
            f"Cleaned: {escape(report['cleaned_name']) or '-'}",
            f"Category: {report.get('detected_category') or '-'}",
            f"Cut type: {report.get('detected_cut_type') or '-'}",
            f"Premium: {'yes' if report.get('is_premium') else 'no'}",
            f"Suggested name: [cyan]{escape(report['suggested_name'])}[/cyan]",
            f"Confidence: {_percent(report.get('confidence', 0.0))}",
            f"Decision: {report.get('decision', 'create')}",
        ]
        self.console.print(Panel("\n".join(lines), title="Analysis", border_style="cyan"))

        for reason in report.get("reasons", []):
            self.console.print(f"  [dim]• {escape(reason)}[/dim]")

        if report.get("ranked_candidates"):
            self._render_matches(report["ranked_candidates"], title="Candidates")

    def _render_resolution(self, envelope: dict) -> None:
        """Render a normalization result."""
        entity = envelope["canonical_entity"]
        variation = envelope["variation_record"]
        status = "[green]new[/green]" if envelope["is_new_entity"] else "[blue]existing[/blue]"

        panel_content = f"""[bold]{escape(entity["name"])}[/bold] ({status})

Category: {entity.get("category", "-")}
Cut type: {entity.get("cut_type") or "-"}
Premium: {"yes" if entity.get("is_premium") else "no"}
Variation: {escape(variation["original_name"])}
Confidence: {_percent(envelope["confidence"])}
Source: {envelope["source"]}
Entity ID: [dim]{entity["id"]}[/dim]
Variation ID: [dim]{variation["id"]}[/dim]"""

        self.console.print(Panel(panel_content, title="Canonical Entity", border_style="green"))

        if envelope.get("alternatives"):
            self._render_matches(envelope["alternatives"], title="Alternatives")

    def _render_matches(self, matches: list, query: str = "", title: str | None = None) -> None:
        """Render ranked match candidates."""
        if not matches:
            self.console.print("[dim]No matches found[/dim]")
            return

        table_title = title or (f"Matches for '{escape(query)}'" if query else "Matches")
        table = Table(title=table_title, show_header=True, header_style="bold cyan")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Canonical Name", style="cyan")
        table.add_column("Matched Text", style="white")
        table.add_column("Source", style="magenta")
        table.add_column("Confidence", justify="right")

        for position, match in enumerate(matches, 1):
            table.add_row(
                str(position),
                escape(match["canonical_name"]),
                escape(match.get("matched_text", "")),
                match["source"],
                _percent(match["confidence"]),
            )

        self.console.print(table)

    def _render_stats(self, stats: list) -> None:
        """Render per-category statistics."""
        if not stats:
            self.console.print("[dim]No canonical entities yet[/dim]")
            return

        table = Table(title="Statistics by Category", show_header=True, header_style="bold cyan")
        table.add_column("Category", style="cyan")
        table.add_column("Entities", justify="right")
        table.add_column("Variations", justify="right")
        table.add_column("Avg Confidence", justify="right")
        table.add_column("Verified", justify="right", style="green")

        for row in stats:
            table.add_row(
                escape(row["category"]),
                str(row["canonical_count"]),
                str(row["variation_count"]),
                _percent(row.get("avg_confidence")),
                str(row["verified_count"]),
            )

        self.console.print(table)
        total_entities = sum(row["canonical_count"] for row in stats)
        total_variations = sum(row["variation_count"] for row in stats)
        self.console.print(f"\nTotal: {total_entities} entities, {total_variations} variations")

    def _render_entity(self, entity: dict, variations: list) -> None:
        """Render one canonical entity with its variations."""
        methods = ", ".join(entity.get("cooking_methods") or []) or "-"
        panel_content = f"""[bold]{escape(entity["name"])}[/bold]

Category: {entity.get("category", "-")}
Subcategory: {entity.get("subcategory") or "-"}
Cut type: {entity.get("cut_type") or "-"}
Premium: {"yes" if entity.get("is_premium") else "no"}
Weight range: {entity.get("typical_weight_range") or "-"}
Cooking methods: {methods}
Created: {entity.get("created_at", "")[:19]}
ID: [dim]{entity["id"]}[/dim]"""

        self.console.print(Panel(panel_content, title="Canonical Entity", border_style="cyan"))
        self._render_variations(variations)

    def _render_variations(self, variations: list) -> None:
        """Render a table of variation records."""
        if not variations:
            self.console.print("[dim]No variations recorded[/dim]")
            return

        table = Table(title="Variations", show_header=True, header_style="bold cyan")
        table.add_column("Name", style="white")
        table.add_column("Source", style="magenta")
        table.add_column("Confidence", justify="right")
        table.add_column("Verified", justify="center")
        table.add_column("ID", style="dim")

        for variation in variations:
            table.add_row(
                escape(variation["original_name"]),
                variation["source"],
                _percent(variation["confidence_score"]),
                "[green]✓[/green]" if variation.get("verified") else "",
                str(variation["id"]),
            )

        self.console.print(table)

    def _render_entities(self, entities: list, category: str | None = None) -> None:
        """Render a table of canonical entities."""
        if not entities:
            self.console.print("[dim]No canonical entities found[/dim]")
            return

        title = f"Canonical Entities: {escape(category)}" if category else "Canonical Entities"
        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("Name", style="cyan")
        table.add_column("Category", style="white")
        table.add_column("Cut Type", style="white")
        table.add_column("Premium", justify="center")
        table.add_column("ID", style="dim")

        for entity in entities:
            table.add_row(
                escape(entity["name"]),
                escape(entity.get("category") or "-"),
                escape(entity.get("cut_type") or "-"),
                "[yellow]★[/yellow]" if entity.get("is_premium") else "",
                str(entity["id"]),
            )

        self.console.print(table)
        self.console.print(f"\nTotal: {len(entities)} entities")

    def _render_mapping_summary(self, summary: dict) -> None:
        """Render mapping table counts."""
        table = Table(title="Mapping Table", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Canonical names", str(summary["canonical_names"]))
        table.add_row("Variations", str(summary["variations"]))
        table.add_row("Index entries", str(summary["index_entries"]))
        conflicts = summary["conflicts"]
        table.add_row("Conflicts", f"[red]{conflicts}[/red]" if conflicts else "0")
        self.console.print(table)

    def _render_mapping_lookup(self, lookup: dict) -> None:
        """Render an exact mapping lookup."""
        if lookup.get("canonical_name"):
            self.console.print(
                f"{escape(lookup['text'])} → [bold cyan]{lookup['canonical_name']}[/bold cyan]"
            )
            variations = lookup.get("variations") or []
            if variations:
                self.console.print(f"[dim]Known variations: {', '.join(variations)}[/dim]")
        else:
            self.console.print(f"[yellow]No mapping entry for '{escape(lookup['text'])}'[/yellow]")

    def _render_batch(self, batch: dict) -> None:
        """Render a batch import summary."""
        self.console.print(
            f"Processed {batch['processed']}: "
            f"[green]{batch['new_entities']} new[/green], "
            f"[blue]{batch['reused_entities']} reused[/blue]"
        )

        if batch.get("results"):
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Input", style="white")
            table.add_column("Canonical Name", style="cyan")
            table.add_column("Source", style="magenta")
            table.add_column("Confidence", justify="right")
            for envelope in batch["results"]:
                table.add_row(
                    escape(envelope["variation_record"]["original_name"]),
                    escape(envelope["canonical_entity"]["name"]),
                    envelope["source"],
                    _percent(envelope["confidence"]),
                )
            self.console.print(table)

        for text, reason in batch.get("failures", {}).items():
            self.console.print(f"[red]✗[/red] {escape(text)}: {escape(reason)}")

    def _render_variation(self, variation: dict) -> None:
        """Render a single variation record."""
        verified = "[green]verified[/green]" if variation.get("verified") else "unverified"
        self.console.print(
            f"{escape(variation['original_name'])} ({variation['source']}, "
            f"{_percent(variation['confidence_score'])}) {verified}"
        )

    def error(self, message: str, error_code: str | None = None) -> None:
        """Output error message.

        Args:
            message: Error message
            error_code: Optional error code
        """
        if self.json_mode:
            output = {"success": False, "error": message}
            if error_code:
                output["error_code"] = error_code
            print(json.dumps(output, ensure_ascii=False))
        else:
            self.console.print(f"[red]✗ Error:[/red] {escape(message)}")

    def success(self, message: str, data: dict | None = None) -> None:
        """Output success message.

        Args:
            message: Success message
            data: Optional data to include
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if data:
                output["data"] = data
            print(json.dumps(output, cls=JSONEncoder, ensure_ascii=False))
        else:
            self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        """Output warning message.

        Args:
            message: Warning message
        """
        if self.json_mode:
            print(json.dumps({"warning": message}, ensure_ascii=False))
        else:
            self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")
