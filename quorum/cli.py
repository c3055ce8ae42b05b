"""Quorum CLI: Typer + Rich terminal interface.

Commands: consensus, suggestions, merges, duplicates, report, config.
All commands read a state snapshot exported by the host application.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from quorum import __version__
from quorum.engine import AnnotationEngine
from quorum.schemas.annotation import BucketKey
from quorum.schemas.config import EngineConfig
from quorum.schemas.consensus import ConsensusStatus
from quorum.settings import CONFIG_DIR, load_engine_config

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="quorum",
    help="Community annotation consensus and merge resolution.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    name="config",
    help="Show engine configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Set by the app callback, read by commands
_config_path: Path | None = None


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"quorum {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable debug logging",
    ),
    config: Path = typer.Option(
        None, "--config", "-c",
        help="Engine config TOML (defaults to the bundled defaults.toml)",
    ),
) -> None:
    """Quorum: community annotation consensus and merge resolution."""
    global _config_path
    _config_path = config
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ── Helpers ──────────────────────────────────────────────────────

def _load_config() -> EngineConfig:
    """Load engine config, exit on error."""
    try:
        return load_engine_config(_config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _load_engine(snapshot_path: Path) -> AnnotationEngine:
    """Build an engine from a snapshot file, exit on error."""
    config = _load_config()
    try:
        raw = json.loads(snapshot_path.read_text(encoding="utf-8"))
        return AnnotationEngine.from_snapshot(raw, config=config)
    except OSError as e:
        console.print(f"[red]Cannot read snapshot:[/red] {e}")
        raise typer.Exit(1) from None
    except ValueError as e:
        console.print(f"[red]Invalid snapshot:[/red] {e}")
        raise typer.Exit(1) from None


def _status_style(status: str) -> str:
    """Return a Rich style string for a consensus status."""
    return {
        ConsensusStatus.CONSENSUS.value: "bold green",
        ConsensusStatus.DISPUTED.value: "bold yellow",
        ConsensusStatus.PENDING.value: "dim",
    }.get(status, "white")


# ── quorum consensus ─────────────────────────────────────────────


@app.command()
def consensus(
    snapshot: Path = typer.Argument(..., help="State snapshot JSON file"),
    field: str = typer.Option(None, "--field", "-f", help="Only show one field"),
) -> None:
    """Show the consensus outcome of every bucket."""
    engine = _load_engine(snapshot)
    buckets = [b for b in engine.get_buckets() if field is None or b.field_key == field]
    if not buckets:
        console.print("[dim]No suggestions found.[/dim]")
        return

    table = Table(title="Consensus")
    table.add_column("Field", style="cyan")
    table.add_column("Category", justify="right")
    table.add_column("Status")
    table.add_column("Label")
    table.add_column("Confidence", justify="right")
    table.add_column("Voters", justify="right")
    table.add_column("Net", justify="right")

    for bucket in buckets:
        result = engine.compute_consensus(bucket)
        style = _status_style(result.status.value)
        closed = " [dim](closed)[/dim]" if engine.is_field_closed(bucket.field_key) else ""
        table.add_row(
            bucket.field_key + closed,
            str(bucket.category_index),
            f"[{style}]{result.status.value}[/{style}]",
            result.label or "-",
            f"{result.confidence:.2f}",
            str(result.voters),
            f"{result.net_votes:+d}",
        )

    console.print(table)


# ── quorum suggestions ───────────────────────────────────────────


@app.command()
def suggestions(
    snapshot: Path = typer.Argument(..., help="State snapshot JSON file"),
    field: str = typer.Argument(..., help="Field key"),
    index: int = typer.Argument(..., help="Category index"),
) -> None:
    """List the bundle cards of one bucket."""
    engine = _load_engine(snapshot)
    bucket = BucketKey.of(field, index)
    cards = engine.get_suggestions(bucket)
    if not cards:
        console.print(f"[dim]No suggestions in {bucket}.[/dim]")
        return

    table = Table(title=f"Suggestions in {bucket}")
    table.add_column("ID", style="dim")
    table.add_column("Label", style="bold")
    table.add_column("Ontology")
    table.add_column("Up", justify="right", style="green")
    table.add_column("Down", justify="right", style="red")
    table.add_column("Comments", justify="right")
    table.add_column("Merged From")
    table.add_column("Proposed By")

    for card in cards:
        merged = ", ".join(m.label for m in card.merged_from) or ""
        table.add_row(
            card.id[:8],
            card.label,
            card.ontology_id or "",
            str(len(card.upvotes)),
            str(len(card.downvotes)),
            str(card.comment_count),
            merged,
            f"@{card.proposed_by}",
        )

    console.print(table)


# ── quorum merges ────────────────────────────────────────────────


@app.command()
def merges(
    snapshot: Path = typer.Argument(..., help="State snapshot JSON file"),
    field: str = typer.Option(None, "--field", "-f", help="Only show one field"),
) -> None:
    """List moderation merges, flagging chains caught in a cycle."""
    engine = _load_engine(snapshot)
    edges = [
        e for e in engine.get_moderation_merges()
        if field is None or e.bucket.field_key == field
    ]
    if not edges:
        console.print("[dim]No moderation merges.[/dim]")
        return

    unresolved: dict[BucketKey, set[str]] = {}
    table = Table(title="Moderation Merges")
    table.add_column("Bucket", style="cyan")
    table.add_column("From")
    table.add_column("Into")
    table.add_column("By")
    table.add_column("At")
    table.add_column("Note")
    table.add_column("State")

    for edge in edges:
        if edge.bucket not in unresolved:
            unresolved[edge.bucket] = set(engine.get_unresolved_merges(edge.bucket))
        cyclic = edge.from_suggestion_id in unresolved[edge.bucket]
        table.add_row(
            str(edge.bucket),
            edge.from_suggestion_id[:8],
            edge.into_suggestion_id[:8],
            f"@{edge.by}",
            edge.at.strftime("%Y-%m-%d %H:%M"),
            edge.note or "",
            "[bold red]cycle[/bold red]" if cyclic else "[green]ok[/green]",
        )

    console.print(table)


# ── quorum duplicates ────────────────────────────────────────────


@app.command()
def duplicates(
    snapshot: Path = typer.Argument(..., help="State snapshot JSON file"),
) -> None:
    """Show suggestions whose labels look like duplicates."""
    engine = _load_engine(snapshot)
    found = False
    for bucket in engine.get_buckets():
        groups = engine.find_duplicate_suggestions(bucket)
        if not groups:
            continue
        found = True
        labels = {card.id: card.label for card in engine.get_suggestions(bucket)}
        console.print(f"[bold cyan]{bucket}[/bold cyan]")
        for group in groups:
            shown = ", ".join(f"{labels.get(sid, sid)!r} ({sid[:8]})" for sid in group)
            console.print(f"  • {shown}")

    if not found:
        console.print("[dim]No duplicate labels found.[/dim]")


# ── quorum report ────────────────────────────────────────────────


@app.command()
def report(
    snapshot: Path = typer.Argument(..., help="State snapshot JSON file"),
    output: Path = typer.Option(None, "--output", "-o", help="Write to a file instead"),
    fmt: str = typer.Option(
        "markdown", "--format", "-f",
        help="Export format: json or markdown",
    ),
) -> None:
    """Export the state as a Markdown report or normalized JSON."""
    from quorum.export import export_json, export_markdown

    engine = _load_engine(snapshot)
    if fmt == "json":
        text = export_json(engine.get_state_snapshot())
    elif fmt == "markdown":
        text = export_markdown(engine)
    else:
        console.print(f"[red]Invalid format:[/red] '{fmt}'. Choose json or markdown.")
        raise typer.Exit(1) from None

    if output is None:
        console.print(text, markup=False, highlight=False)
        return
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]Report written to[/green] {output}")


# ── quorum config ────────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show the effective engine configuration."""
    config = _load_config()

    table = Table(title="Engine Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Min Voters", str(config.consensus.min_voters))
    table.add_row("Consensus Threshold", f"{config.consensus.consensus_threshold:.2f}")
    table.add_row("Dispute Threshold", f"{config.consensus.dispute_threshold:.2f}")
    table.add_row("Tie Break", config.tie_break.value)
    table.add_row("Require Annotated Fields", str(config.require_annotated_fields))

    console.print(table)

    limits_table = Table(title="Limits")
    limits_table.add_column("Limit", style="cyan")
    limits_table.add_column("Value", justify="right")
    for name, value in config.limits.model_dump().items():
        limits_table.add_row(name, str(value))
    console.print()
    console.print(limits_table)


@config_app.command("path")
def config_path() -> None:
    """Show configuration file location."""
    path = _config_path or CONFIG_DIR / "defaults.toml"
    status = "[green]found[/green]" if path.exists() else "[red]missing[/red]"

    table = Table(title="Configuration Paths", show_header=False)
    table.add_column("Config", style="bold")
    table.add_column("Path")
    table.add_column("Status")
    table.add_row("Engine", str(path), status)
    console.print(table)
