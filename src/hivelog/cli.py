"""CLI entry point for hivelog.

Provides commands:
  - ingest: Reconcile a language-model extraction response into inspections
  - webhook: Reconcile the structured data of a voice-agent webhook payload
  - pending: Show extraction records waiting for a manual hive assignment
  - assign: Assign a parked record to a hive (confirmed inspection)
  - hives: Manage the hive registry (add, list, rename, remove, recompute)
  - inspections: Browse and edit the inspection log
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hivelog.config import HivelogConfig, load_config
from hivelog.database import Database
from hivelog.display import (
    display_inspection_panel,
    hives_table,
    inspections_table,
    unresolved_table,
)
from hivelog.errors import (
    EmptyExtraction,
    HiveNotFoundError,
    InspectionNotFoundError,
    MalformedExtraction,
    WebhookPayloadError,
)
from hivelog.hives.resolver import suggest_hives
from hivelog.pipeline import IngestResult, InspectionPipeline

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="hivelog - turn spoken hive inspection reports into inspection records",
    rich_markup_mode="rich",
)
console = Console()

hives_app = typer.Typer(help="Manage the hive registry")
app.add_typer(hives_app, name="hives")

inspections_app = typer.Typer(help="Browse and edit the inspection log")
app.add_typer(inspections_app, name="inspections")


@app.callback()
def app_callback(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to hivelog config JSON"),
    ] = None,
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to SQLite database (overrides config)"),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Write debug logs to ~/.hivelog/debug.log"),
    ] = False,
) -> None:
    """Load configuration shared by all commands."""
    try:
        config = load_config(config_path)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[yellow]Warning:[/yellow] Failed to load config: {e}")
        console.print("[dim]Using default configuration.[/dim]")
        config = HivelogConfig()

    if db_path is not None:
        config.db_path = db_path

    if debug:
        config.debug_log.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(config.debug_log)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        package_logger = logging.getLogger("hivelog")
        package_logger.setLevel(logging.DEBUG)
        package_logger.addHandler(fh)

    ctx.obj = config


def get_config(ctx: typer.Context) -> HivelogConfig:
    """Type-safe accessor for the config stored on the Typer context."""
    if ctx.obj is None:
        return HivelogConfig()
    return ctx.obj


def _read_input(source: Path) -> str:
    if str(source) == "-":
        return sys.stdin.read()
    if not source.exists():
        console.print(f"[red]Error:[/red] File not found: {source}")
        raise typer.Exit(code=1)
    return source.read_text(encoding="utf-8")


def _print_ingest_result(result: IngestResult, db: Database, limit: int) -> None:
    report = result.validation
    reconciliation = result.reconciliation

    summary = Table(title="Ingest Summary")
    summary.add_column("Metric", style="bold")
    summary.add_column("Count", justify="right")
    summary.add_row("Candidates", str(len(report.outcomes)))
    summary.add_row("Rejected (no hive reference)", f"[red]{report.rejected_count}[/red]")
    summary.add_row("Inspections created", f"[green]{len(reconciliation.inspections)}[/green]")
    summary.add_row("Unresolved", f"[yellow]{len(reconciliation.unresolved)}[/yellow]")
    console.print(summary)

    dropped = [(o.record.hive_ref, o.dropped_fields) for o in report.outcomes if o.record and o.dropped_fields]
    for hive_ref, fields in dropped:
        console.print(f"[dim]Dropped invalid fields for '{escape(hive_ref)}': {', '.join(fields)}[/dim]")

    if reconciliation.inspections:
        console.print(inspections_table(reconciliation.inspections, title="Created inspections"))

    if reconciliation.unresolved:
        hives = db.load()
        suggestions = [suggest_hives(r.hive_ref, hives, limit) for r in reconciliation.unresolved]
        console.print(unresolved_table(reconciliation.unresolved, suggestions))
        console.print(
            f"\nAssign with: [cyan]hivelog assign {result.session_id} <#> <hive-id>[/cyan]"
        )

    console.print(f"\n[bold]Session:[/bold] {result.session_id}")


@app.command()
def ingest(
    ctx: typer.Context,
    source: Annotated[
        Path,
        typer.Argument(help="File with the model response ('-' for stdin)"),
    ],
    session_id: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Recording session id (generated if omitted)"),
    ] = None,
) -> None:
    """Reconcile a language-model extraction response into inspections."""
    config = get_config(ctx)
    text = _read_input(source)

    with Database(config.db_path) as db:
        pipeline = InspectionPipeline(db)
        try:
            result = pipeline.ingest_text(text, session_id)
        except EmptyExtraction as e:
            console.print(f"[yellow]Nothing to extract:[/yellow] {escape(str(e))}")
            raise typer.Exit(code=0)
        except MalformedExtraction as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            console.print(Panel(Text(e.original), title="Original response", border_style="red"))
            console.print(Panel(Text(e.repaired), title="Best repair attempt", border_style="yellow"))
            console.print("[dim]Enter the inspection data manually if it cannot be salvaged.[/dim]")
            raise typer.Exit(code=1)

        _print_ingest_result(result, db, config.suggestion_limit)


@app.command()
def webhook(
    ctx: typer.Context,
    source: Annotated[
        Path,
        typer.Argument(help="File with the webhook JSON payload ('-' for stdin)"),
    ],
    session_id: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Recording session id (generated if omitted)"),
    ] = None,
) -> None:
    """Reconcile the structured data of a voice-agent webhook payload."""
    config = get_config(ctx)
    text = _read_input(source)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] Webhook payload is not JSON: {e}")
        raise typer.Exit(code=1)

    with Database(config.db_path) as db:
        try:
            result = InspectionPipeline(db).ingest_webhook(payload, session_id)
        except WebhookPayloadError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(code=1)
        _print_ingest_result(result, db, config.suggestion_limit)


@app.command()
def pending(
    ctx: typer.Context,
    session_id: Annotated[
        str | None,
        typer.Argument(help="Session to show (omit to list sessions)"),
    ] = None,
) -> None:
    """Show extraction records waiting for a manual hive assignment."""
    config = get_config(ctx)

    with Database(config.db_path) as db:
        if session_id is None:
            sessions = db.get_unresolved_sessions()
            if not sessions:
                console.print("[green]No unresolved extractions.[/green]")
                return
            table = Table(title="Sessions with unresolved extractions")
            table.add_column("Session", style="bold")
            table.add_column("Records", justify="right")
            for sid, count in sessions.items():
                table.add_row(sid, str(count))
            console.print(table)
            return

        records = db.get_unresolved(session_id)
        if not records:
            console.print(f"[green]No unresolved extractions for session {session_id}.[/green]")
            return
        hives = db.load()
        suggestions = [suggest_hives(r.hive_ref, hives, config.suggestion_limit) for r in records]
        console.print(unresolved_table(records, suggestions))
        console.print(hives_table(hives, title="Active hives"))


@app.command()
def assign(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session the record belongs to")],
    index: Annotated[int, typer.Argument(help="Record number shown by 'pending'")],
    hive_id: Annotated[str, typer.Argument(help="Target hive id")],
) -> None:
    """Assign a parked extraction record to a hive as a confirmed inspection."""
    config = get_config(ctx)

    with Database(config.db_path) as db:
        try:
            inspection = InspectionPipeline(db).assign_parked(session_id, index, hive_id)
        except HiveNotFoundError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(code=1)

        if inspection is None:
            console.print(f"[red]Error:[/red] No unresolved record #{index} in session {session_id}")
            raise typer.Exit(code=1)

        console.print(f"[green]Assigned to {escape(inspection.hive_name)}.[/green]")
        display_inspection_panel(inspection, console)


# -- hives ----------------------------------------------------------------


@hives_app.command("add")
def hives_add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Display name of the hive")],
    location: Annotated[str | None, typer.Option("--location", "-l", help="Where the hive stands")] = None,
    notes: Annotated[str | None, typer.Option("--notes", "-n", help="Free-text notes")] = None,
    color: Annotated[str | None, typer.Option("--color", help="Display color")] = None,
) -> None:
    """Register a new hive at the end of the registry order."""
    config = get_config(ctx)
    with Database(config.db_path) as db:
        try:
            hive = db.add_hive(name, location=location, notes=notes, color=color)
        except ValueError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(code=1)
        position = len(db.load())
    console.print(f"[green]Added hive[/green] [bold]{escape(hive.name)}[/bold] ({hive.id}) at position {position}")


@hives_app.command("list")
def hives_list(
    ctx: typer.Context,
    show_all: Annotated[bool, typer.Option("--all", "-a", help="Include removed hives")] = False,
) -> None:
    """List hives in registry order (the order 'hive 1', 'hive 2' refer to)."""
    config = get_config(ctx)
    with Database(config.db_path) as db:
        hives = db.list_hives(include_inactive=show_all)
    if not hives:
        console.print("[yellow]No hives registered.[/yellow] Add one with [bold]hivelog hives add NAME[/bold].")
        return
    console.print(hives_table(hives))


@hives_app.command("rename")
def hives_rename(
    ctx: typer.Context,
    hive_id: Annotated[str, typer.Argument(help="Hive id")],
    name: Annotated[str, typer.Argument(help="New display name")],
) -> None:
    """Rename a hive; past inspections keep the name they were recorded under."""
    config = get_config(ctx)
    with Database(config.db_path) as db:
        try:
            db.rename_hive(hive_id, name)
        except (HiveNotFoundError, ValueError) as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(code=1)
    console.print(f"[green]Renamed hive {escape(hive_id)} to[/green] [bold]{escape(name.strip())}[/bold]")


@hives_app.command("remove")
def hives_remove(
    ctx: typer.Context,
    hive_id: Annotated[str, typer.Argument(help="Hive id")],
) -> None:
    """Soft-delete a hive. Later hives move up one position."""
    config = get_config(ctx)
    with Database(config.db_path) as db:
        try:
            db.deactivate_hive(hive_id)
        except HiveNotFoundError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(code=1)
    console.print(f"[green]Removed hive {hive_id}.[/green]")


@hives_app.command("recompute")
def hives_recompute(
    ctx: typer.Context,
    hive_id: Annotated[str, typer.Argument(help="Hive id")],
) -> None:
    """Rebuild a hive's latest-inspection pointer from the inspection log."""
    config = get_config(ctx)
    with Database(config.db_path) as db:
        if db.get_hive(hive_id) is None:
            console.print(f"[red]Error:[/red] Hive not found: {hive_id}")
            raise typer.Exit(code=1)
        latest = db.recompute_latest(hive_id)
    if latest is None:
        console.print("[yellow]Hive has no inspections.[/yellow]")
    else:
        console.print(f"[green]Latest inspection:[/green] {latest.id} ({latest.timestamp.isoformat()})")


# -- inspections ----------------------------------------------------------


@inspections_app.command("list")
def inspections_list(
    ctx: typer.Context,
    hive_id: Annotated[str | None, typer.Option("--hive", help="Only this hive")] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum rows")] = 50,
) -> None:
    """List inspections, newest first."""
    config = get_config(ctx)
    with Database(config.db_path) as db:
        inspections = db.get_inspections(hive_id=hive_id, limit=limit)
    if not inspections:
        console.print("[yellow]No inspections found.[/yellow]")
        return
    console.print(inspections_table(inspections))


@inspections_app.command("show")
def inspections_show(
    ctx: typer.Context,
    inspection_id: Annotated[str, typer.Argument(help="Inspection id")],
) -> None:
    """Show one inspection with grouped observations."""
    config = get_config(ctx)
    with Database(config.db_path) as db:
        inspection = db.get_inspection(inspection_id)
    if inspection is None:
        console.print(f"[red]Error:[/red] Inspection not found: {inspection_id}")
        raise typer.Exit(code=1)
    display_inspection_panel(inspection, console)


def _parse_assignment(raw: str) -> tuple[str, object]:
    """Parse KEY=VALUE; VALUE is read as JSON when possible ("4" -> 4, "null" -> None)."""
    if "=" not in raw:
        raise typer.BadParameter(f"Expected KEY=VALUE, got '{raw}'")
    key, _, value = raw.partition("=")
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


@inspections_app.command("edit")
def inspections_edit(
    ctx: typer.Context,
    inspection_id: Annotated[str, typer.Argument(help="Inspection id")],
    assignments: Annotated[
        list[str] | None,
        typer.Option("--set", help="Field change as KEY=VALUE, e.g. binasHälsa=4 (repeatable)"),
    ] = None,
    notes: Annotated[str | None, typer.Option("--notes", help="Replace the inspection notes")] = None,
    editor: Annotated[str | None, typer.Option("--editor", help="Name stamped on the edit")] = None,
) -> None:
    """Edit an inspection's observations; the edit is stamped with editor and time."""
    config = get_config(ctx)
    changes = dict(_parse_assignment(raw) for raw in assignments or [])
    if not changes and notes is None:
        console.print("[yellow]Nothing to change.[/yellow] Use --set KEY=VALUE or --notes.")
        raise typer.Exit(code=1)

    with Database(config.db_path) as db:
        try:
            inspection = db.edit_inspection(inspection_id, editor or config.editor, changes, notes=notes)
        except (InspectionNotFoundError, ValueError) as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(code=1)
    display_inspection_panel(inspection, console)
