"""Rich rendering of hives, inspections, and unresolved extraction records."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hivelog.extraction.schemas import (
    HIVE_REF_KEY,
    OBSERVATION_FIELDS,
    ExtractionRecord,
    FieldGroup,
    ObservationFields,
)
from hivelog.models import Hive, InspectionRecord, confidence_label

_GROUP_TITLES: dict[FieldGroup, str] = {
    FieldGroup.CORE: "Core status",
    FieldGroup.BROOD_FOOD: "Brood & feed",
    FieldGroup.BEHAVIOR_RISK: "Behavior & risk",
    FieldGroup.HEALTH_CONDITION: "Health & condition",
    FieldGroup.HONEY_PRODUCTION: "Honey production",
    FieldGroup.ENVIRONMENTAL: "Environment",
    FieldGroup.PLANNING: "Planning",
}


def _confidence_style(confidence: float) -> str:
    """Green (>=0.85), yellow (0.70-0.84), red (<0.70)."""
    if confidence >= 0.85:
        return "green"
    elif confidence >= 0.70:
        return "yellow"
    else:
        return "red"


def _format_value(value: object) -> str:
    return escape(getattr(value, "value", None) or str(value))


def grouped_observations(record: ObservationFields) -> dict[FieldGroup, list[tuple[str, str]]]:
    """Mentioned observation fields as (label, text) pairs, by group.

    The technical confidence field is left out; it is shown separately.
    """
    values = record.observations()
    grouped: dict[FieldGroup, list[tuple[str, str]]] = {}
    for spec in OBSERVATION_FIELDS:
        if spec.group is FieldGroup.TECHNICAL or spec.attr not in values:
            continue
        grouped.setdefault(spec.group, []).append((spec.label, _format_value(values[spec.attr])))
    return grouped


def _confidence_text(confidence: float | None) -> str:
    if confidence is None:
        return "[dim]-[/dim]"
    style = _confidence_style(confidence)
    return f"[{style}]{round(confidence * 100)}%[/{style}]"


def _observation_summary(record: ObservationFields) -> str:
    parts = [
        f"{label}: {text}"
        for entries in grouped_observations(record).values()
        for label, text in entries
    ]
    return ", ".join(parts) if parts else "[dim]no observations[/dim]"


def hives_table(hives: Sequence[Hive], title: str = "Hives") -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Id", style="dim")
    table.add_column("Location")
    table.add_column("Last inspected")
    for position, hive in enumerate(hives, start=1):
        name = escape(hive.name) if hive.is_active else f"[dim]{escape(hive.name)} (inactive)[/dim]"
        last = hive.last_inspected_at.strftime("%Y-%m-%d %H:%M") if hive.last_inspected_at else "Never"
        table.add_row(str(position), name, hive.id, escape(hive.location or ""), last)
    return table


def inspections_table(inspections: Sequence[InspectionRecord], title: str = "Inspections") -> Table:
    table = Table(title=title)
    table.add_column("Id", style="dim")
    table.add_column("Hive", style="bold")
    table.add_column("When")
    table.add_column("Observations")
    table.add_column("Confidence", justify="right")
    table.add_column("Confirmed")
    for inspection in inspections:
        table.add_row(
            inspection.id,
            escape(inspection.hive_name),
            inspection.timestamp.strftime("%Y-%m-%d %H:%M"),
            _observation_summary(inspection),
            _confidence_text(inspection.extraction_confidence),
            "[green]yes[/green]" if inspection.confirmed else "no",
        )
    return table


def display_inspection_panel(inspection: InspectionRecord, console: Console) -> None:
    """Show one inspection with its observations grouped by category."""
    lines: list[str] = [
        f"Hive: [bold cyan]{escape(inspection.hive_name)}[/bold cyan] | "
        f"Source: {inspection.source.value} | "
        f"Confirmed: {'yes' if inspection.confirmed else 'no'}",
        f"Date: {inspection.timestamp.isoformat()}",
    ]
    if inspection.extraction_confidence is not None:
        lines.append(
            f"Confidence: {_confidence_text(inspection.extraction_confidence)} "
            f"({confidence_label(inspection.extraction_confidence)})"
        )
    if inspection.recording_session_id:
        lines.append(f"Session: [dim]{inspection.recording_session_id}[/dim]")

    for group, entries in grouped_observations(inspection).items():
        lines.append("")
        lines.append(f"[bold]{_GROUP_TITLES[group]}:[/bold]")
        for label, text in entries:
            lines.append(f"  * {label}: {text}")

    if inspection.notes:
        lines.append("")
        lines.append(f"[bold]Notes:[/bold] {escape(inspection.notes)}")
    if inspection.edited_by:
        lines.append(f"[dim]Edited by {escape(inspection.edited_by)} at {inspection.edited_at}[/dim]")

    console.print(Panel("\n".join(lines), title=inspection.id, border_style="cyan"))


def unresolved_table(
    records: Sequence[ExtractionRecord],
    suggestions: Sequence[Sequence[tuple[Hive, float]]] | None = None,
    title: str = "Unresolved extractions",
) -> Table:
    """Table of records that matched no hive, with optional hive suggestions."""
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column(f"Hive reference ({HIVE_REF_KEY})", style="bold yellow")
    table.add_column("Observations")
    if suggestions is not None:
        table.add_column("Suggested hives")
    for index, record in enumerate(records):
        row = [str(index), escape(record.hive_ref), _observation_summary(record)]
        if suggestions is not None:
            hints = suggestions[index] if index < len(suggestions) else []
            row.append(
                ", ".join(f"{escape(hive.name)} [dim]({hive.id[:8]}, {score:.0f})[/dim]" for hive, score in hints)
                or "[dim]none[/dim]"
            )
        table.add_row(*row)
    return table
