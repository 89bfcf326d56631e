"""Check and import command implementations."""

import logging
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from shelf_sync.core.book_parser import ParseResult, parse_catalog
from shelf_sync.core.reconciler import Reconciler
from shelf_sync.models.sync import DifferenceKind, VersionCompareResult

log = logging.getLogger(__name__)

KIND_STYLES = {
    DifferenceKind.ADDED: "green",
    DifferenceKind.REMOVED: "red",
    DifferenceKind.MODIFIED: "yellow",
    DifferenceKind.REORDERED: "blue",
    DifferenceKind.STRUCTURE_CHANGED: "magenta",
    DifferenceKind.VALIDATION_WARNING: "dim",
}


def short_value(value, width: int = 40) -> str:
    if value is None:
        return "—"
    if isinstance(value, dict):
        value = value.get("title", "")
    elif isinstance(value, list):
        value = ", ".join(item.get("title", "") for item in value)
    text = str(value).replace("\n", " ")
    return text[: width - 3] + "..." if len(text) > width else text


def build_differences_table(result: VersionCompareResult) -> Table:
    table = Table(
        title="Differences",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Kind", width=18)
    table.add_column("Book", style="white", max_width=30)
    table.add_column("Field", style="dim")
    table.add_column("File", max_width=40)
    table.add_column("Cache", max_width=40)

    for diff in result.differences:
        style = KIND_STYLES[diff.kind]
        table.add_row(
            f"[{style}]{diff.kind.value}[/]",
            escape(diff.record_title or "—"),
            diff.field,
            escape(short_value(diff.old_value)),
            escape(short_value(diff.new_value)),
        )
    return table


def display_compare_result(result: VersionCompareResult, console: Console) -> None:
    console.print()
    verdict = "[bold red]Conflict[/]" if result.has_conflict else "[green]In sync[/]"
    file_time = (
        result.file_modified_time.strftime("%Y-%m-%d %H:%M:%S")
        if result.file_modified_time
        else "Unknown"
    )
    console.print(
        Panel(
            f"[dim]Verdict:[/] {verdict}\n"
            f"[dim]Books in cache:[/] {result.cache_count}\n"
            f"[dim]Books in file:[/] {result.file_count}\n"
            f"[dim]File modified:[/] {file_time}\n"
            f"[dim]Fingerprints:[/] {result.cache_fingerprint} / {result.file_fingerprint}\n"
            f"[dim]Warnings:[/] {len(result.warnings)}",
            title="Version Check",
            border_style="red" if result.has_conflict else "green",
        )
    )

    if result.differences:
        console.print()
        console.print(build_differences_table(result))

    console.print()
    if result.has_conflict:
        console.print(
            "[dim]Resolve with[/] [cyan]shelf-sync push[/] [dim](keep cache) or[/] "
            "[cyan]shelf-sync pull[/] [dim](use file)[/]"
        )
        console.print()


async def execute_check(reconciler: Reconciler, console: Console) -> VersionCompareResult | None:
    """Execute the check command."""
    result = await reconciler.compare_versions()
    if result is None:
        console.print("[yellow]Nothing to compare:[/] no linked file, or the file is missing or blank")
        return None

    display_compare_result(result, console)
    return result


def display_parse_result(path: Path, result: ParseResult, console: Console) -> None:
    console.print()
    strategy = result.strategy.value if result.strategy else "none"

    if not result.records:
        console.print(f"[yellow]No books found in {escape(str(path))}[/] [dim](strategy: {strategy})[/]")
        return

    table = Table(
        title=f"{escape(path.name)}: {len(result.records)} book(s), strategy {strategy}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="white", max_width=30)
    table.add_column("Author", max_width=20)
    table.add_column("Published", style="dim")
    table.add_column("Code", style="dim")
    table.add_column("ID", style="dim")

    for index, book in enumerate(result.records, 1):
        table.add_row(
            str(index),
            escape(book.title),
            escape(book.author or "—"),
            escape(book.publish_date or "—"),
            escape(book.extract_code or "—"),
            book.id,
        )
    console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/] {escape(warning)}")
    if result.structure.has_custom_content:
        console.print("[dim]The page footer carries custom scripts or styles.[/]")
    console.print()


def execute_import(path: Path, console: Console) -> ParseResult:
    """Parse a catalog page without touching the cache."""
    content = path.read_text(encoding="utf-8")
    result = parse_catalog(content)
    display_parse_result(path, result, console)
    return result
