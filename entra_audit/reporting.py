"""
Terminal rendering and CSV export of audit results.
"""

import csv
import logging
from typing import List, Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from entra_audit.models import ResultRow, RunCounters

logger = logging.getLogger(__name__)

console = Console()


def _cell(value) -> Text:
    # Directory values are literal text, never console markup
    if isinstance(value, bool):
        return Text("True" if value else "False")
    return Text("" if value is None else str(value))


def render_results(rows: Sequence[ResultRow], columns: List[str], title: str,
                   out: Optional[Console] = None) -> Table:
    """Print every result row as a table; the header is printed even with no rows."""
    out = out or console
    table = Table(title=title)
    for column in columns:
        table.add_column(column, style="cyan" if column == columns[0] else None)

    for row in rows:
        data = row.as_dict()
        table.add_row(*[_cell(data.get(column)) for column in columns])

    out.print(table)
    if not rows:
        out.print("[yellow]No matching results.[/yellow]")
    return table


def render_progress(processed: int, counters: RunCounters, out: Optional[Console] = None) -> None:
    """Print a one-line progress update."""
    out = out or console
    out.print(f"Processed {processed} record(s): "
              f"[red]{counters.error_count}[/red] error(s), "
              f"[green]{counters.result_count}[/green] result(s)")


def render_summary(counters: RunCounters, result_label: str = "Results",
                   out: Optional[Console] = None) -> None:
    """Print the end-of-run counters."""
    out = out or console
    out.print("\n[bold]Audit Summary[/bold]")
    out.print(f"Processed: [green]{counters.total_processed}[/green]")
    out.print(f"Errors: [red]{counters.error_count}[/red]")
    for kind, count in sorted(counters.errors_by_kind.items()):
        out.print(f"  • {kind}: {count}")
    out.print(f"{result_label}: [magenta]{counters.result_count}[/magenta]")


def export_csv(rows: Sequence[ResultRow], path: str, columns: List[str]) -> bool:
    """
    Write result rows to a CSV file, one row per result.

    A failed write is logged as a warning rather than raised.

    Returns:
        True if the file was written
    """
    try:
        with open(path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=columns)
            writer.writeheader()
            for row in rows:
                writer.writerow(row.as_dict())
    except (OSError, csv.Error) as e:
        logger.warning(f"Could not export results to {path}: {e}")
        return False

    logger.info(f"Exported {len(rows)} result(s) to {path}")
    return True
