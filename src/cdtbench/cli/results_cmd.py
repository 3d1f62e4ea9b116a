# Copyright (c) Syntropy Systems
"""Commands for saved results: report and history."""
from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from cdtbench.config import get_results_dir
from cdtbench.report import build_summary_table, format_report
from cdtbench.results import list_results, load_result

console = Console()


def report(
    result_file: Path = typer.Argument(
        ...,
        help="Result JSON written by 'cdtbench run'",
        exists=True,
        dir_okay=False,
    ),
    table: bool = typer.Option(
        False,
        "--table",
        "-t",
        help="Also print the summary table",
    ),
) -> None:
    """Print the report of a saved benchmark result."""
    try:
        result = load_result(result_file)
    except (OSError, ValidationError) as e:
        console.print(f"[red]Cannot read result:[/red] {e}")
        raise typer.Exit(1) from e

    typer.echo(format_report(result))
    if table:
        console.print(build_summary_table(result))


def history(
    limit: int = typer.Option(20, "--limit", "-l", help="Max results to show"),
) -> None:
    """List benchmark results recorded in this project."""
    results_dir = get_results_dir()
    if results_dir is None:
        console.print("[red]Error:[/red] No .cdtbench directory found. Run 'cdtbench init' first.")
        raise typer.Exit(1)

    results = list_results(results_dir)[:limit]
    if not results:
        console.print("[dim]No results recorded yet[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Run", style="cyan")
    table.add_column("Started")
    table.add_column("Iter", justify="right")
    table.add_column("Base mean (ms)", justify="right")
    table.add_column("Diff mean (ms)", justify="right")
    table.add_column("Diff vs base", justify="right")
    table.add_column("Cache dir", style="dim")

    for result in results:
        comparison = result.comparison
        if comparison is None:
            delta = "-"
        else:
            # Positive difference means the diff variant read faster
            style = "green" if comparison.diff_faster else "yellow"
            delta = f"[{style}]{-comparison.percent:+.1f}%[/{style}]"
        table.add_row(
            result.run_id,
            result.started_at,
            str(result.iterations),
            f"{result.base_stats.mean:.2f}",
            f"{result.diff_stats.mean:.2f}",
            delta,
            result.cache_dir,
        )

    console.print(table)
