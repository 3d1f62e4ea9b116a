# Copyright (c) Syntropy Systems
"""cdtbench run command."""
from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from cdtbench.cli.common import load_config_or_exit
from cdtbench.cli.logging_setup import setup_logging
from cdtbench.config import get_results_dir
from cdtbench.errors import BenchmarkError
from cdtbench.orchestrator import run_benchmark
from cdtbench.report import build_summary_table, format_report
from cdtbench.results import result_path, save_result

console = Console()


def run(
    iterations: int | None = typer.Option(
        None,
        "--iterations",
        "-n",
        min=1,
        help="Number of iterations (default from config)",
    ),
    base_url: str | None = typer.Option(
        None,
        "--base-url",
        "-u",
        help="Server hosting cdt-test.html",
    ),
    cache_dir: Path | None = typer.Option(
        None,
        "--cache-dir",
        help="Browser disk cache directory, e.g. a throttled mount",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: .cdtbench/config.yaml)",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the result as JSON to this path",
    ),
    report_file: Path | None = typer.Option(
        None,
        "--report-file",
        help="Also write the text report to this path",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Debug logging",
    ),
) -> None:
    """Run the cache read benchmark.

    Every iteration wipes the profile, loads base and diff over the
    network, verifies dictionary compression, then reads both back from
    the disk cache with the OS page cache flushed before each load.

    Example:
        CDT_CACHE_DIR=~/throttled_io cdtbench run -n 5

    """
    setup_logging(verbose)
    config = load_config_or_exit(config_file).with_overrides(
        iterations=iterations,
        base_url=base_url,
        cache_dir=cache_dir.expanduser() if cache_dir else None,
    )

    console.print(f"[dim]Using cache dir:[/dim] {config.resolved_cache_dir}")

    try:
        result = run_benchmark(config)
    except BenchmarkError as e:
        console.print(f"[red]FATAL:[/red] {e}")
        console.print("[red]Benchmark aborted, no statistics reported.[/red]")
        raise typer.Exit(1) from e

    report = format_report(result)
    typer.echo(report)
    console.print(build_summary_table(result))

    if report_file is not None:
        report_file.parent.mkdir(parents=True, exist_ok=True)
        _ = report_file.write_text(report + "\n")
        console.print(f"[dim]Report saved to:[/dim] {report_file}")

    if output is not None:
        _ = save_result(result, output)
        console.print(f"[dim]Result saved to:[/dim] {output}")

    results_dir = get_results_dir()
    if results_dir is not None:
        saved = save_result(result, result_path(results_dir, result))
        console.print(f"[dim]Run {result.run_id} recorded in:[/dim] {saved}")
