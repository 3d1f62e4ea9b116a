# Copyright (c) Syntropy Systems
"""cdtbench sweep command."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from cdtbench.cli.common import load_config_or_exit
from cdtbench.cli.logging_setup import setup_logging
from cdtbench.report import format_sweep_report
from cdtbench.sweep import (
    DEFAULT_CONTROL_CACHE_DIR,
    DEFAULT_MOUNT_POINT,
    DEFAULT_SETUP_COMMAND,
    DelaySweep,
)

console = Console()


def sweep(
    start: int = typer.Option(1, "--start", help="First I/O delay in ms"),
    end: int = typer.Option(50, "--end", help="Last I/O delay in ms (inclusive)"),
    increment: int = typer.Option(10, "--increment", min=1, help="Delay step in ms"),
    setup_command: str = typer.Option(
        DEFAULT_SETUP_COMMAND,
        "--setup-command",
        help="Command that mounts throttled storage; {delay} is replaced",
    ),
    mount_point: Path = typer.Option(
        DEFAULT_MOUNT_POINT,
        "--mount-point",
        help="Throttled mount used as the browser cache dir",
    ),
    control_cache_dir: Path = typer.Option(
        DEFAULT_CONTROL_CACHE_DIR,
        "--control-cache-dir",
        help="Unthrottled cache dir for the control run",
    ),
    csv_path: Path | None = typer.Option(
        None,
        "--csv",
        help="CSV output (default: cdt-perf-results-<timestamp>.csv)",
    ),
    report_file: Path | None = typer.Option(
        None,
        "--report-file",
        help="Report output (default: cdt-perf-report-<timestamp>.txt)",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: .cdtbench/config.yaml)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Benchmark cache reads across a range of storage I/O delays.

    Runs an unthrottled control first, then for each delay runs the setup
    command and benchmarks with the cache on the throttled mount. A failed
    delay is logged and skipped.

    Example:
        cdtbench sweep --start 1 --end 50 --increment 10

    """
    setup_logging(verbose)
    config = load_config_or_exit(config_file)

    if end < start:
        console.print(f"[red]Error:[/red] end ({end}) is below start ({start})")
        raise typer.Exit(1)

    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    csv_path = csv_path or Path(f"cdt-perf-results-{stamp}.csv")
    report_file = report_file or Path(f"cdt-perf-report-{stamp}.txt")

    console.print("\n[bold cyan]CDT performance sweep[/bold cyan]")
    console.print(f"  Delays: {start}ms to {end}ms (increment {increment}ms)")
    console.print(f"  Results file: {csv_path}\n")

    runner = DelaySweep(
        config,
        setup_command=setup_command,
        mount_point=mount_point.expanduser(),
        control_cache_dir=control_cache_dir.expanduser(),
    )
    rows = runner.run(start, end, increment, csv_path=csv_path)

    table = Table(show_header=True, header_style="bold")
    table.add_column("IO delay")
    table.add_column("Throughput")
    table.add_column("DCB read (ms)", justify="right")
    table.add_column("Brotli read (ms)", justify="right")
    table.add_column("Gap (ms)", justify="right")
    for row in rows:
        table.add_row(*row.csv_values())
    console.print(table)

    report = format_sweep_report(
        rows,
        start=start,
        end=end,
        increment=increment,
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        csv_path=str(csv_path),
        report_path=str(report_file),
    )
    report_file.parent.mkdir(parents=True, exist_ok=True)
    _ = report_file.write_text(report + "\n")
    console.print(f"[green]Sweep complete.[/green] Report saved to {report_file}")
