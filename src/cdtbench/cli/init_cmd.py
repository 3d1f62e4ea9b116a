# Copyright (c) Syntropy Systems
"""cdtbench init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from cdtbench.config import CONFIG_FILE_NAME, PROJECT_DIR_NAME, default_config_values

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new cdtbench project.

    Creates a .cdtbench directory with a default configuration and a
    results directory.
    """
    target = path.resolve()
    project_dir = target / PROJECT_DIR_NAME

    if project_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {project_dir}")
        return

    project_dir.mkdir(parents=True)
    results_dir = project_dir / "results"
    results_dir.mkdir()

    config_path = project_dir / CONFIG_FILE_NAME
    with config_path.open("w") as f:
        yaml.safe_dump(default_config_values(), f, default_flow_style=False)

    console.print(f"[green]Initialized cdtbench project:[/green] {project_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]results:[/dim] {results_dir}")
