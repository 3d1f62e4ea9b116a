# Copyright (c) Syntropy Systems
"""Helpers shared by cdtbench commands."""
from __future__ import annotations

from typing import TYPE_CHECKING

import typer
from rich.console import Console

from cdtbench.config import load_config

if TYPE_CHECKING:
    from pathlib import Path

    from cdtbench.config import BenchConfig

console = Console()


def load_config_or_exit(config_path: Path | None) -> BenchConfig:
    """Load configuration, printing the problem and exiting 1 on failure."""
    try:
        return load_config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from e
