# Copyright (c) Syntropy Systems
"""cdtbench doctor command."""
from __future__ import annotations

import os
from pathlib import Path

import typer
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright
from rich.console import Console

from cdtbench.cli.common import load_config_or_exit
from cdtbench.coldstate import ProfileStore, flush_page_cache
from cdtbench.config import find_config_file
from cdtbench.errors import CacheFlushError, ProfileResetError

console = Console()

OK = "[green]✓[/green]"
FAIL = "[red]✗[/red]"
WARN = "[yellow]⚠[/yellow]"
INFO = "[dim]•[/dim]"


def _writable_location(path: Path) -> bool:
    """Whether path exists and is writable, or could be created."""
    current = path
    while not current.exists():
        if current == current.parent:
            return False
        current = current.parent
    return current.is_dir() and os.access(current, os.W_OK)


def _bundled_browser_path() -> Path | None:
    try:
        with sync_playwright() as p:
            return Path(p.chromium.executable_path)
    except PlaywrightError:
        return None


def doctor(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: .cdtbench/config.yaml)",
    ),
) -> None:
    """Check that the benchmark can run on this machine.

    Verifies:
    - configuration file
    - OS page cache flush works without a password prompt
    - browser executable
    - profile and cache directories are writable
    """
    issues: list[str] = []
    warnings: list[str] = []

    found = config_file or find_config_file()
    config = load_config_or_exit(config_file)
    if found is not None:
        console.print(f"{OK} Config: {found}")
    else:
        console.print(f"{INFO} No config file, using defaults")

    # Page cache flush
    try:
        flush_page_cache(config.flush_command, 0)
        console.print(f"{OK} Page cache flush: {' '.join(config.flush_command)}")
    except CacheFlushError as e:
        console.print(f"{FAIL} Page cache flush failed: {e}")
        issues.append("Cannot flush the page cache (passwordless sudo needed?)")

    # Browser
    if config.executable_path is not None:
        if config.executable_path.exists():
            console.print(f"{OK} Browser: {config.executable_path}")
        else:
            console.print(f"{FAIL} Browser not found: {config.executable_path}")
            issues.append("Configured browser executable missing")
    else:
        bundled = _bundled_browser_path()
        if bundled is not None and bundled.exists():
            console.print(f"{OK} Browser: {bundled} (bundled Chromium)")
        else:
            console.print(f"{FAIL} Bundled Chromium not installed")
            console.print("  Run [bold]playwright install chromium[/bold]")
            issues.append("Bundled Chromium missing")

    # Directories
    for label, path in (
        ("Profile dir", config.profile_dir),
        ("Cache dir", config.resolved_cache_dir),
    ):
        if _writable_location(path):
            console.print(f"{OK} {label}: {path}")
        else:
            console.print(f"{FAIL} {label} not writable: {path}")
            issues.append(f"{label} not writable")

    try:
        ProfileStore.from_config(config).check_cache_dir()
    except ProfileResetError as e:
        console.print(f"{FAIL} {e}")
        issues.append("Unsafe cache dir")

    if config.run_timeout <= 0:
        console.print(f"{WARN} run_timeout disabled")
        warnings.append("No overall run timeout")

    # Summary
    console.print()
    if issues:
        console.print(f"[red]Found {len(issues)} issue(s)[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        raise typer.Exit(1)
    if warnings:
        console.print(f"[yellow]Found {len(warnings)} warning(s)[/yellow]")
        for warning in warnings:
            console.print(f"  - {warning}")
    else:
        console.print("[green]All checks passed[/green]")
