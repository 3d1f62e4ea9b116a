# Copyright (c) Syntropy Systems
"""Saving and loading benchmark results as JSON."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from cdtbench.models.outcome import BenchmarkResult

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def save_result(result: BenchmarkResult, path: Path) -> Path:
    """Write a result to path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    _ = path.write_text(result.model_dump_json(by_alias=True, indent=2))
    return path


def load_result(path: Path) -> BenchmarkResult:
    """Read a result written by save_result."""
    return BenchmarkResult.model_validate_json(path.read_text())


def result_path(results_dir: Path, result: BenchmarkResult) -> Path:
    """Default location of a result inside a results directory."""
    return results_dir / f"{result.run_id}.json"


def list_results(results_dir: Path) -> list[BenchmarkResult]:
    """Load every result in a directory, newest first.

    Files that cannot be read or parsed are skipped.
    """
    if not results_dir.is_dir():
        return []

    results: list[BenchmarkResult] = []
    for path in results_dir.glob("*.json"):
        try:
            results.append(load_result(path))
        except (OSError, ValidationError):
            logger.debug("Skipping unreadable result %s", path, exc_info=True)

    results.sort(key=lambda r: r.started_at, reverse=True)
    return results
