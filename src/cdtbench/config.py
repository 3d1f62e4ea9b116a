# Copyright (c) Syntropy Systems
"""Configuration management for cdtbench."""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import cast

import yaml

PROJECT_DIR_NAME = ".cdtbench"
CONFIG_FILE_NAME = "config.yaml"

DEFAULT_FLUSH_COMMAND = [
    "sudo",
    "-n",
    "sh",
    "-c",
    "sync; echo 3 > /proc/sys/vm/drop_caches",
]


def _default_profile_dir() -> Path:
    return Path(tempfile.gettempdir()) / "cdt-test-profile"


@dataclass
class BenchConfig:
    """Configuration for a benchmark run."""

    # Server hosting the test page and the base/diff resources
    base_url: str = "http://localhost:8080"
    test_page: str = "/cdt-test.html"

    iterations: int = 2

    # Browser profile; the disk cache goes to cache_dir or <profile_dir>/Cache
    profile_dir: Path = field(default_factory=_default_profile_dir)
    cache_dir: Path | None = None

    # None uses the Chromium bundled with Playwright
    executable_path: Path | None = None
    headless: bool = True
    no_sandbox: bool = True
    extra_args: list[str] = field(default_factory=list)

    # Waits (milliseconds)
    navigation_timeout_ms: int = 30000
    settle_ms: int = 2000
    flush_settle_ms: int = 500

    flush_command: list[str] = field(
        default_factory=lambda: list(DEFAULT_FLUSH_COMMAND)
    )

    # Dictionary transport validation
    dictionary_encoding: str = "dcb"
    min_size_ratio: float = 2.0

    # Overall deadline for one run in seconds, 0 disables it
    run_timeout: float = 300.0

    @property
    def resolved_cache_dir(self) -> Path:
        """Cache directory the browser writes to."""
        if self.cache_dir is not None:
            return self.cache_dir
        return self.profile_dir / "Cache"

    def with_overrides(self, **changes: object) -> BenchConfig:
        """Return a copy with the non-None keyword values applied."""
        applied = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **applied)


_PATH_FIELDS = {"profile_dir", "cache_dir", "executable_path"}
_STR_FIELDS = {"base_url", "test_page", "dictionary_encoding"}
_BOOL_FIELDS = {"headless", "no_sandbox"}
_INT_FIELDS = {"iterations", "navigation_timeout_ms", "settle_ms", "flush_settle_ms"}
_FLOAT_FIELDS = {"min_size_ratio", "run_timeout"}
_LIST_FIELDS = {"extra_args", "flush_command"}


def _apply_values(config: BenchConfig, data: dict[str, object]) -> None:
    """Copy recognised, well-typed values from a YAML mapping onto config.

    Unknown keys and values of the wrong type are ignored.
    """
    known = {f.name for f in fields(config)}
    for key, value in data.items():
        if key not in known or value is None:
            continue
        if key in _PATH_FIELDS and isinstance(value, str):
            setattr(config, key, Path(value).expanduser())
        elif key in _STR_FIELDS and isinstance(value, str):
            setattr(config, key, value)
        elif key in _BOOL_FIELDS and isinstance(value, bool):
            setattr(config, key, value)
        elif (
            key in _INT_FIELDS
            and isinstance(value, (int, float))
            and not isinstance(value, bool)
        ):
            setattr(config, key, int(value))
        elif (
            key in _FLOAT_FIELDS
            and isinstance(value, (int, float))
            and not isinstance(value, bool)
        ):
            setattr(config, key, float(value))
        elif key in _LIST_FIELDS and isinstance(value, list):
            setattr(config, key, [str(item) for item in cast("list[object]", value)])


def _apply_env(config: BenchConfig) -> None:
    cache_dir = os.environ.get("CDT_CACHE_DIR")
    if cache_dir:
        config.cache_dir = Path(cache_dir).expanduser()

    base_url = os.environ.get("CDT_BASE_URL")
    if base_url:
        config.base_url = base_url

    iterations = os.environ.get("CDT_ITERATIONS")
    if iterations:
        try:
            config.iterations = int(iterations)
        except ValueError as e:
            msg = f"CDT_ITERATIONS must be an integer, got {iterations!r}"
            raise ValueError(msg) from e


def find_project_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .cdtbench directory by walking up from start_path.

    Returns None if no .cdtbench directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while True:
        project_dir = current / PROJECT_DIR_NAME
        if project_dir.is_dir():
            return project_dir
        if current == current.parent:
            return None
        current = current.parent


def get_global_config_dir() -> Path:
    """Get the global cdtbench config directory (~/.cdtbench)."""
    return Path.home() / PROJECT_DIR_NAME


def find_config_file(project_dir: Path | None = None) -> Path | None:
    """Locate the config file that load_config would read."""
    if project_dir is None:
        project_dir = find_project_dir()

    if project_dir is not None:
        candidate = project_dir / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    global_config = get_global_config_dir() / CONFIG_FILE_NAME
    if global_config.exists():
        return global_config

    return None


def load_config(
    config_path: Path | None = None,
    *,
    use_env: bool = True,
) -> BenchConfig:
    """Load configuration.

    Looks for config in:
    1. Provided config_path
    2. Nearest .cdtbench/config.yaml walking up
    3. ~/.cdtbench/config.yaml
    4. Defaults

    CDT_CACHE_DIR, CDT_BASE_URL and CDT_ITERATIONS override file values.
    Raises ValueError for an iteration count below 1.
    """
    config = BenchConfig()

    if config_path is None:
        config_path = find_config_file()

    if config_path is not None:
        if not config_path.exists():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
        if not isinstance(data, dict):
            msg = f"Config file must contain a mapping: {config_path}"
            raise ValueError(msg)
        _apply_values(config, data)

    if use_env:
        _apply_env(config)

    if config.iterations < 1:
        msg = f"iterations must be at least 1, got {config.iterations}"
        raise ValueError(msg)

    return config


def default_config_values() -> dict[str, object]:
    """Values written by `cdtbench init`."""
    config = BenchConfig()
    return {
        "base_url": config.base_url,
        "iterations": config.iterations,
        "profile_dir": str(config.profile_dir),
        "headless": config.headless,
        "no_sandbox": config.no_sandbox,
        "settle_ms": config.settle_ms,
        "flush_settle_ms": config.flush_settle_ms,
        "dictionary_encoding": config.dictionary_encoding,
        "min_size_ratio": config.min_size_ratio,
        "run_timeout": config.run_timeout,
    }


def get_results_dir(project_dir: Path | None = None) -> Path | None:
    """Get the results directory of the current project, if any."""
    if project_dir is None:
        project_dir = find_project_dir()
    if project_dir is None:
        return None
    return project_dir / "results"
