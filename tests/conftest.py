# Copyright (c) Syntropy Systems
"""Pytest fixtures for cdtbench tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from cdtbench.config import BenchConfig
from cdtbench.errors import CacheFlushError
from cdtbench.models.outcome import ActionOutcome
from cdtbench.session import SessionResult

# Store original cwd at module load time
_original_cwd = Path.cwd()


def make_outcome(action: str, status: str = "ok", **fields: object) -> ActionOutcome:
    """Build an ActionOutcome from snake_case keyword fields."""
    return ActionOutcome(action=action, status=status, **fields)


def iteration_outcomes(
    base_cached_ms: float = 12.0,
    diff_cached_ms: float = 9.0,
) -> list[ActionOutcome]:
    """Outcomes for one clean iteration, in call order."""
    return [
        make_outcome("init"),
        make_outcome(
            "load_base",
            transfer_size=10000,
            content_encoding="br",
            delivery_type="network",
            duration=40.0,
        ),
        make_outcome(
            "load_diff",
            transfer_size=4000,
            content_encoding="dcb",
            delivery_type="network",
            duration=30.0,
        ),
        make_outcome(
            "load_diff",
            transfer_size=None,
            content_encoding="dcb",
            delivery_type="cache",
            duration=diff_cached_ms,
        ),
        make_outcome(
            "load_base",
            transfer_size=None,
            content_encoding="br",
            delivery_type="cache",
            duration=base_cached_ms,
        ),
    ]


class ScriptedRunner:
    """Runner returning pre-baked outcomes in call order."""

    def __init__(self, outcomes: list[ActionOutcome | None]) -> None:
        self.outcomes = list(outcomes)
        self.actions: list[str] = []

    def run(self, action: str) -> SessionResult:
        self.actions.append(action)
        if not self.outcomes:
            msg = f"No scripted outcome left for {action}"
            raise AssertionError(msg)
        return SessionResult(outcome=self.outcomes.pop(0), console_lines=[])


class RecordingEnforcer:
    """Enforcer that records calls and can fail on the nth operation."""

    def __init__(self, fail_on_call: int | None = None) -> None:
        self.calls: list[str] = []
        self.fail_on_call = fail_on_call

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            msg = "Failed to flush filesystem cache. Benchmark aborted."
            raise CacheFlushError(msg)

    def enforce(self) -> None:
        self._record("enforce")

    def flush(self) -> None:
        self._record("flush")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def bench_config(temp_dir: Path) -> BenchConfig:
    """A config whose profile lives in the temporary directory."""
    return BenchConfig(
        profile_dir=temp_dir / "profile",
        settle_ms=0,
        flush_settle_ms=0,
        run_timeout=0,
    )


@pytest.fixture
def bench_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary cdtbench project directory and chdir into it."""
    project_dir = temp_dir / ".cdtbench"
    project_dir.mkdir()
    (project_dir / "results").mkdir()

    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
    """Remove environment overrides and point HOME at an empty directory."""
    for name in ("CDT_CACHE_DIR", "CDT_BASE_URL", "CDT_ITERATIONS"):
        monkeypatch.delenv(name, raising=False)
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
