# Copyright (c) Syntropy Systems
"""Pydantic models for action outcomes, iterations and run results."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import BenchBaseModel, FrozenBenchModel

ActionName = Literal["init", "load_base", "load_diff"]
OutcomeStatus = Literal["ok", "error"]

ACTION_INIT: ActionName = "init"
ACTION_LOAD_BASE: ActionName = "load_base"
ACTION_LOAD_DIFF: ActionName = "load_diff"

DELIVERY_CACHE = "cache"


class ActionOutcome(FrozenBenchModel):
    """Result reported by the test page for one navigation."""

    action: str
    status: OutcomeStatus
    message: str | None = None

    # Resource timing descriptors, absent on init and error outcomes
    resource_type: str | None = None
    http_status: int | None = None
    content_encoding: str | None = None
    url: str | None = None
    transfer_size: int | None = None  # None when served from cache
    encoded_body_size: int | None = None
    decoded_body_size: int | None = None
    duration: float | None = None  # ms
    download_time: float | None = None
    delivery_type: str | None = None
    protocol: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the page reported success."""
        return self.status == "ok"


class IterationRecord(BenchBaseModel):
    """Outcomes collected during one iteration of the protocol."""

    iteration: int
    init: ActionOutcome | None = None
    load_base: ActionOutcome | None = None
    load_diff: ActionOutcome | None = None
    load_diff_cached: ActionOutcome | None = None
    load_base_cached: ActionOutcome | None = None


class StatsSummary(BenchBaseModel):
    """Descriptive statistics for one variant's cache-read samples."""

    resource_type: str
    samples: list[float] = Field(default_factory=list)
    mean: float = 0.0
    median: float = 0.0
    minimum: float = Field(default=0.0, alias="min")
    maximum: float = Field(default=0.0, alias="max")
    std_dev: float = 0.0


class Comparison(BenchBaseModel):
    """Difference between the base and diff cache-read means."""

    difference_ms: float  # base - diff
    percent: float  # relative to base
    diff_faster: bool


class BenchmarkResult(BenchBaseModel):
    """A completed benchmark run."""

    run_id: str
    started_at: str
    finished_at: str
    base_url: str
    cache_dir: str
    iterations: int
    records: list[IterationRecord] = Field(default_factory=list)
    base_stats: StatsSummary
    diff_stats: StatsSummary
    comparison: Comparison | None = None
