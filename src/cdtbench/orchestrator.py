# Copyright (c) Syntropy Systems
"""Iteration state machine driving the cache read benchmark.

Each iteration walks a fixed sequence of steps:

    init -> load_base -> load_diff -> validate_cdt
         -> load_diff_cached -> load_base_cached

Every step that touches the network or the cache is preceded by an OS
page cache flush (init additionally wipes the browser profile). Every step
ends in a gate; a failed gate aborts the whole run, so a run either
completes all iterations or produces no statistics at all.
"""
from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from cdtbench.coldstate import ColdStateEnforcer, ProfileStore
from cdtbench.errors import GateError, RunTimeoutError
from cdtbench.models.outcome import (
    ACTION_INIT,
    ACTION_LOAD_BASE,
    ACTION_LOAD_DIFF,
    DELIVERY_CACHE,
    BenchmarkResult,
    IterationRecord,
)
from cdtbench.report import compare_means
from cdtbench.session import SessionRunner
from cdtbench.stats import compute_stats

if TYPE_CHECKING:
    from collections.abc import Callable

    from cdtbench.config import BenchConfig
    from cdtbench.models.outcome import ActionOutcome
    from cdtbench.session import ActionRunner

logger = logging.getLogger(__name__)


class Step(str, Enum):
    """States of the per-iteration protocol."""

    INIT = "init"
    LOAD_BASE = "load_base"
    LOAD_DIFF = "load_diff"
    VALIDATE_CDT = "validate_cdt"
    LOAD_DIFF_CACHED = "load_diff_cached"
    LOAD_BASE_CACHED = "load_base_cached"
    DONE = "done"


class ProfileState(str, Enum):
    """What the shared browser profile is known to contain."""

    UNKNOWN = "unknown"
    CLEAN = "clean"
    BASE_CACHED = "base_cached"
    DIFF_CACHED = "diff_cached"


class Enforcer(Protocol):
    """Cold-state operations the orchestrator needs."""

    def enforce(self) -> None:
        ...

    def flush(self) -> None:
        ...


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_run_id() -> str:
    """Create a sortable, unique run id."""
    now = datetime.now(timezone.utc)
    return f"{now.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"


def require_ok(step: Step, outcome: ActionOutcome | None) -> ActionOutcome:
    """Gate: the page must have reported status ok."""
    if outcome is None:
        msg = "no result reported by the test page"
        raise GateError(step.value, msg, observed=None, expected="ok")
    if not outcome.ok:
        msg = f"status '{outcome.status}': {outcome.message or 'no message'}"
        raise GateError(step.value, msg, observed=outcome.status, expected="ok")
    return outcome


def validate_cdt(
    base: ActionOutcome,
    diff: ActionOutcome,
    encoding: str = "dcb",
    min_ratio: float = 2.0,
) -> float | None:
    """Gate: the diff must have been served with dictionary compression.

    Checks the diff's content encoding first, then that the base transfer
    is at least min_ratio times the diff transfer. Missing sizes count as
    zero. Returns the observed ratio, or None when the diff size is zero.
    """
    step = Step.VALIDATE_CDT.value
    if diff.content_encoding != encoding:
        msg = (
            f"diff content encoding is '{diff.content_encoding}', expected "
            f"'{encoding}'; dictionary compression is not in effect"
        )
        raise GateError(step, msg, observed=diff.content_encoding, expected=encoding)

    base_size = base.transfer_size or 0
    diff_size = diff.transfer_size or 0
    if base_size < diff_size * min_ratio:
        msg = (
            f"base transfer size ({base_size}) should be at least {min_ratio:g}x "
            f"diff transfer size ({diff_size})"
        )
        raise GateError(
            step,
            msg,
            observed=base_size / diff_size,
            expected=min_ratio,
        )

    if diff_size == 0:
        return None
    return base_size / diff_size


def require_cache_delivery(step: Step, outcome: ActionOutcome | None) -> ActionOutcome:
    """Gate: status ok and the resource was delivered from the browser cache."""
    outcome = require_ok(step, outcome)
    if outcome.delivery_type != DELIVERY_CACHE:
        msg = (
            f"resource was not served from cache, deliveryType="
            f"{outcome.delivery_type}"
        )
        raise GateError(
            step.value,
            msg,
            observed=outcome.delivery_type,
            expected=DELIVERY_CACHE,
        )
    return outcome


def require_duration(step: Step, outcome: ActionOutcome) -> float:
    """Gate: a cached load must report its read time."""
    if outcome.duration is None:
        msg = "cached load reported no duration"
        raise GateError(step.value, msg, observed=None, expected="duration in ms")
    return outcome.duration


class BenchmarkOrchestrator:
    """Runs the configured number of iterations and aggregates the samples.

    Records and samples are kept on the instance, so after an aborted run
    they show exactly what had been accepted before the failure.
    """

    config: BenchConfig
    runner: ActionRunner
    enforcer: Enforcer
    cache_dir: str
    records: list[IterationRecord]
    base_samples: list[float]
    diff_samples: list[float]
    step: Step
    profile_state: ProfileState

    def __init__(
        self,
        config: BenchConfig,
        runner: ActionRunner,
        enforcer: Enforcer,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.runner = runner
        self.enforcer = enforcer
        self.cache_dir = str(config.resolved_cache_dir)
        self._clock = clock
        self._deadline: float | None = None

        self.records = []
        self.base_samples = []
        self.diff_samples = []
        self.step = Step.INIT
        self.profile_state = ProfileState.UNKNOWN

    def _enter(self, step: Step) -> None:
        if self._deadline is not None and self._clock() > self._deadline:
            msg = (
                f"Run exceeded its {self.config.run_timeout:g}s timeout before "
                f"step '{step.value}'"
            )
            raise RunTimeoutError(msg)
        self.step = step

    def _set_profile_state(self, state: ProfileState) -> None:
        logger.debug("Profile state: %s -> %s", self.profile_state.value, state.value)
        self.profile_state = state

    def _load(self, action: str) -> ActionOutcome | None:
        self.enforcer.flush()
        return self.runner.run(action).outcome

    def run_iteration(self, iteration: int) -> IterationRecord:
        """Execute all steps of one iteration.

        Returns the completed record. Both samples are appended together,
        only once both cached loads have passed their gates, so the two
        sample sets always have the same length.
        """
        record = IterationRecord(iteration=iteration)

        logger.info("Step 1: Clear cache and verify clean state")
        self._enter(Step.INIT)
        self.enforcer.enforce()
        self._set_profile_state(ProfileState.CLEAN)
        record.init = self.runner.run(ACTION_INIT).outcome
        _ = require_ok(Step.INIT, record.init)

        logger.info("Step 2: Load base file")
        self._enter(Step.LOAD_BASE)
        record.load_base = self._load(ACTION_LOAD_BASE)
        base = require_ok(Step.LOAD_BASE, record.load_base)
        self._set_profile_state(ProfileState.BASE_CACHED)
        logger.info(
            "Base loaded: transferSize=%s, encoding=%s",
            base.transfer_size,
            base.content_encoding,
        )

        logger.info("Step 3: Load diff file")
        self._enter(Step.LOAD_DIFF)
        record.load_diff = self._load(ACTION_LOAD_DIFF)
        diff = require_ok(Step.LOAD_DIFF, record.load_diff)
        self._set_profile_state(ProfileState.DIFF_CACHED)
        logger.info(
            "Diff loaded: transferSize=%s, encoding=%s",
            diff.transfer_size,
            diff.content_encoding,
        )

        self._enter(Step.VALIDATE_CDT)
        ratio = validate_cdt(
            base,
            diff,
            encoding=self.config.dictionary_encoding,
            min_ratio=self.config.min_size_ratio,
        )
        logger.info(
            "CDT verified: encoding=%s, base=%s, diff=%s, ratio=%s",
            diff.content_encoding,
            base.transfer_size,
            diff.transfer_size,
            f"{ratio:.1f}x" if ratio is not None else "n/a",
        )

        logger.info("Step 4: Load diff again, expecting the disk cache")
        self._enter(Step.LOAD_DIFF_CACHED)
        record.load_diff_cached = self._load(ACTION_LOAD_DIFF)
        diff_cached = require_cache_delivery(
            Step.LOAD_DIFF_CACHED, record.load_diff_cached
        )

        logger.info("Step 5: Load base again, expecting the disk cache")
        self._enter(Step.LOAD_BASE_CACHED)
        record.load_base_cached = self._load(ACTION_LOAD_BASE)
        base_cached = require_cache_delivery(
            Step.LOAD_BASE_CACHED, record.load_base_cached
        )

        diff_ms = require_duration(Step.LOAD_DIFF_CACHED, diff_cached)
        base_ms = require_duration(Step.LOAD_BASE_CACHED, base_cached)
        self.diff_samples.append(diff_ms)
        self.base_samples.append(base_ms)
        logger.info("Cache reads: diff=%.2f ms, base=%.2f ms", diff_ms, base_ms)

        self.step = Step.DONE
        return record

    def run(self) -> BenchmarkResult:
        """Run every iteration, then reduce the samples into a result.

        Any BenchmarkError propagates before statistics are computed.
        """
        iterations = self.config.iterations
        if iterations < 1:
            msg = f"iterations must be at least 1, got {iterations}"
            raise ValueError(msg)

        run_id = new_run_id()
        started_at = utcnow()
        if self.config.run_timeout > 0:
            self._deadline = self._clock() + self.config.run_timeout

        logger.info("Using cache dir: %s", self.cache_dir)
        for i in range(1, iterations + 1):
            logger.info("--- Iteration %d/%d ---", i, iterations)
            record = self.run_iteration(i)
            self.records.append(record)

        base_stats = compute_stats(self.base_samples, "base")
        diff_stats = compute_stats(self.diff_samples, "diff")

        return BenchmarkResult(
            run_id=run_id,
            started_at=started_at,
            finished_at=utcnow(),
            base_url=self.config.base_url,
            cache_dir=self.cache_dir,
            iterations=iterations,
            records=self.records,
            base_stats=base_stats,
            diff_stats=diff_stats,
            comparison=compare_means(base_stats, diff_stats),
        )


def run_benchmark(config: BenchConfig) -> BenchmarkResult:
    """Wire the profile, enforcer and browser together and run the benchmark."""
    profile = ProfileStore.from_config(config)
    enforcer = ColdStateEnforcer.from_config(config, profile)
    with SessionRunner(config, profile) as runner:
        orchestrator = BenchmarkOrchestrator(config, runner, enforcer)
        return orchestrator.run()
