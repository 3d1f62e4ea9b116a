# Copyright (c) Syntropy Systems
"""Tests for the iteration state machine and its gates."""

from __future__ import annotations

import pytest
from conftest import RecordingEnforcer, ScriptedRunner, iteration_outcomes, make_outcome

from cdtbench.config import BenchConfig
from cdtbench.errors import CacheFlushError, GateError, RunTimeoutError
from cdtbench.orchestrator import (
    BenchmarkOrchestrator,
    ProfileState,
    Step,
    require_cache_delivery,
    require_duration,
    require_ok,
    validate_cdt,
)
from cdtbench.report import format_report


class TestValidateCdt:
    """Tests for the dictionary compression gate."""

    def test_wrong_encoding_fails_regardless_of_ratio(self) -> None:
        """Test that a 'br' diff fails even though the sizes look fine."""
        base = make_outcome("load_base", transfer_size=10000, content_encoding="br")
        diff = make_outcome("load_diff", transfer_size=6000, content_encoding="br")

        with pytest.raises(GateError, match="expected 'dcb'") as exc_info:
            _ = validate_cdt(base, diff)

        assert exc_info.value.step == "validate_cdt"
        assert exc_info.value.observed == "br"
        assert exc_info.value.expected == "dcb"

    def test_ratio_below_threshold_fails(self) -> None:
        """Test that a 1.5x ratio is rejected."""
        base = make_outcome("load_base", transfer_size=9000, content_encoding="br")
        diff = make_outcome("load_diff", transfer_size=6000, content_encoding="dcb")

        with pytest.raises(GateError, match="at least 2x") as exc_info:
            _ = validate_cdt(base, diff)

        assert exc_info.value.observed == pytest.approx(1.5)
        assert exc_info.value.expected == 2.0

    def test_ratio_exactly_threshold_passes(self) -> None:
        """Test that exactly 2.0x is accepted."""
        base = make_outcome("load_base", transfer_size=12000, content_encoding="br")
        diff = make_outcome("load_diff", transfer_size=6000, content_encoding="dcb")

        assert validate_cdt(base, diff) == pytest.approx(2.0)

    def test_custom_threshold_and_encoding(self) -> None:
        """Test that the tag and ratio are policy parameters."""
        base = make_outcome("load_base", transfer_size=9000, content_encoding="br")
        diff = make_outcome("load_diff", transfer_size=6000, content_encoding="dcz")

        assert validate_cdt(base, diff, encoding="dcz", min_ratio=1.5) == pytest.approx(1.5)

    def test_missing_diff_size_counts_as_zero(self) -> None:
        """Test that a missing diff size passes the ratio with no ratio reported."""
        base = make_outcome("load_base", transfer_size=5000, content_encoding="br")
        diff = make_outcome("load_diff", transfer_size=None, content_encoding="dcb")

        assert validate_cdt(base, diff) is None

    def test_missing_base_size_fails(self) -> None:
        """Test that a missing base size counts as zero and fails."""
        base = make_outcome("load_base", transfer_size=None, content_encoding="br")
        diff = make_outcome("load_diff", transfer_size=100, content_encoding="dcb")

        with pytest.raises(GateError):
            _ = validate_cdt(base, diff)


class TestStatusGates:
    """Tests for require_ok and require_cache_delivery."""

    def test_require_ok_passes_outcome_through(self) -> None:
        """Test that an ok outcome is returned unchanged."""
        outcome = make_outcome("init")
        assert require_ok(Step.INIT, outcome) is outcome

    def test_require_ok_rejects_error(self) -> None:
        """Test that an error status names the step and the page message."""
        outcome = make_outcome("init", status="error", message="Cache not empty")

        with pytest.raises(GateError, match=r"\[init\].*Cache not empty") as exc_info:
            _ = require_ok(Step.INIT, outcome)

        assert exc_info.value.observed == "error"
        assert exc_info.value.expected == "ok"

    def test_require_ok_rejects_missing_result(self) -> None:
        """Test that a missing result line fails the gate."""
        with pytest.raises(GateError, match="no result"):
            _ = require_ok(Step.LOAD_BASE, None)

    def test_cache_delivery_required(self) -> None:
        """Test that a network delivery fails the cached-load gate."""
        outcome = make_outcome("load_diff", delivery_type="network", duration=3.0)

        with pytest.raises(GateError, match="not served from cache") as exc_info:
            _ = require_cache_delivery(Step.LOAD_DIFF_CACHED, outcome)

        assert exc_info.value.step == "load_diff_cached"
        assert exc_info.value.observed == "network"
        assert exc_info.value.expected == "cache"

    def test_cache_delivery_checks_status_first(self) -> None:
        """Test that an error outcome fails on status even if delivered from cache."""
        outcome = make_outcome("load_base", status="error", delivery_type="cache")

        with pytest.raises(GateError, match="status 'error'"):
            _ = require_cache_delivery(Step.LOAD_BASE_CACHED, outcome)

    def test_require_duration(self) -> None:
        """Test that a cached read time is returned and a missing one rejected."""
        timed = make_outcome("load_diff", delivery_type="cache", duration=4.25)
        untimed = make_outcome("load_diff", delivery_type="cache")

        assert require_duration(Step.LOAD_DIFF_CACHED, timed) == 4.25
        with pytest.raises(GateError, match=r"\[load_diff_cached\] cached load reported no duration"):
            _ = require_duration(Step.LOAD_DIFF_CACHED, untimed)


class TestBenchmarkOrchestrator:
    """Tests for the full iteration protocol."""

    def test_two_clean_iterations(self, bench_config: BenchConfig) -> None:
        """Test that N clean iterations yield N records and N samples per variant."""
        bench_config.iterations = 2
        runner = ScriptedRunner(
            iteration_outcomes(base_cached_ms=12.0, diff_cached_ms=9.0)
            + iteration_outcomes(base_cached_ms=14.0, diff_cached_ms=11.0)
        )
        enforcer = RecordingEnforcer()

        result = BenchmarkOrchestrator(bench_config, runner, enforcer).run()

        assert len(result.records) == 2
        assert [r.iteration for r in result.records] == [1, 2]
        assert result.base_stats.samples == [12.0, 14.0]
        assert result.diff_stats.samples == [9.0, 11.0]
        assert result.base_stats.mean == 13.0
        assert result.diff_stats.mean == 10.0
        assert result.comparison is not None
        assert result.comparison.diff_faster
        assert result.iterations == 2
        assert result.cache_dir == str(bench_config.resolved_cache_dir)

        report = format_report(result)
        assert "COMPARISON" in report
        assert "Difference (base - diff): 3.00 ms" in report

    def test_step_sequence(self, bench_config: BenchConfig) -> None:
        """Test the exact order of cold-state operations and page actions."""
        bench_config.iterations = 1
        runner = ScriptedRunner(iteration_outcomes())
        enforcer = RecordingEnforcer()
        orchestrator = BenchmarkOrchestrator(bench_config, runner, enforcer)

        _ = orchestrator.run()

        assert runner.actions == ["init", "load_base", "load_diff", "load_diff", "load_base"]
        assert enforcer.calls == ["enforce", "flush", "flush", "flush", "flush"]
        assert orchestrator.step == Step.DONE
        assert orchestrator.profile_state == ProfileState.DIFF_CACHED

    def test_record_slots_filled(self, bench_config: BenchConfig) -> None:
        """Test that each outcome lands in its own slot."""
        bench_config.iterations = 1
        outcomes = iteration_outcomes()
        runner = ScriptedRunner(outcomes)

        result = BenchmarkOrchestrator(bench_config, runner, RecordingEnforcer()).run()

        record = result.records[0]
        assert record.init == outcomes[0]
        assert record.load_base == outcomes[1]
        assert record.load_diff == outcomes[2]
        assert record.load_diff_cached == outcomes[3]
        assert record.load_base_cached == outcomes[4]

    def test_flush_failure_at_init_aborts_with_nothing_collected(
        self, bench_config: BenchConfig
    ) -> None:
        """Test that a failed flush on the first step aborts before any record."""
        runner = ScriptedRunner(iteration_outcomes())
        enforcer = RecordingEnforcer(fail_on_call=1)
        orchestrator = BenchmarkOrchestrator(bench_config, runner, enforcer)

        with pytest.raises(CacheFlushError):
            _ = orchestrator.run()

        assert orchestrator.records == []
        assert orchestrator.base_samples == []
        assert orchestrator.diff_samples == []
        assert runner.actions == []

    def test_flush_failure_mid_iteration_aborts(self, bench_config: BenchConfig) -> None:
        """Test that a flush failure before a cached load stops the run."""
        bench_config.iterations = 2
        runner = ScriptedRunner(iteration_outcomes() + iteration_outcomes())
        # Calls 1-5 cover iteration 1; call 9 is the flush before load_diff_cached
        enforcer = RecordingEnforcer(fail_on_call=9)
        orchestrator = BenchmarkOrchestrator(bench_config, runner, enforcer)

        with pytest.raises(CacheFlushError):
            _ = orchestrator.run()

        assert len(orchestrator.records) == 1
        assert len(orchestrator.base_samples) == 1
        assert len(orchestrator.diff_samples) == 1
        assert orchestrator.step == Step.LOAD_DIFF_CACHED

    def test_init_error_aborts(self, bench_config: BenchConfig) -> None:
        """Test that a failed init outcome aborts the run."""
        runner = ScriptedRunner([make_outcome("init", status="error", message="dirty cache")])

        with pytest.raises(GateError, match="dirty cache"):
            _ = BenchmarkOrchestrator(bench_config, runner, RecordingEnforcer()).run()

    def test_cdt_gate_failure_aborts_before_cached_loads(self, bench_config: BenchConfig) -> None:
        """Test that a non-dictionary diff stops the iteration at validation."""
        outcomes = iteration_outcomes()
        outcomes[2] = make_outcome("load_diff", transfer_size=6000, content_encoding="br")
        runner = ScriptedRunner(outcomes)
        orchestrator = BenchmarkOrchestrator(bench_config, runner, RecordingEnforcer())

        with pytest.raises(GateError) as exc_info:
            _ = orchestrator.run()

        assert exc_info.value.step == "validate_cdt"
        assert runner.actions == ["init", "load_base", "load_diff"]
        assert orchestrator.records == []

    def test_cached_diff_from_network_aborts(self, bench_config: BenchConfig) -> None:
        """Test that a cached load served over the network aborts with no samples."""
        outcomes = iteration_outcomes()
        outcomes[3] = make_outcome("load_diff", delivery_type="network", duration=25.0)
        orchestrator = BenchmarkOrchestrator(
            bench_config, ScriptedRunner(outcomes), RecordingEnforcer()
        )

        with pytest.raises(GateError, match="deliveryType=network"):
            _ = orchestrator.run()

        assert orchestrator.diff_samples == []
        assert orchestrator.base_samples == []

    def test_cached_base_from_network_keeps_sets_equal(self, bench_config: BenchConfig) -> None:
        """Test that a failure on the last step leaves both sample sets equal."""
        outcomes = iteration_outcomes()
        outcomes[4] = make_outcome("load_base", delivery_type="network", duration=25.0)
        orchestrator = BenchmarkOrchestrator(
            bench_config, ScriptedRunner(outcomes), RecordingEnforcer()
        )

        with pytest.raises(GateError):
            _ = orchestrator.run()

        assert len(orchestrator.diff_samples) == len(orchestrator.base_samples) == 0

    def test_missing_result_aborts(self, bench_config: BenchConfig) -> None:
        """Test that a page reporting nothing fails the step's gate."""
        outcomes: list[object] = list(iteration_outcomes())
        outcomes[1] = None
        runner = ScriptedRunner(outcomes)  # type: ignore[arg-type]

        with pytest.raises(GateError, match=r"\[load_base\] no result"):
            _ = BenchmarkOrchestrator(bench_config, runner, RecordingEnforcer()).run()

    def test_run_timeout(self, bench_config: BenchConfig) -> None:
        """Test that exceeding the deadline aborts before the next step."""
        bench_config.run_timeout = 10
        ticks = iter([0.0, 1.0, 2.0, 50.0])
        orchestrator = BenchmarkOrchestrator(
            bench_config,
            ScriptedRunner(iteration_outcomes()),
            RecordingEnforcer(),
            clock=lambda: next(ticks),
        )

        with pytest.raises(RunTimeoutError, match="load_diff"):
            _ = orchestrator.run()

    def test_invalid_iteration_count(self, bench_config: BenchConfig) -> None:
        """Test that zero iterations is rejected up front."""
        bench_config.iterations = 0

        with pytest.raises(ValueError, match="at least 1"):
            _ = BenchmarkOrchestrator(bench_config, ScriptedRunner([]), RecordingEnforcer()).run()

    @pytest.mark.parametrize(
        ("slot", "action", "step"),
        [(3, "load_diff", "load_diff_cached"), (4, "load_base", "load_base_cached")],
    )
    def test_missing_duration_aborts(
        self, bench_config: BenchConfig, slot: int, action: str, step: str
    ) -> None:
        """Test that a cached load without a duration aborts with no samples."""
        outcomes = iteration_outcomes()
        outcomes[slot] = make_outcome(action, delivery_type="cache", duration=None)
        orchestrator = BenchmarkOrchestrator(
            bench_config, ScriptedRunner(outcomes), RecordingEnforcer()
        )

        with pytest.raises(GateError, match="no duration") as exc_info:
            _ = orchestrator.run()

        assert exc_info.value.step == step
        assert exc_info.value.observed is None
        assert orchestrator.base_samples == []
        assert orchestrator.diff_samples == []
        assert orchestrator.records == []

    def test_sample_sets_match_iteration_count(self, bench_config: BenchConfig) -> None:
        """Test that N clean iterations give exactly N samples per variant."""
        bench_config.iterations = 3
        runner = ScriptedRunner(iteration_outcomes() * 3)

        result = BenchmarkOrchestrator(bench_config, runner, RecordingEnforcer()).run()

        assert len(result.base_stats.samples) == len(result.diff_stats.samples) == 3
