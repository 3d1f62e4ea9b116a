# Copyright (c) Syntropy Systems
"""Text and table rendering of benchmark results."""
from __future__ import annotations

from typing import TYPE_CHECKING

from rich.table import Table

from cdtbench.models.outcome import Comparison

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cdtbench.models.outcome import (
        ActionOutcome,
        BenchmarkResult,
        IterationRecord,
        StatsSummary,
    )
    from cdtbench.sweep import SweepRow

WIDTH = 80


def compare_means(base: StatsSummary, diff: StatsSummary) -> Comparison | None:
    """Compare the variant means, or None unless both are nonzero."""
    if base.mean == 0 or diff.mean == 0:
        return None
    difference = base.mean - diff.mean
    return Comparison(
        difference_ms=difference,
        percent=difference / base.mean * 100,
        diff_faster=difference > 0,
    )


def _ms(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.2f}"


def _stats_block(title: str, stats: StatsSummary) -> list[str]:
    return [
        title,
        f"  Samples: {len(stats.samples)}",
        f"  Mean:    {stats.mean:.2f} ms",
        f"  Median:  {stats.median:.2f} ms",
        f"  Min:     {stats.minimum:.2f} ms",
        f"  Max:     {stats.maximum:.2f} ms",
        f"  StdDev:  {stats.std_dev:.2f} ms",
        "",
    ]


def _network_line(label: str, outcome: ActionOutcome) -> str:
    return (
        f"  {label} (network): transferSize={outcome.transfer_size}, "
        f"duration={_ms(outcome.duration)}ms, encoding={outcome.content_encoding}"
    )


def _cache_line(label: str, outcome: ActionOutcome) -> str:
    return (
        f"  {label} (cache):   duration={_ms(outcome.duration)}ms, "
        f"deliveryType={outcome.delivery_type}"
    )


def _iteration_block(record: IterationRecord) -> list[str]:
    lines = ["", f"Iteration {record.iteration}:"]
    if record.load_base:
        lines.append(_network_line("Base", record.load_base))
    if record.load_diff:
        lines.append(_network_line("Diff", record.load_diff))
    if record.load_diff_cached:
        lines.append(_cache_line("Diff", record.load_diff_cached))
    if record.load_base_cached:
        lines.append(_cache_line("Base", record.load_base_cached))
    return lines


def format_report(result: BenchmarkResult) -> str:
    """Render the human-readable comparison report for a run."""
    lines: list[str] = [
        "",
        "=" * WIDTH,
        "CDT CACHE READ BENCHMARK REPORT",
        "=" * WIDTH,
        "",
        f"Total iterations: {len(result.records)}",
        f"Cache directory: {result.cache_dir}",
        "",
        "-" * WIDTH,
        "CACHE READ TIMING",
        "-" * WIDTH,
        "",
    ]

    lines.extend(_stats_block("Base file (brotli) cache read times:", result.base_stats))
    lines.extend(
        _stats_block(
            "Diff file (dictionary brotli) cache read times:", result.diff_stats
        )
    )

    comparison = result.comparison or compare_means(result.base_stats, result.diff_stats)
    if comparison is not None:
        verdict = "faster" if comparison.diff_faster else "slower"
        lines.extend([
            "-" * WIDTH,
            "COMPARISON",
            "-" * WIDTH,
            f"  Difference (base - diff): {comparison.difference_ms:.2f} ms",
            f"  Percentage difference: {comparison.percent:.2f}%",
            f"  Diff is {verdict} than base by "
            f"{abs(comparison.difference_ms):.2f} ms",
        ])

    lines.extend(["", "-" * WIDTH, "DETAILED RESULTS PER ITERATION", "-" * WIDTH])
    for record in result.records:
        lines.extend(_iteration_block(record))

    lines.extend(["", "=" * WIDTH])
    return "\n".join(lines)


def build_summary_table(result: BenchmarkResult) -> Table:
    """Rich table summarising both variants side by side."""
    table = Table(show_header=True, header_style="bold", title="Cache read (ms)")
    table.add_column("", style="dim")
    table.add_column("base", style="cyan")
    table.add_column("diff", style="cyan")

    base = result.base_stats
    diff = result.diff_stats
    table.add_row("Samples", str(len(base.samples)), str(len(diff.samples)))
    table.add_row("Mean", f"{base.mean:.2f}", f"{diff.mean:.2f}")
    table.add_row("Median", f"{base.median:.2f}", f"{diff.median:.2f}")
    table.add_row("Min", f"{base.minimum:.2f}", f"{diff.minimum:.2f}")
    table.add_row("Max", f"{base.maximum:.2f}", f"{diff.maximum:.2f}")
    table.add_row("StdDev", f"{base.std_dev:.2f}", f"{diff.std_dev:.2f}")
    return table


def format_sweep_report(
    rows: Sequence[SweepRow],
    *,
    start: int,
    end: int,
    increment: int,
    generated_at: str,
    csv_path: str | None = None,
    report_path: str | None = None,
) -> str:
    """Render the delay sweep results table."""
    lines: list[str] = [
        "=" * WIDTH,
        "CDT CACHE READ PERFORMANCE SWEEP REPORT".center(WIDTH).rstrip(),
        "=" * WIDTH,
        "",
        f"Test Date: {generated_at}",
        f"Delay Range: {start}ms to {end}ms (increment: {increment}ms)",
        "",
        "-" * WIDTH,
        "RESULTS TABLE".center(WIDTH).rstrip(),
        "-" * WIDTH,
        "",
        f"{'IO Delay':<15} {'Throughput':<15} {'DCB Read':<15} "
        f"{'Brotli Read':<15} {'Gap':<10}".rstrip(),
        f"{'(per read)':<15} {'':<15} {'Time':<15} {'Time':<15}".rstrip(),
        "-" * WIDTH,
    ]

    for row in rows:
        lines.append(
            f"{row.delay_label:<15} {row.throughput:<15} "
            f"{_with_unit(row.dcb_read_ms):<15} {_with_unit(row.brotli_read_ms):<15} "
            f"{_with_unit(row.gap_ms):<10}".rstrip()
        )

    lines.extend([
        "",
        "-" * WIDTH,
        "ANALYSIS".center(WIDTH).rstrip(),
        "-" * WIDTH,
        "",
        "DCB (dictionary compressed brotli) decodes against the base file.",
        "Brotli is plain brotli compression without a dictionary.",
        "Gap = DCB Read Time - Brotli Read Time",
        "",
        "Positive gap: DCB is slower (the dictionary is read from the disk cache)",
        "Negative gap: DCB is faster",
        "",
        "=" * WIDTH,
    ])
    if csv_path:
        lines.append(f"Results saved to: {csv_path}")
    if report_path:
        lines.append(f"Report saved to: {report_path}")
    if csv_path or report_path:
        lines.append("=" * WIDTH)
    return "\n".join(lines)


def _with_unit(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:.2f} ms"
