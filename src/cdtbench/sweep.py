# Copyright (c) Syntropy Systems
"""Sweep the benchmark across storage I/O delays."""
from __future__ import annotations

import csv
import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from cdtbench.errors import BenchmarkError
from cdtbench.orchestrator import run_benchmark

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from cdtbench.config import BenchConfig
    from cdtbench.models.outcome import BenchmarkResult

logger = logging.getLogger(__name__)

CSV_HEADER = ["Delay_ms", "Throughput", "DCB_Read_ms", "Brotli_Read_ms", "Gap_ms"]
DEFAULT_SETUP_COMMAND = "./setup-throttled-io.sh {delay}"
DEFAULT_MOUNT_POINT = Path.home() / "throttled_io"
DEFAULT_CONTROL_CACHE_DIR = Path.home() / ".cache" / "cdt-test-control"
SETUP_TIMEOUT_SECONDS = 300
CONTROL_LABEL = "0 (control)"

_THROUGHPUT_RE = re.compile(r"[0-9.]+ [KMG]B/s")


class SetupError(RuntimeError):
    """The throttled storage setup command failed."""


@dataclass
class SweepRow:
    """Cache read timings measured at one I/O delay."""

    delay_label: str
    throughput: str
    dcb_read_ms: float | None = None
    brotli_read_ms: float | None = None

    @property
    def gap_ms(self) -> float | None:
        """Dictionary read time minus plain read time."""
        if self.dcb_read_ms is None or self.brotli_read_ms is None:
            return None
        return self.dcb_read_ms - self.brotli_read_ms

    def csv_values(self) -> list[str]:
        """Row values in CSV_HEADER order."""
        return [
            self.delay_label,
            self.throughput,
            _csv_number(self.dcb_read_ms),
            _csv_number(self.brotli_read_ms),
            _csv_number(self.gap_ms),
        ]


def _csv_number(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:.2f}"


def parse_throughput(output: str) -> str:
    """Return the last `<n> [KMG]B/s` figure in dd-style output, or N/A."""
    matches = _THROUGHPUT_RE.findall(output)
    if not matches:
        return "N/A"
    return matches[-1]


def iter_delays(start: int, end: int, increment: int) -> Iterator[int]:
    """Delays from start to end inclusive, stepping by increment."""
    if increment <= 0:
        msg = f"increment must be positive, got {increment}"
        raise ValueError(msg)
    delay = start
    while delay <= end:
        yield delay
        delay += increment


def row_from_result(
    delay_label: str, throughput: str, result: BenchmarkResult | None
) -> SweepRow:
    """Build a sweep row from a benchmark result (None means it failed)."""
    row = SweepRow(delay_label=delay_label, throughput=throughput)
    if result is None:
        return row
    if result.diff_stats.samples:
        row.dcb_read_ms = result.diff_stats.mean
    if result.base_stats.samples:
        row.brotli_read_ms = result.base_stats.mean
    return row


def run_setup_command(template: str, delay: int) -> str:
    """Run the throttling setup command for a delay and return its output."""
    argv = shlex.split(template.format(delay=delay))
    try:
        result = subprocess.run(  # noqa: S603
            argv,
            capture_output=True,
            text=True,
            timeout=SETUP_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        msg = f"Setup command failed for {delay}ms: {e}"
        raise SetupError(msg) from e

    output = (result.stdout or "") + (result.stderr or "")
    if result.returncode != 0:
        msg = f"Setup command exited with {result.returncode} for {delay}ms"
        raise SetupError(msg)
    return output


class DelaySweep:
    """Runs a control benchmark and one benchmark per I/O delay."""

    config: BenchConfig
    setup_command: str
    mount_point: Path
    control_cache_dir: Path
    rows: list[SweepRow]

    def __init__(
        self,
        config: BenchConfig,
        *,
        setup_command: str = DEFAULT_SETUP_COMMAND,
        mount_point: Path = DEFAULT_MOUNT_POINT,
        control_cache_dir: Path = DEFAULT_CONTROL_CACHE_DIR,
        bench: Callable[[BenchConfig], BenchmarkResult] | None = None,
        setup: Callable[[str, int], str] | None = None,
    ) -> None:
        self.config = config
        self.setup_command = setup_command
        self.mount_point = mount_point
        self.control_cache_dir = control_cache_dir
        self._bench = bench or run_benchmark
        self._setup = setup or run_setup_command
        self.rows = []

    def _benchmark(self, cache_dir: Path) -> BenchmarkResult:
        return self._bench(self.config.with_overrides(cache_dir=cache_dir))

    def run_control(self) -> SweepRow:
        """Benchmark without throttling. A failure only yields an empty row."""
        logger.info("Running control benchmark without I/O throttling")
        result: BenchmarkResult | None = None
        try:
            result = self._benchmark(self.control_cache_dir)
        except BenchmarkError as e:
            logger.warning("Control benchmark failed, continuing: %s", e)
        row = row_from_result(CONTROL_LABEL, "unthrottled", result)
        self.rows.append(row)
        return row

    def run_delay(self, delay: int) -> SweepRow | None:
        """Set up throttling for delay and benchmark on the throttled mount.

        Returns None when either the setup or the benchmark fails.
        """
        logger.info("Setting up throttled I/O with %dms delay", delay)
        try:
            output = self._setup(self.setup_command, delay)
        except SetupError as e:
            logger.error("%s", e)
            return None

        throughput = parse_throughput(output)
        logger.info("Measured throughput: %s", throughput)

        try:
            result = self._benchmark(self.mount_point)
        except BenchmarkError as e:
            logger.error("Benchmark failed for delay=%dms: %s", delay, e)
            return None

        row = row_from_result(str(delay), throughput, result)
        logger.info(
            "Results: DCB=%s ms, Brotli=%s ms, Gap=%s ms",
            _csv_number(row.dcb_read_ms),
            _csv_number(row.brotli_read_ms),
            _csv_number(row.gap_ms),
        )
        self.rows.append(row)
        return row

    def run(
        self,
        start: int,
        end: int,
        increment: int,
        csv_path: Path | None = None,
    ) -> list[SweepRow]:
        """Run the control and every delay, appending rows to csv_path as they land."""
        delays = list(iter_delays(start, end, increment))
        if csv_path is not None:
            write_csv_header(csv_path)

        control = self.run_control()
        if csv_path is not None:
            append_csv_row(csv_path, control)

        for count, delay in enumerate(delays, 1):
            logger.info("Delay %d of %d: %dms", count, len(delays), delay)
            row = self.run_delay(delay)
            if row is not None and csv_path is not None:
                append_csv_row(csv_path, row)

        return self.rows


def write_csv_header(path: Path) -> None:
    """Create (or truncate) the sweep CSV with its header row."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        csv.writer(f).writerow(CSV_HEADER)


def append_csv_row(path: Path, row: SweepRow) -> None:
    """Append one sweep row to the CSV."""
    with path.open("a", newline="") as f:
        csv.writer(f).writerow(row.csv_values())