# Copyright (c) Syntropy Systems
"""Descriptive statistics over cache-read samples."""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

from cdtbench.models.outcome import StatsSummary

if TYPE_CHECKING:
    from collections.abc import Sequence


def compute_stats(samples: Sequence[float], resource_type: str) -> StatsSummary:
    """Reduce a sample sequence to mean, median, min, max and std dev.

    The standard deviation is the population one (divides by N): the
    samples are every read this run made, not a draw from a larger set.
    An empty sequence yields an all-zero summary.
    """
    values = [float(v) for v in samples]
    if not values:
        return StatsSummary(resource_type=resource_type)

    count = len(values)
    ordered = sorted(values)
    mean = math.fsum(values) / count

    mid = count // 2
    if count % 2 == 0:
        median = (ordered[mid - 1] + ordered[mid]) / 2
    else:
        median = ordered[mid]

    variance = math.fsum((v - mean) ** 2 for v in values) / count

    return StatsSummary(
        resource_type=resource_type,
        samples=values,
        mean=mean,
        median=median,
        minimum=ordered[0],
        maximum=ordered[-1],
        std_dev=math.sqrt(variance),
    )
