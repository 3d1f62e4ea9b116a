# Copyright (c) Syntropy Systems
"""Exceptions that terminate a benchmark run."""
from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for every condition that aborts a run."""


class CacheFlushError(BenchmarkError):
    """The OS page cache flush could not be confirmed."""


class ProfileResetError(BenchmarkError):
    """The browser profile or cache directory could not be cleared."""


class SessionError(BenchmarkError):
    """The browser session failed to launch or navigate."""

    action: str

    def __init__(self, action: str, message: str) -> None:
        self.action = action
        super().__init__(f"Session for action '{action}' failed: {message}")


class GateError(BenchmarkError):
    """A validation gate rejected the outcome of a step.

    Carries the step name plus the observed and expected values so the
    caller can print what went wrong without re-deriving it.
    """

    step: str
    observed: object
    expected: object

    def __init__(
        self,
        step: str,
        message: str,
        *,
        observed: object = None,
        expected: object = None,
    ) -> None:
        self.step = step
        self.observed = observed
        self.expected = expected
        super().__init__(f"[{step}] {message}")


class RunTimeoutError(BenchmarkError):
    """The overall run deadline passed before all iterations finished."""
