# Copyright (c) Syntropy Systems
"""Cold-cache enforcement: profile reset and OS page cache flush."""
from __future__ import annotations

import logging
import re
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from cdtbench.errors import CacheFlushError, ProfileResetError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from cdtbench.config import BenchConfig

logger = logging.getLogger(__name__)

FLUSH_TIMEOUT_SECONDS = 30.0

# Top-level entries Chromium creates under --disk-cache-dir
CHROMIUM_CACHE_NAMES = frozenset({
    "Cache",
    "Cache_Data",
    "Code Cache",
    "DawnCache",
    "DawnGraphiteCache",
    "DawnWebGPUCache",
    "Default",
    "GPUCache",
    "GrShaderCache",
    "GraphiteDawnCache",
    "ShaderCache",
    "index",
    "index-dir",
})
# Simple and blockfile backend entry files
_CACHE_FILE_RE = re.compile(r"^(?:[0-9a-f]{16}_(?:[0-9]|s)|data_[0-9]+|f_[0-9a-f]{6})$")


def is_cache_entry(name: str) -> bool:
    """Whether a directory entry name belongs to the browser's disk cache."""
    return name in CHROMIUM_CACHE_NAMES or _CACHE_FILE_RE.match(name) is not None


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


@dataclass(frozen=True)
class ProfileStore:
    """Handle to the browser profile and its disk cache directory.

    The profile persists between sessions so that entries cached by one
    session are visible to the next; only reset() clears it.
    """

    profile_dir: Path
    cache_dir: Path

    @classmethod
    def from_config(cls, config: BenchConfig) -> ProfileStore:
        """Build the handle for a configuration."""
        return cls(profile_dir=config.profile_dir, cache_dir=config.resolved_cache_dir)

    @property
    def cache_is_external(self) -> bool:
        """Whether the cache lives outside the profile directory."""
        try:
            _ = self.cache_dir.relative_to(self.profile_dir)
        except ValueError:
            return True
        return False

    def check_cache_dir(self) -> None:
        """Refuse an external cache dir that contains the profile or home.

        Raises ProfileResetError for the profile's own parents, the home
        directory and any of its parents.
        """
        if not self.cache_is_external:
            return
        cache = self.cache_dir.expanduser().resolve()
        profile = self.profile_dir.expanduser().resolve()
        home = Path.home().resolve()
        if cache in profile.parents:
            msg = f"Cache dir {self.cache_dir} contains the profile dir {self.profile_dir}"
            raise ProfileResetError(msg)
        if cache == home or cache in home.parents:
            msg = (
                f"Refusing to use {self.cache_dir} as the cache dir: "
                "it contains the home directory"
            )
            raise ProfileResetError(msg)

    def reset(self) -> None:
        """Delete and recreate the profile and cache directories.

        An external cache dir may be a mount point holding other files
        (e.g. lost+found), so only browser cache entries are removed from it.
        Any filesystem failure is raised as ProfileResetError.
        """
        self.check_cache_dir()
        try:
            if self.profile_dir.exists():
                shutil.rmtree(self.profile_dir)

            if self.cache_is_external and self.cache_dir.exists():
                for child in self.cache_dir.iterdir():
                    if is_cache_entry(child.name):
                        _remove(child)
                    else:
                        logger.debug("Leaving non-cache entry %s", child)

            self.profile_dir.mkdir(parents=True, exist_ok=True)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to clear profile: %s", e)
            msg = f"Failed to clear browser profile ({e}). Benchmark aborted."
            raise ProfileResetError(msg) from e
        logger.info("Profile directory cleared: %s", self.profile_dir)


def flush_page_cache(
    command: Sequence[str],
    settle_seconds: float,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Drop the OS page cache and wait for the flush to settle.

    Raises CacheFlushError if the command cannot be run or fails. There is
    no retry: measurements on a warm page cache are worthless.
    """
    argv = list(command)
    try:
        result = subprocess.run(  # noqa: S603
            argv,
            capture_output=True,
            text=True,
            timeout=FLUSH_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.error("Failed to flush filesystem cache: %s", e)
        msg = f"Failed to flush filesystem cache ({e}). Benchmark aborted."
        raise CacheFlushError(msg) from e

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        logger.error(
            "Cache flush command exited with %d: %s", result.returncode, stderr
        )
        msg = (
            f"Failed to flush filesystem cache: '{' '.join(argv)}' exited with "
            f"{result.returncode}"
        )
        if stderr:
            msg += f" ({stderr})"
        raise CacheFlushError(msg + ". Benchmark aborted.")

    sleep(settle_seconds)
    logger.info("Filesystem cache flushed")


class ColdStateEnforcer:
    """Puts the profile and the OS page cache into a known cold state."""

    profile: ProfileStore
    flush_command: list[str]
    settle_seconds: float

    def __init__(
        self,
        profile: ProfileStore,
        flush_command: Sequence[str],
        settle_seconds: float = 0.5,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.profile = profile
        self.flush_command = list(flush_command)
        self.settle_seconds = settle_seconds
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: BenchConfig, profile: ProfileStore) -> ColdStateEnforcer:
        """Build an enforcer using the configured flush command and settle time."""
        return cls(
            profile,
            config.flush_command,
            settle_seconds=config.flush_settle_ms / 1000,
        )

    def flush(self) -> None:
        """Flush the OS page cache only."""
        flush_page_cache(self.flush_command, self.settle_seconds, sleep=self._sleep)

    def enforce(self) -> None:
        """Reset the profile, then flush the OS page cache."""
        self.profile.reset()
        self.flush()
