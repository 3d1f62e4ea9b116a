# Copyright (c) Syntropy Systems
"""Browser session runner built on Playwright persistent contexts."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright
from typing_extensions import Self

from cdtbench.errors import SessionError
from cdtbench.parser import parse_result

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from playwright.sync_api import ConsoleMessage, Playwright

    from cdtbench.coldstate import ProfileStore
    from cdtbench.config import BenchConfig
    from cdtbench.models.outcome import ActionOutcome

logger = logging.getLogger(__name__)

EXPERIMENTAL_FEATURES_ARG = "--enable-experimental-web-platform-features"
DICTIONARY_FEATURES_ARG = (
    "--enable-features=CompressionDictionaryTransportBackend,"
    "CompressionDictionaryTransport"
)


class _PlaywrightStarter(Protocol):
    def start(self) -> Playwright:
        ...


@dataclass
class SessionResult:
    """Parsed outcome of one navigation plus the raw console lines."""

    outcome: ActionOutcome | None
    console_lines: list[str] = field(default_factory=list)


class ActionRunner(Protocol):
    """Anything that can perform one page action and report its outcome."""

    def run(self, action: str) -> SessionResult:
        ...


def _close_quietly(resource: object, label: str) -> None:
    """Close a page or context, logging and discarding any failure."""
    if resource is None:
        return
    try:
        resource.close()  # type: ignore[attr-defined]
    except Exception:
        logger.debug("%s close failed", label, exc_info=True)


class SessionRunner:
    """Runs each action in a fresh browser bound to a persistent profile.

    The Playwright driver lives for the runner's lifetime; every call to
    run() launches a new persistent context against the same profile
    directory and closes it before returning.
    """

    config: BenchConfig
    profile: ProfileStore
    _factory: Callable[[], _PlaywrightStarter]
    _playwright: Playwright | None

    def __init__(
        self,
        config: BenchConfig,
        profile: ProfileStore,
        playwright_factory: Callable[[], _PlaywrightStarter] = sync_playwright,
    ) -> None:
        self.config = config
        self.profile = profile
        self._factory = playwright_factory
        self._playwright = None

    def __enter__(self) -> Self:
        _ = self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()

    def start(self) -> Playwright:
        """Start the Playwright driver if it is not running yet."""
        if self._playwright is None:
            self._playwright = self._factory().start()
        return self._playwright

    def stop(self) -> None:
        """Stop the Playwright driver."""
        if self._playwright is None:
            return
        try:
            self._playwright.stop()
        except Exception:
            logger.debug("Playwright stop failed", exc_info=True)
        self._playwright = None

    def browser_args(self) -> list[str]:
        """Command line flags passed to the browser."""
        args = [
            EXPERIMENTAL_FEATURES_ARG,
            DICTIONARY_FEATURES_ARG,
            f"--disk-cache-dir={self.profile.cache_dir}",
        ]
        if self.config.no_sandbox:
            args.append("--no-sandbox")
        args.extend(self.config.extra_args)
        return args

    def action_url(self, action: str) -> str:
        """URL of the test page for an action."""
        base = self.config.base_url.rstrip("/")
        page = self.config.test_page
        if not page.startswith("/"):
            page = f"/{page}"
        return f"{base}{page}?action={action}"

    def run(self, action: str) -> SessionResult:
        """Launch a browser, load the test page for action and parse its result."""
        playwright = self.start()

        context = None
        page = None
        console_lines: list[str] = []

        def on_console(message: ConsoleMessage) -> None:
            console_lines.append(message.text)

        executable = self.config.executable_path
        try:
            context = playwright.chromium.launch_persistent_context(
                str(self.profile.profile_dir),
                headless=self.config.headless,
                executable_path=str(executable) if executable else None,
                args=self.browser_args(),
            )
            logger.debug("Launched browser with cache dir %s", self.profile.cache_dir)

            page = context.new_page()
            page.on("console", on_console)

            _ = page.goto(
                self.action_url(action),
                wait_until="networkidle",
                timeout=self.config.navigation_timeout_ms,
            )
            page.wait_for_timeout(self.config.settle_ms)
        except PlaywrightError as e:
            raise SessionError(action, e.message) from e
        finally:
            _close_quietly(page, "Page")
            _close_quietly(context, "Browser context")

        outcome = parse_result(console_lines)
        if outcome is None:
            logger.warning(
                "No result line for action '%s' (%d console lines)",
                action,
                len(console_lines),
            )
        return SessionResult(outcome=outcome, console_lines=console_lines)
