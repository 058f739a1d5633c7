# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session management for SERP Map.

Manages Chromium lifecycle, one isolated context per session, and the
navigation/scroll primitives the extractors need. Navigation never raises:
failures come back as a ``NavigationResult`` with ``ok=False``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

from playwright.async_api import (
    Browser,
    BrowserContext,
    Dialog,
    Frame,
    Page,
    Playwright,
    Request,
    async_playwright,
)

from .errors import BrowserError
from .i18n import DEFAULT_HL, accept_language_for_hl

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/125.0.0.0 Safari/537.36"
)
DEFAULT_REFERER = "https://www.google.com/"
ALLOWED_URL_SCHEMES = ("http://", "https://")


@dataclass
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = True
    hl: str = DEFAULT_HL
    viewport_width: int = 1366
    viewport_height: int = 900
    user_agent: str = DEFAULT_USER_AGENT
    referer: str = DEFAULT_REFERER

    @property
    def accept_language(self) -> str:
        return accept_language_for_hl(self.hl)


@dataclass(frozen=True, slots=True)
class NavigationResult:
    """Outcome of one navigation. ``ok`` requires a response below 400."""

    ok: bool
    http_status: int | None = None
    error: str | None = None


_BROWSER_DEAD_PATTERNS = (
    "target closed",
    "target page",
    "browser has been closed",
    "connection closed",
    "browser disconnected",
)


def _is_browser_dead_error(exc: BaseException) -> bool:
    """Detect browser crash/disconnect errors."""
    msg = str(exc).lower()
    return any(p in msg for p in _BROWSER_DEAD_PATTERNS)


# ── Chromium auto-install ─────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds


async def _auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found, running 'playwright install chromium'")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
        if proc.returncode == 0:
            logger.info("Chromium installed successfully")
            return True
        logger.warning(
            "playwright install chromium failed (rc=%d): %s",
            proc.returncode,
            stderr.decode(errors="replace")[:500],
        )
        return False
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except Exception:
        logger.warning("Chromium auto-install failed", exc_info=True)
        return False


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    """Chromium launch arguments shared by ``BrowserSession`` and ``BrowserPool``."""
    return [
        "--disable-blink-features=AutomationControlled",
        f"--lang={config.hl}",
        "--disable-extensions",
        "--disable-dev-shm-usage",
        "--disable-background-networking",
        "--disable-sync",
        "--disable-gpu",
        "--no-first-run",
        "--deny-permission-prompts",
        "--disable-breakpad",
        "--no-pings",
        "--noerrdialogs",
    ]


async def launch_chromium(playwright: Playwright, config: BrowserConfig) -> Browser:
    """Launch Chromium, auto-installing on the first 'executable not found' error."""
    args = chromium_launch_args(config)
    try:
        return await playwright.chromium.launch(headless=config.headless, args=args)
    except Exception as exc:
        if "executable doesn't exist" not in str(exc).lower():
            raise
        if await _auto_install_chromium():
            return await playwright.chromium.launch(headless=config.headless, args=args)
        raise BrowserError(
            "Chromium is not installed and auto-install failed. Please run: playwright install chromium"
        ) from exc


class BrowserSession:
    """One isolated browser context + page."""

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._owns_browser: bool = True  # False when created via start_from_pool()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started. Use async with or call start().")
        return self._page

    @property
    def main_frame(self) -> Frame:
        return self.page.main_frame

    @property
    def frames(self) -> list[Frame]:
        """All frames in discovery order (main frame first)."""
        return list(self.page.frames)

    async def _create_context(self, browser: Browser) -> None:
        self._context = await browser.new_context(
            viewport={
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
            locale=self.config.hl,
            user_agent=self.config.user_agent,
            service_workers="block",
            permissions=[],
            accept_downloads=False,
            extra_http_headers={
                "Accept-Language": self.config.accept_language,
                "Referer": self.config.referer,
            },
        )
        self._context.on("dialog", self._on_dialog)
        self._page = await self._context.new_page()

    async def start(self) -> None:
        """Launch browser and create the page."""
        self._playwright = await async_playwright().start()
        try:
            self._browser = await launch_chromium(self._playwright, self.config)
            await self._create_context(self._browser)
        except BaseException:
            await self.stop()
            raise
        logger.info("Browser session started (headless=%s, hl=%s)", self.config.headless, self.config.hl)

    async def start_from_pool(self, browser: Browser) -> None:
        """Start using a shared browser; stop() then closes the context only."""
        self._owns_browser = False
        self._browser = browser
        await self._create_context(browser)
        logger.debug("Browser session started from pool")

    async def stop(self) -> None:
        """Close context (and browser when owned). Safe on a crashed browser."""
        if self._context:
            with suppress(Exception):
                await self._context.close()
            self._context = None
        self._page = None

        if self._owns_browser:
            if self._browser:
                with suppress(Exception):
                    await self._browser.close()
                self._browser = None
            if self._playwright:
                with suppress(Exception):
                    await self._playwright.stop()
                self._playwright = None
        else:
            self._browser = None

        logger.debug("Browser session stopped (owned_browser=%s)", self._owns_browser)

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    async def _on_dialog(self, dialog: Dialog) -> None:
        """Dismiss JS dialogs so they never block extraction."""
        logger.debug("JS dialog dismissed: type=%s message=%.100s", dialog.type, dialog.message)
        with suppress(Exception):
            await dialog.dismiss()

    def on_request(self, handler: Callable[[Request], None]) -> None:
        """Subscribe to every request issued by the page (before navigation)."""
        self.page.on("request", handler)

    async def navigate(self, url: str, timeout_ms: int = 60000) -> NavigationResult:
        """Navigate and wait for the load event. Never raises."""
        if not url.lower().startswith(ALLOWED_URL_SCHEMES):
            return NavigationResult(ok=False, error=f"unsupported URL scheme: {url[:50]}")
        try:
            response = await self.page.goto(url, wait_until="load", timeout=timeout_ms)
        except Exception as e:
            return NavigationResult(ok=False, error=f"{type(e).__name__}: {e}")
        if response is None:
            return NavigationResult(ok=False, error="no response")
        status = response.status
        if status >= 400:
            return NavigationResult(ok=False, http_status=status, error=f"HTTP {status}")
        return NavigationResult(ok=True, http_status=status)

    async def wait_for_network_idle(self, timeout_ms: int) -> bool:
        """Wait up to *timeout_ms* for networkidle. Returns True if reached.

        A dead browser propagates; any other failure only ends the wait.
        """
        if timeout_ms <= 0:
            return False
        idle_task = asyncio.ensure_future(self.page.wait_for_load_state("networkidle"))
        done, _pending = await asyncio.wait({idle_task}, timeout=timeout_ms / 1000)
        if idle_task in done:
            exc = idle_task.exception()
            if exc is None:
                return True
            if _is_browser_dead_error(exc):
                raise exc
            logger.debug("networkidle wait failed: %s", exc)
            return False
        idle_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await idle_task
        logger.debug("networkidle not reached within %dms", timeout_ms)
        return False

    async def scroll_through(self, steps: int, step_px: int, pause_ms: int) -> None:
        """Scroll down *steps* times by *step_px*, pausing between steps."""
        for _ in range(steps):
            await self.page.evaluate("(dy) => window.scrollBy(0, dy)", step_px)
            await self.wait(pause_ms)

    async def scroll_to_top(self) -> None:
        await self.page.evaluate("() => window.scrollTo(0, 0)")

    async def wait(self, ms: int) -> None:
        if ms > 0:
            await asyncio.sleep(ms / 1000)


@asynccontextmanager
async def create_session(
    config: BrowserConfig | None = None,
) -> AsyncGenerator[BrowserSession, None]:
    """Context manager to create and manage a browser session."""
    session = BrowserSession(config)
    await session.start()
    try:
        yield session
    finally:
        await session.stop()
