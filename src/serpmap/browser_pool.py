# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""BrowserPool: one shared Chromium, one throwaway BrowserContext per page.

Capacity is gated by ``asyncio.Semaphore`` (CPython FIFO-guaranteed)::

    async with BrowserPool(max_contexts=4, config=BrowserConfig()) as pool:
        async with pool.session() as session:
            await session.navigate("https://example.com")

Contexts are never reused, so no cookies or storage leak between pages.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from types import TracebackType

from playwright.async_api import Browser, Playwright, async_playwright

from .browser_session import BrowserConfig, BrowserSession, launch_chromium

logger = logging.getLogger(__name__)

_DEFAULT_MAX_CONTEXTS = 4


@dataclass(frozen=True, slots=True)
class PoolHealth:
    """Immutable snapshot of pool state."""

    active: int
    max_contexts: int
    browser_connected: bool


class BrowserPool:
    """Shared browser with per-page BrowserContext isolation."""

    def __init__(
        self,
        *,
        max_contexts: int = _DEFAULT_MAX_CONTEXTS,
        config: BrowserConfig | None = None,
    ) -> None:
        if max_contexts < 1:
            raise ValueError("max_contexts must be >= 1")
        self._max_contexts = max_contexts
        self._config = config or BrowserConfig()

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._semaphore = asyncio.Semaphore(max_contexts)
        self._active: set[BrowserSession] = set()

    # ── AsyncContextManager ──────────────────────────────────────────

    async def __aenter__(self) -> BrowserPool:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await launch_chromium(self._playwright, self._config)
        except BaseException:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
            raise
        logger.info("BrowserPool started (max_contexts=%d)", self._max_contexts)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    # ── Resource management ──────────────────────────────────────────

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserSession]:
        """Acquire a fresh BrowserSession; its context is closed on exit.

        Blocks while the pool is at capacity.
        """
        if self._browser is None:
            raise RuntimeError("BrowserPool not started. Use async with.")
        async with self._semaphore:
            sess = BrowserSession(self._config)
            self._active.add(sess)
            try:
                await sess.start_from_pool(self._browser)
                yield sess
            finally:
                self._active.discard(sess)
                await sess.stop()

    def health(self) -> PoolHealth:
        browser_ok = self._browser is not None and self._browser.is_connected()
        return PoolHealth(
            active=len(self._active),
            max_contexts=self._max_contexts,
            browser_connected=browser_ok,
        )

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def capacity(self) -> int:
        return self._max_contexts

    # ── Shutdown ─────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Close all sessions, the browser, and playwright."""
        for sess in list(self._active):
            with suppress(Exception):
                await sess.stop()
        self._active.clear()

        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None

        logger.info("BrowserPool shut down")
