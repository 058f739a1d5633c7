# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""One query end to end: search -> feature evidence -> page outlines -> report.

Only configuration errors and a failed primary search abort the run. Pages
that fail are left out of ``SerpReport.pages`` (see ``skipped_urls``) and
feature evidence that cannot be gathered reads as absent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

import structlog

from . import FrameReport, PageOutline, SerpReport
from .browser_pool import BrowserPool
from .browser_session import BrowserConfig
from .confidence_fusion import fuse_all
from .config import ExtractionConfig, RunConfig
from .dom_snapshot import from_html, html_metadata
from .frame_aggregator import render_and_extract
from .heading_classifier import classify
from .serp_client import SerpApiClient
from .signal_probe import SignalProbe
from .themes import detect_intent, pick_top_themes

logger = logging.getLogger(__name__)


def outline_from_html(raw_html: str, config: ExtractionConfig, *, url: str = "") -> PageOutline:
    """Outline of a saved HTML document (no browser, inline styles only)."""
    root = from_html(raw_html)
    outline = classify([root], include_hidden=config.include_hidden, heading_like=config.heading_like)
    title, description = html_metadata(raw_html)
    return PageOutline(
        url=url,
        outline=outline,
        title=title,
        description=description,
        frames=[FrameReport(url=url, counts=outline.counts())],
    )


async def extract_pages(
    urls: Sequence[str],
    config: ExtractionConfig,
    *,
    browser_config: BrowserConfig | None = None,
    concurrency: int = 1,
) -> list[PageOutline]:
    """Extract outlines for *urls*, keeping source order and dropping failures.

    One shared browser; every page gets its own context. With
    ``concurrency == 1`` pages run one after another.
    """
    if not urls:
        return []
    async with BrowserPool(max_contexts=concurrency, config=browser_config) as pool:
        if concurrency == 1:
            results = [await render_and_extract(url, config, pool=pool) for url in urls]
        else:
            results = await asyncio.gather(*(render_and_extract(url, config, pool=pool) for url in urls))
    pages = [p for p in results if p is not None]
    logger.info("extracted %d/%d pages", len(pages), len(urls))
    return pages


@asynccontextmanager
async def _client_scope(client: SerpApiClient | None) -> AsyncIterator[SerpApiClient]:
    if client is not None:
        yield client
        return
    async with SerpApiClient() as owned:
        yield owned


async def run_query(config: RunConfig, *, client: SerpApiClient | None = None) -> SerpReport:
    """Run the full pipeline for ``config.search``.

    Raises ConfigError when the search settings are incomplete and
    SearchApiError when the primary search fails.
    """
    search = config.search
    search.require_ready()

    with structlog.contextvars.bound_contextvars(query=search.query):
        async with _client_scope(client) as api:
            primary = await api.search(search)
            probe = SignalProbe(
                config.probe,
                api,
                networkidle_timeout_ms=config.extraction.networkidle_timeout_ms,
            )
            probe_report = await probe.run(search, primary)

        urls = list(primary.urls[: search.page_limit])
        pages = await extract_pages(
            urls,
            config.extraction,
            browser_config=BrowserConfig(hl=search.hl),
            concurrency=config.concurrency,
        )

        statuses = fuse_all(
            probe_report.observations,
            config.probe.policy,
            promote_weak_signals=config.probe.promote_weak_signals,
        )
        themes = pick_top_themes(pages)

    return SerpReport(
        query=search.query,
        location=search.location,
        google_domain=search.google_domain,
        gl=search.gl,
        hl=search.hl,
        policy=config.probe.policy,
        urls=urls,
        pages=pages,
        observations=probe_report.observations,
        statuses=statuses,
        google_url=primary.google_url,
        rendered_url=probe_report.rendered_url,
        secondary_probe_used=probe_report.secondary_probe_used,
        top_themes=themes,
        intent=detect_intent(themes),
    )
