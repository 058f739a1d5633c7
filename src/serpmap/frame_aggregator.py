# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-page outline extraction across the main document and its frames.

Pipeline (one page)::

    navigation -> settle (networkidle, scroll, wait) -> noindex check
      -> extract (all accessible frames) -> retry (sparse only) -> metadata

Any failure before extraction omits the page (returns None, never raises).
Frame snapshots are collected concurrently and merged in discovery order
into one OutlineBuilder, so dedup spans the whole page including the retry.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from urllib.parse import urlsplit

import structlog
from playwright.async_api import Frame

from . import FrameReport, Outline, OutlineBuilder, PageOutline
from .browser_pool import BrowserPool
from .browser_session import BrowserConfig, BrowserSession, create_session
from .config import ExtractionConfig
from .dom_snapshot import ElementNode, snapshot_frame
from .errors import BrowserError
from .heading_classifier import classify
from .pipeline_timer import PipelineTimer

logger = logging.getLogger(__name__)

RETRY_MIN_STEPS = 10
RETRY_STEP_FACTOR = 1.2
RETRY_SCROLL_PAUSE_MS = 140

_ROBOTS_META_JS = """() => Array.from(document.querySelectorAll('meta[name]'))
  .filter(m => /^(robots|googlebot)$/i.test(m.getAttribute('name') || ''))
  .map(m => m.getAttribute('content') || '')"""

_METADATA_JS = """() => {
  const meta = document.querySelector('meta[name="description" i]');
  return {
    title: document.title || '',
    description: meta ? (meta.getAttribute('content') || '') : '',
  };
}"""


# ---------------------------------------------------------------------------
# Frame access
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FrameAccess:
    """Result of asking whether a frame's document may be read."""

    accessible: bool
    reason: str = ""


def _origin(url: str) -> str | None:
    """scheme://host[:port], or None for documents that inherit an origin."""
    if not url or url.startswith("about:"):
        return None
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def effective_origin(frame: Frame) -> str | None:
    """Origin of *frame*; about:blank/srcdoc frames inherit their parent's."""
    current: Frame | None = frame
    while current is not None:
        origin = _origin(current.url)
        if origin is not None:
            return origin
        current = current.parent_frame
    return None


async def probe_frame_access(
    frame: Frame,
    main_origin: str | None,
    *,
    same_origin_only: bool = True,
) -> FrameAccess:
    """Check whether *frame* can be snapshotted. Never raises."""
    if frame.is_detached():
        return FrameAccess(False, "detached")
    if same_origin_only and frame.parent_frame is not None and effective_origin(frame) != main_origin:
        return FrameAccess(False, "cross-origin")
    try:
        await frame.evaluate("() => true")
    except Exception as e:
        return FrameAccess(False, f"script evaluation refused: {type(e).__name__}")
    return FrameAccess(True)


async def _snapshot_or_none(frame: Frame, max_nodes: int) -> ElementNode | None:
    try:
        return await snapshot_frame(frame, max_nodes=max_nodes)
    except Exception as e:
        logger.debug("frame snapshot failed (%s): %s", frame.url, e)
        return None


def _classify_one(root: ElementNode | None, config: ExtractionConfig) -> Outline:
    return classify([root], include_hidden=config.include_hidden, heading_like=config.heading_like)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


async def is_noindex(session: BrowserSession) -> bool:
    """True when a robots/googlebot meta tag carries ``noindex``."""
    contents = await session.page.evaluate(_ROBOTS_META_JS)
    return any("noindex" in str(c).lower() for c in contents or [])


async def _read_metadata(session: BrowserSession) -> tuple[str, str]:
    try:
        meta = await session.page.evaluate(_METADATA_JS)
    except Exception as e:
        logger.debug("metadata lookup failed: %s", e)
        return "", ""
    return str(meta.get("title") or "").strip(), str(meta.get("description") or "").strip()


async def _extract_frames(
    session: BrowserSession,
    builder: OutlineBuilder,
    config: ExtractionConfig,
) -> list[FrameReport]:
    frames = session.frames
    main_origin = effective_origin(session.main_frame)
    accesses = await asyncio.gather(
        *(probe_frame_access(f, main_origin, same_origin_only=config.same_origin_frames_only) for f in frames)
    )
    readable: list[Frame] = []
    for frame, access in zip(frames, accesses, strict=True):
        if access.accessible:
            readable.append(frame)
        else:
            logger.debug("frame skipped (%s): %s", access.reason, frame.url)

    roots = await asyncio.gather(*(_snapshot_or_none(f, config.max_nodes) for f in readable))
    reports: list[FrameReport] = []
    for frame, root in zip(readable, roots, strict=True):
        outline = _classify_one(root, config)
        builder.extend(outline)
        reports.append(FrameReport(url=frame.url, counts=outline.counts()))
    return reports


async def _retry_main_frame(
    session: BrowserSession,
    builder: OutlineBuilder,
    config: ExtractionConfig,
) -> FrameReport:
    steps = max(RETRY_MIN_STEPS, int(config.scroll_steps * RETRY_STEP_FACTOR))
    await session.scroll_through(steps, config.scroll_step_px, RETRY_SCROLL_PAUSE_MS)
    await session.wait(config.retry_wait_ms)
    root = await snapshot_frame(session.main_frame, max_nodes=config.max_nodes)
    outline = _classify_one(root, config)
    builder.extend(outline)
    return FrameReport(url=session.main_frame.url, counts=outline.counts(), retry=True)


async def extract_outline(
    session: BrowserSession,
    url: str,
    config: ExtractionConfig,
    *,
    timer: PipelineTimer | None = None,
) -> PageOutline | None:
    """Navigate *session* to *url* and extract its outline.

    Returns None when the page could not be loaded or opts out of indexing.
    """
    timer = timer or PipelineTimer()

    timer.stage("navigation")
    nav = await session.navigate(url, config.navigation_timeout_ms)
    if not nav.ok:
        logger.warning("navigation failed: %s (%s)", url, nav.error)
        return None

    timer.stage("settle")
    await session.wait_for_network_idle(config.networkidle_timeout_ms)
    timer.stage("scroll")
    await session.scroll_through(config.scroll_steps, config.scroll_step_px, config.scroll_pause_ms)
    await session.wait(config.extra_wait_ms)

    if config.respect_noindex:
        try:
            noindex = await is_noindex(session)
        except Exception as e:
            logger.debug("robots meta lookup failed: %s", e)
            noindex = False
        if noindex:
            logger.info("page skipped (noindex): %s", url)
            return None

    await session.scroll_to_top()

    timer.stage("extract")
    builder = OutlineBuilder()
    reports = await _extract_frames(session, builder, config)

    retried = False
    if builder.total < config.sparse_heading_threshold:
        timer.stage("retry")
        retried = True
        try:
            reports.append(await _retry_main_frame(session, builder, config))
        except Exception:
            logger.warning("sparse page retry failed: %s", url, exc_info=True)

    timer.stage("metadata")
    title, description = await _read_metadata(session)
    timer.finalize()

    page = PageOutline(
        url=url,
        outline=builder.build(),
        title=title,
        description=description,
        frames=reports,
        retried=retried,
        timings=timer.elapsed_per_stage(),
    )
    logger.info(
        "outline extracted: %s headings=%d frames=%d retried=%s", url, page.total_headings, len(reports), retried
    )
    return page


@asynccontextmanager
async def _open_session(
    browser_config: BrowserConfig | None,
    pool: BrowserPool | None,
) -> AsyncIterator[BrowserSession]:
    if pool is not None:
        async with pool.session() as session:
            yield session
    else:
        async with create_session(browser_config) as session:
            yield session


async def render_and_extract(
    url: str,
    config: ExtractionConfig,
    *,
    browser_config: BrowserConfig | None = None,
    pool: BrowserPool | None = None,
) -> PageOutline | None:
    """Extract one page in its own session under the page deadline.

    The deadline starts once the session is open, so time spent queued
    for a pool slot does not count against it.

    Page-level failures are logged and return None. ``BrowserError``
    (Chromium cannot start at all) propagates.
    """
    timer = PipelineTimer()
    with structlog.contextvars.bound_contextvars(url=url):
        try:
            async with _open_session(browser_config, pool) as session:
                async with asyncio.timeout(config.page_deadline_s):
                    return await extract_outline(session, url, config, timer=timer)
        except TimeoutError:
            logger.error("page deadline exceeded: url=%s timeout_report=%s", url, json.dumps(timer.timeout_report()))
            return None
        except BrowserError:
            raise
        except Exception:
            logger.warning("page extraction failed: %s", url, exc_info=True)
            return None
        finally:
            timer.finalize()
