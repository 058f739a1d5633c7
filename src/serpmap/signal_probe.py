# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Search-feature evidence from the structured API payload and the rendered page.

Each feature is described once in ``FEATURE_PROBES``:

  source_paths      key paths into the API payload, OR'd (truthy = present)
  selectors         DOM markers on the rendered results page (strong)
  text_patterns     localized wording in the page text (weak)
  network_patterns  backend request URLs on a Google host (weak)

Strong rendered evidence sets ``from_rendered_page``. Weak evidence only
lands in ``supporting_signals`` and is left to the fusion policy.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urlsplit

from playwright.async_api import Request

from . import Feature, FeatureObservation
from .browser_session import BrowserConfig, BrowserSession, create_session
from .config import ProbeConfig, SearchConfig
from .i18n import AI_OVERVIEW_PATTERNS, PEOPLE_ALSO_ASK_PATTERNS, is_english, matches_any
from .serp_client import SearchResult, SerpApiClient

logger = logging.getLogger(__name__)

TEXT_SIGNAL = "text_pattern"
NETWORK_SIGNAL = "network_activity"

MAX_PAGE_TEXT_CHARS = 200_000

# ---------------------------------------------------------------------------
# Feature registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FeatureProbe:
    """How one feature shows up in each evidence channel."""

    feature: Feature
    source_paths: tuple[tuple[str, ...], ...]
    selectors: tuple[str, ...] = ()
    text_patterns: tuple[re.Pattern[str], ...] = ()
    network_patterns: tuple[re.Pattern[str], ...] = ()

    @property
    def selector(self) -> str:
        return ", ".join(self.selectors)


_AIO_NETWORK_RE = re.compile(r"genai|searchgenai|unified_qa|/_/SearchGenAI|_batchexecute", re.IGNORECASE)

FEATURE_PROBES: tuple[FeatureProbe, ...] = (
    FeatureProbe(
        Feature.FEATURED_SNIPPET,
        source_paths=(("answer_box",), ("featured_snippet",)),
        selectors=('[data-attrid="wa:/description"]', '[data-attrid="kc:/webanswers:wa"]'),
    ),
    FeatureProbe(
        Feature.KNOWLEDGE_PANEL,
        source_paths=(("knowledge_graph",),),
        selectors=("#kp-wp-tab-overview", '[data-attrid="title"]'),
    ),
    FeatureProbe(
        Feature.PEOPLE_ALSO_ASK,
        source_paths=(("related_questions",), ("people_also_ask",)),
        selectors=('div[aria-label*="People also ask"]', 'div[jsname="Cpkphb"]'),
        text_patterns=PEOPLE_ALSO_ASK_PATTERNS,
    ),
    FeatureProbe(
        Feature.IMAGE_PACK,
        source_paths=(("inline_images",),),
        selectors=("g-scrolling-carousel img", "div[data-hveid][data-ved] img"),
    ),
    FeatureProbe(
        Feature.VIDEO,
        source_paths=(("inline_videos",), ("video_results",)),
        selectors=('g-scrolling-carousel a[href*="youtube.com"]', 'a[href*="watch?v="]'),
    ),
    FeatureProbe(
        Feature.AI_OVERVIEW,
        source_paths=(
            ("ai_overview",),
            ("ai_overview_results",),
            ("search_information", "ai_overview"),
            ("search_information", "ai_overview_is_available"),
            ("knowledge_graph", "ai_overview"),
        ),
        selectors=('div[aria-label*="AI Overview" i]', 'div[aria-label*="Overview from AI" i]'),
        text_patterns=AI_OVERVIEW_PATTERNS,
        network_patterns=(_AIO_NETWORK_RE,),
    ),
)

PROBES_BY_FEATURE: dict[Feature, FeatureProbe] = {p.feature: p for p in FEATURE_PROBES}


# ---------------------------------------------------------------------------
# Structured source
# ---------------------------------------------------------------------------


def lookup_path(payload: Any, path: Iterable[str]) -> Any:
    """Walk *path* through nested mappings; None as soon as a step is missing."""
    current = payload
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def structured_observations(
    payload: Any,
    probes: Iterable[FeatureProbe] = FEATURE_PROBES,
) -> dict[Feature, bool]:
    """Feature presence in an API payload. Malformed payloads read as absent."""
    return {p.feature: any(bool(lookup_path(payload, path)) for path in p.source_paths) for p in probes}


# ---------------------------------------------------------------------------
# Rendered page
# ---------------------------------------------------------------------------


_GOOGLE_HOST_RE = re.compile(r"(^|\.)google\.", re.IGNORECASE)


class NetworkObserver:
    """Request listener recording features whose backend calls were seen."""

    def __init__(self, probes: Iterable[FeatureProbe] = FEATURE_PROBES) -> None:
        self._probes = tuple(p for p in probes if p.network_patterns)
        self.hits: set[Feature] = set()

    def __call__(self, request: Request) -> None:
        self.record(request.url)

    def record(self, url: str) -> None:
        host = urlsplit(url).hostname or ""
        if not _GOOGLE_HOST_RE.search(host):
            return
        for probe in self._probes:
            if probe.feature not in self.hits and any(p.search(url) for p in probe.network_patterns):
                logger.debug("backend request for %s: %.120s", probe.feature, url)
                self.hits.add(probe.feature)


@dataclass(frozen=True, slots=True)
class RenderedSignals:
    """What the rendered results page showed, per evidence channel."""

    markers: frozenset[Feature] = frozenset()
    text_hits: frozenset[Feature] = frozenset()
    network_hits: frozenset[Feature] = frozenset()


# Invalid selectors read as "not present".
_MARKERS_JS = """([pairs, maxText]) => {
  const markers = {};
  for (const [name, sel] of pairs) {
    try { markers[name] = !!document.querySelector(sel); } catch (e) { markers[name] = false; }
  }
  const body = document.body;
  return { markers, text: body ? (body.innerText || '').slice(0, maxText) : '' };
}"""

_CONSENT_SELECTOR = ", ".join(
    f'button:has-text("{label}")'
    for label in (
        "I agree",
        "Accept all",
        "Tout accepter",
        "Alle akzeptieren",
        "Aceptar todo",
        "Accetta tutto",
        "Alles accepteren",
        "すべて同意",
        "Accept",
    )
)
_CONSENT_TIMEOUT_MS = 2000
_POST_LOAD_WAIT_MS = 1500

_SERP_SCROLL_STEPS = 14
_SERP_SCROLL_PX = 700
_SERP_SCROLL_TURN_PX = 2800
_SERP_SCROLL_PAUSE_MS = 160


def build_google_url(search: SearchConfig) -> str:
    """Results page URL when the API did not provide one."""
    query = urlencode({"q": search.query, "hl": search.hl, "gl": search.gl, "num": 10, "pws": 0})
    return f"https://www.{search.google_domain}/search?{query}"


async def dismiss_consent(session: BrowserSession) -> bool:
    """Click a consent button if one shows up. Best effort."""
    button = session.page.locator(_CONSENT_SELECTOR).first
    try:
        await button.wait_for(state="visible", timeout=_CONSENT_TIMEOUT_MS)
        await button.click(timeout=_CONSENT_TIMEOUT_MS)
    except Exception:
        return False
    logger.debug("consent dialog dismissed")
    return True


async def _scroll_results(session: BrowserSession) -> None:
    """Scroll down then back up to trigger lazy result blocks."""
    y, direction = 0, 1
    for _ in range(_SERP_SCROLL_STEPS):
        await session.page.evaluate("(dy) => window.scrollBy(0, dy)", _SERP_SCROLL_PX * direction)
        y += _SERP_SCROLL_PX * direction
        if y > _SERP_SCROLL_TURN_PX:
            direction = -1
        await session.wait(_SERP_SCROLL_PAUSE_MS)


def match_text(text: str, probes: Iterable[FeatureProbe] = FEATURE_PROBES) -> frozenset[Feature]:
    return frozenset(p.feature for p in probes if p.text_patterns and matches_any(text, p.text_patterns))


async def probe_rendered_page(
    session: BrowserSession,
    url: str,
    *,
    extra_wait_ms: int = 2000,
    networkidle_timeout_ms: int = 20000,
    probes: Iterable[FeatureProbe] = FEATURE_PROBES,
) -> RenderedSignals | None:
    """Render the results page and collect evidence. None if it never loaded."""
    probes = tuple(probes)
    observer = NetworkObserver(probes)
    session.on_request(observer)

    nav = await session.navigate(url)
    if not nav.ok:
        logger.warning("results page did not load: %s", nav.error)
        return None
    await session.wait_for_network_idle(networkidle_timeout_ms)
    await session.wait(_POST_LOAD_WAIT_MS)
    await dismiss_consent(session)
    await _scroll_results(session)
    await session.wait(extra_wait_ms)

    pairs = [[p.feature.value, p.selector] for p in probes if p.selectors]
    result = await session.page.evaluate(_MARKERS_JS, [pairs, MAX_PAGE_TEXT_CHARS])
    marker_map = result.get("markers", {}) if isinstance(result, dict) else {}
    text = result.get("text", "") if isinstance(result, dict) else ""

    signals = RenderedSignals(
        markers=frozenset(Feature(name) for name, hit in marker_map.items() if hit),
        text_hits=match_text(text, probes),
        network_hits=frozenset(observer.hits),
    )
    logger.info(
        "rendered results page: markers=%s text=%s network=%s",
        sorted(signals.markers),
        sorted(signals.text_hits),
        sorted(signals.network_hits),
    )
    return signals


def combine_observations(
    structured: Mapping[Feature, bool],
    rendered: RenderedSignals | None,
) -> dict[Feature, FeatureObservation]:
    """Merge both channels into one FeatureObservation per feature."""
    rendered = rendered or RenderedSignals()
    observations: dict[Feature, FeatureObservation] = {}
    for feature in Feature:
        signals = set()
        if feature in rendered.text_hits:
            signals.add(TEXT_SIGNAL)
        if feature in rendered.network_hits:
            signals.add(NETWORK_SIGNAL)
        observations[feature] = FeatureObservation(
            from_structured_source=bool(structured.get(feature, False)),
            from_rendered_page=feature in rendered.markers,
            supporting_signals=frozenset(signals),
        )
    return observations


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProbeReport:
    """Per-feature evidence for one query."""

    observations: dict[Feature, FeatureObservation]
    secondary_probe_used: bool = False
    rendered_url: str | None = None


class SignalProbe:
    """Collects evidence for every feature of one query."""

    def __init__(
        self,
        config: ProbeConfig,
        client: SerpApiClient,
        *,
        browser_config: BrowserConfig | None = None,
        networkidle_timeout_ms: int = 20000,
    ) -> None:
        self._config = config
        self._client = client
        self._browser_config = browser_config
        self._networkidle_timeout_ms = networkidle_timeout_ms

    def wants_secondary_probe(self, search: SearchConfig, structured: Mapping[Feature, bool]) -> bool:
        if structured.get(Feature.AI_OVERVIEW):
            return False
        return self._config.aio_probe_always or not is_english(search.hl)

    async def secondary_ai_overview(self, search: SearchConfig) -> bool | None:
        """Run the narrower AI-overview query. None when it failed."""
        hl = "en" if is_english(search.hl) else self._config.aio_probe_hl_fallback
        try:
            data = await self._client.ai_overview(search, hl)
        except Exception as e:
            logger.warning("secondary AI overview probe failed: %s", e)
            return None
        return bool(lookup_path(data, ("ai_overview",)))

    async def _rendered(self, search: SearchConfig, url: str) -> RenderedSignals | None:
        browser_config = self._browser_config or BrowserConfig(hl=search.hl)
        try:
            async with create_session(browser_config) as session:
                return await probe_rendered_page(
                    session,
                    url,
                    extra_wait_ms=self._config.serp_extra_wait_ms,
                    networkidle_timeout_ms=self._networkidle_timeout_ms,
                )
        except Exception:
            logger.warning("rendered results page probe failed", exc_info=True)
            return None

    async def run(self, search: SearchConfig, primary: SearchResult) -> ProbeReport:
        structured = structured_observations(primary.payload)

        secondary_used = False
        if self.wants_secondary_probe(search, structured):
            found = await self.secondary_ai_overview(search)
            if found is not None:
                secondary_used = True
                structured[Feature.AI_OVERVIEW] = found

        rendered: RenderedSignals | None = None
        rendered_url: str | None = None
        if self._config.render_serp:
            rendered_url = primary.google_url or build_google_url(search)
            rendered = await self._rendered(search, rendered_url)

        return ProbeReport(
            observations=combine_observations(structured, rendered),
            secondary_probe_used=secondary_used,
            rendered_url=rendered_url,
        )
