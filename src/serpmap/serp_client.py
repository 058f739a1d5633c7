# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SerpAPI client (httpx).

Two calls per query at most:
- ``search``: the primary organic results request (failure is fatal)
- ``ai_overview``: the narrower secondary AI-overview request

Error messages never include the request URL, which carries the API key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import SearchConfig
from .errors import ProbeError, SearchApiError

logger = logging.getLogger(__name__)

SERPAPI_ENDPOINT = "https://serpapi.com/search.json"
SEARCH_TIMEOUT_S = 60.0
AI_OVERVIEW_TIMEOUT_S = 45.0


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Primary search response: ranked URLs plus the raw payload."""

    urls: tuple[str, ...]
    payload: dict[str, Any] = field(default_factory=dict)
    google_url: str | None = None


def search_params(search: SearchConfig) -> dict[str, Any]:
    params: dict[str, Any] = {
        "engine": "google",
        "q": search.query,
        "location": search.location,
        "google_domain": search.google_domain,
        "gl": search.gl,
        "hl": search.hl,
        "num": search.num,
        "device": "desktop",
        "safe": search.safe,
        "no_cache": "true",
        "api_key": search.api_key,
    }
    if search.lr:
        params["lr"] = search.lr
    return params


def ai_overview_params(search: SearchConfig, hl: str) -> dict[str, Any]:
    return {
        "engine": "google_ai_overview",
        "q": search.query,
        "location": search.location,
        "google_domain": search.google_domain,
        "gl": search.gl,
        "hl": hl,
        "api_key": search.api_key,
    }


def organic_urls(payload: Any) -> tuple[str, ...]:
    """Ranked organic result links, in source order. Malformed entries are skipped."""
    if not isinstance(payload, dict):
        return ()
    results = payload.get("organic_results")
    if not isinstance(results, list):
        return ()
    return tuple(r["link"] for r in results if isinstance(r, dict) and isinstance(r.get("link"), str) and r["link"])


class SerpApiClient:
    """Thin async SerpAPI client. Owns its httpx client unless one is given."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        endpoint: str = SERPAPI_ENDPOINT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._endpoint = endpoint

    async def __aenter__(self) -> SerpApiClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, params: dict[str, Any], timeout: float, error_cls: type[SearchApiError]) -> dict:
        engine = params.get("engine", "?")
        try:
            response = await self._client.get(self._endpoint, params=params, timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise error_cls(f"SerpAPI {engine} request failed: HTTP {status}", status_code=status) from None
        except httpx.HTTPError as e:
            raise error_cls(f"SerpAPI {engine} request failed: {type(e).__name__}") from None
        try:
            data = response.json()
        except ValueError:
            raise error_cls(f"SerpAPI {engine} returned invalid JSON") from None
        if not isinstance(data, dict):
            raise error_cls(f"SerpAPI {engine} returned a non-object payload")
        if data.get("error"):
            raise error_cls(f"SerpAPI {engine} error: {data['error']}")
        return data

    async def search(self, search: SearchConfig) -> SearchResult:
        """Run the primary search. Raises SearchApiError on any failure."""
        data = await self._get_json(search_params(search), SEARCH_TIMEOUT_S, SearchApiError)
        metadata = data.get("search_metadata")
        google_url = metadata.get("google_url") if isinstance(metadata, dict) else None
        urls = organic_urls(data)
        logger.info("search returned %d organic results for %r", len(urls), search.query)
        return SearchResult(urls=urls, payload=data, google_url=google_url or None)

    async def ai_overview(self, search: SearchConfig, hl: str) -> dict:
        """Run the secondary AI-overview request. Raises ProbeError on any failure."""
        return await self._get_json(ai_overview_params(search, hl), AI_OVERVIEW_TIMEOUT_S, ProbeError)
