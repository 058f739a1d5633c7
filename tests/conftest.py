# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import serpmap  # noqa: F401
except ImportError:
    raise ImportError("serpmap is not installed. Run: pip install -e '.[dev]'") from None

import pytest


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real Chromium launches in unit tests.

    Tests that need a browser should patch ``async_playwright`` in the
    module under test (that patch takes priority over this fixture) or
    hand a mock ``BrowserSession`` to the code under test. Tests that
    forget get a clear error instead of silently launching Chromium.

    Opt out with::

        @pytest.mark.allow_real_browser
    """
    if "allow_real_browser" in request.keywords:
        return

    def _no_real_browser():
        raise RuntimeError(
            "Test tried to launch a real browser. Patch 'async_playwright' or pass a mock session."
        )

    monkeypatch.setattr("serpmap.browser_session.async_playwright", _no_real_browser)
    monkeypatch.setattr("serpmap.browser_pool.async_playwright", _no_real_browser)


@pytest.fixture(autouse=True)
def _no_api_key_from_env(monkeypatch):
    """Keep a developer's SERPAPI_API_KEY out of config defaults."""
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)
