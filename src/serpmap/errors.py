# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SERP Map exception hierarchy.

All SERP Map errors inherit from SerpMapError. Only configuration and
primary search API failures abort a run; page-level failures are reported
as omissions and never surface as exceptions.
"""

from __future__ import annotations


class SerpMapError(Exception):
    """Base exception for all SERP Map errors."""


class BrowserError(SerpMapError):
    """Browser session launch failure."""


class ConfigError(SerpMapError):
    """Invalid or incomplete run configuration."""


class SearchApiError(SerpMapError):
    """Search results API request failed or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProbeError(SearchApiError):
    """Secondary feature-specific query failed (always swallowed by callers)."""
