# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for serpmap.themes: weighted heading themes and intent."""

from __future__ import annotations

import pytest

from serpmap import HeadingRecord, OutlineBuilder, PageOutline
from serpmap.themes import DEFAULT_INTENT, detect_intent, pick_top_themes


def _page(url: str, *records: tuple[int, str]) -> PageOutline:
    builder = OutlineBuilder()
    for level, text in records:
        builder.add(HeadingRecord(level, text))
    return PageOutline(url=url, outline=builder.build())


class TestTopThemes:
    def test_weights_by_level(self):
        pages = [
            _page("a", (1, "What is 3D Secure"), (2, "How it works"), (3, "Fees")),
            _page("b", (2, "How it works"), (3, "Fees"), (3, "Liability shift")),
        ]
        # H1 = 3, H2 = 2, H3 = 1 per occurrence
        assert pick_top_themes(pages) == ["How it works", "What is 3D Secure", "Fees", "Liability shift"]

    def test_deeper_levels_ignored(self):
        pages = [_page("a", (4, "Footnote"), (5, "Small print"), (6, "Legal"))]
        assert pick_top_themes(pages) == []

    def test_ties_keep_first_seen_order(self):
        pages = [_page("a", (2, "Beta"), (2, "Alpha")), _page("b", (2, "Gamma"))]
        assert pick_top_themes(pages) == ["Beta", "Alpha", "Gamma"]

    def test_limit(self):
        pages = [_page("a", *[(3, f"Topic {i}") for i in range(12)])]
        assert len(pick_top_themes(pages)) == 7
        assert pick_top_themes(pages, limit=2) == ["Topic 0", "Topic 1"]
        assert pick_top_themes(pages, limit=0) == []

    def test_no_pages(self):
        assert pick_top_themes([]) == []


class TestIntent:
    @pytest.mark.parametrize(
        "themes, expected",
        [
            (["Best 3D Secure providers", "Pricing"], "Transactional"),
            (["What is 3D Secure", "How it works"], "Informational"),
            (["Stripe login", "Dashboard"], "Navigational"),
            (["Compare vendors", "What is it"], "Transactional"),
        ],
    )
    def test_rules(self, themes, expected):
        assert detect_intent(themes) == expected

    def test_default(self):
        assert detect_intent(["Zebra"]) == DEFAULT_INTENT
        assert detect_intent([]) == DEFAULT_INTENT
