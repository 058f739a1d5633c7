# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for serpmap.serializer: JSON output and the heading table."""

from __future__ import annotations

import json

from serpmap import (
    Feature,
    FeatureObservation,
    FeatureStatus,
    FrameReport,
    HeadingRecord,
    OutlineBuilder,
    PageOutline,
    ReconciliationPolicy,
    SerpReport,
)
from serpmap.confidence_fusion import fuse_all
from serpmap.serializer import heading_table, outline_to_dict, page_outline_to_dict, to_json


def _page(url: str, *records: tuple[int, str], **kw) -> PageOutline:
    builder = OutlineBuilder()
    for level, text in records:
        builder.add(HeadingRecord(level, text))
    outline = builder.build()
    return PageOutline(url=url, outline=outline, frames=[FrameReport(url=url, counts=outline.counts())], **kw)


def _report(pages: list[PageOutline], urls: list[str]) -> SerpReport:
    observations = {f: FeatureObservation() for f in Feature}
    observations[Feature.AI_OVERVIEW] = FeatureObservation(supporting_signals=frozenset({"text_pattern"}))
    observations[Feature.PEOPLE_ALSO_ASK] = FeatureObservation(from_structured_source=True)
    return SerpReport(
        query="3d secure",
        location="Sydney, Australia",
        google_domain="google.com.au",
        gl="au",
        hl="en",
        policy=ReconciliationPolicy.HYBRID_LENIENT,
        urls=urls,
        pages=pages,
        observations=observations,
        statuses=fuse_all(observations, ReconciliationPolicy.HYBRID_LENIENT),
        top_themes=["How it works"],
        intent="Informational",
    )


# ── Outline / page ───────────────────────────────────────────────────


class TestPageOutline:
    def test_outline_keys(self):
        page = _page("https://a.example/", (1, "Title"), (3, "Detail"))
        assert outline_to_dict(page.outline) == {
            "h1": ["Title"],
            "h2": [],
            "h3": ["Detail"],
            "h4": [],
            "h5": [],
            "h6": [],
        }

    def test_page_dict(self):
        page = _page("https://a.example/", (1, "Title"), title="A", description="About A", retried=True)
        data = page_outline_to_dict(page)
        assert data["url"] == "https://a.example/"
        assert data["title"] == "A"
        assert data["total_headings"] == 1
        assert data["retried"] is True
        assert data["frames"] == [{"url": "https://a.example/", "counts": {f"h{i}": int(i == 1) for i in range(1, 7)}}]
        assert "timings_ms" not in data

    def test_retry_frame_and_timings(self):
        page = _page("https://a.example/", (1, "T"), timings={"navigation": 12.5})
        page.frames.append(FrameReport(url="https://a.example/", counts={1: 0}, retry=True))
        data = page_outline_to_dict(page)
        assert data["frames"][1]["retry"] is True
        assert data["timings_ms"] == {"navigation": 12.5}

    def test_to_json_keeps_unicode(self):
        text = to_json(_page("https://a.example/", (2, "Aperçu de l’IA")))
        assert "Aperçu de l’IA" in text
        assert json.loads(text)["headings"]["h2"] == ["Aperçu de l’IA"]


# ── Report ───────────────────────────────────────────────────────────


class TestReport:
    def test_report_json(self):
        pages = [_page("https://a.example/", (1, "A"), (2, "How it works"))]
        report = _report(pages, ["https://a.example/", "https://b.example/"])
        data = json.loads(to_json(report))
        assert data["query"] == "3d secure"
        assert data["policy"] == "hybrid-lenient"
        assert data["skipped_urls"] == ["https://b.example/"]
        assert data["features"]["ai_overview"] == {
            "status": "probable",
            "label": "Probable",
            "confidence": 0.6,
            "structured_source": False,
            "rendered_page": False,
            "signals": ["text_pattern"],
        }
        assert data["features"]["people_also_ask"]["status"] == "confirmed"
        assert data["features"]["video"]["label"] == "Not detected"
        assert set(data["features"]) == {f.value for f in Feature}
        assert "google_url" not in data
        assert data["pages"][0]["headings"]["h2"] == ["How it works"]

    def test_status_values(self):
        assert FeatureStatus.CONFIRMED.confidence == 1.0
        assert FeatureStatus.ABSENT.label == "Not detected"


# ── Heading table ────────────────────────────────────────────────────


class TestHeadingTable:
    def test_columns_sized_to_widest_page(self):
        pages = [
            _page("https://a.example/", (1, "A1"), (2, "A2a"), (2, "A2b"), title="A", description="dA"),
            _page("https://b.example/", (2, "B2"), (3, "B3"), title="B"),
        ]
        header, rows = heading_table(pages)
        assert header == ["URL", "MetaTitle", "MetaDescription", "H1-1", "H2-1", "H2-2", "H3-1"]
        assert rows == [
            ["https://a.example/", "A", "dA", "A1", "A2a", "A2b", ""],
            ["https://b.example/", "B", "", "", "B2", "", "B3"],
        ]

    def test_empty(self):
        assert heading_table([]) == (["URL", "MetaTitle", "MetaDescription"], [])
