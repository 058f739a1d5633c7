# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SerpReport / PageOutline serialization.

Two output formats:
- JSON: structured data for programmatic consumption
- Heading table: one row per page (URL, title, description, H1-1 ...)
  with columns sized to the page that has the most headings per level
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

from . import HEADING_LEVELS, Outline, PageOutline, SerpReport


def outline_to_dict(outline: Outline) -> dict[str, list[str]]:
    return {f"h{level}": list(outline[level]) for level in HEADING_LEVELS}


def page_outline_to_dict(page: PageOutline) -> dict[str, Any]:
    return {
        "url": page.url,
        "title": page.title,
        "description": page.description,
        "headings": outline_to_dict(page.outline),
        "total_headings": page.total_headings,
        "retried": page.retried,
        "frames": [
            {
                "url": f.url,
                "counts": {f"h{level}": n for level, n in f.counts.items()},
                **({"retry": True} if f.retry else {}),
            }
            for f in page.frames
        ],
        **({"timings_ms": page.timings} if page.timings else {}),
    }


def report_to_dict(report: SerpReport) -> dict[str, Any]:
    return {
        "query": report.query,
        "location": report.location,
        "google_domain": report.google_domain,
        "gl": report.gl,
        "hl": report.hl,
        "policy": report.policy.value,
        "features": {
            feature.value: {
                "status": status.value,
                "label": status.label,
                "confidence": status.confidence,
                "structured_source": report.observations[feature].from_structured_source,
                "rendered_page": report.observations[feature].from_rendered_page,
                "signals": sorted(report.observations[feature].supporting_signals),
            }
            for feature, status in report.statuses.items()
        },
        "secondary_probe_used": report.secondary_probe_used,
        **({"google_url": report.google_url} if report.google_url else {}),
        **({"rendered_url": report.rendered_url} if report.rendered_url else {}),
        "urls": list(report.urls),
        "skipped_urls": report.skipped_urls,
        "pages": [page_outline_to_dict(p) for p in report.pages],
        "top_themes": list(report.top_themes),
        "intent": report.intent,
    }


def to_json(obj: SerpReport | PageOutline, indent: int = 2) -> str:
    """Serialize a report or a single page outline to a JSON string."""
    data = report_to_dict(obj) if isinstance(obj, SerpReport) else page_outline_to_dict(obj)
    return json.dumps(data, ensure_ascii=False, indent=indent)


def heading_table(pages: Iterable[PageOutline]) -> tuple[list[str], list[list[str]]]:
    """Return (header, rows) with one row per page.

    Columns: URL, MetaTitle, MetaDescription, then H1-1..H1-n, H2-1.. where
    n is the largest count of that level across *pages*. Missing cells are "".
    """
    pages = list(pages)
    widths = {level: max((len(p.outline[level]) for p in pages), default=0) for level in HEADING_LEVELS}
    header = ["URL", "MetaTitle", "MetaDescription"]
    for level in HEADING_LEVELS:
        header.extend(f"H{level}-{i}" for i in range(1, widths[level] + 1))

    rows: list[list[str]] = []
    for page in pages:
        row = [page.url, page.title, page.description]
        for level in HEADING_LEVELS:
            texts: Sequence[str] = page.outline[level]
            row.extend(texts[i] if i < len(texts) else "" for i in range(widths[level]))
        rows.append(row)
    return header, rows
