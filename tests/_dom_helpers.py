# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""ElementNode builders shared by the outline tests."""

from __future__ import annotations

from serpmap.dom_snapshot import ElementNode


def el(
    tag: str = "div",
    text: str | None = None,
    *children: ElementNode,
    shadow: list[ElementNode] | None = None,
    **kwargs,
) -> ElementNode:
    """Visible 16px/400 element; *text* fills both rendered and raw text."""
    fields = {
        "font_weight": "400",
        "font_size": 16.0,
        "display": "block",
        "visibility": "visible",
        "width": 200.0,
        "height": 20.0,
        "inner_text": text,
        "text_content": text,
    }
    fields.update(kwargs)
    return ElementNode(tag=tag, children=list(children), shadow_children=shadow, **fields)


def doc(*children: ElementNode) -> ElementNode:
    """<html><body>children</body></html>."""
    return el("html", None, el("body", None, *children))


def styled(text: str, size: float, weight: str = "700", tag: str = "div", **kwargs) -> ElementNode:
    return el(tag, text, font_size=size, font_weight=weight, **kwargs)
