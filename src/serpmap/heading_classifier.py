# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Three-tier heading classification over snapshot trees.

Tier 1  Native h1..h6
Tier 2  role="heading" (aria-level 1..6, else 2)
Tier 3  Visual heuristic (heavy + large, or semantically named), opt-in

Tiers are tested independently: a native heading that also carries
role="heading" is recorded at both levels, and a styled ARIA heading may
add a heuristic level too. Native tags never enter tier 3. Tiers are
applied in precedence order over the whole traversal, so every native
heading is recorded before any ARIA heading, and those before heuristic
ones; a repeated (level, text) pair keeps its first position.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from . import HeadingRecord, Outline, OutlineBuilder
from .dom_snapshot import ElementNode
from .structure_walker import walk_all

logger = logging.getLogger(__name__)

NATIVE_LEVELS: dict[str, int] = {f"h{n}": n for n in range(1, 7)}
DEFAULT_ARIA_LEVEL = 2

SEMANTIC_RE = re.compile(r"title|heading|headline|section-title")

# (min font px, level), inclusive lower bounds
_SIZE_LEVELS: tuple[tuple[float, int], ...] = ((30, 1), (24, 2), (20, 3), (18, 4))
_FALLBACK_LEVEL = 5
_MIN_HEURISTIC_PX = 18
_HEAVY_WEIGHT = 600

_NON_RENDERED_TAGS = frozenset({"head", "script", "style", "title", "meta", "link", "noscript", "template"})

_WS_RE = re.compile(r"\s+")


def normalize_text(raw: str | None) -> str:
    """Collapse whitespace runs to one space and trim."""
    if not raw:
        return ""
    return _WS_RE.sub(" ", raw).strip()


def node_text(node: ElementNode) -> str:
    """Rendered text when available, raw text otherwise; normalized."""
    return normalize_text(node.inner_text or node.text_content)


def is_visible(node: ElementNode) -> bool:
    """False for zero-area, ``display: none`` or ``visibility: hidden``.

    Unknown layout (None) counts as visible.
    """
    if node.width is not None and node.width <= 0:
        return False
    if node.height is not None and node.height <= 0:
        return False
    if node.display == "none":
        return False
    return node.visibility != "hidden"


def _is_heavy(font_weight: str) -> bool:
    m = re.match(r"\s*(\d+)", font_weight or "")
    if m:
        return int(m.group(1)) >= _HEAVY_WEIGHT
    return "bold" in (font_weight or "").lower()


def heuristic_level(font_size: float) -> int:
    """Map a computed font size in px to a heading level."""
    for threshold, level in _SIZE_LEVELS:
        if font_size >= threshold:
            return level
    return _FALLBACK_LEVEL


def aria_level(node: ElementNode) -> int:
    raw = (node.aria_level or "").strip()
    if raw.isdigit() and int(raw) in NATIVE_LEVELS.values():
        return int(raw)
    return DEFAULT_ARIA_LEVEL


def _is_heading_like(node: ElementNode) -> bool:
    if node.tag in _NON_RENDERED_TAGS:
        return False
    if _is_heavy(node.font_weight) and node.font_size >= _MIN_HEURISTIC_PX:
        return True
    return bool(SEMANTIC_RE.search(f"{node.element_id} {node.class_name}".lower()))


def classify(
    roots: Iterable[ElementNode | None],
    *,
    include_hidden: bool = True,
    heading_like: bool = True,
    builder: OutlineBuilder | None = None,
) -> Outline:
    """Classify every element under *roots* into an Outline.

    Passing a *builder* merges into it (dedup shared with earlier passes);
    the returned Outline is the builder's state after this pass.
    """
    builder = builder if builder is not None else OutlineBuilder()

    native: list[tuple[int, ElementNode]] = []
    aria: list[tuple[int, ElementNode]] = []
    heuristic: list[tuple[int, ElementNode]] = []
    for node in walk_all(roots):
        is_native = node.tag in NATIVE_LEVELS
        if is_native:
            native.append((NATIVE_LEVELS[node.tag], node))
        if node.role.strip().lower() == "heading":
            aria.append((aria_level(node), node))
        if heading_like and not is_native and _is_heading_like(node):
            heuristic.append((heuristic_level(node.font_size), node))

    added = 0
    for tier in (native, aria, heuristic):
        for level, node in tier:
            if not include_hidden and not is_visible(node):
                continue
            text = node_text(node)
            if text and builder.add(HeadingRecord(level, text)):
                added += 1

    logger.debug(
        "classified %d new headings (native=%d aria=%d heuristic=%d)",
        added,
        len(native),
        len(aria),
        len(heuristic),
    )
    return builder.build()
