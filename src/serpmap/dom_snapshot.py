# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Element snapshots: the node model the outline extractor works on.

Two sources produce the same ``ElementNode`` tree:

- live frames: one ``frame.evaluate`` walks the DOM (open shadow roots
  included) with an explicit stack and returns flat records, which
  ``records_to_tree`` rebuilds into a tree. Computed style and layout come
  from the browser.
- offline HTML: ``from_html`` parses with lxml. Inline ``style`` gives the
  font and visibility properties (inherited like CSS), declarative shadow
  DOM (``<template shadowrootmode="open">``) becomes an open shadow root.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from lxml import etree
from lxml import html as lxml_html
from playwright.async_api import Frame

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODES = 20000
MAX_TEXT_CHARS = 1000
_BASE_FONT_PX = 16.0


@dataclass(slots=True)
class ElementNode:
    """Snapshot of one rendered element.

    ``shadow_children`` is None when the element hosts no open shadow root.
    ``width``/``height`` are None when layout is unknown (offline HTML).
    ``inner_text``/``text_content`` are None when text was not captured.
    """

    tag: str
    element_id: str = ""
    class_name: str = ""
    role: str = ""
    aria_level: str | None = None
    font_weight: str = "400"
    font_size: float = 0.0
    display: str = ""
    visibility: str = ""
    width: float | None = None
    height: float | None = None
    inner_text: str | None = None
    text_content: str | None = None
    children: list[ElementNode] = field(default_factory=list)
    shadow_children: list[ElementNode] | None = None


# ── Style parsing ────────────────────────────────────────────────────

_NUMBER_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))\s*([a-z%]*)", re.IGNORECASE)

_UNIT_SCALE = {"": 1.0, "px": 1.0, "pt": 4.0 / 3.0, "pc": 16.0}


def parse_font_size(raw: str | None, parent_px: float = _BASE_FONT_PX) -> float:
    """Parse a CSS font-size into pixels; 0.0 when unparseable.

    Computed styles from a browser are always ``NNpx``; relative units are
    resolved against *parent_px* for offline inline styles.
    """
    if not raw:
        return 0.0
    m = _NUMBER_RE.match(raw)
    if not m:
        return 0.0
    value = float(m.group(1))
    unit = m.group(2).lower()
    if unit in _UNIT_SCALE:
        return value * _UNIT_SCALE[unit]
    if unit == "em":
        return value * parent_px
    if unit == "rem":
        return value * _BASE_FONT_PX
    if unit == "%":
        return value * parent_px / 100.0
    return 0.0


def _parse_style(style: str | None) -> dict[str, str]:
    """Parse an inline ``style`` attribute into lowercased declarations."""
    decls: dict[str, str] = {}
    if not style:
        return decls
    for part in style.split(";"):
        name, sep, value = part.partition(":")
        if not sep:
            continue
        value = value.replace("!important", "").strip()
        decls[name.strip().lower()] = value.lower()
    return decls


# ── Live snapshot ────────────────────────────────────────────────────

# Text is captured only for elements that could classify as headings
# (native, ARIA, bold, >= 18px or semantically named). Parameterized
# evaluate; no string interpolation.
_SNAPSHOT_JS = """([maxNodes, maxText]) => {
  const HEADINGS = new Set(['H1', 'H2', 'H3', 'H4', 'H5', 'H6']);
  const SEMANTIC = /title|heading|headline|section-title/;
  const nodes = [];
  let truncated = false;
  const root = document.documentElement;
  if (!root) return { nodes, truncated };
  const stack = [[root, -1, false]];
  while (stack.length) {
    if (nodes.length >= maxNodes) { truncated = true; break; }
    const [el, parent, shadow] = stack.pop();
    const cs = getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const cls = el.getAttribute('class') || '';
    const role = el.getAttribute('role') || '';
    const fw = cs.getPropertyValue('font-weight');
    const fs = cs.getPropertyValue('font-size');
    const fwNum = parseInt(fw, 10);
    const heavy = Number.isFinite(fwNum) ? fwNum >= 600 : /bold/i.test(fw);
    const candidate = HEADINGS.has(el.tagName)
      || role.toLowerCase() === 'heading'
      || heavy
      || (parseFloat(fs) || 0) >= 18
      || SEMANTIC.test(((el.id || '') + ' ' + cls).toLowerCase());
    const rec = {
      p: parent, s: shadow, tag: el.tagName.toLowerCase(), id: el.id || '', cls, role,
      lvl: el.getAttribute('aria-level'), fw, fs, d: cs.display, v: cs.visibility,
      w: rect.width, h: rect.height, it: null, tc: null,
    };
    if (candidate) {
      rec.it = (el.innerText || '').slice(0, maxText);
      rec.tc = (el.textContent || '').slice(0, maxText);
    }
    const idx = nodes.length;
    nodes.push(rec);
    const kids = el.children;
    for (let i = kids.length - 1; i >= 0; i--) stack.push([kids[i], idx, false]);
    if (el.shadowRoot && el.shadowRoot.mode === 'open') {
      const sk = el.shadowRoot.children;
      for (let i = sk.length - 1; i >= 0; i--) stack.push([sk[i], idx, true]);
    }
  }
  return { nodes, truncated };
}"""


def _record_to_node(rec: dict) -> ElementNode:
    def _num(v) -> float | None:
        return float(v) if isinstance(v, int | float) else None

    return ElementNode(
        tag=str(rec.get("tag") or ""),
        element_id=str(rec.get("id") or ""),
        class_name=str(rec.get("cls") or ""),
        role=str(rec.get("role") or ""),
        aria_level=rec.get("lvl"),
        font_weight=str(rec.get("fw") or ""),
        font_size=parse_font_size(rec.get("fs")),
        display=str(rec.get("d") or ""),
        visibility=str(rec.get("v") or ""),
        width=_num(rec.get("w")),
        height=_num(rec.get("h")),
        inner_text=rec.get("it"),
        text_content=rec.get("tc"),
    )


def records_to_tree(records: list[dict]) -> ElementNode | None:
    """Rebuild the flat preorder snapshot into an ElementNode tree.

    Each record names its parent index (``p``, -1 for the root) and whether
    it sits in the parent's open shadow root (``s``). Records whose parent
    is missing are dropped.
    """
    if not records:
        return None
    nodes: list[ElementNode | None] = []
    for rec in records:
        node = _record_to_node(rec)
        parent_idx = rec.get("p", -1)
        if parent_idx == -1 and not nodes:
            nodes.append(node)
            continue
        parent = nodes[parent_idx] if isinstance(parent_idx, int) and 0 <= parent_idx < len(nodes) else None
        if parent is None:
            nodes.append(None)
            continue
        if rec.get("s"):
            if parent.shadow_children is None:
                parent.shadow_children = []
            parent.shadow_children.append(node)
        else:
            parent.children.append(node)
        nodes.append(node)
    return nodes[0]


async def snapshot_frame(
    frame: Frame,
    *,
    max_nodes: int = DEFAULT_MAX_NODES,
    max_text: int = MAX_TEXT_CHARS,
) -> ElementNode | None:
    """Snapshot a frame's document (open shadow roots included)."""
    result = await frame.evaluate(_SNAPSHOT_JS, [max_nodes, max_text])
    records = result.get("nodes", []) if isinstance(result, dict) else []
    if isinstance(result, dict) and result.get("truncated"):
        logger.warning("DOM snapshot truncated at %d nodes: %s", max_nodes, frame.url)
    return records_to_tree(records)


# ── Offline HTML ─────────────────────────────────────────────────────

_UA_DEFAULTS: dict[str, tuple[float | None, str | None]] = {
    # tag: (font-size em, font-weight)
    "h1": (2.0, "700"),
    "h2": (1.5, "700"),
    "h3": (1.17, "700"),
    "h4": (1.0, "700"),
    "h5": (0.83, "700"),
    "h6": (0.67, "700"),
    "b": (None, "700"),
    "strong": (None, "700"),
    "th": (None, "700"),
}

_UA_HIDDEN_TAGS = frozenset({"head", "script", "style", "title", "meta", "link", "noscript", "template", "base"})
_NO_TEXT_TAGS = frozenset({"script", "style", "template", "noscript"})


def _light_text(el) -> str:
    """textContent of *el* excluding script/style and shadow templates."""
    parts: list[str] = []
    stack: list = [el]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        if item.text:
            parts.append(item.text)
        for child in reversed(item):
            if child.tail:
                stack.append(child.tail)
            if isinstance(child.tag, str) and child.tag.lower() not in _NO_TEXT_TAGS:
                stack.append(child)
    return "".join(parts)


def _shadow_template(el):
    """Return the declarative shadow root template of *el*, if any."""
    for child in el:
        if isinstance(child.tag, str) and child.tag.lower() == "template":
            mode = (child.get("shadowrootmode") or child.get("shadowroot") or "").lower()
            if mode:
                return child, mode
    return None, ""


def _parse_document(raw_html: str):
    """Parse *raw_html* into an lxml document; None when nothing parses."""
    if not raw_html or not raw_html.strip():
        return None
    try:
        return lxml_html.document_fromstring(raw_html)
    except ValueError:
        # str input with an XML encoding declaration
        try:
            return lxml_html.document_fromstring(raw_html.encode("utf-8"))
        except etree.ParserError:
            return None
    except etree.ParserError:
        return None


def html_metadata(raw_html: str) -> tuple[str, str]:
    """(title, meta description) of an HTML document; empty when missing."""
    doc = _parse_document(raw_html)
    if doc is None:
        return "", ""
    title = doc.findtext(".//title") or ""
    description = ""
    for meta in doc.iter("meta"):
        if (meta.get("name") or "").lower() == "description":
            description = meta.get("content") or ""
            break
    return " ".join(title.split()), description.strip()


def from_html(raw_html: str) -> ElementNode | None:
    """Build an ElementNode tree from raw HTML (inline styles only).

    Layout is unknown, so ``width``/``height`` stay None, except under a
    ``display: none`` ancestor where they are 0 like a browser reports.
    """
    doc = _parse_document(raw_html)
    if doc is None:
        return None

    # stack entries: (element, sink, inherited px, weight, visibility, hidden ancestor)
    root_holder: list[ElementNode] = []
    stack: list[tuple] = [(doc, root_holder, _BASE_FONT_PX, "400", "visible", False)]
    while stack:
        el, sink, parent_px, parent_fw, parent_vis, collapsed = stack.pop()
        tag = el.tag.lower()
        style = _parse_style(el.get("style"))
        ua_size, ua_weight = _UA_DEFAULTS.get(tag, (None, None))

        if "font-size" in style:
            font_size = parse_font_size(style["font-size"], parent_px)
        elif ua_size is not None:
            font_size = ua_size * parent_px
        else:
            font_size = parent_px
        font_weight = style.get("font-weight") or ua_weight or parent_fw
        visibility = style.get("visibility") or parent_vis
        if "hidden" in el.attrib or tag in _UA_HIDDEN_TAGS:
            display = "none"
        else:
            display = style.get("display", "block")
        size = 0.0 if collapsed or display == "none" else None

        node = ElementNode(
            tag=tag,
            element_id=el.get("id") or "",
            class_name=el.get("class") or "",
            role=el.get("role") or "",
            aria_level=el.get("aria-level"),
            font_weight=font_weight,
            font_size=font_size,
            display=display,
            visibility=visibility,
            width=size,
            height=size,
            inner_text=None,
            text_content=_light_text(el),
        )
        sink.append(node)

        inherited = (font_size, font_weight, visibility, size is not None)
        template, mode = _shadow_template(el)
        kids = [c for c in el if isinstance(c.tag, str) and c is not template]
        # shadow tree is pushed last so it is visited before light children
        for child in reversed(kids):
            stack.append((child, node.children, *inherited))
        if template is not None and mode == "open":
            node.shadow_children = []
            for child in reversed([c for c in template if isinstance(c.tag, str)]):
                stack.append((child, node.shadow_children, *inherited))
    return root_holder[0] if root_holder else None
