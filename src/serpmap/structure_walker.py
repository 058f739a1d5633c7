# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Depth-first enumeration of a snapshot tree, open shadow roots included.

A host's shadow tree is visited right after the host and before the host's
light-DOM children. Closed shadow roots are never in the snapshot, and frame
documents are separate roots, so neither is entered here.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from .dom_snapshot import ElementNode


def walk(root: ElementNode | None) -> Iterator[ElementNode]:
    """Yield every element under *root* (inclusive), lazily."""
    if root is None:
        return
    stack: list[ElementNode] = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))
        if node.shadow_children:
            stack.extend(reversed(node.shadow_children))


def walk_all(roots: Iterable[ElementNode | None]) -> Iterator[ElementNode]:
    """Chain ``walk`` over several roots in order."""
    for root in roots:
        yield from walk(root)
