# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for structure_walker: depth-first order, open shadow roots, laziness."""

from __future__ import annotations

import inspect

from serpmap.structure_walker import walk, walk_all

from tests._dom_helpers import el


def _tags(nodes) -> list[str]:
    return [n.tag for n in nodes]


class TestWalkOrder:
    def test_preorder_light_dom(self):
        root = el("html", None, el("head"), el("body", None, el("h1"), el("p")))
        assert _tags(walk(root)) == ["html", "head", "body", "h1", "p"]

    def test_shadow_tree_visited_before_light_children(self):
        host = el(
            "x-card",
            None,
            el("span", element_id="light"),
            shadow=[el("h2", element_id="shadow"), el("slot")],
        )
        root = el("body", None, host, el("footer"))
        assert _tags(walk(root)) == ["body", "x-card", "h2", "slot", "span", "footer"]

    def test_nested_shadow_roots(self):
        inner_host = el("x-inner", None, shadow=[el("h3")])
        outer_host = el("x-outer", None, shadow=[inner_host])
        assert _tags(walk(el("body", None, outer_host))) == ["body", "x-outer", "x-inner", "h3"]

    def test_empty_shadow_root(self):
        root = el("body", None, el("x-empty", None, shadow=[]), el("p"))
        assert _tags(walk(root)) == ["body", "x-empty", "p"]

    def test_none_root_yields_nothing(self):
        assert list(walk(None)) == []


class TestWalkAll:
    def test_chains_roots_in_order(self):
        a = el("html", None, el("h1"))
        b = el("html", None, el("h2"))
        assert _tags(walk_all([a, None, b])) == ["html", "h1", "html", "h2"]


class TestWalkProperties:
    def test_is_lazy_generator(self):
        gen = walk(el("body", None, el("p")))
        assert inspect.isgenerator(gen)
        assert next(gen).tag == "body"

    def test_not_restartable(self):
        gen = walk(el("body", None, el("p")))
        assert len(list(gen)) == 2
        assert list(gen) == []

    def test_deep_tree_no_recursion_limit(self):
        node = el("span")
        for _ in range(5000):
            node = el("div", None, node)
        assert sum(1 for _ in walk(node)) == 5001

    def test_every_node_visited_once(self):
        leaves = [el("li", element_id=str(i)) for i in range(20)]
        root = el("ul", None, *leaves[:10], shadow=leaves[10:])
        ids = [n.element_id for n in walk(root) if n.tag == "li"]
        assert sorted(ids, key=int) == [str(i) for i in range(20)]
        assert len(ids) == len(set(ids))
