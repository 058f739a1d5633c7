# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Property-based fuzz tests using Hypothesis.

Verifies invariants hold for arbitrary inputs across the heading
classifier, the offline HTML parser, payload lookup and fusion.
"""

from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from serpmap import HEADING_LEVELS, FeatureObservation, OutlineBuilder, ReconciliationPolicy
from serpmap.confidence_fusion import fuse
from serpmap.dom_snapshot import ElementNode, from_html, html_metadata
from serpmap.heading_classifier import classify, heuristic_level, normalize_text
from serpmap.signal_probe import lookup_path, structured_observations
from serpmap.structure_walker import walk

# ---------------------------------------------------------------------------
# Module-level strategies
# ---------------------------------------------------------------------------

HEADING_TEXT = st.one_of(
    st.none(),
    st.sampled_from(["", "  ", "Intro", "Pricing", " Intro\n", "FAQ", "How it works"]),
    st.text(min_size=0, max_size=30),
)

TAGS = st.sampled_from(["div", "span", "p", "section", "h1", "h2", "h3", "h4", "h5", "h6", "script", "b"])

LEAF = st.builds(
    ElementNode,
    tag=TAGS,
    element_id=st.sampled_from(["", "main", "page-title"]),
    class_name=st.sampled_from(["", "card", "section-title", "headline big"]),
    role=st.sampled_from(["", "", "heading", "presentation"]),
    aria_level=st.sampled_from([None, "1", "3", "7", "x"]),
    font_weight=st.sampled_from(["400", "700", "bold", "normal", ""]),
    font_size=st.floats(min_value=0, max_value=64, allow_nan=False),
    display=st.sampled_from(["block", "inline", "none"]),
    visibility=st.sampled_from(["visible", "hidden"]),
    width=st.one_of(st.none(), st.sampled_from([0.0, 120.0])),
    height=st.one_of(st.none(), st.sampled_from([0.0, 18.0])),
    inner_text=HEADING_TEXT,
    text_content=HEADING_TEXT,
)


def _with_children(children_strategy):
    return st.builds(
        lambda node, kids, shadow: _attach(node, kids, shadow),
        LEAF,
        st.lists(children_strategy, max_size=4),
        st.one_of(st.none(), st.lists(children_strategy, max_size=2)),
    )


def _attach(node: ElementNode, kids: list[ElementNode], shadow: list[ElementNode] | None) -> ElementNode:
    node.children = kids
    node.shadow_children = shadow
    return node


TREES = st.recursive(LEAF, _with_children, max_leaves=25)

JSON_LIKE = st.recursive(
    st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=10)),
    lambda inner: st.one_of(
        st.lists(inner, max_size=4),
        st.dictionaries(
            st.sampled_from(["ai_overview", "search_information", "knowledge_graph", "answer_box", "x"]),
            inner,
            max_size=4,
        ),
    ),
    max_leaves=20,
)

HTML_LIKE = st.text(
    alphabet=st.characters(
        whitelist_categories=("L", "N", "P", "Z"),
        whitelist_characters="<>/=\"'&;#!.- \n\t",
    ),
    min_size=0,
    max_size=2000,
)

# ---------------------------------------------------------------------------
# Shared settings
# ---------------------------------------------------------------------------

_fuzz_settings = settings(
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)


def _pairs(outline) -> list[tuple[int, str]]:
    return [(r.level, r.text) for r in outline.records()]


# ---------------------------------------------------------------------------
# Heading classifier
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzClassifier:
    @_fuzz_settings
    @given(root=TREES)
    def test_deterministic(self, root):
        assert classify([root]) == classify([root])

    @_fuzz_settings
    @given(root=TREES)
    def test_no_duplicate_pairs(self, root):
        pairs = _pairs(classify([root]))
        assert len(pairs) == len(set(pairs))

    @_fuzz_settings
    @given(root=TREES)
    def test_texts_normalized_and_non_empty(self, root):
        for _level, text in _pairs(classify([root])):
            assert text
            assert text == normalize_text(text)

    @_fuzz_settings
    @given(root=TREES)
    def test_visible_only_is_a_subset(self, root):
        everything = set(_pairs(classify([root])))
        visible = set(_pairs(classify([root], include_hidden=False)))
        assert visible <= everything

    @_fuzz_settings
    @given(root=TREES)
    def test_semantic_only_is_a_subset(self, root):
        everything = set(_pairs(classify([root])))
        semantic = set(_pairs(classify([root], heading_like=False)))
        assert semantic <= everything

    @_fuzz_settings
    @given(root=TREES)
    def test_native_headings_precede_others_at_each_level(self, root):
        native_tags = {f"h{i}" for i in HEADING_LEVELS}
        native = {
            (int(n.tag[1]), normalize_text(n.inner_text or n.text_content)) for n in walk(root) if n.tag in native_tags
        }
        outline = classify([root])
        for level in HEADING_LEVELS:
            texts = outline[level]
            seen_other = False
            for text in texts:
                if (level, text) in native:
                    assert not seen_other
                else:
                    seen_other = True

    @_fuzz_settings
    @given(root=TREES)
    def test_shared_builder_merges_without_duplicates(self, root):
        builder = OutlineBuilder()
        classify([root], builder=builder)
        again = classify([root], builder=builder)
        assert again == classify([root])


@pytest.mark.fuzz
class TestFuzzHeuristicLevel:
    @_fuzz_settings
    @given(a=st.floats(0, 200, allow_nan=False), b=st.floats(0, 200, allow_nan=False))
    def test_larger_font_never_deeper(self, a, b):
        small, large = sorted((a, b))
        assert heuristic_level(large) <= heuristic_level(small)

    @_fuzz_settings
    @given(size=st.floats(0, 200, allow_nan=False))
    def test_level_in_range(self, size):
        assert 1 <= heuristic_level(size) <= 5


# ---------------------------------------------------------------------------
# Offline HTML
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzHtml:
    @_fuzz_settings
    @given(raw=HTML_LIKE)
    def test_from_html_never_raises(self, raw):
        root = from_html(raw)
        outline = classify([root])
        assert outline.total == len(_pairs(outline))

    @_fuzz_settings
    @given(raw=HTML_LIKE)
    def test_metadata_never_raises(self, raw):
        title, description = html_metadata(raw)
        assert isinstance(title, str)
        assert isinstance(description, str)


# ---------------------------------------------------------------------------
# Structured payloads and fusion
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzPayload:
    @_fuzz_settings
    @given(payload=JSON_LIKE, path=st.lists(st.sampled_from(["ai_overview", "search_information", "x"]), max_size=3))
    def test_lookup_path_never_raises(self, payload, path):
        lookup_path(payload, path)

    @_fuzz_settings
    @given(payload=JSON_LIKE)
    def test_structured_observations_are_booleans(self, payload):
        assert all(isinstance(v, bool) for v in structured_observations(payload).values())


@pytest.mark.fuzz
class TestFuzzFusion:
    @_fuzz_settings
    @given(
        structured=st.booleans(),
        rendered=st.booleans(),
        weak=st.booleans(),
        policy=st.sampled_from(list(ReconciliationPolicy)),
        promote=st.booleans(),
    )
    def test_adding_structured_evidence_never_lowers(self, structured, rendered, weak, policy, promote):
        signals = frozenset({"text_pattern"}) if weak else frozenset()
        base = FeatureObservation(structured, rendered, signals)
        more = FeatureObservation(True, rendered, signals)
        assert fuse(more, policy, promote_weak_signals=promote) >= fuse(base, policy, promote_weak_signals=promote)
