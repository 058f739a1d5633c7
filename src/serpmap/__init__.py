# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SERP Map: page outlines and confidence-rated search features for one query.

Two independent pipelines share a rendering session:
- outline: recovers a ranked H1-H6 outline from each ranking page, including
  open shadow trees, same-origin frames, and headings that are only styled
- features: fuses search API fields with rendered-page evidence into
  Confirmed / Probable / Absent per search feature
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum

HEADING_LEVELS: tuple[int, ...] = (1, 2, 3, 4, 5, 6)


class Feature(StrEnum):
    """Search-result features tracked per query."""

    FEATURED_SNIPPET = "featured_snippet"
    KNOWLEDGE_PANEL = "knowledge_panel"
    PEOPLE_ALSO_ASK = "people_also_ask"
    IMAGE_PACK = "image_pack"
    VIDEO = "video"
    AI_OVERVIEW = "ai_overview"


class ReconciliationPolicy(StrEnum):
    """How structured-source and rendered-page evidence are reconciled."""

    SOURCE_ONLY = "source-only"
    RENDERED_ONLY = "rendered-only"
    HYBRID_STRICT = "hybrid-strict"
    HYBRID_LENIENT = "hybrid-lenient"


_STATUS_RANK = {"absent": 0, "probable": 1, "confirmed": 2}
_STATUS_LABEL = {"absent": "Not detected", "probable": "Probable", "confirmed": "Confirmed"}
_STATUS_CONFIDENCE = {"absent": 0.0, "probable": 0.6, "confirmed": 1.0}


class FeatureStatus(StrEnum):
    """Ordered confidence tiers: CONFIRMED > PROBABLE > ABSENT."""

    CONFIRMED = "confirmed"
    PROBABLE = "probable"
    ABSENT = "absent"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self.value]

    @property
    def label(self) -> str:
        return _STATUS_LABEL[self.value]

    @property
    def confidence(self) -> float:
        return _STATUS_CONFIDENCE[self.value]

    # str ordering would compare values alphabetically
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, FeatureStatus):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, FeatureStatus):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, FeatureStatus):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, FeatureStatus):
            return NotImplemented
        return self.rank >= other.rank


@dataclass(frozen=True, slots=True)
class HeadingRecord:
    """One recovered heading. Never mutated after creation."""

    level: int
    text: str

    def __post_init__(self) -> None:
        if self.level not in HEADING_LEVELS:
            raise ValueError(f"heading level must be 1-6, got {self.level!r}")
        if not self.text.strip():
            raise ValueError("heading text must be non-empty after whitespace normalization")


@dataclass(frozen=True, slots=True)
class Outline:
    """Immutable level -> ordered heading texts mapping for one page."""

    levels: tuple[tuple[str, ...], ...] = ((),) * len(HEADING_LEVELS)

    def __getitem__(self, level: int) -> tuple[str, ...]:
        if level not in HEADING_LEVELS:
            raise KeyError(level)
        return self.levels[level - 1]

    @property
    def total(self) -> int:
        return sum(len(texts) for texts in self.levels)

    def counts(self) -> dict[int, int]:
        return {level: len(self[level]) for level in HEADING_LEVELS}

    def records(self) -> Iterator[HeadingRecord]:
        for level in HEADING_LEVELS:
            for text in self[level]:
                yield HeadingRecord(level, text)

    def as_dict(self) -> dict[int, list[str]]:
        return {level: list(self[level]) for level in HEADING_LEVELS}


class OutlineBuilder:
    """Accumulates headings for one aggregation pass.

    The ``(level, text)`` dedup set lives only as long as the builder;
    the first occurrence of a pair wins.
    """

    __slots__ = ("_levels", "_seen")

    def __init__(self) -> None:
        self._levels: dict[int, list[str]] = {level: [] for level in HEADING_LEVELS}
        self._seen: set[tuple[int, str]] = set()

    def add(self, record: HeadingRecord) -> bool:
        """Append *record* unless its (level, text) was already seen."""
        key = (record.level, record.text)
        if key in self._seen:
            return False
        self._seen.add(key)
        self._levels[record.level].append(record.text)
        return True

    def extend(self, outline: Outline) -> int:
        """Merge another outline in order; returns the number of new entries."""
        return sum(1 for record in outline.records() if self.add(record))

    @property
    def total(self) -> int:
        return len(self._seen)

    def build(self) -> Outline:
        return Outline(levels=tuple(tuple(self._levels[level]) for level in HEADING_LEVELS))


@dataclass(frozen=True, slots=True)
class FeatureObservation:
    """Evidence for one feature from the two independent channels.

    ``supporting_signals`` holds weak indicators (text pattern, background
    network call). They never set ``from_rendered_page`` on their own.
    """

    from_structured_source: bool = False
    from_rendered_page: bool = False
    supporting_signals: frozenset[str] = frozenset()

    @property
    def has_weak_signals(self) -> bool:
        return bool(self.supporting_signals)


@dataclass(frozen=True, slots=True)
class FrameReport:
    """Per-frame extraction summary (debug output)."""

    url: str
    counts: dict[int, int]
    retry: bool = False


@dataclass
class PageOutline:
    """Outline extraction result for one ranking page."""

    url: str
    outline: Outline
    title: str = ""
    description: str = ""
    frames: list[FrameReport] = field(default_factory=list)
    retried: bool = False
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def total_headings(self) -> int:
        return self.outline.total


@dataclass
class SerpReport:
    """Everything produced for one query."""

    query: str
    location: str
    google_domain: str
    gl: str
    hl: str
    policy: ReconciliationPolicy
    urls: list[str]
    pages: list[PageOutline]
    observations: dict[Feature, FeatureObservation]
    statuses: dict[Feature, FeatureStatus]
    google_url: str | None = None
    rendered_url: str | None = None
    secondary_probe_used: bool = False
    top_themes: list[str] = field(default_factory=list)
    intent: str = ""

    @property
    def skipped_urls(self) -> list[str]:
        done = {p.url for p in self.pages}
        return [u for u in self.urls if u not in done]
