# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Top heading themes across ranking pages and a coarse search intent."""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

from . import PageOutline

THEME_WEIGHTS: dict[int, int] = {1: 3, 2: 2, 3: 1}
DEFAULT_THEME_LIMIT = 7

_INTENT_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Transactional", re.compile(r"buy|price|pricing|compare|best|software|solution|platform|vendor|quote|demo")),
    ("Informational", re.compile(r"what|how|guide|meaning|definition|vs|types|examples|faq")),
    ("Navigational", re.compile(r"login|portal|homepage|brand|official")),
)
DEFAULT_INTENT = "Informational"


def pick_top_themes(pages: Iterable[PageOutline], limit: int = DEFAULT_THEME_LIMIT) -> list[str]:
    """Most weighted H1-H3 texts; ties keep first-seen order."""
    scores: Counter[str] = Counter()
    for page in pages:
        for level, weight in THEME_WEIGHTS.items():
            for text in page.outline[level]:
                scores[text] += weight
    return [text for text, _ in scores.most_common(limit)] if limit > 0 else []


def detect_intent(themes: Iterable[str]) -> str:
    """First matching intent over the joined themes (substring match)."""
    joined = " ".join(themes).lower()
    for intent, pattern in _INTENT_RULES:
        if pattern.search(joined):
            return intent
    return DEFAULT_INTENT
