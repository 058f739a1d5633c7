# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Internationalization: search market presets + localized feature wording.

2-Layer architecture:
  Layer 1 (Markets): country presets (google_domain / gl / hl) and the
      Accept-Language header sent with every rendered page.
  Layer 2 (Detection): localized regex patterns matched against the visible
      text of a rendered results page. All languages are merged into one
      tuple per feature, so no locale parameter is needed at match time.

Detection languages: en, fr, de, ja, es, it, nl
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Layer 1: Search markets
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MarketPreset:
    """Google domain and interface parameters for one country."""

    google_domain: str
    gl: str
    hl: str


COUNTRY_PRESETS: dict[str, MarketPreset] = {
    "Australia": MarketPreset("google.com.au", "au", "en"),
    "New Zealand": MarketPreset("google.co.nz", "nz", "en"),
    "Singapore": MarketPreset("google.com.sg", "sg", "en"),
    "Malaysia": MarketPreset("google.com.my", "my", "en"),
    "India": MarketPreset("google.co.in", "in", "en"),
    "Japan": MarketPreset("google.co.jp", "jp", "ja"),
    "France": MarketPreset("google.fr", "fr", "fr"),
    "Germany": MarketPreset("google.de", "de", "de"),
    "United Kingdom": MarketPreset("google.co.uk", "gb", "en"),
    "United States": MarketPreset("google.com", "us", "en"),
    "Canada": MarketPreset("google.ca", "ca", "en"),
    "Ireland": MarketPreset("google.ie", "ie", "en"),
    "Spain": MarketPreset("google.es", "es", "es"),
    "Italy": MarketPreset("google.it", "it", "it"),
    "Netherlands": MarketPreset("google.nl", "nl", "nl"),
    "Sweden": MarketPreset("google.se", "se", "sv"),
    "Norway": MarketPreset("google.no", "no", "no"),
    "Denmark": MarketPreset("google.dk", "dk", "da"),
    "Finland": MarketPreset("google.fi", "fi", "fi"),
    "Austria": MarketPreset("google.at", "at", "de"),
    "Switzerland": MarketPreset("google.ch", "ch", "de"),
    "Belgium": MarketPreset("google.be", "be", "fr"),
    "United Arab Emirates": MarketPreset("google.ae", "ae", "en"),
    "Israel": MarketPreset("google.co.il", "il", "he"),
    "Türkiye": MarketPreset("google.com.tr", "tr", "tr"),
    "Mexico": MarketPreset("google.com.mx", "mx", "es"),
}

DEFAULT_GOOGLE_DOMAIN = "google.com"
DEFAULT_GL = "us"
DEFAULT_HL = "en"


def get_preset(country: str | None) -> MarketPreset | None:
    """Return the preset for *country* (case-insensitive), or None."""
    if not country:
        return None
    if country in COUNTRY_PRESETS:
        return COUNTRY_PRESETS[country]
    folded = country.strip().casefold()
    for name, preset in COUNTRY_PRESETS.items():
        if name.casefold() == folded:
            return preset
    return None


def is_english(hl: str | None) -> bool:
    """True when the interface language is English (``en``, ``en-GB``, ...)."""
    return (hl or DEFAULT_HL).lower().split("-")[0] == "en"


# ---------------------------------------------------------------------------
# Accept-Language header mapping
# ---------------------------------------------------------------------------

_HL_TO_ACCEPT_LANGUAGE: dict[str, str] = {
    "en": "en-US,en;q=0.9",
    "ja": "ja-JP,ja;q=0.9,en;q=0.8",
    "fr": "fr-FR,fr;q=0.9,en;q=0.8",
    "de": "de-DE,de;q=0.9,en;q=0.8",
    "es": "es-ES,es;q=0.9,en;q=0.8",
    "it": "it-IT,it;q=0.9,en;q=0.8",
    "nl": "nl-NL,nl;q=0.9,en;q=0.8",
    "sv": "sv-SE,sv;q=0.9,en;q=0.8",
    "no": "nb-NO,no;q=0.9,en;q=0.8",
    "da": "da-DK,da;q=0.9,en;q=0.8",
    "fi": "fi-FI,fi;q=0.9,en;q=0.8",
    "he": "he-IL,he;q=0.9,en;q=0.8",
    "tr": "tr-TR,tr;q=0.9,en;q=0.8",
}


def accept_language_for_hl(hl: str | None) -> str:
    """Return an Accept-Language header value for interface language *hl*.

    Unknown languages are sent as-is with an English fallback.
    """
    code = (hl or DEFAULT_HL).strip()
    base = code.lower().split("-")[0]
    if base in _HL_TO_ACCEPT_LANGUAGE:
        return _HL_TO_ACCEPT_LANGUAGE[base]
    return f"{code},en;q=0.8"


# ---------------------------------------------------------------------------
# Layer 2: Localized feature wording
# ---------------------------------------------------------------------------

_APOS = "['’]"

AI_OVERVIEW_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # en
        r"ai overview",
        r"overview from ai",
        r"generated by ai",
        # fr
        rf"aperçu (?:par|de) l{_APOS}ia",
        rf"généré par l{_APOS}ia",
        rf"vue d{_APOS}ensemble de l{_APOS}ia",
        # de
        r"ki[- ]?(?:übersicht|überblick)",
        r"durch ki erstellt",
        r"von ki generiert",
        # ja
        r"ai[ 　]?概要",
        r"ai[ 　]?による概要",
        r"ai[ 　]?によって生成",
        # es
        r"resumen de ia",
        r"descripción general de ia",
        r"generado por ia",
        # it
        rf"panoramica (?:ia|dell{_APOS}ia)",
        rf"generat[ao] dall{_APOS}ia",
        # nl
        r"ai[- ]?overzicht",
        r"gegenereerd door ai",
    )
)

PEOPLE_ALSO_ASK_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # en
        r"people also ask",
        # fr
        r"autres questions posées",
        # de
        r"ähnliche fragen",
        # ja
        r"他の人はこちらも質問",
        # es
        r"más preguntas",
        r"otras preguntas de los usuarios",
        # it
        r"altre domande",
        # nl
        r"mensen vragen ook",
        r"anderen vroegen ook",
    )
)


def matches_any(text: str, patterns: tuple[re.Pattern[str], ...]) -> bool:
    """True if any pattern matches *text* (patterns are case-insensitive)."""
    if not text:
        return False
    return any(p.search(text) for p in patterns)
