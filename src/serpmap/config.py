# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Run configuration: frozen dataclasses, YAML loading, validation.

Every field has a default except the search query. A YAML file mirrors the
dataclass layout::

    search:
      query: "3d secure"
      country: Australia
      num: 10
    extraction:
      include_hidden: true
      sparse_heading_threshold: 2
    probe:
      policy: hybrid-lenient
      render_serp: true
    concurrency: 1
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from . import ReconciliationPolicy
from .errors import ConfigError
from .i18n import DEFAULT_GL, DEFAULT_GOOGLE_DOMAIN, DEFAULT_HL, get_preset

API_KEY_ENV = "SERPAPI_API_KEY"
MAX_NUM_RESULTS = 100
VALID_SAFE_VALUES = frozenset({"active", "off"})


@dataclass(frozen=True, slots=True)
class ExtractionConfig:
    """Outline extraction knobs (per page)."""

    include_hidden: bool = True
    heading_like: bool = True
    sparse_heading_threshold: int = 2
    extra_wait_ms: int = 2000
    retry_wait_ms: int = 2500
    scroll_steps: int = 16
    scroll_step_px: int = 950
    scroll_pause_ms: int = 110
    respect_noindex: bool = False
    same_origin_frames_only: bool = True
    navigation_timeout_ms: int = 60000
    networkidle_timeout_ms: int = 20000
    page_deadline_s: float = 180.0
    max_nodes: int = 20000

    def __post_init__(self) -> None:
        for name in (
            "sparse_heading_threshold",
            "extra_wait_ms",
            "retry_wait_ms",
            "scroll_steps",
            "scroll_step_px",
            "scroll_pause_ms",
            "networkidle_timeout_ms",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"extraction.{name} must be >= 0")
        if self.navigation_timeout_ms <= 0:
            raise ConfigError("extraction.navigation_timeout_ms must be > 0")
        if self.page_deadline_s <= 0:
            raise ConfigError("extraction.page_deadline_s must be > 0")
        if self.max_nodes <= 0:
            raise ConfigError("extraction.max_nodes must be > 0")


@dataclass(frozen=True, slots=True)
class ProbeConfig:
    """Feature probing and reconciliation."""

    policy: ReconciliationPolicy = ReconciliationPolicy.HYBRID_LENIENT
    promote_weak_signals: bool = False
    render_serp: bool = False
    aio_probe_always: bool = False
    aio_probe_hl_fallback: str = "en"
    serp_extra_wait_ms: int = 2000

    def __post_init__(self) -> None:
        if not isinstance(self.policy, ReconciliationPolicy):
            try:
                object.__setattr__(self, "policy", ReconciliationPolicy(self.policy))
            except ValueError:
                valid = ", ".join(p.value for p in ReconciliationPolicy)
                raise ConfigError(f"probe.policy must be one of: {valid}") from None
        if self.serp_extra_wait_ms < 0:
            raise ConfigError("probe.serp_extra_wait_ms must be >= 0")


@dataclass(frozen=True, slots=True)
class SearchConfig:
    """One search query in one market."""

    query: str = ""
    location: str = ""
    country: str = ""
    google_domain: str = ""
    gl: str = ""
    hl: str = ""
    num: int = 10
    safe: str = "off"
    lr: str = ""
    max_pages: int = 0  # 0 = same as num
    api_key: str = ""

    def __post_init__(self) -> None:
        preset = get_preset(self.country)
        if preset is not None:
            if not self.google_domain:
                object.__setattr__(self, "google_domain", preset.google_domain)
            if not self.gl:
                object.__setattr__(self, "gl", preset.gl)
            if not self.hl:
                object.__setattr__(self, "hl", preset.hl)
        if not self.google_domain:
            object.__setattr__(self, "google_domain", DEFAULT_GOOGLE_DOMAIN)
        if not self.gl:
            object.__setattr__(self, "gl", DEFAULT_GL)
        if not self.hl:
            object.__setattr__(self, "hl", DEFAULT_HL)
        if self.num < 1:
            raise ConfigError("search.num must be >= 1")
        object.__setattr__(self, "num", min(MAX_NUM_RESULTS, self.num))
        if self.max_pages < 0:
            raise ConfigError("search.max_pages must be >= 0")
        if self.safe not in VALID_SAFE_VALUES:
            raise ConfigError(f"search.safe must be 'active' or 'off', got {self.safe!r}")
        if not self.api_key:
            object.__setattr__(self, "api_key", os.environ.get(API_KEY_ENV, ""))

    @property
    def page_limit(self) -> int:
        return self.max_pages or self.num

    def require_ready(self) -> None:
        """Raise ConfigError unless the search can actually be issued."""
        missing = [name for name in ("query", "location", "api_key") if not getattr(self, name)]
        if missing:
            hint = f" (or set {API_KEY_ENV})" if "api_key" in missing else ""
            raise ConfigError(f"missing search settings: {', '.join(missing)}{hint}")


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Top-level run configuration."""

    search: SearchConfig = field(default_factory=SearchConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    concurrency: int = 1

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError("concurrency must be >= 1")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> RunConfig:
        """Build a RunConfig from plain data (e.g. parsed YAML)."""
        data = dict(data or {})
        unknown = set(data) - {"search", "extraction", "probe", "concurrency"}
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")
        concurrency = data.get("concurrency", 1)
        if not isinstance(concurrency, int) or isinstance(concurrency, bool):
            raise ConfigError("concurrency must be an integer")
        return cls(
            search=_section(SearchConfig, data.get("search"), "search"),
            extraction=_section(ExtractionConfig, data.get("extraction"), "extraction"),
            probe=_section(ProbeConfig, data.get("probe"), "probe"),
            concurrency=concurrency,
        )

    def with_overrides(self, **sections: Mapping[str, Any]) -> RunConfig:
        """Return a copy with per-section field overrides (None values ignored)."""
        changes: dict[str, Any] = {}
        for name, values in sections.items():
            if name == "concurrency":
                if values is not None:
                    changes["concurrency"] = values
                continue
            current = getattr(self, name)
            updates = {k: v for k, v in dict(values).items() if v is not None}
            if name == "search" and "country" in updates:
                # a new country re-derives market fields unless given explicitly
                for key in ("google_domain", "gl", "hl"):
                    updates.setdefault(key, "")
            if updates:
                _check_fields(type(current), updates, name)
                changes[name] = dataclasses.replace(current, **updates)
        return dataclasses.replace(self, **changes) if changes else self


def _check_fields(cls: type, values: Mapping[str, Any], section: str) -> None:
    fields = {f.name: f for f in dataclasses.fields(cls)}
    for key, value in values.items():
        if key not in fields:
            raise ConfigError(f"unknown {section} key: {key}")
        default = fields[key].default
        if default is dataclasses.MISSING or isinstance(default, ReconciliationPolicy):
            continue
        expected = type(default)
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            continue
        if isinstance(value, bool) != (expected is bool) or not isinstance(value, expected):
            raise ConfigError(f"{section}.{key} must be {expected.__name__}, got {type(value).__name__}")


def _section(cls: type, values: Any, name: str) -> Any:
    if values is None:
        return cls()
    if not isinstance(values, Mapping):
        raise ConfigError(f"{name} must be a mapping")
    _check_fields(cls, values, name)
    return cls(**values)


def load_config(path: str | Path) -> RunConfig:
    """Load a RunConfig from a YAML file."""
    p = Path(path)
    try:
        with open(p, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {p}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {p}: {e}") from e
    if data is not None and not isinstance(data, Mapping):
        raise ConfigError(f"{p}: top level must be a mapping")
    return RunConfig.from_mapping(data)
