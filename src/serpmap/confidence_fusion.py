# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Reconcile structured-source and rendered-page evidence into a FeatureStatus.

Pure functions. Policy table::

  source-only     structured            -> CONFIRMED, else ABSENT
  rendered-only   rendered              -> CONFIRMED, else ABSENT
  hybrid-strict   structured or rendered -> CONFIRMED, else ABSENT
  hybrid-lenient  structured or rendered -> CONFIRMED
                  weak signals only      -> PROBABLE (CONFIRMED when promoted)
                  nothing                -> ABSENT
"""

from __future__ import annotations

from collections.abc import Mapping

from . import Feature, FeatureObservation, FeatureStatus, ReconciliationPolicy


def _confirmed_if(evidence: bool) -> FeatureStatus:
    return FeatureStatus.CONFIRMED if evidence else FeatureStatus.ABSENT


def fuse(
    observation: FeatureObservation,
    policy: ReconciliationPolicy,
    *,
    promote_weak_signals: bool = False,
) -> FeatureStatus:
    """Status of one feature under *policy*."""
    match ReconciliationPolicy(policy):
        case ReconciliationPolicy.SOURCE_ONLY:
            return _confirmed_if(observation.from_structured_source)
        case ReconciliationPolicy.RENDERED_ONLY:
            return _confirmed_if(observation.from_rendered_page)
        case ReconciliationPolicy.HYBRID_STRICT:
            return _confirmed_if(observation.from_structured_source or observation.from_rendered_page)
        case ReconciliationPolicy.HYBRID_LENIENT:
            if observation.from_structured_source or observation.from_rendered_page:
                return FeatureStatus.CONFIRMED
            if observation.has_weak_signals:
                return FeatureStatus.CONFIRMED if promote_weak_signals else FeatureStatus.PROBABLE
            return FeatureStatus.ABSENT
    raise AssertionError(f"unhandled policy: {policy!r}")


def fuse_all(
    observations: Mapping[Feature, FeatureObservation],
    policy: ReconciliationPolicy,
    *,
    promote_weak_signals: bool = False,
) -> dict[Feature, FeatureStatus]:
    """Fuse every observed feature; features without an observation are ABSENT."""
    empty = FeatureObservation()
    return {
        feature: fuse(observations.get(feature, empty), policy, promote_weak_signals=promote_weak_signals)
        for feature in Feature
    }
