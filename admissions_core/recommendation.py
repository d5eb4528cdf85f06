"""Deterministic admission recommendation.

Rules, first match wins.  ``below`` is the set of assessed academic domains
whose combined percentage is under threshold (equal counts as meeting);
a domain is *significantly* below when it misses by more than
``SIGNIFICANT_GAP`` points.

1. nothing below, mindset >= ``MINDSET_READY_MIN`` or not assessed -> Ready to admit
2. nothing below                                              -> Ready to admit with academic support
3. one domain below, not significantly: english               -> Admit with language support
                                        any other domain      -> Ready to admit with academic support
4. two or more significantly below                            -> Not yet ready
5. anything else                                              -> Consider with support

Raising any score can only shrink ``below`` and the significant set, and
every rule above ranks no worse than the rules it can fall through to, so
the band is monotonic in each input.  Lens scores are reported, never used.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from . import config as cfg_defaults
from .answer_keys import Thresholds
from .mcq import round1
from .types import DomainResult, DomainScore, RecommendationResult, WritingEvaluation

READY = "Ready to admit"
READY_SUPPORT = "Ready to admit with academic support"
LANGUAGE_SUPPORT = "Admit with language support"
CONSIDER = "Consider with support"
NOT_YET = "Not yet ready"


def combine(mcq_pct: Optional[float], writing_score: Optional[float],
            mcq_weight: float = cfg_defaults.MCQ_WEIGHT,
            writing_weight: float = cfg_defaults.WRITING_WEIGHT) -> float:
    """Blend MCQ percentage with a 0-4 writing score; either side may be missing."""
    if writing_score is None:
        return round1(mcq_pct or 0.0)
    writing_pct = max(0.0, min(4.0, writing_score)) / 4 * 100
    if mcq_pct is None:
        return round1(writing_pct)
    return round1(mcq_pct * mcq_weight + writing_pct * writing_weight)


def build_domain_results(
    scores: Iterable[DomainScore],
    writing: Iterable[WritingEvaluation],
    thresholds: Thresholds,
    domains: Sequence[str] = cfg_defaults.ACADEMIC_DOMAINS,
) -> List[DomainResult]:
    by_domain = {s.domain: s for s in scores}
    written = {w.domain: w.score for w in writing}
    out: List[DomainResult] = []
    for d in domains:
        s = by_domain.get(d)
        mcq_assessed = bool(s and s.assessed)
        w = written.get(d)
        assessed = mcq_assessed or w is not None
        out.append(DomainResult(
            domain=d,
            mcq_pct=s.pct if s else 0.0,
            combined_pct=combine(s.pct if mcq_assessed else None, w) if assessed else 0.0,
            threshold=thresholds.for_domain(d),
            assessed=assessed,
            writing_score=w,
        ))
    return out


def calculate(
    domains: Sequence[DomainResult],
    mindset_score: Optional[float],
    *,
    weights: Optional[Mapping[str, float]] = None,
    lens_scores: Optional[Mapping[str, float]] = None,
    significant_gap: float = cfg_defaults.SIGNIFICANT_GAP,
    mindset_min: float = cfg_defaults.MINDSET_READY_MIN,
) -> RecommendationResult:
    weights = dict(weights or cfg_defaults.DOMAIN_WEIGHTS)
    assessed = [d for d in domains if d.assessed]
    not_assessed = [d.domain for d in domains if not d.assessed]
    combined: Dict[str, float] = {d.domain: round1(d.combined_pct) for d in assessed}
    deltas: Dict[str, float] = {d.domain: round1(combined[d.domain] - d.threshold) for d in assessed}
    below = [d.domain for d in assessed if combined[d.domain] < d.threshold]
    significant = [name for name in below if deltas[name] < -significant_gap]

    total_w = sum(weights.get(d.domain, 0.0) for d in assessed)
    if total_w > 0:
        overall = round1(sum(combined[d.domain] * weights.get(d.domain, 0.0) for d in assessed) / total_w)
    elif assessed:
        overall = round1(sum(combined.values()) / len(assessed))
    else:
        overall = 0.0

    mindset_ok = mindset_score is None or mindset_score >= mindset_min
    if not assessed:
        band, why = CONSIDER, "No academic domain could be assessed; the result needs manual review."
    elif not below and mindset_ok:
        band, why = READY, "Every assessed academic domain meets its threshold"
        why += "." if mindset_score is None else f" and the mindset score of {mindset_score} is at least {mindset_min}."
    elif not below:
        band, why = READY_SUPPORT, (f"Every assessed academic domain meets its threshold, but the mindset score of "
                                    f"{mindset_score} is below {mindset_min}.")
    elif len(below) == 1 and not significant:
        name = below[0]
        band = LANGUAGE_SUPPORT if name == "english" else READY_SUPPORT
        why = f"Only {name} is below threshold, by {abs(deltas[name])} points (within {significant_gap})."
    elif len(significant) >= 2:
        band, why = NOT_YET, (f"{len(significant)} domains are more than {significant_gap} points below "
                              f"threshold: {', '.join(significant)}.")
    else:
        band, why = CONSIDER, (f"{len(below)} domain(s) below threshold ({', '.join(below)}); "
                               f"{len(significant)} by more than {significant_gap} points.")
    if not_assessed and assessed:
        why += f" Not assessed: {', '.join(not_assessed)}."

    return RecommendationResult(
        deltas=deltas,
        overall_academic_pct=overall,
        recommendation_band=band,  # type: ignore[arg-type]
        narrative=why,
        combined=combined,
        not_assessed=not_assessed,
        lens_scores=dict(lens_scores or {}),
        needs_review=not assessed,
    )


__all__ = [
    "READY",
    "READY_SUPPORT",
    "LANGUAGE_SUPPORT",
    "CONSIDER",
    "NOT_YET",
    "build_domain_results",
    "calculate",
    "combine",
]
