from __future__ import annotations

import re
from typing import Dict, List, Tuple

from .config import LANGUAGE_DOMAINS, QUANTITATIVE_DOMAINS

_BRITISH_MARKERS: tuple[str, ...] = (
    "BRITISH", "UK", "IGCSE", "GCSE", "A-LEVEL", "NATIONAL CURRICULUM", "ENGLISH CURRICULUM",
)

# whole tokens only: "en-US", "USA", "American" but not "Australia" or "Russian"
_AMERICAN_RE = re.compile(r"(?<![A-Z])(?:USA?|AMERICAN?)(?![A-Z])")

# (lower bound, band); first bound the score reaches wins
WRITING_SCORE_BANDS: Tuple[Tuple[float, str], ...] = (
    (3.5, "Excellent"),
    (2.5, "Good"),
    (1.5, "Developing"),
    (0.5, "Emerging"),
    (0.0, "Insufficient"),
)

MINDSET_BANDS: Tuple[Tuple[float, str], ...] = (
    (3.5, "Strong growth orientation"),
    (2.5, "Developing growth mindset"),
    (1.5, "May need targeted support"),
    (0.0, "Significant coaching needed"),
)

RUBRICS: Dict[str, Dict[str, object]] = {
    "quantitative": {"version": "v4", "criteria": [
        {"id": "reasoning", "weight": 0.35, "desc": "Logical, correct thinking about the problem"},
        {"id": "concepts", "weight": 0.25, "desc": "Understands why, not only what"},
        {"id": "vocabulary", "weight": 0.15, "desc": "Uses mathematical terms suited to the grade"},
        {"id": "strategy", "weight": 0.15, "desc": "Describes methods or approaches"},
        {"id": "expression", "weight": 0.10, "desc": "Prose quality, noted lightly"},
    ]},
    "language": {"version": "v4", "criteria": [
        {"id": "content", "weight": 0.30, "desc": "Relevant ideas with supporting detail"},
        {"id": "organisation", "weight": 0.20, "desc": "Coherent structure and paragraphing"},
        {"id": "sentences", "weight": 0.15, "desc": "Varied, controlled sentence structures"},
        {"id": "vocabulary", "weight": 0.15, "desc": "Range and precision of word choice"},
        {"id": "accuracy", "weight": 0.20, "desc": "Spelling, punctuation and grammar"},
    ]},
    "_default": {"version": "v4", "criteria": [
        {"id": "thinking", "weight": 0.40, "desc": "Quality and depth of thinking"},
        {"id": "relevance", "weight": 0.30, "desc": "Addresses the prompt"},
        {"id": "engagement", "weight": 0.30, "desc": "Genuine engagement with the topic"},
    ]},
}

_LEVELS: Dict[str, Tuple[str, ...]] = {
    "quantitative": (
        "Excellent (4): clear, correct reasoning with apt mathematical vocabulary and depth beyond grade level.",
        "Good (3): sound understanding with some reasoning; minor gaps in depth or precision.",
        "Developing (2): partial or unclear reasoning; vocabulary basic or imprecise.",
        "Emerging (1): superficial, little reasoning, or visible misconceptions.",
        "Insufficient (0): no substantive mathematical content, or off-prompt.",
    ),
    "language": (
        "Excellent (4): exceeds grade expectations in both ideas and control of written English.",
        "Good (3): meets expectations; relevant content and competent writing with minor gaps.",
        "Developing (2): partly meets expectations; clear room to grow in content or accuracy.",
        "Emerging (1): below expectations; thin content or significant weaknesses in control.",
        "Insufficient (0): no substantive response, or off-prompt.",
    ),
    "_default": (
        "Excellent (4): exceeds grade expectations in content and expression.",
        "Good (3): meets grade expectations with minor gaps.",
        "Developing (2): partly meets expectations; emerging competence.",
        "Emerging (1): below expectations; significant support needed.",
        "Insufficient (0): no substantive response, or off-prompt.",
    ),
}


def is_british(programme: str | None) -> bool:
    p = (programme or "").upper()
    return any(m in p for m in _BRITISH_MARKERS)


def is_american(text: str | None) -> bool:
    return bool(_AMERICAN_RE.search((text or "").upper()))


def grade_label(grade: int, programme: str | None = None) -> str:
    """British-curriculum schools count in Years, one ahead of the grade."""
    return f"Year {grade + 1}" if is_british(programme) else f"Grade {grade}"


def curriculum_context(programme: str | None) -> str:
    p = (programme or "").upper()
    if "IB" in p:
        return ("an International Baccalaureate (IB) school; use IB register: learner profile, "
                "approaches to learning, conceptual understanding and inquiry")
    if is_american(p):
        return ("an American-curriculum school; use Common Core register: grade-level benchmarks, "
                "ELA and Math standards, college readiness")
    if is_british(programme):
        return ("a British-curriculum school; use National Curriculum and Cambridge register: "
                "key stage expectations, attainment targets, GCSE/IGCSE readiness")
    return "an international school; use neutral professional language suited to selective admissions"


def language_style(locale: str | None) -> str:
    return "American English" if is_american(locale) else "British English"


def rubric_family(domain: str) -> str:
    d = (domain or "").lower()
    if d in QUANTITATIVE_DOMAINS or "math" in d:
        return "quantitative"
    if d in LANGUAGE_DOMAINS or "language" in d:
        return "language"
    return "_default"


def rubric_text(domain: str) -> str:
    family = rubric_family(domain)
    rubric = RUBRICS[family]
    lines: List[str] = [f"EVALUATION FOCUS: {domain.upper()}"]
    if family == "quantitative":
        lines.append(
            "Judge the mathematical thinking first. Grammar, spelling and style are noted briefly "
            "and must not move the band: sound reasoning in plain sentences outranks fluent prose "
            "with weak reasoning."
        )
    elif family == "language":
        lines.append("Judge both the content and the craft of the writing.")
    else:
        lines.append(f"Judge the depth of thinking and engagement shown for the {domain} prompt.")
    lines.append("Criteria:")
    for c in rubric["criteria"]:  # type: ignore[index]
        lines.append(f"- {c['id']} ({int(float(c['weight']) * 100)}%): {c['desc']}")
    lines.append("Bands:")
    lines.extend(f"- {lvl}" for lvl in _LEVELS[family])
    return "\n".join(lines)


def band_for_score(score: float) -> str:
    for bound, band in WRITING_SCORE_BANDS:
        if score >= bound:
            return band
    return "Insufficient"


def mindset_band(score: float) -> str:
    for bound, band in MINDSET_BANDS:
        if score >= bound:
            return band
    return MINDSET_BANDS[-1][1]
