from __future__ import annotations

import re
import time
from typing import Callable, Iterable, Mapping, Optional

from .audit import AuditTrail
from .config import RetryPolicy
from .llm_bridge import TextService, narrative_or_fallback
from .rubrics import grade_label, language_style, mindset_band
from .types import DomainResult, ExecutiveSummary, RecommendationResult, StudentContext, WritingEvaluation

_LEADING_PUNCT_RE = re.compile(r"^[\s\"'“‘*_]+")


def template_summary(student: StudentContext, rec: RecommendationResult) -> str:
    subject = student.first_name or "This applicant"
    return (f"{subject} achieved an overall academic score of {rec.overall_academic_pct:.1f}%. "
            f"Based on this profile, the recommendation is {rec.recommendation_band}.")


def opens_with_name(text: str, first_name: str) -> bool:
    if not first_name:
        return bool(text.strip())
    head = _LEADING_PUNCT_RE.sub("", text)
    return re.match(rf"{re.escape(first_name)}\b", head, re.IGNORECASE) is not None


def _prompts(student: StudentContext, rec: RecommendationResult, domains: Iterable[DomainResult],
             writing: Mapping[str, WritingEvaluation], mindset: Optional[float]) -> tuple[str, str]:
    first = student.first_name or "the applicant"
    level = grade_label(student.grade, student.programme)
    system = (
        "You are a senior assessment specialist writing the executive summary of an admissions report "
        "for the Head of Admissions. Write in the third person. "
        f"Open with the student's first name, \"{first}\", as the grammatical subject, and never begin a "
        "sentence with \"The student\" or \"The\". "
        "Synthesise the evidence into 3-4 sentences that end by justifying the recommendation, for example "
        f"\"Based on this profile, the recommendation is {rec.recommendation_band}.\" "
        f"Use {language_style(student.locale)} spelling and no bullet points."
    )
    lines = [f"Student: {first}", f"Applying for: {level}",
             f"Recommendation: {rec.recommendation_band}",
             f"Overall academic: {rec.overall_academic_pct:.1f}%"]
    for d in domains:
        if not d.assessed:
            lines.append(f"{d.domain.capitalize()}: not assessed")
            continue
        w = writing.get(d.domain)
        extra = f", writing: {w.band}" if w else ", no writing"
        lines.append(f"{d.domain.capitalize()}: {d.combined_pct:.1f}% combined (MCQ {d.mcq_pct:.1f}%{extra}), "
                     f"threshold {d.threshold}%")
    if mindset is None:
        lines.append("Mindset: not assessed")
    else:
        lines.append(f"Mindset: {mindset_band(mindset)} ({mindset:.1f}/4)")
    for lens in ("values", "creativity"):
        if lens in writing:
            lines.append(f"{lens.capitalize()}: {writing[lens].band}")
    return system, "\n".join(lines)


class SummaryGenerator:
    def __init__(self, service: Optional[TextService], *, policy: Optional[RetryPolicy] = None,
                 trail: Optional[AuditTrail] = None, sleep: Callable[[float], None] = time.sleep):
        self.service = service
        self.policy = policy or RetryPolicy()
        self.trail = trail or AuditTrail()
        self.sleep = sleep

    def generate(self, student: StudentContext, rec: RecommendationResult, domains: Iterable[DomainResult],
                 writing: Mapping[str, WritingEvaluation], mindset: Optional[float]) -> ExecutiveSummary:
        fallback_text = template_summary(student, rec)
        system, user = _prompts(student, rec, list(domains), writing, mindset)
        text, ok = narrative_or_fallback(self.service, system, user, fallback_text, policy=self.policy,
                                         trail=self.trail, stage="summary", sleep=self.sleep)
        if ok and not opens_with_name(text, student.first_name):
            self.trail.emit("summary", "fallback", reason="does not open with the student's name",
                            error=text[:60])
            ok, text = False, fallback_text
        if ok:
            self.trail.emit("summary", "generated", source="ai")
        return ExecutiveSummary(text=text, needs_review=not ok, source="ai" if ok else "fallback")


__all__ = ["SummaryGenerator", "template_summary", "opens_with_name"]
