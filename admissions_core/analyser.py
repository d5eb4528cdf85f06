from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Sequence

from . import config as cfg_defaults
from .audit import AuditTrail
from .config import ACADEMIC_DOMAINS, RetryPolicy
from .llm_bridge import TextService, narrative_or_fallback
from .mcq import pct
from .rubrics import curriculum_context, grade_label, language_style
from .types import ConstructScore, MCQAnalysis, QuestionResult, StudentContext

FALLBACK_NARRATIVE = "MCQ analysis could not be generated at this time. Manual review recommended."


def summarise_constructs(items: Sequence[QuestionResult]) -> List[tuple[ConstructScore, List[str]]]:
    """Per-construct accuracy with the missed questions, weakest construct first."""
    grouped: Dict[str, List[QuestionResult]] = OrderedDict()
    for r in items:
        grouped.setdefault(r.construct or "General", []).append(r)
    out: List[tuple[ConstructScore, List[str]]] = []
    for construct, rows in grouped.items():
        correct = sum(1 for r in rows if r.is_correct)
        missed = [f"Q{r.question_number}: {r.question_text[:80]}" for r in rows if not r.is_correct]
        out.append((ConstructScore(domain=rows[0].domain, construct=construct, correct=correct,
                                   total=len(rows), pct=pct(correct, len(rows))), missed))
    # stable sort keeps form order among equal scores
    out.sort(key=lambda pair: pair[0].pct)
    return out


def _prompts(domain: str, summary, overall: float, student: StudentContext) -> tuple[str, str]:
    name = student.first_name or "the student"
    level = grade_label(student.grade, student.programme)
    label = domain.capitalize()
    system = (
        "You are an experienced assessor writing for a school admissions panel. "
        f"You are analysing the {label} multiple-choice results of a {level} applicant to "
        f"{curriculum_context(student.programme)}. Write in {language_style(student.locale)}, "
        f"in the third person, referring to the student as \"{name}\". "
        "Explain what the pattern of right and wrong answers reveals about underlying skills and gaps; "
        "do not restate the percentages. Use 80-120 words of flowing prose, no bullet points."
    )
    lines = []
    for cs, missed in summary:
        line = f"- {cs.construct}: {cs.correct}/{cs.total} ({cs.pct}%)"
        if missed:
            line += "\n  Missed: " + "; ".join(missed)
        lines.append(line)
    user = (
        f"{label} multiple-choice results for {name} ({level}).\n"
        f"Overall: {overall}%\n\n"
        "By construct, weakest first:\n" + "\n".join(lines) + "\n\n"
        f"Write a diagnostic narrative on what this pattern shows about {name}'s {domain} skills "
        "and which areas may need attention."
    )
    return system, user


class MCQAnalyser:
    def __init__(
        self,
        service: Optional[TextService],
        *,
        policy: Optional[RetryPolicy] = None,
        trail: Optional[AuditTrail] = None,
        min_items: int = cfg_defaults.ANALYSIS_MIN_ITEMS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.policy = policy or RetryPolicy()
        self.trail = trail or AuditTrail()
        self.min_items = min_items
        self.sleep = sleep

    def analyse(self, domain: str, results: Sequence[QuestionResult],
                student: StudentContext) -> Optional[MCQAnalysis]:
        items = [r for r in results if r.domain == domain]
        if len(items) < self.min_items:
            self.trail.emit("analyser", "skipped", domain=domain, reason=f"{len(items)} items")
            return None
        summary = summarise_constructs(items)
        overall = pct(sum(1 for r in items if r.is_correct), len(items))
        system, user = _prompts(domain, summary, overall, student)
        text, ok = narrative_or_fallback(
            self.service, system, user, FALLBACK_NARRATIVE,
            policy=self.policy, trail=self.trail, stage="analyser", domain=domain, sleep=self.sleep,
        )
        constructs = [cs for cs, _ in summary]
        analysis = MCQAnalysis(
            domain=domain,
            narrative=text,
            constructs=constructs,
            strengths=[cs.construct for cs in constructs if cs.pct >= cfg_defaults.CONSTRUCT_STRONG_PCT],
            weaknesses=[cs.construct for cs in constructs if cs.pct < cfg_defaults.CONSTRUCT_WEAK_PCT],
            missed=[m for _, missed in summary for m in missed],
            needs_review=not ok,
        )
        self.trail.emit("analyser", "analysed", domain=domain, source="ai" if ok else "fallback")
        return analysis

    def analyse_all(self, results: Sequence[QuestionResult], student: StudentContext,
                    domains: Sequence[str] = ACADEMIC_DOMAINS) -> Dict[str, MCQAnalysis]:
        out: Dict[str, MCQAnalysis] = {}
        for d in domains:
            a = self.analyse(d, results, student)
            if a is not None:
                out[d] = a
        return out


__all__ = ["MCQAnalyser", "summarise_constructs", "FALLBACK_NARRATIVE"]
