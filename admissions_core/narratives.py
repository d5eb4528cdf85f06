"""Short interpretive narratives for the reasoning and mindset scores."""
from __future__ import annotations

import time
from typing import Callable, Optional

from .audit import AuditTrail
from .config import RetryPolicy
from .llm_bridge import TextService, narrative_or_fallback
from .rubrics import grade_label, language_style, mindset_band
from .types import DomainScore, StudentContext

FALLBACK_NARRATIVE = "Narrative generation encountered an error. Manual review recommended."


def reasoning_prompts(score: DomainScore, threshold: float, student: StudentContext) -> tuple[str, str]:
    level = grade_label(student.grade, student.programme)
    system = (
        f"You are an experienced assessor interpreting a reasoning score for a {level} admissions "
        f"assessment. Write in {language_style(student.locale)}, without bullet points. Be warm but "
        "precise and present the result as a snapshot, not a fixed judgement."
    )
    user = (
        f"A {level} applicant scored {score.correct}/{score.total} ({score.pct}%) on the reasoning "
        f"section. The school's threshold is {threshold}%.\n"
        "The section tests working with unfamiliar information, spotting patterns and solving "
        "multi-step problems, using multiple-choice questions only.\n"
        "In 3-4 sentences say whether the score meets the threshold, what it suggests about the "
        "student's reasoning, and what it means for readiness. Return only the narrative text."
    )
    return system, user


def mindset_prompts(score: float, student: StudentContext) -> tuple[str, str]:
    level = grade_label(student.grade, student.programme)
    band = mindset_band(score)
    system = (
        f"You are an experienced assessor interpreting a growth-mindset score for a {level} admissions "
        f"assessment. Write in {language_style(student.locale)}, without bullet points. Be supportive, "
        "never labelling, and frame the result as a snapshot of the current approach to learning."
    )
    user = (
        f"A {level} applicant has a mindset score of {score} out of 4.0, categorised as \"{band}\".\n"
        "Guide: 3.5-4.0 strong growth orientation; 2.5-3.4 developing; 1.5-2.4 may need targeted "
        "support; 0-1.4 significant coaching needed.\n"
        "Write 2-3 constructive sentences. Return only the narrative text."
    )
    return system, user


class NarrativeWriter:
    def __init__(self, service: Optional[TextService], *, policy: Optional[RetryPolicy] = None,
                 trail: Optional[AuditTrail] = None, sleep: Callable[[float], None] = time.sleep):
        self.service = service
        self.policy = policy or RetryPolicy()
        self.trail = trail or AuditTrail()
        self.sleep = sleep

    def reasoning(self, score: DomainScore, threshold: float, student: StudentContext) -> tuple[str, bool]:
        system, user = reasoning_prompts(score, threshold, student)
        return narrative_or_fallback(self.service, system, user, FALLBACK_NARRATIVE, policy=self.policy,
                                     trail=self.trail, stage="narrative", domain="reasoning", sleep=self.sleep)

    def mindset(self, score: float, student: StudentContext) -> tuple[str, bool]:
        system, user = mindset_prompts(score, student)
        return narrative_or_fallback(self.service, system, user, FALLBACK_NARRATIVE, policy=self.policy,
                                     trail=self.trail, stage="narrative", domain="mindset", sleep=self.sleep)


__all__ = ["NarrativeWriter", "reasoning_prompts", "mindset_prompts", "FALLBACK_NARRATIVE"]
