"""AI-assisted evaluation of extended writing.

``WritingEvaluator.evaluate`` never raises for service trouble: short answers
are rated without a request, and an exhausted retry budget or an unusable
reply produces the provisional ``Developing``/2 rating flagged for review.
"""
from __future__ import annotations

import math
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError, field_validator

from . import config as cfg_defaults
from .audit import AuditTrail
from .config import RetryPolicy
from .errors import AIServiceUnavailable, MalformedAIResponse
from .llm_bridge import TextService, complete_with_retry, parse_json
from .rubrics import band_for_score, curriculum_context, grade_label, language_style, rubric_family, rubric_text
from .types import WritingEvaluation, WritingTask

FALLBACK_BAND = "Developing"
FALLBACK_SCORE = 2.0


def clamp_score(value: Any) -> float:
    """Clamp a numeric score into 0-4; non-numeric or non-finite input raises ``ValueError``."""
    if isinstance(value, bool):
        raise ValueError(f"score is not a number: {value!r}")
    try:
        s = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"score is not a number: {value!r}") from None
    if not math.isfinite(s):
        raise ValueError(f"score is not finite: {value!r}")
    return max(0.0, min(4.0, s))


def normalize_band(raw: Any, score: float) -> str:
    """Map free text onto the fixed band set; unrecognised text follows the score."""
    s = str(raw or "").strip().lower()
    if "excellent" in s:
        return "Excellent"
    if "good" in s:
        return "Good"
    if "develop" in s:
        return "Developing"
    if "emerg" in s or "limited" in s:
        return "Emerging"
    if "insufficient" in s or s in {"none", "no response"}:
        return "Insufficient"
    return band_for_score(score)


class EvaluationPayload(BaseModel):
    band: str
    score: float
    content_narrative: str = ""
    writing_narrative: str = ""
    threshold_comment: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> float:
        return clamp_score(v)

    @field_validator("content_narrative", "writing_narrative", "threshold_comment", "band", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


def insufficient(domain: str) -> WritingEvaluation:
    return WritingEvaluation(
        domain=domain,
        band="Insufficient",
        score=0.0,
        content_narrative="No substantive response was provided for this writing task.",
        writing_narrative="Writing quality could not be evaluated because the response was blank or too short.",
        threshold_comment="This response does not meet the minimum requirements for evaluation.",
        source="guard",
    )


def fallback(domain: str, reason: str) -> WritingEvaluation:
    return WritingEvaluation(
        domain=domain,
        band=FALLBACK_BAND,  # type: ignore[arg-type]
        score=FALLBACK_SCORE,
        content_narrative=f"Automated evaluation was unavailable ({reason}). A provisional rating has been assigned.",
        writing_narrative="Writing quality could not be assessed automatically.",
        threshold_comment="Provisional rating; manual review recommended.",
        needs_review=True,
        source="fallback",
    )


def _system_prompt(task: WritingTask, student_name: str) -> str:
    level = grade_label(task.grade, task.programme)
    name = student_name or "the student"
    return "\n".join([
        f"You are a senior admissions assessor evaluating extended writing from a {level} applicant "
        f"to {curriculum_context(task.programme)}.",
        "The evaluation is read only by the admissions panel; be candid and precise.",
        f"Write in {language_style(task.locale)}. Refer to the student in the third person as "
        f"\"{name}\" or \"the student\", never \"you\".",
        "Ground every observation in evidence from the response and calibrate to "
        f"{level} expectations. Avoid superlatives and exclamation marks.",
        "",
        rubric_text(task.domain),
        "",
        "Return ONLY a JSON object, no markdown.",
    ])


def _user_prompt(task: WritingTask, student_name: str) -> str:
    level = grade_label(task.grade, task.programme)
    brief = ("keep this short and secondary to the reasoning"
             if rubric_family(task.domain) == "quantitative" else "organisation, control, vocabulary, accuracy")
    return "\n".join([
        f"Evaluate this {task.domain} extended response from {student_name or 'the student'}, a {level} applicant.",
        "",
        "PROMPT GIVEN TO THE STUDENT:",
        task.prompt_text or "(prompt not recorded)",
        "",
        "STUDENT'S RESPONSE:",
        task.student_response,
        "",
        "Return JSON with exactly these fields:",
        '{"band": "Excellent|Good|Developing|Emerging|Insufficient", "score": <number 0-4>,',
        f' "content_narrative": "<2-3 sentences on ideas and depth of {task.domain} thinking>",',
        f' "writing_narrative": "<2-3 sentences on expression: {brief}>",',
        f' "threshold_comment": "<1 sentence: meets, exceeds or falls below {level} expectations>"}}',
    ])


class WritingEvaluator:
    def __init__(
        self,
        service: Optional[TextService],
        *,
        policy: Optional[RetryPolicy] = None,
        trail: Optional[AuditTrail] = None,
        min_chars: int = cfg_defaults.WRITING_MIN_CHARS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.policy = policy or RetryPolicy()
        self.trail = trail or AuditTrail()
        self.min_chars = min_chars
        self.sleep = sleep

    def evaluate(self, task: WritingTask, student_name: str = "") -> WritingEvaluation:
        if len((task.student_response or "").strip()) < self.min_chars:
            self.trail.emit("evaluator", "guard", domain=task.domain, band="Insufficient", score=0.0)
            return insufficient(task.domain)
        try:
            raw = complete_with_retry(
                self.service,
                _system_prompt(task, student_name),
                _user_prompt(task, student_name),
                policy=self.policy,
                trail=self.trail,
                stage="evaluator",
                domain=task.domain,
                max_tokens=cfg_defaults.LLM_MAX_TOKENS_WRITING,
                json_mode=True,
                sleep=self.sleep,
            )
            payload = self._parse(raw)
        except AIServiceUnavailable as exc:
            self.trail.emit("evaluator", "fallback", domain=task.domain, error=str(exc),
                            band=FALLBACK_BAND, score=FALLBACK_SCORE)
            return fallback(task.domain, type(exc).__name__)

        band = normalize_band(payload.band, payload.score)
        result = WritingEvaluation(
            domain=task.domain,
            band=band,  # type: ignore[arg-type]
            score=payload.score,
            content_narrative=payload.content_narrative,
            writing_narrative=payload.writing_narrative,
            threshold_comment=payload.threshold_comment,
        )
        self.trail.emit("evaluator", "evaluated", domain=task.domain, band=band, score=payload.score)
        return result

    @staticmethod
    def _parse(raw: str) -> EvaluationPayload:
        data = parse_json(raw)
        try:
            return EvaluationPayload.model_validate(data)
        except ValidationError as exc:
            raise MalformedAIResponse(f"evaluation payload invalid: {exc.error_count()} errors", raw=raw) from exc


__all__ = ["WritingEvaluator", "EvaluationPayload", "clamp_score", "normalize_band", "fallback", "insufficient"]
