from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from . import config as cfg_defaults
from .audit import AuditTrail
from .fields import Resolution
from .types import AnswerKey, StudentContext, WritingTask

log = logging.getLogger(__name__)


def _prompt_for(keys: Sequence[AnswerKey], label: Optional[str], domain: str) -> str:
    writing = [k for k in keys if k.question_type == "Writing"]
    if label:
        for k in writing:
            if k.label == label:
                return k.question_text
    in_domain = sorted((k for k in writing if k.domain == domain), key=lambda k: k.question_number)
    return in_domain[0].question_text if in_domain else ""


def extract_writing(
    resolution: Resolution,
    keys: Sequence[AnswerKey],
    student: StudentContext,
    *,
    trail: Optional[AuditTrail] = None,
    min_chars: int = cfg_defaults.WRITING_EXTRACT_MIN_CHARS,
) -> List[WritingTask]:
    """One task per domain, taken from the first extended-response field in form order."""

    trail = trail or AuditTrail()
    tasks: List[WritingTask] = []
    seen: set[str] = set()
    for f in resolution.writing():
        text = (f.value or "").strip()
        if len(text) < min_chars:
            trail.emit("writing", "skipped", key=f.key, domain=f.domain, reason="too short to extract")
            continue
        if f.domain in seen:
            trail.emit("writing", "skipped", key=f.key, domain=f.domain, reason="domain already has a task")
            continue
        seen.add(f.domain)
        prompt = _prompt_for(keys, f.label, f.domain)
        tasks.append(WritingTask(
            domain=f.domain,
            prompt_text=prompt,
            student_response=text,
            grade=student.grade,
            locale=student.locale,
            programme=student.programme,
            label=f.label,
        ))
        trail.emit("writing", "extracted", key=f.key, domain=f.domain, label=f.label or "",
                   chars=len(text), prompt=bool(prompt))
    log.debug("extracted %d writing tasks", len(tasks))
    return tasks


__all__ = ["extract_writing"]
