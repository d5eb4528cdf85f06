"""Multiple-choice scoring.

Form radios submit the full option text ("To the park", "13"), while the
answer keys store option texts plus a correct letter.  ``infer_letter`` maps
text back to a letter and returns ``None`` instead of guessing.
"""
from __future__ import annotations

import re
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .audit import AuditTrail
from .config import DOMAINS
from .errors import NoAnswerMatch
from .types import AnswerKey, ConstructScore, DomainScore, QuestionResult, ResolvedField

_LEADING_LETTER_RE = re.compile(r"^([A-D])\s*[\).:]", re.IGNORECASE)
_MIN_CONTAIN_CHARS = 2


def round1(value: float) -> float:
    """Round half-up to one decimal (64.25 -> 64.3, never banker's rounding)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def pct(correct: int, total: int) -> float:
    return round1(correct / total * 100) if total else 0.0


def _normalise(text: str | None) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def infer_letter(answer_text: str | None, key: AnswerKey) -> Tuple[Optional[str], str]:
    """Return ``(letter, strategy)``; letter is ``None`` when nothing matches confidently."""

    student = _normalise(answer_text)
    if not student:
        return None, "empty"
    options = [(letter, _normalise(text)) for letter, text in key.options().items()]
    options = [(letter, text) for letter, text in options if text]

    for letter, text in options:
        if text == student:
            return letter, "exact"

    contained = []
    for letter, text in options:
        shorter = min(len(text), len(student))
        if shorter >= _MIN_CONTAIN_CHARS and (text in student or student in text):
            contained.append(letter)
    if len(contained) == 1:
        return contained[0], "contains"

    m = _LEADING_LETTER_RE.match((answer_text or "").strip())
    if m:
        return m.group(1).upper(), "leading_letter"

    raw = (answer_text or "").strip()
    if len(raw) == 1 and raw.upper() in "ABCD":
        return raw.upper(), "single_letter"
    return None, "ambiguous" if contained else "none"


def resolve_letter(answer_text: str | None, key: AnswerKey) -> Tuple[str, str]:
    letter, strategy = infer_letter(answer_text, key)
    if letter is None:
        raise NoAnswerMatch(f"{key.label}: no option matches {answer_text!r} ({strategy})")
    return letter, strategy


def score_mcq(
    keys: Sequence[AnswerKey],
    answers: Mapping[str, ResolvedField] | Mapping[str, str],
    *,
    trail: Optional[AuditTrail] = None,
) -> List[QuestionResult]:
    """Score every MCQ key against the resolved answers (keyed by label).

    A missing answer or an unmatched text is scored incorrect with a null letter.
    """

    trail = trail or AuditTrail()
    results: List[QuestionResult] = []
    for key in sorted((k for k in keys if k.question_type == "MCQ"), key=lambda k: (k.question_number, k.label)):
        found = answers.get(key.label)
        text = found.value if isinstance(found, ResolvedField) else (found or "")
        letter: Optional[str] = None
        if text:
            try:
                letter, strategy = resolve_letter(text, key)
            except NoAnswerMatch as exc:
                trail.emit("mcq", "no_match", domain=key.domain, label=key.label, reason=str(exc))
            else:
                trail.emit("mcq", "matched", domain=key.domain, label=key.label, letter=letter, strategy=strategy)
        correct = (key.correct_answer or "").strip().upper()
        results.append(QuestionResult(
            label=key.label,
            domain=key.domain,
            construct=key.construct or "General",
            question_number=key.question_number,
            question_text=key.question_text,
            student_answer=text,
            inferred_letter=letter,
            correct_answer=correct,
            is_correct=letter is not None and letter == correct,
        ))
    return results


def domain_scores(results: Iterable[QuestionResult], domains: Sequence[str] = DOMAINS) -> List[DomainScore]:
    grouped: Dict[str, List[QuestionResult]] = OrderedDict((d, []) for d in domains)
    for r in results:
        grouped.setdefault(r.domain, []).append(r)
    out: List[DomainScore] = []
    for domain, items in grouped.items():
        total = len(items)
        correct = sum(1 for r in items if r.is_correct)
        ds = DomainScore(domain=domain, correct=correct, total=total, pct=pct(correct, total), assessed=total > 0)
        if domain == "mindset":
            ds.score = round1(correct / total * 4) if total else None
        out.append(ds)
    return out


def construct_scores(results: Iterable[QuestionResult]) -> List[ConstructScore]:
    grouped: Dict[Tuple[str, str], List[QuestionResult]] = OrderedDict()
    for r in results:
        grouped.setdefault((r.domain, r.construct or "General"), []).append(r)
    out: List[ConstructScore] = []
    for (domain, construct), items in grouped.items():
        correct = sum(1 for r in items if r.is_correct)
        out.append(ConstructScore(domain=domain, construct=construct, correct=correct,
                                  total=len(items), pct=pct(correct, len(items))))
    return out


__all__ = [
    "infer_letter",
    "resolve_letter",
    "score_mcq",
    "domain_scores",
    "construct_scores",
    "round1",
    "pct",
]
