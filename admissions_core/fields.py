"""Field resolution for raw form submissions.

Submissions arrive from the form provider in one of several historical
shapes.  Each key carries an opaque ``q<N>_`` prefix in front of a semantic
suffix whose naming convention drifted between form versions:

``tagged``
    ``{"41": {"type": "control_radio", "name": "g10_en_q3", "text": ..., "answer": ...}}``
``long_text``
    flat strings keyed like ``q41_G10_EN_LONG_TEXT`` / ``q12_G10_MA_Q4``
``suffix``
    flat strings keyed like ``q41_q16_english_writing``
``plain``
    flat strings keyed by label or free suffix

The resolver detects the shape, then walks an ordered chain of strategies
for every field.  A strategy returns a ``ResolvedField``, returns ``None``
when it does not apply, or raises ``ResolutionAmbiguity``.  A field nobody
resolves is skipped and reported to the audit trail.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .audit import AuditTrail
from .errors import ResolutionAmbiguity
from .rubrics import is_american
from .types import AnswerKey, RawField, ResolvedField, StudentContext

log = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^q\d+_", re.IGNORECASE)
_LONG_TEXT_RE = re.compile(r"^g\d+_[a-z]+_", re.IGNORECASE)
_NUMBER_RE = re.compile(r"(?:^|_)q?(\d{1,3})(?=_|$)", re.IGNORECASE)
_WRITING_MARKERS: tuple[str, ...] = ("long_text", "_writing", "_extended", "_essay")

METADATA_FIELDS: tuple[str, ...] = (
    "student_first_name",
    "student_last_name",
    "student_name",
    "meta_programme",
    "meta_language_locale",
    "meta_grade",
    "meta_school_id",
)

# checked against "_" + suffix + "_" so short codes only match whole tokens
_SUFFIX_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "english": ("_en_", "english"),
    "mathematics": ("_ma_", "math"),
    "reasoning": ("_re_", "_rea_", "reason"),
    "mindset": ("_mind_", "mindset"),
    "values": ("_val_", "values"),
    "creativity": ("_crea_", "creativ"),
}

_TEXT_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "english": ("favourite activity", "favorite activity", "write a paragraph", "essay",
                "well-organised paragraph"),
    "mathematics": ("mathematic", "difficult thing", "math"),
    "mindset": ("why you would like", "our school", "mindset", "learning"),
    "values": ("kindness", "fairness", "community", "value"),
    "creativity": ("creativ", "improve", "design", "idea"),
}


def _norm(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def strip_prefix(key: str) -> str:
    return _PREFIX_RE.sub("", key or "", count=1)


def _answer_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        return " ".join(_answer_text(v) for v in value.values() if _answer_text(v)).strip()
    if isinstance(value, (list, tuple)):
        return ", ".join(_answer_text(v) for v in value if _answer_text(v))
    return str(value).strip()


def looks_like_writing(raw: RawField) -> bool:
    if raw.field_type == "control_textarea":
        return True
    low = raw.suffix.lower()
    return any(marker in low for marker in _WRITING_MARKERS)


def infer_domain_from_suffix(suffix: str) -> Optional[str]:
    padded = f"_{suffix.lower()}_"
    hits = [d for d, kws in _SUFFIX_KEYWORDS.items() if any(k in padded for k in kws)]
    if len(hits) > 1:
        raise ResolutionAmbiguity(suffix, f"suffix matches several domains: {', '.join(hits)}")
    return hits[0] if hits else None


def infer_domain_from_text(text: str) -> Optional[str]:
    low = _norm(text)
    if not low:
        return None
    hits = [d for d, kws in _TEXT_KEYWORDS.items() if any(k in low for k in kws)]
    if len(hits) > 1:
        raise ResolutionAmbiguity(text[:40], f"question text matches several domains: {', '.join(hits)}")
    return hits[0] if hits else None


def detect_schema(payload: Mapping[str, Any]) -> str:
    values = list(payload.values())
    if any(isinstance(v, Mapping) and ("answer" in v or "type" in v) for v in values):
        return "tagged"
    suffixes = [strip_prefix(str(k)) for k in payload.keys()]
    if any(_LONG_TEXT_RE.match(s) for s in suffixes):
        return "long_text"
    if any(m in s.lower() for s in suffixes for m in ("_writing", "_extended", "_essay", "_mcq")):
        return "suffix"
    return "plain"


def raw_fields(payload: Mapping[str, Any]) -> List[RawField]:
    out: List[RawField] = []
    for key, value in payload.items():
        key = str(key)
        if isinstance(value, Mapping) and ("answer" in value or "type" in value):
            name = str(value.get("name") or "")
            out.append(RawField(
                key=key,
                suffix=strip_prefix(name) if name else strip_prefix(key),
                value=_answer_text(value.get("answer")),
                question_text=str(value.get("text") or ""),
                field_type=str(value.get("type") or ""),
            ))
        else:
            out.append(RawField(key=key, suffix=strip_prefix(key), value=_answer_text(value)))
    return out


def _qid(raw: RawField) -> int:
    try:
        return int(raw.key)
    except ValueError:
        return 1 << 30


@dataclass
class _Context:
    keys: Sequence[AnswerKey]
    by_label: Dict[str, AnswerKey]
    positions: Dict[str, AnswerKey] = field(default_factory=dict)

    def find(self, domain: str, number: int) -> Optional[AnswerKey]:
        hits = [k for k in self.keys if k.domain == domain and k.question_number == number]
        if len(hits) > 1:
            raise ResolutionAmbiguity(f"{domain}#{number}", "several keys share this question number")
        return hits[0] if hits else None


def _hit(raw: RawField, key: Optional[AnswerKey], domain: str, strategy: str) -> ResolvedField:
    return ResolvedField(
        key=raw.key,
        label=key.label if key else None,
        domain=key.domain if key else domain,
        value=raw.value,
        strategy=strategy,
        question_number=key.question_number if key else None,
        question_text=(key.question_text if key else "") or raw.question_text,
        is_writing=(key.question_type == "Writing") if key else looks_like_writing(raw),
    )


class ExactLabelStrategy:
    name = "exact_label"

    def resolve(self, raw: RawField, ctx: _Context) -> Optional[ResolvedField]:
        key = ctx.by_label.get(raw.suffix.lower()) or ctx.by_label.get(raw.key.lower())
        return _hit(raw, key, key.domain, self.name) if key else None


class DomainKeywordStrategy:
    name = "domain_keyword"

    def resolve(self, raw: RawField, ctx: _Context) -> Optional[ResolvedField]:
        domain = infer_domain_from_suffix(raw.suffix)
        if domain is None:
            return None
        numbers = {int(n) for n in _NUMBER_RE.findall(raw.suffix.lower())}
        if looks_like_writing(raw):
            return _hit(raw, None, domain, self.name)
        candidates = [ctx.find(domain, n) for n in sorted(numbers)]
        candidates = [k for k in candidates if k is not None]
        if len(candidates) == 1:
            return _hit(raw, candidates[0], domain, self.name)
        if len(candidates) > 1:
            raise ResolutionAmbiguity(raw.key, "several question numbers in suffix")
        raise ResolutionAmbiguity(raw.key, f"domain {domain} inferred but no question number")


class QuestionTextStrategy:
    name = "question_text"

    def resolve(self, raw: RawField, ctx: _Context) -> Optional[ResolvedField]:
        text = _norm(raw.question_text)
        if not text:
            return None
        exact = [k for k in ctx.keys if k.question_text and _norm(k.question_text) == text]
        if len(exact) == 1:
            return _hit(raw, exact[0], exact[0].domain, self.name)
        if len(exact) > 1:
            raise ResolutionAmbiguity(raw.key, "question text shared by several keys")
        domain = infer_domain_from_text(raw.question_text)
        if domain is None:
            return None
        if not looks_like_writing(raw):
            raise ResolutionAmbiguity(raw.key, f"domain {domain} inferred from text for a non-writing field")
        return _hit(raw, None, domain, self.name)


class PositionalStrategy:
    """Tagged radios in QID order line up with MCQ question numbers."""

    name = "position"

    def resolve(self, raw: RawField, ctx: _Context) -> Optional[ResolvedField]:
        key = ctx.positions.get(raw.key)
        return _hit(raw, key, key.domain, self.name) if key else None


SCHEMA_CHAINS: Dict[str, tuple] = {
    "tagged": (ExactLabelStrategy(), DomainKeywordStrategy(), QuestionTextStrategy(), PositionalStrategy()),
    "long_text": (ExactLabelStrategy(), DomainKeywordStrategy()),
    "suffix": (ExactLabelStrategy(), DomainKeywordStrategy(), QuestionTextStrategy()),
    "plain": (ExactLabelStrategy(), DomainKeywordStrategy(), QuestionTextStrategy()),
}


@dataclass
class Resolution:
    schema: str
    fields: List[ResolvedField]
    skipped: List[Dict[str, str]]
    raw: List[RawField]

    def by_label(self) -> Dict[str, ResolvedField]:
        return {f.label: f for f in self.fields if f.label}

    def writing(self) -> List[ResolvedField]:
        return [f for f in self.fields if f.is_writing]


def _positions(fields: Iterable[RawField], keys: Sequence[AnswerKey]) -> Dict[str, AnswerKey]:
    radios = sorted((f for f in fields if f.field_type == "control_radio"), key=_qid)
    mcq = sorted((k for k in keys if k.question_type == "MCQ"), key=lambda k: k.question_number)
    if not radios or len(radios) != len(mcq):
        return {}
    return {f.key: k for f, k in zip(radios, mcq)}


class FieldResolver:
    def __init__(self, keys: Sequence[AnswerKey], *, trail: Optional[AuditTrail] = None,
                 chains: Optional[Mapping[str, Sequence[Any]]] = None):
        self.keys = list(keys)
        self.trail = trail or AuditTrail()
        self.chains = dict(chains or SCHEMA_CHAINS)

    def resolve(self, payload: Mapping[str, Any]) -> Resolution:
        schema = detect_schema(payload)
        chain = self.chains.get(schema) or self.chains["plain"]
        fields = raw_fields(payload)
        ctx = _Context(keys=self.keys, by_label={k.label.lower(): k for k in self.keys})
        if any(isinstance(s, PositionalStrategy) for s in chain):
            ctx.positions = _positions(fields, self.keys)

        claimed_labels: set[str] = set()
        claimed_domains: set[str] = set()
        resolved: List[ResolvedField] = []
        skipped: List[Dict[str, str]] = []
        self.trail.emit("resolver", "schema", schema=schema, fields=len(fields))

        for raw in sorted(fields, key=_qid):
            if raw.suffix.lower() in METADATA_FIELDS or not raw.value:
                continue
            try:
                hit = self._run_chain(raw, ctx, chain)
                if hit.label:
                    if hit.label in claimed_labels:
                        raise ResolutionAmbiguity(raw.key, f"label {hit.label} already claimed")
                    claimed_labels.add(hit.label)
                else:
                    if hit.domain in claimed_domains:
                        raise ResolutionAmbiguity(raw.key, f"domain {hit.domain} already claimed")
                    claimed_domains.add(hit.domain)
            except ResolutionAmbiguity as exc:
                skipped.append({"key": raw.key, "reason": exc.reason})
                self.trail.emit("resolver", "skipped", key=raw.key, reason=exc.reason)
                continue
            resolved.append(hit)
            self.trail.emit("resolver", "resolved", key=raw.key, label=hit.label or "",
                            domain=hit.domain, strategy=hit.strategy)
        log.debug("resolved %d/%d fields (schema=%s)", len(resolved), len(fields), schema)
        return Resolution(schema=schema, fields=resolved, skipped=skipped, raw=fields)

    @staticmethod
    def _run_chain(raw: RawField, ctx: _Context, chain: Sequence[Any]) -> ResolvedField:
        first_error: Optional[ResolutionAmbiguity] = None
        for strategy in chain:
            try:
                hit = strategy.resolve(raw, ctx)
            except ResolutionAmbiguity as exc:
                first_error = first_error or ResolutionAmbiguity(raw.key, exc.reason)
                continue
            if hit is not None:
                return hit
        raise first_error or ResolutionAmbiguity(raw.key, "no strategy matched")


def extract_student(payload: Mapping[str, Any], overrides: Optional[Mapping[str, Any]] = None) -> StudentContext:
    """Read name, programme and locale metadata carried in the payload."""
    name = programme = ""
    locale = "en-GB"
    grade = 0
    school_id = ""
    for raw in raw_fields(payload):
        k = raw.suffix.lower()
        if not raw.value:
            continue
        if ("student_first_name" in k or "student_name" in k) and not name:
            name = raw.value
        elif "meta_programme" in k and not programme:
            programme = raw.value
        elif "meta_language_locale" in k:
            locale = "en-US" if is_american(raw.value) else "en-GB"
        elif "meta_grade" in k and not grade:
            digits = re.sub(r"\D", "", raw.value)
            grade = int(digits) if digits else 0
        elif "meta_school_id" in k and not school_id:
            school_id = raw.value
    o = dict(overrides or {})
    name = str(o.get("student_name") or name).strip()
    return StudentContext(
        first_name=name.split()[0] if name else "",
        full_name=name,
        grade=int(o.get("grade") or grade or 0),
        programme=str(o.get("programme") or programme),
        locale=str(o.get("locale") or locale),
        school_id=str(o.get("school_id") or school_id),
    )


__all__ = [
    "FieldResolver",
    "Resolution",
    "SCHEMA_CHAINS",
    "detect_schema",
    "extract_student",
    "infer_domain_from_suffix",
    "infer_domain_from_text",
    "looks_like_writing",
    "raw_fields",
    "strip_prefix",
]
