from __future__ import annotations
import json, importlib.resources as ir, logging, pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from . import config as cfg_defaults
from .errors import MissingConfiguration
from .types import AnswerKey

log = logging.getLogger(__name__)

_TYPE_ALIASES = {
    "mcq": "MCQ", "multiple_choice": "MCQ", "radio": "MCQ",
    "writing": "Writing", "long_text": "Writing", "extended": "Writing", "essay": "Writing",
}


def _question_type(raw: Any) -> str:
    return _TYPE_ALIASES.get(str(raw or "").strip().lower(), "MCQ")


def key_problems(key: AnswerKey) -> List[str]:
    """List configuration defects that make a key unusable for scoring."""
    problems: List[str] = []
    if not key.label:
        problems.append("missing label")
    if not key.domain:
        problems.append("missing domain")
    if key.question_type == "MCQ":
        opts = key.options()
        if sum(1 for v in opts.values() if (v or "").strip()) < 2:
            problems.append("fewer than two options")
        letter = (key.correct_answer or "").strip().upper()
        if letter not in opts:
            problems.append(f"correct answer {key.correct_answer!r} is not A-D")
        elif not (opts[letter] or "").strip():
            problems.append(f"correct answer {letter} points at an empty option")
    return problems


def _question_number(raw: Any, default: int) -> Optional[int]:
    if not raw:
        return default
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def parse_keys(rows: Iterable[Any]) -> List[AnswerKey]:
    """Build validated keys; invalid rows and duplicate labels are dropped and logged."""
    keys: List[AnswerKey] = []
    seen: set[str] = set()
    for i, r in enumerate(rows, start=1):
        if not isinstance(r, Mapping):
            log.warning("answer key row %d rejected: not an object", i)
            continue
        number = _question_number(r.get("question_number"), i)
        key = AnswerKey(
            label=str(r.get("label") or "").strip(),
            domain=str(r.get("domain") or "").strip().lower(),
            construct=str(r.get("construct") or "General").strip() or "General",
            question_type=_question_type(r.get("question_type")),  # type: ignore[arg-type]
            question_number=number if number is not None else i,
            question_text=str(r.get("question_text") or ""),
            correct_answer=str(r.get("correct_answer") or "").strip().upper(),
            option_a=str(r.get("option_a") or ""),
            option_b=str(r.get("option_b") or ""),
            option_c=str(r.get("option_c") or ""),
            option_d=str(r.get("option_d") or ""),
        )
        problems = key_problems(key)
        if number is None:
            problems.append(f"question_number {r.get('question_number')!r} is not a number")
        if key.label.lower() in seen:
            problems.append("duplicate label")
        if problems:
            log.warning("answer key %s rejected: %s", key.label or f"row {i}", "; ".join(problems))
            continue
        seen.add(key.label.lower())
        keys.append(key)
    return keys


def _key_file(grade: int, form_version: Optional[str]) -> str:
    return f"grade_{grade}_{form_version}.json" if form_version else f"grade_{grade}.json"


def load_answer_keys(grade: int, form_version: Optional[str] = None, *,
                     keys_dir: Optional[str] = None) -> List[AnswerKey]:
    name = _key_file(grade, form_version)
    base = keys_dir if keys_dir is not None else cfg_defaults.ANSWER_KEYS_DIR
    if base:
        path = pathlib.Path(base) / name
        if not path.exists():
            raise MissingConfiguration(f"answer keys not found: {path}")
        text = path.read_text(encoding="utf-8")
    else:
        res = ir.files(__package__).joinpath("data/answer_keys").joinpath(name)
        if not res.is_file():
            raise MissingConfiguration(f"answer keys not found: {name}")
        text = res.read_text(encoding="utf-8")
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise MissingConfiguration(f"answer keys unreadable: {name}: {exc}") from exc
    rows = raw.get("keys", []) if isinstance(raw, dict) else raw
    if not isinstance(rows, list):
        raise MissingConfiguration(f"answer keys unreadable: {name}: expected a list of keys")
    return parse_keys(rows)


def keys_for_domain(keys: Iterable[AnswerKey], domain: str, question_type: Optional[str] = None) -> List[AnswerKey]:
    return [k for k in keys if k.domain == domain and (question_type is None or k.question_type == question_type)]


@dataclass
class Thresholds:
    values: Dict[str, float] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=lambda: dict(cfg_defaults.DOMAIN_WEIGHTS))
    default: float = cfg_defaults.DEFAULT_THRESHOLD

    def for_domain(self, domain: str) -> float:
        return float(self.values.get(domain, self.default))


def load_thresholds(school_id: str = "", grade: int = 0, *, path: Optional[str] = None) -> Thresholds:
    """Thresholds JSON: ``{school_id: {grade: {domain: pct, "weights": {...}}}}``.

    A ``"default"`` school and grade entry apply when no specific one exists.
    Missing files fall back to ``DEFAULT_THRESHOLD`` for every domain; an
    unreadable file or a non-numeric entry raises ``MissingConfiguration``.
    """
    src = path if path is not None else cfg_defaults.THRESHOLDS_PATH
    if src:
        p = pathlib.Path(src)
        name, text = str(p), (p.read_text(encoding="utf-8") if p.exists() else "")
    else:
        res = ir.files(__package__).joinpath("data/thresholds.json")
        name, text = "thresholds.json", (res.read_text(encoding="utf-8") if res.is_file() else "")
    try:
        data = json.loads(text) if text.strip() else {}
        school = data.get(school_id) or data.get("default") or {}
        entry = dict(school.get(str(grade)) or school.get("default") or {})
        weights = entry.pop("weights", None)
        out = Thresholds(values={str(k).lower(): float(v) for k, v in entry.items()})
        if isinstance(weights, dict) and weights:
            out.weights = {str(k).lower(): float(v) for k, v in weights.items()}
    except (TypeError, ValueError, AttributeError) as exc:
        raise MissingConfiguration(f"thresholds unreadable: {name}: {exc}") from exc
    return out


__all__ = [
    "Thresholds",
    "key_problems",
    "keys_for_domain",
    "load_answer_keys",
    "load_thresholds",
    "parse_keys",
]
