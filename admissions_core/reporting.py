# admissions_core/reporting.py
from __future__ import annotations
import json
from dataclasses import asdict, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .rubrics import grade_label, mindset_band
from .types import ScoringResult, WritingEvaluation

REPORT_INPUT_VERSION = "1"


# -------- utils: make any object JSON-safe ----------
def _to_basic(x: Any) -> Any:
    if x is None or isinstance(x, (bool, int, float, str)):
        return x
    if is_dataclass(x) and not isinstance(x, type):
        return _to_basic(asdict(x))
    if isinstance(x, dict):
        return {str(k): _to_basic(v) for k, v in x.items()}
    if isinstance(x, (list, tuple, set)):
        return [_to_basic(v) for v in x]
    return str(x)


def result_to_dict(result: ScoringResult) -> Dict[str, Any]:
    """Persistable form of a scoring run."""
    return _to_basic(result)


def writing_from_dicts(rows: Iterable[Dict[str, Any]]) -> List[WritingEvaluation]:
    names = {f.name for f in fields(WritingEvaluation)}
    return [WritingEvaluation(**{k: v for k, v in r.items() if k in names}) for r in rows or []]


def build_report_input(result: ScoringResult | Dict[str, Any]) -> Dict[str, Any]:
    """Shape consumed by the external report renderer."""
    data = result_to_dict(result) if isinstance(result, ScoringResult) else dict(result)
    student = data.get("student") or {}
    rec = data.get("recommendation") or {}
    scores = {s["domain"]: s for s in data.get("domain_scores") or []}
    writing = {w["domain"]: w for w in data.get("writing") or []}
    analyses = {a["domain"]: a for a in data.get("analyses") or []}
    constructs: Dict[str, List[Dict[str, Any]]] = {}
    for c in data.get("construct_scores") or []:
        constructs.setdefault(c["domain"], []).append(
            {k: c[k] for k in ("construct", "correct", "total", "pct")})

    domains: Dict[str, Dict[str, Any]] = {}
    for name, s in scores.items():
        entry: Dict[str, Any] = {
            "assessed": s.get("assessed", True),
            "mcq": {"correct": s["correct"], "total": s["total"], "pct": s["pct"]},
            "constructs": constructs.get(name, []),
        }
        if name in (rec.get("combined") or {}):
            entry["combined_pct"] = rec["combined"][name]
            entry["delta"] = (rec.get("deltas") or {}).get(name)
        if s.get("score") is not None:
            entry["score"] = s["score"]
            entry["band"] = mindset_band(float(s["score"]))
        if name in writing:
            entry["writing"] = {k: writing[name].get(k) for k in (
                "band", "score", "content_narrative", "writing_narrative", "threshold_comment", "needs_review")}
        if name in analyses:
            a = analyses[name]
            entry["analysis"] = {k: a.get(k) for k in ("narrative", "strengths", "weaknesses", "needs_review")}
        if name in (data.get("narratives") or {}):
            entry["narrative"] = data["narratives"][name]
        domains[name] = entry
    for name, w in writing.items():
        domains.setdefault(name, {"assessed": True, "writing": {k: w.get(k) for k in (
            "band", "score", "content_narrative", "writing_narrative", "threshold_comment", "needs_review")}})

    return {
        "version": REPORT_INPUT_VERSION,
        "submission_id": data.get("submission_id"),
        "student": {
            "name": student.get("full_name", ""),
            "first_name": student.get("first_name", ""),
            "grade": student.get("grade", 0),
            "grade_label": grade_label(int(student.get("grade") or 0), student.get("programme")),
            "programme": student.get("programme", ""),
            "locale": student.get("locale", "en-GB"),
        },
        "recommendation": {
            "band": rec.get("recommendation_band"),
            "overall_academic_pct": rec.get("overall_academic_pct"),
            "rationale": rec.get("narrative"),
            "lens_scores": rec.get("lens_scores") or {},
        },
        "executive_summary": (data.get("summary") or {}).get("text", ""),
        "domains": domains,
        "needs_review": data.get("needs_review") or [],
    }


def save_report_input(result: ScoringResult | Dict[str, Any], out_path: str | Path) -> Path:
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(build_report_input(result), indent=2, ensure_ascii=False), encoding="utf-8")
    return p


__all__ = ["build_report_input", "result_to_dict", "save_report_input", "writing_from_dicts"]
