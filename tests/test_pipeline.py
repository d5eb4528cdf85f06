from __future__ import annotations

import dataclasses
import json
import threading

from admissions_core import config as admissions_config
from admissions_core.answer_keys import Thresholds
from admissions_core.audit import AuditTrail
from admissions_core.config import RetryPolicy
from admissions_core.errors import TransientServiceError
from admissions_core.pipeline import ScoringPipeline
from admissions_core.recommendation import NOT_YET, READY
from admissions_core.reporting import build_report_input, result_to_dict, writing_from_dicts

from tests.conftest import RoutingTextService, build_answer_keys, build_long_text_payload, no_sleep

WRITING = {
    "english": "Rowing taught me that small daily effort adds up over a season.",
    "values": "When a new student arrived I showed her around and sat with her at lunch.",
}
STRONG = {"english": 4, "mathematics": 3, "reasoning": 3, "mindset": 4}


class _AlwaysOverloaded:
    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()

    def complete(self, system, user, *, max_tokens=400, json_mode=False):
        with self._lock:
            self.calls += 1
        raise TransientServiceError("overloaded")


class _Broken:
    def complete(self, system, user, *, max_tokens=400, json_mode=False):
        raise RuntimeError("client bug")


def _pipeline(service) -> ScoringPipeline:
    return ScoringPipeline(service, policy=RetryPolicy.immediate(), max_workers=3, sleep=no_sleep)


def _run(service, correct=STRONG, **kwargs):
    keys = build_answer_keys()
    payload = build_long_text_payload(keys, correct, WRITING)
    return _pipeline(service).run("sub-1", payload, keys=keys, thresholds=Thresholds(), **kwargs)


def test_end_to_end_with_service():
    svc = RoutingTextService()
    result = _run(svc)

    assert result.student.first_name == "Amira"
    assert result.student.grade == 10
    rec = result.recommendation
    assert rec.recommendation_band == READY
    # english: 100 * 0.6 + 75 * 0.4
    assert rec.combined == {"english": 90.0, "mathematics": 75.0, "reasoning": 100.0}
    assert rec.lens_scores == {"values": 3.0}
    assert {w.domain: w.band for w in result.writing} == {"english": "Good", "values": "Good"}
    assert {a.domain for a in result.analyses} == {"english", "mathematics", "reasoning"}
    assert set(result.narratives) == {"reasoning", "mindset"}
    assert result.summary.source == "ai"
    assert result.needs_review == []
    stages = {e["stage"] for e in result.audit_events}
    assert {"resolver", "mcq", "writing", "evaluator", "analyser", "narrative", "recommendation", "summary"} <= stages


def test_service_outage_degrades_but_still_recommends():
    svc = _AlwaysOverloaded()
    result = _run(svc)

    english = next(w for w in result.writing if w.domain == "english")
    assert (english.band, english.score, english.needs_review) == ("Developing", 2.0, True)
    assert result.recommendation.combined["english"] == 80.0
    assert result.recommendation.recommendation_band == READY
    assert result.summary.source == "fallback"
    assert {"writing:english", "writing:values", "analysis:english", "narrative:reasoning",
            "narrative:mindset", "summary"} <= set(result.needs_review)
    # three attempts for each of: 2 writing, 3 analyses, 2 narratives, 1 summary
    assert svc.calls == 8 * 3


def test_unexpected_errors_are_contained():
    result = _run(_Broken())
    assert result.recommendation.recommendation_band == READY
    assert {w.domain: w.source for w in result.writing} == {"english": "fallback", "values": "fallback"}
    assert result.analyses == []
    assert "analysis:english" in result.needs_review
    assert "summary" in result.needs_review


def test_weak_applicant_is_not_yet_ready():
    result = _run(RoutingTextService(evaluation={"band": "Emerging", "score": 1}),
                  correct={"english": 1, "mathematics": 1, "reasoning": 1, "mindset": 1})
    assert result.recommendation.recommendation_band == NOT_YET


def test_cached_writing_is_reused_unless_rescored():
    first = _run(RoutingTextService())
    cached = writing_from_dicts(result_to_dict(first)["writing"])

    svc = RoutingTextService()
    again = _run(svc, cached_writing=cached)
    assert {w.source for w in again.writing} == {"cache"}
    assert not any(c["json_mode"] for c in svc.calls)
    assert again.recommendation == first.recommendation

    svc = RoutingTextService()
    forced = _run(svc, cached_writing=cached, rescore=True)
    assert {w.source for w in forced.writing} == {"ai"}
    assert sum(1 for c in svc.calls if c["json_mode"]) == 2


def test_missing_answer_keys_marks_everything_not_assessed():
    result = ScoringPipeline(None, policy=RetryPolicy.immediate(), sleep=no_sleep).run(
        "sub-2", {"q1_G3_EN_Q1": "A"}, grade=3, thresholds=Thresholds())
    rec = result.recommendation
    assert rec.not_assessed == ["english", "mathematics", "reasoning"]
    assert rec.needs_review
    assert any(r.startswith("configuration:") for r in result.needs_review)


def test_report_input_shape():
    report = build_report_input(_run(RoutingTextService()))
    assert report["student"]["grade_label"] == "Grade 10"
    assert report["recommendation"]["band"] == READY
    english = report["domains"]["english"]
    assert english["combined_pct"] == 90.0
    assert english["writing"]["band"] == "Good"
    assert {c["construct"] for c in english["constructs"]} == {"Core", "Extension"}
    assert report["domains"]["mindset"]["band"] == "Strong growth orientation"
    assert report["domains"]["values"]["writing"]["score"] == 3.0


def _write_keys(tmp_path, monkeypatch, rows_or_text):
    text = rows_or_text if isinstance(rows_or_text, str) else json.dumps({"keys": rows_or_text})
    (tmp_path / "grade_10.json").write_text(text, encoding="utf-8")
    monkeypatch.setattr(admissions_config, "ANSWER_KEYS_DIR", str(tmp_path))


def test_key_row_with_bad_question_number_is_dropped_not_fatal(tmp_path, monkeypatch):
    keys = build_answer_keys()
    rows = [dataclasses.asdict(k) for k in keys]
    rows.append(dict(rows[0], label="G10_EN_Q99", question_number="Q99"))
    _write_keys(tmp_path, monkeypatch, rows)

    payload = build_long_text_payload(keys, STRONG, WRITING)
    result = _pipeline(RoutingTextService()).run("sub-7", payload, thresholds=Thresholds())

    assert "G10_EN_Q99" not in {q.label for q in result.question_results}
    assert result.recommendation.not_assessed == []
    assert not any(r.startswith("configuration:") for r in result.needs_review)


def test_unreadable_key_file_marks_everything_not_assessed(tmp_path, monkeypatch):
    _write_keys(tmp_path, monkeypatch, "{not json")
    payload = build_long_text_payload(build_answer_keys(), STRONG, WRITING)
    result = _pipeline(RoutingTextService()).run("sub-8", payload, thresholds=Thresholds())

    assert result.recommendation.not_assessed == ["english", "mathematics", "reasoning"]
    assert any(r.startswith("configuration: answer keys unreadable") for r in result.needs_review)


def test_unreadable_thresholds_fall_back_to_defaults(tmp_path, monkeypatch):
    path = tmp_path / "thresholds.json"
    path.write_text(json.dumps({"default": {"default": {"english": "sixty"}}}), encoding="utf-8")
    monkeypatch.setattr(admissions_config, "THRESHOLDS_PATH", str(path))

    keys = build_answer_keys()
    payload = build_long_text_payload(keys, STRONG, WRITING)
    trail = AuditTrail("sub-9")
    result = _pipeline(RoutingTextService()).run("sub-9", payload, keys=keys, trail=trail)

    assert result.recommendation.recommendation_band == READY
    assert any(r.startswith("configuration: thresholds unreadable") for r in result.needs_review)
    assert trail.of("config", "failed")
