from __future__ import annotations

import importlib
import os
import sys

from fastapi.testclient import TestClient

from admissions_core.answer_keys import load_answer_keys

from tests.conftest import RoutingTextService, build_long_text_payload


def _reload_app(tmp_path) -> tuple[object, object]:
    os.environ["DATA_DIR"] = str(tmp_path)
    os.environ.pop("AUDIT_EXPORT_ENABLED", None)
    for name in ("admissions_core.config", "api.storage", "api.app"):
        if name in sys.modules:
            importlib.reload(sys.modules[name])
        else:
            __import__(name)
    return sys.modules["api.storage"], sys.modules["api.app"]


def _client(tmp_path, monkeypatch, service=None):
    storage, app_module = _reload_app(tmp_path)
    svc = service or RoutingTextService()
    monkeypatch.setattr(app_module, "_text_service", lambda: svc)
    return storage, TestClient(app_module.app), svc


def _payload():
    writing = {"english": "My favourite activity is sailing because it teaches patience and teamwork."}
    return build_long_text_payload(load_answer_keys(10), {"english": 6, "mathematics": 5, "reasoning": 4,
                                                          "mindset": 4}, writing)


def test_score_persists_and_lists(tmp_path, monkeypatch):
    storage, client, _svc = _client(tmp_path, monkeypatch)

    resp = client.post("/score", json={"payload": _payload(), "submission_id": "s1", "school_id": "north"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["submission_id"] == "s1"
    assert body["recommendation"]["recommendation_band"]
    assert (storage.RESULTS_DIR / "s1.json").exists()

    listed = client.get("/results", params={"school_id": "north"}).json()["results"]
    assert [r["id"] for r in listed] == ["s1"]
    assert listed[0]["studentName"] == "Amira Haddad"
    assert client.get("/results", params={"school_id": "south"}).json()["results"] == []

    assert client.get("/results/s1").json()["submission_id"] == "s1"
    assert client.get("/results/missing").status_code == 404


def test_report_input_endpoint(tmp_path, monkeypatch):
    _storage, client, _svc = _client(tmp_path, monkeypatch)
    client.post("/score", json={"payload": _payload(), "submission_id": "s2", "programme": "IGCSE"})

    report = client.get("/results/s2/report-input").json()
    assert report["student"]["grade_label"] == "Year 11"
    assert report["domains"]["english"]["writing"]["band"] == "Good"
    assert report["executive_summary"].startswith("Amira")


def test_rescore_reuses_writing_unless_forced(tmp_path, monkeypatch):
    _storage, client, svc = _client(tmp_path, monkeypatch)
    client.post("/score", json={"payload": _payload(), "submission_id": "s3"})
    assert sum(1 for c in svc.calls if c["json_mode"]) == 1

    svc.calls.clear()
    again = client.post("/results/s3/rescore").json()
    assert sum(1 for c in svc.calls if c["json_mode"]) == 0
    assert {w["source"] for w in again["writing"]} == {"cache"}

    svc.calls.clear()
    forced = client.post("/results/s3/rescore", params={"force": "true"}).json()
    assert sum(1 for c in svc.calls if c["json_mode"]) == 1
    assert {w["source"] for w in forced["writing"]} == {"ai"}

    assert client.post("/results/unknown/rescore").status_code == 404


def test_health_reports_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("LLM_BACKEND", "none")
    _storage, client, _svc = _client(tmp_path, monkeypatch)
    body = client.get("/health").json()
    assert body == {"llm_backend": "none", "audit_export": True}
