from __future__ import annotations

import csv
import importlib
import io
import os
import sys

from fastapi.testclient import TestClient

from admissions_core.answer_keys import load_answer_keys
from admissions_core.audit import AuditTrail
from admissions_core.audit_export import to_csv, to_json

from tests.conftest import RoutingTextService, build_long_text_payload


_DEF_MODULES = [
    "admissions_core.config",
    "api.storage",
    "api.app",
]


def _reload_app(tmp_path) -> tuple[object, object]:
    os.environ["DATA_DIR"] = str(tmp_path)
    for name in _DEF_MODULES:
        if name in sys.modules:
            importlib.reload(sys.modules[name])
        else:
            __import__(name)
    storage = sys.modules["api.storage"]
    app_module = sys.modules["api.app"]
    return storage, app_module


def test_events_are_normalised_to_fixed_columns():
    trail = AuditTrail("s-9")
    trail.emit("resolver", "skipped", key="q4_colour", reason="no strategy matched")
    trail.emit("evaluator", "retry", domain="english", attempt="2", error="overloaded")
    trail.emit("mcq", "matched", domain="english", label="G10_EN_Q1", letter="B", strategy="contains")

    rows = to_json(trail.events)["events"]
    assert rows[0]["detail"] == "reason=no strategy matched"
    assert rows[0]["submission_id"] == "s-9"
    assert rows[1]["attempt"] == 2
    assert rows[2]["score"] == ""
    assert rows[2]["letter"] == "B"

    parsed = list(csv.DictReader(io.StringIO(to_csv(trail.events))))
    assert len(parsed) == 3
    assert list(parsed[0].keys())[0] == "t"
    assert list(parsed[0].keys())[-1] == "detail"


def test_audit_exports_available(tmp_path, monkeypatch):
    monkeypatch.delenv("AUDIT_EXPORT_ENABLED", raising=False)
    _storage, app_module = _reload_app(tmp_path / "enabled")
    monkeypatch.setattr(app_module, "_text_service", lambda: RoutingTextService())
    client = TestClient(app_module.app)

    payload = build_long_text_payload(load_answer_keys(10), {"english": 3})
    resp = client.post("/score", json={"payload": payload, "submission_id": "audit-1"})
    assert resp.status_code == 200

    json_resp = client.get("/results/audit-1/audit.json")
    assert json_resp.status_code == 200
    events = json_resp.json()["events"]
    assert events
    assert {"t", "stage", "event", "domain", "detail"} <= set(events[0])

    csv_resp = client.get("/results/audit-1/audit.csv")
    assert csv_resp.status_code == 200
    lines = [line for line in csv_resp.text.strip().splitlines() if line]
    assert len(lines) == len(events) + 1
    header = lines[0].split(",")
    assert header[0] == "t"
    assert header[-1] == "detail"


def test_audit_exports_disabled(tmp_path, monkeypatch):
    monkeypatch.setenv("AUDIT_EXPORT_ENABLED", "0")
    storage, app_module = _reload_app(tmp_path / "disabled")
    storage.save_result("audit-disabled", {"audit_events": [{"stage": "mcq", "event": "matched"}]}, {})

    client = TestClient(app_module.app)
    assert client.get("/results/audit-disabled/audit.json").status_code == 404
    assert client.get("/results/audit-disabled/audit.csv").status_code == 404
