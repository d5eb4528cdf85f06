from __future__ import annotations
from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import logging, os, uuid, typing as t

# ---- Core imports ----
from admissions_core.config import AUDIT_EXPORT_ENABLED, load_config
from admissions_core.audit_export import to_json as audit_to_json, to_csv as audit_to_csv
from admissions_core.llm_bridge import TextService, service_from_cfg
from admissions_core.llm_cfg import backend_in_use
from admissions_core.pipeline import ScoringPipeline
from admissions_core.reporting import build_report_input, result_to_dict, writing_from_dicts
from .storage import list_results, load_result, save_result, utcnow_iso

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

app = FastAPI(title="Admissions Scoring API")


@app.get("/")
def root():
    return {"status": "ok", "service": "admissions-scoring-api"}


ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class ScoreReq(BaseModel):
    payload: dict[str, t.Any]
    submission_id: str | None = None
    grade: int | None = None
    school_id: str = ""
    form_version: str | None = None
    student_name: str | None = None
    programme: str | None = None
    locale: str | None = None
    rescore: bool = False
    lens_scores: dict[str, float] = Field(default_factory=dict)

# ---- Helpers ----
def _text_service() -> TextService | None:
    return service_from_cfg(load_config())


def _pipeline() -> ScoringPipeline:
    return ScoringPipeline.from_cfg(load_config(), service=_text_service())


def _run(sid: str, req: ScoreReq, previous: dict[str, t.Any] | None) -> dict[str, t.Any]:
    overrides = {k: v for k, v in {
        "student_name": req.student_name, "programme": req.programme, "locale": req.locale,
    }.items() if v}
    cached = writing_from_dicts((previous or {}).get("writing") or []) if previous else None
    result = _pipeline().run(
        sid, req.payload,
        grade=req.grade, school_id=req.school_id, form_version=req.form_version,
        overrides=overrides, cached_writing=cached, rescore=req.rescore,
    )
    if req.lens_scores:
        result.recommendation.lens_scores.update(req.lens_scores)
    stored = result_to_dict(result)
    stored["request"] = req.model_dump(exclude={"rescore"})
    stored["scored_at"] = utcnow_iso()
    save_result(sid, stored, {
        "schoolId": req.school_id,
        "grade": result.student.grade,
        "studentName": result.student.full_name,
        "band": result.recommendation.recommendation_band,
        "scoredAt": stored["scored_at"],
    })
    log.info("scored %s: %s (%d review flags)", sid, result.recommendation.recommendation_band,
             len(result.needs_review))
    return stored


def _load_or_404(submission_id: str) -> dict[str, t.Any]:
    stored = load_result(submission_id)
    if not stored:
        raise HTTPException(404, "result not found")
    return stored

# ---- Health ----
@app.get("/health")
def health():
    return {
        "llm_backend": backend_in_use(load_config()),
        "audit_export": AUDIT_EXPORT_ENABLED,
    }

# ---- Scoring ----
@app.post("/score")
def score(req: ScoreReq):
    sid = req.submission_id or str(uuid.uuid4())
    return _run(sid, req, load_result(sid))


@app.post("/results/{submission_id}/rescore")
def rescore(submission_id: str, force: bool = Query(False, description="Re-run writing evaluation too")):
    stored = _load_or_404(submission_id)
    req = ScoreReq(**{**(stored.get("request") or {}), "submission_id": submission_id, "rescore": force})
    return _run(submission_id, req, stored)


@app.get("/results")
def results(school_id: str | None = None):
    return {"results": list_results(school_id)}


@app.get("/results/{submission_id}")
def get_result(submission_id: str):
    return _load_or_404(submission_id)


@app.get("/results/{submission_id}/report-input")
def get_report_input(submission_id: str):
    return build_report_input(_load_or_404(submission_id))


@app.get("/results/{submission_id}/audit.json")
def get_audit_json(submission_id: str):
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")

    stored = _load_or_404(submission_id)
    payload = audit_to_json(stored.get("audit_events") or [])
    return {"result_id": submission_id, **payload}


@app.get("/results/{submission_id}/audit.csv")
def get_audit_csv(submission_id: str):
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")

    stored = _load_or_404(submission_id)
    body = audit_to_csv(stored.get("audit_events") or [])
    filename = f"{submission_id}_audit.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )
