"""Utility helpers for persisting scoring results.

Results are stored as JSON files on disk, one per submission, plus a small
index.  A re-score of the same submission simply overwrites the previous
file: the last write wins and no version token is checked.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
RESULTS_DIR = DATA_ROOT / "results"
RESULT_INDEX_PATH = DATA_ROOT / "results_index.json"

_LOCK = threading.Lock()


def _ensure_dirs() -> None:
    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    DATA_ROOT.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError:
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + f".{threading.get_ident()}.tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _result_path(submission_id: str) -> Path:
    safe = "".join(ch for ch in submission_id if ch.isalnum() or ch in "-_.")
    return RESULTS_DIR / f"{safe}.json"


def save_result(submission_id: str, result: Dict[str, Any], metadata: Dict[str, Any]) -> None:
    """Persist the scoring result JSON and its index metadata."""

    _ensure_dirs()
    _write_json(_result_path(submission_id), result)
    with _LOCK:
        index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
        index[submission_id] = metadata
        _write_json(RESULT_INDEX_PATH, index)


def load_result(submission_id: str) -> Optional[Dict[str, Any]]:
    return _read_json(_result_path(submission_id), None)


def list_results(school_id: str | None = None) -> List[Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
    out: List[Dict[str, Any]] = []
    for sid, meta in index.items():
        if school_id and meta.get("schoolId") != school_id:
            continue
        item = {"id": sid}
        item.update({k: v for k, v in meta.items() if k != "id"})
        out.append(item)
    out.sort(key=lambda r: r.get("scoredAt", ""), reverse=True)
    return out
