"""Helpers to export scoring audit events in JSON/CSV formats."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

_FIELDS: tuple[str, ...] = (
    "t",
    "submission_id",
    "stage",
    "event",
    "domain",
    "key",
    "label",
    "strategy",
    "letter",
    "band",
    "score",
    "attempt",
    "detail",
)

# fields folded into "detail" when an event carries them
_DETAIL_KEYS: tuple[str, ...] = ("reason", "error", "pct", "delta", "source", "rule")


def _normalize_event(event: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in _FIELDS:
        val = event.get(key)
        if key == "attempt":
            try:
                out[key] = int(val)
            except (TypeError, ValueError):
                out[key] = 0
        elif key == "score":
            try:
                out[key] = float(val)
            except (TypeError, ValueError):
                out[key] = ""
        elif key == "detail":
            parts = [f"{k}={event[k]}" for k in _DETAIL_KEYS if event.get(k) not in (None, "")]
            out[key] = "; ".join(parts)
        else:
            out[key] = "" if val is None else str(val)
    return out


def to_json(events: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a JSON-safe payload for audit export."""

    normalized: List[Dict[str, Any]] = [_normalize_event(evt or {}) for evt in events]
    return {"events": normalized}


def to_csv(events: Iterable[Dict[str, Any]]) -> str:
    """Render audit events as CSV with a fixed header."""

    normalized = [_normalize_event(evt or {}) for evt in events]
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS)
    writer.writeheader()
    for row in normalized:
        writer.writerow(row)
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
