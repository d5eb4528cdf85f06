"""Structured event sink shared by every scoring component.

Components call ``trail.emit(stage, event, **fields)`` instead of logging
directly.  The trail keeps the events (they travel with the persisted result
and feed the audit export) and mirrors each one to the module logger.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

_WARN_EVENTS = frozenset({"skipped", "ambiguous", "fallback", "retry", "not_assessed", "failed", "no_match"})


class AuditTrail:
    def __init__(self, submission_id: str = "", *, logger: Optional[logging.Logger] = None):
        self.submission_id = submission_id
        self._events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._log = logger or log

    def emit(self, stage: str, event: str, **fields: Any) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "t": datetime.now(timezone.utc).isoformat(),
            "submission_id": self.submission_id,
            "stage": stage,
            "event": event,
        }
        record.update(fields)
        with self._lock:
            self._events.append(record)
        level = logging.WARNING if event in _WARN_EVENTS else logging.INFO
        if self._log.isEnabledFor(level):
            detail = " ".join(f"{k}={v}" for k, v in fields.items())
            self._log.log(level, "%s.%s %s", stage, event, detail)
        return record

    @property
    def events(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._events)

    def of(self, stage: str, event: str | None = None) -> List[Dict[str, Any]]:
        return [
            e for e in self.events
            if e["stage"] == stage and (event is None or e["event"] == event)
        ]


__all__ = ["AuditTrail"]
