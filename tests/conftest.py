from __future__ import annotations

import json
from typing import Any

import pytest

from admissions_core.answer_keys import parse_keys
from admissions_core.config import RetryPolicy
from admissions_core.types import AnswerKey, StudentContext


def build_answer_keys(
    *,
    per_domain: dict[str, int] | None = None,
    writing_domains: tuple[str, ...] = ("english", "mathematics", "values"),
    grade: int = 10,
) -> list[AnswerKey]:
    """Create a deterministic key set; every MCQ's correct option is ``Right <label>``."""

    counts = per_domain or {"english": 4, "mathematics": 4, "reasoning": 3, "mindset": 4}
    codes = {"english": "EN", "mathematics": "MA", "reasoning": "RE", "mindset": "MIND",
             "values": "VAL", "creativity": "CREA"}
    rows: list[dict[str, Any]] = []
    n = 0
    for domain, count in counts.items():
        for idx in range(count):
            n += 1
            label = f"G{grade}_{codes[domain]}_Q{n}"
            rows.append({
                "label": label,
                "domain": domain,
                "construct": "Core" if idx % 2 == 0 else "Extension",
                "question_type": "MCQ",
                "question_number": n,
                "question_text": f"{domain} question {n}",
                "option_a": f"Right {label}",
                "option_b": f"Wrong one {n}",
                "option_c": f"Wrong two {n}",
                "option_d": f"Wrong three {n}",
                "correct_answer": "A",
            })
    for domain in writing_domains:
        n += 1
        rows.append({
            "label": f"G{grade}_{codes[domain]}_LONG_TEXT",
            "domain": domain,
            "construct": "Extended writing",
            "question_type": "Writing",
            "question_number": n,
            "question_text": f"Write about {domain}.",
        })
    return parse_keys(rows)


def mcq_answers(keys: list[AnswerKey], correct: dict[str, int]) -> dict[str, str]:
    """Answer texts by label: the first ``correct[domain]`` MCQs right, the rest wrong."""

    out: dict[str, str] = {}
    seen: dict[str, int] = {}
    for k in keys:
        if k.question_type != "MCQ":
            continue
        i = seen.get(k.domain, 0)
        seen[k.domain] = i + 1
        out[k.label] = k.option_a if i < correct.get(k.domain, 0) else k.option_b
    return out


def build_long_text_payload(keys: list[AnswerKey], correct: dict[str, int],
                            writing: dict[str, str] | None = None, *, name: str = "Amira Haddad") -> dict[str, str]:
    payload: dict[str, str] = {"q1_student_first_name": name, "q2_meta_grade": "10"}
    qid = 10
    for label, text in mcq_answers(keys, correct).items():
        payload[f"q{qid}_{label}"] = text
        qid += 1
    for domain, text in (writing or {}).items():
        label = next(k.label for k in keys if k.domain == domain and k.question_type == "Writing")
        payload[f"q{qid}_{label}"] = text
        qid += 1
    return payload


def build_tagged_payload(keys: list[AnswerKey], correct: dict[str, int],
                         writing: dict[str, str] | None = None, *, named: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "3": {"type": "control_textbox", "name": "student_first_name", "text": "First name", "answer": "Leo"},
    }
    qid = 10
    for label, text in mcq_answers(keys, correct).items():
        key = next(k for k in keys if k.label == label)
        payload[str(qid)] = {
            "type": "control_radio",
            "name": label.lower() if named else "",
            "text": key.question_text,
            "answer": text,
        }
        qid += 1
    for domain, text in (writing or {}).items():
        payload[str(qid)] = {
            "type": "control_textarea",
            "name": f"{domain}_writing",
            "text": f"Write about {domain}.",
            "answer": text,
        }
        qid += 1
    return payload


class FakeTextService:
    """Scripted stand-in for the text service.

    ``script`` items are returned in order; exceptions are raised.  When the
    script runs out, ``default`` is returned.
    """

    def __init__(self, script: list[Any] | None = None, default: str = "A measured narrative."):
        self.script = list(script or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    def complete(self, system: str, user: str, *, max_tokens: int = 400, json_mode: bool = False) -> str:
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens, "json_mode": json_mode})
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        return item


class RoutingTextService(FakeTextService):
    """Answers JSON requests with ``evaluation`` and prose requests with ``prose``."""

    def __init__(self, evaluation: dict[str, Any] | None = None, prose: str = "Amira shows steady progress."):
        super().__init__()
        self.evaluation = evaluation or {
            "band": "Good", "score": 3, "content_narrative": "Relevant ideas.",
            "writing_narrative": "Controlled sentences.", "threshold_comment": "Meets expectations.",
        }
        self.prose = prose

    def complete(self, system: str, user: str, *, max_tokens: int = 400, json_mode: bool = False) -> str:
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens, "json_mode": json_mode})
        return json.dumps(self.evaluation) if json_mode else self.prose


def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def keys() -> list[AnswerKey]:
    return build_answer_keys()


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy.immediate()


@pytest.fixture
def student() -> StudentContext:
    return StudentContext(first_name="Amira", full_name="Amira Haddad", grade=10, programme="IGCSE")
