from __future__ import annotations
import os, json, pathlib
from dataclasses import dataclass
from typing import Any, Mapping


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


ACADEMIC_DOMAINS: tuple[str, ...] = ("english", "mathematics", "reasoning")
DISPOSITION_DOMAINS: tuple[str, ...] = ("mindset", "values", "creativity")
DOMAINS: tuple[str, ...] = ACADEMIC_DOMAINS + DISPOSITION_DOMAINS
LANGUAGE_DOMAINS: frozenset[str] = frozenset({"english"})
QUANTITATIVE_DOMAINS: frozenset[str] = frozenset({"mathematics", "reasoning"})

DEFAULT_THRESHOLD: float = 55.0
DOMAIN_WEIGHTS: dict[str, float] = {"english": 0.35, "mathematics": 0.35, "reasoning": 0.30}
MCQ_WEIGHT: float = 0.6
WRITING_WEIGHT: float = 0.4
SIGNIFICANT_GAP: float = 10.0
MINDSET_READY_MIN: float = 2.0

WRITING_MIN_CHARS: int = 10
WRITING_EXTRACT_MIN_CHARS: int = 3
ANALYSIS_MIN_ITEMS: int = 2
CONSTRUCT_STRONG_PCT: float = 75.0
CONSTRUCT_WEAK_PCT: float = 50.0

AI_MAX_RETRIES: int = 2
AI_BACKOFF_BASE_SEC: float = 1.0
AI_BACKOFF_MAX_SEC: float = 3.0
AI_TOTAL_BUDGET_SEC: float = 20.0
AI_MAX_WORKERS: int = 4
AI_TIMEOUT_SEC: float = 30.0

LLM_MODEL: str = "gpt-4o-mini"
LLM_TEMPERATURE: float = 0.3
LLM_MAX_TOKENS_WRITING: int = 800
LLM_MAX_TOKENS_NARRATIVE: int = 400

ANSWER_KEYS_DIR: str = ""
THRESHOLDS_PATH: str = ""
AUDIT_EXPORT_ENABLED: bool = True
# // env overrides for staging/ops; defaults mirror the admissions team's published cut-offs.
DEFAULT_THRESHOLD = _env_float("DEFAULT_THRESHOLD", DEFAULT_THRESHOLD)
SIGNIFICANT_GAP = _env_float("SIGNIFICANT_GAP", SIGNIFICANT_GAP)
WRITING_MIN_CHARS = _env_int("WRITING_MIN_CHARS", WRITING_MIN_CHARS)
AI_MAX_RETRIES = _env_int("AI_MAX_RETRIES", AI_MAX_RETRIES)
AI_BACKOFF_BASE_SEC = _env_float("AI_BACKOFF_BASE_SEC", AI_BACKOFF_BASE_SEC)
AI_BACKOFF_MAX_SEC = _env_float("AI_BACKOFF_MAX_SEC", AI_BACKOFF_MAX_SEC)
AI_TOTAL_BUDGET_SEC = _env_float("AI_TOTAL_BUDGET_SEC", AI_TOTAL_BUDGET_SEC)
AI_MAX_WORKERS = _env_int("AI_MAX_WORKERS", AI_MAX_WORKERS)
AI_TIMEOUT_SEC = _env_float("AI_TIMEOUT_SEC", AI_TIMEOUT_SEC)
LLM_MODEL = os.getenv("LLM_MODEL", LLM_MODEL)
LLM_TEMPERATURE = _env_float("LLM_TEMPERATURE", LLM_TEMPERATURE)
ANSWER_KEYS_DIR = os.getenv("ANSWER_KEYS_DIR", ANSWER_KEYS_DIR)
THRESHOLDS_PATH = os.getenv("THRESHOLDS_PATH", THRESHOLDS_PATH)
AUDIT_EXPORT_ENABLED = _env_bool("AUDIT_EXPORT_ENABLED", AUDIT_EXPORT_ENABLED)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry budget for one external text request."""

    max_retries: int = AI_MAX_RETRIES
    base_delay: float = AI_BACKOFF_BASE_SEC
    max_delay: float = AI_BACKOFF_MAX_SEC
    total_budget: float = AI_TOTAL_BUDGET_SEC

    @property
    def attempts(self) -> int:
        return max(1, self.max_retries + 1)

    @staticmethod
    def from_cfg(cfg: Mapping[str, Any] | None) -> "RetryPolicy":
        cfg = cfg or {}
        return RetryPolicy(
            max_retries=int(cfg.get("AI_MAX_RETRIES", AI_MAX_RETRIES)),
            base_delay=float(cfg.get("AI_BACKOFF_BASE_SEC", AI_BACKOFF_BASE_SEC)),
            max_delay=float(cfg.get("AI_BACKOFF_MAX_SEC", AI_BACKOFF_MAX_SEC)),
            total_budget=float(cfg.get("AI_TOTAL_BUDGET_SEC", AI_TOTAL_BUDGET_SEC)),
        )

    @staticmethod
    def immediate(max_retries: int = AI_MAX_RETRIES) -> "RetryPolicy":
        return RetryPolicy(max_retries=max_retries, base_delay=0.0, max_delay=0.0, total_budget=60.0)


def load_config(path: str | os.PathLike[str] = "config.json") -> dict:
    cfg: dict[str, Any] = {}
    p = pathlib.Path(path)
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except ValueError: cfg = {}
    e = os.environ
    if e.get("LLM_BACKEND"): cfg["LLM_BACKEND"] = e.get("LLM_BACKEND")
    if e.get("LLM_MODEL"): cfg["LLM_MODEL"] = e.get("LLM_MODEL")
    if e.get("ANSWER_KEYS_DIR"): cfg["ANSWER_KEYS_DIR"] = e.get("ANSWER_KEYS_DIR")
    if e.get("THRESHOLDS_PATH"): cfg["THRESHOLDS_PATH"] = e.get("THRESHOLDS_PATH")
    for k in ("AI_MAX_RETRIES", "AI_MAX_WORKERS"):
        if e.get(k): cfg[k] = _env_int(k, 0)
    for k in ("AI_BACKOFF_BASE_SEC", "AI_BACKOFF_MAX_SEC", "AI_TOTAL_BUDGET_SEC"):
        if e.get(k): cfg[k] = _env_float(k, 0.0)
    return cfg
