from __future__ import annotations
import json, logging, re, time
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

import openai
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from . import config as cfg_defaults
from .audit import AuditTrail
from .config import RetryPolicy
from .errors import (
    AIServiceUnavailable,
    MalformedAIResponse,
    MissingConfiguration,
    TransientServiceError,
)
from .llm_cfg import backend_in_use, client as llm_client, settings as llm_settings

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_TRANSIENT_STATUS = {408, 409, 429, 529}


class TextService(Protocol):
    def complete(self, system: str, user: str, *, max_tokens: int = 400, json_mode: bool = False) -> str: ...


def classify(exc: BaseException) -> AIServiceUnavailable:
    """Map SDK failures onto the retryable/non-retryable split."""
    if isinstance(exc, AIServiceUnavailable):
        return exc
    if isinstance(exc, (openai.RateLimitError, openai.APIConnectionError)):
        return TransientServiceError(f"{type(exc).__name__}: {exc}")
    if isinstance(exc, openai.APIStatusError):
        status = getattr(exc, "status_code", 0) or 0
        if status in _TRANSIENT_STATUS or status >= 500:
            return TransientServiceError(f"HTTP {status}: {exc}")
        return AIServiceUnavailable(f"HTTP {status}: {exc}")
    return AIServiceUnavailable(f"{type(exc).__name__}: {exc}")


class OpenAITextService:
    def __init__(self, cli: Any, model: str, *, temperature: float = cfg_defaults.LLM_TEMPERATURE,
                 timeout: float = cfg_defaults.AI_TIMEOUT_SEC):
        self.cli = cli
        self.model = model
        self.temperature = temperature
        self.timeout = timeout

    def complete(self, system: str, user: str, *, max_tokens: int = 400, json_mode: bool = False) -> str:
        kwargs: Dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            resp = self.cli.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
                temperature=self.temperature, max_tokens=max_tokens, timeout=self.timeout, **kwargs,
            )
        except openai.OpenAIError as exc:
            raise classify(exc) from exc
        text = (resp.choices[0].message.content or "") if resp.choices else ""
        if not text.strip():
            raise MalformedAIResponse("empty completion")
        return text


def service_from_cfg(cfg: Optional[Mapping[str, Any]] = None) -> Optional[TextService]:
    """Build the configured text service, or ``None`` when AI is switched off."""
    if backend_in_use(cfg) == "none":
        return None
    try:
        s = llm_settings(cfg)
    except MissingConfiguration as exc:
        log.warning("text service disabled: %s", exc)
        return None
    temperature = float((cfg or {}).get("LLM_TEMPERATURE", cfg_defaults.LLM_TEMPERATURE))
    return OpenAITextService(llm_client(s), s.model, temperature=temperature)


def complete_with_retry(
    service: Optional[TextService],
    system: str,
    user: str,
    *,
    policy: RetryPolicy,
    trail: Optional[AuditTrail] = None,
    stage: str = "ai",
    domain: str = "",
    max_tokens: int = 400,
    json_mode: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """One logical request with bounded retries on transient failures.

    Raises ``AIServiceUnavailable`` (or a subclass) once the budget is spent.
    """
    if service is None:
        raise AIServiceUnavailable("no text service configured")
    trail = trail or AuditTrail()

    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        wait = state.next_action.sleep if state.next_action else 0.0
        trail.emit(stage, "retry", domain=domain, attempt=state.attempt_number,
                   error=str(exc), wait=round(float(wait), 2))

    def _attempt() -> str:
        try:
            return service.complete(system, user, max_tokens=max_tokens, json_mode=json_mode)
        except AIServiceUnavailable:
            raise
        except openai.OpenAIError as exc:
            raise classify(exc) from exc

    retryer = Retrying(
        stop=stop_after_attempt(policy.attempts) | stop_after_delay(policy.total_budget),
        wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
        retry=retry_if_exception_type(TransientServiceError),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    t0 = time.monotonic()
    text = retryer(_attempt)
    trail.emit(stage, "completed", domain=domain, attempt=retryer.statistics.get("attempt_number", 1),
               rt_ms=int((time.monotonic() - t0) * 1000))
    return text


def narrative_or_fallback(
    service: Optional[TextService],
    system: str,
    user: str,
    fallback_text: str,
    *,
    policy: RetryPolicy,
    trail: Optional[AuditTrail] = None,
    stage: str = "ai",
    domain: str = "",
    max_tokens: int = cfg_defaults.LLM_MAX_TOKENS_NARRATIVE,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[str, bool]:
    """Prose request that degrades to ``fallback_text``; returns ``(text, from_service)``."""
    trail = trail or AuditTrail()
    try:
        text = complete_with_retry(service, system, user, policy=policy, trail=trail, stage=stage,
                                   domain=domain, max_tokens=max_tokens, sleep=sleep).strip()
    except AIServiceUnavailable as exc:
        trail.emit(stage, "fallback", domain=domain, error=str(exc))
        return fallback_text, False
    return text, True


def parse_json(raw: str) -> Dict[str, Any]:
    cleaned = _FENCE_RE.sub("", (raw or "").strip()).strip()
    if not cleaned.startswith("{"):
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise MalformedAIResponse("no JSON object in response", raw=raw)
        cleaned = cleaned[start:end + 1]
    try:
        data = json.loads(cleaned)
    except ValueError as exc:
        raise MalformedAIResponse(f"invalid JSON: {exc}", raw=raw) from exc
    if not isinstance(data, dict):
        raise MalformedAIResponse("JSON response is not an object", raw=raw)
    return data


__all__ = [
    "TextService",
    "OpenAITextService",
    "classify",
    "complete_with_retry",
    "narrative_or_fallback",
    "parse_json",
    "service_from_cfg",
]
