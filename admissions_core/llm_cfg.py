# admissions_core/llm_cfg.py
from __future__ import annotations
import os, json, pathlib
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from openai import AzureOpenAI, OpenAI

from . import config as cfg_defaults
from .errors import MissingConfiguration

@dataclass(frozen=True)
class LLMSettings:
    backend: str
    model: str
    api_key: str
    endpoint: str = ""
    api_version: str = ""

def _azure_from_env() -> dict[str, str]:
    return {
        "endpoint":   os.getenv("AZURE_OPENAI_ENDPOINT", ""),
        "api_key":    os.getenv("AZURE_OPENAI_API_KEY", ""),
        "api_version":os.getenv("AZURE_OPENAI_API_VERSION", ""),
        "deployment": os.getenv("AZURE_OPENAI_DEPLOYMENT", ""),
    }

def _azure_from_json(path: str = ".azure_config.json") -> dict[str, str]:
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        j = json.loads(p.read_text(encoding="utf-8"))
    except ValueError:
        return {}
    return {
        "endpoint":   str(j.get("endpoint","")),
        "api_key":    str(j.get("api_key","")),
        "api_version":str(j.get("api_version","")),
        "deployment": str(j.get("deployment","")),
    }

def backend_in_use(cfg: Optional[Mapping[str, Any]] = None) -> str:
    b = str((cfg or {}).get("LLM_BACKEND") or os.getenv("LLM_BACKEND") or "").lower().strip()
    return b if b in ("azure", "openai") else "none"

def settings(cfg: Optional[Mapping[str, Any]] = None) -> LLMSettings:
    backend = backend_in_use(cfg)
    if backend == "azure":
        c = _azure_from_env()
        if not all(c.values()):
            for k, v in _azure_from_json().items():
                if not c.get(k): c[k] = v
        missing = [k for k, v in c.items() if not v]
        if missing:
            raise MissingConfiguration(f"Azure OpenAI not configured. Missing: {', '.join(missing)}")
        return LLMSettings(backend="azure", model=c["deployment"], api_key=c["api_key"],
                           endpoint=c["endpoint"], api_version=c["api_version"])
    if backend == "openai":
        key = os.getenv("OPENAI_API_KEY", "")
        if not key:
            raise MissingConfiguration("OpenAI not configured. Missing: OPENAI_API_KEY")
        model = str((cfg or {}).get("LLM_MODEL") or cfg_defaults.LLM_MODEL)
        return LLMSettings(backend="openai", model=model, api_key=key,
                           endpoint=os.getenv("OPENAI_BASE_URL", ""))
    raise MissingConfiguration("LLM_BACKEND is not set to azure or openai")

def client(s: LLMSettings) -> AzureOpenAI | OpenAI:
    # retries are handled by llm_bridge, not the SDK
    if s.backend == "azure":
        return AzureOpenAI(
            azure_endpoint=s.endpoint,
            api_key=s.api_key,
            api_version=s.api_version,
            max_retries=0,
        )
    return OpenAI(api_key=s.api_key, base_url=s.endpoint or None, max_retries=0)
