from __future__ import annotations

import os
from typing import Any, Dict, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


ENV_PREFIX = "AGENTMODE_"


class AgentSettings(BaseModel):
    backend_url: str = "http://127.0.0.1:8000"
    timeout_s: float = Field(60.0, gt=0)
    max_parallel: int = Field(4, ge=1)
    tool_backend: Literal["http", "mcp"] = "http"
    mcp_config: str = "servers/mcp_servers.json"
    goal_analyzer: Literal["off", "http", "llm"] = "off"
    classification_fallback: bool = True
    split_instructions: bool = False
    metrics_path: Optional[str] = "data/metrics.jsonl"
    openai_model: str = "gpt-4o-mini"
    openai_api_key: Optional[str] = None


# env var -> settings field, for the keys that do not follow the prefix rule
_EXTRA_ENV_KEYS = {
    "OPENAI_MODEL": "openai_model",
    "OPENAI_API_KEY": "openai_api_key",
}


def _env_values(environ: Dict[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name in AgentSettings.model_fields:
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw.strip() != "":
            values[name] = raw.strip()
    for env_key, name in _EXTRA_ENV_KEYS.items():
        raw = environ.get(env_key)
        if raw:
            values.setdefault(name, raw.strip())
    return values


def load_settings(env_file: Optional[str] = None, **overrides: Any) -> AgentSettings:
    """
    Build settings from the environment (after loading .env) plus explicit overrides.
    Raises pydantic.ValidationError for malformed values.
    """
    load_dotenv(env_file)
    values = _env_values(dict(os.environ))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return AgentSettings.model_validate(values)
