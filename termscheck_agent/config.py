from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 TermsCheckAgent/1.0"
)


class EngineConfig(BaseModel):
    # Grace period before asking the discovery collaborator, so it can initialize.
    discovery_grace_s: float = Field(0.5, ge=0)
    fetch_timeout_s: float = Field(10.0, gt=0)
    join_timeout_s: float = Field(20.0, gt=0)
    watchdog_timeout_s: float = Field(30.0, gt=0)

    min_content_chars: int = Field(500, ge=0)
    container_min_chars: int = Field(200, ge=0)
    min_paragraphs: int = Field(5, ge=0)
    max_content_chars: int = Field(100_000, ge=1)
    judge_input_chars: int = Field(8000, ge=1)

    sweep_interval_s: float = Field(3600.0, gt=0)
    max_age_s: float = Field(24 * 60 * 60, gt=0)

    user_agent: str = DEFAULT_USER_AGENT
    discovery_backend: Literal["http", "browser"] = "http"
    judge_provider: Literal["openai", "gemini"] = "openai"
    openai_model: str = "gpt-3.5-turbo"
    openai_base_url: str = "https://api.openai.com/v1"
    gemini_model: str = "gemini-2.5-flash"
    judge_timeout_s: float = Field(30.0, gt=0)

    settings_path: str | None = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        values: dict[str, object] = {}
        env_map = {
            "TERMSCHECK_DISCOVERY_GRACE_S": "discovery_grace_s",
            "TERMSCHECK_FETCH_TIMEOUT_S": "fetch_timeout_s",
            "TERMSCHECK_JOIN_TIMEOUT_S": "join_timeout_s",
            "TERMSCHECK_WATCHDOG_TIMEOUT_S": "watchdog_timeout_s",
            "TERMSCHECK_MIN_CONTENT_CHARS": "min_content_chars",
            "TERMSCHECK_MAX_CONTENT_CHARS": "max_content_chars",
            "TERMSCHECK_SWEEP_INTERVAL_S": "sweep_interval_s",
            "TERMSCHECK_MAX_AGE_S": "max_age_s",
            "TERMSCHECK_USER_AGENT": "user_agent",
            "TERMSCHECK_DISCOVERY_BACKEND": "discovery_backend",
            "TERMSCHECK_JUDGE_PROVIDER": "judge_provider",
            "TERMSCHECK_SETTINGS_PATH": "settings_path",
            "OPENAI_MODEL": "openai_model",
            "OPENAI_BASE_URL": "openai_base_url",
            "GEMINI_MODEL": "gemini_model",
        }
        for env_name, field_name in env_map.items():
            raw = os.getenv(env_name, "").strip()
            if raw:
                values[field_name] = raw
        return cls.model_validate(values)


def default_credential(provider: str) -> str | None:
    """API key from the environment for the configured judge provider, if any."""
    name = "GEMINI_API_KEY" if provider == "gemini" else "OPENAI_API_KEY"
    value = os.getenv(name, "").strip()
    return value or None
